from functools import wraps
from flask import jsonify
from flask_login import current_user

from authconsole.auth_config.errors import PermissionDenied


def admin_required(f):
    """
    Decorator to require admin access for an API route.

    Anonymous callers get 401 and non-admins 403; neither ever reaches the
    view, so no configuration data leaks to them.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({
                'error': 'Unauthenticated',
                'message': 'Please log in to access this page.',
            }), 401
        if not current_user.is_admin:
            error = PermissionDenied()
            return jsonify(error.to_dict()), error.status_code
        return f(*args, **kwargs)
    return decorated_function
