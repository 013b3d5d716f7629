from flask import current_app, jsonify, request
from flask_login import current_user
from authconsole.admin import admin
from authconsole.auth_config.errors import AuthConfigError
from authconsole.auth_providers import Deadline, DirectoryConfig, parse_provider_config
from authconsole.decorators import admin_required
import logging

logger = logging.getLogger(__name__)

# Client time budget in seconds for requests that contact the directory
TIMEOUT_HEADER = 'X-Request-Timeout'


def _service():
    return current_app.extensions['auth_config']


def _caller():
    return current_user._get_current_object()


def _json_body():
    """Return the request's JSON object, or None if the body is not one"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def _bad_request(message='Request body must be a JSON object.'):
    return jsonify({
        'error': 'BadRequest',
        'message': message,
    }), 400


def _request_deadline():
    """
    Build the preview deadline for this request.

    The client may shorten the configured preview timeout with the
    X-Request-Timeout header but never extend it.

    Returns:
        Deadline, or None if the header holds no positive number of seconds
    """
    limit = current_app.config['LDAP_PREVIEW_TIMEOUT']
    value = request.headers.get(TIMEOUT_HEADER)
    if value is None:
        return Deadline(limit)

    try:
        seconds = float(value)
    except ValueError:
        return None
    if not 0 < seconds < float('inf'):
        return None
    return Deadline(min(seconds, limit))


@admin.errorhandler(AuthConfigError)
def handle_auth_config_error(error):
    """Render classified errors as structured JSON"""
    logger.info(f"{request.method} {request.path} failed with {error.kind}")
    return jsonify(error.to_dict()), error.status_code


@admin.route('/auth-config', methods=['GET'])
@admin_required
def get_auth_config():
    """Return the active authentication provider and its configuration"""
    active = _service().get_active_config(_caller(), current_user.tenant_id)
    return jsonify(active.to_dict(mask_secrets=True))


@admin.route('/auth-config/preview-ldap', methods=['POST'])
@admin_required
def preview_ldap():
    """Test a candidate LDAP configuration without saving it"""
    data = _json_body()
    if data is None:
        return _bad_request()

    deadline = _request_deadline()
    if deadline is None:
        return _bad_request(f"{TIMEOUT_HEADER} must be a positive number of seconds.")

    candidate = DirectoryConfig.from_dict(data)
    result = _service().preview_directory(_caller(), candidate, deadline=deadline)

    return jsonify(result.to_dict())


@admin.route('/auth-config', methods=['PUT'])
@admin_required
def save_auth_config():
    """Make a provider configuration the active one"""
    data = _json_body()
    if data is None:
        return _bad_request()

    deadline = _request_deadline()
    if deadline is None:
        return _bad_request(f"{TIMEOUT_HEADER} must be a positive number of seconds.")

    active = parse_provider_config(data.get('authProvider'), data.get('authConfig'))
    saved = _service().save_config(
        _caller(),
        current_user.tenant_id,
        active,
        acknowledge_unverified=bool(data.get('acknowledgeUnverified', False)),
        deadline=deadline,
    )

    return jsonify(saved.to_dict(mask_secrets=True))
