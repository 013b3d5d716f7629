from flask import Blueprint

admin = Blueprint('admin', __name__, url_prefix='/admin')

from authconsole.admin import routes  # noqa: E402,F401
