from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()


def create_app(config_class=Config, connection_factory=None):
    """
    Build the application.

    Args:
        config_class: Configuration object loaded into app.config
        connection_factory: Optional ldap3 connection factory for directory previews
    """
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    login_manager.init_app(app)

    # Import inside create_app to avoid circular imports
    from authconsole.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({
            'error': 'Unauthenticated',
            'message': 'Please log in to access this page.',
        }), 401

    from authconsole.auth_config.service import AuthConfigService
    from authconsole.auth_config.store import ConfigStore
    from authconsole.auth_providers import DirectoryPreviewEngine

    store = ConfigStore(db.session, app.config['CRYPTO_KEY'])
    engine = DirectoryPreviewEngine.from_config(app.config, connection_factory=connection_factory)
    app.extensions['auth_config'] = AuthConfigService(store, engine)

    from authconsole.admin import admin
    app.register_blueprint(admin)

    return app
