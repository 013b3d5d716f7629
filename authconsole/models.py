from flask_login import UserMixin
from cryptography.fernet import Fernet
from datetime import datetime
import json
from authconsole import db


class Tenant(db.Model):
    """An organization with its own users and authentication settings"""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    users = db.relationship('User', backref='tenant', lazy=True, cascade='all, delete-orphan')
    auth_config = db.relationship('AuthConfigRecord', backref='tenant', uselist=False,
                                  lazy=True, cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Tenant {self.name}>'


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenant.id'), nullable=False)
    username = db.Column(db.String(64), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    is_admin = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def is_tenant_admin(self, tenant_id):
        """Check if user administers the given tenant"""
        return bool(self.is_admin) and self.tenant_id == tenant_id

    def __repr__(self):
        return f'<User {self.username}>'


class AuthConfigRecord(db.Model):
    """The active authentication provider of a tenant (one row per tenant)"""
    __tablename__ = 'auth_config'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenant.id'), nullable=False, unique=True)
    provider_type = db.Column(db.String(50), nullable=False, default='internal')  # internal, ldap, keycloak
    revision = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Encrypted configuration JSON, empty for the internal provider
    config_encrypted = db.Column(db.LargeBinary, nullable=True)

    def set_config(self, config_dict, crypto_key):
        """Encrypt and store configuration as JSON"""
        if config_dict is None:
            self.config_encrypted = None
            return
        fernet = Fernet(crypto_key)
        config_json = json.dumps(config_dict)
        self.config_encrypted = fernet.encrypt(config_json.encode())

    def get_config(self, crypto_key):
        """Decrypt and return configuration as dictionary"""
        if self.config_encrypted is None:
            return None
        fernet = Fernet(crypto_key)
        config_json = fernet.decrypt(self.config_encrypted).decode()
        return json.loads(config_json)

    def __repr__(self):
        return f'<AuthConfigRecord tenant={self.tenant_id} ({self.provider_type}) rev={self.revision}>'
