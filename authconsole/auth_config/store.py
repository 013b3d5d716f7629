"""
Persistence of the active authentication configuration, one record per tenant.
"""

from datetime import datetime
import logging

from cryptography.fernet import InvalidToken
from sqlalchemy.exc import SQLAlchemyError

from authconsole.auth_config.errors import (
    FieldError, NotFound, StoreReadError, StoreWriteError, ValidationError,
)
from authconsole.auth_providers import (
    PROVIDER_MAP, ActiveAuthConfig, DirectoryConfig, ProviderKind, parse_provider_config,
)
from authconsole.models import AuthConfigRecord, Tenant

logger = logging.getLogger(__name__)


class ConfigStore:
    """Reads and replaces tenant authentication configuration records"""

    def __init__(self, session, crypto_key):
        """
        Initialize the store.

        Args:
            session: SQLAlchemy session (usually db.session)
            crypto_key: Fernet key used to encrypt provider payloads at rest
        """
        self.session = session
        self.crypto_key = crypto_key
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def provision_tenant(self, name):
        """
        Create a tenant that authenticates against the internal store.

        Args:
            name: Unique tenant name

        Returns:
            The new Tenant
        """
        try:
            tenant = Tenant(name=name)
            tenant.auth_config = AuthConfigRecord(provider_type=ProviderKind.INTERNAL.value, revision=0)
            self.session.add(tenant)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            self.logger.error(f"Error provisioning tenant {name}: {str(e)}")
            raise StoreWriteError(f'Unable to provision tenant "{name}".')

        self.logger.info(f"Provisioned tenant {name} with internal authentication")
        return tenant

    def _get_tenant(self, tenant_id):
        tenant = self.session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFound(f"Tenant {tenant_id} not found.")
        return tenant

    def get_active_config(self, tenant_id):
        """
        Get the authentication configuration in effect for a tenant.

        Args:
            tenant_id: Tenant primary key

        Returns:
            ActiveAuthConfig; the internal provider if the tenant was never configured

        Raises:
            NotFound: If the tenant does not exist
            StoreReadError: If the stored payload cannot be decrypted or decoded
        """
        self._get_tenant(tenant_id)

        record = self.session.query(AuthConfigRecord).filter_by(tenant_id=tenant_id).first()
        if record is None:
            return ActiveAuthConfig.default()

        try:
            data = record.get_config(self.crypto_key)
            active = parse_provider_config(record.provider_type, data)
        except (InvalidToken, ValueError, ValidationError) as e:
            self.logger.error(f"Stored auth config for tenant {tenant_id} is unreadable: {e!r}")
            raise StoreReadError()

        active.revision = record.revision
        active.updated_at = record.updated_at
        return active

    def save_config(self, tenant_id, active_config):
        """
        Replace the tenant's authentication configuration.

        The provider kind and its encrypted payload are written to a single row
        in one transaction, so readers see either the previous record or the
        new one. Concurrent saves are serialized by the row lock; the last
        writer wins.

        Args:
            tenant_id: Tenant primary key
            active_config: ActiveAuthConfig to persist

        Returns:
            The saved ActiveAuthConfig with its new revision

        Raises:
            ValidationError: If the payload is structurally invalid
            NotFound: If the tenant does not exist
            StoreWriteError: If the database write fails
        """
        kind = active_config.provider_kind
        payload = active_config.payload
        expected = PROVIDER_MAP[kind]

        if expected is None and payload is not None:
            raise ValidationError([FieldError('authConfig', 'The internal provider takes no configuration.')])
        if expected is not None and not isinstance(payload, expected):
            raise ValidationError([FieldError('authConfig', f"A {kind.value} configuration is required.")])

        if isinstance(payload, DirectoryConfig):
            payload = payload.normalized()
        elif payload is not None:
            is_valid, errors = payload.validate_config()
            if not is_valid:
                raise ValidationError(errors)

        self._get_tenant(tenant_id)

        try:
            record = (self.session.query(AuthConfigRecord)
                      .filter_by(tenant_id=tenant_id)
                      .with_for_update()
                      .first())
            if record is None:
                record = AuthConfigRecord(tenant_id=tenant_id, revision=0)
                self.session.add(record)

            record.provider_type = kind.value
            record.set_config(payload.to_dict() if payload is not None else None, self.crypto_key)
            record.revision = (record.revision or 0) + 1
            record.updated_at = datetime.utcnow()

            self.session.commit()

        except SQLAlchemyError as e:
            self.session.rollback()
            self.logger.error(f"Error saving auth config for tenant {tenant_id}: {str(e)}")
            raise StoreWriteError()

        self.logger.info(f"Tenant {tenant_id} now uses {kind.value} authentication (revision {record.revision})")
        return ActiveAuthConfig(kind, payload, revision=record.revision, updated_at=record.updated_at)
