"""
Base authentication provider configuration.

Every provider kind that carries a configuration payload inherits from
BaseProviderConfig and implements the dictionary round trip. Providers with
required fields list them in get_required_config_fields.
"""

from abc import ABC, abstractmethod
from enum import Enum
import logging

from authconsole.auth_config.errors import FieldError

logger = logging.getLogger(__name__)

MASKED = ''


class ProviderKind(str, Enum):
    """Authentication provider that is active for a tenant"""

    INTERNAL = 'internal'
    DIRECTORY = 'ldap'
    EXTERNAL_IDP = 'keycloak'

    def __str__(self):
        return self.value


class EncryptionType(str, Enum):
    """How the connection to a directory server is secured"""

    NONE = 'none'
    STARTTLS = 'starttls'
    TLS = 'tls'

    def __str__(self):
        return self.value


class BaseProviderConfig(ABC):
    """Base class for all provider configuration payloads"""

    kind = None

    # Attribute names whose values are never logged or returned to callers
    secret_fields = ()

    @classmethod
    @abstractmethod
    def from_dict(cls, data):
        """
        Build a configuration from its wire representation.

        Args:
            data: Dictionary decoded from a JSON request body or the store

        Returns:
            Instance of the configuration class
        """
        pass

    @abstractmethod
    def to_dict(self, mask_secrets=False):
        """
        Convert the configuration to its wire representation.

        Args:
            mask_secrets: Replace secret values with an empty string

        Returns:
            Dictionary safe to serialize as JSON
        """
        pass

    def get_required_config_fields(self):
        """
        Get list of required configuration fields for this provider.

        Returns:
            List of required attribute names
        """
        return []

    def validate_config(self):
        """
        Validate the provider configuration.

        Returns:
            Tuple of (is_valid: bool, errors: list of FieldError)
        """
        errors = []

        # Subclasses should override this to add their own validation
        for field in self.get_required_config_fields():
            value = getattr(self, field, None)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append(FieldError(field, 'This field is required.'))

        return len(errors) == 0, errors

    def __eq__(self, other):
        if not isinstance(other, BaseProviderConfig):
            return NotImplemented
        return self.kind == other.kind and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"<{self.__class__.__name__} config={self.to_dict(mask_secrets=True)}>"


class ActiveAuthConfig:
    """The authentication provider in effect for a tenant, with its payload"""

    def __init__(self, provider_kind, payload=None, revision=0, updated_at=None):
        """
        Initialize the active configuration record.

        Args:
            provider_kind: ProviderKind member
            payload: DirectoryConfig, ExternalIdPConfig or None for the internal store
            revision: Number of saves applied to the tenant's record
            updated_at: Time of the last save, None if never saved
        """
        self.provider_kind = ProviderKind(provider_kind)
        self.payload = payload
        self.revision = revision
        self.updated_at = updated_at

    @classmethod
    def default(cls):
        """Configuration of a freshly provisioned tenant"""
        return cls(ProviderKind.INTERNAL)

    def to_dict(self, mask_secrets=True):
        payload = None
        if self.payload is not None:
            payload = self.payload.to_dict(mask_secrets=mask_secrets)

        return {
            'authProvider': self.provider_kind.value,
            'authConfig': payload,
            'revision': self.revision,
        }

    def __repr__(self):
        return f"<ActiveAuthConfig {self.provider_kind.value} revision={self.revision}>"
