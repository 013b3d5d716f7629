"""
Keycloak/OIDC Provider Configuration

The identity provider's settings are owned by its own configuration surface.
They are stored and returned as an opaque document; only secret-looking keys
are masked on the way out.
"""

import copy
import logging

from authconsole.auth_config.errors import FieldError, ValidationError
from authconsole.auth_providers.base import BaseProviderConfig, ProviderKind, MASKED

logger = logging.getLogger(__name__)

SECRET_MARKERS = ('password', 'secret')


def _is_secret(key):
    key = str(key).lower()
    return any(marker in key for marker in SECRET_MARKERS)


class ExternalIdPConfig(BaseProviderConfig):
    """Keycloak/OIDC identity provider configuration (pass-through document)"""

    kind = ProviderKind.EXTERNAL_IDP

    def __init__(self, document=None):
        self.document = copy.deepcopy(document) if document else {}

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationError([FieldError('authConfig', 'Must be a JSON object.')])
        return cls(data)

    @property
    def secret_fields(self):
        return tuple(key for key in self.document if _is_secret(key))

    def to_dict(self, mask_secrets=False):
        data = copy.deepcopy(self.document)
        if mask_secrets:
            for key in self.secret_fields:
                data[key] = MASKED
        return data

    def merge_secrets(self, existing):
        """
        Keep stored secrets the caller left blank.

        Args:
            existing: ExternalIdPConfig currently stored for the tenant
        """
        for key in existing.secret_fields:
            if not self.document.get(key) and existing.document.get(key):
                self.document[key] = existing.document[key]
