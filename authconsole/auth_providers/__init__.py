"""
Authentication provider configuration models and directory preview.
"""

from authconsole.auth_config.errors import FieldError, ValidationError
from authconsole.auth_providers.base import (
    ActiveAuthConfig, BaseProviderConfig, EncryptionType, ProviderKind,
)
from authconsole.auth_providers.ldap_provider import DirectoryConfig
from authconsole.auth_providers.keycloak_provider import ExternalIdPConfig
from authconsole.auth_providers.ldap_preview import (
    Deadline, DirectoryPreviewEngine, PreviewResult,
)

# Map provider kinds to their payload classes; the internal store has no payload
PROVIDER_MAP = {
    ProviderKind.INTERNAL: None,
    ProviderKind.DIRECTORY: DirectoryConfig,
    ProviderKind.EXTERNAL_IDP: ExternalIdPConfig,
}


def get_provider_kind(value):
    """
    Resolve a wire value to a ProviderKind.

    Raises:
        ValidationError: If the value names no known provider
    """
    try:
        return ProviderKind(value)
    except ValueError:
        raise ValidationError([FieldError('authProvider', f"Unsupported provider type: {value}")])


def parse_provider_config(provider_kind, payload):
    """
    Factory function to build the payload for a provider kind.

    Args:
        provider_kind: ProviderKind member or its wire value
        payload: Decoded JSON payload, None for the internal store

    Returns:
        ActiveAuthConfig holding the typed payload

    Raises:
        ValidationError: If the kind is unknown or the payload has the wrong shape
    """
    kind = get_provider_kind(provider_kind)
    config_class = PROVIDER_MAP[kind]

    if config_class is None:
        if payload not in (None, '', {}):
            raise ValidationError([FieldError('authConfig', 'The internal provider takes no configuration.')])
        return ActiveAuthConfig(kind)

    if not isinstance(payload, dict):
        raise ValidationError([FieldError('authConfig', 'Must be a JSON object.')])

    return ActiveAuthConfig(kind, config_class.from_dict(payload))


def validate_directory_config(data):
    """
    Validate a directory configuration without any network access.

    Args:
        data: DirectoryConfig or its wire dictionary

    Returns:
        List of FieldError, empty when the configuration is valid
    """
    config = data if isinstance(data, DirectoryConfig) else DirectoryConfig.from_dict(data)
    _, errors = config.validate_config()
    return errors


__all__ = [
    'ActiveAuthConfig',
    'BaseProviderConfig',
    'Deadline',
    'DirectoryConfig',
    'DirectoryPreviewEngine',
    'EncryptionType',
    'ExternalIdPConfig',
    'PROVIDER_MAP',
    'PreviewResult',
    'ProviderKind',
    'get_provider_kind',
    'parse_provider_config',
    'validate_directory_config',
]
