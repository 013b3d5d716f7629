"""
LDAP Provider Configuration

Connection, credential, search filter and attribute mapping settings for an
LDAP or Active Directory server.
"""

from authconsole.auth_config.errors import ValidationError
from authconsole.auth_providers.base import BaseProviderConfig, EncryptionType, ProviderKind, MASKED
from authconsole.auth_providers.forms import DirectoryConfigForm
import logging

logger = logging.getLogger(__name__)

# (attribute, wire key, default)
DIRECTORY_FIELDS = [
    ('server_host', 'serverHost', ''),
    ('server_port', 'serverPort', None),
    ('encryption_type', 'encryptionType', None),
    ('base_dn', 'baseDN', ''),
    ('bind_dn', 'bindDN', ''),
    ('bind_password', 'bindPassword', ''),
    ('user_filter', 'userFilter', ''),
    ('group_filter', 'groupFilter', ''),
    ('attribute_user_rdn', 'attributeUserRDN', ''),
    ('attribute_user_firstname', 'attributeUserFirstname', ''),
    ('attribute_user_lastname', 'attributeUserLastname', ''),
    ('attribute_user_email', 'attributeUserEmail', ''),
    ('attribute_user_display_name', 'attributeUserDisplayName', ''),
    ('attribute_user_group_name', 'attributeUserGroupName', ''),
    ('attribute_group_member', 'attributeGroupMember', ''),
    ('disable_logout', 'disableLogout', False),
    ('default_permission_add_space', 'defaultPermissionAddSpace', False),
]

WIRE_KEYS = {attr: key for attr, key, _ in DIRECTORY_FIELDS}
ATTRIBUTES = {key: attr for attr, key, _ in DIRECTORY_FIELDS}


def _wire_key(key):
    # ServerHost and serverHost name the same field
    return key[:1].lower() + key[1:]


class DirectoryConfig(BaseProviderConfig):
    """LDAP / Active Directory provider configuration"""

    kind = ProviderKind.DIRECTORY
    secret_fields = ('bind_password',)

    def __init__(self, **kwargs):
        for attr, _, default in DIRECTORY_FIELDS:
            setattr(self, attr, kwargs.pop(attr, default))
        if kwargs:
            raise TypeError(f"Unknown directory config fields: {', '.join(sorted(kwargs))}")

    @classmethod
    def from_dict(cls, data):
        """
        Build a DirectoryConfig from a decoded JSON object.

        Keys are matched in camelCase or PascalCase. Unknown keys are ignored.
        """
        values = {}
        for key, value in (data or {}).items():
            attr = ATTRIBUTES.get(_wire_key(str(key)))
            if attr is not None:
                values[attr] = value
        return cls(**values)

    def to_dict(self, mask_secrets=False):
        data = {}
        for attr, key, _ in DIRECTORY_FIELDS:
            value = getattr(self, attr)
            if mask_secrets and attr in self.secret_fields:
                value = MASKED
            elif hasattr(value, 'value'):
                value = value.value
            data[key] = value
        return data

    def _form(self):
        return DirectoryConfigForm(data={attr: getattr(self, attr) for attr, _, _ in DIRECTORY_FIELDS})

    def validate_config(self):
        """
        Validate the configuration without touching the network.

        Returns:
            Tuple of (is_valid: bool, errors: list of FieldError)
        """
        form = self._form()
        if form.validate():
            return True, []

        errors = form.field_errors(WIRE_KEYS)
        logger.debug(f"Directory config rejected, fields: {sorted({e.field for e in errors})}")
        return False, errors

    def normalized(self):
        """
        Return a validated copy with trimmed strings, an integer port and a
        lower-case encryption type.

        Raises:
            ValidationError: If the configuration is structurally invalid
        """
        form = self._form()
        if not form.validate():
            raise ValidationError(form.field_errors(WIRE_KEYS))

        config = DirectoryConfig()
        form.populate_obj(config)
        config.encryption_type = EncryptionType(config.encryption_type)
        return config

    @property
    def address(self):
        return f"{self.server_host}:{self.server_port}"

    def get_user_filter_attributes(self):
        """Attributes requested when searching for users"""
        attrs = ['cn']
        for attr in (self.attribute_user_rdn,
                     self.attribute_user_firstname,
                     self.attribute_user_lastname,
                     self.attribute_user_email,
                     self.attribute_user_display_name,
                     self.attribute_user_group_name):
            if attr and attr not in attrs:
                attrs.append(attr)
        return attrs

    def get_group_filter_attributes(self):
        """Attributes requested when searching for groups"""
        attrs = ['cn']
        if self.attribute_group_member and self.attribute_group_member not in attrs:
            attrs.append(self.attribute_group_member)
        return attrs

    def same_directory(self, other):
        """True when other points at the same server with the same bind account"""
        return (isinstance(other, DirectoryConfig)
                and str(self.server_host).strip().lower() == str(other.server_host).strip().lower()
                and str(self.server_port) == str(other.server_port)
                and str(self.bind_dn).strip().lower() == str(other.bind_dn).strip().lower())

    def merge_secrets(self, existing):
        """
        Reuse the stored bind password when the caller left it blank.

        The stored password only applies to the same server and bind account,
        so a changed host or bind DN always needs the password re-entered.

        Args:
            existing: DirectoryConfig currently stored for the tenant
        """
        if not self.bind_password and self.same_directory(existing):
            self.bind_password = existing.bind_password
