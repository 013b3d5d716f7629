"""
Form definitions used to validate provider configuration payloads.

The forms are fed from dictionaries rather than HTTP form posts, so they
validate JSON request bodies and stored records alike.
"""

import re

from ldap3.core.exceptions import LDAPException
from ldap3.operation.search import parse_filter
from wtforms import Form, StringField, IntegerField, SelectField, BooleanField
from wtforms.validators import DataRequired, Length, NumberRange, StopValidation, ValidationError

from authconsole.auth_config.errors import FieldError
from authconsole.auth_providers.base import EncryptionType


def _strip(value):
    if isinstance(value, str):
        return value.strip()
    return value


def _lower(value):
    if isinstance(value, str):
        return value.lower()
    return value


# An item such as (=x) or (~=x) with no attribute description before the operator
EMPTY_ATTRIBUTE = re.compile(r"\(\s*[~<>:]?=")


def _text(form, field):
    """Reject non-string values such as numbers or lists"""
    if field.data is not None and not isinstance(field.data, str):
        raise StopValidation('Must be a string.')


class PortField(IntegerField):
    """Integer field that refuses booleans and fractional numbers instead of truncating them"""

    def process_data(self, value):
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            self.data = None
            raise ValueError(self.gettext('Not a valid integer value.'))
        super().process_data(value)


def check_search_filter(search_filter):
    """
    Check that a string parses as an LDAP search filter.

    Args:
        search_filter: Filter in RFC 4515 string form

    Raises:
        ValidationError: If the filter cannot be parsed
    """
    if EMPTY_ATTRIBUTE.search(search_filter):
        raise ValidationError('Not a valid LDAP search filter.')

    try:
        parse_filter(search_filter, None, True, False, None, False)
    except LDAPException:
        raise ValidationError('Not a valid LDAP search filter.')


class DirectoryConfigForm(Form):
    """Validation rules for an LDAP / Active Directory configuration"""

    server_host = StringField('Server Host', filters=[_strip],
                              validators=[DataRequired(), _text, Length(max=255)])
    server_port = PortField('Server Port', validators=[NumberRange(min=1, max=65535)])
    encryption_type = SelectField(
        'Encryption',
        choices=[
            (EncryptionType.NONE.value, 'None'),
            (EncryptionType.STARTTLS.value, 'StartTLS'),
            (EncryptionType.TLS.value, 'TLS'),
        ],
        filters=[_strip, _lower],
        validators=[DataRequired()]
    )
    base_dn = StringField('Base DN', filters=[_strip], validators=[DataRequired(), _text])
    bind_dn = StringField('Bind DN', filters=[_strip], validators=[DataRequired(), _text])
    bind_password = StringField('Bind Password', validators=[DataRequired(), _text])

    # Search filters
    user_filter = StringField('User Filter', filters=[_strip], validators=[DataRequired(), _text])
    group_filter = StringField('Group Filter', filters=[_strip], validators=[_text])

    # Attribute mappings
    attribute_user_rdn = StringField('User RDN Attribute', filters=[_strip],
                                     validators=[DataRequired(), _text])
    attribute_user_firstname = StringField('First Name Attribute', filters=[_strip],
                                           validators=[DataRequired(), _text])
    attribute_user_lastname = StringField('Last Name Attribute', filters=[_strip],
                                          validators=[DataRequired(), _text])
    attribute_user_email = StringField('Email Attribute', filters=[_strip],
                                       validators=[DataRequired(), _text])
    attribute_user_display_name = StringField('Display Name Attribute', filters=[_strip],
                                              validators=[_text])
    attribute_user_group_name = StringField('Group Name Attribute', filters=[_strip],
                                            validators=[_text])
    attribute_group_member = StringField('Group Member Attribute', filters=[_strip],
                                         validators=[_text])

    disable_logout = BooleanField('Disable Logout', default=False)
    default_permission_add_space = BooleanField('Default Permission Add Space', default=False)

    def validate_user_filter(self, field):
        check_search_filter(field.data)

    def validate_group_filter(self, field):
        if field.data:
            check_search_filter(field.data)

    def validate_attribute_group_member(self, field):
        if self.group_filter.data and not field.data:
            raise ValidationError('Required when a group filter is set.')

    def field_errors(self, wire_names):
        """
        Flatten form errors into FieldError objects.

        Args:
            wire_names: Mapping of form field name to the name used on the wire

        Returns:
            List of FieldError, one per message
        """
        errors = []
        for name, messages in self.errors.items():
            if name is None:
                continue
            for message in messages:
                errors.append(FieldError(wire_names.get(name, name), message))
        return errors
