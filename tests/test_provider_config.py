import pytest

from authconsole.auth_config.errors import ValidationError
from authconsole.auth_providers import (
    PROVIDER_MAP, ActiveAuthConfig, DirectoryConfig, EncryptionType, ExternalIdPConfig,
    ProviderKind, parse_provider_config, validate_directory_config,
)

from conftest import BIND_PASSWORD, planet_express_config

REQUIRED_FIELDS = [
    'serverHost',
    'serverPort',
    'encryptionType',
    'baseDN',
    'bindDN',
    'bindPassword',
    'userFilter',
    'attributeUserRDN',
    'attributeUserFirstname',
    'attributeUserLastname',
    'attributeUserEmail',
]


def error_fields(data):
    return {error.field for error in validate_directory_config(data)}


def test_planet_express_config_is_valid() -> None:
    assert validate_directory_config(planet_express_config()) == []


@pytest.mark.parametrize('field', REQUIRED_FIELDS)
def test_missing_required_field_is_reported_alone(field) -> None:
    data = planet_express_config()
    del data[field]

    assert error_fields(data) == {field}


@pytest.mark.parametrize('field', ['serverHost', 'baseDN', 'bindDN', 'userFilter'])
def test_whitespace_only_value_counts_as_missing(field) -> None:
    assert error_fields(planet_express_config(**{field: '   '})) == {field}


@pytest.mark.parametrize('port', [0, -1, 65536, 'ldap', None, 389.7, True, '389.7'])
def test_port_out_of_range_is_rejected(port) -> None:
    assert error_fields(planet_express_config(serverPort=port)) == {'serverPort'}


@pytest.mark.parametrize('port', [1, 636, 65535, '389', 389.0])
def test_port_in_range_is_accepted(port) -> None:
    assert validate_directory_config(planet_express_config(serverPort=port)) == []


def test_unknown_encryption_type_is_rejected() -> None:
    assert error_fields(planet_express_config(encryptionType='ssl')) == {'encryptionType'}


@pytest.mark.parametrize('search_filter', [
    '(objectClassperson)',
    '(|(cn=fry)(cnleela))',
    '(=fry)',
    '(&(cn=fry)(~=leela))',
    '( >=5)',
])
def test_malformed_filters_are_rejected(search_filter) -> None:
    assert error_fields(planet_express_config(userFilter=search_filter)) == {'userFilter'}
    assert error_fields(planet_express_config(groupFilter=search_filter)) == {'groupFilter'}


def test_group_filter_requires_member_attribute() -> None:
    data = planet_express_config(attributeGroupMember='')

    assert error_fields(data) == {'attributeGroupMember'}


def test_group_filter_is_optional() -> None:
    data = planet_express_config(groupFilter='', attributeGroupMember='')

    assert validate_directory_config(data) == []


def test_non_string_host_is_rejected() -> None:
    assert error_fields(planet_express_config(serverHost=127001)) == {'serverHost'}


def test_every_problem_is_reported_at_once() -> None:
    data = planet_express_config(serverHost='', serverPort=70000, userFilter='(cnfry)')

    assert error_fields(data) == {'serverHost', 'serverPort', 'userFilter'}


def test_validation_leaves_config_untouched() -> None:
    config = DirectoryConfig.from_dict(planet_express_config(serverHost='  127.0.0.1 ', serverPort='389'))

    ok, errors = config.validate_config()

    assert ok and errors == []
    assert config.server_host == '  127.0.0.1 '
    assert config.server_port == '389'


def test_normalized_trims_and_coerces() -> None:
    config = DirectoryConfig.from_dict(planet_express_config(
        serverHost='  127.0.0.1 ', serverPort='389', encryptionType=' StartTLS ', bindPassword=' pw '))

    normalized = config.normalized()

    assert normalized.server_host == '127.0.0.1'
    assert normalized.server_port == 389
    assert normalized.encryption_type is EncryptionType.STARTTLS
    # Passwords are taken verbatim
    assert normalized.bind_password == ' pw '


def test_normalized_raises_with_field_errors() -> None:
    config = DirectoryConfig.from_dict(planet_express_config(baseDN=''))

    with pytest.raises(ValidationError) as excinfo:
        config.normalized()

    assert excinfo.value.fields == ['baseDN']
    assert excinfo.value.status_code == 422


def test_pascal_case_keys_are_accepted() -> None:
    pascal = {key[:1].upper() + key[1:]: value for key, value in planet_express_config().items()}

    config = DirectoryConfig.from_dict(pascal)

    assert config == DirectoryConfig.from_dict(planet_express_config())
    assert config.base_dn == 'ou=people,dc=planetexpress,dc=com'


def test_unknown_keys_are_ignored() -> None:
    config = DirectoryConfig.from_dict(planet_express_config(favouriteShip='Planet Express Ship'))

    assert 'favouriteShip' not in config.to_dict()


def test_to_dict_uses_wire_keys() -> None:
    data = DirectoryConfig.from_dict(planet_express_config()).to_dict()

    assert data['bindDN'] == 'cn=admin,dc=planetexpress,dc=com'
    assert data['disableLogout'] is False
    assert data['defaultPermissionAddSpace'] is False


def test_masked_output_never_contains_the_password() -> None:
    config = DirectoryConfig.from_dict(planet_express_config())

    assert config.to_dict(mask_secrets=True)['bindPassword'] == ''
    assert BIND_PASSWORD not in repr(config)
    assert BIND_PASSWORD not in repr(ActiveAuthConfig(ProviderKind.DIRECTORY, config))


def test_requested_attributes_follow_mappings() -> None:
    config = DirectoryConfig.from_dict(planet_express_config(attributeUserDisplayName='displayName'))

    assert config.get_user_filter_attributes() == ['cn', 'uid', 'givenName', 'sn', 'mail', 'displayName']
    assert config.get_group_filter_attributes() == ['cn', 'member']


def test_merge_secrets_only_for_same_directory() -> None:
    stored = DirectoryConfig.from_dict(planet_express_config())

    same = DirectoryConfig.from_dict(planet_express_config(bindPassword='', bindDN='CN=Admin,dc=planetexpress,dc=com'))
    same.merge_secrets(stored)
    assert same.bind_password == BIND_PASSWORD

    moved = DirectoryConfig.from_dict(planet_express_config(bindPassword='', serverHost='ldap.momcorp.com'))
    moved.merge_secrets(stored)
    assert moved.bind_password == ''


def test_every_provider_kind_has_a_payload_mapping() -> None:
    assert set(PROVIDER_MAP) == set(ProviderKind)


@pytest.mark.parametrize('kind, payload, expected', [
    ('internal', None, type(None)),
    ('ldap', planet_express_config(), DirectoryConfig),
    ('keycloak', {'url': 'https://sso.planetexpress.com', 'realm': 'crew'}, ExternalIdPConfig),
])
def test_parse_provider_config(kind, payload, expected) -> None:
    active = parse_provider_config(kind, payload)

    assert active.provider_kind == ProviderKind(kind)
    assert isinstance(active.payload, expected)


def test_unknown_provider_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_provider_config('saml', {})

    assert excinfo.value.fields == ['authProvider']


@pytest.mark.parametrize('kind, payload', [
    ('internal', {'serverHost': 'x'}),
    ('ldap', None),
    ('ldap', ['serverHost']),
    ('keycloak', 'https://sso.planetexpress.com'),
])
def test_payload_shape_must_match_provider(kind, payload) -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_provider_config(kind, payload)

    assert excinfo.value.fields == ['authConfig']


def test_external_idp_masks_secret_keys() -> None:
    config = ExternalIdPConfig.from_dict({
        'url': 'https://sso.planetexpress.com',
        'realm': 'crew',
        'clientSecret': 'shhh',
        'adminPassword': 'hunter2',
    })

    masked = config.to_dict(mask_secrets=True)

    assert masked['clientSecret'] == ''
    assert masked['adminPassword'] == ''
    assert masked['realm'] == 'crew'
    assert config.to_dict()['clientSecret'] == 'shhh'


def test_external_idp_keeps_blank_secrets() -> None:
    stored = ExternalIdPConfig.from_dict({'realm': 'crew', 'clientSecret': 'shhh'})
    update = ExternalIdPConfig.from_dict({'realm': 'officers', 'clientSecret': ''})

    update.merge_secrets(stored)

    assert update.to_dict() == {'realm': 'officers', 'clientSecret': 'shhh'}


def test_active_config_wire_form() -> None:
    assert ActiveAuthConfig.default().to_dict() == {
        'authProvider': 'internal',
        'authConfig': None,
        'revision': 0,
    }
