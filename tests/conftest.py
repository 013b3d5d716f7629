from unittest.mock import MagicMock

import pytest
from ldap3 import Server, Connection, MOCK_SYNC, NONE

from authconsole import create_app, db
from authconsole.models import User
from config import TestConfig

BASE_DN = 'ou=people,dc=planetexpress,dc=com'
BIND_DN = 'cn=admin,dc=planetexpress,dc=com'
BIND_PASSWORD = 'GoodNewsEveryone'


def person(uid, given_name, surname, mail):
    return (f'uid={uid},{BASE_DN}', {
        'objectClass': ['inetOrgPerson', 'person', 'top'],
        'uid': uid,
        'cn': f'{given_name} {surname}',
        'givenName': given_name,
        'sn': surname,
        'mail': mail,
    })


DIRECTORY_ENTRIES = [
    (BIND_DN, {
        'objectClass': ['simpleSecurityObject', 'organizationalRole'],
        'cn': 'admin',
        'userPassword': BIND_PASSWORD,
    }),
    (BASE_DN, {
        'objectClass': ['organizationalUnit', 'top'],
        'ou': 'people',
    }),
    person('professor', 'Hubert', 'Farnsworth', 'professor@planetexpress.com'),
    person('fry', 'Philip', 'Fry', 'Fry@PlanetExpress.com'),
    person('leela', 'Turanga', 'Leela', 'leela@planetexpress.com'),
    person('hermes', 'Hermes', 'Conrad', 'hermes@planetexpress.com'),
    (f'cn=ship_crew,{BASE_DN}', {
        'objectClass': ['group', 'top'],
        'cn': 'ship_crew',
        'member': [
            f'uid=fry,{BASE_DN}',
            f'uid=leela,{BASE_DN}',
            f'uid=professor,{BASE_DN}',
        ],
    }),
    (f'cn=admin_staff,{BASE_DN}', {
        'objectClass': ['group', 'top'],
        'cn': 'admin_staff',
        'member': [
            f'uid=professor,{BASE_DN}',
            f'uid=hermes,{BASE_DN}',
        ],
    }),
]


def planet_express_config(**overrides):
    """Wire form of the Planet Express test directory configuration"""
    config = {
        'serverHost': '127.0.0.1',
        'serverPort': 389,
        'encryptionType': 'starttls',
        'baseDN': BASE_DN,
        'bindDN': BIND_DN,
        'bindPassword': BIND_PASSWORD,
        'userFilter': '(|(objectClass=person)(objectClass=user)(objectClass=inetOrgPerson))',
        'groupFilter': '(&(objectClass=group)(|(cn=ship_crew)(cn=admin_staff)))',
        'attributeUserRDN': 'uid',
        'attributeUserFirstname': 'givenName',
        'attributeUserLastname': 'sn',
        'attributeUserEmail': 'mail',
        'attributeUserDisplayName': '',
        'attributeUserGroupName': '',
        'attributeGroupMember': 'member',
    }
    config.update(overrides)
    return config


class MockDirectory:
    """
    Connection factory backed by ldap3's mock strategy.

    Every connection shares the same in-memory directory. StartTLS has no
    meaning for the mock, so upgrades are reported as successful.
    """

    def __init__(self, entries=DIRECTORY_ENTRIES):
        self.server = Server('planetexpress', get_info=NONE)
        loader = Connection(self.server, client_strategy=MOCK_SYNC)
        for dn, attributes in entries:
            loader.strategy.add_entry(dn, attributes)
        self.connections = []
        self.timeouts = []

    def __call__(self, config, connect_timeout, receive_timeout):
        self.timeouts.append((connect_timeout, receive_timeout))
        conn = Connection(
            self.server,
            user=config.bind_dn,
            password=config.bind_password,
            client_strategy=MOCK_SYNC,
            read_only=True,
            raise_exceptions=False,
        )
        conn.start_tls = MagicMock(return_value=True)
        self.connections.append(conn)
        return conn


def mock_connection(**attributes):
    """A connection double whose every phase succeeds unless overridden"""
    conn = MagicMock()
    conn.open.return_value = None
    conn.start_tls.return_value = True
    conn.bind.return_value = True
    conn.search.return_value = True
    conn.result = {'result': 0, 'description': 'success'}
    conn.response = []
    for name, value in attributes.items():
        setattr(conn, name, value)
    return conn


@pytest.fixture
def mock_directory():
    return MockDirectory()


@pytest.fixture
def app(mock_directory):
    app = create_app(TestConfig, connection_factory=mock_directory)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions['auth_config']


@pytest.fixture
def store(service):
    return service.store


@pytest.fixture
def tenant(store):
    return store.provision_tenant('planetexpress')


@pytest.fixture
def other_tenant(store):
    return store.provision_tenant('momcorp')


def make_user(tenant, username, is_admin):
    user = User(username=username, tenant_id=tenant.id, is_admin=is_admin)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin_user(tenant):
    return make_user(tenant, 'hermes', is_admin=True)


@pytest.fixture
def regular_user(tenant):
    return make_user(tenant, 'fry', is_admin=False)


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as session:
            session['_user_id'] = str(user.id)
            session['_fresh'] = True
    return _login
