import os


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'change-me-in-production'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///authconsole.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fernet key for provider configuration stored at rest.
    # Must stay fixed across restarts or stored configurations become unreadable.
    CRYPTO_KEY = os.environ.get('CRYPTO_KEY') or b'ZGV2LW9ubHktY3J5cHRvLWtleS1jaGFuZ2UtbWUtMDA='

    # Directory preview limits (seconds)
    LDAP_CONNECT_TIMEOUT = int(os.environ.get('LDAP_CONNECT_TIMEOUT', 5))
    LDAP_RECEIVE_TIMEOUT = int(os.environ.get('LDAP_RECEIVE_TIMEOUT', 10))
    LDAP_SEARCH_TIME_LIMIT = int(os.environ.get('LDAP_SEARCH_TIME_LIMIT', 15))
    LDAP_PREVIEW_TIMEOUT = int(os.environ.get('LDAP_PREVIEW_TIMEOUT', 45))
    LDAP_PREVIEW_SAMPLE_SIZE = int(os.environ.get('LDAP_PREVIEW_SAMPLE_SIZE', 100))
    LDAP_SEARCH_PAGE_SIZE = int(os.environ.get('LDAP_SEARCH_PAGE_SIZE', 500))
    LDAP_TLS_VALIDATE = _env_flag('LDAP_TLS_VALIDATE', True)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    CRYPTO_KEY = b'ZmVybmV0LWtleS1mb3ItdGVzdHMtb25seS0wMDAwMDA='
    LDAP_CONNECT_TIMEOUT = 1
    LDAP_RECEIVE_TIMEOUT = 1
    LDAP_PREVIEW_TIMEOUT = 5
