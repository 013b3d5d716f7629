"""
LDAP Directory Preview

Tests a candidate directory configuration against the live server before it
is saved: connect, secure the channel, bind with the configured account and
run the user and group filters. Members of the matched groups are read as
users too, and users from both sources are merged by email address. The
result reports counts and a bounded sample of what the filters matched.
Nothing is persisted and no credentials outlive the call.
"""

import logging
import re
import ssl
import threading
import time

from ldap3 import Server, Connection, Tls, NONE, BASE, SUBTREE
from ldap3.core.exceptions import LDAPException, LDAPCommunicationError
from ldap3.core.results import (
    RESULT_SUCCESS, RESULT_TIME_LIMIT_EXCEEDED, RESULT_SIZE_LIMIT_EXCEEDED,
    RESULT_NO_SUCH_OBJECT, RESULT_INVALID_CREDENTIALS,
)
from pyasn1.error import PyAsn1Error

from authconsole.auth_config.errors import (
    ConnectError, EncryptionError, AuthError, QueryError,
)
from authconsole.auth_providers.base import EncryptionType

logger = logging.getLogger(__name__)

# Anything the transport can raise while talking to the server, including
# undecodable (truncated or garbled) responses.
TRANSPORT_ERRORS = (LDAPException, OSError, PyAsn1Error)

PARTIAL_RESULTS = (RESULT_TIME_LIMIT_EXCEEDED, RESULT_SIZE_LIMIT_EXCEEDED)

# Simple Paged Results control (RFC 2696)
PAGED_RESULTS_CONTROL = '1.2.840.113556.1.4.319'

REDACTED = '********'

# Shorter secrets are only redacted where they stand alone
MIN_SUBSTRING_SECRET = 6

MISSING_NAME = 'Empty'


def redact(text, secret):
    """Remove occurrences of secret from text"""
    text = str(text)
    if not secret:
        return text
    if len(secret) >= MIN_SUBSTRING_SECRET:
        return text.replace(secret, REDACTED)
    return re.sub(rf'(?<!\w){re.escape(secret)}(?!\w)', REDACTED, text)


def _is_tls_failure(exc):
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(exc, ssl.SSLError):
            return True
        message = str(exc).lower()
        if 'ssl' in message or 'certificate' in message or 'tls' in message:
            return True
        exc = exc.__cause__ or exc.__context__
    return False


def _first_value(attributes, name):
    """Return the first value of an attribute as text, or an empty string"""
    if not name or not attributes:
        return ''

    try:
        value = attributes.get(name)
    except (KeyError, TypeError):
        return ''

    if isinstance(value, (list, tuple)):
        value = value[0] if value else ''
    if value is None:
        return ''
    if isinstance(value, bytes):
        value = value.decode('utf-8', errors='replace')
    return str(value).strip()


def _all_values(attributes, name):
    if not name or not attributes:
        return []

    try:
        values = attributes.get(name)
    except (KeyError, TypeError):
        return []

    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        values = [values]

    result = []
    for value in values:
        if isinstance(value, bytes):
            value = value.decode('utf-8', errors='replace')
        value = str(value).strip()
        if value:
            result.append(value)
    return result


def _entries(response):
    for entry in response or []:
        if isinstance(entry, dict) and entry.get('type') == 'searchResEntry':
            yield entry


def _paged_cookie(result):
    try:
        return result['controls'][PAGED_RESULTS_CONTROL]['value']['cookie']
    except (KeyError, TypeError):
        return None


def _normalize_dn(dn):
    return ','.join(part.strip() for part in str(dn).lower().split(','))


class Deadline:
    """
    Time budget for one preview call.

    A deadline expires after a number of seconds or when cancelled, for
    example because the requesting client went away.
    """

    def __init__(self, seconds=None, cancel_event=None):
        self.expires_at = time.monotonic() + seconds if seconds else None
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self):
        self.cancel_event.set()

    @property
    def cancelled(self):
        return self.cancel_event.is_set()

    def remaining(self):
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self):
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def bound(self, timeout):
        """Shrink a phase timeout so it never outlives the deadline"""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return max(0.1, min(timeout, remaining))


class PreviewResult:
    """Outcome of a successful directory preview"""

    def __init__(self, user_count=0, group_count=0, sample_users=None, sample_groups=None,
                 group_member_count=0, truncated=False):
        self.user_count = user_count
        self.group_count = group_count
        self.sample_users = sample_users or []
        self.sample_groups = sample_groups or []
        self.group_member_count = group_member_count
        self.truncated = truncated

    @property
    def message(self):
        more = 'at least ' if self.truncated else ''
        return (f"Connected to directory, found {more}{self.user_count} users "
                f"and {more}{self.group_count} groups")

    def to_dict(self):
        return {
            'userCount': self.user_count,
            'groupCount': self.group_count,
            'groupMemberCount': self.group_member_count,
            'sampleUsers': self.sample_users,
            'sampleGroups': self.sample_groups,
            'truncated': self.truncated,
            'message': self.message,
        }

    def __repr__(self):
        return f"<PreviewResult users={self.user_count} groups={self.group_count} truncated={self.truncated}>"


class DirectoryPreviewEngine:
    """Runs candidate directory configurations against their server"""

    def __init__(self, connect_timeout=5, receive_timeout=10, search_time_limit=15,
                 preview_timeout=45, sample_size=100, page_size=500, tls_validate=True,
                 connection_factory=None):
        """
        Initialize the preview engine.

        Args:
            connect_timeout: Seconds allowed to open the TCP (or TLS) connection
            receive_timeout: Seconds to wait for any single server response
            search_time_limit: Server-side time limit for each search page, in seconds
            preview_timeout: Overall budget for one preview call
            sample_size: Maximum number of users and groups returned as samples
            page_size: Entries requested per page of a paged search
            tls_validate: Require a valid server certificate for StartTLS and TLS
            connection_factory: Callable (config, connect_timeout, receive_timeout)
                returning an unopened ldap3 Connection
        """
        self.connect_timeout = connect_timeout
        self.receive_timeout = receive_timeout
        self.search_time_limit = search_time_limit
        self.preview_timeout = preview_timeout
        self.sample_size = sample_size
        self.page_size = page_size
        self.tls_validate = tls_validate
        self.connection_factory = connection_factory or self.create_connection
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @classmethod
    def from_config(cls, config, connection_factory=None):
        """Build an engine from a Flask config mapping"""
        return cls(
            connect_timeout=config.get('LDAP_CONNECT_TIMEOUT', 5),
            receive_timeout=config.get('LDAP_RECEIVE_TIMEOUT', 10),
            search_time_limit=config.get('LDAP_SEARCH_TIME_LIMIT', 15),
            preview_timeout=config.get('LDAP_PREVIEW_TIMEOUT', 45),
            sample_size=config.get('LDAP_PREVIEW_SAMPLE_SIZE', 100),
            page_size=config.get('LDAP_SEARCH_PAGE_SIZE', 500),
            tls_validate=config.get('LDAP_TLS_VALIDATE', True),
            connection_factory=connection_factory,
        )

    def create_connection(self, config, connect_timeout, receive_timeout):
        """
        Build an unopened, read-only ldap3 connection for a configuration.

        Args:
            config: Normalized DirectoryConfig
            connect_timeout: Seconds allowed for the socket connect
            receive_timeout: Seconds allowed for each response

        Returns:
            ldap3 Connection
        """
        tls = None
        if config.encryption_type != EncryptionType.NONE:
            tls = Tls(validate=ssl.CERT_REQUIRED if self.tls_validate else ssl.CERT_NONE)

        server = Server(
            config.server_host,
            port=config.server_port,
            use_ssl=config.encryption_type == EncryptionType.TLS,
            tls=tls,
            get_info=NONE,
            connect_timeout=connect_timeout,
        )

        return Connection(
            server,
            user=config.bind_dn,
            password=config.bind_password,
            receive_timeout=receive_timeout,
            read_only=True,
            raise_exceptions=False,
        )

    def preview(self, candidate, deadline=None):
        """
        Test a candidate configuration against its directory server.

        Args:
            candidate: DirectoryConfig to test; never stored
            deadline: Optional Deadline; defaults to the engine's preview timeout

        Returns:
            PreviewResult with counts and samples

        Raises:
            ValidationError: Structurally invalid candidate, no connection attempted
            ConnectError: Server unreachable, refused or timed out
            EncryptionError: StartTLS or TLS negotiation failed
            AuthError: Bind rejected
            QueryError: User or group search rejected
        """
        config = candidate.normalized()
        deadline = deadline or Deadline(self.preview_timeout)

        self.logger.info(f"Previewing directory {config.address} (encryption: {config.encryption_type})")

        conn = None
        try:
            self._check_deadline(deadline, ConnectError, config)
            try:
                conn = self.connection_factory(
                    config,
                    deadline.bound(self.connect_timeout),
                    deadline.bound(self.receive_timeout),
                )
                conn.open(read_server_info=False)
            except TRANSPORT_ERRORS as e:
                if config.encryption_type == EncryptionType.TLS and _is_tls_failure(e):
                    raise self._fail(EncryptionError, config, e,
                                     f"TLS negotiation with {config.address} failed.")
                raise self._fail(ConnectError, config, e,
                                 f"Unable to connect to directory server {config.address}.")

            self._start_tls(conn, config, deadline)
            self._bind(conn, config, deadline)

            tally = DirectoryTally(config, self.sample_size)
            truncated = self._search(conn, config, config.user_filter,
                                     config.get_user_filter_attributes(), deadline, tally.add_user)

            if config.group_filter:
                truncated = self._search(conn, config, config.group_filter,
                                         config.get_group_filter_attributes(), deadline,
                                         tally.add_group) or truncated
                self._resolve_members(conn, config, tally, deadline)

            result = tally.result(truncated)
            self.logger.info(f"Directory preview of {config.address}: {result.message}")
            return result

        finally:
            if conn is not None:
                self._release(conn, config)

    def _start_tls(self, conn, config, deadline):
        if config.encryption_type != EncryptionType.STARTTLS:
            return

        self._check_deadline(deadline, EncryptionError, config)
        try:
            upgraded = conn.start_tls(read_server_info=False)
        except TRANSPORT_ERRORS as e:
            raise self._fail(EncryptionError, config, e,
                             f"StartTLS negotiation with {config.address} failed.")

        if not upgraded:
            raise self._fail(EncryptionError, config, conn.result,
                             f"The directory server {config.address} refused StartTLS.")

    def _bind(self, conn, config, deadline):
        self._check_deadline(deadline, AuthError, config)
        try:
            bound = conn.bind(read_server_info=False)
        except LDAPCommunicationError as e:
            raise self._fail(ConnectError, config, e,
                             f"Connection to {config.address} was lost during bind.")
        except TRANSPORT_ERRORS as e:
            raise self._fail(AuthError, config, e,
                             f"Unable to bind to {config.address} as {config.bind_dn}.")

        if bound:
            return

        result = conn.result or {}
        if result.get('result') == RESULT_INVALID_CREDENTIALS:
            message = f"The directory server rejected the credentials for {config.bind_dn}."
        else:
            message = f"Bind as {config.bind_dn} failed: {result.get('description', 'unknown error')}."
        raise self._fail(AuthError, config, result, message)

    def _search(self, conn, config, search_filter, attributes, deadline, consume):
        """
        Run one paged subtree search under the base DN.

        Entries are handed to consume page by page, so memory stays bounded
        by the page size whatever the size of the directory.

        Returns:
            True if the server cut the results short (size or time limit)
        """
        cookie = None
        while True:
            self._check_deadline(deadline, QueryError, config)
            time_limit = max(1, int(deadline.bound(self.search_time_limit)))

            try:
                conn.search(
                    search_base=config.base_dn,
                    search_filter=search_filter,
                    search_scope=SUBTREE,
                    attributes=attributes,
                    time_limit=time_limit,
                    paged_size=self.page_size,
                    paged_cookie=cookie,
                )
            except LDAPCommunicationError as e:
                raise self._fail(ConnectError, config, e,
                                 f"Connection to {config.address} was lost during search.")
            except TRANSPORT_ERRORS as e:
                raise self._fail(QueryError, config, e,
                                 f"Search with filter {search_filter} failed.")

            result = conn.result or {}
            code = result.get('result')

            if code == RESULT_NO_SUCH_OBJECT:
                raise self._fail(QueryError, config, result,
                                 f"Base DN {config.base_dn} was not found on the directory server.")
            if code != RESULT_SUCCESS and code not in PARTIAL_RESULTS:
                raise self._fail(QueryError, config, result,
                                 f"Search with filter {search_filter} failed: "
                                 f"{result.get('description', 'unknown error')}.")

            for entry in _entries(conn.response):
                consume(entry)

            if code in PARTIAL_RESULTS:
                self.logger.warning(f"Search on {config.address} returned partial results: "
                                    f"{result.get('description')}")
                return True

            cookie = _paged_cookie(result)
            if not cookie:
                return False

    def _resolve_members(self, conn, config, tally, deadline):
        """Read group members the user filter did not match and count them as users"""
        attributes = config.get_user_filter_attributes()
        for member_dn in tally.unresolved_members():
            entry = self._lookup_member(conn, config, member_dn, attributes, deadline)
            if entry is not None:
                tally.add_user(entry)

    def _lookup_member(self, conn, config, member_dn, attributes, deadline):
        """
        Read one group member's entry.

        Returns:
            The entry, or None if the member does not exist or cannot be read
        """
        self._check_deadline(deadline, QueryError, config)
        time_limit = max(1, int(deadline.bound(self.search_time_limit)))

        try:
            conn.search(
                search_base=member_dn,
                search_filter='(objectClass=*)',
                search_scope=BASE,
                attributes=attributes,
                time_limit=time_limit,
            )
        except (LDAPCommunicationError, OSError) as e:
            raise self._fail(ConnectError, config, e,
                             f"Connection to {config.address} was lost while reading group members.")
        except PyAsn1Error as e:
            raise self._fail(QueryError, config, e,
                             f"Reading group member {member_dn} failed.")
        except LDAPException as e:
            self.logger.debug(f"Skipping group member {member_dn}: {redact(e, config.bind_password)}")
            return None

        result = conn.result or {}
        if result.get('result') != RESULT_SUCCESS:
            self.logger.debug(f"Skipping group member {member_dn}: {result.get('description')}")
            return None

        return next(_entries(conn.response), None)

    @staticmethod
    def extract_user(config, entry):
        """
        Build a user record from search result attributes.

        When first or last name is missing the display name, if mapped and
        present, is split to fill them in. Names still missing are reported
        as "Empty".
        """
        attributes = entry.get('attributes') or {}

        firstname = _first_value(attributes, config.attribute_user_firstname)
        lastname = _first_value(attributes, config.attribute_user_lastname)

        display_name = _first_value(attributes, config.attribute_user_display_name)
        if (not firstname or not lastname) and display_name:
            parts = display_name.split(None, 1)
            if not firstname:
                firstname = parts[0]
            if not lastname and len(parts) > 1:
                lastname = parts[1]

        return {
            'dn': entry.get('dn', ''),
            'remoteId': _first_value(attributes, config.attribute_user_rdn),
            'cn': _first_value(attributes, 'cn'),
            'firstname': firstname or MISSING_NAME,
            'lastname': lastname or MISSING_NAME,
            'email': _first_value(attributes, config.attribute_user_email).lower(),
        }

    def _check_deadline(self, deadline, error_class, config):
        if deadline.cancelled:
            raise self._fail(error_class, config, 'cancelled by caller',
                             f"Directory preview of {config.address} was cancelled.")
        if deadline.expired:
            raise self._fail(error_class, config, 'preview deadline expired',
                             f"Directory preview of {config.address} timed out.")

    def _fail(self, error_class, config, detail, message):
        """
        Log the transport detail server-side and build the caller-facing error.

        The bind password is scrubbed from both.
        """
        secret = config.bind_password
        self.logger.error(f"Directory preview {error_class.phase} phase failed for {config.address}: "
                          f"{redact(detail, secret)}")
        return error_class(redact(message, secret))

    def _release(self, conn, config):
        try:
            conn.unbind()
        except TRANSPORT_ERRORS as e:
            self.logger.warning(f"Error closing connection to {config.address}: {redact(e, config.bind_password)}")


class DirectoryTally:
    """
    Running counts and samples for one preview call.

    Users are keyed by lower-cased email: the same person reached through
    the user filter and through a group counts once, and entries without an
    email address are not counted.
    """

    def __init__(self, config, sample_size):
        self.config = config
        self.sample_size = sample_size
        self.user_dns = set()
        self.emails = set()
        self.user_count = 0
        self.sample_users = []
        self.members = {}
        self.group_count = 0
        self.sample_groups = []

    def add_user(self, entry):
        self.user_dns.add(_normalize_dn(entry.get('dn', '')))

        user = DirectoryPreviewEngine.extract_user(self.config, entry)
        if not user['email'] or user['email'] in self.emails:
            return

        self.emails.add(user['email'])
        self.user_count += 1
        if len(self.sample_users) < self.sample_size:
            self.sample_users.append(user)

    def add_group(self, entry):
        attributes = entry.get('attributes') or {}
        group_members = _all_values(attributes, self.config.attribute_group_member)
        for member in group_members:
            self.members.setdefault(_normalize_dn(member), member)

        self.group_count += 1
        if len(self.sample_groups) < self.sample_size:
            self.sample_groups.append({
                'dn': entry.get('dn', ''),
                'name': _first_value(attributes, 'cn'),
                'memberCount': len(group_members),
            })

    def unresolved_members(self):
        """Member DNs under the base DN that no user search has returned yet"""
        base = _normalize_dn(self.config.base_dn)
        return [member for key, member in self.members.items()
                if key not in self.user_dns and (key == base or key.endswith(',' + base))]

    def result(self, truncated):
        return PreviewResult(
            user_count=self.user_count,
            group_count=self.group_count,
            sample_users=self.sample_users,
            sample_groups=self.sample_groups,
            group_member_count=len(self.members),
            truncated=truncated,
        )
