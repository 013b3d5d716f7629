"""
Error kinds returned by the authentication configuration core.

Every failure that reaches a caller is one of these classes. Messages are
safe to show to an administrator: they never carry bind credentials or raw
transport detail, which is logged server-side instead.
"""


class AuthConfigError(Exception):
    """Base class for all classified authentication configuration errors"""

    kind = 'AuthConfigError'
    status_code = 500
    default_message = 'Authentication configuration error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {
            'error': self.kind,
            'message': self.message,
        }

    def __repr__(self):
        return f"<{self.__class__.__name__} message={self.message!r}>"


class PermissionDenied(AuthConfigError):
    kind = 'PermissionDenied'
    status_code = 403
    default_message = 'You do not have permission to manage authentication settings.'


class NotFound(AuthConfigError):
    kind = 'NotFound'
    status_code = 404
    default_message = 'Tenant not found.'


class FieldError:
    """A single field-level validation problem"""

    def __init__(self, field, message):
        self.field = field
        self.message = message

    def to_dict(self):
        return {'field': self.field, 'message': self.message}

    def __eq__(self, other):
        if not isinstance(other, FieldError):
            return NotImplemented
        return self.field == other.field and self.message == other.message

    def __repr__(self):
        return f"<FieldError {self.field}: {self.message}>"


class ValidationError(AuthConfigError):
    """Structural problems with a configuration, addressable per field"""

    kind = 'ValidationError'
    status_code = 422
    default_message = 'Configuration is invalid.'

    def __init__(self, field_errors, message=None):
        self.field_errors = list(field_errors)
        super().__init__(message)

    @property
    def fields(self):
        return [error.field for error in self.field_errors]

    def to_dict(self):
        data = super().to_dict()
        data['fields'] = [error.to_dict() for error in self.field_errors]
        return data


class DirectoryError(AuthConfigError):
    """Failure during one phase of talking to a directory server"""

    status_code = 502
    phase = None


class ConnectError(DirectoryError):
    kind = 'ConnectError'
    phase = 'connect'
    default_message = 'Unable to connect to the directory server.'


class EncryptionError(DirectoryError):
    kind = 'EncryptionError'
    phase = 'encryption'
    default_message = 'Unable to establish an encrypted connection with the directory server.'


class AuthError(DirectoryError):
    kind = 'AuthError'
    phase = 'bind'
    status_code = 400
    default_message = 'The directory server rejected the bind credentials.'


class QueryError(DirectoryError):
    kind = 'QueryError'
    phase = 'search'
    status_code = 400
    default_message = 'The directory server rejected the search.'


class StoreWriteError(AuthConfigError):
    kind = 'StoreWriteError'
    status_code = 500
    default_message = 'Unable to save authentication configuration.'


class StoreReadError(AuthConfigError):
    kind = 'StoreReadError'
    status_code = 500
    default_message = 'Unable to read authentication configuration.'
