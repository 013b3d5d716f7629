"""
Administrator operations on a tenant's authentication configuration.

Every operation takes the calling user explicitly and refuses anyone who is
not an administrator of the tenant involved.
"""

import logging

from authconsole.auth_config.errors import DirectoryError, PermissionDenied
from authconsole.auth_providers import DirectoryConfig

logger = logging.getLogger(__name__)


class AuthConfigService:
    """Fetch, preview and save tenant authentication configuration"""

    def __init__(self, store, preview_engine):
        """
        Initialize the service.

        Args:
            store: ConfigStore holding the active configuration records
            preview_engine: DirectoryPreviewEngine used for directory checks
        """
        self.store = store
        self.preview_engine = preview_engine
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def _require_admin(self, caller, tenant_id):
        if caller is None or not getattr(caller, 'is_authenticated', False):
            self.logger.warning(f"Unauthenticated access to auth config of tenant {tenant_id}")
            raise PermissionDenied()

        if not caller.is_tenant_admin(tenant_id):
            self.logger.warning(f"User {getattr(caller, 'username', caller)} denied access to "
                                f"auth config of tenant {tenant_id}")
            raise PermissionDenied()

    def get_active_config(self, caller, tenant_id):
        """
        Get the authentication configuration in effect for a tenant.

        Args:
            caller: User making the request
            tenant_id: Tenant whose configuration is requested

        Returns:
            ActiveAuthConfig

        Raises:
            PermissionDenied: If caller does not administer the tenant
            NotFound: If the tenant does not exist
        """
        self._require_admin(caller, tenant_id)
        return self.store.get_active_config(tenant_id)

    def preview_directory(self, caller, candidate, tenant_id=None, deadline=None):
        """
        Test a candidate directory configuration against its server.

        Nothing is saved, so this can be repeated freely, including against
        the configuration currently in effect. A blank bind password is taken
        from the stored configuration when the candidate targets the same
        server and bind account.

        Args:
            caller: User making the request
            candidate: DirectoryConfig to test
            tenant_id: Tenant the candidate belongs to, defaults to the caller's
            deadline: Optional Deadline bounding the whole call

        Returns:
            PreviewResult

        Raises:
            PermissionDenied: If caller does not administer the tenant
            ValidationError, ConnectError, EncryptionError, AuthError, QueryError
        """
        if tenant_id is None:
            tenant_id = getattr(caller, 'tenant_id', None)
        self._require_admin(caller, tenant_id)

        candidate = DirectoryConfig.from_dict(candidate.to_dict())
        if not candidate.bind_password:
            current = self.store.get_active_config(tenant_id)
            if isinstance(current.payload, DirectoryConfig):
                candidate.merge_secrets(current.payload)

        self.logger.info(f"User {caller.username} previewing directory {candidate.address} "
                         f"for tenant {tenant_id}")
        return self.preview_engine.preview(candidate, deadline)

    def save_config(self, caller, tenant_id, active_config, acknowledge_unverified=False, deadline=None):
        """
        Make a configuration the tenant's active one.

        Structural validity is required. A directory configuration is also
        previewed first; if the preview fails the save is refused with the
        preview's error unless acknowledge_unverified is set, which lets an
        administrator save while the directory is temporarily unreachable.

        Args:
            caller: User making the request
            tenant_id: Tenant to update
            active_config: ActiveAuthConfig to persist
            acknowledge_unverified: Save even if the directory preview fails
            deadline: Optional Deadline for the preview

        Returns:
            The saved ActiveAuthConfig
        """
        self._require_admin(caller, tenant_id)

        current = self.store.get_active_config(tenant_id)
        payload = active_config.payload
        if payload is not None and type(payload) is type(current.payload):
            payload.merge_secrets(current.payload)

        if isinstance(payload, DirectoryConfig):
            # ValidationError is never bypassed, whatever the acknowledgment
            payload.normalized()
            try:
                self.preview_engine.preview(payload, deadline)
            except DirectoryError as e:
                if not acknowledge_unverified:
                    raise
                self.logger.warning(f"User {caller.username} saving unverified directory config for "
                                    f"tenant {tenant_id} ({e.kind})")

        saved = self.store.save_config(tenant_id, active_config)
        self.logger.info(f"User {caller.username} saved {saved.provider_kind.value} auth config "
                         f"for tenant {tenant_id}")
        return saved
