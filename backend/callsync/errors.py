"""Exception types raised across the webhook pipeline."""


class CallSyncError(Exception):
    """Base class for request-scoped failures."""


class AuthError(CallSyncError):
    """The inbound webhook could not be authenticated."""


class ConfigError(CallSyncError):
    """Operator-supplied credentials are missing."""


class StoreError(CallSyncError):
    """A database round trip failed."""
