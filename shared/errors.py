"""Error taxonomy shared by the cache, blob store and sync managers."""


class SyncError(Exception):
    """Base class for errors surfaced by remote-touching operations."""


class NetworkError(SyncError):
    """A remote call failed. Transient; the caller may retry or revert."""


class NotFoundError(SyncError):
    """The referenced document or blob does not exist remotely."""


class LimitExceededError(SyncError):
    """A photo or comment cap was reached. Not retryable."""


class ValidationError(SyncError):
    """Malformed input, such as a missing id before an update."""


class ResolutionError(SyncError):
    """A legacy blob URL could not be mapped to a storage key."""
