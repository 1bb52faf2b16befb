"""Sync exception hierarchy."""


class SyncError(RuntimeError):
    """Base class for sync failures."""


class SyncAlreadyRunningError(SyncError):
    """Raised when a pass is requested while another pass is active."""


class NoConnectivityError(SyncError):
    """Raised when a pass is requested while the network is down."""


class PayloadDecodeError(SyncError):
    """Raised when a queued payload cannot be turned into a mutation."""
