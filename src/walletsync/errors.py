"""Error taxonomy shared by every backend and service.

Backends translate their library exceptions into these classes so the
orchestration layer only has to reason about four outcomes: bad input,
a retryable remote failure, a unique-key conflict, or a dead local store.
"""

from __future__ import annotations


class WalletSyncError(Exception):
    """Base class for all walletsync errors."""


class ValidationError(WalletSyncError):
    """Caller supplied invalid input. Raised before any I/O happens."""


class BackendError(WalletSyncError):
    """A remote persistence tier failed."""


class TransientBackendError(BackendError):
    """Network failure, timeout, 5xx, or driver operational error."""


class ConflictError(BackendError):
    """Unique-constraint violation on insert."""


class ProfileNotFoundError(WalletSyncError):
    """An explicit update targeted a wallet with no profile."""


class StorageUnavailableError(WalletSyncError):
    """The local fallback store could not be read or written."""


def require_wallet(wallet_address: str | None) -> str:
    """Return the wallet key, or raise ValidationError if it is missing or blank."""
    if wallet_address is None or not str(wallet_address).strip():
        msg = "wallet_address is required"
        raise ValidationError(msg)
    return wallet_address
