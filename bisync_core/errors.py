from __future__ import annotations


class BisyncError(RuntimeError):
    """Base exception for analysis cache synchronization failures."""


class TranslationCallFailure(BisyncError):
    """Raised when a translate call rejects or returns malformed output.

    The pass that issued the call is aborted as a whole; the caller keeps
    using the record and cache it held before the pass.
    """


class SchemaMismatch(BisyncError):
    """Raised when a section does not carry its fixed field set."""


class ConcurrentEditConflict(BisyncError):
    """Raised when a field edit starts while another field is being edited."""
