from __future__ import annotations


class SyncError(RuntimeError):
    """A sync pass could not start: nothing from the feed was processed."""


class FetchError(SyncError):
    pass


class FormatError(SyncError):
    pass


class StorageError(RuntimeError):
    def __init__(self, message: str, *, external_id: str | None = None) -> None:
        super().__init__(message)
        self.external_id = external_id
