"""Typed failures raised by the storage core."""


class SharepadError(Exception):
    """Base class for storage core errors."""


class InvalidArgumentError(SharepadError):
    """A required field is missing or out of range."""


class NotFoundError(SharepadError):
    """Unknown file, version or upload session."""


class InvalidStateError(SharepadError):
    """The operation is not allowed in the current state (e.g. incomplete upload)."""


class MissingDataError(SharepadError):
    """A buffered chunk vanished between receipt and completion."""


class StorageIOError(SharepadError):
    """Disk error while reading, writing or copying."""
