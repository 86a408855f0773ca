"""
errors.py
=========
Error taxonomy for the live content cache.
None of these are fatal: the cache logs them, reports them to the error
callback and carries on with its last-known-good tree.
"""


class FileShareError(Exception):
    """Base class for every error raised by the file-share core."""


class MissingParent(FileShareError):
    """A watch event names a path whose parent folder is not in the tree."""

    def __init__(self, path: str, missing: str):
        super().__init__(f"parent folder {missing!r} of {path!r} is not in the tree")
        self.path = path
        self.missing = missing


class InvalidOperation(FileShareError):
    """The requested mutation is not allowed (e.g. removing the root)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{reason}: {path!r}")
        self.path = path
        self.reason = reason


class WatchFailure(FileShareError):
    """The filesystem watcher reported an error."""

    def __init__(self, cause):
        super().__init__(f"watch failure: {cause}")
        self.cause = cause


class ReadinessTimeout(FileShareError):
    """The initial scan did not finish before the reader gave up waiting."""
