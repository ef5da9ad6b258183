"""
Error types raised by the event store and search
"""


class StorageError(Exception):
    """The backing store failed (connectivity, constraint violation, ...).

    Always surfaced to the caller; nothing in this package retries.
    """


class ValidationError(ValueError):
    """An event was constructed with malformed data.

    Search conditions never raise this: bad paging, sorting or filters are
    normalized to defaults instead.
    """
