from __future__ import annotations


class EavError(RuntimeError):
    """Base class for staging store and export failures."""


class PreconditionError(EavError):
    """An attribute write was attempted with no entity to attach it to."""


class ResourceError(EavError):
    """A file or connection could not be opened, created or removed."""


class QueryError(EavError):
    """A store statement failed to prepare, execute or read."""
