class TaskValidationError(ValueError):
    """Rejected input, detected before any store access."""


class StoreError(Exception):
    """The record store failed to complete an operation."""


class CacheError(Exception):
    """The fast-path cache failed to complete an operation."""
