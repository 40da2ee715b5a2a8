"""Custom exceptions for feedsieve."""

from typing import Any, Optional


class FeedSieveError(Exception):
    """Base exception for feedsieve."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ExtractionAbstain(FeedSieveError):
    """
    A mandatory field (the title) could not be located by any strategy.

    Not an error from the pipeline's point of view: the item is marked
    processed and never classified.
    """

    def __init__(
        self,
        field: str,
        item_key: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        message = f"No strategy located mandatory field '{field}'"
        if item_key:
            message += f" (item={item_key})"
        super().__init__(message, context)
        self.field = field
        self.item_key = item_key


class ResolutionTransientFailure(FeedSieveError):
    """
    A metadata resolution tier failed (network, HTTP status, bad payload).

    Never cached; the lookup is retried on a later pass.
    """

    def __init__(
        self,
        item_id: str,
        tier: str,
        reason: str,
        context: Optional[dict[str, Any]] = None,
    ):
        message = f"{tier} resolution failed for {item_id}: {reason}"
        super().__init__(message, context)
        self.item_id = item_id
        self.tier = tier
        self.reason = reason


class ConfigInvalid(FeedSieveError):
    """Filter configuration rejected at the configuration boundary."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.field = field


class StorageUnavailable(FeedSieveError):
    """Persistent store read/write failure."""

    def __init__(
        self,
        key: str,
        operation: str,
        reason: str,
        context: Optional[dict[str, Any]] = None,
    ):
        message = f"Storage {operation} failed for '{key}': {reason}"
        super().__init__(message, context)
        self.key = key
        self.operation = operation
        self.reason = reason
