"""Error taxonomy shared by the engine, the store and the API layer."""

from __future__ import annotations


class MatchdayError(RuntimeError):
    """Base class for every business-rule or concurrency failure."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(MatchdayError, ValueError):
    """Malformed input rejected before any transaction opens."""

    code = "validation_error"


class NotFoundError(MatchdayError, LookupError):
    """A fixture, pool entry or player reference is stale or unknown."""

    code = "not_found"


class DuplicateEntryError(MatchdayError):
    code = "duplicate_entry"


class InvalidStateError(MatchdayError):
    """The operation is not legal in the fixture's current state."""

    code = "invalid_state"


class InvalidPoolSizeError(InvalidStateError):
    code = "invalid_pool_size"


class MethodDisabledError(MatchdayError):
    """The requested balancing method does not suit the current team shape."""

    code = "method_disabled"


class ConcurrencyConflictError(MatchdayError):
    """Another admin changed the fixture; the caller must refresh and retry."""

    code = "concurrency_conflict"


class OperationTimeoutError(MatchdayError, TimeoutError):
    code = "timeout"


class TemplateConfigError(MatchdayError, ValueError):
    """A team template is missing or its counts do not add up."""

    code = "template_config_error"


class BalanceSearchError(MatchdayError):
    """Bounded search could not produce any valid split."""

    code = "balance_search_failed"
