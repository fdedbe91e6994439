"""Error taxonomy shared by the decision engine and execution layers."""

from __future__ import annotations


class YieldIntelError(Exception):
    """Base class for every error raised by yield_intel."""


class ValidationError(YieldIntelError, ValueError):
    """Bad parameters; rejected before any state is mutated."""


class UnknownVenue(ValidationError):
    pass


class UnknownDomain(ValidationError):
    pass


class InsufficientBalance(ValidationError):
    pass


class LimitExceeded(YieldIntelError):
    """Daily cap, cooldown or capacity limit hit. Retry later or with less."""


class ExecutionFailure(YieldIntelError):
    """The inner venue move failed; no funds moved."""


class StaleOrInvalidData(YieldIntelError):
    """A data source returned nothing usable."""


class IdempotencyViolation(YieldIntelError):
    """A state transition was attempted twice."""


class ReentrantCall(IdempotencyViolation):
    """A transition for the same key is already in flight."""


class SystemPaused(YieldIntelError):
    """Mutating entry points are disabled."""


class Unauthorized(YieldIntelError):
    pass
