"""Exception taxonomy for the engine.

Numerical and accounting failures abort the enclosing operation; the
``atomic`` helper in :mod:`utils.safety` restores state before they reach
the caller.  ``InsufficientOutput`` and its subclasses are the expected,
retryable failures.
"""
from __future__ import annotations


class EngineError(RuntimeError):
    """Base class for every error raised by the engine."""


class ConvergenceFailure(EngineError):
    """Newton-Raphson iteration did not converge within the iteration cap."""


class InsufficientOutput(EngineError):
    """A caller-supplied minimum output was not met."""


class SlippageTooHigh(InsufficientOutput):
    """An executed leg returned less than its quoted output allows."""


class InsufficientLiquidity(EngineError):
    """Liquid reserves could not cover an exact payout even after a recall."""


class InvariantViolation(EngineError):
    """Accounting invariant broken; indicates a bug rather than bad input."""


class RoundingError(InvariantViolation):
    pass


class ReentrancyError(EngineError):
    pass


class InvalidParameter(EngineError, ValueError):
    """Input rejected before any state was touched."""


class CooldownActive(InvalidParameter):
    pass


class OperationPaused(EngineError):
    pass


class PermissionDenied(EngineError):
    pass


class VaultWithdrawalError(EngineError):
    """The vault refused a withdrawal, e.g. realised loss above the caller's maximum."""


__all__ = [
    "EngineError",
    "ConvergenceFailure",
    "InsufficientOutput",
    "SlippageTooHigh",
    "InsufficientLiquidity",
    "InvariantViolation",
    "RoundingError",
    "ReentrancyError",
    "InvalidParameter",
    "CooldownActive",
    "OperationPaused",
    "PermissionDenied",
    "VaultWithdrawalError",
]
