"""Exception hierarchy for PixProof.

Every exception carries a human-readable message plus structured context so it
can be logged with structlog without string parsing.

Input-quality problems in extracted records (missing amounts, dates, names)
are never raised: the affected rule scores zero instead. These exceptions are
for invalid configuration and unexpected failures.

Usage:
    from pixproof.exceptions import ValidationError

    try:
        engine.update_settings(auto_match_threshold=10, manual_review_threshold=50)
    except ValidationError as e:
        logger.error("invalid_settings", error=str(e), context=e.context)
"""

from __future__ import annotations

from typing import Any


def _merge_context(kwargs: dict[str, Any], **fields: Any) -> dict[str, Any]:
    """Add the non-empty ``fields`` to the ``context`` passed in ``kwargs``."""
    context = dict(kwargs.pop("context", None) or {})
    context.update({key: value for key, value in fields.items() if value not in (None, "")})
    kwargs["context"] = context
    return kwargs


class PixProofError(Exception):
    """Base exception for all PixProof errors.

    Attributes:
        message: Human-readable error message
        context: Additional context for debugging (dict)
        original_error: Original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append("(" + ", ".join(f"{k}={v}" for k, v in self.context.items()) + ")")
        if self.original_error:
            parts.append(f"[caused by: {type(self.original_error).__name__}]")
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


# =============================================================================
# Validation & Configuration Errors
# =============================================================================


class ValidationError(PixProofError):
    """Raised when reconciliation settings fail validation.

    Used for rule weights out of range, inverted thresholds, unknown settings
    fields and malformed learning data.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ) -> None:
        shown = None if value is None else str(value)[:100]
        super().__init__(
            message,
            **_merge_context(kwargs, field=field, value=shown, constraint=constraint),
        )


class ConfigurationError(PixProofError):
    """Raised when ``PIXPROOF_*`` environment settings cannot be loaded."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        expected: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **_merge_context(kwargs, setting=setting, expected=expected))


# =============================================================================
# Reconciliation Errors
# =============================================================================


class ReconciliationError(PixProofError):
    """Base class for failures inside the reconciliation engine."""


class JobExecutionError(ReconciliationError):
    """Raised when a batch job fails while processing.

    The batch manager catches it at the job boundary and records the message
    on the failed job; callers never see it raised.
    """

    def __init__(
        self,
        message: str,
        *,
        job_id: str | None = None,
        stage: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **_merge_context(kwargs, job_id=job_id, stage=stage))


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    error: Exception,
    message: str,
    *,
    exception_class: type[PixProofError] = PixProofError,
    **context: Any,
) -> PixProofError:
    """Wrap an external exception in the PixProof hierarchy.

    Example:
        try:
            summary = matcher.reconcile(receipts, transactions, settings)
        except ZeroDivisionError as e:
            raise wrap_exception(e, "Scoring failed", exception_class=JobExecutionError, job_id=job_id)
    """
    return exception_class(message, context=context, original_error=error)


__all__ = [
    "PixProofError",
    "ValidationError",
    "ConfigurationError",
    "ReconciliationError",
    "JobExecutionError",
    "wrap_exception",
]
