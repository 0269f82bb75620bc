# START OF FILE taskpilot/tools/recovery.py
import logging
import math
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from taskpilot.tools.base import ExecutionOutcome
from taskpilot.tools.errors import ErrorCategory, ToolExecutionError

logger = logging.getLogger(__name__)

RetryPredicate = Callable[[ToolExecutionError, int], bool]
FallbackAction = Callable[[ToolExecutionError], ExecutionOutcome]


class RecoveryPolicy(BaseModel):
    """Retry ceiling, backoff and optional fallback for one error category."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_retries: int = Field(..., ge=0)
    base_delay_ms: int = Field(default=0, ge=0)
    backoff_multiplier: float = Field(default=1.0, gt=0)
    is_retry_eligible: RetryPredicate
    fallback: Optional[FallbackAction] = None


def compute_retry_delay(policy: RecoveryPolicy, attempt: int) -> int:
    """baseDelay * backoff^(attempt-1), in whole milliseconds."""
    exponent = max(attempt, 1) - 1
    return int(math.floor(policy.base_delay_ms * (policy.backoff_multiplier ** exponent) + 0.5))


def _message(error: ToolExecutionError) -> str:
    return (error.message or "").lower()


def is_retryable_execution_error(error: ToolExecutionError) -> bool:
    message = _message(error)
    return not any(word in message for word in ("validation", "permission", "unauthorized", "forbidden"))


def is_retryable_database_error(error: ToolExecutionError) -> bool:
    message = _message(error)
    return any(word in message for word in ("locked", "busy", "timeout", "connection"))


def is_retryable_network_error(error: ToolExecutionError) -> bool:
    message = _message(error)
    if any(word in message for word in ("timeout", "connection", "network")):
        return True
    return "404" not in message and "401" not in message


def is_retryable_resource_error(error: ToolExecutionError) -> bool:
    message = _message(error)
    return any(word in message for word in ("busy", "unavailable", "overload"))


def _never(_error: ToolExecutionError, _attempt: int) -> bool:
    return False


def _within_ceiling(max_retries: int, check: Optional[Callable[[ToolExecutionError], bool]] = None) -> RetryPredicate:
    def predicate(error: ToolExecutionError, attempt: int) -> bool:
        if attempt > max_retries:
            return False
        return check(error) if check else True
    return predicate


def build_default_recovery_policies(
    fallbacks: Optional[Mapping[ErrorCategory, FallbackAction]] = None,
) -> Dict[ErrorCategory, RecoveryPolicy]:
    """
    The fixed per-category recovery table.

    Args:
        fallbacks: Fallback actions keyed by category. Only TOOL_NOT_FOUND,
            PERMISSION_DENIED, VALIDATION_ERROR and DATABASE_ERROR use one.
    """
    fallbacks = fallbacks or {}
    return {
        ErrorCategory.TOOL_NOT_FOUND: RecoveryPolicy(
            max_retries=0, is_retry_eligible=_never,
            fallback=fallbacks.get(ErrorCategory.TOOL_NOT_FOUND),
        ),
        ErrorCategory.PERMISSION_DENIED: RecoveryPolicy(
            max_retries=0, is_retry_eligible=_never,
            fallback=fallbacks.get(ErrorCategory.PERMISSION_DENIED),
        ),
        ErrorCategory.VALIDATION_ERROR: RecoveryPolicy(
            max_retries=0, is_retry_eligible=_never,
            fallback=fallbacks.get(ErrorCategory.VALIDATION_ERROR),
        ),
        ErrorCategory.EXECUTION_ERROR: RecoveryPolicy(
            max_retries=2, base_delay_ms=1000, backoff_multiplier=2.0,
            is_retry_eligible=_within_ceiling(2, is_retryable_execution_error),
        ),
        ErrorCategory.DATABASE_ERROR: RecoveryPolicy(
            max_retries=3, base_delay_ms=500, backoff_multiplier=1.5,
            is_retry_eligible=_within_ceiling(3, is_retryable_database_error),
            fallback=fallbacks.get(ErrorCategory.DATABASE_ERROR),
        ),
        ErrorCategory.NETWORK_ERROR: RecoveryPolicy(
            max_retries=3, base_delay_ms=2000, backoff_multiplier=2.0,
            is_retry_eligible=_within_ceiling(3, is_retryable_network_error),
        ),
        ErrorCategory.TIMEOUT_ERROR: RecoveryPolicy(
            max_retries=2, base_delay_ms=1000, backoff_multiplier=1.5,
            is_retry_eligible=_within_ceiling(2),
        ),
        ErrorCategory.RESOURCE_ERROR: RecoveryPolicy(
            max_retries=2, base_delay_ms=3000, backoff_multiplier=1.5,
            is_retry_eligible=_within_ceiling(2, is_retryable_resource_error),
        ),
        ErrorCategory.UNKNOWN_ERROR: RecoveryPolicy(
            max_retries=1, base_delay_ms=1000, backoff_multiplier=1.0,
            is_retry_eligible=_within_ceiling(1),
        ),
    }


def apply_policy_overrides(
    policies: Dict[ErrorCategory, RecoveryPolicy],
    overrides: Mapping[str, Mapping[str, Any]],
) -> Dict[ErrorCategory, RecoveryPolicy]:
    """
    Applies numeric overrides (max_retries, base_delay_ms, backoff_multiplier) keyed
    by category name. A changed max_retries also moves the retry ceiling.
    """
    allowed = {"max_retries", "base_delay_ms", "backoff_multiplier"}
    updated = dict(policies)
    for category_name, values in overrides.items():
        try:
            category = ErrorCategory(str(category_name).upper())
        except ValueError:
            logger.warning(f"Recovery override for unknown category '{category_name}' ignored.")
            continue
        changes = {key: value for key, value in (values or {}).items() if key in allowed}
        ignored = set((values or {}).keys()) - allowed
        if ignored:
            logger.warning(f"Recovery override for {category.value}: ignoring unsupported keys {sorted(ignored)}")
        if changes:
            updated[category] = rebuild_policy(updated[category], category, **changes)
            logger.info(f"Recovery policy for {category.value} overridden: {changes}")
    return updated


def rebuild_policy(policy: RecoveryPolicy, category: ErrorCategory, **changes: Any) -> RecoveryPolicy:
    """Returns a validated copy of `policy` with `changes` applied."""
    merged = {
        "max_retries": policy.max_retries,
        "base_delay_ms": policy.base_delay_ms,
        "backoff_multiplier": policy.backoff_multiplier,
        "is_retry_eligible": policy.is_retry_eligible,
        "fallback": policy.fallback,
    }
    merged.update(changes)
    if "max_retries" in changes and "is_retry_eligible" not in changes:
        merged["is_retry_eligible"] = _DEFAULT_CHECKS.get(category, lambda max_retries: _never)(merged["max_retries"])
    return RecoveryPolicy(**merged)


# Predicate factories used when a retry ceiling is reconfigured.
_DEFAULT_CHECKS: Dict[ErrorCategory, Callable[[int], RetryPredicate]] = {
    ErrorCategory.EXECUTION_ERROR: lambda n: _within_ceiling(n, is_retryable_execution_error),
    ErrorCategory.DATABASE_ERROR: lambda n: _within_ceiling(n, is_retryable_database_error),
    ErrorCategory.NETWORK_ERROR: lambda n: _within_ceiling(n, is_retryable_network_error),
    ErrorCategory.TIMEOUT_ERROR: lambda n: _within_ceiling(n),
    ErrorCategory.RESOURCE_ERROR: lambda n: _within_ceiling(n, is_retryable_resource_error),
    ErrorCategory.UNKNOWN_ERROR: lambda n: _within_ceiling(n),
}
