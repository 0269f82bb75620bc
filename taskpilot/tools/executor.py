# START OF FILE taskpilot/tools/executor.py
import inspect
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from taskpilot.tools.alternatives import AlternativeToolMatcher
from taskpilot.tools.base import (
    AlternativeSuggestion, ExecutionOutcome, ExecutionPreferences, OutcomeMetadata, PermissionTier,
    RetryContext, ValidationResult, sort_tiers
)
from taskpilot.tools.catalogue import ToolCatalogue
from taskpilot.tools.error_handler import ToolExecutionErrorHandler
from taskpilot.tools.errors import ErrorCategory, ToolExecutionError, ToolRegistryError
from taskpilot.tools.messages import TranslationFunction
from taskpilot.tools.permissions import ExecutionValidator, PermissionModel
from taskpilot.tools.recovery import RecoveryPolicy
from taskpilot.tools.result_formatter import ResultFormatter

logger = logging.getLogger(__name__)

# An adapter performs the actual I/O for a tool call and returns the raw payload
# (JSON text or a dict). It may be a plain function or a coroutine function.
ToolAdapter = Callable[[str, Dict[str, Any]], Union[Any, Awaitable[Any]]]


class ToolExecutionEngine:
    """
    The single surface the agent loop talks to for tool calls.

    Owns the permission model, validator, result formatter and error handler, and
    runs one validated call through a caller-supplied adapter. Retries are only
    described in the returned outcome; resubmitting is up to the caller, who
    passes the next `attempt` number back in.
    """

    def __init__(
        self,
        catalogue: Optional[ToolCatalogue] = None,
        preferences: Optional[ExecutionPreferences] = None,
        translate: Optional[TranslationFunction] = None,
        policy_overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ):
        self.catalogue = catalogue or ToolCatalogue()
        self.permission_model = PermissionModel(self.catalogue, preferences)
        self.validator = ExecutionValidator(self.permission_model)
        self.formatter = ResultFormatter(self.catalogue)
        self.matcher = AlternativeToolMatcher(self.catalogue)
        self.error_handler = ToolExecutionErrorHandler(
            catalogue=self.catalogue,
            permission_model=self.permission_model,
            matcher=self.matcher,
            translate=translate,
            policy_overrides=policy_overrides,
        )

        self._execution_stats = {
            "total_attempts": 0,
            "successful_executions": 0,
            "failed_executions": 0,
            "denied_executions": 0,
            "confirmations_requested": 0,
            "retries_described": 0,
            "fallbacks_used": 0,
        }
        logger.info(
            f"ToolExecutionEngine initialized with tools: {self.catalogue.names()} | "
            f"Granted tiers: {[t.label for t in self.permission_model.granted_tiers]}"
        )

    @classmethod
    def from_settings(cls, settings: Any, translate: Optional[TranslationFunction] = None) -> "ToolExecutionEngine":
        """Builds an engine from a loaded Settings instance (granted tiers, auto-approve, recovery overrides)."""
        preferences = ExecutionPreferences(
            auto_approve=set(settings.TOOL_AUTO_APPROVE),
            granted_tiers=set(settings.TOOL_GRANTED_TIERS),
            confirmation_timeout_seconds=settings.TOOL_CONFIRMATION_TIMEOUT_SECONDS,
        )
        return cls(preferences=preferences, translate=translate, policy_overrides=settings.RECOVERY_POLICY_OVERRIDES)

    # --- Permission facade ---

    def validate_execution(self, tool_name: str, args: Optional[Dict[str, Any]] = None) -> ValidationResult:
        return self.validator.validate_execution(tool_name, args)

    def has_permission(self, tool_name: str) -> bool:
        return self.permission_model.has_permission(tool_name)

    def requires_confirmation(self, tool_name: str) -> bool:
        return self.permission_model.requires_confirmation(tool_name)

    def get_available_tools(self) -> List[str]:
        return self.validator.get_available_tools()

    def set_permissions(self, tiers: Iterable[PermissionTier]) -> None:
        self.permission_model.set_permissions(tiers)

    def update_preferences(self, **changes: Any) -> None:
        self.permission_model.update_preferences(**changes)

    def get_tool_info(self, tool_name: str) -> Optional[Dict[str, Any]]:
        """Descriptor fields plus the caller's current access to the tool, or None if unknown."""
        descriptor = self.catalogue.get(tool_name)
        if descriptor is None:
            return None
        return {
            "name": descriptor.name,
            "display_name": descriptor.display_name,
            "description": descriptor.description,
            "required_tiers": sort_tiers(descriptor.required_tiers),
            "requires_confirmation": self.requires_confirmation(tool_name),
            "has_permission": self.has_permission(tool_name),
            "missing_tiers": self.permission_model.missing_tiers(tool_name),
        }

    @property
    def preferences(self) -> ExecutionPreferences:
        return self.permission_model.preferences

    # --- Formatting and error facade ---

    def format_result(self, tool_name: str, raw_payload: Any, execution_time_ms: float) -> ExecutionOutcome:
        return self.formatter.format_result(
            tool_name, raw_payload, execution_time_ms, self.permission_model.granted_tiers
        )

    def handle_error(
        self, error: BaseException, context: Optional[Union[RetryContext, Mapping[str, Any]]] = None
    ) -> ExecutionOutcome:
        return self.error_handler.handle_error(error, context)

    def normalize_error(self, error: BaseException, tool_name: Optional[str] = None) -> ToolExecutionError:
        return self.error_handler.normalize_error(error, tool_name)

    def get_recovery_policy(self, category: ErrorCategory) -> Optional[RecoveryPolicy]:
        return self.error_handler.get_recovery_policy(category)

    def update_recovery_policy(self, category: Union[ErrorCategory, str], **changes: Any) -> None:
        self.error_handler.update_recovery_policy(category, **changes)

    def set_translation_function(self, translate: Optional[TranslationFunction]) -> None:
        self.error_handler.set_translation_function(translate)

    def suggest_alternatives(self, unmatched_name: str) -> List[AlternativeSuggestion]:
        return self.matcher.suggest(unmatched_name)

    # --- Execution ---

    async def execute_tool(
        self,
        tool_name: str,
        arguments: Optional[Dict[str, Any]],
        adapter: ToolAdapter,
        attempt: int = 1,
        max_attempts: Optional[int] = None,
        prior_errors: Optional[List[ToolExecutionError]] = None,
        confirmed: bool = False,
    ) -> ExecutionOutcome:
        """
        Validates and runs one tool call through `adapter`.

        Args:
            tool_name: The tool the agent asked for.
            arguments: Tool arguments, passed to the adapter unchanged.
            adapter: Callable doing the real work; sync or async.
            attempt: 1-based attempt number, maintained by the caller across resubmissions.
            max_attempts: Ceiling reported back in retry outcomes. Defaults to the
                failing category's max_retries + 1.
            prior_errors: Classified errors from earlier attempts of this chain.
            confirmed: True once the user has approved a call that needs confirmation.

        Returns:
            ExecutionOutcome: Formatted success, confirmation request, retry descriptor
            or terminal failure. Never raises for adapter errors.
        """
        arguments = dict(arguments or {})
        execution_id = f"{tool_name}_{attempt}_{int(time.time() * 1000)}"
        logger.info(f"[TOOL_EXEC_START] ID:{execution_id} | Tool:'{tool_name}' | Attempt:{attempt} | Args:{arguments}")

        validation = self.validate_execution(tool_name, arguments)
        if not validation.allowed:
            if tool_name not in self.catalogue:
                upstream = ToolRegistryError(
                    f"Tool '{tool_name}' not found", ToolRegistryError.TOOL_NOT_FOUND, tool_name
                )
            else:
                upstream = ToolRegistryError(
                    validation.reason or "Insufficient permissions",
                    ToolRegistryError.INSUFFICIENT_PERMISSIONS,
                    tool_name,
                )
            logger.warning(f"[TOOL_EXEC_DENIED] ID:{execution_id} | {upstream.message}")
            classified = self.normalize_error(upstream, tool_name)
            return self._handle_failure(classified, self._build_context(
                tool_name, arguments, attempt, max_attempts or 1, prior_errors
            ), denied=True)

        if validation.requires_confirmation and not confirmed:
            self._execution_stats["confirmations_requested"] += 1
            logger.info(f"[TOOL_EXEC_CONFIRM] ID:{execution_id} | Awaiting user confirmation")
            return self._confirmation_outcome(tool_name, arguments)

        start = time.perf_counter()
        try:
            raw_payload = adapter(tool_name, arguments)
            if inspect.isawaitable(raw_payload):
                raw_payload = await raw_payload
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.warning(f"[TOOL_EXEC_EXCEPTION] ID:{execution_id} | {type(e).__name__}: {e}")
            classified = self.normalize_error(e, tool_name)
            if max_attempts is None:
                policy = self.get_recovery_policy(classified.category)
                max_attempts = (policy.max_retries + 1) if policy else 1
            outcome = self._handle_failure(classified, self._build_context(
                tool_name, arguments, attempt, max_attempts, prior_errors
            ))
            outcome.metadata.execution_time_ms = elapsed_ms
            return outcome

        elapsed_ms = (time.perf_counter() - start) * 1000
        outcome = self.format_result(tool_name, raw_payload, elapsed_ms)
        self._update_execution_stats(success=outcome.success)
        logger.info(
            f"[TOOL_EXEC_END] ID:{execution_id} | Success:{outcome.success} | Time:{elapsed_ms:.1f}ms"
        )
        return outcome

    def _handle_failure(
        self, classified: ToolExecutionError, context: RetryContext, denied: bool = False
    ) -> ExecutionOutcome:
        outcome = self.handle_error(classified, context)
        policy = self.get_recovery_policy(classified.category)
        fallback_used = not outcome.is_retry and policy is not None and policy.fallback is not None
        self._update_execution_stats(
            success=False, denied=denied, retry_described=outcome.is_retry, fallback_used=fallback_used
        )
        return outcome

    def _build_context(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        attempt: int,
        max_attempts: int,
        prior_errors: Optional[List[ToolExecutionError]],
    ) -> RetryContext:
        return RetryContext(
            tool_name=tool_name,
            arguments=arguments,
            granted_tiers=self.permission_model.granted_tiers,
            attempt=attempt,
            max_attempts=max(max_attempts, 1),
            prior_errors=list(prior_errors or []),
        )

    def _confirmation_outcome(self, tool_name: str, arguments: Dict[str, Any]) -> ExecutionOutcome:
        timeout_seconds = self.permission_model.preferences.confirmation_timeout_seconds
        user_message = self.error_handler.templates.confirmation_required(
            self.catalogue.display_name(tool_name), timeout_seconds
        )
        return ExecutionOutcome(
            success=False,
            data={"tool_name": tool_name, "arguments": arguments},
            user_message=user_message,
            requires_confirmation=True,
            metadata=OutcomeMetadata(
                tool_name=tool_name,
                granted_tiers=self.permission_model.granted_tiers,
                confirmation_timeout_seconds=timeout_seconds,
            ),
        )

    # --- Statistics ---

    def _update_execution_stats(
        self, success: bool, denied: bool = False, retry_described: bool = False, fallback_used: bool = False
    ):
        self._execution_stats["total_attempts"] += 1
        if success:
            self._execution_stats["successful_executions"] += 1
        else:
            self._execution_stats["failed_executions"] += 1
        if denied:
            self._execution_stats["denied_executions"] += 1
        if retry_described:
            self._execution_stats["retries_described"] += 1
        if fallback_used:
            self._execution_stats["fallbacks_used"] += 1

    def get_execution_stats(self) -> Dict[str, Any]:
        stats = self._execution_stats.copy()
        if stats["total_attempts"] > 0:
            stats["success_rate"] = round((stats["successful_executions"] / stats["total_attempts"]) * 100, 2)
        else:
            stats["success_rate"] = 0.0
        return stats

    def report_execution_stats(self) -> Dict[str, Any]:
        """Report tool execution statistics to logs"""
        stats = self.get_execution_stats()
        if stats["total_attempts"] > 0:
            logger.info(f"Tool Execution Statistics - "
                        f"Total: {stats['total_attempts']}, "
                        f"Successful: {stats['successful_executions']}, "
                        f"Failed: {stats['failed_executions']}, "
                        f"Denied: {stats['denied_executions']}, "
                        f"Retries Described: {stats['retries_described']}, "
                        f"Fallbacks Used: {stats['fallbacks_used']}, "
                        f"Confirmations Requested: {stats['confirmations_requested']}, "
                        f"Success Rate: {stats['success_rate']}%")
        else:
            logger.info("Tool Execution Statistics - No executions recorded yet")
        return stats

    # --- Tool descriptions for the agent prompt ---

    def describe_tools_json(self) -> str:
        """JSON description of the tools the caller may currently use."""
        tool_list = []
        for name in self.get_available_tools():
            descriptor = self.catalogue.get(name)
            tool_list.append({
                "name": descriptor.name,
                "display_name": descriptor.display_name,
                "description": descriptor.description,
                "required_tiers": [tier.label for tier in sort_tiers(descriptor.required_tiers)],
                "requires_confirmation": self.requires_confirmation(name),
            })

        try:
            return json.dumps({"available_tools": tool_list}, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Error formatting tool descriptions as JSON: {e}", exc_info=True)
            return json.dumps({"available_tools": [], "error": f"Failed to format tools: {e}"}, indent=2)
