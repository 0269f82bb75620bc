# START OF FILE taskpilot/tools/error_handler.py
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from taskpilot.tools.alternatives import AlternativeToolMatcher
from taskpilot.tools.base import (
    AlternativeSuggestion, ExecutionOutcome, OutcomeMetadata, PermissionTier, RetryContext, sort_tiers
)
from taskpilot.tools.catalogue import ToolCatalogue
from taskpilot.tools.error_classifier import normalize_error
from taskpilot.tools.errors import ErrorCategory, ToolExecutionError
from taskpilot.tools.messages import MessageTemplates, TranslationFunction, validation_guidance_for
from taskpilot.tools.permissions import PermissionModel
from taskpilot.tools.recovery import (
    RecoveryPolicy, apply_policy_overrides, build_default_recovery_policies, compute_retry_delay, rebuild_policy
)

logger = logging.getLogger(__name__)

UNKNOWN_TOOL_NAME = "unknown"


class ToolExecutionErrorHandler:
    """
    Turns any error raised around a tool call into an ExecutionOutcome.

    The handler classifies the error, consults the per-category recovery policy and
    returns one of: a retry descriptor (the caller schedules and resubmits), a
    fallback outcome (suggestions or guidance), or a terminal failure. It never
    re-invokes the tool and never raises.
    """

    def __init__(
        self,
        catalogue: Optional[ToolCatalogue] = None,
        permission_model: Optional[PermissionModel] = None,
        matcher: Optional[AlternativeToolMatcher] = None,
        translate: Optional[TranslationFunction] = None,
        policy_overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ):
        if catalogue is None:
            catalogue = permission_model.catalogue if permission_model else ToolCatalogue()
        self.catalogue = catalogue
        self.permission_model = permission_model
        self.matcher = matcher or AlternativeToolMatcher(self.catalogue)
        self.templates = MessageTemplates(translate)

        self._recovery_policies: Dict[ErrorCategory, RecoveryPolicy] = build_default_recovery_policies({
            ErrorCategory.TOOL_NOT_FOUND: self._suggest_alternatives,
            ErrorCategory.PERMISSION_DENIED: self._permission_elevation,
            ErrorCategory.VALIDATION_ERROR: self._validation_guidance,
            ErrorCategory.DATABASE_ERROR: self._database_fallback,
        })
        if policy_overrides:
            self._recovery_policies = apply_policy_overrides(self._recovery_policies, policy_overrides)
        logger.debug(f"ToolExecutionErrorHandler initialized with {len(self._recovery_policies)} recovery policies.")

    # --- Configuration ---

    def set_translation_function(self, translate: Optional[TranslationFunction]) -> None:
        self.templates = MessageTemplates(translate)

    def get_recovery_policy(self, category: ErrorCategory) -> Optional[RecoveryPolicy]:
        return self._recovery_policies.get(category)

    def update_recovery_policy(self, category: Union[ErrorCategory, str], **changes: Any) -> None:
        """Replaces fields of one category's policy. Unknown categories are logged and ignored."""
        try:
            resolved = category if isinstance(category, ErrorCategory) else ErrorCategory(str(category).upper())
        except ValueError:
            logger.warning(f"update_recovery_policy: Unknown error category '{category}'. No change made.")
            return
        current = self._recovery_policies.get(resolved)
        if current is None:
            logger.warning(f"update_recovery_policy: No policy registered for {resolved.value}. No change made.")
            return
        self._recovery_policies[resolved] = rebuild_policy(current, resolved, **changes)
        logger.info(f"Recovery policy for {resolved.value} updated: {sorted(changes.keys())}")

    def normalize_error(self, error: BaseException, tool_name: Optional[str] = None) -> ToolExecutionError:
        return normalize_error(error, tool_name)

    # --- Main entry point ---

    def handle_error(
        self,
        error: BaseException,
        context: Optional[Union[RetryContext, Mapping[str, Any]]] = None,
    ) -> ExecutionOutcome:
        """
        Classifies `error` and decides between retry, fallback and terminal failure.

        Args:
            error: Anything raised by the registry, bridge, AI service or a tool adapter.
            context: The caller's retry chain state. Without it no retry is ever described.

        Returns:
            ExecutionOutcome: Always a failed outcome; `metadata.retry_after_ms` is set
            when the caller should resubmit.
        """
        fallback_tool_name = None
        try:
            retry_context = self._coerce_context(context)
        except Exception as e:
            logger.warning(f"handle_error: Ignoring malformed retry context: {e}")
            retry_context = None
            fallback_tool_name = self._tool_name_from_mapping(context)

        try:
            return self._handle_error(error, retry_context, fallback_tool_name)
        except Exception as e:
            logger.error(f"handle_error: Unexpected failure while handling '{error}': {e}", exc_info=True)
            tool_name = retry_context.tool_name if retry_context else (
                fallback_tool_name or getattr(error, "tool_name", None)
            )
            return self._generic_outcome(tool_name or UNKNOWN_TOOL_NAME, str(error), retry_context)

    def _handle_error(
        self, error: BaseException, context: Optional[RetryContext], fallback_tool_name: Optional[str] = None
    ) -> ExecutionOutcome:
        classified = normalize_error(error, context.tool_name if context else fallback_tool_name)
        if classified.tool_name is None and context is not None:
            classified = ToolExecutionError(
                classified.message, classified.category, context.tool_name, classified.cause, classified.context
            )
        logger.info(
            f"[TOOL_EXEC_ERROR] Tool:'{classified.tool_name}' | Category:{classified.category.value} | "
            f"Attempt:{context.attempt if context else '-'} | {classified.message}"
        )

        policy = self._recovery_policies.get(classified.category)
        if policy is None:
            logger.error(f"handle_error: No recovery policy for {classified.category.value}")
            return self._generic_outcome(self._tool_name_for(classified, context), classified.message, context)

        if context is not None and policy.is_retry_eligible(classified, context.attempt):
            return self._retry_outcome(classified, policy, context)

        if policy.fallback is not None:
            try:
                outcome = policy.fallback(classified)
            except Exception as e:
                logger.error(
                    f"handle_error: Fallback for {classified.category.value} failed: {e}", exc_info=True
                )
                return self._generic_outcome(self._tool_name_for(classified, context), classified.message, context)
            logger.info(f"[TOOL_EXEC_FALLBACK] Tool:'{classified.tool_name}' | Category:{classified.category.value}")
            return self._finalize(outcome, classified, context)

        logger.warning(f"[TOOL_EXEC_FAILED] Tool:'{classified.tool_name}' | Category:{classified.category.value}")
        return self._finalize(self._terminal_outcome(classified), classified, context)

    # --- Outcome builders ---

    def _coerce_context(self, context: Optional[Union[RetryContext, Mapping[str, Any]]]) -> Optional[RetryContext]:
        if context is None or isinstance(context, RetryContext):
            return context
        return RetryContext.model_validate(dict(context))

    @staticmethod
    def _tool_name_from_mapping(context: Any) -> Optional[str]:
        if not isinstance(context, Mapping):
            return None
        tool_name = context.get("tool_name") or context.get("toolName")
        return tool_name if isinstance(tool_name, str) and tool_name else None

    def _tool_name_for(self, error: ToolExecutionError, context: Optional[RetryContext]) -> str:
        if context is not None:
            return context.tool_name
        return error.tool_name or UNKNOWN_TOOL_NAME

    def _granted_tiers_for(self, context: Optional[RetryContext]) -> List[PermissionTier]:
        if context is not None and context.granted_tiers:
            return sort_tiers(context.granted_tiers)
        if self.permission_model is not None:
            return self.permission_model.granted_tiers
        return []

    def _finalize(
        self, outcome: ExecutionOutcome, error: ToolExecutionError, context: Optional[RetryContext]
    ) -> ExecutionOutcome:
        metadata = outcome.metadata.model_copy(update={
            "tool_name": self._tool_name_for(error, context),
            "granted_tiers": self._granted_tiers_for(context),
            "category": error.category.value,
        })
        return outcome.model_copy(update={"metadata": metadata, "error_message": error.message})

    def _failure(self, error: ToolExecutionError, user_message: str, **metadata: Any) -> ExecutionOutcome:
        return ExecutionOutcome(
            success=False,
            error_message=error.message,
            user_message=user_message,
            metadata=OutcomeMetadata(tool_name=error.tool_name or UNKNOWN_TOOL_NAME, **metadata),
        )

    def _generic_outcome(self, tool_name: str, message: str, context: Optional[RetryContext]) -> ExecutionOutcome:
        return ExecutionOutcome(
            success=False,
            error_message=message,
            user_message=self.templates.generic_failure(self.catalogue.display_name(tool_name), message),
            metadata=OutcomeMetadata(tool_name=tool_name, granted_tiers=self._granted_tiers_for(context)),
        )

    def _retry_outcome(
        self, error: ToolExecutionError, policy: RecoveryPolicy, context: RetryContext
    ) -> ExecutionOutcome:
        delay_ms = compute_retry_delay(policy, context.attempt)
        logger.info(
            f"[TOOL_EXEC_RETRY] Tool:'{context.tool_name}' | Category:{error.category.value} | "
            f"Attempt:{context.attempt}/{context.max_attempts} | RetryAfter:{delay_ms}ms"
        )
        return ExecutionOutcome(
            success=False,
            error_message=error.message,
            user_message=self.templates.retry(self.catalogue.display_name(context.tool_name), context.attempt, delay_ms),
            metadata=OutcomeMetadata(
                tool_name=context.tool_name,
                granted_tiers=self._granted_tiers_for(context),
                category=error.category.value,
                retry_after_ms=delay_ms,
                attempt=context.attempt,
                max_attempts=context.max_attempts,
            ),
        )

    def _terminal_outcome(self, error: ToolExecutionError) -> ExecutionOutcome:
        tool_name = error.tool_name or UNKNOWN_TOOL_NAME
        display_name = self.catalogue.display_name(tool_name)
        category = error.category

        if category == ErrorCategory.TOOL_NOT_FOUND:
            return self._failure(error, self.templates.tool_not_found(tool_name, self.catalogue.names()))
        if category == ErrorCategory.PERMISSION_DENIED:
            missing = self._resolve_missing_tiers(error)
            return self._failure(error, self.templates.permission_denied(display_name, missing), required_tiers=missing)
        if category == ErrorCategory.VALIDATION_ERROR:
            return self._failure(error, self.templates.validation_error(display_name, error.message))
        if category == ErrorCategory.DATABASE_ERROR:
            return self._failure(error, self.templates.database_error(display_name))
        if category == ErrorCategory.NETWORK_ERROR:
            return self._failure(error, self.templates.network_error(display_name))
        if category == ErrorCategory.TIMEOUT_ERROR:
            return self._failure(error, self.templates.timeout_error(display_name))
        if category == ErrorCategory.RESOURCE_ERROR:
            return self._failure(error, self.templates.resource_error(display_name))
        return self._failure(error, self.templates.generic_failure(display_name, error.message))

    # --- Fallbacks ---

    def _suggest_alternatives(self, error: ToolExecutionError) -> ExecutionOutcome:
        requested = error.tool_name or UNKNOWN_TOOL_NAME
        suggestions: List[AlternativeSuggestion] = self.matcher.suggest(requested)
        user_message = self.templates.tool_not_found_with_suggestions(requested, suggestions, self.catalogue.names())
        return self._failure(error, user_message, suggestions=suggestions)

    def _permission_elevation(self, error: ToolExecutionError) -> ExecutionOutcome:
        missing = self._resolve_missing_tiers(error)
        display_name = self.catalogue.display_name(error.tool_name or UNKNOWN_TOOL_NAME)
        return self._failure(error, self.templates.permission_elevation(display_name, missing), required_tiers=missing)

    def _validation_guidance(self, error: ToolExecutionError) -> ExecutionOutcome:
        guidance = validation_guidance_for(error.tool_name or "", error.message)
        return self._failure(error, self.templates.validation_guidance(error.message, guidance))

    def _database_fallback(self, error: ToolExecutionError) -> ExecutionOutcome:
        return self._failure(error, self.templates.database_fallback())

    def _resolve_missing_tiers(self, error: ToolExecutionError) -> List[PermissionTier]:
        """
        Tiers to ask for in permission guidance: what the permission model says is
        missing, else tiers named in the message, else the tool's required tiers.
        """
        descriptor = self.catalogue.get(error.tool_name)
        if descriptor is not None and self.permission_model is not None:
            missing = self.permission_model.missing_tiers(descriptor.name)
            if missing:
                return missing

        lowered = (error.message or "").lower()
        named = [
            tier for tier in PermissionTier
            if tier.value in lowered or tier.label.lower() in lowered or tier.display_name.lower() in lowered
        ]
        if named:
            return sort_tiers(named)

        if descriptor is not None:
            return sort_tiers(descriptor.required_tiers)
        return [PermissionTier.READ_ONLY]
