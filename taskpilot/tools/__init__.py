# START OF FILE taskpilot/tools/__init__.py
from taskpilot.tools.base import (
    AlternativeSuggestion, ExecutionOutcome, ExecutionPreferences, OutcomeMetadata, PermissionTier,
    RetryContext, ToolDescriptor, ValidationResult
)
from taskpilot.tools.catalogue import ToolCatalogue
from taskpilot.tools.error_handler import ToolExecutionErrorHandler
from taskpilot.tools.errors import (
    AIServiceError, ErrorCategory, ToolExecutionBridgeError, ToolExecutionError, ToolRegistryError
)
from taskpilot.tools.executor import ToolExecutionEngine

__all__ = [
    "AIServiceError",
    "AlternativeSuggestion",
    "ErrorCategory",
    "ExecutionOutcome",
    "ExecutionPreferences",
    "OutcomeMetadata",
    "PermissionTier",
    "RetryContext",
    "ToolCatalogue",
    "ToolDescriptor",
    "ToolExecutionBridgeError",
    "ToolExecutionEngine",
    "ToolExecutionError",
    "ToolExecutionErrorHandler",
    "ToolRegistryError",
    "ValidationResult",
]
