# START OF FILE taskpilot/tools/errors.py
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Closed taxonomy every tool failure is normalized into."""
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    RESOURCE_ERROR = "RESOURCE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ToolExecutionError(Exception):
    """A classified tool failure. Normalizing one of these returns it unchanged."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        tool_name: Optional[str] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.tool_name = tool_name
        self.cause = cause
        self.context = context or {}

    def __repr__(self) -> str:
        return f"ToolExecutionError({self.category.value}, tool={self.tool_name!r}, message={self.message!r})"


# --- Typed errors raised by the upstream layers this package sits behind ---

class UpstreamToolError(Exception):
    def __init__(self, message: str, code: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.tool_name = tool_name


class ToolRegistryError(UpstreamToolError):
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    TOOL_ALREADY_EXISTS = "TOOL_ALREADY_EXISTS"
    INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"


class ToolExecutionBridgeError(UpstreamToolError):
    FORMAT_ERROR = "FORMAT_ERROR"
    EXECUTION_FAILED = "EXECUTION_FAILED"


class AIServiceError(UpstreamToolError):
    """AI service failures carry no tool name of their own."""
    CIRCUIT_BREAKER_OPEN = "CIRCUIT_BREAKER_OPEN"
    MODEL_NOT_AVAILABLE = "MODEL_NOT_AVAILABLE"
    SERVICE_ERROR = "SERVICE_ERROR"

    def __init__(self, message: str, code: str, recoverable: bool = False):
        super().__init__(message, code, tool_name=None)
        self.recoverable = recoverable
