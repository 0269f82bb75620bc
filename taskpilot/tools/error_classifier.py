# START OF FILE taskpilot/tools/error_classifier.py
import asyncio
import logging
import re
import sqlite3
from typing import Callable, Dict, List, Optional, Tuple, Type

import aiohttp
import openai
from sqlalchemy import exc as sqlalchemy_exc

from taskpilot.tools.errors import (
    AIServiceError, ErrorCategory, ToolExecutionBridgeError, ToolExecutionError,
    ToolRegistryError, UpstreamToolError
)

logger = logging.getLogger(__name__)

# --- Upstream code tables (anything not listed maps to EXECUTION_ERROR) ---
REGISTRY_CODE_MAP: Dict[str, ErrorCategory] = {
    ToolRegistryError.TOOL_NOT_FOUND: ErrorCategory.TOOL_NOT_FOUND,
    ToolRegistryError.INVALID_ARGUMENTS: ErrorCategory.VALIDATION_ERROR,
    ToolRegistryError.INSUFFICIENT_PERMISSIONS: ErrorCategory.PERMISSION_DENIED,
}
BRIDGE_CODE_MAP: Dict[str, ErrorCategory] = {
    ToolExecutionBridgeError.FORMAT_ERROR: ErrorCategory.VALIDATION_ERROR,
}
AI_SERVICE_CODE_MAP: Dict[str, ErrorCategory] = {
    AIServiceError.CIRCUIT_BREAKER_OPEN: ErrorCategory.RESOURCE_ERROR,
    AIServiceError.MODEL_NOT_AVAILABLE: ErrorCategory.RESOURCE_ERROR,
}

UPSTREAM_CODE_TABLES: List[Tuple[Type[UpstreamToolError], Dict[str, ErrorCategory]]] = [
    (ToolRegistryError, REGISTRY_CODE_MAP),
    (ToolExecutionBridgeError, BRIDGE_CODE_MAP),
    (AIServiceError, AI_SERVICE_CODE_MAP),
]

# --- Raw adapter exception types, first match wins ---
EXCEPTION_TYPE_RULES: List[Tuple[Tuple[Type[BaseException], ...], ErrorCategory]] = [
    ((asyncio.TimeoutError, TimeoutError, openai.APITimeoutError), ErrorCategory.TIMEOUT_ERROR),
    ((sqlite3.Error, sqlalchemy_exc.SQLAlchemyError), ErrorCategory.DATABASE_ERROR),
    ((aiohttp.ClientError, ConnectionError, openai.APIConnectionError), ErrorCategory.NETWORK_ERROR),
    ((openai.AuthenticationError, openai.PermissionDeniedError, PermissionError), ErrorCategory.PERMISSION_DENIED),
    ((openai.RateLimitError, MemoryError), ErrorCategory.RESOURCE_ERROR),
]

_TOOL_NOT_FOUND_PATTERN = re.compile(
    r"\btool\s+(?:[\"']?([\w.\-]+)[\"']?\s+)?(?:was\s+)?not\s+found", re.IGNORECASE
)


def _contains_any(*needles: str) -> Callable[[str], bool]:
    return lambda message: any(needle in message for needle in needles)


# --- Message rules over the lower-cased message, evaluated top to bottom ---
# The order is a contract: "timeout while querying sqlite database" is a TIMEOUT_ERROR.
MESSAGE_RULES: List[Tuple[Callable[[str], bool], ErrorCategory]] = [
    (lambda message: bool(_TOOL_NOT_FOUND_PATTERN.search(message)), ErrorCategory.TOOL_NOT_FOUND),
    (_contains_any("timeout", "timed out"), ErrorCategory.TIMEOUT_ERROR),
    (_contains_any("database", "sql", "sqlite"), ErrorCategory.DATABASE_ERROR),
    (_contains_any("network", "connection", "fetch"), ErrorCategory.NETWORK_ERROR),
    (_contains_any("permission", "unauthorized", "forbidden"), ErrorCategory.PERMISSION_DENIED),
    (_contains_any("validation", "invalid", "required"), ErrorCategory.VALIDATION_ERROR),
]


def extract_tool_name(message: str) -> Optional[str]:
    """Pulls the tool name out of messages like 'Tool "xyz" not found'."""
    match = _TOOL_NOT_FOUND_PATTERN.search(message or "")
    return match.group(1) if match else None


def _message_of(error: BaseException) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error)


def classify_message(message: str) -> ErrorCategory:
    lowered = (message or "").lower()
    for predicate, category in MESSAGE_RULES:
        if predicate(lowered):
            return category
    return ErrorCategory.UNKNOWN_ERROR


def normalize_error(error: BaseException, tool_name: Optional[str] = None) -> ToolExecutionError:
    """
    Maps any raised error into the closed ErrorCategory taxonomy.

    Precedence: already-classified errors are returned as-is, then the upstream
    layers' code tables, then raw adapter exception types, then message patterns.

    Args:
        error: The exception raised by the registry, bridge, AI service or adapter.
        tool_name: The tool the caller was executing, if known.

    Returns:
        ToolExecutionError: The classified error.
    """
    if isinstance(error, ToolExecutionError):
        return error

    message = _message_of(error)

    for error_type, code_map in UPSTREAM_CODE_TABLES:
        if isinstance(error, error_type):
            category = code_map.get(error.code, ErrorCategory.EXECUTION_ERROR)
            resolved_name = error.tool_name or tool_name
            logger.debug(f"normalize_error: {error_type.__name__}[{error.code}] -> {category.value}")
            return ToolExecutionError(message, category, resolved_name, error, context={"code": error.code})

    for exception_types, category in EXCEPTION_TYPE_RULES:
        if isinstance(error, exception_types):
            logger.debug(f"normalize_error: {type(error).__name__} -> {category.value}")
            return ToolExecutionError(message, category, tool_name, error)

    category = classify_message(message)
    if category == ErrorCategory.TOOL_NOT_FOUND and not tool_name:
        tool_name = extract_tool_name(message)
    logger.debug(f"normalize_error: message '{message[:80]}' -> {category.value}")
    return ToolExecutionError(message, category, tool_name, error)
