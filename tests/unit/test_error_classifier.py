import asyncio
import sqlite3
import unittest
import logging

import aiohttp
from sqlalchemy import exc as sqlalchemy_exc

from taskpilot.tools.error_classifier import classify_message, extract_tool_name, normalize_error
from taskpilot.tools.errors import (
    AIServiceError, ErrorCategory, ToolExecutionBridgeError, ToolExecutionError, ToolRegistryError
)

# Disable most logging output for tests unless specifically testing logging
logging.disable(logging.CRITICAL)


class TestMessageClassification(unittest.TestCase):

    def test_timeout_wins_over_database(self):
        self.assertEqual(classify_message("timeout while querying sqlite database"), ErrorCategory.TIMEOUT_ERROR)

    def test_timed_out_wins_over_network(self):
        self.assertEqual(classify_message("connection timed out"), ErrorCategory.TIMEOUT_ERROR)

    def test_database_wins_over_network(self):
        self.assertEqual(classify_message("database connection refused"), ErrorCategory.DATABASE_ERROR)

    def test_network_wins_over_permission(self):
        self.assertEqual(classify_message("fetch failed: forbidden"), ErrorCategory.NETWORK_ERROR)

    def test_permission_wins_over_validation(self):
        self.assertEqual(classify_message("Unauthorized: invalid token"), ErrorCategory.PERMISSION_DENIED)

    def test_validation_group(self):
        for message in ["Validation failed", "invalid date", "title is required"]:
            self.assertEqual(classify_message(message), ErrorCategory.VALIDATION_ERROR, message)

    def test_unmatched_is_unknown(self):
        self.assertEqual(classify_message("something odd happened"), ErrorCategory.UNKNOWN_ERROR)
        self.assertEqual(classify_message(""), ErrorCategory.UNKNOWN_ERROR)

    def test_tool_not_found_message(self):
        self.assertEqual(classify_message("Tool xyz not found"), ErrorCategory.TOOL_NOT_FOUND)
        self.assertEqual(classify_message("tool 'make_coffee' was not found"), ErrorCategory.TOOL_NOT_FOUND)

    def test_extract_tool_name(self):
        self.assertEqual(extract_tool_name("Tool xyz not found"), "xyz")
        self.assertEqual(extract_tool_name("Tool \"creat_tsk\" not found"), "creat_tsk")
        self.assertIsNone(extract_tool_name("connection refused"))


class TestNormalizeError(unittest.TestCase):

    def test_idempotent_on_classified_errors(self):
        classified = ToolExecutionError("boom", ErrorCategory.RESOURCE_ERROR, "get_tasks")
        self.assertIs(normalize_error(classified), classified)
        self.assertIs(normalize_error(normalize_error(classified), "other_tool"), classified)

    def test_registry_codes(self):
        cases = {
            ToolRegistryError.TOOL_NOT_FOUND: ErrorCategory.TOOL_NOT_FOUND,
            ToolRegistryError.INVALID_ARGUMENTS: ErrorCategory.VALIDATION_ERROR,
            ToolRegistryError.INSUFFICIENT_PERMISSIONS: ErrorCategory.PERMISSION_DENIED,
            ToolRegistryError.TOOL_ALREADY_EXISTS: ErrorCategory.EXECUTION_ERROR,
        }
        for code, expected in cases.items():
            error = normalize_error(ToolRegistryError("registry said no", code, "create_task"))
            self.assertEqual(error.category, expected, code)
            self.assertEqual(error.tool_name, "create_task")
            self.assertEqual(error.context, {"code": code})

    def test_code_table_beats_message_patterns(self):
        error = normalize_error(ToolRegistryError("database timeout", ToolRegistryError.INVALID_ARGUMENTS))
        self.assertEqual(error.category, ErrorCategory.VALIDATION_ERROR)

    def test_bridge_codes(self):
        self.assertEqual(
            normalize_error(ToolExecutionBridgeError("bad json", ToolExecutionBridgeError.FORMAT_ERROR)).category,
            ErrorCategory.VALIDATION_ERROR,
        )
        self.assertEqual(
            normalize_error(ToolExecutionBridgeError("timeout", ToolExecutionBridgeError.EXECUTION_FAILED)).category,
            ErrorCategory.EXECUTION_ERROR,
        )

    def test_ai_service_codes_use_context_tool_name(self):
        error = normalize_error(
            AIServiceError("breaker open", AIServiceError.CIRCUIT_BREAKER_OPEN, recoverable=True), "get_tasks"
        )
        self.assertEqual(error.category, ErrorCategory.RESOURCE_ERROR)
        self.assertEqual(error.tool_name, "get_tasks")
        self.assertEqual(
            normalize_error(AIServiceError("model gone", AIServiceError.MODEL_NOT_AVAILABLE)).category,
            ErrorCategory.RESOURCE_ERROR,
        )
        self.assertEqual(
            normalize_error(AIServiceError("oops", AIServiceError.SERVICE_ERROR)).category,
            ErrorCategory.EXECUTION_ERROR,
        )

    def test_raw_exception_types(self):
        cases = [
            (asyncio.TimeoutError(), ErrorCategory.TIMEOUT_ERROR),
            (sqlite3.OperationalError("disk I/O error"), ErrorCategory.DATABASE_ERROR),
            (sqlalchemy_exc.OperationalError("SELECT 1", {}, Exception("gone")), ErrorCategory.DATABASE_ERROR),
            (aiohttp.ClientError("bad gateway"), ErrorCategory.NETWORK_ERROR),
            (ConnectionRefusedError("refused"), ErrorCategory.NETWORK_ERROR),
            (PermissionError("read-only file"), ErrorCategory.PERMISSION_DENIED),
            (MemoryError(), ErrorCategory.RESOURCE_ERROR),
        ]
        for raw, expected in cases:
            self.assertEqual(normalize_error(raw, "get_tasks").category, expected, repr(raw))

    def test_plain_exception_uses_message_patterns(self):
        error = normalize_error(Exception("connection timed out"), "get_time_data")
        self.assertEqual(error.category, ErrorCategory.TIMEOUT_ERROR)
        self.assertEqual(error.tool_name, "get_time_data")
        self.assertEqual(error.message, "connection timed out")

    def test_tool_name_parsed_from_message(self):
        error = normalize_error(Exception("Tool xyz not found"))
        self.assertEqual(error.category, ErrorCategory.TOOL_NOT_FOUND)
        self.assertEqual(error.tool_name, "xyz")

    def test_caller_tool_name_beats_parsed_name(self):
        error = normalize_error(Exception("Tool xyz not found"), "make_coffee")
        self.assertEqual(error.tool_name, "make_coffee")

    def test_cause_is_kept(self):
        raw = ValueError("title is required")
        error = normalize_error(raw, "create_task")
        self.assertIs(error.cause, raw)
        self.assertEqual(error.category, ErrorCategory.VALIDATION_ERROR)


if __name__ == '__main__':
    unittest.main()
