import asyncio
import json
import unittest
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from taskpilot.tools.base import ExecutionPreferences, PermissionTier
from taskpilot.tools.errors import ErrorCategory
from taskpilot.tools.executor import ToolExecutionEngine

# Disable most logging output for tests unless specifically testing logging
logging.disable(logging.CRITICAL)

ALL_TIERS = {PermissionTier.READ_ONLY, PermissionTier.MODIFY_TASKS, PermissionTier.TIMER_CONTROL}


def make_engine(tiers=None, auto_approve=None):
    preferences = ExecutionPreferences(granted_tiers=set(tiers or ALL_TIERS), auto_approve=set(auto_approve or []))
    return ToolExecutionEngine(preferences=preferences)


class TestEngineFacade(unittest.TestCase):

    def test_validate_execution_scenario(self):
        engine = make_engine({PermissionTier.READ_ONLY})
        result = engine.validate_execution("create_task", {})
        self.assertFalse(result.allowed)
        self.assertIn("ModifyTasks", result.reason)

    def test_format_result_carries_granted_tiers(self):
        engine = make_engine({PermissionTier.TIMER_CONTROL})
        outcome = engine.format_result("start_timer", {"success": True}, 120)
        self.assertEqual(outcome.user_message, "⏱️ Timer started! Now tracking time for your task.")
        self.assertEqual(outcome.metadata.granted_tiers, [PermissionTier.TIMER_CONTROL])

    def test_set_permissions_changes_available_tools(self):
        engine = make_engine({PermissionTier.READ_ONLY})
        self.assertNotIn("start_timer", engine.get_available_tools())
        engine.set_permissions({PermissionTier.FULL_ACCESS})
        self.assertEqual(len(engine.get_available_tools()), 7)

    def test_get_tool_info(self):
        engine = make_engine({PermissionTier.READ_ONLY})
        info = engine.get_tool_info("create_task")
        self.assertEqual(info["display_name"], "Create Task")
        self.assertFalse(info["has_permission"])
        self.assertEqual(info["missing_tiers"], [PermissionTier.MODIFY_TASKS])
        self.assertIsNone(engine.get_tool_info("xyz"))

    def test_describe_tools_json_lists_permitted_tools(self):
        engine = make_engine({PermissionTier.READ_ONLY})
        described = json.loads(engine.describe_tools_json())
        names = [tool["name"] for tool in described["available_tools"]]
        self.assertEqual(names, ["get_tasks", "get_time_data", "analyze_productivity"])
        self.assertEqual(described["available_tools"][0]["required_tiers"], ["ReadOnly"])

    def test_from_settings(self):
        settings = SimpleNamespace(
            TOOL_GRANTED_TIERS=[PermissionTier.READ_ONLY, PermissionTier.TIMER_CONTROL],
            TOOL_AUTO_APPROVE=["create_task"],
            TOOL_CONFIRMATION_TIMEOUT_SECONDS=15,
            RECOVERY_POLICY_OVERRIDES={"NETWORK_ERROR": {"max_retries": 1}},
        )
        engine = ToolExecutionEngine.from_settings(settings)
        self.assertTrue(engine.has_permission("start_timer"))
        self.assertFalse(engine.has_permission("create_task"))
        self.assertFalse(engine.requires_confirmation("create_task"))
        self.assertEqual(engine.preferences.confirmation_timeout_seconds, 15)
        self.assertEqual(engine.get_recovery_policy(ErrorCategory.NETWORK_ERROR).max_retries, 1)

    def test_engines_do_not_share_state(self):
        first = make_engine({PermissionTier.READ_ONLY})
        second = make_engine({PermissionTier.READ_ONLY})
        first.set_permissions({PermissionTier.FULL_ACCESS})
        first.update_recovery_policy(ErrorCategory.TIMEOUT_ERROR, base_delay_ms=5)
        self.assertFalse(second.has_permission("create_task"))
        self.assertEqual(second.get_recovery_policy(ErrorCategory.TIMEOUT_ERROR).base_delay_ms, 1000)


class TestExecuteTool(unittest.TestCase):

    def test_successful_sync_adapter(self):
        engine = make_engine()
        adapter = MagicMock(return_value=json.dumps({"success": True}))
        outcome = asyncio.run(engine.execute_tool("start_timer", {"taskId": "t1"}, adapter))
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.user_message, "⏱️ Timer started! Now tracking time for your task.")
        adapter.assert_called_once_with("start_timer", {"taskId": "t1"})
        self.assertGreaterEqual(outcome.metadata.execution_time_ms, 0)

    def test_successful_async_adapter(self):
        engine = make_engine()
        adapter = AsyncMock(return_value={"success": True, "session": {"duration": 600000}})
        outcome = asyncio.run(engine.execute_tool("stop_timer", None, adapter))
        self.assertEqual(outcome.user_message, "⏹️ Timer stopped! You worked for 10 minutes.")
        adapter.assert_awaited_once_with("stop_timer", {})

    def test_unknown_tool_never_reaches_adapter(self):
        engine = make_engine()
        adapter = MagicMock()
        outcome = asyncio.run(engine.execute_tool("creat_tsk", {}, adapter))
        adapter.assert_not_called()
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.metadata.category, ErrorCategory.TOOL_NOT_FOUND.value)
        self.assertEqual(outcome.metadata.suggestions[0].tool_name, "create_task")
        self.assertEqual(outcome.metadata.tool_name, "creat_tsk")

    def test_denied_tool_gets_permission_guidance(self):
        engine = make_engine({PermissionTier.READ_ONLY})
        adapter = MagicMock()
        outcome = asyncio.run(engine.execute_tool("create_task", {"title": "x"}, adapter, confirmed=True))
        adapter.assert_not_called()
        self.assertEqual(outcome.metadata.category, ErrorCategory.PERMISSION_DENIED.value)
        self.assertEqual(outcome.metadata.required_tiers, [PermissionTier.MODIFY_TASKS])
        self.assertTrue(outcome.user_message.startswith("🔒 **Permission Required**"))

    def test_confirmation_required_before_execution(self):
        engine = make_engine()
        adapter = MagicMock()
        outcome = asyncio.run(engine.execute_tool("create_task", {"title": "Write report"}, adapter))
        adapter.assert_not_called()
        self.assertFalse(outcome.success)
        self.assertTrue(outcome.requires_confirmation)
        self.assertTrue(outcome.user_message.startswith("🔐 **Confirmation Required**"))
        self.assertEqual(outcome.metadata.confirmation_timeout_seconds, 30)
        self.assertEqual(outcome.data, {"tool_name": "create_task", "arguments": {"title": "Write report"}})

    def test_confirmed_call_executes(self):
        engine = make_engine()
        adapter = MagicMock(return_value={"success": True, "task": {"title": "Write report", "priority": 1}})
        outcome = asyncio.run(engine.execute_tool("create_task", {"title": "Write report"}, adapter, confirmed=True))
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.user_message, "✅ Created task: **Write report** (Medium priority)")

    def test_auto_approved_call_executes(self):
        engine = make_engine(auto_approve=["create_task"])
        adapter = MagicMock(return_value={"success": True, "task": {"title": "Write report"}})
        outcome = asyncio.run(engine.execute_tool("create_task", {"title": "Write report"}, adapter))
        self.assertTrue(outcome.success)

    def test_adapter_exception_is_described_as_retry(self):
        engine = make_engine()
        adapter = AsyncMock(side_effect=asyncio.TimeoutError())
        outcome = asyncio.run(engine.execute_tool("get_time_data", {}, adapter))
        self.assertTrue(outcome.is_retry)
        self.assertEqual(outcome.metadata.category, ErrorCategory.TIMEOUT_ERROR.value)
        self.assertEqual(outcome.metadata.retry_after_ms, 1000)
        self.assertEqual(outcome.metadata.max_attempts, 3)
        adapter.assert_awaited_once()

    def test_adapter_is_never_retried_internally(self):
        engine = make_engine()
        adapter = MagicMock(side_effect=ConnectionError("connection reset"))
        outcome = asyncio.run(engine.execute_tool("get_tasks", {}, adapter, attempt=2, max_attempts=4))
        self.assertEqual(adapter.call_count, 1)
        self.assertEqual(outcome.metadata.attempt, 2)
        self.assertEqual(outcome.metadata.max_attempts, 4)
        self.assertEqual(outcome.metadata.retry_after_ms, 4000)

    def test_exhausted_chain_is_terminal(self):
        engine = make_engine()
        adapter = MagicMock(side_effect=ConnectionError("connection reset"))
        outcome = asyncio.run(engine.execute_tool("get_tasks", {}, adapter, attempt=4, max_attempts=4))
        self.assertFalse(outcome.is_retry)
        self.assertTrue(outcome.user_message.startswith("🌐 **Network Error**"))

    def test_payload_failure_is_formatted(self):
        engine = make_engine()
        adapter = MagicMock(return_value={"success": False, "error": "Task not found"})
        outcome = asyncio.run(engine.execute_tool("get_tasks", {}, adapter))
        self.assertEqual(outcome.user_message, "❌ Get Tasks failed: Task not found")

    def test_execution_stats(self):
        engine = make_engine({PermissionTier.READ_ONLY})
        ok = MagicMock(return_value={"success": True, "tasks": []})
        broken = MagicMock(side_effect=ConnectionError("connection reset"))
        asyncio.run(engine.execute_tool("get_tasks", {}, ok))
        asyncio.run(engine.execute_tool("get_tasks", {}, broken))
        asyncio.run(engine.execute_tool("xyz", {}, ok))
        stats = engine.report_execution_stats()
        self.assertEqual(stats["total_attempts"], 3)
        self.assertEqual(stats["successful_executions"], 1)
        self.assertEqual(stats["failed_executions"], 2)
        self.assertEqual(stats["denied_executions"], 1)
        self.assertEqual(stats["retries_described"], 1)
        self.assertEqual(stats["fallbacks_used"], 1)
        self.assertEqual(stats["success_rate"], 33.33)

    def test_empty_stats(self):
        stats = make_engine().get_execution_stats()
        self.assertEqual(stats["total_attempts"], 0)
        self.assertEqual(stats["success_rate"], 0.0)


if __name__ == '__main__':
    unittest.main()
