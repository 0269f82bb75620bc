# START OF FILE taskpilot/tools/result_formatter.py
import json
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from taskpilot.tools.base import ExecutionOutcome, OutcomeMetadata, PermissionTier
from taskpilot.tools.catalogue import ToolCatalogue
from taskpilot.tools.messages import plural, round_half_up

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE
PRIORITY_NAMES = ["Low", "Medium", "High", "Urgent"]
MAX_LISTED_TASKS = 3
MAX_RECOMMENDATIONS = 3


# --- Payload variants, one per tool. Adapters send camelCase keys. ---

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TaskSummary(_Payload):
    title: str
    priority: Optional[int] = None
    status: str = "pending"
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    time_estimate: Optional[float] = Field(default=None, alias="timeEstimate")


class TaskListPayload(_Payload):
    tasks: Optional[List[TaskSummary]] = None


class TaskPayload(_Payload):
    task: TaskSummary


class TimerStartedPayload(_Payload):
    pass


class TimerSession(_Payload):
    duration: float = Field(..., ge=0, description="Session length in milliseconds.")


class TimerStoppedPayload(_Payload):
    session: TimerSession


class TimeData(_Payload):
    total_sessions: int = Field(..., alias="totalSessions")
    total_time: float = Field(..., alias="totalTime")
    average_session: float = Field(..., alias="averageSession")


class TimeDataPayload(_Payload):
    time_data: TimeData = Field(..., alias="timeData")


class TimeWindow(_Payload):
    start: str
    end: str


class ProductivityInsights(_Payload):
    most_productive_time: TimeWindow = Field(..., alias="mostProductiveTime")
    completion_rate: float = Field(..., alias="completionRate")
    focus_efficiency: float = Field(..., alias="focusEfficiency")


class ProductivityAnalysis(_Payload):
    insights: ProductivityInsights
    recommendations: List[str] = Field(default_factory=list)


class ProductivityPayload(_Payload):
    analysis: ProductivityAnalysis


def format_priority(priority: Optional[int]) -> str:
    if priority is not None and 0 <= priority < len(PRIORITY_NAMES):
        return PRIORITY_NAMES[priority]
    return "Medium"


def format_status(status: str) -> str:
    spaced = status.replace("_", " ", 1)
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), spaced)


def format_due_date(raw: str) -> str:
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return raw


def format_minutes(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def format_task_list(payload: TaskListPayload) -> str:
    tasks = payload.tasks or []
    if not tasks:
        return "📝 No tasks found matching your criteria"
    count = len(tasks)
    message = f"📝 Found {plural(count, 'task')}:\n\n"
    for index, task in enumerate(tasks[:MAX_LISTED_TASKS], 1):
        message += f"{index}. **{task.title}** ({format_priority(task.priority)}, {format_status(task.status)})\n"
        if task.due_date:
            message += f"   📅 Due: {format_due_date(task.due_date)}\n"
        if task.time_estimate:
            message += f"   ⏱️ Estimated: {format_minutes(task.time_estimate)} minutes\n"
    if count > MAX_LISTED_TASKS:
        remaining = count - MAX_LISTED_TASKS
        message += f"\n...and {remaining} more task{'' if remaining == 1 else 's'}"
    return message


def format_task_created(payload: TaskPayload) -> str:
    return f"✅ Created task: **{payload.task.title}** ({format_priority(payload.task.priority)} priority)"


def format_task_updated(payload: TaskPayload) -> str:
    return f"✅ Updated task: **{payload.task.title}** ({format_priority(payload.task.priority)} priority)"


def format_timer_started(_payload: TimerStartedPayload) -> str:
    return "⏱️ Timer started! Now tracking time for your task."


def format_timer_stopped(payload: TimerStoppedPayload) -> str:
    minutes = round_half_up(payload.session.duration / MS_PER_MINUTE)
    return f"⏹️ Timer stopped! You worked for {plural(minutes, 'minute')}."


def format_time_data(payload: TimeDataPayload) -> str:
    data = payload.time_data
    total_hours = round_half_up(data.total_time / MS_PER_HOUR * 10) / 10
    average_minutes = round_half_up(data.average_session / MS_PER_MINUTE)
    return (
        "📊 Time Summary:\n"
        f"• Sessions: {data.total_sessions}\n"
        f"• Total time: {total_hours:.1f} hours\n"
        f"• Average session: {average_minutes} minutes"
    )


def format_productivity(payload: ProductivityPayload) -> str:
    insights = payload.analysis.insights
    message = "📈 Productivity Analysis:\n\n"
    message += "🎯 **Key Insights:**\n"
    message += f"• Most productive: {insights.most_productive_time.start}-{insights.most_productive_time.end}\n"
    message += f"• Completion rate: {round_half_up(insights.completion_rate * 100)}%\n"
    message += f"• Focus efficiency: {round_half_up(insights.focus_efficiency * 100)}%\n\n"
    recommendations = payload.analysis.recommendations[:MAX_RECOMMENDATIONS]
    if recommendations:
        message += "💡 **Recommendations:**\n"
        for index, recommendation in enumerate(recommendations, 1):
            message += f"{index}. {recommendation}\n"
    return message


# Tool name -> (payload variant, formatter). Closed set; anything else gets the generic message.
PAYLOAD_FORMATTERS: Dict[str, Tuple[Type[_Payload], Callable[[Any], str]]] = {
    "get_tasks": (TaskListPayload, format_task_list),
    "create_task": (TaskPayload, format_task_created),
    "update_task": (TaskPayload, format_task_updated),
    "start_timer": (TimerStartedPayload, format_timer_started),
    "stop_timer": (TimerStoppedPayload, format_timer_stopped),
    "get_time_data": (TimeDataPayload, format_time_data),
    "analyze_productivity": (ProductivityPayload, format_productivity),
}


class ResultFormatter:
    """Turns a tool adapter's success/failure payload into an ExecutionOutcome."""

    def __init__(self, catalogue: Optional[ToolCatalogue] = None):
        self.catalogue = catalogue or ToolCatalogue()

    def _parse(self, raw_payload: Union[str, bytes, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if isinstance(raw_payload, dict):
            return raw_payload
        if isinstance(raw_payload, (str, bytes, bytearray)):
            try:
                parsed = json.loads(raw_payload)
            except (TypeError, ValueError):
                return None
            return parsed if isinstance(parsed, dict) else None
        return None

    def _invalid(self, tool_name: str, metadata: OutcomeMetadata, detail: str) -> ExecutionOutcome:
        return ExecutionOutcome(
            success=False,
            error_message=detail,
            user_message=f"❌ Error executing {tool_name}: Invalid response format",
            metadata=metadata,
        )

    def format_result(
        self,
        tool_name: str,
        raw_payload: Union[str, bytes, Dict[str, Any]],
        execution_time_ms: float,
        granted_tiers: Optional[List[PermissionTier]] = None,
    ) -> ExecutionOutcome:
        metadata = OutcomeMetadata(
            execution_time_ms=execution_time_ms,
            tool_name=tool_name,
            granted_tiers=list(granted_tiers or []),
        )
        payload = self._parse(raw_payload)
        if payload is None:
            logger.warning(f"ResultFormatter: Could not parse result of '{tool_name}' as a JSON object.")
            return self._invalid(tool_name, metadata, "Failed to parse tool result")

        display_name = self.catalogue.display_name(tool_name)
        success = bool(payload.get("success"))
        if not success:
            reason = payload.get("error") or "Unknown error"
            return ExecutionOutcome(
                success=False,
                data=payload,
                error_message=str(reason),
                user_message=f"❌ {display_name} failed: {reason}",
                metadata=metadata,
            )

        variant = PAYLOAD_FORMATTERS.get(tool_name)
        if variant is None:
            return ExecutionOutcome(
                success=True, data=payload, user_message=f"✅ {display_name} completed successfully", metadata=metadata
            )

        model_cls, formatter = variant
        try:
            typed_payload = model_cls.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"ResultFormatter: Payload for '{tool_name}' does not match {model_cls.__name__}: {e.error_count()} error(s)")
            return self._invalid(tool_name, metadata, f"Unexpected payload shape for {tool_name}")

        try:
            user_message = formatter(typed_payload)
        except Exception as e:
            logger.error(f"ResultFormatter: Formatting result of '{tool_name}' failed: {e}", exc_info=True)
            return ExecutionOutcome(
                success=False,
                data=payload,
                error_message=str(e),
                user_message=f"❌ {display_name} failed: {e}",
                metadata=metadata,
            )
        return ExecutionOutcome(success=True, data=payload, user_message=user_message, metadata=metadata)
