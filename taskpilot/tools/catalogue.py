# START OF FILE taskpilot/tools/catalogue.py
from typing import Dict, Iterable, List, Optional

from taskpilot.tools.base import PermissionTier, ToolDescriptor

# Fixed tool catalogue, built once at import and never mutated.
DEFAULT_TOOL_CATALOGUE: List[ToolDescriptor] = [
    ToolDescriptor(
        name="create_task",
        required_tiers=frozenset({PermissionTier.MODIFY_TASKS}),
        requires_confirmation=True,
        description="Create a new task with title, description, and priority",
        display_name="Create Task",
        keywords=["create", "add", "new", "make", "task"],
    ),
    ToolDescriptor(
        name="update_task",
        required_tiers=frozenset({PermissionTier.MODIFY_TASKS}),
        requires_confirmation=True,
        description="Update an existing task's properties",
        display_name="Update Task",
        keywords=["update", "edit", "modify", "change", "task"],
    ),
    ToolDescriptor(
        name="get_tasks",
        required_tiers=frozenset({PermissionTier.READ_ONLY}),
        requires_confirmation=False,
        description="Retrieve tasks with optional filtering",
        display_name="Get Tasks",
        keywords=["get", "list", "show", "find", "tasks"],
    ),
    ToolDescriptor(
        name="start_timer",
        required_tiers=frozenset({PermissionTier.TIMER_CONTROL}),
        requires_confirmation=False,
        description="Start a timer for a specific task",
        display_name="Start Timer",
        keywords=["start", "begin", "timer", "time"],
    ),
    ToolDescriptor(
        name="stop_timer",
        required_tiers=frozenset({PermissionTier.TIMER_CONTROL}),
        requires_confirmation=False,
        description="Stop the currently running timer",
        display_name="Stop Timer",
        keywords=["stop", "end", "finish", "timer"],
    ),
    ToolDescriptor(
        name="get_time_data",
        required_tiers=frozenset({PermissionTier.READ_ONLY}),
        requires_confirmation=False,
        description="Get time tracking data and statistics",
        display_name="Get Time Data",
        keywords=["time", "data", "stats", "report"],
    ),
    ToolDescriptor(
        name="analyze_productivity",
        required_tiers=frozenset({PermissionTier.READ_ONLY}),
        requires_confirmation=False,
        description="Analyze productivity patterns and insights",
        display_name="Analyze Productivity",
        keywords=["analyze", "analysis", "productivity", "insights"],
    ),
]


class ToolCatalogue:
    """Exact-name lookup over a fixed list of tool descriptors."""

    def __init__(self, descriptors: Optional[Iterable[ToolDescriptor]] = None):
        self._descriptors: Dict[str, ToolDescriptor] = {}
        for descriptor in (DEFAULT_TOOL_CATALOGUE if descriptors is None else descriptors):
            if descriptor.name in self._descriptors:
                raise ValueError(f"Duplicate tool name in catalogue: '{descriptor.name}'")
            self._descriptors[descriptor.name] = descriptor

    def get(self, tool_name: Optional[str]) -> Optional[ToolDescriptor]:
        if not tool_name:
            return None
        return self._descriptors.get(tool_name)

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self._descriptors

    def __iter__(self):
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    def names(self) -> List[str]:
        return list(self._descriptors.keys())

    def display_name(self, tool_name: str) -> str:
        descriptor = self.get(tool_name)
        if descriptor:
            return descriptor.display_name
        return tool_name.replace("_", " ")
