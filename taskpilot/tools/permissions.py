# START OF FILE taskpilot/tools/permissions.py
import logging
from typing import Any, Dict, Iterable, List, Optional

from taskpilot.tools.base import (
    ExecutionPreferences, PermissionTier, ToolDescriptor, ValidationResult, sort_tiers
)
from taskpilot.tools.catalogue import ToolCatalogue

logger = logging.getLogger(__name__)


class PermissionModel:
    """
    Static per-tool permission configuration plus the caller's current grants.

    The preferences are read-mostly state owned by the agent loop. They are replaced
    only through `set_permissions` / `update_preferences`, never while a validation
    is in flight, so no locking is done here.
    """

    def __init__(
        self,
        catalogue: Optional[ToolCatalogue] = None,
        preferences: Optional[ExecutionPreferences] = None,
    ):
        self.catalogue = catalogue or ToolCatalogue()
        self.preferences = preferences or ExecutionPreferences()

    @property
    def granted_tiers(self) -> List[PermissionTier]:
        return sort_tiers(self.preferences.granted_tiers)

    def get_descriptor(self, tool_name: str) -> Optional[ToolDescriptor]:
        return self.catalogue.get(tool_name)

    def missing_tiers(self, tool_name: str) -> List[PermissionTier]:
        """Required tiers of the tool that the caller does not hold. Empty for unknown tools."""
        descriptor = self.catalogue.get(tool_name)
        if not descriptor:
            return []
        granted = self.preferences.granted_tiers
        if PermissionTier.FULL_ACCESS in granted:
            return []
        return sort_tiers(tier for tier in descriptor.required_tiers if tier not in granted)

    def has_permission(self, tool_name: str) -> bool:
        if tool_name not in self.catalogue:
            return False
        return not self.missing_tiers(tool_name)

    def requires_confirmation(self, tool_name: str) -> bool:
        descriptor = self.catalogue.get(tool_name)
        if not descriptor:
            return True  # unknown tools are never auto-approved
        if tool_name in self.preferences.auto_approve:
            return False
        return descriptor.requires_confirmation

    def set_permissions(self, tiers: Iterable[PermissionTier]) -> None:
        tiers = set(tiers)
        self.preferences = self.preferences.model_copy(update={"granted_tiers": tiers})
        logger.info(f"PermissionModel: Granted tiers set to {[t.label for t in sort_tiers(tiers)]}")

    def update_preferences(self, **changes: Any) -> None:
        """Merges the given fields into the current preferences (auto_approve, granted_tiers, ...)."""
        unknown = [key for key in changes if key not in ExecutionPreferences.model_fields]
        if unknown:
            raise ValueError(f"Unknown preference fields: {unknown}")
        merged = self.preferences.model_dump()
        merged.update(changes)
        self.preferences = ExecutionPreferences(**merged)
        logger.debug(f"PermissionModel: Preferences updated: {list(changes.keys())}")


class ExecutionValidator:
    """Decides allow/deny and confirmation for a proposed tool call. Permission always precedes confirmation."""

    def __init__(self, permission_model: PermissionModel):
        self.permission_model = permission_model

    def validate_execution(self, tool_name: str, args: Optional[Dict[str, Any]] = None) -> ValidationResult:
        descriptor = self.permission_model.get_descriptor(tool_name)
        if descriptor is None:
            logger.debug(f"ExecutionValidator: Rejected unknown tool '{tool_name}'")
            return ValidationResult(allowed=False, reason=f"Unknown tool: {tool_name}", requires_confirmation=False)

        missing = self.permission_model.missing_tiers(tool_name)
        if missing:
            reason = (
                f"Insufficient permissions for '{tool_name}'. "
                f"Missing: {', '.join(tier.label for tier in missing)}"
            )
            logger.info(f"ExecutionValidator: {reason}")
            return ValidationResult(
                allowed=False, reason=reason, requires_confirmation=False, missing_tiers=missing
            )

        return ValidationResult(
            allowed=True,
            requires_confirmation=self.permission_model.requires_confirmation(tool_name),
        )

    def get_available_tools(self) -> List[str]:
        return [name for name in self.permission_model.catalogue.names() if self.permission_model.has_permission(name)]
