# START OF FILE taskpilot/tools/base.py
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class PermissionTier(str, Enum):
    """Capability tiers a caller may hold. FULL_ACCESS satisfies any requirement."""
    READ_ONLY = "read_only"
    MODIFY_TASKS = "modify_tasks"
    TIMER_CONTROL = "timer_control"
    FULL_ACCESS = "full_access"

    @property
    def label(self) -> str:
        return _TIER_LABELS[self]

    @property
    def display_name(self) -> str:
        return _TIER_DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, raw: str) -> "PermissionTier":
        """Accepts a tier value ('modify_tasks'), label ('ModifyTasks') or member name."""
        token = raw.strip()
        for tier in cls:
            if token.lower() in (tier.value, tier.label.lower(), tier.name.lower()):
                return tier
        raise ValueError(f"Unknown permission tier: '{raw}'")


_TIER_LABELS = {
    PermissionTier.READ_ONLY: "ReadOnly",
    PermissionTier.MODIFY_TASKS: "ModifyTasks",
    PermissionTier.TIMER_CONTROL: "TimerControl",
    PermissionTier.FULL_ACCESS: "FullAccess",
}

_TIER_DISPLAY_NAMES = {
    PermissionTier.READ_ONLY: "Read Only",
    PermissionTier.MODIFY_TASKS: "Task Modification",
    PermissionTier.TIMER_CONTROL: "Timer Control",
    PermissionTier.FULL_ACCESS: "Full Access",
}

TIER_ORDER: List[PermissionTier] = [
    PermissionTier.READ_ONLY,
    PermissionTier.MODIFY_TASKS,
    PermissionTier.TIMER_CONTROL,
    PermissionTier.FULL_ACCESS,
]


def sort_tiers(tiers: Iterable[PermissionTier]) -> List[PermissionTier]:
    """Returns the tiers de-duplicated and in canonical order."""
    unique = set(tiers)
    return [tier for tier in TIER_ORDER if tier in unique]


class ToolDescriptor(BaseModel):
    """Static permission configuration for one tool in the catalogue."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique tool name, matched exactly.")
    required_tiers: FrozenSet[PermissionTier] = Field(..., description="Every tier the caller must hold.")
    requires_confirmation: bool = Field(default=False, description="Whether the user must approve each call.")
    description: str = Field(..., description="Human readable summary of the tool.")
    display_name: str = Field(..., description="Title-cased name shown in chat messages.")
    keywords: List[str] = Field(default_factory=list, description="Words used to suggest this tool for misspelled names.")


class ExecutionPreferences(BaseModel):
    """Caller-side grants and approval preferences. Mutated only by the owning agent loop."""
    auto_approve: Set[str] = Field(default_factory=set)
    granted_tiers: Set[PermissionTier] = Field(default_factory=lambda: {PermissionTier.READ_ONLY})
    confirmation_timeout_seconds: int = Field(default=30)


class AlternativeSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool_name: str
    description: str
    confidence_score: int
    required_tiers: List[PermissionTier] = Field(default_factory=list)


class OutcomeMetadata(BaseModel):
    execution_time_ms: float = 0
    tool_name: str
    granted_tiers: List[PermissionTier] = Field(default_factory=list)
    category: Optional[str] = None
    retry_after_ms: Optional[int] = None
    attempt: Optional[int] = None
    max_attempts: Optional[int] = None
    suggestions: Optional[List[AlternativeSuggestion]] = None
    required_tiers: Optional[List[PermissionTier]] = None
    confirmation_timeout_seconds: Optional[int] = None


class ExecutionOutcome(BaseModel):
    """What the agent loop and the chat UI receive for every tool call."""
    success: bool
    data: Optional[Any] = None
    error_message: Optional[str] = None
    user_message: str
    requires_confirmation: Optional[bool] = None
    metadata: OutcomeMetadata

    @property
    def is_retry(self) -> bool:
        return not self.success and self.metadata.retry_after_ms is not None


class ValidationResult(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    requires_confirmation: bool = False
    missing_tiers: List[PermissionTier] = Field(default_factory=list)


class RetryContext(BaseModel):
    """
    Caller-maintained state for one logical retry chain.

    `attempt` starts at 1 and is incremented by the caller on every resubmission;
    nothing in this package increments it. Mappings may use the agent loop's
    camelCase keys (`toolName`, `maxAttempts`, ...).
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    tool_name: str = Field(..., alias="toolName")
    arguments: Dict[str, Any] = Field(default_factory=dict)
    granted_tiers: List[PermissionTier] = Field(default_factory=list, alias="grantedTiers")
    attempt: int = Field(default=1, ge=1)
    max_attempts: int = Field(default=1, ge=1, alias="maxAttempts")
    prior_errors: List[Any] = Field(default_factory=list, alias="priorErrors")
