# START OF FILE taskpilot/tools/messages.py
import math
from typing import Callable, List, Optional, Sequence

from taskpilot.tools.base import AlternativeSuggestion, PermissionTier

TranslationFunction = Callable[[str], str]


def identity_translation(key: str) -> str:
    return key


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


# --- Remediation bullets, keyed by the lower-cased substring that triggers them ---
TOOL_VALIDATION_GUIDANCE = {
    "create_task": [
        ("title", ["Provide a task title (e.g., \"Review project proposal\")", "Make sure the title is not empty"]),
        ("priority", ["Use priority values: 0 (Low), 1 (Medium), 2 (High), 3 (Urgent)"]),
    ],
    "update_task": [
        ("taskid", ["Provide a valid task ID", "You can get task IDs using the get_tasks tool"]),
    ],
    "start_timer": [
        ("taskid", ["Provide a valid task ID to start timing", "Use get_tasks to find the task ID"]),
    ],
    "get_time_data": [
        ("date", ["Use ISO date format (YYYY-MM-DD)", "Example: \"2024-01-15\""]),
    ],
}

GENERIC_VALIDATION_GUIDANCE = [
    (("required",), ["Check that all required parameters are provided", "Make sure parameter names are spelled correctly"]),
    (("type", "format"), ["Check parameter types (string, number, boolean)", "Ensure dates are in correct format"]),
]

DEFAULT_VALIDATION_GUIDANCE = ["Check the parameter format and try again", "Refer to the tool documentation for correct usage"]

DATABASE_REMEDIATION = [
    "Wait a moment and try again",
    "Check if the application has sufficient disk space",
    "Restart the application if the problem persists",
]
NETWORK_REMEDIATION = [
    "Check your internet connection",
    "Make sure the AI service is reachable",
    "Try again in a few moments",
]
TIMEOUT_REMEDIATION = [
    "Try again in a moment",
    "Narrow the request (fewer tasks or a shorter date range)",
]
RESOURCE_REMEDIATION = [
    "Wait a minute before trying again",
    "Close other heavy workloads if the model is running locally",
]


class MessageTemplates:
    """
    Deterministic user-facing text for terminal and retry outcomes.

    Every headline and bullet goes through the translation function, which
    defaults to identity.
    """

    def __init__(self, translate: Optional[TranslationFunction] = None):
        self.translate: TranslationFunction = translate or identity_translation

    def _bullets(self, items: Sequence[str]) -> str:
        return "\n".join(f"• {self.translate(item)}" for item in items)

    # --- Fallback outcomes ---

    def tool_not_found_with_suggestions(
        self, tool_name: str, suggestions: List[AlternativeSuggestion], all_tools: List[str]
    ) -> str:
        message = f"❌ Tool \"{tool_name}\" not found.\n\n"
        if suggestions:
            message += f"💡 **{self.translate('Did you mean one of these?')}**\n"
            for index, suggestion in enumerate(suggestions, 1):
                message += f"{index}. **{suggestion.tool_name}** - {suggestion.description}\n"
        else:
            message += f"💡 **{self.translate('Available tools:')}** {', '.join(all_tools)}"
        return message

    def permission_elevation(self, display_name: str, missing: List[PermissionTier]) -> str:
        return (
            f"🔒 **{self.translate('Permission Required')}**\n\n"
            f"The tool \"{display_name}\" requires additional permissions.\n\n"
            f"**{self.translate('Required permissions:')}** {format_tiers(missing)}\n\n"
            f"{self.translate('Please check your settings or contact an administrator to grant the necessary permissions.')}"
        )

    def validation_guidance(self, error_message: str, guidance: List[str]) -> str:
        return (
            f"⚠️ **{self.translate('Invalid Input')}**\n\n"
            f"{error_message}\n\n"
            f"**{self.translate('How to fix:')}**\n{self._bullets(guidance)}"
        )

    def database_fallback(self) -> str:
        return (
            f"💾 **{self.translate('Database Issue')}**\n\n"
            f"{self.translate('There was a problem accessing the database. This might be temporary.')}\n\n"
            f"**{self.translate('What you can try:')}**\n{self._bullets(DATABASE_REMEDIATION)}"
        )

    # --- Terminal outcomes ---

    def tool_not_found(self, tool_name: str, all_tools: List[str]) -> str:
        return (
            f"❌ **{self.translate('Tool Not Found')}**\n\n"
            f"The tool \"{tool_name}\" doesn't exist. Check the spelling or use one of the available tools: "
            f"{', '.join(all_tools)}"
        )

    def permission_denied(self, display_name: str, missing: List[PermissionTier]) -> str:
        return (
            f"🔒 **{self.translate('Permission Denied')}**\n\n"
            f"{display_name} requires additional permissions: {format_tiers(missing)}"
        )

    def validation_error(self, display_name: str, error_message: str) -> str:
        return f"⚠️ **{self.translate('Invalid Input')}**\n\n{display_name}: {error_message}"

    def database_error(self, display_name: str) -> str:
        return (
            f"💾 **{self.translate('Database Error')}**\n\n"
            f"{display_name} couldn't access the database.\n\n{self._bullets(DATABASE_REMEDIATION)}"
        )

    def network_error(self, display_name: str) -> str:
        return (
            f"🌐 **{self.translate('Network Error')}**\n\n"
            f"{display_name} couldn't connect.\n\n{self._bullets(NETWORK_REMEDIATION)}"
        )

    def timeout_error(self, display_name: str) -> str:
        return (
            f"⏱️ **{self.translate('Timeout')}**\n\n"
            f"{display_name} took too long to respond.\n\n{self._bullets(TIMEOUT_REMEDIATION)}"
        )

    def resource_error(self, display_name: str) -> str:
        return (
            f"⚡ **{self.translate('Resource Error')}**\n\n"
            f"{display_name} couldn't access required resources.\n\n{self._bullets(RESOURCE_REMEDIATION)}"
        )

    def generic_failure(self, display_name: str, error_message: str) -> str:
        return f"❌ {display_name} failed: {error_message}"

    def retry(self, display_name: str, attempt: int, delay_ms: int) -> str:
        seconds = round_half_up(delay_ms / 1000)
        return (
            f"🔄 **{self.translate('Retrying')} {display_name}**\n\n"
            f"Attempt {attempt}, retrying in {plural(seconds, 'second')}..."
        )

    def confirmation_required(self, display_name: str, timeout_seconds: int) -> str:
        return (
            f"🔐 **{self.translate('Confirmation Required')}**\n\n"
            f"{display_name} will change your data. Approve within {plural(timeout_seconds, 'second')} to continue."
        )


def format_tiers(tiers: List[PermissionTier]) -> str:
    return ", ".join(tier.display_name for tier in tiers)


def validation_guidance_for(tool_name: str, error_message: str) -> List[str]:
    """Tool-specific remediation bullets first, then generic ones."""
    lowered = (error_message or "").lower()
    for trigger, bullets in TOOL_VALIDATION_GUIDANCE.get(tool_name, []):
        if trigger in lowered:
            return list(bullets)
    for triggers, bullets in GENERIC_VALIDATION_GUIDANCE:
        if any(trigger in lowered for trigger in triggers):
            return list(bullets)
    return list(DEFAULT_VALIDATION_GUIDANCE)
