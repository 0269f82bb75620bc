# START OF FILE taskpilot/config/settings.py
import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from taskpilot.tools.base import PermissionTier, sort_tiers
from taskpilot.tools.catalogue import ToolCatalogue
from taskpilot.tools.errors import ErrorCategory

logger = logging.getLogger(__name__)

# Define base directory relative to this file's location
BASE_DIR = Path(__file__).resolve().parent.parent.parent

DEFAULT_DOTENV_PATH = BASE_DIR / '.env'
DEFAULT_RECOVERY_CONFIG_PATH = BASE_DIR / 'tool_recovery.yaml'
DEFAULT_GRANTED_TIERS = "read_only,modify_tasks,timer_control"
DEFAULT_CONFIRMATION_TIMEOUT_SECONDS = 30
RECOVERY_OVERRIDE_KEYS = ("max_retries", "base_delay_ms", "backoff_multiplier")


def load_environment(dotenv_path: Optional[Path] = None) -> bool:
    """Loads a .env file into os.environ. Returns False when the file does not exist."""
    path = Path(dotenv_path) if dotenv_path else DEFAULT_DOTENV_PATH
    if not path.exists():
        logger.debug(f".env file not found at {path}. Using process environment only.")
        return False
    load_dotenv(dotenv_path=path, override=True)
    logger.info(f"Loaded environment variables from: {path} (Override=True)")
    return True


class Settings:
    """
    Tool pipeline settings, loaded from environment variables and the optional
    recovery override file (tool_recovery.yaml).

    The agent loop builds one instance at startup and hands it to
    ToolExecutionEngine.from_settings.
    """

    def __init__(self, load_env: bool = True, dotenv_path: Optional[Path] = None):
        if load_env:
            load_environment(dotenv_path)

        # --- Permissions ---
        self.TOOL_GRANTED_TIERS: List[PermissionTier] = self._parse_tiers(
            os.getenv("TOOL_GRANTED_TIERS", DEFAULT_GRANTED_TIERS)
        )
        self.TOOL_AUTO_APPROVE: List[str] = self._parse_auto_approve(os.getenv("TOOL_AUTO_APPROVE", ""))

        try:
            self.TOOL_CONFIRMATION_TIMEOUT_SECONDS: int = int(
                os.getenv("TOOL_CONFIRMATION_TIMEOUT_SECONDS", str(DEFAULT_CONFIRMATION_TIMEOUT_SECONDS))
            )
            if self.TOOL_CONFIRMATION_TIMEOUT_SECONDS <= 0:
                raise ValueError("must be positive")
        except ValueError:
            logger.warning(
                f"Invalid TOOL_CONFIRMATION_TIMEOUT_SECONDS, using default {DEFAULT_CONFIRMATION_TIMEOUT_SECONDS}."
            )
            self.TOOL_CONFIRMATION_TIMEOUT_SECONDS = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS

        # --- Recovery overrides ---
        self.TOOL_RECOVERY_CONFIG_PATH: Path = Path(
            os.getenv("TOOL_RECOVERY_CONFIG_PATH", str(DEFAULT_RECOVERY_CONFIG_PATH))
        )
        self.RECOVERY_POLICY_OVERRIDES: Dict[str, Dict[str, Any]] = self._load_recovery_overrides()

        # --- Logging ---
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        if not isinstance(getattr(logging, self.LOG_LEVEL, None), int):
            logger.warning(f"Invalid LOG_LEVEL '{self.LOG_LEVEL}'. Defaulting to 'INFO'.")
            self.LOG_LEVEL = "INFO"
        log_dir = os.getenv("LOG_DIR")
        self.LOG_DIR: Optional[Path] = Path(log_dir) if log_dir else None

        logger.info(
            f"Settings loaded: granted tiers {[t.label for t in self.TOOL_GRANTED_TIERS]}, "
            f"auto-approve {self.TOOL_AUTO_APPROVE}, "
            f"recovery overrides for {sorted(self.RECOVERY_POLICY_OVERRIDES.keys())}"
        )

    def _parse_tiers(self, raw: str) -> List[PermissionTier]:
        tiers = []
        for token in raw.split(","):
            if not token.strip():
                continue
            try:
                tiers.append(PermissionTier.parse(token))
            except ValueError:
                logger.warning(f"Ignoring unknown permission tier '{token.strip()}' in TOOL_GRANTED_TIERS.")
        if not tiers:
            logger.warning(f"TOOL_GRANTED_TIERS has no valid tiers. Using default '{DEFAULT_GRANTED_TIERS}'.")
            tiers = [PermissionTier.parse(token) for token in DEFAULT_GRANTED_TIERS.split(",")]
        return sort_tiers(tiers)

    def _parse_auto_approve(self, raw: str) -> List[str]:
        known = ToolCatalogue()
        tool_names = []
        for token in raw.split(","):
            name = token.strip()
            if not name:
                continue
            if name not in known:
                logger.warning(f"TOOL_AUTO_APPROVE names unknown tool '{name}'. It will never match.")
            if name not in tool_names:
                tool_names.append(name)
        return tool_names

    def _load_recovery_overrides(self) -> Dict[str, Dict[str, Any]]:
        """Loads per-category numeric overrides from the recovery YAML file."""
        path = self.TOOL_RECOVERY_CONFIG_PATH
        if not path.exists():
            logger.debug(f"Recovery override file not found at {path}. Using built-in recovery policies.")
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error decoding YAML from {path}: {e}. Using built-in recovery policies.")
            return {}
        except OSError as e:
            logger.error(f"Could not read recovery override file {path}: {e}. Using built-in recovery policies.")
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict) or not isinstance(data.get("recovery"), dict):
            logger.error(f"Recovery file {path} has incorrect structure. Expected a 'recovery' mapping. Ignoring it.")
            return {}

        overrides: Dict[str, Dict[str, Any]] = {}
        for category_name, values in data["recovery"].items():
            key = str(category_name).upper()
            if key not in ErrorCategory.__members__:
                logger.warning(f"Recovery file {path}: unknown category '{category_name}' ignored.")
                continue
            if not isinstance(values, dict):
                logger.warning(f"Recovery file {path}: entry for {key} is not a mapping, ignored.")
                continue
            parsed = self._parse_override_values(key, values)
            if parsed:
                overrides[key] = parsed
        logger.info(f"Loaded recovery overrides for {len(overrides)} categories from {path}.")
        return overrides

    def _parse_override_values(self, category: str, values: Dict[str, Any]) -> Dict[str, Any]:
        parsed: Dict[str, Any] = {}
        for key, value in values.items():
            if key not in RECOVERY_OVERRIDE_KEYS:
                logger.warning(f"Recovery override for {category}: unsupported key '{key}' ignored.")
                continue
            try:
                parsed[key] = float(value) if key == "backoff_multiplier" else int(value)
            except (TypeError, ValueError):
                logger.warning(f"Recovery override for {category}: invalid {key} '{value}' ignored.")
                continue
            if parsed[key] < 0 or (key == "backoff_multiplier" and parsed[key] == 0):
                logger.warning(f"Recovery override for {category}: {key} must be positive, ignored.")
                del parsed[key]
        return parsed
