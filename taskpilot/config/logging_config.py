# START OF FILE taskpilot/config/logging_config.py
import logging
import time
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Union[str, int] = "INFO", log_dir: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """
    Configures the root logger for the agent loop hosting the tool pipeline.

    Console output always; a timestamped log file as well when `log_dir` is given.
    Unknown level names fall back to INFO.

    Returns:
        Optional[Path]: The log file in use, or None when logging to console only.
    """
    if isinstance(level, int):
        log_level = level
        log_level_str = logging.getLevelName(level)
    else:
        log_level_str = str(level).upper()
        log_level = getattr(logging, log_level_str, None)
        if not isinstance(log_level, int):
            log_level_str, log_level = "INFO", logging.INFO

    # Configure root logger
    logging.basicConfig(level=log_level, format=LOG_FORMAT, force=True)

    log_file: Optional[Path] = None
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"taskpilot_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(log_level)
        logging.getLogger().addHandler(file_handler)

    logger = logging.getLogger(__name__)
    target = f"Console & File: {log_file.name}" if log_file else "Console"
    logger.info(f"--- Logging Initialized (Level: {log_level_str}, {target}) ---")
    return log_file
