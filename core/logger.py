import logging
import os
from config.settings import LOG_FILE

os.makedirs(os.path.dirname(LOG_FILE), exist_ok=True)

logging.basicConfig(
    filename=str(LOG_FILE),
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)

logger = logging.getLogger("vm-tools")


def log_event(message: str) -> None:
    """
    Write a single line event to the main vm-tools.log file.
    """
    logger.info(message)


def enable_verbose() -> None:
    """
    Mirror log events to stderr at DEBUG level (used by -v/--verbose).
    """
    if any(getattr(h, "_vm_tools_console", False) for h in logger.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    handler._vm_tools_console = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
