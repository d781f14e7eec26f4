"""Process liveness and desktop notifications (macOS)."""

import json
import logging
import subprocess

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "JIRA OmniFocus Sync"


def app_is_running(app_name: str) -> bool:
    """True if a process named exactly app_name is running."""
    try:
        result = subprocess.run(["pgrep", "-x", app_name], capture_output=True, text=True)
    except FileNotFoundError:
        logger.warning("pgrep not available; assuming %s is not running", app_name)
        return False
    return result.returncode == 0


def notify(message: str, subtitle: str | None = None, title: str = NOTIFICATION_TITLE) -> bool:
    """Show a desktop notification. Returns False if it could not be shown."""
    # json.dumps gives a correctly escaped AppleScript string literal for plain text
    script = f"display notification {json.dumps(message)} with title {json.dumps(title)}"
    if subtitle:
        script += f" subtitle {json.dumps(subtitle)}"
    script += ' sound name "default"'
    try:
        result = subprocess.run(["osascript", "-e", script], capture_output=True, text=True)
    except FileNotFoundError:
        logger.warning("osascript not available; notification not shown: %s", message)
        return False
    if result.returncode != 0:
        logger.warning("notification failed: %s", result.stderr.strip())
        return False
    return True
