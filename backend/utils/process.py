"""
Subprocess helper used to ask installed software for its version.
"""

import logging
import subprocess
from typing import Optional

logger = logging.getLogger(__name__)


def run_capture(
    cmd: list[str],
    cwd: Optional[str] = None,
    *,
    timeout: int = 30,
) -> tuple[int, str]:
    """Run *cmd* and return (returncode, combined output). Never raises."""
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
        return result.returncode, result.stdout.strip()
    except subprocess.TimeoutExpired:
        logger.warning("%s timed out after %ss", cmd[0], timeout)
        return -1, "[ERROR] Command timed out."
    except FileNotFoundError:
        return -1, f"[ERROR] Command not found: {cmd[0]}"
    except OSError as exc:
        return -1, f"[ERROR] {exc}"
