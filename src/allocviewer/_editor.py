import logging
import os
import shlex
import subprocess
from typing import List

from allocviewer._errors import AllocViewerError

logger = logging.getLogger(__name__)

GOTO_EDITORS = {"code", "code-insiders", "codium", "vscodium"}
COLON_EDITORS = {"subl", "sublime_text", "atom", "zed", "mate"}


def editor_command(path: str, lineno: int) -> List[str]:
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"
    command = shlex.split(editor)
    name = os.path.basename(command[0])
    if name in GOTO_EDITORS:
        return [*command, "--goto", f"{path}:{lineno}"]
    if name in COLON_EDITORS:
        return [*command, f"{path}:{lineno}"]
    return [*command, f"+{lineno}", path]


def open_in_editor(path: str, lineno: int) -> None:
    """Open ``path`` at ``lineno`` in the user's editor and wait for it."""
    command = editor_command(path, lineno)
    logger.debug("Running editor: %s", shlex.join(command))
    try:
        process = subprocess.run(command, check=False)
    except OSError as error:
        raise AllocViewerError(f"Could not start editor {command[0]!r}: {error}")
    if process.returncode:
        logger.warning("Editor exited with status %d", process.returncode)
