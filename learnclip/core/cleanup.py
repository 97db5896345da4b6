"""
Cleanup: delete intermediate artifacts after a task completes.
Failures are logged and never raised.
"""

import shutil
import logging
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


def cleanup_artifacts(paths: Iterable[Path], workspace: Optional[Path] = None,
                      keep_debug: bool = False) -> int:
    """
    Delete the given intermediate files, then the task workspace directory.

    If keep_debug is True nothing is touched so the files can be inspected.
    Returns the number of files deleted.
    """
    if keep_debug:
        logger.info("Keeping intermediate artifacts in %s", workspace)
        return 0

    deleted = 0
    for path in paths:
        path = Path(path)
        if not path.exists():
            continue
        try:
            path.unlink()
            deleted += 1
            logger.debug("Deleted: %s", path)
        except OSError as e:
            logger.warning("Failed to delete %s: %s", path, e)

    # Workspace is task-owned; whatever else a tool left there goes too
    if workspace is not None:
        workspace = Path(workspace)
        if workspace.exists():
            try:
                shutil.rmtree(workspace)
                logger.debug("Removed workspace: %s", workspace)
            except OSError as e:
                logger.warning("Failed to remove workspace %s: %s", workspace, e)

    return deleted
