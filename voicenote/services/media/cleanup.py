"""Removal of transient job files."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    """
    Outcome of one cleanup pass.

    Attributes:
        removed: Paths deleted
        missing: Paths that did not exist
        failed: Paths that could not be deleted
    """

    removed: list[Path] = field(default_factory=list)
    missing: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def cleanup_files(paths: Iterable[Path]) -> CleanupResult:
    """
    Remove each path, continuing past failures.

    A missing file is logged and skipped; any other error is logged
    per file and does not stop the remaining removals.
    """
    result = CleanupResult()

    for path in paths:
        path = Path(path)
        try:
            path.unlink()
            result.removed.append(path)
            logger.debug(f"Removed {path}")
        except FileNotFoundError:
            result.missing.append(path)
            logger.debug(f"Nothing to remove at {path}")
        except OSError as e:
            result.failed.append(path)
            logger.error(f"Failed to remove file {path}: {e}")

    return result
