"""Helpers to discover quiz import files under a local folder.

The loader scans supported extensions recursively and returns a list
of `Path` objects suitable for feeding to the import service.
"""

from pathlib import Path
from typing import Iterable, List, Optional

from .parsers import SUPPORTED_EXT

DEFAULT_SKIP_KEYWORDS = ('draft', 'template')


def _should_skip(file_path: Path, skip_keywords: Iterable[str]) -> bool:
    """Return True if filename contains any skip keyword (case-insensitive)."""
    name = file_path.name.lower()
    for kw in skip_keywords:
        if kw and kw.lower() in name:
            return True
    return False


def find_quiz_files(root: Path, skip_keywords: Optional[Iterable[str]] = None) -> List[Path]:
    """Return import file paths found under `root`, sorted.

    Files whose names contain any of `skip_keywords` are ignored so that
    work-in-progress documents (names containing "draft" or "template" by
    default) are not imported by accident.
    """
    skip_keywords = list(skip_keywords) if skip_keywords is not None else list(DEFAULT_SKIP_KEYWORDS)
    if not root.exists():
        return []
    files = []
    for f in root.rglob('*'):
        if f.is_file() and f.suffix.lower() in SUPPORTED_EXT and not _should_skip(f, skip_keywords):
            files.append(f)
    # sort for deterministic order
    return sorted(files)
