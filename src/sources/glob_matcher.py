from __future__ import annotations

from typing import Iterable, List

from core.paths import glob_match
from sources.tar_tree import ExtractedEntry


def match(entries: Iterable[ExtractedEntry], pattern: str) -> List[ExtractedEntry]:
    """Return the file entries whose relative path matches `pattern`, sorted by path."""
    out = [
        entry
        for entry in entries
        if entry.is_file and glob_match(entry.relative_path, pattern)
    ]
    return sorted(out, key=lambda entry: entry.relative_path)
