"""
POSIX path helpers shared by the URL parser, the extractor and search.

Repository paths are always '/'-separated and relative. Globs are matched
one path segment at a time: '*', '?' and '[...]' stay inside a segment,
while a whole '**' segment spans zero or more segments.
"""

from __future__ import annotations

import fnmatch
from functools import lru_cache
from typing import Tuple

_GLOB_MAGIC = frozenset("*?[")
_RECURSIVE = "**"


def normalize_posix_relpath(p: str) -> str:
    """Turn a user supplied path into 'a/b/c' form.

    Backslashes become '/', and leading '/' or './' markers are dropped.
    """
    s = (p or "").strip().replace("\\", "/")
    while s.startswith(("/", "./")):
        s = s[1:] if s.startswith("/") else s[2:]
    return s


def split_posix(p: str) -> Tuple[str, ...]:
    """Segments of a POSIX path, without empty or '.' segments."""
    s = (p or "").replace("\\", "/")
    return tuple(seg for seg in s.strip().split("/") if seg not in ("", "."))


def join_posix(*parts: str) -> str:
    """Join path fragments with '/', ignoring empty fragments."""
    segs: list[str] = []
    for part in parts:
        segs.extend(split_posix(part))
    return "/".join(segs)


def has_magic(segment: str) -> bool:
    return any(ch in _GLOB_MAGIC for ch in segment)


def split_glob(path: str) -> Tuple[str, str]:
    """Split a glob path into (base_dir, pattern).

    Leading segments without wildcards form the base directory. The
    pattern always keeps at least the final segment, so 'docs/index.md'
    splits into ('docs', 'index.md').
    """
    segs = split_posix(path)
    if not segs:
        return "", ""

    base: list[str] = []
    for seg in segs[:-1]:
        if has_magic(seg):
            break
        base.append(seg)

    return "/".join(base), "/".join(segs[len(base):])


def glob_match(rel_path: str, pattern: str) -> bool:
    """True when rel_path matches pattern; an empty pattern matches all.

    Comparison is case-sensitive on every platform.
    """
    pats = split_posix(pattern)
    if not pats:
        return True
    return _match_segments(split_posix(rel_path), pats)


@lru_cache(maxsize=1024)
def _match_segments(parts: Tuple[str, ...], pats: Tuple[str, ...]) -> bool:
    if not pats:
        return not parts

    head, rest = pats[0], pats[1:]
    if head == _RECURSIVE:
        # Zero segments consumed, or one segment and stay on '**'.
        return _match_segments(parts, rest) or (bool(parts) and _match_segments(parts[1:], pats))

    return bool(parts) and fnmatch.fnmatchcase(parts[0], head) and _match_segments(parts[1:], rest)
