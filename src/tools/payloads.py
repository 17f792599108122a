"""JSON-friendly shapes returned by the MCP tools."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from core.errors import NotModifiedError
from core.models import FileHandle

TRUNCATED_SUFFIX = "\n\n...[TRUNCATED]..."


def decode_text(data: bytes, max_chars: int) -> str:
    # Decode with replacement to avoid errors on binary files
    text = data.decode("utf-8", errors="replace")
    if len(text) > max_chars:
        return text[:max_chars] + TRUNCATED_SUFFIX
    return text


async def files_payload(files: Sequence[FileHandle], *, max_chars: int) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for f in files:
        out.append({"path": f.path, "url": f.url, "content": decode_text(await f.content(), max_chars)})
    return out


def not_modified_payload(err: NotModifiedError, etag: str) -> Dict[str, Any]:
    return {"etag": err.etag or etag, "not_modified": True, "files": []}
