"""MCP tool that finds files matching a glob inside a Bitbucket Server repo.

Registers the 'search_files' tool. The glob is the path part of the
browse URL, e.g. .../browse/**/index.*?at=main
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from config import MAX_FILE_CHARS
from core.errors import NotModifiedError, ValidationError
from core.interfaces import TreeReader
from tools.payloads import files_payload, not_modified_payload


def register(mcp: FastMCP, *, reader: TreeReader) -> None:
    @mcp.tool(name="search_files")
    async def search_files(
        url: str,
        etag: Optional[str] = None,
        max_chars: int = MAX_FILE_CHARS,
    ) -> Dict[str, Any]:
        """Return the files matching the glob in a browse URL.

        '*' matches inside one path segment, '**' spans any number of
        segments. Each match carries its own browse URL at the same ref.
        """
        if not url or not url.strip():
            raise ValidationError("Missing url")

        try:
            result = await reader.search(url, etag=etag)
        except NotModifiedError as e:
            return not_modified_payload(e, etag or "")

        return {
            "etag": result.etag,
            "not_modified": False,
            "files": await files_payload(result.files, max_chars=max_chars),
        }
