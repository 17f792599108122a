"""MCP tool that reads one file from a Bitbucket Server browse URL."""

from __future__ import annotations

from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from config import MAX_FILE_CHARS
from core.errors import NotModifiedError, ValidationError
from core.interfaces import TreeReader
from tools.payloads import decode_text


def register(mcp: FastMCP, *, reader: TreeReader) -> None:
    @mcp.tool(name="read_url")
    async def read_url(
        url: str,
        etag: Optional[str] = None,
        max_chars: int = MAX_FILE_CHARS,
    ) -> Dict[str, Any]:
        """Read a single file and return its text plus the server's ETag.

        Passing a previous etag sends If-None-Match; an unchanged file
        returns {"not_modified": true} without content.
        """
        if not url or not url.strip():
            raise ValidationError("Missing url")

        try:
            result = await reader.read_url(url, etag=etag)
        except NotModifiedError:
            return {"etag": etag, "not_modified": True, "content": None}

        return {
            "etag": result.etag,
            "last_modified": result.last_modified,
            "not_modified": False,
            "content": decode_text(result.buffer, max_chars),
        }
