"""MCP tool that reads a whole subtree from a Bitbucket Server browse URL.

Registers the 'read_tree' tool which adapts a TreeReader to the MCP tool
interface used by prompts and agents.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from config import MAX_FILE_CHARS
from core.errors import NotModifiedError, ValidationError
from core.interfaces import TreeReader
from tools.payloads import files_payload, not_modified_payload


def register(mcp: FastMCP, *, reader: TreeReader) -> None:
    @mcp.tool(name="read_tree")
    async def read_tree(
        url: str,
        etag: Optional[str] = None,
        max_chars: int = MAX_FILE_CHARS,
    ) -> Dict[str, Any]:
        """Read every file under a Bitbucket Server browse URL.

        Params:
          - url: browse URL, e.g.
            https://host/projects/PRJ/repos/repo/browse/docs?at=main
          - etag: fingerprint from a previous call; when unchanged nothing
            is downloaded and {"not_modified": true} is returned.
          - max_chars: per-file limit for the returned text (default from config).

        Returns:
          {"etag": str, "files": [{"path", "url", "content"}]} sorted by path.

        Raises:
          ValidationError for invalid inputs; NotFoundError when the ref or
          the subtree does not exist; ExternalServiceError when Bitbucket fails.
        """
        if not url or not url.strip():
            raise ValidationError("Missing url")

        try:
            result = await reader.read_tree(url, etag=etag)
        except NotModifiedError as e:
            return not_modified_payload(e, etag or "")

        return {
            "etag": result.etag,
            "not_modified": False,
            "files": await files_payload(result.files, max_chars=max_chars),
        }
