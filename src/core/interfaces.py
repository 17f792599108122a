"""Core protocol and interface definitions.

Defines the TreeReader protocol the MCP tools depend on, so tools can be
exercised with a fake reader and the Bitbucket implementation can be
swapped for another host type.
"""

from __future__ import annotations

from typing import Optional, Protocol

from core.models import ReadUrlResult, SearchResult, TreeResult


class TreeReader(Protocol):
    """Contract for any remote tree reader."""

    def can_read(self, url: str) -> bool:
        ...

    async def read_tree(
        self,
        url: str,
        *,
        etag: Optional[str] = None,
    ) -> TreeResult:
        ...

    async def search(
        self,
        url: str,
        *,
        etag: Optional[str] = None,
    ) -> SearchResult:
        ...

    async def read_url(
        self,
        url: str,
        *,
        etag: Optional[str] = None,
    ) -> ReadUrlResult:
        ...
