"""Immutable dataclasses shared by the client, the reader and the tools.

Includes the parsed browse location (RepoLocation), the server
configuration (BitbucketServerConfig) and the results handed back to
callers (FileHandle, TreeResult, SearchResult, ReadUrlResult).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import quote, urlencode, urlsplit

from core.paths import join_posix


@dataclass(frozen=True)
class BitbucketServerConfig:
    """Connection settings for one Bitbucket Server host.

    Field groups:
    - Routing: host, api_base_url
    - Credentials: token, or username + password
    """

    host: str
    api_base_url: str

    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_host(
        cls,
        host: str,
        *,
        api_base_url: Optional[str] = None,
        token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> "BitbucketServerConfig":
        host_clean = (host or "").strip()
        scheme = "https"
        if "://" in host_clean:
            # Accept a full base URL such as https://bitbucket.example.com
            parts = urlsplit(host_clean)
            scheme, host_clean = parts.scheme or scheme, parts.netloc
        host_clean = host_clean.strip("/").lower()
        api = (api_base_url or "").strip().rstrip("/") or f"{scheme}://{host_clean}/rest/api/1.0"
        return cls(
            host=host_clean,
            api_base_url=api,
            token=(token or "").strip() or None,
            username=(username or "").strip() or None,
            password=password or None,
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.token or (self.username and self.password))


@dataclass(frozen=True)
class RepoLocation:
    """A browse URL broken into its parts.

    `base_url` is scheme + host + any context path in front of
    `/projects`. An empty `ref` stands for the default branch.
    """

    base_url: str
    host: str
    project: str
    repo: str
    subpath: str = ""
    ref: str = ""

    @property
    def browse_prefix(self) -> str:
        return (
            f"{self.base_url}/projects/{quote(self.project, safe='')}"
            f"/repos/{quote(self.repo, safe='')}/browse"
        )

    def browse_url(self, path: str = "") -> str:
        """Fully qualified browse URL for a repo-relative path at this ref."""
        url = self.browse_prefix
        clean = join_posix(path)
        if clean:
            url = f"{url}/{quote(clean, safe='/')}"
        if self.ref:
            url = f"{url}?{urlencode({'at': self.ref}, quote_via=quote, safe='/')}"
        return url


@dataclass(frozen=True)
class FileHandle:
    """One file of a tree or search result.

    The payload is read out of the extraction area before the area is
    released, so `content()` keeps working after the read returns.
    """

    path: str
    url: str
    _data: bytes = field(default=b"", repr=False)

    async def content(self) -> bytes:
        return self._data


@dataclass(frozen=True)
class TreeResult:
    etag: str
    files: List[FileHandle]


@dataclass(frozen=True)
class SearchResult:
    etag: str
    files: List[FileHandle]


@dataclass(frozen=True)
class ReadUrlResult:
    buffer: bytes
    etag: Optional[str] = None
    last_modified: Optional[str] = None

    def text(self, encoding: str = "utf-8") -> str:
        return self.buffer.decode(encoding, errors="replace")
