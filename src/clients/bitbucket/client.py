"""Bitbucket Server client: branch fingerprints, archive streams and raw files.

This module provides a small async client for the three endpoints the
tree reader needs: the branch listing (to derive a commit fingerprint),
the archive download (a gzip-compressed tar stream) and the raw file
endpoint. It relies on `core.pacing.Pacer` for client-side smoothing and
a semaphore to bound concurrent requests. It never retries on its own.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Mapping, Optional
from urllib.parse import quote

import httpx

from core.errors import (
    AccessDeniedError,
    ArchiveFetchError,
    NotFoundError,
    NotModifiedError,
    UpstreamUnavailableError,
)
from core.models import BitbucketServerConfig, ReadUrlResult
from core.pacing import Pacer

from .inputs import normalize_path
from .refs import repo_api_path, resolve_fingerprint

logger = logging.getLogger(__name__)


class BitbucketServerClient:
    """Async Bitbucket Server client used by the tree reader.

    Purpose:
      - resolve_fingerprint(project, repo, ref) -> str
      - open_archive(project, repo, ref) -> async chunk iterator (context manager)
      - read_raw(project, repo, path, ref, etag) -> ReadUrlResult

    Key behavior:
      - Credentials: bearer token, else basic auth.
      - Limits concurrency (Semaphore) and uses a pacer for simple client-side pacing.
      - Transport failures become UpstreamUnavailableError; retry policy is the caller's.
    """

    JSON_ACCEPT = "application/json"

    def __init__(
        self,
        *,
        config: BitbucketServerConfig,
        timeout: float = 20.0,
        verify: bool = True,
        max_concurrency: int = 5,
        rate_per_sec: float = 0.0,
    ) -> None:
        self._config = config
        self._timeout = float(timeout)
        self._verify = bool(verify)

        self._headers = self._build_headers()
        self._auth = self._build_auth()

        self._sem = asyncio.Semaphore(max(1, int(max_concurrency)))
        self._pacer = Pacer(rate_per_sec=rate_per_sec)

    @property
    def config(self) -> BitbucketServerConfig:
        return self._config

    async def resolve_fingerprint(self, *, project: str, repo: str, ref: str) -> str:
        """Short hash of the latest commit on `ref` (or on the default branch)."""
        async with self._create_client() as client:
            return await resolve_fingerprint(
                self._request,
                client,
                project=project,
                repo=repo,
                ref=ref,
            )

    @asynccontextmanager
    async def open_archive(self, *, project: str, repo: str, ref: str) -> AsyncIterator[AsyncIterator[bytes]]:
        """Stream the tar.gz archive of `ref`.

        Yields an async iterator of compressed chunks. Content-Type and
        Content-Disposition are not inspected; the body is always treated
        as tar.gz. The response is closed when the context exits.
        """
        url = f"{repo_api_path(project, repo)}/archive"
        params = {"format": "tgz"}
        if ref:
            params["at"] = ref

        async with self._create_client(custom_headers={"Accept": "*/*"}) as client:
            await self._pacer.wait()
            try:
                async with self._sem:
                    resp = await client.send(client.build_request("GET", url, params=params), stream=True)
            except httpx.HTTPError as e:
                raise self._unavailable(f"GET {url}", e) from e

            chunks = self._iter_chunks(resp, context=f"GET {url}")
            try:
                if not resp.is_success:
                    raise ArchiveFetchError(
                        f"Archive download for {project}/{repo} failed with HTTP {resp.status_code}",
                        status_code=resp.status_code,
                    )
                logger.debug("Streaming archive %s/%s at %s", project, repo, ref or "<default>")
                yield chunks
            finally:
                await chunks.aclose()
                await resp.aclose()

    async def read_raw(
        self,
        *,
        project: str,
        repo: str,
        path: str,
        ref: str = "",
        etag: Optional[str] = None,
    ) -> ReadUrlResult:
        """Read one file through the raw endpoint, honoring If-None-Match."""
        path_clean = normalize_path(path)
        headers = {"Accept": "*/*"}
        if etag:
            headers["If-None-Match"] = etag

        url = f"{repo_api_path(project, repo)}/raw/{quote(path_clean, safe='/')}"
        async with self._create_client(custom_headers=headers) as client:
            resp = await self._request(client, url, params={"at": ref} if ref else None)

        if resp.status_code == 304:
            raise NotModifiedError(f"{path_clean} not modified", etag=etag)
        if resp.status_code == 404:
            raise NotFoundError(f"File not found: {path_clean}")
        if resp.status_code in (401, 403):
            raise AccessDeniedError(f"Access denied to {project}/{repo}: HTTP {resp.status_code}")
        if not resp.is_success:
            raise UpstreamUnavailableError(
                f"GET {url} failed with HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        return ReadUrlResult(
            buffer=resp.content,
            etag=resp.headers.get("ETag"),
            last_modified=resp.headers.get("Last-Modified"),
        )

    # --- HTTP helpers ---

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Accept": self.JSON_ACCEPT,
            "User-Agent": "bitbucket-tree-mcp",
        }
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        return headers

    def _build_auth(self) -> Optional[httpx.BasicAuth]:
        # Token wins over basic credentials
        if self._config.token or not (self._config.username and self._config.password):
            return None
        return httpx.BasicAuth(self._config.username, self._config.password)

    def _create_client(self, custom_headers: Optional[Mapping[str, str]] = None) -> httpx.AsyncClient:
        headers = {**self._headers, **dict(custom_headers or {})}
        return httpx.AsyncClient(
            base_url=self._config.api_base_url,
            headers=headers,
            auth=self._auth,
            timeout=self._timeout,
            verify=self._verify,
        )

    def _unavailable(self, context: str, err: BaseException) -> UpstreamUnavailableError:
        return UpstreamUnavailableError(f"Bitbucket request failed ({context}): {err}")

    async def _iter_chunks(self, resp: httpx.Response, *, context: str) -> AsyncGenerator[bytes, None]:
        try:
            async for chunk in resp.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise self._unavailable(context, e) from e

    async def _request(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
    ) -> httpx.Response:
        """GET with pacing + concurrency; transport errors become UpstreamUnavailableError."""
        # Client-side pacing to avoid sending bursts of requests
        await self._pacer.wait()

        try:
            # Limit concurrent requests across tasks
            async with self._sem:
                resp = await client.get(url, params=dict(params or {}))
        except httpx.HTTPError as e:
            raise self._unavailable(f"GET {url}", e) from e

        logger.debug("GET %s -> %s", url, resp.status_code)
        return resp
