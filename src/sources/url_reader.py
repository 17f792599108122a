from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from clients.bitbucket import BitbucketServerClient
from clients.bitbucket.inputs import normalize_etag, parse_browse_url
from core.errors import EmptyTreeError, InvalidUrlError, NotModifiedError
from core.models import FileHandle, ReadUrlResult, RepoLocation, SearchResult, TreeResult
from core.paths import split_glob
from sources import glob_matcher
from sources.tar_tree import ExtractedEntry, IncludeFn, extract_tree

"""Bitbucket Server backed tree reader.

- `read_tree` returns every file under the browse URL's subpath.
- `search` treats the subpath as a glob, relative to its literal base directory.
  No match, including a base directory that does not exist, yields an empty list.
- Both resolve the branch fingerprint first and stop with NotModifiedError
  when it equals the caller's etag, before any archive byte is requested.
"""

logger = logging.getLogger(__name__)


class BitbucketServerUrlReader:
    def __init__(
        self,
        *,
        client: BitbucketServerClient,
        workspace_root: Optional[Path] = None,
    ) -> None:
        self._client = client
        self._workspace_root = workspace_root

    def __str__(self) -> str:
        config = self._client.config
        return f"bitbucketServer{{host={config.host},authed={config.has_credentials}}}"

    def can_read(self, url: str) -> bool:
        try:
            location = parse_browse_url(url)
        except InvalidUrlError:
            return False
        return location.host == self._client.config.host

    async def read_tree(
        self,
        url: str,
        *,
        etag: Optional[str] = None,
        include: Optional[IncludeFn] = None,
    ) -> TreeResult:
        location = self._parse(url)
        fingerprint = await self._resolve(location, etag)

        async with self._client.open_archive(
            project=location.project,
            repo=location.repo,
            ref=location.ref,
        ) as chunks:
            async with extract_tree(
                chunks,
                subpath=location.subpath,
                include=include,
                workspace_root=self._workspace_root,
            ) as entries:
                files = await self._wrap(location, [e for e in entries if e.is_file])

        logger.info("Read %d files from %s at %s", len(files), url, fingerprint)
        return TreeResult(etag=fingerprint, files=files)

    async def search(self, url: str, *, etag: Optional[str] = None) -> SearchResult:
        location = self._parse(url)
        fingerprint = await self._resolve(location, etag)

        base_dir, pattern = split_glob(location.subpath)

        try:
            async with self._client.open_archive(
                project=location.project,
                repo=location.repo,
                ref=location.ref,
            ) as chunks:
                async with extract_tree(
                    chunks,
                    subpath=base_dir,
                    workspace_root=self._workspace_root,
                ) as entries:
                    matches = glob_matcher.match(entries, pattern)
                    files = await self._wrap(location, matches)
        except EmptyTreeError:
            # A missing base directory is a search with no hits.
            files = []

        logger.info("Search %s matched %d files at %s", url, len(files), fingerprint)
        return SearchResult(etag=fingerprint, files=files)

    async def read_url(self, url: str, *, etag: Optional[str] = None) -> ReadUrlResult:
        location = self._parse(url)
        return await self._client.read_raw(
            project=location.project,
            repo=location.repo,
            path=location.subpath,
            ref=location.ref,
            etag=normalize_etag(etag),
        )

    # --- helpers ---

    def _parse(self, url: str) -> RepoLocation:
        location = parse_browse_url(url)
        if location.host != self._client.config.host:
            raise InvalidUrlError(
                f"URL host {location.host!r} does not match configured host {self._client.config.host!r}"
            )
        return location

    async def _resolve(self, location: RepoLocation, etag: Optional[str]) -> str:
        fingerprint = await self._client.resolve_fingerprint(
            project=location.project,
            repo=location.repo,
            ref=location.ref,
        )
        if normalize_etag(etag) == fingerprint:
            logger.info("%s/%s unchanged at %s", location.project, location.repo, fingerprint)
            raise NotModifiedError(etag=fingerprint)
        return fingerprint

    async def _wrap(
        self,
        location: RepoLocation,
        entries: Sequence[ExtractedEntry],
    ) -> List[FileHandle]:
        # Read payloads while the extraction area still exists.
        out: List[FileHandle] = []
        for entry in entries:
            data = await entry.read()
            out.append(
                FileHandle(
                    path=entry.relative_path,
                    url=location.browse_url(entry.repo_path),
                    _data=data,
                )
            )
        return out
