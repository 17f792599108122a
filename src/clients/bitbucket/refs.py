from __future__ import annotations

import logging
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol
from urllib.parse import quote

import httpx

from core.errors import RefNotFoundError, UnexpectedResponseError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 12
BRANCH_PAGE_LIMIT = 100


class RequestFn(Protocol):
    def __call__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Awaitable[httpx.Response]:
        ...


def repo_api_path(project: str, repo: str) -> str:
    """REST path of one repository; project and repo keys are percent-encoded."""
    return f"/projects/{quote(project, safe='')}/repos/{quote(repo, safe='')}"


def _json_object(resp: httpx.Response, *, context: str) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as e:
        raise UnexpectedResponseError(f"{context}: response is not JSON") from e
    if not isinstance(data, dict):
        raise UnexpectedResponseError(f"{context}: expected a JSON object")
    return data


def _check_status(resp: httpx.Response, *, context: str) -> None:
    if not resp.is_success:
        raise UpstreamUnavailableError(
            f"{context} failed with HTTP {resp.status_code}",
            status_code=resp.status_code,
        )


def fingerprint_of(branch: Mapping[str, Any], *, context: str) -> str:
    commit = branch.get("latestCommit")
    if not isinstance(commit, str) or not commit.strip():
        raise UnexpectedResponseError(f"{context}: branch has no latestCommit")
    return commit.strip()[:FINGERPRINT_LENGTH]


async def fetch_branches(
    request: RequestFn,
    client: httpx.AsyncClient,
    *,
    project: str,
    repo: str,
    filter_text: str = "",
) -> List[Dict[str, Any]]:
    # Bitbucket pages results: follow nextPageStart until isLastPage.
    url = f"{repo_api_path(project, repo)}/branches"
    out: List[Dict[str, Any]] = []
    start = 0

    while True:
        params: Dict[str, Any] = {"start": start, "limit": BRANCH_PAGE_LIMIT}
        if filter_text:
            params["filterText"] = filter_text

        resp = await request(client, url, params=params)
        _check_status(resp, context=f"GET {url}")
        page = _json_object(resp, context=f"GET {url}")

        values = page.get("values")
        if not isinstance(values, list) or not all(isinstance(v, dict) for v in values):
            raise UnexpectedResponseError(f"GET {url}: 'values' must be a list of branches")
        out.extend(values)

        next_start = page.get("nextPageStart")
        if page.get("isLastPage", True) or not isinstance(next_start, int) or next_start <= start:
            return out
        start = next_start


async def fetch_default_branch(
    request: RequestFn,
    client: httpx.AsyncClient,
    *,
    project: str,
    repo: str,
) -> Dict[str, Any]:
    url = f"{repo_api_path(project, repo)}/branches/default"
    resp = await request(client, url)
    if resp.status_code == 404:
        raise RefNotFoundError(f"No default branch for {project}/{repo}")
    _check_status(resp, context=f"GET {url}")
    return _json_object(resp, context=f"GET {url}")


async def resolve_fingerprint(
    request: RequestFn,
    client: httpx.AsyncClient,
    *,
    project: str,
    repo: str,
    ref: str,
) -> str:
    """Resolve `ref` to the short hash of its latest commit.

    An empty ref resolves the branch the server marks as default.
    """
    if not ref:
        branch = await fetch_default_branch(request, client, project=project, repo=repo)
        fingerprint = fingerprint_of(branch, context=f"default branch of {project}/{repo}")
        logger.debug("Default branch %s of %s/%s at %s", branch.get("displayId"), project, repo, fingerprint)
        return fingerprint

    branches = await fetch_branches(request, client, project=project, repo=repo, filter_text=ref)
    for branch in branches:
        if branch.get("displayId") == ref:
            fingerprint = fingerprint_of(branch, context=f"branch {ref}")
            logger.debug("Branch %s of %s/%s at %s", ref, project, repo, fingerprint)
            return fingerprint

    raise RefNotFoundError(f"Unable to resolve reference: {ref}")
