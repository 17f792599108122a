from __future__ import annotations

from typing import Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

from core.errors import InvalidUrlError, ValidationError
from core.models import RepoLocation
from core.paths import normalize_posix_relpath


def _segments(path: str) -> Tuple[str, ...]:
    return tuple(unquote(seg) for seg in path.split("/") if seg)


def parse_browse_url(url: str) -> RepoLocation:
    # scheme://host[/context]/projects/{project}/repos/{repo}/browse[/{subpath}][?at={ref}]
    raw = (url or "").strip()
    try:
        parts = urlsplit(raw)
    except ValueError as e:
        raise InvalidUrlError(f"Invalid browse URL: {raw!r}") from e

    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidUrlError(f"Invalid browse URL: {raw!r}")

    raw_segs = [seg for seg in parts.path.split("/") if seg]
    segs = _segments(parts.path)

    # The marker triple may sit behind a context path (e.g. /bitbucket/projects/...).
    for i in range(len(segs) - 4):
        if segs[i] == "projects" and segs[i + 2] == "repos" and segs[i + 4] == "browse":
            break
    else:
        raise InvalidUrlError(f"Not a projects/repos/browse URL: {raw!r}")

    project, repo = segs[i + 1], segs[i + 3]
    if not project.strip() or not repo.strip():
        raise InvalidUrlError(f"Missing project or repo in URL: {raw!r}")

    subpath_segs = segs[i + 5:]
    if any(seg in (".", "..") for seg in subpath_segs):
        raise InvalidUrlError(f"Relative path markers are not allowed in URL: {raw!r}")

    context = "/".join(raw_segs[:i])
    base_url = f"{parts.scheme}://{parts.netloc}" + (f"/{context}" if context else "")

    query = parse_qs(parts.query, keep_blank_values=True)
    ref = (query.get("at") or [""])[0].strip()

    return RepoLocation(
        base_url=base_url,
        host=parts.netloc.rsplit("@", 1)[-1].lower(),
        project=project,
        repo=repo,
        subpath="/".join(subpath_segs),
        ref=ref,
    )


def normalize_etag(etag: Optional[str]) -> Optional[str]:
    clean = (etag or "").strip()
    return clean or None


def normalize_path(path: str) -> str:
    path_clean = normalize_posix_relpath(path)
    if not path_clean:
        raise ValidationError("path must be non-empty")
    return path_clean
