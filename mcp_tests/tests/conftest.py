import io
import tarfile
from typing import Dict, Optional

import httpx
import pytest

from clients.bitbucket import BitbucketServerClient
from core.models import BitbucketServerConfig
from sources.url_reader import BitbucketServerUrlReader


HOST = "bitbucket.mycompany.net"
API_BASE = "https://api.bitbucket.mycompany.net/rest/api/1.0"
COMMIT = "12ab34cd56ef78gh90ij12kl34mn56op78qr90st"
DEFAULT_COMMIT = "0f1e2d3c4b5a69788796a5b4c3d2e1f0a9b8c7d6"

REPO_FILES = {
    "README.md": b"# Mock\n",
    "catalog-info.yaml": b"kind: Component\n",
    "docs/index.md": b"# Test\n",
    "src/app.py": b"print('hi')\n",
}


class DummyMCP:
    """Minimal FastMCP stand-in to capture tool registration."""

    def __init__(self) -> None:
        self.tools = {}

    def tool(self, *, name: str):
        def _decorator(fn):
            self.tools[name] = fn
            return fn
        return _decorator


def build_tar_gz(files: Dict[str, bytes], *, top: Optional[str] = "mock-repo") -> bytes:
    """Build an in-memory tar.gz with a synthetic top-level directory."""
    buf = io.BytesIO()
    seen_dirs = set()

    def _name(path: str) -> str:
        return f"{top}/{path}" if top else path

    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        if top:
            info = tarfile.TarInfo(top)
            info.type = tarfile.DIRTYPE
            tf.addfile(info)

        for path, data in files.items():
            parts = path.split("/")
            for i in range(1, len(parts)):
                d = "/".join(parts[:i])
                if d not in seen_dirs:
                    seen_dirs.add(d)
                    info = tarfile.TarInfo(_name(d))
                    info.type = tarfile.DIRTYPE
                    tf.addfile(info)

            info = tarfile.TarInfo(_name(path))
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))

    return buf.getvalue()


class FakeBitbucketServer:
    """Routes for one repository: projects/backstage/repos/mock."""

    PREFIX = "/rest/api/1.0/projects/backstage/repos/mock"

    def __init__(self) -> None:
        self.archive = build_tar_gz(REPO_FILES)
        self.archive_status = 200
        self.branches = [
            {"displayId": "some-branch-that-should-be-ignored", "latestCommit": "bogus hash"},
            {"displayId": "master-of-none", "latestCommit": "bogus hash"},
            {"displayId": "master", "latestCommit": COMMIT},
            {"displayId": "some-branch", "latestCommit": COMMIT},
        ]
        self.default_branch: Optional[dict] = {"displayId": "main", "latestCommit": DEFAULT_COMMIT}
        self.raw_files: Dict[str, bytes] = {"docs/index.md": b"# Test\n"}
        self.raw_etag = '"abc123"'
        self.requests = []

    def calls_to(self, suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(suffix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == f"{self.PREFIX}/branches/default":
            if self.default_branch is None:
                return httpx.Response(404, json={"errors": [{"message": "no default"}]})
            return httpx.Response(200, json=self.default_branch)

        if path == f"{self.PREFIX}/branches":
            text = request.url.params.get("filterText", "")
            values = [b for b in self.branches if text in b["displayId"]]
            return httpx.Response(200, json={"size": len(values), "values": values})

        if path == f"{self.PREFIX}/archive":
            if self.archive_status != 200:
                return httpx.Response(self.archive_status, json={"errors": []})
            return httpx.Response(
                200,
                headers={
                    "Content-Type": "application/zip",
                    "Content-Disposition": "attachment; filename=backstage-mock.tgz",
                },
                content=self.archive,
            )

        raw_prefix = f"{self.PREFIX}/raw/"
        if path.startswith(raw_prefix):
            rel = path[len(raw_prefix):]
            if rel not in self.raw_files:
                return httpx.Response(404)
            if request.headers.get("If-None-Match") == self.raw_etag:
                return httpx.Response(304)
            return httpx.Response(
                200,
                headers={"ETag": self.raw_etag, "Last-Modified": "Tue, 01 Oct 2024 10:00:00 GMT"},
                content=self.raw_files[rel],
            )

        return httpx.Response(404, json={"errors": [{"message": "not found"}]})


def patch_transport(monkeypatch, client: BitbucketServerClient, handler) -> None:
    """Patch BitbucketServerClient._create_client() to use httpx.MockTransport."""
    transport = httpx.MockTransport(handler)

    def _create_client(custom_headers=None):
        headers = {**client._headers, **(custom_headers or {})}
        return httpx.AsyncClient(
            base_url=client.config.api_base_url,
            headers=headers,
            auth=client._auth,
            timeout=client._timeout,
            verify=client._verify,
            transport=transport,
        )

    monkeypatch.setattr(client, "_create_client", _create_client)


@pytest.fixture
def dummy_mcp():
    return DummyMCP()


@pytest.fixture
def make_tar_gz():
    return build_tar_gz


@pytest.fixture
def server_config():
    return BitbucketServerConfig.from_host(HOST, api_base_url=API_BASE)


@pytest.fixture
def fake_server():
    return FakeBitbucketServer()


@pytest.fixture
def bitbucket_client(monkeypatch, server_config, fake_server):
    client = BitbucketServerClient(config=server_config, timeout=5.0)
    patch_transport(monkeypatch, client, fake_server.handler)
    return client


@pytest.fixture
def workspace(tmp_path):
    return tmp_path / "work"


@pytest.fixture
def reader(bitbucket_client, workspace):
    return BitbucketServerUrlReader(client=bitbucket_client, workspace_root=workspace)
