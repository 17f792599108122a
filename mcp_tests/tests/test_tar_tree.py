import io
import tarfile

import pytest

from core.errors import ArchiveFormatError, EmptyTreeError
from sources.tar_tree import extract_tree


async def _chunked(data: bytes, size: int = 7):
    # Small chunks exercise the blocking reader refill path.
    for i in range(0, len(data), size):
        yield data[i:i + size]


def _leftovers(root):
    return list(root.iterdir()) if root.exists() else []


@pytest.mark.asyncio
async def test_extract_subpath_strips_top_dir_and_prefix(make_tar_gz, tmp_path):
    archive = make_tar_gz({
        "README.md": b"# Mock\n",
        "docs/index.md": b"# Test\n",
        "docs/guide/setup.md": b"setup\n",
        "docs-old/index.md": b"old\n",
    })

    async with extract_tree(_chunked(archive), subpath="docs", workspace_root=tmp_path) as entries:
        files = [e for e in entries if e.is_file]
        assert [e.relative_path for e in files] == ["guide/setup.md", "index.md"]
        assert [e.repo_path for e in files] == ["docs/guide/setup.md", "docs/index.md"]
        assert await files[1].read() == b"# Test\n"
        assert files[1].size_hint == len(b"# Test\n")

    assert _leftovers(tmp_path) == []


@pytest.mark.asyncio
async def test_extract_whole_repo_when_subpath_empty(make_tar_gz, tmp_path):
    archive = make_tar_gz({"b.txt": b"b", "a/c.txt": b"c"})

    async with extract_tree(_chunked(archive, 1024), subpath="", workspace_root=tmp_path) as entries:
        assert [e.relative_path for e in entries if e.is_file] == ["a/c.txt", "b.txt"]
        assert [e.relative_path for e in entries if not e.is_file] == ["a"]


@pytest.mark.asyncio
async def test_extract_single_file_subpath(make_tar_gz, tmp_path):
    archive = make_tar_gz({"docs/index.md": b"# Test\n", "docs/other.md": b"x"})

    async with extract_tree(_chunked(archive), subpath="docs/index.md", workspace_root=tmp_path) as entries:
        assert [(e.relative_path, e.repo_path) for e in entries] == [("index.md", "docs/index.md")]


@pytest.mark.asyncio
async def test_extract_missing_subpath_raises_empty_tree(make_tar_gz, tmp_path):
    archive = make_tar_gz({"docs/index.md": b"# Test\n"})

    with pytest.raises(EmptyTreeError):
        async with extract_tree(_chunked(archive), subpath="nope", workspace_root=tmp_path):
            raise AssertionError("body must not run")

    assert _leftovers(tmp_path) == []


@pytest.mark.asyncio
async def test_extract_include_filter_skips_files(make_tar_gz, tmp_path):
    archive = make_tar_gz({"docs/a.md": b"a", "docs/b.png": b"\x89PNG"})
    seen = []

    def include(path, size):
        seen.append((path, size))
        return path.endswith(".md")

    async with extract_tree(_chunked(archive), subpath="docs", include=include, workspace_root=tmp_path) as entries:
        assert [e.relative_path for e in entries] == ["a.md"]

    assert sorted(seen) == [("a.md", 1), ("b.png", 4)]


@pytest.mark.parametrize("payload", [b"", b"definitely not gzip", b"\x1f\x8b\x08\x00garbage"])
@pytest.mark.asyncio
async def test_extract_corrupt_archive_raises_format_error(payload, tmp_path):
    with pytest.raises(ArchiveFormatError):
        async with extract_tree(_chunked(payload), subpath="", workspace_root=tmp_path):
            raise AssertionError("body must not run")

    assert _leftovers(tmp_path) == []


@pytest.mark.asyncio
async def test_extract_skips_links_and_parent_references(tmp_path):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        ok = tarfile.TarInfo("top/docs/ok.md")
        ok.size = 2
        tf.addfile(ok, io.BytesIO(b"ok"))

        link = tarfile.TarInfo("top/docs/link.md")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"
        tf.addfile(link)

        evil = tarfile.TarInfo("top/docs/../../evil.md")
        evil.size = 4
        tf.addfile(evil, io.BytesIO(b"evil"))

    async with extract_tree(_chunked(buf.getvalue(), 64), subpath="docs", workspace_root=tmp_path) as entries:
        assert [e.relative_path for e in entries] == ["ok.md"]

    assert not (tmp_path / "evil.md").exists()


@pytest.mark.asyncio
async def test_entries_live_in_distinct_workspaces(make_tar_gz, tmp_path):
    archive = make_tar_gz({"a.txt": b"a"})

    async with extract_tree(_chunked(archive), workspace_root=tmp_path) as first:
        async with extract_tree(_chunked(archive), workspace_root=tmp_path) as second:
            assert first[0]._local_path != second[0]._local_path
            assert len(_leftovers(tmp_path)) == 2

    assert _leftovers(tmp_path) == []


@pytest.mark.asyncio
async def test_error_inside_scope_still_cleans_up(make_tar_gz, tmp_path):
    archive = make_tar_gz({"a.txt": b"a"})

    with pytest.raises(RuntimeError):
        async with extract_tree(_chunked(archive), workspace_root=tmp_path) as entries:
            assert entries
            raise RuntimeError("boom")

    assert _leftovers(tmp_path) == []
