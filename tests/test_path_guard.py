from pathlib import Path

import pytest

from depmigrator.errors import InvalidPathError
from depmigrator.security.path_guard import canonical_root, is_within_root, resolve_in_root


def test_rejects_parent_traversal(workspace: Path):
    with pytest.raises(InvalidPathError):
        resolve_in_root(canonical_root(workspace), "../escape.txt")


def test_accepts_relative_inside_root(workspace: Path):
    root = canonical_root(workspace)
    target = resolve_in_root(root, "src/file.go")
    assert target == root / "src" / "file.go"


def test_accepts_absolute_inside_root(workspace: Path):
    root = canonical_root(workspace)
    target = resolve_in_root(root, str(root / "go.mod"))
    assert target == root / "go.mod"


def test_accepts_root_itself(workspace: Path):
    root = canonical_root(workspace)
    assert resolve_in_root(root, str(root)) == root


def test_rejects_absolute_outside_root(tmp_path: Path, workspace: Path):
    with pytest.raises(InvalidPathError):
        resolve_in_root(canonical_root(workspace), str(tmp_path / "outside.txt"))


def test_rejects_sibling_sharing_prefix(tmp_path: Path, workspace: Path):
    sibling = tmp_path / "workspace2"
    sibling.mkdir()
    (sibling / "secret").write_text("x", encoding="utf-8")

    with pytest.raises(InvalidPathError):
        resolve_in_root(canonical_root(workspace), str(sibling / "secret"))


def test_rejects_dotdot_that_leaves_and_reenters_sibling(workspace: Path):
    with pytest.raises(InvalidPathError):
        resolve_in_root(canonical_root(workspace), "../workspace2/secret")


def test_rejects_symlink_pointing_outside(tmp_path: Path, workspace: Path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (workspace / "link").symlink_to(outside, target_is_directory=True)

    with pytest.raises(InvalidPathError):
        resolve_in_root(canonical_root(workspace), "link/file.txt")


def test_rejects_empty_path(workspace: Path):
    with pytest.raises(InvalidPathError):
        resolve_in_root(canonical_root(workspace), "  ")


def test_is_within_root_requires_separator_boundary():
    root = Path("/data/app")
    assert is_within_root(root, Path("/data/app/src/main.go"))
    assert not is_within_root(root, Path("/data/app2/secret"))
