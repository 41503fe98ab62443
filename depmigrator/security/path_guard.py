from __future__ import annotations

import os
from pathlib import Path

from depmigrator.errors import InvalidPathError


def canonical_root(root: str | Path) -> Path:
    return Path(root).expanduser().resolve()


def _normcase(path: Path) -> str:
    return os.path.normcase(str(path))


def is_within_root(root: Path, candidate: Path) -> bool:
    """True when `candidate` is `root` itself or lies below it.

    Both paths must already be canonical. Comparison goes through
    `os.path.normcase`, so it is case-insensitive on case-insensitive platforms.
    """
    root_key = _normcase(root)
    candidate_key = _normcase(candidate)
    if candidate_key == root_key:
        return True
    return candidate_key.startswith(root_key.rstrip(os.sep) + os.sep)


def resolve_in_root(root: Path, candidate_path: str) -> Path:
    if not isinstance(candidate_path, str) or candidate_path.strip() == "":
        raise InvalidPathError("Path must be a non-empty string.")

    raw = Path(candidate_path).expanduser()
    candidate = raw.resolve() if raw.is_absolute() else (root / raw).resolve()

    if not is_within_root(root, candidate):
        raise InvalidPathError(f"Path '{candidate_path}' is outside the sandbox root '{root}'.")

    return candidate
