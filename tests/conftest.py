from __future__ import annotations

from pathlib import Path

import pytest

from depmigrator.sandbox.workspace import Sandbox


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def sandbox(workspace: Path) -> Sandbox:
    return Sandbox(workspace)
