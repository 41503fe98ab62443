"""Go module package-manager tools."""
from __future__ import annotations

from depmigrator.errors import ArgumentError
from depmigrator.sandbox.workspace import Sandbox
from depmigrator.tools.process import run_process


def _module_spec(package_name: str, package_version: str | None) -> str:
    version = (package_version or "").strip()
    if not version:
        return package_name
    if not version.startswith("v"):
        version = f"v{version}"
    return f"{package_name}@{version}"


def install_dependency(
    sandbox: Sandbox,
    directory: str,
    package_name: str,
    package_version: str | None = None,
    *,
    go_bin: str = "go",
    timeout: float | None = None,
) -> str:
    # an escaping directory is reported before an empty package name
    sandbox.resolve(directory)
    if not package_name or not package_name.strip():
        raise ArgumentError("Package name cannot be empty.")
    target = sandbox.resolve_directory(directory)

    result = run_process(
        go_bin,
        ["get", _module_spec(package_name.strip(), package_version)],
        target,
        timeout=timeout,
    )
    return result.stdout


def tidy_dependencies(
    sandbox: Sandbox,
    directory: str,
    *,
    go_bin: str = "go",
    timeout: float | None = None,
) -> str:
    target = sandbox.resolve_directory(directory)
    result = run_process(go_bin, ["mod", "tidy"], target, timeout=timeout)
    return result.stdout
