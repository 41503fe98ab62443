from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from depmigrator.errors import ProcessFailedError, ProcessTimeoutError

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND_EXIT_CODE = 127


@dataclass(slots=True, frozen=True)
class ProcessResult:
    stdout: str
    stderr: str
    exit_code: int


def run_process(
    command: str,
    arguments: Sequence[str],
    working_directory: str | Path,
    timeout: float | None = None,
) -> ProcessResult:
    """Run `command` without a shell and wait for it to exit.

    Both output streams are captured in full. A non-zero exit raises
    `ProcessFailedError` carrying the exit code and stderr; exceeding `timeout`
    kills the child and raises `ProcessTimeoutError`.
    """
    argv = [command, *arguments]
    logger.debug("run_process argv=%s cwd=%s", argv, working_directory)
    try:
        proc = subprocess.run(
            argv,
            cwd=working_directory,
            shell=False,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise ProcessTimeoutError(f"'{command}' did not finish within {timeout}s") from exc
    except FileNotFoundError as exc:
        raise ProcessFailedError(COMMAND_NOT_FOUND_EXIT_CODE, f"command not found: {command}") from exc

    if proc.returncode != 0:
        raise ProcessFailedError(proc.returncode, proc.stderr)

    return ProcessResult(stdout=proc.stdout, stderr=proc.stderr, exit_code=proc.returncode)
