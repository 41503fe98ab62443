"""File operations confined to a single sandbox root directory."""
from __future__ import annotations

import logging
import os
from pathlib import Path

from depmigrator.errors import InvalidPathError, InvalidRangeError, NotFoundError
from depmigrator.security.path_guard import canonical_root, resolve_in_root

logger = logging.getLogger(__name__)

END_OF_FILE = -1


def _split_lines(text: str) -> list[str]:
    # read_text already folded \r\n and \r into \n; other separators stay in the line
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


class Sandbox:
    def __init__(self, root: str | Path) -> None:
        self._root = canonical_root(root)

    @property
    def root(self) -> Path:
        return self._root

    def get_root(self) -> str:
        return str(self._root)

    def resolve(self, path: str) -> Path:
        return resolve_in_root(self._root, path)

    def resolve_directory(self, directory: str) -> Path:
        target = self.resolve(directory)
        if not target.is_dir():
            raise NotFoundError(f"The directory '{directory}' does not exist.")
        return target

    def list_dir(self, directory: str) -> list[str]:
        target = self.resolve_directory(directory)
        files: list[str] = []
        subdirectories: list[str] = []
        with os.scandir(target) as entries:
            for entry in entries:
                if entry.is_dir():
                    subdirectories.append(entry.name + "/")
                else:
                    files.append(entry.name)
        return files + subdirectories

    def read_file(self, file_path: str) -> str:
        target = self.resolve(file_path)
        if not target.is_file():
            raise NotFoundError(f"The file '{file_path}' does not exist.")
        with target.open(encoding="utf-8", newline="") as fh:
            return fh.read()

    def write_file(self, file_path: str, content: str) -> str:
        target = self.resolve(file_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.debug("wrote %d chars to %s", len(content), target)
        return f"wrote {target}"

    def patch_lines(
        self,
        file_path: str,
        new_lines: list[str],
        line_start: int,
        line_end: int = END_OF_FILE,
    ) -> str:
        """Replace lines [line_start, line_end) of an existing file with `new_lines`.

        `line_start` is 1-based. `line_end` is exclusive and -1 means end of file;
        `line_end` may be one past the last line, which makes the patch an append.
        A `line_start` beyond that append slot is rejected rather than padded.
        The whole file is rewritten with newline-terminated lines.
        """
        target = self.resolve(file_path)
        if not target.is_file():
            raise InvalidPathError(f"The file '{file_path}' does not exist.")
        if line_start < 1 or (line_end < line_start and line_end != END_OF_FILE):
            raise InvalidRangeError(
                f"Invalid line range: line_start={line_start}, line_end={line_end}."
            )

        lines = _split_lines(target.read_text(encoding="utf-8"))
        line_count = len(lines)

        if line_end == END_OF_FILE:
            line_end = line_count + 1
        if line_end > line_count + 1:
            raise InvalidRangeError(
                f"line_end={line_end} exceeds the number of lines in the file ({line_count})."
            )
        if line_start > line_count + 1:
            raise InvalidRangeError(
                f"line_start={line_start} is past the end of the file ({line_count} lines)."
            )

        updated = lines[: line_start - 1] + list(new_lines) + lines[line_end - 1 :]
        target.write_text("".join(f"{line}\n" for line in updated), encoding="utf-8")
        logger.debug(
            "patched %s: replaced lines %d-%d with %d lines",
            target,
            line_start,
            line_end,
            len(new_lines),
        )
        return f"patched {target}: {line_count} -> {len(updated)} lines"
