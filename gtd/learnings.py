"""Detect diffs that only touch the plan file's Learnings section."""

from __future__ import annotations

import re

_LEARNINGS_HEADER = re.compile(r"^##\s+Learnings\s*$")
_H2_HEADER = re.compile(r"^##\s+")
_HUNK_HEADER = re.compile(r"^@@ -(\d+)")
_FILE_HEADER_PREFIXES = ("diff ", "index ", "--- ", "+++ ")


def find_learnings_range(content: str) -> tuple[int, int] | None:
    """
    Locate the Learnings section as 1-based old-file line numbers.

    Returns ``(start, end)`` where ``start`` is the header line and ``end``
    is the next ``##`` header (exclusive), or one past the last line.
    """
    lines = content.split("\n")
    header_idx = next(
        (i for i, line in enumerate(lines) if _LEARNINGS_HEADER.match(line)),
        None,
    )
    if header_idx is None:
        return None

    end = len(lines) + 1
    for i in range(header_idx + 1, len(lines)):
        if _H2_HEADER.match(lines[i]):
            end = i + 1
            break

    return header_idx + 1, end


def is_only_learnings_modified(diff: str, file_content: str) -> bool:
    """
    Check whether every change in ``diff`` falls inside the Learnings section.

    ``file_content`` is the pre-change version of the plan file, since hunk
    positions are measured against the old side. A diff with no hunks is
    never "only learnings".
    """
    if not diff.strip():
        return False

    learnings = find_learnings_range(file_content)
    if learnings is None:
        return False
    start, end = learnings

    current_old_line: int | None = None
    has_hunks = False

    for line in diff.split("\n"):
        hunk_match = _HUNK_HEADER.match(line)
        if hunk_match:
            current_old_line = int(hunk_match.group(1))
            has_hunks = True
            continue

        if current_old_line is None or line.startswith(_FILE_HEADER_PREFIXES):
            continue

        if line.startswith("-"):
            if not start <= current_old_line < end:
                return False
            current_old_line += 1
        elif line.startswith("+"):
            if not start <= current_old_line < end:
                return False
        elif line.startswith(" "):
            current_old_line += 1

    return has_hunks
