"""Split a unified diff into independently committable categories."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from gtd.prefixes import Marker

FEEDBACK_MARKERS = re.compile(r"\b(TODO|FIX|FIXME|HACK|XXX):", re.IGNORECASE)
BLOCKQUOTE_ADDITION = re.compile(r"^\+\s*>")

_DIFF_PATH = re.compile(r"^diff --git a/(.+?) b/")
_HEADER_PREFIXES = (
    "index ",
    "new file mode ",
    "deleted file mode ",
    "old mode ",
    "new mode ",
    "similarity index ",
    "rename from ",
    "rename to ",
    "Binary files ",
)

# Highest priority first
CATEGORY_PRIORITY: tuple[Marker, ...] = (
    Marker.SEED,
    Marker.FEEDBACK,
    Marker.HUMAN,
    Marker.FIX,
)


@dataclass
class Hunk:
    """One ``@@`` block and the lines that follow it."""

    header: str
    lines: list[str] = field(default_factory=list)

    @property
    def added_lines(self) -> list[str]:
        return [line for line in self.lines if line.startswith("+")]


@dataclass
class DiffFile:
    """A single file section of a unified diff."""

    path: str
    headers: list[str] = field(default_factory=list)
    hunks: list[Hunk] = field(default_factory=list)
    is_new: bool = False


@dataclass
class ClassifiedDiff:
    """Per-category patches. Empty string means nothing in that category."""

    seed: str = ""
    feedback: str = ""
    human: str = ""
    fixes: str = ""

    def for_marker(self, marker: Marker) -> str:
        return {
            Marker.SEED: self.seed,
            Marker.FEEDBACK: self.feedback,
            Marker.HUMAN: self.human,
            Marker.FIX: self.fixes,
        }.get(marker, "")

    def non_empty(self) -> list[tuple[Marker, str]]:
        """Categories that hold at least one hunk, highest priority first."""
        return [(m, self.for_marker(m)) for m in CATEGORY_PRIORITY if self.for_marker(m)]


def parse_unified_diff(diff: str) -> list[DiffFile]:
    """Parse ``git diff`` output into files and hunks."""
    if not diff.strip():
        return []

    files: list[DiffFile] = []
    current: DiffFile | None = None
    hunk: Hunk | None = None

    for line in diff.split("\n"):
        if line.startswith("diff --git "):
            if current is not None:
                if hunk is not None:
                    current.hunks.append(hunk)
                files.append(current)
            match = _DIFF_PATH.match(line)
            current = DiffFile(path=match.group(1) if match else "", headers=[line])
            hunk = None
            continue

        if current is None:
            continue

        if hunk is None:
            if line.startswith(_HEADER_PREFIXES) or line.startswith("+++ "):
                current.headers.append(line)
                if line.startswith("new file mode "):
                    current.is_new = True
                continue
            if line.startswith("--- "):
                current.headers.append(line)
                if line == "--- /dev/null":
                    current.is_new = True
                continue

        if line.startswith("@@ "):
            if hunk is not None:
                current.hunks.append(hunk)
            hunk = Hunk(header=line)
            continue

        if hunk is not None:
            hunk.lines.append(line)

    if current is not None:
        if hunk is not None:
            current.hunks.append(hunk)
        files.append(current)

    for parsed in files:
        # The trailing newline of the whole diff shows up as an empty last line
        if parsed.hunks and parsed.hunks[-1].lines and parsed.hunks[-1].lines[-1] == "":
            parsed.hunks[-1].lines.pop()

    return files


def reconstruct_diff(files: list[DiffFile]) -> str:
    """Join files back into a patch, skipping files without hunks."""
    parts: list[str] = []
    for diff_file in files:
        if not diff_file.hunks:
            continue
        parts.extend(diff_file.headers)
        for hunk in diff_file.hunks:
            parts.append(hunk.header)
            parts.extend(hunk.lines)
    return "\n".join(parts) + "\n" if parts else ""


def classify_hunk(diff_file: DiffFile, hunk: Hunk, plan_file: str) -> Marker:
    """Category for one hunk."""
    if diff_file.path == plan_file:
        if diff_file.is_new:
            return Marker.SEED
        if is_blockquote_hunk(hunk):
            return Marker.FEEDBACK
        # Plain edits to an existing plan count as feedback too
        return Marker.FEEDBACK
    if any(FEEDBACK_MARKERS.search(line) for line in hunk.added_lines):
        return Marker.HUMAN
    return Marker.FIX


def is_blockquote_hunk(hunk: Hunk) -> bool:
    """True when the hunk adds at least one ``>`` annotation line."""
    return any(BLOCKQUOTE_ADDITION.match(line) for line in hunk.added_lines)


def classify_diff(diff: str, plan_file: str) -> ClassifiedDiff:
    """
    Bucket every hunk of ``diff`` into seed, feedback, human or fix.

    Each bucket is rebuilt with the original file headers so it can be
    staged on its own with ``git apply --cached``. Never raises.
    """
    buckets: dict[Marker, list[DiffFile]] = {marker: [] for marker in CATEGORY_PRIORITY}

    for diff_file in parse_unified_diff(diff):
        per_marker: dict[Marker, list[Hunk]] = {}
        for hunk in diff_file.hunks:
            marker = classify_hunk(diff_file, hunk, plan_file)
            per_marker.setdefault(marker, []).append(hunk)
        for marker, hunks in per_marker.items():
            buckets[marker].append(
                DiffFile(
                    path=diff_file.path,
                    headers=list(diff_file.headers),
                    hunks=hunks,
                    is_new=diff_file.is_new,
                )
            )

    return ClassifiedDiff(
        seed=reconstruct_diff(buckets[Marker.SEED]),
        feedback=reconstruct_diff(buckets[Marker.FEEDBACK]),
        human=reconstruct_diff(buckets[Marker.HUMAN]),
        fixes=reconstruct_diff(buckets[Marker.FIX]),
    )


def classify_prefix(diff: str, plan_file: str) -> Marker:
    """Single marker for committing ``diff`` as one unit."""
    classified = classify_diff(diff, plan_file)
    for marker in CATEGORY_PRIORITY:
        if classified.for_marker(marker):
            return marker
    return Marker.HUMAN
