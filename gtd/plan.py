"""Plan file (TODO.md) parsing helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

_ACTION_ITEMS_HEADER = re.compile(r"^##\s+Action Items\s*$")
_LEARNINGS_HEADER = re.compile(r"^##\s+Learnings\s*$")
_H2_HEADER = re.compile(r"^##\s+")
_H3_HEADER = re.compile(r"^###\s+(.+?)\s*$")
_ITEM = re.compile(r"^- \[([ xX])\] (.+)$")
_ANY_CHECKBOX = re.compile(r"- \[[ xX]\]")


@dataclass
class ActionItem:
    """A single checkbox item."""

    title: str
    body: str
    line: int  # 1-based
    checked: bool


@dataclass
class Package:
    """A named group of action items, built as one unit."""

    title: str
    line: int  # 1-based
    items: list[ActionItem] = field(default_factory=list)

    @property
    def unchecked_items(self) -> list[ActionItem]:
        return [item for item in self.items if not item.checked]


def detect_state(content: str) -> str:
    """Classify a plan file as "empty", "no-action-items" or "has-action-items"."""
    if not content.strip():
        return "empty"
    if _ANY_CHECKBOX.search(content):
        return "has-action-items"
    return "no-action-items"


def _parse_items(lines: list[str], line_offset: int) -> list[ActionItem]:
    items: list[ActionItem] = []
    i = 0
    while i < len(lines):
        match = _ITEM.match(lines[i])
        if not match:
            i += 1
            continue
        item_line = line_offset + i + 1
        i += 1
        body_lines = []
        while i < len(lines) and lines[i].startswith("  "):
            body_lines.append(lines[i])
            i += 1
        items.append(
            ActionItem(
                title=match.group(2),
                body="\n".join(body_lines),
                line=item_line,
                checked=match.group(1) != " ",
            )
        )
    return items


def has_unchecked_items(content: str) -> bool:
    """True if any checkbox anywhere in the file is unchecked."""
    return any(not item.checked for item in _parse_items(content.split("\n"), 0))


def _section_bounds(lines: list[str], header: re.Pattern[str]) -> tuple[int, int] | None:
    start = next((i for i, line in enumerate(lines) if header.match(line)), None)
    if start is None:
        return None
    for i in range(start + 1, len(lines)):
        if _H2_HEADER.match(lines[i]):
            return start, i
    return start, len(lines)


def parse_packages(content: str) -> list[Package]:
    """Parse the ``## Action Items`` section into packages, in document order."""
    lines = content.split("\n")
    bounds = _section_bounds(lines, _ACTION_ITEMS_HEADER)
    if bounds is None:
        return []

    section = lines[bounds[0] + 1 : bounds[1]]
    offset = bounds[0] + 1

    headings = []
    for idx, line in enumerate(section):
        match = _H3_HEADER.match(line)
        if match:
            headings.append((match.group(1), idx))

    packages = []
    for n, (title, idx) in enumerate(headings):
        end = headings[n + 1][1] if n + 1 < len(headings) else len(section)
        items = _parse_items(section[idx + 1 : end], offset + idx + 1)
        packages.append(Package(title=title, line=offset + idx + 1, items=items))
    return packages


def next_unchecked_package(content: str) -> Package | None:
    """First package (document order) that still has unchecked items."""
    for package in parse_packages(content):
        if package.unchecked_items:
            return package
    return None


def check_off_package(content: str, package: Package) -> str:
    """Return ``content`` with every unchecked item of ``package`` ticked."""
    lines = content.split("\n")
    for item in package.unchecked_items:
        idx = item.line - 1
        lines[idx] = lines[idx].replace("- [ ]", "- [x]", 1)
    return "\n".join(lines)


def extract_learnings(content: str) -> str:
    """Body of the ``## Learnings`` section, stripped."""
    lines = content.split("\n")
    bounds = _section_bounds(lines, _LEARNINGS_HEADER)
    if bounds is None:
        return ""
    return "\n".join(lines[bounds[0] + 1 : bounds[1]]).strip()


def has_learnings_section(content: str) -> bool:
    return any(_LEARNINGS_HEADER.match(line) for line in content.split("\n"))


def format_package_prompt(package: Package, plan_path: Path) -> str:
    """Render a package's unchecked items for a build prompt."""
    items_text = "\n".join(
        f"- [ ] {item.title}\n{item.body}" if item.body else f"- [ ] {item.title}"
        for item in package.unchecked_items
    )
    return f"### {package.title}\n\nPlan file: {plan_path}\n\n{items_text}"
