"""Shell command execution and source comment helpers."""

from __future__ import annotations

import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

# Test commands get five minutes before they count as failed
TEST_TIMEOUT_SECONDS = 300

_DIFF_PATH = re.compile(r"^diff --git a/(.+?) b/")
TODO_COMMENT = re.compile(r"^\s*(//|#|--|;)\s*(TODO|FIX|FIXME|HACK|XXX):", re.IGNORECASE)


def run_command(
    workdir: Path,
    command: str,
    timeout: int = TEST_TIMEOUT_SECONDS,
) -> tuple[bool, str, str]:
    """
    Run a shell command in the working directory.

    Args:
        workdir: Directory to run in
        command: Command to execute
        timeout: Timeout in seconds

    Returns:
        Tuple of (success, stdout, stderr)
    """
    try:
        # Shell operators need a real shell
        use_shell = any(c in command for c in ["|", "&&", "||", ";", ">", "<"])

        if use_shell:
            result = subprocess.run(
                command,
                shell=True,
                cwd=workdir,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        else:
            result = subprocess.run(
                shlex.split(command),
                cwd=workdir,
                capture_output=True,
                text=True,
                timeout=timeout,
            )

        return result.returncode == 0, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return False, "", f"Test process timed out after {timeout}s"
    except FileNotFoundError as e:
        return False, "", f"Command not found: {e}"
    except OSError as e:
        return False, "", f"Command failed: {e}"


@dataclass
class AddedTodo:
    """A TODO-style comment line added by the developer."""

    file: str
    line_content: str


def find_newly_added_todos(diff: str, plan_file: str) -> list[AddedTodo]:
    """Added comment lines starting with TODO/FIX/FIXME/HACK/XXX, outside the plan file."""
    results: list[AddedTodo] = []
    current_file: str | None = None

    for line in diff.split("\n"):
        if line.startswith("diff --git "):
            match = _DIFF_PATH.match(line)
            current_file = match.group(1) if match else None
            continue

        if not current_file or current_file == plan_file:
            continue

        if line.startswith("+") and not line.startswith("+++"):
            content = line[1:]
            if TODO_COMMENT.match(content):
                results.append(AddedTodo(file=current_file, line_content=content))

    return results


def remove_todo_lines(todos: list[AddedTodo], workdir: Path) -> int:
    """
    Delete the given comment lines from their source files.

    Each recorded line removes at most one matching line. Returns the
    number of lines removed.
    """
    by_file: dict[str, list[str]] = {}
    for todo in todos:
        by_file.setdefault(todo.file, []).append(todo.line_content.rstrip())

    removed = 0
    for file, pending in by_file.items():
        path = workdir / file
        if not path.is_file():
            continue
        content = path.read_text(encoding="utf-8", errors="surrogateescape")
        kept = []
        for line in content.split("\n"):
            if line.rstrip() in pending:
                pending.remove(line.rstrip())
                removed += 1
            else:
                kept.append(line)
        new_content = "\n".join(kept)
        if new_content != content:
            path.write_text(new_content, encoding="utf-8", errors="surrogateescape")

    return removed
