"""Session id persistence between agent invocations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

SESSION_FILE_NAME = "gtd-session"


class SessionStore(ABC):
    """Holds the most recent resumable agent session id."""

    @abstractmethod
    def read(self) -> str | None:
        """Return the stored session id, if any."""

    @abstractmethod
    def write(self, session_id: str) -> None:
        """Replace the stored session id."""

    @abstractmethod
    def delete(self) -> None:
        """Forget the stored session id."""


class FileSessionStore(SessionStore):
    """
    Single-line session file, normally inside the repository's ``.git``
    directory so it never shows up as a working tree change.
    """

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def for_git_dir(cls, git_dir: Path) -> FileSessionStore:
        return cls(git_dir / SESSION_FILE_NAME)

    def read(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            content = self.path.read_text().strip()
        except OSError:
            # Unreadable file behaves like no session
            return None
        return content or None

    def write(self, session_id: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(session_id + "\n")

    def delete(self) -> None:
        if self.path.exists():
            self.path.unlink()


class InMemorySessionStore(SessionStore):
    """Session store kept in memory, for tests and dry runs."""

    def __init__(self, session_id: str | None = None):
        self.session_id = session_id

    def read(self) -> str | None:
        return self.session_id

    def write(self, session_id: str) -> None:
        self.session_id = session_id

    def delete(self) -> None:
        self.session_id = None
