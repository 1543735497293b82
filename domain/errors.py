from __future__ import annotations

from collections.abc import Sequence


class MalformedImportError(ValueError):
    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = list(problems)
        summary = "; ".join(self.problems[:5])
        if len(self.problems) > 5:
            summary = f"{summary}; and {len(self.problems) - 5} more"
        super().__init__(f"Import rejected: {summary}")


class PersistenceError(RuntimeError):
    pass


class InvalidDrop(Exception):
    """Drop target or source vanished while the gesture was in flight."""
