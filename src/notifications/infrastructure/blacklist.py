"""
Recipient Blacklist
===================

Read-only set of blocked recipient addresses loaded once at startup from a
line-oriented file:

    # comments and blank lines are ignored
    spam@example.com
    Abuse@Example.org
"""

from pathlib import Path
from typing import FrozenSet, Iterable, Union

from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class BlacklistFilter:
    """Case-insensitive membership check against a fixed address set."""

    def __init__(self, entries: Iterable[str] = ()):
        self._entries: FrozenSet[str] = frozenset(
            entry.strip().lower() for entry in entries if entry and entry.strip()
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "BlacklistFilter":
        """Load the blacklist; a missing file yields an empty filter."""
        path = Path(path)
        if not path.exists():
            logger.info("Email blacklist file not found, no addresses blocked", extra={"path": str(path)})
            return cls()

        entries = []
        for line in path.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            entries.append(stripped)

        blacklist = cls(entries)
        logger.info("Email blacklist loaded", extra={"path": str(path), "entries": len(blacklist)})
        return blacklist

    def is_blocked(self, address: str) -> bool:
        if not address:
            return False
        return address.strip().lower() in self._entries

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and self.is_blocked(address)

    def __len__(self) -> int:
        return len(self._entries)
