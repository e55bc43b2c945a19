"""Decide when a read loop has received everything it needs."""

from __future__ import annotations

from abc import ABC, abstractmethod


class EofChecker(ABC):
    """Judges the data read so far together with the last read's error."""

    @abstractmethod
    def check(self, data: bytes | None, error: BaseException | None) -> bool:
        """Return True when reading is complete, False to keep reading.

        Raise to abort reading with an error.
        """


class DefaultEofChecker(EofChecker):
    """Finishes at end of stream and re-raises any other error."""

    def check(self, data: bytes | None, error: BaseException | None) -> bool:
        if error is None:
            return False
        if isinstance(error, EOFError):
            return True
        raise error


DEFAULT_EOF_CHECKER = DefaultEofChecker()