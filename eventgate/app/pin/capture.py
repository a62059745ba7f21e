"""Digit-sequence capture shared by the verifier and enroller pads."""
from __future__ import annotations

from collections.abc import Callable
from typing import List

from ..state import PIN_LENGTH

CompleteCallback = Callable[[str], None]

DIGITS = frozenset("0123456789")


class PinCapture:
    """Collects exactly ``length`` digits and reports each completed entry once.

    The buffer is never cleared here on completion; the owner decides when to
    call :meth:`clear`.
    """

    def __init__(self, on_complete: CompleteCallback, *, length: int = PIN_LENGTH) -> None:
        if length < 1:
            raise ValueError("length must be positive")
        self.length = length
        self._on_complete = on_complete
        self._digits: List[str] = []

    @property
    def current_length(self) -> int:
        return len(self._digits)

    @property
    def is_full(self) -> bool:
        return len(self._digits) >= self.length

    def press_digit(self, digit: str) -> bool:
        """Append ``digit``; returns False when the press was ignored."""
        digit = str(digit)
        if digit not in DIGITS:
            raise ValueError(f"not a digit: {digit!r}")
        if self.is_full:
            return False
        self._digits.append(digit)
        if len(self._digits) == self.length:
            self._on_complete("".join(self._digits))
        return True

    def press_delete(self) -> bool:
        if not self._digits:
            return False
        self._digits.pop()
        return True

    def clear(self) -> None:
        self._digits.clear()


__all__ = ["PinCapture", "CompleteCallback", "DIGITS"]
