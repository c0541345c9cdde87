"""Exceptions raised while loading and running alpha programs."""

from __future__ import annotations


class AVMError(RuntimeError):
    """A runtime error that stops the virtual machine."""

    def __init__(self, message: str, line: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.line = line


class BinaryFormatError(ValueError):
    """The input is not a well-formed alpha binary."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message