"""Exceptions raised by flatconf.

Every failure leaves the Config instance usable: a failed open/reload keeps
the previous snapshot, and watch-loop failures are logged, never raised.
"""

from __future__ import annotations


class FlatconfError(Exception):
    """Base class for all flatconf errors."""


class EmptyInputError(FlatconfError, ValueError):
    """open() was called without any source path."""


class SourceReadError(FlatconfError, OSError):
    """A source file is missing or unreadable."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"failed to read config file {path}: {reason}")
        self.path = path


class SourceParseError(FlatconfError, ValueError):
    """A source file could not be parsed as INI or JSON."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"failed to parse config file {path}: {reason}")
        self.path = path


class NoSourceLoadedError(FlatconfError, RuntimeError):
    """reload() was called before any successful open()."""


class WatchSetupError(FlatconfError, OSError):
    """The change source could not be created or a path could not be watched."""


class InvalidTargetError(FlatconfError, TypeError):
    """A binding target is neither a record class nor a record instance."""
