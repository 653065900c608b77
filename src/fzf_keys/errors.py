"""Errors raised while discovering keybinds."""

from pathlib import Path
from typing import Optional


class SourceError(Exception):
    """A discovery source failed as a whole."""

    kind = "error"

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source


class ConfigReadError(SourceError):
    """The source's config file could not be read.

    ``kind`` is one of ``not-found``, ``permission-denied``, ``not-a-file``
    or ``unreadable``.
    """

    def __init__(self, path: Path, kind: str, reason: str, source: str = ""):
        super().__init__(f"{path}: {kind}: {reason}", source)
        self.path = path
        self.kind = kind
        self.reason = reason


class ParseError(SourceError):
    """Config text could not be parsed into a node tree."""

    kind = "parse-error"

    def __init__(
        self,
        reason: str,
        line: int,
        column: int,
        dialect: str = "",
        path: Optional[Path] = None,
        source: str = "",
    ):
        self.reason = reason
        self.line = line
        self.column = column
        self.dialect = dialect
        self.path = path
        super().__init__(self._describe(), source)

    def _describe(self) -> str:
        where = f"{self.line}:{self.column}"
        if self.path is not None:
            where = f"{self.path}:{where}"
        return f"{where}: parse error: {self.reason}"

    def with_path(self, path: Path, source: str = "") -> "ParseError":
        """Return a copy located in ``path``."""
        return ParseError(
            self.reason, self.line, self.column, self.dialect, path, source or self.source
        )


class SourceUnavailableError(SourceError):
    """The program a source reads from is not available here."""

    kind = "unavailable"


class SettingsError(Exception):
    """The fzf-keys settings file is invalid."""
