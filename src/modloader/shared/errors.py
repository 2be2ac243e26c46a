"""
Error Reporting

Loader exceptions plus a rustc-style diagnostic renderer and the reporters
that collect failures from top-level loader operations.
"""

import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional

from .source_location import SourceLocation


# ---------------------------------------------------------------------------
# ANSI color helpers (disabled when NO_COLOR is set or not requested)
# ---------------------------------------------------------------------------

def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    explicit = os.environ.get("MODLOADER_COLOR", "").lower()
    if explicit in ("0", "false", "no", "never"):
        return False
    return sys.stderr.isatty()

_BOLD   = "\033[1m"
_RED    = "\033[31m"
_BLUE   = "\033[34m"
_CYAN   = "\033[36m"
_RESET  = "\033[0m"

def _style(text: str, *codes: str, color: bool = True) -> str:
    if not color:
        return text
    prefix = "".join(codes)
    return f"{prefix}{text}{_RESET}" if prefix else text


# ---------------------------------------------------------------------------
# Diagnostic record
# ---------------------------------------------------------------------------

@dataclass
class Error:
    """A reported failure, detached from the exception that carried it."""
    message: str
    location: Optional[SourceLocation]
    code: Optional[str] = None
    help: Optional[str] = None
    note: Optional[str] = None
    label: Optional[str] = None


def _format_diagnostic(
    error: Error,
    source_files: Dict[str, str],
    color: bool = False,
) -> str:
    """
    Render a single diagnostic.

    Example output (plain, no color)::

        error[L0300]: invalid syntax
         --> file:///app/main.pym:3:9
          |
        3 | x = 1 +
          |        ^ invalid syntax
    """
    out: List[str] = []

    code_str = f"[{error.code}]" if error.code else ""
    out.append(
        _style(f"error{code_str}", _BOLD, _RED, color=color)
        + _style(f": {error.message}", _BOLD, color=color)
    )

    loc = error.location
    if loc is None:
        out.append(_style(" --> ", _BOLD, _BLUE, color=color) + "<unknown location>")
        _append_annotations(out, error, 1, color)
        return "\n".join(out)

    source = source_files.get(loc.file)
    lines = source.split("\n") if source is not None else []
    if not 0 < loc.line <= len(lines):
        out.append(_style(" --> ", _BOLD, _BLUE, color=color) + str(loc))
        _append_annotations(out, error, 1, color)
        return "\n".join(out)

    gw = len(str(loc.line))
    code_line = lines[loc.line - 1]
    gutter = _style(" " * (gw + 1) + "|", _BOLD, _BLUE, color=color)

    out.append(_style(" " * gw + "--> ", _BOLD, _BLUE, color=color) + str(loc))
    out.append(gutter)
    out.append(_style(str(loc.line).rjust(gw) + " | ", _BOLD, _BLUE, color=color) + code_line)

    col_start = max(loc.column, 1) - 1
    if loc.end_column > loc.column and loc.end_line in (0, loc.line):
        span_len = loc.end_column - loc.column
    else:
        span_len = _guess_span(code_line, col_start)
    label_suffix = f" {error.label}" if error.label else ""
    carets = " " * col_start + "^" * max(1, span_len) + label_suffix
    out.append(gutter + " " + _style(carets, _BOLD, _RED, color=color))

    _append_annotations(out, error, gw, color)
    return "\n".join(out)


def _guess_span(code_line: str, col_start: int) -> int:
    """Guess token length when end_column is unavailable."""
    length = 0
    for ch in code_line[col_start:]:
        if ch in (" ", "\t", ";", ",", ")", "]", "}"):
            break
        length += 1
    return max(1, length)


def _append_annotations(out: List[str], error: Error, gw: int, color: bool) -> None:
    if not (error.help or error.note):
        return
    pad = " " * (gw + 1)
    out.append(_style(pad + "|", _BOLD, _BLUE, color=color))
    for kind, text in (("help", error.help), ("note", error.note)):
        if text:
            out.append(
                _style(f"{pad}= ", _BOLD, _CYAN, color=color)
                + _style(f"{kind}: ", _BOLD, color=color)
                + text
            )


# ============================================================================
# Exception Classes
# ============================================================================

class LoaderError(Exception):
    """Base exception for every failure surfaced by the loader."""
    error_code = "L0001"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        name: Optional[str] = None,
        source_code: Optional[str] = None,
        help: Optional[str] = None,
        note: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.location = location
        self.name = name
        self.source_code = source_code
        self.help_text = help
        self.note_text = note

    def to_diagnostic(self) -> Error:
        note = self.note_text
        if note is None and self.name:
            note = f"while loading '{self.name}'"
        return Error(
            message=self.message,
            location=self.location,
            code=self.error_code,
            help=self.help_text,
            note=note,
        )

    def __str__(self):
        if self.location is None:
            return self.message
        return f"{self.message} ({self.location})"


class ResolutionError(LoaderError):
    """Malformed specifier or a package map rewrite that never settles."""
    error_code = "L0100"


class FetchError(LoaderError):
    """The address could not be read."""
    error_code = "L0200"

    def __init__(self, message: str, address: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.address = address


class CompileError(LoaderError):
    """
    Source text is invalid: a syntax error in the body, a malformed
    declaration, or module-only syntax used in a script.
    """
    error_code = "L0300"


class InstantiateError(LoaderError):
    """Failure in an instantiate hook or while running a module/script body."""
    error_code = "L0400"


class DefinitionConflictError(LoaderError):
    """A name was defined while it already had a record or a load in flight."""
    error_code = "L0500"


# ---------------------------------------------------------------------------
# ErrorReporter
# ---------------------------------------------------------------------------

class ErrorReporter:
    """
    Collects loader failures and writes each one to stderr as it arrives.

    Reporting never replaces raising: callers still see the exception.
    """

    def __init__(self, source_files: Optional[Dict[str, str]] = None):
        self.source_files: Dict[str, str] = dict(source_files or {})
        self.errors: List[Error] = []

    def report(self, exc: BaseException) -> Error:
        """Record an exception raised by a loader operation."""
        if isinstance(exc, LoaderError):
            error = exc.to_diagnostic()
            if exc.source_code is not None and exc.location is not None:
                self.source_files.setdefault(exc.location.file, exc.source_code)
        else:
            error = Error(message=f"{type(exc).__name__}: {exc}", location=None)
        self.errors.append(error)
        self.emit(error)
        return error

    def report_error(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        code: Optional[str] = None,
        help: Optional[str] = None,
        note: Optional[str] = None,
        label: Optional[str] = None,
    ) -> Error:
        error = Error(
            message=message,
            location=location,
            code=code,
            help=help,
            note=note,
            label=label,
        )
        self.errors.append(error)
        self.emit(error)
        return error

    def emit(self, error: Error) -> None:
        print(self.format_error(error), file=sys.stderr)

    def had_error(self) -> bool:
        return len(self.errors) > 0

    def clear(self) -> None:
        self.errors.clear()

    def format_error(self, error: Error, color: Optional[bool] = None) -> str:
        use_color = color if color is not None else _use_color()
        return _format_diagnostic(error, self.source_files, color=use_color)

    def format_all_errors(self, color: Optional[bool] = None) -> str:
        use_color = color if color is not None else _use_color()
        parts = [self.format_error(e, color=use_color) for e in self.errors]
        count = len(self.errors)
        summary = f"aborting due to {count} previous error{'s' if count != 1 else ''}"
        parts.append(
            _style("error", _BOLD, _RED, color=use_color)
            + _style(f": {summary}", _BOLD, color=use_color)
        )
        return "\n\n".join(parts)


class MutedErrorReporter(ErrorReporter):
    """Records reports for assertions but never writes them out."""

    def emit(self, error: Error) -> None:
        pass
