"""Shared types: source locations, loader exceptions, error reporting."""

from .source_location import SourceLocation
from .errors import (
    Error,
    LoaderError,
    ResolutionError,
    FetchError,
    CompileError,
    InstantiateError,
    DefinitionConflictError,
    ErrorReporter,
    MutedErrorReporter,
)

__all__ = [
    'SourceLocation',
    'Error',
    'LoaderError',
    'ResolutionError',
    'FetchError',
    'CompileError',
    'InstantiateError',
    'DefinitionConflictError',
    'ErrorReporter',
    'MutedErrorReporter',
]
