"""Frontend: the default compiler collaborator and source map support."""

from .compiler import ModuleCompiler, CompileOptions, CompileOutput
from .source_map import SourceMapGenerator, SourceMapConsumer, OriginalPosition

__all__ = [
    'ModuleCompiler',
    'CompileOptions',
    'CompileOutput',
    'SourceMapGenerator',
    'SourceMapConsumer',
    'OriginalPosition',
]
