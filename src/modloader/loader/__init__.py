"""Loader: options, hooks, the stage pipeline, the registry and the Loader facade."""

from .options import LoaderOptions
from .load import Load, Instantiation
from .hooks import (
    LoaderHooks,
    Translation,
    ExtensionLocator,
    FileFetcher,
    MemoryFetcher,
    CompilingTranslator,
    DefaultInstantiator,
)
from .pipeline import LoaderPipeline
from .registry import EvaluationState, ModuleRecord, ModuleRegistry
from .source_maps import SourceMapEntry, SourceMapIndex
from .loader import Loader

__all__ = [
    'LoaderOptions',
    'Load',
    'Instantiation',
    'LoaderHooks',
    'Translation',
    'ExtensionLocator',
    'FileFetcher',
    'MemoryFetcher',
    'CompilingTranslator',
    'DefaultInstantiator',
    'LoaderPipeline',
    'EvaluationState',
    'ModuleRecord',
    'ModuleRegistry',
    'SourceMapEntry',
    'SourceMapIndex',
    'Loader',
]
