"""
modloader: an asyncio module loader for Python-hosted module source.

    from modloader import Loader, LoaderOptions

    loader = Loader(options=LoaderOptions(base_url="src/"))
    ns = asyncio.run(loader.import_module("./app"))
"""

from .utils.config import PACKAGE_VERSION as __version__
from .shared import (
    LoaderError,
    ResolutionError,
    FetchError,
    CompileError,
    InstantiateError,
    DefinitionConflictError,
    ErrorReporter,
    MutedErrorReporter,
)
from .resolution import PackageMap, Normalizer, semver_map, parse_version
from .frontend import ModuleCompiler, SourceMapConsumer
from .runtime import Namespace
from .loader import (
    Loader,
    LoaderOptions,
    LoaderHooks,
    Load,
    Instantiation,
    Translation,
    MemoryFetcher,
)


def api_exports():
    """Bindings of the self-registered `modloader@` module."""
    return {
        "version": __version__,
        "Loader": Loader,
        "LoaderOptions": LoaderOptions,
        "PackageMap": PackageMap,
        "Namespace": Namespace,
        "semver_map": semver_map,
    }


__all__ = [
    '__version__',
    'LoaderError',
    'ResolutionError',
    'FetchError',
    'CompileError',
    'InstantiateError',
    'DefinitionConflictError',
    'ErrorReporter',
    'MutedErrorReporter',
    'PackageMap',
    'Normalizer',
    'semver_map',
    'parse_version',
    'ModuleCompiler',
    'SourceMapConsumer',
    'Namespace',
    'Loader',
    'LoaderOptions',
    'LoaderHooks',
    'Load',
    'Instantiation',
    'Translation',
    'MemoryFetcher',
]
