"""
Loader Hooks

One strategy object per pipeline stage. The loader receives them bundled in
LoaderHooks, so any stage can be swapped without subclassing the loader:

- Locator.locate(load)           → address
- Fetcher.fetch(load)            → source text
- Translator.translate(load)     → Translation (or plain text)
- Instantiator.instantiate(load) → Instantiation, or None to run the body

Methods may be coroutines or plain functions; the pipeline awaits either.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Mapping, Optional, Protocol, Sequence, Union
from urllib.parse import quote, urljoin

from ..frontend.compiler import CompileOptions, CompileOutput, ModuleCompiler
from ..shared.errors import FetchError, ResolutionError
from ..shared.module_shape import ModuleKind, ModuleShape
from ..utils.config import DEFAULT_EXTENSION, KNOWN_EXTENSIONS, URL_SAFE_CHARS
from ..utils.io_utils import address_to_path, read_source_file
from .load import Instantiation, Load

logger = logging.getLogger(__name__)


@dataclass
class Translation:
    """Outcome of the translate stage."""
    code: str
    shape: Optional[ModuleShape] = None
    source_map: Optional[str] = None
    source_url: Optional[str] = None


class Compiler(Protocol):
    def compile(self, source_text: str, kind: ModuleKind, options: CompileOptions) -> CompileOutput: ...


class Locator(Protocol):
    def locate(self, load: Load) -> Union[str, Awaitable[str]]: ...


class Fetcher(Protocol):
    def fetch(self, load: Load) -> Union[str, Awaitable[str]]: ...


class Translator(Protocol):
    def translate(self, load: Load) -> Union[Translation, str, Awaitable[Union[Translation, str]]]: ...


class Instantiator(Protocol):
    def instantiate(self, load: Load) -> Union[Optional[Instantiation], Awaitable[Optional[Instantiation]]]: ...


class ExtensionLocator:
    """
    Default locate: base URL + name + default extension.

    locate('@abc/def') with base 'http://example.org/a/'
        → 'http://example.org/a/@abc/def.pym'
    """

    def __init__(
        self,
        default_extension: str = DEFAULT_EXTENSION,
        extensions: Sequence[str] = KNOWN_EXTENSIONS,
    ):
        self.default_extension = default_extension
        self.extensions = tuple(extensions)

    async def locate(self, load: Load) -> str:
        base_url = load.base_url
        if not base_url:
            raise ResolutionError(f"No base_url to locate '{load.name}' against", name=load.name)
        name = load.name
        if not name.endswith(self.extensions):
            name += self.default_extension
        # './' keeps a name such as 'pkg@1.0:x' from being read as a URL scheme
        return urljoin(base_url, "./" + quote(name, safe=URL_SAFE_CHARS))


class FileFetcher:
    """Reads file:// addresses (or plain paths) off the event loop thread."""

    async def fetch(self, load: Load) -> str:
        address = load.address
        try:
            path = address_to_path(address)
        except ValueError as e:
            raise FetchError(str(e), address=address, name=load.name) from e
        try:
            return await asyncio.to_thread(read_source_file, path)
        except (OSError, UnicodeDecodeError) as e:
            reason = getattr(e, "strerror", None) or str(e)
            raise FetchError(f"Cannot fetch {address}: {reason}", address=address, name=load.name) from e


class MemoryFetcher:
    """Serves sources from an in-memory overlay keyed by address."""

    def __init__(self, sources: Optional[Mapping[str, str]] = None):
        self.sources: Dict[str, str] = dict(sources or {})
        self.requests: Dict[str, int] = {}

    def add(self, address: str, text: str) -> None:
        self.sources[address] = text

    async def fetch(self, load: Load) -> str:
        address = load.address
        self.requests[address] = self.requests.get(address, 0) + 1
        try:
            return self.sources[address]
        except KeyError:
            raise FetchError(f"Cannot fetch {address}: not found", address=address, name=load.name) from None


class CompilingTranslator:
    """Default translate: run the compiler, or pass text through if there is none."""

    def __init__(self, compiler: Optional[Compiler] = None):
        self.compiler = compiler

    async def translate(self, load: Load) -> Translation:
        if self.compiler is None:
            return Translation(load.source)
        options = CompileOptions(
            emit_source_map=bool(load.metadata.get("source_maps")),
            filename=load.filename,
            source_url=load.filename,
        )
        output = self.compiler.compile(load.source, load.kind, options)
        return Translation(output.code, output.shape, output.source_map, output.source_url)


class DefaultInstantiator:
    """Default instantiate: no explicit result, the registry runs the body."""

    async def instantiate(self, load: Load) -> Optional[Instantiation]:
        return None


@dataclass
class LoaderHooks:
    locator: Any = field(default_factory=ExtensionLocator)
    fetcher: Any = field(default_factory=FileFetcher)
    translator: Any = field(default_factory=lambda: CompilingTranslator(ModuleCompiler()))
    instantiator: Any = field(default_factory=DefaultInstantiator)

    @classmethod
    def default(
        cls,
        compiler: Optional[Compiler] = None,
        fetcher: Optional[Fetcher] = None,
        default_extension: str = DEFAULT_EXTENSION,
        extensions: Sequence[str] = KNOWN_EXTENSIONS,
    ) -> "LoaderHooks":
        return cls(
            locator=ExtensionLocator(default_extension, extensions),
            fetcher=fetcher if fetcher is not None else FileFetcher(),
            translator=CompilingTranslator(compiler if compiler is not None else ModuleCompiler()),
        )
