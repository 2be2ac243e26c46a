"""
Loader

Entry point for every request: normalize, locate, fetch, translate,
instantiate, script, module, define, import_module, load_as_script and
source_map_info.

A Loader owns its registry, package map, source map index and hooks; no
state is global. Two rules hold for module loads:

- Coalescing: while a name's pipeline is in flight, every other request for
  that name waits on the same task instead of running the stages again.
- Atomic linking: a module's whole dependency closure is loaded before any
  of its records enter the registry. If one member fails, none of the new
  records are committed and a retry starts from scratch.

Every public operation reports its failure to the ErrorReporter once and
then re-raises, so muting the reporter never hides a rejection.
"""

import asyncio
import itertools
import logging
from collections import Counter
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

from ..resolution.normalizer import Normalizer
from ..resolution.package_map import PackageMap
from ..runtime.evaluator import execute_script
from ..runtime.namespace import Namespace
from ..shared.errors import (
    DefinitionConflictError,
    ErrorReporter,
    InstantiateError,
    LoaderError,
)
from ..shared.module_shape import ModuleKind, ModuleShape
from ..utils.config import (
    ANONYMOUS_MODULE_PREFIX,
    ANONYMOUS_SCRIPT_PREFIX,
    MODULES_REGISTER,
    PACKAGE_NAME,
    PACKAGE_VERSION,
    SCRIPT_LOADER_GLOBAL,
    VERSION_SEPARATOR,
)
from .hooks import LoaderHooks
from .load import Instantiation, Load
from .options import MODULE_MODES, LoaderOptions
from .pipeline import LoaderPipeline
from .registry import EvaluationState, ModuleRecord, ModuleRegistry
from .source_maps import SourceMapEntry, SourceMapIndex

logger = logging.getLogger(__name__)

T = TypeVar("T")

SELF_MODULE_NAME = f"{PACKAGE_NAME}{VERSION_SEPARATOR}"
SELF_VERSIONED_NAME = f"{PACKAGE_NAME}{VERSION_SEPARATOR}{PACKAGE_VERSION}"


def _is_anonymous(name: str) -> bool:
    return name.startswith("<")


class Loader:
    """
    Asynchronous module loader.

    Example:
        loader = Loader(options=LoaderOptions(base_url="file:///app/"))
        ns = await loader.import_module("./main")
        value = await loader.script("(lambda x=42: x)()")
    """

    def __init__(
        self,
        hooks: Optional[LoaderHooks] = None,
        options: Optional[LoaderOptions] = None,
        reporter: Optional[ErrorReporter] = None,
        package_map: Optional[PackageMap] = None,
    ):
        self.options = options or LoaderOptions()
        self.reporter = reporter if reporter is not None else ErrorReporter()
        self.hooks = hooks or LoaderHooks.default(
            default_extension=self.options.default_extension,
            extensions=self.options.extensions,
        )
        self.pipeline = LoaderPipeline(self.hooks)
        self.registry = ModuleRegistry()
        self.source_maps = SourceMapIndex()
        if package_map is None:
            package_map = PackageMap.from_semver(SELF_VERSIONED_NAME)
        self.normalizer = Normalizer(package_map, base_name=self.options.base_name)
        self._in_flight: Dict[str, "asyncio.Future[Load]"] = {}
        # links currently waiting on or holding each in-flight task
        self._holders: Counter = Counter()
        self._anonymous = itertools.count(1)
        self._register_self()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def package_map(self) -> PackageMap:
        return self.normalizer.package_map

    @package_map.setter
    def package_map(self, value) -> None:
        if not isinstance(value, PackageMap):
            value = PackageMap(value)
        self.normalizer.package_map = value

    def _register_self(self) -> None:
        from .. import api_exports
        namespace = Namespace(api_exports(), name=SELF_MODULE_NAME)
        # 'modloader' maps to the versioned name; both share one namespace
        for name in (SELF_MODULE_NAME, SELF_VERSIONED_NAME):
            self.registry.add(ModuleRecord.evaluated(name, namespace))

    def _metadata(self, metadata: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        meta = dict(metadata or {})
        meta.setdefault("base_url", self.options.base_url)
        meta.setdefault("source_maps", self.options.source_maps)
        return meta

    async def _reported(self, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except Exception as e:
            self.reporter.report(e)
            raise

    # ------------------------------------------------------------------
    # Normalization and hook stages
    # ------------------------------------------------------------------

    def normalize(self, specifier: str, referrer: Optional[str] = None) -> str:
        try:
            return self.normalizer.normalize(specifier, referrer)
        except LoaderError as e:
            self.reporter.report(e)
            raise

    def _prepare(self, load: Load) -> Load:
        load.metadata = self._metadata(load.metadata)
        return load

    async def locate(self, load: Load) -> str:
        return await self._reported(self.pipeline.locate(self._prepare(load)))

    async def fetch(self, load: Load) -> str:
        return await self._reported(self.pipeline.fetch(self._prepare(load)))

    async def translate(self, load: Load) -> str:
        return await self._reported(self.pipeline.translate(self._prepare(load)))

    async def instantiate(self, load: Load) -> Optional[Instantiation]:
        return await self._reported(self.pipeline.instantiate(self._prepare(load)))

    # ------------------------------------------------------------------
    # Scripts
    # ------------------------------------------------------------------

    async def script(self, source: str, metadata: Optional[Mapping[str, Any]] = None) -> Any:
        """Compile and run non-module code; returns its completion value."""
        return await self._reported(self._script(source, metadata))

    async def _script(self, source: str, metadata: Optional[Mapping[str, Any]]) -> Any:
        meta = self._metadata(metadata)
        name = self._unit_name(meta, ANONYMOUS_SCRIPT_PREFIX)
        load = Load(
            name, ModuleKind.SCRIPT, meta.get("referrer_name"), meta,
            address=meta.get("address"), source=source,
        )
        await self.pipeline.run(load)
        return self._finish_script(load)

    async def load_as_script(
        self,
        specifier: str,
        referrer: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Locate, fetch and run legacy (non-module) code."""
        return await self._reported(self._load_as_script(specifier, referrer, metadata))

    async def _load_as_script(
        self, specifier: str, referrer: Optional[str], metadata: Optional[Mapping[str, Any]]
    ) -> Any:
        meta = self._metadata(metadata)
        if referrer is None:
            referrer = meta.get("referrer_name")
        name = self.normalizer.normalize(specifier, referrer)
        load = Load(name, ModuleKind.SCRIPT, referrer, meta)
        await self.pipeline.run(load)
        return self._finish_script(load)

    def _finish_script(self, load: Load) -> Any:
        self._record_source_map(load)
        if load.instantiation is not None:
            return load.instantiation.value
        return execute_script(
            load.translated,
            load.filename,
            load.name,
            {SCRIPT_LOADER_GLOBAL: self},
            source=load.source,
        )

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    async def module(self, source: str, metadata: Optional[Mapping[str, Any]] = None) -> Namespace:
        """Compile, link and evaluate module source; returns its namespace."""
        return await self._reported(self._module(source, metadata))

    async def _module(self, source: str, metadata: Optional[Mapping[str, Any]]) -> Namespace:
        meta = self._metadata(metadata)
        name = self._unit_name(meta, ANONYMOUS_MODULE_PREFIX)
        record = await self._define_source(name, source, meta)
        return self.registry.evaluate(record)

    async def define(
        self,
        name: str,
        source: str,
        metadata: Optional[Mapping[str, Any]] = None,
        mode: Optional[str] = None,
    ) -> None:
        """
        Register module source under `name`.

        mode 'register' evaluates the body (and its dependencies) now;
        'instantiate' defers evaluation until the name is first imported.
        Defaults to `options.modules`.
        """
        await self._reported(self._define(name, source, metadata, mode))

    async def _define(
        self, name: str, source: str, metadata: Optional[Mapping[str, Any]], mode: Optional[str]
    ) -> None:
        mode = mode or self.options.modules
        if mode not in MODULE_MODES:
            raise ValueError(f"define mode must be one of {MODULE_MODES}, got {mode!r}")
        meta = self._metadata(metadata)
        canonical = self.normalizer.normalize(name, meta.get("referrer_name"))
        record = await self._define_source(canonical, source, meta)
        if mode == MODULES_REGISTER:
            self.registry.evaluate(record)
        logger.debug(f"Defined {canonical} ({mode})")

    async def import_module(
        self,
        specifier: str,
        referrer: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Namespace:
        """Resolve, load (once) and evaluate (once) a module."""
        return await self._reported(self._import(specifier, referrer, metadata))

    async def _import(
        self, specifier: str, referrer: Optional[str], metadata: Optional[Mapping[str, Any]]
    ) -> Namespace:
        meta = self._metadata(metadata)
        if referrer is None:
            referrer = meta.get("referrer_name")
        name = self.normalizer.normalize(specifier, referrer)
        record = self.registry.get(name)
        if record is None or record.state is not EvaluationState.EVALUATED:
            await self._link([name], meta, referrer)
            record = self._committed(name)
        return self.registry.evaluate(record)

    # ------------------------------------------------------------------
    # Registry access
    # ------------------------------------------------------------------

    def get(self, name: str) -> Optional[Namespace]:
        """
        Namespace for `name` if it can be had without loading anything.

        A defined but unevaluated module is evaluated here when its whole
        dependency closure is already registered.
        """
        record = self.registry.get(name)
        if record is None:
            return None
        if record.state is EvaluationState.EVALUATED:
            return record.namespace
        if self.registry.missing_dependencies(record):
            return None
        try:
            return self.registry.evaluate(record)
        except LoaderError as e:
            self.reporter.report(e)
            raise

    def set(self, name: str, values: Mapping[str, Any]) -> Namespace:
        """Register an already-evaluated module."""
        namespace = values if isinstance(values, Namespace) else Namespace(values, name=name)
        try:
            self.registry.add(ModuleRecord.evaluated(name, namespace))
        except LoaderError as e:
            self.reporter.report(e)
            raise
        return namespace

    def has(self, name: str) -> bool:
        return self.registry.has(name)

    def source_map_info(self, name: str, kind: str = ModuleKind.MODULE) -> Optional[SourceMapEntry]:
        return self.source_maps.query(name, kind)

    # ------------------------------------------------------------------
    # Loading and linking
    # ------------------------------------------------------------------

    def _unit_name(self, meta: Mapping[str, Any], prefix: str) -> str:
        if meta.get("name"):
            return self.normalizer.normalize(str(meta["name"]), meta.get("referrer_name"))
        return f"{prefix}:{next(self._anonymous)}>"

    async def _define_source(self, name: str, source: str, meta: Dict[str, Any]) -> ModuleRecord:
        if self.registry.has(name) or name in self._in_flight:
            raise DefinitionConflictError(
                f"Module '{name}' is already defined or being loaded",
                name=name,
                help="a name can be defined once; import it instead",
            )
        load = Load(
            name, ModuleKind.MODULE, meta.get("referrer_name"), meta,
            address=meta.get("address"), source=source,
        )
        self._start(load)
        await self._link([name], meta, load.referrer)
        return self._committed(name)

    def _committed(self, name: str) -> ModuleRecord:
        record = self.registry.get(name)
        if record is None:
            raise InstantiateError(f"Module '{name}' was not registered", name=name)
        return record

    def _start(self, load: Load) -> "asyncio.Future[Load]":
        task = asyncio.ensure_future(self.pipeline.run(load))
        self._in_flight[load.name] = task

        def _forget_failure(done: "asyncio.Future[Load]") -> None:
            if done.cancelled() or done.exception() is not None:
                if self._in_flight.get(load.name) is done:
                    del self._in_flight[load.name]

        task.add_done_callback(_forget_failure)
        return task

    def _task_for(self, name: str, meta: Mapping[str, Any], referrer: Optional[str]) -> "asyncio.Future[Load]":
        task = self._in_flight.get(name)
        if task is not None:
            logger.debug(f"Coalescing load of {name}")
            return task
        child_meta = {key: meta[key] for key in ("base_url", "source_maps") if key in meta}
        return self._start(Load(name, ModuleKind.MODULE, referrer, child_meta))

    def _dependency_referrer(self, load: Load) -> Optional[str]:
        if _is_anonymous(load.name):
            return load.metadata.get("referrer_name")
        return load.name

    def _make_record(self, load: Load) -> ModuleRecord:
        if load.instantiation is not None:
            value = load.instantiation.value
            if isinstance(value, Namespace):
                namespace = value
            elif isinstance(value, Mapping):
                namespace = Namespace(value, name=load.name)
            else:
                raise InstantiateError(
                    f"instantiate for '{load.name}' returned {type(value).__name__}, "
                    f"expected a mapping of exports",
                    name=load.name,
                )
            return ModuleRecord.evaluated(load.name, namespace, address=load.address)

        shape = load.shape or ModuleShape.plain()
        referrer = self._dependency_referrer(load)
        dependencies = tuple(self.normalizer.normalize(spec, referrer) for spec in shape.requests)
        return ModuleRecord(
            load.name,
            EvaluationState.DEFINED,
            dependencies,
            shape,
            code=load.translated,
            address=load.filename,
            source=load.source,
        )

    async def _link(self, names: Iterable[str], meta: Mapping[str, Any], referrer: Optional[str]) -> None:
        """
        Load the dependency closure of `names` and commit it in one step.

        Names already in the registry are not loaded again, but their
        dependencies are walked so that a member dropped by an earlier
        failure is loaded afresh.
        """
        pending: Dict[str, Tuple[ModuleRecord, Load]] = {}
        used: Dict[str, "asyncio.Future[Load]"] = {}
        visited = set()
        frontier: List[Tuple[str, Optional[str]]] = [(name, referrer) for name in names]
        try:
            while frontier:
                batch: Dict[str, Optional[str]] = {}
                next_frontier: List[Tuple[str, Optional[str]]] = []
                for name, requested_by in frontier:
                    if name in visited:
                        continue
                    visited.add(name)
                    existing = self.registry.get(name)
                    if existing is None:
                        batch[name] = requested_by
                    elif existing.state is not EvaluationState.EVALUATED:
                        next_frontier.extend((dep, name) for dep in existing.dependencies)

                tasks = {name: self._task_for(name, meta, by) for name, by in batch.items()}
                used.update(tasks)
                self._holders.update(tasks.values())
                results = await asyncio.gather(
                    *(asyncio.shield(task) for task in tasks.values()), return_exceptions=True
                )
                for result in results:
                    if isinstance(result, BaseException):
                        raise result
                for load in results:
                    record = self._make_record(load)
                    pending[record.name] = (record, load)
                    next_frontier.extend((dep, record.name) for dep in record.dependencies)
                frontier = next_frontier
            self._commit(pending)
        finally:
            for name, task in used.items():
                self._holders[task] -= 1
                if self._holders[task] > 0:
                    # another link still holds this load uncommitted
                    continue
                del self._holders[task]
                if self._in_flight.get(name) is task and task.done():
                    del self._in_flight[name]

    def _commit(self, pending: Mapping[str, Tuple[ModuleRecord, Load]]) -> None:
        for name, (record, load) in pending.items():
            if self.registry.has(name):
                continue
            self.registry.add(record)
            self._record_source_map(load)

    def _record_source_map(self, load: Load) -> None:
        if load.source_map:
            self.source_maps.record(
                load.name, load.kind, load.source_map, load.source_url or load.filename
            )
