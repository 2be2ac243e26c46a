"""
Loader Pipeline

locate → fetch → translate → instantiate for a single Load.

Stages run strictly in sequence and every stage boundary is a suspension
point. A failing stage ends the run; the pipeline never touches the module
registry, so a failure cannot leave a partial record behind.
"""

import inspect
import logging
from typing import Any, Callable, Optional, Type

from ..shared.errors import (
    CompileError,
    FetchError,
    InstantiateError,
    LoaderError,
    ResolutionError,
)
from ..shared.module_shape import ModuleShape
from .hooks import LoaderHooks, Translation
from .load import Instantiation, Load

logger = logging.getLogger(__name__)


class LoaderPipeline:
    def __init__(self, hooks: Optional[LoaderHooks] = None):
        self.hooks = hooks or LoaderHooks()

    async def _stage(
        self,
        stage: str,
        error_type: Type[LoaderError],
        call: Callable[[Load], Any],
        load: Load,
    ) -> Any:
        logger.debug(f"{stage} {load.name}")
        try:
            result = call(load)
            if inspect.isawaitable(result):
                result = await result
            return result
        except LoaderError:
            raise
        except Exception as e:
            raise error_type(f"{stage} failed for '{load.name}': {e}", name=load.name) from e

    async def locate(self, load: Load) -> str:
        address = await self._stage("locate", ResolutionError, self.hooks.locator.locate, load)
        if not isinstance(address, str) or not address:
            raise ResolutionError(f"locate returned no address for '{load.name}'", name=load.name)
        load.address = address
        return address

    async def fetch(self, load: Load) -> str:
        text = await self._stage("fetch", FetchError, self.hooks.fetcher.fetch, load)
        if not isinstance(text, str):
            raise FetchError(
                f"fetch returned {type(text).__name__} for '{load.name}', expected text",
                address=load.address, name=load.name,
            )
        load.source = text
        return text

    async def translate(self, load: Load) -> str:
        translation = await self._stage("translate", CompileError, self.hooks.translator.translate, load)
        if isinstance(translation, str):
            translation = Translation(translation)
        load.translated = translation.code
        load.shape = translation.shape or ModuleShape.plain()
        load.source_map = translation.source_map
        load.source_url = translation.source_url
        return load.translated

    async def instantiate(self, load: Load) -> Optional[Instantiation]:
        result = await self._stage("instantiate", InstantiateError, self.hooks.instantiator.instantiate, load)
        if result is not None and not isinstance(result, Instantiation):
            result = Instantiation(result)
        load.instantiation = result
        return result

    async def run(self, load: Load) -> Load:
        """
        Drive a Load through every stage.

        locate and fetch are skipped when the Load already carries source
        (define, module and script requests).
        """
        if load.source is None:
            await self.locate(load)
            await self.fetch(load)
        await self.translate(load)
        await self.instantiate(load)
        logger.debug(f"Loaded {load.name} ({load.kind.value}) from {load.filename}")
        return load
