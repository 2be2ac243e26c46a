"""
Loader Options

Mutable per-loader settings. Tests and callers flip `source_maps` or
`modules` on a live loader; the next operation picks the change up.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple
from urllib.parse import urlparse

from ..utils.config import (
    DEFAULT_EXTENSION,
    DEFAULT_MODULES_MODE,
    ENV_BASE_URL,
    ENV_MODULES,
    ENV_SOURCE_MAPS,
    KNOWN_EXTENSIONS,
    MODULES_INSTANTIATE,
    MODULES_REGISTER,
)
from ..utils.io_utils import path_to_base_url

MODULE_MODES = (MODULES_REGISTER, MODULES_INSTANTIATE)


def _as_base_url(base: str) -> str:
    """Accept a URL or a filesystem directory."""
    scheme = urlparse(base).scheme
    if scheme and len(scheme) > 1:
        return base
    return path_to_base_url(base)


@dataclass
class LoaderOptions:
    """
    - base_url: URL (or directory) canonical names are located against
    - source_maps: record a source map for every compile
    - modules: default define() mode, 'register' (eager) or 'instantiate'
    - default_extension: appended by locate() to names without one
    - extensions: names ending in one of these are located as-is
    - base_name: directory relative specifiers resolve against when there
      is no referrer
    """
    base_url: str = field(default_factory=lambda: path_to_base_url(Path.cwd()))
    source_maps: bool = False
    modules: str = DEFAULT_MODULES_MODE
    default_extension: str = DEFAULT_EXTENSION
    extensions: Tuple[str, ...] = KNOWN_EXTENSIONS
    base_name: str = ""

    def __post_init__(self):
        self.base_url = _as_base_url(self.base_url)
        if self.modules not in MODULE_MODES:
            raise ValueError(f"modules must be one of {MODULE_MODES}, got {self.modules!r}")
        if self.default_extension not in self.extensions:
            self.extensions = (self.default_extension,) + tuple(self.extensions)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "LoaderOptions":
        environ = os.environ if environ is None else environ
        values = {}
        if environ.get(ENV_BASE_URL):
            values["base_url"] = environ[ENV_BASE_URL]
        if environ.get(ENV_SOURCE_MAPS):
            values["source_maps"] = environ[ENV_SOURCE_MAPS].lower() in ("1", "true", "yes", "on")
        if environ.get(ENV_MODULES):
            values["modules"] = environ[ENV_MODULES]
        values.update(overrides)
        return cls(**values)
