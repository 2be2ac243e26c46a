"""
Load

Transient record of one resolution/compilation attempt. A Load belongs to
the pipeline run that created it and is dropped once that run's outcome has
been turned into a module record (or a script value).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..shared.module_shape import ModuleKind, ModuleShape


@dataclass(frozen=True)
class Instantiation:
    """Explicit result from an instantiate hook; bypasses body execution."""
    value: Any


@dataclass(eq=False)
class Load:
    name: str
    kind: ModuleKind = ModuleKind.MODULE
    referrer: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    address: Optional[str] = None
    source: Optional[str] = None
    translated: Optional[str] = None
    shape: Optional[ModuleShape] = None
    source_map: Optional[str] = None
    source_url: Optional[str] = None
    instantiation: Optional[Instantiation] = None

    @property
    def base_url(self) -> Optional[str]:
        return self.metadata.get("base_url")

    @property
    def filename(self) -> str:
        """Name used for diagnostics and tracebacks."""
        return self.address or self.name
