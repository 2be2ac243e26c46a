"""
Source Map Index

Source maps generated during translate, keyed by (canonical name, kind).
Only compiles that asked for a source map add entries.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from ..shared.module_shape import ModuleKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceMapEntry:
    name: str
    kind: ModuleKind
    source_map: str
    url: str


class SourceMapIndex:
    def __init__(self):
        self._entries: Dict[Tuple[str, ModuleKind], SourceMapEntry] = {}

    def record(self, name: str, kind: Union[ModuleKind, str], payload: str, url: str) -> SourceMapEntry:
        """Store a map; recording the same (name, kind) again replaces the entry."""
        kind = ModuleKind(kind)
        entry = SourceMapEntry(name, kind, payload, url)
        self._entries[(name, kind)] = entry
        logger.debug(f"SourceMapIndex: recorded {kind.value} {name} ({url})")
        return entry

    def query(self, name: str, kind: Union[ModuleKind, str] = ModuleKind.MODULE) -> Optional[SourceMapEntry]:
        """Entry for (name, kind), or None when absent or the kind is unknown."""
        try:
            kind = ModuleKind(kind)
        except ValueError:
            return None
        return self._entries.get((name, kind))

    def __len__(self) -> int:
        return len(self._entries)
