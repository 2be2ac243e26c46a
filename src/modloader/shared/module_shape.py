"""
Module Shape

What a compiled module imports and exports. Produced by the compiler,
carried by a Load, stored on the ModuleRecord and consumed by the evaluator.
These types are pure data structures with no business logic.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class ModuleKind(str, Enum):
    """How a compiled unit is evaluated."""
    SCRIPT = "script"
    MODULE = "module"


@dataclass(frozen=True)
class ImportBinding:
    """
    A local name bound from another module.

    imported=None binds the whole namespace (`module a from "x"`,
    `import * as a from "x"`).
    """
    local: str
    specifier: str
    imported: Optional[str] = None


@dataclass(frozen=True)
class ExportBinding:
    """
    One exported name.

    Either a local binding (`local` set) or a re-export from another module
    (`specifier` set; imported=None re-exports the whole namespace).
    """
    exported: str
    local: Optional[str] = None
    specifier: Optional[str] = None
    imported: Optional[str] = None

    @property
    def is_reexport(self) -> bool:
        return self.specifier is not None


@dataclass(frozen=True)
class ModuleShape:
    """
    Compiled module interface.

    - requests: specifiers in first-appearance order (no duplicates)
    - imports: local bindings taken from requested modules
    - exports: exported bindings; None means "every public global"
      (plain Python without declarations)
    - star_exports: specifiers whose exports are all re-exported
    """
    requests: Tuple[str, ...] = ()
    imports: Tuple[ImportBinding, ...] = ()
    exports: Optional[Tuple[ExportBinding, ...]] = None
    star_exports: Tuple[str, ...] = field(default=())

    @classmethod
    def plain(cls) -> "ModuleShape":
        """Shape of source with no module declarations."""
        return cls()
