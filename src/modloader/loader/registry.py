"""
Module Registry

Canonical name → ModuleRecord. The registry is the loader's only shared
mutable state. Records are added once a module and its whole dependency
closure have loaded. They are removed only when evaluating them fails.

Evaluation states:
    DEFINED     compiled, dependencies known, body not run
    EVALUATING  body (or a dependency's body) running
    EVALUATED   body ran once; namespace frozen

A body runs from start to finish without yielding to the event loop, so
concurrent importers cannot see another task's EVALUATING record. The state
only detects dependency cycles inside one evaluation.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from ..runtime.evaluator import execute_module
from ..runtime.namespace import Namespace
from ..shared.errors import DefinitionConflictError, InstantiateError
from ..shared.module_shape import ModuleShape

logger = logging.getLogger(__name__)


class EvaluationState(Enum):
    DEFINED = "defined"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"


@dataclass(eq=False)
class ModuleRecord:
    """
    Registry entry for one canonical name.

    dependencies[i] is the canonical name of shape.requests[i].
    """
    name: str
    state: EvaluationState = EvaluationState.DEFINED
    dependencies: Tuple[str, ...] = ()
    shape: ModuleShape = field(default_factory=ModuleShape.plain)
    code: Optional[str] = None
    address: Optional[str] = None
    source: Optional[str] = field(default=None, repr=False)
    namespace: Optional[Namespace] = field(default=None, repr=False)

    @classmethod
    def evaluated(cls, name: str, namespace: Namespace, address: Optional[str] = None) -> "ModuleRecord":
        return cls(name, EvaluationState.EVALUATED, address=address, namespace=namespace)

    @property
    def requests(self) -> Dict[str, str]:
        """Specifier → canonical name."""
        return dict(zip(self.shape.requests, self.dependencies))


class ModuleRegistry:
    def __init__(self):
        self._records: Dict[str, ModuleRecord] = {}

    def get(self, name: str) -> Optional[ModuleRecord]:
        return self._records.get(name)

    def has(self, name: str) -> bool:
        return name in self._records

    def names(self) -> List[str]:
        return list(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ModuleRecord]:
        return iter(list(self._records.values()))

    def add(self, record: ModuleRecord) -> ModuleRecord:
        """
        Register a record.

        Raises:
            DefinitionConflictError: if the name already has a record
        """
        if record.name in self._records:
            raise DefinitionConflictError(f"Module '{record.name}' is already registered", name=record.name)
        self._records[record.name] = record
        logger.debug(f"Registry: added {record.name} ({record.state.value})")
        return record

    def discard(self, name: str) -> None:
        if self._records.pop(name, None) is not None:
            logger.debug(f"Registry: removed {name}")

    def missing_dependencies(self, record: ModuleRecord) -> List[str]:
        """Names in the dependency closure of `record` without a record."""
        missing: List[str] = []
        seen = {record.name}
        stack = [record]
        while stack:
            current = stack.pop()
            if current.state is EvaluationState.EVALUATED:
                continue
            for dep in current.dependencies:
                if dep in seen:
                    continue
                seen.add(dep)
                dep_record = self._records.get(dep)
                if dep_record is None:
                    missing.append(dep)
                else:
                    stack.append(dep_record)
        return missing

    def evaluate(self, record: ModuleRecord, chain: Tuple[str, ...] = ()) -> Namespace:
        """
        Evaluate `record` (dependencies first) and return its namespace.

        Runs each body at most once. On failure every record whose evaluation
        was interrupted is removed, so a later request starts from scratch.

        Raises:
            InstantiateError: a body failed, a dependency is missing, or the
                              dependency graph has a cycle
        """
        if record.state is EvaluationState.EVALUATED:
            return record.namespace
        if record.state is EvaluationState.EVALUATING:
            cycle = " -> ".join(chain + (record.name,))
            raise InstantiateError(
                f"Circular dependency while evaluating: {cycle}",
                name=record.name,
                note="modules in a cycle cannot read each other's exports during evaluation",
            )

        record.state = EvaluationState.EVALUATING
        try:
            dependencies: Dict[str, Namespace] = {}
            for specifier, dep_name in record.requests.items():
                dep = self._records.get(dep_name)
                if dep is None:
                    raise InstantiateError(
                        f"Dependency '{dep_name}' of '{record.name}' is not loaded",
                        name=record.name,
                    )
                dependencies[specifier] = self.evaluate(dep, chain + (record.name,))
            namespace = execute_module(
                record.code or "",
                record.address or record.name,
                record.name,
                record.shape,
                dependencies,
                source=record.source,
            )
        except BaseException:
            record.state = EvaluationState.DEFINED
            self.discard(record.name)
            raise

        record.namespace = namespace
        record.state = EvaluationState.EVALUATED
        logger.debug(f"Registry: {record.name} evaluated")
        return namespace
