"""
Body Evaluation

Runs translated module and script text on the Python interpreter. Import
bindings are placed into a fresh globals dict before the body runs; exports
are read back out afterwards.

Every failure here is an InstantiateError that points at the failing line of
the unit when the traceback reaches it.
"""

import ast
import builtins
import logging
import traceback
from typing import Any, Dict, Mapping, Optional

from ..shared.errors import InstantiateError
from ..shared.module_shape import ModuleShape
from ..shared.source_location import SourceLocation
from ..utils.config import DEFAULT_EXPORT
from .namespace import Namespace

logger = logging.getLogger(__name__)


def _lookup(namespace: Namespace, export: str, specifier: str, importer: str) -> Any:
    if export not in namespace:
        raise InstantiateError(
            f"module '{specifier}' has no export '{export}'",
            name=importer,
            help=f"available exports: {', '.join(namespace) or '(none)'}",
        )
    return namespace[export]


def bind_imports(shape: ModuleShape, dependencies: Mapping[str, Namespace], importer: str) -> Dict[str, Any]:
    """Local import bindings, keyed by local name."""
    bindings: Dict[str, Any] = {}
    for binding in shape.imports:
        namespace = dependencies[binding.specifier]
        if binding.imported is None:
            bindings[binding.local] = namespace
        else:
            bindings[binding.local] = _lookup(namespace, binding.imported, binding.specifier, importer)
    return bindings


def collect_exports(
    shape: ModuleShape,
    module_globals: Mapping[str, Any],
    dependencies: Mapping[str, Namespace],
    name: str,
) -> Dict[str, Any]:
    """Read the exported values out of an evaluated body."""
    if shape.exports is None:
        return {
            key: value for key, value in module_globals.items()
            if not key.startswith("_")
        }

    exports: Dict[str, Any] = {}
    for specifier in shape.star_exports:
        namespace = dependencies[specifier]
        for key in namespace:
            if key != DEFAULT_EXPORT:
                exports.setdefault(key, namespace[key])

    for binding in shape.exports:
        if binding.is_reexport:
            namespace = dependencies[binding.specifier]
            if binding.imported is None:
                exports[binding.exported] = namespace
            else:
                exports[binding.exported] = _lookup(namespace, binding.imported, binding.specifier, name)
        elif binding.local in module_globals:
            exports[binding.exported] = module_globals[binding.local]
        else:
            raise InstantiateError(f"exported name '{binding.local}' is not defined", name=name)
    return exports


def _failure(e: Exception, filename: str, name: str, source: Optional[str]) -> InstantiateError:
    location = None
    for frame in reversed(traceback.extract_tb(e.__traceback__)):
        if frame.filename == filename and frame.lineno:
            location = SourceLocation(filename, frame.lineno, 1)
            break
    return InstantiateError(
        f"{type(e).__name__}: {e}",
        location=location,
        name=name,
        source_code=source,
    )


def execute_module(
    code: str,
    filename: str,
    name: str,
    shape: ModuleShape,
    dependencies: Mapping[str, Namespace],
    source: Optional[str] = None,
) -> Namespace:
    """Run a module body once and build its namespace."""
    module_globals: Dict[str, Any] = {
        "__name__": name,
        "__file__": filename,
        "__builtins__": builtins,
    }
    module_globals.update(bind_imports(shape, dependencies, name))
    try:
        exec(compile(code, filename, "exec"), module_globals)
    except InstantiateError:
        raise
    except Exception as e:
        raise _failure(e, filename, name, source) from e
    namespace = Namespace(collect_exports(shape, module_globals, dependencies, name), name=name)
    logger.debug(f"Evaluated module {name}: exports {list(namespace)}")
    return namespace


def execute_script(
    code: str,
    filename: str,
    name: str,
    script_globals: Optional[Dict[str, Any]] = None,
    source: Optional[str] = None,
) -> Any:
    """
    Run script text and return its completion value: the value of a
    trailing expression statement, else None.
    """
    script_globals = dict(script_globals or {})
    script_globals.setdefault("__name__", name)
    script_globals.setdefault("__builtins__", builtins)
    try:
        tree = ast.parse(code, filename=filename, mode="exec")
        tail = None
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            tail = ast.Expression(tree.body.pop().value)
        exec(compile(tree, filename, "exec"), script_globals)
        if tail is None:
            return None
        return eval(compile(tail, filename, "eval"), script_globals)
    except InstantiateError:
        raise
    except Exception as e:
        raise _failure(e, filename, name, source) from e
