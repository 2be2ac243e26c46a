#!/usr/bin/env python3
"""
Tests for module namespaces and body evaluation.
"""

import pytest
from modloader.runtime.evaluator import bind_imports, collect_exports, execute_module, execute_script
from modloader.runtime.namespace import Namespace, namespace_dict, namespace_name
from modloader.shared.errors import InstantiateError
from modloader.shared.module_shape import ExportBinding, ImportBinding, ModuleShape


class TestNamespace:
    """Immutable export views"""

    def test_attribute_and_key_access(self):
        ns = Namespace({"a": 1, "b": [2]}, name="m")
        assert ns.a == 1
        assert ns["b"] == [2]
        assert "a" in ns
        assert len(ns) == 2
        assert sorted(ns) == ["a", "b"]
        assert sorted(dir(ns)) == ["a", "b"]

    def test_missing_export(self):
        ns = Namespace({}, name="m")
        with pytest.raises(AttributeError, match="no export 'x'"):
            ns.x
        with pytest.raises(KeyError):
            ns["x"]

    def test_cannot_assign_or_delete(self):
        ns = Namespace({"a": 1})
        with pytest.raises(TypeError):
            ns.a = 2
        with pytest.raises(TypeError):
            ns.b = 3
        with pytest.raises(TypeError):
            del ns.a
        assert ns.a == 1

    def test_bindings_are_copied(self):
        source = {"a": 1}
        ns = Namespace(source)
        source["a"] = 2
        source["b"] = 3
        assert ns.a == 1
        assert "b" not in ns

    def test_exports_are_not_shadowed(self):
        ns = Namespace({"keys": "k", "items": "i", "get": "g"})
        assert ns.keys == "k"
        assert ns.items == "i"
        assert ns.get == "g"

    def test_helpers(self):
        ns = Namespace({"a": 1}, name="pkg/m")
        assert namespace_name(ns) == "pkg/m"
        assert namespace_dict(ns) == {"a": 1}
        assert "pkg/m" in repr(ns)


class TestBindings:
    """Import binding and export collection"""

    def test_bind_named_and_namespace(self):
        dep = Namespace({"x": 1, "default": 2})
        shape = ModuleShape(
            requests=("./d",),
            imports=(
                ImportBinding("x", "./d", "x"),
                ImportBinding("d", "./d", "default"),
                ImportBinding("whole", "./d"),
            ),
            exports=(),
        )
        bindings = bind_imports(shape, {"./d": dep}, "m")
        assert bindings == {"x": 1, "d": 2, "whole": dep}

    def test_missing_import(self):
        shape = ModuleShape(requests=("./d",), imports=(ImportBinding("y", "./d", "y"),), exports=())
        with pytest.raises(InstantiateError, match="has no export 'y'") as excinfo:
            bind_imports(shape, {"./d": Namespace({"x": 1})}, "m")
        assert "x" in excinfo.value.help_text

    def test_plain_module_exports_public_globals(self):
        exports = collect_exports(ModuleShape.plain(), {"a": 1, "_b": 2, "__name__": "m"}, {}, "m")
        assert exports == {"a": 1}

    def test_star_export_skips_default(self):
        shape = ModuleShape(requests=("./s",), exports=(), star_exports=("./s",))
        dep = Namespace({"a": 1, "default": 2})
        assert collect_exports(shape, {}, {"./s": dep}, "m") == {"a": 1}

    def test_local_export_wins_over_star(self):
        shape = ModuleShape(
            requests=("./s",),
            exports=(ExportBinding("a", local="mine"),),
            star_exports=("./s",),
        )
        exports = collect_exports(shape, {"mine": "local"}, {"./s": Namespace({"a": "star"})}, "m")
        assert exports == {"a": "local"}

    def test_undefined_local_export(self):
        shape = ModuleShape(exports=(ExportBinding("a", local="a"),))
        with pytest.raises(InstantiateError, match="not defined"):
            collect_exports(shape, {}, {}, "m")


class TestExecuteModule:
    """Running module bodies"""

    def test_exports_and_imports(self):
        shape = ModuleShape(
            requests=("./d",),
            imports=(ImportBinding("base", "./d", "value"),),
            exports=(ExportBinding("doubled", local="doubled"),),
        )
        ns = execute_module("doubled = base * 2\n", "m.pym", "m", shape, {"./d": Namespace({"value": 21})})
        assert ns.doubled == 42
        assert list(ns) == ["doubled"]

    def test_failure_location(self):
        source = "a = 1\nb = undefined_name\n"
        with pytest.raises(InstantiateError) as excinfo:
            execute_module(source, "m.pym", "m", ModuleShape.plain(), {}, source=source)
        error = excinfo.value
        assert "NameError" in error.message
        assert error.location.file == "m.pym"
        assert error.location.line == 2
        assert isinstance(error.__cause__, NameError)


class TestExecuteScript:
    """Script completion values"""

    def test_trailing_expression_is_the_value(self):
        assert execute_script("x = 20\nx + 22\n", "s", "s") == 42

    def test_no_trailing_expression(self):
        assert execute_script("x = 1\n", "s", "s") is None

    def test_globals_are_visible(self):
        assert execute_script("helper * 2", "s", "s", {"helper": 4}) == 8

    def test_failure_is_instantiate_error(self):
        with pytest.raises(InstantiateError, match="ZeroDivisionError"):
            execute_script("1 / 0", "s", "s")
