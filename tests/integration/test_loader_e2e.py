#!/usr/bin/env python3
"""
End-to-end loader tests: import, define, module, script and load_as_script
against real fixture files and in-memory module graphs.
"""

import asyncio
import pytest
from modloader import __version__
from modloader.loader import Load, Loader, LoaderHooks, LoaderOptions
from modloader.shared.errors import CompileError, DefinitionConflictError, FetchError
from tests.test_utils import MEMORY_BASE_URL, GatedFetcher, add_sources, counter_module, fetch_count


class TestImportFromFiles:
    """Modules located and fetched from tests/fixtures"""

    @pytest.mark.asyncio
    async def test_import_with_dependencies(self, loader):
        ns = await loader.import_module("./test_module")
        assert ns.result == ["A", "B", "C"]
        assert ns.describe() == "A+B+C"
        assert list(ns) == ["result", "describe"]

    @pytest.mark.asyncio
    async def test_relative_to_referrer_directory(self, loader):
        ns = await loader.import_module("./subdir/test_d")
        assert ns.name == "DE"
        assert loader.has("subdir/test_e")

    @pytest.mark.asyncio
    async def test_reexports(self, loader):
        ns = await loader.import_module("./reexport")
        assert ns.name == "A"
        assert ns.d_name == "DE"
        assert ns.b.name == "B"
        assert ns.default == "reexport"

    @pytest.mark.asyncio
    async def test_plain_python_module(self, loader):
        ns = await loader.import_module("./plain")
        assert ns.answer == 42
        assert "_hidden" not in ns

    @pytest.mark.asyncio
    async def test_same_namespace_for_every_import(self, loader):
        first = await loader.import_module("./test_a")
        second = await loader.import_module("test_a")
        dependency = (await loader.import_module("./test_module"))
        assert first is second
        assert loader.get("test_a") is first
        assert dependency.result[0] == first.name

    @pytest.mark.asyncio
    async def test_concurrent_imports_share_one_namespace(self, loader):
        results = await asyncio.gather(*(loader.import_module("./test_module") for _ in range(5)))
        assert all(ns is results[0] for ns in results)

    @pytest.mark.asyncio
    async def test_referrer_argument(self, loader):
        ns = await loader.import_module("./test_e", referrer="subdir/test_d")
        assert ns.name == "E"


class TestOnceOnly:
    """Coalesced loads and single evaluation"""

    @pytest.mark.asyncio
    async def test_body_runs_once_under_concurrent_imports(self, memory_loader, memory_fetcher):
        hits = counter_module(memory_loader)
        add_sources(memory_fetcher, {
            "effect": 'import {hits} from "counter"\nhits.append("ran")\nexport var ok = True\n',
        })
        results = await asyncio.gather(*(memory_loader.import_module("effect") for _ in range(10)))
        assert hits == ["ran"]
        assert fetch_count(memory_fetcher, "effect") == 1
        assert all(ns is results[0] for ns in results)
        assert results[0].ok is True

    @pytest.mark.asyncio
    async def test_shared_dependency_loads_once(self, memory_loader, memory_fetcher):
        hits = counter_module(memory_loader)
        add_sources(memory_fetcher, {
            "a": 'import {value} from "./shared"\nexport var a = value + 1\n',
            "b": 'import {value} from "./shared"\nexport var b = value + 2\n',
            "shared": 'import {hits} from "counter"\nhits.append("shared")\nexport var value = 10\n',
        })
        a, b = await asyncio.gather(memory_loader.import_module("a"), memory_loader.import_module("b"))
        assert (a.a, b.b) == (11, 12)
        assert hits == ["shared"]
        assert fetch_count(memory_fetcher, "shared") == 1

    @pytest.mark.asyncio
    async def test_sequential_import_does_not_refetch(self, memory_loader, memory_fetcher):
        add_sources(memory_fetcher, {"x": "export var x = 1\n"})
        await memory_loader.import_module("x")
        await memory_loader.import_module("./x")
        assert fetch_count(memory_fetcher, "x") == 1

    @pytest.mark.asyncio
    async def test_failed_link_leaves_shared_load_to_other_link(self, reporter):
        fetcher = GatedFetcher()
        loader = Loader(
            hooks=LoaderHooks.default(fetcher=fetcher),
            options=LoaderOptions(base_url=MEMORY_BASE_URL),
            reporter=reporter,
        )
        add_sources(fetcher, {
            "left": 'import "./shared"\nimport "./missing"\n',
            "right": 'import {v} from "./shared"\nimport {s} from "./slow"\nexport var total = v + s\n',
            "shared": "export var v = 1\n",
            "slow": "export var s = 2\n",
        })
        release = fetcher.gate("slow")
        right = asyncio.ensure_future(loader.import_module("right"))
        while fetch_count(fetcher, "shared") == 0:
            await asyncio.sleep(0)

        with pytest.raises(FetchError):
            await loader.import_module("left")
        shared = await loader.import_module("shared")
        assert shared.v == 1
        assert fetch_count(fetcher, "shared") == 1

        release.set()
        assert (await right).total == 3
        assert loader.get("shared") is shared


class TestPackageMaps:
    """Aliasing through the loader's package map"""

    @pytest.mark.asyncio
    async def test_mapped_import(self, memory_loader, memory_fetcher):
        memory_loader.package_map = {"jquery": "vendor/jquery@3.0.0"}
        add_sources(memory_fetcher, {"vendor/jquery@3.0.0": "export var version = '3.0.0'\n"})
        ns = await memory_loader.import_module("jquery")
        assert ns.version == "3.0.0"
        assert memory_loader.normalize("jquery-ui") == "jquery-ui"
        assert memory_loader.get("vendor/jquery@3.0.0") is ns

    def test_save_and_restore_whole_map(self, memory_loader):
        saved = memory_loader.package_map
        memory_loader.package_map = saved.with_rule("a", "b")
        assert memory_loader.normalize("a") == "b"
        memory_loader.package_map = saved
        assert memory_loader.package_map is saved
        assert memory_loader.normalize("a") == "a"

    @pytest.mark.asyncio
    async def test_contextual_map_follows_referrer(self, memory_loader, memory_fetcher):
        memory_loader.package_map = {"app": {"dep": "app-dep"}}
        add_sources(memory_fetcher, {
            "app/main": 'import {v} from "dep"\nexport var out = v\n',
            "app-dep": "export var v = 'contextual'\n",
        })
        ns = await memory_loader.import_module("app/main")
        assert ns.out == "contextual"

    @pytest.mark.asyncio
    async def test_self_registration(self, memory_loader):
        assert memory_loader.normalize("modloader") == f"modloader@{__version__}"
        assert memory_loader.normalize("modloader@0") == f"modloader@{__version__}"
        ns = await memory_loader.import_module("modloader")
        assert ns is await memory_loader.import_module("modloader@")
        assert ns.version == __version__
        assert ns.Loader is Loader


class TestDefine:
    """define() in register and instantiate modes"""

    @pytest.mark.asyncio
    async def test_define_then_import(self, memory_loader, memory_fetcher):
        await memory_loader.define("lib/util", "export var x = 1\n")
        ns = await memory_loader.import_module("lib/util")
        assert ns.x == 1
        assert memory_fetcher.requests == {}

    @pytest.mark.asyncio
    async def test_register_mode_evaluates_eagerly(self, memory_loader):
        hits = counter_module(memory_loader)
        await memory_loader.define("eager", 'import {hits} from "counter"\nhits.append(1)\n')
        assert hits == [1]

    @pytest.mark.asyncio
    async def test_instantiate_mode_defers_evaluation(self, memory_loader):
        hits = counter_module(memory_loader)
        await memory_loader.define(
            "lazy", 'import {hits} from "counter"\nhits.append(1)\nexport var v = 7\n', mode="instantiate"
        )
        assert hits == []
        assert memory_loader.has("lazy")
        ns = memory_loader.get("lazy")
        assert ns.v == 7
        assert hits == [1]
        assert await memory_loader.import_module("lazy") is ns
        assert hits == [1]

    @pytest.mark.asyncio
    async def test_default_mode_comes_from_options(self, memory_loader):
        hits = counter_module(memory_loader)
        memory_loader.options.modules = "instantiate"
        await memory_loader.define("later", 'import {hits} from "counter"\nhits.append(1)\n')
        assert hits == []
        await memory_loader.import_module("later")
        assert hits == [1]

    @pytest.mark.asyncio
    async def test_define_loads_dependencies(self, memory_loader, memory_fetcher):
        add_sources(memory_fetcher, {"lib/dep": "export var v = 'dep'\n"})
        await memory_loader.define("lib/main", 'import {v} from "./dep"\nexport var w = v * 2\n')
        assert memory_loader.get("lib/main").w == "depdep"

    @pytest.mark.asyncio
    async def test_define_twice_conflicts(self, memory_loader):
        await memory_loader.define("x", "export var a = 1\n")
        with pytest.raises(DefinitionConflictError):
            await memory_loader.define("x", "export var a = 2\n")
        assert memory_loader.get("x").a == 1

    @pytest.mark.asyncio
    async def test_concurrent_define_conflicts(self, memory_loader):
        results = await asyncio.gather(
            memory_loader.define("y", "export var a = 1\n"),
            memory_loader.define("y", "export var a = 2\n"),
            return_exceptions=True,
        )
        assert results[0] is None
        assert isinstance(results[1], DefinitionConflictError)
        assert memory_loader.get("y").a == 1

    @pytest.mark.asyncio
    async def test_define_while_import_in_flight(self, memory_loader, memory_fetcher):
        add_sources(memory_fetcher, {"z": "export var a = 'fetched'\n"})
        imported, defined = await asyncio.gather(
            memory_loader.import_module("z"),
            memory_loader.define("z", "export var a = 'defined'\n"),
            return_exceptions=True,
        )
        assert imported.a == "fetched"
        assert isinstance(defined, DefinitionConflictError)

    @pytest.mark.asyncio
    async def test_set_registers_precompiled_module(self, memory_loader):
        ns = memory_loader.set("precompiled", {"answer": 42})
        assert await memory_loader.import_module("precompiled") is ns
        with pytest.raises(DefinitionConflictError):
            memory_loader.set("precompiled", {})

    def test_get_unknown(self, memory_loader):
        assert memory_loader.get("nothing/here") is None


class TestModuleAndScript:
    """Anonymous units"""

    @pytest.mark.asyncio
    async def test_module_returns_namespace(self, loader):
        ns = await loader.module('import {name} from "./test_a"\nexport var lower = name.lower()\n')
        assert ns.lower == "a"
        assert dir(ns) == ["lower"]
        assert not hasattr(ns, "__dict__")
        with pytest.raises(TypeError):
            ns.lower = "b"

    @pytest.mark.asyncio
    async def test_module_resolves_against_referrer_name(self, memory_loader, memory_fetcher):
        add_sources(memory_fetcher, {"lib/dep": "export var v = 3\n"})
        ns = await memory_loader.module(
            'import {v} from "./dep"\nexport var w = v + 1\n', {"referrer_name": "lib/main"}
        )
        assert ns.w == 4

    @pytest.mark.asyncio
    async def test_named_module_is_registered(self, memory_loader):
        ns = await memory_loader.module("export var a = 1\n", {"name": "named/mod"})
        assert memory_loader.get("named/mod") is ns

    @pytest.mark.asyncio
    async def test_anonymous_modules_are_distinct(self, memory_loader):
        first = await memory_loader.module("export var a = 1\n")
        second = await memory_loader.module("export var a = 1\n")
        assert first is not second

    @pytest.mark.asyncio
    async def test_declaration_and_export_on_one_line(self, memory_loader, memory_fetcher):
        add_sources(memory_fetcher, {"x": "export var name = 'A'\n"})
        ns = await memory_loader.module("module a from './x'; export var arr=['t', a.name];")
        assert ns.arr == ["t", "A"]

    @pytest.mark.asyncio
    async def test_indented_import_with_source_maps(self, loader):
        loader.options.source_maps = True
        ns = await loader.module("  import {name} from './test_a';")
        assert len(ns) == 0
        assert loader.has("test_a")
        assert loader.source_map_info("<module:1>") is not None
        assert loader.source_map_info("<module:1>", "weird") is None

    @pytest.mark.asyncio
    async def test_script_completion_value(self, loader):
        assert await loader.script("x = 20\nx + 22\n") == 42
        assert await loader.script("x = 1\n") is None

    @pytest.mark.asyncio
    async def test_script_may_use_export_as_a_name(self, loader):
        assert await loader.script("export = 5\nexport") == 5

    @pytest.mark.asyncio
    async def test_export_fails_in_script_but_not_in_module(self, loader):
        with pytest.raises(CompileError):
            await loader.script("export var a = 1\n")
        ns = await loader.module("export var a = 1\n")
        assert ns.a == 1

    @pytest.mark.asyncio
    async def test_script_sees_loader(self, loader):
        assert await loader.script('loader.has("modloader@")') is True

    @pytest.mark.asyncio
    async def test_load_as_script_from_file(self, loader):
        assert await loader.load_as_script("./test_script") == 42
        assert not loader.has("test_script")

    @pytest.mark.asyncio
    async def test_load_as_script_with_referrer(self, memory_loader, memory_fetcher):
        add_sources(memory_fetcher, {"lib/legacy": "21 * 2\n"})
        assert await memory_loader.load_as_script("./legacy", referrer="lib/main") == 42

    @pytest.mark.asyncio
    async def test_load_as_script_rejects_module_syntax(self, memory_loader, memory_fetcher):
        add_sources(memory_fetcher, {"modish": "export var a = 1\n"})
        with pytest.raises(CompileError):
            await memory_loader.load_as_script("modish")


class TestHookStages:
    """Stage operations exposed on the loader"""

    @pytest.mark.asyncio
    async def test_stage_by_stage(self, loader, fixtures_dir):
        load = Load(loader.normalize("./plain"))
        address = await loader.locate(load)
        assert address.endswith("/fixtures/plain.pym")
        text = await loader.fetch(load)
        assert text == (fixtures_dir / "plain.pym").read_text()
        assert await loader.translate(load) == text
        assert await loader.instantiate(load) is None

    @pytest.mark.asyncio
    async def test_locate_scoped_name(self, memory_loader):
        address = await memory_loader.locate(Load("@abc/def"))
        assert address == "http://example.org/app/@abc/def.pym"
