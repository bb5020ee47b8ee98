"""Tests for ExtensionRuntime: loading, lifecycle transitions, fault containment."""

import asyncio
import sys
import types

from twinpane.extensions import (
    ColumnProvider,
    CommandProvider,
    ExtensionRuntime,
    ExtensionState,
    FaultKind,
)

TWO_TYPES = """
from twinpane.extensions import Extension


class First(Extension):
    id = "first"

    async def initialize(self, context):
        pass

    async def shutdown(self):
        pass


class Second(Extension):
    id = "second"

    async def initialize(self, context):
        pass

    async def shutdown(self):
        pass
"""

LAZY_IMPORTS = """
from twinpane.extensions import CommandProvider, ExtensionCommand


class Lazy(CommandProvider):
    id = "lazy"
    value = None

    async def initialize(self, context):
        import tp_private
        self.value = tp_private.VALUE

    async def shutdown(self):
        import tp_private
        self.value = "bye " + tp_private.VALUE

    def get_commands(self):
        return [ExtensionCommand("which", "Which")]

    async def execute_command(self, command_id, context):
        import tp_private
        return tp_private.VALUE
"""

EXPLODING_CONSTRUCTOR = """
from twinpane.extensions import Extension


class Grumpy(Extension):
    id = "grumpy"

    def __init__(self):
        raise ValueError("no thanks")

    async def initialize(self, context):
        pass

    async def shutdown(self):
        pass
"""


class TestDiscoverAndLoad:
    async def test_end_to_end_command_and_column(self, runtime, write_extension):
        write_extension("a", capabilities=("CommandProvider",))
        write_extension("b", capabilities=("ColumnProvider",))
        added = await runtime.discover()
        assert sorted(r.id for r in added) == ["a", "b"]
        assert [p.id for p in runtime.registry.providers(CommandProvider)] == ["a"]
        assert [p.id for p in runtime.registry.providers(ColumnProvider)] == ["b"]

    async def test_records_start_enabled_and_initialized(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        rec = runtime.get_record("a")
        assert rec.state is ExtensionState.ENABLED
        assert rec.is_initialized and rec.is_enabled
        assert rec.instance.inits == 1
        assert rec.instance.context.extension_id == "a"

    async def test_manifest_id_overrides_self_report(self, runtime, write_extension):
        write_extension("pkg", ext_id="self-id", manifest={"id": "manifest.id"})
        await runtime.discover()
        assert runtime.get_record("manifest.id") is not None
        assert runtime.get_record("self-id") is None

    async def test_loose_binary(self, runtime, write_extension):
        write_extension("loner", loose=True)
        await runtime.discover()
        rec = runtime.get_record("loner")
        assert rec.state is ExtensionState.ENABLED
        assert rec.package_dir == runtime.extensions_dir

    async def test_loose_binary_with_several_types(self, runtime, write_extension):
        write_extension("pair", source=TWO_TYPES, loose=True)
        await runtime.discover()
        first, second = runtime.get_record("first"), runtime.get_record("second")
        assert first.boundary is second.boundary
        await runtime.unload("first")
        assert not first.boundary.released
        await runtime.unload("second")
        assert second.boundary.released

    async def test_manifest_binary_with_several_types_needs_entry_type(
        self, runtime, write_extension
    ):
        write_extension("pair", source=TWO_TYPES, manifest={"id": "pair"})
        await runtime.discover()
        assert runtime.list_records() == []
        (fault,) = runtime.faults
        assert fault.kind is FaultKind.LOAD
        assert "entryType" in fault.summary

    async def test_entry_type_selects_class(self, runtime, write_extension):
        write_extension(
            "pair", source=TWO_TYPES, manifest={"id": "pair", "entryType": "pair.Second"}
        )
        await runtime.discover()
        rec = runtime.get_record("pair")
        assert type(rec.instance).__name__ == "Second"

    async def test_unknown_entry_type(self, runtime, write_extension):
        write_extension("pair", source=TWO_TYPES, manifest={"id": "pair", "entryType": "Third"})
        await runtime.discover()
        assert "entry type 'Third' not found" in runtime.faults[0].summary

    async def test_binary_without_extension_type(self, runtime, write_extension):
        write_extension("empty", source="X = 1\n")
        await runtime.discover()
        assert runtime.list_records() == []
        assert "no extension type found" in runtime.faults[0].summary

    async def test_binary_that_fails_to_import(self, runtime, write_extension):
        write_extension("broken", source="raise ImportError('missing native lib')\n")
        write_extension("fine")
        await runtime.discover()
        assert [r.id for r in runtime.list_records()] == ["fine"]
        fault = runtime.faults[0]
        assert fault.kind is FaultKind.LOAD
        assert fault.source.endswith("broken")

    async def test_constructor_failure_is_load_fault(self, runtime, write_extension):
        write_extension("grumpy", source=EXPLODING_CONSTRUCTOR)
        await runtime.discover()
        assert runtime.get_record("grumpy") is None
        assert "no thanks" in runtime.faults[0].summary

    async def test_missing_id_is_load_fault(self, runtime, write_extension):
        write_extension("anon", ext_id="", loose=True)
        await runtime.discover()
        assert runtime.list_records() == []
        assert "does not report an id" in runtime.faults[0].summary

    async def test_duplicate_self_reported_ids(self, runtime, write_extension):
        write_extension("one", ext_id="same", loose=True)
        write_extension("two", ext_id="same", loose=True)
        await runtime.discover()
        assert [r.id for r in runtime.list_records()] == ["same"]
        assert runtime.get_record("same").boundary.binary.name == "one.py"
        (fault,) = runtime.faults
        assert "duplicate extension id 'same'" in fault.summary

    async def test_discovery_faults_exposed(self, runtime, ext_root, write_extension):
        (ext_root / "nobinary").mkdir()
        write_extension("fine")
        await runtime.discover()
        assert [f.kind for f in runtime.faults] == [FaultKind.DISCOVERY]
        assert runtime.get_record("fine").state is ExtensionState.ENABLED

    async def test_second_pass_does_not_duplicate(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        assert await runtime.discover() == []
        assert len(runtime.list_records()) == 1
        assert runtime.get_record("a").instance.inits == 1

    async def test_second_pass_picks_up_new_packages(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        write_extension("b")
        added = await runtime.discover()
        assert [r.id for r in added] == ["b"]

    async def test_same_helper_module_in_two_packages(self, runtime, write_extension):
        entry = """
            import tp_shared
            from twinpane.extensions import Extension


            class Holder(Extension):
                id = tp_shared.NAME

                async def initialize(self, context):
                    pass

                async def shutdown(self):
                    pass
        """
        write_extension("left", source=entry, files={"tp_shared.py": "NAME = 'left'\n"})
        write_extension("right", source=entry, files={"tp_shared.py": "NAME = 'right'\n"})
        await runtime.discover()
        assert sorted(r.id for r in runtime.list_records()) == ["left", "right"]


class TestEnablement:
    async def test_manifest_disabled_is_loaded_not_initialized(self, runtime, write_extension):
        write_extension("quiet", manifest={"id": "quiet", "enabled": False})
        await runtime.discover()
        rec = runtime.get_record("quiet")
        assert rec.state is ExtensionState.DISABLED
        assert rec.instance.inits == 0
        assert runtime.registry.providers(CommandProvider) == []

        assert await runtime.enable("quiet") is True
        assert rec.state is ExtensionState.ENABLED
        assert rec.instance.inits == 1

    async def test_preference_overrides_manifest(self, ext_root, bridge, write_extension):
        write_extension("quiet", manifest={"id": "quiet", "enabled": False})
        write_extension("loud")
        rt = ExtensionRuntime(ext_root, bridge, preferences={"quiet": True, "loud": False})
        try:
            await rt.discover()
            assert rt.get_record("quiet").state is ExtensionState.ENABLED
            assert rt.get_record("loud").state is ExtensionState.DISABLED
        finally:
            await rt.shutdown()

    async def test_dependencies_initialize_first(self, runtime, bridge, write_extension):
        write_extension("alpha", manifest={"id": "alpha", "dependencies": ["beta"]})
        write_extension("beta", manifest={"id": "beta"})
        await runtime.discover()
        assert bridge.left.history[1:] + [bridge.left.path] == ["beta", "alpha"]

    async def test_dependency_cycle_falls_back(self, runtime, write_extension):
        write_extension("alpha", manifest={"id": "alpha", "dependencies": ["beta"]})
        write_extension("beta", manifest={"id": "beta", "dependencies": ["alpha"]})
        await runtime.discover()
        assert runtime.get_record("alpha").state is ExtensionState.ENABLED
        assert runtime.get_record("beta").state is ExtensionState.ENABLED

    async def test_unknown_dependency_does_not_block(self, runtime, write_extension):
        write_extension("alpha", manifest={"id": "alpha", "dependencies": ["ghost"]})
        await runtime.discover()
        assert runtime.get_record("alpha").state is ExtensionState.ENABLED


class TestLifecycle:
    async def test_disable_enable_cycle(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        rec = runtime.get_record("a")

        assert await runtime.disable("a") is True
        assert rec.state is ExtensionState.DISABLED
        assert rec.instance.shutdowns == 1
        assert runtime.registry.providers(CommandProvider) == []

        assert await runtime.enable("a") is True
        assert rec.state is ExtensionState.ENABLED
        assert rec.instance.inits == 1

        await runtime.disable("a")
        assert rec.instance.shutdowns == 2

    async def test_enable_when_enabled_is_noop(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        assert await runtime.enable("a") is True
        assert runtime.get_record("a").instance.inits == 1

    async def test_disable_when_disabled_does_not_shutdown_again(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        await runtime.disable("a")
        await runtime.disable("a")
        assert runtime.get_record("a").instance.shutdowns == 1

    async def test_unknown_ids(self, runtime):
        assert await runtime.enable("ghost") is False
        assert await runtime.disable("ghost") is False
        assert await runtime.unload("ghost") is False

    async def test_failing_initialize_is_contained(self, runtime, write_extension):
        write_extension("a_bad", fail_init=True)
        write_extension("b_good")
        await runtime.discover()

        bad = runtime.get_record("a_bad")
        assert bad.state is ExtensionState.FAILED
        assert not bad.is_enabled
        assert bad.fault is not None
        assert bad.fault.kind is FaultKind.INITIALIZATION
        assert "init exploded" in bad.fault.summary

        good = runtime.get_record("b_good")
        assert good.state is ExtensionState.ENABLED
        assert good.instance.inits == 1
        assert [p.id for p in runtime.registry.providers(CommandProvider)] == ["b_good"]
        assert runtime.registry.first(CommandProvider).id == "b_good"

    async def test_failed_record_visible_to_management(self, runtime, write_extension):
        write_extension("bad", fail_init=True)
        await runtime.discover()
        (row,) = runtime.list_records()
        assert row.state is ExtensionState.FAILED
        assert "init exploded" in row.fault

    async def test_reenable_failed_retries_initialize(self, runtime, write_extension):
        write_extension("bad", fail_init=True)
        await runtime.discover()
        assert await runtime.enable("bad") is False
        rec = runtime.get_record("bad")
        assert rec.instance.inits == 2
        assert rec.state is ExtensionState.FAILED

    async def test_disable_failed_attempts_cleanup_once(self, runtime, write_extension):
        write_extension("bad", fail_init=True)
        await runtime.discover()
        await runtime.disable("bad")
        rec = runtime.get_record("bad")
        assert rec.instance.shutdowns == 1
        assert rec.state is ExtensionState.DISABLED
        assert rec.fault.kind is FaultKind.INITIALIZATION
        await runtime.disable("bad")
        assert rec.instance.shutdowns == 1

    async def test_shutdown_fault_does_not_block_disable(self, runtime, write_extension):
        write_extension("sticky", fail_shutdown=True)
        await runtime.discover()
        assert await runtime.disable("sticky") is True
        rec = runtime.get_record("sticky")
        assert rec.state is ExtensionState.DISABLED
        assert rec.fault.kind is FaultKind.SHUTDOWN

    async def test_quiesce_continues_past_fault(self, runtime, write_extension):
        write_extension("one")
        write_extension("two", fail_shutdown=True)
        write_extension("three")
        await runtime.discover()
        faults = await runtime.quiesce_all()
        assert [f.source for f in faults] == ["two"]
        for ext_id in ("one", "two", "three"):
            rec = runtime.get_record(ext_id)
            assert rec.instance.shutdowns == 1
            assert rec.state is ExtensionState.DISABLED

    async def test_quiesce_skips_records_not_enabled(self, runtime, write_extension):
        write_extension("bad", fail_init=True)
        write_extension("quiet", manifest={"id": "quiet", "enabled": False})
        await runtime.discover()
        assert await runtime.quiesce_all() == []
        assert runtime.get_record("bad").instance.shutdowns == 0
        assert runtime.get_record("quiet").instance.shutdowns == 0

    async def test_unload_then_rediscover(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        old = runtime.get_record("a")

        assert await runtime.unload("a") is True
        assert old.instance.shutdowns == 1
        assert old.state is ExtensionState.UNLOADED
        assert old.boundary.released
        assert runtime.list_records() == []
        assert runtime.registry.providers(CommandProvider) == []
        assert "a" not in runtime.registry

        await runtime.discover()
        fresh = runtime.get_record("a")
        assert fresh is not old
        assert fresh.instance is not old.instance
        assert fresh.state is ExtensionState.ENABLED
        assert fresh.instance.inits == 1

    async def test_unload_disabled_skips_shutdown(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        await runtime.disable("a")
        rec = runtime.get_record("a")
        await runtime.unload("a")
        assert rec.instance.shutdowns == 1

    async def test_shutdown_clears_everything(self, ext_root, bridge, write_extension):
        write_extension("a")
        async with ExtensionRuntime(ext_root, bridge) as rt:
            await rt.discover()
            rec = rt.get_record("a")
            rec.instance.context.set_config("k", 1)
        assert rec.instance.shutdowns == 1
        assert rec.state is ExtensionState.UNLOADED
        assert rt.list_records() == []
        assert rt.registry.records() == []
        assert bridge.config.keys("a") == []


class TestPassthroughs:
    async def test_execute_command(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        res = await runtime.execute_command("a", "hello")
        assert res.ok
        assert res.value == "hello from a"

    async def test_execute_command_failure_is_captured(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        res = await runtime.execute_command("a", "boom")
        assert not res.ok
        assert isinstance(res.error, RuntimeError)
        assert runtime.get_record("a").state is ExtensionState.ENABLED

    async def test_execute_command_requires_enabled(self, runtime, write_extension):
        write_extension("a")
        await runtime.discover()
        await runtime.disable("a")
        res = await runtime.execute_command("a", "hello")
        assert isinstance(res.error, LookupError)

    async def test_execute_command_requires_capability(self, runtime, write_extension):
        write_extension("col", capabilities=("ColumnProvider",))
        await runtime.discover()
        res = await runtime.execute_command("col", "hello")
        assert isinstance(res.error, TypeError)

    async def test_column_value(self, runtime, write_extension):
        write_extension("col", capabilities=("ColumnProvider",))
        await runtime.discover()
        res = await runtime.column_value("col", "length", "/tmp/abc")
        assert res.value == 8

    async def test_column_value_unknown_extension(self, runtime):
        res = await runtime.column_value("ghost", "length", "/x")
        assert isinstance(res.error, LookupError)


class TestDataDirectory:
    async def test_same_path_twice_and_created(self, runtime, bridge, write_extension):
        write_extension("a")
        await runtime.discover()
        ctx = runtime.get_record("a").instance.context
        first = ctx.data_directory()
        second = ctx.data_directory()
        assert first == second
        assert first.is_dir()
        assert first == bridge.data_root / "a"


class TestIsolationAtCallTime:
    async def _run_lazy(self, runtime, write_extension):
        write_extension(
            "lazy", source=LAZY_IMPORTS, files={"deps/tp_private.py": "VALUE = 'mine'\n"}
        )
        await runtime.discover()
        rec = runtime.get_record("lazy")
        assert rec.state is ExtensionState.ENABLED, rec.fault and rec.fault.summary
        assert rec.instance.value == "mine"
        assert (await runtime.execute_command("lazy", "which")).value == "mine"
        await runtime.disable("lazy")
        assert rec.instance.value == "bye mine"

    async def test_own_dependency_imported_late(self, runtime, write_extension, monkeypatch):
        monkeypatch.delitem(sys.modules, "tp_private", raising=False)
        await self._run_lazy(runtime, write_extension)
        assert "tp_private" not in sys.modules

    async def test_own_dependency_wins_over_host_copy(
        self, runtime, write_extension, monkeypatch
    ):
        host = types.ModuleType("tp_private")
        host.VALUE = "host"
        monkeypatch.setitem(sys.modules, "tp_private", host)
        await self._run_lazy(runtime, write_extension)
        assert sys.modules["tp_private"] is host


class TestConcurrentMutation:
    async def test_queries_interleaved_with_mutations_stay_consistent(
        self, runtime, write_extension
    ):
        for name in ("a", "b", "c", "d"):
            write_extension(name)
        await runtime.discover()
        records = {name: runtime.get_record(name) for name in ("a", "b", "c", "d")}

        stop = asyncio.Event()
        polls = 0
        torn = []

        async def poll():
            nonlocal polls
            while not stop.is_set():
                for provider in runtime.registry.providers(CommandProvider):
                    rec = runtime.get_record(provider.id)
                    if (
                        rec is None
                        or rec.instance is not provider
                        or rec.state is not ExtensionState.ENABLED
                    ):
                        torn.append(provider.id)
                polls += 1
                await asyncio.sleep(0)

        poller = asyncio.create_task(poll())
        results = await asyncio.gather(
            runtime.disable("a"),
            runtime.enable("a"),
            runtime.unload("b"),
            runtime.disable("c"),
            runtime.disable("d"),
            runtime.enable("d"),
            runtime.unload("c"),
        )
        stop.set()
        await poller

        assert all(results)
        assert torn == []
        assert polls > 0

        # Lock waiters run in call order.
        counts = {name: (r.instance.inits, r.instance.shutdowns) for name, r in records.items()}
        assert counts == {"a": (1, 1), "b": (1, 1), "c": (1, 1), "d": (1, 1)}
        assert records["a"].state is ExtensionState.ENABLED
        assert records["d"].state is ExtensionState.ENABLED
        assert records["b"].state is ExtensionState.UNLOADED
        assert records["c"].state is ExtensionState.UNLOADED
        assert runtime.registry.providers(CommandProvider) == [
            records["a"].instance,
            records["d"].instance,
        ]
