"""
Tests for module discovery, loading, interface validation and the registry.

Modules are real files under tmp_path; see conftest.write_module.
"""

from types import SimpleNamespace

import pytest

from conftest import DOMAIN_MODULE, NEW_STYLE_PLOT, OLD_STYLE_PLOT, write_module
from fieldpipe.core.engine.discovery import discover
from fieldpipe.core.engine.loader import entry_candidates, load, validate_interface
from fieldpipe.core.engine.plugins import (
    DomainModule,
    NewStylePlotModule,
    OldStylePlotModule,
    PlotPlugin,
    build_plugin,
)
from fieldpipe.core.engine.registry import ModuleRegistry
from fieldpipe.core.errors import ErrorCategory, InterfaceError, InvalidArgument
from fieldpipe.core.models.event import MODULE_REGISTERED, MODULE_REJECTED
from fieldpipe.core.models.module import (
    InterfaceStyle,
    ModuleCategory,
    ModuleDescriptor,
    PipelineState,
)
from fieldpipe.core.services.event_bus import EventBus


# ── Discovery ───────────────────────────────────────────────────────


class TestDiscovery:
    def test_finds_both_categories(self, populated_dir):
        found = discover(populated_dir)
        assert list(found.plot_modules) == ["boxplot", "ridgeline"]
        assert list(found.domain_modules) == ["coha"]
        assert found.total == 3

    def test_marker_files_recorded(self, populated_dir):
        found = discover(populated_dir)
        ridgeline = found.plot_modules["ridgeline"]
        assert ridgeline.module_file.endswith("module.py")
        assert ridgeline.interface_file is None
        assert found.plot_modules["boxplot"].interface_file.endswith("INTERFACE.md")
        assert found.domain_modules["coha"].config_file.endswith("domain_config.yaml")
        assert ridgeline.state is PipelineState.DISCOVERED

    def test_directory_without_marker_ignored(self, modules_dir):
        write_module(modules_dir, "plot", "scratch", {"notes.txt": "wip"})
        write_module(modules_dir, "domain", "bare", {"bare.py": DOMAIN_MODULE})
        found = discover(modules_dir)
        assert found.total == 0

    def test_readme_marks_domain_module(self, modules_dir):
        write_module(modules_dir, "domain", "docs_only", {"README.md": "# docs"})
        assert list(discover(modules_dir).domain_modules) == ["docs_only"]

    def test_hidden_and_private_skipped(self, modules_dir):
        write_module(modules_dir, "plot", "_draft", {"module.py": NEW_STYLE_PLOT})
        write_module(modules_dir, "plot", ".cache", {"module.py": NEW_STYLE_PLOT})
        assert discover(modules_dir).plot_modules == {}

    def test_category_filter(self, populated_dir):
        found = discover(populated_dir, "domain")
        assert found.plot_modules == {}
        assert list(found.of("domain")) == ["coha"]

    def test_missing_roots(self, modules_dir):
        assert discover(modules_dir / "nowhere").total == 0

    def test_unknown_category(self, modules_dir):
        with pytest.raises(InvalidArgument, match="Unknown module category"):
            discover(modules_dir, "report")

    def test_to_dict_is_serializable(self, populated_dir):
        d = discover(populated_dir).to_dict()
        assert d["total"] == 3
        assert d["plot_modules"][0]["category"] == "plot"
        assert "plugin" not in d["plot_modules"][0]


# ── Loading ─────────────────────────────────────────────────────────


class TestLoad:
    def test_entry_candidates(self):
        assert entry_candidates("boxplot", "plot") == [
            "module.py",
            "boxplot_generator.py",
            "boxplot.py",
            "main.py",
        ]
        assert entry_candidates("coha", "domain") == [
            "coha.py",
            "data_loader.py",
            "main.py",
            "module.py",
        ]

    def test_load_new_style(self, populated_dir):
        outcome = load("ridgeline", "plot", populated_dir)
        assert outcome.loaded
        assert outcome.errors == []
        assert outcome.descriptor.state is PipelineState.LOADED
        assert outcome.descriptor.entry_file.endswith("module.py")
        assert outcome.plugin_module.get_module_metadata()["name"] == "ridgeline"

    def test_module_path_set(self, populated_dir):
        outcome = load("coha", "domain", populated_dir)
        assert outcome.plugin_module.MODULE_PATH == str(
            populated_dir / "domain_modules" / "coha"
        )

    def test_module_path_visible_while_executing(self, modules_dir):
        write_module(
            modules_dir, "plot", "selfaware", {"module.py": "WHERE = MODULE_PATH\n"}
        )
        outcome = load("selfaware", "plot", modules_dir)
        assert outcome.plugin_module.WHERE.endswith("selfaware")

    def test_candidate_priority(self, modules_dir):
        write_module(
            modules_dir,
            "plot",
            "dual",
            {"main.py": "PICKED = 'main'\n", "dual_generator.py": "PICKED = 'generator'\n"},
        )
        assert load("dual", "plot", modules_dir).plugin_module.PICKED == "generator"

    def test_no_entry_file_names_candidates(self, modules_dir):
        write_module(modules_dir, "plot", "docs_only", {"INTERFACE.md": "# nothing"})
        outcome = load("docs_only", "plot", modules_dir)
        assert not outcome.loaded
        assert outcome.plugin_module is None
        message = outcome.errors[0]
        assert message.startswith("No entry file found in")
        for filename in ("module.py", "docs_only_generator.py", "docs_only.py", "main.py"):
            assert filename in message
        assert outcome.searched == entry_candidates("docs_only", "plot")
        assert outcome.to_dict()["error_category"] == "load"

    def test_missing_directory(self, modules_dir):
        outcome = load("ghost", "domain", modules_dir)
        assert not outcome.loaded
        assert "Module directory not found" in outcome.errors[0]
        assert "ghost.py" in outcome.errors[0]
        assert outcome.error_category is ErrorCategory.DISCOVERY

    def test_execution_failure(self, modules_dir):
        write_module(modules_dir, "plot", "broken", {"module.py": "raise ValueError('bad import')\n"})
        outcome = load("broken", "plot", modules_dir)
        assert not outcome.loaded
        assert outcome.errors == [
            "Failed to load module 'broken' from module.py: bad import"
        ]
        assert outcome.error_category is ErrorCategory.LOAD

    def test_syntax_error(self, modules_dir):
        write_module(modules_dir, "plot", "typo", {"module.py": "def oops(:\n"})
        outcome = load("typo", "plot", modules_dir)
        assert not outcome.loaded
        assert "Failed to load module 'typo'" in outcome.errors[0]

    def test_loads_are_isolated(self, populated_dir):
        first = load("coha", "domain", populated_dir).plugin_module
        first.CALLS.append("leftover")
        second = load("coha", "domain", populated_dir).plugin_module
        assert first is not second
        assert second.CALLS == []

    def test_discovered_descriptor_advanced(self, populated_dir):
        descriptor = discover(populated_dir).plot_modules["ridgeline"]
        outcome = load("ridgeline", "plot", populated_dir, descriptor)
        assert outcome.descriptor is descriptor
        assert descriptor.state is PipelineState.LOADED
        assert descriptor.loaded

    def test_reload_starts_fresh_descriptor(self, populated_dir):
        descriptor = load("ridgeline", "plot", populated_dir).descriptor
        again = load("ridgeline", "plot", populated_dir, descriptor)
        assert again.descriptor is not descriptor
        assert again.descriptor.state is PipelineState.LOADED

    def test_to_dict(self, populated_dir):
        d = load("coha", "domain", populated_dir).to_dict()
        assert d["loaded"] is True
        assert d["category"] == "domain"
        assert d["entry_file"].endswith("coha.py")
        assert d["error_category"] is None


# ── Interface validation ────────────────────────────────────────────


def _new_style(**extra):
    return SimpleNamespace(
        get_module_metadata=lambda: {"name": "n"},
        get_available_plots=lambda: ["a", "b"],
        generate_plot=lambda plot_id, data, config: {"plot_id": plot_id, "status": "success"},
        **extra,
    )


def _old_style(**extra):
    return SimpleNamespace(
        generate_variants=lambda data, config: [
            {"plot_id": v, "status": "success"} for v in config["variants"]
        ],
        get_module_info=lambda: {"name": "o"},
        validate_config=lambda config: True,
        get_default_config=lambda: {},
        **extra,
    )


class TestInterface:
    def test_new_style(self, populated_dir):
        module = load("ridgeline", "plot", populated_dir).plugin_module
        check = validate_interface(module, "plot", "ridgeline")
        assert check.valid
        assert check.interface_style is InterfaceStyle.NEW
        assert isinstance(check.plugin, NewStylePlotModule)

    def test_old_style(self, populated_dir):
        module = load("boxplot", "plot", populated_dir).plugin_module
        check = validate_interface(module, "plot", "boxplot")
        assert check.interface_style is InterfaceStyle.OLD
        assert isinstance(check.plugin, OldStylePlotModule)

    def test_new_style_wins_when_both_present(self):
        old = _old_style()
        both = _new_style(**vars(old))
        assert validate_interface(both, "plot", "both").interface_style is InterfaceStyle.NEW

    def test_neither_style_lists_all_missing(self):
        partial = SimpleNamespace(get_module_metadata=lambda: {}, generate_variants=lambda d, c: [])
        check = validate_interface(partial, "plot", "partial")
        assert not check.valid
        assert check.interface_style is InterfaceStyle.INVALID
        assert check.missing == [
            "get_available_plots",
            "generate_plot",
            "get_module_info",
            "validate_config",
            "get_default_config",
        ]

    def test_non_callable_attribute_does_not_count(self):
        module = _new_style()
        module.generate_plot = "not a function"
        assert validate_interface(module, "plot", "m").missing[0] == "generate_plot"

    def test_domain(self, populated_dir):
        module = load("coha", "domain", populated_dir).plugin_module
        check = validate_interface(module, "domain", "coha")
        assert check.valid
        assert isinstance(check.plugin, DomainModule)
        assert check.plugin.module_cleanup is not None
        assert check.plugin.module_reset is None

    def test_domain_missing_init(self):
        check = validate_interface(SimpleNamespace(), "domain", "empty")
        assert not check.valid
        assert check.errors == ["Missing required function: module_init()"]

    def test_construction_is_the_check(self):
        with pytest.raises(InterfaceError) as exc:
            DomainModule(name="x", module=SimpleNamespace())
        assert exc.value.missing == ["module_init"]

    def test_build_plugin_error_message(self):
        with pytest.raises(InterfaceError, match="does not implement a known plot module"):
            build_plugin(SimpleNamespace(), "nothing", "plot")


class TestPlotPlugins:
    def test_plot_base_is_abstract(self):
        with pytest.raises(TypeError):
            PlotPlugin(name="bare", module=SimpleNamespace())
        assert isinstance(build_plugin(_new_style(), "n", "plot"), PlotPlugin)
        assert isinstance(build_plugin(_old_style(), "o", "plot"), PlotPlugin)

    def test_new_style_plot_ids_from_mappings(self, populated_dir):
        module = load("ridgeline", "plot", populated_dir).plugin_module
        plugin = build_plugin(module, "ridgeline", "plot")
        assert plugin.available_plots() == ["compact", "expanded"]
        assert plugin.path.endswith("ridgeline")

    def test_new_style_per_plot_failure_captured(self):
        def generate_plot(plot_id, data, config):
            if plot_id == "b":
                raise RuntimeError("no axis")
            return {"plot_id": plot_id, "status": "success"}

        plugin = build_plugin(_new_style(), "n", "plot")
        plugin.generate_plot = generate_plot
        results = plugin.generate(None, ["a", "b"], {})
        assert results[0]["status"] == "success"
        assert results[1] == {"plot_id": "b", "status": "failed", "error": "no axis"}

    def test_batch_entry_point_preferred(self):
        seen = {}

        def generate_plots_batch(data, plot_ids, config):
            seen.update(data=data, plot_ids=plot_ids, config=config)
            return [{"status": "success"}]

        plugin = build_plugin(_new_style(generate_plots_batch=generate_plots_batch), "n", "plot")
        assert plugin.generate([1], ["a"], {"dpi": 72}) == [{"status": "success"}]
        assert seen == {"data": [1], "plot_ids": ["a"], "config": {"dpi": 72}}

    def test_old_style_variants_from_info(self, populated_dir):
        module = load("boxplot", "plot", populated_dir).plugin_module
        plugin = build_plugin(module, "boxplot", "plot")
        assert plugin.available_plots() == ["by_site", "by_year"]
        results = plugin.generate({}, ["by_site"], {"dpi": 100})
        assert results == [{"plot_id": "by_site", "status": "success"}]

    def test_old_style_variants_fallback_to_name(self):
        plugin = build_plugin(_old_style(), "histogram", "plot")
        assert plugin.available_plots() == ["histogram"]

    def test_old_style_merges_defaults(self):
        seen = {}
        module = _old_style()
        module.get_default_config = lambda: {"palette": "viridis", "dpi": 1}
        module.generate_variants = lambda data, config: seen.update(config) or []
        build_plugin(module, "o", "plot").generate(None, ["v"], {"dpi": 300})
        assert seen == {"palette": "viridis", "dpi": 300, "variants": ["v"]}

    def test_schema_hook(self):
        plugin = build_plugin(
            _new_style(get_module_schema=lambda: {"a": {"type": "numeric"}}), "n", "plot"
        )
        assert plugin.schema() == {"a": {"type": "numeric"}}
        assert build_plugin(_new_style(), "n", "plot").schema() is None


# ── Descriptor state machine ────────────────────────────────────────


class TestDescriptorState:
    def test_forward_path(self):
        d = ModuleDescriptor(name="m", category=ModuleCategory.PLOT, path="/x")
        for state in (PipelineState.LOADED, PipelineState.VALIDATED, PipelineState.REGISTERED):
            d.advance(state)
        assert d.state is PipelineState.REGISTERED

    def test_rejected_is_terminal(self):
        d = ModuleDescriptor(name="m", category="domain", path="/x")
        d.advance(PipelineState.REJECTED)
        assert d.rejected
        with pytest.raises(InvalidArgument, match="cannot move from rejected"):
            d.advance(PipelineState.LOADED)

    def test_cannot_skip_validation(self):
        d = ModuleDescriptor(name="m", category="plot", path="/x", state=PipelineState.LOADED)
        with pytest.raises(InvalidArgument):
            d.advance(PipelineState.REGISTERED)


# ── Registry ────────────────────────────────────────────────────────


class TestRegistry:
    def test_register_valid(self, populated_dir):
        events = EventBus()
        registry = ModuleRegistry(events=events)
        outcome = load("ridgeline", "plot", populated_dir)

        assert registry.register("ridgeline", outcome.plugin_module, "plot", outcome.descriptor)
        descriptor = registry.get("ridgeline", "plot")
        assert descriptor.state is PipelineState.REGISTERED
        assert descriptor.interface_style is InterfaceStyle.NEW
        assert isinstance(registry.get_plugin("ridgeline", "plot"), NewStylePlotModule)

        log = events.get_event_log(event_type=MODULE_REGISTERED)
        assert log[0].data == {
            "name": "ridgeline",
            "category": "plot",
            "interface_style": "new",
        }
        assert log[0].source == "registry"

    def test_register_invalid(self, modules_dir):
        write_module(modules_dir, "plot", "half", {"module.py": "def generate_plot(p, d, c): pass\n"})
        events = EventBus()
        registry = ModuleRegistry(events=events)
        outcome = load("half", "plot", modules_dir)

        assert registry.register("half", outcome.plugin_module, "plot", outcome.descriptor) is False
        assert outcome.descriptor.rejected
        assert "get_module_metadata" in outcome.descriptor.missing_capabilities
        assert not registry.is_registered("half")
        assert len(registry) == 0
        rejected = events.get_event_log(event_type=MODULE_REJECTED)
        assert rejected[0].data["interface_style"] == "invalid"
        assert rejected[0].data["errors"]

    def test_register_without_descriptor(self):
        registry = ModuleRegistry()
        assert registry.register("n", _new_style(), "plot")
        assert registry.get("n", "plot").state is PipelineState.REGISTERED

    def test_same_name_in_both_categories(self):
        registry = ModuleRegistry()
        registry.register("shared", _new_style(), "plot")
        registry.register("shared", SimpleNamespace(module_init=lambda c: {}), "domain")
        assert len(registry) == 2
        assert registry.is_registered("shared", "plot")
        assert registry.is_registered("shared", "domain")
        assert registry.status() == {
            "plot_modules": ["shared"],
            "domain_modules": ["shared"],
            "total_modules": 2,
        }

    def test_reregister_overwrites(self):
        registry = ModuleRegistry()
        registry.register("n", _new_style(), "plot")
        registry.register("n", _old_style(), "plot")
        assert len(registry) == 1
        assert registry.get("n", "plot").interface_style is InterfaceStyle.OLD

    def test_failed_reregister_keeps_stored_entry(self):
        events = EventBus()
        registry = ModuleRegistry(events=events)
        registry.register("d", SimpleNamespace(module_init=lambda c: {}), "domain")
        descriptor = registry.get("d", "domain")
        plugin = descriptor.plugin

        assert registry.register("d", SimpleNamespace(), "domain", descriptor) is False

        stored = registry.get("d", "domain")
        assert stored is descriptor
        assert stored.state is PipelineState.REGISTERED
        assert stored.interface_style is InterfaceStyle.DOMAIN
        assert stored.missing_capabilities == []
        assert stored.plugin is plugin
        rejected = events.get_event_log(event_type=MODULE_REJECTED)
        assert rejected[0].data["interface_style"] == "invalid"

    def test_rejected_descriptor_is_refused(self, modules_dir):
        write_module(modules_dir, "domain", "d", {"d.py": "X = 1\n"})
        events = EventBus()
        registry = ModuleRegistry(events=events)
        outcome = load("d", "domain", modules_dir)
        assert registry.register("d", outcome.plugin_module, "domain", outcome.descriptor) is False
        assert outcome.descriptor.rejected

        valid = SimpleNamespace(module_init=lambda c: {})
        assert registry.register("d", valid, "domain", outcome.descriptor) is False
        assert outcome.descriptor.rejected
        assert not registry.is_registered("d", "domain")
        last = events.get_event_log(event_type=MODULE_REJECTED)[-1]
        assert "load it again" in last.data["errors"][0]

    def test_reload_after_rejection_registers(self, modules_dir):
        write_module(modules_dir, "domain", "d", {"d.py": "X = 1\n"})
        registry = ModuleRegistry()
        first = load("d", "domain", modules_dir)
        registry.register("d", first.plugin_module, "domain", first.descriptor)

        write_module(modules_dir, "domain", "d", {"d.py": DOMAIN_MODULE})
        second = load("d", "domain", modules_dir)
        assert registry.register("d", second.plugin_module, "domain", second.descriptor)
        assert registry.get("d", "domain").state is PipelineState.REGISTERED

    def test_list_in_registration_order(self):
        registry = ModuleRegistry()
        for name in ("zeta", "alpha", "mid"):
            registry.register(name, _new_style(), "plot")
        assert registry.list_modules("plot") == ["zeta", "alpha", "mid"]
        assert registry.list_modules("domain") == []

    def test_unregister_and_clear(self):
        registry = ModuleRegistry()
        registry.register("a", _new_style(), "plot")
        registry.register("b", _new_style(), "plot")
        registry.unregister("a", "plot")
        assert registry.list_modules() == ["b"]
        registry.clear()
        assert len(registry) == 0
        assert registry.get_plugin("b", "plot") is None

    def test_engines_do_not_share_registries(self, engine, modules_dir, tmp_path):
        from fieldpipe.core.context import EngineContext

        other = EngineContext.create(base_dir=modules_dir, output_dir=tmp_path / "other")
        engine.registry.register("n", _new_style(), "plot")
        assert not other.registry.is_registered("n")
        assert other.events is not engine.events
