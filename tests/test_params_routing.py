"""Tests for live parameter routing (set_fx / set_source / set_dest)."""
import pytest

from fxchain.errors import (
    ChainNotBuilt,
    InvalidParamRange,
    StageNotFound,
    UnknownControl,
)
from fxchain.params import ParamSchema, ParamSpec


class TestSetFx:
    """Test suite for Chain.set_fx()."""

    def test_scenario_only_target_control_changes(self, chain, scenario_spec):
        """Test set_fx on y1 touches y1_freq and nothing else."""
        chain.build(scenario_spec)
        spec_before = chain.spec
        registry_before = chain.registry
        controls = chain.engine.pipeline.controls
        values_before = {name: c.value for name, c in controls.items()}

        updates = chain.set_fx("y1", {"freq": 2000})

        assert updates == {"y1_freq": 2000.0}
        assert chain.spec is spec_before
        assert chain.registry is registry_before
        for name, control in controls.items():
            expected = 2000.0 if name == "y1_freq" else values_before[name]
            assert control.value == expected

    def test_by_position(self, chain, scenario_spec):
        chain.build(scenario_spec)
        chain.set_fx(0, {"rate": 16})
        assert chain.engine.get_control("x1_rate") == 16

    def test_generated_prefix_address(self, chain):
        chain.build(["in", "lpf", "stereo"])
        chain.set_fx("fx0", {"freq": 640})
        assert chain.engine.get_control("fx0_freq") == 640.0

    def test_unknown_stage(self, chain, scenario_spec):
        chain.build(scenario_spec)
        with pytest.raises(StageNotFound):
            chain.set_fx("zz", {"freq": 100})

    def test_out_of_range_is_all_or_nothing(self, chain, scenario_spec):
        """Test one bad value prevents every update in the call."""
        chain.build(scenario_spec)
        with pytest.raises(InvalidParamRange) as exc:
            chain.set_fx("y1", {"mix": 0.5, "freq": 50000})
        assert exc.value.field == "y1_freq"
        assert chain.engine.get_control("y1_mix") == 1.0
        assert chain.engine.get_control("y1_freq") == 500.0

    def test_undeclared_param(self, chain, scenario_spec):
        chain.build(scenario_spec)
        with pytest.raises(InvalidParamRange):
            chain.set_fx("y1", {"resonance": 2})

    def test_loose_builder_missing_control(self, chain, catalog):
        """Test loose schemas still require the control to exist."""
        from fxchain.effects import Gain
        catalog.register("plain", lambda prefix, params: Gain(prefix, {}))
        chain.build(["in", "plain", "stereo"])
        with pytest.raises(UnknownControl):
            chain.set_fx(0, {"cutoff": 10})
        chain.set_fx(0, {"amp": 0.25})
        assert chain.engine.get_control("fx0_amp") == 0.25

    def test_does_not_persist_into_spec(self, chain, scenario_spec):
        """Test a rebuild returns to the committed spec params."""
        chain.build(scenario_spec)
        chain.set_fx("y1", {"freq": 2000})
        chain.rebuild()
        assert chain.engine.get_control("y1_freq") == 500.0

    def test_requires_build(self, chain):
        with pytest.raises(ChainNotBuilt):
            chain.set_fx(0, {"freq": 100})

    def test_int_param_coerced(self, chain, scenario_spec):
        chain.build(scenario_spec)
        updates = chain.set_fx("x1", {"bits": 4.0})
        assert updates["x1_bits"] == 4
        with pytest.raises(InvalidParamRange):
            chain.set_fx("x1", {"bits": True})


class TestSetSourceDest:
    """Test suite for Chain.set_source() and set_dest()."""

    def test_set_source(self, chain, scenario_spec):
        chain.build(scenario_spec)
        assert chain.set_source({"amp": 0.5}) == {"src_amp": 0.5}
        assert chain.engine.get_control("src_amp") == 0.5
        assert chain.config.src_amp == 0.5

    def test_set_dest(self, chain, scenario_spec):
        chain.build(scenario_spec)
        chain.set_dest({"amp": 2.0})
        assert chain.engine.get_control("dest_amp") == 2.0
        assert chain.config.dest_amp == 2.0

    def test_amp_survives_rebuild(self, chain, scenario_spec):
        """Test source/dest amps are kept in the config across rebuilds."""
        chain.build(scenario_spec)
        chain.set_dest({"amp": 0.3})
        chain.remove_stage("x1")
        assert chain.engine.get_control("dest_amp") == 0.3

    def test_out_of_range(self, chain, scenario_spec):
        chain.build(scenario_spec)
        with pytest.raises(InvalidParamRange):
            chain.set_source({"amp": -1})
        with pytest.raises(InvalidParamRange):
            chain.set_dest({"gain": 1})


class TestParamSchema:
    """Test suite for ParamSchema."""

    def test_resolve_fills_defaults(self):
        schema = ParamSchema.of(ParamSpec('a', 1.0, 0.0, 2.0), ParamSpec('b', 3, 1, 5, type=int))
        assert schema.resolve({'b': 2}) == {'a': 1.0, 'b': 2}

    def test_resolve_names_field_with_prefix(self):
        schema = ParamSchema.of(ParamSpec('a', 1.0, 0.0, 2.0))
        with pytest.raises(InvalidParamRange) as exc:
            schema.resolve({'a': 9}, prefix="fx3")
        assert exc.value.field == "fx3_a"

    def test_loose_schema_passes_unknown(self):
        schema = ParamSchema.of(ParamSpec('a', 1.0), strict=False)
        assert schema.resolve({'z': 'anything'})['z'] == 'anything'

    def test_type_error(self):
        schema = ParamSchema.of(ParamSpec('a', 1.0))
        with pytest.raises(InvalidParamRange):
            schema.check('a', "loud")
