"""Tests for building and committing chains."""
import threading
from unittest.mock import patch

import numpy as np
import pytest

from fxchain import Chain, ChainConfig
from fxchain.engine import ProcessingUnit
from fxchain.errors import (
    BadDestination,
    BadSource,
    BuilderFailed,
    ChainBusy,
    ChainNotBuilt,
    DuplicateId,
    EmptySpec,
    InvalidParamRange,
    UnknownEffect,
)


class _Leaky(ProcessingUnit):
    """Publishes a control outside its prefix."""

    def __init__(self, prefix, params):
        super().__init__("global", {'amp': 1.0})

    def process(self, block):
        return block


class _FailsOnReset(ProcessingUnit):
    """Builds fine, then fails while being prepared."""

    def __init__(self, prefix, params):
        super().__init__(prefix, {'amp': 1.0})

    def reset(self):
        raise RuntimeError("buffer allocation failed")

    def process(self, block):
        return block


class TestBuild:
    """Test suite for Chain.build()."""

    def test_scenario_build(self, chain, scenario_spec):
        """Test the two-stage scenario maps positions to id prefixes."""
        status = chain.build(scenario_spec)
        assert status.built
        assert [(e['position'], e['prefix']) for e in status.entries] == [(0, "x1"), (1, "y1")]
        assert chain.engine.has_control("x1_rate")
        assert chain.engine.has_control("y1_freq")
        assert chain.engine.get_control("x1_rate") == 8
        assert chain.engine.get_control("y1_freq") == 500.0

    def test_positions_are_dense(self, chain):
        """Test positions are exactly 0..n-1."""
        status = chain.build(["in", "lpf", "hpf", ("gain", {"id": "g"}), "dist", "stereo"])
        assert [e['position'] for e in status.entries] == [0, 1, 2, 3]
        assert status.prefixes == ["fx0", "fx1", "g", "fx3"]

    def test_defaults_filled(self, chain):
        """Test missing params fall back to declared defaults."""
        chain.build(["in", "lpf", "stereo"])
        assert chain.engine.get_control("fx0_freq") == 1200.0
        assert chain.engine.get_control("fx0_mix") == 1.0

    def test_source_and_dest_controls(self, chain):
        chain.build(["in", "stereo"])
        assert chain.engine.has_control("src_amp")
        assert chain.engine.has_control("dest_amp")

    @pytest.mark.parametrize("spec,error", [
        ([], EmptySpec),
        (["lpf", "stereo"], BadSource),
        (["in", "lpf"], BadDestination),
        (["in", "Unknown", "stereo"], UnknownEffect),
        (["in", ("lpf", {"id": "a"}), ("hpf", {"id": "a"}), "stereo"], DuplicateId),
    ])
    def test_invalid_spec_never_reaches_commit(self, chain, spec, error):
        """Test validation failures abort before the pipeline is touched."""
        with patch.object(chain, "_commit", wraps=chain._commit) as commit:
            with pytest.raises(error):
                chain.build(spec)
        commit.assert_not_called()
        assert chain.engine.commit_count == 0
        assert not chain.is_built

    def test_unknown_effect_keeps_previous_chain(self, chain, scenario_spec):
        """Test a rejected spec leaves the committed chain live and unchanged."""
        chain.build(scenario_spec)
        before = chain.status()
        pipeline = chain.engine.pipeline
        with pytest.raises(UnknownEffect) as exc:
            chain.build(["in", ("Unknown", {}), "stereo"])
        assert exc.value.effect_kind == "Unknown"
        assert chain.status() == before
        assert chain.engine.pipeline is pipeline

    def test_bad_tags_keep_previous_chain(self, chain, scenario_spec):
        chain.build(scenario_spec)
        before = chain.status()
        for spec in (["out", "lpf", "stereo"], ["in", "lpf", "in"]):
            with pytest.raises((BadSource, BadDestination)):
                chain.build(spec)
            assert chain.status() == before

    def test_builder_failure_keeps_previous_chain(self, chain, catalog, scenario_spec):
        """Test a raising builder aborts the whole build."""
        def broken(prefix, params):
            raise RuntimeError("no such plugin")

        catalog.register("broken", broken)
        chain.build(scenario_spec)
        before = chain.status()
        commits = chain.engine.commit_count

        with pytest.raises(BuilderFailed) as exc:
            chain.build(["in", "lpf", "broken", "stereo"])
        assert exc.value.effect_kind == "broken"
        assert isinstance(exc.value.cause, RuntimeError)
        assert chain.status() == before
        assert chain.engine.commit_count == commits

    def test_prepare_failure_is_structured(self, chain, catalog, scenario_spec):
        """Test a unit failing in reset() surfaces as BuilderFailed naming its kind."""
        catalog.register("badprep", _FailsOnReset)
        chain.build(scenario_spec)
        before = chain.status()
        commits = chain.engine.commit_count

        with pytest.raises(BuilderFailed) as exc:
            chain.build(["in", "badprep", "stereo"])
        assert exc.value.effect_kind == "badprep"
        assert isinstance(exc.value.cause, RuntimeError)
        assert exc.value.to_dict()['cause'] == "buffer allocation failed"
        assert chain.status() == before
        assert chain.engine.commit_count == commits

    def test_builder_out_of_range_param(self, chain):
        """Test schema violations surface as BuilderFailed naming the field."""
        with pytest.raises(BuilderFailed) as exc:
            chain.build(["in", ("lpf", {"freq": -5}), "stereo"])
        assert isinstance(exc.value.cause, InvalidParamRange)
        assert exc.value.cause.field == "fx0_freq"

    def test_builder_unknown_param(self, chain):
        with pytest.raises(BuilderFailed):
            chain.build(["in", ("lpf", {"cutoff": 500}), "stereo"])

    def test_builder_control_outside_prefix(self, chain, catalog):
        """Test units must keep their controls inside the stage prefix."""
        catalog.register("leaky", _Leaky)
        with pytest.raises(BuilderFailed):
            chain.build(["in", "leaky", "stereo"])

    def test_rebuild_replaces_everything(self, chain, scenario_spec):
        chain.build(scenario_spec)
        status = chain.build(["in", "hpf", "out"])
        assert status.prefixes == ["fx0"]
        assert not chain.engine.has_control("x1_rate")

    def test_rebuild_requires_spec(self, chain):
        with pytest.raises(ChainNotBuilt):
            chain.rebuild()


class TestTransport:
    """Test suite for play/stop/free."""

    def test_play_requires_build(self, chain):
        with pytest.raises(ChainNotBuilt):
            chain.play()

    def test_play_and_stop(self, chain):
        chain.build(["in", "stereo"])
        assert chain.play().playing
        assert not chain.stop().playing

    def test_play_offset_out_of_range(self, chain):
        chain.build(["in", "stereo"])
        with pytest.raises(InvalidParamRange):
            chain.play(offset=5)

    def test_free(self, chain, scenario_spec):
        """Test free drops the pipeline and the committed spec."""
        chain.build(scenario_spec)
        status = chain.free()
        assert not status.built
        assert chain.engine.pipeline is None
        assert len(chain.registry) == 0

    def test_renders_input(self, chain, impulse):
        """Test a built, playing chain passes signal to the output."""
        chain.build(["in", ("gain", {"amp": 2.0}), "out"])
        chain.play()
        out = chain.engine.render(len(impulse), impulse)
        assert out.shape == (len(impulse), 2)
        assert np.max(np.abs(out)) > 0


class TestStructuralLock:
    """Test suite for structural edit serialization."""

    def test_concurrent_structural_edit_rejected(self, chain, catalog, scenario_spec):
        """Test a structural call during another raises ChainBusy."""
        chain.build(scenario_spec)
        entered = threading.Event()
        release = threading.Event()

        def slow(prefix, params):
            entered.set()
            release.wait(5)
            from fxchain.effects import Gain
            return Gain(prefix, {})

        catalog.register("slow", slow)
        worker = threading.Thread(target=chain.insert_stage, args=(0, "slow"))
        worker.start()
        try:
            assert entered.wait(5)
            with pytest.raises(ChainBusy):
                chain.remove_stage("x1")
            # Parameter updates do not take the structural lock
            chain.set_fx("y1", {"freq": 900})
        finally:
            release.set()
            worker.join(5)
        assert chain.status().prefixes == ["fx0", "x1", "y1"]


class TestIndependentChains:
    """Test suite for multiple chains sharing a catalog."""

    def test_no_shared_state(self, catalog):
        a = Chain(ChainConfig(fade_time=0.0), catalog=catalog)
        b = Chain(ChainConfig(fade_time=0.0), catalog=catalog)
        a.build(["in", ("lpf", {"id": "tone"}), "stereo"])
        b.build(["in", ("hpf", {"id": "tone"}), "stereo"])
        a.set_fx("tone", {"freq": 300})
        assert a.engine.get_control("tone_freq") == 300.0
        assert b.engine.get_control("tone_freq") == 200.0
