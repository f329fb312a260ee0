"""Tests for ChainConfig."""
import pytest

from fxchain.config import MAX_AMP, ChainConfig
from fxchain.errors import InvalidParamRange


class TestChainConfig:
    """Test suite for ChainConfig."""

    def test_defaults(self):
        config = ChainConfig()
        assert config.channels == 2
        assert config.real_input
        assert config.equal_energy
        assert config.blend.left == 0.5

    @pytest.mark.parametrize("field,value", [
        ("channels", 0),
        ("channels", 2.5),
        ("channels", True),
        ("src_amp", -0.1),
        ("dest_amp", MAX_AMP + 1),
        ("fade_time", -1.0),
        ("blend_left", 2.0),
        ("real_input", "yes"),
    ])
    def test_invalid_construction(self, field, value):
        with pytest.raises(InvalidParamRange) as exc:
            ChainConfig(**{field: value})
        assert exc.value.field == field

    def test_setters_validate(self):
        config = ChainConfig()
        config.set_src_amp(2.0)
        assert config.src_amp == 2.0
        with pytest.raises(InvalidParamRange):
            config.set_src_amp(99)
        assert config.src_amp == 2.0
        with pytest.raises(InvalidParamRange):
            config.set_channels(100)
        config.set_fade_time(1.5)
        config.set_blend(0.2, 0.8)
        assert (config.blend_left, config.blend_right) == (0.2, 0.8)

    def test_toggles(self):
        config = ChainConfig()
        config.set_real_input(False)
        config.set_noise_source(True)
        config.set_equal_energy(False)
        assert not config.real_input
        assert config.noise_source
        assert not config.equal_energy

    def test_update_is_atomic(self):
        """Test one invalid change rejects the whole update."""
        config = ChainConfig()
        with pytest.raises(InvalidParamRange):
            config.update(channels=4, src_amp=-1)
        assert config.channels == 2

    def test_update_unknown_field(self):
        with pytest.raises(InvalidParamRange):
            ChainConfig().update(volume=1)

    def test_dict_round_trip(self):
        config = ChainConfig(channels=4, equal_energy=False)
        assert ChainConfig.from_dict(config.to_dict()) == config

    def test_from_dict_unknown(self):
        with pytest.raises(InvalidParamRange):
            ChainConfig.from_dict({"chanels": 2})

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("FXCHAIN_CHANNELS", "6")
        monkeypatch.setenv("FXCHAIN_REAL_INPUT", "no")
        monkeypatch.setenv("FXCHAIN_NOISE", "true")
        monkeypatch.setenv("FXCHAIN_FADE_TIME", "0.05")
        config = ChainConfig.from_env()
        assert config.channels == 6
        assert not config.real_input
        assert config.noise_source
        assert config.fade_time == 0.05

    def test_from_env_bad_number(self, monkeypatch):
        monkeypatch.setenv("FXCHAIN_SRC_AMP", "loud")
        with pytest.raises(InvalidParamRange):
            ChainConfig.from_env()


class TestConfigInChain:
    """Test suite for config driving the chain's source."""

    def test_synthetic_source(self, catalog, engine):
        from fxchain import Chain
        chain = Chain(ChainConfig(real_input=False, noise_source=True, fade_time=0.0),
                      catalog=catalog, engine=engine)
        status = chain.build(["in", "stereo"])
        assert status.source == "noise"
        assert status.input_channels == 0

    def test_real_input_source(self, chain):
        status = chain.build(["in", "stereo"])
        assert status.source == "input"
        assert status.input_channels == 2
