"""
Pytest fixtures for fxchain tests.
"""
import pytest
import sys
from pathlib import Path
import tempfile
import shutil

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fxchain import BlockEngine, Chain, ChainConfig, create_catalog


@pytest.fixture
def sample_rate():
    """Standard sample rate for tests."""
    return 48000


@pytest.fixture
def temp_dir():
    """Create temporary directory for test outputs."""
    tmp = tempfile.mkdtemp()
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def catalog():
    """Fresh catalog with the built-in effects."""
    return create_catalog()


@pytest.fixture
def engine(sample_rate):
    """Stereo block engine with small blocks."""
    return BlockEngine(sample_rate=sample_rate, output_channels=2,
                       input_channels=2, block_size=256)


@pytest.fixture
def chain(catalog, engine):
    """Unbuilt chain with no commit crossfade."""
    return Chain(config=ChainConfig(fade_time=0.0), catalog=catalog, engine=engine,
                 name="test")


@pytest.fixture
def scenario_spec():
    """Two addressed stages: crush 'x1' then lpf 'y1'."""
    return ["in", ("crush", {"id": "x1", "rate": 8}), ("lpf", {"id": "y1", "freq": 500}),
            "stereo"]


@pytest.fixture
def impulse():
    """Unit impulse on both channels, 1024 frames."""
    import numpy as np
    block = np.zeros((1024, 2))
    block[0] = 1.0
    return block
