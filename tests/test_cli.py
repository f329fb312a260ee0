"""Tests for the command-line entry point."""
import json
import sys
from pathlib import Path

import numpy as np
import pytest
from scipy.io import wavfile

import main as cli


def _run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["main.py", *args])
    return cli.main()


class TestCLI:
    """Test suite for main.py commands."""

    def test_render_preset(self, monkeypatch, temp_dir):
        """Test rendering a preset writes a stereo WAV of the right length."""
        output = Path(temp_dir) / "out.wav"
        code = _run(monkeypatch, "render", "--preset", "lofi", "--noise",
                    "--seconds", "0.1", "-o", str(output))
        assert code == 0
        rate, data = wavfile.read(output)
        assert rate == 48000
        assert data.shape == (4800, 2)

    def test_render_input_file(self, monkeypatch, temp_dir):
        source = Path(temp_dir) / "in.wav"
        wavfile.write(source, 48000, (np.ones((960, 2)) * 8000).astype(np.int16))
        output = Path(temp_dir) / "out.wav"
        code = _run(monkeypatch, "render", "--preset", "clean", "-i", str(source),
                    "-o", str(output))
        assert code == 0
        _, data = wavfile.read(output)
        assert len(data) == 960

    def test_render_without_input_is_audible(self, monkeypatch, temp_dir):
        """Test a preset rendered with no input file and no --noise is not silent."""
        output = Path(temp_dir) / "out.wav"
        code = _run(monkeypatch, "render", "--preset", "lofi", "--seconds", "0.1",
                    "-o", str(output))
        assert code == 0
        _, data = wavfile.read(output)
        assert np.max(np.abs(data)) > 0

    def test_render_keeps_explicit_silent_source(self, monkeypatch, temp_dir):
        """Test a chain file asking for a silent synthetic source stays silent."""
        path = Path(temp_dir) / "quiet.json"
        path.write_text(json.dumps({
            "config": {"real_input": False, "noise_source": False},
            "spec": ["in", "lpf", "stereo"],
        }))
        output = Path(temp_dir) / "quiet.wav"
        assert _run(monkeypatch, "render", str(path), "--seconds", "0.05",
                    "-o", str(output)) == 0
        _, data = wavfile.read(output)
        assert len(data) == 2400
        assert np.max(np.abs(data)) == 0

    def test_render_zero_seconds(self, monkeypatch, temp_dir, capsys):
        """Test --seconds 0 renders nothing rather than the default length."""
        output = Path(temp_dir) / "empty.wav"
        assert _run(monkeypatch, "--json", "render", "--preset", "clean", "--seconds", "0",
                    "-o", str(output)) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["result"]["frames"] == 0

    def test_read_input_tiles_all_channels(self, temp_dir):
        """Test upmixing a stereo file keeps both channels: L R -> L R L R."""
        source = Path(temp_dir) / "stereo.wav"
        frames = np.column_stack([np.full(16, 0.25), np.full(16, -0.5)]).astype(np.float32)
        wavfile.write(source, 48000, frames)
        data = cli.read_input(source, 48000, 4)
        assert data.shape == (16, 4)
        np.testing.assert_allclose(data[0], [0.25, -0.5, 0.25, -0.5])

    def test_validate_reports_error(self, monkeypatch, temp_dir, capsys):
        path = Path(temp_dir) / "bad.json"
        path.write_text(json.dumps(["in", "Unknown", "stereo"]))
        code = _run(monkeypatch, "--json", "validate", str(path))
        assert code == 1
        result = json.loads(capsys.readouterr().out)
        assert result['error'] == "UnknownEffect"
        assert not result['success']

    def test_effects_json(self, monkeypatch, capsys):
        assert _run(monkeypatch, "--json", "effects") == 0
        result = json.loads(capsys.readouterr().out)
        assert "lpf" in result['result']

    def test_presets(self, monkeypatch, capsys):
        assert _run(monkeypatch, "presets") == 0
        assert "dub" in capsys.readouterr().out
