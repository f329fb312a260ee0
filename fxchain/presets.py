"""
Preset chain specs.

Each preset is a function returning a fresh spec list, so callers can
edit the result without affecting the preset.
"""

from typing import Any, Callable, Dict, List

from .spec import SOURCE_TAG, DestinationKind

STEREO = DestinationKind.STEREO.value


def create_clean_chain() -> List[Any]:
    """Rumble filter and a gentle top-end rolloff."""
    return [
        SOURCE_TAG,
        ("hpf", {"id": "rumble", "freq": 40}),
        ("lpf", {"id": "air", "freq": 16000}),
        STEREO,
    ]


def create_lofi_chain() -> List[Any]:
    """Crushed, darkened and slightly wobbly."""
    return [
        SOURCE_TAG,
        ("crush", {"id": "crush", "rate": 8, "bits": 10}),
        ("lpf", {"id": "tone", "freq": 3500}),
        ("tremolo", {"id": "wobble", "rate": 0.8, "depth": 0.15}),
        ("gain", {"id": "trim", "amp": 0.9}),
        STEREO,
    ]


def create_dub_chain() -> List[Any]:
    """Driven into a long feedback delay."""
    return [
        SOURCE_TAG,
        ("dist", {"id": "drive", "drive": 0.3, "mix": 0.6}),
        ("hpf", {"id": "thin", "freq": 300}),
        ("delay", {"id": "echo", "time": 0.375, "feedback": 0.6, "mix": 0.4}),
        STEREO,
    ]


PRESETS: Dict[str, Callable[[], List[Any]]] = {
    "clean": create_clean_chain,
    "lofi": create_lofi_chain,
    "dub": create_dub_chain,
}


def get_preset(name: str) -> List[Any]:
    """
    Return a new copy of a preset spec.

    Raises:
        KeyError: Unknown preset name
    """
    try:
        return PRESETS[name.lower()]()
    except KeyError:
        raise KeyError(f"Unknown preset {name!r}; available: {', '.join(sorted(PRESETS))}")


def list_presets() -> List[str]:
    return sorted(PRESETS)
