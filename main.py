#!/usr/bin/env python3
"""
fxchain - CLI Entry Point

Build an effect chain from a chain file or preset and render it offline.

Usage:
    python main.py render chains/lofi.yaml -o out.wav --seconds 4
    python main.py render --preset dub --input voice.wav -o dub.wav
    python main.py validate chains/lofi.yaml
    python main.py effects
    python main.py presets
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np
from colorama import Fore, Style, init
from scipy.io import wavfile

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from fxchain import (
    BlockEngine,
    Chain,
    ChainConfig,
    ChainError,
    ChainFileLoader,
    get_default_catalog,
    get_preset,
    list_presets,
    validate,
)

init()

logger = logging.getLogger("fxchain.cli")


def print_info(message: str):
    """Print info message."""
    print(f"{Fore.CYAN}ℹ{Style.RESET_ALL}  {message}")


def print_error(message: str):
    """Print error message."""
    print(f"{Fore.RED}✗{Style.RESET_ALL}  {message}")


def print_success(message: str):
    """Print success message."""
    print(f"{Fore.GREEN}✓{Style.RESET_ALL}  {message}")


def load_chain_source(args):
    """Return (spec, config, label) from --preset or a chain file."""
    if args.preset:
        return get_preset(args.preset), ChainConfig(), f"preset:{args.preset}"
    if not args.chain_file:
        raise SystemExit("render/validate needs a chain file or --preset")
    chain_file = ChainFileLoader().load(args.chain_file)
    return chain_file.spec, chain_file.config, chain_file.name


def read_input(path: Path, sample_rate: int, channels: int) -> np.ndarray:
    """Read a WAV file as float64 (frames, channels)."""
    rate, data = wavfile.read(path)
    if rate != sample_rate:
        logger.warning("Input is %d Hz, engine runs at %d Hz; no resampling applied",
                       rate, sample_rate)
    if np.issubdtype(data.dtype, np.integer):
        data = data.astype(np.float64) / np.iinfo(data.dtype).max
    else:
        data = data.astype(np.float64)
    if data.ndim == 1:
        data = data[:, np.newaxis]
    if data.shape[1] < channels:
        # Cycle through every input channel: L R -> L R L R
        repeats = -(-channels // data.shape[1])
        data = np.tile(data, (1, repeats))
    return data[:, :channels]


def cmd_render(args) -> dict:
    spec, config, label = load_chain_source(args)
    if args.input:
        config.set_real_input(True)
    else:
        # Offline there is no live input: a chain expecting one hears noise instead
        config.update(real_input=False,
                      noise_source=config.noise_source or args.noise or config.real_input)

    engine = BlockEngine(sample_rate=args.sample_rate,
                         output_channels=max(2, config.channels),
                         input_channels=config.channels,
                         block_size=args.block_size)
    chain = Chain(config=config, engine=engine, name=label)
    chain.build(spec)
    chain.play()

    input_signal = None
    seconds = args.seconds
    if args.input:
        input_signal = read_input(Path(args.input), args.sample_rate, config.channels)
        if seconds is None:
            seconds = len(input_signal) / args.sample_rate
    if seconds is None:
        seconds = 2.0
    audio = engine.render_seconds(seconds, input_signal)

    peak = float(np.max(np.abs(audio))) if audio.size else 0.0
    if peak > 1.0:
        audio = audio / peak
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    wavfile.write(output, args.sample_rate, (audio * 32767).astype(np.int16))
    chain.free()
    return {'output': str(output), 'frames': len(audio), 'peak': peak,
            'chain': chain_summary(spec)}


def chain_summary(spec) -> list:
    return [[item[0], dict(item[1])] if isinstance(item, tuple) and len(item) == 2 else item
            for item in spec]


def cmd_validate(args) -> dict:
    spec, config, label = load_chain_source(args)
    parsed = validate(spec, get_default_catalog())
    return {'chain': label, 'valid': True, 'stages': len(parsed.stages)}


def cmd_effects(args) -> dict:
    return get_default_catalog().describe()


def cmd_presets(args) -> dict:
    return {name: chain_summary(get_preset(name)) for name in list_presets()}


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Build and render live effect chains",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py render chains/lofi.yaml -o out.wav --seconds 4
  python main.py render --preset dub --input voice.wav -o dub.wav
  python main.py --json validate chains/lofi.yaml
  python main.py effects
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Render a chain offline to WAV")
    render.add_argument("chain_file", nargs="?", help="YAML/JSON chain file")
    render.add_argument("--preset", choices=list_presets(), help="Use a preset instead of a file")
    render.add_argument("-o", "--output", default="output/chain.wav", help="Output WAV path")
    render.add_argument("-i", "--input", help="Input WAV to process (else synthetic source)")
    render.add_argument("--seconds", type=float, default=None, help="Duration to render")
    render.add_argument("--noise", action="store_true", help="Synthetic source emits noise")
    render.add_argument("--sample-rate", type=int, default=48000)
    render.add_argument("--block-size", type=int, default=512)
    render.set_defaults(func=cmd_render)

    check = sub.add_parser("validate", help="Validate a chain file")
    check.add_argument("chain_file", nargs="?")
    check.add_argument("--preset", choices=list_presets())
    check.set_defaults(func=cmd_validate)

    sub.add_parser("effects", help="List effect kinds and parameters").set_defaults(func=cmd_effects)
    sub.add_parser("presets", help="List preset chains").set_defaults(func=cmd_presets)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        result = args.func(args)
    except ChainError as e:
        if args.json:
            print(json.dumps({'success': False, **e.to_dict()}, indent=2))
        else:
            print_error(f"{e.kind}: {e.message}")
        return 1

    if args.json:
        print(json.dumps({'success': True, 'result': result}, indent=2, default=str))
    elif args.command == "render":
        print_success(f"Rendered {result['frames']} frames to {result['output']}")
    elif args.command == "validate":
        print_success(f"{result['chain']}: valid ({result['stages']} stages)")
    else:
        for name, info in result.items():
            print_info(f"{name}: {info}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
