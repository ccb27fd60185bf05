#!/usr/bin/env python3
"""
CHIP-8 Command Line
====================
Runs a CHIP-8 ROM either in a pygame window or headless.

Usage:
  python cli.py ROM [--ips N] [--scale N] [--seed N] [--trace]
  python cli.py ROM --headless [--frames N]

Keys (hex keypad on the left QWERTY block):
  1 2 3 4 / q w e r / a s d f / z x c v      Escape quits.
"""

from __future__ import annotations
import argparse
import os
import random
import sys
from typing import Optional

from chip8 import Chip8Error
from system import Chip8System, DEFAULT_IPS, TIMER_HZ
from display import DEFAULT_SCALE, HeadlessDisplay

DEFAULT_FRAMES = 600   # headless: ten seconds of machine time


def _print_trace(pc: int, op: int, text: str):
    print(f"  {pc:#06x}: {op:04x}  {text}")


def _default_scale() -> int:
    value = os.environ.get("CHIP8_SCALE")
    if not value:
        return DEFAULT_SCALE
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"CHIP8_SCALE must be an integer (got {value!r})") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CHIP-8 interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py roms/pong.ch8\n"
               "  python cli.py roms/pong.ch8 --ips 700 --scale 12\n"
               "  python cli.py roms/ibm.ch8 --headless --frames 60\n"
    )
    parser.add_argument("rom", help="Raw CHIP-8 program image")
    parser.add_argument("--ips", type=int, default=DEFAULT_IPS,
                        help=f"Instructions per second (default: {DEFAULT_IPS})")
    parser.add_argument("--scale", type=int, default=None, metavar="N",
                        help="Pixel scale factor for the window "
                             f"(default: {DEFAULT_SCALE}, env CHIP8_SCALE)")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed the random source used by RND")
    parser.add_argument("--trace", action="store_true",
                        help="Print every instruction as it executes")
    parser.add_argument("--headless", action="store_true",
                        help="Run without a window and print the final screen")
    parser.add_argument("--frames", type=int, default=DEFAULT_FRAMES,
                        help=f"Frames to run in headless mode (default: {DEFAULT_FRAMES})")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    rng = None
    if args.seed is not None:
        seeded = random.Random(args.seed)
        rng = lambda: seeded.getrandbits(8)

    try:
        scale = args.scale if args.scale is not None else _default_scale()
        sys_emu = Chip8System(ips=args.ips, timer_hz=TIMER_HZ,
                              trace=_print_trace if args.trace else None,
                              rng=rng)
        sys_emu.load_rom_file(args.rom)
    except (OSError, ValueError, Chip8Error) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # ---- Headless mode: run N frames, print screen + registers ---------
    if args.headless:
        display = HeadlessDisplay(sys_emu)
        try:
            sys_emu.run(args.frames)
        except Chip8Error as e:
            print(f"Error: {e}", file=sys.stderr)
            print(sys_emu.dump_state(), file=sys.stderr)
            return 1
        print(display.render_text())
        print(sys_emu.dump_state())
        return 0

    # ---- Windowed mode -------------------------------------------------
    try:
        from display import Chip8Display
        import pygame  # noqa: F401
    except ImportError as e:
        print(f"[display] pygame not available: {e}", file=sys.stderr)
        print("[display] Install with: pip install pygame", file=sys.stderr)
        return 1

    title = f"CHIP-8 - {os.path.basename(args.rom)}"
    display = Chip8Display(sys_emu, scale=scale, title=title)
    try:
        ok = display.run()
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 0
    if not ok:
        print(sys_emu.dump_state(), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
