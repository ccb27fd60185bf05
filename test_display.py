"""
Display tests: fade buffer, framebuffer conversion, headless rendering and
the host key map.  The window loop tests run under SDL's dummy video
driver (see conftest.py).
"""

import unittest

import numpy as np
import pytest

from chip8 import DISPLAY_WIDTH, DISPLAY_HEIGHT, StackUnderflowError
from display import (
    FADE_STEP, KEYMAP, Chip8Display, FadeBuffer, HeadlessDisplay, pixel_mask,
    resolve_keys,
)
from system import Chip8System


def words(*ops: int) -> bytes:
    return b"".join(op.to_bytes(2, "big") for op in ops)


def glyph_machine(digit: int = 0) -> Chip8System:
    """Machine that has drawn one font glyph at (0, 0) and then clears."""
    sys_emu = Chip8System()
    # V0 = digit / I = glyph / V1 = 0 / drw V1, V1, 5 / cls
    sys_emu.load_rom(words(0x6000 | digit, 0xF029, 0x6100, 0xD115, 0x00E0))
    for _ in range(4):
        sys_emu.step()
    return sys_emu


class TestPixelMask(unittest.TestCase):
    def test_shape_and_contents(self):
        sys_emu = glyph_machine(0)
        mask = pixel_mask(sys_emu.cpu)
        self.assertEqual(mask.shape, (DISPLAY_HEIGHT, DISPLAY_WIDTH))
        self.assertEqual(mask.dtype, np.bool_)
        self.assertEqual(int(mask.sum()), 14)
        self.assertTrue(mask[0, 0])
        self.assertFalse(mask[2, 1])

    def test_rightmost_column(self):
        sys_emu = Chip8System()
        sys_emu.cpu.disp[31] = 1 << 63
        mask = pixel_mask(sys_emu.cpu)
        self.assertTrue(mask[31, 63])
        self.assertEqual(int(mask.sum()), 1)


class TestFadeBuffer(unittest.TestCase):
    def test_lit_pixels_full_brightness(self):
        sys_emu = glyph_machine(8)
        fade = FadeBuffer()
        levels = fade.update(sys_emu.cpu)
        self.assertEqual(levels[0, 0], 255)
        self.assertEqual(levels[10, 10], 0)

    def test_fade_out_after_clear(self):
        sys_emu = glyph_machine(0)
        fade = FadeBuffer()
        fade.update(sys_emu.cpu)
        sys_emu.step()   # cls
        expected = 255
        for _ in range(5):
            expected = max(expected - FADE_STEP, 0)
            fade.update(sys_emu.cpu)
            self.assertEqual(int(fade.levels[0, 0]), expected)
        self.assertEqual(int(fade.levels.max()), 0)

    def test_rgb_layout(self):
        sys_emu = glyph_machine(0)
        fade = FadeBuffer()
        fade.update(sys_emu.cpu)
        rgb = fade.rgb()
        self.assertEqual(rgb.shape, (DISPLAY_WIDTH, DISPLAY_HEIGHT, 3))
        self.assertEqual(tuple(rgb[3, 0]), (255, 255, 255))
        self.assertEqual(tuple(rgb[1, 2]), (0, 0, 0))

    def test_clear(self):
        sys_emu = glyph_machine(0)
        fade = FadeBuffer()
        fade.update(sys_emu.cpu)
        fade.clear()
        self.assertEqual(int(fade.levels.max()), 0)


class TestHeadlessDisplay(unittest.TestCase):
    def test_render_text(self):
        sys_emu = glyph_machine(0)
        text = HeadlessDisplay(sys_emu).render_text()
        lines = text.splitlines()
        self.assertEqual(len(lines), DISPLAY_HEIGHT)
        self.assertEqual(lines[0], "####" + "." * 60)
        self.assertEqual(lines[1], "#..#" + "." * 60)
        self.assertEqual(lines[5], "." * 64)

    def test_snapshots(self):
        sys_emu = glyph_machine(1)
        display = HeadlessDisplay(sys_emu)
        first = display.snapshot()
        sys_emu.step()   # cls
        second = display.snapshot()
        self.assertEqual(len(display.snapshots), 2)
        self.assertNotEqual(first, second)
        self.assertEqual(second, [0] * DISPLAY_HEIGHT)
        self.assertFalse(display.running)


class TestKeymap(unittest.TestCase):
    def test_sixteen_distinct_keys(self):
        self.assertEqual(len(KEYMAP), 16)
        self.assertEqual(len(set(KEYMAP)), 16)
        self.assertEqual(KEYMAP[0x0], "x")
        self.assertEqual(KEYMAP[0xC], "4")
        self.assertEqual(KEYMAP[0xF], "v")


@pytest.mark.display
def test_resolve_keys_with_pygame():
    pygame = pytest.importorskip("pygame")
    codes = resolve_keys(pygame)
    assert len(codes) == 16
    assert codes[0x1] == pygame.K_1
    assert codes[0xD] == pygame.K_r


def stop_after(display: Chip8Display, frames: int):
    """Make the display stop itself once the machine has run ``frames``."""
    sys_emu = display.sys
    run_frame = sys_emu.run_frame

    def counted():
        n = run_frame()
        if sys_emu.frames >= frames:
            display.stop()
        return n

    sys_emu.run_frame = counted


@pytest.mark.display
def test_window_loop_runs_frames_until_stopped():
    pytest.importorskip("pygame")
    sys_emu = Chip8System()
    # V0 = 0 / I = glyph 0 / drw V0, V0, 5 / jp 0x206
    sys_emu.load_rom(words(0x6000, 0xF029, 0xD005, 0x1206))
    display = Chip8Display(sys_emu, scale=2)
    stop_after(display, 3)

    assert display.run() is True
    assert display.error is None
    assert not display.running
    assert sys_emu.frames == 3
    assert sys_emu.instructions == 3 * sys_emu.steps_per_frame
    assert display.fade.levels[0, 0] == 255
    assert display.fade.levels[2, 1] == 0
    # nothing is held down under the dummy driver
    assert not any(sys_emu.cpu.keys)


@pytest.mark.display
def test_window_loop_reports_core_fault():
    pytest.importorskip("pygame")
    sys_emu = Chip8System()
    sys_emu.load_rom(words(0x00EE))
    display = Chip8Display(sys_emu)

    assert display.run() is False
    assert isinstance(display.error, StackUnderflowError)
    assert "empty call stack" in str(display.error)
    assert sys_emu.cpu.pc == 0x200
    assert not display.running


@pytest.mark.display
def test_window_loop_reports_host_errors(capsys):
    pytest.importorskip("pygame")
    sys_emu = Chip8System()
    sys_emu.load_rom(words(0x1200))
    display = Chip8Display(sys_emu)

    def broken():
        raise RuntimeError("surface lost")

    sys_emu.run_frame = broken
    assert display.run() is False
    assert isinstance(display.error, RuntimeError)
    assert "[display] error: surface lost" in capsys.readouterr().out


@pytest.mark.display
def test_window_loop_clears_previous_error():
    pytest.importorskip("pygame")
    sys_emu = Chip8System()
    sys_emu.load_rom(words(0x1200))
    display = Chip8Display(sys_emu)
    display.error = RuntimeError("stale")
    stop_after(display, 1)

    assert display.run() is True
    assert display.error is None
