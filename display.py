"""
CHIP-8 Display
===============
Renders the interpreter's 64x32 framebuffer in a pygame window and feeds
the host keyboard back into the key matrix.

Lit pixels are drawn at full brightness; pixels that go dark fade out
over a few frames instead of vanishing, which hides most of the flicker
CHIP-8 programs produce by erasing and redrawing sprites.

Usage (programmatic):
    from system import Chip8System
    from display import Chip8Display
    machine = Chip8System()
    machine.load_rom_file("pong.ch8")
    Chip8Display(machine).run()      # blocks until the window closes

Usage (CLI):
    python cli.py pong.ch8 --scale 8
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import numpy as np

from chip8 import Chip8, DISPLAY_WIDTH, DISPLAY_HEIGHT

if TYPE_CHECKING:
    from system import Chip8System

DEFAULT_SCALE = 8
FADE_STEP = 0x33          # brightness lost per frame once a pixel goes dark
BACKGROUND = (0, 0, 0)

# Host key for each hex key 0x0..0xF (pygame K_<name>).  Laid out so the
# 4x4 block 1234/qwer/asdf/zxcv mirrors the COSMAC VIP keypad:
#   1 2 3 C        1 2 3 4
#   4 5 6 D   ->   q w e r
#   7 8 9 E        a s d f
#   A 0 B F        z x c v
KEYMAP = (
    "x", "1", "2", "3",
    "q", "w", "e", "a",
    "s", "d", "z", "c",
    "4", "r", "f", "v",
)


def pixel_mask(chip: Chip8) -> np.ndarray:
    """Framebuffer as a (32, 64) bool array indexed [y, x]."""
    rows = np.array(chip.disp, dtype=np.uint64)
    cols = np.arange(DISPLAY_WIDTH, dtype=np.uint64)
    return ((rows[:, None] >> cols[None, :]) & np.uint64(1)).astype(bool)


class FadeBuffer:
    """Per-pixel brightness (0..255) with phosphor-style fade-out."""

    def __init__(self, fade_step: int = FADE_STEP):
        self.fade_step = fade_step
        self.levels = np.zeros((DISPLAY_HEIGHT, DISPLAY_WIDTH), dtype=np.uint8)

    def update(self, chip: Chip8) -> np.ndarray:
        lit = pixel_mask(chip)
        faded = np.maximum(self.levels.astype(np.int16) - self.fade_step, 0)
        self.levels = np.where(lit, 255, faded).astype(np.uint8)
        return self.levels

    def clear(self):
        self.levels.fill(0)

    def rgb(self) -> np.ndarray:
        """Gray-scale pixels as a (64, 32, 3) array for surfarray.blit_array."""
        return np.repeat(self.levels.T[:, :, None], 3, axis=2)


def resolve_keys(pygame_module) -> list[int]:
    """pygame key codes for hex keys 0..F, in order."""
    return [getattr(pygame_module, f"K_{name}") for name in KEYMAP]


class Chip8Display:
    """pygame window driving a Chip8System at the system's frame rate.

    ``run()`` owns the loop: it polls input, runs one frame of the
    machine, then draws.  Closing the window or pressing Escape ends it.
    """

    def __init__(self, sys_emu: "Chip8System", scale: int = DEFAULT_SCALE,
                 title: str = "CHIP-8"):
        self.sys = sys_emu
        self.scale = max(1, scale)
        self.title = title
        self.fade = FadeBuffer()
        self.error: Optional[Exception] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def stop(self):
        self._running = False

    def run(self) -> bool:
        """Main display loop.  Returns False if it ended on an error."""
        import pygame

        self.error = None
        self._running = True
        try:
            pygame.init()
            pygame.display.set_caption(self.title)
            screen = pygame.display.set_mode(
                (DISPLAY_WIDTH * self.scale, DISPLAY_HEIGHT * self.scale))
            surface = pygame.Surface((DISPLAY_WIDTH, DISPLAY_HEIGHT))
            clock = pygame.time.Clock()
            keys = resolve_keys(pygame)

            while self._running:
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self._running = False
                    elif event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                        self._running = False
                if not self._running:
                    break

                state = pygame.key.get_pressed()
                self.sys.set_keys(state[k] for k in keys)
                self.sys.run_frame()

                self.fade.update(self.sys.cpu)
                pygame.surfarray.blit_array(surface, self.fade.rgb())
                screen.fill(BACKGROUND)
                screen.blit(pygame.transform.scale(surface, screen.get_size()), (0, 0))
                pygame.display.flip()
                clock.tick(self.sys.timer_hz)
        except Exception as e:
            print(f"\n[display] error: {e}")
            self.error = e
        finally:
            self._running = False
            pygame.quit()
        return self.error is None


class HeadlessDisplay:
    """No-op display for testing; records framebuffer snapshots."""

    def __init__(self, sys_emu: "Chip8System"):
        self.sys = sys_emu
        self.snapshots: list[list[int]] = []

    def snapshot(self) -> list[int]:
        """Capture the current framebuffer row-words."""
        data = self.sys.cpu.framebuffer()
        self.snapshots.append(data)
        return data

    def render_text(self, on: str = "#", off: str = ".") -> str:
        cpu = self.sys.cpu
        return "\n".join(
            "".join(on if cpu.get_px(x, y) else off for x in range(DISPLAY_WIDTH))
            for y in range(DISPLAY_HEIGHT))

    @property
    def running(self) -> bool:
        return False
