"""
CHIP-8 Machine Driver
======================
Wires together:
  - one Chip8 interpreter core (chip8.py)
  - ROM loading from raw bytes or a file on disk
  - frame-based scheduling: a batch of instructions per 60 Hz frame,
    followed by one timer tick

The core has no notion of time.  A frame here is the unit a renderer
paces against: ``run_frame()`` executes ``ips / timer_hz`` instructions
and then decrements the delay and sound timers once.  Real-time pacing
(sleeping between frames) belongs to whoever calls ``run_frame()``.
"""

from __future__ import annotations
from typing import Callable, Iterable, Optional

from chip8 import Chip8, NUM_KEYS, TraceSink

# ---------------------------------------------------------------------------
#  Defaults
# ---------------------------------------------------------------------------

DEFAULT_IPS = 500     # instructions per second
TIMER_HZ    = 60      # delay/sound timer rate


class Chip8System:
    """A CHIP-8 machine: interpreter core plus frame scheduling."""

    def __init__(self, ips: int = DEFAULT_IPS, timer_hz: int = TIMER_HZ,
                 trace: Optional[TraceSink] = None,
                 rng: Optional[Callable[[], int]] = None):
        if ips <= 0 or timer_hz <= 0:
            raise ValueError("ips and timer_hz must be positive")
        self.ips = ips
        self.timer_hz = timer_hz
        self.cpu = Chip8(trace=trace, rng=rng)

        self.instructions: int = 0
        self.frames: int = 0
        self.rom_path: Optional[str] = None

    @property
    def steps_per_frame(self) -> int:
        return max(1, round(self.ips / self.timer_hz))

    # -----------------------------------------------------------------
    #  Loading
    # -----------------------------------------------------------------

    def load_rom(self, data: bytes | bytearray):
        """Load a program image at 0x200."""
        self.cpu.load_program(data)

    def load_rom_file(self, path: str):
        """Load a ROM file from disk."""
        with open(path, "rb") as f:
            data = f.read()
        self.load_rom(data)
        self.rom_path = path

    # -----------------------------------------------------------------
    #  Input
    # -----------------------------------------------------------------

    def set_keys(self, pressed: Iterable[bool]):
        self.cpu.set_keys(pressed)

    def _check_key(self, key: int) -> int:
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"key must be 0x0..0xF (got {key!r})")
        return key

    def press(self, key: int):
        self.cpu.keys[self._check_key(key)] = True

    def release(self, key: int):
        self.cpu.keys[self._check_key(key)] = False

    def release_all(self):
        self.cpu.keys = [False] * NUM_KEYS

    # -----------------------------------------------------------------
    #  Execution
    # -----------------------------------------------------------------

    def step(self) -> int:
        """Execute one instruction.  Returns the opcode."""
        op = self.cpu.step()
        self.instructions += 1
        return op

    def run_frame(self) -> int:
        """Run one frame's worth of instructions, then tick the timers."""
        n = self.steps_per_frame
        for _ in range(n):
            self.step()
        self.cpu.tick_timers()
        self.frames += 1
        return n

    def run(self, frames: int = 1) -> int:
        """Run a number of frames.  Returns total instructions executed."""
        total = 0
        for _ in range(frames):
            total += self.run_frame()
        return total

    # -----------------------------------------------------------------
    #  Convenience
    # -----------------------------------------------------------------

    def dump_state(self) -> str:
        """Register dump plus scheduling counters."""
        lines = ["=== CHIP-8 Registers ==="]
        lines.append(self.cpu.dump_regs())
        pressed = [f"{k:X}" for k in range(NUM_KEYS) if self.cpu.keys[k]]
        lines.append(f"  keys: {' '.join(pressed) or '-'}")
        lines.append(f"  Instructions: {self.instructions}  Frames: {self.frames}  "
                     f"({self.steps_per_frame}/frame @ {self.timer_hz} Hz)")
        if self.rom_path:
            lines.append(f"  ROM: {self.rom_path}")
        return "\n".join(lines)
