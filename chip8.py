"""
CHIP-8 Interpreter Core
========================
A step-at-a-time interpreter for the 35-opcode CHIP-8 instruction set:
4 KiB of memory with the hex font burned in at 0x050, a 64x32 monochrome
framebuffer, sixteen 8-bit V registers, a 16-entry call stack, two 60 Hz
countdown timers and a 16-key input matrix.

Every call to ``step()`` fetches two bytes at PC, advances PC, splits the
word into four nibbles and dispatches on the first one.  The core never
blocks, sleeps or touches the host: timers are ticked by the caller, keys
are written by the caller, and the display is read back with ``get_px``.

Usage:
    from chip8 import Chip8
    chip = Chip8()
    chip.load_program(open("pong.ch8", "rb").read())
    while True:
        chip.step()
"""

from __future__ import annotations
import random
from typing import Callable, Iterable, Optional

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEM_SIZE         = 0x1000
ADDR_MASK        = MEM_SIZE - 1
PROGRAM_START    = 0x200
MAX_PROGRAM_SIZE = MEM_SIZE - PROGRAM_START   # 3,584 bytes

DISPLAY_WIDTH  = 64
DISPLAY_HEIGHT = 32

NUM_REGS    = 16
STACK_DEPTH = 16
NUM_KEYS    = 16

MASK8  = 0xFF
MASK16 = 0xFFFF

FONT_START      = 0x50
FONT_GLYPH_SIZE = 5

FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

# Trace sink: called with (pc, opcode, mnemonic) before each instruction runs
TraceSink = Callable[[int, int, str], None]

# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def u8(v: int) -> int:
    """Mask to unsigned 8 bits."""
    return v & MASK8

def u16(v: int) -> int:
    """Mask to unsigned 16 bits."""
    return v & MASK16

def nibbles(op: int) -> tuple[int, int, int, int]:
    """Split a 16-bit opcode into its four nibbles, high first."""
    return (op >> 12) & 0xF, (op >> 8) & 0xF, (op >> 4) & 0xF, op & 0xF

ALU_NAMES = {
    0x0: "ld", 0x1: "or", 0x2: "and", 0x3: "xor", 0x4: "add",
    0x5: "sub", 0x6: "shr", 0x7: "subn", 0xE: "shl",
}

def mnemonic(op: int) -> Optional[str]:
    """Assembler-style text for one opcode, or None if it is not defined."""
    f, x, y, n = nibbles(op)
    nnn = op & 0xFFF
    nn = op & 0xFF
    if op == 0x00E0:
        return "cls"
    if op == 0x00EE:
        return "ret"
    if f == 0x1:
        return f"jp {nnn:#05x}"
    if f == 0x2:
        return f"call {nnn:#05x}"
    if f == 0x3:
        return f"se V{x:X}, {nn:#04x}"
    if f == 0x4:
        return f"sne V{x:X}, {nn:#04x}"
    if f == 0x5 and n == 0:
        return f"se V{x:X}, V{y:X}"
    if f == 0x6:
        return f"ld V{x:X}, {nn:#04x}"
    if f == 0x7:
        return f"add V{x:X}, {nn:#04x}"
    if f == 0x8 and n in ALU_NAMES:
        return f"{ALU_NAMES[n]} V{x:X}, V{y:X}"
    if f == 0x9 and n == 0:
        return f"sne V{x:X}, V{y:X}"
    if f == 0xA:
        return f"ld I, {nnn:#05x}"
    if f == 0xB:
        return f"jp V0, {nnn:#05x}"
    if f == 0xC:
        return f"rnd V{x:X}, {nn:#04x}"
    if f == 0xD:
        return f"drw V{x:X}, V{y:X}, {n}"
    if f == 0xE and nn == 0x9E:
        return f"skp V{x:X}"
    if f == 0xE and nn == 0xA1:
        return f"sknp V{x:X}"
    if f == 0xF:
        text = {
            0x07: "ld V{x}, DT", 0x0A: "ld V{x}, K", 0x15: "ld DT, V{x}",
            0x18: "ld ST, V{x}", 0x1E: "add I, V{x}", 0x29: "ld F, V{x}",
            0x33: "ld B, V{x}", 0x55: "ld [I], V{x}", 0x65: "ld V{x}, [I]",
        }.get(nn)
        if text:
            return text.format(x=f"{x:X}")
    return None

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class Chip8Error(Exception):
    """Base for interpreter-generated faults."""
    pass

class ProgramTooLargeError(Chip8Error):
    def __init__(self, size: int):
        self.size = size
        super().__init__(
            f"CHIP-8 program must be 3,584 (0xE00) bytes or smaller "
            f"(got {size:,})")

class StackOverflowError(Chip8Error):
    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Call stack overflow @ {pc:#06x}")

class StackUnderflowError(Chip8Error):
    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Return with empty call stack @ {pc:#06x}")

# ---------------------------------------------------------------------------
#  Interpreter
# ---------------------------------------------------------------------------

class Chip8:
    """CHIP-8 interpreter state machine: one instruction per ``step()``."""

    def __init__(self, trace: Optional[TraceSink] = None,
                 rng: Optional[Callable[[], int]] = None):
        # Callbacks
        self.trace: Optional[TraceSink] = trace
        self._random = random.Random()
        self.rng: Callable[[], int] = rng or (lambda: self._random.getrandbits(8))
        self.reset()

    def reset(self):
        """Return to power-on state.  Memory is cleared and the font re-burned."""
        self.mem = bytearray(MEM_SIZE)
        self.mem[FONT_START:FONT_START + len(FONT)] = FONT

        # 32 row-words; bit x of row y is pixel (x, y)
        self.disp: list[int] = [0] * DISPLAY_HEIGHT

        self.v: list[int] = [0] * NUM_REGS
        self.i: int  = 0
        self.pc: int = PROGRAM_START

        self.stack: list[int] = [0] * STACK_DEPTH
        self.sp: int = 0

        self.dt: int = 0   # delay timer
        self.st: int = 0   # sound timer

        # Written by the caller between steps
        self.keys: list[bool] = [False] * NUM_KEYS

    # -- Loading --

    def load_program(self, program: bytes | bytearray):
        """Copy a program into memory at 0x200.  Nothing is written on failure."""
        program = bytes(program)
        if len(program) > MAX_PROGRAM_SIZE:
            raise ProgramTooLargeError(len(program))
        self.mem[PROGRAM_START:PROGRAM_START + len(program)] = program

    def load_bytes(self, addr: int, data: bytes | bytearray):
        """Write raw bytes into memory at the given address."""
        for k, b in enumerate(data):
            self.mem_write8(addr + k, b)

    # -- Memory access --

    def mem_read8(self, addr: int) -> int:
        return self.mem[addr & ADDR_MASK]

    def mem_write8(self, addr: int, val: int):
        self.mem[addr & ADDR_MASK] = val & MASK8

    # -- Display --

    def get_px(self, x: int, y: int) -> bool:
        """True if pixel (x, y) is lit.  Coordinates wrap to the screen."""
        return (self.disp[y % DISPLAY_HEIGHT] >> (x % DISPLAY_WIDTH)) & 1 == 1

    def _toggle_px(self, x: int, y: int):
        self.disp[y % DISPLAY_HEIGHT] ^= 1 << (x % DISPLAY_WIDTH)

    def framebuffer(self) -> list[int]:
        """Copy of the 32 row-words (bit x of word y = pixel (x, y))."""
        return list(self.disp)

    # -- Timers / input --

    def tick_timers(self):
        """Decrement both timers by one, stopping at zero.  Call at 60 Hz."""
        if self.dt > 0:
            self.dt -= 1
        if self.st > 0:
            self.st -= 1

    @property
    def sound_active(self) -> bool:
        return self.st > 0

    def set_keys(self, pressed: Iterable[bool]):
        """Replace the whole key matrix from 16 booleans (index = hex key)."""
        pressed = [bool(p) for p in pressed]
        if len(pressed) != NUM_KEYS:
            raise ValueError(f"expected {NUM_KEYS} key states, got {len(pressed)}")
        self.keys = pressed

    # -- Fetch --

    def fetch(self) -> int:
        """Read the opcode at PC and advance PC by 2."""
        op = (self.mem_read8(self.pc) << 8) | self.mem_read8(self.pc + 1)
        self.pc = u16(self.pc + 2)
        return op

    def _skip(self, cond: bool):
        if cond:
            self.pc = u16(self.pc + 2)

    # =====================================================================
    #  STEP: fetch / decode / execute
    # =====================================================================

    def step(self) -> int:
        """Execute one instruction.  Returns the opcode that was executed."""
        addr = self.pc
        op = self.fetch()
        f, x, y, n = nibbles(op)

        if self.trace is not None:
            text = mnemonic(op)
            if text is not None:
                self.trace(addr, op, text)

        if   f == 0x0: self._exec_sys(op)
        elif f == 0x1: self.pc = op & 0xFFF                       # JP nnn
        elif f == 0x2: self._exec_call(op & 0xFFF)
        elif f == 0x3: self._skip(self.v[x] == op & 0xFF)          # SE Vx, nn
        elif f == 0x4: self._skip(self.v[x] != op & 0xFF)          # SNE Vx, nn
        elif f == 0x5:
            if n == 0:                                             # SE Vx, Vy
                self._skip(self.v[x] == self.v[y])
        elif f == 0x6: self.v[x] = op & 0xFF                       # LD Vx, nn
        elif f == 0x7: self.v[x] = u8(self.v[x] + (op & 0xFF))     # ADD Vx, nn
        elif f == 0x8: self._exec_alu(x, y, n)
        elif f == 0x9:
            if n == 0:                                             # SNE Vx, Vy
                self._skip(self.v[x] != self.v[y])
        elif f == 0xA: self.i = op & 0xFFF                         # LD I, nnn
        elif f == 0xB: self.pc = u16(self.v[0] + (op & 0xFFF))     # JP V0, nnn
        elif f == 0xC: self.v[x] = u8(self.rng()) & (op & 0xFF)    # RND Vx, nn
        elif f == 0xD: self._exec_draw(x, y, n)
        elif f == 0xE: self._exec_key(x, op & 0xFF)
        elif f == 0xF: self._exec_misc(x, op & 0xFF)

        return op

    def run(self, max_steps: int = 1_000_000) -> int:
        """Execute exactly max_steps instructions and return max_steps.

        A core fault stops the loop early by raising out of step().
        """
        for _ in range(max_steps):
            self.step()
        return max_steps

    # =====================================================================
    #  Family executors
    # =====================================================================

    # -- 0x0: CLS / RET (0NNN machine calls are ignored) --
    def _exec_sys(self, op: int):
        if op == 0x00E0:
            self.disp = [0] * DISPLAY_HEIGHT
        elif op == 0x00EE:
            if self.sp == 0:
                self.pc = u16(self.pc - 2)
                raise StackUnderflowError(self.pc)
            self.sp -= 1
            self.pc = self.stack[self.sp]

    # -- 0x2: CALL nnn --
    def _exec_call(self, target: int):
        if self.sp >= STACK_DEPTH:
            self.pc = u16(self.pc - 2)
            raise StackOverflowError(self.pc)
        self.stack[self.sp] = self.pc
        self.sp += 1
        self.pc = target

    # -- 0x8: register/register ALU --
    def _exec_alu(self, x: int, y: int, n: int):
        v = self.v
        if n == 0x0:    # LD Vx, Vy
            v[x] = v[y]
        elif n == 0x1:  # OR
            v[x] |= v[y]
        elif n == 0x2:  # AND
            v[x] &= v[y]
        elif n == 0x3:  # XOR
            v[x] ^= v[y]
        elif n == 0x4:  # ADD Vx, Vy (VF = carry)
            total = v[x] + v[y]
            v[x] = u8(total)
            v[0xF] = 1 if total > MASK8 else 0
        elif n == 0x5:  # SUB Vx, Vy (VF = not borrow)
            flag = 1 if v[x] > v[y] else 0
            v[x] = u8(v[x] - v[y])
            v[0xF] = flag
        elif n == 0x6:  # SHR: Vx = Vy >> 1, VF = bit shifted out of Vy
            src = v[y]
            v[x] = src >> 1
            v[0xF] = src & 1
        elif n == 0x7:  # SUBN: Vx = Vy - Vx
            flag = 1 if v[y] > v[x] else 0
            v[x] = u8(v[y] - v[x])
            v[0xF] = flag
        elif n == 0xE:  # SHL: Vx = Vy << 1, VF = bit shifted out of Vy
            src = v[y]
            v[x] = u8(src << 1)
            v[0xF] = src >> 7

    # -- 0xD: DRW Vx, Vy, n --
    def _exec_draw(self, x: int, y: int, height: int):
        self.v[0xF] = 0
        x0 = self.v[x] % DISPLAY_WIDTH
        y0 = self.v[y] % DISPLAY_HEIGHT
        for row in range(height):
            bits = self.mem_read8(self.i + row)
            for col in range(8):
                if x0 + col >= DISPLAY_WIDTH:
                    break  # clipped at the right edge, no horizontal wrap
                if bits & (0x80 >> col):
                    if self.get_px(x0 + col, y0 + row):
                        self.v[0xF] = 1
                    self._toggle_px(x0 + col, y0 + row)

    # -- 0xE: key skips --
    def _exec_key(self, x: int, nn: int):
        down = self.keys[self.v[x] & 0xF]
        if nn == 0x9E:    # SKP Vx
            self._skip(down)
        elif nn == 0xA1:  # SKNP Vx
            self._skip(not down)

    # -- 0xF: timers, key wait, index and memory block ops --
    def _exec_misc(self, x: int, nn: int):
        if nn == 0x07:    # LD Vx, DT
            self.v[x] = self.dt
        elif nn == 0x0A:  # LD Vx, K; re-executes until a key is down
            for k in range(NUM_KEYS):
                if self.keys[k]:
                    self.v[x] = k
                    return
            self.pc = u16(self.pc - 2)
        elif nn == 0x15:  # LD DT, Vx
            self.dt = self.v[x]
        elif nn == 0x18:  # LD ST, Vx
            self.st = self.v[x]
        elif nn == 0x1E:  # ADD I, Vx (VF untouched)
            self.i = u16(self.i + self.v[x])
        elif nn == 0x29:  # LD F, Vx
            self.i = FONT_START + FONT_GLYPH_SIZE * (self.v[x] & 0xF)
        elif nn == 0x33:  # LD B, Vx
            val = self.v[x]
            self.mem_write8(self.i,     val // 100)
            self.mem_write8(self.i + 1, (val // 10) % 10)
            self.mem_write8(self.i + 2, val % 10)
        elif nn == 0x55:  # LD [I], Vx; I is not advanced
            for r in range(x + 1):
                self.mem_write8(self.i + r, self.v[r])
        elif nn == 0x65:  # LD Vx, [I]; I is not advanced
            for r in range(x + 1):
                self.v[r] = self.mem_read8(self.i + r)

    # -- Debug / introspection --

    def dump_regs(self) -> str:
        lines = []
        for row in range(0, NUM_REGS, 4):
            lines.append("  " + "  ".join(
                f"V{r:X}={self.v[r]:#04x}" for r in range(row, row + 4)))
        lines.append(f"  I={self.i:#06x}  PC={self.pc:#06x}  SP={self.sp}  "
                     f"DT={self.dt}  ST={self.st}")
        frames = " ".join(f"{a:#06x}" for a in self.stack[:self.sp])
        lines.append(f"  stack: [{frames}]")
        return "\n".join(lines)
