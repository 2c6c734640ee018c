"""Decoded instruction and operand shapes.

These are the static structures the loader produces and the execution engine
consumes. They carry no behaviour beyond validation and display.

Operands:
    Immediate(value)            literal constant or absolute branch target
    Register(width, index)      w/x general register, or sp/pc
    Memory(base, offset)        [base, #offset], effective address = base + offset
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple, Union

from .errors import InvalidRegisterError

WORD_SIZE_BYTES = 8
INSTRUCTION_SIZE = 4
NUM_REGISTERS = 31
LINK_REGISTER = 30

MASK32 = (1 << 32) - 1
MASK64 = (1 << 64) - 1


class RegisterWidth(Enum):
    """Register view selected by an operand."""
    W = "w"    # low 32 bits of a general register
    X = "x"    # full 64-bit general register
    SP = "sp"
    PC = "pc"

    @property
    def is_general(self) -> bool:
        return self in (RegisterWidth.W, RegisterWidth.X)

    @property
    def bits(self) -> int:
        return 32 if self is RegisterWidth.W else 64


@dataclass(frozen=True)
class Immediate:
    value: int

    def __str__(self) -> str:
        return f"#{self.value}"


@dataclass(frozen=True)
class Register:
    """Register operand.

    Attributes:
        width: Which view of the register file to use
        index: General register number (0-30); ignored for sp/pc
    """
    width: RegisterWidth
    index: int = 0

    def __post_init__(self):
        if isinstance(self.width, RegisterWidth) and self.width.is_general:
            if not 0 <= self.index < NUM_REGISTERS:
                raise InvalidRegisterError(
                    f"Register index out of range: {self.index}"
                )

    def __str__(self) -> str:
        if self.width.is_general:
            return f"{self.width.value}{self.index}"
        return self.width.value


@dataclass(frozen=True)
class Memory:
    base: Register
    offset: int = 0

    def __str__(self) -> str:
        if self.offset:
            return f"[{self.base}, #{self.offset}]"
        return f"[{self.base}]"


Operand = Union[Immediate, Register, Memory]


def w(index: int) -> Register:
    """Shorthand for a 32-bit register operand."""
    return Register(RegisterWidth.W, index)


def x(index: int) -> Register:
    """Shorthand for a 64-bit register operand."""
    return Register(RegisterWidth.X, index)


SP = Register(RegisterWidth.SP)
PC = Register(RegisterWidth.PC)


@dataclass(frozen=True)
class Instruction:
    """One decoded instruction.

    Attributes:
        opcode: Lowercase mnemonic (e.g. "add"). Unknown mnemonics are
            allowed here; the execution engine decides how to treat them.
        operands: Zero to three operands, destination first
        source: Original assembly text, if any
    """
    opcode: str
    operands: Tuple[Operand, ...] = ()
    source: str = field(default="", compare=False)

    def __post_init__(self):
        object.__setattr__(self, "opcode", self.opcode.lower())
        object.__setattr__(self, "operands", tuple(self.operands))
        if len(self.operands) > 3:
            raise ValueError(f"Too many operands for {self.opcode}: {len(self.operands)}")

    def __str__(self) -> str:
        if self.source:
            return self.source
        if not self.operands:
            return self.opcode
        return f"{self.opcode} " + ", ".join(str(op) for op in self.operands)


@dataclass(frozen=True)
class Program:
    """Immutable code segment.

    Each instruction occupies a fixed 4-byte slot starting at code_top;
    code_bot is the last byte of the final slot.
    """
    instructions: Tuple[Instruction, ...]
    code_top: int = 0x1000
    labels: Tuple[Tuple[str, int], ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "instructions", tuple(self.instructions))
        if self.code_top % INSTRUCTION_SIZE != 0:
            raise ValueError(f"Code base 0x{self.code_top:X} is not 4-byte aligned")

    @property
    def code_bot(self) -> int:
        return self.code_top + INSTRUCTION_SIZE * len(self.instructions) - 1

    def __len__(self) -> int:
        return len(self.instructions)

    def address_of(self, index: int) -> int:
        return self.code_top + INSTRUCTION_SIZE * index

    def contains(self, address: int) -> bool:
        return self.code_top <= address <= self.code_bot
