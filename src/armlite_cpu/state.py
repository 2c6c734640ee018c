"""MachineState: mutable machine state for one ARMLite-CPU run.

State Components:
    - Registers: x0-x30 (31 general-purpose 64-bit registers, x30 = link)
    - SP / PC: stack pointer and program counter
    - Condition: outcome of the most recent CMP
    - Stack: dynamically growable simulated stack memory
    - Code: immutable decoded program
    - Halted / cycle count: driver bookkeeping

A register that has never been written holds None. That marker is only used
for display; execution reads it as zero.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from .instruction import LINK_REGISTER, MASK64, NUM_REGISTERS, Program
from .memory import DEFAULT_MAX_STACK_SIZE, StackMemory


DEFAULT_SP = 0x7FFF_FFF0


class Condition(Enum):
    """Result of the most recent comparison. Exactly one holds at a time."""
    NONE = "none"
    EQUAL = "eq"
    LESS = "lt"
    GREATER = "gt"

    @property
    def label(self) -> str:
        return {
            Condition.NONE: "",
            Condition.EQUAL: "Z",
            Condition.LESS: "N",
            Condition.GREATER: "P",
        }[self]


def _empty_registers() -> Dict[int, Optional[int]]:
    return {i: None for i in range(NUM_REGISTERS)}


@dataclass
class MachineState:
    """Machine state for a single simulation run.

    Attributes:
        registers: Register index (0-30) to value, or None if never written
        sp: Stack pointer
        pc: Program counter
        condition: Current comparison result
        stack: Simulated stack memory
        code: Loaded program
        halted: Whether the driver has stopped this run
        cycle_count: Number of executed instructions
    """
    registers: Dict[int, Optional[int]] = field(default_factory=_empty_registers)
    sp: int = DEFAULT_SP
    pc: int = 0
    condition: Condition = Condition.NONE
    stack: Optional[StackMemory] = None
    code: Program = field(default_factory=lambda: Program(()))
    halted: bool = False
    cycle_count: int = 0

    def __post_init__(self):
        if self.stack is None:
            self.stack = StackMemory(self.sp)

    def get_register(self, index: int) -> int:
        """Get the 64-bit value of a general register (unset reads as 0).

        Raises:
            KeyError: If the register doesn't exist
        """
        if index not in self.registers:
            raise KeyError(f"Invalid register: x{index}")
        value = self.registers[index]
        return 0 if value is None else value

    def set_register(self, index: int, value: int) -> None:
        """Store a 64-bit value (wrapped modulo 2**64) in a general register."""
        if index not in self.registers:
            raise KeyError(f"Invalid register: x{index}")
        self.registers[index] = value & MASK64

    def is_set(self, index: int) -> bool:
        return self.registers.get(index) is not None

    @property
    def link(self) -> int:
        return self.get_register(LINK_REGISTER)

    def dump_registers(self) -> Dict[str, int]:
        """Get the values of every register that has been written.

        Returns:
            Dictionary of register names (x0..x30) to values
        """
        return {f"x{i}": v for i, v in self.registers.items() if v is not None}

    def snapshot(self) -> dict:
        """Create a copy of the current state for tracing.

        Returns:
            Dictionary of registers, sp, pc, condition and stack bounds
        """
        return {
            "registers": dict(self.registers),
            "sp": self.sp,
            "pc": self.pc,
            "condition": self.condition,
            "stack_top": self.stack.stack_top,
            "stack_bot": self.stack.stack_bot,
            "halted": self.halted,
            "cycle_count": self.cycle_count,
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Exactly registers 0-30 exist, each None or a 64-bit unsigned int
            - SP and PC are 64-bit unsigned
            - Stack bounds are word aligned and match the buffer length
        """
        if set(self.registers.keys()) != set(range(NUM_REGISTERS)):
            return False
        for value in self.registers.values():
            if value is not None and not 0 <= value <= MASK64:
                return False

        if not 0 <= self.sp <= MASK64 or not 0 <= self.pc <= MASK64:
            return False

        stack = self.stack
        if stack.stack_top % 8 or stack.stack_bot % 8:
            return False
        if stack.stack_top > stack.stack_bot:
            return False
        if len(stack) != stack.stack_bot - stack.stack_top + 1:
            return False

        return self.cycle_count >= 0

    def __str__(self) -> str:
        regs = " ".join(f"{k}=0x{v:X}" for k, v in self.dump_registers().items())
        return (
            f"[Cycle {self.cycle_count}] PC=0x{self.pc:X} SP=0x{self.sp:X} "
            f"{regs} COND={self.condition.name}{' HALTED' if self.halted else ''}"
        )


def create_initial_state(program: Program, sp: int = DEFAULT_SP, pc: Optional[int] = None,
                         max_stack_size: int = DEFAULT_MAX_STACK_SIZE) -> MachineState:
    """Create initial machine state with a loaded program.

    Args:
        program: Decoded program
        sp: Initial stack pointer
        pc: Initial program counter (defaults to the program's code_top)
        max_stack_size: Limit on stack growth, in bytes

    Returns:
        Fresh MachineState: registers unset, no condition, one-word stack at sp
    """
    return MachineState(
        registers=_empty_registers(),
        sp=sp,
        pc=program.code_top if pc is None else pc,
        condition=Condition.NONE,
        stack=StackMemory(sp, max_stack_size),
        code=program,
    )
