"""ARMLite-CPU: teaching interpreter for a load/store register machine.

This package executes a pre-decoded ARMv8-style instruction sequence against a
simulated CPU so that register, flag and stack state can be observed
instruction by instruction.

Architecture:
    PROGRAM -> FETCH -> INSTRUCTION -> REGISTRY -> EXECUTE -> STATE
       |         |           |            |           |
   [loader]  [pc-based]  [operands]   [handlers]  [registers, sp, pc,
                                                   condition, stack]

Modules:
    instruction: Decoded instruction and operand shapes
    memory: Growable simulated stack memory
    state: MachineState dataclass for one run
    resolver: Operand reads/writes and effective addresses
    registry: Opcode handlers (the execution engine)
    loader: Assembly text to decoded program
    dump: Diagnostic state rendering
    cpu: Main ARMLiteCPU driver
"""

__version__ = "0.1.0"
__author__ = "ARMLite Project"

from .errors import MachineError
from .instruction import Immediate, Instruction, Memory, Program, Register, RegisterWidth
from .memory import StackMemory
from .state import Condition, MachineState
from .resolver import OperandResolver
from .registry import OpcodeRegistry
from .loader import assemble
from .cpu import ARMLiteCPU

__all__ = [
    "ARMLiteCPU",
    "Condition",
    "Immediate",
    "Instruction",
    "MachineError",
    "MachineState",
    "Memory",
    "OpcodeRegistry",
    "OperandResolver",
    "Program",
    "Register",
    "RegisterWidth",
    "StackMemory",
    "assemble",
]
