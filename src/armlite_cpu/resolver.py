"""OperandResolver: operand reads and writes against a MachineState.

Resolution is independent of the opcode that asks for it:

    Immediate          -> literal value
    Register(x, i)     -> full 64-bit register i
    Register(w, i)     -> low 32 bits of register i, zero-extended
    Register(sp | pc)  -> current sp / pc
    Memory(base, off)  -> only valid through effective_address()

Writing a 32-bit view clears the upper 32 bits of the underlying register.
"""

import logging

from .errors import InvalidRegisterError, OperandError
from .instruction import MASK32, MASK64, Immediate, Memory, Operand, Register, RegisterWidth
from .state import MachineState

logger = logging.getLogger(__name__)


class OperandResolver:
    """Reads and writes operands of a single machine.

    Attributes:
        state: Machine state the operands refer to
    """

    def __init__(self, state: MachineState):
        self.state = state

    def resolve(self, operand: Operand) -> int:
        """Get the value of an immediate or register operand.

        Raises:
            OperandError: If operand is a memory reference or not an operand
            InvalidRegisterError: If the register width tag is unknown
        """
        if isinstance(operand, Immediate):
            return operand.value
        if not isinstance(operand, Register):
            raise OperandError(f"Cannot resolve {operand!r} as a value")

        width = operand.width
        if width is RegisterWidth.X:
            return self.state.get_register(operand.index)
        if width is RegisterWidth.W:
            return self.state.get_register(operand.index) & MASK32
        if width is RegisterWidth.SP:
            return self.state.sp
        if width is RegisterWidth.PC:
            return self.state.pc
        logger.error("Invalid register type: %r", width)
        raise InvalidRegisterError(f"Invalid register type: {width!r}")

    def write(self, operand: Operand, value: int) -> None:
        """Store value through a register operand.

        Raises:
            OperandError: If operand is not a register
            InvalidRegisterError: If the register width tag is unknown
        """
        if not isinstance(operand, Register):
            raise OperandError(f"Cannot write to {operand!r}")

        width = operand.width
        if width is RegisterWidth.W:
            self.state.set_register(operand.index, value & MASK32)
        elif width is RegisterWidth.X:
            self.state.set_register(operand.index, value & MASK64)
        elif width is RegisterWidth.SP:
            self.state.sp = value & MASK64
        elif width is RegisterWidth.PC:
            self.state.pc = value & MASK64
        else:
            logger.error("Invalid operand register type: %r", width)
            raise InvalidRegisterError(f"Invalid register type: {width!r}")

    def effective_address(self, operand: Operand) -> int:
        """Compute base register value + offset for a memory operand.

        Raises:
            OperandError: If operand is not a memory reference
        """
        if not isinstance(operand, Memory):
            raise OperandError(f"Not a memory operand: {operand!r}")
        return (self.resolve(operand.base) + operand.offset) & MASK64
