"""Exception hierarchy for ARMLite-CPU.

Every failure raised by operand resolution, stack access, fetch or an opcode
handler derives from MachineError, so a caller (the CPU driver or a test) can
decide per error kind whether to abort the run or record it and continue.

Kinds:
    Fatal (contract violations, a bug in the decoder or engine):
        OperandError, StackBoundsError, FetchError
    Recoverable (the simulation may keep going):
        InvalidRegisterError, UnknownOpcodeError
    Loading:
        LoaderError
"""


class MachineError(Exception):
    """Base class for all simulator errors."""


class RecoverableError(MachineError):
    """An error the driver may log and step over in lenient mode."""


class OperandError(MachineError):
    """Operand accessed through the wrong path for its tag."""


class StackBoundsError(MachineError):
    """Simulated address is not covered by the stack buffer."""

    def __init__(self, address: int, size: int, stack_top: int, stack_bot: int):
        self.address = address
        self.size = size
        self.stack_top = stack_top
        self.stack_bot = stack_bot
        super().__init__(
            f"Address 0x{address:X} (+{size}) outside stack "
            f"[0x{stack_top:X}, 0x{stack_bot:X}]"
        )


class FetchError(MachineError):
    """Program counter does not point at an instruction slot."""


class InvalidRegisterError(RecoverableError):
    """Register width tag or index is not valid."""


class UnknownOpcodeError(RecoverableError):
    """Opcode has no handler in the registry."""

    def __init__(self, opcode: str):
        self.opcode = opcode
        super().__init__(f"Instruction not implemented: {opcode}")


class LoaderError(MachineError):
    """Assembly text could not be decoded into an instruction."""
