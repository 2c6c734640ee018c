"""OpcodeRegistry: the ARMLite-CPU execution engine.

Each supported mnemonic maps to a handler that reads its operands through an
OperandResolver, computes a result, writes it back and optionally redirects
control flow. The table is frozen after construction.

Opcode families:
    Arithmetic: add, sub, subs, mul, sdiv, udiv
    Bitwise:    neg, lsl, lsr, and, orr, eor
    Move:       mov
    Load/store: ldr, ldrb, str, strb
    Compare:    cmp
    Branch:     b, bl, beq, bne, blt, bgt, ble, bge
    Other:      clz, ret, nop

Handlers have the signature (resolver, instruction) -> Optional[int]. A
returned int is the next pc; None means fall through to pc + 4. Handlers
that write pc through an operand (e.g. "mov pc, x1") return the value written.

All register values are treated as unsigned 64-bit quantities.
"""

import logging
from typing import Callable, Dict, Optional

from .errors import OperandError, UnknownOpcodeError
from .instruction import (
    INSTRUCTION_SIZE, LINK_REGISTER, MASK64, Instruction, Operand, Register, RegisterWidth,
)
from .resolver import OperandResolver
from .state import Condition, MachineState

logger = logging.getLogger(__name__)

Handler = Callable[[OperandResolver, Instruction], Optional[int]]


def _binary_ops() -> Dict[str, Callable[[int, int], int]]:
    def divide(a: int, b: int) -> int:
        return a // b if b else 0

    def shift_left(a: int, b: int) -> int:
        return a << b if b < 64 else 0

    def shift_right(a: int, b: int) -> int:
        return a >> b if b < 64 else 0

    return {
        "add": lambda a, b: a + b,
        "sub": lambda a, b: a - b,
        "subs": lambda a, b: a - b,
        "mul": lambda a, b: a * b,
        "sdiv": divide,
        "udiv": divide,
        "lsl": shift_left,
        "lsr": shift_right,
        "and": lambda a, b: a & b,
        "orr": lambda a, b: a | b,
        "eor": lambda a, b: a ^ b,
    }


BINARY_OPS = _binary_ops()

# Branch mnemonic -> predicate on the current condition
BRANCH_CONDITIONS: Dict[str, Callable[[Condition], bool]] = {
    "b": lambda c: True,
    "bl": lambda c: True,
    "beq": lambda c: c is Condition.EQUAL,
    "bne": lambda c: c is not Condition.EQUAL,
    "blt": lambda c: c is Condition.LESS,
    "bgt": lambda c: c is Condition.GREATER,
    "ble": lambda c: c in (Condition.EQUAL, Condition.LESS),
    "bge": lambda c: c in (Condition.EQUAL, Condition.GREATER),
}


class OpcodeRegistry:
    """Frozen table of opcode handlers.

    Attributes:
        _handlers: Dictionary mapping mnemonics to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all supported opcodes."""
        self._handlers: Dict[str, Handler] = {}
        self._frozen = False
        self._register_all_handlers()
        self.freeze()

    def _register_all_handlers(self) -> None:
        """Register all opcode handlers."""
        # Arithmetic and two-operand bitwise
        for mnemonic in BINARY_OPS:
            self.register(mnemonic, self._op_binary)
        self.register("neg", self._op_neg)

        # Data movement
        self.register("mov", self._op_mov)
        self.register("ldr", self._op_ldr)
        self.register("ldrb", self._op_ldrb)
        self.register("str", self._op_str)
        self.register("strb", self._op_strb)

        # Comparison and control flow
        self.register("cmp", self._op_cmp)
        for mnemonic in BRANCH_CONDITIONS:
            self.register(mnemonic, self._op_branch)
        self.register("ret", self._op_ret)

        # Special
        self.register("clz", self._op_clz)
        self.register("nop", self._op_nop)

    def register(self, key: str, handler: Handler) -> None:
        """Register an opcode handler.

        Args:
            key: Lowercase mnemonic (e.g., "add")
            handler: Function taking (resolver, instruction)

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register handlers: registry is frozen")
        if key in self._handlers:
            raise ValueError(f"Handler already registered: {key}")
        self._handlers[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all supported mnemonics."""
        return set(self._handlers.keys())

    def execute(self, state: MachineState, instruction: Instruction) -> None:
        """Execute one instruction against state.

        Args:
            state: Machine state, mutated in place
            instruction: Decoded instruction

        Raises:
            UnknownOpcodeError: If the opcode has no handler (state unchanged)
            MachineError: Any error raised while resolving operands
        """
        handler = self._handlers.get(instruction.opcode)
        if handler is None:
            logger.error("!!Instruction not implemented!! %s", instruction)
            raise UnknownOpcodeError(instruction.opcode)

        pc = state.pc
        logger.debug("0x%X: %s", pc, instruction)
        next_pc = handler(OperandResolver(state), instruction)
        if next_pc is None:
            next_pc = pc + INSTRUCTION_SIZE
        state.pc = next_pc & MASK64

        state.cycle_count += 1

    # =========================================================================
    # Arithmetic / Bitwise
    # =========================================================================

    def _op_binary(self, resolver: OperandResolver, instruction: Instruction) -> Optional[int]:
        """OP Rd, Rn, Rm|#imm - Rd = Rn <op> Rm."""
        dest, src1, src2 = self._operands(instruction, 3)
        op = BINARY_OPS[instruction.opcode]
        result = op(self._value(resolver, src1), self._value(resolver, src2))
        return self._write(resolver, dest, result & MASK64)

    def _op_neg(self, resolver: OperandResolver, instruction: Instruction) -> Optional[int]:
        """NEG Rd, Rn - two's complement negation."""
        dest, src = self._operands(instruction, 2)
        return self._write(resolver, dest, -self._value(resolver, src) & MASK64)

    # =========================================================================
    # Data Movement
    # =========================================================================

    def _op_mov(self, resolver: OperandResolver, instruction: Instruction) -> Optional[int]:
        """MOV Rd, Rn|#imm."""
        dest, src = self._operands(instruction, 2)
        return self._write(resolver, dest, self._value(resolver, src))

    def _op_ldr(self, resolver: OperandResolver, instruction: Instruction) -> Optional[int]:
        """LDR Rt, [Rn, #off] - 4 bytes into a w register, 8 otherwise."""
        dest, mem = self._operands(instruction, 2)
        address = resolver.effective_address(mem)
        size = self._access_size(dest)
        return self._write(resolver, dest, resolver.state.stack.read(address, size))

    def _op_ldrb(self, resolver: OperandResolver, instruction: Instruction) -> Optional[int]:
        """LDRB Wt, [Rn, #off] - one zero-extended byte."""
        dest, mem = self._operands(instruction, 2)
        address = resolver.effective_address(mem)
        return self._write(resolver, dest, resolver.state.stack.read(address, 1))

    def _op_str(self, resolver: OperandResolver, instruction: Instruction) -> None:
        """STR Rt, [Rn, #off] - 4 bytes from a w register, 8 otherwise."""
        src, mem = self._operands(instruction, 2)
        address = resolver.effective_address(mem)
        size = self._access_size(src)
        resolver.state.stack.write(address, resolver.resolve(src), size)

    def _op_strb(self, resolver: OperandResolver, instruction: Instruction) -> None:
        """STRB Wt, [Rn, #off] - low byte of Wt."""
        src, mem = self._operands(instruction, 2)
        address = resolver.effective_address(mem)
        resolver.state.stack.write(address, resolver.resolve(src), 1)

    # =========================================================================
    # Comparison / Control Flow
    # =========================================================================

    def _op_cmp(self, resolver: OperandResolver, instruction: Instruction) -> None:
        """CMP Rn, Rm|#imm - set the condition from an unsigned comparison."""
        src1, src2 = self._operands(instruction, 2)
        a = self._value(resolver, src1)
        b = self._value(resolver, src2)
        if a == b:
            resolver.state.condition = Condition.EQUAL
        elif a < b:
            resolver.state.condition = Condition.LESS
        else:
            resolver.state.condition = Condition.GREATER

    def _op_branch(self, resolver: OperandResolver, instruction: Instruction) -> Optional[int]:
        """B{cond} target / BL target.

        BL stores the return address (pc + 4) in x30 before jumping.
        """
        (target_op,) = self._operands(instruction, 1)
        target = self._value(resolver, target_op)
        state = resolver.state

        if instruction.opcode == "bl":
            state.set_register(LINK_REGISTER, state.pc + INSTRUCTION_SIZE)

        if BRANCH_CONDITIONS[instruction.opcode](state.condition):
            return target
        return None

    def _op_ret(self, resolver: OperandResolver, instruction: Instruction) -> int:
        """RET - jump to the address in x30."""
        return resolver.state.link

    # =========================================================================
    # Special
    # =========================================================================

    def _op_clz(self, resolver: OperandResolver, instruction: Instruction) -> Optional[int]:
        """CLZ Rd, Rn - count leading zero bits at the width of Rd."""
        dest, src = self._operands(instruction, 2)
        bits = dest.width.bits if isinstance(dest, Register) else 64
        value = self._value(resolver, src) & ((1 << bits) - 1)
        return self._write(resolver, dest, bits - value.bit_length())

    def _op_nop(self, resolver: OperandResolver, instruction: Instruction) -> None:
        """NOP - No operation."""
        return None

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _operands(self, instruction: Instruction, count: int) -> tuple:
        """Return the first count operands, or raise if there are fewer."""
        if len(instruction.operands) < count:
            raise OperandError(
                f"{instruction.opcode} expects {count} operands, "
                f"got {len(instruction.operands)}"
            )
        return instruction.operands[:count]

    def _write(self, resolver: OperandResolver, dest: Operand, value: int) -> Optional[int]:
        """Write a destination; return the new pc if the destination is pc."""
        resolver.write(dest, value)
        if isinstance(dest, Register) and dest.width is RegisterWidth.PC:
            return resolver.state.pc
        return None

    def _value(self, resolver: OperandResolver, operand: Operand) -> int:
        """Resolve an operand as an unsigned 64-bit value."""
        return resolver.resolve(operand) & MASK64

    def _access_size(self, register: Operand) -> int:
        """Bytes moved by ldr/str for a given register view."""
        if isinstance(register, Register) and register.width is RegisterWidth.W:
            return 4
        return 8


# Singleton registry instance (stateless handler table)
_registry: Optional[OpcodeRegistry] = None


def get_registry() -> OpcodeRegistry:
    """Get the shared opcode registry.

    Returns:
        The frozen OpcodeRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = OpcodeRegistry()
    return _registry
