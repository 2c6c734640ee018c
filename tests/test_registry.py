"""Tests for OpcodeRegistry opcode semantics."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from armlite_cpu.errors import OperandError, UnknownOpcodeError
from armlite_cpu.instruction import PC, SP, Immediate, Instruction, Memory, Program, w, x
from armlite_cpu.registry import OpcodeRegistry, get_registry
from armlite_cpu.state import Condition, create_initial_state

MASK64 = (1 << 64) - 1


@pytest.fixture
def state():
    return create_initial_state(Program((), code_top=0x1000), sp=0x8000)


def execute(state, opcode, *operands):
    get_registry().execute(state, Instruction(opcode, operands))
    return state


class TestRegistryStructure:
    """Test registry construction."""

    def test_frozen(self):
        registry = OpcodeRegistry()
        assert registry.is_frozen() is True
        with pytest.raises(RuntimeError):
            registry.register("foo", lambda resolver, instruction: None)

    def test_valid_keys(self):
        keys = get_registry().get_valid_keys()
        expected = {
            "add", "sub", "subs", "mul", "sdiv", "udiv",
            "neg", "lsl", "lsr", "and", "orr", "eor",
            "mov", "ldr", "ldrb", "str", "strb", "cmp",
            "b", "bl", "beq", "bne", "blt", "bgt", "ble", "bge",
            "clz", "ret", "nop",
        }
        assert keys == expected

    def test_singleton(self):
        assert get_registry() is get_registry()


class TestArithmetic:
    """Test arithmetic opcodes."""

    def test_add(self, state):
        execute(state, "add", x(0), Immediate(2), Immediate(3))
        assert state.get_register(0) == 5

    def test_add_registers(self, state):
        state.set_register(1, 40)
        state.set_register(2, 2)
        execute(state, "add", x(0), x(1), x(2))
        assert state.get_register(0) == 42

    def test_mul(self, state):
        execute(state, "mul", x(0), Immediate(6), Immediate(7))
        assert state.get_register(0) == 42

    def test_sub_wraps(self, state):
        execute(state, "sub", x(0), Immediate(3), Immediate(5))
        assert state.get_register(0) == MASK64 - 1

    def test_sub_w_destination(self, state):
        execute(state, "sub", w(0), Immediate(3), Immediate(5))
        assert state.get_register(0) == 0xFFFFFFFE

    def test_subs_matches_sub(self, state):
        execute(state, "subs", x(0), Immediate(10), Immediate(4))
        assert state.get_register(0) == 6

    def test_add_overflow_wraps(self, state):
        state.set_register(1, MASK64)
        execute(state, "add", x(0), x(1), Immediate(1))
        assert state.get_register(0) == 0

    def test_udiv(self, state):
        execute(state, "udiv", x(0), Immediate(42), Immediate(5))
        assert state.get_register(0) == 8

    def test_sdiv_is_unsigned(self, state):
        """Both divisions treat operands as unsigned 64-bit values."""
        state.set_register(1, MASK64 - 7)  # -8
        execute(state, "sdiv", x(0), x(1), Immediate(2))
        assert state.get_register(0) == (MASK64 - 7) // 2

    def test_divide_by_zero(self, state):
        execute(state, "udiv", x(0), Immediate(42), Immediate(0))
        assert state.get_register(0) == 0


class TestBitwise:
    """Test bitwise opcodes."""

    def test_neg(self, state):
        execute(state, "neg", x(0), Immediate(1))
        assert state.get_register(0) == MASK64

    def test_neg_w(self, state):
        execute(state, "neg", w(0), Immediate(1))
        assert state.get_register(0) == 0xFFFFFFFF

    def test_lsl(self, state):
        execute(state, "lsl", x(0), Immediate(1), Immediate(4))
        assert state.get_register(0) == 16

    def test_lsl_drops_high_bits(self, state):
        execute(state, "lsl", x(0), Immediate(0x8000000000000001), Immediate(1))
        assert state.get_register(0) == 2

    def test_lsl_by_64(self, state):
        execute(state, "lsl", x(0), Immediate(1), Immediate(64))
        assert state.get_register(0) == 0

    def test_lsr(self, state):
        execute(state, "lsr", x(0), Immediate(0xF0), Immediate(4))
        assert state.get_register(0) == 0xF

    def test_and_orr_eor(self, state):
        execute(state, "and", x(0), Immediate(0b1100), Immediate(0b1010))
        execute(state, "orr", x(1), Immediate(0b1100), Immediate(0b1010))
        execute(state, "eor", x(2), Immediate(0b1100), Immediate(0b1010))
        assert state.get_register(0) == 0b1000
        assert state.get_register(1) == 0b1110
        assert state.get_register(2) == 0b0110


class TestMove:
    """Test mov."""

    def test_mov_immediate(self, state):
        execute(state, "mov", x(0), Immediate(123))
        assert state.get_register(0) == 123

    def test_mov_negative_immediate(self, state):
        execute(state, "mov", x(0), Immediate(-1))
        assert state.get_register(0) == MASK64

    def test_mov_from_sp(self, state):
        execute(state, "mov", x(29), SP)
        assert state.get_register(29) == 0x8000

    def test_mov_to_sp(self, state):
        execute(state, "mov", SP, Immediate(0x7000))
        assert state.sp == 0x7000


class TestProgramCounter:
    """Test default pc advance and cycle counting."""

    def test_advances_by_four(self, state):
        execute(state, "nop")
        assert state.pc == 0x1004
        assert state.cycle_count == 1

    def test_nop_changes_nothing_else(self, state):
        before = state.snapshot()
        execute(state, "nop")
        after = state.snapshot()
        assert after["registers"] == before["registers"]
        assert after["condition"] is before["condition"]

    def test_write_to_pc_is_kept(self, state):
        execute(state, "mov", PC, Immediate(0x2000))
        assert state.pc == 0x2000

    def test_mov_pc_to_itself_does_not_advance(self, state):
        execute(state, "mov", PC, PC)
        assert state.pc == 0x1000
        assert state.cycle_count == 1

    def test_load_pc_with_current_address(self, state):
        state.stack.write(0x8000, 0x1000, 8)
        execute(state, "ldr", PC, Memory(SP))
        assert state.pc == 0x1000

    def test_arithmetic_into_pc(self, state):
        execute(state, "add", PC, PC, Immediate(0))
        assert state.pc == 0x1000
        execute(state, "add", PC, PC, Immediate(8))
        assert state.pc == 0x1008


class TestCompareAndBranch:
    """Test cmp and conditional branches."""

    def test_cmp_equal(self, state):
        execute(state, "cmp", Immediate(4), Immediate(4))
        assert state.condition is Condition.EQUAL

    def test_cmp_less(self, state):
        execute(state, "cmp", Immediate(3), Immediate(5))
        assert state.condition is Condition.LESS

    def test_cmp_greater(self, state):
        execute(state, "cmp", Immediate(5), Immediate(3))
        assert state.condition is Condition.GREATER

    def test_cmp_unsigned(self, state):
        """-1 compares as the largest unsigned value."""
        execute(state, "cmp", Immediate(-1), Immediate(1))
        assert state.condition is Condition.GREATER

    def test_equal_takes_beq_only(self, state):
        execute(state, "cmp", Immediate(7), Immediate(7))

        state.pc = 0x1000
        execute(state, "beq", Immediate(0x2000))
        assert state.pc == 0x2000

        for opcode in ("bgt", "blt", "bne"):
            state.pc = 0x1000
            execute(state, opcode, Immediate(0x2000))
            assert state.pc == 0x1004, opcode

    def test_less_takes_blt(self, state):
        execute(state, "cmp", Immediate(3), Immediate(5))
        state.pc = 0x1000
        execute(state, "blt", Immediate(0x2000))
        assert state.pc == 0x2000

    @pytest.mark.parametrize("condition,opcode,taken", [
        (Condition.EQUAL, "ble", True),
        (Condition.LESS, "ble", True),
        (Condition.GREATER, "ble", False),
        (Condition.EQUAL, "bge", True),
        (Condition.GREATER, "bge", True),
        (Condition.LESS, "bge", False),
        (Condition.NONE, "bne", True),
        (Condition.NONE, "beq", False),
    ])
    def test_condition_table(self, state, condition, opcode, taken):
        state.condition = condition
        execute(state, opcode, Immediate(0x3000))
        assert state.pc == (0x3000 if taken else 0x1004)

    def test_b_unconditional(self, state):
        execute(state, "b", Immediate(0x1010))
        assert state.pc == 0x1010

    def test_branch_to_self(self, state):
        execute(state, "b", Immediate(0x1000))
        assert state.pc == 0x1000

    def test_bl_and_ret(self, state):
        """bl saves pc + 4 in x30; ret jumps back to it."""
        execute(state, "bl", Immediate(0x2000))
        assert state.get_register(30) == 0x1004
        assert state.pc == 0x2000

        execute(state, "ret")
        assert state.pc == 0x1004

    def test_branch_through_register(self, state):
        state.set_register(5, 0x1100)
        execute(state, "b", x(5))
        assert state.pc == 0x1100


class TestCountLeadingZeros:
    """Test clz."""

    def test_clz_64(self, state):
        execute(state, "clz", x(0), Immediate(1))
        assert state.get_register(0) == 63

    def test_clz_32(self, state):
        execute(state, "clz", w(0), Immediate(1))
        assert state.get_register(0) == 31

    def test_clz_zero(self, state):
        execute(state, "clz", x(0), Immediate(0))
        assert state.get_register(0) == 64

    def test_clz_zero_32(self, state):
        execute(state, "clz", w(0), Immediate(0))
        assert state.get_register(0) == 32

    def test_clz_32_masks_source(self, state):
        state.set_register(1, 0x1_0000_0000)
        execute(state, "clz", w(0), x(1))
        assert state.get_register(0) == 32

    def test_clz_top_bit(self, state):
        execute(state, "clz", x(0), Immediate(1 << 63))
        assert state.get_register(0) == 0


class TestLoadStore:
    """Test ldr/str/ldrb/strb against the simulated stack."""

    def test_str_ldr_round_trip(self, state):
        state.set_register(1, 0x0123456789ABCDEF)
        execute(state, "str", x(1), Memory(SP, 8))
        execute(state, "ldr", x(2), Memory(SP, 8))
        assert state.get_register(2) == 0x0123456789ABCDEF

    def test_strb_ldrb_round_trip(self, state):
        state.set_register(1, 0x1234)
        execute(state, "strb", w(1), Memory(SP, -1))
        execute(state, "ldrb", w(2), Memory(SP, -1))
        assert state.get_register(2) == 0x34

    def test_str_w_writes_four_bytes(self, state):
        state.stack.write(0x8000, MASK64, 8)
        state.set_register(1, 0)
        execute(state, "str", w(1), Memory(SP))
        assert state.stack.read(0x8000, 8) == 0xFFFFFFFF00000000

    def test_ldr_w_reads_four_bytes(self, state):
        state.stack.write(0x8000, 0x1122334455667788, 8)
        execute(state, "ldr", w(0), Memory(SP))
        assert state.get_register(0) == 0x55667788

    def test_ldr_into_sp(self, state):
        state.stack.write(0x8000, 0x7000, 8)
        execute(state, "ldr", SP, Memory(SP))
        assert state.sp == 0x7000

    def test_store_grows_stack(self, state):
        """Accesses outside the current bounds grow the stack first."""
        state.set_register(1, 99)
        execute(state, "str", x(1), Memory(SP, -64))
        assert state.stack.stack_top == 0x8000 - 64
        execute(state, "ldr", x(2), Memory(SP, -64))
        assert state.get_register(2) == 99

    def test_load_uncovered_reads_zero(self, state):
        execute(state, "ldr", x(0), Memory(SP, 0x100))
        assert state.get_register(0) == 0
        assert state.stack.stack_bot > 0x8107

    def test_load_from_register_operand_rejected(self, state):
        with pytest.raises(OperandError):
            execute(state, "ldr", x(0), x(1))


class TestErrors:
    """Test error reporting from the engine."""

    def test_unknown_opcode(self, state):
        before = state.snapshot()
        with pytest.raises(UnknownOpcodeError) as exc_info:
            execute(state, "fmadd", x(0), x(1), x(2))
        assert exc_info.value.opcode == "fmadd"
        assert state.snapshot() == before

    def test_missing_operands(self, state):
        with pytest.raises(OperandError):
            execute(state, "add", x(0), x(1))

    def test_destination_must_be_register(self, state):
        with pytest.raises(OperandError):
            execute(state, "add", Immediate(0), Immediate(1), Immediate(2))
