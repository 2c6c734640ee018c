"""Tests for MachineState dataclass."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from armlite_cpu.instruction import Instruction, Program
from armlite_cpu.state import Condition, DEFAULT_SP, MachineState, create_initial_state


class TestMachineStateCreation:
    """Test MachineState initialization and defaults."""

    def test_default_state(self):
        """Default state has unset registers and no condition."""
        state = MachineState()
        assert state.sp == DEFAULT_SP
        assert state.cycle_count == 0
        assert state.halted is False
        assert state.condition is Condition.NONE
        assert len(state.registers) == 31
        assert all(value is None for value in state.registers.values())

    def test_create_initial_state(self):
        """create_initial_state loads program and places pc at code_top."""
        program = Program((Instruction("nop"), Instruction("ret")), code_top=0x2000)
        state = create_initial_state(program, sp=0x8000)
        assert state.code is program
        assert state.pc == 0x2000
        assert state.sp == 0x8000
        assert state.stack.stack_top == 0x8000
        assert state.stack.stack_bot == 0x8008

    def test_explicit_pc(self):
        program = Program((Instruction("nop"),) * 4, code_top=0x2000)
        state = create_initial_state(program, sp=0x8000, pc=0x2008)
        assert state.pc == 0x2008

    def test_runs_do_not_share_state(self):
        program = Program((Instruction("nop"),))
        first = create_initial_state(program)
        second = create_initial_state(program)
        first.set_register(0, 7)
        assert second.registers[0] is None
        assert first.stack is not second.stack


class TestMachineStateValidation:
    """Test state validation."""

    def test_valid_state(self):
        assert MachineState().validate() is True

    def test_register_out_of_range(self):
        state = MachineState()
        state.registers[0] = 1 << 64
        assert state.validate() is False

    def test_missing_register(self):
        state = MachineState()
        del state.registers[30]
        assert state.validate() is False

    def test_negative_pc(self):
        state = MachineState(pc=-4)
        assert state.validate() is False

    def test_valid_after_stack_growth(self):
        state = MachineState(sp=0x8000)
        state.stack.ensure_covers(0x7F13)
        state.stack.ensure_covers(0x8101)
        assert state.validate() is True


class TestMachineStateRegisters:
    """Test register accessors."""

    def test_unset_reads_as_zero(self):
        state = MachineState()
        assert state.get_register(5) == 0
        assert state.is_set(5) is False

    def test_zero_is_distinct_from_unset(self):
        state = MachineState()
        state.set_register(5, 0)
        assert state.is_set(5) is True
        assert state.registers[5] == 0

    def test_set_register_wraps(self):
        state = MachineState()
        state.set_register(1, -1)
        assert state.get_register(1) == 0xFFFFFFFFFFFFFFFF

    def test_invalid_register(self):
        state = MachineState()
        with pytest.raises(KeyError):
            state.get_register(31)
        with pytest.raises(KeyError):
            state.set_register(31, 0)

    def test_link_register(self):
        state = MachineState()
        state.set_register(30, 0x1234)
        assert state.link == 0x1234

    def test_dump_registers_only_written(self):
        state = MachineState()
        state.set_register(0, 1)
        state.set_register(7, 0)
        assert state.dump_registers() == {"x0": 1, "x7": 0}


class TestMachineStateSnapshot:
    """Test state snapshot for tracing."""

    def test_snapshot_is_copy(self):
        state = MachineState(pc=0x1000)
        state.set_register(0, 42)
        snapshot = state.snapshot()

        assert snapshot["registers"][0] == 42
        assert snapshot["pc"] == 0x1000
        assert snapshot["condition"] is Condition.NONE

        snapshot["registers"][0] = 999
        assert state.registers[0] == 42

    def test_str(self):
        state = MachineState(pc=0x1000)
        state.set_register(2, 0x2A)
        text = str(state)
        assert "PC=0x1000" in text
        assert "x2=0x2A" in text
        assert "COND=NONE" in text
