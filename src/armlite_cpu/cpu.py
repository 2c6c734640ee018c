"""ARMLiteCPU: fetch/execute driver for the ARMLite-CPU interpreter.

This module ties the pieces together:
    PROGRAM -> FETCH -> INSTRUCTION -> REGISTRY -> EXECUTE -> STATE

The driver owns one MachineState per loaded program, records a trace entry
for every step and decides when the run ends:
    - pc leaves the code segment
    - ret with a link register that was never written
    - an error the current strictness setting treats as fatal
    - the cycle limit is exceeded (RuntimeError)
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .dump import format_state
from .errors import FetchError, LoaderError, MachineError, RecoverableError
from .instruction import INSTRUCTION_SIZE, LINK_REGISTER, MASK64, Instruction, Program
from .loader import DEFAULT_BASE_ADDRESS, assemble, load_file, parse_register
from .memory import DEFAULT_MAX_STACK_SIZE
from .registry import OpcodeRegistry, get_registry
from .resolver import OperandResolver
from .state import DEFAULT_SP, Condition, MachineState, create_initial_state

logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (0-indexed)
        address: pc of the executed instruction
        instruction: Decoded instruction, None if nothing could be fetched
        pre_state: State before execution
        post_state: State after execution
        error: Error message if execution failed
        exception: The error itself, for callers that want the kind
    """
    cycle: int
    address: int
    instruction: Optional[Instruction]
    pre_state: dict
    post_state: dict
    error: Optional[str] = None
    exception: Optional[MachineError] = None

    @property
    def text(self) -> str:
        return str(self.instruction) if self.instruction is not None else "<END OF PROGRAM>"


class ARMLiteCPU:
    """Interpreter for the ARMLite instruction subset.

    Attributes:
        registry: OpcodeRegistry with the opcode handlers
        state: Current machine state
        trace: List of execution trace entries
        sp: Initial stack pointer for each loaded program
        max_cycles: Maximum cycles before forced halt (safety limit)
        strict: Halt on recoverable errors (unknown opcode, bad register)
        max_stack_size: Limit on simulated stack growth, in bytes
    """

    DEFAULT_MAX_CYCLES = 10000

    def __init__(
        self,
        sp: int = DEFAULT_SP,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        strict: bool = False,
        registry: Optional[OpcodeRegistry] = None,
        max_stack_size: int = DEFAULT_MAX_STACK_SIZE,
    ):
        self.registry = registry or get_registry()
        self.state: Optional[MachineState] = None
        self.trace: List[ExecutionTraceEntry] = []
        self.sp = sp
        self.max_cycles = max_cycles
        self.strict = strict
        self.max_stack_size = max_stack_size

    def load_program(self, source: str, base_address: int = DEFAULT_BASE_ADDRESS) -> None:
        """Assemble source code and reset the machine to run it.

        Raises:
            LoaderError: If the source cannot be decoded
        """
        self.load_instructions(assemble(source, base_address))

    def load_file(self, path: Union[str, Path], base_address: int = DEFAULT_BASE_ADDRESS) -> None:
        """Assemble a program file and reset the machine to run it."""
        self.load_instructions(load_file(path, base_address))

    def load_instructions(
        self,
        program: Union[Program, Sequence[Instruction]],
        pc: Optional[int] = None,
    ) -> None:
        """Load an already-decoded program.

        Args:
            program: Program, or a list of instructions placed at the default base
            pc: Initial program counter (defaults to the program's code_top)
        """
        if not isinstance(program, Program):
            program = Program(tuple(program), code_top=DEFAULT_BASE_ADDRESS)
        self.state = create_initial_state(
            program, sp=self.sp, pc=pc, max_stack_size=self.max_stack_size
        )
        self.trace = []
        logger.debug(
            "Loaded %d instructions, pc=0x%X sp=0x%X",
            len(program), self.state.pc, self.state.sp,
        )

    def _require_state(self) -> MachineState:
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state

    def fetch(self) -> Instruction:
        """Get the instruction at the current pc.

        Raises:
            FetchError: If pc is outside the code segment or misaligned
        """
        state = self._require_state()
        program = state.code
        offset = state.pc - program.code_top
        if not program.contains(state.pc) or offset % INSTRUCTION_SIZE:
            raise FetchError(
                f"pc 0x{state.pc:X} outside code segment "
                f"[0x{program.code_top:X}, 0x{program.code_bot:X}]"
            )
        return program.instructions[offset // INSTRUCTION_SIZE]

    def step(self) -> ExecutionTraceEntry:
        """Execute a single instruction.

        Returns:
            ExecutionTraceEntry with full cycle information

        Raises:
            RuntimeError: If no program loaded, CPU halted or cycle limit hit
        """
        state = self._require_state()

        if state.halted:
            raise RuntimeError("CPU is halted")

        if state.cycle_count >= self.max_cycles:
            state.halted = True
            raise RuntimeError(f"Max cycles ({self.max_cycles}) exceeded")

        pc = state.pc
        pre_state = state.snapshot()

        # pc past the code segment ends the run
        if not state.code.contains(pc):
            state.halted = True
            return self._record(pc, None, pre_state, error="PC outside code segment")

        instruction: Optional[Instruction] = None
        error: Optional[MachineError] = None
        try:
            instruction = self.fetch()
            if instruction.opcode == "ret" and not state.is_set(LINK_REGISTER):
                logger.info("ret with no caller at 0x%X, halting", pc)
                state.halted = True
            else:
                self.registry.execute(state, instruction)
        except RecoverableError as e:
            error = e
            if self.strict:
                logger.warning("Halting at 0x%X: %s", pc, e)
                state.halted = True
            else:
                # Step over the instruction
                state.pc = (pc + INSTRUCTION_SIZE) & MASK64
                state.cycle_count += 1
        except MachineError as e:
            error = e
            logger.warning("Halting at 0x%X: %s", pc, e)
            state.halted = True

        return self._record(pc, instruction, pre_state, exception=error)

    def _record(
        self,
        pc: int,
        instruction: Optional[Instruction],
        pre_state: dict,
        error: Optional[str] = None,
        exception: Optional[MachineError] = None,
    ) -> ExecutionTraceEntry:
        state = self._require_state()
        entry = ExecutionTraceEntry(
            cycle=pre_state["cycle_count"],
            address=pc,
            instruction=instruction,
            pre_state=pre_state,
            post_state=state.snapshot(),
            error=str(exception) if exception is not None else error,
            exception=exception,
        )
        self.trace.append(entry)
        return entry

    def run(self, max_cycles: Optional[int] = None) -> List[ExecutionTraceEntry]:
        """Run until the program halts.

        Args:
            max_cycles: Override maximum cycles (uses instance default if None)

        Returns:
            Complete execution trace

        Raises:
            RuntimeError: If max cycles exceeded, or the run halted on an error
        """
        state = self._require_state()
        limit = max_cycles if max_cycles is not None else self.max_cycles

        while not state.halted and state.cycle_count < limit:
            self.step()

        if not state.halted and state.cycle_count >= limit:
            raise RuntimeError(f"Max cycles ({limit}) exceeded")

        last = self.trace[-1] if self.trace else None
        if last is not None and last.exception is not None and state.halted:
            raise RuntimeError(f"Execution halted: {last.error}") from last.exception

        return self.trace

    def get_register(self, reg: str) -> int:
        """Get value of a register by name (x0-x30, w0-w30, sp, pc, lr).

        Raises:
            KeyError: If the name is not a register
        """
        state = self._require_state()
        try:
            register = parse_register(reg)
        except LoaderError:
            register = None
        if register is None:
            raise KeyError(f"Invalid register: {reg}")
        return OperandResolver(state).resolve(register)

    def dump_registers(self) -> Dict[str, int]:
        """Get all written register values."""
        return self._require_state().dump_registers()

    def get_condition(self) -> Condition:
        return self._require_state().condition

    def get_pc(self) -> int:
        return self._require_state().pc

    def get_sp(self) -> int:
        return self._require_state().sp

    def get_trace(self) -> List[ExecutionTraceEntry]:
        return self.trace

    def get_cycle_count(self) -> int:
        """Get number of executed cycles."""
        if self.state is None:
            return 0
        return self.state.cycle_count

    def is_halted(self) -> bool:
        """Check if CPU is halted."""
        if self.state is None:
            return True
        return self.state.halted

    def format_state(self) -> str:
        """Render the diagnostic dump of the current state."""
        return format_state(self._require_state())

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("ARMLITE-CPU EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] 0x{entry.address:X} {status}")
            print(f"  Instruction: {entry.text}")

            pre_regs = entry.pre_state.get("registers", {})
            post_regs = entry.post_state.get("registers", {})
            changes = []
            for index in sorted(post_regs):
                if pre_regs.get(index) != post_regs[index]:
                    before = pre_regs.get(index)
                    before_text = "-" if before is None else f"0x{before:X}"
                    changes.append(f"x{index}: {before_text} → 0x{post_regs[index]:X}")
            for name in ("sp", "condition"):
                if entry.pre_state.get(name) != entry.post_state.get(name):
                    changes.append(f"{name}: {entry.pre_state[name]} → {entry.post_state[name]}")
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            post_pc = entry.post_state.get("pc", 0)
            if post_pc != entry.address + INSTRUCTION_SIZE:
                print(f"  PC: 0x{entry.address:X} → 0x{post_pc:X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        if self.state:
            print(self.format_state())
            print(f"Cycles: {self.get_cycle_count()}")
            print(f"Halted: {self.is_halted()}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "cycles": self.get_cycle_count(),
            "halted": self.is_halted(),
            "registers": self.dump_registers() if self.state else {},
            "condition": self.get_condition().name if self.state else Condition.NONE.name,
            "pc": self.get_pc() if self.state else 0,
            "sp": self.get_sp() if self.state else 0,
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }
