"""Human-readable rendering of machine state.

Output layout:

    Condition codes: Z
    Registers:
            w/x0 = 0x2a
            sp = 0x7FFFFFF0
            pc = 0x1008
    Stack:
                  sp-> +-------------------------+
            0x7FFFFFF0 | 00 00 00 00 00 00 00 00 |
                       +-------------------------+
            0x7FFFFFF8 | 00 -- -- -- -- -- -- -- |
                       +-------------------------+

Only registers that have been written are listed. The stack is grown to
cover sp before it is printed, and the sp-> marker sits on the row that
contains sp. The last row starts at stack_bot, the final byte of the stack.
"""

import logging
from typing import List

from .errors import StackBoundsError
from .instruction import WORD_SIZE_BYTES
from .state import MachineState

logger = logging.getLogger(__name__)

_BORDER = "+-------------------------+"


def format_condition(state: MachineState) -> str:
    label = state.condition.label
    return "Condition codes:" + (f" {label}" if label else "")


def format_registers(state: MachineState) -> List[str]:
    lines = ["Registers:"]
    for index, value in state.registers.items():
        if value is not None:
            lines.append(f"\tw/x{index} = 0x{value:x}")
    lines.append(f"\tsp = 0x{state.sp:X}")
    lines.append(f"\tpc = 0x{state.pc:X}")
    return lines


def format_stack(state: MachineState) -> List[str]:
    stack = state.stack
    try:
        stack.ensure_covers(state.sp)
    except StackBoundsError as e:
        logger.warning("Stack not grown to sp for dump: %s", e)

    lines = ["Stack:"]
    for address, row in stack.rows():
        if address <= state.sp < address + WORD_SIZE_BYTES:
            marker = f"{'sp->':>10} "
        else:
            marker = " " * 11
        # Bytes past stack_bot are shown as --
        cells = [f"{b:02X}" for b in row] + ["--"] * (WORD_SIZE_BYTES - len(row))
        lines.append(f"\t{marker}{_BORDER}")
        lines.append(f"\t0x{address:08X} | " + " ".join(cells) + " |")
    lines.append(f"\t{' ' * 11}{_BORDER}")
    return lines


def format_state(state: MachineState) -> str:
    """Render condition, registers, sp, pc and the stack as text."""
    lines = [format_condition(state)]
    lines.extend(format_registers(state))
    lines.extend(format_stack(state))
    return "\n".join(lines)


def print_state(state: MachineState) -> None:
    print(format_state(state))
