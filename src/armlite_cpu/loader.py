"""Program loader: assembly text -> decoded Program.

Turns ARMv8-style assembly into the Instruction/operand structures the
execution engine consumes. Decoding is rule-based (regular expressions); no
validation of opcode support happens here, so an unimplemented mnemonic still
loads and is reported by the engine when it executes.

Syntax:
    label:                      defines a label at the next instruction
    add x0, x1, #5              register / immediate operands
    ldr w2, [sp, #8]            memory operand, optional offset
    bl func                     label reference -> absolute address
    // comment, ; comment       stripped
    # comment                   stripped when it starts the line
    .text / .global main        directives are ignored
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .errors import InvalidRegisterError, LoaderError
from .instruction import (
    INSTRUCTION_SIZE, LINK_REGISTER, Immediate, Instruction, Memory, Operand, Program, Register,
    RegisterWidth,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_ADDRESS = 0x1000

_REGISTER_RE = re.compile(r'^([wx])(\d+)$')
_MEMORY_RE = re.compile(r'^\[\s*([a-z0-9]+)\s*(?:,\s*(#?[-+]?[0-9a-fx]+))?\s*\]$')
_LABEL_RE = re.compile(r'^([A-Za-z_.$][\w.$]*)\s*:\s*(.*)$')
_OPERAND_SPLIT_RE = re.compile(r'\s*(\[[^\]]*\]|[^,]+)')

_REGISTER_ALIASES = {
    "sp": Register(RegisterWidth.SP),
    "pc": Register(RegisterWidth.PC),
    "lr": Register(RegisterWidth.X, LINK_REGISTER),
    "fp": Register(RegisterWidth.X, 29),
}


def _strip_comment(line: str) -> str:
    line = re.sub(r'(//|;).*$', '', line).strip()
    if line.startswith("#"):
        return ""
    return line


def parse_program(source: str) -> Tuple[List[str], Dict[str, int]]:
    """Split assembly source into instruction lines and labels.

    Handles:
        - Labels (``name:``), alone or in front of an instruction
        - Comments (``//``, ``;``, and ``#`` at the start of a line)
        - Assembler directives (lines starting with ``.``)
        - Blank lines

    Args:
        source: Assembly source code

    Returns:
        Tuple of (list of instruction strings, label-to-index dict)
    """
    instructions: List[str] = []
    labels: Dict[str, int] = {}

    for line in source.split("\n"):
        line = _strip_comment(line)

        while line:
            label_match = _LABEL_RE.match(line)
            if not label_match:
                break
            labels[label_match.group(1)] = len(instructions)
            line = label_match.group(2).strip()

        if not line or line.startswith("."):
            continue
        instructions.append(line)

    return instructions, labels


def parse_immediate(value: str) -> int:
    """Parse an immediate value (decimal, hex, or binary, optional ``#``).

    Raises:
        ValueError: If value cannot be parsed
    """
    value = value.strip().lower().lstrip("#")
    negative = value.startswith("-")
    value = value.lstrip("+-")

    if value.startswith("0x"):
        result = int(value, 16)
    elif value.startswith("0b"):
        result = int(value, 2)
    else:
        result = int(value)
    return -result if negative else result


def parse_register(text: str) -> Optional[Register]:
    """Parse a register name (w0-w30, x0-x30, sp, pc, lr, fp).

    Returns:
        Register operand, or None if text is not a register name
    """
    text = text.strip().lower()
    if text in _REGISTER_ALIASES:
        return _REGISTER_ALIASES[text]
    match = _REGISTER_RE.match(text)
    if not match:
        return None
    width = RegisterWidth.W if match.group(1) == "w" else RegisterWidth.X
    try:
        return Register(width, int(match.group(2)))
    except InvalidRegisterError as e:
        raise LoaderError(str(e)) from e


def decode_operand(text: str, labels: Optional[Dict[str, int]] = None,
                   base_address: int = DEFAULT_BASE_ADDRESS) -> Operand:
    """Decode one operand.

    Args:
        text: Operand text (e.g. "x1", "#4", "[sp, #8]", "loop")
        labels: Label-to-index mapping for branch targets
        base_address: Address of the first instruction

    Returns:
        Immediate, Register or Memory operand

    Raises:
        LoaderError: If the operand cannot be decoded
    """
    text = text.strip()
    lowered = text.lower()

    register = parse_register(lowered)
    if register is not None:
        return register

    memory_match = _MEMORY_RE.match(lowered)
    if memory_match:
        base = parse_register(memory_match.group(1))
        if base is None:
            raise LoaderError(f"Invalid memory base register: {memory_match.group(1)}")
        offset = memory_match.group(2)
        try:
            return Memory(base, parse_immediate(offset) if offset else 0)
        except ValueError as e:
            raise LoaderError(f"Invalid memory offset: {offset}") from e

    try:
        return Immediate(parse_immediate(text))
    except ValueError:
        pass

    # Label reference (case-insensitive lookup)
    for label, index in (labels or {}).items():
        if label.lower() == lowered:
            return Immediate(base_address + INSTRUCTION_SIZE * index)

    raise LoaderError(f"Unknown operand or label: {text}")


def decode_instruction(text: str, labels: Optional[Dict[str, int]] = None,
                       base_address: int = DEFAULT_BASE_ADDRESS) -> Instruction:
    """Decode one line of assembly into an Instruction.

    Raises:
        LoaderError: If the line is empty or an operand is malformed
    """
    text = re.sub(r'\s+', ' ', text.strip())
    if not text:
        raise LoaderError("Empty instruction")

    mnemonic, _, rest = text.partition(" ")
    operands = [
        decode_operand(token, labels, base_address)
        for token in _OPERAND_SPLIT_RE.findall(rest)
        if token.strip()
    ]
    if len(operands) > 3:
        raise LoaderError(f"Too many operands: {text}")
    # Only [base] and [base, #offset] addressing; no writeback forms
    for operand in operands[:-1]:
        if isinstance(operand, Memory):
            raise LoaderError(f"Post-index addressing not supported: {text}")
    return Instruction(mnemonic.lower(), tuple(operands), source=text)


def assemble(source: str, base_address: int = DEFAULT_BASE_ADDRESS) -> Program:
    """Assemble source text into a Program starting at base_address.

    Raises:
        LoaderError: If any line fails to decode (message includes line number)
    """
    lines, labels = parse_program(source)
    instructions = []
    for index, line in enumerate(lines):
        try:
            instructions.append(decode_instruction(line, labels, base_address))
        except LoaderError as e:
            raise LoaderError(f"Instruction {index} ({line!r}): {e}") from e

    program = Program(
        tuple(instructions),
        code_top=base_address,
        labels=tuple((name, base_address + INSTRUCTION_SIZE * i) for name, i in labels.items()),
    )
    logger.debug(
        "Assembled %d instructions at [0x%X, 0x%X]",
        len(program), program.code_top, program.code_bot,
    )
    return program


def load_file(path: Union[str, Path], base_address: int = DEFAULT_BASE_ADDRESS) -> Program:
    """Read and assemble a program file."""
    return assemble(Path(path).read_text(), base_address)
