#!/usr/bin/env python3
"""ARMLite-CPU Command Line Interface.

Run assembly programs with the ARMLite-CPU interpreter.

Usage:
    python main.py --program programs/factorial.s
    python main.py --program programs/factorial.s --trace --dump
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from armlite_cpu import ARMLiteCPU
from armlite_cpu.errors import LoaderError
from armlite_cpu.memory import DEFAULT_MAX_STACK_SIZE
from armlite_cpu.state import DEFAULT_SP


def parse_address(text: str) -> int:
    """argparse type for decimal or 0x-prefixed addresses."""
    try:
        return int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid address: {text}")


def main():
    parser = argparse.ArgumentParser(
        description="ARMLite-CPU: load/store register machine interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a program file
    python main.py --program programs/factorial.s

    # Run with full trace and final state dump
    python main.py --program programs/sum_stack.s --trace --dump

    # Run inline assembly
    python main.py --inline "mov x0, #42; mov x1, x0"
        """
    )

    parser.add_argument(
        "--program", "-p",
        type=str,
        help="Path to assembly program file"
    )
    parser.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline assembly (separate instructions with ;)"
    )
    parser.add_argument(
        "--sp",
        type=parse_address,
        default=DEFAULT_SP,
        help=f"Initial stack pointer. Default: 0x{DEFAULT_SP:X}"
    )
    parser.add_argument(
        "--base",
        type=parse_address,
        default=0x1000,
        help="Address of the first instruction. Default: 0x1000"
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=10000,
        help="Maximum execution cycles (safety limit). Default: 10000"
    )
    parser.add_argument(
        "--max-stack",
        type=int,
        default=DEFAULT_MAX_STACK_SIZE,
        help=f"Largest simulated stack in bytes. Default: {DEFAULT_MAX_STACK_SIZE}"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Halt on unimplemented instructions instead of skipping them"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--dump", "-d",
        action="store_true",
        help="Print condition codes, registers and stack after the run"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (final registers only)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log every executed instruction"
    )

    args = parser.parse_args()

    if not args.program and not args.inline:
        parser.error("Either --program or --inline is required")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    cpu = ARMLiteCPU(
        sp=args.sp,
        max_cycles=args.max_cycles,
        strict=args.strict,
        max_stack_size=args.max_stack,
    )

    # Load program
    if args.program:
        program_path = Path(args.program)
        if not program_path.exists():
            print(f"Error: Program file not found: {args.program}")
            sys.exit(1)
        source = program_path.read_text()
        if not args.quiet:
            print(f"Loading program: {args.program}")
    else:
        source = args.inline.replace(";", "\n")
        if not args.quiet:
            print("Running inline assembly")

    try:
        cpu.load_program(source, base_address=args.base)
    except LoaderError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if not args.quiet:
        print("-" * 60)
        print("Executing...")
        print("-" * 60)

    failed = False
    try:
        cpu.run()
    except RuntimeError as e:
        print(f"Execution error: {e}")
        failed = True

    # Output
    if args.trace:
        cpu.print_trace()
    elif args.dump:
        print(cpu.format_state())
    elif not args.quiet:
        print()
        summary = cpu.get_summary()
        print(f"Cycles: {summary['cycles']}")
        print(f"Halted: {summary['halted']}")
        print(f"Registers: { {k: hex(v) for k, v in summary['registers'].items()} }")
        print(f"Condition: {summary['condition']}")
        if summary['errors']:
            print(f"Errors: {summary['errors']}")
    else:
        for reg, value in cpu.dump_registers().items():
            print(f"{reg}=0x{value:X}")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
