"""ARMLite-CPU Interactive Demo.

A Gradio web interface for running and inspecting ARMLite-CPU programs.

Usage:
    cd /path/to/armlite-cpu
    python demo/gradio_app.py

Features:
    - Write or load assembly programs
    - See step-by-step execution trace
    - Inspect condition codes, registers and the simulated stack
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from armlite_cpu import ARMLiteCPU
from armlite_cpu.errors import LoaderError
from armlite_cpu.state import DEFAULT_SP


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Factorial(5)": """main:
    mov x0, #5
    bl fact
    b done
fact:
    sub sp, sp, #16
    str x30, [sp, #8]   // save link register
    str x0, [sp]        // save argument
    cmp x0, #1
    ble base
    sub x0, x0, #1
    bl fact
    ldr x1, [sp]
    mul x0, x0, x1
    b out
base:
    mov x0, #1
out:
    ldr x30, [sp, #8]
    add sp, sp, #16
    ret
done:
    nop                 // x0 = 120""",

    "Stack Sum 1-10": """    mov x3, sp
    mov x1, #1
fill:
    str x1, [x3]
    add x3, x3, #8
    add x1, x1, #1
    cmp x1, #10
    ble fill
    mov x0, #0
    mov x3, sp
    mov x1, #0
sum:
    ldr x2, [x3]
    add x0, x0, x2
    add x3, x3, #8
    add x1, x1, #1
    cmp x1, #10
    blt sum             // x0 = 55""",

    "Bits": """    mov w1, #0xFF
    lsl w2, w1, #16
    clz w4, w2          // w4 = 8
    mov x3, #1
    clz x5, x3          // x5 = 63
    mov w7, #0xAB
    strb w7, [sp, #-1]
    ldrb w6, [sp, #-1]  // x6 = 0xAB
    ret""",

    "Custom": ""
}


# =============================================================================
# Execution Functions
# =============================================================================

def run_program(program: str, sp_text: str, strict: bool, max_cycles: int) -> tuple:
    """Execute an assembly program and return results.

    Args:
        program: Assembly source code
        sp_text: Initial stack pointer (decimal or 0x-prefixed)
        strict: Halt on unimplemented instructions
        max_cycles: Maximum execution cycles

    Returns:
        Tuple of (summary_text, trace_text, state_text)
    """
    if not program.strip():
        return "Error: No program provided", "", ""

    try:
        sp = int(sp_text, 0)
    except ValueError:
        return f"Error: Invalid stack pointer: {sp_text}", "", ""

    cpu = ARMLiteCPU(sp=sp, max_cycles=int(max_cycles), strict=strict)

    try:
        cpu.load_program(program)
    except LoaderError as e:
        return f"Error: {e}", "", ""

    try:
        trace = cpu.run()
    except RuntimeError as e:
        error_msg = str(e)
        trace = cpu.get_trace()
    else:
        error_msg = None

    # Format summary
    summary = cpu.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Cycles: {summary['cycles']}",
        f"Halted: {'Yes' if summary['halted'] else 'No'}",
        f"Errors: {len(summary['errors'])}",
    ]
    if error_msg:
        summary_lines.append(f"\nRuntime: {error_msg}")
    if summary['errors']:
        summary_lines.append("\nErrors:")
        for err in summary['errors'][:5]:
            summary_lines.append(f"  - {err}")

    summary_text = "\n".join(summary_lines)

    # Format trace
    trace_lines = [
        "EXECUTION TRACE",
        "=" * 60,
    ]
    for entry in trace[:100]:  # Limit to 100 entries
        trace_lines.append(f"\n--- Cycle {entry.cycle} (PC=0x{entry.address:X}) ---")
        trace_lines.append(f"Instruction: {entry.text}")
        if entry.error:
            trace_lines.append(f"Error:       {entry.error}")

        pre_regs = entry.pre_state['registers']
        post_regs = entry.post_state['registers']
        changes = []
        for index in sorted(post_regs):
            if pre_regs[index] != post_regs[index]:
                changes.append(f"x{index}: 0x{post_regs[index]:X}")
        if entry.pre_state['sp'] != entry.post_state['sp']:
            changes.append(f"sp: 0x{entry.post_state['sp']:X}")
        if changes:
            trace_lines.append(f"Changes:     {', '.join(changes)}")

    if len(trace) > 100:
        trace_lines.append(f"\n... ({len(trace) - 100} more entries)")

    trace_text = "\n".join(trace_lines)

    return summary_text, trace_text, cpu.format_state()


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="ARMLite-CPU Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # ARMLite-CPU: Load/Store Machine Interpreter

        Run a small ARMv8-style program and watch registers, condition codes
        and the simulated stack change instruction by instruction.

        **Pipeline**: `fetch -> instruction -> registry -> execute -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Assembly Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Factorial(5)",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Factorial(5)"],
                    label="Source Code",
                    lines=15,
                    placeholder="Enter assembly code here..."
                )

                gr.Markdown("### Settings")

                with gr.Row():
                    sp_input = gr.Textbox(
                        value=f"0x{DEFAULT_SP:X}",
                        label="Initial SP"
                    )
                    strict_checkbox = gr.Checkbox(
                        value=False,
                        label="Strict",
                        info="Halt on unimplemented instructions"
                    )
                    max_cycles = gr.Slider(
                        minimum=100,
                        maximum=100000,
                        value=10000,
                        step=100,
                        label="Max Cycles"
                    )

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                summary_output = gr.Textbox(
                    label="Summary",
                    lines=8,
                    interactive=False
                )
                state_output = gr.Textbox(
                    label="Final State",
                    lines=16,
                    interactive=False
                )
                trace_output = gr.Textbox(
                    label="Execution Trace",
                    lines=20,
                    interactive=False
                )

        with gr.Accordion("ISA Reference", open=False):
            gr.Markdown("""
            | Instruction | Description | Example |
            |-------------|-------------|---------|
            | `add/sub/mul Rd, Rn, Rm` | Arithmetic | `add x0, x1, #4` |
            | `udiv/sdiv Rd, Rn, Rm` | Unsigned division | `udiv x0, x1, x2` |
            | `and/orr/eor/lsl/lsr` | Bitwise | `lsl w2, w1, #16` |
            | `neg Rd, Rn` | Negate | `neg x0, x1` |
            | `mov Rd, Rn/#imm` | Move | `mov x0, #42` |
            | `ldr/str Rt, [Rn, #off]` | Load/store 4 (w) or 8 (x) bytes | `str x0, [sp, #8]` |
            | `ldrb/strb Rt, [Rn, #off]` | Load/store byte | `strb w1, [sp]` |
            | `cmp Rn, Rm/#imm` | Compare (sets condition) | `cmp x0, #1` |
            | `b/bl label` | Branch / branch with link | `bl fact` |
            | `beq/bne/blt/bgt/ble/bge label` | Conditional branch | `ble base` |
            | `clz Rd, Rn` | Count leading zeros | `clz x0, x1` |
            | `ret` | Return to x30 | `ret` |
            | `nop` | No operation | `nop` |

            **Registers**: x0-x30 (64-bit), w0-w30 (low 32 bits), sp, pc, lr = x30
            **Condition codes**: Z (equal), N (less than), P (greater than)
            **Labels**: Use `name:` to define, reference by name in branches
            """)

        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, sp_input, strict_checkbox, max_cycles],
            outputs=[summary_output, trace_output, state_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
