from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from lmc.assembler import assemble, format_image, format_listing
from lmc.config import Settings, configure_logging, load_settings
from lmc.cpu import ExecutionState
from lmc.devices import ConsoleIO, IOHandler, ScriptedIO
from lmc.emulator import Emulator
from lmc.model import LMCError
from lmc.parser import parse_assembly
from lmc.snapshot import SnapshotError, dump_state, load_state, save_image, save_state
from lmc.trace import StepTracer


logger = logging.getLogger(__name__)


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LMCError(f"Failed to read {path}: {exc}") from exc


def load_program_state(path: Path, settings: Settings) -> ExecutionState:
    if path.suffix.lower() == ".json":
        return load_state(path)
    program = parse_assembly(_read_source(path))
    logger.debug("Program: %s", program)
    image = assemble(program, allow_duplicate_labels=settings.allow_duplicate_labels)
    return ExecutionState.from_image(image)


def cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    state = load_program_state(Path(args.file), settings)
    io: IOHandler
    if args.inputs:
        io = ScriptedIO(args.inputs, echo=sys.stdout)
    else:
        io = ConsoleIO(prompt=settings.prompt)
    tracer = None
    if args.trace or settings.debug:
        logging.getLogger("lmc.trace").setLevel(logging.DEBUG)
        tracer = StepTracer()
    emulator = Emulator(state, io, tracer=tracer)
    try:
        emulator.run()
    except (LMCError, KeyboardInterrupt):
        _dump_final_state(args.dump_state, emulator.state, failed=True)
        raise
    _dump_final_state(args.dump_state, emulator.state)
    return 0


def _dump_final_state(target: Optional[str], state: ExecutionState, failed: bool = False) -> None:
    if not target:
        return
    if target == "-":
        print(dump_state(state), file=sys.stderr)
        return
    try:
        save_state(target, state)
    except SnapshotError as exc:
        # The run error is the one the caller reports.
        if not failed:
            raise
        logger.error("Could not write state dump: %s", exc.message)


def cmd_assemble(args: argparse.Namespace, settings: Settings) -> int:
    path = Path(args.file)
    if path.suffix.lower() == ".json":
        state = load_state(path)
        for line in format_image(state.memory):
            print(line)
        return 0
    program = parse_assembly(_read_source(path))
    image = assemble(program, allow_duplicate_labels=settings.allow_duplicate_labels)
    if args.listing or not args.output:
        for line in format_listing(program, image):
            print(line)
    if args.output:
        written = save_image(args.output, image)
        logger.info("Wrote memory image to %s", written)
    return 0


def cmd_debug(args: argparse.Namespace, settings: Settings) -> int:
    from lmc_debugger.main_window import run_app

    return run_app(args.file, settings)


def _common_options(default) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--debug", action="store_true", default=default, help="Enable debug logging")
    common.add_argument(
        "--allow-duplicate-labels",
        action="store_true",
        default=default,
        help="Resolve duplicate labels to their first definition instead of failing",
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lmc",
        description="Little Man Computer assembler, simulator and debugger",
        parents=[_common_options(None)],
    )
    # Sub-command copies must not overwrite a flag given before the sub-command.
    common = _common_options(argparse.SUPPRESS)
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", parents=[common], help="Assemble and run a program")
    run_p.add_argument("file", help="LMC source file or JSON snapshot")
    run_p.add_argument(
        "--input",
        "-i",
        dest="inputs",
        type=int,
        action="append",
        default=[],
        help="Input value for INP (repeatable); reads stdin when omitted",
    )
    run_p.add_argument("--trace", action="store_true", help="Log registers and memory after every step")
    run_p.add_argument("--dump-state", default=None, help="Write the final state as JSON ('-' for stderr)")
    run_p.set_defaults(handler=cmd_run)

    asm_p = sub.add_parser("assemble", parents=[common], help="Assemble a program into a memory image")
    asm_p.add_argument("file", help="LMC source file, or JSON snapshot to disassemble")
    asm_p.add_argument("--output", "-o", default=None, help="Write the memory image as JSON")
    asm_p.add_argument("--listing", action="store_true", help="Print the assembly listing")
    asm_p.set_defaults(handler=cmd_assemble)

    dbg_p = sub.add_parser("debug", parents=[common], help="Open the graphical debugger")
    dbg_p.add_argument("file", nargs="?", default=None, help="LMC source file to open")
    dbg_p.set_defaults(handler=cmd_debug)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    settings = load_settings(debug=args.debug, allow_duplicate_labels=args.allow_duplicate_labels)
    configure_logging(settings.debug)
    try:
        return args.handler(args, settings)
    except LMCError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
