from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from PyQt6.QtCore import QObject, pyqtSignal

from lmc.assembler import assemble
from lmc.cpu import ExecutionState
from lmc.devices import IOHandler, Output
from lmc.emulator import Emulator, StepOutcome
from lmc.model import MEMORY_SIZE, Program
from lmc.parser import parse_assembly
from lmc_debugger.breakpoints import BreakHit, BreakpointSet


logger = logging.getLogger(__name__)


class _RelayIO:
    """Routes emulator output through the session signal."""

    def __init__(self, session: "DebugSession", io: IOHandler) -> None:
        self.session = session
        self.io = io

    def get_input(self) -> int:
        return self.io.get_input()

    def print_output(self, output: Output) -> None:
        self.io.print_output(output)
        self.session.output.emit(output.render())


class DebugSession(QObject):
    """Program, machine and breakpoint state behind the debugger window."""

    output = pyqtSignal(str)
    message = pyqtSignal(str)

    def __init__(self, io: IOHandler, breakpoints: Optional[BreakpointSet] = None) -> None:
        super().__init__()
        self.breakpoints = breakpoints if breakpoints is not None else BreakpointSet()
        self.program = Program()
        self.image = [0] * MEMORY_SIZE
        self.source: Optional[str] = None
        self.allow_duplicate_labels = False
        self.emulator = Emulator(ExecutionState(), _RelayIO(self, io))
        self._resume_from: Optional[int] = None

    @property
    def state(self) -> ExecutionState:
        return self.emulator.state

    @property
    def loaded(self) -> bool:
        return bool(self.program.statements)

    def load(self, text: str, source: Optional[str] = None) -> None:
        program = parse_assembly(text)
        image = assemble(program, allow_duplicate_labels=self.allow_duplicate_labels)
        self.program = program
        self.image = image
        self.source = source
        self.breakpoints.set_code_lines(source, (st.instruction.line_no for st in program.statements))
        self.reset()
        self.message.emit(f"Assembled {len(program)} instructions.")

    def reset(self) -> None:
        self.emulator.reset(self.image)
        self._resume_from = None

    def line_for_address(self, address: int) -> Optional[int]:
        if 0 <= address < len(self.program.statements):
            return self.program.statements[address].instruction.line_no
        return None

    def address_for_line(self, line_no: int) -> Optional[int]:
        for address, statement in enumerate(self.program.statements):
            if statement.instruction.line_no == line_no:
                return address
        return None

    def symbols(self) -> List[Tuple[str, int, int]]:
        return [(name, address, self.state.memory[address]) for name, address in self.program.labels().items()]

    def current_line(self) -> Optional[int]:
        return self.line_for_address(self.state.pc)

    def step(self) -> StepOutcome:
        self._resume_from = None
        outcome = self.emulator.step()
        if outcome.error is not None:
            self.message.emit(f"HALT due to error: {outcome.error.message}")
            line_no = self.line_for_address(self.state.mar)
            if line_no is not None:
                self.message.emit(f"  at line {line_no}, address {self.state.mar:02d}")
        elif outcome.halted:
            self.message.emit(f"Program halted after {self.emulator.steps} steps.")
        return outcome

    def advance(self) -> Tuple[Optional[BreakHit], Optional[StepOutcome]]:
        """One tick of a continuous run: stop at a breakpoint or take a step.

        A breakpoint that just stopped the run does not fire again until the
        instruction under it has executed.
        """
        hit = self.breakpoints.check(self.source, self.current_line(), self.state)
        if hit is not None and self._resume_from != self.state.pc:
            self.breakpoints.record_hit(hit.breakpoint)
            self._resume_from = self.state.pc
            self.message.emit(f"Breakpoint hit: {hit.reason}")
            return hit, None
        return None, self.step()
