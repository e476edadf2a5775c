from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from lmc.cpu import EmulationError, ExecutionState
from lmc.devices import InputUnavailableError, IOHandler, Output
from lmc.instructions import ExecResult, decode_word, get_instruction_executor
from lmc.trace import StepTracer


logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    halted: bool = False
    error: Optional[EmulationError] = None
    output: Optional[Output] = None


class Emulator:
    def __init__(
        self,
        state: ExecutionState,
        io: IOHandler,
        tracer: Optional[Callable[[ExecutionState], None]] = None,
    ) -> None:
        self.state = state
        self.io = io
        self.tracer = tracer
        self.steps = 0
        self.error: Optional[EmulationError] = None

    @property
    def halted(self) -> bool:
        return self.error is not None or self.state.halted

    def reset(self, image: Optional[Sequence[int]] = None) -> None:
        self.state.reset(image)
        self.steps = 0
        self.error = None

    def step(self) -> StepOutcome:
        if self.halted:
            return StepOutcome(halted=True, error=self.error)

        state = self.state
        state.mar = state.pc
        state.pc += 1
        state.mdr = state.read_mem(state.mar)
        state.cir = state.mdr
        self.steps += 1

        try:
            result = self._execute(state.cir)
        except InputUnavailableError as exc:
            return self._fail(EmulationError(exc.message, address=state.mar, word=state.cir))
        except EmulationError as exc:
            return self._fail(exc)

        if self.tracer is not None and not result.halt:
            self.tracer(state)
        if result.halt or state.halted:
            logger.info("Program halted after %d steps", self.steps)
            return StepOutcome(halted=True, output=result.output)
        return StepOutcome(output=result.output)

    def _fail(self, error: EmulationError) -> StepOutcome:
        self.error = error
        logger.error("Execution stopped at address %d: %s", self.state.mar, error.message)
        return StepOutcome(halted=True, error=error)

    def _execute(self, word: int) -> ExecResult:
        decoded = decode_word(word)
        if decoded is None:
            raise EmulationError(f"Invalid instruction: {word}", address=self.state.mar, word=word)
        defn, address = decoded
        executor = get_instruction_executor(defn.mnemonic)
        if executor is None:
            raise EmulationError(f"Invalid instruction: {word}", address=self.state.mar, word=word)
        return executor(self.state, address, self.io)

    def run(self) -> ExecutionState:
        while not self.halted:
            outcome = self.step()
            if outcome.error is not None:
                raise outcome.error
        return self.state


def run(image: Sequence[int], io: IOHandler, trace: bool = False) -> ExecutionState:
    emulator = Emulator(ExecutionState.from_image(image), io, tracer=StepTracer() if trace else None)
    return emulator.run()
