from __future__ import annotations

import logging
from typing import List

from lmc.cpu import REGISTER_ORDER, ExecutionState


logger = logging.getLogger("lmc.trace")

MEMORY_ROW = 10


def format_registers(state: ExecutionState) -> str:
    return "  ".join(f"{name}: {state.get_reg(name)}" for name in REGISTER_ORDER)


def format_memory(state: ExecutionState) -> List[str]:
    rows = []
    for base in range(0, len(state.memory), MEMORY_ROW):
        words = " ".join(f"{word:>4}" for word in state.memory[base : base + MEMORY_ROW])
        rows.append(f"{base:02d}: {words}")
    return rows


def format_state(state: ExecutionState) -> str:
    return "\n".join([format_registers(state), *format_memory(state)])


class StepTracer:
    def __init__(self, include_memory: bool = True) -> None:
        self.include_memory = include_memory

    def __call__(self, state: ExecutionState) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        if self.include_memory:
            logger.debug("%s\n", format_state(state))
        else:
            logger.debug("%s", format_registers(state))
