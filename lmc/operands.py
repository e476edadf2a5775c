from __future__ import annotations

import re

from lmc.model import LMCError, Operand, Program


INTEGER_RE = re.compile(r"[+-]?\d+")


class UnresolvedLabelError(LMCError):
    def __init__(self, label: str) -> None:
        super().__init__(f"Invalid label: {label}")
        self.label = label


def parse_operand(token: str) -> Operand:
    raw = token.strip()
    if INTEGER_RE.fullmatch(raw):
        return Operand(type="value", value=int(raw, 10), text=raw)
    return Operand(type="label", value=raw, text=raw)


def resolve_operand(operand: Operand, program: Program) -> int:
    if not operand.is_label:
        return int(operand.value)
    position = program.find_label(str(operand.value))
    if position is None:
        raise UnresolvedLabelError(str(operand.value))
    return position
