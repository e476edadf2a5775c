from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


MEMORY_SIZE = 100
MIN_VALUE = -999
MAX_VALUE = 999
HALT_PC = -1


class LMCError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class Operand:
    type: str  # value, label
    value: int | str
    text: str

    @property
    def is_label(self) -> bool:
        return self.type == "label"


@dataclass(frozen=True)
class Instruction:
    mnemonic: str
    operand: Optional[Operand] = None
    line_no: int = 0
    text: str = ""


@dataclass(frozen=True)
class Statement:
    label: Optional[str]
    instruction: Instruction


@dataclass
class Program:
    statements: List[Statement] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.statements)

    def find_label(self, name: str) -> Optional[int]:
        for position, statement in enumerate(self.statements):
            if statement.label == name:
                return position
        return None

    def labels(self) -> Dict[str, int]:
        table: Dict[str, int] = {}
        for position, statement in enumerate(self.statements):
            if statement.label is not None and statement.label not in table:
                table[statement.label] = position
        return table

    def duplicate_labels(self) -> List[str]:
        seen: set[str] = set()
        duplicates: List[str] = []
        for statement in self.statements:
            if statement.label is None:
                continue
            if statement.label in seen and statement.label not in duplicates:
                duplicates.append(statement.label)
            seen.add(statement.label)
        return duplicates
