from __future__ import annotations

import logging
from typing import List, Optional

from lmc.instructions import disassemble_word, get_instruction_def
from lmc.model import MAX_VALUE, MEMORY_SIZE, MIN_VALUE, LMCError, Program, Statement
from lmc.operands import UnresolvedLabelError, resolve_operand
from lmc.parser import parse_assembly


logger = logging.getLogger(__name__)


class AssemblyError(LMCError):
    def __init__(self, message: str, position: Optional[int] = None, label: Optional[str] = None) -> None:
        super().__init__(message)
        self.position = position
        self.label = label


def _encode(statement: Statement, position: int, program: Program) -> int:
    instruction = statement.instruction
    mnemonic = instruction.mnemonic
    defn = get_instruction_def(mnemonic)
    if defn is None:
        raise AssemblyError(f"Unknown instruction at address {position}: {mnemonic}", position)
    if not defn.takes_operand:
        return defn.base

    if instruction.operand is None:
        raise AssemblyError(f"Missing operand for {mnemonic} at address {position}", position)
    try:
        value = resolve_operand(instruction.operand, program)
    except UnresolvedLabelError as exc:
        raise AssemblyError(exc.message, position, label=exc.label) from exc

    if mnemonic == "DAT":
        if not MIN_VALUE <= value <= MAX_VALUE:
            raise AssemblyError(
                f"Value out of range at address {position}: {value} (expected {MIN_VALUE}..{MAX_VALUE})",
                position,
            )
        return value

    if not 0 <= value < MEMORY_SIZE:
        raise AssemblyError(
            f"Address out of range at address {position}: {mnemonic} {value} (expected 0..{MEMORY_SIZE - 1})",
            position,
        )
    return defn.base + value


def assemble(program: Program, allow_duplicate_labels: bool = False) -> List[int]:
    if len(program) > MEMORY_SIZE:
        raise AssemblyError(f"Program too large: {len(program)} instructions, memory holds {MEMORY_SIZE}")
    if not allow_duplicate_labels:
        duplicates = program.duplicate_labels()
        if duplicates:
            name = duplicates[0]
            raise AssemblyError(f"Duplicate label: {name}", program.find_label(name), label=name)

    image = [0] * MEMORY_SIZE
    for position, statement in enumerate(program.statements):
        image[position] = _encode(statement, position, program)
    logger.debug("Assembled %d instructions: %s", len(program), image[: len(program)])
    return image


def assemble_source(text: str, allow_duplicate_labels: bool = False) -> List[int]:
    return assemble(parse_assembly(text), allow_duplicate_labels=allow_duplicate_labels)


def format_listing(program: Program, image: List[int]) -> List[str]:
    lines: List[str] = []
    for position, statement in enumerate(program.statements):
        instruction = statement.instruction
        operand = instruction.operand.text if instruction.operand is not None else ""
        label = statement.label or ""
        lines.append(f"{position:02d}  {image[position]:>4}  {label:<10} {instruction.mnemonic:<4} {operand}".rstrip())
    return lines


def format_image(image: List[int]) -> List[str]:
    return [f"{addr:02d}  {word:>4}  {disassemble_word(word)}" for addr, word in enumerate(image)]
