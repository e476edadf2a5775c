from __future__ import annotations

import logging
from typing import List

from lmc.instructions import MissingOperandError, build_instruction
from lmc.model import LMCError, Program, Statement
from lmc.operands import parse_operand


logger = logging.getLogger(__name__)

COMMENT_PREFIX = "//"
MAX_TOKENS = 3


class ParseError(LMCError):
    def __init__(self, message: str, line_no: int, text: str) -> None:
        super().__init__(message)
        self.line_no = line_no
        self.text = text


def _strip_comment(line: str) -> str:
    return line.split(COMMENT_PREFIX, 1)[0]


def tokenize_line(line: str) -> List[str]:
    return _strip_comment(line).split()


def parse_line(tokens: List[str], line_no: int = 0, raw_line: str = "") -> Statement:
    text = raw_line.rstrip("\n")
    try:
        if len(tokens) == 1:
            instruction = build_instruction(tokens[0], None, line_no, text)
            if instruction is None:
                raise ParseError(f"Invalid opcode: {tokens[0]}", line_no, text)
            return Statement(label=None, instruction=instruction)

        if len(tokens) == 2:
            instruction = build_instruction(tokens[0], parse_operand(tokens[1]), line_no, text)
            if instruction is not None:
                return Statement(label=None, instruction=instruction)
            instruction = build_instruction(tokens[1], None, line_no, text)
            if instruction is None:
                raise ParseError(f"Invalid opcode: {tokens[1]}", line_no, text)
            return Statement(label=tokens[0], instruction=instruction)

        if len(tokens) == MAX_TOKENS:
            instruction = build_instruction(tokens[1], parse_operand(tokens[2]), line_no, text)
            if instruction is None:
                raise ParseError(f"Invalid opcode: {tokens[1]}", line_no, text)
            return Statement(label=tokens[0], instruction=instruction)
    except MissingOperandError as exc:
        raise ParseError(exc.message, line_no, text) from exc

    raise ParseError(f"Malformed line: expected 1 to {MAX_TOKENS} tokens, got {len(tokens)}", line_no, text)


def parse_assembly(text: str) -> Program:
    logger.debug("Parsing code...")
    statements: List[Statement] = []
    for idx, raw_line in enumerate(text.splitlines(), start=1):
        tokens = tokenize_line(raw_line)
        logger.debug("line %d: %s", idx, tokens)
        if not tokens:
            continue
        statements.append(parse_line(tokens, idx, raw_line))
    return Program(statements=statements)
