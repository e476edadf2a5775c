from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from lmc.cpu import EmulationError, ExecutionState, in_value_range, wrap_accumulator
from lmc.devices import IOHandler, Output
from lmc.model import HALT_PC, Instruction, LMCError, Operand


@dataclass
class ExecResult:
    halt: bool = False
    output: Optional[Output] = None


@dataclass(frozen=True)
class InstructionDef:
    mnemonic: str
    base: int
    takes_operand: bool
    summary: str
    description: str
    syntax: str
    low: int
    high: int


class MissingOperandError(LMCError):
    def __init__(self, mnemonic: str) -> None:
        super().__init__(f"Missing operand: {mnemonic} requires an operand")
        self.mnemonic = mnemonic


Executor = Callable[[ExecutionState, int, IOHandler], ExecResult]

INSTRUCTION_SET: Dict[str, InstructionDef] = {}
INSTRUCTION_IMPLS: Dict[str, Executor] = {}


def register_instruction(defn: InstructionDef) -> None:
    INSTRUCTION_SET[defn.mnemonic.upper()] = defn


def register_instruction_impl(mnemonic: str, executor: Executor) -> None:
    INSTRUCTION_IMPLS[mnemonic.upper()] = executor


def get_instruction_def(mnemonic: str) -> Optional[InstructionDef]:
    return INSTRUCTION_SET.get(mnemonic.upper())


def get_instruction_defs() -> List[InstructionDef]:
    return list(INSTRUCTION_SET.values())


def get_instruction_executor(mnemonic: str) -> Optional[Executor]:
    return INSTRUCTION_IMPLS.get(mnemonic.upper())


def base_encoding(mnemonic: str) -> int:
    defn = get_instruction_def(mnemonic)
    if defn is None:
        raise KeyError(mnemonic)
    return defn.base


def build_instruction(
    mnemonic: str,
    operand: Optional[Operand],
    line_no: int = 0,
    text: str = "",
) -> Optional[Instruction]:
    defn = get_instruction_def(mnemonic)
    if defn is None:
        return None
    if not defn.takes_operand:
        operand = None
    elif operand is None:
        if defn.mnemonic != "DAT":
            raise MissingOperandError(defn.mnemonic)
        operand = Operand(type="value", value=0, text="0")
    return Instruction(mnemonic=defn.mnemonic, operand=operand, line_no=line_no, text=text)


def decode_word(word: int) -> Optional[Tuple[InstructionDef, int]]:
    for defn in INSTRUCTION_SET.values():
        if defn.mnemonic == "DAT":
            continue
        if defn.low <= word <= defn.high:
            return defn, word - defn.base
    return None


def disassemble_word(word: int) -> str:
    decoded = decode_word(word)
    if decoded is None:
        return f"DAT {word}"
    defn, address = decoded
    if defn.takes_operand:
        return f"{defn.mnemonic} {address:02d}"
    return defn.mnemonic


def exec_hlt(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    state.pc = HALT_PC
    return ExecResult(halt=True)


def exec_inp(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    value = io.get_input()
    if not in_value_range(value):
        raise EmulationError(f"Number out of range: {value}", address=state.mar, word=state.cir)
    state.acc = value
    return ExecResult()


def exec_out(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    output = Output.integer(state.acc)
    io.print_output(output)
    return ExecResult(output=output)


def exec_otc(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    output = Output.char(chr(state.acc & 0xFF))
    io.print_output(output)
    return ExecResult(output=output)


def exec_add(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    state.mar = address
    state.acc = wrap_accumulator(state.acc + state.read_mem(state.mar))
    return ExecResult()


def exec_sub(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    state.mar = address
    state.acc = wrap_accumulator(state.acc - state.read_mem(state.mar))
    return ExecResult()


def exec_sta(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    state.mar = address
    state.write_mem(state.mar, state.acc)
    return ExecResult()


def exec_lda(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    state.mar = address
    state.acc = state.read_mem(state.mar)
    return ExecResult()


def exec_bra(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    state.mar = address
    state.pc = state.mar
    return ExecResult()


def exec_brz(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    state.mar = address
    if state.acc == 0:
        state.pc = state.mar
    return ExecResult()


def exec_brp(state: ExecutionState, address: int, io: IOHandler) -> ExecResult:
    state.mar = address
    if state.acc > 0:
        state.pc = state.mar
    return ExecResult()


def _define(
    mnemonic: str,
    base: int,
    takes_operand: bool,
    summary: str,
    description: str,
    executor: Optional[Executor],
    span: int = 0,
) -> None:
    syntax = f"{mnemonic} address" if takes_operand else mnemonic
    if mnemonic == "DAT":
        syntax = "label DAT [value]"
    register_instruction(
        InstructionDef(
            mnemonic=mnemonic,
            base=base,
            takes_operand=takes_operand,
            summary=summary,
            description=description,
            syntax=syntax,
            low=base,
            high=base + span,
        )
    )
    if executor is not None:
        register_instruction_impl(mnemonic, executor)


_define("HLT", 0, False, "Halt", "Stop the machine.", exec_hlt)
_define("ADD", 100, True, "Add", "ACC = ACC + memory[address], wrapping past 999 to -999.", exec_add, 99)
_define("SUB", 200, True, "Subtract", "ACC = ACC - memory[address], wrapping past -999 to 999.", exec_sub, 99)
_define("STA", 300, True, "Store", "memory[address] = ACC.", exec_sta, 99)
_define("LDA", 500, True, "Load", "ACC = memory[address].", exec_lda, 99)
_define("BRA", 600, True, "Branch always", "PC = address.", exec_bra, 99)
_define("BRZ", 700, True, "Branch if zero", "PC = address when ACC is 0.", exec_brz, 99)
_define("BRP", 800, True, "Branch if positive", "PC = address when ACC is greater than 0.", exec_brp, 99)
_define("INP", 901, False, "Input", "ACC = next input value (-999..999).", exec_inp)
_define("OUT", 902, False, "Output", "Print ACC as a number.", exec_out)
_define("OTC", 922, False, "Output character", "Print the low 8 bits of ACC as a character.", exec_otc)
_define("DAT", 0, True, "Data", "Reserve a memory cell holding value (default 0).", None)
