import pytest

from lmc.cpu import EmulationError, ExecutionState, wrap_accumulator
from lmc.devices import Output, ScriptedIO
from lmc.instructions import (
    INSTRUCTION_SET,
    MissingOperandError,
    base_encoding,
    build_instruction,
    decode_word,
    disassemble_word,
    exec_add,
    exec_bra,
    exec_brp,
    exec_brz,
    exec_hlt,
    exec_inp,
    exec_lda,
    exec_otc,
    exec_out,
    exec_sta,
    exec_sub,
)
from lmc.model import HALT_PC, Operand


def _state(acc: int = 0, **cells: int) -> ExecutionState:
    state = ExecutionState()
    state.acc = acc
    for key, value in cells.items():
        state.memory[int(key.lstrip("m"))] = value
    return state


def test_instruction_set_has_twelve_opcodes():
    assert set(INSTRUCTION_SET) == {
        "LDA",
        "STA",
        "ADD",
        "SUB",
        "INP",
        "OUT",
        "OTC",
        "HLT",
        "BRZ",
        "BRP",
        "BRA",
        "DAT",
    }


@pytest.mark.parametrize(
    ("mnemonic", "base"),
    [
        ("LDA", 500),
        ("STA", 300),
        ("ADD", 100),
        ("SUB", 200),
        ("INP", 901),
        ("OUT", 902),
        ("OTC", 922),
        ("HLT", 0),
        ("BRZ", 700),
        ("BRP", 800),
        ("BRA", 600),
        ("DAT", 0),
    ],
)
def test_base_encoding(mnemonic, base):
    assert base_encoding(mnemonic) == base
    assert base_encoding(mnemonic.lower()) == base


def test_build_instruction_is_case_insensitive():
    instr = build_instruction("lda", Operand("value", 5, "5"))
    assert instr is not None
    assert instr.mnemonic == "LDA"
    assert instr.operand == Operand("value", 5, "5")


def test_build_instruction_unknown_mnemonic_returns_none():
    assert build_instruction("JMP", Operand("value", 1, "1")) is None
    assert build_instruction("loop", None) is None


@pytest.mark.parametrize("mnemonic", ["LDA", "STA", "ADD", "SUB", "BRZ", "BRP", "BRA"])
def test_build_instruction_requires_operand(mnemonic):
    with pytest.raises(MissingOperandError) as exc:
        build_instruction(mnemonic, None)
    assert exc.value.mnemonic == mnemonic
    assert "Missing operand" in exc.value.message


def test_dat_operand_defaults_to_zero():
    instr = build_instruction("DAT", None)
    assert instr.operand == Operand("value", 0, "0")


def test_no_operand_instruction_drops_supplied_operand():
    instr = build_instruction("HLT", Operand("label", "end", "end"))
    assert instr.mnemonic == "HLT"
    assert instr.operand is None


@pytest.mark.parametrize(
    ("word", "mnemonic", "address"),
    [
        (0, "HLT", 0),
        (901, "INP", 0),
        (902, "OUT", 0),
        (922, "OTC", 0),
        (100, "ADD", 0),
        (199, "ADD", 99),
        (250, "SUB", 50),
        (342, "STA", 42),
        (507, "LDA", 7),
        (699, "BRA", 99),
        (700, "BRZ", 0),
        (815, "BRP", 15),
    ],
)
def test_decode_word(word, mnemonic, address):
    defn, decoded_address = decode_word(word)
    assert defn.mnemonic == mnemonic
    assert decoded_address == address


@pytest.mark.parametrize("word", [-1, 1, 99, 400, 499, 900, 903, 921, 923, 999, 1000])
def test_decode_word_rejects_invalid_words(word):
    assert decode_word(word) is None


def test_disassemble_word():
    assert disassemble_word(507) == "LDA 07"
    assert disassemble_word(901) == "INP"
    assert disassemble_word(450) == "DAT 450"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0, 0),
        (999, 999),
        (-999, -999),
        (1000, -999),
        (1001, -998),
        (1998, -1),
        (-1000, 999),
        (-1001, 998),
        (-1998, 1),
    ],
)
def test_wrap_accumulator(value, expected):
    assert wrap_accumulator(value) == expected


def test_add_overflow_wraps_to_negative():
    state = _state(acc=999, m10=2)
    exec_add(state, 10, ScriptedIO())
    assert state.acc == -998
    assert state.mar == 10


def test_sub_underflow_wraps_to_positive():
    state = _state(acc=-999, m10=2)
    exec_sub(state, 10, ScriptedIO())
    assert state.acc == 998


def test_add_of_negative_value_wraps_downwards():
    state = _state(acc=-999, m3=-5)
    exec_add(state, 3, ScriptedIO())
    assert state.acc == 995


def test_sub_of_negative_value_wraps_upwards():
    state = _state(acc=999, m3=-5)
    exec_sub(state, 3, ScriptedIO())
    assert state.acc == -995


def test_lda_and_sta_move_values_between_memory_and_acc():
    state = _state(m20=123)
    exec_lda(state, 20, ScriptedIO())
    assert state.acc == 123
    exec_sta(state, 21, ScriptedIO())
    assert state.memory[21] == 123
    assert state.mar == 21


@pytest.mark.parametrize(
    ("executor", "acc", "should_jump"),
    [
        (exec_bra, 0, True),
        (exec_bra, -5, True),
        (exec_brz, 0, True),
        (exec_brz, 1, False),
        (exec_brz, -1, False),
        (exec_brp, 1, True),
        (exec_brp, 0, False),
        (exec_brp, -1, False),
    ],
)
def test_branches_follow_accumulator(executor, acc, should_jump):
    state = _state(acc=acc)
    state.pc = 4
    executor(state, 42, ScriptedIO())
    assert state.mar == 42
    assert state.pc == (42 if should_jump else 4)


def test_hlt_sets_terminal_pc():
    state = _state()
    state.pc = 3
    res = exec_hlt(state, 0, ScriptedIO())
    assert res.halt is True
    assert state.pc == HALT_PC
    assert state.halted


def test_inp_reads_from_io_and_validates_range():
    state = _state()
    io = ScriptedIO([-999, 1000])
    exec_inp(state, 0, io)
    assert state.acc == -999

    with pytest.raises(EmulationError) as exc:
        exec_inp(state, 0, io)
    assert "Number out of range" in exc.value.message
    assert state.acc == -999


def test_out_and_otc_emit_tagged_output():
    io = ScriptedIO()
    state = _state(acc=72)
    res = exec_out(state, 0, io)
    assert res.output == Output.integer(72)
    exec_otc(state, 0, io)
    state.acc = 256 + 73
    exec_otc(state, 0, io)
    assert io.outputs == [Output("int", 72), Output("char", "H"), Output("char", "I")]
    assert io.text() == "72\nHI"
