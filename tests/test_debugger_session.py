import os

import pytest

pytest.importorskip("PyQt6.QtCore")

from PyQt6.QtCore import QCoreApplication  # noqa: E402

from lmc.assembler import AssemblyError  # noqa: E402
from lmc.cpu import ExecutionState  # noqa: E402
from lmc.devices import ScriptedIO  # noqa: E402
from lmc_debugger.breakpoints import BreakKind, BreakpointSet  # noqa: E402
from lmc_debugger.machine_views import MemoryModel, RegisterModel  # noqa: E402
from lmc_debugger.session import DebugSession  # noqa: E402


COUNTDOWN = """// count down
        INP
loop    OUT
        BRZ end
        SUB one
        BRA loop
end     HLT
one     DAT 1
"""


@pytest.fixture(scope="module", autouse=True)
def qt_core():
    return QCoreApplication.instance() or QCoreApplication([])


@pytest.fixture
def source(tmp_path):
    return str(tmp_path / "countdown.lmc")


def _session(source, inputs=(2,)):
    io = ScriptedIO(inputs)
    session = DebugSession(io)
    session.load(COUNTDOWN, source)
    return session, io


def _run_until_stop(session, limit=200):
    for _ in range(limit):
        hit, outcome = session.advance()
        if hit is not None:
            return hit
        if outcome.halted:
            return None
    raise AssertionError("program did not stop")


def test_toggle_line_and_lines_for(source):
    bps = BreakpointSet()
    assert bps.toggle_line(source, 3) is True
    assert list(bps.lines_for(source)) == [3]
    assert bps.toggle_line(source, 3) is False
    assert len(bps) == 0


def test_line_keys_are_absolute_paths(tmp_path):
    bps = BreakpointSet()
    bp = bps.add_line(str(tmp_path / "x" / ".." / "a.lmc"), 1)
    assert bp.source == os.path.abspath(str(tmp_path / "a.lmc"))
    assert bps.add_line(str(tmp_path / "a.lmc"), 1) is bp


def test_watch_validation():
    bps = BreakpointSet()
    with pytest.raises(ValueError):
        bps.add_watch("XYZ", "==", 1)
    with pytest.raises(ValueError):
        bps.add_watch("ACC", "=~", 1)
    with pytest.raises(ValueError):
        bps.toggle_address(100)
    bp = bps.add_watch("acc", ">=", 5)
    assert bp.register == "ACC"
    assert bp.condition() == "ACC >= 5"


def test_check_respects_enabled_and_code_lines(source):
    bps = BreakpointSet()
    bp = bps.add_line(source, 4)
    state = ExecutionState()
    assert bps.check(source, 4, state).breakpoint is bp
    bps.set_enabled(bp.id, False)
    assert bps.check(source, 4, state) is None
    bps.set_enabled(bp.id, True)
    bps.set_code_lines(source, [2, 3])
    assert bps.check(source, 4, state) is None


def test_json_round_trip_drops_run_to(source):
    bps = BreakpointSet()
    bps.add_line(source, 2)
    bps.toggle_address(7)
    bps.add_watch("PC", "==", 3)
    bps.run_to(source, 5)
    data = bps.to_json()
    assert [item["kind"] for item in data["breakpoints"]] == ["line", "address", "watch"]

    restored = BreakpointSet()
    restored.load_json(data)
    assert [bp.kind for bp in restored.all()] == [BreakKind.LINE, BreakKind.ADDRESS, BreakKind.WATCH]
    assert restored.all()[1].address == 7


def test_load_json_skips_unknown_entries():
    bps = BreakpointSet()
    bps.load_json(
        {
            "breakpoints": [
                {"kind": "flag", "line": 1},
                {"kind": "watch", "register": "ZF", "op": "==", "value": 1},
                {"kind": "address", "address": 4},
            ]
        }
    )
    assert [bp.kind for bp in bps.all()] == [BreakKind.ADDRESS]


def test_session_maps_lines_and_symbols(source):
    session, _ = _session(source)
    assert session.line_for_address(0) == 2
    assert session.address_for_line(3) == 1
    assert session.address_for_line(1) is None
    assert session.symbols() == [("loop", 1, 902), ("end", 5, 0), ("one", 6, 1)]


def test_session_stops_on_line_breakpoint_then_resumes(source):
    session, io = _session(source)
    session.breakpoints.add_line(source, 4)

    hit = _run_until_stop(session)
    assert hit is not None
    assert hit.breakpoint.hits == 1
    assert session.state.pc == 2
    assert io.values() == [2]

    hit = _run_until_stop(session)
    assert hit.breakpoint.hits == 2
    assert io.values() == [2, 1]


def test_run_to_is_one_shot(source):
    session, io = _session(source)
    session.breakpoints.run_to(source, 7)
    hit = _run_until_stop(session)
    assert hit.breakpoint.kind == BreakKind.RUN_TO
    assert session.state.pc == 5
    assert len(session.breakpoints) == 0
    assert _run_until_stop(session) is None
    assert io.values() == [2, 1, 0]


def test_address_and_watch_breakpoints(source):
    session, _ = _session(source, inputs=(3,))
    session.breakpoints.add_watch("ACC", "==", 1)
    hit = _run_until_stop(session)
    assert hit.breakpoint.kind == BreakKind.WATCH
    assert session.state.acc == 1

    session.reset()
    session.emulator.io.io.feed(3)
    session.breakpoints.clear()
    session.breakpoints.toggle_address(5)
    hit = _run_until_stop(session)
    assert hit.breakpoint.kind == BreakKind.ADDRESS
    assert session.state.pc == 5


def test_session_relays_output_and_messages(source):
    session, _ = _session(source, inputs=(1,))
    outputs, messages = [], []
    session.output.connect(outputs.append)
    session.message.connect(messages.append)
    assert _run_until_stop(session) is None
    assert outputs == ["1\n", "0\n"]
    assert messages[-1].startswith("Program halted after")


def test_session_load_keeps_previous_program_on_error(source):
    session, _ = _session(source)
    with pytest.raises(AssemblyError):
        session.load("BRA nowhere\n", source)
    assert session.loaded
    assert session.line_for_address(0) == 2


def test_register_and_memory_edits_reject_out_of_range_values():
    state = ExecutionState()
    registers = RegisterModel(lambda: state)
    memory = MemoryModel(lambda: state)
    messages = []
    registers.edited.connect(messages.append)
    memory.edited.connect(messages.append)

    acc = registers.index(4, 1)
    assert registers.setData(acc, "5000") is False
    assert state.acc == 0
    assert messages[-1].startswith("Rejected ACC")
    assert registers.setData(acc, "-999") is True
    assert state.acc == -999

    mailbox = memory.index(1, 2)
    assert memory.setData(mailbox, "1000") is False
    assert state.memory[12] == 0
    assert messages[-1] == "Rejected mailbox 12: Value out of range: 1000"
    assert memory.setData(mailbox, "901") is True
    assert state.memory[12] == 901
