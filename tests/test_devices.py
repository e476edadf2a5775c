import io

import pytest

from lmc.assembler import assemble_source
from lmc.cpu import EmulationError, ExecutionState
from lmc.devices import ConsoleIO, InputUnavailableError, Output, ScriptedIO
from lmc.emulator import Emulator


def _console(text, prompt="> "):
    stdout = io.StringIO()
    return ConsoleIO(stdin=io.StringIO(text), stdout=stdout, prompt=prompt), stdout


def test_console_reads_a_number():
    console, stdout = _console("42\n")
    assert console.get_input() == 42
    assert stdout.getvalue() == "> "


def test_console_reprompts_after_bad_line():
    console, stdout = _console("abc\n  -7 \n", prompt="? ")
    assert console.get_input() == -7
    assert stdout.getvalue() == "? Not a number: 'abc'\n? "


def test_console_end_of_stream():
    console, stdout = _console("")
    with pytest.raises(InputUnavailableError) as exc:
        console.get_input()
    assert exc.value.message == "Input stream closed while waiting for a number"
    assert stdout.getvalue() == "> "


def test_closed_console_stops_emulator_at_inp():
    console, _ = _console("")
    emulator = Emulator(ExecutionState.from_image(assemble_source("INP\nOUT\nHLT\n")), console)
    with pytest.raises(EmulationError) as exc:
        emulator.run()
    assert exc.value.message == "Input stream closed while waiting for a number"
    assert exc.value.address == 0
    assert exc.value.word == 901


def test_console_program_round_trip():
    console, stdout = _console("x\n12\n")
    emulator = Emulator(ExecutionState.from_image(assemble_source("INP\nOUT\nHLT\n")), console)
    emulator.run()
    assert stdout.getvalue() == "> Not a number: 'x'\n> 12\n"


def test_console_prints_rendered_output():
    console, stdout = _console("")
    console.print_output(Output.integer(-5))
    console.print_output(Output.char("H"))
    console.print_output(Output.char("i"))
    assert stdout.getvalue() == "-5\nHi"


def test_output_render():
    assert Output.integer(7).render() == "7\n"
    assert Output.char("A").render() == "A"


def test_scripted_io_echo_and_feed():
    echo = io.StringIO()
    scripted = ScriptedIO([1], echo=echo)
    assert scripted.get_input() == 1
    with pytest.raises(InputUnavailableError):
        scripted.get_input()
    scripted.feed(2, 3)
    assert scripted.get_input() == 2
    scripted.print_output(Output.integer(9))
    scripted.print_output(Output.char("!"))
    assert echo.getvalue() == "9\n!"
    assert scripted.values() == [9, "!"]
    assert scripted.text() == "9\n!"
