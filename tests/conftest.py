from pathlib import Path

import pytest

from lmc.assembler import assemble_source
from lmc.devices import ScriptedIO
from lmc.emulator import Emulator
from lmc.cpu import ExecutionState


PROGRAMS_DIR = Path(__file__).resolve().parent.parent / "programs"


@pytest.fixture
def programs_dir() -> Path:
    return PROGRAMS_DIR


@pytest.fixture
def run_source():
    def _run(text: str, inputs=()):
        io = ScriptedIO(inputs)
        emulator = Emulator(ExecutionState.from_image(assemble_source(text)), io)
        emulator.run()
        return emulator, io

    return _run
