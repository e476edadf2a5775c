from __future__ import annotations

import sys
from collections import deque
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, TextIO

from lmc.model import LMCError


class InputUnavailableError(LMCError):
    pass


@dataclass(frozen=True)
class Output:
    kind: str  # int, char
    value: int | str

    @classmethod
    def integer(cls, value: int) -> "Output":
        return cls(kind="int", value=int(value))

    @classmethod
    def char(cls, value: str) -> "Output":
        return cls(kind="char", value=value)

    def render(self) -> str:
        if self.kind == "char":
            return str(self.value)
        return f"{self.value}\n"


class IOHandler(Protocol):
    def get_input(self) -> int:
        ...

    def print_output(self, output: Output) -> None:
        ...


class ConsoleIO:
    def __init__(
        self,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        prompt: str = "> ",
    ) -> None:
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.prompt = prompt

    def get_input(self) -> int:
        while True:
            self.stdout.write(self.prompt)
            self.stdout.flush()
            line = self.stdin.readline()
            if not line:
                raise InputUnavailableError("Input stream closed while waiting for a number")
            raw = line.strip()
            try:
                return int(raw, 10)
            except ValueError:
                self.stdout.write(f"Not a number: {raw!r}\n")

    def print_output(self, output: Output) -> None:
        self.stdout.write(output.render())
        self.stdout.flush()


class ScriptedIO:
    def __init__(self, inputs: Iterable[int] = (), echo: Optional[TextIO] = None) -> None:
        self.inputs: deque[int] = deque(int(value) for value in inputs)
        self.outputs: List[Output] = []
        self.echo = echo

    def feed(self, *values: int) -> None:
        self.inputs.extend(int(value) for value in values)

    def get_input(self) -> int:
        if not self.inputs:
            raise InputUnavailableError("No more scripted input values")
        return self.inputs.popleft()

    def print_output(self, output: Output) -> None:
        self.outputs.append(output)
        if self.echo is not None:
            self.echo.write(output.render())

    def values(self) -> List[int | str]:
        return [output.value for output in self.outputs]

    def text(self) -> str:
        return "".join(output.render() for output in self.outputs)
