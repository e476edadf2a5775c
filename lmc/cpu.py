from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from lmc.model import HALT_PC, LMCError, MAX_VALUE, MEMORY_SIZE, MIN_VALUE


REGISTER_ORDER = ["PC", "CIR", "MAR", "MDR", "ACC"]

# PC may sit one past the end after the last mailbox runs, or at HALT_PC.
REGISTER_RANGES = {
    "PC": (HALT_PC, MEMORY_SIZE),
    "CIR": (MIN_VALUE, MAX_VALUE),
    "MAR": (0, MEMORY_SIZE - 1),
    "MDR": (MIN_VALUE, MAX_VALUE),
    "ACC": (MIN_VALUE, MAX_VALUE),
}


class EmulationError(LMCError):
    def __init__(self, message: str, address: Optional[int] = None, word: Optional[int] = None) -> None:
        super().__init__(message)
        self.address = address
        self.word = word


def wrap_accumulator(value: int) -> int:
    if value > MAX_VALUE:
        diff = value - MAX_VALUE
        return MIN_VALUE + diff - 1
    if value < MIN_VALUE:
        diff = MIN_VALUE - value
        return MAX_VALUE - diff + 1
    return value


def in_value_range(value: int) -> bool:
    return MIN_VALUE <= value <= MAX_VALUE


def check_register(name: str, value: int) -> int:
    low, high = REGISTER_RANGES[name]
    if not low <= value <= high:
        raise ValueError(f"{name.lower()} must be between {low} and {high}, got {value}.")
    return value


def check_image(image: Sequence[int]) -> List[int]:
    if len(image) != MEMORY_SIZE:
        raise ValueError(f"Memory image must hold {MEMORY_SIZE} words, got {len(image)}")
    words = [int(word) for word in image]
    for addr, word in enumerate(words):
        if not in_value_range(word):
            raise ValueError(f"mailbox {addr:02d} must be between {MIN_VALUE} and {MAX_VALUE}, got {word}.")
    return words


@dataclass
class ExecutionState:
    pc: int = 0
    cir: int = 0
    mar: int = 0
    mdr: int = 0
    acc: int = 0
    memory: List[int] = field(default_factory=lambda: [0] * MEMORY_SIZE)

    def __post_init__(self) -> None:
        self.memory = check_image(self.memory)

    @classmethod
    def from_image(cls, image: Sequence[int]) -> "ExecutionState":
        return cls(memory=list(image))

    def reset(self, image: Optional[Sequence[int]] = None) -> None:
        self.pc = 0
        self.cir = 0
        self.mar = 0
        self.mdr = 0
        self.acc = 0
        if image is not None:
            self.memory = check_image(image)

    @property
    def halted(self) -> bool:
        return self.pc == HALT_PC or self.pc >= MEMORY_SIZE or self.pc < 0

    def get_reg(self, name: str) -> int:
        upper = name.upper()
        if upper not in REGISTER_ORDER:
            raise KeyError(name)
        return getattr(self, upper.lower())

    def set_reg(self, name: str, value: int) -> None:
        upper = name.upper()
        if upper not in REGISTER_ORDER:
            raise KeyError(name)
        setattr(self, upper.lower(), check_register(upper, int(value)))

    def registers(self) -> Dict[str, int]:
        return {name: self.get_reg(name) for name in REGISTER_ORDER}

    def read_mem(self, addr: int) -> int:
        if not 0 <= addr < MEMORY_SIZE:
            raise EmulationError(f"Address out of range: {addr}", address=addr, word=self.cir)
        return self.memory[addr]

    def write_mem(self, addr: int, value: int) -> None:
        if not 0 <= addr < MEMORY_SIZE:
            raise EmulationError(f"Address out of range: {addr}", address=addr, word=self.cir)
        if not in_value_range(value):
            raise EmulationError(f"Value out of range: {value}", address=addr, word=self.cir)
        self.memory[addr] = value

    def to_json(self) -> dict:
        data: dict = {"schema_version": 1}
        data.update({name.lower(): value for name, value in self.registers().items()})
        data["memory"] = list(self.memory)
        return data

    @classmethod
    def from_json(cls, data: dict) -> "ExecutionState":
        memory = data.get("memory")
        if not isinstance(memory, list) or len(memory) != MEMORY_SIZE:
            raise ValueError(f"memory must be an array of {MEMORY_SIZE} integers.")
        if not all(isinstance(word, int) and not isinstance(word, bool) for word in memory):
            raise ValueError("memory must only contain integers.")
        registers = {}
        for name in REGISTER_ORDER:
            value = data.get(name.lower(), 0)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name.lower()} must be an integer.")
            registers[name.lower()] = check_register(name, value)
        return cls(memory=list(memory), **registers)
