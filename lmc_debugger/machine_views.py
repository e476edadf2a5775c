from __future__ import annotations

from typing import Callable, Dict, List, Optional

from PyQt6.QtCore import QAbstractTableModel, QModelIndex, QObject, Qt, pyqtSignal
from PyQt6.QtGui import QColor

from lmc.cpu import REGISTER_ORDER, EmulationError, ExecutionState
from lmc.instructions import disassemble_word
from lmc.model import MEMORY_SIZE


MEMORY_COLUMNS = 10
CHANGED_BG = QColor("#ffb86c")
PC_BG = QColor("#fff2cc")
DARK_FG = QColor("#1a1b26")


class _StateModel(QAbstractTableModel):
    """Common base for the editable machine tables.

    `refresh` snapshots the previous values so cells that changed during the
    last step can be highlighted.
    """

    edited = pyqtSignal(str)

    def __init__(self, state_getter: Callable[[], ExecutionState], parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._state = state_getter

    @property
    def state(self) -> ExecutionState:
        return self._state()

    def refresh(self) -> None:
        self.beginResetModel()
        self._remember()
        self.endResetModel()

    def forget(self) -> None:
        self.beginResetModel()
        self._clear_history()
        self.endResetModel()

    def _remember(self) -> None:
        raise NotImplementedError

    def _clear_history(self) -> None:
        raise NotImplementedError

    @staticmethod
    def _parse(value) -> Optional[int]:
        try:
            return int(str(value).strip(), 10)
        except ValueError:
            return None


class RegisterModel(_StateModel):
    COLUMNS = ["Register", "Value", "Decoded"]

    def __init__(self, state_getter: Callable[[], ExecutionState], parent: QObject | None = None) -> None:
        super().__init__(state_getter, parent)
        self._shown: Dict[str, int] = {}
        self._before: Dict[str, int] = {}

    def _remember(self) -> None:
        self._before = self._shown
        self._shown = self.state.registers()

    def _clear_history(self) -> None:
        self._before = {}
        self._shown = self.state.registers()

    def rowCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else len(REGISTER_ORDER)

    def columnCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else len(self.COLUMNS)

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole):
        if role != Qt.ItemDataRole.DisplayRole:
            return None
        if orientation == Qt.Orientation.Horizontal:
            return self.COLUMNS[section]
        return None

    def flags(self, index: QModelIndex) -> Qt.ItemFlag:  # type: ignore[override]
        flags = Qt.ItemFlag.ItemIsEnabled | Qt.ItemFlag.ItemIsSelectable
        if index.column() == 1:
            flags |= Qt.ItemFlag.ItemIsEditable
        return flags

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):  # type: ignore[override]
        if not index.isValid():
            return None
        name = REGISTER_ORDER[index.row()]
        value = self.state.get_reg(name)
        changed = name in self._before and self._before[name] != value
        if role in (Qt.ItemDataRole.DisplayRole, Qt.ItemDataRole.EditRole):
            if index.column() == 0:
                return name
            if index.column() == 1:
                return str(value)
            return disassemble_word(value) if name in ("CIR", "MDR") else ""
        if role == Qt.ItemDataRole.BackgroundRole and changed and index.column() == 1:
            return CHANGED_BG
        if role == Qt.ItemDataRole.ForegroundRole and changed and index.column() == 1:
            return DARK_FG
        return None

    def setData(self, index: QModelIndex, value, role: int = Qt.ItemDataRole.EditRole) -> bool:  # type: ignore[override]
        if role != Qt.ItemDataRole.EditRole or index.column() != 1:
            return False
        number = self._parse(value)
        name = REGISTER_ORDER[index.row()]
        if number is None:
            self.edited.emit(f"Invalid value for {name}: {value!r}")
            return False
        try:
            self.state.set_reg(name, number)
        except ValueError as exc:
            self.edited.emit(f"Rejected {name}: {exc}")
            return False
        self.dataChanged.emit(index, index.siblingAtColumn(2))
        self.edited.emit(f"{name} set to {number}")
        return True


class MemoryModel(_StateModel):
    """The 100 mailboxes as a 10x10 grid, row header = tens digit."""

    def __init__(self, state_getter: Callable[[], ExecutionState], parent: QObject | None = None) -> None:
        super().__init__(state_getter, parent)
        self._shown: List[int] = []
        self._before: List[int] = []

    def _remember(self) -> None:
        self._before = self._shown
        self._shown = list(self.state.memory)

    def _clear_history(self) -> None:
        self._before = []
        self._shown = list(self.state.memory)

    @staticmethod
    def address(index: QModelIndex) -> int:
        return index.row() * MEMORY_COLUMNS + index.column()

    def rowCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else MEMORY_SIZE // MEMORY_COLUMNS

    def columnCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else MEMORY_COLUMNS

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole):
        if role != Qt.ItemDataRole.DisplayRole:
            return None
        if orientation == Qt.Orientation.Horizontal:
            return str(section)
        return f"{section * MEMORY_COLUMNS:02d}"

    def flags(self, index: QModelIndex) -> Qt.ItemFlag:  # type: ignore[override]
        return Qt.ItemFlag.ItemIsEnabled | Qt.ItemFlag.ItemIsSelectable | Qt.ItemFlag.ItemIsEditable

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):  # type: ignore[override]
        if not index.isValid():
            return None
        addr = self.address(index)
        word = self.state.memory[addr]
        changed = bool(self._before) and self._before[addr] != word
        if role in (Qt.ItemDataRole.DisplayRole, Qt.ItemDataRole.EditRole):
            return str(word)
        if role == Qt.ItemDataRole.ToolTipRole:
            return f"{addr:02d}: {disassemble_word(word)}"
        if role == Qt.ItemDataRole.TextAlignmentRole:
            return Qt.AlignmentFlag.AlignCenter
        if role == Qt.ItemDataRole.BackgroundRole:
            if changed:
                return CHANGED_BG
            if addr == self.state.pc:
                return PC_BG
        if role == Qt.ItemDataRole.ForegroundRole and (changed or addr == self.state.pc):
            return DARK_FG
        return None

    def setData(self, index: QModelIndex, value, role: int = Qt.ItemDataRole.EditRole) -> bool:  # type: ignore[override]
        if role != Qt.ItemDataRole.EditRole or not index.isValid():
            return False
        addr = self.address(index)
        number = self._parse(value)
        if number is None:
            self.edited.emit(f"Invalid value for mailbox {addr:02d}: {value!r}")
            return False
        try:
            self.state.write_mem(addr, number)
        except EmulationError as exc:
            self.edited.emit(f"Rejected mailbox {addr:02d}: {exc.message}")
            return False
        self.dataChanged.emit(index, index)
        self.edited.emit(f"Mailbox {addr:02d} set to {number} ({disassemble_word(number)})")
        return True
