from __future__ import annotations

import operator
import os
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set

from PyQt6.QtCore import QAbstractTableModel, QModelIndex, QObject, Qt, pyqtSignal
from PyQt6.QtGui import QColor
from PyQt6.QtWidgets import QComboBox, QDialog, QDialogButtonBox, QFormLayout, QSpinBox, QWidget

from lmc.cpu import REGISTER_ORDER, ExecutionState
from lmc.model import MAX_VALUE, MEMORY_SIZE, MIN_VALUE


COMPARISONS: Dict[str, Callable[[int, int], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class BreakKind(Enum):
    LINE = "line"
    RUN_TO = "run to"
    ADDRESS = "address"
    WATCH = "watch"


@dataclass
class Breakpoint:
    id: int
    kind: BreakKind
    enabled: bool = True
    source: Optional[str] = None
    line: Optional[int] = None
    address: Optional[int] = None
    register: Optional[str] = None
    op: Optional[str] = None
    value: Optional[int] = None
    hits: int = 0

    @property
    def on_line(self) -> bool:
        return self.kind in (BreakKind.LINE, BreakKind.RUN_TO)

    def where(self) -> str:
        if self.on_line:
            name = os.path.basename(self.source) if self.source else "?"
            return f"{name}:{self.line}"
        if self.kind == BreakKind.ADDRESS:
            return f"@{self.address:02d}"
        return "-"

    def condition(self) -> str:
        if self.kind == BreakKind.WATCH:
            return f"{self.register} {self.op} {self.value}"
        return "-"

    def matches(self, source: Optional[str], line: Optional[int], state: ExecutionState) -> bool:
        if self.on_line:
            return source is not None and self.source == source and self.line == line
        if self.kind == BreakKind.ADDRESS:
            return state.pc == self.address
        compare = COMPARISONS.get(self.op or "")
        if compare is None or self.register is None or self.value is None:
            return False
        return compare(state.get_reg(self.register), self.value)


@dataclass
class BreakHit:
    breakpoint: Breakpoint
    reason: str


def _source_key(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    return os.path.abspath(path)


class BreakpointSet(QObject):
    """Line, address and register-watch breakpoints for the debugger.

    Line breakpoints are keyed by absolute source path so one set can be
    persisted across every file the debugger opens.
    """

    changed = pyqtSignal()

    def __init__(self) -> None:
        super().__init__()
        self._items: Dict[int, Breakpoint] = {}
        self._code_lines: Dict[str, Set[int]] = {}
        self._last_id = 0

    def _add(self, bp: Breakpoint) -> Breakpoint:
        self._items[bp.id] = bp
        self.changed.emit()
        return bp

    def _allocate_id(self) -> int:
        self._last_id += 1
        return self._last_id

    def __len__(self) -> int:
        return len(self._items)

    def all(self) -> List[Breakpoint]:
        return [self._items[key] for key in sorted(self._items)]

    def get(self, bp_id: int) -> Optional[Breakpoint]:
        return self._items.get(bp_id)

    def lines_for(self, source: Optional[str]) -> Dict[int, Breakpoint]:
        key = _source_key(source)
        marks: Dict[int, Breakpoint] = {}
        for bp in self.all():
            if bp.on_line and bp.source == key and bp.line is not None:
                # a plain line breakpoint wins over a pending run-to mark
                if bp.line not in marks or bp.kind == BreakKind.LINE:
                    marks[bp.line] = bp
        return marks

    def _find_line(self, kind: BreakKind, key: Optional[str], line: int) -> Optional[Breakpoint]:
        for bp in self._items.values():
            if bp.kind == kind and bp.source == key and bp.line == line:
                return bp
        return None

    def add_line(self, source: Optional[str], line: int) -> Breakpoint:
        key = _source_key(source)
        existing = self._find_line(BreakKind.LINE, key, line)
        if existing is not None:
            return existing
        return self._add(Breakpoint(self._allocate_id(), BreakKind.LINE, source=key, line=line))

    def toggle_line(self, source: Optional[str], line: int) -> bool:
        key = _source_key(source)
        existing = self._find_line(BreakKind.LINE, key, line)
        if existing is not None:
            self.remove(existing.id)
            return False
        self.add_line(source, line)
        return True

    def run_to(self, source: Optional[str], line: int) -> Breakpoint:
        key = _source_key(source)
        for bp in [bp for bp in self._items.values() if bp.kind == BreakKind.RUN_TO]:
            del self._items[bp.id]
        return self._add(Breakpoint(self._allocate_id(), BreakKind.RUN_TO, source=key, line=line))

    def toggle_address(self, address: int) -> bool:
        if not 0 <= address < MEMORY_SIZE:
            raise ValueError(f"Address out of range: {address}")
        for bp in self._items.values():
            if bp.kind == BreakKind.ADDRESS and bp.address == address:
                self.remove(bp.id)
                return False
        self._add(Breakpoint(self._allocate_id(), BreakKind.ADDRESS, address=address))
        return True

    def add_watch(self, register: str, op: str, value: int) -> Breakpoint:
        name = register.upper()
        if name not in REGISTER_ORDER:
            raise ValueError(f"Unknown register: {register}")
        if op not in COMPARISONS:
            raise ValueError(f"Unknown comparison: {op}")
        return self._add(Breakpoint(self._allocate_id(), BreakKind.WATCH, register=name, op=op, value=int(value)))

    def set_enabled(self, bp_id: int, enabled: bool) -> None:
        bp = self._items.get(bp_id)
        if bp is None or bp.enabled == enabled:
            return
        bp.enabled = enabled
        self.changed.emit()

    def remove(self, bp_id: int) -> None:
        if self._items.pop(bp_id, None) is not None:
            self.changed.emit()

    def clear(self) -> None:
        self._items.clear()
        self.changed.emit()

    def set_code_lines(self, source: Optional[str], lines: Iterable[int]) -> None:
        key = _source_key(source)
        if key is None:
            return
        self._code_lines[key] = set(lines)
        self.changed.emit()

    def has_code(self, source: Optional[str], line: Optional[int]) -> bool:
        key = _source_key(source)
        if key is None or line is None:
            return False
        lines = self._code_lines.get(key)
        return lines is None or line in lines

    def check(self, source: Optional[str], line: Optional[int], state: ExecutionState) -> Optional[BreakHit]:
        key = _source_key(source)
        for bp in self.all():
            if not bp.enabled or not bp.matches(key, line, state):
                continue
            if bp.on_line and not self.has_code(key, line):
                continue
            if bp.kind == BreakKind.WATCH:
                reason = f"{bp.condition()} (now {state.get_reg(bp.register)})"
            else:
                reason = f"{bp.kind.value} breakpoint at {bp.where()}"
            return BreakHit(bp, reason)
        return None

    def record_hit(self, bp: Breakpoint) -> None:
        bp.hits += 1
        if bp.kind == BreakKind.RUN_TO:
            self._items.pop(bp.id, None)
        self.changed.emit()

    def to_json(self) -> dict:
        items = []
        for bp in self.all():
            if bp.kind == BreakKind.RUN_TO:
                continue
            data = asdict(bp)
            data["kind"] = bp.kind.value
            items.append(data)
        return {"breakpoints": items}

    def load_json(self, data: dict) -> None:
        self._items.clear()
        self._last_id = 0
        for raw in data.get("breakpoints", []):
            try:
                kind = BreakKind(raw.get("kind"))
            except ValueError:
                continue
            if kind == BreakKind.WATCH and (raw.get("register") not in REGISTER_ORDER or raw.get("op") not in COMPARISONS):
                continue
            bp = Breakpoint(
                id=self._allocate_id(),
                kind=kind,
                enabled=bool(raw.get("enabled", True)),
                source=raw.get("source"),
                line=raw.get("line"),
                address=raw.get("address"),
                register=raw.get("register"),
                op=raw.get("op"),
                value=raw.get("value"),
                hits=int(raw.get("hits", 0)),
            )
            self._items[bp.id] = bp
        self.changed.emit()


class BreakpointTableModel(QAbstractTableModel):
    COLUMNS = ["On", "Kind", "Where", "Condition", "Hits"]

    def __init__(self, breakpoints: BreakpointSet, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self.breakpoints = breakpoints
        self._rows: List[Breakpoint] = []
        breakpoints.changed.connect(self.reload)
        self.reload()

    def reload(self) -> None:
        self.beginResetModel()
        self._rows = self.breakpoints.all()
        self.endResetModel()

    def row_breakpoint(self, row: int) -> Optional[Breakpoint]:
        return self._rows[row] if 0 <= row < len(self._rows) else None

    def rowCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else len(self._rows)

    def columnCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else len(self.COLUMNS)

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole):
        if orientation == Qt.Orientation.Horizontal and role == Qt.ItemDataRole.DisplayRole:
            return self.COLUMNS[section]
        return None

    def flags(self, index: QModelIndex) -> Qt.ItemFlag:  # type: ignore[override]
        if not index.isValid():
            return Qt.ItemFlag.NoItemFlags
        flags = Qt.ItemFlag.ItemIsEnabled | Qt.ItemFlag.ItemIsSelectable
        if index.column() == 0:
            flags |= Qt.ItemFlag.ItemIsUserCheckable
        return flags

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):  # type: ignore[override]
        bp = self.row_breakpoint(index.row()) if index.isValid() else None
        if bp is None:
            return None
        column = index.column()
        if role == Qt.ItemDataRole.CheckStateRole and column == 0:
            return Qt.CheckState.Checked if bp.enabled else Qt.CheckState.Unchecked
        if role == Qt.ItemDataRole.DisplayRole:
            if column == 1:
                return bp.kind.value
            if column == 2:
                where = bp.where()
                if bp.on_line and not self.breakpoints.has_code(bp.source, bp.line):
                    where += " (no code)"
                return where
            if column == 3:
                return bp.condition()
            if column == 4:
                return str(bp.hits)
        if role == Qt.ItemDataRole.ForegroundRole:
            if not bp.enabled:
                return QColor("#6272a4")
            if bp.on_line and not self.breakpoints.has_code(bp.source, bp.line):
                return QColor("#ff5555")
        return None

    def setData(self, index: QModelIndex, value, role: int = Qt.ItemDataRole.EditRole) -> bool:  # type: ignore[override]
        bp = self.row_breakpoint(index.row()) if index.isValid() else None
        if bp is None or index.column() != 0 or role != Qt.ItemDataRole.CheckStateRole:
            return False
        self.breakpoints.set_enabled(bp.id, value in (Qt.CheckState.Checked, Qt.CheckState.Checked.value))
        return True


class WatchDialog(QDialog):
    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Add Register Watch")
        form = QFormLayout(self)

        self.register_box = QComboBox()
        self.register_box.addItems(REGISTER_ORDER)
        self.register_box.setCurrentText("ACC")
        form.addRow("Register", self.register_box)

        self.op_box = QComboBox()
        self.op_box.addItems(list(COMPARISONS))
        form.addRow("Break when", self.op_box)

        self.value_box = QSpinBox()
        self.value_box.setRange(MIN_VALUE, MAX_VALUE)
        form.addRow("Value", self.value_box)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        form.addRow(buttons)

    def ask(self) -> Optional[tuple[str, str, int]]:
        if self.exec() != QDialog.DialogCode.Accepted:
            return None
        return self.register_box.currentText(), self.op_box.currentText(), self.value_box.value()
