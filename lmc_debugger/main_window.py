from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from PyQt6.QtCore import QModelIndex, Qt, QTimer
from PyQt6.QtGui import QAction, QFontDatabase, QKeySequence, QShortcut, QTextCursor
from PyQt6.QtWidgets import (
    QAbstractItemView,
    QApplication,
    QFileDialog,
    QHBoxLayout,
    QHeaderView,
    QInputDialog,
    QLabel,
    QMainWindow,
    QMenu,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QSpinBox,
    QSplitter,
    QTableView,
    QTableWidget,
    QTableWidgetItem,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from lmc.assembler import AssemblyError
from lmc.config import Settings, load_settings
from lmc.devices import InputUnavailableError, Output
from lmc.instructions import get_instruction_defs
from lmc.model import MAX_VALUE, MIN_VALUE
from lmc.parser import ParseError
from lmc_debugger.breakpoints import BreakpointSet, BreakpointTableModel, WatchDialog
from lmc_debugger.editor import SourceEditor
from lmc_debugger.machine_views import MemoryModel, RegisterModel
from lmc_debugger.session import DebugSession


logger = logging.getLogger(__name__)

STATE_FILE = Path.home() / ".lmc_debugger.json"
UNSAVED_KEY = "__unsaved__"
MAX_RECENT = 8
FILE_FILTER = "LMC Files (*.lmc);;All Files (*)"


class DebuggerIO:
    """INP prompts with a dialog; OUT/OTC go to the output panel via the session."""

    def __init__(self, window: "MainWindow") -> None:
        self.window = window

    def get_input(self) -> int:
        value, ok = QInputDialog.getInt(
            self.window, "INP", f"Input value ({MIN_VALUE} to {MAX_VALUE}):", 0, -9999, 9999
        )
        if not ok:
            raise InputUnavailableError("Input cancelled")
        self.window.log(f"INP <- {value}")
        return value

    def print_output(self, output: Output) -> None:
        logger.debug("Program output %r", output)


class MainWindow(QMainWindow):
    def __init__(self, settings: Optional[Settings] = None) -> None:
        super().__init__()
        self.settings = settings or load_settings()
        self.resize(1200, 740)

        self.current_file: Optional[Path] = None
        self.dirty = True
        self.run_state = "Ready"
        self.recent_files: List[str] = []

        self.breakpoints = BreakpointSet()
        self.session = DebugSession(DebuggerIO(self), self.breakpoints)
        self.session.allow_duplicate_labels = self.settings.allow_duplicate_labels
        self.session.output.connect(self.append_output)
        self.session.message.connect(self.log)

        self.timer = QTimer(self)
        self.timer.timeout.connect(self.on_tick)

        self._build_ui()
        self._build_menus()
        self._bind_keys()
        self._restore()
        self._set_current_file(None)
        self.refresh_views(reset_history=True)

    # -- construction -------------------------------------------------------

    def _build_ui(self) -> None:
        mono = QFontDatabase.systemFont(QFontDatabase.SystemFont.FixedFont)

        self.editor = SourceEditor()
        self.editor.setFont(mono)
        self.editor.attach(self.breakpoints)
        self.editor.gutter_clicked.connect(self.toggle_line_breakpoint)
        self.editor.textChanged.connect(self._mark_dirty)

        toolbar = QHBoxLayout()
        for caption, slot in (
            ("Assemble", self.assemble),
            ("Step", self.step_once),
            ("Run", self.run),
            ("Pause", self.pause),
            ("Reset", self.reset_machine),
        ):
            button = QPushButton(caption)
            button.clicked.connect(slot)
            toolbar.addWidget(button)
        toolbar.addWidget(QLabel("Steps/s"))
        self.speed = QSpinBox()
        self.speed.setRange(1, 1000)
        self.speed.setValue(10)
        self.speed.valueChanged.connect(self._apply_speed)
        toolbar.addWidget(self.speed)
        toolbar.addStretch(1)

        left = QWidget()
        left_layout = QVBoxLayout(left)
        left_layout.setContentsMargins(0, 0, 0, 0)
        left_layout.addLayout(toolbar)
        left_layout.addWidget(self.editor)

        self.register_model = RegisterModel(lambda: self.session.state, self)
        self.register_model.edited.connect(self.log)
        self.register_view = QTableView()
        self.register_view.setModel(self.register_model)
        self.register_view.verticalHeader().setVisible(False)
        self.register_view.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)

        self.memory_model = MemoryModel(lambda: self.session.state, self)
        self.memory_model.edited.connect(self.log)
        self.memory_view = QTableView()
        self.memory_view.setFont(mono)
        self.memory_view.setModel(self.memory_model)
        self.memory_view.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        self.memory_view.setContextMenuPolicy(Qt.ContextMenuPolicy.CustomContextMenu)
        self.memory_view.customContextMenuRequested.connect(self._memory_menu)

        self.machine_split = QSplitter(Qt.Orientation.Vertical)
        self.machine_split.addWidget(self.register_view)
        self.machine_split.addWidget(self.memory_view)

        self.upper_split = QSplitter(Qt.Orientation.Horizontal)
        self.upper_split.addWidget(left)
        self.upper_split.addWidget(self.machine_split)
        self.upper_split.setSizes([640, 560])

        self.output_view = QPlainTextEdit()
        self.output_view.setReadOnly(True)
        self.output_view.setFont(mono)
        self.log_view = QPlainTextEdit()
        self.log_view.setReadOnly(True)

        self.tabs = QTabWidget()
        self.tabs.addTab(self._with_button(self.output_view, "Clear", self.output_view.clear), "Output")
        self.tabs.addTab(self._with_button(self.log_view, "Clear", self.log_view.clear), "Log")
        self.tabs.addTab(self._build_breakpoint_tab(), "Breakpoints")
        self.tabs.addTab(self._build_symbol_tab(), "Symbols")
        self.tabs.addTab(self._build_reference_tab(), "Instructions")

        self.outer_split = QSplitter(Qt.Orientation.Vertical)
        self.outer_split.addWidget(self.upper_split)
        self.outer_split.addWidget(self.tabs)
        self.outer_split.setSizes([520, 220])
        self.setCentralWidget(self.outer_split)

        self.status_label = QLabel()
        self.position_label = QLabel()
        self.statusBar().addWidget(self.status_label)
        self.statusBar().addPermanentWidget(self.position_label)

    def _with_button(self, view: QWidget, caption: str, slot) -> QWidget:
        panel = QWidget()
        layout = QVBoxLayout(panel)
        layout.setContentsMargins(2, 2, 2, 2)
        layout.addWidget(view)
        button = QPushButton(caption)
        button.clicked.connect(slot)
        layout.addWidget(button, alignment=Qt.AlignmentFlag.AlignRight)
        return panel

    def _build_breakpoint_tab(self) -> QWidget:
        self.breakpoint_model = BreakpointTableModel(self.breakpoints, self)
        self.breakpoint_view = QTableView()
        self.breakpoint_view.setModel(self.breakpoint_model)
        self.breakpoint_view.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self.breakpoint_view.horizontalHeader().setStretchLastSection(True)
        self.breakpoint_view.doubleClicked.connect(self._go_to_breakpoint)

        buttons = QHBoxLayout()
        for caption, slot in (
            ("Add watch", self.add_watch),
            ("Remove", self.remove_selected_breakpoint),
            ("Clear all", self.breakpoints.clear),
        ):
            button = QPushButton(caption)
            button.clicked.connect(slot)
            buttons.addWidget(button)
        buttons.addStretch(1)

        panel = QWidget()
        layout = QVBoxLayout(panel)
        layout.setContentsMargins(2, 2, 2, 2)
        layout.addWidget(self.breakpoint_view)
        layout.addLayout(buttons)
        return panel

    def _build_symbol_tab(self) -> QWidget:
        self.symbol_table = QTableWidget(0, 3)
        self.symbol_table.setHorizontalHeaderLabels(["Label", "Address", "Value"])
        self.symbol_table.verticalHeader().setVisible(False)
        self.symbol_table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self.symbol_table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        self.symbol_table.cellDoubleClicked.connect(self._go_to_symbol)
        return self.symbol_table

    def _build_reference_tab(self) -> QWidget:
        defs = sorted(get_instruction_defs(), key=lambda defn: (defn.mnemonic == "DAT", defn.low))
        table = QTableWidget(len(defs), 4)
        table.setHorizontalHeaderLabels(["Mnemonic", "Code", "Syntax", "Description"])
        table.verticalHeader().setVisible(False)
        table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        table.horizontalHeader().setStretchLastSection(True)
        for row, defn in enumerate(defs):
            if defn.mnemonic == "DAT":
                code = "data"
            elif defn.takes_operand:
                code = f"{defn.base // 100}xx"
            else:
                code = str(defn.base)
            cells = (defn.mnemonic, code, defn.syntax, f"{defn.summary}. {defn.description}")
            for column, text in enumerate(cells):
                table.setItem(row, column, QTableWidgetItem(text))
        return table

    def _build_menus(self) -> None:
        file_menu = self.menuBar().addMenu("&File")
        for caption, slot, keys in (
            ("&New", self.new_file, QKeySequence.StandardKey.New),
            ("&Open...", self.open_file, QKeySequence.StandardKey.Open),
            ("&Save", self.save_file, QKeySequence.StandardKey.Save),
            ("Save &As...", self.save_file_as, QKeySequence.StandardKey.SaveAs),
        ):
            action = QAction(caption, self)
            action.setShortcut(keys)
            action.triggered.connect(slot)
            file_menu.addAction(action)
        self.recent_menu = file_menu.addMenu("Open &Recent")
        file_menu.addSeparator()
        quit_action = QAction("&Quit", self)
        quit_action.triggered.connect(self.close)
        file_menu.addAction(quit_action)

    def _bind_keys(self) -> None:
        self.shortcuts: List[QShortcut] = []
        for keys, slot in (
            ("F5", self.run),
            ("Shift+F5", self.pause),
            ("Ctrl+Shift+F5", self.reset_machine),
            ("F7", self.assemble),
            ("F9", lambda: self.toggle_line_breakpoint(self.editor.cursor_line())),
            ("F10", self.step_once),
            ("Ctrl+F10", self.run_to_cursor),
            ("Ctrl+=", lambda: self.speed.setValue(self.speed.value() * 2)),
            ("Ctrl+-", lambda: self.speed.setValue(max(1, self.speed.value() // 2))),
        ):
            shortcut = QShortcut(QKeySequence(keys), self)
            shortcut.activated.connect(slot)
            self.shortcuts.append(shortcut)

    # -- persistence --------------------------------------------------------

    def _restore(self) -> None:
        if not STATE_FILE.exists():
            return
        try:
            data = json.loads(STATE_FILE.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable debugger state %s: %s", STATE_FILE, exc)
            return
        layout = data.get("layout", {})
        if layout.get("geometry"):
            self.restoreGeometry(bytes.fromhex(layout["geometry"]))
        for key, splitter in (
            ("outer", self.outer_split),
            ("upper", self.upper_split),
            ("machine", self.machine_split),
        ):
            if layout.get(key):
                splitter.setSizes([int(size) for size in layout[key]])
        if layout.get("speed"):
            self.speed.setValue(int(layout["speed"]))
        self.recent_files = [path for path in data.get("recent", []) if Path(path).exists()][:MAX_RECENT]
        self._rebuild_recent_menu()
        self.breakpoints.load_json(data.get("breakpoints", {}))

    def _persist(self) -> None:
        data = {
            "layout": {
                "geometry": self.saveGeometry().toHex().data().decode("ascii"),
                "outer": self.outer_split.sizes(),
                "upper": self.upper_split.sizes(),
                "machine": self.machine_split.sizes(),
                "speed": self.speed.value(),
            },
            "recent": self.recent_files,
            "breakpoints": self.breakpoints.to_json(),
        }
        try:
            STATE_FILE.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not save debugger state: %s", exc)

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.timer.stop()
        self._persist()
        super().closeEvent(event)

    def _rebuild_recent_menu(self) -> None:
        self.recent_menu.clear()
        for path in self.recent_files:
            action = self.recent_menu.addAction(path)
            action.triggered.connect(lambda _checked=False, p=path: self.open_path(p))
        self.recent_menu.setEnabled(bool(self.recent_files))

    def _remember_recent(self, path: Path) -> None:
        text = str(path)
        self.recent_files = [text] + [item for item in self.recent_files if item != text]
        del self.recent_files[MAX_RECENT:]
        self._rebuild_recent_menu()

    # -- files --------------------------------------------------------------

    def _source_key(self) -> str:
        return str(self.current_file) if self.current_file else UNSAVED_KEY

    def _set_current_file(self, path: Optional[Path]) -> None:
        self.current_file = path.resolve() if path else None
        self.editor.set_source_key(self._source_key())
        name = self.current_file.name if self.current_file else "untitled"
        self.setWindowTitle(f"LMC Debugger - {name}")

    def _mark_dirty(self) -> None:
        self.dirty = True

    def new_file(self) -> None:
        self.timer.stop()
        self.editor.clear()
        self._set_current_file(None)
        self.output_view.clear()

    def open_file(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Open program", "", FILE_FILTER)
        if path:
            self.open_path(path)

    def open_path(self, path: str) -> bool:
        source = Path(path)
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as exc:
            QMessageBox.warning(self, "Open failed", str(exc))
            if str(source) in self.recent_files:
                self.recent_files.remove(str(source))
                self._rebuild_recent_menu()
            return False
        self.timer.stop()
        self.editor.setPlainText(text)
        self._set_current_file(source)
        self._remember_recent(self.current_file)
        self.log(f"Opened {self.current_file}")
        return self.assemble()

    def save_file(self) -> None:
        if self.current_file is None:
            self.save_file_as()
            return
        try:
            self.current_file.write_text(self.editor.toPlainText(), encoding="utf-8")
        except OSError as exc:
            QMessageBox.warning(self, "Save failed", str(exc))
            return
        self.log(f"Saved {self.current_file}")

    def save_file_as(self) -> None:
        path, _ = QFileDialog.getSaveFileName(self, "Save program", "", FILE_FILTER)
        if not path:
            return
        self._set_current_file(Path(path))
        self._remember_recent(self.current_file)
        self.save_file()

    # -- execution ----------------------------------------------------------

    def assemble(self) -> bool:
        self.timer.stop()
        try:
            self.session.load(self.editor.toPlainText(), self._source_key())
        except ParseError as exc:
            self._show_error(f"Parse error on line {exc.line_no}: {exc.message}", exc.line_no)
            return False
        except AssemblyError as exc:
            line_no = self.session.line_for_address(exc.position) if exc.position is not None else None
            self._show_error(f"Assembly error: {exc.message}", line_no)
            return False
        self.dirty = False
        self.output_view.clear()
        self.set_run_state("Ready")
        self.refresh_views(reset_history=True)
        return True

    def _show_error(self, text: str, line_no: Optional[int]) -> None:
        self.set_run_state("Error")
        self.log(text)
        if line_no:
            self.editor.go_to_line(line_no)

    def _ready_to_execute(self) -> bool:
        if self.dirty or not self.session.loaded:
            if not self.assemble():
                return False
        if self.session.emulator.halted:
            self.log("Machine halted. Reset to run again.")
            return False
        return True

    def run(self) -> None:
        if not self._ready_to_execute():
            return
        self.set_run_state("Running")
        self._apply_speed()
        self.timer.start()

    def pause(self) -> None:
        self.timer.stop()
        if self.run_state == "Running":
            self.set_run_state("Paused")
            self.refresh_views()

    def step_once(self) -> None:
        self.timer.stop()
        if not self._ready_to_execute():
            return
        outcome = self.session.step()
        self._after_step(outcome.halted, outcome.error is not None)
        if not outcome.halted:
            self.set_run_state("Paused")

    def run_to_cursor(self) -> None:
        line_no = self.editor.cursor_line()
        if self.dirty and not self.assemble():
            return
        if self.session.address_for_line(line_no) is None:
            self.log(f"Line {line_no} holds no instruction.")
            return
        self.breakpoints.run_to(self._source_key(), line_no)
        self.run()

    def on_tick(self) -> None:
        hit, outcome = self.session.advance()
        if hit is not None:
            self.timer.stop()
            self.set_run_state("Paused")
            self.refresh_views()
            return
        if outcome is not None:
            self._after_step(outcome.halted, outcome.error is not None)

    def _after_step(self, halted: bool, failed: bool) -> None:
        if halted:
            self.timer.stop()
            self.set_run_state("Error" if failed else "Halted")
        self.refresh_views()

    def reset_machine(self) -> None:
        self.timer.stop()
        if self.dirty or not self.session.loaded:
            self.assemble()
            return
        self.session.reset()
        self.output_view.clear()
        self.set_run_state("Ready")
        self.refresh_views(reset_history=True)
        self.log("Machine reset.")

    def _apply_speed(self) -> None:
        self.timer.setInterval(max(1, 1000 // self.speed.value()))

    # -- breakpoints --------------------------------------------------------

    def toggle_line_breakpoint(self, line_no: int) -> None:
        added = self.breakpoints.toggle_line(self._source_key(), line_no)
        self.log(f"{'Added' if added else 'Removed'} breakpoint on line {line_no}")

    def add_watch(self) -> None:
        answer = WatchDialog(self).ask()
        if answer is None:
            return
        register, op, value = answer
        self.breakpoints.add_watch(register, op, value)

    def remove_selected_breakpoint(self) -> None:
        for index in self.breakpoint_view.selectionModel().selectedRows():
            bp = self.breakpoint_model.row_breakpoint(index.row())
            if bp is not None:
                self.breakpoints.remove(bp.id)

    def _go_to_breakpoint(self, index: QModelIndex) -> None:
        bp = self.breakpoint_model.row_breakpoint(index.row())
        if bp is None:
            return
        if bp.on_line and bp.line:
            self.editor.go_to_line(bp.line)
        elif bp.address is not None:
            line_no = self.session.line_for_address(bp.address)
            if line_no:
                self.editor.go_to_line(line_no)

    def _memory_menu(self, pos) -> None:
        index = self.memory_view.indexAt(pos)
        if not index.isValid():
            return
        address = MemoryModel.address(index)
        menu = QMenu(self)
        toggle = menu.addAction(f"Toggle breakpoint at {address:02d}")
        source = menu.addAction("Show source line")
        source.setEnabled(self.session.line_for_address(address) is not None)
        chosen = menu.exec(self.memory_view.viewport().mapToGlobal(pos))
        if chosen is toggle:
            added = self.breakpoints.toggle_address(address)
            self.log(f"{'Added' if added else 'Removed'} breakpoint at address {address:02d}")
        elif chosen is source:
            self.editor.go_to_line(self.session.line_for_address(address))

    # -- views --------------------------------------------------------------

    def refresh_views(self, reset_history: bool = False) -> None:
        if reset_history:
            self.register_model.forget()
            self.memory_model.forget()
        else:
            self.register_model.refresh()
            self.memory_model.refresh()
        self._refresh_symbols()
        halted = self.session.emulator.halted
        self.editor.show_pc_line(None if halted else self.session.current_line())
        self._refresh_status()

    def _refresh_symbols(self) -> None:
        symbols = self.session.symbols()
        self.symbol_table.setRowCount(len(symbols))
        for row, (name, address, value) in enumerate(symbols):
            for column, text in enumerate((name, f"{address:02d}", str(value))):
                self.symbol_table.setItem(row, column, QTableWidgetItem(text))

    def _go_to_symbol(self, row: int, _column: int) -> None:
        item = self.symbol_table.item(row, 1)
        if item is None:
            return
        line_no = self.session.line_for_address(int(item.text()))
        if line_no:
            self.editor.go_to_line(line_no)

    def _refresh_status(self) -> None:
        state = self.session.state
        line_no = self.session.current_line()
        self.status_label.setText(self.run_state)
        self.position_label.setText(
            f"Line: {line_no if line_no is not None else '-'} | PC: {state.pc} | Steps: {self.session.emulator.steps}"
        )

    def set_run_state(self, run_state: str) -> None:
        self.run_state = run_state
        self._refresh_status()

    def append_output(self, text: str) -> None:
        cursor = self.output_view.textCursor()
        cursor.movePosition(QTextCursor.MoveOperation.End)
        cursor.insertText(text)
        self.output_view.setTextCursor(cursor)

    def log(self, message: str) -> None:
        logger.info(message)
        self.log_view.appendPlainText(message)


def run_app(path: Optional[str] = None, settings: Optional[Settings] = None) -> int:
    app = QApplication.instance() or QApplication([])
    window = MainWindow(settings)
    if path:
        window.open_path(path)
    window.show()
    return app.exec()
