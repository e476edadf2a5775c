from __future__ import annotations

from typing import Iterator, Optional, Tuple

from PyQt6.QtCore import QPointF, QRect, QSize, Qt, pyqtSignal
from PyQt6.QtGui import QColor, QFont, QPainter, QPolygonF, QSyntaxHighlighter, QTextCharFormat, QTextCursor
from PyQt6.QtWidgets import QPlainTextEdit, QTextEdit, QWidget

from lmc.instructions import get_instruction_defs
from lmc.operands import INTEGER_RE
from lmc.parser import COMMENT_PREFIX
from lmc_debugger.breakpoints import BreakKind, BreakpointSet


GUTTER_MARK_WIDTH = 16
CURRENT_LINE_COLOR = QColor("#fff2cc")
GUTTER_BG = QColor("#1e1f29")
GUTTER_FG = QColor("#6272a4")


def _char_format(color: str, bold: bool = False) -> QTextCharFormat:
    fmt = QTextCharFormat()
    fmt.setForeground(QColor(color))
    if bold:
        fmt.setFontWeight(QFont.Weight.Bold)
    return fmt


class LmcHighlighter(QSyntaxHighlighter):
    def __init__(self, document) -> None:
        super().__init__(document)
        self.mnemonics = {defn.mnemonic for defn in get_instruction_defs()}
        self.formats = {
            "mnemonic": _char_format("#ff79c6", bold=True),
            "label": _char_format("#50fa7b"),
            "number": _char_format("#ffb86c"),
            "comment": _char_format("#6272a4"),
        }

    def highlightBlock(self, text: str) -> None:
        code, sep, _ = text.partition(COMMENT_PREFIX)
        if sep:
            self.setFormat(len(code), len(text) - len(code), self.formats["comment"])

        cursor = 0
        for position, token in enumerate(code.split()):
            start = code.index(token, cursor)
            cursor = start + len(token)
            if token.upper() in self.mnemonics:
                kind = "mnemonic"
            elif INTEGER_RE.fullmatch(token):
                kind = "number"
            elif position == 0:
                kind = "label"
            else:
                continue
            self.setFormat(start, len(token), self.formats[kind])


class Gutter(QWidget):
    def __init__(self, editor: "SourceEditor") -> None:
        super().__init__(editor)
        self.editor = editor

    def sizeHint(self) -> QSize:
        return QSize(self.editor.gutter_width(), 0)

    def paintEvent(self, event) -> None:
        self.editor.paint_gutter(event)

    def mousePressEvent(self, event) -> None:
        if event.button() == Qt.MouseButton.LeftButton:
            block = self.editor.cursorForPosition(event.position().toPoint()).block()
            self.editor.gutter_clicked.emit(block.blockNumber() + 1)


class SourceEditor(QPlainTextEdit):
    """Plain text editor with line numbers, breakpoint marks and a PC arrow."""

    gutter_clicked = pyqtSignal(int)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.breakpoints: Optional[BreakpointSet] = None
        self.source_key: Optional[str] = None
        self.pc_line: Optional[int] = None
        self.gutter = Gutter(self)
        self.highlighter = LmcHighlighter(self.document())

        self.blockCountChanged.connect(lambda _count: self._fit_gutter())
        self.updateRequest.connect(self._scroll_gutter)
        self._fit_gutter()

    def attach(self, breakpoints: BreakpointSet) -> None:
        self.breakpoints = breakpoints
        breakpoints.changed.connect(self.gutter.update)

    def set_source_key(self, key: Optional[str]) -> None:
        self.source_key = key
        self.gutter.update()

    def gutter_width(self) -> int:
        digits = len(str(max(99, self.blockCount())))
        return GUTTER_MARK_WIDTH + 8 + self.fontMetrics().horizontalAdvance("0") * digits

    def _fit_gutter(self) -> None:
        self.setViewportMargins(self.gutter_width(), 0, 0, 0)

    def _scroll_gutter(self, rect: QRect, dy: int) -> None:
        if dy:
            self.gutter.scroll(0, dy)
            return
        self.gutter.update(0, rect.y(), self.gutter.width(), rect.height())
        if rect.contains(self.viewport().rect()):
            self._fit_gutter()

    def resizeEvent(self, event) -> None:
        super().resizeEvent(event)
        area = self.contentsRect()
        self.gutter.setGeometry(QRect(area.left(), area.top(), self.gutter_width(), area.height()))

    def _visible_lines(self, clip: QRect) -> Iterator[Tuple[int, int]]:
        block = self.firstVisibleBlock()
        top = self.blockBoundingGeometry(block).translated(self.contentOffset()).top()
        while block.isValid() and top <= clip.bottom():
            height = self.blockBoundingRect(block).height()
            if block.isVisible() and top + height >= clip.top():
                yield block.blockNumber() + 1, int(top)
            top += height
            block = block.next()

    def paint_gutter(self, event) -> None:
        painter = QPainter(self.gutter)
        painter.fillRect(event.rect(), GUTTER_BG)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        marks = self.breakpoints.lines_for(self.source_key) if self.breakpoints and self.source_key else {}
        row_height = self.fontMetrics().height()
        mid = GUTTER_MARK_WIDTH // 2

        for line_no, top in self._visible_lines(event.rect()):
            centre_y = top + row_height // 2
            bp = marks.get(line_no)
            if bp is not None:
                colour = QColor("#ffb86c") if bp.kind == BreakKind.RUN_TO else QColor("#ff5555")
                painter.setPen(colour if bp.enabled else GUTTER_FG)
                painter.setBrush(colour if bp.enabled else Qt.BrushStyle.NoBrush)
                painter.drawEllipse(mid - 5, centre_y - 5, 10, 10)
            if line_no == self.pc_line:
                painter.setPen(Qt.PenStyle.NoPen)
                painter.setBrush(CURRENT_LINE_COLOR)
                arrow = QPolygonF(
                    [QPointF(mid - 4, centre_y - 4), QPointF(mid + 5, centre_y), QPointF(mid - 4, centre_y + 4)]
                )
                painter.drawPolygon(arrow)
            painter.setPen(GUTTER_FG)
            painter.drawText(
                GUTTER_MARK_WIDTH,
                top,
                self.gutter.width() - GUTTER_MARK_WIDTH - 4,
                row_height,
                Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter,
                str(line_no),
            )

    def show_pc_line(self, line_no: Optional[int]) -> None:
        self.pc_line = line_no
        selections = []
        block = self.document().findBlockByNumber(line_no - 1) if line_no else None
        if block is not None and block.isValid():
            selection = QTextEdit.ExtraSelection()
            selection.cursor = QTextCursor(block)
            selection.cursor.select(QTextCursor.SelectionType.LineUnderCursor)
            selection.format.setBackground(CURRENT_LINE_COLOR)
            selection.format.setForeground(GUTTER_BG)
            selections.append(selection)
        self.setExtraSelections(selections)
        self.gutter.update()

    def cursor_line(self) -> int:
        return self.textCursor().blockNumber() + 1

    def go_to_line(self, line_no: int) -> None:
        block = self.document().findBlockByNumber(line_no - 1)
        if block.isValid():
            self.setTextCursor(QTextCursor(block))
            self.centerCursor()
            self.setFocus()
