from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future

from PySide6 import QtCore, QtGui, QtPdf, QtPdfWidgets, QtWidgets

from header_remover.async_runner import AsyncLoopRunner
from header_remover.config import load_config
from header_remover.controller import HeaderRemovalController, Notification, SubmissionOutcome
from header_remover.error_handling import UserFacingError, as_user_facing_error
from header_remover.preview import PreviewHandle
from header_remover.selection import SelectedFile
from header_remover.structured_logging import StructuredLogger
from header_remover.submission import (
    BAND_MM_RANGE,
    DEFAULT_BAND_MM,
    DEFAULT_MARGIN_MM,
    MARGIN_MM_RANGE,
    SubmissionParameters,
)


def _format_bytes(size_bytes: int) -> str:
    if size_bytes < 0:
        return "Unknown"
    units = ["B", "KB", "MB", "GB"]
    size = float(size_bytes)
    for unit in units:
        if size < 1024 or unit == units[-1]:
            if unit == "B":
                return f"{int(size)} {unit}"
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def _first_pdf_path(urls: list[QtCore.QUrl]) -> str | None:
    for url in urls:
        local_path = url.toLocalFile()
        if local_path and local_path.lower().endswith(".pdf"):
            return local_path
    return None


class PdfDropZone(QtWidgets.QLabel):
    placeholder_text = "Drop a PDF here or click to choose one.\nOnly a single PDF can be selected."
    file_chosen = QtCore.Signal(str)

    def __init__(self, parent: QtWidgets.QWidget | None = None) -> None:
        super().__init__(parent)
        self.setAcceptDrops(True)
        self.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.setMinimumHeight(110)
        self.setFrameShape(QtWidgets.QFrame.Shape.StyledPanel)
        self.setCursor(QtGui.QCursor(QtCore.Qt.CursorShape.PointingHandCursor))
        self.setText(self.placeholder_text)

    def _accept_drag(self, event: QtGui.QDragEnterEvent | QtGui.QDragMoveEvent) -> None:
        mime = event.mimeData()
        if mime.hasUrls() and _first_pdf_path(mime.urls()) is not None:
            event.acceptProposedAction()
        else:
            event.ignore()

    def dragEnterEvent(self, event: QtGui.QDragEnterEvent) -> None:
        self._accept_drag(event)

    def dragMoveEvent(self, event: QtGui.QDragMoveEvent) -> None:
        self._accept_drag(event)

    def dropEvent(self, event: QtGui.QDropEvent) -> None:
        mime = event.mimeData()
        path = _first_pdf_path(mime.urls()) if mime.hasUrls() else None
        if path is None:
            event.ignore()
            return
        self.file_chosen.emit(path)
        event.acceptProposedAction()

    def mousePressEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() == QtCore.Qt.MouseButton.LeftButton and self.isEnabled():
            self.choose_file()
            return
        super().mousePressEvent(event)

    def choose_file(self) -> None:
        path, _ = QtWidgets.QFileDialog.getOpenFileName(
            self,
            "Select PDF",
            "",
            "PDF files (*.pdf)",
        )
        if path:
            self.file_chosen.emit(path)


class PdfPreview(QtWidgets.QStackedWidget):
    def __init__(self, parent: QtWidgets.QWidget | None = None) -> None:
        super().__init__(parent)
        self.document = QtPdf.QPdfDocument(self)
        self.placeholder = QtWidgets.QLabel("Preview will appear here")
        self.placeholder.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.placeholder.setObjectName("previewPlaceholder")
        self.view = QtPdfWidgets.QPdfView(self)
        self.view.setObjectName("pdfView")
        self.view.setPageMode(QtPdfWidgets.QPdfView.PageMode.MultiPage)
        self.view.setZoomMode(QtPdfWidgets.QPdfView.ZoomMode.FitToWidth)
        self.view.setDocument(self.document)
        self.addWidget(self.placeholder)
        self.addWidget(self.view)
        self.setMinimumHeight(320)
        self._url: str | None = None

    @property
    def url(self) -> str | None:
        return self._url

    def show_handle(self, handle: PreviewHandle | None) -> None:
        self.document.close()
        if handle is None:
            self._url = None
            self.placeholder.setText("Preview will appear here")
            self.setCurrentWidget(self.placeholder)
            return
        self._url = handle.url
        self.document.load(str(handle.path))
        if self.document.status() == QtPdf.QPdfDocument.Status.Error:
            self.placeholder.setText("Preview unavailable for this file.")
            self.setCurrentWidget(self.placeholder)
            return
        self.setCurrentWidget(self.view)


class ErrorDialog(QtWidgets.QDialog):
    def __init__(
        self,
        error: UserFacingError,
        retry_action: Callable[[], None] | None = None,
        parent: QtWidgets.QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle(error.title)
        self.setObjectName("errorDialog")
        self._retry_action = retry_action

        layout = QtWidgets.QVBoxLayout(self)
        layout.setSpacing(10)

        title = QtWidgets.QLabel(error.title)
        title.setObjectName("errorTitleLabel")
        title.setStyleSheet("font-weight: 600;")
        summary = QtWidgets.QLabel(error.summary)
        summary.setObjectName("errorSummaryLabel")
        summary.setWordWrap(True)
        layout.addWidget(title)
        layout.addWidget(summary)

        self.suggestion_labels: list[QtWidgets.QLabel] = []
        for fix in error.suggested_fixes:
            label = QtWidgets.QLabel(f"- {fix}")
            label.setObjectName("errorSuggestedFix")
            label.setWordWrap(True)
            layout.addWidget(label)
            self.suggestion_labels.append(label)

        code_label = QtWidgets.QLabel(f"Error code: {error.error_code}")
        code_label.setObjectName("errorCodeLabel")
        layout.addWidget(code_label)

        button_box = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.StandardButton.Close)
        button_box.rejected.connect(self.reject)
        layout.addWidget(button_box)

        self.retry_button: QtWidgets.QPushButton | None = None
        if retry_action is not None and error.can_retry:
            self.retry_button = QtWidgets.QPushButton("Retry")
            self.retry_button.setObjectName("errorRetryButton")
            self.retry_button.clicked.connect(self._handle_retry)
            button_box.addButton(self.retry_button, QtWidgets.QDialogButtonBox.ButtonRole.AcceptRole)

    def _handle_retry(self) -> None:
        if self._retry_action is not None:
            self._retry_action()
        self.accept()


class MainWindow(QtWidgets.QMainWindow):
    busy_changed = QtCore.Signal(bool)
    notification_received = QtCore.Signal(object)
    submission_finished = QtCore.Signal(object)

    def __init__(
        self,
        controller: HeaderRemovalController | None = None,
        runner: AsyncLoopRunner | None = None,
        show_dialogs: bool = True,
    ) -> None:
        super().__init__()
        self.setWindowTitle("PDF Header Remover")
        self._show_dialogs = show_dialogs
        self._owns_logger = controller is None
        self._logger: StructuredLogger | None = None
        if controller is None:
            config = load_config()
            self._logger = StructuredLogger.from_config("client", config)
            controller = HeaderRemovalController(
                config,
                notifier=self.notification_received.emit,
                logger=self._logger,
            )
        self.controller = controller
        self._runner = runner or AsyncLoopRunner()
        self._pending: Future[SubmissionOutcome | None] | None = None
        self._torn_down = False
        self.last_notification: Notification | None = None

        self._build_ui()
        self.busy_changed.connect(self._apply_busy_state)
        self.notification_received.connect(self._show_notification)
        self.submission_finished.connect(self._finish_submission)
        self._unsubscribers = [
            self.controller.selection.subscribe(self._on_selection_changed),
            self.controller.preview.subscribe(self.preview.show_handle),
            self.controller.in_flight.subscribe(self.busy_changed.emit),
        ]
        self._on_selection_changed(self.controller.selection.current())
        self.preview.show_handle(self.controller.preview.current())

    def _build_ui(self) -> None:
        central = QtWidgets.QWidget()
        central.setObjectName("centralPanel")
        layout = QtWidgets.QVBoxLayout(central)
        layout.setContentsMargins(16, 16, 16, 16)
        layout.setSpacing(10)

        file_group = QtWidgets.QGroupBox("PDF File")
        file_group.setObjectName("fileGroup")
        file_layout = QtWidgets.QVBoxLayout(file_group)
        self.drop_zone = PdfDropZone()
        self.drop_zone.setObjectName("dropZone")
        self.drop_zone.file_chosen.connect(self.controller.select_file)
        file_row = QtWidgets.QHBoxLayout()
        self.file_label = QtWidgets.QLabel("No file selected.")
        self.file_label.setObjectName("fileLabel")
        self.remove_button = QtWidgets.QPushButton("Remove")
        self.remove_button.setObjectName("removeFileButton")
        self.remove_button.clicked.connect(self.controller.remove_file)
        file_row.addWidget(self.file_label, 1)
        file_row.addWidget(self.remove_button)
        file_layout.addWidget(self.drop_zone)
        file_layout.addLayout(file_row)

        preview_group = QtWidgets.QGroupBox("Preview")
        preview_group.setObjectName("previewGroup")
        preview_layout = QtWidgets.QVBoxLayout(preview_group)
        self.preview = PdfPreview()
        self.preview.setObjectName("pdfPreview")
        preview_layout.addWidget(self.preview)

        options_group = QtWidgets.QGroupBox("Header Removal")
        options_group.setObjectName("optionsGroup")
        form = QtWidgets.QFormLayout(options_group)
        self.header_text_edit = QtWidgets.QPlainTextEdit()
        self.header_text_edit.setObjectName("headerTextEdit")
        self.header_text_edit.setPlaceholderText("One header text per line, e.g.\nCompany Name\nCONFIDENTIAL\nPage")
        self.band_spin = QtWidgets.QDoubleSpinBox()
        self.band_spin.setObjectName("bandMmSpin")
        self.band_spin.setRange(*BAND_MM_RANGE)
        self.band_spin.setDecimals(1)
        self.band_spin.setSuffix(" mm")
        self.band_spin.setValue(DEFAULT_BAND_MM)
        self.margin_spin = QtWidgets.QDoubleSpinBox()
        self.margin_spin.setObjectName("marginMmSpin")
        self.margin_spin.setRange(*MARGIN_MM_RANGE)
        self.margin_spin.setDecimals(1)
        self.margin_spin.setSuffix(" mm")
        self.margin_spin.setValue(DEFAULT_MARGIN_MM)
        self.ignore_case_check = QtWidgets.QCheckBox("Case-insensitive matching")
        self.ignore_case_check.setObjectName("ignoreCaseCheck")
        form.addRow("Header texts (one per line)", self.header_text_edit)
        form.addRow("Top band", self.band_spin)
        form.addRow("Left/right margin", self.margin_spin)
        form.addRow("", self.ignore_case_check)

        self.submit_button = QtWidgets.QPushButton("Remove Headers and Save PDF")
        self.submit_button.setObjectName("submitButton")
        self.submit_button.clicked.connect(self.start_submission)

        layout.addWidget(file_group)
        layout.addWidget(preview_group, 1)
        layout.addWidget(options_group)
        layout.addWidget(self.submit_button)
        self.setCentralWidget(central)
        self.statusBar().showMessage(f"Service: {self.controller.config.endpoint_url}")

    def current_parameters(self) -> SubmissionParameters:
        return SubmissionParameters(
            header_text=self.header_text_edit.toPlainText(),
            band_mm=self.band_spin.value(),
            margin_mm=self.margin_spin.value(),
            ignore_case=self.ignore_case_check.isChecked(),
        )

    def start_submission(self) -> None:
        if self.controller.busy or self._pending is not None:
            return
        future = self._runner.submit(self.controller.submit(self.current_parameters()))
        self._pending = future
        future.add_done_callback(self.submission_finished.emit)

    def _finish_submission(self, future: Future[SubmissionOutcome | None]) -> None:
        if future is not self._pending:
            return
        self._pending = None
        try:
            future.result()
        except Exception as exc:  # noqa: BLE001
            self._show_error(as_user_facing_error(exc))

    def _on_selection_changed(self, file: SelectedFile | None) -> None:
        if file is None:
            self.file_label.setText("No file selected.")
            self.remove_button.setEnabled(False)
            return
        self.file_label.setText(f"{file.name} ({_format_bytes(file.size)})")
        self.remove_button.setEnabled(not self.controller.busy)

    def _apply_busy_state(self, busy: bool) -> None:
        self.submit_button.setEnabled(not busy)
        self.submit_button.setText("Processing..." if busy else "Remove Headers and Save PDF")
        self.drop_zone.setEnabled(not busy)
        self.remove_button.setEnabled(not busy and self.controller.selection.current() is not None)

    def _show_notification(self, notification: Notification) -> None:
        self.last_notification = notification
        self.statusBar().showMessage(notification.message, 8000)
        if notification.level == "error":
            self._show_error(
                UserFacingError(
                    title="Header removal failed",
                    summary=notification.message,
                    suggested_fixes=("Check the inputs and try again.",),
                    error_code=notification.error_code or "APP-001",
                    can_retry=True,
                )
            )

    def _show_error(self, error: UserFacingError) -> None:
        if not self._show_dialogs:
            return
        dialog = ErrorDialog(error, retry_action=self.start_submission, parent=self)
        dialog.open()

    def teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self.preview.show_handle(None)
        self.controller.teardown()
        self._runner.shutdown()
        if self._owns_logger and self._logger is not None:
            self._logger.close()

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:
        self.teardown()
        super().closeEvent(event)


def create_app() -> QtWidgets.QApplication:
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    return app


def main() -> int:
    app = create_app()
    window = MainWindow()
    window.resize(720, 860)
    window.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
