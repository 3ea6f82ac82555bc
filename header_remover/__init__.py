"""Desktop client for the PDF header removal service."""

try:
    from .ui import MainWindow, create_app
except ModuleNotFoundError:  # pragma: no cover - allows non-UI use without PySide6.
    MainWindow = None
    create_app = None

__all__ = ["MainWindow", "create_app"]
