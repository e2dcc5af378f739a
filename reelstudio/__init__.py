"""Top-level application package exports.

Public API surface (keep minimal):
 - MainWindow (UI entry point)
 - EditorSession (per-project editing operations)
 - Settings (configuration)
"""

from .config import Settings  # noqa: F401
from .core.session import EditorSession  # noqa: F401
from .ui.main_window import MainWindow  # noqa: F401

__version__ = "0.1.0"

__all__ = ["MainWindow", "EditorSession", "Settings"]
