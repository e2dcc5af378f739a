"""GUI entry point."""

from __future__ import annotations

import logging
import sys

from PySide6.QtWidgets import QApplication

from .config import Settings
from .core.store import EntityStore
from .logging_config import setup_logging
from .services.jobs import JobLifecycleManager, wait_for_workers
from .services.metadata import LocalMetadataExtractor, RemoteMetadataExtractor
from .services.queue_client import FalQueueClient
from .ui.main_window import MainWindow

logger = logging.getLogger(__name__)


def build_jobs(settings: Settings, store: EntityStore) -> JobLifecycleManager:
    client = FalQueueClient.from_settings(settings)
    if settings.metadata_backend == "remote":
        extractor = RemoteMetadataExtractor(client)
    else:
        extractor = LocalMetadataExtractor(settings.cache_dir)
    return JobLifecycleManager(store, client, extractor)


def run():
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    for problem in settings.validate():
        logger.warning(problem)
    store = EntityStore(settings.store_path)
    app = QApplication(sys.argv)
    window = MainWindow(store, build_jobs(settings, store), settings)
    window.openProject()
    window.ensureFFmpeg()
    window.show()
    window.centerOnPreferredScreen()
    code = app.exec()
    wait_for_workers()
    sys.exit(code)


if __name__ == "__main__":
    run()
