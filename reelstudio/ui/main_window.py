"""Main application window (UI layer).

Layout:
+------------------------------------------------------------------+
| Media list + generate form | Preview (active items) + transport  |
+------------------------------------------------------------------+
|                      Multi-track timeline                        |
+------------------------------------------------------------------+

The window holds no editing logic of its own. It owns one ``EditorSession``
for the open project and forwards user actions to it.
"""

from __future__ import annotations

import logging
import mimetypes
import shutil
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction, QGuiApplication, QKeySequence, QShortcut
from PySide6.QtWidgets import (
    QComboBox,
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from ..config import Settings
from ..core import state as st
from ..core.project import create_project
from ..core.session import EditorSession
from ..core.store import EntityStore
from ..errors import ReelstudioError
from ..services.endpoints import endpoints_for, find_endpoint
from ..services.jobs import JobLifecycleManager
from ..utils.timefmt import format_transport
from .timeline_view import TimelineView

logger = logging.getLogger(__name__)

STATUS_MARKS = {"pending": "…", "running": "⟳", "completed": "", "failed": "✗"}


class MainWindow(QMainWindow):
    def __init__(
        self,
        store: EntityStore,
        jobs: JobLifecycleManager,
        settings: Optional[Settings] = None,
    ):
        super().__init__()
        self.store = store
        self.jobs = jobs
        self.settings = settings or Settings()
        self.session: Optional[EditorSession] = None
        self.setWindowTitle("Reelstudio")
        self.setGeometry(100, 100, 1100, 700)
        self._createMenuBar()
        self._createEditorLayout()

    def centerOnPreferredScreen(self):
        """Center the window on ``settings.screen_index`` or the primary screen."""
        screens = QGuiApplication.screens()
        if not screens:
            return
        idx = self.settings.screen_index
        screen = screens[idx] if idx is not None and 0 <= idx < len(screens) else None
        if screen is None:
            screen = QGuiApplication.primaryScreen() or screens[0]
        geo = screen.availableGeometry()
        win_geo = self.frameGeometry()
        win_geo.moveCenter(geo.center())
        self.move(win_geo.topLeft())

    def _createMenuBar(self):
        menu_bar = self.menuBar()
        file_menu = menu_bar.addMenu("File")
        upload_action = QAction("Upload Media", self)
        upload_action.triggered.connect(self._uploadMedia)
        file_menu.addAction(upload_action)
        exit_action = QAction("Exit", self)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)
        about_menu = menu_bar.addMenu("About")
        about_action = QAction("About Reelstudio", self)
        about_action.triggered.connect(self._showAboutDialog)
        about_menu.addAction(about_action)

    def _showAboutDialog(self):
        QMessageBox.about(
            self,
            "About Reelstudio",
            "Reelstudio\nAssemble short videos from generated and uploaded media.",
        )

    def _createEditorLayout(self):
        central = QWidget()
        root = QVBoxLayout()
        top = QSplitter()
        top.setOrientation(Qt.Horizontal)

        # --- media + generate (left) ---
        left = QWidget()
        left_layout = QVBoxLayout()
        left_layout.setContentsMargins(0, 0, 0, 0)
        self.media_list = QListWidget()
        self.media_list.itemSelectionChanged.connect(self._mediaSelectionChanged)
        self.media_list.itemDoubleClicked.connect(lambda _item: self._addSelectedToTimeline())
        left_layout.addWidget(self.media_list, stretch=1)
        media_buttons = QHBoxLayout()
        self.add_btn = QPushButton("Add to timeline")
        self.add_btn.clicked.connect(self._addSelectedToTimeline)
        self.delete_media_btn = QPushButton("Delete")
        self.delete_media_btn.clicked.connect(self._deleteSelectedMedia)
        media_buttons.addWidget(self.add_btn)
        media_buttons.addWidget(self.delete_media_btn)
        left_layout.addLayout(media_buttons)

        self.media_type_combo = QComboBox()
        self.media_type_combo.addItems(list(st.GENERATE_MEDIA_TYPES))
        self.media_type_combo.currentTextChanged.connect(self._mediaTypeChanged)
        self.endpoint_combo = QComboBox()
        self.prompt_edit = QLineEdit()
        self.prompt_edit.setPlaceholderText("Describe what to generate")
        self.prompt_edit.textChanged.connect(
            lambda text: self._dispatch(st.set_generate_data, prompt=text)
        )
        self.prompt_edit.returnPressed.connect(self._generate)
        self.generate_btn = QPushButton("Generate")
        self.generate_btn.clicked.connect(self._generate)
        form = QHBoxLayout()
        form.addWidget(self.media_type_combo)
        form.addWidget(self.endpoint_combo, stretch=1)
        left_layout.addLayout(form)
        left_layout.addWidget(self.prompt_edit)
        left_layout.addWidget(self.generate_btn)
        left.setLayout(left_layout)
        top.addWidget(left)

        # --- preview + transport (right) ---
        right = QWidget()
        right_layout = QVBoxLayout()
        right_layout.setContentsMargins(0, 0, 0, 0)
        self.preview = QLabel("No media on the timeline")
        self.preview.setAlignment(Qt.AlignCenter)
        self.preview.setMinimumHeight(240)
        right_layout.addWidget(self.preview, stretch=1)
        transport = QHBoxLayout()
        self.start_btn = QPushButton("|<")
        self.play_btn = QPushButton("Play")
        self.end_btn = QPushButton(">|")
        self.time_label = QLabel(format_transport(0, 0))
        transport.addWidget(self.start_btn)
        transport.addWidget(self.play_btn)
        transport.addWidget(self.end_btn)
        transport.addStretch(1)
        transport.addWidget(self.time_label)
        self.play_btn.clicked.connect(self._togglePlay)
        self.start_btn.clicked.connect(lambda: self.session and self.session.player.seek_to_start())
        self.end_btn.clicked.connect(lambda: self.session and self.session.player.seek_to_end())
        right_layout.addLayout(transport)
        right.setLayout(right_layout)
        top.addWidget(right)

        root.addWidget(top, stretch=1)
        self.timeline_view = TimelineView()
        root.addWidget(self.timeline_view)
        central.setLayout(root)
        self.setCentralWidget(central)

        QShortcut(QKeySequence(Qt.Key_Space), self, activated=self._togglePlay)
        self._mediaTypeChanged(self.media_type_combo.currentText())

    # --- session lifecycle ---

    def openProject(self, project_id: Optional[str] = None) -> EditorSession:
        """Open ``project_id`` (or the first/new project) in a fresh session."""
        if project_id is None:
            projects = self.store.projects.list()
            project_id = projects[0].id if projects else create_project(self.store, title="Untitled").id
        if self.session is not None:
            self.session.close()
            self.session.deleteLater()
        session = EditorSession(self.store, self.jobs, project_id, self.settings, parent=self)
        session.mediaChanged.connect(lambda _mid: self._refreshMedia())
        session.jobFinished.connect(self._jobFinished)
        session.stateChanged.connect(self._stateChanged)
        session.timelineChanged.connect(self._refreshPreview)
        session.player.frameUpdate.connect(lambda _f: self._refreshPreview())
        session.player.seeked.connect(lambda _f: self._refreshPreview())
        self.session = session
        self.timeline_view.setSession(session)
        self.setWindowTitle(f"Reelstudio - {session.project.title or 'Untitled'}")
        self._refreshMedia()
        self._refreshPreview()
        return session

    def closeEvent(self, event):  # type: ignore[override]
        if self.session is not None:
            self.session.close()
        super().closeEvent(event)

    # --- helpers ---

    def _dispatch(self, reducer, *args, **kwargs):
        if self.session is not None:
            self.session.dispatch(reducer, *args, **kwargs)

    def _selectedMediaId(self) -> Optional[str]:
        item = self.media_list.currentItem()
        return item.data(Qt.UserRole) if item is not None else None

    def _refreshMedia(self):
        current = self._selectedMediaId()
        self.media_list.clear()
        if self.session is None:
            return
        for media in self.store.media.by_project(self.session.project_id):
            label = media.input.get("prompt") or media.input.get("name") or media.id[:8]
            mark = STATUS_MARKS.get(media.status, "")
            item = QListWidgetItem(f"{mark} [{media.media_type}] {label}".strip())
            item.setData(Qt.UserRole, media.id)
            self.media_list.addItem(item)
            if media.id == current:
                self.media_list.setCurrentItem(item)

    def _refreshPreview(self):
        if self.session is None:
            return
        player = self.session.player
        items = player.active_items()
        self.preview.setText(
            "\n".join(f"{i.media_type}: {i.url}" for i in items) or "(nothing at playhead)"
        )
        composition = player.composition
        total = composition.duration_seconds if composition else 0
        self.time_label.setText(format_transport(player.current_time(), total))

    def _stateChanged(self, state: st.EditorState):
        self.play_btn.setText("Pause" if state.player_state == "playing" else "Play")

    # --- actions ---

    def _mediaTypeChanged(self, media_type: str):
        self.endpoint_combo.clear()
        for api in endpoints_for(media_type):
            self.endpoint_combo.addItem(api.label, api.endpoint_id)
        self._dispatch(st.set_generate_media_type, media_type)

    def _mediaSelectionChanged(self):
        self._dispatch(st.set_selected_media, self._selectedMediaId())

    def _generate(self):
        if self.session is None:
            return
        api = find_endpoint(self.endpoint_combo.currentData() or "")
        if api is None:
            return
        try:
            self.session.generate(api)
        except ReelstudioError as e:
            QMessageBox.warning(self, "Generation failed", str(e))
            return
        self.prompt_edit.clear()

    def _uploadMedia(self):
        if self.session is None:
            return
        file_path, _ = QFileDialog.getOpenFileName(
            self, "Upload Media", "", "Media Files (*.mp4 *.mov *.png *.jpg *.jpeg *.mp3 *.wav)"
        )
        if not file_path:
            return
        mime, _ = mimetypes.guess_type(file_path)
        try:
            self.session.upload(Path(file_path).resolve().as_uri(), mime or "", name=Path(file_path).name)
        except (ReelstudioError, ValueError) as e:
            QMessageBox.critical(self, "Error", f"Failed to add media: {e}")

    def _addSelectedToTimeline(self):
        media_id = self._selectedMediaId()
        if self.session is None or media_id is None:
            return
        try:
            self.session.add_to_track(media_id)
        except ReelstudioError as e:
            self.statusBar().showMessage(str(e), 4000)

    def _deleteSelectedMedia(self):
        media_id = self._selectedMediaId()
        if self.session is not None and media_id is not None:
            self.session.delete_media(media_id)

    def _jobFinished(self, media_id: str, status: str):
        self.statusBar().showMessage(f"Generation {status}: {media_id[:8]}", 4000)

    def _togglePlay(self):
        if self.session is not None:
            self.session.player.toggle()

    def ensureFFmpeg(self):
        """Warn when ffmpeg is missing; MoviePy needs it for metadata."""
        if shutil.which("ffmpeg") is None:
            QMessageBox.warning(
                self,
                "FFmpeg Missing",
                "FFmpeg not found in PATH. Media metadata (duration, frames) will be unavailable.",
            )


__all__ = ["MainWindow"]
