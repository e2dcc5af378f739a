"""Multi-track timeline widget.

Paints one lane per track (canonical order) with its keyframes as blocks and
maps pointer input onto the timeline gestures:

    press on a block body   -> KeyframeDrag
    press near a block edge -> KeyframeResize (left or right)
    release without moving  -> toggle selection
    Esc during a gesture    -> cancel, nothing persisted
    Delete / Backspace      -> delete selected keyframes

During a gesture only the gesture's preview copy changes; the store is written
once on release through ``EditorSession.commit_gesture``. Mouse handlers just
forward to ``beginGesture`` / ``dragTo`` / ``endGesture`` so the behaviour can be
driven directly in tests.
"""

from __future__ import annotations

from typing import Optional

from PySide6.QtCore import QRectF, QSize, Qt, Signal
from PySide6.QtGui import QColor, QPainter, QPen
from PySide6.QtWidgets import QWidget

from ..core.schema import Keyframe, Track
from ..core.session import EditorSession
from ..core.timeline import KeyframeDrag, KeyframeResize, tracks_for_project

LANE_HEIGHT = 48
LANE_GAP = 4
EDGE_GRAB_PX = 6
# movement below this is a click, not a drag
CLICK_SLOP_PX = 3

MEDIA_COLORS = {
    "image": QColor(70, 130, 200),
    "video": QColor(90, 90, 210),
    "music": QColor(60, 170, 110),
    "voiceover": QColor(200, 140, 60),
}


class TimelineView(QWidget):
    keyframeClicked = Signal(str)
    gestureFinished = Signal(str)

    def __init__(self, session: Optional[EditorSession] = None, parent=None):
        super().__init__(parent)
        self.setFocusPolicy(Qt.StrongFocus)
        self.setMouseTracking(True)
        self.setMinimumHeight(LANE_HEIGHT * 3 + LANE_GAP * 4)
        self._session: Optional[EditorSession] = None
        self._tracks: list[Track] = []
        self._keyframes: dict[str, list[Keyframe]] = {}
        self._gesture: Optional[KeyframeDrag | KeyframeResize] = None
        self._press_x: float = 0.0
        self._moved = False
        if session is not None:
            self.setSession(session)

    def sizeHint(self):  # type: ignore[override]
        return QSize(800, LANE_HEIGHT * 3 + LANE_GAP * 4)

    # --- data ---

    def setSession(self, session: Optional[EditorSession]):
        if self._session is not None:
            self._session.timelineChanged.disconnect(self.reload)
            self._session.stateChanged.disconnect(self._onStateChanged)
        self._session = session
        self._gesture = None
        if session is not None:
            session.timelineChanged.connect(self.reload)
            session.stateChanged.connect(self._onStateChanged)
        self.reload()

    def reload(self):
        if self._session is None or not self._session.project_id:
            self._tracks = []
            self._keyframes = {}
        else:
            store = self._session.store
            self._tracks = tracks_for_project(store, self._session.project_id)
            self._keyframes = {t.id: store.keyframes.by_track(t.id) for t in self._tracks}
        self.update()

    def tracks(self) -> list[Track]:
        return list(self._tracks)

    def _onStateChanged(self, _state):
        self.update()

    # --- geometry ---

    def scaleSeconds(self) -> float:
        if self._session is None:
            return 30.0
        return self._session.settings.timeline_scale_seconds

    def msToX(self, ms: float) -> float:
        width = max(1, self.width())
        return ms / 1000.0 / self.scaleSeconds() * width

    def laneRect(self, index: int) -> QRectF:
        y = LANE_GAP + index * (LANE_HEIGHT + LANE_GAP)
        return QRectF(0, y, self.width(), LANE_HEIGHT)

    def _displayed(self, keyframe: Keyframe) -> Keyframe:
        if self._gesture is not None and self._gesture.original.id == keyframe.id:
            return self._gesture.preview
        return keyframe

    def keyframeRect(self, keyframe_id: str) -> Optional[QRectF]:
        for index, track in enumerate(self._tracks):
            for keyframe in self._keyframes.get(track.id, []):
                if keyframe.id == keyframe_id:
                    shown = self._displayed(keyframe)
                    lane = self.laneRect(index)
                    x = self.msToX(shown.timestamp)
                    return QRectF(x, lane.y() + 2, max(2.0, self.msToX(shown.duration)), lane.height() - 4)
        return None

    def hitTest(self, x: float, y: float) -> tuple[Optional[str], str]:
        """``(keyframe_id, zone)`` under a point; zone is body, left or right."""
        for index, track in enumerate(self._tracks):
            if not self.laneRect(index).contains(x, y):
                continue
            for keyframe in reversed(self._keyframes.get(track.id, [])):
                rect = self.keyframeRect(keyframe.id)
                if rect is None or not rect.contains(x, y):
                    continue
                if x - rect.left() <= EDGE_GRAB_PX:
                    return keyframe.id, "left"
                if rect.right() - x <= EDGE_GRAB_PX:
                    return keyframe.id, "right"
                return keyframe.id, "body"
        return None, ""

    # --- gestures ---

    def beginGesture(self, keyframe_id: str, zone: str, x: float) -> bool:
        if self._session is None:
            return False
        if zone == "body":
            gesture = self._session.begin_drag(keyframe_id, self.width())
        else:
            gesture = self._session.begin_resize(keyframe_id, self.width(), direction=zone)
        if gesture is None:
            return False
        self._gesture = gesture
        self._press_x = x
        self._moved = False
        return True

    def dragTo(self, x: float):
        if self._gesture is None:
            return
        if abs(x - self._press_x) >= CLICK_SLOP_PX:
            self._moved = True
        if self._moved:
            self._gesture.update(x - self._press_x)
            self.update()

    def endGesture(self) -> Optional[Keyframe]:
        gesture, self._gesture = self._gesture, None
        if gesture is None or self._session is None:
            return None
        keyframe_id = gesture.original.id
        if not self._moved:
            gesture.cancel()
            self._session.select_keyframe(keyframe_id)
            self.keyframeClicked.emit(keyframe_id)
            self.update()
            return None
        result = self._session.commit_gesture(gesture)
        self.gestureFinished.emit(keyframe_id)
        self.reload()
        return result

    def cancelGesture(self):
        if self._gesture is not None:
            self._gesture.cancel()
            self._gesture = None
            self.update()

    def isDragging(self) -> bool:
        return self._gesture is not None

    # --- Qt events ---

    def mousePressEvent(self, event):  # type: ignore[override]
        if event.button() != Qt.LeftButton:
            return super().mousePressEvent(event)
        pos = event.position()
        keyframe_id, zone = self.hitTest(pos.x(), pos.y())
        if keyframe_id is not None:
            self.beginGesture(keyframe_id, zone, pos.x())
        event.accept()

    def mouseMoveEvent(self, event):  # type: ignore[override]
        if self._gesture is not None:
            self.dragTo(event.position().x())
            return
        keyframe_id, zone = self.hitTest(event.position().x(), event.position().y())
        if keyframe_id is not None and zone in ("left", "right"):
            self.setCursor(Qt.SizeHorCursor)
        else:
            self.unsetCursor()

    def mouseReleaseEvent(self, event):  # type: ignore[override]
        if event.button() == Qt.LeftButton and self._gesture is not None:
            self.endGesture()
        event.accept()

    def keyPressEvent(self, event):  # type: ignore[override]
        key = event.key()
        if key == Qt.Key_Escape and self._gesture is not None:
            self.cancelGesture()
            return
        if key in (Qt.Key_Delete, Qt.Key_Backspace) and self._session is not None:
            self._session.delete_selected_keyframes()
            return
        super().keyPressEvent(event)

    def paintEvent(self, event):  # type: ignore[override]
        p = QPainter(self)
        p.fillRect(self.rect(), QColor(30, 30, 30))
        selected = self._session.state.selected_keyframes if self._session else frozenset()
        for index, track in enumerate(self._tracks):
            lane = self.laneRect(index)
            p.fillRect(lane, QColor(45, 45, 45) if not track.locked else QColor(40, 35, 35))
            for keyframe in self._keyframes.get(track.id, []):
                rect = self.keyframeRect(keyframe.id)
                if rect is None:
                    continue
                p.fillRect(rect, MEDIA_COLORS.get(keyframe.data.type, QColor(120, 120, 120)))
                if keyframe.id in selected:
                    p.setPen(QPen(QColor(255, 255, 255), 2))
                    p.drawRect(rect)
                label = keyframe.data.prompt or keyframe.data.type
                p.setPen(QColor(240, 240, 240))
                p.drawText(rect.adjusted(4, 0, -4, 0), Qt.AlignVCenter | Qt.AlignLeft, label)
        if self._session is not None:
            x = self.msToX(self._session.state.player_current_timestamp * 1000)
            p.setPen(QPen(QColor(255, 80, 80), 2))
            p.drawLine(int(x), 0, int(x), self.height())
        p.end()


__all__ = ["TimelineView", "LANE_HEIGHT", "EDGE_GRAB_PX"]
