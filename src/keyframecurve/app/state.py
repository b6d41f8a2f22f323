"""
Application State Store
=======================
Qt-side owner of the layer manager and the bridge between the editor and widgets.

Why is this file needed?
------------------------
The editor reports every mutation synchronously. Widgets must not redo
expensive work at that rate, so the store:
1. Re-emits editor/layer callbacks as Qt signals.
2. Throttles keyframe text regeneration (NOTIFY_THROTTLE_MS).
3. Debounces autosave to disk (AUTOSAVE_DELAY_MS).
"""
from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Optional

from PySide6.QtCore import QObject, QStandardPaths, QTimer, Signal

from keyframecurve.config import AUTOSAVE_DELAY_MS, NOTIFY_THROTTLE_MS
from keyframecurve.model.io import IOManager, LayerFormatError
from keyframecurve.model.layers import LayerManager, LayerSet, create_default_layer
from keyframecurve.model.output import ExportFormat, gen_keyframe_text, generate_css_at_rule, normalize_format

if TYPE_CHECKING:
    from keyframecurve.model.editor import Editor

logger = logging.getLogger(__name__)

AUTOSAVE_FILENAME = "layers.json"


def default_autosave_path() -> str:
    base = QStandardPaths.writableLocation(QStandardPaths.StandardLocation.AppDataLocation)
    return os.path.join(base, AUTOSAVE_FILENAME)


def load_saved_layers(path: Optional[str]) -> LayerSet:
    """Layers from the autosave file, or the default layer if it is missing or unreadable."""
    if not path or not os.path.exists(path):
        return LayerSet([create_default_layer()])
    try:
        return IOManager.load_json(path)
    except (OSError, json.JSONDecodeError, LayerFormatError) as e:
        logger.warning(f"Error loading saved layers from '{path}', using defaults. {e}")
        return LayerSet([create_default_layer()])


class Store(QObject):
    """Central state store with signals for the timeline, inspector and output pane."""
    layers_changed = Signal()
    selection_changed = Signal(object)
    adding_changed = Signal(bool)
    dragging_changed = Signal(bool)
    keyframes_changed = Signal(str)

    def __init__(self, manager: Optional[LayerManager] = None, autosave_path: Optional[str] = None) -> None:
        super().__init__()
        self.autosave_path = autosave_path
        self.manager = manager if manager is not None else LayerManager(load_saved_layers(autosave_path))
        self.manager.on_change = self._on_layers_changed
        self.editor: Optional[Editor] = None

        self.format: ExportFormat = ExportFormat.CSS
        self.rule_name = "my-anim"
        self.is_dirty = False

        # debounce
        self._save_timer = QTimer(self)
        self._save_timer.setSingleShot(True)
        self._save_timer.setInterval(AUTOSAVE_DELAY_MS)
        self._save_timer.timeout.connect(self.save_now)

        # throttle (leading + trailing)
        self._text_timer = QTimer(self)
        self._text_timer.setSingleShot(True)
        self._text_timer.setInterval(NOTIFY_THROTTLE_MS)
        self._text_timer.timeout.connect(self._on_throttle_timeout)
        self._text_pending = False

    # ------------------------------------------------------------------------------
    # Editor binding
    # ------------------------------------------------------------------------------

    def attach_editor(self, editor: Editor) -> None:
        self.editor = editor
        editor.on_change = self._on_editor_changed
        editor.on_adding_state_changed = self.adding_changed.emit
        editor.on_dragging_state_changed = self.dragging_changed.emit
        self.refresh_keyframes()

    def _on_editor_changed(self) -> None:
        self.is_dirty = True
        self.selection_changed.emit(self.editor.get_selected_dot() if self.editor else None)
        self._request_text_refresh()
        self._save_timer.start()

    def _on_layers_changed(self) -> None:
        self.is_dirty = True
        self.layers_changed.emit()
        self._request_text_refresh()
        self._save_timer.start()

    # ------------------------------------------------------------------------------
    # Keyframe text
    # ------------------------------------------------------------------------------

    def keyframe_text(self) -> str:
        text = gen_keyframe_text(self.manager.layer_set, self.format)
        return generate_css_at_rule(text, self.format, self.rule_name)

    def refresh_keyframes(self) -> None:
        self.keyframes_changed.emit(self.keyframe_text())

    def _request_text_refresh(self) -> None:
        if self._text_timer.isActive():
            self._text_pending = True
            return
        self.refresh_keyframes()
        self._text_timer.start()

    def _on_throttle_timeout(self) -> None:
        if self._text_pending:
            self._text_pending = False
            self.refresh_keyframes()
            self._text_timer.start()

    def set_format(self, fmt: str) -> None:
        self.format = normalize_format(fmt)
        self.refresh_keyframes()

    def set_rule_name(self, name: str) -> None:
        self.rule_name = name
        self.refresh_keyframes()

    # ------------------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------------------

    def save_now(self) -> None:
        self._save_timer.stop()
        if not self.autosave_path:
            return
        os.makedirs(os.path.dirname(self.autosave_path) or ".", exist_ok=True)
        IOManager.save_json(self.manager.layer_set, self.autosave_path)
        self.is_dirty = False

    def save_project(self, filepath: str) -> None:
        IOManager.save_project(self.manager.layer_set, filepath)

    def load_project(self, filepath: str) -> None:
        layer_set = IOManager.load_project(filepath)
        self.manager.layer_set = layer_set
        if self.editor is not None:
            self.editor.cancel()
            self.editor.clear_selection()
            self.editor.draw()
        self._on_layers_changed()
