"""
Main window: layer tabs on top, the timeline in the middle, an inspector dock
on the right and the generated keyframes below.
"""
from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import Qt, QSettings, Slot
from PySide6.QtGui import QAction, QCloseEvent, QFont
from PySide6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QFormLayout, QDockWidget, QPlainTextEdit, QToolBar,
    QTabBar, QComboBox, QSpinBox, QDoubleSpinBox, QCheckBox, QPushButton, QLineEdit, QFileDialog,
    QMessageBox, QStatusBar, QLabel,
)

from keyframecurve.app.application import VISIBLE_APP_NAME, settings
from keyframecurve.app.state import Store, default_autosave_path
from keyframecurve.app.ui.timeline_view import QtFrameScheduler, TimelineView
from keyframecurve.config import DEFAULT_MAX_Y, MAX_SAMPLE_COUNT, MIN_SAMPLE_COUNT, ZOOM_STEPS
from keyframecurve.model.editor import create_editor
from keyframecurve.model.geometry_primitives import Dot, DotType
from keyframecurve.model.output import ExportFormat
from keyframecurve.model.properties import Units, get_info

logger = logging.getLogger(__name__)

PROJECT_FILTER = "Keyframe project (*.h5 *.hdf5);;All Files (*)"


class KeyframeOutput(QPlainTextEdit):
    def __init__(self, parent=None):
        super().__init__(parent)
        self.setReadOnly(True)
        self.setFont(QFont("monospace"))
        self.setLineWrapMode(QPlainTextEdit.LineWrapMode.NoWrap)


class MainWindow(QMainWindow):
    def __init__(self, store: Optional[Store] = None):
        super().__init__()
        self.setWindowTitle(VISIBLE_APP_NAME)
        self.resize(1200, 800)

        self._settings: QSettings = settings()
        self.store = store if store is not None else Store(autosave_path=default_autosave_path())
        self._syncing = False

        # ---- Central: layer tabs + timeline + output ----
        central = QWidget(self)
        v = QVBoxLayout(central)
        v.setContentsMargins(0, 0, 0, 0)
        v.setSpacing(0)

        tab_row = QHBoxLayout()
        self.tabs = QTabBar(central)
        self.tabs.setExpanding(False)
        self.tabs.setTabsClosable(True)
        self.tabs.setDrawBase(True)
        tab_row.addWidget(self.tabs, 1)
        self.btn_add_layer = QPushButton(self.tr("+ Layer"), central)
        tab_row.addWidget(self.btn_add_layer, 0)
        v.addLayout(tab_row)

        self.timeline = TimelineView(central)
        v.addWidget(self.timeline, 3)

        self.output = KeyframeOutput(central)
        v.addWidget(self.output, 2)

        self.setCentralWidget(central)

        max_y = float(self._settings.value("view/max_y", DEFAULT_MAX_Y))
        self.editor = create_editor(
            self.timeline,
            self.store.manager,
            scheduler=QtFrameScheduler(self),
            max_y=max_y,
        )
        self.editor.set_snap_to_grid(self._settings.value("view/snap", True, type=bool))
        self.timeline.attach(self.editor)
        self.store.attach_editor(self.editor)

        self._build_toolbar()
        self._build_inspector()
        self.setStatusBar(QStatusBar(self))
        self.status_label = QLabel(self)
        self.statusBar().addPermanentWidget(self.status_label)

        self.store.set_format(self._settings.value("output/format", ExportFormat.CSS))
        self.store.set_rule_name(self._settings.value("output/rule_name", self.store.rule_name))

        # ---- Wiring ----
        self.tabs.currentChanged.connect(self._on_tab_changed)
        self.tabs.tabCloseRequested.connect(self._on_tab_close)
        self.btn_add_layer.clicked.connect(self._on_add_layer)

        self.store.layers_changed.connect(self._refresh_layers)
        self.store.selection_changed.connect(self._refresh_dot)
        self.store.keyframes_changed.connect(self.output.setPlainText)
        self.store.adding_changed.connect(self._on_adding_changed)
        self.store.keyframes_changed.connect(lambda _: self._update_status())

        self._refresh_layers()
        self._refresh_dot(self.editor.get_selected_dot())
        self.output.setPlainText(self.store.keyframe_text())
        self.timeline.setFocus()

    # ------------------------------------------------------------------------------
    # UI construction
    # ------------------------------------------------------------------------------

    def _build_toolbar(self) -> None:
        tb = QToolBar(self.tr("Main"), self)
        tb.setMovable(False)
        self.addToolBar(tb)

        self.act_open = QAction(self.tr("Open…"), self)
        self.act_open.triggered.connect(self.on_open)
        self.act_save = QAction(self.tr("Save…"), self)
        self.act_save.triggered.connect(self.on_save)
        tb.addAction(self.act_open)
        tb.addAction(self.act_save)
        tb.addSeparator()

        self.act_add_dot = QAction(self.tr("Add dot"), self)
        self.act_add_dot.setCheckable(True)
        self.act_add_dot.toggled.connect(self._on_add_dot_toggled)
        self.act_delete_dot = QAction(self.tr("Delete dot"), self)
        self.act_delete_dot.triggered.connect(lambda: self.editor.delete_selected_dot())
        tb.addAction(self.act_add_dot)
        tb.addAction(self.act_delete_dot)
        tb.addSeparator()

        self.act_zoom_in = QAction(self.tr("Zoom in"), self)
        self.act_zoom_in.triggered.connect(lambda: self._zoomed(self.editor.zoom_in()))
        self.act_zoom_out = QAction(self.tr("Zoom out"), self)
        self.act_zoom_out.triggered.connect(lambda: self._zoomed(self.editor.zoom_out()))
        tb.addAction(self.act_zoom_in)
        tb.addAction(self.act_zoom_out)

        self.chk_snap = QCheckBox(self.tr("Snap to grid"), self)
        self.chk_snap.setChecked(self.editor.snap_to_grid)
        self.chk_snap.toggled.connect(self._on_snap_toggled)
        tb.addWidget(self.chk_snap)

    def _build_inspector(self) -> None:
        dock = QDockWidget(self.tr("Inspector"), self)
        dock.setAllowedAreas(Qt.DockWidgetArea.RightDockWidgetArea | Qt.DockWidgetArea.LeftDockWidgetArea)
        body = QWidget(dock)
        form = QFormLayout(body)

        # Layer
        self.cmb_prop = QComboBox(body)
        self.cmb_units = QComboBox(body)
        for units in Units:
            self.cmb_units.addItem(str(units), units)
        self.spn_samples = QSpinBox(body)
        self.spn_samples.setRange(MIN_SAMPLE_COUNT, MAX_SAMPLE_COUNT)
        self.chk_flip = QCheckBox(self.tr("Flip values"), body)
        form.addRow(self.tr("Property"), self.cmb_prop)
        form.addRow(self.tr("Units"), self.cmb_units)
        form.addRow(self.tr("Samples"), self.spn_samples)
        form.addRow("", self.chk_flip)

        # Selected dot
        self.spn_x = self._coord_spin(body, 0.0, 100.0)
        self.spn_y = self._coord_spin(body, -1e4, 1e4)
        self.cmb_type = QComboBox(body)
        self.cmb_type.addItem(self.tr("Corner"), DotType.CORNER)
        self.cmb_type.addItem(self.tr("Round"), DotType.ROUND)
        form.addRow(self.tr("Dot X"), self.spn_x)
        form.addRow(self.tr("Dot Y"), self.spn_y)
        form.addRow(self.tr("Dot type"), self.cmb_type)

        # Output
        self.cmb_format = QComboBox(body)
        self.cmb_format.addItem("CSS", ExportFormat.CSS)
        self.cmb_format.addItem("JavaScript", ExportFormat.JS)
        self.txt_rule = QLineEdit(body)
        form.addRow(self.tr("Format"), self.cmb_format)
        form.addRow(self.tr("Rule name"), self.txt_rule)

        dock.setWidget(body)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, dock)

        self.cmb_prop.activated.connect(self._on_prop_chosen)
        self.cmb_units.activated.connect(lambda _: self.editor.set_layer_units(self.cmb_units.currentData()))
        self.spn_samples.valueChanged.connect(self._on_samples_changed)
        self.chk_flip.toggled.connect(self._on_flip_toggled)
        self.spn_x.editingFinished.connect(lambda: self._update_dot(x=self.spn_x.value()))
        self.spn_y.editingFinished.connect(lambda: self._update_dot(y=self.spn_y.value()))
        self.cmb_type.activated.connect(lambda _: self._update_dot(type=self.cmb_type.currentData()))
        self.cmb_format.activated.connect(self._on_format_chosen)
        self.txt_rule.editingFinished.connect(self._on_rule_name_changed)

        self.txt_rule.setText(self._settings.value("output/rule_name", self.store.rule_name))
        i = self.cmb_format.findData(self._settings.value("output/format", ExportFormat.CSS))
        self.cmb_format.setCurrentIndex(max(i, 0))

    @staticmethod
    def _coord_spin(parent: QWidget, lo: float, hi: float) -> QDoubleSpinBox:
        spin = QDoubleSpinBox(parent)
        spin.setRange(lo, hi)
        spin.setDecimals(2)
        spin.setKeyboardTracking(False)
        return spin

    # ------------------------------------------------------------------------------
    # Refresh from the model
    # ------------------------------------------------------------------------------

    def _refresh_layers(self) -> None:
        manager = self.store.manager
        self._syncing = True
        try:
            while self.tabs.count():
                self.tabs.removeTab(0)
            for layer in manager.layers:
                i = self.tabs.addTab(get_info(layer.prop).label)
                self.tabs.setTabData(i, layer.id)
            self.tabs.setCurrentIndex(manager.layer_set.active_index)
            self.tabs.setTabsClosable(len(manager.layers) > 1)
            self.btn_add_layer.setEnabled(bool(manager.remaining_properties()))

            active = manager.active_layer
            self.cmb_prop.clear()
            for prop in [active.prop] + manager.remaining_properties():
                self.cmb_prop.addItem(get_info(prop).label, prop)
            self.cmb_prop.setCurrentIndex(0)

            self.cmb_units.setCurrentIndex(self.cmb_units.findData(active.effective_units))
            self.cmb_units.setEnabled(get_info(active.prop).supports_px)
            self.spn_samples.setValue(active.sample_count)
            self.chk_flip.setChecked(active.is_flipped)
        finally:
            self._syncing = False
        self._update_status()

    @Slot(object)
    def _refresh_dot(self, dot: Optional[Dot]) -> None:
        self._syncing = True
        try:
            enabled = dot is not None
            for w in (self.spn_x, self.spn_y, self.cmb_type):
                w.setEnabled(enabled)
            self.act_delete_dot.setEnabled(enabled)
            if dot is not None:
                self.spn_x.setValue(dot.x)
                self.spn_y.setValue(dot.y)
                self.cmb_type.setCurrentIndex(self.cmb_type.findData(dot.type))
        finally:
            self._syncing = False

    def _update_status(self) -> None:
        layer = self.store.manager.active_layer
        self.status_label.setText(
            self.tr("{prop} | {n} samples | zoom {zoom:g}").format(
                prop=layer.prop, n=len(layer.samples()), zoom=self.editor.mapper.max_y,
            )
        )

    # ------------------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------------------

    def _on_tab_changed(self, idx: int) -> None:
        if self._syncing or idx < 0:
            return
        self.editor.set_active_layer(self.tabs.tabData(idx))
        self.timeline.setFocus()

    def _on_tab_close(self, idx: int) -> None:
        self.editor.delete_layer(self.tabs.tabData(idx))

    def _on_add_layer(self) -> None:
        if self.editor.add_layer() is None:
            self.statusBar().showMessage(self.tr("No properties left to add."), 3000)

    def _on_prop_chosen(self, idx: int) -> None:
        if self._syncing:
            return
        self.editor.set_layer_property(self.cmb_prop.itemData(idx))

    def _on_samples_changed(self, value: int) -> None:
        if not self._syncing:
            self.editor.set_layer_sample_count(value)

    def _on_flip_toggled(self, checked: bool) -> None:
        if not self._syncing:
            self.editor.set_layer_flipped(checked)

    def _update_dot(self, **changes) -> None:
        if not self._syncing:
            self.editor.update_selected_dot(**changes)

    def _on_add_dot_toggled(self, checked: bool) -> None:
        if checked:
            self.editor.begin_adding_dot()
            self.timeline.setFocus()
        else:
            self.editor.end_adding_dot()

    @Slot(bool)
    def _on_adding_changed(self, adding: bool) -> None:
        self.act_add_dot.blockSignals(True)
        self.act_add_dot.setChecked(adding)
        self.act_add_dot.blockSignals(False)

    def _on_snap_toggled(self, checked: bool) -> None:
        self.editor.set_snap_to_grid(checked)
        self._settings.setValue("view/snap", checked)

    def _zoomed(self, max_y: float) -> None:
        self._settings.setValue("view/max_y", max_y)
        self.act_zoom_in.setEnabled(max_y > ZOOM_STEPS[0])
        self.act_zoom_out.setEnabled(max_y < ZOOM_STEPS[-1])
        self._update_status()

    def _on_format_chosen(self, idx: int) -> None:
        fmt = self.cmb_format.itemData(idx)
        self.store.set_format(fmt)
        self._settings.setValue("output/format", str(fmt))

    def _on_rule_name_changed(self) -> None:
        self.store.set_rule_name(self.txt_rule.text())
        self._settings.setValue("output/rule_name", self.txt_rule.text())

    # ---------- File ops ----------

    @Slot()
    def on_open(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, self.tr("Open Project"), "", self.tr(PROJECT_FILTER))
        if not path:
            return
        try:
            self.store.load_project(path)
        except (OSError, ValueError, KeyError) as e:
            QMessageBox.critical(self, self.tr("Open Project"), self.tr("Could not open project:\n{e}").format(e=e))
            return
        self.statusBar().showMessage(self.tr("Opened project: {path}").format(path=path), 5000)

    @Slot()
    def on_save(self) -> None:
        path, _ = QFileDialog.getSaveFileName(self, self.tr("Save Project As"), "", self.tr(PROJECT_FILTER))
        if not path:
            return
        try:
            self.store.save_project(path)
        except (OSError, ValueError) as e:
            QMessageBox.critical(self, self.tr("Save Project"), self.tr("Could not save project:\n{e}").format(e=e))
            return
        self.statusBar().showMessage(self.tr("Saved project: {path}").format(path=path), 5000)

    # ---------- Close ----------

    def closeEvent(self, e: QCloseEvent) -> None:
        if self.store.is_dirty:
            try:
                self.store.save_now()
            except OSError as err:
                logger.error(f"Autosave on close failed: {err}")
        self._settings.setValue("win/geo", self.saveGeometry())
        self.timeline.attach(None)
        self.editor.destroy()
        super().closeEvent(e)
