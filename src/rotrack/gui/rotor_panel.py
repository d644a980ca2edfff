from PyQt6 import QtWidgets, QtCore
from typing import Callable, Optional

from rotrack.config import RotorConfigError, list_rotors, load_config, save_config
from rotrack.prop.propagator import julian_now
from rotrack.rotor.angles import project_for_display
from rotrack.rotor.controller import TickResult, TrackingController
from rotrack.rotor.rotctld import RotctldError

FMT = "{:7.2f}°"
NO_VALUE = " --- "


class RotorPanel(QtWidgets.QWidget):
    """Rotator control panel.

    Owns the cycle timer: every timeout feeds the current time to the
    controller, runs one control tick and refreshes the readouts. Display
    consumers (e.g. a polar plot) connect to `positions_updated` and
    `pass_changed`.
    """

    positions_updated = QtCore.pyqtSignal(object)
    pass_changed = QtCore.pyqtSignal(object)

    def __init__(
        self,
        controller: TrackingController,
        clock: Callable[[], float] = julian_now,
        parent: Optional[QtWidgets.QWidget] = None,
    ):
        super().__init__(parent)
        self.controller = controller
        self.clock = clock
        self.controller.pass_listeners.append(self.pass_changed.emit)

        layout = QtWidgets.QFormLayout()

        # --- target ---
        self.sat_combo = QtWidgets.QComboBox()
        for sat in controller.satellites:
            self.sat_combo.addItem(sat.name, sat.catnum)
        self.sat_combo.currentIndexChanged.connect(self._on_sat_selected)

        self.track_btn = QtWidgets.QPushButton("Track")
        self.track_btn.setCheckable(True)
        self.track_btn.toggled.connect(self._on_track_toggled)

        self.az_sat = QtWidgets.QLabel(FMT.format(0.0))
        self.el_sat = QtWidgets.QLabel(FMT.format(0.0))
        self.countdown = QtWidgets.QLabel("00:00")

        # --- manual position ---
        self.az_set = QtWidgets.QDoubleSpinBox()
        self.az_set.setDecimals(2)
        self.el_set = QtWidgets.QDoubleSpinBox()
        self.el_set.setDecimals(2)
        self.az_set.valueChanged.connect(self._on_manual_changed)
        self.el_set.valueChanged.connect(self._on_manual_changed)

        self.az_read = QtWidgets.QLabel(NO_VALUE)
        self.el_read = QtWidgets.QLabel(NO_VALUE)
        self.az_read_pretty = QtWidgets.QLabel(NO_VALUE)
        self.el_read_pretty = QtWidgets.QLabel(NO_VALUE)

        # --- device settings ---
        self.dev_combo = QtWidgets.QComboBox()
        self.dev_combo.addItems(list_rotors())
        self.dev_combo.currentTextChanged.connect(self._on_rotor_selected)

        self.engage_btn = QtWidgets.QPushButton("Engage")
        self.engage_btn.setCheckable(True)
        self.engage_btn.toggled.connect(self._on_engage_toggled)

        self.park_btn = QtWidgets.QPushButton("Park")
        self.park_btn.clicked.connect(self._on_park)

        self.monitor_chk = QtWidgets.QCheckBox("Monitor")
        self.monitor_chk.setToolTip("Monitor rotator but do not send any position commands")
        self.monitor_chk.toggled.connect(self._on_monitor_toggled)

        self.cycle_spin = QtWidgets.QSpinBox()
        self.cycle_spin.setRange(10, 10000)
        self.cycle_spin.setSingleStep(10)
        self.cycle_spin.setSuffix(" ms")
        self.cycle_spin.setValue(controller.delay)
        self.cycle_spin.valueChanged.connect(self._on_cycle_changed)

        self.thld_spin = QtWidgets.QDoubleSpinBox()
        self.thld_spin.setRange(0.01, 50.0)
        self.thld_spin.setDecimals(2)
        self.thld_spin.setSingleStep(0.01)
        self.thld_spin.setSuffix(" deg")
        self.thld_spin.setValue(controller.threshold)
        self.thld_spin.valueChanged.connect(self._on_threshold_changed)

        layout.addRow(self.sat_combo, self.track_btn)
        layout.addRow("Az:", self.az_sat)
        layout.addRow("El:", self.el_sat)
        layout.addRow("ΔT:", self.countdown)
        layout.addRow("Set Az:", self.az_set)
        layout.addRow("Read Az:", self.az_read)
        layout.addRow("", self.az_read_pretty)
        layout.addRow("Set El:", self.el_set)
        layout.addRow("Read El:", self.el_read)
        layout.addRow("", self.el_read_pretty)
        layout.addRow("Device:", self.dev_combo)
        layout.addRow(self.engage_btn, self.park_btn)
        layout.addRow(self.monitor_chk)
        layout.addRow("Cycle:", self.cycle_spin)
        layout.addRow("Threshold:", self.thld_spin)
        self.setLayout(layout)

        self._timer = QtCore.QTimer(self)
        self._timer.setInterval(controller.delay)
        self._timer.timeout.connect(self._on_tick)

        # restore last rotor (safe if load_config() returns {})
        cfg = load_config() or {}
        idx = self.dev_combo.findText(cfg.get("last_rotor") or "")
        if idx >= 0:
            self.dev_combo.blockSignals(True)
            self.dev_combo.setCurrentIndex(idx)
            self.dev_combo.blockSignals(False)
        if self.dev_combo.currentText():
            self._on_rotor_selected(self.dev_combo.currentText())
        self._sync_manual_ranges()

        if self.sat_combo.count():
            self._on_sat_selected(self.sat_combo.currentIndex())

        self._timer.start()

    # ---------------- settings ----------------

    def _sync_manual_ranges(self):
        conf = self.controller.conf
        self.az_set.blockSignals(True)
        self.el_set.blockSignals(True)
        if conf is not None:
            self.az_set.setRange(conf.minaz, conf.maxaz)
            self.el_set.setRange(conf.minel, conf.maxel)
        else:
            self.az_set.setRange(0.0, 360.0)
            self.el_set.setRange(0.0, 90.0)
        self.az_set.setValue(self.controller.manual_az)
        self.el_set.setValue(self.controller.manual_el)
        self.az_set.blockSignals(False)
        self.el_set.blockSignals(False)

    def _on_rotor_selected(self, name: str):
        if not name:
            return
        if self.controller.select_rotor(name):
            self.cycle_spin.setValue(self.controller.delay)
            self.thld_spin.setValue(self.controller.threshold)
            cfg = load_config() or {}
            cfg["last_rotor"] = name
            save_config(cfg)
        else:
            QtWidgets.QMessageBox.warning(self, "Rotator", f"Failed to load rotator configuration {name}")
        self._sync_manual_ranges()

    def _on_cycle_changed(self, value: int):
        self.controller.set_cycle_period(value)
        self._timer.setInterval(self.controller.delay)

    def _on_threshold_changed(self, value: float):
        self.controller.set_threshold(value)

    def _on_monitor_toggled(self, checked: bool):
        self.controller.set_monitor(checked)
        self.az_set.setEnabled(not checked)
        self.el_set.setEnabled(not checked)
        self.track_btn.setEnabled(not checked)

    def _on_engage_toggled(self, checked: bool):
        if checked:
            try:
                self.controller.set_engaged(True)
            except (RotorConfigError, RotctldError) as e:
                QtWidgets.QMessageBox.warning(self, "Rotator Engage", str(e))
                self.engage_btn.setChecked(False)
                return
            self.dev_combo.setEnabled(False)
        else:
            self.controller.set_engaged(False)
            self.dev_combo.setEnabled(True)
            for label in (self.az_read, self.el_read, self.az_read_pretty, self.el_read_pretty):
                label.setText(NO_VALUE)

    def _on_park(self):
        self.track_btn.setChecked(False)
        self.controller.park()
        self._sync_manual_ranges()

    # ---------------- target ----------------

    def _on_sat_selected(self, index: int):
        catnum = self.sat_combo.itemData(index)
        if catnum is not None:
            # propagate from now, not from the last tick (or JD 0 before the first one)
            self.controller.update(self.clock())
            self.controller.select_target(int(catnum))

    def _on_track_toggled(self, checked: bool):
        self.controller.set_tracking(checked)
        if not checked:
            # hold the last tracked position shown on the spinboxes
            self.controller.set_manual(self.az_set.value(), self.el_set.value())
        self.monitor_chk.setEnabled(not (checked or self.engage_btn.isChecked()))
        self.az_set.setEnabled(not checked)
        self.el_set.setEnabled(not checked)

    def _on_manual_changed(self, _value: float):
        if not self.controller.tracking:
            self.controller.set_manual(self.az_set.value(), self.el_set.value())

    # ---------------- cycle ----------------

    def _on_tick(self):
        state = self.controller.update(self.clock())
        if state is not None:
            self.az_sat.setText(FMT.format(state.az))
            self.el_sat.setText(FMT.format(state.el))
            self.countdown.setText(self.controller.countdown())

        result = self.controller.tick()
        self._show_result(result)
        self.positions_updated.emit(result)

    def _show_result(self, result: TickResult):
        if self.controller.tracking and result.display is not None:
            # follow the target on the manual controls without feeding back
            for spin, value in ((self.az_set, result.display[0]), (self.el_set, result.display[1])):
                spin.blockSignals(True)
                spin.setValue(value)
                spin.blockSignals(False)

        if not self.controller.engaged:
            return
        if result.error:
            for label in (self.az_read, self.el_read, self.az_read_pretty, self.el_read_pretty):
                label.setText("ERROR")
        elif result.got_rotor and result.rotor is not None:
            conf = self.controller.conf
            pretty = project_for_display(result.rotor[0], result.rotor[1], conf.aztype)
            self.az_read.setText(FMT.format(result.rotor[0]))
            self.el_read.setText(FMT.format(result.rotor[1]))
            self.az_read_pretty.setText(FMT.format(pretty[0]))
            self.el_read_pretty.setText(FMT.format(pretty[1]))

    def closeEvent(self, event):
        self._timer.stop()
        self.controller.close()
        super().closeEvent(event)
