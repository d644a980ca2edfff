"""Run the rotator control panel for the satellites in a TLE file."""
import logging
import sys
from pathlib import Path

from PyQt6 import QtWidgets, QtCore, QtGui

from rotrack.config import load_qth
from rotrack.gui.rotor_panel import RotorPanel
from rotrack.prop import SkyfieldPropagator, load_satellites
from rotrack.rotor.controller import TrackingController


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    here = Path(__file__).resolve().parents[1]
    tle_path = Path(sys.argv[1]) if len(sys.argv) > 1 else here / "data" / "iss.tle"
    sats = load_satellites(str(tle_path))

    QtCore.QLocale.setDefault(QtCore.QLocale(QtCore.QLocale.Language.English, QtCore.QLocale.Country.UnitedStates))
    app = QtWidgets.QApplication(sys.argv)
    app.setFont(QtGui.QFont("DejaVu Sans", 9))

    ctrl = TrackingController(SkyfieldPropagator(), load_qth(), satellites=sats)
    win = RotorPanel(ctrl)
    win.setWindowTitle("Rotator Control")
    win.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
