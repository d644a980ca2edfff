"""GUI package for application.

Note: PyQt6 is only imported by the widgets themselves, keeping the core
importable without a display. Import widgets explicitly where needed, e.g.:

	from rotrack.gui.rotor_panel import RotorPanel

"""

__all__ = []
