"""TUI widgets for cloudpane."""

from cloudpane.ui.widgets.palette import PaletteOverlay
from cloudpane.ui.widgets.sidebar import Sidebar
from cloudpane.ui.widgets.status_bar import StatusBar

__all__ = ["PaletteOverlay", "Sidebar", "StatusBar"]
