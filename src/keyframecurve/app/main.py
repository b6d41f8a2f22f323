"""
Application Initialization
==========================
Builds the layer store and the main window and starts the Qt event loop.

Why is this file needed?
------------------------
It is the wiring root:
1. Sets up logging for the 'keyframecurve' namespace.
2. Creates the QApplication (organisation, settings format).
3. Loads the autosaved layers into the Store and hands it to the MainWindow.

Run with: python -m keyframecurve
"""
from __future__ import annotations

import logging
import sys

from keyframecurve.app.application import create_app
from keyframecurve.app.state import Store, default_autosave_path
from keyframecurve.app.ui.main_window import MainWindow
from keyframecurve.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main() -> int:
    """Main entry point for the application."""
    # Level comes from KEYFRAMECURVE_LOG_LEVEL, e.g. DEBUG during development
    setup_logging()

    app = create_app()

    # QStandardPaths needs the application name set by create_app()
    store = Store(autosave_path=default_autosave_path())
    logger.info(f"Autosave file: {store.autosave_path}")

    win = MainWindow(store)
    win.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
