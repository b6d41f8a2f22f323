"""
Configuration & Global Constants
================================
This module serves as the central registry for the editor's tunable constants.

Why is this file needed?
------------------------
1. Abstraction: It prevents magic numbers (hit radii, zoom steps, sample
   limits) from being scattered throughout the model and the UI.
2. Consistency: The interaction engine, the layer manager and the Qt host
   all read the same values, so a change here changes the whole app.

Exports:
    SURFACE_INSET (int): Border in px between the surface edge and the plot area.
    ZOOM_STEPS (tuple): Discrete maximum user Y values for zooming.
    SLICE_PRECISION (int): Decimal places used when merging layer samples.
"""
from typing import Final

# ------------------------------------------------------------------------------
# Surface / coordinate space
# ------------------------------------------------------------------------------
SURFACE_INSET: Final[int] = 10  # px
USER_X_MIN: Final[float] = 0.0
USER_X_MAX: Final[float] = 100.0

# Max visible user Y. The visible range is [100 - max_y, max_y].
ZOOM_STEPS: Final[tuple[float, ...]] = (110.0, 150.0, 200.0, 300.0, 500.0, 1000.0)
DEFAULT_MAX_Y: Final[float] = ZOOM_STEPS[0]

# ------------------------------------------------------------------------------
# Interaction
# ------------------------------------------------------------------------------
HIT_RADIUS: Final[float] = 8.0  # px
DRAG_THRESHOLD: Final[float] = 2.0  # px
NUDGE_STEP: Final[float] = 1.0  # user units
NUDGE_STEP_LARGE: Final[float] = 10.0  # user units
MIN_DOT_GAP: Final[float] = 1.0  # user units between neighbouring dots
DEFAULT_HANDLE_OFFSET: Final[float] = 10.0  # user units

# ------------------------------------------------------------------------------
# Sampling / output
# ------------------------------------------------------------------------------
MIN_SAMPLE_COUNT: Final[int] = 3
MAX_SAMPLE_COUNT: Final[int] = 50
DEFAULT_SAMPLE_COUNT: Final[int] = 10
SLICE_PRECISION: Final[int] = 2

# ------------------------------------------------------------------------------
# Host timing (Qt)
# ------------------------------------------------------------------------------
FRAME_INTERVAL_MS: Final[int] = 16
AUTOSAVE_DELAY_MS: Final[int] = 2000
NOTIFY_THROTTLE_MS: Final[int] = 100
