"""Centralized engine defaults."""

# Scroll-to-target retry budget
DEFAULT_SCROLL_ATTEMPTS = 10
DEFAULT_SCROLL_TIMEOUT = 10.0  # seconds
DEFAULT_SCROLL_DISTANCE = 0.5  # fraction of the scrolled container

# Pause after each gesture so the UI can settle before the next snapshot
DEFAULT_SETTLE_DELAY = 0.3  # seconds

# wait_for polling
DEFAULT_WAIT_TIMEOUT = 10.0  # seconds
DEFAULT_POLL_INTERVAL = 0.5  # seconds

# Failure diagnostics
MAX_SUGGESTIONS = 5
MIN_SUGGESTION_SIMILARITY = 0.5

# Gesture timing
DEFAULT_LONG_PRESS = 1.0  # seconds
SWIPE_DURATIONS = {
    "slow": 1.0,
    "normal": 0.3,
    "fast": 0.1,
}

# Fallback screen when a snapshot root has no usable frame (iPhone 15 Pro points)
DEFAULT_SCREEN_SIZE = (393, 852)

# Playbook execution
DEFAULT_STEP_TIMEOUT = None  # seconds; None disables the per-step race
DEFAULT_SIMULATOR_NAME = "iPhone 15 Pro"
