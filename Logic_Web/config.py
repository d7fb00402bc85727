# config.py

import os
import threading


class Config:
    """Global configuration loaded from ``input/config.json``.

    Attributes
    ----------
    netlist_file:
        Path to the netlist JSON document loaded by the headless runner.
    clock_frequency:
        Clock rate in Hz. Controls both the emission period and how fast a
        signal traverses a wire. Clamped to ``[min_clock_frequency,
        max_clock_frequency]`` by the driver.
    timing:
        Millisecond constants for the simulation ticks. ``advance_interval_ms``
        is the signal advancement period, ``debounce_ms`` the minimum spacing
        between accepted clock edges, ``latch_emit_delay_ms`` the pause before a
        latched flip-flop drives its output wire, ``enable_sweep_ms`` and
        ``enable_timeout_ms`` govern enable expiry while ``output_sweep_ms`` and
        ``output_timeout_ms`` govern how long a module output stays lit.
    layout:
        Origin and spacing used by the automatic layout.
    element_size:
        Edge length of the square box every element occupies.
    logging_mode:
        Enabled log categories. ``diagnostic`` enables all of them.
    """

    # Base directories for package resources
    base_dir = os.path.abspath(os.path.dirname(__file__))
    input_dir = os.path.join(base_dir, "input")
    config_file = os.path.join(input_dir, "config.json")
    netlist_file = os.path.join(input_dir, "netlist.json")
    output_root = os.path.join(base_dir, "output")
    output_dir = output_root

    @staticmethod
    def input_path(*parts: str) -> str:
        """Return absolute path under the ``input`` directory."""
        return os.path.join(Config.input_dir, *parts)

    # Synchronization lock for cross-thread state access
    state_lock = threading.Lock()

    is_running = False  # Whether the simulation loop is active
    clock_frequency = 20
    min_clock_frequency = 1
    max_clock_frequency = 100

    timing = {
        "advance_interval_ms": 10,
        "debounce_ms": 50,
        "latch_emit_delay_ms": 100,
        "enable_sweep_ms": 200,
        "enable_timeout_ms": 500,
        "output_sweep_ms": 200,
        "output_timeout_ms": 500,
    }

    layout = {
        "origin_x": 100,
        "origin_y": 100,
        "horizontal_spacing": 200,
        "vertical_spacing": 100,
    }
    element_size = 50

    # Seconds of wall-clock time between real-time loop iterations
    realtime_poll = 0.01

    DEFAULT_LOG_FILES = {
        "signal": {
            "emit": True,
            "arrival": True,
            "suppressed": False,
        },
        "flipflop": {
            "latch": True,
            "debounce": True,
            "enable_timeout": True,
        },
        "event": {
            "output_timeout": True,
            "reset": True,
            "netlist_loaded": True,
        },
    }

    # Default runtime copy
    log_files = {k: dict(v) for k, v in DEFAULT_LOG_FILES.items()}

    #: Allowed logging modes. ``diagnostic`` enables all logs, otherwise only
    #: the listed categories are written.
    logging_mode = ["diagnostic"]

    @classmethod
    def is_category_enabled(cls, category: str) -> bool:
        """Return ``True`` if ``category`` should be written based on mode."""
        mode = set(getattr(cls, "logging_mode", ["diagnostic"]))
        return "diagnostic" in mode or category in mode

    @classmethod
    def is_log_enabled(cls, category: str, label: str | None = None) -> bool:
        """Return ``True`` if a log entry should be written."""

        cfg = cls.log_files.get(category, {})
        if label is not None and not cfg.get(label, True):
            return False
        return cls.is_category_enabled(category)

    @classmethod
    def clamp_frequency(cls, value: float) -> float:
        """Clamp ``value`` to the supported clock range."""

        return max(cls.min_clock_frequency, min(cls.max_clock_frequency, value))

    @classmethod
    def load_from_file(cls, path: str) -> None:
        """Load configuration values from a JSON file.

        Only keys that already exist as attributes on ``Config`` will be
        assigned. Nested dictionaries are merged when the existing attribute is
        also a ``dict``. A relative ``netlist_file`` is resolved against the
        directory containing ``path``.

        Parameters
        ----------
        path:
            Path to the JSON configuration file.
        """
        import json

        if not os.path.exists(path):
            raise FileNotFoundError(path)
        with open(path) as f:
            data = json.load(f)
        cls.config_file = os.path.abspath(path)
        base_dir = os.path.dirname(cls.config_file)

        for key, value in data.items():
            if not hasattr(cls, key):
                continue
            if key == "netlist_file" and not os.path.isabs(value):
                value = os.path.join(base_dir, value)
            current = getattr(cls, key)
            if isinstance(current, dict) and isinstance(value, dict):
                current.update(value)
            else:
                setattr(cls, key, value)


def load_config(path: str | None = None) -> dict:
    """Load configuration from ``path`` and return the data."""
    if path is None:
        path = Config.input_path("config.json")
    Config.load_from_file(path)
    import json

    with open(path) as f:
        return json.load(f)
