# main.py

"""Entry point for running a netlist simulation headless."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Iterator

from Logic_Web.config import Config, load_config


# Internal Config attributes that should not be exposed as CLI flags
_PRIVATE_KEYS = {
    "base_dir",
    "input_dir",
    "config_file",
    "netlist_file",
    "output_root",
    "output_dir",
    "state_lock",
    "is_running",
    "DEFAULT_LOG_FILES",
    "log_files",
    "logging_mode",
}


def _configure_logging(level: int = logging.INFO) -> None:
    """Configure application logging and capture uncaught exceptions."""

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    def _log_excepthook(exc_type, exc, tb) -> None:
        logging.getLogger(__name__).exception(
            "Uncaught exception", exc_info=(exc_type, exc, tb)
        )

    sys.excepthook = _log_excepthook


def _tunables(data: dict[str, Any], prefix: str = "") -> Iterator[tuple[str, float]]:
    """Yield ``(dotted_name, value)`` for every numeric setting in ``data``.

    Nested dictionaries such as ``timing`` are flattened to
    ``timing.debounce_ms``.
    """
    for key, value in data.items():
        if key in _PRIVATE_KEYS:
            continue
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            yield from _tunables(value, prefix=f"{name}.")
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            yield name, value


def _config_defaults() -> dict[str, Any]:
    """Return the public data attributes of :class:`Config`."""
    return {
        key: value
        for key, value in vars(Config).items()
        if not key.startswith("_")
        and key not in _PRIVATE_KEYS
        and isinstance(value, (int, float, dict))
    }


def _add_config_args(parser: argparse.ArgumentParser, data: dict[str, Any]) -> None:
    """Add one ``--name`` flag per numeric setting."""
    for name, value in _tunables(data):
        parser.add_argument(
            f"--{name}",
            type=float if isinstance(value, float) else int,
            dest=name.replace(".", "_"),
            help=f"Override Config.{name} (default {value})",
        )


def _apply_overrides(args: argparse.Namespace, data: dict[str, Any]) -> None:
    """Copy flags given on the command line back onto :class:`Config`."""
    for name, _default in _tunables(data):
        override = getattr(args, name.replace(".", "_"), None)
        if override is None:
            continue
        section, _, key = name.rpartition(".")
        if section:
            getattr(Config, section)[key] = override
        else:
            setattr(Config, key, override)


@dataclass
class MainService:
    """Handle CLI parsing and the headless run."""

    argv: list[str] | None = None

    def run(self) -> dict[str, Any]:
        args, cfg = self._parse_args()
        _configure_logging(logging.DEBUG if args.verbose else logging.INFO)
        _apply_overrides(args, cfg)
        if args.output_dir:
            Config.output_dir = os.path.abspath(args.output_dir)
        result = self._run_headless(args)
        print(json.dumps(result, indent=2))
        return result

    # ------------------------------------------------------------------
    def _parse_args(self) -> tuple[argparse.Namespace, dict[str, Any]]:
        initial = argparse.ArgumentParser(add_help=False)
        initial.add_argument(
            "--config",
            default=Config.input_path("config.json"),
            help="Path to JSON configuration file",
        )
        initial.add_argument(
            "--netlist",
            default=Config.netlist_file,
            help="Path to netlist JSON file",
        )
        known, _ = initial.parse_known_args(self.argv)
        Config.netlist_file = known.netlist

        if known.config and os.path.exists(known.config):
            load_config(known.config)
            initial.set_defaults(netlist=Config.netlist_file)

        parser = argparse.ArgumentParser(
            parents=[initial], description="Run a Logic_Web netlist simulation"
        )
        # values from the config file are already on Config
        defaults = _config_defaults()
        _add_config_args(parser, defaults)
        parser.add_argument(
            "--duration-ms",
            type=float,
            default=1000.0,
            help="Virtual milliseconds to simulate",
        )
        parser.add_argument(
            "--toggle",
            type=int,
            action="append",
            default=[],
            help="Id of a module_input to switch on before running (repeatable)",
        )
        parser.add_argument(
            "--arrange",
            action="store_true",
            help="Apply the automatic layout even if positions are stored",
        )
        parser.add_argument(
            "--output-dir", default=None, help="Directory for event and metric logs"
        )
        parser.add_argument("--verbose", action="store_true", help="Debug logging")
        args = parser.parse_args(self.argv)
        Config.netlist_file = args.netlist
        return args, defaults

    # ------------------------------------------------------------------
    def _run_headless(self, args: argparse.Namespace) -> dict[str, Any]:
        """Simulate ``--duration-ms`` of virtual time and return a snapshot."""
        from Logic_Web.engine import driver as eng

        eng.build_netlist(Config.netlist_file, arrange_layout=True if args.arrange else None)
        engine = eng.get_engine()
        engine.set_clock_frequency(Config.clock_frequency)
        for element_id in args.toggle:
            engine.toggle_input(element_id)
        eng.start_simulation()
        try:
            engine.advance(args.duration_ms)
            snapshot = eng.get_snapshot()
        finally:
            eng.stop_simulation()
        return snapshot.to_dict()


def main(argv: list[str] | None = None) -> None:
    """Run the headless simulator with the provided arguments."""

    MainService(argv=argv).run()


if __name__ == "__main__":
    main()
