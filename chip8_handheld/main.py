"""
Main entry point for the CHIP-8 handheld interpreter.

This module provides the command-line host: argument parsing, configuration,
logging set-up, and one headless run of a ROM or save-state file.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from .common.errors import ErrorCode, Outcome
from .common.visualizer import ScreenVisualizer
from .constants import SAVE_EXTENSION
from .system_configs import SYSTEM_CONFIGS
from .systems.chip8.keypad import IdleKeypad, ScriptedKeypad
from .systems.system_factory import SystemFactory
from .utils.config_manager import ConfigManager, LOG_LEVELS
from .utils.error_handler import (ErrorCategory, configure_logging, error_boundary,
                                  error_handler, get_error_message)

logger = logging.getLogger("Chip8Handheld.Main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chip8-handheld",
                                     description="CHIP-8 interpreter for dual-plane grayscale handhelds")
    parser.add_argument('file', type=str, help='ROM package or save-state file to run')
    parser.add_argument('--model', type=str, choices=sorted(SYSTEM_CONFIGS.keys()),
                        help='Host calculator model')
    parser.add_argument('--config', type=str, help='Path to configuration file (JSON or YAML)')
    parser.add_argument('--keys', type=str, help='Path to key script (JSON or YAML)')
    parser.add_argument('--max-steps', type=int, help='Stop after this many instructions')
    parser.add_argument('--save-on-limit', action='store_true',
                        help='Save state when the instruction limit is reached')
    parser.add_argument('--save-path', type=str, help='Where to write the save-state file')
    parser.add_argument('--screenshot', type=str, help='Write a PNG of the screen after the run')
    parser.add_argument('--log-level', type=str, choices=LOG_LEVELS, help='Logging level')
    parser.add_argument('--log-file', type=str, help='Also log to this file')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    return parser


def apply_arguments(config: ConfigManager, args: argparse.Namespace) -> None:
    """Override configuration values with the command-line flags that were given."""
    overrides = {
        "model": args.model,
        "input.key_script": args.keys,
        "run.max_steps": args.max_steps,
        "output.save_path": args.save_path,
        "output.screenshot": args.screenshot,
        "logging.level": "DEBUG" if args.debug else args.log_level,
        "logging.file": args.log_file,
    }
    for key, value in overrides.items():
        if value is not None:
            config.set(key, value)

    if args.save_on_limit:
        config.set("run.save_on_limit", True)


def default_save_path(path: str) -> str:
    return os.path.splitext(path)[0] + SAVE_EXTENSION


@error_boundary(ErrorCategory.HOST)
def run_file(path: str, config: ConfigManager) -> Outcome:
    """
    Load, run and (on request) save one file.

    Args:
        path: ROM package or save-state file
        config: Host configuration

    Returns:
        The terminating outcome of the run, or of the save when it fails
    """
    key_script = config.get("input.key_script")
    if key_script:
        keypad = ScriptedKeypad.from_file(key_script, frame_rate=config.get("input.frame_rate"))
    else:
        keypad = IdleKeypad()

    system = SystemFactory.create_system(
        config.get("model"),
        {
            "timer_frequency": config.get("timer.frequency_hz"),
            "max_steps": config.get("run.max_steps"),
            "save_on_limit": config.get("run.save_on_limit"),
        },
        keypad,
    )

    system.load_file(path)
    outcome = system.run()
    error_handler.report(outcome)

    if outcome.wants_save:
        system.save_to_file(config.get("output.save_path") or default_save_path(path))

    screenshot = config.get("output.screenshot")
    if screenshot:
        ScreenVisualizer().save_screenshot(screenshot, system.compositor)

    return outcome


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments and run the given file.

    Returns:
        Process exit status: 0 when the program ran and exited, 1 on failure
    """
    args = build_parser().parse_args(argv)

    config = ConfigManager()
    if args.config and not config.load_config(args.config):
        print(get_error_message(ErrorCode.INVALID_ARGUMENT), file=sys.stderr)
        return 1
    apply_arguments(config, args)

    validation_errors = config.validate_config(config.as_dict())
    if validation_errors:
        for error in validation_errors:
            print(error, file=sys.stderr)
        return 1

    configure_logging(config.get("logging.level"),
                      config.get("logging.file"),
                      config.get("logging.console"))

    outcome = run_file(args.file, config)

    if outcome.code is not ErrorCode.SILENT_EXIT:
        print(get_error_message(outcome.code))

    return 1 if outcome.is_failure else 0


if __name__ == "__main__":
    sys.exit(main())
