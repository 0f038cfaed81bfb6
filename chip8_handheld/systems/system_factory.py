from typing import Optional

from ..common.interfaces import KeySource, System
from ..system_configs import SYSTEM_CONFIGS
from .chip8.chip8_system import Chip8System


class SystemFactory:
    @staticmethod
    def create_system(model: str, config_overrides: Optional[dict] = None,
                      keypad: Optional[KeySource] = None) -> System:
        """Create a CHIP-8 session for a host calculator model."""
        if model not in SYSTEM_CONFIGS:
            raise ValueError(f"Unknown model: {model}")

        config = dict(SYSTEM_CONFIGS[model])
        config["model"] = model
        if config_overrides:
            config.update(config_overrides)

        return Chip8System(config, keypad)
