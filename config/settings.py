"""
Configuration management for the Glimpse desktop assistant.

Loads settings from ~/.glimpse/config.toml with fallback to defaults, then
applies environment overrides (a .env file is honoured via python-dotenv).
"""
import copy
import os
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".glimpse" / "config.toml"

# Default configuration values
DEFAULT_CONFIG = {
    "llm": {
        "backend": "gemini",
        "model": "",  # empty: auto-detect the first installed Ollama model
        "ollama_url": "http://localhost:11434",
        "gemini_model": "gemini-2.0-flash",
        "temperature": 0.2,
    },
    "shortcuts": {},
    "capture": {
        "screenshot_dir": str(Path.home() / ".glimpse" / "screenshots"),
        "max_queue_size": 5,
    },
    "window": {
        "move_step": 60,
    },
    "ui": {
        "verbose": False,
        "quiet": False,
    },
}


@dataclass
class AssistantConfig:
    """Main configuration class for the assistant."""
    llm: Dict[str, Any]
    shortcuts: Dict[str, List[str]]
    capture: Dict[str, Any]
    window: Dict[str, Any]
    ui: Dict[str, Any]
    gemini_api_key: str = ""

    @classmethod
    def load(cls, config_path: Optional[str] = None, apply_env: bool = True) -> 'AssistantConfig':
        """
        Load configuration from file with fallback to defaults.

        Args:
            config_path: Path to config file (defaults to ~/.glimpse/config.toml)
            apply_env: Whether USE_OLLAMA / OLLAMA_* / GEMINI_* override the file

        Returns:
            AssistantConfig instance with merged settings
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH
        else:
            config_path = Path(config_path)

        config_data = copy.deepcopy(DEFAULT_CONFIG)

        if config_path.exists():
            try:
                import tomllib  # Python 3.11+
                with open(config_path, "rb") as f:
                    user_config = tomllib.load(f)

                config_data = _deep_merge(config_data, user_config)
                logger.info(f"Loaded configuration from {config_path}")

            except Exception as e:
                logger.warning(f"Failed to load config from {config_path}: {e}")
                logger.info("Using default configuration")
        else:
            logger.info(f"Config file not found at {config_path}, using defaults")

            try:
                config_path.parent.mkdir(parents=True, exist_ok=True)
                _create_example_config(config_path)
            except Exception as e:
                logger.warning(f"Could not create example config: {e}")

        known = {key: config_data.get(key, {}) for key in DEFAULT_CONFIG}
        config = cls(**known)

        if apply_env:
            load_dotenv()
            config.apply_environment(os.environ)

        return config

    def apply_environment(self, env) -> None:
        """
        Apply environment overrides.

        USE_OLLAMA=true selects the local backend; OLLAMA_MODEL and OLLAMA_URL
        tune it. GEMINI_API_KEY and GEMINI_MODEL configure the hosted backend.
        """
        if str(env.get("USE_OLLAMA", "")).lower() == "true":
            self.llm["backend"] = "ollama"
        if env.get("OLLAMA_MODEL"):
            self.llm["model"] = env["OLLAMA_MODEL"]
        if env.get("OLLAMA_URL"):
            self.llm["ollama_url"] = env["OLLAMA_URL"]
        if env.get("GEMINI_MODEL"):
            self.llm["gemini_model"] = env["GEMINI_MODEL"]
        self.gemini_api_key = env.get("GEMINI_API_KEY", self.gemini_api_key) or ""

    def shortcut_overrides(self) -> Dict[str, List[str]]:
        """Return {action: [primary, *fallbacks]} overrides, dropping malformed entries."""
        overrides = {}
        for action, accelerators in self.shortcuts.items():
            if isinstance(accelerators, str):
                accelerators = [accelerators]
            if not isinstance(accelerators, list) or not accelerators:
                logger.warning(f"Ignoring shortcut override for {action!r}: expected a non-empty list")
                continue
            overrides[action] = [str(a) for a in accelerators]
        return overrides

    def save(self, config_path: Optional[str] = None) -> bool:
        """
        Save current configuration to file (the API key is never written).

        Returns:
            True if saved successfully, False otherwise
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH
        else:
            config_path = Path(config_path)

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)

            config_dict = asdict(self)
            config_dict.pop("gemini_api_key", None)
            toml_content = _dict_to_toml(config_dict)

            with open(config_path, "w") as f:
                f.write(toml_content)

            logger.info(f"Configuration saved to {config_path}")
            return True

        except Exception as e:
            logger.error(f"Failed to save config to {config_path}: {e}")
            return False


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _create_example_config(config_path: Path) -> None:
    """Create an example configuration file."""
    toml_content = _dict_to_toml(DEFAULT_CONFIG)

    header = """# Glimpse Assistant Configuration
# This file was auto-generated with default values.
# Shortcut overrides go under [shortcuts], e.g.
#   "Take Screenshot" = ["CommandOrControl+H", "Alt+Shift+H"]
# Secrets (GEMINI_API_KEY) belong in the environment or a .env file.

"""

    with open(config_path, "w") as f:
        f.write(header + toml_content)

    logger.info(f"Created example config at {config_path}")


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _toml_key(key: str) -> str:
    if key.replace("_", "").replace("-", "").isalnum():
        return key
    return _toml_value(key)


def _dict_to_toml(data: Dict[str, Any]) -> str:
    """Convert a two-level dictionary to TOML (tables of scalars and lists)."""
    lines = []

    for key, value in data.items():
        if not isinstance(value, dict):
            lines.append(f"{_toml_key(key)} = {_toml_value(value)}")

    for key, value in data.items():
        if isinstance(value, dict):
            lines.append("")
            lines.append(f"[{_toml_key(key)}]")
            for sub_key, sub_value in value.items():
                lines.append(f"{_toml_key(sub_key)} = {_toml_value(sub_value)}")

    return "\n".join(lines).lstrip("\n") + "\n"


# Convenience function
def load_config(config_path: Optional[str] = None, apply_env: bool = True) -> AssistantConfig:
    """Load assistant configuration from file or defaults."""
    return AssistantConfig.load(config_path, apply_env=apply_env)
