"""Configuration Management for CLI Settings"""

import os
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console

console = Console()


class ConfigManager:
    """Manage CLI configuration settings"""

    def __init__(self, config_dir: Path | None = None):
        self.config_dir = config_dir or Path(
            os.getenv("FIELDOPS_CONFIG_DIR", str(Path.home() / ".fieldops"))
        )
        self.config_file = self.config_dir / "config.yaml"

    def load_config(self) -> dict[str, Any]:
        """Load configuration from file, merged over the defaults"""
        config = self.get_default_config()
        if not self.config_file.exists():
            return config

        try:
            with open(self.config_file) as f:
                stored = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            console.print(f"[red]Error loading config: {e}[/red]")
            return config

        for section, values in stored.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values
        return config

    def save_config(self, config: dict[str, Any]):
        """Save configuration to file"""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w") as f:
            yaml.safe_dump(config, f, default_flow_style=False)

    def get_default_config(self) -> dict[str, Any]:
        """Get default configuration"""
        return {
            "api": {
                "base_url": os.getenv("FIELDOPS_API_URL", "http://localhost:8000"),
                "timeout": 30,
                "headers": {},
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'api.base_url')"""
        config = self.load_config()

        for k in key.split("."):
            if isinstance(config, dict) and k in config:
                config = config[k]
            else:
                return default

        return config

    def set(self, key: str, value: Any):
        """Set configuration value using dot notation"""
        config = self.load_config()
        keys = key.split(".")

        current = config
        for k in keys[:-1]:
            current = current.setdefault(k, {})
        current[keys[-1]] = value

        self.save_config(config)

    def show_all(self):
        """Display all configuration settings"""
        console.print(yaml.safe_dump(self.load_config(), default_flow_style=False))


# Global config manager instance
config = ConfigManager()
