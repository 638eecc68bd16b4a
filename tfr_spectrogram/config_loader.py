"""
Configuration loader for engine presets.

Loads named ReassignmentConfig presets from YAML files with caching, so the
CLI and analysis scripts can switch between the display-tuned defaults, an
unbiased canonical setup and the legacy phase-difference heuristic by name.

Preset file layout (configs/<name>.yaml):

    description: Free text (ignored by the engine)
    engine:
      window_size: 2048
      num_tapers: 6
      ...
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

import yaml

from .config import ConfigurationError, ReassignmentConfig

logger = logging.getLogger(__name__)


class ConfigLoadError(Exception):
    """Raised when configuration loading fails."""
    pass


class ConfigLoader:
    """
    Loads engine presets from YAML files with caching.

    Attributes:
        config_dir: Directory holding <preset>.yaml files
    """

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory of preset files.
                       Defaults to the presets shipped with the package.
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent / "configs"
        else:
            self.config_dir = Path(config_dir)

        self._cache: Dict[str, ReassignmentConfig] = {}

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        """
        Load a YAML file and return its contents.

        Raises:
            ConfigLoadError: If the file cannot be loaded or parsed
        """
        if not path.exists():
            raise ConfigLoadError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Failed to parse YAML file {path}: {e}")
        except OSError as e:
            raise ConfigLoadError(f"Failed to load configuration file {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigLoadError(f"Configuration file {path} must contain a mapping")
        return data

    def _to_config(self, data: Dict[str, Any], source: Path) -> ReassignmentConfig:
        engine = data.get("engine", {})
        if not isinstance(engine, dict):
            raise ConfigLoadError(f"'engine' section in {source} must be a mapping")
        try:
            return ReassignmentConfig.from_dict(engine)
        except (ConfigurationError, TypeError) as e:
            raise ConfigLoadError(f"Invalid engine configuration in {source}: {e}")

    def load_file(self, path: Union[str, Path]) -> ReassignmentConfig:
        """
        Load a configuration from an arbitrary YAML file (not cached).

        Raises:
            ConfigLoadError: If the file is missing, malformed or invalid
        """
        path = Path(path)
        config = self._to_config(self._load_yaml(path), path)
        logger.debug(f"Loaded engine configuration from {path}")
        return config

    def load_preset(self, name: str) -> ReassignmentConfig:
        """
        Load a named preset.

        Args:
            name: Preset name (file stem), e.g. 'default', 'canonical', 'legacy'

        Returns:
            Validated ReassignmentConfig

        Raises:
            ConfigLoadError: If the preset cannot be loaded
        """
        if name in self._cache:
            return self._cache[name]

        preset_path = self.config_dir / f"{name}.yaml"
        if not preset_path.exists():
            available = ", ".join(self.list_presets()) or "none"
            raise ConfigLoadError(f"Unknown preset '{name}' (available: {available})")

        config = self._to_config(self._load_yaml(preset_path), preset_path)
        self._cache[name] = config
        logger.debug(f"Loaded preset '{name}' from {preset_path}")
        return config

    def list_presets(self) -> List[str]:
        """Sorted names of the available presets."""
        if not self.config_dir.exists():
            return []
        return sorted(path.stem for path in self.config_dir.glob("*.yaml"))

    def get_description(self, name: str) -> str:
        """Human-readable description of a preset ('' if none)."""
        data = self._load_yaml(self.config_dir / f"{name}.yaml")
        return str(data.get("description", ""))

    def has_preset(self, name: str) -> bool:
        return (self.config_dir / f"{name}.yaml").exists()

    def clear_cache(self) -> None:
        """Clear cached presets (e.g. after editing files)."""
        self._cache.clear()
        logger.debug("Configuration cache cleared")


_default_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    """Shared loader for the packaged presets."""
    global _default_loader
    if _default_loader is None:
        _default_loader = ConfigLoader()
    return _default_loader


def load_preset(name: str) -> ReassignmentConfig:
    """Convenience wrapper around the shared loader."""
    return get_config_loader().load_preset(name)
