"""Configuration loader with multi-source support."""

import logging
import toml
import os
from pathlib import Path
from typing import Dict, Any, List, Optional, Type, TypeVar
import platformdirs
from pydantic import BaseModel


T = TypeVar('T', bound=BaseModel)

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Loads configuration from multiple sources with priority."""

    def __init__(self, app_name: str = "tmod-extract", config_class: Type[T] = None) -> None:
        self.app_name = app_name
        self.config_class = config_class
        self._config: Optional[T] = None

    @property
    def env_prefix(self) -> str:
        """Prefix of environment variables that override configuration."""
        return f"{self.app_name.upper().replace('-', '_')}_"

    def load(self, defaults_path: Optional[Path] = None) -> T:
        """Load configuration from all sources.

        Args:
            defaults_path: Optional path to defaults.toml file

        Returns:
            Validated configuration object
        """
        # 1. Start with defaults (explicit file, then shipped locations, then schema)
        config_dict = self._load_defaults(defaults_path)

        # 2. Merge system config
        system_config = self._load_system_config()
        if system_config:
            config_dict = self._deep_merge(config_dict, system_config)

        # 3. Merge user config
        user_config = self._load_user_config()
        if user_config:
            config_dict = self._deep_merge(config_dict, user_config)

        # 4. Override with environment variables
        config_dict = self._apply_env_overrides(config_dict)

        # 5. Validate and create Config object
        if self.config_class:
            self._config = self.config_class(**config_dict)
        else:
            self._config = config_dict

        return self._config

    def _load_defaults(self, defaults_path: Optional[Path] = None) -> Dict[str, Any]:
        """Load default configuration shipped with app."""
        schema_defaults = self._schema_defaults()

        if defaults_path is not None:
            if not defaults_path.exists():
                raise FileNotFoundError(f"Config file not found: {defaults_path}")
            logger.debug(f"Loading config from {defaults_path}")
            return self._deep_merge(schema_defaults, toml.load(defaults_path))

        possible_paths = [
            Path.cwd() / "config" / "defaults.toml",
            Path.home() / ".config" / self.app_name / "defaults.toml",
        ]

        for path in possible_paths:
            if path.exists():
                logger.debug(f"Loading defaults from {path}")
                return self._deep_merge(schema_defaults, toml.load(path))

        return schema_defaults

    def _schema_defaults(self) -> Dict[str, Any]:
        """Default values declared on the config model, as a plain dict."""
        if self.config_class is None:
            return {}
        return self.config_class().model_dump()

    def _load_system_config(self) -> Optional[Dict[str, Any]]:
        """Load system-wide configuration."""
        if os.name == "nt":  # Windows
            system_path = (
                Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData"))
                / self.app_name
                / "config.toml"
            )
        else:  # Linux/Mac
            system_path = Path(f"/etc/{self.app_name}/config.toml")

        if system_path.exists():
            return toml.load(system_path)

        return None

    def _load_user_config(self) -> Optional[Dict[str, Any]]:
        """Load user-specific configuration."""
        # Use appname for both appname and appauthor to get simple path
        user_config_dir = platformdirs.user_config_dir(appname=self.app_name, appauthor=False)
        user_config_path = Path(user_config_dir) / "config.toml"

        logger.debug(f"Looking for user config: app_name={self.app_name}, path={user_config_path}, exists={user_config_path.exists()}")

        if user_config_path.exists():
            logger.debug(f"Loading user config from {user_config_path}")
            return toml.load(user_config_path)

        return None

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Override config with environment variables."""
        # Environment variables format: TMOD_EXTRACT_SECTION_KEY
        prefix = self.env_prefix

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(prefix):
                continue

            # TMOD_EXTRACT_EXTRACTION_MAX_ENTRIES -> extraction.max_entries
            key_path = self._resolve_key_path(config, env_key[len(prefix):].lower().split("_"))

            current = config
            for part in key_path[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]

            current[key_path[-1]] = self._convert_env_value(env_value)
            logger.debug(f"Config override from environment: {env_key} -> {'.'.join(key_path)}")

        return config

    def _resolve_key_path(self, config: Dict[str, Any], parts: List[str]) -> List[str]:
        """Match underscore-split name parts against existing keys, longest first.

        Keys may themselves contain underscores, so ``extraction_max_entries``
        resolves to ``["extraction", "max_entries"]`` when those keys exist.
        Unknown remainders become a single key.
        """
        path: List[str] = []
        current: Any = config
        start = 0

        while start < len(parts):
            match_end = None
            if isinstance(current, dict):
                for end in range(len(parts), start, -1):
                    if "_".join(parts[start:end]) in current:
                        match_end = end
                        break

            if match_end is None:
                path.append("_".join(parts[start:]))
                break

            key = "_".join(parts[start:match_end])
            path.append(key)
            current = current[key]
            start = match_end

        return path

    def _convert_env_value(self, value: str) -> Any:
        """Convert string environment variable to appropriate type."""
        # Number (before booleans so "1" stays an int for integer fields)
        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        # Boolean
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        # List (comma-separated)
        if "," in value:
            return [v.strip() for v in value.split(",")]

        # String
        return value

    @property
    def config(self) -> T:
        """Get loaded configuration."""
        if self._config is None:
            self._config = self.load()
        return self._config
