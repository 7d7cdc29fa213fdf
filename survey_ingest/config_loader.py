"""
Configuration loading and management.
Loads the YAML ingest config: parser defaults and logging settings.
"""

import yaml
from pathlib import Path
from typing import Any
import logging

from .models import DEFAULT_CHUNK_SIZE, ParseOptions


logger = logging.getLogger(__name__)

PARSER_KEYS = ('chunk_size', 'strict_field_count', 'encoding_hint', 'delimiter', 'normalize')

DEFAULT_LOGGING = {
    'level': 'INFO',
    'json_format': True,
    'console_output': True,
    'log_dir': './logs',
}


class ConfigLoader:
    """Loads and caches configuration from YAML files."""

    CONFIG_FILE = "ingest_config.yaml"

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self._cache = {}

    def _load_yaml(self, filepath: Path) -> dict[str, Any]:
        """Load a YAML file and cache it."""
        if filepath in self._cache:
            return self._cache[filepath]

        if not filepath.exists():
            raise FileNotFoundError(f"Config file not found: {filepath}")

        logger.info(f"Loading config: {filepath}")
        with open(filepath, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {filepath} must contain a mapping, got {type(data).__name__}")

        self._cache[filepath] = data
        return data

    def load_config(self) -> dict[str, Any]:
        """Load the ingest configuration."""
        return self._load_yaml(self.config_dir / self.CONFIG_FILE)

    def load_parser_settings(self) -> dict[str, Any]:
        """Parser section, restricted to known ParseOptions fields."""
        section = self.load_config().get('parser') or {}
        unknown = set(section) - set(PARSER_KEYS)
        if unknown:
            logger.warning(f"Ignoring unknown parser settings: {sorted(unknown)}")
        return {k: section[k] for k in PARSER_KEYS if k in section}

    def load_logging_settings(self) -> dict[str, Any]:
        """Logging section merged over defaults."""
        section = self.load_config().get('logging') or {}
        return {**DEFAULT_LOGGING, **section}

    def build_parse_options(self, **overrides) -> ParseOptions:
        """
        Build ParseOptions from the config file.

        Args:
            **overrides: ParseOptions fields; None values fall back to the config

        Returns:
            ParseOptions
        """
        settings = {'chunk_size': DEFAULT_CHUNK_SIZE, **self.load_parser_settings()}
        settings.update({k: v for k, v in overrides.items() if v is not None})
        logger.debug(f"Parse options: { {k: v for k, v in settings.items() if k in PARSER_KEYS} }")
        return ParseOptions(**settings)

    def clear_cache(self):
        """Clear configuration cache (useful for testing or reload)."""
        self._cache.clear()
        logger.debug("Config cache cleared")
