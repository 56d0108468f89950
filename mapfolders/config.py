"""
Configuration Manager for mapfolders
Handles ordering, storage and logging settings
"""

import copy
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from mapfolders_dnd.keys import DEFAULT_MAX_KEY_LENGTH, DEFAULT_REBALANCE_HEADROOM
from mapfolders_dnd.signals import Signal

from .platform_utils import get_config_dir

logger = logging.getLogger(__name__)

# Increment this whenever the configuration format changes
CONFIG_VERSION = 1

# Order keys below this length leave too little room to be useful
MIN_KEY_LENGTH = 4


class Config:
    """Configuration manager for mapfolders"""

    def __init__(self, config_dir: Optional[str] = None):
        self.setting_changed = Signal("setting_changed")
        self.config_file = os.path.join(config_dir or get_config_dir(), 'config.json')
        self.config_data = self.load_json_config()

    def load_json_config(self) -> Dict[str, Any]:
        """Load configuration from JSON file"""
        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, 'r') as f:
                    config = json.load(f)

                # Purge outdated configurations
                stored_version = config.get('config_version', 0) if isinstance(config, dict) else 0
                if stored_version < CONFIG_VERSION:
                    backup_file = f"{self.config_file}.bak"
                    try:
                        os.replace(self.config_file, backup_file)
                        logger.warning(
                            "Outdated config version %s detected; backing up to %s and regenerating defaults",
                            stored_version,
                            backup_file,
                        )
                    except OSError:
                        os.remove(self.config_file)
                        logger.warning(
                            "Outdated config version %s detected; old config removed and new defaults generated",
                            stored_version,
                        )

                    config = self.get_default_config()
                    self.save_json_config(config)
                else:
                    config, updated = self._ensure_config_defaults(config)
                    if updated:
                        self.save_json_config(config)

                return config
            else:
                # Create default config
                default_config = self.get_default_config()
                self.save_json_config(default_config)
                return default_config
        except Exception as e:
            logger.error(f"Failed to load JSON config: {e}")
            return self.get_default_config()

    def save_json_config(self, config_data: Dict[str, Any] = None):
        """Save configuration to JSON file"""
        try:
            if config_data is None:
                config_data = self.config_data

            os.makedirs(os.path.dirname(self.config_file), exist_ok=True)
            with open(self.config_file, 'w') as f:
                json.dump(config_data, f, indent=2)

            logger.debug("Configuration saved to JSON file")
        except Exception as e:
            logger.error(f"Failed to save JSON config: {e}")

    def get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values"""
        return {
            'config_version': CONFIG_VERSION,
            'ordering': {
                'max_key_length': DEFAULT_MAX_KEY_LENGTH,
                'rebalance_headroom': DEFAULT_REBALANCE_HEADROOM,
            },
            'board': {
                'path': None,  # None for <data dir>/board.json
            },
            'logging': {
                'debug_enabled': False,
            },
        }

    def _ensure_config_defaults(self, config: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Ensure newly added keys exist in the provided config dict."""
        updated = False
        defaults = self.get_default_config()

        for section, values in defaults.items():
            if not isinstance(values, dict):
                continue
            current = config.get(section)
            if not isinstance(current, dict):
                config[section] = copy.deepcopy(values)
                updated = True
                continue
            for key, value in values.items():
                if key not in current:
                    current[key] = value
                    updated = True

        ordering = config['ordering']
        max_length = ordering.get('max_key_length')
        if not isinstance(max_length, int) or isinstance(max_length, bool) or max_length < MIN_KEY_LENGTH:
            logger.warning(
                "Invalid ordering.max_key_length %r; using %s", max_length, DEFAULT_MAX_KEY_LENGTH
            )
            ordering['max_key_length'] = DEFAULT_MAX_KEY_LENGTH
            updated = True

        headroom = ordering.get('rebalance_headroom')
        if not isinstance(headroom, int) or isinstance(headroom, bool) or headroom < 0:
            ordering['rebalance_headroom'] = DEFAULT_REBALANCE_HEADROOM
            updated = True

        return config, updated

    def get_setting(self, key: str, default=None):
        """Get a setting value"""
        try:
            # Navigate nested dictionary
            keys = key.split('.')
            value = self.config_data
            for k in keys:
                if isinstance(value, dict) and k in value:
                    value = value[k]
                else:
                    return default
            return value
        except Exception as e:
            logger.error(f"Failed to get setting {key}: {e}")
            return default

    def set_setting(self, key: str, value: Any):
        """Set a setting value"""
        keys = key.split('.')
        current = self.config_data
        for k in keys[:-1]:
            if k not in current or not isinstance(current[k], dict):
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value
        self.save_json_config()
        self.setting_changed.emit(key, value)
