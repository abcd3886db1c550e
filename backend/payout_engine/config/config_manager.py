"""
Configuration Manager for the payout engine
Location: backend/payout_engine/config/config_manager.py
"""

import os
import copy
import yaml
import logging
from typing import Any, Dict, List, Optional

from ...models.payout_schemas import DEFAULT_PAYOUT_SPLIT, CompPlan, PayoutSplit

DEFAULT_COLLECTION_GRACE_DAYS = 90


class ConfigManager:
    def __init__(self, config_path: str):
        """
        Initialize ConfigManager with the path to the configuration file.

        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = config_path
        self.config = {}
        self.logger = logging.getLogger(__name__)

        self._load_config()

    def _load_config(self) -> None:
        """
        Load configuration from YAML file.
        """
        try:
            self.logger.info(f"Loading configuration from: {self.config_path}")

            if not os.path.exists(self.config_path):
                self.logger.error(f"Configuration file not found: {self.config_path}")
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r') as config_file:
                self.config = yaml.safe_load(config_file) or {}

            if self.config:
                self.logger.info(f"Configuration loaded with sections: {list(self.config.keys())}")
            else:
                self.logger.warning("Configuration file is empty")

        except Exception as e:
            self.logger.exception(f"Error loading configuration: {str(e)}")
            raise

    def get(self, section: str, key: str = None, default: Any = None) -> Any:
        """
        Get configuration value by section and key.

        Args:
            section: Configuration section
            key: Configuration key (optional)
            default: Default value if key is not found

        Returns:
            Configuration value or default
        """
        try:
            if key is None:
                return self.config.get(section, default)
            return self.config.get(section, {}).get(key, default)

        except (AttributeError, KeyError):
            self.logger.warning(f"Configuration value not found for [{section}]{'.'+key if key else ''}")
            return default

    def get_section(self, section: str) -> Dict[str, Any]:
        return self.config.get(section) or {}

    def set(self, section: str, key: str, value: Any) -> None:
        if section not in self.config:
            self.config[section] = {}

        self.config[section][key] = value

    def save(self, output_path: Optional[str] = None) -> None:
        """
        Save configuration to YAML file.

        Args:
            output_path: Path to save configuration (uses current config path by default)
        """
        save_path = output_path or self.config_path

        try:
            self.logger.info(f"Saving configuration to: {save_path}")

            save_dir = os.path.dirname(save_path)
            if save_dir:
                os.makedirs(save_dir, exist_ok=True)

            with open(save_path, 'w') as config_file:
                yaml.safe_dump(self.config, config_file, default_flow_style=False)

        except Exception as e:
            self.logger.exception(f"Error saving configuration: {str(e)}")
            raise

    # Engine settings

    def default_payout_split(self) -> PayoutSplit:
        """Fallback split for metrics and commissions that carry none."""
        raw = self.get('engine', 'default_payout_split')
        if not raw:
            return DEFAULT_PAYOUT_SPLIT
        return PayoutSplit(**raw)

    def collection_grace_days(self) -> int:
        return int(self.get('engine', 'collection_grace_days', DEFAULT_COLLECTION_GRACE_DAYS))

    def log_level(self) -> str:
        return self.get('engine', 'log_level', 'INFO')

    def load_plans(self) -> List[CompPlan]:
        """
        Parse the 'plans' section into validated CompPlan objects.

        Metrics and commissions without their own payout split take the
        engine's configured default split, when one is set.

        Raises:
            pydantic.ValidationError: if any plan is misconfigured
        """
        raw_plans = copy.deepcopy(self.get('plans', default=[]) or [])
        engine_split = self.get('engine', 'default_payout_split')
        if engine_split:
            for raw in raw_plans:
                for item in (raw.get('metrics') or []) + (raw.get('commissions') or []):
                    item.setdefault('payout_split', engine_split)

        plans = [CompPlan(**raw) for raw in raw_plans]
        self.logger.info(f"Loaded {len(plans)} compensation plans")
        return plans
