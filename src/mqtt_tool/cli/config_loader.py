"""
Configuration Loader.

Responsible for reading the optional mqtt_tool.yaml file and merging it
with the environment into `Settings`.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from mqtt_tool.client.reconnect import DEFAULT_INITIAL_DELAY_MS, DEFAULT_MAX_DELAY_MS
from mqtt_tool.retained.purge import DEFAULT_PURGE_DELAY_MS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "mqtt_tool.yaml"


def load_config(config_path: str = DEFAULT_CONFIG_FILE) -> Dict[str, Any]:
    """
    Loads the YAML configuration file.
    """
    path = Path(config_path)
    if not path.exists():
        logger.info(f"Config file not found at {path}. Using defaults.")
        return {}

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {path}")
            return config
    except Exception as e:
        logger.error(f"Failed to parse config file: {e}")
        raise


@dataclass(frozen=True, kw_only=True)
class Settings:
    url: Optional[str] = None
    jwt: Optional[str] = None
    cert_dir: Path = Path("certs")
    initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS
    purge_delay_ms: int = DEFAULT_PURGE_DELAY_MS
    backup_file: str = "backup.json"

    @classmethod
    def from_sources(cls, config: Dict[str, Any], environ: Mapping[str, str]) -> "Settings":
        """Environment variables win over the config file."""
        mqtt_conf = config.get('mqtt', {}) or {}
        reconnect_conf = config.get('reconnect', {}) or {}
        purge_conf = config.get('purge', {}) or {}
        backup_conf = config.get('backup', {}) or {}
        return cls(
            url=environ.get('MQTT_URL') or mqtt_conf.get('url'),
            jwt=environ.get('JWT') or None,
            cert_dir=Path(mqtt_conf.get('cert_dir', 'certs')),
            initial_delay_ms=int(reconnect_conf.get('initial_delay_ms', DEFAULT_INITIAL_DELAY_MS)),
            max_delay_ms=int(reconnect_conf.get('max_delay_ms', DEFAULT_MAX_DELAY_MS)),
            purge_delay_ms=int(purge_conf.get('delay_ms', DEFAULT_PURGE_DELAY_MS)),
            backup_file=str(backup_conf.get('file', 'backup.json')),
        )
