"""
Config — RunConfig plus the optional YAML config file.

The config file is a flat YAML mapping whose keys are command line option
destinations, e.g.

    # ~/.sybilhunter.yaml
    output: /srv/sybilhunter/results
    windowsize: 48
    threshold: 0.05

Values become argparse defaults, so anything given on the command line
wins. The file is looked up at $SYBILHUNTER_CONFIG, then ~/.sybilhunter.yaml.

RunConfig is built once by run.main() and handed to every engine's
constructor; nothing else holds process-wide state.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

import yaml

from sybilhunter.errors import ConfigError


logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'SYBILHUNTER_CONFIG'
DEFAULT_CONFIG_FILE = '.sybilhunter.yaml'
DATE_FORMAT = '%Y-%m-%d'


@dataclass
class RunConfig:
    """Everything one analysis run needs. Built once, passed to every engine."""
    data_path: str
    output_dir: Optional[Path]
    engines: List[str] = field(default_factory=list)
    threshold: float = 0.0
    window_size: int = 24
    neighbours: int = 0
    reference_relay: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    netblocks_file: Optional[str] = None
    fingerprints_file: Optional[str] = None
    image_file: Optional[str] = None
    bw_fraction: Optional[float] = None
    interval: timedelta = timedelta(hours=1)
    cumulative: bool = False
    visualise: bool = False
    no_family: bool = False
    reverse: bool = False
    fingerprint_filter: Optional[FrozenSet[str]] = None

    def accepts(self, record) -> bool:
        """True if record passes the optional fingerprint filter."""
        return self.fingerprint_filter is None or record.fingerprint in self.fingerprint_filter


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse YYYY-MM-DD. None and '' pass through as None."""
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise ConfigError(f"Given date \"{value}\" invalid.  We expect the format YYYY-MM-DD.")


def get_config_path() -> Path:
    """Config file location: $SYBILHUNTER_CONFIG, else ~/.sybilhunter.yaml."""
    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env)
    return Path.home() / DEFAULT_CONFIG_FILE


def load_config_file(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load option defaults from the YAML config file.

    Returns {} when there is no config file. A file that exists but is not a
    mapping is a ConfigError.
    """
    config_path = Path(path) if path else get_config_path()

    if not config_path.exists():
        logger.debug("No config file at %s, using built-in defaults.", config_path)
        return {}

    logger.info("Attempting to parse configuration file %s.", config_path)
    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file \"{config_path}\": {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file \"{config_path}\" must contain a mapping.")

    # YAML keys may be written with dashes, argparse dests use underscores
    config = {str(k).replace('-', '_'): v for k, v in raw.items()}
    logger.info("Configuration arguments: %s", config)
    return config
