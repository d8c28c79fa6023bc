"""
Start-up Validation

Checks a RunConfig before any document is read. Every problem is
collected, then reported at once.

PRINCIPLE: "Check before walking, not after an hour of parsing"

Usage:
    from sybilhunter.validation import validate_config, check_config

    errors = validate_config(config)     # list of messages, empty = fine
    check_config(config)                 # raises ConfigError
"""

from pathlib import Path
from typing import List

from sybilhunter.errors import ConfigError
from sybilhunter.io.config import RunConfig


def validate_config(config: RunConfig) -> List[str]:
    """
    Validate a RunConfig.

    Returns list of errors. Empty list = config usable.
    """
    errors = []
    engines = set(config.engines)

    if not config.data_path:
        errors.append("No input data given.  Use -data to point to a file or directory.")
    elif not Path(config.data_path).exists():
        errors.append(f"Input data \"{config.data_path}\" does not exist.")

    if not engines:
        errors.append(
            "No analysis selected.  Use one of -churn, -matrix, -neighbours N, "
            "-contrib, -fingerprints, -uptime, -bwfraction F, -print, -printsome."
        )

    if 'neighbours' in engines:
        if config.neighbours < 1:
            errors.append(f"Number of neighbours must be at least 1, got {config.neighbours}.")
        if not config.reference_relay:
            errors.append("Nearest neighbour search needs a reference relay (-referencerelay).")

    if 'contrib' in engines:
        if not config.netblocks_file:
            errors.append("Bandwidth contribution needs a netblock file (-netblocks).")
        elif not Path(config.netblocks_file).is_file():
            errors.append(f"Netblock file \"{config.netblocks_file}\" does not exist.")

    if 'printsome' in engines and not config.fingerprints_file:
        errors.append("Printing selected relays needs a fingerprint file (-fingerprints-file).")

    if config.fingerprints_file and not Path(config.fingerprints_file).is_file():
        errors.append(f"Fingerprint file \"{config.fingerprints_file}\" does not exist.")

    if 'bwfraction' in engines:
        if config.bw_fraction is None or not 0.0 <= config.bw_fraction <= 1.0:
            errors.append(f"Bandwidth fraction must be in [0, 1], got {config.bw_fraction}.")

    if config.start_date and config.end_date and config.start_date > config.end_date:
        errors.append(
            f"Start date {config.start_date.isoformat()} is after end date "
            f"{config.end_date.isoformat()}."
        )

    if config.interval.total_seconds() <= 0:
        errors.append("Consensus interval must be positive.")

    return errors


def check_config(config: RunConfig) -> None:
    """Raise ConfigError listing every problem with config."""
    errors = validate_config(config)
    if errors:
        raise ConfigError(errors)
