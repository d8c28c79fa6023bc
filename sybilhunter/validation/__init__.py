"""
Sybilhunter Validation Module

Validates the run configuration before the walk starts.

Exports:
    - validate_config: List every problem with a RunConfig
    - check_config: Same, raising ConfigError
"""

from .input_validation import (
    validate_config,
    check_config,
)

__all__ = [
    'validate_config',
    'check_config',
]
