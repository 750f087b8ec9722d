"""GitArchitect utility modules.

- logging: Standardized logging with human/verbose/JSON modes and redaction
- preflight: Model backend and hosting checks before analysis
"""

from gitarchitect.utils.logging import RedactingFilter, get_logger, setup_logging
from gitarchitect.utils.preflight import PreflightChecker, PreflightResult

__all__ = [
    "PreflightChecker",
    "PreflightResult",
    "RedactingFilter",
    "get_logger",
    "setup_logging",
]
