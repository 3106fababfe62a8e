"""
Param Miner - Hidden HTTP parameter discovery

Finds the query string, form, XML and JSON parameters an endpoint silently
accepts, using grouped probes, response differencing and verification.
"""

__version__ = "1.0.0"
__author__ = "Param Miner Team"
__license__ = "MIT"

from param_miner.core.config import Config
from param_miner.core.logger import get_logger

# Core exports
__all__ = [
    "Config",
    "get_logger",
    "__version__",
]
