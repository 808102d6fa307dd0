"""
rolesd configuration.

Settings come from ROLESD_ environment variables or a .env file and are
overridden by command line flags.
"""

from rolesd.config.settings import Settings, split_csv

__all__ = [
    "Settings",
    "split_csv",
]
