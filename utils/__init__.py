"""
Utility modules for the listing ingest service.
"""

from .formatting import format_confidence, format_count, format_percent
from .config import Config

__all__ = ["format_confidence", "format_count", "format_percent", "Config"]
