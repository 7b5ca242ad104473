# Utilities
from .logger import setup_logging, get_logger, TradeLogger
from .cache import ExpiringIdCache
from .validation import ValidationError

__all__ = ["setup_logging", "get_logger", "TradeLogger", "ExpiringIdCache", "ValidationError"]
