"""
Structured logging for the Polymarket Frontrun Bot.
Supports JSON logging for log aggregation pipelines.
"""

import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger


ROOT_LOGGER_NAME = "polymarket_frontrun"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with additional fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['timestamp'] = self.formatTime(record, self.datefmt)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    logger_name: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Whether to emit one JSON object per line
        logger_name: Optional specific logger name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name or ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        formatter = CustomJsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger with the given name."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class TradeLogger:
    """Specialized logger for frontrun lifecycle events."""

    def __init__(self):
        self.logger = get_logger("trades")

    def signal_detected(
        self,
        signal_id: str,
        source: str,
        account: str,
        outcome_id: str,
        side: str,
        size_usd: float,
        price: float
    ):
        """Log when a watched account's trade is detected."""
        self.logger.info(
            "Trade signal detected",
            extra={
                "event": "signal_detected",
                "signal_id": signal_id,
                "source": source,
                "account": account,
                "outcome_id": outcome_id,
                "side": side,
                "size_usd": size_usd,
                "price": price
            }
        )

    def signal_skipped(
        self,
        account: str,
        outcome_id: str,
        side: str,
        reason: str,
        size_usd: float
    ):
        """Log when the decision stage drops a signal."""
        self.logger.info(
            "Signal skipped",
            extra={
                "event": "signal_skipped",
                "account": account,
                "outcome_id": outcome_id,
                "side": side,
                "reason": reason,
                "size_usd": size_usd
            }
        )

    def order_submitted(
        self,
        order_id: str,
        account: str,
        outcome_id: str,
        side: str,
        size_usd: float,
        price: float,
        gas_price_hint: float,
        attempts: int
    ):
        """Log when a frontrun order is accepted by the order API."""
        self.logger.info(
            "Frontrun order submitted",
            extra={
                "event": "order_submitted",
                "order_id": order_id,
                "account": account,
                "outcome_id": outcome_id,
                "side": side,
                "size_usd": size_usd,
                "price": price,
                "gas_price_hint": gas_price_hint,
                "attempts": attempts
            }
        )

    def execution_failed(
        self,
        account: str,
        outcome_id: str,
        side: str,
        attempts: int,
        error: Optional[str] = None
    ):
        """Log when a frontrun order could not be placed."""
        self.logger.error(
            "Frontrun execution failed",
            extra={
                "event": "execution_failed",
                "account": account,
                "outcome_id": outcome_id,
                "side": side,
                "attempts": attempts,
                "error": error
            }
        )
