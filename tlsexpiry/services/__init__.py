"""
Services package for the TLS certificate expiration checker.
"""

from .chain_fetcher import ChainFetcherService, fetch_chain, parse_address
from .config_service import ConfigService
from .expiration_service import (
    ExpirationService, is_expired, expires_within_days, expires_before_date
)
from .logging_service import LoggingService, PerformanceMonitor

__all__ = [
    'ChainFetcherService',
    'fetch_chain',
    'parse_address',
    'ConfigService',
    'ExpirationService',
    'is_expired',
    'expires_within_days',
    'expires_before_date',
    'LoggingService',
    'PerformanceMonitor'
]
