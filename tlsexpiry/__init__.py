"""
Inspect the certificate chain a TLS endpoint presents and report when its
certificates expire.

    import tlsexpiry

    try:
        if tlsexpiry.expires_within_days("example.com:443", 30):
            ...
    except tlsexpiry.ChainFetchError as e:
        ...

The peer's chain is read without verifying trust, so expired and
self-signed certificates can be inspected too.
"""

from .models import (
    CertificateStatus, Config, ChainFetchError, AddressError, HandshakeError
)
from .services import (
    ChainFetcherService, ConfigService, ExpirationService, LoggingService,
    fetch_chain, is_expired, expires_within_days, expires_before_date
)

__version__ = "1.0.0"

__all__ = [
    'CertificateStatus',
    'Config',
    'ChainFetchError',
    'AddressError',
    'HandshakeError',
    'ChainFetcherService',
    'ConfigService',
    'ExpirationService',
    'LoggingService',
    'fetch_chain',
    'is_expired',
    'expires_within_days',
    'expires_before_date'
]
