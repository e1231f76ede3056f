"""
Models package for the TLS certificate expiration checker.
"""

from .certificate import CertificateStatus, CertificateChain
from .config import Config, ConfigValidationError, ConfigValidationResult
from .errors import ChainFetchError, AddressError, HandshakeError

__all__ = [
    'CertificateStatus',
    'CertificateChain',
    'Config',
    'ConfigValidationError',
    'ConfigValidationResult',
    'ChainFetchError',
    'AddressError',
    'HandshakeError'
]
