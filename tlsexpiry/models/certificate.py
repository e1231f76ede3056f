"""
Certificate status models derived from a peer's presented chain.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List

from cryptography import x509


@dataclass(frozen=True)
class CertificateStatus:
    """Expiration snapshot of one certificate in a peer's chain."""
    expired_now: bool
    expires_in_days: int
    expiration_date: datetime
    signature: bytes
    serial_number: int

    @classmethod
    def from_certificate(cls, cert: x509.Certificate, now: datetime) -> "CertificateStatus":
        """
        Build a status record for a certificate as observed at ``now``.

        Both ``expired_now`` and ``expires_in_days`` are derived from the
        same instant, so every record of one chain should be built with the
        same ``now``.

        Args:
            cert: Certificate presented by the peer
            now: Observation instant (naive values are taken as UTC)

        Returns:
            CertificateStatus for the certificate
        """
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        not_after = cert.not_valid_after_utc

        return cls(
            expired_now=not_after < now,
            expires_in_days=math.floor((not_after - now) / timedelta(hours=24)),
            expiration_date=not_after,
            signature=cert.signature,
            serial_number=cert.serial_number,
        )


CertificateChain = List[CertificateStatus]
