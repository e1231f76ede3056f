"""
Expiration queries over a peer's certificate chain.

Each query fetches the chain once and answers True as soon as one certificate
(in the order the peer sent them) matches. Fetch failures are raised, never
reported as a boolean, so a result is only ever returned for a chain that was
actually observed.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..models.certificate import CertificateStatus
from ..models.errors import ChainFetchError
from .chain_fetcher import Address, ChainFetcherService, get_default_fetcher


class ExpirationService:
    """Answers yes/no expiration questions about a remote certificate chain."""

    def __init__(self, chain_fetcher: Optional[ChainFetcherService] = None):
        self.chain_fetcher = chain_fetcher or get_default_fetcher()
        self.logger = logging.getLogger(__name__)

    def is_expired(self, address: Address) -> bool:
        """Check whether any certificate in the chain is expired now."""
        return self._any_certificate(
            address,
            lambda status: status.expired_now,
            "is_expired"
        )

    def expires_within_days(self, address: Address, days: int) -> bool:
        """
        Check whether any certificate in the chain expires within ``days`` days.

        Args:
            address: ``"host:port"`` string or ``(host, port)`` pair
            days: Threshold in whole days; negative values only match
                certificates expired for longer than ``abs(days)`` days

        Returns:
            True if some certificate has ``expires_in_days < days``
        """
        return self._any_certificate(
            address,
            lambda status: status.expires_in_days < days,
            "expires_within_days"
        )

    def expires_before_date(self, address: Address, date: datetime) -> bool:
        """Check whether any certificate in the chain expires before ``date`` (naive dates are UTC)."""
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)

        return self._any_certificate(
            address,
            lambda status: status.expiration_date < date,
            "expires_before_date"
        )

    def _any_certificate(self, address: Address,
                         predicate: Callable[[CertificateStatus], bool],
                         query: str) -> bool:
        try:
            chain = self.chain_fetcher.fetch_chain(address)
        except ChainFetchError as e:
            raise e.with_context(f"Error fetching certificate chain for {query}") from e

        for status in chain:
            if predicate(status):
                self.logger.info(
                    f"{query}: certificate serial={status.serial_number} at {address} matched"
                )
                return True

        return False


_default_service = ExpirationService()


def is_expired(address: Address) -> bool:
    """Check whether any certificate presented at ``address`` is expired."""
    return _default_service.is_expired(address)


def expires_within_days(address: Address, days: int) -> bool:
    """Check whether any certificate presented at ``address`` expires within ``days`` days."""
    return _default_service.expires_within_days(address, days)


def expires_before_date(address: Address, date: datetime) -> bool:
    """Check whether any certificate presented at ``address`` expires before ``date``."""
    return _default_service.expires_before_date(address, date)
