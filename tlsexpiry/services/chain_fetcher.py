"""
Chain fetcher service: connects to a TLS endpoint and reports the expiration
status of every certificate the peer presents.

Peer trust is intentionally NOT verified. The point of the fetcher is to look
at certificates a verifying client would reject before the handshake even
completes: expired, self-signed or otherwise untrusted chains.
"""
import ipaddress
import logging
import socket
import ssl
import time
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union

from cryptography import x509

from ..models.certificate import CertificateStatus
from ..models.config import Config
from ..models.errors import AddressError, HandshakeError
from .logging_service import PerformanceMonitor


Address = Union[str, Tuple[str, int]]


def parse_address(address: Address) -> Tuple[str, int]:
    """
    Split an address into host and port.

    Accepts ``"host:port"``, ``"[v6addr]:port"`` or a ``(host, port)`` pair.

    Raises:
        AddressError: If the host or port is missing or the port is invalid
    """
    if isinstance(address, tuple):
        if len(address) != 2:
            raise AddressError(str(address), f"Invalid address {address} - expected (host, port)")
        host, port = address
        port_text = str(port)
    else:
        host, sep, port_text = str(address).rpartition(":")
        if not sep:
            raise AddressError(address, f"Invalid address {address} - missing port")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]

    if not host:
        raise AddressError(str(address), f"Invalid address {address} - missing host")

    if not _is_ip_address(host):
        # Empty or over-long labels fail here rather than inside getaddrinfo
        try:
            host.encode("idna")
        except UnicodeError as e:
            raise AddressError(str(address), f"Invalid address {address} - bad host name {host!r}", cause=e) from e

    try:
        port_number = int(port_text)
    except (TypeError, ValueError) as e:
        raise AddressError(str(address), f"Invalid address {address} - bad port {port_text!r}", cause=e) from e

    if not (1 <= port_number <= 65535):
        raise AddressError(str(address), f"Invalid address {address} - port out of range")

    return host, port_number


def _is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


class ChainFetcherService:
    """Fetches a remote peer's certificate chain over a fresh TLS connection."""

    def __init__(self, config: Optional[Config] = None,
                 performance_monitor: Optional[PerformanceMonitor] = None):
        """
        Initialize the chain fetcher.

        Args:
            config: Connection settings (timeouts, SNI); defaults to Config()
            performance_monitor: Optional monitor recording each fetch
        """
        self.config = config or Config()
        self.performance_monitor = performance_monitor
        self.logger = logging.getLogger(__name__)
        self._ssl_context = self._create_ssl_context()

    def _create_ssl_context(self) -> ssl.SSLContext:
        """Create a client SSL context that accepts any peer certificate."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        # check_hostname must be cleared before verification can be disabled
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    def fetch_chain(self, address: Address) -> List[CertificateStatus]:
        """
        Fetch the peer's certificate chain and build one status record per certificate.

        Args:
            address: ``"host:port"`` string or ``(host, port)`` pair

        Returns:
            Status records in the order the peer sent them (leaf first)

        Raises:
            AddressError: If the address cannot be parsed, resolved or connected to
            HandshakeError: If the TLS handshake fails or a certificate cannot be decoded
        """
        if self.performance_monitor is None:
            measurement = nullcontext()
        else:
            measurement = self.performance_monitor.measure_operation(
                "fetch_chain", {"address": str(address)}
            )

        with measurement:
            try:
                return self._fetch_chain(address)
            except (AddressError, HandshakeError) as e:
                self.logger.error(f"Failed to fetch certificate chain: {e}")
                raise

    def _fetch_chain(self, address: Address) -> List[CertificateStatus]:
        host, port = parse_address(address)
        self.logger.info(f"Fetching certificate chain from {host}:{port}")

        der_chain = self._read_peer_chain(str(address), host, port)

        now = datetime.now(timezone.utc)
        chain = []
        for der_cert in der_chain:
            try:
                cert = x509.load_der_x509_certificate(der_cert)
            except ValueError as e:
                raise HandshakeError(
                    str(address),
                    f"Peer at {address} presented an undecodable certificate - {e}",
                    cause=e,
                ) from e

            status = CertificateStatus.from_certificate(cert, now)
            self.logger.debug(
                f"Certificate serial={status.serial_number} expires={status.expiration_date.isoformat()} "
                f"expired_now={status.expired_now} expires_in_days={status.expires_in_days}"
            )
            chain.append(status)

        self.logger.info(f"Fetched {len(chain)} certificate(s) from {host}:{port}")
        return chain

    def _connect(self, address: str, host: str, port: int) -> socket.socket:
        """
        Open a TCP connection to the first reachable resolved address.

        ``connect_timeout_seconds`` is one deadline shared by every resolved
        address, so a dual-stack name cannot multiply it. Name resolution
        itself is not covered by the deadline.

        Raises:
            AddressError: If resolution fails or no address connects in time
        """
        def connect_error(e):
            return AddressError(
                address,
                f"Could not establish connection to outbound address {address} - {e}",
                cause=e,
            )

        try:
            addr_infos = socket.getaddrinfo(host, port, 0, socket.SOCK_STREAM)
        except (OSError, UnicodeError) as e:
            raise connect_error(e) from e

        deadline = time.monotonic() + self.config.connect_timeout_seconds
        last_error = OSError(f"no addresses found for {host}")

        for family, sock_type, proto, _, sockaddr in addr_infos:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                last_error = TimeoutError("timed out")
                break

            sock = socket.socket(family, sock_type, proto)
            try:
                sock.settimeout(remaining)
                sock.connect(sockaddr)
            except OSError as e:
                sock.close()
                last_error = e
                continue
            return sock

        raise connect_error(last_error) from last_error

    def _read_peer_chain(self, address: str, host: str, port: int) -> List[bytes]:
        """Connect, handshake and return the peer chain as DER bytes."""
        sock = self._connect(address, host, port)

        server_hostname = None
        if self.config.send_server_name and not _is_ip_address(host):
            server_hostname = host

        with sock:
            # The ssl module turns the socket timeout into one deadline for the whole handshake
            sock.settimeout(self.config.handshake_timeout_seconds)
            try:
                with self._ssl_context.wrap_socket(sock, server_hostname=server_hostname) as ssock:
                    return self._peer_chain_der(ssock)
            except OSError as e:
                # ssl.SSLError and socket.timeout are both OSError subclasses
                raise HandshakeError(
                    address,
                    f"TLS handshake with outbound address {address} failed - {e}",
                    cause=e,
                ) from e

    def _peer_chain_der(self, ssock: ssl.SSLSocket) -> List[bytes]:
        """Read the unverified peer chain, falling back to the leaf certificate."""
        if hasattr(ssock, 'get_unverified_chain'):
            # Python 3.13+
            chain = ssock.get_unverified_chain() or []
        else:
            # Python 3.10 - 3.12 only expose it on the underlying SSL object
            sslobj = getattr(ssock, '_sslobj', None)
            if sslobj is not None and hasattr(sslobj, 'get_unverified_chain'):
                chain = sslobj.get_unverified_chain() or []
            else:
                chain = []

        der_chain = [
            cert if isinstance(cert, bytes) else cert.public_bytes(ssl._ssl.ENCODING_DER)
            for cert in chain
        ]

        if not der_chain:
            leaf = ssock.getpeercert(binary_form=True)
            if leaf:
                der_chain = [leaf]

        return der_chain


_default_fetcher = ChainFetcherService()


def get_default_fetcher() -> ChainFetcherService:
    """Get the module-level fetcher built from the default configuration."""
    return _default_fetcher


def fetch_chain(address: Address) -> List[CertificateStatus]:
    """Fetch a peer's certificate chain using the default configuration."""
    return _default_fetcher.fetch_chain(address)
