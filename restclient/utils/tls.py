"""
TLS utilities for the request handlers.

This module provides helper functions for setting up TLS connections and
for pinning the server certificate to a locally stored one.
"""

import hashlib
import ssl
from pathlib import Path
from typing import Optional, Union


def create_ssl_context(
    alpn_protocols: Optional[list[str]] = None,
    verify: bool = False,
) -> ssl.SSLContext:
    """Create an SSL context for HTTP connections.

    Args:
        alpn_protocols: List of ALPN protocols to advertise (e.g., ['http/1.1'])
        verify: Whether to verify server certificates

    Returns:
        Configured SSL context
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if alpn_protocols:
        context.set_alpn_protocols(alpn_protocols)

    return context


def get_http1_ssl_context(verify: bool = False) -> ssl.SSLContext:
    """Get an SSL context configured for HTTP/1.1.

    Args:
        verify: Whether to verify server certificates

    Returns:
        SSL context for HTTP/1.1
    """
    return create_ssl_context(alpn_protocols=['http/1.1'], verify=verify)


def get_negotiated_protocol(ssl_object: Union[ssl.SSLObject, ssl.SSLSocket]) -> Optional[str]:
    """Get the negotiated ALPN protocol from an SSL object.

    Args:
        ssl_object: SSL object from an established connection

    Returns:
        Negotiated protocol or None if not available
    """
    try:
        return ssl_object.selected_alpn_protocol()
    except AttributeError:
        return None


def load_pinned_certificate(certificate_file: Union[str, Path]) -> bytes:
    """Load a certificate file and return it in DER form.

    PEM and DER encoded files are both accepted.

    Raises:
        ValueError: If the file does not contain a certificate
    """
    data = Path(certificate_file).read_bytes()
    if b"-----BEGIN CERTIFICATE-----" in data:
        return ssl.PEM_cert_to_DER_cert(data.decode("ascii"))
    if not data:
        raise ValueError(f"Certificate file {certificate_file} is empty")
    return data


def certificate_fingerprint(der_certificate: bytes) -> str:
    """SHA-256 fingerprint of a DER certificate as uppercase hex."""
    return hashlib.sha256(der_certificate).hexdigest().upper()


def check_pinned_certificate(
    ssl_object: Union[ssl.SSLObject, ssl.SSLSocket, None],
    pinned_der: bytes,
) -> None:
    """Ensure the peer certificate of an established connection is the pinned one.

    Raises:
        ConnectionError: If there is no peer certificate or it does not match
    """
    peer = ssl_object.getpeercert(binary_form=True) if ssl_object is not None else None
    if not peer:
        raise ConnectionError("Server did not present a certificate")
    if certificate_fingerprint(peer) != certificate_fingerprint(pinned_der):
        raise ConnectionError(
            "Server certificate does not match the pinned certificate "
            f"(got {certificate_fingerprint(peer)})"
        )
