"""RSA code signing for expo-updates responses.

The expo-signature header is an RFC 8941 dictionary:

    keyid="main", sig="<base64 RSASSA-PKCS1-v1_5 SHA-256 signature>"

The signature covers the exact bytes of the manifest (or directive) part
body, so callers must sign the same string they send.
"""

import base64
from pathlib import Path
from typing import Dict, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from http_sfv import Dictionary, Item

from ota_api.errors import ConfigError, InternalError

DEFAULT_KEY_ID = "main"


def load_private_key(private_key_path: Optional[Path]) -> Optional[str]:
    """Read the PEM private key configured for code signing.

    Returns:
        PEM text, or None if no key path is configured

    Raises:
        InternalError: If the configured file cannot be read
    """
    if private_key_path is None:
        return None
    try:
        return Path(private_key_path).read_text(encoding="utf-8")
    except OSError as e:
        raise InternalError(f"Could not read private key: {e}", cause=e) from e


def require_private_key(private_key_path: Optional[Path]) -> str:
    """Like load_private_key but a missing configuration is a client-facing error.

    Raises:
        ConfigError: If signing was requested and no key is configured
    """
    private_key = load_private_key(private_key_path)
    if not private_key:
        raise ConfigError("Code signing requested but no key supplied when starting server.")
    return private_key


def sign_rsa_sha256(data: str, private_key_pem: str) -> str:
    """Sign data with an RSA private key.

    Args:
        data: String to sign, encoded as UTF-8
        private_key_pem: RSA private key in PEM format

    Returns:
        Standard base64 signature
    """
    try:
        private_key = serialization.load_pem_private_key(
            private_key_pem.encode("utf-8"), password=None
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InternalError(f"Invalid private key: {e}", cause=e) from e
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise InternalError("Code signing key must be an RSA private key")

    signature = private_key.sign(data.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


def serialize_dictionary(items: Dict[str, str]) -> str:
    """Serialize string members as an RFC 8941 dictionary, preserving order.

    Raises:
        ValueError: If a key or value is not allowed in a structured field
    """
    dictionary = Dictionary()
    for key, value in items.items():
        dictionary[key] = Item(value)
    return str(dictionary)


def create_signature_header(data: str, private_key_pem: str, key_id: str = DEFAULT_KEY_ID) -> str:
    """Sign data and format the expo-signature header value."""
    signature = sign_rsa_sha256(data, private_key_pem)
    return serialize_dictionary({"keyid": key_id, "sig": signature})
