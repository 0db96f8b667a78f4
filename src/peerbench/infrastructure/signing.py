"""Operator account used to sign output hashes."""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from ..environment import Environment
from ..exceptions import ConfigurationError, EnvVariableNeededError

LOGGER = logging.getLogger(__name__)

SIGNATURE_ALGORITHM = "ecdsa-secp256k1-sha256"


def _strip_hex_prefix(value: str) -> str:
    return value[2:] if value.lower().startswith("0x") else value


class OperatorSigner:
    """Signs messages with a secp256k1 private key held by the operator."""

    algorithm = SIGNATURE_ALGORITHM

    def __init__(self, private_key_hex: str):
        try:
            secret = int(_strip_hex_prefix(private_key_hex.strip()), 16)
            self._key = ec.derive_private_key(secret, ec.SECP256K1())
        except ValueError as exc:
            raise ConfigurationError("PB_PRIVATE_KEY is not a valid secp256k1 private key") from exc

    @property
    def public_key(self) -> str:
        """Uncompressed public key as 0x-prefixed hex."""
        raw = self._key.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
        )
        return "0x" + raw.hex()

    def sign(self, message: str) -> str:
        """Return a DER encoded ECDSA signature of ``message`` as 0x-prefixed hex."""
        signature = self._key.sign(message.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
        return "0x" + signature.hex()

    def verify(self, message: str, signature: str) -> bool:
        return verify_signature(self.public_key, message, signature)


def verify_signature(public_key: str, message: str, signature: str) -> bool:
    """Check a signature produced by ``OperatorSigner.sign``."""
    try:
        key = ec.EllipticCurvePublicKey.from_encoded_point(
            ec.SECP256K1(), bytes.fromhex(_strip_hex_prefix(public_key))
        )
        key.verify(bytes.fromhex(_strip_hex_prefix(signature)), message.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
    except (InvalidSignature, ValueError):
        return False
    return True


def load_account(env: Environment) -> Optional[OperatorSigner]:
    """Build the operator signer, or None when no key is configured."""
    if env.private_key is None:
        LOGGER.debug("PB_PRIVATE_KEY is not set; output files will not be signed")
        return None
    return OperatorSigner(env.private_key)


def require_account(env: Environment, message: str = "PB_PRIVATE_KEY must be set for signing the files") -> OperatorSigner:
    signer = load_account(env)
    if signer is None:
        raise EnvVariableNeededError(message)
    return signer


__all__ = ["OperatorSigner", "SIGNATURE_ALGORITHM", "verify_signature", "load_account", "require_account"]
