"""Base58 codec helpers for wallet secrets and account addresses."""

from __future__ import annotations

import logging
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from nft_api.common.errors import ConfigurationError, InvalidKeyError, ValidationError

logger = logging.getLogger("nft_api.chain.keys")

PUBKEY_LENGTH = 32
SECRET_KEY_LENGTH = 64
SEED_LENGTH = 32


def decode_secret_key(encoded: str) -> Keypair:
    """Decode a base58 secret key into a keypair.

    The full 64-byte secret key (seed followed by public key) is the expected
    form; a bare 32-byte seed is accepted too.
    """
    try:
        raw = base58.b58decode(encoded.strip())
    except ValueError as exc:
        raise InvalidKeyError("Invalid wallet private key format. Expected base58 encoded string.") from exc

    if len(raw) == SECRET_KEY_LENGTH:
        try:
            return Keypair.from_bytes(raw)
        except ValueError as exc:
            raise InvalidKeyError("Invalid wallet private key format. Expected base58 encoded string.") from exc
    if len(raw) == SEED_LENGTH:
        return Keypair.from_seed(raw)

    logger.error("Wallet secret key decoded to %d bytes; expected %d", len(raw), SECRET_KEY_LENGTH)
    raise InvalidKeyError("Invalid wallet private key format. Expected base58 encoded string.")


def load_wallet_keypair(encoded: Optional[str]) -> Keypair:
    if not encoded:
        raise ConfigurationError("Wallet private key not configured")
    return decode_secret_key(encoded)


def _decode_address(value: str) -> Optional[Pubkey]:
    if not isinstance(value, str) or not value:
        return None
    try:
        raw = base58.b58decode(value)
    except ValueError:
        return None
    if len(raw) != PUBKEY_LENGTH:
        return None
    return Pubkey.from_bytes(raw)


def is_valid_address(value: str) -> bool:
    """True when `value` is a base58 string encoding exactly 32 bytes."""
    return _decode_address(value) is not None


def parse_address(value: str, label: str = "address") -> Pubkey:
    pubkey = _decode_address(value)
    if pubkey is None:
        raise ValidationError(f"Invalid {label}: {value!r} is not a valid Solana address")
    return pubkey


def collection_address(value: Optional[str]) -> Pubkey:
    if not value:
        raise ConfigurationError("Collection address not configured")
    pubkey = _decode_address(value)
    if pubkey is None:
        raise ConfigurationError("Invalid collection address format")
    return pubkey
