"""Wallet signer that adapts a raw keypair to the transaction-building layer."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Tuple

from solders.keypair import Keypair
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from nft_api.chain.keys import is_valid_address
from nft_api.chain.programs import Program, ProgramRegistry, default_registry

logger = logging.getLogger("nft_api.chain.signer")

EMPTY_SIGNATURE = b""


class WalletSigner:
    """Signing capabilities backed by the configured wallet keypair.

    The wallet keypair and program registry are fixed at construction time and
    shared by every request; nothing mutates them afterwards.
    """

    def __init__(self, keypair: Keypair, programs: Optional[ProgramRegistry] = None) -> None:
        self._keypair = keypair
        self._programs = programs or default_registry()

    @property
    def public_key(self) -> Pubkey:
        return self._keypair.pubkey()

    @property
    def programs(self) -> ProgramRegistry:
        return self._programs

    def generate_keypair(self) -> Keypair:
        """Return a fresh random keypair, unrelated to the wallet (used for new asset addresses)."""
        return Keypair()

    def create_keypair_from_secret_key(self, secret_key: bytes) -> Keypair:
        return Keypair.from_bytes(bytes(secret_key))

    def sign(self, message: Optional[bytes], keypair_override: Optional[Keypair] = None) -> bytes:
        """Sign `message` with the override keypair when given, else with the wallet.

        An absent or empty message yields an empty signature instead of an error.
        """
        if not message:
            logger.warning("sign() called without a message; returning an empty signature")
            return EMPTY_SIGNATURE
        keypair = keypair_override if keypair_override is not None else self._keypair
        return bytes(keypair.sign_message(bytes(message)))

    def verify(self, message: bytes, signature: bytes, public_key: Pubkey) -> bool:
        try:
            return Signature.from_bytes(bytes(signature)).verify(public_key, bytes(message))
        except ValueError:
            return False

    def is_on_curve(self, address: str) -> bool:
        """Capability check: true when the address parses as a public key encoding."""
        return is_valid_address(address)

    def find_pda(self, seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
        return Pubkey.find_program_address(list(seeds), program_id)

    def resolve_program(self, name: str) -> Program:
        return self._programs.get(name)

    def sign_message(self, message: MessageV0, extra_signers: Sequence[Keypair] = ()) -> VersionedTransaction:
        """Sign a compiled v0 message for every required signer, in account-key order."""
        payload = to_bytes_versioned(message)
        keypairs: Dict[Pubkey, Keypair] = {self.public_key: self._keypair}
        for keypair in extra_signers:
            keypairs[keypair.pubkey()] = keypair

        required = message.account_keys[: message.header.num_required_signatures]
        signatures = []
        for account in required:
            keypair = keypairs.get(account)
            if keypair is None:
                raise ValueError(f"No keypair available for required signer {account}")
            signatures.append(Signature.from_bytes(self.sign(payload, keypair)))
        return VersionedTransaction.populate(message, signatures)

    def __repr__(self) -> str:
        return f"WalletSigner(public_key={self.public_key})"
