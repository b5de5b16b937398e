"""Immutable chain context assembled once per application.

Holds everything a request needs to talk to the network: the RPC client, the
wallet signer, the program registry, the collection address and the
commitment level. Built from settings and passed by reference; nothing is
patched onto third-party objects at runtime.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

import httpx
from prometheus_client import Counter, Histogram
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, TransactionExpiredBlockheightExceededError, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.account import Account
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey

from nft_api.chain.keys import collection_address, load_wallet_keypair
from nft_api.chain.programs import ProgramRegistry
from nft_api.chain.signer import WalletSigner
from nft_api.common.errors import UpstreamError
from nft_api.config import Settings

logger = logging.getLogger("nft_api.chain.context")

RPC_OPERATION_LATENCY = Histogram(
    "solana_rpc_operation_latency_seconds",
    "Latency of Solana RPC operations",
    ["operation"],
)

RPC_ERRORS_TOTAL = Counter(
    "solana_rpc_errors_total",
    "Total errors in Solana RPC operations",
    ["operation", "error_type"],
)


@dataclass(frozen=True)
class MintContext:
    rpc: AsyncClient
    signer: WalletSigner
    collection: Pubkey
    commitment: Commitment
    network: str

    @classmethod
    def from_settings(cls, settings: Settings, rpc: Optional[AsyncClient] = None) -> "MintContext":
        """Validate configuration and build the context. Raises ConfigurationError."""
        settings.validate_required()
        keypair = load_wallet_keypair(settings.WALLET_PRIVATE_KEY)
        collection = collection_address(settings.COLLECTION_ADDRESS)
        commitment = Commitment(settings.SOLANA_COMMITMENT)
        if rpc is None:
            rpc = AsyncClient(settings.SOLANA_RPC_URL, commitment=commitment)
        signer = WalletSigner(keypair)
        logger.info(
            "Chain context ready (network=%s wallet=%s collection=%s)",
            settings.SOLANA_NETWORK,
            signer.public_key,
            collection,
        )
        return cls(
            rpc=rpc,
            signer=signer,
            collection=collection,
            commitment=commitment,
            network=settings.SOLANA_NETWORK,
        )

    @property
    def programs(self) -> ProgramRegistry:
        return self.signer.programs

    @asynccontextmanager
    async def _rpc_call(self, operation: str) -> AsyncIterator[None]:
        start_time = time.perf_counter()
        try:
            yield
        except (SolanaRpcException, httpx.HTTPError) as exc:
            RPC_ERRORS_TOTAL.labels(operation=operation, error_type=type(exc).__name__).inc()
            logger.error("RPC endpoint unreachable during %s: %s", operation, exc)
            raise UpstreamError(
                "Unable to connect to external service",
                details=str(exc),
                unavailable=True,
            ) from exc
        except (RPCException, UnconfirmedTxError, TransactionExpiredBlockheightExceededError) as exc:
            RPC_ERRORS_TOTAL.labels(operation=operation, error_type=type(exc).__name__).inc()
            logger.error("RPC %s rejected: %s", operation, exc)
            raise UpstreamError("Transaction failed on Solana network", details=str(exc)) from exc
        finally:
            RPC_OPERATION_LATENCY.labels(operation=operation).observe(time.perf_counter() - start_time)

    async def get_account(self, address: Pubkey) -> Optional[Account]:
        async with self._rpc_call("get_account_info"):
            resp = await self.rpc.get_account_info(address, commitment=self.commitment)
        return resp.value

    async def send_and_confirm(
        self, instructions: Sequence[Instruction], extra_signers: Sequence[Keypair] = ()
    ) -> str:
        """Compile, sign, send and confirm a v0 transaction paid for by the wallet.

        Returns the base58 transaction signature.
        """
        async with self._rpc_call("get_latest_blockhash"):
            blockhash_resp = await self.rpc.get_latest_blockhash(commitment=self.commitment)
        blockhash = blockhash_resp.value.blockhash
        last_valid_block_height = blockhash_resp.value.last_valid_block_height

        message = MessageV0.try_compile(
            payer=self.signer.public_key,
            instructions=list(instructions),
            address_lookup_table_accounts=[],
            recent_blockhash=blockhash,
        )
        transaction = self.signer.sign_message(message, extra_signers)

        async with self._rpc_call("send_transaction"):
            send_resp = await self.rpc.send_raw_transaction(
                bytes(transaction),
                opts=TxOpts(skip_preflight=False, preflight_commitment=self.commitment),
            )
        signature = send_resp.value
        logger.info("Transaction sent: %s", signature)

        async with self._rpc_call("confirm_transaction"):
            confirm_resp = await self.rpc.confirm_transaction(
                signature,
                commitment=self.commitment,
                last_valid_block_height=last_valid_block_height,
            )
        status = confirm_resp.value[0] if confirm_resp.value else None
        if status is not None and status.err is not None:
            RPC_ERRORS_TOTAL.labels(operation="confirm_transaction", error_type="TransactionError").inc()
            raise UpstreamError("Transaction failed on Solana network", details=str(status.err))
        return str(signature)

    async def close(self) -> None:
        await self.rpc.close()
