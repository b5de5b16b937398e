import os
import struct
from types import SimpleNamespace
from typing import AsyncGenerator, Dict, List, Optional, Sequence

import base58
import pytest
import pytest_asyncio
from faker import Faker
from httpx import ASGITransport, AsyncClient
from solders.account import Account
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

# Settings are read at import time, so the environment has to be in place first.
WALLET = Keypair()
COLLECTION = Keypair().pubkey()
os.environ["WALLET_PRIVATE_KEY"] = base58.b58encode(bytes(WALLET)).decode()
os.environ["COLLECTION_ADDRESS"] = str(COLLECTION)
os.environ["ENVIRONMENT"] = "test"
os.environ["SOLANA_NETWORK"] = "devnet"

from nft_api.chain import mpl_core  # noqa: E402
from nft_api.chain.context import MintContext  # noqa: E402
from nft_api.chain.programs import MPL_CORE_PROGRAM_ID  # noqa: E402
from nft_api.config import settings  # noqa: E402
from nft_api.main import app  # noqa: E402
from nft_api.routers.nft_router import get_nft_service  # noqa: E402
from nft_api.services.nft_service import NFTService  # noqa: E402


class FakeRpcClient:
    """
    In-memory stand-in for solana.rpc.async_api.AsyncClient.
    Serves accounts from a dict and records every raw transaction it is sent.
    """

    def __init__(self):
        self.accounts: Dict[Pubkey, Account] = {}
        self.sent: List[VersionedTransaction] = []
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.confirm_error: Optional[str] = None
        self.closed = False

    def _record(self, method: str) -> None:
        self.calls.append(method)
        if method in self.failures:
            raise self.failures[method]

    async def get_account_info(self, pubkey, commitment=None, **kwargs):
        self._record("get_account_info")
        return SimpleNamespace(value=self.accounts.get(pubkey))

    async def get_latest_blockhash(self, commitment=None):
        self._record("get_latest_blockhash")
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.new_unique(), last_valid_block_height=1000))

    async def send_raw_transaction(self, txn: bytes, opts=None):
        self._record("send_raw_transaction")
        tx = VersionedTransaction.from_bytes(txn)
        self.sent.append(tx)
        return SimpleNamespace(value=tx.signatures[0])

    async def confirm_transaction(self, tx_sig, commitment=None, sleep_seconds=0.5, last_valid_block_height=None):
        self._record("confirm_transaction")
        return SimpleNamespace(value=[SimpleNamespace(err=self.confirm_error)])

    async def close(self):
        self.closed = True


def build_asset_account_data(
    owner: Pubkey,
    name: str,
    uri: str,
    collection: Optional[Pubkey] = None,
    royalties: Optional[mpl_core.Royalties] = None,
    verified_creators: Sequence[mpl_core.VerifiedCreator] = (),
    attributes: Sequence[mpl_core.Attribute] = (),
    immutable: bool = False,
) -> bytes:
    """Serializes an AssetV1 account the way the Core program lays it out on-chain."""

    def string(value: str) -> bytes:
        encoded = value.encode("utf-8")
        return struct.pack("<I", len(encoded)) + encoded

    data = bytes([mpl_core.AccountKey.ASSET_V1]) + bytes(owner)
    if collection is not None:
        data += bytes([mpl_core.UpdateAuthorityKind.COLLECTION]) + bytes(collection)
    else:
        data += bytes([mpl_core.UpdateAuthorityKind.ADDRESS]) + bytes(owner)
    data += string(name) + string(uri) + b"\x00"

    plugins = []
    if royalties is not None:
        plugins.append((mpl_core.PluginType.ROYALTIES, mpl_core.encode_royalties(royalties)))
    if verified_creators:
        plugins.append((mpl_core.PluginType.VERIFIED_CREATORS, mpl_core.encode_verified_creators(verified_creators)))
    if attributes:
        plugins.append((mpl_core.PluginType.ATTRIBUTES, mpl_core.encode_attributes(attributes)))
    if immutable:
        plugins.append((mpl_core.PluginType.IMMUTABLE_METADATA, bytes([mpl_core.PluginType.IMMUTABLE_METADATA])))
    if not plugins:
        return data

    header_offset = len(data)
    offset = header_offset + 9
    body = b""
    records = b""
    for plugin_type, payload in plugins:
        records += bytes([plugin_type, mpl_core.PluginAuthorityKind.UPDATE_AUTHORITY]) + struct.pack("<Q", offset)
        body += payload
        offset += len(payload)
    registry = bytes([mpl_core.AccountKey.PLUGIN_REGISTRY_V1]) + struct.pack("<I", len(plugins)) + records
    header = bytes([mpl_core.AccountKey.PLUGIN_HEADER_V1]) + struct.pack("<Q", offset)
    return data + header + body + registry


@pytest.fixture(scope="session")
def faker_instance():
    return Faker()


@pytest.fixture
def wallet() -> Keypair:
    return WALLET


@pytest.fixture
def collection() -> Pubkey:
    return COLLECTION


@pytest.fixture
def fake_rpc() -> FakeRpcClient:
    return FakeRpcClient()


@pytest.fixture
def nft_service(fake_rpc: FakeRpcClient) -> NFTService:
    return NFTService(settings, context=MintContext.from_settings(settings, rpc=fake_rpc))


@pytest_asyncio.fixture
async def client(nft_service: NFTService) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_nft_service] = lambda: nft_service
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def create_asset(fake_rpc: FakeRpcClient, wallet: Keypair, collection: Pubkey, faker_instance: Faker):
    """Places a Core asset account on the fake RPC and returns its address."""

    def _create_asset(
        name: Optional[str] = None,
        uri: Optional[str] = None,
        basis_points: int = 500,
        attributes: Sequence[mpl_core.Attribute] = (),
        owner: Optional[Pubkey] = None,
        account_owner: Pubkey = MPL_CORE_PROGRAM_ID,
        immutable: bool = False,
    ) -> Pubkey:
        address = Keypair().pubkey()
        data = build_asset_account_data(
            owner=owner or wallet.pubkey(),
            name=name or faker_instance.word().capitalize()[:32],
            uri=uri or faker_instance.image_url(),
            collection=collection,
            royalties=mpl_core.Royalties(
                basis_points=basis_points,
                creators=[mpl_core.Creator(address=wallet.pubkey(), percentage=100)],
            ),
            verified_creators=[mpl_core.VerifiedCreator(address=wallet.pubkey(), verified=True)],
            attributes=attributes,
            immutable=immutable,
        )
        fake_rpc.accounts[address] = Account(lamports=3_000_000, data=data, owner=account_owner, executable=False, rent_epoch=0)
        return address

    return _create_asset


@pytest.fixture
def asset_account_data():
    return build_asset_account_data
