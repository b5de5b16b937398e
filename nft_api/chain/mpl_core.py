"""Metaplex Core instruction encoding and asset account decoding.

Instruction arguments are Borsh encoded by hand with `struct`; account data is
decoded with `construct` layouts. Only the instructions and plugins this
service issues are covered.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, List, Optional, Sequence

from construct import Bytes, ConstructError, Flag, If, Int8ul, Int16ul, Int32ul, Int64ul, PascalString, PrefixedArray, Struct, Tell, this
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from nft_api.chain.programs import MPL_CORE_PROGRAM_ID, SYSTEM_PROGRAM_ID


class InstructionDiscriminator(IntEnum):
    CREATE_V1 = 0
    ADD_PLUGIN_V1 = 2
    UPDATE_PLUGIN_V1 = 6
    UPDATE_V1 = 15


class AccountKey(IntEnum):
    UNINITIALIZED = 0
    ASSET_V1 = 1
    HASHED_ASSET_V1 = 2
    PLUGIN_HEADER_V1 = 3
    PLUGIN_REGISTRY_V1 = 4
    COLLECTION_V1 = 5


class PluginType(IntEnum):
    ROYALTIES = 0
    FREEZE_DELEGATE = 1
    BURN_DELEGATE = 2
    TRANSFER_DELEGATE = 3
    UPDATE_DELEGATE = 4
    PERMANENT_FREEZE_DELEGATE = 5
    ATTRIBUTES = 6
    PERMANENT_TRANSFER_DELEGATE = 7
    PERMANENT_BURN_DELEGATE = 8
    EDITION = 9
    MASTER_EDITION = 10
    ADD_BLOCKER = 11
    IMMUTABLE_METADATA = 12
    VERIFIED_CREATORS = 13
    AUTOGRAPH = 14


class UpdateAuthorityKind(IntEnum):
    NONE = 0
    ADDRESS = 1
    COLLECTION = 2


class PluginAuthorityKind(IntEnum):
    NONE = 0
    OWNER = 1
    UPDATE_AUTHORITY = 2
    ADDRESS = 3


DATA_STATE_ACCOUNT = 0
RULE_SET_NONE = 0


class AssetDecodeError(ValueError):
    """Raised when account data is not a Metaplex Core asset."""


@dataclass(frozen=True)
class Creator:
    address: Pubkey
    percentage: int


@dataclass(frozen=True)
class Attribute:
    key: str
    value: str


@dataclass(frozen=True)
class VerifiedCreator:
    address: Pubkey
    verified: bool = True


@dataclass(frozen=True)
class Royalties:
    basis_points: int
    creators: List[Creator] = field(default_factory=list)


# --- Borsh encoding -------------------------------------------------------


def _u8(value: int) -> bytes:
    return struct.pack("<B", value)


def _u16(value: int) -> bytes:
    return struct.pack("<H", value)


def _u32(value: int) -> bytes:
    return struct.pack("<I", value)


def _bool(value: bool) -> bytes:
    return _u8(1 if value else 0)


def _string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return _u32(len(encoded)) + encoded


def _option(value, encode: Callable[[object], bytes]) -> bytes:
    if value is None:
        return _u8(0)
    return _u8(1) + encode(value)


def _vec(items: Sequence, encode: Callable[[object], bytes]) -> bytes:
    return _u32(len(items)) + b"".join(encode(item) for item in items)


def encode_royalties(royalties: Royalties) -> bytes:
    body = _u16(royalties.basis_points)
    body += _vec(royalties.creators, lambda c: bytes(c.address) + _u8(c.percentage))
    body += _u8(RULE_SET_NONE)
    return _u8(PluginType.ROYALTIES) + body


def encode_attributes(attributes: Sequence[Attribute]) -> bytes:
    body = _vec(list(attributes), lambda a: _string(a.key) + _string(a.value))
    return _u8(PluginType.ATTRIBUTES) + body


def encode_verified_creators(signatures: Sequence[VerifiedCreator]) -> bytes:
    body = _vec(list(signatures), lambda s: bytes(s.address) + _bool(s.verified))
    return _u8(PluginType.VERIFIED_CREATORS) + body


def _plugin_authority_pair(plugin: bytes) -> bytes:
    # The program assigns each plugin its default authority when none is given.
    return plugin + _option(None, _u8)


# --- Instructions ---------------------------------------------------------


def _optional_account(
    pubkey: Optional[Pubkey], program_id: Pubkey, *, is_signer: bool = False, is_writable: bool = False
) -> AccountMeta:
    if pubkey is None:
        return AccountMeta(pubkey=program_id, is_signer=False, is_writable=False)
    return AccountMeta(pubkey=pubkey, is_signer=is_signer, is_writable=is_writable)


def create_v1(
    *,
    asset: Pubkey,
    payer: Pubkey,
    name: str,
    uri: str,
    collection: Optional[Pubkey] = None,
    authority: Optional[Pubkey] = None,
    owner: Optional[Pubkey] = None,
    royalties: Optional[Royalties] = None,
    verified_creators: Sequence[VerifiedCreator] = (),
    attributes: Sequence[Attribute] = (),
    program_id: Pubkey = MPL_CORE_PROGRAM_ID,
    system_program: Pubkey = SYSTEM_PROGRAM_ID,
) -> Instruction:
    """Build a CreateV1 instruction for a new account-state asset."""
    plugins: List[bytes] = []
    if royalties is not None:
        plugins.append(_plugin_authority_pair(encode_royalties(royalties)))
    if verified_creators:
        plugins.append(_plugin_authority_pair(encode_verified_creators(verified_creators)))
    if attributes:
        plugins.append(_plugin_authority_pair(encode_attributes(attributes)))

    data = _u8(InstructionDiscriminator.CREATE_V1)
    data += _u8(DATA_STATE_ACCOUNT)
    data += _string(name)
    data += _string(uri)
    data += _option(plugins or None, lambda items: _vec(items, lambda p: p))

    accounts = [
        AccountMeta(pubkey=asset, is_signer=True, is_writable=True),
        _optional_account(collection, program_id, is_writable=True),
        _optional_account(authority, program_id, is_signer=True),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        _optional_account(owner, program_id),
        # The update authority is inherited from the collection when one is given.
        _optional_account(None, program_id),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
        _optional_account(None, program_id),
    ]
    return Instruction(program_id=program_id, data=data, accounts=accounts)


def _asset_mutation_accounts(
    asset: Pubkey,
    payer: Pubkey,
    collection: Optional[Pubkey],
    authority: Optional[Pubkey],
    program_id: Pubkey,
    system_program: Pubkey,
) -> List[AccountMeta]:
    return [
        AccountMeta(pubkey=asset, is_signer=False, is_writable=True),
        _optional_account(collection, program_id, is_writable=True),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        _optional_account(authority, program_id, is_signer=True),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
        _optional_account(None, program_id),
    ]


def update_v1(
    *,
    asset: Pubkey,
    payer: Pubkey,
    new_name: Optional[str] = None,
    new_uri: Optional[str] = None,
    collection: Optional[Pubkey] = None,
    authority: Optional[Pubkey] = None,
    program_id: Pubkey = MPL_CORE_PROGRAM_ID,
    system_program: Pubkey = SYSTEM_PROGRAM_ID,
) -> Instruction:
    """Build an UpdateV1 instruction; None leaves the field unchanged."""
    data = _u8(InstructionDiscriminator.UPDATE_V1)
    data += _option(new_name, _string)
    data += _option(new_uri, _string)
    data += _option(None, _u8)  # new_update_authority
    return Instruction(
        program_id=program_id,
        data=data,
        accounts=_asset_mutation_accounts(asset, payer, collection, authority, program_id, system_program),
    )


def add_attributes_plugin_v1(
    *,
    asset: Pubkey,
    payer: Pubkey,
    attributes: Sequence[Attribute],
    collection: Optional[Pubkey] = None,
    authority: Optional[Pubkey] = None,
    program_id: Pubkey = MPL_CORE_PROGRAM_ID,
    system_program: Pubkey = SYSTEM_PROGRAM_ID,
) -> Instruction:
    data = _u8(InstructionDiscriminator.ADD_PLUGIN_V1)
    data += encode_attributes(attributes)
    data += _option(None, _u8)  # init_authority
    return Instruction(
        program_id=program_id,
        data=data,
        accounts=_asset_mutation_accounts(asset, payer, collection, authority, program_id, system_program),
    )


def update_attributes_plugin_v1(
    *,
    asset: Pubkey,
    payer: Pubkey,
    attributes: Sequence[Attribute],
    collection: Optional[Pubkey] = None,
    authority: Optional[Pubkey] = None,
    program_id: Pubkey = MPL_CORE_PROGRAM_ID,
    system_program: Pubkey = SYSTEM_PROGRAM_ID,
) -> Instruction:
    data = _u8(InstructionDiscriminator.UPDATE_PLUGIN_V1) + encode_attributes(attributes)
    return Instruction(
        program_id=program_id,
        data=data,
        accounts=_asset_mutation_accounts(asset, payer, collection, authority, program_id, system_program),
    )


# --- Account decoding -----------------------------------------------------

BorshString = PascalString(Int32ul, "utf8")


def BorshOption(subcon):
    return Struct("is_some" / Flag, "value" / If(this.is_some, subcon))


UpdateAuthorityLayout = Struct(
    "kind" / Int8ul,
    "address" / If(this.kind != UpdateAuthorityKind.NONE, Bytes(32)),
)

PluginAuthorityLayout = Struct(
    "kind" / Int8ul,
    "address" / If(this.kind == PluginAuthorityKind.ADDRESS, Bytes(32)),
)

ASSET_V1 = Struct(
    "key" / Int8ul,
    "owner" / Bytes(32),
    "update_authority" / UpdateAuthorityLayout,
    "name" / BorshString,
    "uri" / BorshString,
    "seq" / BorshOption(Int64ul),
    "end" / Tell,
)

PLUGIN_HEADER_V1 = Struct(
    "key" / Int8ul,
    "plugin_registry_offset" / Int64ul,
)

REGISTRY_RECORD = Struct(
    "plugin_type" / Int8ul,
    "authority" / PluginAuthorityLayout,
    "offset" / Int64ul,
)

PLUGIN_REGISTRY_V1 = Struct(
    "key" / Int8ul,
    "registry" / PrefixedArray(Int32ul, REGISTRY_RECORD),
)

ROYALTIES_PLUGIN = Struct(
    "plugin_type" / Int8ul,
    "basis_points" / Int16ul,
    "creators" / PrefixedArray(Int32ul, Struct("address" / Bytes(32), "percentage" / Int8ul)),
)

ATTRIBUTES_PLUGIN = Struct(
    "plugin_type" / Int8ul,
    "attribute_list" / PrefixedArray(Int32ul, Struct("key" / BorshString, "value" / BorshString)),
)

VERIFIED_CREATORS_PLUGIN = Struct(
    "plugin_type" / Int8ul,
    "signatures" / PrefixedArray(Int32ul, Struct("address" / Bytes(32), "verified" / Flag)),
)


@dataclass
class CoreAsset:
    """Decoded view of an AssetV1 (or HashedAssetV1) account."""

    key: int
    owner: Optional[Pubkey] = None
    update_authority_kind: UpdateAuthorityKind = UpdateAuthorityKind.NONE
    update_authority_address: Optional[Pubkey] = None
    name: Optional[str] = None
    uri: Optional[str] = None
    seq: Optional[int] = None
    royalties: Optional[Royalties] = None
    verified_creators: List[VerifiedCreator] = field(default_factory=list)
    attributes: List[Attribute] = field(default_factory=list)
    plugin_types: List[int] = field(default_factory=list)

    @property
    def is_compressed(self) -> bool:
        return self.key == AccountKey.HASHED_ASSET_V1

    @property
    def is_mutable(self) -> bool:
        return PluginType.IMMUTABLE_METADATA not in self.plugin_types

    @property
    def collection(self) -> Optional[Pubkey]:
        if self.update_authority_kind == UpdateAuthorityKind.COLLECTION:
            return self.update_authority_address
        return None

    @property
    def has_attributes_plugin(self) -> bool:
        return PluginType.ATTRIBUTES in self.plugin_types


def _decode_plugins(asset: CoreAsset, data: bytes, header_offset: int) -> None:
    header = PLUGIN_HEADER_V1.parse(data[header_offset:])
    if header.key != AccountKey.PLUGIN_HEADER_V1:
        return
    registry = PLUGIN_REGISTRY_V1.parse(data[header.plugin_registry_offset:])
    for record in registry.registry:
        asset.plugin_types.append(record.plugin_type)
        payload = data[record.offset:]
        if record.plugin_type == PluginType.ROYALTIES:
            parsed = ROYALTIES_PLUGIN.parse(payload)
            asset.royalties = Royalties(
                basis_points=parsed.basis_points,
                creators=[Creator(Pubkey.from_bytes(c.address), c.percentage) for c in parsed.creators],
            )
        elif record.plugin_type == PluginType.ATTRIBUTES:
            parsed = ATTRIBUTES_PLUGIN.parse(payload)
            asset.attributes = [Attribute(a.key, a.value) for a in parsed.attribute_list]
        elif record.plugin_type == PluginType.VERIFIED_CREATORS:
            parsed = VERIFIED_CREATORS_PLUGIN.parse(payload)
            asset.verified_creators = [
                VerifiedCreator(Pubkey.from_bytes(s.address), bool(s.verified)) for s in parsed.signatures
            ]


def decode_asset(data: bytes) -> CoreAsset:
    """Decode raw account data owned by the Core program into a CoreAsset."""
    data = bytes(data)
    if not data:
        raise AssetDecodeError("Account has no data")
    key = data[0]
    if key == AccountKey.HASHED_ASSET_V1:
        return CoreAsset(key=key)
    if key != AccountKey.ASSET_V1:
        raise AssetDecodeError(f"Account is not a Metaplex Core asset (key={key})")

    try:
        parsed = ASSET_V1.parse(data)
        asset = CoreAsset(
            key=key,
            owner=Pubkey.from_bytes(parsed.owner),
            update_authority_kind=UpdateAuthorityKind(parsed.update_authority.kind),
            update_authority_address=(
                Pubkey.from_bytes(parsed.update_authority.address)
                if parsed.update_authority.address is not None
                else None
            ),
            name=parsed.name,
            uri=parsed.uri,
            seq=parsed.seq.value if parsed.seq.is_some else None,
        )
        if parsed.end < len(data):
            _decode_plugins(asset, data, parsed.end)
    except (ConstructError, ValueError) as exc:
        raise AssetDecodeError(f"Malformed Metaplex Core asset account: {exc}") from exc
    return asset
