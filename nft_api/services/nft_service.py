import json
import logging
from typing import Any, Dict, List, Optional

from solders.pubkey import Pubkey

from nft_api.chain import mpl_core
from nft_api.chain.context import MintContext
from nft_api.chain.keys import parse_address
from nft_api.chain.programs import MPL_CORE, SPL_SYSTEM
from nft_api.common.errors import AssetNotFound, UpstreamError, ValidationError
from nft_api.config import Settings
from nft_api.middleware.request_context_middleware import use_case_context
from nft_api.models.nft import (
    UNCHANGED,
    MintNFTData,
    MintNFTInput,
    NFTAsset,
    NFTAttribute,
    NFTCreator,
    UpdatedFields,
    UpdateNFTData,
    UpdateNFTInput,
)

logger = logging.getLogger("nft_api.services.nft")

CREATOR_SHARE = 100


def build_metadata_document(payload: MintNFTInput) -> Dict[str, Any]:
    """Off-chain metadata JSON in the common NFT metadata shape."""
    return {
        "name": payload.name,
        "symbol": payload.symbol,
        "description": payload.description,
        "image": payload.image,
        "attributes": [a.model_dump(by_alias=True) for a in payload.attributes or []],
        "properties": {
            "files": [
                {"type": "image/*", "uri": payload.image},
            ],
        },
    }


def _core_attributes(attributes: List[NFTAttribute]) -> List[mpl_core.Attribute]:
    return [mpl_core.Attribute(key=a.trait_type, value=str(a.value)) for a in attributes]


class NFTService:
    def __init__(self, settings: Settings, context: Optional[MintContext] = None):
        self.settings = settings
        self._context = context

    @property
    def context(self) -> MintContext:
        """The chain context, built from settings on first use and then shared."""
        if self._context is None:
            self._context = MintContext.from_settings(self.settings)
        return self._context

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()

    @staticmethod
    def _upstream(title: str, exc: UpstreamError) -> UpstreamError:
        return UpstreamError(exc.message, error=title, details=exc.details, unavailable=exc.unavailable)

    def _program_ids(self, ctx: MintContext) -> Dict[str, Pubkey]:
        return {
            "program_id": ctx.signer.resolve_program(MPL_CORE).public_key,
            "system_program": ctx.signer.resolve_program(SPL_SYSTEM).public_key,
        }

    async def _load_asset(self, ctx: MintContext, address: Pubkey, failure_title: str) -> mpl_core.CoreAsset:
        try:
            account = await ctx.get_account(address)
        except UpstreamError as exc:
            raise self._upstream(failure_title, exc) from exc
        if account is None:
            raise AssetNotFound(f"No account found at {address}")
        if account.owner != ctx.programs.get_public_key(MPL_CORE):
            raise AssetNotFound(f"Account {address} is not a Metaplex Core asset")
        try:
            return mpl_core.decode_asset(account.data)
        except mpl_core.AssetDecodeError as exc:
            raise AssetNotFound(str(exc)) from exc

    async def mint(self, payload: MintNFTInput) -> MintNFTData:
        """
        Mints a new Core asset into the configured collection, with the wallet as
        sole verified creator. The image URL doubles as the metadata URI.
        """
        token = use_case_context.set("mint_nft")
        try:
            if not payload.image:
                raise ValidationError("Image URL is required")

            ctx = self.context
            wallet = ctx.signer.public_key
            asset = ctx.signer.generate_keypair()
            metadata_uri = payload.image

            logger.debug(
                "Metadata document for %s: %s",
                asset.pubkey(),
                json.dumps(build_metadata_document(payload), ensure_ascii=False),
            )

            instruction = mpl_core.create_v1(
                asset=asset.pubkey(),
                payer=wallet,
                authority=wallet,
                collection=ctx.collection,
                name=payload.name,
                uri=metadata_uri,
                royalties=mpl_core.Royalties(
                    basis_points=payload.seller_fee_basis_points,
                    creators=[mpl_core.Creator(address=wallet, percentage=CREATOR_SHARE)],
                ),
                verified_creators=[mpl_core.VerifiedCreator(address=wallet, verified=True)],
                attributes=_core_attributes(payload.attributes or []),
                **self._program_ids(ctx),
            )

            try:
                signature = await ctx.send_and_confirm([instruction], extra_signers=[asset])
            except UpstreamError as exc:
                raise self._upstream("Failed to mint NFT", exc) from exc

            logger.info("Minted NFT %s into collection %s (tx=%s)", asset.pubkey(), ctx.collection, signature)
            return MintNFTData(
                mint_address=str(asset.pubkey()),
                collection_address=str(ctx.collection),
                metadata_uri=metadata_uri,
                image_uri=payload.image,
                transaction_signature=signature,
            )
        finally:
            use_case_context.reset(token)

    async def update(self, mint_address: str, fields: UpdateNFTInput) -> UpdateNFTData:
        """
        Applies a partial update. Name and image go through UpdateV1, attributes
        through the Attributes plugin. Symbol and description have no on-chain
        field on Core assets and are only echoed back.
        """
        token = use_case_context.set("update_nft")
        try:
            address = parse_address(mint_address, "mint address")
            ctx = self.context
            asset = await self._load_asset(ctx, address, "Failed to update NFT")
            wallet = ctx.signer.public_key
            program_ids = self._program_ids(ctx)

            instructions = []
            if fields.name is not None or fields.image is not None:
                instructions.append(
                    mpl_core.update_v1(
                        asset=address,
                        payer=wallet,
                        authority=wallet,
                        collection=asset.collection,
                        new_name=fields.name,
                        new_uri=fields.image,
                        **program_ids,
                    )
                )
            if fields.attributes is not None:
                build = (
                    mpl_core.update_attributes_plugin_v1
                    if asset.has_attributes_plugin
                    else mpl_core.add_attributes_plugin_v1
                )
                instructions.append(
                    build(
                        asset=address,
                        payer=wallet,
                        authority=wallet,
                        collection=asset.collection,
                        attributes=_core_attributes(fields.attributes),
                        **program_ids,
                    )
                )

            signature = None
            if instructions:
                try:
                    signature = await ctx.send_and_confirm(instructions)
                except UpstreamError as exc:
                    raise self._upstream("Failed to update NFT", exc) from exc
                logger.info("Updated NFT %s (tx=%s)", address, signature)
            else:
                logger.info("Update for %s touches no on-chain field; no transaction sent", address)

            return UpdateNFTData(
                mint_address=mint_address,
                transaction_signature=signature,
                updated_fields=UpdatedFields(
                    name=fields.name or UNCHANGED,
                    symbol=fields.symbol or UNCHANGED,
                    description=fields.description or UNCHANGED,
                    attributes=fields.attributes if fields.attributes is not None else UNCHANGED,
                    image=fields.image or UNCHANGED,
                ),
            )
        finally:
            use_case_context.reset(token)

    async def get(self, mint_address: str) -> NFTAsset:
        """Reads the asset account and projects it into the API response shape."""
        token = use_case_context.set("get_nft")
        try:
            address = parse_address(mint_address, "mint address")
            asset = await self._load_asset(self.context, address, "Failed to fetch NFT")
            return project_asset(mint_address, asset)
        finally:
            use_case_context.reset(token)


def project_asset(mint_address: str, asset: mpl_core.CoreAsset) -> NFTAsset:
    verified = {str(s.address) for s in asset.verified_creators if s.verified}
    creators = []
    if asset.royalties is not None:
        creators = [
            NFTCreator(address=str(c.address), share=c.percentage, verified=str(c.address) in verified)
            for c in asset.royalties.creators
        ]
    return NFTAsset(
        mint_address=mint_address,
        owner=str(asset.owner) if asset.owner else None,
        update_authority=str(asset.update_authority_address) if asset.update_authority_address else None,
        name=asset.name,
        symbol=None,
        uri=asset.uri,
        seller_fee_basis_points=asset.royalties.basis_points if asset.royalties else None,
        creators=creators,
        collection=str(asset.collection) if asset.collection else None,
        attributes=[NFTAttribute(trait_type=a.key, value=a.value) for a in asset.attributes],
        is_mutable=asset.is_mutable,
        is_compressed=asset.is_compressed,
    )
