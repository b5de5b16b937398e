from typing import Annotated

from fastapi import APIRouter, Body, Depends, Path, Request, status

from nft_api.models.nft import (
    CollectionPlaceholderResponse,
    GetNFTResponse,
    MintNFTInput,
    MintNFTResponse,
    SolanaAddress,
    UpdateNFTInput,
    UpdateNFTResponse,
)
from nft_api.services.nft_service import NFTService

router = APIRouter()


def get_nft_service(request: Request) -> NFTService:
    return request.app.state.nft_service


@router.post(
    "/mint",
    response_model=MintNFTResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Mint a new NFT",
    response_description="Addresses and signature of the newly minted asset.",
)
async def mint_nft(
    request: Request,
    payload: MintNFTInput = Body(...),
    service: NFTService = Depends(get_nft_service),
):
    """
    Mints a Metaplex Core asset into the configured collection.

    The server wallet pays, signs and becomes the update authority and the sole
    verified creator. Royalties default to 500 basis points.
    """
    request.state.use_case = "mint_nft"
    data = await service.mint(payload)
    request.state.entity_id = data.mint_address
    return MintNFTResponse(data=data)


@router.get(
    "/collection/{collection_address}",
    response_model=CollectionPlaceholderResponse,
    summary="Collection lookup (not implemented)",
)
async def get_collection(request: Request, collection_address: str = Path(...)):
    """
    Placeholder kept for API compatibility. Echoes the address back.
    """
    request.state.use_case = "get_collection"
    request.state.entity_id = collection_address
    return CollectionPlaceholderResponse(collection_address=collection_address)


@router.put(
    "/{mint_address}",
    response_model=UpdateNFTResponse,
    summary="Update an existing NFT",
    response_description="Signature of the update and an echo of the applied fields.",
)
async def update_nft(
    request: Request,
    mint_address: Annotated[SolanaAddress, Path(description="Address of the Core asset.")],
    payload: UpdateNFTInput = Body(...),
    service: NFTService = Depends(get_nft_service),
):
    """
    Partially updates an asset. Fields left out of the body stay as they are.
    """
    request.state.use_case = "update_nft"
    request.state.entity_id = mint_address
    data = await service.update(mint_address, payload)
    return UpdateNFTResponse(data=data)


@router.get(
    "/{mint_address}",
    response_model=GetNFTResponse,
    summary="Fetch an NFT",
    response_description="On-chain view of the Core asset.",
)
async def get_nft(
    request: Request,
    mint_address: Annotated[SolanaAddress, Path(description="Address of the Core asset.")],
    service: NFTService = Depends(get_nft_service),
):
    request.state.use_case = "get_nft"
    request.state.entity_id = mint_address
    asset = await service.get(mint_address)
    return GetNFTResponse(data=asset)
