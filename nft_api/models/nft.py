from typing import Annotated, List, Literal, Optional, Union

from pydantic import AfterValidator, AnyUrl, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from nft_api.chain.keys import is_valid_address
from nft_api.config import settings
from nft_api.models.base import ApiModel

UNCHANGED = "unchanged"

_url_adapter = TypeAdapter(AnyUrl)


def _check_uri(value: str) -> str:
    # Validate as a URL but keep the caller's exact string; AnyUrl would normalize it.
    try:
        url = _url_adapter.validate_python(value)
    except PydanticValidationError:
        raise ValueError("Image must be a valid URI") from None
    if not url.host:
        raise ValueError("Image must be a valid URI")
    return value


def _check_address(value: str) -> str:
    if not is_valid_address(value):
        raise ValueError("Invalid Solana address")
    return value


ImageUri = Annotated[str, AfterValidator(_check_uri)]
SolanaAddress = Annotated[str, AfterValidator(_check_address)]


class NFTAttribute(ApiModel):
    """A single trait, in the common `{'trait_type': ..., 'value': ...}` shape."""

    trait_type: str = Field(alias="trait_type", description="Name of the trait.")
    value: Union[StrictStr, StrictInt, StrictFloat] = Field(description="Trait value, a string or a number.")

    model_config = ConfigDict(extra="forbid")


class MintNFTInput(ApiModel):
    """
    Input model for minting a new NFT into the configured collection.
    """

    name: str = Field(min_length=1, max_length=settings.NAME_MAX_LENGTH, description="Name of the NFT.")
    symbol: str = Field(min_length=1, max_length=settings.SYMBOL_MAX_LENGTH, description="Symbol of the NFT.")
    description: Optional[str] = Field(None, min_length=1, max_length=settings.DESCRIPTION_MAX_LENGTH)
    image: ImageUri = Field(description="Absolute URL of the NFT image. Also used as the metadata URI.")
    attributes: Optional[List[NFTAttribute]] = Field(None, max_length=settings.ATTRIBUTES_MAX_COUNT)
    seller_fee_basis_points: int = Field(
        settings.DEFAULT_SELLER_FEE_BASIS_POINTS,
        ge=0,
        le=settings.SELLER_FEE_MAX_BASIS_POINTS,
        description="Royalty in basis points (500 = 5%).",
    )

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "examples": [
                {
                    "name": "Example NFT #1",
                    "symbol": "ENFT",
                    "description": "This is an example NFT created via the API",
                    "image": "https://arweave.net/example-image.png",
                    "attributes": [
                        {"trait_type": "Color", "value": "Blue"},
                        {"trait_type": "Level", "value": 1},
                    ],
                    "sellerFeeBasisPoints": 500,
                }
            ]
        },
    )


class UpdateNFTInput(ApiModel):
    """
    Input model for a partial update. Omitted fields are left unchanged.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=settings.NAME_MAX_LENGTH)
    symbol: Optional[str] = Field(None, min_length=1, max_length=settings.SYMBOL_MAX_LENGTH)
    description: Optional[str] = Field(None, min_length=1, max_length=settings.DESCRIPTION_MAX_LENGTH)
    attributes: Optional[List[NFTAttribute]] = Field(None, max_length=settings.ATTRIBUTES_MAX_COUNT)
    image: Optional[ImageUri] = None

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "examples": [
                {"name": "Updated Example NFT", "description": "This NFT has been updated via the API"}
            ]
        },
    )


class MintNFTData(ApiModel):
    mint_address: str
    collection_address: str
    metadata_uri: str
    image_uri: str
    transaction_signature: str


class UpdatedFields(ApiModel):
    """Echo of the update request; fields that were not sent read `"unchanged"`."""

    name: str = UNCHANGED
    symbol: str = UNCHANGED
    description: str = UNCHANGED
    attributes: Union[List[NFTAttribute], Literal["unchanged"]] = UNCHANGED
    image: str = UNCHANGED


class UpdateNFTData(ApiModel):
    mint_address: str
    transaction_signature: Optional[str] = Field(
        None, description="Signature of the update transaction, null when nothing on-chain changed."
    )
    updated_fields: UpdatedFields


class NFTCreator(ApiModel):
    address: str
    share: int
    verified: bool


class NFTAsset(ApiModel):
    """
    Projection of an on-chain Metaplex Core asset.
    """

    mint_address: str
    owner: Optional[str] = None
    update_authority: Optional[str] = None
    name: Optional[str] = None
    symbol: Optional[str] = Field(None, description="Core assets carry no on-chain symbol; always null.")
    uri: Optional[str] = None
    seller_fee_basis_points: Optional[int] = None
    creators: List[NFTCreator] = Field(default_factory=list)
    collection: Optional[str] = None
    attributes: List[NFTAttribute] = Field(default_factory=list)
    is_mutable: bool = True
    is_compressed: bool = False


class MintNFTResponse(ApiModel):
    success: bool = True
    message: str = "NFT minted successfully"
    data: MintNFTData


class UpdateNFTResponse(ApiModel):
    success: bool = True
    message: str = "NFT updated successfully"
    data: UpdateNFTData


class GetNFTResponse(ApiModel):
    success: bool = True
    data: NFTAsset


class CollectionPlaceholderResponse(ApiModel):
    message: str = "Collection fetching not yet implemented"
    collection_address: str
