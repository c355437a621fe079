from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .chains import Chain, parse_chain


class FeeCurrency(str, Enum):
    CELO = "CELO"
    CUSD = "CUSD"
    CEUR = "CEUR"


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("chain", mode="before", check_fields=False)
    @classmethod
    def _normalize_chain(cls, v: Any) -> Any:
        if isinstance(v, str) and not isinstance(v, Chain):
            return v.strip().upper()
        return v

    def to_payload(self) -> Dict[str, Any]:
        """Wire form (camelCase, no unset optionals)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Fee(_Body):
    gas_limit: int = Field(gt=0)
    # gwei
    gas_price: str = Field(min_length=1)


class EvmSignedRequest(_Body):
    """
    Common signing fields of EVM requests.

    Exactly one of from_private_key (sign locally, broadcast) or signature_id
    (store for deferred signing) must be present.
    """

    chain: Chain
    from_private_key: Optional[str] = Field(default=None, min_length=64, max_length=66)
    signature_id: Optional[str] = Field(default=None, min_length=1)
    index: Optional[int] = Field(default=None, ge=0, le=2147483647)
    nonce: Optional[int] = Field(default=None, ge=0)
    fee: Optional[Fee] = None

    @model_validator(mode="after")
    def _check_signing_method(self) -> "EvmSignedRequest":
        if (self.from_private_key is None) == (self.signature_id is None):
            raise ValueError("exactly one of fromPrivateKey or signatureId must be present")
        if self.index is not None and self.signature_id is None:
            raise ValueError("index is only allowed together with signatureId")
        return self


class CeloMixin(_Body):
    fee_currency: FeeCurrency = FeeCurrency.CELO

    @model_validator(mode="after")
    def _check_celo(self) -> "CeloMixin":
        if getattr(self, "chain", Chain.CELO) != Chain.CELO:
            raise ValueError("feeCurrency requests are only valid for CELO")
        return self


class FlowSignedRequest(_Body):
    """
    Common signing fields of Flow requests.

    account is the Flow address authorising the transaction; private_key its key.
    """

    chain: Chain = Chain.FLOW
    account: str = Field(min_length=1)
    private_key: Optional[str] = Field(default=None, min_length=64, max_length=66)
    signature_id: Optional[str] = Field(default=None, min_length=1)
    index: Optional[int] = Field(default=None, ge=0, le=2147483647)

    @model_validator(mode="after")
    def _check_signing_method(self) -> "FlowSignedRequest":
        if self.chain != Chain.FLOW:
            raise ValueError("Flow request shape requires chain FLOW")
        if (self.private_key is None) == (self.signature_id is None):
            raise ValueError("exactly one of privateKey or signatureId must be present")
        if self.index is not None and self.signature_id is None:
            raise ValueError("index is only allowed together with signatureId")
        return self


# Transfer


class TransferErc721(EvmSignedRequest):
    to: str = Field(min_length=1)
    token_id: str = Field(min_length=1, max_length=256)
    contract_address: str = Field(min_length=1)
    # ether units, paid to cashback authors
    value: Optional[str] = None


class CeloTransferErc721(CeloMixin, TransferErc721):
    pass


class FlowTransferNft(FlowSignedRequest):
    to: str = Field(min_length=1)
    token_id: str = Field(min_length=1)
    contract_address: str = Field(min_length=1)


# Mint


class MintErc721(EvmSignedRequest):
    to: str = Field(min_length=1)
    token_id: str = Field(min_length=1, max_length=256)
    url: str = Field(min_length=1, max_length=256)
    contract_address: str = Field(min_length=1)
    author_addresses: Optional[List[str]] = None
    # ether units
    cashback_values: Optional[List[str]] = None

    @model_validator(mode="after")
    def _check_cashback(self) -> "MintErc721":
        if self.cashback_values is not None and self.author_addresses is None:
            raise ValueError("cashbackValues requires authorAddresses")
        if self.author_addresses is not None and len(self.author_addresses) != len(self.cashback_values or []):
            raise ValueError("authorAddresses and cashbackValues must have the same length")
        return self


class CeloMintErc721(CeloMixin, MintErc721):
    pass


class FlowMintNft(FlowSignedRequest):
    to: str = Field(min_length=1)
    url: str = Field(min_length=1, max_length=256)
    contract_address: str = Field(min_length=1)


class MintMultipleErc721(EvmSignedRequest):
    to: List[str] = Field(min_length=1)
    token_id: List[str] = Field(min_length=1)
    url: List[str] = Field(min_length=1)
    contract_address: str = Field(min_length=1)
    author_addresses: Optional[List[List[str]]] = None
    cashback_values: Optional[List[List[str]]] = None

    @model_validator(mode="after")
    def _check_lengths(self) -> "MintMultipleErc721":
        if not (len(self.to) == len(self.token_id) == len(self.url)):
            raise ValueError("to, tokenId and url must have the same length")
        if self.cashback_values is not None and self.author_addresses is None:
            raise ValueError("cashbackValues requires authorAddresses")
        if self.author_addresses is not None:
            values = self.cashback_values or []
            if len(self.author_addresses) != len(self.to) or len(values) != len(self.to):
                raise ValueError("authorAddresses and cashbackValues must have one entry per token")
            for authors, cashbacks in zip(self.author_addresses, values):
                if len(authors) != len(cashbacks):
                    raise ValueError("authorAddresses and cashbackValues entries must have the same length")
        return self


class CeloMintMultipleErc721(CeloMixin, MintMultipleErc721):
    pass


class FlowMintMultipleNft(FlowSignedRequest):
    to: List[str] = Field(min_length=1)
    url: List[str] = Field(min_length=1)
    contract_address: str = Field(min_length=1)

    @model_validator(mode="after")
    def _check_lengths(self) -> "FlowMintMultipleNft":
        if len(self.to) != len(self.url):
            raise ValueError("to and url must have the same length")
        return self


# Burn


class BurnErc721(EvmSignedRequest):
    token_id: str = Field(min_length=1, max_length=256)
    contract_address: str = Field(min_length=1)


class CeloBurnErc721(CeloMixin, BurnErc721):
    pass


class FlowBurnNft(FlowSignedRequest):
    token_id: str = Field(min_length=1)
    contract_address: str = Field(min_length=1)


# Deploy


class DeployErc721(EvmSignedRequest):
    name: str = Field(min_length=1, max_length=100)
    symbol: str = Field(min_length=1, max_length=30)


class CeloDeployErc721(CeloMixin, DeployErc721):
    pass


class FlowDeployNft(FlowSignedRequest):
    pass


# Royalty


class UpdateCashbackErc721(EvmSignedRequest):
    token_id: str = Field(min_length=1, max_length=256)
    contract_address: str = Field(min_length=1)
    # ether units
    cashback_value: str = Field(min_length=1)


class CeloUpdateCashbackErc721(CeloMixin, UpdateCashbackErc721):
    pass


# Raw mapping -> request variant, keyed by the chain tag.
REQUEST_VARIANTS: Dict[str, Dict[str, Type[_Body]]] = {
    "transfer": {"evm": TransferErc721, "celo": CeloTransferErc721, "flow": FlowTransferNft},
    "mint": {"evm": MintErc721, "celo": CeloMintErc721, "flow": FlowMintNft},
    "mint_multiple": {"evm": MintMultipleErc721, "celo": CeloMintMultipleErc721, "flow": FlowMintMultipleNft},
    "burn": {"evm": BurnErc721, "celo": CeloBurnErc721, "flow": FlowBurnNft},
    "deploy": {"evm": DeployErc721, "celo": CeloDeployErc721, "flow": FlowDeployNft},
    "update_cashback": {"evm": UpdateCashbackErc721, "celo": CeloUpdateCashbackErc721},
}


def parse_request(operation: str, payload: Mapping[str, Any]) -> _Body:
    """
    Validate a raw request mapping into the variant selected by its chain tag.

    An unknown chain string is left to the EVM variant so it fails as a
    validation error; a known but unsupported chain validates and is rejected
    later by the dispatcher.
    """
    variants = REQUEST_VARIANTS.get(operation)
    if variants is None:
        raise ValueError(f"Unknown operation: {operation}")
    try:
        chain: Optional[Chain] = parse_chain(str(payload.get("chain") or ""))
    except ValueError:
        chain = None
    if chain == Chain.FLOW and "flow" in variants:
        model = variants["flow"]
    elif chain == Chain.CELO:
        model = variants["celo"]
    else:
        model = variants["evm"]
    return model.model_validate(dict(payload))
