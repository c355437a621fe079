import pytest
from pydantic import ValidationError

from nft.chains import Chain
from nft.models import (
    CeloMintErc721,
    FeeCurrency,
    FlowMintNft,
    MintErc721,
    UpdateCashbackErc721,
    parse_request,
)

TO = "0x" + "11" * 20
CONTRACT = "0x" + "22" * 20
KEY = "0x" + "4c" * 32


def _mint(**extra):
    return {"to": TO, "tokenId": "1", "url": "ipfs://1", "contractAddress": CONTRACT, **extra}


def test_variant_is_selected_by_chain_tag():
    assert type(parse_request("mint", {"chain": "ETH", **_mint(fromPrivateKey=KEY)})) is MintErc721
    assert type(parse_request("mint", {"chain": "CELO", **_mint(fromPrivateKey=KEY)})) is CeloMintErc721
    flow = {"chain": "FLOW", "to": "0x01", "url": "u", "contractAddress": "c", "account": "0x01", "privateKey": KEY}
    assert type(parse_request("mint", flow)) is FlowMintNft
    # no Flow variant: falls back to the EVM shape and is rejected by the dispatcher
    cashback = {"chain": "FLOW", "tokenId": "1", "contractAddress": CONTRACT, "cashbackValue": "1", "fromPrivateKey": KEY}
    assert type(parse_request("update_cashback", cashback)) is UpdateCashbackErc721


def test_chain_tag_is_case_insensitive():
    burn = parse_request("burn", {"chain": " eth ", "tokenId": "1", "contractAddress": CONTRACT, "fromPrivateKey": KEY})
    assert burn.chain == Chain.ETH
    celo = parse_request("mint", {"chain": "celo", **_mint(fromPrivateKey=KEY)})
    assert type(celo) is CeloMintErc721
    assert celo.chain == Chain.CELO
    flow = {"chain": "Flow", "to": "0x01", "url": "u", "contractAddress": "c", "account": "0x01", "privateKey": KEY}
    assert parse_request("mint", flow).chain == Chain.FLOW
    with pytest.raises(ValidationError):
        parse_request("burn", {"chain": "nope", "tokenId": "1", "contractAddress": CONTRACT, "fromPrivateKey": KEY})


def test_fields_accept_camel_and_snake_case():
    body = MintErc721(chain=Chain.BSC, to=TO, token_id="1", url="u", contract_address=CONTRACT, signature_id="s")
    assert body.to_payload() == {
        "chain": "BSC",
        "to": TO,
        "tokenId": "1",
        "url": "u",
        "contractAddress": CONTRACT,
        "signatureId": "s",
    }


def test_celo_defaults_to_native_fee_currency():
    body = parse_request("mint", {"chain": "CELO", **_mint(signatureId="s")})
    assert body.fee_currency == FeeCurrency.CELO


@pytest.mark.parametrize(
    "signing",
    [{}, {"fromPrivateKey": KEY, "signatureId": "s"}, {"fromPrivateKey": KEY, "index": 1}],
)
def test_exactly_one_signing_method(signing):
    with pytest.raises(ValidationError):
        parse_request("mint", {"chain": "ETH", **_mint(**signing)})


def test_flow_requires_exactly_one_signing_method():
    with pytest.raises(ValidationError):
        parse_request("burn", {"chain": "FLOW", "tokenId": "1", "contractAddress": "c", "account": "0x01"})


def test_cashback_lists_must_line_up():
    with pytest.raises(ValidationError):
        parse_request("mint", {"chain": "ETH", **_mint(fromPrivateKey=KEY, authorAddresses=[TO], cashbackValues=[])})
    with pytest.raises(ValidationError):
        parse_request("mint", {"chain": "ETH", **_mint(fromPrivateKey=KEY, cashbackValues=["1"])})


def test_mint_multiple_lengths_must_match():
    payload = {
        "chain": "ETH",
        "to": [TO, TO],
        "tokenId": ["1"],
        "url": ["u", "u"],
        "contractAddress": CONTRACT,
        "fromPrivateKey": KEY,
    }
    with pytest.raises(ValidationError):
        parse_request("mint_multiple", payload)


def test_unknown_chain_is_a_validation_error():
    with pytest.raises(ValidationError):
        parse_request("burn", {"chain": "NOPE", "tokenId": "1", "contractAddress": CONTRACT, "fromPrivateKey": KEY})


def test_fee_currency_only_on_celo():
    with pytest.raises(ValidationError):
        CeloMintErc721.model_validate({"chain": "ETH", **_mint(signatureId="s")})


def test_unknown_operation():
    with pytest.raises(ValueError):
        parse_request("swap", {"chain": "ETH"})
