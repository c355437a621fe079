import base64
import json
from unittest.mock import AsyncMock, patch

import pytest

from errors import DeploymentOrSigningFailed, UnsupportedChain
from execution import erc721
from nft.chains import Chain
from nft.models import parse_request
from nft.service import NftService
from nft.strategies import DEFAULT_STRATEGIES, DEPLOY, MINT, TRANSFER, UPDATE_CASHBACK, ChainStrategy
from observability import AuditLog

TO = "0x" + "11" * 20
CONTRACT = "0x" + "22" * 20
AUTHOR = "0x" + "33" * 20
KEY = "0x" + "4c" * 32
FLOW_ACCOUNT = "0x87fe4ebd0cddde06"

EVM_OPERATIONS = {
    "transfer": ("transfer_erc721", {"to": TO, "tokenId": "1", "contractAddress": CONTRACT}),
    "mint": ("mint_erc721", {"to": TO, "tokenId": "1", "url": "ipfs://1", "contractAddress": CONTRACT}),
    "mint_multiple": (
        "mint_multiple_erc721",
        {"to": [TO, TO], "tokenId": ["1", "2"], "url": ["ipfs://1", "ipfs://2"], "contractAddress": CONTRACT},
    ),
    "burn": ("burn_erc721", {"tokenId": "1", "contractAddress": CONTRACT}),
    "deploy": ("deploy_erc721", {"name": "Collection", "symbol": "COL"}),
    "update_cashback": (
        "update_cashback_for_author",
        {"tokenId": "1", "contractAddress": CONTRACT, "cashbackValue": "0.5"},
    ),
}


def _request(operation, chain, **signing):
    _, fields = EVM_OPERATIONS[operation]
    return parse_request(operation, {"chain": chain, **fields, **signing})


def _service(host, operation, chain, strategy, **kwargs):
    return NftService(host, strategies={operation: {chain: strategy}}, **kwargs)


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", sorted(EVM_OPERATIONS))
@pytest.mark.parametrize("chain", [Chain.ETH, Chain.BSC, Chain.CELO, Chain.XDC])
async def test_signed_request_is_broadcast_once(host, operation, chain):
    prepare = AsyncMock(return_value="0xsigned")
    service = _service(host, operation, chain, ChainStrategy(prepare=prepare))
    body = _request(operation, chain.value, fromPrivateKey=KEY)

    result = await getattr(service, EVM_OPERATIONS[operation][0])(body)

    prepare.assert_awaited_once_with(True, body, "http://node-1")
    host.broadcast.assert_awaited_once_with(chain, "0xsigned")
    host.store_kms_transaction.assert_not_awaited()
    assert result == {"txId": "0xbroadcast"}


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", sorted(EVM_OPERATIONS))
@pytest.mark.parametrize("chain", [Chain.ETH, Chain.BSC, Chain.CELO, Chain.XDC])
async def test_signature_id_request_goes_to_kms(host, operation, chain):
    prepare = AsyncMock(return_value='{"unsigned": true}')
    service = _service(host, operation, chain, ChainStrategy(prepare=prepare))
    body = _request(operation, chain.value, signatureId="sig-1", index=3)

    result = await getattr(service, EVM_OPERATIONS[operation][0])(body)

    host.store_kms_transaction.assert_awaited_once_with('{"unsigned": true}', chain, ["sig-1"], 3)
    host.broadcast.assert_not_awaited()
    assert result == {"signatureId": "kms-1"}


@pytest.mark.asyncio
async def test_celo_cashback_mint_with_signature_id(host):
    prepare = AsyncMock(return_value="plain")
    prepare_cashback = AsyncMock(return_value="cashback")
    service = _service(host, "mint", Chain.CELO, ChainStrategy(prepare=prepare, prepare_cashback=prepare_cashback))
    body = parse_request(
        "mint",
        {
            "chain": "CELO",
            "to": TO,
            "tokenId": "5",
            "url": "ipfs://5",
            "contractAddress": CONTRACT,
            "authorAddresses": [AUTHOR],
            "cashbackValues": ["0.1"],
            "signatureId": "sig-1",
            "index": 2,
        },
    )

    result = await service.mint_erc721(body)

    prepare.assert_not_awaited()
    prepare_cashback.assert_awaited_once_with(True, body, "http://node-1")
    host.store_kms_transaction.assert_awaited_once_with("cashback", Chain.CELO, ["sig-1"], 2)
    assert result == {"signatureId": "kms-1"}


@pytest.mark.asyncio
async def test_empty_author_list_still_selects_cashback_preparer(host):
    prepare = AsyncMock(return_value="plain")
    prepare_cashback = AsyncMock(return_value="cashback")
    service = _service(host, "mint", Chain.ETH, ChainStrategy(prepare=prepare, prepare_cashback=prepare_cashback))
    body = _request("mint", "ETH", fromPrivateKey=KEY)
    body.author_addresses = []
    body.cashback_values = []

    await service.mint_erc721(body)

    prepare_cashback.assert_awaited_once()
    prepare.assert_not_awaited()


@pytest.mark.asyncio
async def test_flow_direct_primitive_skips_preparer(host, flow_mint_payload):
    prepare = AsyncMock()
    direct = AsyncMock(return_value={"txId": "flow-tx", "tokenId": "9"})
    service = _service(host, "mint", Chain.FLOW, ChainStrategy(prepare=prepare, direct=direct))
    body = parse_request("mint", flow_mint_payload)

    result = await service.mint_erc721(body)

    direct.assert_awaited_once_with(host, True, body, "http://node-1")
    prepare.assert_not_awaited()
    host.broadcast.assert_not_awaited()
    assert result == {"txId": "flow-tx", "tokenId": "9"}


def _minted_event(token_id):
    payload = {
        "type": "Event",
        "value": {
            "id": "A.87fe4ebd0cddde06.TatumMultiNFT.Minted",
            "fields": [
                {"name": "id", "value": {"type": "UInt64", "value": str(token_id)}},
                {"name": "type", "value": {"type": "String", "value": "collection"}},
            ],
        },
    }
    return {
        "type": "A.87fe4ebd0cddde06.TatumMultiNFT.Minted",
        "payload": base64.b64encode(json.dumps(payload).encode()).decode(),
    }


@pytest.mark.asyncio
async def test_flow_mint_uses_default_send_and_returns_token_id(host, flow_mint_payload):
    sent = {"txId": "flow-tx", "result": {"status": "Sealed", "events": [_minted_event(42)]}}
    with patch("flow.nft._sign_and_send", AsyncMock(return_value=sent)) as send:
        result = await NftService(host).mint_erc721(parse_request("mint", flow_mint_payload))

    assert result == {"txId": "flow-tx", "tokenId": "42"}
    provider, body, script, args = send.await_args.args
    assert provider == "http://node-1"
    assert body.account == FLOW_ACCOUNT
    assert "mintNFT" in script
    assert args[1] == {"type": "String", "value": flow_mint_payload["contractAddress"]}
    host.broadcast.assert_not_awaited()


@pytest.mark.asyncio
async def test_flow_signature_id_stores_typed_payload(host, flow_mint_payload):
    payload = dict(flow_mint_payload)
    del payload["privateKey"]
    payload.update(signatureId="flow-sig", index=1)
    body = parse_request("mint", payload)

    result = await NftService(host).mint_erc721(body)

    assert result == {"signatureId": "kms-1"}
    tx_data, chain, signature_ids, index = host.store_kms_transaction.await_args.args
    assert chain == Chain.FLOW
    assert signature_ids == ["flow-sig"]
    assert index == 1
    stored = json.loads(tx_data)
    assert stored["type"] == "MINT_NFT"
    assert stored["body"]["signatureId"] == "flow-sig"
    assert "privateKey" not in stored["body"]


@pytest.mark.asyncio
async def test_flow_deploy_goes_through_host_and_returns_its_result(host):
    body = parse_request("deploy", {"chain": "FLOW", "account": FLOW_ACCOUNT, "privateKey": "4c" * 32})

    result = await NftService(host).deploy_erc721(body)

    host.deploy_flow_nft.assert_awaited_once_with(True, body)
    host.broadcast.assert_not_awaited()
    host.store_kms_transaction.assert_not_awaited()
    assert result == {"txId": "flow-deploy"}


@pytest.mark.asyncio
async def test_unsupported_chain_fails_before_any_hook(host):
    body = _request("transfer", "BTC", fromPrivateKey=KEY)

    with pytest.raises(UnsupportedChain) as exc:
        await NftService(host).transfer_erc721(body)

    assert exc.value.code == "unsupported.chain"
    assert str(exc.value) == "Unsupported chain BTC."
    assert host.mock_calls == []


@pytest.mark.asyncio
async def test_update_cashback_is_unsupported_on_flow(host):
    body = _request("update_cashback", "FLOW", fromPrivateKey=KEY)

    with pytest.raises(UnsupportedChain):
        await NftService(host).update_cashback_for_author(body)

    assert host.mock_calls == []


@pytest.mark.asyncio
async def test_preparer_failure_is_not_broadcast(host):
    prepare = AsyncMock(side_effect=DeploymentOrSigningFailed("nft.erc721.prepare.failed", "node down"))
    service = _service(host, "burn", Chain.ETH, ChainStrategy(prepare=prepare))

    with pytest.raises(DeploymentOrSigningFailed):
        await service.burn_erc721(_request("burn", "ETH", fromPrivateKey=KEY))

    host.broadcast.assert_not_awaited()


@pytest.mark.asyncio
async def test_dispatch_outcomes_are_audited(host):
    audit = AuditLog(db_path=":memory:")
    prepare = AsyncMock(return_value="0xsigned")
    service = _service(host, "burn", Chain.BSC, ChainStrategy(prepare=prepare), audit_log=audit)

    await service.burn_erc721(_request("burn", "BSC", fromPrivateKey=KEY))
    with pytest.raises(UnsupportedChain):
        await service.burn_erc721(_request("burn", "ETH", fromPrivateKey=KEY))

    failed, ok = audit.recent(2)
    assert ok["operation"] == "burn"
    assert ok["chain"] == "BSC"
    assert ok["route"] == "broadcast"
    assert ok["ok"] is True
    assert failed["ok"] is False
    assert failed["error_code"] == "unsupported.chain"


def test_default_tables_route_to_chain_bound_preparers():
    celo = MINT[Chain.CELO]
    assert celo.prepare.func is erc721.prepare_mint
    assert celo.prepare.args == (Chain.CELO,)
    assert celo.prepare_cashback.func is erc721.prepare_mint_cashback
    assert TRANSFER[Chain.XDC].prepare.args == (Chain.XDC,)
    assert TRANSFER[Chain.FLOW].direct is not None
    assert DEPLOY[Chain.FLOW].prepare is None
    assert Chain.FLOW not in UPDATE_CASHBACK


FLOW_DIRECT_CASES = [
    (
        "transfer",
        "transfer_erc721",
        {"to": FLOW_ACCOUNT, "tokenId": "7", "contractAddress": "collection"},
        [],
        "withdrawID",
        {"txId": "flow-tx"},
    ),
    (
        "burn",
        "burn_erc721",
        {"tokenId": "7", "contractAddress": "collection"},
        [],
        "destroy",
        {"txId": "flow-tx"},
    ),
    (
        "mint_multiple",
        "mint_multiple_erc721",
        {"to": [FLOW_ACCOUNT, FLOW_ACCOUNT], "url": ["ipfs://1", "ipfs://2"], "contractAddress": "collection"},
        [_minted_event(1), _minted_event(2)],
        "mintNFT",
        {"txId": "flow-tx", "tokenId": ["1", "2"]},
    ),
]


@pytest.mark.asyncio
@pytest.mark.parametrize("operation,method,fields,events,script_marker,expected", FLOW_DIRECT_CASES)
async def test_flow_signed_operations_use_direct_send(host, operation, method, fields, events, script_marker, expected):
    prepare = AsyncMock()
    default = DEFAULT_STRATEGIES[operation][Chain.FLOW]
    service = _service(host, operation, Chain.FLOW, ChainStrategy(prepare=prepare, direct=default.direct))
    body = parse_request(operation, {"chain": "FLOW", "account": FLOW_ACCOUNT, "privateKey": "4c" * 32, **fields})
    sent = {"txId": "flow-tx", "result": {"status": "Sealed", "events": events}}

    with patch("flow.nft._sign_and_send", AsyncMock(return_value=sent)) as send:
        result = await getattr(service, method)(body)

    assert result == expected
    _, sent_body, script, _ = send.await_args.args
    assert sent_body is body
    assert script_marker in script
    prepare.assert_not_awaited()
    host.broadcast.assert_not_awaited()
    host.store_kms_transaction.assert_not_awaited()
