"""
Flow NFT operations on a TatumMultiNFT-style contract.

The send functions sign locally with the request's private key, submit the
transaction to the access node, and wait for it to seal.
"""

from __future__ import annotations

import functools
import json
from enum import Enum
from pathlib import Path
from string import Template
from typing import Any, Awaitable, Callable, Dict, List

from app.core.settings import settings
from errors import PREPARE_FAILED, AppError, DeploymentOrSigningFailed, classify_exception
from nft.chains import Chain
from observability import build_log_context, log_event

from . import cadence
from .client import FlowAccessClient, decode_event_payload
from .transactions import FlowSigner, FlowTransaction, ProposalKey

# Where the multi-type NFT contract lives when FLOW_NFT_CONTRACT_ADDRESS is unset.
DEFAULT_NFT_CONTRACT_ADDRESS = {
    False: "0x354e6721564ccd2c",
    True: "0x87fe4ebd0cddde06",
}


class FlowTxType(str, Enum):
    DEPLOY_NFT = "DEPLOY_NFT"
    MINT_NFT = "MINT_NFT"
    MINT_MULTIPLE_NFT = "MINT_MULTIPLE_NFT"
    BURN_NFT = "BURN_NFT"
    TRANSFER_NFT = "TRANSFER_NFT"


def nft_contract_address(testnet: bool) -> str:
    return settings.FLOW_NFT_CONTRACT_ADDRESS or DEFAULT_NFT_CONTRACT_ADDRESS[bool(testnet)]


def _client(provider: str) -> FlowAccessClient:
    return FlowAccessClient(provider, timeout=float(settings.HTTP_TIMEOUT_SEC))


def _script(template: Template, testnet: bool) -> str:
    return cadence.render(
        template,
        name=settings.FLOW_NFT_CONTRACT_NAME,
        address=nft_contract_address(testnet),
        testnet=testnet,
    )


def _send_errors(operation: str) -> Callable[..., Any]:
    """
    Wrap failures of a Flow send into DeploymentOrSigningFailed.
    """

    def decorator(fn: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(fn)
        async def wrapper(testnet: bool, body: Any, provider: str) -> Any:
            try:
                return await fn(testnet, body, provider)
            except AppError:
                raise
            except Exception as e:
                err = classify_exception(e)
                log_event(
                    "flow_send_failed",
                    ctx=build_log_context(chain=Chain.FLOW, operation=operation),
                    data={"code": err.code, "account": getattr(body, "account", None)},
                    level="error",
                    exc=e,
                )
                raise DeploymentOrSigningFailed(
                    PREPARE_FAILED,
                    f"Unable to send {operation} transaction on FLOW. {e}",
                    {"chain": Chain.FLOW.value, "operation": operation, "cause": err.code},
                ) from e

        return wrapper

    return decorator


async def _sign_and_send(provider: str, body: Any, script: str, args: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Build, sign and submit a transaction authorised by body.account; returns
    the tx id and the sealed result.
    """
    if not body.private_key:
        raise ValueError("privateKey is required to sign a Flow transaction")
    client = _client(provider)
    account = cadence.normalize_flow_address(body.account)
    key_index = int(settings.FLOW_KEY_INDEX)
    ref_block = await client.latest_sealed_block_id()
    sequence = await client.account_key_sequence(account, key_index)
    tx = FlowTransaction(
        script=script,
        arguments=[cadence.encode_argument(a) for a in args],
        reference_block_id=ref_block,
        gas_limit=int(settings.FLOW_GAS_LIMIT),
        proposal_key=ProposalKey(address=account, key_index=key_index, sequence_number=sequence),
        payer=account,
        authorizers=[account],
    )
    tx.sign_envelope(FlowSigner(body.private_key, settings.FLOW_KEY_CURVE), address=account, key_index=key_index)
    tx_id = await client.send_transaction(tx)
    result = await client.wait_for_seal(
        tx_id,
        timeout_sec=float(settings.FLOW_SEAL_TIMEOUT_SEC),
        poll_sec=float(settings.FLOW_SEAL_POLL_SEC),
    )
    return {"txId": tx_id, "result": result}


def _minted_ids(result: Dict[str, Any]) -> List[int]:
    ids: List[int] = []
    for event in result.get("events") or []:
        if str(event.get("type", "")).endswith(".Minted"):
            fields = decode_event_payload(event)
            if "id" in fields:
                ids.append(int(fields["id"]))
    return ids


@_send_errors("mint")
async def send_flow_nft_mint_token(testnet: bool, body: Any, provider: str) -> Dict[str, Any]:
    args = [cadence.address(body.to), cadence.string(body.contract_address), cadence.string(body.url)]
    sent = await _sign_and_send(provider, body, _script(cadence.MINT, testnet), args)
    ids = _minted_ids(sent["result"])
    if not ids:
        raise ValueError(f"Flow transaction {sent['txId']} emitted no Minted event")
    return {"txId": sent["txId"], "tokenId": str(ids[0])}


@_send_errors("mint multiple")
async def send_flow_nft_mint_multiple_token(testnet: bool, body: Any, provider: str) -> Dict[str, Any]:
    args = [
        cadence.array([cadence.address(t) for t in body.to]),
        cadence.string(body.contract_address),
        cadence.array([cadence.string(u) for u in body.url]),
    ]
    sent = await _sign_and_send(provider, body, _script(cadence.MINT_MULTIPLE, testnet), args)
    return {"txId": sent["txId"], "tokenId": [str(i) for i in _minted_ids(sent["result"])]}


@_send_errors("transfer")
async def send_flow_nft_transfer_token(testnet: bool, body: Any, provider: str) -> Dict[str, Any]:
    args = [cadence.address(body.to), cadence.uint64(body.token_id)]
    sent = await _sign_and_send(provider, body, _script(cadence.TRANSFER, testnet), args)
    return {"txId": sent["txId"]}


@_send_errors("burn")
async def send_flow_nft_burn_token(testnet: bool, body: Any, provider: str) -> Dict[str, Any]:
    sent = await _sign_and_send(provider, body, _script(cadence.BURN, testnet), [cadence.uint64(body.token_id)])
    return {"txId": sent["txId"]}


def load_nft_contract_code(path: str | None = None) -> str:
    raw = path or settings.FLOW_NFT_CONTRACT_PATH
    if not raw:
        raise ValueError("FLOW_NFT_CONTRACT_PATH is not set")
    p = Path(raw).expanduser()
    if not p.exists():
        raise ValueError(f"Flow NFT contract source not found: {p}")
    return p.read_text()


@_send_errors("deploy")
async def deploy_flow_nft_contract(testnet: bool, body: Any, provider: str) -> Dict[str, Any]:
    """
    Add the NFT contract to body.account; the deploy transaction's first
    argument is that account, which is what get_contract_address reports.
    """
    code = load_nft_contract_code()
    args = [
        cadence.address(body.account),
        cadence.string(settings.FLOW_NFT_CONTRACT_NAME),
        cadence.string(code.encode("utf-8").hex()),
    ]
    sent = await _sign_and_send(provider, body, cadence.DEPLOY.template, args)
    return {"txId": sent["txId"]}


async def prepare_flow_kms_payload(tx_type: FlowTxType, chain: Chain, testnet: bool, body: Any, provider: str) -> str:
    """Payload a Flow co-signer picks up from the key-management store."""
    return json.dumps({"type": tx_type.value, "body": body.to_payload()})


async def get_flow_nft_metadata(testnet: bool, account: str, token_id: str, contract_address: str, provider: str) -> str:
    args = [cadence.address(account), cadence.uint64(token_id), cadence.string(contract_address)]
    return await _client(provider).execute_script(_script(cadence.METADATA, testnet), args)


async def get_flow_nft_token_by_address(testnet: bool, address: str, contract_address: str, provider: str) -> List[str]:
    args = [cadence.address(address), cadence.string(contract_address)]
    ids = await _client(provider).execute_script(_script(cadence.TOKENS_BY_ADDRESS, testnet), args)
    return [str(i) for i in ids or []]


async def get_flow_transaction(tx_id: str, provider: str) -> Dict[str, Any]:
    """
    Transaction with its result; arguments decoded from JSON-Cadence.
    """
    tx = await _client(provider).transaction(tx_id)
    decoded = dict(tx)
    decoded["args"] = [cadence.decode_b64(a) for a in tx.get("arguments") or []]
    return decoded
