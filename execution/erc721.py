"""
ERC-721 transaction preparation for the EVM chains (ETH, BSC, CELO, XDC).

Every preparer has the shape `(chain, testnet, body, provider) -> str` and
returns either a 0x-prefixed signed raw transaction (body carries
fromPrivateKey) or the JSON of the unsigned transaction for the key-management
store (body carries signatureId).
"""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Dict, List

from web3 import AsyncWeb3, Web3

from errors import PREPARE_FAILED, AppError, DeploymentOrSigningFailed, classify_exception
from nft.chains import Chain
from nft.models import FeeCurrency
from observability import build_log_context, log_event
from signing.intents import build_evm_tx_intent
from signing.private_key import PrivateKeySigner

from .evm import (
    ERC721_ABI,
    chain_id_for,
    ether_to_wei,
    get_web3,
    gwei_to_wei,
    load_erc721_artifact,
    normalize_address,
)

Preparer = Callable[[Chain, bool, Any, str], Awaitable[str]]


def _prepare_errors(operation: str) -> Callable[[Preparer], Preparer]:
    """
    Translate any failure below a preparer into DeploymentOrSigningFailed.
    """

    def decorator(fn: Preparer) -> Preparer:
        @functools.wraps(fn)
        async def wrapper(chain: Chain, testnet: bool, body: Any, provider: str) -> str:
            try:
                return await fn(chain, testnet, body, provider)
            except AppError:
                raise
            except Exception as e:
                err = classify_exception(e)
                log_event(
                    "erc721_prepare_failed",
                    ctx=build_log_context(chain=chain, operation=operation),
                    data={"code": err.code},
                    level="error",
                    exc=e,
                )
                raise DeploymentOrSigningFailed(
                    PREPARE_FAILED,
                    f"Unable to prepare {operation} transaction on {chain.value}. {e}",
                    {"chain": chain.value, "operation": operation, "cause": err.code},
                ) from e

        return wrapper

    return decorator


def _contract(w3: AsyncWeb3, chain: Chain, address: str) -> Any:
    return w3.eth.contract(address=normalize_address(chain, address), abi=ERC721_ABI)


def _fee_currency(body: Any) -> str | None:
    fc = getattr(body, "fee_currency", None)
    return fc.value if fc is not None else None


async def _finalize(w3: AsyncWeb3, chain: Chain, testnet: bool, body: Any, tx: Dict[str, Any]) -> str:
    tx["chainId"] = chain_id_for(chain, testnet)
    tx.setdefault("value", 0)
    if body.fee is not None:
        tx["gas"] = int(body.fee.gas_limit)
        tx["gasPrice"] = gwei_to_wei(body.fee.gas_price)
    if body.nonce is not None:
        tx["nonce"] = int(body.nonce)

    if body.signature_id is not None:
        return build_evm_tx_intent(tx, fee_currency=_fee_currency(body)).to_json()

    fee_currency = _fee_currency(body)
    if fee_currency not in (None, FeeCurrency.CELO.value):
        raise ValueError(f"feeCurrency {fee_currency} requires signing through the key-management store")

    signer = PrivateKeySigner(body.from_private_key)
    tx["from"] = signer.get_address()
    if "nonce" not in tx:
        tx["nonce"] = await w3.eth.get_transaction_count(tx["from"], "pending")
    if "gasPrice" not in tx:
        tx["gasPrice"] = await w3.eth.gas_price
    if "gas" not in tx:
        tx["gas"] = await w3.eth.estimate_gas(tx)
    signed = signer.sign_transaction(tx)
    return Web3.to_hex(signed.raw_transaction)


async def _call(chain: Chain, testnet: bool, body: Any, provider: str, fn_name: str, args: List[Any], value: int = 0) -> str:
    w3 = get_web3(provider)
    contract = _contract(w3, chain, body.contract_address)
    data = contract.encode_abi(fn_name, args=args)
    tx: Dict[str, Any] = {"to": contract.address, "data": data, "value": value}
    return await _finalize(w3, chain, testnet, body, tx)


@_prepare_errors("transfer")
async def prepare_transfer(chain: Chain, testnet: bool, body: Any, provider: str) -> str:
    value = ether_to_wei(body.value) if body.value else 0
    args = [normalize_address(chain, body.to), int(body.token_id)]
    return await _call(chain, testnet, body, provider, "safeTransfer", args, value=value)


@_prepare_errors("mint")
async def prepare_mint(chain: Chain, testnet: bool, body: Any, provider: str) -> str:
    args = [normalize_address(chain, body.to), int(body.token_id), body.url]
    return await _call(chain, testnet, body, provider, "mintWithTokenURI", args)


@_prepare_errors("mint cashback")
async def prepare_mint_cashback(chain: Chain, testnet: bool, body: Any, provider: str) -> str:
    args = [
        normalize_address(chain, body.to),
        int(body.token_id),
        body.url,
        [normalize_address(chain, a) for a in body.author_addresses],
        [ether_to_wei(v) for v in (body.cashback_values or [])],
    ]
    return await _call(chain, testnet, body, provider, "mintWithCashback", args)


@_prepare_errors("mint multiple")
async def prepare_mint_multiple(chain: Chain, testnet: bool, body: Any, provider: str) -> str:
    args = [
        [normalize_address(chain, t) for t in body.to],
        [int(t) for t in body.token_id],
        list(body.url),
    ]
    return await _call(chain, testnet, body, provider, "mintMultiple", args)


@_prepare_errors("mint multiple cashback")
async def prepare_mint_multiple_cashback(chain: Chain, testnet: bool, body: Any, provider: str) -> str:
    args = [
        [normalize_address(chain, t) for t in body.to],
        [int(t) for t in body.token_id],
        list(body.url),
        [[normalize_address(chain, a) for a in authors] for authors in body.author_addresses],
        [[ether_to_wei(v) for v in values] for values in (body.cashback_values or [])],
    ]
    return await _call(chain, testnet, body, provider, "mintMultipleCashback", args)


@_prepare_errors("burn")
async def prepare_burn(chain: Chain, testnet: bool, body: Any, provider: str) -> str:
    return await _call(chain, testnet, body, provider, "burn", [int(body.token_id)])


@_prepare_errors("update cashback")
async def prepare_update_cashback(chain: Chain, testnet: bool, body: Any, provider: str) -> str:
    args = [int(body.token_id), ether_to_wei(body.cashback_value)]
    return await _call(chain, testnet, body, provider, "updateCashbackForAuthor", args)


@_prepare_errors("deploy")
async def prepare_deploy(chain: Chain, testnet: bool, body: Any, provider: str) -> str:
    abi, bytecode = load_erc721_artifact()
    w3 = get_web3(provider)
    factory = w3.eth.contract(abi=abi, bytecode=bytecode)
    data = factory.constructor(body.name, body.symbol).data_in_transaction
    return await _finalize(w3, chain, testnet, body, {"data": data, "value": 0})
