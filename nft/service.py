"""
NFT dispatch facade.

NftService routes chain-tagged requests to the matching transaction preparer,
then either parks the payload in the key-management store (request carries a
signatureId) or broadcasts it through the host. Flow operations that sign on
the account itself skip the payload step and return the send result as-is.

Read-only queries open a chain client on the first node url and translate any
failure into LookupFailed.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Mapping, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from errors import (
    BROADCAST_FAILED,
    PREPARE_FAILED,
    TOKEN_LOOKUP_FAILED,
    TX_NOT_FOUND,
    AppError,
    DeploymentOrSigningFailed,
    LookupFailed,
    NftError,
    UnsupportedChain,
    classify_exception,
)
from execution.evm import ERC721_ABI, get_web3, normalize_address, wei_to_ether_str
from flow import nft as flow_nft
from observability import AuditLog, build_log_context, log_event, now_ms

from .chains import EVM_CHAINS, Chain, parse_chain
from .host import NftHost
from .models import FlowSignedRequest
from .strategies import DEFAULT_STRATEGIES, ChainStrategy, StrategyTable

TX_NOT_FOUND_MESSAGE = "Transaction not found. Possible not exists or is still pending."


def _jsonable(obj: Any) -> Dict[str, Any]:
    """AttributeDict / HexBytes -> plain JSON types."""
    return json.loads(Web3.to_json(obj))


class NftService:
    def __init__(
        self,
        host: NftHost,
        *,
        strategies: Optional[Mapping[str, StrategyTable]] = None,
        audit_log: Optional[AuditLog] = None,
    ) -> None:
        self._host = host
        self._strategies: Dict[str, StrategyTable] = dict(DEFAULT_STRATEGIES)
        if strategies:
            self._strategies.update(strategies)
        self._audit_log = audit_log

    # Dispatched operations

    async def transfer_erc721(self, body: Any) -> Any:
        return await self._dispatch("transfer", body)

    async def mint_erc721(self, body: Any) -> Any:
        return await self._dispatch("mint", body)

    async def mint_multiple_erc721(self, body: Any) -> Any:
        return await self._dispatch("mint_multiple", body)

    async def burn_erc721(self, body: Any) -> Any:
        return await self._dispatch("burn", body)

    async def deploy_erc721(self, body: Any) -> Any:
        return await self._dispatch("deploy", body)

    async def update_cashback_for_author(self, body: Any) -> Any:
        return await self._dispatch("update_cashback", body)

    def _strategy(self, operation: str, chain: Chain) -> ChainStrategy:
        table = self._strategies.get(operation) or {}
        strategy = table.get(chain)
        if strategy is None:
            raise UnsupportedChain(chain, {"chain": chain.value, "operation": operation})
        return strategy

    async def _dispatch(self, operation: str, body: Any) -> Any:
        chain = parse_chain(body.chain)
        ctx = build_log_context(operation=operation, chain=chain)
        route: Optional[str] = None
        try:
            strategy = self._strategy(operation, chain)
            if isinstance(body, FlowSignedRequest) != (chain == Chain.FLOW):
                raise NftError(
                    "validation.failed", f"{type(body).__name__} cannot be sent on {chain.value}.", {"chain": chain.value}
                )

            testnet = await self._host.is_testnet()
            provider = (await self._host.get_nodes_url(chain, testnet))[0]

            if body.signature_id is not None and strategy.prepare is not None:
                route = "kms"
                tx_data = await strategy.preparer_for(body)(testnet, body, provider)
                signature_id = await self._host.store_kms_transaction(
                    tx_data, chain, [body.signature_id], body.index
                )
                result: Any = {"signatureId": signature_id}
            elif strategy.direct is not None:
                route = "direct"
                result = await strategy.direct(self._host, testnet, body, provider)
            else:
                route = "broadcast"
                tx_data = await strategy.preparer_for(body)(testnet, body, provider)
                result = await self._host.broadcast(chain, tx_data)
        except AppError as e:
            log_event("nft_dispatch_failed", ctx=ctx, data={"route": route, "code": e.code}, level="warning")
            self._audit(ctx, operation, chain, ok=False, route=route, error_code=e.code)
            raise
        except Exception as e:
            err = classify_exception(e)
            code = BROADCAST_FAILED if route == "broadcast" else PREPARE_FAILED
            log_event(
                "nft_dispatch_failed", ctx=ctx, data={"route": route, "code": code, "cause": err.code}, level="error", exc=e
            )
            self._audit(ctx, operation, chain, ok=False, route=route, error_code=code)
            raise DeploymentOrSigningFailed(
                code,
                f"Unable to {operation.replace('_', ' ')} on {chain.value}. {e}",
                {"chain": chain.value, "operation": operation, "route": route, "cause": err.code},
            ) from e

        log_event("nft_dispatched", ctx=ctx, data={"route": route})
        self._audit(ctx, operation, chain, ok=True, route=route)
        return result

    def _audit(
        self,
        ctx: Dict[str, Any],
        operation: str,
        chain: Chain,
        *,
        ok: bool,
        route: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> None:
        if self._audit_log is None or not self._audit_log.enabled():
            return
        self._audit_log.append(
            ts_ms=now_ms(),
            request_id=ctx["request_id"],
            operation=operation,
            chain=chain.value,
            ok=ok,
            route=route,
            error_code=error_code,
        )

    # Queries

    async def _provider(self, chain: Chain) -> tuple[bool, str]:
        testnet = await self._host.is_testnet()
        return testnet, (await self._host.get_nodes_url(chain, testnet))[0]

    @staticmethod
    def _query_chain(chain: Chain | str) -> Chain:
        c = parse_chain(chain)
        if c not in EVM_CHAINS and c != Chain.FLOW:
            raise UnsupportedChain(c)
        return c

    @staticmethod
    def _lookup_failed(event: str, ctx: Dict[str, Any], e: Exception, code: str, message: str) -> LookupFailed:
        log_event(event, ctx=ctx, level="error", exc=e)
        return LookupFailed(code, message, {"chain": ctx.get("chain")})

    async def get_metadata_erc721(
        self, chain: Chain | str, token: str, contract_address: str, account: Optional[str] = None
    ) -> Dict[str, Any]:
        c = self._query_chain(chain)
        ctx = build_log_context(operation="metadata", chain=c, token=token)
        if c == Chain.FLOW and not account:
            raise LookupFailed(TOKEN_LOOKUP_FAILED, "Account address must be present.", {"chain": c.value})
        try:
            testnet, provider = await self._provider(c)
            if c == Chain.FLOW:
                data = await flow_nft.get_flow_nft_metadata(testnet, account, token, contract_address, provider)
            else:
                contract = get_web3(provider).eth.contract(address=normalize_address(c, contract_address), abi=ERC721_ABI)
                data = await contract.functions.tokenURI(int(token)).call()
        except AppError:
            raise
        except Exception as e:
            raise self._lookup_failed(
                "nft_metadata_failed", ctx, e, TOKEN_LOOKUP_FAILED, f"Unable to obtain information for token. {e}"
            ) from e
        return {"data": data}

    async def get_royalty_erc721(self, chain: Chain | str, token: str, contract_address: str) -> Dict[str, Any]:
        c = self._query_chain(chain)
        if c == Chain.FLOW:
            raise UnsupportedChain(c)
        ctx = build_log_context(operation="royalty", chain=c, token=token)
        try:
            _, provider = await self._provider(c)
            contract = get_web3(provider).eth.contract(address=normalize_address(c, contract_address), abi=ERC721_ABI)
            addresses, values = await asyncio.gather(
                contract.functions.tokenCashbackRecipients(int(token)).call(),
                contract.functions.tokenCashbackValues(int(token)).call(),
            )
        except AppError:
            raise
        except Exception as e:
            raise self._lookup_failed(
                "nft_royalty_failed", ctx, e, TOKEN_LOOKUP_FAILED, f"Unable to obtain information for token. {e}"
            ) from e
        return {"addresses": list(addresses), "values": [wei_to_ether_str(v) for v in values]}

    async def get_tokens_of_owner(self, chain: Chain | str, address: str, contract_address: str) -> Dict[str, Any]:
        c = self._query_chain(chain)
        ctx = build_log_context(operation="tokens_of_owner", chain=c)
        if c == Chain.FLOW and not address:
            raise LookupFailed(TOKEN_LOOKUP_FAILED, "Account address must be present.", {"chain": c.value})
        try:
            testnet, provider = await self._provider(c)
            if c == Chain.FLOW:
                data: List[str] = await flow_nft.get_flow_nft_token_by_address(testnet, address, contract_address, provider)
            else:
                contract = get_web3(provider).eth.contract(address=normalize_address(c, contract_address), abi=ERC721_ABI)
                ids = await contract.functions.tokensOfOwner(normalize_address(c, address)).call()
                data = [str(i) for i in ids]
        except AppError:
            raise
        except Exception as e:
            raise self._lookup_failed(
                "nft_tokens_of_owner_failed", ctx, e, TOKEN_LOOKUP_FAILED, f"Unable to obtain information for token. {e}"
            ) from e
        return {"data": data}

    async def get_contract_address(self, chain: Chain | str, tx_id: str) -> Dict[str, Any]:
        c = self._query_chain(chain)
        ctx = build_log_context(operation="contract_address", chain=c, tx_id=tx_id)
        try:
            _, provider = await self._provider(c)
            if c == Chain.FLOW:
                tx = await flow_nft.get_flow_transaction(tx_id, provider)
                args = tx.get("args") or []
                if not args:
                    raise ValueError(f"Flow transaction {tx_id} has no arguments")
                contract_address = args[0]
            else:
                receipt = await get_web3(provider).eth.get_transaction_receipt(tx_id)
                contract_address = receipt["contractAddress"]
        except AppError:
            raise
        except Exception as e:
            raise self._lookup_failed("nft_contract_address_failed", ctx, e, TX_NOT_FOUND, TX_NOT_FOUND_MESSAGE) from e
        return {"contractAddress": contract_address}

    async def get_transaction(self, chain: Chain | str, tx_id: str) -> Dict[str, Any]:
        c = self._query_chain(chain)
        ctx = build_log_context(operation="transaction", chain=c, tx_id=tx_id)
        try:
            _, provider = await self._provider(c)
            if c == Chain.FLOW:
                return await flow_nft.get_flow_transaction(tx_id, provider)
            w3 = get_web3(provider)
            tx = _jsonable(await w3.eth.get_transaction(tx_id))
            tx_hash = tx.pop("hash", tx_id)
            for key in ("r", "s", "v"):
                tx.pop(key, None)
            try:
                receipt = _jsonable(await w3.eth.get_transaction_receipt(tx_hash))
            except TransactionNotFound:
                # still pending
                receipt = {}
                tx["transactionHash"] = tx_hash
            return {**tx, **receipt}
        except AppError:
            raise
        except Exception as e:
            raise self._lookup_failed("nft_transaction_failed", ctx, e, TX_NOT_FOUND, TX_NOT_FOUND_MESSAGE) from e
