from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation, localcontext
from pathlib import Path
from typing import Any, Dict, List, Tuple

from aiohttp import ClientTimeout
from web3 import AsyncWeb3, Web3
from web3.providers.rpc import AsyncHTTPProvider

from app.core.settings import settings
from nft.chains import Chain

# (mainnet, testnet)
CHAIN_IDS: Dict[Chain, Tuple[int, int]] = {
    Chain.ETH: (1, 11155111),
    Chain.BSC: (56, 97),
    Chain.CELO: (42220, 44787),
    Chain.XDC: (50, 51),
}

WEI_PER_ETHER = Decimal(10) ** 18


def chain_id_for(chain: Chain, testnet: bool) -> int:
    if chain in CHAIN_IDS:
        mainnet, test = CHAIN_IDS[chain]
        return test if testnet else mainnet
    raise ValueError(f"Unsupported chain: {chain}")


def get_web3(provider_url: str) -> AsyncWeb3:
    """
    JSON-RPC client on a single node url.

    Not cached: the underlying aiohttp session belongs to the running loop.
    """
    if not provider_url:
        raise ValueError("Missing node url")
    timeout = ClientTimeout(total=float(settings.HTTP_TIMEOUT_SEC))
    return AsyncWeb3(AsyncHTTPProvider(provider_url, request_kwargs={"timeout": timeout}))


def is_hex_address(s: str) -> bool:
    v = (s or "").strip()
    if not (v.startswith("0x") and len(v) == 42):
        return False
    try:
        int(v[2:], 16)
        return True
    except ValueError:
        return False


def normalize_address(chain: Chain, address: str) -> str:
    """
    Checksummed 0x address; XDC's `xdc` prefix is accepted for any chain input
    that came from an XDC wallet.
    """
    v = (address or "").strip()
    if chain == Chain.XDC and v.lower().startswith("xdc"):
        v = "0x" + v[3:]
    if not is_hex_address(v):
        raise ValueError(f"Invalid {chain.value} address: {address}")
    return Web3.to_checksum_address(v)


def _to_base_units(amount: str, decimals: int, what: str) -> Decimal:
    # 78 digits hold any uint256
    with localcontext() as ctx:
        ctx.prec = 78
        try:
            d = Decimal(str(amount).strip())
        except InvalidOperation as e:
            raise ValueError(f"Invalid {what}: {amount}") from e
        if not d.is_finite():
            raise ValueError(f"Invalid {what}: {amount}")
        units = d.scaleb(decimals)
    if units != units.to_integral_value():
        raise ValueError(f"{what} {amount} has more than {decimals} decimals")
    return units


def ether_to_wei(amount: str) -> int:
    units = _to_base_units(amount, 18, "amount")
    if units < 0:
        raise ValueError("amount must be >= 0")
    return int(units)


def gwei_to_wei(amount: str) -> int:
    units = _to_base_units(amount, 9, "gas price")
    if units <= 0:
        raise ValueError("gas price must be > 0")
    return int(units)


def wei_to_ether_str(value: Any) -> str:
    """Plain decimal string, no exponent (e.g. 10**16 -> '0.01')."""
    d = Decimal(int(value)) / WEI_PER_ETHER
    s = format(d, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s or "0"


async def send_raw_transaction(provider_url: str, raw_tx: str) -> str:
    w3 = get_web3(provider_url)
    tx_hash = await w3.eth.send_raw_transaction(raw_tx)
    # tx_hash is HexBytes
    return w3.to_hex(tx_hash)


def load_erc721_artifact(path: str | None = None) -> Tuple[List[Dict[str, Any]], str]:
    """
    Compiled contract artifact used for deploys: JSON with `abi` and `bytecode`
    (hardhat / truffle layout; `bytecode` may also be `{"object": "..."}`).
    """
    raw = path or settings.ERC721_ARTIFACT_PATH
    if not raw:
        raise ValueError("ERC721_ARTIFACT_PATH is not set")
    p = Path(raw).expanduser()
    if not p.exists():
        raise ValueError(f"ERC-721 artifact not found: {p}")
    data = json.loads(p.read_text())
    abi = data.get("abi")
    bytecode = data.get("bytecode")
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if not isinstance(abi, list) or not bytecode:
        raise ValueError(f"ERC-721 artifact {p} must contain abi and bytecode")
    bytecode = str(bytecode)
    if not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode
    return abi, bytecode


def _fn(name: str, inputs: List[Tuple[str, str]], outputs: List[str] | None = None, mutability: str = "nonpayable") -> Dict[str, Any]:
    return {
        "name": name,
        "type": "function",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in (outputs or [])],
        "stateMutability": mutability,
    }


# Cashback-enabled ERC-721 (one contract layout for ETH, BSC, CELO and XDC).
ERC721_ABI: List[Dict[str, Any]] = [
    _fn("mintWithTokenURI", [("to", "address"), ("tokenId", "uint256"), ("tokenURI", "string")], ["bool"]),
    _fn("mintMultiple", [("to", "address[]"), ("tokenId", "uint256[]"), ("tokenURI", "string[]")], ["bool"]),
    _fn(
        "mintWithCashback",
        [
            ("to", "address"),
            ("tokenId", "uint256"),
            ("tokenURI", "string"),
            ("authorAddresses", "address[]"),
            ("cashbackValues", "uint256[]"),
        ],
        ["bool"],
    ),
    _fn(
        "mintMultipleCashback",
        [
            ("to", "address[]"),
            ("tokenId", "uint256[]"),
            ("tokenURI", "string[]"),
            ("authorAddresses", "address[][]"),
            ("cashbackValues", "uint256[][]"),
        ],
        ["bool"],
    ),
    _fn("safeTransfer", [("to", "address"), ("tokenId", "uint256")], ["bool"], mutability="payable"),
    _fn("burn", [("tokenId", "uint256")]),
    _fn("updateCashbackForAuthor", [("tokenId", "uint256"), ("cashbackValue", "uint256")], ["bool"]),
    _fn("tokenURI", [("tokenId", "uint256")], ["string"], mutability="view"),
    _fn("tokensOfOwner", [("owner", "address")], ["uint256[]"], mutability="view"),
    _fn("tokenCashbackRecipients", [("tokenId", "uint256")], ["address[]"], mutability="view"),
    _fn("tokenCashbackValues", [("tokenId", "uint256")], ["uint256[]"], mutability="view"),
]
