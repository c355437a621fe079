"""
JSON-Cadence values and the Cadence sources used by the Flow NFT operations.

Templates target a multi-type NFT contract (TatumMultiNFT layout): one
contract per network holding tokens of many `type`s, where `type` is what the
REST surface calls the Flow `contractAddress`.
"""

from __future__ import annotations

import base64
import json
from string import Template
from typing import Any, Dict, List

# Standard NonFungibleToken contract addresses.
NON_FUNGIBLE_TOKEN_ADDRESS = {
    False: "0x1d7e57aa55817448",
    True: "0x631e88ae7f1d7c20",
}

_INT_TYPES = {"Int", "Int8", "Int16", "Int32", "Int64", "Int128", "Int256",
              "UInt", "UInt8", "UInt16", "UInt32", "UInt64", "UInt128", "UInt256",
              "Word8", "Word16", "Word32", "Word64"}
_COMPOSITE_TYPES = {"Struct", "Resource", "Event", "Contract", "Enum"}


def normalize_flow_address(address: str) -> str:
    v = (address or "").strip().lower()
    if v.startswith("0x"):
        v = v[2:]
    if not v or len(v) > 16:
        raise ValueError(f"Invalid Flow address: {address}")
    int(v, 16)
    return "0x" + v.rjust(16, "0")


def address(value: str) -> Dict[str, Any]:
    return {"type": "Address", "value": normalize_flow_address(value)}


def string(value: str) -> Dict[str, Any]:
    return {"type": "String", "value": str(value)}


def uint64(value: Any) -> Dict[str, Any]:
    v = int(value)
    if v < 0 or v >= 2**64:
        raise ValueError(f"UInt64 out of range: {value}")
    return {"type": "UInt64", "value": str(v)}


def array(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "Array", "value": list(items)}


def encode_argument(value: Dict[str, Any]) -> bytes:
    """Canonical bytes of one argument; the same bytes are signed and sent."""
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


def decode_value(value: Dict[str, Any]) -> Any:
    """
    JSON-Cadence -> plain Python (ints for integer types, dicts for composites).
    """
    t = value.get("type")
    v = value.get("value")
    if t in _INT_TYPES:
        return int(v)
    if t == "Array":
        return [decode_value(x) for x in v]
    if t == "Dictionary":
        return {decode_value(e["key"]): decode_value(e["value"]) for e in v}
    if t == "Optional":
        return decode_value(v) if v is not None else None
    if t in _COMPOSITE_TYPES:
        return {f["name"]: decode_value(f["value"]) for f in v.get("fields", [])}
    if t == "Void":
        return None
    return v


def decode_b64(raw: str) -> Any:
    return decode_value(json.loads(base64.b64decode(raw)))


def render(template: Template, *, name: str, address: str, testnet: bool) -> str:
    return template.substitute(
        name=name,
        address=normalize_flow_address(address),
        nft=NON_FUNGIBLE_TOKEN_ADDRESS[bool(testnet)],
    )


MINT = Template("""\
import $name from $address

transaction(recipient: Address, type: String, url: String) {
    let minter: &$name.NFTMinter

    prepare(signer: auth(BorrowValue) &Account) {
        self.minter = signer.storage.borrow<&$name.NFTMinter>(from: $name.MinterStoragePath)
            ?? panic("Could not borrow a reference to the NFT minter")
    }

    execute {
        self.minter.mintNFT(type: type, url: url, address: recipient)
    }
}
""")

MINT_MULTIPLE = Template("""\
import $name from $address

transaction(recipient: [Address], type: String, url: [String]) {
    let minter: &$name.NFTMinter

    prepare(signer: auth(BorrowValue) &Account) {
        self.minter = signer.storage.borrow<&$name.NFTMinter>(from: $name.MinterStoragePath)
            ?? panic("Could not borrow a reference to the NFT minter")
    }

    execute {
        var i = 0
        while i < recipient.length {
            self.minter.mintNFT(type: type, url: url[i], address: recipient[i])
            i = i + 1
        }
    }
}
""")

TRANSFER = Template("""\
import NonFungibleToken from $nft
import $name from $address

transaction(recipient: Address, withdrawID: UInt64) {
    let token: @{NonFungibleToken.NFT}

    prepare(signer: auth(BorrowValue) &Account) {
        let collection = signer.storage.borrow<auth(NonFungibleToken.Withdraw) &$name.Collection>(from: $name.CollectionStoragePath)
            ?? panic("Could not borrow a reference to the owner's collection")
        self.token <- collection.withdraw(withdrawID: withdrawID)
    }

    execute {
        let receiver = getAccount(recipient)
            .capabilities.borrow<&{NonFungibleToken.Receiver}>($name.CollectionPublicPath)
            ?? panic("Could not borrow receiver capability of the recipient")
        receiver.deposit(token: <-self.token)
    }
}
""")

BURN = Template("""\
import NonFungibleToken from $nft
import $name from $address

transaction(withdrawID: UInt64) {
    prepare(signer: auth(BorrowValue) &Account) {
        let collection = signer.storage.borrow<auth(NonFungibleToken.Withdraw) &$name.Collection>(from: $name.CollectionStoragePath)
            ?? panic("Could not borrow a reference to the owner's collection")
        let token <- collection.withdraw(withdrawID: withdrawID)
        destroy token
    }
}
""")

DEPLOY = Template("""\
transaction(account: Address, name: String, code: String) {
    prepare(signer: auth(AddContract) &Account) {
        assert(signer.address == account, message: "signer does not match account")
        signer.contracts.add(name: name, code: code.decodeHex())
    }
}
""")

METADATA = Template("""\
import $name from $address

access(all) fun main(account: Address, id: UInt64, type: String): String {
    let collection = getAccount(account)
        .capabilities.borrow<&{$name.TatumMultiNftCollectionPublic}>($name.CollectionPublicPath)
        ?? panic("Could not borrow capability from public collection")
    let ref = collection.borrowTatumNFT(id: id)
    if ref.type == type {
        return ref.metadata
    }
    return ""
}
""")

TOKENS_BY_ADDRESS = Template("""\
import $name from $address

access(all) fun main(address: Address, type: String): [UInt64] {
    let collection = getAccount(address)
        .capabilities.borrow<&{$name.TatumMultiNftCollectionPublic}>($name.CollectionPublicPath)
        ?? panic("Could not borrow capability from public collection")
    return collection.getIDsByType(type: type)
}
""")
