from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List

import rlp
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, decode_dss_signature

from app.core.settings import FlowKeyCurve

from .cadence import normalize_flow_address

TRANSACTION_DOMAIN_TAG = b"FLOW-V0.0-transaction".ljust(32, b"\x00")

_CURVES = {
    FlowKeyCurve.SECP256K1: ec.SECP256K1(),
    FlowKeyCurve.P256: ec.SECP256R1(),
}


def _address_bytes(address: str) -> bytes:
    return bytes.fromhex(normalize_flow_address(address)[2:])


def _b64(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


class FlowSigner:
    """
    ECDSA signer for a Flow account key (SHA3-256 hashing).
    """

    def __init__(self, private_key: str, curve: FlowKeyCurve = FlowKeyCurve.SECP256K1) -> None:
        pk = (private_key or "").strip()
        if pk.startswith("0x"):
            pk = pk[2:]
        if len(pk) != 64:
            raise ValueError("Flow private key must be 32 bytes hex")
        self._key = ec.derive_private_key(int(pk, 16), _CURVES[curve])

    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._key.public_key()

    def sign(self, message: bytes) -> bytes:
        """64-byte r||s signature over SHA3-256(message)."""
        digest = hashlib.sha3_256(message).digest()
        der = self._key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA3_256())))
        r, s = decode_dss_signature(der)
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")


@dataclass(frozen=True)
class ProposalKey:
    address: str
    key_index: int
    sequence_number: int


@dataclass(frozen=True)
class EnvelopeSignature:
    address: str
    key_index: int
    signature: bytes


@dataclass
class FlowTransaction:
    """
    A single-signer Flow transaction: the proposer pays and authorises, so
    only an envelope signature is needed.
    """

    script: str
    arguments: List[bytes]
    reference_block_id: str
    gas_limit: int
    proposal_key: ProposalKey
    payer: str
    authorizers: List[str]
    envelope_signatures: List[EnvelopeSignature] = field(default_factory=list)

    def payload_fields(self) -> List[Any]:
        return [
            self.script.encode("utf-8"),
            list(self.arguments),
            bytes.fromhex(self.reference_block_id.removeprefix("0x")),
            self.gas_limit,
            _address_bytes(self.proposal_key.address),
            self.proposal_key.key_index,
            self.proposal_key.sequence_number,
            _address_bytes(self.payer),
            [_address_bytes(a) for a in self.authorizers],
        ]

    def envelope_message(self) -> bytes:
        # no payload signatures for a single signer
        return TRANSACTION_DOMAIN_TAG + rlp.encode([self.payload_fields(), []])

    def sign_envelope(self, signer: FlowSigner, *, address: str, key_index: int) -> None:
        signature = signer.sign(self.envelope_message())
        self.envelope_signatures.append(
            EnvelopeSignature(address=normalize_flow_address(address), key_index=key_index, signature=signature)
        )

    def to_rest(self) -> Dict[str, Any]:
        """Body of POST /v1/transactions."""
        return {
            "script": _b64(self.script.encode("utf-8")),
            "arguments": [_b64(a) for a in self.arguments],
            "reference_block_id": self.reference_block_id.removeprefix("0x"),
            "gas_limit": str(self.gas_limit),
            "payer": normalize_flow_address(self.payer)[2:],
            "proposal_key": {
                "address": normalize_flow_address(self.proposal_key.address)[2:],
                "key_index": str(self.proposal_key.key_index),
                "sequence_number": str(self.proposal_key.sequence_number),
            },
            "authorizers": [normalize_flow_address(a)[2:] for a in self.authorizers],
            "payload_signatures": [],
            "envelope_signatures": [
                {
                    "address": s.address[2:],
                    "key_index": str(s.key_index),
                    "signature": _b64(s.signature),
                }
                for s in self.envelope_signatures
            ],
        }
