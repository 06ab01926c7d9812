"""
orderseal/core/codec.py

Order fingerprinting and signature checks.

Fingerprint layout (tightly packed, no padding between fields):

    exchange_address    20 bytes
    maker               20 bytes
    taker               20 bytes   (None → 20 zero bytes)
    maker_token         20 bytes
    taker_token         20 bytes
    fee_recipient       20 bytes   (None → 20 zero bytes)
    maker_token_amount  32 bytes   big-endian
    taker_token_amount  32 bytes
    maker_fee           32 bytes
    taker_fee           32 bytes
    expiration          32 bytes
    salt                32 bytes

    fingerprint = keccak256(layout)    → 0x-prefixed lowercase hex

Signers on other systems reproduce this byte-for-byte, so the layout is
fixed. Any field change changes the fingerprint.
"""

from typing import Optional

from eth_utils import decode_hex, encode_hex, keccak, to_canonical_address

from orderseal.core.crypto import MakerKeyManager
from orderseal.core.models import Order, Signature

NULL_ADDRESS_BYTES = b"\x00" * 20


def _address_bytes(address: Optional[str]) -> bytes:
    if address is None:
        return NULL_ADDRESS_BYTES
    return to_canonical_address(address)


def _uint256_bytes(value: int) -> bytes:
    return value.to_bytes(32, "big")


def encode_order(order: Order) -> bytes:
    """The packed byte layout hashed into the fingerprint."""
    return b"".join((
        _address_bytes(order.exchange_address),
        _address_bytes(order.maker),
        _address_bytes(order.taker),
        _address_bytes(order.maker_token),
        _address_bytes(order.taker_token),
        _address_bytes(order.fee_recipient),
        _uint256_bytes(order.maker_token_amount),
        _uint256_bytes(order.taker_token_amount),
        _uint256_bytes(order.maker_fee),
        _uint256_bytes(order.taker_fee),
        _uint256_bytes(order.expiration),
        _uint256_bytes(order.salt),
    ))


def fingerprint(order: Order) -> str:
    """keccak256 of the packed order layout, as 0x-prefixed hex."""
    return encode_hex(keccak(encode_order(order)))


def token_pair_hash(maker_token: str, taker_token: str) -> str:
    """keccak256(maker_token ‖ taker_token), carried in fill events."""
    return encode_hex(keccak(_address_bytes(maker_token) + _address_bytes(taker_token)))


def verify_signature(order_hash: str, signature: Signature, claimed_signer: Optional[str]) -> bool:
    """
    True iff `signature` over `order_hash` recovers `claimed_signer`.
    False for malformed input. Never raises.
    """
    try:
        digest = decode_hex(order_hash)
    except Exception:
        return False
    if len(digest) != 32 or claimed_signer is None:
        return False
    return MakerKeyManager.verify_detached(digest, signature, claimed_signer)


def sign_order(order: Order, key: MakerKeyManager) -> Signature:
    """Sign an order's fingerprint with the maker's key."""
    return key.sign(decode_hex(fingerprint(order)))
