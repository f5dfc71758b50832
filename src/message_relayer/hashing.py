"""
Cross-domain message identity.

Messages are identified by the keccak256 hash of the calldata that relays
them on the destination chain. The encoding generation is carried in the
upper 16 bits of the nonce, so the same function hashes both legacy (v0)
and current (v1) messages.
"""

from eth_abi import encode
from web3 import Web3

NONCE_VERSION_SHIFT = 240
NONCE_MASK = (1 << NONCE_VERSION_SHIFT) - 1

RELAY_MESSAGE_V0_SIGNATURE = "relayMessage(address,address,bytes,uint256)"
RELAY_MESSAGE_V1_SIGNATURE = "relayMessage(uint256,address,address,uint256,uint256,bytes)"


class UnsupportedMessageVersionError(ValueError):
    """Raised when a nonce carries an encoding version we cannot hash."""


def encode_versioned_nonce(nonce: int, version: int) -> int:
    """Pack a message encoding version into the top 16 bits of a nonce."""
    return (version << NONCE_VERSION_SHIFT) | (nonce & NONCE_MASK)


def decode_versioned_nonce(nonce: int) -> tuple[int, int]:
    """Split a versioned nonce into (nonce, version)."""
    return nonce & NONCE_MASK, nonce >> NONCE_VERSION_SHIFT


def _selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


def encode_cross_domain_message(
    nonce: int,
    sender: str,
    target: str,
    value: int,
    gas_limit: int,
    data: bytes,
) -> bytes:
    """
    Encode a cross domain message as relay calldata.

    Args:
        nonce: Versioned message nonce
        sender: Source chain sender address
        target: Destination chain target address
        value: Native currency value in wei
        gas_limit: Minimum gas limit for the relayed call
        data: Message payload

    Returns:
        ABI encoded calldata including the 4 byte selector

    Raises:
        UnsupportedMessageVersionError: If the nonce version is not 0 or 1
    """
    _, version = decode_versioned_nonce(nonce)
    sender = Web3.to_checksum_address(sender)
    target = Web3.to_checksum_address(target)

    match version:
        case 0:
            # Legacy messages carry neither value nor gas limit
            return _selector(RELAY_MESSAGE_V0_SIGNATURE) + encode(
                ["address", "address", "bytes", "uint256"],
                [target, sender, data, nonce],
            )
        case 1:
            return _selector(RELAY_MESSAGE_V1_SIGNATURE) + encode(
                ["uint256", "address", "address", "uint256", "uint256", "bytes"],
                [nonce, sender, target, value, gas_limit, data],
            )
        case _:
            raise UnsupportedMessageVersionError(
                f"Unsupported cross domain message version: {version}"
            )


def hash_cross_domain_message(
    nonce: int,
    sender: str,
    target: str,
    value: int,
    gas_limit: int,
    data: bytes,
) -> str:
    """Return the 0x-prefixed identity hash of a cross domain message."""
    encoded = encode_cross_domain_message(nonce, sender, target, value, gas_limit, data)
    return Web3.to_hex(Web3.keccak(encoded))
