from eth_utils import to_checksum_address

from paymaster_monitor.monitor.exceptions import \
    DecodeException, DecodeExceptionCode
from paymaster_monitor.typing import Address

ADDRESS_LENGTH = 20
WORD_LENGTH = 32


def decode_uint(data: bytes, offset: int, width: int) -> int:
    """
    Big-endian unsigned integer stored in data[offset:offset + width].
    Callers are expected to validate the overall length first, an out of
    range slice is reported as a DecodeException rather than truncated.
    """
    _check_range(data, offset, width)
    return int.from_bytes(data[offset:offset + width], "big")


def decode_address(data: bytes, offset: int) -> Address:
    _check_range(data, offset, ADDRESS_LENGTH)
    return Address(
        to_checksum_address(data[offset:offset + ADDRESS_LENGTH])
    )


def decode_topic_address(topic: bytes) -> Address:
    # indexed addresses are left padded to a full word
    if len(topic) != WORD_LENGTH:
        raise DecodeException(
            DecodeExceptionCode.InvalidFieldRange,
            f"Invalid topic length {len(topic)} for an address topic",
        )
    return decode_address(topic, WORD_LENGTH - ADDRESS_LENGTH)


def decode_topic_hash(topic: bytes) -> str:
    if len(topic) != WORD_LENGTH:
        raise DecodeException(
            DecodeExceptionCode.InvalidFieldRange,
            f"Invalid topic length {len(topic)} for a bytes32 topic",
        )
    return "0x" + topic.hex()


def _check_range(data: bytes, offset: int, width: int) -> None:
    if offset < 0 or width <= 0 or offset + width > len(data):
        raise DecodeException(
            DecodeExceptionCode.InvalidFieldRange,
            f"Field [{offset}:{offset + width}] out of range "
            f"for data of length {len(data)}",
        )
