import re
from typing import Any

from eth_utils import to_checksum_address

from paymaster_monitor.monitor.exceptions import \
    DecodeException, DecodeExceptionCode
from paymaster_monitor.typing import Address, TransactionHash
from .models import RawLog, TransactionEvent


def verify_and_get_address(field_name: str, value: Any) -> Address:
    address_pattern = "^0x[0-9,a-f,A-F]{40}$"
    if isinstance(value, str) and re.match(address_pattern, value) is not None:
        return Address(to_checksum_address(value))
    else:
        raise DecodeException(
            DecodeExceptionCode.InvalidTransaction,
            f"Invalid address value : {value} in field {field_name}",
        )


def verify_and_get_bytes(field_name: str, value: Any) -> bytes:
    if isinstance(value, str) and value[:2] == "0x":
        try:
            return bytes.fromhex(value[2:])
        except ValueError:
            raise DecodeException(
                DecodeExceptionCode.InvalidTransaction,
                f"Invalid bytes hex value : {value} in field {field_name}",
            )
    else:
        raise DecodeException(
            DecodeExceptionCode.InvalidTransaction,
            f"Invalid bytes hex value : {value} in field {field_name}",
        )


def verify_and_get_block_number(field_name: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    if isinstance(value, str):
        try:
            block_number = int(value, 0)
        except ValueError:
            block_number = -1
        if block_number >= 0:
            return block_number
    raise DecodeException(
        DecodeExceptionCode.InvalidTransaction,
        f"Invalid block number value : {value} in field {field_name}",
    )


def is_transaction_hash(transaction_hash: Any) -> bool:
    hash_pattern = "^0x[0-9,a-f,A-F]{64}$"
    return (
        isinstance(transaction_hash, str)
        and re.match(hash_pattern, transaction_hash) is not None
    )


def parse_raw_log(log_json: dict[str, Any]) -> RawLog:
    if not isinstance(log_json, dict):
        raise DecodeException(
            DecodeExceptionCode.InvalidTransaction,
            f"Invalid log value : {log_json}",
        )
    if "topics" not in log_json or not isinstance(log_json["topics"], list):
        raise DecodeException(
            DecodeExceptionCode.InvalidTransaction,
            "Log missing topics field",
        )
    if len(log_json["topics"]) > 4:
        raise DecodeException(
            DecodeExceptionCode.InvalidTransaction,
            f"Log has {len(log_json['topics'])} topics, at most 4 allowed",
        )
    return RawLog(
        address=verify_and_get_address("address", log_json.get("address")),
        topics=tuple(
            verify_and_get_bytes(f"topics[{index}]", topic)
            for index, topic in enumerate(log_json["topics"])
        ),
        data=verify_and_get_bytes("data", log_json.get("data", "0x")),
    )


def parse_transaction_event(transaction_json: dict[str, Any]) -> TransactionEvent:
    """
    Builds a TransactionEvent from a transaction payload as delivered by a
    transaction webhook (hash, input, logs[address, topics, data]).
    A missing hash is kept as None, the correlator treats it as a no-op.
    """
    if not isinstance(transaction_json, dict):
        raise DecodeException(
            DecodeExceptionCode.InvalidTransaction,
            "Transaction payload must be a json object",
        )
    transaction_hash = transaction_json.get("hash")
    if transaction_hash is None:
        transaction_hash = transaction_json.get("transactionHash")
    if transaction_hash is not None:
        if not is_transaction_hash(transaction_hash):
            raise DecodeException(
                DecodeExceptionCode.InvalidTransaction,
                f"Invalid transaction hash : {transaction_hash}",
            )
        transaction_hash = TransactionHash(transaction_hash.lower())

    logs_json = transaction_json.get("logs", [])
    if not isinstance(logs_json, list):
        raise DecodeException(
            DecodeExceptionCode.InvalidTransaction,
            f"Invalid logs value : {logs_json}",
        )
    logs = [parse_raw_log(log) for log in logs_json]

    block_number = verify_and_get_block_number(
        "blockNumber", transaction_json.get("blockNumber"))

    to = transaction_json.get("to")
    return TransactionEvent(
        transaction_hash=transaction_hash,
        input=verify_and_get_bytes("input", transaction_json.get("input", "0x")),
        logs=logs,
        network=transaction_json.get("network"),
        block_number=block_number,
        to=None if to is None else verify_and_get_address("to", to),
    )
