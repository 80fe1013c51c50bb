import logging
from typing import Iterable

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from paymaster_monitor.monitor.exceptions import \
    DecodeException, DecodeExceptionCode
from paymaster_monitor.monitor.report import SkippedItem, SkipStage
from paymaster_monitor.typing import Address, UserOperationHash
from paymaster_monitor.utils.address import normalize_addresses
from paymaster_monitor.utils.decode import \
    decode_topic_address, decode_topic_hash
from .models import (EntryPointEvent, EventKind, PostOpRevertReasonEvent,
                     RawLog, UserOperationEvent, UserOpProcessedEvent,
                     to_paymaster_mode)

USER_OPERATION_EVENT_DATA_ABI = [
    "uint256",  # nonce
    "bool",  # success
    "uint256",  # actualGasCost
    "uint256",  # actualGasUsed
]

USER_OP_PROCESSED_DATA_ABI = [
    "uint8",  # mode
    "uint256",  # actualGasCost
    "address",  # token
    "uint256",  # actualTokenCost
    "address",  # chargeFrom
    "bool",  # chargeSuccessful
]

POST_OP_REVERT_REASON_DATA_ABI = [
    "uint256",  # nonce
    "bytes",  # revertReason
]

EVENT_TOPICS_COUNT = {
    EventKind.UserOperationEvent: 4,
    EventKind.UserOpProcessed: 4,
    EventKind.PostOpRevertReason: 3,
}


def decode_event_logs(
    logs: list[RawLog],
    kind: EventKind,
    filter_user_operation_hashes: Iterable[str] | None = None,
    filter_paymasters: Iterable[str] | None = None,
    skipped: list[SkippedItem] | None = None,
) -> list[EntryPointEvent]:
    """
    Decodes every log whose topic0 matches the event kind, in log order.
    Filters are applied on the decoded values since the keys live in the
    indexed topics. An empty list is a normal result.
    Logs that match topic0 but can't be decoded are left out and, if a
    skipped list is passed, reported in it.
    """
    if filter_paymasters is not None and kind != EventKind.UserOperationEvent:
        raise ValueError(f"{kind.name} event has no paymaster to filter on")

    event_logs = [
        (log_index, log) for log_index, log in enumerate(logs)
        if len(log.topics) > 0 and log.topics[0] == kind.topic
    ]
    if len(event_logs) == 0:
        logging.info(f"{kind.name} event not found")
        return []

    user_operation_hashes_filter = None
    if filter_user_operation_hashes is not None:
        user_operation_hashes_filter = {
            user_operation_hash.lower()
            for user_operation_hash in filter_user_operation_hashes
        }
    paymasters_filter = None
    if filter_paymasters is not None:
        paymasters_filter = normalize_addresses(filter_paymasters)

    events: list[EntryPointEvent] = []
    for log_index, log in event_logs:
        try:
            event = decode_event_log(log, kind)
        except DecodeException as excp:
            user_operation_hash = _get_user_operation_hash_or_none(log)
            if (
                user_operation_hashes_filter is not None and
                user_operation_hash not in user_operation_hashes_filter
            ):
                continue
            logging.warning(
                f"Skipping malformed {kind.name} log at index {log_index}. "
                f"reason: {excp.message}"
            )
            if skipped is not None:
                skipped.append(
                    SkippedItem(
                        stage=SkipStage.EventLog,
                        reason=excp.message,
                        user_operation_hash=user_operation_hash,
                        event_kind=kind,
                        log_index=log_index,
                    )
                )
            continue

        if (
            user_operation_hashes_filter is not None and
            event.user_operation_hash not in user_operation_hashes_filter
        ):
            continue
        if (
            paymasters_filter is not None and
            isinstance(event, UserOperationEvent) and
            event.paymaster not in paymasters_filter
        ):
            continue
        events.append(event)

    if len(events) == 0:
        logging.info(f"No {kind.name} events matched the provided filter")

    return events


def decode_event_log(log: RawLog, kind: EventKind) -> EntryPointEvent:
    if len(log.topics) != EVENT_TOPICS_COUNT[kind]:
        raise DecodeException(
            DecodeExceptionCode.InvalidEventLog,
            f"{kind.name} log has {len(log.topics)} topics, "
            f"expected {EVENT_TOPICS_COUNT[kind]}",
        )
    if kind == EventKind.UserOperationEvent:
        return _decode_user_operation_event(log)
    elif kind == EventKind.UserOpProcessed:
        return _decode_user_op_processed_event(log)
    else:
        return _decode_post_op_revert_reason_event(log)


def parse_user_operation_events(
    logs: list[RawLog],
    filter_user_operation_hashes: Iterable[str] | None = None,
    filter_paymasters: Iterable[str] | None = None,
    skipped: list[SkippedItem] | None = None,
) -> list[UserOperationEvent]:
    return decode_event_logs(  # type: ignore
        logs,
        EventKind.UserOperationEvent,
        filter_user_operation_hashes,
        filter_paymasters,
        skipped,
    )


def parse_user_op_processed_events(
    logs: list[RawLog],
    filter_user_operation_hashes: Iterable[str] | None = None,
    skipped: list[SkippedItem] | None = None,
) -> list[UserOpProcessedEvent]:
    return decode_event_logs(  # type: ignore
        logs,
        EventKind.UserOpProcessed,
        filter_user_operation_hashes,
        None,
        skipped,
    )


def parse_post_op_revert_reason_events(
    logs: list[RawLog],
    filter_user_operation_hashes: Iterable[str] | None = None,
    skipped: list[SkippedItem] | None = None,
) -> list[PostOpRevertReasonEvent]:
    return decode_event_logs(  # type: ignore
        logs,
        EventKind.PostOpRevertReason,
        filter_user_operation_hashes,
        None,
        skipped,
    )


def _decode_user_operation_event(log: RawLog) -> UserOperationEvent:
    nonce, success, actual_gas_cost, actual_gas_used = _decode_log_data(
        USER_OPERATION_EVENT_DATA_ABI, log
    )
    return UserOperationEvent(
        user_operation_hash=UserOperationHash(decode_topic_hash(log.topics[1])),
        sender=decode_topic_address(log.topics[2]),
        paymaster=decode_topic_address(log.topics[3]),
        nonce=nonce,
        success=success,
        actual_gas_cost=actual_gas_cost,
        actual_gas_used=actual_gas_used,
    )


def _decode_user_op_processed_event(log: RawLog) -> UserOpProcessedEvent:
    (
        mode,
        actual_gas_cost,
        token,
        actual_token_cost,
        charge_from,
        charge_successful,
    ) = _decode_log_data(USER_OP_PROCESSED_DATA_ABI, log)
    return UserOpProcessedEvent(
        user_operation_hash=UserOperationHash(decode_topic_hash(log.topics[1])),
        user_operation_sender=decode_topic_address(log.topics[2]),
        signer_data_hash=decode_topic_hash(log.topics[3]),
        mode=to_paymaster_mode(mode),
        actual_gas_cost=actual_gas_cost,
        token=Address(to_checksum_address(token)),
        actual_token_cost=actual_token_cost,
        charge_from=Address(to_checksum_address(charge_from)),
        charge_successful=charge_successful,
    )


def _decode_post_op_revert_reason_event(log: RawLog) -> PostOpRevertReasonEvent:
    nonce, revert_reason = _decode_log_data(POST_OP_REVERT_REASON_DATA_ABI, log)
    return PostOpRevertReasonEvent(
        user_operation_hash=UserOperationHash(decode_topic_hash(log.topics[1])),
        sender=decode_topic_address(log.topics[2]),
        nonce=nonce,
        revert_reason=revert_reason,
    )


def _decode_log_data(data_abi: list[str], log: RawLog) -> tuple:
    try:
        return decode(data_abi, log.data)
    except (DecodingError, OverflowError, ValueError) as excp:
        raise DecodeException(
            DecodeExceptionCode.InvalidEventLog,
            f"Invalid log data: {str(excp)}",
        ) from excp


def _get_user_operation_hash_or_none(log: RawLog) -> UserOperationHash | None:
    if len(log.topics) < 2 or len(log.topics[1]) != 32:
        return None
    return UserOperationHash(decode_topic_hash(log.topics[1]))
