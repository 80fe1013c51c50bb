from dataclasses import dataclass
from enum import Enum


class DecodeExceptionCode(Enum):
    InvalidFieldRange = "invalid_field_range"
    InvalidHandleOpsInput = "invalid_handle_ops_input"
    InvalidPackedUserOperation = "invalid_packed_user_operation"
    InvalidEventLog = "invalid_event_log"
    InvalidRevertReason = "invalid_revert_reason"
    InvalidTransaction = "invalid_transaction"


@dataclass
class DecodeException(Exception):
    exception_code: DecodeExceptionCode
    message: str


class SinkExceptionCode(Enum):
    StorageAppendFailed = "storage_append_failed"


@dataclass
class SinkException(Exception):
    exception_code: SinkExceptionCode
    message: str
