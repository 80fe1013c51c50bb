from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from paymaster_monitor.typing import \
    Address, TransactionHash, UserOperationHash


class PaymasterMode(IntEnum):
    Sponsor = 0
    ChargeInPostOp = 1


def to_paymaster_mode(value: int) -> PaymasterMode | int:
    # unknown modes are kept as the raw number
    try:
        return PaymasterMode(value)
    except ValueError:
        return value


class EventKind(Enum):
    # keccak256("UserOperationEvent(bytes32,address,address,uint256,bool,uint256,uint256)")
    UserOperationEvent = (
        "0x49628fd1471006c1482da88028e9ce4dbb080b815c9b0344d39e5a8e6ec1419f"
    )
    # keccak256("UserOpProcessed(bytes32,address,bytes32,uint8,uint256,address,uint256,address,bool)")
    UserOpProcessed = (
        "0x4a7d89094dad8258a8c7f96c6cad9b077fe57305ac3e2da96478295d1b48c7d9"
    )
    # keccak256("PostOpRevertReason(bytes32,address,uint256,bytes)")
    PostOpRevertReason = (
        "0xf62676f440ff169a3a9afdbf812e89e7f95975ee8e5c31214ffdef631c5f4792"
    )

    @property
    def topic(self) -> bytes:
        return bytes.fromhex(self.value[2:])


class OutcomeBucket(Enum):
    ChargeInPostOpSuccess = "ChargeInPostOpSuccess"
    ChargeInPostOpFail = "ChargeInPostOpFail"
    PostOpRevertReason = "PostOpRevertReason"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class RawLog:
    address: Address
    topics: tuple[bytes, ...]
    data: bytes


@dataclass
class TransactionEvent:
    transaction_hash: TransactionHash | None
    input: bytes
    logs: list[RawLog]
    network: str | None = None
    block_number: int | None = None
    to: Address | None = None


@dataclass
class PackedUserOperation:
    sender: Address
    nonce: int
    init_code: bytes
    call_data: bytes
    account_gas_limits: bytes
    pre_verification_gas: int
    gas_fees: bytes
    paymaster_and_data: bytes
    signature: bytes

    @property
    def verification_gas_limit(self) -> int:
        return int.from_bytes(self.account_gas_limits[:16], "big")

    @property
    def call_gas_limit(self) -> int:
        return int.from_bytes(self.account_gas_limits[16:], "big")

    @property
    def max_priority_fee_per_gas(self) -> int:
        return int.from_bytes(self.gas_fees[:16], "big")

    @property
    def max_fee_per_gas(self) -> int:
        return int.from_bytes(self.gas_fees[16:], "big")

    def get_packed_user_operation_json(self) -> dict[str, str]:
        return {
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "initCode": "0x" + self.init_code.hex(),
            "callData": "0x" + self.call_data.hex(),
            "accountGasLimits": "0x" + self.account_gas_limits.hex(),
            "preVerificationGas": hex(self.pre_verification_gas),
            "gasFees": "0x" + self.gas_fees.hex(),
            "paymasterAndData": "0x" + self.paymaster_and_data.hex(),
            "signature": "0x" + self.signature.hex(),
        }


@dataclass
class PaymasterData:
    paymaster: Address
    validation_gas_limit: int
    post_op_gas_limit: int
    mode: PaymasterMode | int
    valid_after: int
    valid_until: int
    max_cost_allowed: int

    def get_paymaster_data_json(self) -> dict[str, str | int]:
        return {
            "paymaster": self.paymaster,
            "validationGasLimit": hex(self.validation_gas_limit),
            "postOpGasLimit": hex(self.post_op_gas_limit),
            "mode": int(self.mode),
            "validAfter": hex(self.valid_after),
            "validUntil": hex(self.valid_until),
            "maxCostAllowed": hex(self.max_cost_allowed),
        }


@dataclass
class UserOperationEvent:
    user_operation_hash: UserOperationHash
    sender: Address
    paymaster: Address
    nonce: int
    success: bool
    actual_gas_cost: int
    actual_gas_used: int

    def get_event_json(self) -> dict[str, str | bool]:
        return {
            "userOpHash": self.user_operation_hash,
            "sender": self.sender,
            "paymaster": self.paymaster,
            "nonce": hex(self.nonce),
            "success": self.success,
            "actualGasCost": hex(self.actual_gas_cost),
            "actualGasUsed": hex(self.actual_gas_used),
        }


@dataclass
class UserOpProcessedEvent:
    user_operation_hash: UserOperationHash
    user_operation_sender: Address
    signer_data_hash: str
    mode: PaymasterMode | int
    actual_gas_cost: int
    token: Address
    actual_token_cost: int
    charge_from: Address
    charge_successful: bool

    def get_event_json(self) -> dict[str, str | int | bool]:
        return {
            "userOpHash": self.user_operation_hash,
            "userOpSender": self.user_operation_sender,
            "signerDataHash": self.signer_data_hash,
            "mode": int(self.mode),
            "actualGasCost": hex(self.actual_gas_cost),
            "token": self.token,
            "actualTokenCost": hex(self.actual_token_cost),
            "chargeFrom": self.charge_from,
            "chargeSuccessful": self.charge_successful,
        }


@dataclass
class PostOpRevertReasonEvent:
    user_operation_hash: UserOperationHash
    sender: Address
    nonce: int
    revert_reason: bytes

    def get_event_json(self) -> dict[str, str]:
        return {
            "userOpHash": self.user_operation_hash,
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "revertReason": "0x" + self.revert_reason.hex(),
        }


EntryPointEvent = (
    UserOperationEvent | UserOpProcessedEvent | PostOpRevertReasonEvent
)


@dataclass
class DecodedFailureReason:
    error: str | None
    description: str
    selector: str
    return_data: str

    @property
    def is_known(self) -> bool:
        return self.error is not None

    def get_reason_json(self) -> dict[str, str | None]:
        return {
            "error": self.error,
            "description": self.description,
            "selector": self.selector,
            "returnData": self.return_data,
        }


@dataclass
class OutcomeRecord:
    bucket: OutcomeBucket
    transaction_hash: TransactionHash
    user_operation_hash: UserOperationHash
    record: dict[str, Any] = field(default_factory=dict)
    notification: str | None = None
