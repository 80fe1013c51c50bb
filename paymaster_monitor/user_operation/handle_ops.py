from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from paymaster_monitor.monitor.exceptions import \
    DecodeException, DecodeExceptionCode
from paymaster_monitor.typing import Address
from .models import PackedUserOperation

HANDLE_OPS_SELECTOR = "0x765e827f"  # handleOps ep v0.7.0
PACKED_USER_OPERATION_ABI = (
    "(address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)"
)
PACKED_USER_OPERATION_FIELDS_COUNT = 9


def decode_handle_ops_calldata(
    call_input: bytes,
) -> tuple[list[PackedUserOperation], Address]:
    """
    Decodes the input of handleOps(PackedUserOperation[] ops,
    address beneficiary). The batch is all or nothing, a single malformed
    operation rejects the whole input.
    """
    selector = "0x" + call_input[:4].hex()
    if selector != HANDLE_OPS_SELECTOR:
        raise DecodeException(
            DecodeExceptionCode.InvalidHandleOpsInput,
            f"Unexpected function selector {selector}, expected handleOps",
        )
    try:
        ops_data, beneficiary = decode(
            [PACKED_USER_OPERATION_ABI + "[]", "address"],
            call_input[4:],
        )
    except (DecodingError, OverflowError, ValueError) as excp:
        raise DecodeException(
            DecodeExceptionCode.InvalidHandleOpsInput,
            f"Invalid handleOps input: {str(excp)}",
        ) from excp

    if not isinstance(ops_data, (list, tuple)):
        raise DecodeException(
            DecodeExceptionCode.InvalidHandleOpsInput,
            "Invalid ops data format",
        )

    user_operations = [
        decode_packed_user_operation(op_data) for op_data in ops_data
    ]
    return user_operations, Address(to_checksum_address(beneficiary))


def decode_packed_user_operation(op_data: Any) -> PackedUserOperation:
    if (
        not isinstance(op_data, (list, tuple)) or
        len(op_data) != PACKED_USER_OPERATION_FIELDS_COUNT
    ):
        raise DecodeException(
            DecodeExceptionCode.InvalidPackedUserOperation,
            "Invalid PackedUserOperation data format",
        )
    (
        sender,
        nonce,
        init_code,
        call_data,
        account_gas_limits,
        pre_verification_gas,
        gas_fees,
        paymaster_and_data,
        signature,
    ) = op_data
    try:
        return PackedUserOperation(
            sender=Address(to_checksum_address(sender)),
            nonce=int(nonce),
            init_code=bytes(init_code),
            call_data=bytes(call_data),
            account_gas_limits=bytes(account_gas_limits),
            pre_verification_gas=int(pre_verification_gas),
            gas_fees=bytes(gas_fees),
            paymaster_and_data=bytes(paymaster_and_data),
            signature=bytes(signature),
        )
    except (TypeError, ValueError) as excp:
        raise DecodeException(
            DecodeExceptionCode.InvalidPackedUserOperation,
            f"Invalid PackedUserOperation field: {str(excp)}",
        ) from excp
