import pytest
from eth_utils import to_checksum_address

from paymaster_monitor.monitor.exceptions import \
    DecodeException, DecodeExceptionCode
from paymaster_monitor.user_operation.handle_ops import (
    decode_handle_ops_calldata, decode_packed_user_operation)

from entrypoint_logs import (BENEFICIARY, handle_ops_input,
                             packed_user_operation, paymaster_and_data)

SENDER = "0x934aa3a6997c3fa870c1a3d8e76bc49bf24c01de"
PAYMASTER = "0xbdd6eb5c9a89f21b559f65c6b2bbec265ce54c82"


def test_decode_recorded_handle_ops_input(handle_ops_transaction):
    """
    The recorded transaction batches three sponsored operations.
    """
    user_operations, beneficiary = decode_handle_ops_calldata(
        handle_ops_transaction.input)

    assert len(user_operations) == 3
    assert beneficiary == to_checksum_address(beneficiary)
    paymasters = [
        to_checksum_address(user_operation.paymaster_and_data[:20])
        for user_operation in user_operations
    ]
    assert paymasters == [
        to_checksum_address("0xbdd6eb5c9a89f21b559f65c6b2bbec265ce54c82"),
        to_checksum_address("0x44d6f8362c144a1217f24a11be35f2c418b6cb20"),
        to_checksum_address("0x4779c973b060c9cc1592b404cad9cb5afb0d4b52"),
    ]
    assert all(
        len(user_operation.paymaster_and_data) >= 97
        for user_operation in user_operations
    )


def test_decode_handle_ops_input():
    call_input = handle_ops_input([
        packed_user_operation(SENDER, 5, paymaster_and_data(PAYMASTER)),
        packed_user_operation(SENDER, 6),
    ])

    user_operations, beneficiary = decode_handle_ops_calldata(call_input)

    assert beneficiary == to_checksum_address(BENEFICIARY)
    assert [user_operation.nonce for user_operation in user_operations] == [5, 6]
    first = user_operations[0]
    assert first.sender == to_checksum_address(SENDER)
    assert first.paymaster_and_data == paymaster_and_data(PAYMASTER)
    assert first.verification_gas_limit == 1_000_000
    assert first.call_gas_limit == 1_500_000
    assert first.max_priority_fee_per_gas == 1
    assert first.max_fee_per_gas == 1
    assert user_operations[1].paymaster_and_data == b""


def test_decode_empty_batch():
    user_operations, _ = decode_handle_ops_calldata(handle_ops_input([]))
    assert user_operations == []


def test_packed_user_operation_json():
    user_operations, _ = decode_handle_ops_calldata(
        handle_ops_input([packed_user_operation(SENDER, 1)]))
    user_operation_json = user_operations[0].get_packed_user_operation_json()
    assert user_operation_json["sender"] == to_checksum_address(SENDER)
    assert user_operation_json["nonce"] == "0x1"
    assert user_operation_json["paymasterAndData"] == "0x"
    assert user_operation_json["preVerificationGas"] == "0x0"


def test_wrong_selector():
    call_input = handle_ops_input([packed_user_operation(SENDER, 1)])
    with pytest.raises(DecodeException) as excinfo:
        decode_handle_ops_calldata(bytes.fromhex("1fad948c") + call_input[4:])
    assert excinfo.value.exception_code == DecodeExceptionCode.InvalidHandleOpsInput


@pytest.mark.parametrize(
    "call_input",
    [
        b"",
        bytes.fromhex("765e827f"),
        bytes.fromhex("765e827f") + bytes.fromhex("0102"),
        bytes.fromhex("765e827f") + bytes(31) + b"\xff",
    ],
)
def test_malformed_input(call_input):
    with pytest.raises(DecodeException) as excinfo:
        decode_handle_ops_calldata(call_input)
    assert excinfo.value.exception_code == DecodeExceptionCode.InvalidHandleOpsInput


def test_packed_user_operation_wrong_arity():
    with pytest.raises(DecodeException) as excinfo:
        decode_packed_user_operation((SENDER, 1, b"", b""))
    assert (
        excinfo.value.exception_code ==
        DecodeExceptionCode.InvalidPackedUserOperation
    )


def test_huge_bytes_length():
    call_input = bytearray(handle_ops_input([packed_user_operation(SENDER, 1)]))
    # initCode length word of the only operation: ops offset, beneficiary,
    # array length, element offset, then the 9 head words of the tuple
    init_code_length_offset = 4 + 0x80 + 9 * 32
    assert call_input[init_code_length_offset:init_code_length_offset + 32] == bytes(32)
    call_input[init_code_length_offset:init_code_length_offset + 32] = (
        (2**255).to_bytes(32, "big"))

    with pytest.raises(DecodeException) as excinfo:
        decode_handle_ops_calldata(bytes(call_input))
    assert excinfo.value.exception_code == DecodeExceptionCode.InvalidHandleOpsInput
