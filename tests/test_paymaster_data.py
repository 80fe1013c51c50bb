import pytest
from eth_utils import to_checksum_address

from paymaster_monitor.user_operation.models import PaymasterMode
from paymaster_monitor.user_operation.paymaster_data import (
    PAYMASTER_AND_DATA_MIN_LENGTH, decode_paymaster_and_data)

from entrypoint_logs import paymaster_and_data

PAYMASTER = "0xbdd6eb5c9a89f21b559f65c6b2bbec265ce54c82"

# paymasterAndData of the first operation of the recorded handleOps transaction
RECORDED_PAYMASTER_AND_DATA = bytes.fromhex(
    "bdd6eb5c9a89f21b559f65c6b2bbec265ce54c82"
    "0000000000000000000000000007a120"
    "0000000000000000000000000007a120"
    "01"
    "00000000007b"
    "0000000001c8"
    "0000000000000000000000000000000000000000000000000e92596fd6290000"
)


def test_offset_table():
    assert PAYMASTER_AND_DATA_MIN_LENGTH == 97


def test_decode_recorded_paymaster_and_data():
    paymaster_data = decode_paymaster_and_data(RECORDED_PAYMASTER_AND_DATA)
    assert paymaster_data is not None
    assert paymaster_data.paymaster == to_checksum_address(PAYMASTER)
    assert paymaster_data.validation_gas_limit == 500_000
    assert paymaster_data.post_op_gas_limit == 500_000
    assert paymaster_data.mode == PaymasterMode.ChargeInPostOp
    assert paymaster_data.valid_after == 123
    assert paymaster_data.valid_until == 456
    assert paymaster_data.max_cost_allowed == 1_050_000_000_000_000_000


def test_decode_is_deterministic():
    assert (
        decode_paymaster_and_data(RECORDED_PAYMASTER_AND_DATA) ==
        decode_paymaster_and_data(RECORDED_PAYMASTER_AND_DATA)
    )


def test_trailing_bytes_are_ignored():
    paymaster_data = decode_paymaster_and_data(
        RECORDED_PAYMASTER_AND_DATA + bytes.fromhex("deadbeef"))
    assert paymaster_data == decode_paymaster_and_data(
        RECORDED_PAYMASTER_AND_DATA)


@pytest.mark.parametrize("length", [0, 20, 52, 96])
def test_short_blob_is_invalid(length):
    assert decode_paymaster_and_data(RECORDED_PAYMASTER_AND_DATA[:length]) is None


def test_sponsor_mode():
    paymaster_data = decode_paymaster_and_data(
        paymaster_and_data(PAYMASTER, mode=0))
    assert paymaster_data.mode == PaymasterMode.Sponsor


def test_unknown_mode_is_kept():
    paymaster_data = decode_paymaster_and_data(
        paymaster_and_data(PAYMASTER, mode=7))
    assert paymaster_data is not None
    assert paymaster_data.mode == 7
    assert not isinstance(paymaster_data.mode, PaymasterMode)


def test_field_boundaries():
    paymaster_data = decode_paymaster_and_data(
        paymaster_and_data(
            PAYMASTER,
            validation_gas_limit=2**128 - 1,
            post_op_gas_limit=1,
            valid_after=2**48 - 1,
            valid_until=2**48 - 2,
            max_cost_allowed=2**256 - 1,
        )
    )
    assert paymaster_data.validation_gas_limit == 2**128 - 1
    assert paymaster_data.post_op_gas_limit == 1
    assert paymaster_data.valid_after == 2**48 - 1
    assert paymaster_data.valid_until == 2**48 - 2
    assert paymaster_data.max_cost_allowed == 2**256 - 1


def test_paymaster_data_json_uses_hex_strings():
    paymaster_data = decode_paymaster_and_data(RECORDED_PAYMASTER_AND_DATA)
    assert paymaster_data.get_paymaster_data_json() == {
        "paymaster": to_checksum_address(PAYMASTER),
        "validationGasLimit": "0x7a120",
        "postOpGasLimit": "0x7a120",
        "mode": 1,
        "validAfter": "0x7b",
        "validUntil": "0x1c8",
        "maxCostAllowed": "0xe92596fd6290000",
    }
