import logging

from paymaster_monitor.monitor.exceptions import DecodeException
from paymaster_monitor.utils.decode import decode_address, decode_uint
from .models import PaymasterData, to_paymaster_mode

# paymasterAndData layout
PAYMASTER_VALIDATION_GAS_OFFSET = 20  # paymaster address [0:20]
PAYMASTER_POSTOP_GAS_OFFSET = 36  # validationGasLimit [20:36]
PAYMASTER_DATA_OFFSET = 52  # postOpGasLimit [36:52]
PAYMASTER_MODE_OFFSET = PAYMASTER_DATA_OFFSET  # mode [52]
PAYMASTER_VALID_AFTER_OFFSET = PAYMASTER_MODE_OFFSET + 1  # validAfter [53:59]
PAYMASTER_VALID_UNTIL_OFFSET = PAYMASTER_VALID_AFTER_OFFSET + 6  # validUntil [59:65]
PAYMASTER_MAX_COST_ALLOWED_OFFSET = PAYMASTER_VALID_UNTIL_OFFSET + 6  # maxCostAllowed [65:97]
PAYMASTER_AND_DATA_MIN_LENGTH = PAYMASTER_MAX_COST_ALLOWED_OFFSET + 32


def decode_paymaster_and_data(paymaster_and_data: bytes) -> PaymasterData | None:
    if len(paymaster_and_data) < PAYMASTER_AND_DATA_MIN_LENGTH:
        logging.warning(
            f"Invalid paymasterAndData length: {len(paymaster_and_data)}"
        )
        return None

    try:
        return PaymasterData(
            paymaster=decode_address(paymaster_and_data, 0),
            validation_gas_limit=decode_uint(
                paymaster_and_data,
                PAYMASTER_VALIDATION_GAS_OFFSET,
                PAYMASTER_POSTOP_GAS_OFFSET - PAYMASTER_VALIDATION_GAS_OFFSET,
            ),
            post_op_gas_limit=decode_uint(
                paymaster_and_data,
                PAYMASTER_POSTOP_GAS_OFFSET,
                PAYMASTER_DATA_OFFSET - PAYMASTER_POSTOP_GAS_OFFSET,
            ),
            mode=to_paymaster_mode(
                decode_uint(paymaster_and_data, PAYMASTER_MODE_OFFSET, 1)
            ),
            valid_after=decode_uint(
                paymaster_and_data, PAYMASTER_VALID_AFTER_OFFSET, 6
            ),
            valid_until=decode_uint(
                paymaster_and_data, PAYMASTER_VALID_UNTIL_OFFSET, 6
            ),
            max_cost_allowed=decode_uint(
                paymaster_and_data, PAYMASTER_MAX_COST_ALLOWED_OFFSET, 32
            ),
        )
    except DecodeException as excp:
        logging.warning(f"Failed to decode paymasterAndData: {excp.message}")
        return None
