from dataclasses import dataclass

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from paymaster_monitor.monitor.exceptions import \
    DecodeException, DecodeExceptionCode
from .models import DecodedFailureReason


@dataclass
class PostOpReverted:
    # error PostOpReverted(bytes returnData)
    SELECTOR = "0xad7954bc"
    return_data: bytes


@dataclass
class PaymasterError:
    selector: str
    name: str
    description: str


# paymaster postOp errors, selector = keccak256("<name>()")[:4]
KNOWN_PAYMASTER_ERRORS = {
    error.selector: error
    for error in [
        PaymasterError("0x58e450b1", "CanNotChargeFrom", "cannot charge from source"),
    ]
}


def decode_post_op_reverted(revert_reason: bytes) -> PostOpReverted:
    selector = "0x" + revert_reason[:4].hex()
    if selector != PostOpReverted.SELECTOR:
        raise DecodeException(
            DecodeExceptionCode.InvalidRevertReason,
            f"Unexpected revert reason selector {selector}, "
            f"expected PostOpReverted {PostOpReverted.SELECTOR}",
        )
    try:
        (return_data,) = decode(["bytes"], revert_reason[4:])
    except (DecodingError, OverflowError, ValueError) as excp:
        raise DecodeException(
            DecodeExceptionCode.InvalidRevertReason,
            f"Invalid PostOpReverted params: {str(excp)}",
        ) from excp
    return PostOpReverted(return_data)


def classify_return_data(return_data: bytes) -> DecodedFailureReason:
    selector = "0x" + return_data[:4].hex()
    if selector in KNOWN_PAYMASTER_ERRORS:
        paymaster_error = KNOWN_PAYMASTER_ERRORS[selector]
        return DecodedFailureReason(
            error=paymaster_error.name,
            description=paymaster_error.description,
            selector=selector,
            return_data="0x" + return_data.hex(),
        )
    return DecodedFailureReason(
        error=None,
        description=f"unknown error selector {selector}",
        selector=selector,
        return_data="0x" + return_data.hex(),
    )


def decode_post_op_revert_reason(revert_reason: bytes) -> DecodedFailureReason:
    """
    Unwraps the PostOpReverted(bytes) frame of a PostOpRevertReason event and
    classifies the inner return data by its first 4 bytes.
    Raises DecodeException if the outer frame can't be decoded.
    """
    post_op_reverted = decode_post_op_reverted(revert_reason)
    return classify_return_data(post_op_reverted.return_data)


def describe_failure_reason(reason: DecodedFailureReason) -> str:
    if reason.is_known:
        return f"{reason.error} ({reason.description})"
    return f"{reason.description}, returnData: {reason.return_data}"
