import os
import logging
import re
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version

from .typing import Address
from .utils.address import normalize_address

MONITOR_HEADER = "\n".join(
    (
        r"    ____                                   __               ",
        r"   / __ \____ ___  ______ ___  ____ ______/ /____  _____    ",
        r"  / /_/ / __ `/ / / / __ `__ \/ __ `/ ___/ __/ _ \/ ___/    ",
        r" / ____/ /_/ / /_/ / / / / / / /_/ (__  ) /_/  __/ /        ",
        r"/_/    \__,_/\__, /_/ /_/ /_/\__,_/____/\__/\___/_/  monitor",
        r"            /____/                                          ",
    )
)

try:
    __version__ = version("paymaster_monitor")
except PackageNotFoundError:
    __version__ = "unknown"


@dataclass()
class InitData:
    transaction_file: str
    monitored_paymasters: list[Address]
    discord_webhook_url: str | None
    storage_dir: str
    notification_retry_attempts: int
    is_metrics: bool
    metrics_host: str
    metrics_port: int
    client_version: str


def address(value: str):
    address_pattern = "^0x[0-9,a-f,A-F]{40}$"
    if not isinstance(value, str) or re.match(address_pattern, value) is None:
        raise ArgumentTypeError(f"Wrong address format : {value}")
    return value


def unsigned_int(value):
    ivalue = int(value)
    if ivalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid unsigned int value" % value)
    return ivalue


def bool_value(value: str) -> bool:
    return value.lower() == "true"


def positive_int(value):
    ivalue = int(value)
    if ivalue < 1:
        raise ArgumentTypeError(
                "%s is an invalid positive int value" % value)
    return ivalue


def _get_env_or_default(env_var, default, value_type):
    """
    Helper function to get the value from an environment variable or return the default value.
    Supports single values or lists (for nargs="+" arguments).
    """
    value = os.getenv(env_var, None)
    if value is not None:
        if value_type == list:
            return [item.strip() for item in value.split(",") if item.strip()]
        return value_type(value)
    return default


def initialize_argument_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="paymaster-monitor",
        description=(
            "Off-chain paymaster monitor - classifies the postOp charge of "
            "the user operations of a handleOps transaction"
        ),
    )

    parser.add_argument(
        "--transaction_file",
        type=str,
        help=(
            "Path of the json transaction payload to process "
            "(hash, input, logs) - use - to read from stdin"
        ),
        nargs="?",
        default=_get_env_or_default(
            "PAYMASTER_MONITOR_TRANSACTION_FILE", None, str),
    )

    parser.add_argument(
        "--monitored_paymasters",
        type=address,
        help="Paymaster addresses to monitor",
        nargs="*",
        default=_get_env_or_default(
            "PAYMASTER_MONITOR_MONITORED_PAYMASTERS", [], list),
    )

    parser.add_argument(
        "--discord_webhook_url",
        type=str,
        help="Discord webhook url for failure notifications",
        nargs="?",
        default=_get_env_or_default(
            "DISCORD_PAYMASTER_CHANNEL_WEBHOOK", None, str),
    )

    parser.add_argument(
        "--storage_dir",
        type=str,
        help="Directory of the outcome buckets - defaults to storage",
        nargs="?",
        const="storage",
        default=_get_env_or_default(
            "PAYMASTER_MONITOR_STORAGE_DIR", "storage", str),
    )

    parser.add_argument(
        "--notification_retry_attempts",
        type=positive_int,
        help="Number of attempts to deliver a notification - defaults to 1",
        nargs="?",
        const=1,
        default=_get_env_or_default(
            "PAYMASTER_MONITOR_NOTIFICATION_RETRY_ATTEMPTS", 1, positive_int),
    )

    parser.add_argument(
        "--metrics",
        type=bool_value,
        help="Expose prometheus metrics",
        nargs="?",
        const=True,
        default=_get_env_or_default(
            "PAYMASTER_MONITOR_METRICS", False, bool_value),
    )

    parser.add_argument(
        "--metrics_host",
        type=str,
        help="Metrics server host - defaults to localhost",
        nargs="?",
        const="localhost",
        default=_get_env_or_default(
            "PAYMASTER_MONITOR_METRICS_HOST", "localhost", str),
    )

    parser.add_argument(
        "--metrics_port",
        type=unsigned_int,
        help="Metrics server port - defaults to 8000",
        nargs="?",
        const=8000,
        default=_get_env_or_default(
            "PAYMASTER_MONITOR_METRICS_PORT", 8000, unsigned_int),
    )

    parser.add_argument(
        "--verbose",
        help="show debug log",
        nargs="?",
        const=True,
        default=False,
    )

    return parser


def parse_args(cmd_args: list[str]) -> InitData:
    argument_parser: ArgumentParser = initialize_argument_parser()
    args = argument_parser.parse_args(cmd_args)
    if not args.transaction_file:
        argument_parser.error(
            "You must specify --transaction_file or set the "
            "PAYMASTER_MONITOR_TRANSACTION_FILE environment variable."
        )
    # values coming from the environment skip the argparse type check
    try:
        args.monitored_paymasters = [
            address(paymaster) for paymaster in args.monitored_paymasters
        ]
    except ArgumentTypeError as excp:
        argument_parser.error(str(excp))
    return get_init_data(args)


def init_logging(args: Namespace):
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%b %d %H:%M:%S",
    )

    logging.getLogger("PaymasterMonitor")


def get_init_data(args: Namespace) -> InitData:
    init_logging(args)

    monitored_paymasters = []
    for paymaster in args.monitored_paymasters:
        normalized_paymaster = normalize_address(paymaster)
        if normalized_paymaster not in monitored_paymasters:
            monitored_paymasters.append(normalized_paymaster)
    if len(monitored_paymasters) == 0:
        logging.warning(
            "No monitored paymaster configured, transactions will be ignored.")

    if not args.discord_webhook_url:
        logging.warning(
            "No discord webhook url configured, notifications are disabled.")

    ret = InitData(
        args.transaction_file,
        monitored_paymasters,
        args.discord_webhook_url,
        args.storage_dir,
        args.notification_retry_attempts,
        args.metrics,
        args.metrics_host,
        args.metrics_port,
        __version__,
    )

    if args.verbose:
        print(MONITOR_HEADER)
        print("version : " + __version__)

    logging.info("Starting *** Paymaster Monitor ***")

    return ret
