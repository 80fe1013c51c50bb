import json
import logging
import sys

import uvloop

from paymaster_monitor.metrics.metrics import run_metrics_server
from paymaster_monitor.monitor.correlator import Correlator
from paymaster_monitor.monitor.exceptions import DecodeException
from paymaster_monitor.monitor.notifier import DiscordWebhookNotifier
from paymaster_monitor.monitor.report import MonitorReport
from paymaster_monitor.monitor.storage import JsonFileStorage
from paymaster_monitor.user_operation.models import TransactionEvent
from paymaster_monitor.user_operation.transaction import \
    parse_transaction_event

from .cli_manager import parse_args


def load_transaction(transaction_file: str) -> TransactionEvent:
    if transaction_file == "-":
        transaction_json = json.load(sys.stdin)
    else:
        with open(transaction_file) as file:
            transaction_json = json.load(file)
    return parse_transaction_event(transaction_json)


async def main(cmd_args=sys.argv[1:]) -> MonitorReport:
    init_data = parse_args(cmd_args)

    if init_data.is_metrics:
        run_metrics_server(
            host=init_data.metrics_host,
            port=init_data.metrics_port,
        )

    try:
        transaction = load_transaction(init_data.transaction_file)
    except OSError as excp:
        logging.critical(
            f"Can't read transaction file {init_data.transaction_file}: "
            f"{str(excp)}"
        )
        sys.exit(1)
    except json.decoder.JSONDecodeError:
        logging.critical(
            f"Invalid json in transaction file {init_data.transaction_file}")
        sys.exit(1)
    except DecodeException as excp:
        logging.critical(f"Invalid transaction payload: {excp.message}")
        sys.exit(1)

    correlator = Correlator(
        init_data.monitored_paymasters,
        JsonFileStorage(init_data.storage_dir),
        DiscordWebhookNotifier(
            init_data.discord_webhook_url,
            init_data.notification_retry_attempts,
        ),
    )
    report = await correlator.process_transaction(transaction)
    if report.is_aborted:
        logging.error(f"Transaction processing aborted: {report.aborted}")
    return report


def run() -> None:
    uvloop.run(main())
