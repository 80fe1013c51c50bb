import logging
from typing import Iterable

from paymaster_monitor.metrics.metrics import \
    OUTCOME_RECORDS, SINK_FAILURES, SKIPPED_ITEMS
from paymaster_monitor.typing import Address, TransactionHash, UserOperationHash
from paymaster_monitor.user_operation.event_logs import (
    parse_post_op_revert_reason_events, parse_user_op_processed_events,
    parse_user_operation_events)
from paymaster_monitor.user_operation.handle_ops import \
    HANDLE_OPS_SELECTOR, decode_handle_ops_calldata
from paymaster_monitor.user_operation.models import (
    DecodedFailureReason, EventKind, OutcomeBucket, OutcomeRecord,
    PaymasterData, PaymasterMode, PostOpRevertReasonEvent, TransactionEvent,
    UserOperationEvent, UserOpProcessedEvent)
from paymaster_monitor.user_operation.paymaster_data import \
    decode_paymaster_and_data
from paymaster_monitor.user_operation.revert_reason import (
    decode_post_op_revert_reason, describe_failure_reason)
from paymaster_monitor.utils.address import normalize_address
from .exceptions import DecodeException, SinkException
from .notifier import NotificationStatus, Notifier
from .report import (ItemResult, ItemStatus, MonitorReport, SinkFailure,
                     SkippedItem, SkipStage)
from .storage import Storage


class Correlator:
    """
    Joins the UserOperationEvent, UserOpProcessed and PostOpRevertReason logs
    of one handleOps transaction by userOpHash, for the user operations
    sponsored by the monitored paymasters, and hands one outcome record per
    classified event to the storage and the notifier.
    """
    monitored_paymasters: set[Address]
    storage: Storage
    notifier: Notifier

    def __init__(
        self,
        monitored_paymasters: Iterable[str],
        storage: Storage,
        notifier: Notifier,
    ) -> None:
        self.monitored_paymasters = set()
        for paymaster in monitored_paymasters:
            try:
                self.monitored_paymasters.add(normalize_address(paymaster))
            except ValueError:
                logging.warning(
                    f"Ignoring invalid monitored paymaster address {paymaster}")
        self.storage = storage
        self.notifier = notifier

    async def process_transaction(
        self, transaction: TransactionEvent
    ) -> MonitorReport:
        transaction_hash = transaction.transaction_hash
        report = MonitorReport(transaction_hash)
        if transaction_hash is None:
            logging.debug("Transaction has no hash, nothing to process.")
            return report

        if len(self.monitored_paymasters) == 0:
            logging.error("Cannot get monitored paymaster address")
            return report

        user_operation_events = parse_user_operation_events(
            transaction.logs,
            filter_paymasters=self.monitored_paymasters,
            skipped=report.skipped,
        )
        if len(user_operation_events) == 0:
            self._count_skipped(report)
            return report

        user_operation_events_by_hash: dict[
            UserOperationHash, UserOperationEvent] = {}
        for user_operation_event in user_operation_events:
            if user_operation_event.user_operation_hash in user_operation_events_by_hash:
                logging.warning(
                    "Duplicate UserOperationEvent for userOpHash "
                    f"{user_operation_event.user_operation_hash}"
                )
                continue
            user_operation_events_by_hash[
                user_operation_event.user_operation_hash] = user_operation_event
        report.user_operation_hashes = list(user_operation_events_by_hash)

        try:
            paymaster_data_by_operation = self.decode_paymaster_data(
                transaction.input, report)
        except DecodeException as excp:
            logging.error(
                f"Dropping transaction {transaction_hash}, "
                f"invalid handleOps input. reason: {excp.message}"
            )
            report.aborted = excp.message
            self._count_skipped(report)
            return report

        user_op_processed_events = parse_user_op_processed_events(
            transaction.logs,
            filter_user_operation_hashes=report.user_operation_hashes,
            skipped=report.skipped,
        )
        for user_op_processed_event in user_op_processed_events:
            user_operation_event = user_operation_events_by_hash[
                user_op_processed_event.user_operation_hash]
            await self.handle_user_op_processed_event(
                transaction_hash,
                user_op_processed_event,
                user_operation_event,
                paymaster_data_by_operation.get(
                    (user_operation_event.sender, user_operation_event.nonce)),
                report,
            )

        post_op_revert_reason_events = parse_post_op_revert_reason_events(
            transaction.logs,
            filter_user_operation_hashes=report.user_operation_hashes,
            skipped=report.skipped,
        )
        for post_op_revert_reason_event in post_op_revert_reason_events:
            user_operation_event = user_operation_events_by_hash[
                post_op_revert_reason_event.user_operation_hash]
            await self.handle_post_op_revert_reason_event(
                transaction_hash,
                post_op_revert_reason_event,
                user_operation_event,
                paymaster_data_by_operation.get(
                    (user_operation_event.sender, user_operation_event.nonce)),
                report,
            )

        self._count_skipped(report)
        logging.info(
            f"Transaction {transaction_hash} processed. "
            f"records: {len(report.records)}, skipped: {len(report.skipped)}, "
            f"sink failures: {len(report.sink_failures)}"
        )
        return report

    def decode_paymaster_data(
        self, call_input: bytes, report: MonitorReport
    ) -> dict[tuple[Address, int], PaymasterData]:
        """
        Decodes the paymasterAndData of every monitored paymaster operation
        in the handleOps input, keyed by (sender, nonce).
        A malformed handleOps input raises, a malformed paymasterAndData
        only skips that operation. An input that isn't a handleOps call
        (e.g. a bundler calling through a wrapper contract) has nothing to
        decode and returns no paymaster data.
        """
        selector = "0x" + call_input[:4].hex()
        if selector != HANDLE_OPS_SELECTOR:
            logging.warning(
                f"Transaction input selector {selector} is not handleOps, "
                "records are emitted without paymasterData"
            )
            return {}

        user_operations, beneficiary = decode_handle_ops_calldata(call_input)
        logging.debug(
            f"handleOps with {len(user_operations)} user operations, "
            f"beneficiary: {beneficiary}"
        )

        paymaster_data_by_operation = {}
        for user_operation in user_operations:
            paymaster_and_data = user_operation.paymaster_and_data
            if len(paymaster_and_data) < 20:
                continue
            if normalize_address(
                "0x" + paymaster_and_data[:20].hex()
            ) not in self.monitored_paymasters:
                continue

            paymaster_data = decode_paymaster_and_data(paymaster_and_data)
            if paymaster_data is None:
                report.skipped.append(
                    SkippedItem(
                        stage=SkipStage.PaymasterData,
                        reason=(
                            "Invalid paymasterAndData for sender "
                            f"{user_operation.sender} "
                            f"nonce {hex(user_operation.nonce)}"
                        ),
                    )
                )
                continue
            paymaster_data_by_operation[
                (user_operation.sender, user_operation.nonce)
            ] = paymaster_data
        return paymaster_data_by_operation

    async def handle_user_op_processed_event(
        self,
        transaction_hash: TransactionHash,
        user_op_processed_event: UserOpProcessedEvent,
        user_operation_event: UserOperationEvent,
        paymaster_data: PaymasterData | None,
        report: MonitorReport,
    ) -> None:
        user_operation_hash = user_op_processed_event.user_operation_hash
        if user_op_processed_event.mode != PaymasterMode.ChargeInPostOp:
            # sponsored operations have nothing to charge
            report.results.append(
                ItemResult(
                    user_operation_hash=user_operation_hash,
                    event_kind=EventKind.UserOpProcessed,
                    status=ItemStatus.Ignored,
                    reason=f"mode {int(user_op_processed_event.mode)}",
                )
            )
            return

        record = user_op_processed_event.get_event_json()
        record["transactionHash"] = transaction_hash
        record["paymaster"] = user_operation_event.paymaster
        if paymaster_data is not None:
            record["paymasterData"] = paymaster_data.get_paymaster_data_json()

        if user_op_processed_event.charge_successful:
            outcome_record = OutcomeRecord(
                bucket=OutcomeBucket.ChargeInPostOpSuccess,
                transaction_hash=transaction_hash,
                user_operation_hash=user_operation_hash,
                record=record,
            )
        else:
            outcome_record = OutcomeRecord(
                bucket=OutcomeBucket.ChargeInPostOpFail,
                transaction_hash=transaction_hash,
                user_operation_hash=user_operation_hash,
                record=record,
                notification=compose_charge_failed_notification(
                    transaction_hash,
                    user_op_processed_event,
                    user_operation_event.paymaster,
                ),
            )
        report.results.append(
            ItemResult(
                user_operation_hash=user_operation_hash,
                event_kind=EventKind.UserOpProcessed,
                status=ItemStatus.Emitted,
                bucket=outcome_record.bucket,
            )
        )
        await self.emit(outcome_record, report)

    async def handle_post_op_revert_reason_event(
        self,
        transaction_hash: TransactionHash,
        post_op_revert_reason_event: PostOpRevertReasonEvent,
        user_operation_event: UserOperationEvent,
        paymaster_data: PaymasterData | None,
        report: MonitorReport,
    ) -> None:
        user_operation_hash = post_op_revert_reason_event.user_operation_hash
        try:
            reason = decode_post_op_revert_reason(
                post_op_revert_reason_event.revert_reason)
        except DecodeException as excp:
            logging.warning(
                f"Skipping PostOpRevertReason of userOpHash {user_operation_hash}. "
                f"reason: {excp.message}"
            )
            report.skipped.append(
                SkippedItem(
                    stage=SkipStage.RevertReason,
                    reason=excp.message,
                    user_operation_hash=user_operation_hash,
                    event_kind=EventKind.PostOpRevertReason,
                )
            )
            report.results.append(
                ItemResult(
                    user_operation_hash=user_operation_hash,
                    event_kind=EventKind.PostOpRevertReason,
                    status=ItemStatus.Skipped,
                    reason=excp.message,
                )
            )
            return

        record = post_op_revert_reason_event.get_event_json()
        record["rawRevertReason"] = record["revertReason"]
        record["revertReason"] = reason.get_reason_json()
        record["transactionHash"] = transaction_hash
        record["paymaster"] = user_operation_event.paymaster
        if paymaster_data is not None:
            record["paymasterData"] = paymaster_data.get_paymaster_data_json()

        outcome_record = OutcomeRecord(
            bucket=OutcomeBucket.PostOpRevertReason,
            transaction_hash=transaction_hash,
            user_operation_hash=user_operation_hash,
            record=record,
            notification=compose_post_op_revert_reason_notification(
                transaction_hash,
                post_op_revert_reason_event,
                user_operation_event.paymaster,
                reason,
            ),
        )
        report.results.append(
            ItemResult(
                user_operation_hash=user_operation_hash,
                event_kind=EventKind.PostOpRevertReason,
                status=ItemStatus.Emitted,
                bucket=outcome_record.bucket,
                reason=reason.error,
            )
        )
        await self.emit(outcome_record, report)

    async def emit(
        self, outcome_record: OutcomeRecord, report: MonitorReport
    ) -> None:
        report.records.append(outcome_record)
        OUTCOME_RECORDS.labels(bucket=str(outcome_record.bucket)).inc()

        try:
            await self.storage.append(
                outcome_record.bucket, outcome_record.record)
        except SinkException as excp:
            logging.error(
                f"Failed to store {outcome_record.bucket} record of "
                f"userOpHash {outcome_record.user_operation_hash}. "
                f"reason: {excp.message}"
            )
            self._add_sink_failure(
                report, "storage", outcome_record, excp.message)
        except Exception as excp:
            logging.exception(
                f"Failed to store {outcome_record.bucket} record of "
                f"userOpHash {outcome_record.user_operation_hash}"
            )
            self._add_sink_failure(
                report, "storage", outcome_record, str(excp))

        if outcome_record.notification is None:
            return
        try:
            status = await self.notifier.notify(outcome_record.notification)
        except Exception as excp:
            logging.exception(
                "Failed to send notification of userOpHash "
                f"{outcome_record.user_operation_hash}"
            )
            self._add_sink_failure(
                report, "notifier", outcome_record, str(excp))
            return
        if status == NotificationStatus.Failed:
            self._add_sink_failure(
                report, "notifier", outcome_record, "webhook delivery failed")

    @staticmethod
    def _add_sink_failure(
        report: MonitorReport,
        sink: str,
        outcome_record: OutcomeRecord,
        message: str,
    ) -> None:
        SINK_FAILURES.labels(sink=sink).inc()
        report.sink_failures.append(
            SinkFailure(
                sink=sink,
                user_operation_hash=outcome_record.user_operation_hash,
                message=message,
                bucket=outcome_record.bucket,
            )
        )

    @staticmethod
    def _count_skipped(report: MonitorReport) -> None:
        for skipped_item in report.skipped:
            SKIPPED_ITEMS.labels(stage=str(skipped_item.stage)).inc()


def compose_charge_failed_notification(
    transaction_hash: TransactionHash,
    user_op_processed_event: UserOpProcessedEvent,
    paymaster: Address,
) -> str:
    return "\n".join([
        "ChargeInPostOp failed",
        f"transaction: {transaction_hash}",
        f"userOpHash: {user_op_processed_event.user_operation_hash}",
        f"sender: {user_op_processed_event.user_operation_sender}",
        f"paymaster: {paymaster}",
        f"chargeFrom: {user_op_processed_event.charge_from}",
        f"token: {user_op_processed_event.token}",
        f"actualTokenCost: {hex(user_op_processed_event.actual_token_cost)}",
    ])


def compose_post_op_revert_reason_notification(
    transaction_hash: TransactionHash,
    post_op_revert_reason_event: PostOpRevertReasonEvent,
    paymaster: Address,
    reason: DecodedFailureReason,
) -> str:
    return "\n".join([
        "PostOp reverted",
        f"transaction: {transaction_hash}",
        f"userOpHash: {post_op_revert_reason_event.user_operation_hash}",
        f"sender: {post_op_revert_reason_event.sender}",
        f"paymaster: {paymaster}",
        f"reason: {describe_failure_reason(reason)}",
    ])
