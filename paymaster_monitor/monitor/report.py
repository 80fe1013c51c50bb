from dataclasses import dataclass, field
from enum import Enum

from paymaster_monitor.typing import TransactionHash, UserOperationHash
from paymaster_monitor.user_operation.models import \
    EventKind, OutcomeBucket, OutcomeRecord


class ItemStatus(Enum):
    Emitted = "emitted"
    Ignored = "ignored"
    Skipped = "skipped"


class SkipStage(Enum):
    EventLog = "event_log"
    PaymasterData = "paymaster_data"
    RevertReason = "revert_reason"

    def __str__(self):
        return self.value


@dataclass
class SkippedItem:
    stage: SkipStage
    reason: str
    user_operation_hash: UserOperationHash | None = None
    event_kind: EventKind | None = None
    log_index: int | None = None


@dataclass
class SinkFailure:
    sink: str
    user_operation_hash: UserOperationHash
    message: str
    bucket: OutcomeBucket | None = None


@dataclass
class ItemResult:
    user_operation_hash: UserOperationHash
    event_kind: EventKind
    status: ItemStatus
    bucket: OutcomeBucket | None = None
    reason: str | None = None


@dataclass
class MonitorReport:
    """
    Result of one correlator run over a single transaction.
    Every processed event ends up in results, every decode that was skipped
    in skipped and every storage or notification error in sink_failures.
    """
    transaction_hash: TransactionHash | None
    user_operation_hashes: list[UserOperationHash] = field(default_factory=list)
    results: list[ItemResult] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)
    sink_failures: list[SinkFailure] = field(default_factory=list)
    records: list[OutcomeRecord] = field(default_factory=list)
    aborted: str | None = None

    def records_in(self, bucket: OutcomeBucket) -> list[OutcomeRecord]:
        return [record for record in self.records if record.bucket == bucket]

    @property
    def notifications(self) -> list[str]:
        return [
            record.notification for record in self.records
            if record.notification is not None
        ]

    @property
    def is_aborted(self) -> bool:
        return self.aborted is not None
