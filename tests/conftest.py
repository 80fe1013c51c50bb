import json
import os

import pytest

from paymaster_monitor.monitor.notifier import NotificationStatus, Notifier
from paymaster_monitor.monitor.storage import InMemoryStorage
from paymaster_monitor.user_operation.transaction import \
    parse_transaction_event

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")

# paymasters of the recorded base sepolia handleOps transaction
MONITORED_PAYMASTERS = [
    "0x44d6f8362c144a1217f24a11be35f2c418b6cb20",
    "0xbdd6eb5c9a89f21b559f65c6b2bbec265ce54c82",
    "0x4779c973b060c9cc1592b404cad9cb5afb0d4b52",
]


class RecordingNotifier(Notifier):
    def __init__(self, status: NotificationStatus = NotificationStatus.Sent):
        self.status = status
        self.notifications: list[str] = []

    async def notify(self, text: str) -> NotificationStatus:
        self.notifications.append(text)
        return self.status


@pytest.fixture
def handle_ops_payload() -> dict:
    with open(os.path.join(FIXTURES_DIR, "handle_ops_payload.json")) as file:
        return json.load(file)


@pytest.fixture
def handle_ops_transaction(handle_ops_payload):
    return parse_transaction_event(handle_ops_payload)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(NotificationStatus.Failed)


@pytest.fixture
def monitored_paymasters() -> list[str]:
    return list(MONITORED_PAYMASTERS)
