"""Tests for the notifier wrappers and the ORM sink."""

import logging
import threading

import pytest

from apps.notifications.dispatch import BackgroundNotifier, GuardedNotifier
from apps.notifications.models import NotificationModel
from apps.notifications.service import OrmNotificationSink
from apps.orders.adapters import RecordingNotifier
from apps.orders.domain import NotificationMessage, NotificationTarget, NotificationType

MSG = NotificationMessage(
    title="Order Update",
    message="Your order #abc123 is now Shipped",
    type=NotificationType.ORDER,
    target=NotificationTarget.SPECIFIC,
    recipient_id="alice",
)


class BrokenSink:
    def emit(self, message):
        raise RuntimeError("sink down")


class SlowSink(RecordingNotifier):
    def __init__(self):
        super().__init__()
        self.gate = threading.Event()

    def emit(self, message):
        self.gate.wait(timeout=5)
        super().emit(message)


def test_guarded_notifier_forwards():
    sink = RecordingNotifier()
    GuardedNotifier(sink).emit(MSG)
    assert sink.messages == [MSG]


def test_guarded_notifier_logs_failures(caplog):
    with caplog.at_level(logging.ERROR, logger="apps.notifications.dispatch"):
        GuardedNotifier(BrokenSink()).emit(MSG)
    assert "notification emit failed" in caplog.text


def test_background_notifier_does_not_block_caller():
    sink = SlowSink()
    notifier = BackgroundNotifier(sink)
    notifier.emit(MSG)
    notifier.emit(MSG)
    assert sink.messages == []

    sink.gate.set()
    notifier.flush()
    assert sink.messages == [MSG, MSG]
    notifier.close()


def test_background_notifier_survives_sink_errors():
    notifier = BackgroundNotifier(BrokenSink())
    notifier.emit(MSG)
    notifier.flush()
    notifier.close()


def test_background_notifier_drops_when_full(caplog):
    sink = SlowSink()
    notifier = BackgroundNotifier(sink, maxsize=1)
    with caplog.at_level(logging.WARNING, logger="apps.notifications.dispatch"):
        for _ in range(5):
            notifier.emit(MSG)
    assert "notification queue full" in caplog.text
    sink.gate.set()
    notifier.flush()
    assert 1 <= len(sink.messages) < 5
    notifier.close()


@pytest.mark.django_db
def test_orm_sink_stores_message():
    OrmNotificationSink().emit(MSG)
    row = NotificationModel.objects.get()
    assert (row.title, row.type, row.target, row.recipient_id) == ("Order Update", "order", "specific", "alice")
