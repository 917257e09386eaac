"""
Change trigger tests - screening, ack semantics and the reconnect loop
"""

import json
import os
import sys
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pika.exceptions
import pytest
import pytz

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import sync.trigger
from context import Settings
from sync.change_ledger import ChangeLedger
from sync.trigger import ChangeTrigger

STARTED = datetime(2020, 1, 21, 12, 0, tzinfo=pytz.UTC)


def message(course_id='INF-1100', semester='20v', termnr=1, lastchanged='2020-01-21T10:00:00'):
    return json.dumps({
        'id': course_id, 'semesterid': semester, 'terminnr': termnr, 'lastchanged': lastchanged
    }).encode('utf-8')


@pytest.fixture
def orchestrator():
    mock_orchestrator = MagicMock()
    mock_orchestrator.sync_course.return_value = True
    return mock_orchestrator


@pytest.fixture
def ledger():
    return ChangeLedger()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def trigger(orchestrator, ledger, sleeps, monkeypatch):
    monkeypatch.setattr(sync.trigger, 'get_utc_time', lambda: STARTED)
    return ChangeTrigger(orchestrator, ledger, Settings(max_semester='21h'), sleep=sleeps.append)


class TestHandle:

    @pytest.mark.unit
    def test_successful_sync_is_acked_and_recorded(self, trigger, orchestrator, ledger):
        assert trigger.handle(message()) is True

        orchestrator.sync_course.assert_called_once_with('INF-1100', '20v', 1)
        assert 'INF-1100_20v_1' in ledger

    @pytest.mark.unit
    def test_ledger_records_time_before_processing(self, trigger, ledger):
        """A change made while the sync ran must not be suppressed"""
        trigger.handle(message())

        assert ledger.check('INF-1100_20v_1', STARTED)
        assert not ledger.check('INF-1100_20v_1', STARTED + timedelta(seconds=1))

    @pytest.mark.unit
    def test_failed_sync_is_left_for_redelivery(self, trigger, orchestrator, ledger):
        orchestrator.sync_course.return_value = False

        assert trigger.handle(message()) is False
        assert 'INF-1100_20v_1' not in ledger

    @pytest.mark.unit
    def test_stale_notification_is_discarded(self, trigger, orchestrator, ledger):
        ledger.set('INF-1100_20v_1', '2020-01-21T12:00:00Z')

        assert trigger.handle(message(lastchanged='2020-01-21T11:00:00Z')) is True
        orchestrator.sync_course.assert_not_called()

    @pytest.mark.unit
    def test_newer_notification_is_synced(self, trigger, orchestrator, ledger):
        ledger.set('INF-1100_20v_1', '2020-01-21T09:00:00Z')

        assert trigger.handle(message(lastchanged='2020-01-21T11:00:00Z')) is True
        orchestrator.sync_course.assert_called_once()

    @pytest.mark.unit
    @pytest.mark.parametrize('body', [
        message(course_id='BOOK-0001'),
        message(course_id='EKS-INF-1100'),
        message(semester='22v'),
        message(semester='autumn'),
        b'not json',
    ])
    def test_unsyncable_messages_are_discarded(self, trigger, orchestrator, body):
        assert trigger.handle(body) is True
        orchestrator.sync_course.assert_not_called()


class TestOnMessage:

    @pytest.mark.unit
    def test_ack_on_success(self, trigger):
        channel = MagicMock()

        trigger.on_message(channel, MagicMock(delivery_tag=7), None, message())

        channel.basic_ack.assert_called_once_with(delivery_tag=7)

    @pytest.mark.unit
    def test_failed_sync_is_requeued_after_delay(self, trigger, orchestrator, sleeps):
        """The only prefetch slot must be released or the consumer stalls"""
        orchestrator.sync_course.return_value = False
        channel = MagicMock()

        trigger.on_message(channel, MagicMock(delivery_tag=7), None, message())

        channel.basic_ack.assert_not_called()
        channel.basic_nack.assert_called_once_with(delivery_tag=7, requeue=True)
        assert sleeps == [30]

    @pytest.mark.unit
    def test_consumer_keeps_going_after_failure(self, trigger, orchestrator):
        orchestrator.sync_course.side_effect = [False, True]
        channel = MagicMock()

        trigger.on_message(channel, MagicMock(delivery_tag=7), None, message())
        trigger.on_message(channel, MagicMock(delivery_tag=8), None, message(course_id='INF-1400'))

        channel.basic_nack.assert_called_once_with(delivery_tag=7, requeue=True)
        channel.basic_ack.assert_called_once_with(delivery_tag=8)

    @pytest.mark.unit
    def test_dry_run_requeues_instead_of_ack(self, orchestrator, ledger, sleeps):
        trigger = ChangeTrigger(orchestrator, ledger, Settings(max_semester='21h', dry_run=True),
                                sleep=sleeps.append)
        channel = MagicMock()

        trigger.on_message(channel, MagicMock(delivery_tag=7), None, message())

        channel.basic_ack.assert_not_called()
        channel.basic_nack.assert_called_once_with(delivery_tag=7, requeue=True)


class TestConnectionLoop:

    @pytest.mark.unit
    def test_declares_topology(self, orchestrator, ledger):
        connection = MagicMock()
        trigger = ChangeTrigger(orchestrator, ledger, Settings(), connection_factory=lambda: connection)

        trigger.consume_once()

        channel = connection.channel.return_value
        channel.exchange_declare.assert_called_once_with(
            exchange='tp-course-pub', exchange_type='fanout', durable=True
        )
        channel.queue_declare.assert_called_once_with(queue='tp-canvas-sync', durable=True)
        channel.queue_bind.assert_called_once_with(queue='tp-canvas-sync', exchange='tp-course-pub')
        channel.basic_qos.assert_called_once_with(prefetch_count=1)
        assert channel.basic_consume.call_args.kwargs['auto_ack'] is False
        channel.start_consuming.assert_called_once()

    @pytest.mark.unit
    def test_reconnects_after_grace_period(self, orchestrator, ledger, sleeps):
        connection = MagicMock()
        factory = MagicMock(side_effect=[pika.exceptions.AMQPConnectionError('down'), connection])
        trigger = ChangeTrigger(orchestrator, ledger, Settings(), connection_factory=factory, sleep=sleeps.append)

        trigger.run()

        assert factory.call_count == 2
        assert sleeps == [10]
        connection.close.assert_called_once()

    @pytest.mark.unit
    def test_lost_channel_closes_connection(self, orchestrator, ledger, sleeps):
        broken = MagicMock()
        broken.channel.return_value.start_consuming.side_effect = pika.exceptions.StreamLostError('lost')
        healthy = MagicMock()
        trigger = ChangeTrigger(orchestrator, ledger, Settings(), connection_factory=MagicMock(
            side_effect=[broken, healthy]), sleep=sleeps.append)

        trigger.run()

        broken.close.assert_called_once()
        assert sleeps == [10]

    @pytest.mark.unit
    def test_gives_up_after_max_reconnects(self, orchestrator, ledger, sleeps):
        factory = MagicMock(side_effect=pika.exceptions.AMQPConnectionError('down'))
        trigger = ChangeTrigger(orchestrator, ledger, Settings(), connection_factory=factory, sleep=sleeps.append)

        with pytest.raises(pika.exceptions.AMQPConnectionError):
            trigger.run(max_reconnects=2)

        assert factory.call_count == 3
        assert len(sleeps) == 2

    @pytest.mark.unit
    def test_keyboard_interrupt_stops_consumer(self, orchestrator, ledger):
        connection = MagicMock()
        connection.channel.return_value.start_consuming.side_effect = KeyboardInterrupt
        trigger = ChangeTrigger(orchestrator, ledger, Settings(), connection_factory=lambda: connection)

        trigger.run()

        connection.close.assert_called_once()
