# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Change Trigger - consumes TP course-changed notifications from RabbitMQ and
syncs each changed course
"""
import logging
import time
from typing import Callable, Optional

import pika
import pika.exceptions

from context import Settings
from errors import IgnoredNotification, ModelError, StaleNotification
from models import ChangeNotification
from sync.change_ledger import ChangeLedger
from utils.logger import StructuredLogger
from utils.semester import is_beyond
from utils.timezone import get_utc_time

logger = logging.getLogger(__name__)


class ChangeTrigger:
    """
    Single consumer of the change queue.

    Messages are handled one at a time (prefetch 1). A message is acked when it
    was synced or when it can never be synced (malformed, ignored or stale); a
    failed sync is nacked with requeue so the broker redelivers it.
    """

    def __init__(self, orchestrator, ledger: ChangeLedger, settings: Settings,
                 connection_factory: Optional[Callable] = None, sleep: Callable[[float], None] = time.sleep):
        self.orchestrator = orchestrator
        self.ledger = ledger
        self.settings = settings
        self.connection_factory = connection_factory or self._connect
        self.sleep = sleep
        self.connection = None
        self.channel = None
        self.structured_logger = StructuredLogger(__name__)

    def _connect(self):
        credentials = pika.PlainCredentials(self.settings.rabbitmq_user, self.settings.rabbitmq_password)
        parameters = pika.ConnectionParameters(
            host=self.settings.rabbitmq_host,
            port=self.settings.rabbitmq_port,
            virtual_host=self.settings.rabbitmq_vhost,
            credentials=credentials,
        )
        return pika.BlockingConnection(parameters)

    # =============================================================================
    # MESSAGE HANDLING
    # =============================================================================

    def screen(self, notification: ChangeNotification):
        """Raise IgnoredNotification or StaleNotification for messages we must not sync"""
        course_id = notification.id
        for prefix in self.settings.ignored_course_prefixes:
            if course_id.startswith(prefix):
                raise IgnoredNotification(f"{course_id} is a {prefix} placeholder")
        if is_beyond(notification.semesterid, self.settings.max_semester):
            raise IgnoredNotification(
                f"{notification.semesterid} is beyond the sync horizon {self.settings.max_semester}"
            )
        if self.ledger.check(notification.course_key, notification.lastchanged):
            raise StaleNotification(f"{notification.course_key} already synced after {notification.lastchanged}")

    def handle(self, body) -> bool:
        """
        Process one message body. Returns True if the message should be acked.
        """
        try:
            notification = ChangeNotification.from_json(body)
        except ModelError as e:
            logger.error(f"❌ Discarding malformed change notification: {e}")
            return True

        try:
            self.screen(notification)
        except IgnoredNotification as e:
            logger.info(f"Ignoring change: {e}")
            return True
        except StaleNotification as e:
            logger.info(f"Skipping stale change: {e}")
            return True
        except ModelError as e:
            logger.error(f"❌ Discarding change notification {notification.course_key}: {e}")
            return True

        # Captured before the sync so a change made while we work is not suppressed
        started = get_utc_time()
        logger.info(f"📨 Change for {notification.course_key} at {notification.lastchanged}")

        if not self.orchestrator.sync_course(notification.id, notification.semesterid, notification.terminnr):
            logger.warning(f"⚠️ Sync of {notification.course_key} failed - leaving message for redelivery")
            self.structured_logger.log_sync_event('change_sync_failed', {'course_key': notification.course_key})
            return False

        self.ledger.set(notification.course_key, started)
        return True

    def on_message(self, channel, method, properties, body):
        """pika consumer callback; every delivery is settled before the next one arrives"""
        if not self.handle(body):
            # Requeue after a pause so a broken course does not spin the consumer
            self.sleep(self.settings.redelivery_delay_seconds)
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=True)
            return
        if self.settings.dry_run:
            logger.info(f"🧪 DRY RUN: would ack message {method.delivery_tag}, requeueing it instead")
            self.sleep(self.settings.redelivery_delay_seconds)
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=True)
            return
        channel.basic_ack(delivery_tag=method.delivery_tag)

    # =============================================================================
    # CONNECTION LOOP
    # =============================================================================

    def consume_once(self):
        """Connect, declare the topology and consume until the connection breaks"""
        self.connection = self.connection_factory()
        self.channel = self.connection.channel()
        self.channel.exchange_declare(
            exchange=self.settings.rabbitmq_exchange, exchange_type='fanout', durable=True
        )
        self.channel.queue_declare(queue=self.settings.rabbitmq_queue, durable=True)
        self.channel.queue_bind(queue=self.settings.rabbitmq_queue, exchange=self.settings.rabbitmq_exchange)
        self.channel.basic_qos(prefetch_count=1)
        self.channel.basic_consume(
            queue=self.settings.rabbitmq_queue, on_message_callback=self.on_message, auto_ack=False
        )
        logger.info(f"🐇 Waiting for changes on {self.settings.rabbitmq_queue}")
        self.channel.start_consuming()

    def close(self):
        if self.connection is not None and self.connection.is_open:
            try:
                self.connection.close()
            except pika.exceptions.AMQPError as e:
                logger.debug(f"Error while closing RabbitMQ connection: {e}")
        self.connection = None
        self.channel = None

    def run(self, max_reconnects: Optional[int] = None):
        """Consume forever, reconnecting after a grace period whenever RabbitMQ goes away"""
        reconnects = 0
        try:
            while True:
                try:
                    self.consume_once()
                    # start_consuming returned without error; the channel was stopped
                    break
                except pika.exceptions.AMQPError as e:
                    logger.error(f"❌ RabbitMQ connection lost: {e!r}")
                    self.close()
                    reconnects += 1
                    if max_reconnects is not None and reconnects > max_reconnects:
                        raise
                    logger.info(f"Reconnecting in {self.settings.reconnect_grace_seconds} seconds")
                    self.sleep(self.settings.reconnect_grace_seconds)
        except KeyboardInterrupt:
            logger.info("Consumer stopped")
        finally:
            self.close()
