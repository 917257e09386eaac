# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Sync Context - the clients, stores and settings every component is built from
"""
from dataclasses import dataclass, field
from typing import List, Optional

import config
from clients.canvas import CanvasClient
from clients.tp import TPClient
from storage.shadow_store import ShadowStore
from sync.change_ledger import ChangeLedger
from utils.logger import StructuredLogger


@dataclass
class Settings:
    """The configuration values the sync components use"""
    canvas_account_id: int = 1
    tp_institution: int = 186
    max_semester: str = '26h'
    dry_run: bool = False
    ignored_course_prefixes: List[str] = field(default_factory=lambda: ['BOOK', 'EKS'])
    rabbitmq_host: str = 'localhost'
    rabbitmq_port: int = 5672
    rabbitmq_vhost: str = '/'
    rabbitmq_user: str = 'guest'
    rabbitmq_password: str = 'guest'
    rabbitmq_exchange: str = 'tp-course-pub'
    rabbitmq_queue: str = 'tp-canvas-sync'
    reconnect_grace_seconds: int = 10
    redelivery_delay_seconds: int = 30
    sync_interval_min: int = 360
    sync_semesters: List[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, dry_run: Optional[bool] = None) -> 'Settings':
        return cls(
            canvas_account_id=config.CANVAS_ACCOUNT_ID,
            tp_institution=config.TP_INSTITUTION,
            max_semester=config.MAX_SEMESTER,
            dry_run=config.DRY_RUN_MODE if dry_run is None else dry_run,
            ignored_course_prefixes=list(config.IGNORED_COURSE_PREFIXES),
            rabbitmq_host=config.RABBITMQ_HOST,
            rabbitmq_port=config.RABBITMQ_PORT,
            rabbitmq_vhost=config.RABBITMQ_VHOST,
            rabbitmq_user=config.RABBITMQ_USER,
            rabbitmq_password=config.RABBITMQ_PASSWORD,
            rabbitmq_exchange=config.RABBITMQ_EXCHANGE,
            rabbitmq_queue=config.RABBITMQ_QUEUE,
            reconnect_grace_seconds=config.RECONNECT_GRACE_SECONDS,
            redelivery_delay_seconds=config.REDELIVERY_DELAY_SECONDS,
            sync_interval_min=config.SYNC_INTERVAL_MIN,
            sync_semesters=list(config.SYNC_SEMESTERS),
        )


@dataclass
class SyncContext:
    settings: Settings
    tp: TPClient
    canvas: CanvasClient
    store: ShadowStore
    ledger: ChangeLedger
    structured_logger: StructuredLogger

    @classmethod
    def from_config(cls, dry_run: Optional[bool] = None) -> 'SyncContext':
        settings = Settings.from_config(dry_run)
        client_options = {
            'timeout': config.REQUEST_TIMEOUT,
            'max_retries': config.MAX_RETRIES,
            'retry_delay': config.RETRY_DELAY,
        }
        return cls(
            settings=settings,
            tp=TPClient(config.TP_URL, config.TP_KEY, config.TP_INSTITUTION, **client_options),
            canvas=CanvasClient(config.CANVAS_URL, config.CANVAS_KEY, **client_options),
            store=ShadowStore(config.SHADOW_DB_PATH, dry_run=settings.dry_run),
            ledger=ChangeLedger(),
            structured_logger=StructuredLogger('tp-canvas-sync'),
        )

    def compare_canvas(self) -> CanvasClient:
        """Client for the second Canvas environment used by compare"""
        return CanvasClient(
            config.CANVAS_COMPARE_URL, config.CANVAS_COMPARE_KEY,
            timeout=config.REQUEST_TIMEOUT, max_retries=config.MAX_RETRIES, retry_delay=config.RETRY_DELAY
        )

    def close(self):
        self.store.close()
