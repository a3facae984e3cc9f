"""Wires the delivery pipeline together from settings."""
from dataclasses import dataclass
from datetime import timedelta

from ..config import Settings
from ..database import Database
from .dedup import TagDeduplicator
from .dispatch import DispatchPolicy
from .fcm_sender import FcmConfig, FcmSender
from .processor import BatchProcessor
from .queue import NotificationQueue
from .scheduler import SchedulerService
from .webpush_sender import WebPushConfig, WebPushSender


@dataclass
class Services:
    """Explicitly constructed components of one running instance."""
    settings: Settings
    database: Database
    webpush_sender: WebPushSender
    fcm_sender: FcmSender
    policy: DispatchPolicy
    processor: BatchProcessor
    queue: NotificationQueue
    scheduler: SchedulerService


def build_services(settings: Settings, database: Database) -> Services:
    """Build senders, policy, processor, queue and scheduler for one process."""
    webpush_sender = WebPushSender(WebPushConfig(
        private_key=settings.vapid_private_key,
        claim_email=settings.vapid_claim_email,
        permanent_statuses=settings.webpush_permanent_statuses,
        timeout=settings.send_timeout_seconds,
    ))
    fcm_sender = FcmSender(FcmConfig(
        credentials_info=settings.firebase_credentials_info(),
        credentials_path=settings.firebase_credentials_path,
        permanent_codes=settings.fcm_permanent_codes,
        min_token_length=settings.fcm_min_token_length,
        timeout=settings.send_timeout_seconds,
    ))
    policy = DispatchPolicy(
        webpush_sender=webpush_sender,
        fcm_sender=fcm_sender,
        liveness_window=timedelta(minutes=settings.liveness_window_minutes),
    )
    processor = BatchProcessor(
        database,
        policy,
        batch_size=settings.batch_size,
        max_retries=settings.max_retries,
        max_concurrent=settings.max_concurrent_sends,
        retention=timedelta(days=settings.retention_days),
    )
    queue = NotificationQueue(TagDeduplicator(timedelta(seconds=settings.dedup_window_seconds)))
    scheduler = SchedulerService(
        processor,
        process_interval_minutes=settings.process_interval_minutes,
        cleanup_interval_hours=settings.cleanup_interval_hours,
        stale_token_days=settings.stale_token_days,
    )
    return Services(
        settings=settings,
        database=database,
        webpush_sender=webpush_sender,
        fcm_sender=fcm_sender,
        policy=policy,
        processor=processor,
        queue=queue,
        scheduler=scheduler,
    )
