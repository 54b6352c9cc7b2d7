"""
Service container.

One container is built per application and stored on
``app.extensions['moderation']``. Every service gets the session and its
collaborators through its constructor.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from flask import current_app

from config import Settings
from content_directory import ContentDirectory, HttpContentDirectory, InMemoryContentDirectory
from models import utcnow
from notifier import Notifier
from utils.filter_engine import ExternalClassifier, FilterEngine
from utils.filter_rules import FilterRuleService
from utils.moderation_actions import ModerationActionEngine
from utils.moderation_queue import ModerationQueue
from utils.moderation_stats import ModerationStats
from utils.report_intake import ReportIntake
from utils.report_review import ReportReviewService
from utils.sanctions import SanctionManager


@dataclass
class ModerationServices:
    settings: Settings
    content_directory: ContentDirectory
    notifier: Notifier
    engine: FilterEngine
    filters: FilterRuleService
    reports: ReportIntake
    queue: ModerationQueue
    actions: ModerationActionEngine
    sanctions: SanctionManager
    review: ReportReviewService
    stats: ModerationStats


def default_content_directory(settings: Settings) -> ContentDirectory:
    if settings.CONTENT_SERVICE_URL:
        return HttpContentDirectory(settings.CONTENT_SERVICE_URL, timeout=settings.CONTENT_SERVICE_TIMEOUT_SECONDS)
    return InMemoryContentDirectory()


def default_notifier(settings: Settings) -> Notifier:
    return Notifier(
        settings.NOTIFICATION_SERVICE_URL,
        timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        retry_attempts=settings.NOTIFICATION_RETRY_ATTEMPTS,
        run_async=settings.NOTIFY_ASYNC,
    )


def build_services(
    session,
    settings: Settings,
    content_directory: Optional[ContentDirectory] = None,
    notifier: Optional[Notifier] = None,
    classifier: Optional[ExternalClassifier] = None,
    clock: Callable = utcnow,
) -> ModerationServices:
    content_directory = content_directory or default_content_directory(settings)
    notifier = notifier or default_notifier(settings)

    engine = FilterEngine(classifier)
    filters = FilterRuleService(session, engine, clock=clock)
    reports = ReportIntake(session, content_directory, clock=clock)
    queue = ModerationQueue(
        session,
        content_directory,
        page_size=settings.QUEUE_PAGE_SIZE,
        max_page_size=settings.QUEUE_MAX_PAGE_SIZE,
        clock=clock,
    )
    actions = ModerationActionEngine(session, content_directory, notifier, clock=clock)
    sanctions = SanctionManager(session, notifier, clock=clock)
    review = ReportReviewService(session, queue, actions, sanctions, clock=clock)
    stats = ModerationStats(session, queue, actions, filters, sanctions)

    return ModerationServices(
        settings=settings,
        content_directory=content_directory,
        notifier=notifier,
        engine=engine,
        filters=filters,
        reports=reports,
        queue=queue,
        actions=actions,
        sanctions=sanctions,
        review=review,
        stats=stats,
    )


def get_services() -> ModerationServices:
    return current_app.extensions['moderation']
