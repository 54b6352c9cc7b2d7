"""
Outbound user notifications.

Delivery is best-effort: a moderation decision that has been committed is never
rolled back because the notification service was unreachable.
"""
import logging
from threading import Thread
from typing import Any, Dict, Optional

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


class NotificationEvents:
    CONTENT_MODERATED = 'content_moderated'
    SANCTION_CREATED = 'sanction_created'
    SANCTION_REVOKED = 'sanction_revoked'
    SANCTION_APPEALED = 'sanction_appealed'
    APPEAL_REVIEWED = 'appeal_reviewed'


class Notifier:
    """Posts notification payloads to the notification service."""

    def __init__(
        self,
        base_url: Optional[str],
        timeout: float = 5.0,
        retry_attempts: int = 3,
        run_async: bool = True,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/') if base_url else None
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.run_async = run_async
        self.http = session or requests.Session()

    def _retry_config(self) -> Dict[str, Any]:
        return {
            'stop': stop_after_attempt(self.retry_attempts),
            'wait': wait_exponential(multiplier=0.5, min=0.5, max=4),
            'retry': retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            'before_sleep': before_sleep_log(logger, logging.WARNING),
            'reraise': True,
        }

    def _post(self, payload: Dict[str, Any]) -> None:
        for attempt in Retrying(**self._retry_config()):
            with attempt:
                response = self.http.post(
                    f"{self.base_url}/notifications", json=payload, timeout=self.timeout
                )
                response.raise_for_status()

    def send(self, user_id: str, event: str, message: str, data: Optional[Dict[str, Any]] = None) -> bool:
        """Deliver one notification synchronously. Returns True if delivered."""
        if not self.base_url:
            logger.debug(f"Notification service not configured, skipping {event} for {user_id}")
            return False

        payload = {
            'userId': user_id,
            'type': event,
            'message': message,
            'data': data or {},
        }
        try:
            self._post(payload)
            return True
        except requests.RequestException as e:
            logger.warning(f"Notification {event} for user {user_id} failed: {e}")
            return False

    def notify(self, user_id: str, event: str, message: str, data: Optional[Dict[str, Any]] = None) -> Optional[bool]:
        """Fire-and-forget delivery; runs on a background thread when configured to.

        Returns the result of send() when synchronous and None once a background
        send has been started.
        """
        if not self.run_async:
            return self.send(user_id, event, message, data)

        thread = Thread(target=self.send, args=(user_id, event, message, data), daemon=True)
        thread.start()
        return None
