"""
Read-only view of the content service.

Posts and discussions live in another service; moderation only needs to know
who wrote a piece of content, which discussion it belongs to and who owns that
discussion.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests

from exceptions import ExternalDependencyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentRef:
    id: str
    discussion_id: str
    author_id: str
    text: str = ''
    content_type: str = 'post'


@dataclass(frozen=True)
class DiscussionRef:
    id: str
    owner_id: str
    title: str = ''


class ContentDirectory(ABC):

    @abstractmethod
    def get_content(self, content_id: str) -> Optional[ContentRef]:
        """Return the content item, or None if it does not exist."""

    @abstractmethod
    def get_discussion(self, discussion_id: str) -> Optional[DiscussionRef]:
        """Return the discussion, or None if it does not exist."""

    @abstractmethod
    def discussions_owned_by(self, user_id: str) -> List[str]:
        """Ids of every discussion the user owns."""


class InMemoryContentDirectory(ContentDirectory):
    """Dictionary-backed directory for local development and tests."""

    def __init__(self):
        self.contents: Dict[str, ContentRef] = {}
        self.discussions: Dict[str, DiscussionRef] = {}

    def add_discussion(self, discussion_id, owner_id, title=''):
        discussion = DiscussionRef(id=discussion_id, owner_id=owner_id, title=title)
        self.discussions[discussion_id] = discussion
        return discussion

    def add_content(self, content_id, discussion_id, author_id, text='', content_type='post'):
        content = ContentRef(
            id=content_id,
            discussion_id=discussion_id,
            author_id=author_id,
            text=text,
            content_type=content_type,
        )
        self.contents[content_id] = content
        return content

    def get_content(self, content_id):
        return self.contents.get(content_id)

    def get_discussion(self, discussion_id):
        return self.discussions.get(discussion_id)

    def discussions_owned_by(self, user_id):
        return [d.id for d in self.discussions.values() if d.owner_id == user_id]


class HttpContentDirectory(ContentDirectory):
    """Content service client over its JSON API."""

    def __init__(self, base_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.http = session or requests.Session()

    def _get(self, path, params=None):
        url = f"{self.base_url}{path}"
        try:
            response = self.http.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Content service request failed: GET {url}: {e}")
            raise ExternalDependencyError('content service unavailable', 'content_service') from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            logger.error(f"Content service returned {response.status_code} for GET {url}")
            raise ExternalDependencyError(
                'content service error', 'content_service', {'status': response.status_code}
            )
        return response.json()

    def get_content(self, content_id):
        data = self._get(f"/contents/{content_id}")
        if data is None:
            return None
        return ContentRef(
            id=str(data['id']),
            discussion_id=str(data['discussionId']),
            author_id=str(data['authorId']),
            text=data.get('content') or '',
            content_type=data.get('contentType', 'post'),
        )

    def get_discussion(self, discussion_id):
        data = self._get(f"/discussions/{discussion_id}")
        if data is None:
            return None
        return DiscussionRef(
            id=str(data['id']),
            owner_id=str(data['ownerId']),
            title=data.get('title') or '',
        )

    def discussions_owned_by(self, user_id):
        data = self._get('/discussions', params={'ownerId': user_id}) or []
        return [str(d['id']) for d in data]
