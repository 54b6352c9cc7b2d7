"""
Tests for the content service client and the notifier's delivery result.
"""
from unittest.mock import MagicMock

import pytest
import requests

from app import create_app, db
from config import TestingSettings
from conftest import headers_for
from content_directory import ContentRef, DiscussionRef, HttpContentDirectory
from exceptions import ExternalDependencyError
from notifier import Notifier


def http_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def remote(http):
    return HttpContentDirectory('http://content.test/', timeout=2.0, session=http)


# =============================================================================
# CONTENT SERVICE CLIENT
# =============================================================================

class TestHttpContentDirectory:
    """Test mapping of content service responses."""

    def test_content_is_mapped(self, remote, http):
        http.get.return_value = http_response(payload={
            'id': 42,
            'discussionId': 7,
            'authorId': 'author-1',
            'content': 'hello there',
            'contentType': 'comment',
        })

        content = remote.get_content('42')

        assert content == ContentRef(id='42', discussion_id='7', author_id='author-1', text='hello there',
                                     content_type='comment')
        http.get.assert_called_once_with('http://content.test/contents/42', params=None, timeout=2.0)

    def test_discussion_is_mapped(self, remote, http):
        http.get.return_value = http_response(payload={'id': 'd1', 'ownerId': 'owner-1', 'title': None})
        assert remote.get_discussion('d1') == DiscussionRef(id='d1', owner_id='owner-1', title='')

    def test_owned_discussions(self, remote, http):
        http.get.return_value = http_response(payload=[{'id': 'd1'}, {'id': 3}])

        assert remote.discussions_owned_by('owner-1') == ['d1', '3']
        http.get.assert_called_once_with(
            'http://content.test/discussions', params={'ownerId': 'owner-1'}, timeout=2.0
        )

    def test_missing_content_is_none(self, remote, http):
        http.get.return_value = http_response(404)
        assert remote.get_content('missing') is None
        assert remote.get_discussion('missing') is None

    @pytest.mark.parametrize('status', [400, 403, 500, 503])
    def test_error_status_is_external_error(self, remote, http, status):
        http.get.return_value = http_response(status)

        with pytest.raises(ExternalDependencyError) as excinfo:
            remote.get_content('c1')
        assert excinfo.value.details == {'status': status, 'dependency': 'content_service'}

    @pytest.mark.parametrize('error', [requests.ConnectionError('refused'), requests.Timeout('slow')])
    def test_transport_failure_is_external_error(self, remote, http, error):
        http.get.side_effect = error
        with pytest.raises(ExternalDependencyError):
            remote.get_discussion('d1')


class TestContentServiceOutage:
    """An unreachable content service reaches the caller as a 502."""

    @pytest.fixture
    def outage_client(self, notifier, clock):
        http = MagicMock()
        http.get.side_effect = requests.ConnectionError('refused')
        app = create_app(
            settings=TestingSettings(),
            content_directory=HttpContentDirectory('http://content.test', session=http),
            notifier=notifier,
            clock=clock,
        )
        with app.app_context():
            yield app.test_client()
            db.session.remove()
            db.drop_all()

    def test_report_is_502(self, outage_client):
        response = outage_client.post(
            '/api/moderation/reports',
            json={'contentId': 'c1', 'category': 'spam', 'reason': 'advert'},
            headers=headers_for('viewer-1'),
        )

        assert response.status_code == 502
        error = response.get_json()['error']
        assert error['code'] == 'EXTERNAL_DEPENDENCY_ERROR'
        assert error['details']['dependency'] == 'content_service'


# =============================================================================
# NOTIFIER
# =============================================================================

class TestNotifierResult:
    """notify() reports delivery only when it sends synchronously."""

    def test_synchronous_delivery(self, http):
        http.post.return_value = http_response(201)
        notifier = Notifier('http://notify.test', run_async=False, session=http)
        assert notifier.notify('author-1', 'sanction_created', 'hello') is True

    def test_unconfigured_send_is_skipped(self, http):
        notifier = Notifier(None, run_async=False, session=http)
        assert notifier.notify('author-1', 'sanction_created', 'hello') is False
        http.post.assert_not_called()

    def test_failed_delivery(self, http):
        http.post.side_effect = requests.ConnectionError('refused')
        notifier = Notifier('http://notify.test', retry_attempts=1, run_async=False, session=http)
        assert notifier.notify('author-1', 'sanction_created', 'hello') is False

    def test_background_delivery_has_no_result(self, http):
        notifier = Notifier(None, run_async=True, session=http)
        assert notifier.notify('author-1', 'sanction_created', 'hello') is None
