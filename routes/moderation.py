"""
Moderation API - reports, review, content actions, queue and statistics
"""
import logging
from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from authorization import Actions, require
from exceptions import ValidationError
from services import get_services
from utils.schemas import ContentCheck, ModerateRequest, QueueQuery, ReportCreate, ReportReview
from utils.spam_detection import detect_spam

logger = logging.getLogger(__name__)

moderation_bp = Blueprint('moderation', __name__, url_prefix='/api/moderation')


def json_body():
    """Request JSON as a dict; anything else counts as an empty body."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _parse_date(name):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f'invalid {name}', field_errors={name: ['expected an ISO 8601 date']})


def _maybe(obj):
    return obj.to_dict() if obj is not None else None


# -----------------
# Reports
# -----------------


@moderation_bp.route('/reports', methods=['POST'])
@login_required
def submit_report():
    """Report a piece of content"""
    require(current_user, Actions.SUBMIT_REPORT, 'authentication required to report content')
    data = ReportCreate.model_validate(json_body())
    report = get_services().reports.submit_report(
        current_user.id,
        data.content_id,
        data.category.value,
        data.reason,
        description=data.description,
    )
    return jsonify({'reportId': report.id, 'report': report.to_dict()}), 201


@moderation_bp.route('/reports/<report_id>/review', methods=['POST'])
@login_required
def review_report(report_id):
    """Review a report, optionally acting on the content and its author"""
    data = ReportReview.model_validate(json_body())
    result = get_services().review.review_report(
        current_user,
        report_id,
        data.status,
        data.resolution,
        action=data.action,
        user_sanction=data.user_sanction,
        notes=data.notes,
    )
    return jsonify({
        'report': result['report'].to_dict(),
        'content': _maybe(result['content']),
        'log': _maybe(result['log']),
        'sanction': _maybe(result['sanction']),
        'queueItem': _maybe(result['queueItem']),
    })


# -----------------
# Content actions
# -----------------


@moderation_bp.route('/moderate', methods=['POST'])
@login_required
def moderate_content():
    """Hide, show, delete or restore a content item"""
    data = ModerateRequest.model_validate(json_body())
    projection, entry = get_services().actions.moderate(
        current_user, data.content_id, data.action.value, data.reason
    )
    return jsonify({'content': projection.to_dict(), 'log': entry.to_dict()})


@moderation_bp.route('/logs')
@login_required
def discussion_logs():
    """Moderation log for a whole discussion, newest first"""
    discussion_id = request.args.get('discussionId')
    if not discussion_id:
        raise ValidationError('discussionId is required', field_errors={'discussionId': ['required']})
    limit = min(request.args.get('limit', 100, type=int), 500)
    entries = get_services().actions.logs_for_discussion(current_user, discussion_id, limit=limit)
    return jsonify({
        'discussionId': discussion_id,
        'logs': [e.to_dict() for e in entries],
        'count': len(entries),
    })


@moderation_bp.route('/content')
@login_required
def moderated_content():
    """Moderated content of a discussion, filtered by hidden/deleted/moderated/all"""
    discussion_id = request.args.get('discussionId')
    if not discussion_id:
        raise ValidationError('discussionId is required', field_errors={'discussionId': ['required']})
    status = request.args.get('status', 'all')
    limit = max(1, min(request.args.get('limit', 20, type=int), 100))
    contents = get_services().actions.moderated_content(current_user, discussion_id, status=status, limit=limit)
    return jsonify({
        'discussionId': discussion_id,
        'status': status,
        'content': [c.to_dict() for c in contents],
        'count': len(contents),
    })


@moderation_bp.route('/logs/<content_id>')
@login_required
def content_logs(content_id):
    """Moderation log for one content item, in sequence order"""
    services = get_services()
    entries = services.actions.logs_for_content(current_user, content_id)
    projection = services.actions.projection(content_id)
    return jsonify({
        'contentId': content_id,
        'moderation': _maybe(projection),
        'logs': [e.to_dict() for e in entries],
        'count': len(entries),
    })


# -----------------
# Queue
# -----------------


@moderation_bp.route('/queue')
@login_required
def get_queue():
    """Moderation queue, urgent first then newest"""
    query = QueueQuery.model_validate(request.args.to_dict())
    result = get_services().queue.list_items(
        current_user,
        priority=query.priority,
        status=query.status,
        assigned_to=query.assigned_to,
        discussion_id=query.discussion_id,
        page=query.page,
        per_page=query.per_page,
    )
    return jsonify({
        'items': [item.to_dict() for item in result['items']],
        'pagination': result['pagination'],
    })


@moderation_bp.route('/queue/<item_id>/assign', methods=['POST'])
@login_required
def assign_queue_item(item_id):
    """Assign a queue item to moderatorId; without one the item is unassigned"""
    queue = get_services().queue
    moderator_id = json_body().get('moderatorId')

    if moderator_id is None:
        item = queue.unassign(item_id, current_user)
        return jsonify({'message': 'Queue item unassigned', 'item': item.to_dict()})

    if not isinstance(moderator_id, str) or not moderator_id.strip():
        raise ValidationError('moderatorId must be a string', field_errors={'moderatorId': ['expected a non-empty string']})

    item = queue.assign(item_id, moderator_id, current_user)
    return jsonify({'message': 'Queue item assigned', 'item': item.to_dict()})


# -----------------
# Automated checks
# -----------------


@moderation_bp.route('/content/process', methods=['POST'])
@login_required
def process_content():
    """Run content through every active filter"""
    require(current_user, Actions.PROCESS_CONTENT, 'insufficient permissions to process content')
    data = ContentCheck.model_validate(json_body())
    decision = get_services().filters.process_content(data.content, field=data.field)
    return jsonify(decision.to_dict())


@moderation_bp.route('/content/spam-detection', methods=['POST'])
@login_required
def spam_detection():
    """Score content with the spam heuristics"""
    data = ContentCheck.model_validate(json_body())
    if not data.content:
        raise ValidationError('content is required', field_errors={'content': ['must not be empty']})
    return jsonify(detect_spam(data.content))


# -----------------
# Statistics
# -----------------


@moderation_bp.route('/stats')
@login_required
def moderation_stats():
    """Queue, report and action statistics (plus filters and sanctions for admins)"""
    stats = get_services().stats.overview(
        current_user,
        discussion_id=request.args.get('discussionId'),
        start=_parse_date('startDate'),
        end=_parse_date('endDate'),
    )
    return jsonify(stats)
