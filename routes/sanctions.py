"""
User sanctions - issue, revoke, appeal and status
"""
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from authorization import Actions, require
from routes.moderation import json_body
from services import get_services
from utils.schemas import AppealReview, SanctionAppeal, SanctionCreate, SanctionRevoke

sanctions_bp = Blueprint('sanctions', __name__, url_prefix='/api/moderation/sanctions')


def _admin_only(message):
    require(current_user, Actions.VIEW_SANCTIONS, message)


@sanctions_bp.route('', methods=['POST'])
@login_required
def create_sanction():
    data = SanctionCreate.model_validate(json_body())
    sanction = get_services().sanctions.create_sanction(
        current_user,
        data.user_id,
        data.sanction_type.value,
        data.reason,
        duration=data.duration,
        description=data.description,
        related_content_id=data.related_content_id,
        related_report_id=data.related_report_id,
    )
    return jsonify({'message': 'User sanction created', 'sanction': sanction.to_dict()}), 201


@sanctions_bp.route('')
@login_required
def list_sanctions():
    _admin_only('only administrators can list sanctions')
    result = get_services().sanctions.list_sanctions(
        user_id=request.args.get('userId'),
        sanction_type=request.args.get('sanctionType'),
        active_only=request.args.get('activeOnly', '').lower() in ('1', 'true', 'yes'),
        page=max(request.args.get('page', 1, type=int), 1),
        per_page=min(max(request.args.get('perPage', 20, type=int), 1), 100),
    )
    return jsonify({
        'sanctions': [s.to_dict() for s in result['items']],
        'pagination': result['pagination'],
    })


@sanctions_bp.route('/stats')
@login_required
def sanction_stats():
    _admin_only('only administrators can view sanction statistics')
    return jsonify(get_services().sanctions.stats())


@sanctions_bp.route('/expiring')
@login_required
def expiring_sanctions():
    _admin_only('only administrators can view expiring sanctions')
    hours_ahead = max(request.args.get('hoursAhead', 24, type=int), 0)
    sanctions = get_services().sanctions.expiring(hours_ahead)
    return jsonify({
        'hoursAhead': hours_ahead,
        'sanctions': [s.to_dict() for s in sanctions],
        'count': len(sanctions),
    })


@sanctions_bp.route('/moderator/<moderator_id>')
@login_required
def sanctions_by_moderator(moderator_id):
    _admin_only('only administrators can view sanctions by moderator')
    sanctions = get_services().sanctions.by_moderator(moderator_id)
    return jsonify({
        'moderatorId': moderator_id,
        'sanctions': [s.to_dict() for s in sanctions],
        'count': len(sanctions),
    })


@sanctions_bp.route('/user/<user_id>')
@login_required
def user_sanction_history(user_id):
    _admin_only('only administrators can view sanction history')
    return jsonify(get_services().sanctions.user_history(user_id))


@sanctions_bp.route('/user/<user_id>/status')
@login_required
def user_sanction_status(user_id):
    return jsonify(get_services().sanctions.get_user_sanction_status(current_user, user_id))


@sanctions_bp.route('/<sanction_id>')
@login_required
def get_sanction(sanction_id):
    sanction = get_services().sanctions.get(sanction_id)
    require(
        current_user,
        Actions.VIEW_USER_SANCTIONS,
        'insufficient permissions to view this sanction',
        target_user_id=sanction.user_id,
    )
    return jsonify({'sanction': sanction.to_dict()})


@sanctions_bp.route('/<sanction_id>/revoke', methods=['POST'])
@login_required
def revoke_sanction(sanction_id):
    data = SanctionRevoke.model_validate(json_body())
    sanction = get_services().sanctions.revoke_sanction(current_user, sanction_id, data.reason)
    return jsonify({'message': 'Sanction revoked', 'sanction': sanction.to_dict()})


@sanctions_bp.route('/<sanction_id>/appeal', methods=['POST'])
@login_required
def appeal_sanction(sanction_id):
    data = SanctionAppeal.model_validate(json_body())
    sanction = get_services().sanctions.appeal_sanction(current_user, sanction_id, data.appeal_reason)
    return jsonify({'message': 'Appeal submitted', 'sanction': sanction.to_dict()})


@sanctions_bp.route('/<sanction_id>/appeal/review', methods=['POST'])
@login_required
def review_appeal(sanction_id):
    data = AppealReview.model_validate(json_body())
    sanction = get_services().sanctions.review_appeal(
        current_user, sanction_id, data.decision == 'approved', data.review_notes
    )
    return jsonify({'message': f'Appeal {sanction.appeal_status}', 'sanction': sanction.to_dict()})


@sanctions_bp.route('/<sanction_id>/notify', methods=['POST'])
@login_required
def notify_sanctioned_user(sanction_id):
    sanction = get_services().sanctions.notify_user(current_user, sanction_id)
    return jsonify({'message': 'User notification sent', 'sanction': sanction.to_dict()})
