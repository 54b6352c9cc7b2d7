"""
Content filter administration
"""
from functools import wraps

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from authorization import Actions, require
from routes.moderation import json_body
from services import get_services
from utils.schemas import FilterFeedback, FilterRuleCreate, FilterRuleUpdate, FilterTest

filters_bp = Blueprint('filters', __name__, url_prefix='/api/moderation/filters')


def admin_required(f):
    """Decorator to require admin access"""
    @wraps(f)
    def wrapper(*args, **kwargs):
        require(current_user, Actions.MANAGE_FILTERS, 'only administrators can manage content filters')
        return f(*args, **kwargs)
    return wrapper


@filters_bp.route('', methods=['POST'])
@login_required
@admin_required
def create_filter():
    data = FilterRuleCreate.model_validate(json_body())
    rule = get_services().filters.create(current_user.id, data)
    return jsonify({'message': 'Filter created', 'filter': rule.to_dict()}), 201


@filters_bp.route('/active')
@login_required
@admin_required
def active_filters():
    rules = get_services().filters.list_active()
    return jsonify({'filters': [r.to_dict() for r in rules], 'count': len(rules)})


@filters_bp.route('/<filter_id>')
@login_required
@admin_required
def get_filter(filter_id):
    return jsonify({'filter': get_services().filters.get(filter_id).to_dict()})


@filters_bp.route('/<filter_id>', methods=['PUT'])
@login_required
@admin_required
def update_filter(filter_id):
    changes = FilterRuleUpdate.model_validate(json_body())
    rule = get_services().filters.update(current_user.id, filter_id, changes)
    return jsonify({'message': 'Filter updated', 'filter': rule.to_dict()})


@filters_bp.route('/<filter_id>', methods=['DELETE'])
@login_required
@admin_required
def deactivate_filter(filter_id):
    """Soft delete: the rule and its stats are kept"""
    rule = get_services().filters.deactivate(current_user.id, filter_id)
    return jsonify({'message': 'Filter deactivated', 'filter': rule.to_dict()})


@filters_bp.route('/<filter_id>/test', methods=['POST'])
@login_required
@admin_required
def test_filter(filter_id):
    data = FilterTest.model_validate(json_body())
    result = get_services().filters.test(filter_id, data.content)
    return jsonify(result.to_dict())


@filters_bp.route('/<filter_id>/feedback', methods=['POST'])
@login_required
@admin_required
def filter_feedback(filter_id):
    data = FilterFeedback.model_validate(json_body())
    rule = get_services().filters.record_feedback(filter_id, data.was_correct)
    return jsonify({
        'message': 'Feedback recorded',
        'contentId': data.content_id,
        'stats': rule.to_dict()['stats'],
    })


@filters_bp.route('/<filter_id>/stats')
@login_required
@admin_required
def filter_stats(filter_id):
    return jsonify(get_services().filters.stats(filter_id))
