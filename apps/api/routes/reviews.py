"""Review, submit and resubmit routes for reviewable records."""
from flask import Blueprint, jsonify, request

from apps.api import db, limiter
from apps.api.utils.auth import get_current_user, login_required
from apps.api.utils.entities import get_entity
from apps.api.utils.errors import AuthorizationError, NotFoundError, ValidationError
from apps.api.utils.permissions import authorize, can_access_resource
from apps.api.utils.review_workflow import resubmit_record, submit_record, transition_review

reviews_bp = Blueprint('reviews', __name__, url_prefix='/api/reviews')


def _load_in_scope(entity, record_id, user, action):
    """The record, or NotFound / AuthorizationError if missing or out of scope."""
    record = db.session.get(entity.model, record_id)
    if record is None:
        raise NotFoundError(f'{entity.name.replace("_", " ").capitalize()} not found')
    if not can_access_resource(user, entity.model.resource_type, action, record_id):
        raise AuthorizationError()
    return record


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@reviews_bp.route('/<entity_name>/<record_id>', methods=['POST'])
@login_required
@limiter.limit('120 per minute')
def review_record(entity_name, record_id):
    """Apply a review action: {"action": "approve", "notes": "..."}."""
    entity = get_entity(entity_name)
    user = get_current_user()
    authorize(user, entity.review)
    record = _load_in_scope(entity, record_id, user, 'review')

    data = _json_body()
    result = transition_review(
        record,
        data.get('action') or data.get('status'),
        user,
        data.get('notes') if data.get('notes') is not None else data.get('reviewNotes'),
    )
    return jsonify({
        'message': 'Review saved',
        'status': result.status,
        'verification_status': result.verification_status,
        'record': result.record.to_dict(),
        'superseded_ids': result.superseded_ids,
    }), 200


@reviews_bp.route('/<entity_name>/<record_id>/submit', methods=['POST'])
@login_required
def submit(entity_name, record_id):
    entity = get_entity(entity_name)
    user = get_current_user()
    authorize(user, entity.submit)
    record = _load_in_scope(entity, record_id, user, 'update')
    updated = submit_record(record, user)
    return jsonify({'message': 'Submitted for review', 'record': updated.to_dict()}), 200


@reviews_bp.route('/<entity_name>/<record_id>/resubmit', methods=['POST'])
@login_required
def resubmit(entity_name, record_id):
    """Send a draft or rejected record back for review with optional edits in "changes"."""
    entity = get_entity(entity_name)
    user = get_current_user()
    authorize(user, entity.submit)
    record = _load_in_scope(entity, record_id, user, 'update')

    changes = _json_body().get('changes') or {}
    if not isinstance(changes, dict):
        raise ValidationError('changes must be an object', field='changes')
    updated = resubmit_record(record, user, changes)
    return jsonify({'message': 'Resubmitted for review', 'record': updated.to_dict()}), 200
