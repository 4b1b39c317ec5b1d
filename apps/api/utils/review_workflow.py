"""
Review workflow for form submissions, facility surveys and housing developments.

Each entity keeps its own status vocabulary and transition table; only the
shape of a transition is shared:

1. a finalized record cannot move (Conflict)
2. a rejection needs notes (Validation)
3. a record in review belongs to the reviewer who opened it (Conflict for
   anyone else, super_admin excepted)
4. the action must be legal from the current status (Conflict)

The lock in (3) is advisory. The write itself is a conditional UPDATE that
only matches the row state the plan was computed from, so two reviewers
racing past the checks cannot both commit.
"""
from collections import namedtuple
from typing import Dict, Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from apps.api import db
from apps.api.models.facility import FacilitySurvey
from apps.api.models.housing_development import HousingDevelopment
from apps.api.models.submission import FormSubmission, HouseholdOwner
from apps.api.utils import roles
from apps.api.utils.audit import AuditAction, record_audit
from apps.api.utils.errors import (
    APIError,
    AuthorizationError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from apps.api.utils.notifications import find_reviewers_for_scope, notify_best_effort
from apps.api.utils.time import utc_now


REVIEW = 'review'
APPROVE = 'approve'
REJECT = 'reject'

ACTION_ALIASES = {
    'review': REVIEW,
    'under_review': REVIEW,
    'reviewed': REVIEW,
    'verified': REVIEW,
    'approve': APPROVE,
    'approved': APPROVE,
    'reject': REJECT,
    'rejected': REJECT,
}

STATUS_LABELS = {
    REVIEW: 'dalam tinjauan',
    APPROVE: 'disetujui',
    REJECT: 'ditolak',
}

TransitionPlan = namedtuple(
    'TransitionPlan',
    ['action', 'status', 'verification_status', 'notes', 'supersede_owner_id'],
)

TransitionResult = namedtuple(
    'TransitionResult',
    ['status', 'verification_status', 'record', 'superseded_ids'],
)


class WorkflowRules:
    """Transition table of one reviewable entity."""

    def __init__(self, model, label, audit_action, targets, allowed_from,
                 lock_statuses, lock_requires_pending, implicit_submit,
                 editable_fields, title, link):
        self.model = model
        self.label = label
        self.audit_action = audit_action
        # action -> (status, verification_status)
        self.targets = targets
        self.allowed_from = frozenset(allowed_from)
        self.lock_statuses = frozenset(lock_statuses)
        self.lock_requires_pending = lock_requires_pending
        self.implicit_submit = implicit_submit
        self.editable_fields = tuple(editable_fields)
        self.title = title
        self.link = link

    def is_finalized(self, record) -> bool:
        if self.model is FormSubmission:
            return record.status in ('approved', 'rejected', 'history')
        return record.status == 'approved' or record.verification_status == 'Rejected'

    def effective_status(self, record) -> str:
        if self.implicit_submit and record.status == 'draft' and record.verification_status == 'Pending':
            return 'submitted'
        return record.status

    def is_locked_by_other(self, record, reviewer_id) -> bool:
        if record.status not in self.lock_statuses:
            return False
        if not record.verified_by or str(record.verified_by) == str(reviewer_id):
            return False
        if self.lock_requires_pending and record.verification_status != 'Pending':
            return False
        return True

    def can_reopen(self, record) -> bool:
        if self.model is FormSubmission:
            return record.status in ('draft', 'rejected')
        return record.status == 'draft' or record.verification_status == 'Rejected'


FORM_RULES = WorkflowRules(
    model=FormSubmission,
    label='Form submission',
    audit_action=AuditAction.FORM_REVIEWED,
    targets={
        REVIEW: ('under_review', 'Pending'),
        APPROVE: ('approved', 'Verified'),
        REJECT: ('rejected', 'Rejected'),
    },
    allowed_from=('submitted', 'under_review', 'reviewed'),
    lock_statuses=('reviewed', 'under_review'),
    lock_requires_pending=False,
    implicit_submit=False,
    editable_fields=('answers', 'is_livable', 'household_owner_id'),
    title='Pembaruan Status Survei Rumah',
    link='/housing-data?submissionId={id}',
)

FACILITY_RULES = WorkflowRules(
    model=FacilitySurvey,
    label='Facility survey',
    audit_action=AuditAction.VERIFY,
    targets={
        REVIEW: ('verified', 'Pending'),
        APPROVE: ('approved', 'Verified'),
        # rejection keeps the survey in "verified"; the Rejected flag finalizes it
        REJECT: ('verified', 'Rejected'),
    },
    allowed_from=('submitted', 'verified'),
    lock_statuses=('verified',),
    lock_requires_pending=True,
    implicit_submit=True,
    editable_fields=('survey_year', 'survey_period', 'latitude', 'longitude'),
    title='Pembaruan Status Infrastruktur',
    link='/infrastructure-data?surveyId={id}',
)

HOUSING_DEVELOPMENT_RULES = WorkflowRules(
    model=HousingDevelopment,
    label='Housing development',
    audit_action=AuditAction.VERIFY,
    targets={
        REVIEW: ('under_review', 'Pending'),
        APPROVE: ('approved', 'Verified'),
        REJECT: ('rejected', 'Rejected'),
    },
    allowed_from=('submitted', 'under_review', 'verified'),
    lock_statuses=('under_review', 'verified'),
    lock_requires_pending=True,
    implicit_submit=True,
    editable_fields=('development_name', 'developer_name', 'housing_type',
                     'planned_unit_count', 'land_area', 'latitude', 'longitude'),
    title='Pembaruan Status Perumahan',
    link='/housing-development?developmentId={id}',
)

RULES_BY_MODEL = {
    FormSubmission: FORM_RULES,
    FacilitySurvey: FACILITY_RULES,
    HousingDevelopment: HOUSING_DEVELOPMENT_RULES,
}


def rules_for(record_or_model) -> WorkflowRules:
    model = record_or_model if isinstance(record_or_model, type) else type(record_or_model)
    rules = RULES_BY_MODEL.get(model)
    if rules is None:
        raise ValidationError(f'{model.__name__} is not reviewable')
    return rules


def normalize_action(action) -> str:
    return ACTION_ALIASES.get(str(action or '').strip().lower(), '')


def _clean_notes(notes) -> Optional[str]:
    if notes is None:
        return None
    notes = str(notes).strip()
    return notes or None


# ============================================================================
# PLANNING (pure)
# ============================================================================

def plan_transition(record, action, reviewer, notes=None) -> TransitionPlan:
    """Validate a review action against the record's current state.

    Raises ConflictError / ValidationError; never touches the session.
    """
    rules = rules_for(record)

    if rules.is_finalized(record):
        raise ConflictError(f'{rules.label} has already been finalized', code='ALREADY_FINALIZED')

    raw_action = str(action or '').strip().lower()
    if not raw_action:
        raise ValidationError('Status review wajib diisi', field='action')

    notes = _clean_notes(notes)
    canonical = normalize_action(raw_action)
    if canonical == REJECT and not notes:
        raise ValidationError('Alasan penolakan wajib diisi.', field='notes')

    reviewer_id = getattr(reviewer, 'id', reviewer)
    if rules.is_locked_by_other(record, reviewer_id) and not roles.is_super_admin(reviewer):
        raise ConflictError(f'{rules.label} sedang ditinjau oleh verifikator lain', code='REVIEW_LOCKED')

    if not canonical:
        raise ValidationError('Invalid status for review', field='action')

    if rules.effective_status(record) not in rules.allowed_from:
        raise ConflictError(
            f'{rules.label} cannot be {STATUS_LABELS[canonical]} from status {record.status}',
            code='INVALID_TRANSITION',
        )

    status, verification_status = rules.targets[canonical]
    supersede_owner_id = None
    if rules.model is FormSubmission and status == 'approved':
        supersede_owner_id = record.household_owner_id

    return TransitionPlan(canonical, status, verification_status, notes, supersede_owner_id)


# ============================================================================
# COMMIT (transactional)
# ============================================================================

def _state_guard(model, record_id, seen: Dict[str, Optional[str]]):
    clauses = [
        model.id == record_id,
        model.status == seen['status'],
        model.verification_status == seen['verification_status'],
    ]
    if seen['verified_by'] is None:
        clauses.append(model.verified_by.is_(None))
    else:
        clauses.append(model.verified_by == seen['verified_by'])
    return clauses


def _guarded_update(model, record_id, seen, values) -> None:
    stmt = (
        update(model)
        .where(*_state_guard(model, record_id, seen))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise ConflictError('Record was changed by another reviewer; reload and try again',
                            code='CONCURRENT_UPDATE')


def _lock_household_owner(owner_id) -> None:
    """Serialize approvals for one household owner until the transaction ends."""
    db.session.query(HouseholdOwner.id).filter(HouseholdOwner.id == owner_id).with_for_update().one_or_none()


def _supersede(owner_id, keep_id, now, reviewer_id=None, actor_role=None) -> list:
    ids = [
        row_id for (row_id,) in db.session.query(FormSubmission.id).filter(
            FormSubmission.household_owner_id == owner_id,
            FormSubmission.id != keep_id,
            FormSubmission.status == 'approved',
        )
    ]
    if ids:
        db.session.execute(
            update(FormSubmission)
            .where(FormSubmission.id.in_(ids), FormSubmission.status == 'approved')
            .values(status='history', updated_at=now)
            .execution_options(synchronize_session=False)
        )
        for row_id in ids:
            record_audit(
                user_id=reviewer_id,
                action=AuditAction.SUPERSEDE,
                resource_type=FormSubmission.resource_type,
                resource_id=row_id,
                old_values={'status': 'approved'},
                new_values={'status': 'history', 'superseded_by': keep_id},
                actor_role=actor_role,
            )
        current_app.logger.info(
            f"Superseded {len(ids)} approved submission(s) of household owner {owner_id}"
        )
    return ids


def apply_transition(record, plan: TransitionPlan, reviewer, seen: Dict[str, Optional[str]]):
    """Write ``plan`` if the row still matches ``seen``; stage supersession and audit.

    Returns ``(audit_entry, superseded_ids)``.

    Runs inside the caller's transaction and does not commit. Raises
    ConflictError when another reviewer changed the row first.
    """
    rules = rules_for(record)
    model = rules.model
    reviewer_id = getattr(reviewer, 'id', reviewer)
    now = utc_now()
    actor_role = roles.primary_role_group(reviewer) or None

    if plan.supersede_owner_id:
        _lock_household_owner(plan.supersede_owner_id)

    old_values = {
        'status': seen['status'],
        'verification_status': seen['verification_status'],
        'verified_by': seen['verified_by'],
        'review_notes': record.review_notes,
        'verified_at': record.verified_at.isoformat() if record.verified_at else None,
    }

    _guarded_update(model, record.id, seen, {
        'status': plan.status,
        'verification_status': plan.verification_status,
        'verified_by': reviewer_id,
        'verified_at': now,
        'review_notes': plan.notes,
        'updated_at': now,
    })

    superseded_ids = []
    if plan.supersede_owner_id:
        superseded_ids = _supersede(plan.supersede_owner_id, record.id, now, reviewer_id, actor_role)

    new_values = {
        'status': plan.status,
        'verification_status': plan.verification_status,
        'verified_by': reviewer_id,
        'review_notes': plan.notes,
        'verified_at': now.isoformat(),
    }
    if superseded_ids:
        new_values['superseded_ids'] = superseded_ids

    return record_audit(
        user_id=reviewer_id,
        action=rules.audit_action,
        resource_type=model.resource_type,
        resource_id=record.id,
        old_values=old_values,
        new_values=new_values,
        notes=plan.notes,
        actor_role=actor_role,
    ), superseded_ids


def _lock_row(model, record_id):
    return (
        db.session.query(model)
        .filter(model.id == record_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )


def transition_review(record, action, reviewer, notes=None) -> TransitionResult:
    """Move ``record`` through its review workflow on behalf of ``reviewer``.

    The row is re-read under ``SELECT ... FOR UPDATE`` and the plan is
    computed from that fresh state; the conditional UPDATE then guarantees
    at most one of several concurrent reviewers commits.
    """
    rules = rules_for(record)
    model = rules.model
    record_id = record.id

    try:
        locked = _lock_row(model, record_id)
        if locked is None:
            raise NotFoundError(f'{rules.label} not found')
        seen = locked.review_state()
        plan = plan_transition(locked, action, reviewer, notes)
        audit_entry, superseded_ids = apply_transition(locked, plan, reviewer, seen)
        audit_id = audit_entry.id
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Review transition on {model.resource_type}:{record_id} failed: {e}")
        raise DatabaseError('Failed to save review') from e

    updated = db.session.get(model, record_id)
    _notify_author(rules, updated, plan, audit_id)

    return TransitionResult(plan.status, plan.verification_status, updated, superseded_ids)


def _notify_author(rules, record, plan, audit_id):
    label = STATUS_LABELS[plan.action]
    message = f"{rules.label} Anda {label}."
    if plan.notes:
        message = f"{message} Catatan: {plan.notes}"
    notify_best_effort(
        [record.created_by],
        type={APPROVE: 'success', REJECT: 'warning'}.get(plan.action, 'info'),
        category='status',
        title=rules.title,
        message=message,
        link=rules.link.format(id=record.id),
        audit_log_id=audit_id,
    )


def review_form_submission(submission, action, reviewer, notes=None) -> TransitionResult:
    return transition_review(submission, action, reviewer, notes)


def verify_facility_survey(survey, action, reviewer, notes=None) -> TransitionResult:
    return transition_review(survey, action, reviewer, notes)


def verify_housing_development(development, action, reviewer, notes=None) -> TransitionResult:
    return transition_review(development, action, reviewer, notes)


# ============================================================================
# AUTHOR-SIDE FLOWS
# ============================================================================

def _require_owner(record, user):
    if user is None or not record.created_by or str(record.created_by) != str(getattr(user, 'id', user)):
        raise AuthorizationError()


def _author_update(record, user, allowed, values, audit_action, audit_new_values):
    rules = rules_for(record)
    model = rules.model
    record_id = record.id
    try:
        locked = _lock_row(model, record_id)
        if locked is None:
            raise NotFoundError(f'{rules.label} not found')
        _require_owner(locked, user)
        if not allowed(rules, locked):
            raise ConflictError(f'{rules.label} cannot be submitted from status {locked.status}',
                                code='INVALID_TRANSITION')
        seen = locked.review_state()
        _guarded_update(model, record_id, seen, values)
        audit_entry = record_audit(
            user_id=locked.created_by,
            action=audit_action,
            resource_type=model.resource_type,
            resource_id=record_id,
            old_values=seen,
            new_values=audit_new_values,
            actor_role=roles.primary_role_group(user) or None,
        )
        audit_id = audit_entry.id
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Submission of {model.resource_type}:{record_id} failed: {e}")
        raise DatabaseError('Failed to submit record') from e

    updated = db.session.get(model, record_id)
    reviewers = find_reviewers_for_scope(updated.jurisdiction)
    notify_best_effort(
        [reviewer.id for reviewer in reviewers if reviewer.id != updated.created_by],
        type='info',
        category='verification',
        title=f'{rules.label} baru',
        message=f'{rules.label} menunggu verifikasi.',
        link=rules.link.format(id=record_id),
        audit_log_id=audit_id,
    )
    return updated


def submit_record(record, user):
    """Author submits a draft for review."""
    now = utc_now()
    return _author_update(
        record,
        user,
        allowed=lambda rules, locked: locked.status == 'draft',
        values={'status': 'submitted', 'submitted_at': now, 'updated_at': now},
        audit_action=AuditAction.SUBMIT,
        audit_new_values={'status': 'submitted'},
    )


def resubmit_record(record, user, changes: Optional[dict] = None):
    """Author edits a draft or rejected record and sends it back for review.

    Only the entity's whitelisted fields are taken from ``changes``; review
    fields are cleared.
    """
    rules = rules_for(record)
    changes = changes or {}
    unknown = set(changes) - set(rules.editable_fields)
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    now = utc_now()
    values = dict(changes)
    values.update({
        'status': 'submitted',
        'verification_status': 'Pending',
        'submitted_at': now,
        'verified_by': None,
        'verified_at': None,
        'review_notes': None,
        'updated_at': now,
    })
    return _author_update(
        record,
        user,
        allowed=lambda r, locked: r.can_reopen(locked),
        values=values,
        audit_action=AuditAction.RESUBMIT,
        audit_new_values={'status': 'submitted', 'verification_status': 'Pending',
                          'changed_fields': sorted(changes)},
    )
