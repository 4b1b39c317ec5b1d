"""
Review workflow tests.

Goal: per-entity transition tables hold, a record in review is locked to its
reviewer, concurrent writers cannot both win, and approvals supersede only
the same household owner's older approvals.
"""
from unittest import mock

import pytest

from apps.api import db
from apps.api.models.audit import AuditLog
from apps.api.models.facility import FacilitySurvey
from apps.api.models.housing_development import HousingDevelopment
from apps.api.models.notification import Notification
from apps.api.models.submission import FormSubmission, HouseholdOwner
from apps.api.utils import review_workflow
from apps.api.utils.errors import AuthorizationError, ConflictError, ValidationError
from apps.api.utils.review_workflow import (
    apply_transition,
    plan_transition,
    resubmit_record,
    review_form_submission,
    submit_record,
    transition_review,
    verify_facility_survey,
    verify_housing_development,
)


@pytest.fixture
def people(make_user, locations):
    author = make_user(user_level='citizen')
    first = make_user(role='verifikator', user_level='province')
    second = make_user(role='verifikator', user_level='province')
    boss = make_user(role='super_admin', user_level='province')
    return author, first, second, boss


def _submission(author, locations, status='submitted', **fields):
    submission = FormSubmission(created_by=author.id, status=status,
                                regency_id=locations.bangka_id, village_id=locations.sungailiat_id, **fields)
    db.session.add(submission)
    db.session.commit()
    return submission


def test_form_review_then_approve(people, locations):
    author, verifier, _, _ = people
    submission = _submission(author, locations)

    result = review_form_submission(submission, 'reviewed', verifier)
    assert (result.status, result.verification_status) == ('under_review', 'Pending')
    assert result.record.verified_by == verifier.id

    result = review_form_submission(submission, 'approve', verifier, notes='  lengkap  ')
    assert (result.status, result.verification_status) == ('approved', 'Verified')
    assert result.record.review_notes == 'lengkap'
    assert result.record.verified_at is not None

    actions = [row.action for row in AuditLog.query.order_by(AuditLog.id)]
    assert actions == ['form_reviewed', 'form_reviewed']
    last = AuditLog.query.order_by(AuditLog.id.desc()).first()
    assert last.old_values['status'] == 'under_review'
    assert last.new_values['status'] == 'approved'
    assert last.actor_role == 'verifikator'


def test_finalized_record_cannot_move(people, locations):
    author, verifier, _, boss = people
    submission = _submission(author, locations, status='approved')

    with pytest.raises(ConflictError):
        review_form_submission(submission, 'rejected', boss, notes='late')
    assert AuditLog.query.count() == 0


def test_reject_requires_notes_for_everyone(people, locations):
    author, verifier, _, boss = people
    submission = _submission(author, locations)

    for reviewer in (verifier, boss):
        with pytest.raises(ValidationError):
            review_form_submission(submission, 'rejected', reviewer, notes='   ')
    db.session.refresh(submission)
    assert submission.status == 'submitted'


def test_empty_and_unknown_actions(people, locations):
    author, verifier, _, _ = people
    submission = _submission(author, locations)

    with pytest.raises(ValidationError):
        review_form_submission(submission, '', verifier)
    with pytest.raises(ValidationError):
        review_form_submission(submission, 'archive', verifier)


def test_draft_form_cannot_be_reviewed(people, locations):
    author, verifier, _, _ = people
    submission = _submission(author, locations, status='draft')

    with pytest.raises(ConflictError):
        review_form_submission(submission, 'approve', verifier)


def test_review_lock_blocks_other_verifier_but_not_super_admin(people, locations):
    author, first, second, boss = people
    submission = _submission(author, locations)
    review_form_submission(submission, 'under_review', first)

    with pytest.raises(ConflictError) as excinfo:
        review_form_submission(submission, 'approve', second)
    assert excinfo.value.code == 'REVIEW_LOCKED'

    result = review_form_submission(submission, 'rejected', boss, notes='Data tidak valid')
    assert result.status == 'rejected'
    assert result.record.verified_by == boss.id


def test_stale_plan_loses_the_race(people, locations):
    author, first, second, _ = people
    submission = _submission(author, locations)

    seen = submission.review_state()
    stale_plan = plan_transition(submission, 'approve', second)

    review_form_submission(submission, 'under_review', first)

    with pytest.raises(ConflictError) as excinfo:
        apply_transition(submission, stale_plan, second, seen)
    assert excinfo.value.code == 'CONCURRENT_UPDATE'
    db.session.rollback()

    db.session.refresh(submission)
    assert submission.status == 'under_review'
    assert submission.verified_by == first.id


def test_approval_supersedes_same_owner_only(people, locations):
    author, verifier, _, _ = people
    owner = HouseholdOwner(owner_name='Budi', village_id=locations.sungailiat_id)
    neighbour = HouseholdOwner(owner_name='Sari', village_id=locations.sungailiat_id)
    db.session.add_all([owner, neighbour])
    db.session.commit()

    old = _submission(author, locations, status='approved', household_owner_id=owner.id)
    other = _submission(author, locations, status='approved', household_owner_id=neighbour.id)
    fresh = _submission(author, locations, household_owner_id=owner.id)

    result = review_form_submission(fresh, 'approved', verifier)

    assert result.superseded_ids == [old.id]
    assert db.session.get(FormSubmission, old.id).status == 'history'
    assert db.session.get(FormSubmission, other.id).status == 'approved'
    assert db.session.get(FormSubmission, fresh.id).status == 'approved'
    audit = AuditLog.query.filter_by(resource_id=fresh.id).one()
    assert audit.new_values['superseded_ids'] == [old.id]

    moved = AuditLog.query.filter_by(resource_id=old.id).one()
    assert moved.action == 'SUPERSEDE'
    assert moved.user_id == verifier.id
    assert moved.old_values == {'status': 'approved'}
    assert moved.new_values == {'status': 'history', 'superseded_by': fresh.id}
    assert AuditLog.query.filter_by(resource_id=other.id).count() == 0


def test_second_approval_after_stale_read_supersedes_the_first(people, locations):
    author, first, second, _ = people
    owner = HouseholdOwner(owner_name='Budi', village_id=locations.sungailiat_id)
    db.session.add(owner)
    db.session.commit()
    early = _submission(author, locations, household_owner_id=owner.id)
    late = _submission(author, locations, household_owner_id=owner.id)

    # Both reviewers read and plan before either approval lands.
    early_seen, late_seen = early.review_state(), late.review_state()
    early_plan = plan_transition(early, 'approve', first)
    late_plan = plan_transition(late, 'approve', second)

    apply_transition(early, early_plan, first, early_seen)
    db.session.commit()
    _, superseded = apply_transition(late, late_plan, second, late_seen)
    db.session.commit()

    assert superseded == [early.id]
    approved = FormSubmission.query.filter_by(household_owner_id=owner.id, status='approved').all()
    assert [s.id for s in approved] == [late.id]


def test_owner_row_is_locked_before_supersession(people, locations):
    author, verifier, _, _ = people
    owner = HouseholdOwner(owner_name='Budi', village_id=locations.sungailiat_id)
    db.session.add(owner)
    db.session.commit()
    submission = _submission(author, locations, household_owner_id=owner.id)

    calls = []
    lock_owner = review_workflow._lock_household_owner
    supersede = review_workflow._supersede
    with mock.patch.object(review_workflow, '_lock_household_owner',
                           side_effect=lambda owner_id: calls.append(('lock', owner_id)) or lock_owner(owner_id)), \
            mock.patch.object(review_workflow, '_supersede',
                              side_effect=lambda *args: calls.append(('supersede', args[0])) or supersede(*args)):
        review_form_submission(submission, 'approved', verifier)

    assert calls == [('lock', owner.id), ('supersede', owner.id)]


def test_review_without_owner_takes_no_owner_lock(people, locations):
    author, verifier, _, _ = people
    submission = _submission(author, locations)

    with mock.patch.object(review_workflow, '_lock_household_owner') as lock_owner:
        review_form_submission(submission, 'under_review', verifier)
        review_form_submission(submission, 'approved', verifier)
    lock_owner.assert_not_called()


def test_facility_survey_table(people, locations):
    author, verifier, second, _ = people
    survey = FacilitySurvey(survey_year=2025, created_by=author.id, status='draft',
                            village_id=locations.sungailiat_id)
    db.session.add(survey)
    db.session.commit()

    # A Pending draft counts as submitted.
    result = verify_facility_survey(survey, 'verified', verifier)
    assert (result.status, result.verification_status) == ('verified', 'Pending')

    with pytest.raises(ConflictError):
        verify_facility_survey(survey, 'approve', second)

    result = verify_facility_survey(survey, 'reject', verifier, notes='Foto buram')
    assert (result.status, result.verification_status) == ('verified', 'Rejected')

    with pytest.raises(ConflictError):
        verify_facility_survey(survey, 'approve', verifier)
    assert AuditLog.query.filter_by(resource_type='facility_survey', action='VERIFY').count() == 2


def test_housing_development_table(people, locations):
    author, verifier, _, _ = people
    development = HousingDevelopment(development_name='Griya Permai', created_by=author.id,
                                     status='submitted', regency_id=locations.bangka_id)
    db.session.add(development)
    db.session.commit()

    result = verify_housing_development(development, 'review', verifier)
    assert result.status == 'under_review'

    result = verify_housing_development(development, 'rejected', verifier, notes='Izin belum ada')
    assert (result.status, result.verification_status) == ('rejected', 'Rejected')

    with pytest.raises(ConflictError):
        verify_housing_development(development, 'approve', verifier)


def test_author_is_notified_after_commit(people, locations):
    author, verifier, _, _ = people
    submission = _submission(author, locations)

    review_form_submission(submission, 'approved', verifier, notes='OK')

    notification = Notification.query.filter_by(user_id=author.id).one()
    assert notification.type == 'success'
    assert notification.category == 'status'
    assert notification.title == 'Pembaruan Status Survei Rumah'
    assert f'submissionId={submission.id}' in notification.link
    assert 'Catatan: OK' in notification.message
    assert notification.audit_log_id == AuditLog.query.one().id


def test_notification_failure_keeps_transition(people, locations):
    author, verifier, _, _ = people
    submission = _submission(author, locations)

    with mock.patch('apps.api.utils.notifications.create_notification', side_effect=RuntimeError('boom')):
        result = transition_review(submission, 'approve', verifier)

    assert result.status == 'approved'
    assert db.session.get(FormSubmission, submission.id).status == 'approved'
    assert AuditLog.query.count() == 1
    assert Notification.query.count() == 0


def test_submit_and_resubmit(people, locations, make_user):
    author, verifier, _, _ = people
    village_admin = make_user(role='admin_desa', user_level='village', assigned_village_id=locations.sungailiat_id)
    submission = _submission(author, locations, status='draft')

    with pytest.raises(AuthorizationError):
        submit_record(submission, verifier)

    updated = submit_record(submission, author)
    assert updated.status == 'submitted'
    assert updated.submitted_at is not None

    with pytest.raises(ConflictError):
        submit_record(updated, author)

    # Reviewers of the area hear about it.
    notified = {n.user_id for n in Notification.query.filter_by(category='verification')}
    assert {verifier.id, village_admin.id} <= notified

    review_form_submission(updated, 'rejected', verifier, notes='Lengkapi foto')
    with pytest.raises(ValidationError):
        resubmit_record(updated, author, {'status': 'approved'})

    updated = resubmit_record(updated, author, {'is_livable': True})
    assert (updated.status, updated.verification_status) == ('submitted', 'Pending')
    assert updated.is_livable is True
    assert updated.verified_by is None and updated.review_notes is None

    actions = [row.action for row in AuditLog.query.order_by(AuditLog.id)]
    assert actions == ['SUBMIT', 'form_reviewed', 'form_resubmitted']


def test_facility_survey_resubmits_after_rejection(people, locations):
    author, verifier, _, _ = people
    survey = FacilitySurvey(survey_year=2024, created_by=author.id, status='verified',
                            verification_status='Rejected', verified_by=verifier.id,
                            review_notes='Ulangi', village_id=locations.sungailiat_id)
    db.session.add(survey)
    db.session.commit()

    updated = resubmit_record(survey, author, {'survey_year': 2025})
    assert (updated.status, updated.verification_status) == ('submitted', 'Pending')
    assert updated.survey_year == 2025

    result = verify_facility_survey(updated, 'approve', verifier)
    assert result.status == 'approved'


def test_action_aliases_are_shared():
    assert review_workflow.normalize_action('Verified') == review_workflow.REVIEW
    assert review_workflow.normalize_action('approved') == review_workflow.APPROVE
    assert review_workflow.normalize_action(' REJECT ') == review_workflow.REJECT
    assert review_workflow.normalize_action('archive') == ''
