"""
Scope resolution tests.

Goal: every role resolves to the narrowest scope it is entitled to, and
export filters can never be widened past that scope.
"""
from datetime import timedelta

import pytest

from apps.api import db
from apps.api.models.facility import FacilitySurvey
from apps.api.models.submission import FormSubmission
from apps.api.utils.errors import AuthorizationError, ValidationError
from apps.api.utils.location_scope import (
    can_access_location,
    check_location_access,
    enforce_export_scope,
    resolve_scope,
)
from apps.api.utils.time import utc_now


def test_bypass_roles_see_everything(make_user, locations):
    verifier = make_user(role='verifikator', user_level='province')
    admin = make_user(roles=['super_admin'], user_level='province')

    for user in (verifier, admin):
        scope = resolve_scope(user)
        assert scope.bypass
        assert scope.as_filter() == {}
        assert scope.allows({'village_id': locations.air_itam_id})
        assert scope.allows(None)


def test_admin_kabupaten_gets_regency_subtree(make_user, locations):
    user = make_user(role='admin_kabupaten', user_level='regency', assigned_regency_id=locations.bangka_id)
    scope = resolve_scope(user)

    assert scope.kind == 'subtree'
    assert scope.as_filter() == {'regency_id': locations.bangka_id}
    # A village id alone is completed through the hierarchy.
    assert scope.allows({'village_id': locations.batu_rusa_id})
    assert scope.allows({'district_id': locations.sungailiat_district_id})
    assert not scope.allows({'village_id': locations.air_itam_id})


def test_admin_kabupaten_without_assignment_is_empty(make_user, locations):
    user = make_user(role='kabupaten_admin', user_level='regency')
    scope = resolve_scope(user)

    assert scope.empty
    assert not scope.allows({'regency_id': locations.bangka_id})


def test_admin_desa_is_exact_village(make_user, locations):
    user = make_user(role='admin-desa', user_level='village', assigned_village_id=locations.sungailiat_id)
    scope = resolve_scope(user)

    assert scope.kind == 'exact'
    assert scope.allows({'village_id': locations.sungailiat_id})
    assert not scope.allows({'village_id': locations.batu_rusa_id})
    # Same regency is not enough for a village admin.
    assert not scope.allows({'regency_id': locations.bangka_id})


def test_citizen_only_sees_own_records(make_user, locations):
    citizen = make_user(user_level='citizen')
    other = make_user(user_level='citizen')
    mine = FormSubmission(created_by=citizen.id, village_id=locations.sungailiat_id)
    theirs = FormSubmission(created_by=other.id, village_id=locations.sungailiat_id)
    db.session.add_all([mine, theirs])
    db.session.commit()

    scope = resolve_scope(citizen)
    assert scope.own_records_only
    assert scope.as_filter() == {'created_by': citizen.id}
    assert scope.allows(mine)
    assert not scope.allows(theirs)

    visible = scope.apply(FormSubmission.query, FormSubmission).all()
    assert [s.id for s in visible] == [mine.id]


def test_generic_level_matches_exact_node(make_user, locations):
    user = make_user(role='operator', user_level='district', assigned_district_id=locations.merawang_id)
    scope = resolve_scope(user)

    assert scope.kind == 'exact'
    assert scope.allows({'district_id': locations.merawang_id})
    assert not scope.allows({'district_id': locations.sungailiat_district_id})


def test_inactive_or_missing_user_gets_empty_scope(make_user, locations):
    inactive = make_user(role='verifikator', user_level='province', is_active=False)

    assert resolve_scope(inactive).empty
    assert resolve_scope(None).empty
    with pytest.raises(AuthorizationError):
        check_location_access(None, {'village_id': locations.sungailiat_id})


def test_expired_role_grant_does_not_bypass(make_user, grant, locations):
    user = make_user(user_level='village', assigned_village_id=locations.sungailiat_id)
    grant(user, role_name='verifikator', expires_at=utc_now() - timedelta(days=1))

    scope = resolve_scope(user)
    assert not scope.bypass
    assert scope.kind == 'exact'


def test_can_access_location_compares_own_level_only(make_user, locations):
    user = make_user(role='operator', user_level='regency', assigned_regency_id=locations.bangka_id,
                     can_inherit_data=True, inheritance_depth='all_children')

    assert can_access_location(user, {'regency_id': locations.bangka_id})
    # No downward walk even with inheritance switched on.
    assert not can_access_location(user, {'village_id': locations.batu_rusa_id})
    assert not can_access_location(user, {'regency_id': locations.pangkalpinang_id})


def test_export_scope_forces_regency_and_rejects_foreign_filters(make_user, locations):
    user = make_user(role='admin_kabupaten', user_level='regency', assigned_regency_id=locations.bangka_id)

    assert enforce_export_scope(user, {}) == {'regency_id': locations.bangka_id}
    assert enforce_export_scope(user, {'village_id': locations.batu_rusa_id}) == {
        'village_id': locations.batu_rusa_id,
        'regency_id': locations.bangka_id,
    }
    with pytest.raises(AuthorizationError):
        enforce_export_scope(user, {'village_id': locations.air_itam_id})
    with pytest.raises(AuthorizationError):
        enforce_export_scope(user, {'regency_id': locations.pangkalpinang_id})
    with pytest.raises(ValidationError):
        enforce_export_scope(user, {'district_id': 'DC9999'})


def test_export_scope_for_village_admin_and_citizen(make_user, locations):
    village_admin = make_user(role='admin_desa', user_level='village', assigned_village_id=locations.sungailiat_id)
    citizen = make_user(user_level='citizen')
    verifier = make_user(role='verifikator', user_level='province')

    assert enforce_export_scope(village_admin, {}) == {'village_id': locations.sungailiat_id}
    with pytest.raises(AuthorizationError):
        enforce_export_scope(village_admin, {'village_id': locations.batu_rusa_id})

    assert enforce_export_scope(citizen, {'village_id': 'anything'})['created_by'] == citizen.id
    assert enforce_export_scope(verifier, {'regency_id': locations.pangkalpinang_id}) == {
        'regency_id': locations.pangkalpinang_id,
    }


def test_regency_subtree_query_matches_allows(make_user, locations):
    user = make_user(role='admin_kabupaten', user_level='regency', assigned_regency_id=locations.bangka_id)
    tagged = [
        {'village_id': locations.sungailiat_id},
        {'district_id': locations.merawang_id},
        {'regency_id': locations.bangka_id},
        # The village's own regency wins over a stale regency column.
        {'village_id': locations.air_itam_id, 'regency_id': locations.bangka_id},
        {'village_id': locations.sungailiat_id, 'regency_id': locations.pangkalpinang_id},
        # An unknown village falls back to the next known id.
        {'village_id': 'VL9999', 'district_id': locations.merawang_id},
        {'village_id': 'VL9999', 'regency_id': locations.pangkalpinang_id},
        {'province_id': locations.province_id},
        {},
    ]
    surveys = [FacilitySurvey(survey_year=2025, **ids) for ids in tagged]
    db.session.add_all(surveys)
    db.session.commit()

    scope = resolve_scope(user)
    allowed = {s.id for s in surveys if scope.allows(s)}
    queried = {s.id for s in scope.apply(FacilitySurvey.query, FacilitySurvey).all()}

    assert queried == allowed
    assert allowed == {surveys[i].id for i in (0, 1, 2, 4, 5)}


def test_inherit_flag_adds_no_match(make_user, locations):
    plain = make_user(role='operator', user_level='district', assigned_district_id=locations.merawang_id)
    inheriting = make_user(role='operator', user_level='district', assigned_district_id=locations.merawang_id,
                           can_inherit_data=True, inheritance_depth='all_children')
    targets = [
        {'district_id': locations.merawang_id},
        {'regency_id': locations.bangka_id},
        {'province_id': locations.province_id},
        {'village_id': locations.batu_rusa_id},
        {'district_id': locations.sungailiat_district_id},
    ]

    assert [can_access_location(inheriting, t) for t in targets] == \
        [can_access_location(plain, t) for t in targets] == [True, False, False, False, False]
