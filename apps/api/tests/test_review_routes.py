"""
Review and export endpoint tests.

Goal: routes enforce grants, role rules and jurisdiction before the workflow
runs, and exports never leak records outside the caller's scope.
"""
import pytest

from apps.api import db
from apps.api.models.facility import FacilitySurvey
from apps.api.models.submission import FormSubmission, HouseholdOwner


def _submission(author, village_id, regency_id, status='submitted', owner=None):
    submission = FormSubmission(created_by=author.id, status=status, village_id=village_id,
                                regency_id=regency_id, household_owner_id=owner.id if owner else None)
    db.session.add(submission)
    db.session.commit()
    return submission


def test_verifier_reviews_submission(client, make_user, auth_header, locations):
    author = make_user(user_level='citizen')
    verifier = make_user(role='verifikator', user_level='province')
    submission = _submission(author, locations.sungailiat_id, locations.bangka_id)

    resp = client.post(
        f'/api/reviews/form_submission/{submission.id}',
        json={'action': 'approved', 'notes': 'Sesuai'},
        headers=auth_header(verifier),
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['status'] == 'approved'
    assert body['record']['review_notes'] == 'Sesuai'

    resp = client.post(
        f'/api/reviews/housing/{submission.id}',
        json={'action': 'rejected', 'notes': 'Terlambat'},
        headers=auth_header(verifier),
    )
    assert resp.status_code == 409


def test_reject_without_notes_is_400(client, make_user, auth_header, locations):
    author = make_user(user_level='citizen')
    verifier = make_user(role='verifikator', user_level='province')
    submission = _submission(author, locations.sungailiat_id, locations.bangka_id)

    resp = client.post(f'/api/reviews/form_submission/{submission.id}', json={'action': 'rejected'},
                       headers=auth_header(verifier))
    assert resp.status_code == 400
    assert resp.get_json()['field'] == 'notes'


def test_village_admin_needs_grant_and_jurisdiction(client, make_user, grant, auth_header, locations):
    author = make_user(user_level='citizen')
    admin = make_user(role='admin_desa', user_level='village', assigned_village_id=locations.sungailiat_id)
    inside = _submission(author, locations.sungailiat_id, locations.bangka_id)
    outside = _submission(author, locations.batu_rusa_id, locations.bangka_id)

    resp = client.post(f'/api/reviews/form_submission/{inside.id}', json={'action': 'review'},
                       headers=auth_header(admin))
    assert resp.status_code == 403

    grant(admin, 'housing:review', role_name='admin_desa')
    resp = client.post(f'/api/reviews/form_submission/{outside.id}', json={'action': 'review'},
                       headers=auth_header(admin))
    assert resp.status_code == 403
    assert resp.get_json() == {'error': 'Access denied', 'code': 'AUTHORIZATION_ERROR'}

    resp = client.post(f'/api/reviews/form_submission/{inside.id}', json={'action': 'review'},
                       headers=auth_header(admin))
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'under_review'


def test_unknown_record_and_entity(client, make_user, auth_header, locations):
    verifier = make_user(role='verifikator', user_level='province')

    assert client.post('/api/reviews/form_submission/missing', json={'action': 'review'},
                       headers=auth_header(verifier)).status_code == 404
    assert client.post('/api/reviews/invoices/abc', json={'action': 'review'},
                       headers=auth_header(verifier)).status_code == 404


def test_requires_token(client, locations):
    resp = client.post('/api/reviews/form_submission/abc', json={'action': 'review'})
    assert resp.status_code == 401


def test_author_submits_through_route(client, make_user, grant, auth_header, locations):
    author = make_user(user_level='citizen')
    grant(author, 'facility:create', 'facility:update', role_name='surveyor')
    survey = FacilitySurvey(survey_year=2025, created_by=author.id, village_id=locations.sungailiat_id)
    db.session.add(survey)
    db.session.commit()

    resp = client.post(f'/api/reviews/facility_survey/{survey.id}/submit', headers=auth_header(author))
    assert resp.status_code == 200
    assert resp.get_json()['record']['status'] == 'submitted'

    resp = client.post(f'/api/reviews/facility_survey/{survey.id}/submit', headers=auth_header(author))
    assert resp.status_code == 409


def test_export_is_scoped_for_regency_admin(client, make_user, grant, auth_header, locations):
    author = make_user(user_level='citizen')
    admin = make_user(role='admin_kabupaten', user_level='regency', assigned_regency_id=locations.bangka_id)
    grant(admin, 'housing:read', role_name='admin_kabupaten')
    in_regency = _submission(author, locations.batu_rusa_id, locations.bangka_id)
    _submission(author, locations.air_itam_id, locations.pangkalpinang_id)

    resp = client.get('/api/exports/form_submission', headers=auth_header(admin))
    assert resp.status_code == 200
    body = resp.get_json()
    assert [r['id'] for r in body['records']] == [in_regency.id]
    assert body['filters'] == {'regency_id': locations.bangka_id}

    resp = client.get(f'/api/exports/form_submission?regency_id={locations.pangkalpinang_id}',
                      headers=auth_header(admin))
    assert resp.status_code == 403


def test_export_with_gis_layers(client, make_user, auth_header, boundaries):
    author = make_user(user_level='citizen')
    verifier = make_user(role='verifikator', user_level='province')
    owner = HouseholdOwner(owner_name='Budi', latitude=-1.87, longitude=106.07,
                           village_id=boundaries.sungailiat_id)
    db.session.add(owner)
    db.session.commit()
    flooded = _submission(author, boundaries.sungailiat_id, boundaries.bangka_id, owner=owner)
    _submission(author, boundaries.air_itam_id, boundaries.pangkalpinang_id)

    resp = client.get('/api/exports/form_submission?gisLayers=rawan_banjir&gisCategory=bencana',
                      headers=auth_header(verifier))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['gisLayerLabel'] == 'Bencana - Rawan Banjir'
    assert [(r['id'], r['gisAreaLabel']) for r in body['records']] == [(flooded.id, 'Bencana - Rawan Banjir')]

    resp = client.get('/api/exports/form_submission?gisLayers=bencana:tsunami', headers=auth_header(verifier))
    assert resp.status_code == 404
    assert resp.get_json()['code'] == 'LAYER_NOT_FOUND'

    resp = client.get('/api/exports/form_submission?gisLayers=rahasia:x', headers=auth_header(verifier))
    assert resp.status_code == 400


@pytest.mark.parametrize('raw', [',', 'bencana:', '%20'])
def test_blank_gis_layers_do_not_filter(client, make_user, auth_header, boundaries, raw):
    author = make_user(user_level='citizen')
    verifier = make_user(role='verifikator', user_level='province')
    submission = _submission(author, boundaries.air_itam_id, boundaries.pangkalpinang_id)

    resp = client.get(f'/api/exports/form_submission?gisLayers={raw}', headers=auth_header(verifier))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['gisLayerLabel'] is None
    assert [r['id'] for r in body['records']] == [submission.id]
    assert 'gisAreaLabel' not in body['records'][0]


def test_export_includes_records_tagged_below_the_regency(client, make_user, grant, auth_header, locations):
    admin = make_user(role='admin_kabupaten', user_level='regency', assigned_regency_id=locations.bangka_id)
    grant(admin, 'facility:read', role_name='admin_kabupaten')
    by_village = FacilitySurvey(survey_year=2025, village_id=locations.sungailiat_id)
    by_district = FacilitySurvey(survey_year=2025, district_id=locations.merawang_id)
    elsewhere = FacilitySurvey(survey_year=2025, village_id=locations.air_itam_id)
    db.session.add_all([by_village, by_district, elsewhere])
    db.session.commit()

    resp = client.get('/api/exports/facility_survey', headers=auth_header(admin))
    assert resp.status_code == 200
    assert {r['id'] for r in resp.get_json()['records']} == {by_village.id, by_district.id}

    resp = client.get(f'/api/exports/facility_survey?district_id={locations.merawang_id}',
                      headers=auth_header(admin))
    assert [r['id'] for r in resp.get_json()['records']] == [by_district.id]
