"""URL entity names of the reviewable records and the grants each action needs."""
from collections import namedtuple

from apps.api.models.facility import FacilitySurvey
from apps.api.models.housing_development import HousingDevelopment
from apps.api.models.submission import FormSubmission
from apps.api.utils.errors import NotFoundError

Entity = namedtuple('Entity', ['name', 'model', 'read', 'review', 'submit'])


def _entity(name, model, review_actions):
    resource = model.permission_resource
    return Entity(
        name=name,
        model=model,
        read=(f'{resource}:read',),
        review=tuple(f'{resource}:{action}' for action in review_actions),
        submit=(f'{resource}:create', f'{resource}:update'),
    )


ENTITIES = {
    'form_submission': _entity('form_submission', FormSubmission, ('review', 'approve')),
    'facility_survey': _entity('facility_survey', FacilitySurvey, ('verify', 'approve')),
    'housing_development': _entity('housing_development', HousingDevelopment, ('verify', 'approve')),
}

ALIASES = {
    'housing': 'form_submission',
    'form-submissions': 'form_submission',
    'facility': 'facility_survey',
    'facility-surveys': 'facility_survey',
    'housing-developments': 'housing_development',
}


def get_entity(name: str) -> Entity:
    key = str(name or '').strip().lower()
    entity = ENTITIES.get(ALIASES.get(key, key))
    if entity is None:
        raise NotFoundError(f'Unknown entity: {name}')
    return entity
