"""Village facility survey model."""
from apps.api import db
from apps.api.models.base import generate_id
from apps.api.models.reviewable import ReviewableMixin


SURVEY_PERIODS = ('q1', 'q2', 'q3', 'q4', 'annual', 'adhoc')


class FacilitySurvey(ReviewableMixin, db.Model):
    __tablename__ = 'facility_surveys'

    # "verified" is this entity's in-review state; rejection keeps it.
    STATUSES = ('draft', 'submitted', 'verified', 'approved')
    resource_type = 'facility_survey'
    permission_resource = 'facility'

    id = db.Column(db.String(12), primary_key=True, default=generate_id)
    survey_year = db.Column(db.Integer, nullable=False)
    survey_period = db.Column(db.String(10), nullable=False, default='annual')

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    geom = db.Column(db.JSON, nullable=True)

    __table_args__ = (
        db.Index('idx_facility_surveys_status', 'status'),
        db.Index('idx_facility_surveys_village', 'village_id'),
    )

    def __repr__(self):
        return f'<FacilitySurvey {self.id} {self.status}>'

    def to_dict(self):
        data = self.review_dict()
        data.update({
            'survey_year': self.survey_year,
            'survey_period': self.survey_period,
            'latitude': self.latitude,
            'longitude': self.longitude,
        })
        return data
