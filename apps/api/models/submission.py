"""Household owner and housing form submission models."""
from apps.api import db
from apps.api.models.base import generate_id
from apps.api.models.reviewable import JurisdictionMixin, ReviewableMixin
from apps.api.utils.time import utc_now


class HouseholdOwner(JurisdictionMixin, db.Model):
    __tablename__ = 'household_owners'

    id = db.Column(db.String(12), primary_key=True, default=generate_id)
    owner_name = db.Column(db.String(150), nullable=False)
    # National id number; one authoritative approved submission per owner.
    nik = db.Column(db.String(20), nullable=True, index=True)
    house_address = db.Column(db.Text, nullable=True)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    # GeoJSON point; takes precedence over latitude/longitude
    geom = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    submissions = db.relationship('FormSubmission', backref='household_owner', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'owner_name': self.owner_name,
            'house_address': self.house_address,
            'latitude': self.latitude,
            'longitude': self.longitude,
            **self.jurisdiction,
        }


class FormSubmission(ReviewableMixin, db.Model):
    __tablename__ = 'form_submissions'

    STATUSES = ('draft', 'submitted', 'under_review', 'reviewed', 'approved', 'rejected', 'history')
    resource_type = 'form_submission'
    permission_resource = 'housing'

    id = db.Column(db.String(12), primary_key=True, default=generate_id)
    household_owner_id = db.Column(db.String(12), db.ForeignKey('household_owners.id', ondelete='SET NULL'),
                                   nullable=True)
    # Free-form answers, edited by the author while draft/rejected
    answers = db.Column(db.JSON, nullable=True)
    is_livable = db.Column(db.Boolean, nullable=True)

    __table_args__ = (
        db.Index('idx_form_submissions_status', 'status'),
        db.Index('idx_form_submissions_owner_status', 'household_owner_id', 'status'),
        db.Index('idx_form_submissions_village', 'village_id'),
        db.Index('idx_form_submissions_regency', 'regency_id'),
    )

    @property
    def point_source(self):
        return self.household_owner

    def __repr__(self):
        return f'<FormSubmission {self.id} {self.status}>'

    def to_dict(self):
        data = self.review_dict()
        data.update({
            'household_owner_id': self.household_owner_id,
            'answers': self.answers,
            'is_livable': self.is_livable,
        })
        return data
