"""Columns shared by every record that goes through review."""
from sqlalchemy.orm import declared_attr

from apps.api import db
from apps.api.utils.time import utc_now


VERIFICATION_STATUSES = ('Pending', 'Verified', 'Rejected')


class JurisdictionMixin:
    """province/regency/district/village foreign keys."""

    @declared_attr
    def province_id(cls):
        return db.Column(db.String(20), db.ForeignKey('provinces.id', ondelete='SET NULL'), nullable=True)

    @declared_attr
    def regency_id(cls):
        return db.Column(db.String(20), db.ForeignKey('regencies.id', ondelete='SET NULL'), nullable=True)

    @declared_attr
    def district_id(cls):
        return db.Column(db.String(20), db.ForeignKey('districts.id', ondelete='SET NULL'), nullable=True)

    @declared_attr
    def village_id(cls):
        return db.Column(db.String(20), db.ForeignKey('villages.id', ondelete='SET NULL'), nullable=True)

    @property
    def jurisdiction(self):
        return {
            'province_id': self.province_id,
            'regency_id': self.regency_id,
            'district_id': self.district_id,
            'village_id': self.village_id,
        }


class ReviewableMixin(JurisdictionMixin):
    """Review state plus authorship.

    ``status`` vocabularies differ per entity; each model lists its own in
    ``STATUSES``.
    """

    STATUSES = ()
    # resource name used in audit rows and permission names
    resource_type = None

    status = db.Column(db.String(20), nullable=False, default='draft')
    verification_status = db.Column(db.String(20), nullable=False, default='Pending')

    @declared_attr
    def verified_by(cls):
        return db.Column(db.String(12), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    verified_at = db.Column(db.DateTime, nullable=True)
    review_notes = db.Column(db.Text, nullable=True)

    @declared_attr
    def created_by(cls):
        return db.Column(db.String(12), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    submitted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def review_state(self):
        return {
            'status': self.status,
            'verification_status': self.verification_status,
            'verified_by': self.verified_by,
        }

    def review_dict(self):
        return {
            'id': self.id,
            'status': self.status,
            'verification_status': self.verification_status,
            'verified_by': self.verified_by,
            'verified_at': self.verified_at.isoformat() if self.verified_at else None,
            'review_notes': self.review_notes,
            'created_by': self.created_by,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
            **self.jurisdiction,
        }
