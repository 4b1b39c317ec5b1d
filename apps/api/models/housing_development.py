"""Housing development (developer project) model."""
from apps.api import db
from apps.api.models.base import generate_id
from apps.api.models.reviewable import ReviewableMixin


class HousingDevelopment(ReviewableMixin, db.Model):
    __tablename__ = 'housing_developments'

    STATUSES = ('draft', 'submitted', 'under_review', 'verified', 'approved', 'rejected')
    resource_type = 'housing_development'
    permission_resource = 'housing_development'

    id = db.Column(db.String(12), primary_key=True, default=generate_id)
    development_name = db.Column(db.String(200), nullable=False)
    developer_name = db.Column(db.String(200), nullable=True)
    housing_type = db.Column(db.String(50), nullable=True)
    planned_unit_count = db.Column(db.Integer, nullable=True)
    land_area = db.Column(db.Float, nullable=True)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    geom = db.Column(db.JSON, nullable=True)

    __table_args__ = (
        db.Index('idx_housing_developments_status', 'status'),
        db.Index('idx_housing_developments_regency', 'regency_id'),
    )

    def __repr__(self):
        return f'<HousingDevelopment {self.development_name}>'

    def to_dict(self):
        data = self.review_dict()
        data.update({
            'development_name': self.development_name,
            'developer_name': self.developer_name,
            'housing_type': self.housing_type,
            'planned_unit_count': self.planned_unit_count,
            'land_area': self.land_area,
            'latitude': self.latitude,
            'longitude': self.longitude,
        })
        return data
