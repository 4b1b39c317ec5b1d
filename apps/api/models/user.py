"""User model with administrative assignment and legacy inheritance flags."""
from apps.api import db
from apps.api.models.base import generate_id
from apps.api.utils.time import utc_now


USER_LEVELS = ('province', 'regency', 'district', 'village', 'citizen')
INHERITANCE_DEPTHS = ('direct', 'all_children')


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(12), primary_key=True, default=generate_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(100), nullable=False)

    # Legacy single-role column; effective roles also come from user_roles.
    role = db.Column(db.String(50), nullable=True)

    user_level = db.Column(db.String(20), nullable=False, default='citizen')
    assigned_province_id = db.Column(db.String(20), db.ForeignKey('provinces.id', ondelete='SET NULL'), nullable=True)
    assigned_regency_id = db.Column(db.String(20), db.ForeignKey('regencies.id', ondelete='SET NULL'), nullable=True)
    assigned_district_id = db.Column(db.String(20), db.ForeignKey('districts.id', ondelete='SET NULL'), nullable=True)
    assigned_village_id = db.Column(db.String(20), db.ForeignKey('villages.id', ondelete='SET NULL'), nullable=True)

    can_inherit_data = db.Column(db.Boolean, nullable=False, default=False)
    inheritance_depth = db.Column(db.String(20), nullable=False, default='direct')

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    user_roles = db.relationship(
        'UserRole',
        backref='user',
        lazy='dynamic',
        foreign_keys='UserRole.user_id',
        cascade='all, delete-orphan',
    )

    __table_args__ = (
        db.Index('idx_users_level', 'user_level'),
        db.Index('idx_users_assigned_regency', 'assigned_regency_id'),
        db.Index('idx_users_assigned_village', 'assigned_village_id'),
    )

    def assigned_id(self, level):
        """Return the assigned jurisdiction id at ``level`` (or None)."""
        if level not in ('province', 'regency', 'district', 'village'):
            return None
        return getattr(self, f'assigned_{level}_id')

    @property
    def assigned_jurisdiction(self):
        return {
            'province_id': self.assigned_province_id,
            'regency_id': self.assigned_regency_id,
            'district_id': self.assigned_district_id,
            'village_id': self.assigned_village_id,
        }

    def __repr__(self):
        return f'<User {self.email}>'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'user_level': self.user_level,
            'assigned_province_id': self.assigned_province_id,
            'assigned_regency_id': self.assigned_regency_id,
            'assigned_district_id': self.assigned_district_id,
            'assigned_village_id': self.assigned_village_id,
            'can_inherit_data': self.can_inherit_data,
            'inheritance_depth': self.inheritance_depth,
            'is_active': self.is_active,
        }
