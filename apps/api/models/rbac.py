"""Role-based access control models.

Role <-> Permission is many-to-many through RolePermission (a grant);
User <-> Role through UserRole. Both join tables carry ``is_active`` and an
optional ``expires_at``; a grant is void once either is off or expired.
"""
from apps.api import db
from apps.api.models.base import generate_id
from apps.api.utils.time import utc_now


PERMISSION_SCOPES = ('own', 'location', 'inherited', 'all')


class Role(db.Model):
    __tablename__ = 'roles'

    id = db.Column(db.String(12), primary_key=True, default=generate_id)
    name = db.Column(db.String(50), unique=True, nullable=False)
    display_name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    grants = db.relationship('RolePermission', backref='role', lazy='dynamic',
                             cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Role {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'display_name': self.display_name,
            'is_active': self.is_active,
        }


class Permission(db.Model):
    __tablename__ = 'permissions'

    id = db.Column(db.String(12), primary_key=True, default=generate_id)
    # resource:action, e.g. "housing:verify"
    name = db.Column(db.String(100), unique=True, nullable=False)
    display_name = db.Column(db.String(150), nullable=False)
    resource = db.Column(db.String(50), nullable=False)
    action = db.Column(db.String(50), nullable=False)
    scope = db.Column(db.String(20), nullable=False, default='location')
    is_critical = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    grants = db.relationship('RolePermission', backref='permission', lazy='dynamic',
                             cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Permission {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'resource': self.resource,
            'action': self.action,
            'scope': self.scope,
            'is_critical': self.is_critical,
        }


class RolePermission(db.Model):
    __tablename__ = 'role_permissions'

    id = db.Column(db.String(12), primary_key=True, default=generate_id)
    role_id = db.Column(db.String(12), db.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    permission_id = db.Column(db.String(12), db.ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    granted_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
        db.Index('idx_role_permissions_role', 'role_id'),
    )


class UserRole(db.Model):
    __tablename__ = 'user_roles'

    id = db.Column(db.String(12), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(12), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    role_id = db.Column(db.String(12), db.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    assigned_by = db.Column(db.String(12), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    assigned_at = db.Column(db.DateTime, default=utc_now)

    role = db.relationship('Role')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
        db.Index('idx_user_roles_user', 'user_id'),
    )
