"""
Wilayah Review - Database Models
Import all models here for Flask-Migrate to detect them
"""
from apps.api import db

# Base model will be imported by other models
Base = db.Model

# Import all models to register them with SQLAlchemy
from .location import Province, Regency, District, Village
from .user import User
from .rbac import Role, Permission, RolePermission, UserRole
from .submission import HouseholdOwner, FormSubmission
from .facility import FacilitySurvey
from .housing_development import HousingDevelopment
from .spatial_layer import SpatialLayer
from .audit import AuditLog
from .notification import Notification

__all__ = [
    'Province',
    'Regency',
    'District',
    'Village',
    'User',
    'Role',
    'Permission',
    'RolePermission',
    'UserRole',
    'HouseholdOwner',
    'FormSubmission',
    'FacilitySurvey',
    'HousingDevelopment',
    'SpatialLayer',
    'AuditLog',
    'Notification',
]
