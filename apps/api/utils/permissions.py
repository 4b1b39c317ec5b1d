"""
Permission evaluation.

``has_permission`` answers "does this user hold grant X" from the
user_roles -> role_permissions -> permissions join. ``can_access_resource``
answers "may this user act on that record" from the record's jurisdiction.
``authorize`` layers the fixed per-role rules on top and raises.

Nothing here writes to the database or logs a denial; callers audit the
grants they act on.
"""
from typing import Dict, Iterable, List, Union

from sqlalchemy import or_

from apps.api import db
from apps.api.models.rbac import Permission, RolePermission, UserRole
from apps.api.utils import roles
from apps.api.utils.errors import AuthorizationError
from apps.api.utils.hierarchy import complete_jurisdiction
from apps.api.utils.location_scope import resolve_scope
from apps.api.utils.time import utc_now


def _user_id(user):
    return getattr(user, 'id', user)


def _live_grants_query(user_id, now=None):
    now = now or utc_now()
    return (
        db.session.query(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(
            UserRole.user_id == user_id,
            UserRole.is_active.is_(True),
            RolePermission.is_active.is_(True),
            Permission.is_active.is_(True),
            or_(UserRole.expires_at.is_(None), UserRole.expires_at > now),
            or_(RolePermission.expires_at.is_(None), RolePermission.expires_at > now),
        )
    )


def has_permission(user, permission_name: str) -> bool:
    """True iff a live UserRole grants ``permission_name`` through a live RolePermission."""
    user_id = _user_id(user)
    if not user_id or not permission_name:
        return False
    row = _live_grants_query(user_id).filter(Permission.name == permission_name).first()
    return row is not None


def has_multiple_permissions(user, permission_names: Iterable[str]) -> Dict[str, bool]:
    """Independent checks, one entry per distinct name."""
    return {name: has_permission(user, name) for name in dict.fromkeys(permission_names or ())}


def has_any_permission(user, permission_names: Iterable[str]) -> bool:
    return any(has_multiple_permissions(user, permission_names).values())


def has_all_permissions(user, permission_names: Iterable[str]) -> bool:
    results = has_multiple_permissions(user, permission_names)
    return bool(results) and all(results.values())


def get_user_permissions(user) -> List[str]:
    user_id = _user_id(user)
    if not user_id:
        return []
    rows = _live_grants_query(user_id).distinct().all()
    return sorted(name for (name,) in rows)


# ============================================================================
# RESOURCE ACCESS
# ============================================================================

def _resource_models():
    from apps.api.models import FacilitySurvey, FormSubmission, HouseholdOwner, HousingDevelopment
    return {
        'form_submission': FormSubmission,
        'housing': FormSubmission,
        'facility_survey': FacilitySurvey,
        'facility': FacilitySurvey,
        'housing_development': HousingDevelopment,
        'household_owner': HouseholdOwner,
    }


def load_resource(resource_type: str, resource_id):
    model = _resource_models().get(resource_type)
    if model is None or not resource_id:
        return None
    return db.session.get(model, resource_id)


def can_access_resource(user, resource_type: str, action: str, resource_id) -> bool:
    """Jurisdiction check for one record.

    Village-level users need an exact village match, regency-level users an
    exact regency match, province-level users always pass. Scope-bypassing
    roles pass; citizens pass only for records they authored.
    """
    if user is None:
        return False
    resource = load_resource(resource_type, resource_id)
    if resource is None:
        return False

    scope = resolve_scope(user)
    if scope.bypass:
        return True
    if scope.empty:
        return False
    if scope.own_records_only:
        return scope.allows(resource)

    level = getattr(user, 'user_level', None)
    if level == 'province':
        return True

    target = complete_jurisdiction(resource)
    if level == 'village':
        assigned = getattr(user, 'assigned_village_id', None)
        return assigned is not None and target['village_id'] == assigned
    if level == 'regency':
        assigned = getattr(user, 'assigned_regency_id', None)
        return assigned is not None and target['regency_id'] == assigned
    return False


# ============================================================================
# ROLE RULES
# ============================================================================

KABUPATEN_DENIED = frozenset({'housing:create', 'facility:create'})
DESA_DENIED = frozenset({'facility:read'})


def authorize(user, permissions: Union[str, Iterable[str]]) -> None:
    """Require any one of ``permissions``; raise AuthorizationError otherwise.

    Fixed role rules run before grants are consulted:
      - verifikator may never create
      - super_admin and verifikator otherwise pass
      - admin_kabupaten may not create housing or facility data
      - admin_desa may not list facilities
    """
    if user is None or not getattr(user, 'is_active', True):
        raise AuthorizationError()

    names = [permissions] if isinstance(permissions, str) else list(permissions or ())
    if not names:
        raise AuthorizationError()

    groups = roles.role_groups(user)

    if roles.VERIFIKATOR in groups and any(':create' in name for name in names):
        raise AuthorizationError()

    if groups.intersection(roles.SCOPE_BYPASS_GROUPS):
        return

    if roles.ADMIN_KABUPATEN in groups:
        names = [name for name in names if name not in KABUPATEN_DENIED]
    if roles.ADMIN_DESA in groups:
        names = [name for name in names if name not in DESA_DENIED]

    if not names or not has_any_permission(user, names):
        raise AuthorizationError()
