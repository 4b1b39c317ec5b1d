"""
Role groups and role-name normalisation.

Role names arrive from several sources (legacy ``users.role`` column,
``roles.name`` rows, JWT claims) with inconsistent spelling. Everything
is normalised here and mapped onto five canonical groups.
"""
import re
from typing import Iterable, Set

from sqlalchemy import or_
from sqlalchemy.orm import object_session

from apps.api.utils.time import utc_now

# ============================================================================
# CANONICAL ROLE GROUPS
# ============================================================================

SUPER_ADMIN = 'super_admin'
VERIFIKATOR = 'verifikator'
ADMIN_KABUPATEN = 'admin_kabupaten'
ADMIN_DESA = 'admin_desa'
MASYARAKAT = 'masyarakat'

ROLE_GROUPS = {
    SUPER_ADMIN: ('super_admin', 'superadmin', 'admin', 'administrator'),
    VERIFIKATOR: ('verifikator', 'verifier'),
    ADMIN_KABUPATEN: ('admin_kabupaten', 'kabupaten_admin', 'admin_regency'),
    ADMIN_DESA: ('admin_desa', 'desa_admin', 'admin_village'),
    MASYARAKAT: ('masyarakat',),
}

# Roles that see every jurisdiction
SCOPE_BYPASS_GROUPS = (SUPER_ADMIN, VERIFIKATOR)

_SEPARATORS = re.compile(r'[\s-]+')


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def normalize_role_name(role) -> str:
    """'Admin Kabupaten' / 'admin-kabupaten' -> 'admin_kabupaten'."""
    if role is None:
        return ''
    name = getattr(role, 'name', role)
    if not isinstance(name, str):
        return ''
    return _SEPARATORS.sub('_', name.strip().lower())


def role_group(role) -> str:
    """Return the canonical group for a role name, or '' if it is not grouped."""
    name = normalize_role_name(role)
    for group, aliases in ROLE_GROUPS.items():
        if name in aliases:
            return group
    return ''


def effective_role_names(user) -> Set[str]:
    """Normalised names from ``user.role`` plus every live UserRole grant."""
    if user is None:
        return set()

    names = set()
    legacy = normalize_role_name(getattr(user, 'role', None))
    if legacy:
        names.add(legacy)

    user_roles = getattr(user, 'user_roles', None)
    if user_roles is not None and object_session(user) is not None:
        # Local import keeps this module importable before models are bound.
        from apps.api.models.rbac import Role, UserRole
        now = utc_now()
        rows = (
            user_roles.join(Role, Role.id == UserRole.role_id)
            .filter(
                UserRole.is_active.is_(True),
                Role.is_active.is_(True),
                or_(UserRole.expires_at.is_(None), UserRole.expires_at > now),
            )
            .with_entities(Role.name)
            .all()
        )
        names.update(normalize_role_name(name) for (name,) in rows)

    names.discard('')
    return names


def role_groups(user) -> Set[str]:
    return {group for group in (role_group(n) for n in effective_role_names(user)) if group}


def has_role_group(user, *groups: Iterable[str]) -> bool:
    return bool(role_groups(user).intersection(groups))


def is_super_admin(user) -> bool:
    return has_role_group(user, SUPER_ADMIN)


def is_verifikator(user) -> bool:
    return has_role_group(user, VERIFIKATOR)


def is_admin_kabupaten(user) -> bool:
    return has_role_group(user, ADMIN_KABUPATEN)


def is_admin_desa(user) -> bool:
    return has_role_group(user, ADMIN_DESA)


def is_masyarakat(user) -> bool:
    return has_role_group(user, MASYARAKAT) or getattr(user, 'user_level', None) == 'citizen'


def should_bypass_location_scope(user) -> bool:
    return has_role_group(user, *SCOPE_BYPASS_GROUPS)


def primary_role_group(user) -> str:
    """Highest-ranked group the user belongs to ('' if none), for audit rows."""
    groups = role_groups(user)
    for group in ROLE_GROUPS:
        if group in groups:
            return group
    return ''
