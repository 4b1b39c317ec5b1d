"""
Location scope resolution.

Decides which jurisdictions a user may read or write:

- super_admin / verifikator bypass location scoping entirely
- admin_kabupaten sees its assigned regency and everything beneath it
- admin_desa sees exactly its assigned village
- masyarakat (citizens) only see records they authored
- every other user sees exactly the node assigned at their ``user_level``

An unresolvable user gets an empty scope: everything is denied, nothing
is raised.
"""
from typing import Dict, Optional

from sqlalchemy import false

from apps.api.utils import roles
from apps.api.utils.errors import AuthorizationError, ValidationError
from apps.api.utils.hierarchy import (
    ancestors_of,
    is_within,
    jurisdiction_of,
    subtree_clause,
)

GENERIC_LEVELS = ('province', 'regency', 'district', 'village')


class ScopeFilter:
    """The resolved scope of one user.

    ``kind`` is one of:
      bypass  - every jurisdiction
      subtree - node at ``level`` and all descendants
      exact   - only targets whose ``level`` id equals ``node_id``
      own     - only records whose ``created_by`` is ``user_id``
      empty   - nothing
    """

    def __init__(self, kind: str, level: str = None, node_id=None, user_id=None):
        self.kind = kind
        self.level = level
        self.node_id = node_id
        self.user_id = user_id

    @property
    def bypass(self) -> bool:
        return self.kind == 'bypass'

    @property
    def own_records_only(self) -> bool:
        return self.kind == 'own'

    @property
    def empty(self) -> bool:
        return self.kind == 'empty'

    def allows(self, target) -> bool:
        """Whether ``target`` (dict, record or None) falls in this scope."""
        if self.kind == 'bypass':
            return True
        if self.kind == 'empty' or target is None:
            return False
        if self.kind == 'own':
            author = target.get('created_by') if isinstance(target, dict) else getattr(target, 'created_by', None)
            return author is not None and author == self.user_id
        if self.kind == 'subtree':
            return is_within(target, self.level, self.node_id)
        return jurisdiction_of(target).get(f'{self.level}_id') == self.node_id

    def as_filter(self) -> Dict[str, str]:
        """Column/value form of this scope ({} for bypass or empty).

        A subtree scope yields its root id; match it with ``subtree_clause``,
        not equality.
        """
        if self.kind in ('subtree', 'exact'):
            return {f'{self.level}_id': self.node_id}
        if self.kind == 'own':
            return {'created_by': self.user_id}
        return {}

    def apply(self, query, model):
        """Narrow a SQLAlchemy query over ``model`` to the rows ``allows`` accepts."""
        if self.kind == 'bypass':
            return query
        if self.kind == 'empty':
            return query.filter(false())
        if self.kind == 'own':
            return query.filter(model.created_by == self.user_id)
        if self.kind == 'subtree':
            return query.filter(subtree_clause(model, self.level, self.node_id))
        return query.filter(getattr(model, f'{self.level}_id') == self.node_id)

    def __repr__(self):
        return f'<ScopeFilter {self.kind} {self.level or ""}={self.node_id or self.user_id or ""}>'


EMPTY_SCOPE = ScopeFilter('empty')


def resolve_scope(user) -> ScopeFilter:
    """Resolve ``user`` to a ScopeFilter (never raises)."""
    if user is None or not getattr(user, 'is_active', True):
        return EMPTY_SCOPE

    groups = roles.role_groups(user)

    if groups.intersection(roles.SCOPE_BYPASS_GROUPS):
        return ScopeFilter('bypass')

    if roles.ADMIN_KABUPATEN in groups:
        regency_id = getattr(user, 'assigned_regency_id', None)
        return ScopeFilter('subtree', 'regency', regency_id) if regency_id else EMPTY_SCOPE

    if roles.ADMIN_DESA in groups:
        village_id = getattr(user, 'assigned_village_id', None)
        return ScopeFilter('exact', 'village', village_id) if village_id else EMPTY_SCOPE

    if roles.MASYARAKAT in groups or getattr(user, 'user_level', None) == 'citizen':
        user_id = getattr(user, 'id', None)
        return ScopeFilter('own', user_id=user_id) if user_id else EMPTY_SCOPE

    level = getattr(user, 'user_level', None)
    if level in GENERIC_LEVELS:
        node_id = getattr(user, f'assigned_{level}_id', None)
        if node_id:
            return ScopeFilter('exact', level, node_id)
    return EMPTY_SCOPE


def can_access_location(user, target) -> bool:
    """Direct location-equality check with legacy data inheritance.

    The target's id at the user's own level must equal the user's assigned
    id. The target is never walked down to descendants. ``can_inherit_data``
    and ``inheritance_depth`` grant no additional match: the legacy check
    only re-ran the same own-level comparison.
    """
    if user is None:
        return False

    level = getattr(user, 'user_level', None)
    if level not in GENERIC_LEVELS:
        return False

    assigned = getattr(user, f'assigned_{level}_id', None)
    return assigned is not None and jurisdiction_of(target)[f'{level}_id'] == assigned


def check_location_access(user, target) -> None:
    """Raise AuthorizationError unless ``user``'s scope allows ``target``."""
    if not resolve_scope(user).allows(target):
        raise AuthorizationError()


def enforce_export_scope(user, filters: Optional[dict] = None) -> dict:
    """Rewrite caller-supplied export filters so they stay inside the user's scope.

    Returns a new dict; the input is not modified.
    """
    filters = dict(filters or {})
    scope = resolve_scope(user)

    if scope.bypass:
        return filters
    if scope.empty:
        raise AuthorizationError()

    if scope.own_records_only:
        filters.update(scope.as_filter())
        return filters

    if scope.kind == 'subtree' and scope.level == 'regency':
        regency_id = scope.node_id
        for level in ('district', 'village'):
            requested = filters.get(f'{level}_id')
            if not requested:
                continue
            chain = ancestors_of(level, requested)
            if not chain[f'{level}_id']:
                raise ValidationError(f'Unknown {level}', field=f'{level}_id')
            if chain['regency_id'] != regency_id:
                raise AuthorizationError()
        requested_regency = filters.get('regency_id')
        if requested_regency and requested_regency != regency_id:
            raise AuthorizationError()
        filters.update(scope.as_filter())
        return filters

    key = f'{scope.level}_id'
    requested = filters.get(key)
    if requested and requested != scope.node_id:
        raise AuthorizationError()
    filters.update(scope.as_filter())
    return filters
