"""Read-only queries over the Province -> Regency -> District -> Village tree."""
import re
from typing import Dict, List, Optional

from sqlalchemy import and_, func, or_, select

from apps.api import db
from apps.api.models.location import (
    LEVELS,
    MODEL_BY_LEVEL,
    Province,
    Regency,
    District,
    Village,
)

JURISDICTION_KEYS = tuple(f'{level}_id' for level in LEVELS)

_WHITESPACE = re.compile(r'\s+')


def normalize_name(value) -> str:
    """Trim and collapse inner whitespace; casing is left to the comparison."""
    if value is None:
        return ''
    return _WHITESPACE.sub(' ', str(value).strip())


def empty_jurisdiction() -> Dict[str, Optional[str]]:
    return {key: None for key in JURISDICTION_KEYS}


def jurisdiction_of(target) -> Dict[str, Optional[str]]:
    """Accept a dict, a model with *_id columns, or None."""
    result = empty_jurisdiction()
    if target is None:
        return result
    for key in JURISDICTION_KEYS:
        if isinstance(target, dict):
            value = target.get(key)
        else:
            value = getattr(target, key, None)
        result[key] = value or None
    return result


def get_node(level: str, node_id):
    model = MODEL_BY_LEVEL.get(level)
    if model is None or not node_id:
        return None
    return db.session.get(model, node_id)


def ancestors_of(level: str, node_id) -> Dict[str, Optional[str]]:
    """Walk up from one node; returns a jurisdiction dict with every ancestor id.

    An unknown node yields an empty jurisdiction.
    """
    chain = empty_jurisdiction()
    node = get_node(level, node_id)
    if node is None:
        return chain

    if isinstance(node, Village):
        chain['village_id'] = node.id
        node = node.district
    if isinstance(node, District):
        chain['district_id'] = node.id
        node = node.regency
    if isinstance(node, Regency):
        chain['regency_id'] = node.id
        node = node.province
    if isinstance(node, Province):
        chain['province_id'] = node.id
    return chain


def complete_jurisdiction(target) -> Dict[str, Optional[str]]:
    """Fill ancestor ids from the most specific id the target carries.

    Ancestors derived from the tree win over ids stored on the target; ids
    more specific than the deepest resolvable node are kept as given.
    """
    given = jurisdiction_of(target)
    for level in reversed(LEVELS):
        node_id = given[f'{level}_id']
        if not node_id:
            continue
        derived = ancestors_of(level, node_id)
        if not derived[f'{level}_id']:
            continue
        completed = dict(given)
        completed.update({k: v for k, v in derived.items() if v})
        return completed
    return given


def is_within(target, level: str, node_id) -> bool:
    """True when ``target`` lies in the subtree rooted at (level, node_id)."""
    if not node_id:
        return False
    return complete_jurisdiction(target).get(f'{level}_id') == node_id


_PARENT_LEVEL = {'village': 'district', 'district': 'regency', 'regency': 'province'}


def _descendant_ids(child_level: str, level: str, node_id):
    """SELECT of ``child_level`` ids under the node at ``level``."""
    current_level = child_level
    current = MODEL_BY_LEVEL[child_level]
    stmt = select(current.id)
    while _PARENT_LEVEL[current_level] != level:
        parent_level = _PARENT_LEVEL[current_level]
        parent = MODEL_BY_LEVEL[parent_level]
        stmt = stmt.join(parent, getattr(current, f'{parent_level}_id') == parent.id)
        current, current_level = parent, parent_level
    return stmt.where(getattr(current, f'{level}_id') == node_id)


def subtree_clause(model, level: str, node_id):
    """SQL form of ``is_within`` for a model with jurisdiction columns.

    As in ``complete_jurisdiction``, the deepest id on the row that exists
    in the tree decides; shallower ids only count when every deeper one is
    empty or unknown.
    """
    clauses = []
    deeper_unresolved = []
    for child_level in reversed(LEVELS[LEVELS.index(level):]):
        column = getattr(model, f'{child_level}_id')
        if child_level == level:
            match = column == node_id
        else:
            match = column.in_(_descendant_ids(child_level, level, node_id))
        clauses.append(and_(match, *deeper_unresolved))
        known = column.in_(select(MODEL_BY_LEVEL[child_level].id))
        deeper_unresolved.append(or_(column.is_(None), ~known))
    return or_(*clauses)


def find_villages_by_names(village_name: str, district_name: str, regency_name: str) -> List[Village]:
    """Village lookup disambiguated by parent names, case-insensitively.

    Village names are only unique within their district; callers must treat
    more than one result as ambiguous.
    """
    village_name = normalize_name(village_name).upper()
    district_name = normalize_name(district_name).upper()
    regency_name = normalize_name(regency_name).upper()
    if not (village_name and district_name and regency_name):
        return []

    return (
        Village.query
        .join(District, Village.district_id == District.id)
        .join(Regency, District.regency_id == Regency.id)
        .filter(
            func.upper(Village.name) == village_name,
            func.upper(District.name) == district_name,
            func.upper(Regency.name) == regency_name,
        )
        .all()
    )


def names_for(target) -> Dict[str, Optional[str]]:
    """Resolve a jurisdiction's ids into names (village/district/regency/province)."""
    completed = complete_jurisdiction(target)
    names = {}
    for level in LEVELS:
        node = get_node(level, completed[f'{level}_id'])
        names[level] = node.name if node is not None else None
    return names


def location_hierarchy(village_id=None, district_id=None, regency_id=None, province_id=None):
    """Every node on the path keyed by level, walked up from the most specific id given."""
    completed = complete_jurisdiction({
        'village_id': village_id,
        'district_id': district_id,
        'regency_id': regency_id,
        'province_id': province_id,
    })
    result = {}
    for level in LEVELS:
        node = get_node(level, completed[f'{level}_id'])
        if node is not None:
            result[level] = node.to_dict()
    return result


def list_provinces():
    return Province.query.order_by(Province.name).all()


def list_regencies(province_id):
    return Regency.query.filter_by(province_id=province_id).order_by(Regency.name).all()


def list_districts(regency_id):
    return District.query.filter_by(regency_id=regency_id).order_by(District.name).all()


def list_villages(district_id):
    return Village.query.filter_by(district_id=district_id).order_by(Village.name).all()
