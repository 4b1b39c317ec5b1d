"""Place-name search index built from the administrative boundary layers.

Entries mirror what the map search box consumes::

    {'id': 17, 'layer_id': 'batas_desa', 'name': 'AIR ITAM',
     'parent': 'KEC. BUKIT INTAN, KOTA PANGKAL PINANG', 'type': 'Desa',
     'coords': [-2.13, 106.12], 'zoom': 15}
"""
import re
from typing import Dict, Iterable, List, Optional

from shapely.geometry import shape

from apps.api.utils import geo_properties

_WHITESPACE = re.compile(r'\s+')

# layer_name -> (entry type, zoom)
INDEXED_LAYERS = {
    'batas_desa': ('Desa', 15),
    'batas_kecamatan': ('Kecamatan', 13),
    'batas_kabupaten': ('Kabupaten', 11),
    'batas_provinsi': ('Provinsi', 9),
}

TYPE_BY_LEVEL = {
    'village': 'Desa',
    'district': 'Kecamatan',
    'regency': 'Kabupaten',
    'province': 'Provinsi',
}


def normalize_text(value) -> str:
    return _WHITESPACE.sub(' ', str(value or '').strip().upper())


def build_parent_label(entry_type: str, district=None, regency=None, province=None) -> str:
    if entry_type == 'Desa':
        district = normalize_text(district)
        regency = normalize_text(regency)
        if district and regency:
            return f'KEC. {district}, {regency}'
        if district:
            return f'KEC. {district}'
        return ''
    if entry_type == 'Kecamatan':
        return normalize_text(regency)
    if entry_type == 'Kabupaten':
        province = normalize_text(province)
        return f'PROVINSI {province}' if province else ''
    return ''


def _centroid(geometry) -> Optional[List[float]]:
    if not geometry:
        return None
    try:
        geom = shape(geometry)
    except (ValueError, TypeError, AttributeError, KeyError):
        return None
    if geom.is_empty:
        return None
    point = geom.centroid
    return [point.y, point.x]


def _field(feature, name):
    if isinstance(feature, dict):
        return feature.get(name)
    return getattr(feature, name, None)


def build_search_index(features: Iterable, default_province: str = None) -> List[dict]:
    """Turn administrative layer features into search entries.

    ``features`` are SpatialLayer rows or dicts with ``id``, ``layer_name``,
    ``geom`` and ``properties``. Features without a usable name or geometry
    are skipped. Ordered by type, then name.
    """
    entries = []
    for feature in features:
        layer_name = _field(feature, 'layer_name')
        if layer_name not in INDEXED_LAYERS:
            continue
        entry_type, zoom = INDEXED_LAYERS[layer_name]
        properties = _field(feature, 'properties') or {}

        name = geo_properties.layer_admin_name(layer_name, properties)
        coords = _centroid(_field(feature, 'geom'))
        if not name or coords is None:
            continue

        parent = build_parent_label(
            entry_type,
            district=geo_properties.district_name(properties),
            regency=geo_properties.regency_name(properties),
            province=geo_properties.province_name(properties) or default_province,
        )
        entries.append({
            'id': _field(feature, 'id'),
            'layer_id': layer_name,
            'name': normalize_text(name),
            'parent': parent,
            'type': entry_type,
            'coords': coords,
            'zoom': zoom,
        })

    entries.sort(key=lambda e: (e['type'], e['name']))
    return entries


class SearchIndex:
    """Lookup over search entries by ``type|name|parent``, then ``type|name``."""

    def __init__(self, entries: List[dict], default_province: str = None):
        self.entries = list(entries)
        self.default_province = default_province
        self._by_key: Dict[str, dict] = {}
        self._by_type_name: Dict[str, dict] = {}
        for entry in self.entries:
            entry_type = normalize_text(entry.get('type'))
            name = normalize_text(entry.get('name'))
            parent = normalize_text(entry.get('parent'))
            self._by_key[f'{entry_type}|{name}|{parent}'] = entry
            self._by_type_name.setdefault(f'{entry_type}|{name}', entry)

    def __len__(self):
        return len(self.entries)

    def find(self, entry_type: str, name: str, district=None, regency=None, province=None) -> Optional[dict]:
        if not entry_type or not name:
            return None
        normalized_type = normalize_text(entry_type)
        normalized_name = normalize_text(name)

        parent = build_parent_label(
            entry_type, district=district, regency=regency,
            province=province or self.default_province,
        )
        if parent:
            found = self._by_key.get(f'{normalized_type}|{normalized_name}|{normalize_text(parent)}')
            if found:
                return found
        return self._by_type_name.get(f'{normalized_type}|{normalized_name}')

    def resolve_fallback_coordinates(self, names: Dict[str, Optional[str]]) -> Optional[dict]:
        """Most specific place among ``names`` that has an entry.

        ``names`` is keyed by village/district/regency/province.
        """
        names = names or {}
        district = names.get('district')
        regency = names.get('regency')
        province = names.get('province')
        for level in ('village', 'district', 'regency', 'province'):
            name = names.get(level)
            if not name:
                continue
            entry = self.find(TYPE_BY_LEVEL[level], name,
                              district=district, regency=regency, province=province)
            if entry and entry.get('coords'):
                lat, lng = entry['coords']
                return {'latitude': lat, 'longitude': lng, 'source': level}
        return None
