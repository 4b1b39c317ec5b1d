"""Attribute extraction from heterogeneous GeoJSON property bags.

Boundary datasets name the same attribute differently (``DESA`` in one
release, ``WADMKD`` or ``namobj`` in another). Each field has an ordered
list of candidate keys, matched case-insensitively; the first non-empty
trimmed string wins.
"""
from typing import Dict, Iterable, Optional

VILLAGE_KEYS = ('DESA', 'KELURAHAN', 'NAMOBJ', 'WADMKD', 'VILLAGE')
DISTRICT_KEYS = ('KECAMATAN', 'WADMKC', 'DISTRICT')
REGENCY_KEYS = ('KAB_KOTA', 'KABUPATEN', 'WADMKK', 'REGENCY')
PROVINCE_KEYS = ('PROVINSI', 'WADMPR', 'PROVINCE')
LABEL_KEYS = (
    'NAMOBJ', 'NAME', 'NAMA', 'DESA', 'KELURAHAN',
    'KECAMATAN', 'KAB_KOTA', 'KABUPATEN', 'WILAYAH', 'KAWASAN',
)

# Admin layers whose label may only be present as a plain "name" attribute.
NAME_FALLBACK_LAYERS = {'batas_kecamatan', 'batas_kabupaten'}


def get_property(properties: Optional[dict], keys: Iterable[str]) -> Optional[str]:
    if not properties:
        return None
    folded = {}
    for key, value in properties.items():
        folded.setdefault(str(key).upper(), value)
    for key in keys:
        value = folded.get(key.upper())
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def village_name(properties) -> Optional[str]:
    return get_property(properties, VILLAGE_KEYS)


def district_name(properties) -> Optional[str]:
    return get_property(properties, DISTRICT_KEYS)


def regency_name(properties) -> Optional[str]:
    return get_property(properties, REGENCY_KEYS)


def province_name(properties) -> Optional[str]:
    return get_property(properties, PROVINCE_KEYS)


def admin_names(properties) -> Dict[str, Optional[str]]:
    return {
        'village': village_name(properties),
        'district': district_name(properties),
        'regency': regency_name(properties),
        'province': province_name(properties),
    }


def feature_label(properties, layer_name: str = None) -> Optional[str]:
    """Display label of one feature."""
    label = get_property(properties, LABEL_KEYS)
    if label is None and layer_name in NAME_FALLBACK_LAYERS:
        label = get_property(properties, ('name',))
    return label


def layer_admin_name(layer_name: str, properties) -> Optional[str]:
    """Name of the unit an administrative layer feature describes."""
    if layer_name == 'batas_desa':
        return village_name(properties)
    if layer_name == 'batas_kecamatan':
        return district_name(properties) or get_property(properties, ('name',))
    if layer_name == 'batas_kabupaten':
        return regency_name(properties) or get_property(properties, ('name',))
    if layer_name == 'batas_provinsi':
        return province_name(properties) or get_property(properties, ('name',))
    return feature_label(properties, layer_name)
