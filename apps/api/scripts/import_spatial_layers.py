#!/usr/bin/env python3
"""
Spatial layer import

Loads every ``<category>/<layer>.geojson`` file under the spatial data
directory into ``spatial_layers`` (one row per feature) and optionally seeds the
Province -> Regency -> District -> Village tree from ``administrasi/batas_desa``.

The resolver cache is only dropped in the process that runs the import.
Running API workers keep their boundary snapshot until they restart or
receive ``POST /api/locations/spatial-cache/invalidate``.

Usage:
    python apps/api/scripts/import_spatial_layers.py
    python apps/api/scripts/import_spatial_layers.py --data-dir /srv/data_peta --seed-locations
    python apps/api/scripts/import_spatial_layers.py --seed-locations --force
"""
import argparse
import json
import os
import sys
from pathlib import Path

# Ensure project root is importable
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from dotenv import load_dotenv

env_path = Path(project_root) / '.env'
if env_path.exists():
    load_dotenv(env_path)

from apps.api import db
from apps.api.models.location import District, Province, Regency, Village
from apps.api.models.spatial_layer import SpatialLayer
from apps.api.utils import geo_properties
from apps.api.utils.hierarchy import normalize_name
from apps.api.utils.layer_filters import ALLOWED_CATEGORIES, SAFE_LAYER_NAME

PROVINCE_CODE = '19'
PROVINCE_NAME = 'Kepulauan Bangka Belitung'


def iter_layer_files(data_dir: Path):
    """(category, layer_name, path) for each importable GeoJSON file."""
    for category in sorted(ALLOWED_CATEGORIES):
        category_dir = Path(data_dir) / category
        if not category_dir.is_dir():
            continue
        for path in sorted(category_dir.glob('*.geojson')):
            if SAFE_LAYER_NAME.match(path.stem):
                yield category, path.stem, path


def read_features(path: Path) -> list:
    with open(path, encoding='utf-8') as fh:
        data = json.load(fh)
    features = data.get('features') if isinstance(data, dict) else None
    if not isinstance(features, list):
        raise ValueError(f'{path} is not a GeoJSON FeatureCollection')
    return features


def replace_layer(category: str, layer_name: str, features: list) -> int:
    """Replace one layer's rows with ``features``; returns the row count (no commit)."""
    SpatialLayer.query.filter_by(category=category, layer_name=layer_name).delete(synchronize_session=False)
    count = 0
    for feature in features:
        geometry = (feature or {}).get('geometry')
        if not geometry:
            continue
        db.session.add(SpatialLayer(
            category=category,
            layer_name=layer_name,
            geom=geometry,
            properties=feature.get('properties') or {},
        ))
        count += 1
    return count


def regency_type(name: str) -> str:
    return 'kota' if str(name or '').upper().startswith('KOTA ') else 'kabupaten'


def seed_locations(features: list, force: bool = False) -> dict:
    """Build the admin tree from village boundary properties (no commit).

    Codes are assigned in name order: RG001 for regencies, DC0001 for
    districts and VL0001 for villages. Refuses to run against a populated
    tree unless ``force`` is set.
    """
    populated = Regency.query.count() + District.query.count() + Village.query.count()
    if populated and not force:
        raise RuntimeError('Location tables already contain data; rerun with --force to overwrite.')

    regencies, districts, villages = set(), set(), set()
    for feature in features:
        names = geo_properties.admin_names((feature or {}).get('properties'))
        regency = normalize_name(names['regency'])
        district = normalize_name(names['district'])
        village = normalize_name(names['village'])
        if not (regency and district and village):
            continue
        regencies.add(regency)
        districts.add((regency, district))
        villages.add((regency, district, village))

    province = Province.query.filter_by(code=PROVINCE_CODE).first()
    if province is None:
        province = Province(id=PROVINCE_CODE, code=PROVINCE_CODE, name=PROVINCE_NAME)
        db.session.add(province)
    else:
        province.name = PROVINCE_NAME

    regency_by_name = {}
    for index, name in enumerate(sorted(regencies), start=1):
        code = f'RG{index:03d}'
        regency = db.session.get(Regency, code) or Regency(id=code, code=code)
        regency.name = name
        regency.type = regency_type(name)
        regency.province_id = province.id
        db.session.add(regency)
        regency_by_name[name] = regency

    district_by_key = {}
    for index, key in enumerate(sorted(districts), start=1):
        code = f'DC{index:04d}'
        district = db.session.get(District, code) or District(id=code, code=code)
        district.name = key[1]
        district.regency_id = regency_by_name[key[0]].id
        db.session.add(district)
        district_by_key[key] = district

    for index, key in enumerate(sorted(villages), start=1):
        code = f'VL{index:04d}'
        village = db.session.get(Village, code) or Village(id=code, code=code)
        village.name = key[2]
        village.district_id = district_by_key[key[:2]].id
        db.session.add(village)

    db.session.flush()
    return {'regencies': len(regencies), 'districts': len(districts), 'villages': len(villages)}


def import_all(data_dir: Path, seed: bool = False, force: bool = False) -> dict:
    """Import every layer file under ``data_dir`` in one transaction."""
    from apps.api.utils.spatial_resolver import get_spatial_resolver

    summary = {'layers': {}, 'locations': None}
    village_features = None
    try:
        for category, layer_name, path in iter_layer_files(data_dir):
            features = read_features(path)
            summary['layers'][f'{category}:{layer_name}'] = replace_layer(category, layer_name, features)
            if category == 'administrasi' and layer_name == 'batas_desa':
                village_features = features
        if seed:
            if village_features is None:
                raise RuntimeError('administrasi/batas_desa.geojson is required to seed locations')
            summary['locations'] = seed_locations(village_features, force=force)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    get_spatial_resolver().invalidate()
    return summary


def main(argv=None):
    parser = argparse.ArgumentParser(description='Import GeoJSON layers into spatial_layers')
    parser.add_argument('--data-dir', help='Directory holding <category>/<layer>.geojson files')
    parser.add_argument('--seed-locations', action='store_true',
                        help='Also build the location tree from administrasi/batas_desa')
    parser.add_argument('--force', action='store_true', help='Overwrite an existing location tree')
    args = parser.parse_args(argv)

    from apps.api.app import create_app
    from apps.api.config import config_by_name

    app = create_app(config_by_name.get(os.getenv('FLASK_ENV', 'default'), config_by_name['default']))
    with app.app_context():
        data_dir = Path(args.data_dir or app.config['SPATIAL_DATA_DIR'])
        if not data_dir.is_dir():
            print(f"[ERROR] Spatial data directory not found: {data_dir}")
            return 1
        summary = import_all(data_dir, seed=args.seed_locations, force=args.force)

    for layer, count in summary['layers'].items():
        print(f"  {layer}: {count} features")
    if summary['locations']:
        print(f"  locations: {summary['locations']}")
    print(f"[OK] Imported {len(summary['layers'])} layers")
    print("[INFO] Call POST /api/locations/spatial-cache/invalidate on each running API worker to reload boundaries")
    return 0


if __name__ == '__main__':
    sys.exit(main())
