"""Administrative hierarchy and spatial lookup routes."""
from flask import Blueprint, jsonify, request

from apps.api import limiter
from apps.api.utils.auth import permission_required
from apps.api.utils.db_retry import with_db_retry
from apps.api.utils.errors import NotFoundError, ValidationError
from apps.api.utils.hierarchy import (
    get_node,
    list_districts,
    list_provinces,
    list_regencies,
    list_villages,
    location_hierarchy,
)
from apps.api.utils.spatial_resolver import get_spatial_resolver

locations_bp = Blueprint('locations', __name__, url_prefix='/api/locations')


def _require_node(level, node_id, label):
    node = get_node(level, node_id)
    if node is None:
        raise NotFoundError(f'{label} not found')
    return node


@locations_bp.route('/provinces', methods=['GET'])
@with_db_retry(max_retries=3, initial_delay=0.5)
def get_provinces():
    provinces = list_provinces()
    return jsonify({'count': len(provinces), 'provinces': [p.to_dict() for p in provinces]}), 200


@locations_bp.route('/provinces/<province_id>/regencies', methods=['GET'])
@with_db_retry(max_retries=3, initial_delay=0.5)
def get_regencies(province_id):
    _require_node('province', province_id, 'Province')
    regencies = list_regencies(province_id)
    return jsonify({'count': len(regencies), 'regencies': [r.to_dict() for r in regencies]}), 200


@locations_bp.route('/regencies/<regency_id>/districts', methods=['GET'])
@with_db_retry(max_retries=3, initial_delay=0.5)
def get_districts(regency_id):
    _require_node('regency', regency_id, 'Regency')
    districts = list_districts(regency_id)
    return jsonify({'count': len(districts), 'districts': [d.to_dict() for d in districts]}), 200


@locations_bp.route('/districts/<district_id>/villages', methods=['GET'])
@with_db_retry(max_retries=3, initial_delay=0.5)
def get_villages(district_id):
    _require_node('district', district_id, 'District')
    villages = list_villages(district_id)
    return jsonify({'count': len(villages), 'villages': [v.to_dict() for v in villages]}), 200


@locations_bp.route('/hierarchy', methods=['GET'])
def get_hierarchy():
    """Full path for the most specific id given (village_id, district_id, ...)."""
    args = {key: request.args.get(key) for key in ('village_id', 'district_id', 'regency_id', 'province_id')}
    if not any(args.values()):
        raise ValidationError('One of village_id, district_id, regency_id or province_id is required')
    hierarchy = location_hierarchy(**args)
    if not hierarchy:
        raise NotFoundError('Location not found')
    return jsonify({'hierarchy': hierarchy}), 200


def _float_arg(*names):
    for name in names:
        raw = request.args.get(name)
        if raw is None or raw == '':
            continue
        try:
            return float(raw)
        except ValueError:
            raise ValidationError('Latitude and longitude must be valid numbers',
                                  field=names[0], code='INVALID_COORDINATES')
    raise ValidationError('Latitude and longitude are required', field=names[0], code='MISSING_COORDINATES')


@locations_bp.route('/reverse-geocode', methods=['GET'])
@limiter.limit('60 per minute')
def reverse_geocode():
    latitude = _float_arg('lat', 'latitude')
    longitude = _float_arg('lon', 'lng', 'longitude')
    location = get_spatial_resolver().reverse_geocode(latitude, longitude)
    return jsonify({'location': location}), 200


@locations_bp.route('/fallback-coordinates', methods=['GET'])
def fallback_coordinates():
    names = {level: request.args.get(level) for level in ('village', 'district', 'regency', 'province')}
    if not any(names.values()):
        raise ValidationError('At least one of village, district, regency or province is required')
    coordinates = get_spatial_resolver().resolve_fallback_coordinates(names)
    if coordinates is None:
        raise NotFoundError('No coordinates known for this location', code='COORDINATES_NOT_FOUND')
    return jsonify({'coordinates': coordinates}), 200


@locations_bp.route('/spatial-cache/invalidate', methods=['POST'])
@permission_required('spatial:manage')
def invalidate_spatial_cache():
    """Drop this process's boundary snapshot after layers were re-imported."""
    get_spatial_resolver().invalidate()
    return jsonify({'message': 'Spatial cache invalidated'}), 200
