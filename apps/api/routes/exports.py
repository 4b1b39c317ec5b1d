"""Scoped data exports with optional GIS layer filtering."""
from flask import Blueprint, jsonify, request

from apps.api import limiter
from apps.api.utils.auth import get_current_user, login_required
from apps.api.utils.entities import get_entity
from apps.api.utils.errors import ValidationError
from apps.api.utils.hierarchy import JURISDICTION_KEYS, subtree_clause
from apps.api.utils.location_scope import enforce_export_scope, resolve_scope
from apps.api.utils.permissions import authorize
from apps.api.utils.spatial_resolver import get_spatial_resolver

exports_bp = Blueprint('exports', __name__, url_prefix='/api/exports')


@exports_bp.route('/<entity_name>', methods=['GET'])
@login_required
@limiter.limit('30 per minute')
def export_records(entity_name):
    """Export the caller's visible records.

    Query params: province_id / regency_id / district_id / village_id,
    status, gisLayers (``cat:layer`` list) and gisCategory.
    """
    entity = get_entity(entity_name)
    model = entity.model
    user = get_current_user()
    authorize(user, entity.read)

    requested = {key: request.args.get(key) for key in JURISDICTION_KEYS if request.args.get(key)}
    filters = enforce_export_scope(user, requested)

    query = resolve_scope(user).apply(model.query, model)
    for column, value in filters.items():
        if column in JURISDICTION_KEYS:
            query = query.filter(subtree_clause(model, column.replace('_id', ''), value))
        else:
            query = query.filter(getattr(model, column) == value)

    status = request.args.get('status')
    if status:
        if status not in model.STATUSES:
            raise ValidationError('Invalid status filter', field='status')
        query = query.filter(model.status == status)

    records = query.order_by(model.created_at.desc()).all()

    layers = request.args.get('gisLayers') or request.args.get('gisLayerIds')
    category = request.args.get('gisCategory')
    spatial = get_spatial_resolver().build_spatial_filter(layers, category) if layers else None
    gis_label = None
    if spatial:
        gis_label = spatial.label
        rows = []
        for record, label in spatial.labelled(records):
            data = record.to_dict()
            data['gisAreaLabel'] = label
            rows.append(data)
    else:
        rows = [record.to_dict() for record in records]

    return jsonify({
        'count': len(rows),
        'filters': filters,
        'gisLayerLabel': gis_label,
        'records': rows,
    }), 200
