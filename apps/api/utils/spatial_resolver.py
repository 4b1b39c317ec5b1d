"""
Spatial resolution over the administrative boundary layers.

The resolver owns one immutable snapshot of the read-only layer geometry
(village polygons, the place-name search index and the admin polygons used
to place records without coordinates). The snapshot is loaded on first use
and dropped by ``invalidate()``; per-record spatial results are never cached.

Usage:
    resolver = get_spatial_resolver()
    location = resolver.reverse_geocode(-2.13, 106.11)
    spatial = resolver.build_spatial_filter('bencana:rawan_banjir')
    rows = spatial.apply(FormSubmission.query.all())
"""
import math
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from flask import current_app
from shapely.geometry import Point, shape
from shapely.ops import unary_union
from shapely.prepared import prep
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from apps.api import db
from apps.api.models.spatial_layer import SpatialLayer
from apps.api.utils import geo_properties
from apps.api.utils.db_retry import with_db_retry
from apps.api.utils.errors import (
    BusinessLogicError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from apps.api.utils.hierarchy import find_villages_by_names, names_for
from apps.api.utils.layer_filters import format_layer_label, parse_layer_filters, selector_label
from apps.api.utils.search_index import SearchIndex, build_search_index, normalize_text

ADMIN_CATEGORY = 'administrasi'
ADMIN_LAYERS = ('batas_desa', 'batas_kecamatan', 'batas_kabupaten', 'batas_provinsi')
POLYGON_TYPES = ('Polygon', 'MultiPolygon')


def _to_geometry(geojson):
    """shapely geometry for a GeoJSON geometry dict, or None if unusable."""
    if not geojson or not isinstance(geojson, dict):
        return None
    try:
        geom = shape(geojson)
    except (ValueError, TypeError, AttributeError, KeyError, IndexError):
        return None
    if geom.is_empty:
        return None
    return geom


def _key(*names) -> tuple:
    return tuple(normalize_text(name) for name in names)


# ============================================================================
# DEADLINE
# ============================================================================

class Deadline:
    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds if seconds and seconds > 0 else None

    def check(self):
        if self.expires_at is not None and time.monotonic() > self.expires_at:
            raise DatabaseError('Spatial query timed out', code='SPATIAL_TIMEOUT')


def _is_statement_timeout(error: OperationalError) -> bool:
    return 'statement timeout' in str(error).lower() or 'canceling statement' in str(error).lower()


@contextmanager
def query_deadline(seconds: Optional[float] = None):
    """Bound spatial work to ``seconds`` (config SPATIAL_QUERY_TIMEOUT_SECONDS by default).

    On PostgreSQL the current transaction also gets ``SET LOCAL
    statement_timeout``. Yields a Deadline whose ``check()`` the caller runs
    between per-record evaluations.
    """
    if seconds is None:
        seconds = current_app.config.get('SPATIAL_QUERY_TIMEOUT_SECONDS', 15)
    deadline = Deadline(seconds)

    if deadline.expires_at is not None and db.session.get_bind().dialect.name == 'postgresql':
        db.session.execute(text(f'SET LOCAL statement_timeout = {int(seconds * 1000)}'))

    try:
        yield deadline
    except OperationalError as e:
        if _is_statement_timeout(e):
            db.session.rollback()
            raise DatabaseError('Spatial query timed out', code='SPATIAL_TIMEOUT') from e
        raise


# ============================================================================
# SNAPSHOT
# ============================================================================

class _Snapshot:
    """Prepared admin geometry; never mutated after construction."""

    def __init__(self, features: List[SpatialLayer], default_province: str):
        self.villages = []
        polygons = {}

        for feature in features:
            geom = _to_geometry(feature.geom)
            if geom is None:
                continue
            properties = feature.properties or {}
            names = geo_properties.admin_names(properties)
            layer = feature.layer_name

            if layer == 'batas_desa':
                if geom.geom_type in POLYGON_TYPES:
                    self.villages.append((prep(geom), properties))
                key = _key(names['village'], names['district'], names['regency'])
            elif layer == 'batas_kecamatan':
                key = _key(geo_properties.layer_admin_name(layer, properties), names['regency'])
            elif layer == 'batas_kabupaten':
                key = _key(geo_properties.layer_admin_name(layer, properties))
            else:
                continue
            if not key[0]:
                continue
            polygons.setdefault((layer,) + key, []).append(geom)

        self.admin_polygons = {key: unary_union(parts) for key, parts in polygons.items()}
        self.search_index = SearchIndex(
            build_search_index(features, default_province=default_province),
            default_province=default_province,
        )

    def admin_polygon(self, names: Dict[str, Optional[str]]):
        """Most specific admin polygon for a record's village/district/regency names.

        Keys with a blank trailing parent match features that did not carry it.
        """
        village, district, regency = names.get('village'), names.get('district'), names.get('regency')
        candidates = []
        if village and district:
            candidates += [('batas_desa',) + _key(village, district, regency),
                           ('batas_desa',) + _key(village, district, '')]
        if district:
            candidates += [('batas_kecamatan',) + _key(district, regency),
                           ('batas_kecamatan',) + _key(district, '')]
        if regency:
            candidates.append(('batas_kabupaten',) + _key(regency))
        for key in candidates:
            polygon = self.admin_polygons.get(key)
            if polygon is not None:
                return polygon
        return None


# ============================================================================
# RESOLVER
# ============================================================================

class SpatialResolver:
    """Application-owned spatial lookups; registered as ``app.extensions['spatial_resolver']``."""

    def __init__(self, app=None):
        self._snapshot = None
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.extensions['spatial_resolver'] = self

    # -- cache -------------------------------------------------------------

    def invalidate(self):
        with self._lock:
            self._snapshot = None
        current_app.logger.info("Spatial layer cache invalidated")

    @with_db_retry()
    def _load_admin_features(self) -> List[SpatialLayer]:
        return (
            SpatialLayer.query
            .filter(SpatialLayer.category == ADMIN_CATEGORY, SpatialLayer.layer_name.in_(ADMIN_LAYERS))
            .order_by(SpatialLayer.id)
            .all()
        )

    def snapshot(self) -> _Snapshot:
        current = self._snapshot
        if current is not None:
            return current
        with self._lock:
            if self._snapshot is None:
                features = self._load_admin_features()
                self._snapshot = _Snapshot(features, current_app.config.get('DEFAULT_PROVINCE_NAME'))
                current_app.logger.info(
                    f"Loaded {len(self._snapshot.villages)} village boundaries and "
                    f"{len(self._snapshot.search_index)} search entries"
                )
            return self._snapshot

    @property
    def search_index(self) -> SearchIndex:
        return self.snapshot().search_index

    # -- reverse geocoding -------------------------------------------------

    @staticmethod
    def _coordinate(value, field: str, limit: float) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            raise ValidationError('Latitude and longitude must be valid numbers', field=field)
        if not -limit <= value <= limit:
            raise ValidationError(f'{field.capitalize()} must be between -{limit:g} and {limit:g}', field=field)
        return float(value)

    def reverse_geocode(self, latitude, longitude) -> dict:
        """Administrative units containing a WGS84 point.

        Raises:
            ValidationError: non-numeric or out-of-range coordinates
            BusinessLogicError: OUTSIDE_BOUNDARY, no village polygon covers the point
            NotFoundError: the polygon lacks admin names, or the village is not seeded
            ConflictError: AMBIGUOUS_LOCATION, the names match more than one village
        """
        latitude = self._coordinate(latitude, 'latitude', 90)
        longitude = self._coordinate(longitude, 'longitude', 180)
        point = Point(longitude, latitude)

        properties = next(
            (props for polygon, props in self.snapshot().villages if polygon.covers(point)),
            None,
        )
        if properties is None:
            raise BusinessLogicError('Lokasi di luar wilayah kerja.', code='OUTSIDE_BOUNDARY')

        names = geo_properties.admin_names(properties)
        if not (names['village'] and names['district'] and names['regency']):
            raise NotFoundError('GeoJSON feature tidak memiliki data wilayah lengkap',
                                code='INCOMPLETE_ADMIN_DATA')

        villages = find_villages_by_names(names['village'], names['district'], names['regency'])
        if not villages:
            raise NotFoundError('Lokasi tidak ditemukan di database. Jalankan seeder lokasi terlebih dahulu.')
        if len(villages) > 1:
            raise ConflictError('Lokasi cocok dengan lebih dari satu desa', code='AMBIGUOUS_LOCATION',
                                details={'village_ids': sorted(v.id for v in villages)})

        village = villages[0]
        district = village.district
        regency = district.regency
        province = regency.province
        return {
            'province': {'id': province.id, 'code': province.code, 'name': province.name},
            'regency': {'id': regency.id, 'code': regency.code, 'name': regency.name, 'type': regency.type},
            'district': {'id': district.id, 'code': district.code, 'name': district.name},
            'village': {'id': village.id, 'code': village.code, 'name': village.name},
            'coordinates': {'latitude': latitude, 'longitude': longitude},
        }

    # -- fallback coordinates ----------------------------------------------

    def resolve_fallback_coordinates(self, names: Dict[str, Optional[str]]) -> Optional[dict]:
        """Centroid of the most specific named unit that is in the search index."""
        return self.search_index.resolve_fallback_coordinates(names)

    def fallback_coordinates_for(self, record) -> Optional[dict]:
        """Fallback coordinates for a record known only by its jurisdiction ids."""
        return self.resolve_fallback_coordinates(names_for(record))

    # -- spatial filter ----------------------------------------------------

    @with_db_retry()
    def _load_layer(self, selector) -> list:
        rows = (
            SpatialLayer.query
            .filter(SpatialLayer.category == selector.category,
                    SpatialLayer.layer_name == selector.layer_name)
            .all()
        )
        return [geom for geom in (_to_geometry(row.geom) for row in rows) if geom is not None]

    def build_spatial_filter(self, selectors, category: Optional[str] = None) -> Optional['SpatialFilter']:
        """Spatial predicate over the union of the selected layers.

        Returns None when ``selectors`` holds no layer at all (blank or only
        separators); callers then leave their records unfiltered.

        Raises:
            ValidationError: every supplied selector is invalid
            NotFoundError: LAYER_NOT_FOUND, a selected layer has no features
        """
        parsed = parse_layer_filters(selectors, category)
        if not parsed:
            return None
        layers = []
        for selector in parsed:
            geometries = self._load_layer(selector)
            if not geometries:
                raise NotFoundError(f'GIS layer {selector.category}:{selector.layer_name} not found',
                                    code='LAYER_NOT_FOUND')
            layers.append((selector, [prep(geom) for geom in geometries]))
        return SpatialFilter(self, layers)


def record_point(record):
    """Point geometry of a record: its ``geom``, else lat/lon, else its household owner's."""
    for source in (record, getattr(record, 'point_source', None)):
        if source is None:
            continue
        geom = _to_geometry(getattr(source, 'geom', None))
        if geom is not None:
            return geom
        latitude = getattr(source, 'latitude', None)
        longitude = getattr(source, 'longitude', None)
        if latitude is not None and longitude is not None:
            return Point(float(longitude), float(latitude))
    return None


class SpatialFilter:
    """Predicate and labels for records against a set of selected layers."""

    def __init__(self, resolver: SpatialResolver, layers):
        self.resolver = resolver
        self.layers = layers
        self.selectors = [selector for selector, _ in layers]
        self.label = format_layer_label(self.selectors)

    def __bool__(self):
        return bool(self.layers)

    def record_geometry(self, record):
        point = record_point(record)
        if point is not None:
            return point
        return self.resolver.snapshot().admin_polygon(names_for(record))

    def matched_labels(self, record) -> List[str]:
        """Labels of the selected layers the record falls in, in selection order."""
        geometry = self.record_geometry(record)
        if geometry is None:
            return []
        return [
            selector_label(selector)
            for selector, prepared in self.layers
            if any(candidate.intersects(geometry) for candidate in prepared)
        ]

    def predicate(self, record) -> bool:
        return bool(self.matched_labels(record))

    def labelled(self, records: Iterable, seconds: Optional[float] = None) -> List[tuple]:
        """``(record, area_label)`` for every matching record, under a deadline."""
        results = []
        with query_deadline(seconds) as deadline:
            for record in records:
                deadline.check()
                labels = self.matched_labels(record)
                if labels:
                    label = self.label if len(self.layers) == 1 else ', '.join(labels)
                    results.append((record, label))
        return results

    def apply(self, records: Iterable, seconds: Optional[float] = None) -> list:
        return [record for record, _ in self.labelled(records, seconds)]


def get_spatial_resolver() -> SpatialResolver:
    resolver = current_app.extensions.get('spatial_resolver')
    if resolver is None:
        resolver = SpatialResolver(current_app)
    return resolver
