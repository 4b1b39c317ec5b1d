"""Spatial layer features (administrative boundaries, hazard and zoning layers)."""
from apps.api import db
from apps.api.utils.time import utc_now


class SpatialLayer(db.Model):
    """One GeoJSON feature of a named layer.

    ``geom`` holds the GeoJSON geometry object; it is evaluated with shapely.
    ``properties`` keeps the source attribute bag as-is, key casing included.
    """
    __tablename__ = 'spatial_layers'

    id = db.Column(db.Integer, primary_key=True)
    # administrasi | tata_ruang | bencana | infrastruktur
    category = db.Column(db.String(50), nullable=False)
    layer_name = db.Column(db.String(100), nullable=False)
    geom = db.Column(db.JSON, nullable=True)
    properties = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.Index('idx_spatial_layers_category_layer', 'category', 'layer_name'),
    )

    def __repr__(self):
        return f'<SpatialLayer {self.category}:{self.layer_name} #{self.id}>'

    def to_dict(self, include_geometry=False):
        data = {
            'id': self.id,
            'category': self.category,
            'layer_name': self.layer_name,
            'properties': self.properties or {},
        }
        if include_geometry:
            data['geometry'] = self.geom
        return data
