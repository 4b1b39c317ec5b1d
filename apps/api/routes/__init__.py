"""API Routes - Import all blueprints here."""

from .locations import locations_bp
from .reviews import reviews_bp
from .exports import exports_bp

__all__ = [
    'locations_bp',
    'reviews_bp',
    'exports_bp',
]
