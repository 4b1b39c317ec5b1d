"""Parsing and labelling of GIS layer selectors used by spatial exports."""
import re
from collections import namedtuple
from typing import Iterable, List, Optional

from apps.api.utils.errors import ValidationError

ALLOWED_CATEGORIES = frozenset({'administrasi', 'tata_ruang', 'bencana', 'infrastruktur'})
SAFE_LAYER_NAME = re.compile(r'^[a-zA-Z0-9_-]+$')

LayerSelector = namedtuple('LayerSelector', ['category', 'layer_name'])


def _tokens(raw) -> List:
    if raw is None or raw == '':
        return []
    if isinstance(raw, dict):
        return [raw]
    if isinstance(raw, (list, tuple)):
        tokens = []
        for item in raw:
            tokens.extend(_tokens(item))
        return tokens
    return str(raw).split(',')


def parse_layer_filters(raw, category: Optional[str] = None) -> List[LayerSelector]:
    """Parse ``raw`` into unique, validated selectors (first occurrence wins).

    Accepts ``"cat:layer"`` tokens, comma-separated strings, dicts with
    ``category``/``layer_name`` (or ``layerName``), and lists of those. Bare
    layer names take ``category`` as their category.

    Raises:
        ValidationError: layers were given but none of them is valid
    """
    fallback = str(category or '').strip().lower()
    selectors = []
    invalid = []

    def push(category_value, layer_value):
        cat = str(category_value or '').strip().lower()
        layer = str(layer_value or '').strip()
        if not cat or not layer:
            return
        if cat not in ALLOWED_CATEGORIES or not SAFE_LAYER_NAME.match(layer):
            invalid.append(f'{cat}:{layer}')
            return
        selectors.append(LayerSelector(cat, layer))

    for token in _tokens(raw):
        if isinstance(token, dict):
            push(token.get('category') or fallback,
                 token.get('layer_name') or token.get('layerName'))
            continue
        token = token.strip()
        if not token:
            continue
        if ':' in token:
            category_value, layer_value = token.split(':', 1)
            push(category_value, layer_value)
        elif fallback:
            push(fallback, token)
        else:
            invalid.append(token)

    unique = list(dict.fromkeys(selectors))
    if not unique and invalid:
        raise ValidationError('Invalid GIS layer filter.', field='gisLayers')
    return unique


def title_label(value) -> str:
    words = re.sub(r'\s+', ' ', str(value or '').replace('_', ' ')).strip().lower()
    return re.sub(r'\b\w', lambda m: m.group(0).upper(), words)


def selector_label(selector: LayerSelector, include_category: bool = True) -> str:
    layer = title_label(selector.layer_name)
    if not include_category:
        return layer
    return f'{title_label(selector.category)} - {layer}'


def format_layer_label(selectors: Iterable[LayerSelector], include_category: bool = True) -> str:
    return ', '.join(
        label for label in (selector_label(s, include_category) for s in selectors or ()) if label
    )
