"""Test setup helpers."""
from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

# Ensure project root is on sys.path for apps.api imports.
PROJECT_ROOT = Path(__file__).resolve().parents[3]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest
from flask_jwt_extended import create_access_token

from apps.api.app import create_app
from apps.api.config import TestingConfig
from apps.api import db
from apps.api.models.location import District, Province, Regency, Village
from apps.api.models.rbac import Permission, Role, RolePermission, UserRole
from apps.api.models.spatial_layer import SpatialLayer
from apps.api.models.user import User


def square(min_lon, min_lat, max_lon, max_lat):
    """GeoJSON polygon for an axis-aligned box."""
    return {
        'type': 'Polygon',
        'coordinates': [[
            [min_lon, min_lat],
            [max_lon, min_lat],
            [max_lon, max_lat],
            [min_lon, max_lat],
            [min_lon, min_lat],
        ]],
    }


# Village boxes (lon/lat); Sungailiat and Batu Rusa sit in Kabupaten Bangka.
SUNGAILIAT_BOX = (106.0, -1.9, 106.1, -1.8)
BATU_RUSA_BOX = (106.1, -2.0, 106.2, -1.9)
AIR_ITAM_BOX = (106.2, -2.2, 106.3, -2.1)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def locations(app):
    """Province 19 with two regencies, three districts and three villages."""
    province = Province(id='19', code='19', name='Kepulauan Bangka Belitung')
    bangka = Regency(id='RG001', code='RG001', name='BANGKA', type='kabupaten', province_id='19')
    pangkalpinang = Regency(id='RG002', code='RG002', name='KOTA PANGKAL PINANG', type='kota', province_id='19')
    sungailiat_kec = District(id='DC0001', code='DC0001', name='SUNGAILIAT', regency_id='RG001')
    merawang = District(id='DC0002', code='DC0002', name='MERAWANG', regency_id='RG001')
    bukit_intan = District(id='DC0003', code='DC0003', name='BUKIT INTAN', regency_id='RG002')
    sungailiat = Village(id='VL0001', code='VL0001', name='SUNGAILIAT', district_id='DC0001')
    batu_rusa = Village(id='VL0002', code='VL0002', name='BATU RUSA', district_id='DC0002')
    air_itam = Village(id='VL0003', code='VL0003', name='AIR ITAM', district_id='DC0003')
    db.session.add_all([province, bangka, pangkalpinang, sungailiat_kec, merawang, bukit_intan,
                        sungailiat, batu_rusa, air_itam])
    db.session.commit()
    return SimpleNamespace(
        province_id='19',
        bangka_id='RG001',
        pangkalpinang_id='RG002',
        sungailiat_district_id='DC0001',
        merawang_id='DC0002',
        bukit_intan_id='DC0003',
        sungailiat_id='VL0001',
        batu_rusa_id='VL0002',
        air_itam_id='VL0003',
    )


def _village_feature(box, desa, kecamatan, kab_kota):
    return SpatialLayer(
        category='administrasi',
        layer_name='batas_desa',
        geom=square(*box),
        properties={'DESA': desa, 'KECAMATAN': kecamatan, 'KAB_KOTA': kab_kota},
    )


@pytest.fixture
def boundaries(app, locations):
    """Admin boundary layers plus one hazard and one zoning layer."""
    db.session.add_all([
        _village_feature(SUNGAILIAT_BOX, 'Sungailiat', 'Sungailiat', 'Bangka'),
        _village_feature(BATU_RUSA_BOX, 'Batu Rusa', 'Merawang', 'Bangka'),
        _village_feature(AIR_ITAM_BOX, 'Air Itam', 'Bukit Intan', 'Kota Pangkal Pinang'),
        SpatialLayer(category='administrasi', layer_name='batas_kecamatan',
                     geom=square(*SUNGAILIAT_BOX), properties={'name': 'Sungailiat', 'KAB_KOTA': 'Bangka'}),
        SpatialLayer(category='administrasi', layer_name='batas_kecamatan',
                     geom=square(*BATU_RUSA_BOX), properties={'name': 'Merawang', 'KAB_KOTA': 'Bangka'}),
        SpatialLayer(category='administrasi', layer_name='batas_kabupaten',
                     geom=square(106.0, -2.0, 106.2, -1.8), properties={'name': 'Bangka'}),
        SpatialLayer(category='bencana', layer_name='rawan_banjir',
                     geom=square(106.05, -1.95, 106.15, -1.85), properties={'NAMOBJ': 'Zona Banjir'}),
        SpatialLayer(category='tata_ruang', layer_name='kawasan_industri',
                     geom=square(106.22, -2.18, 106.28, -2.12), properties={'NAMOBJ': 'Kawasan Industri'}),
    ])
    db.session.commit()
    return locations


@pytest.fixture
def make_user(app):
    """Factory: make_user(role='verifikator', user_level='province', assigned_province_id=...)."""
    counter = {'n': 0}

    def _make(role=None, user_level='citizen', roles=(), **fields):
        counter['n'] += 1
        user = User(
            email=f'user{counter["n"]}@example.com',
            full_name=f'User {counter["n"]}',
            role=role,
            user_level=user_level,
            **fields,
        )
        db.session.add(user)
        db.session.flush()
        for role_name in roles:
            db.session.add(UserRole(user_id=user.id, role_id=_role(role_name).id))
        db.session.commit()
        return user

    return _make


def _role(name):
    role = Role.query.filter_by(name=name).first()
    if role is None:
        role = Role(name=name, display_name=name.replace('_', ' ').title())
        db.session.add(role)
        db.session.flush()
    return role


def _permission(name):
    permission = Permission.query.filter_by(name=name).first()
    if permission is None:
        resource, action = name.split(':', 1)
        permission = Permission(name=name, display_name=name, resource=resource, action=action)
        db.session.add(permission)
        db.session.flush()
    return permission


@pytest.fixture
def grant(app):
    """Factory: grant(user, 'housing:review', role_name='operator') -> UserRole."""

    def _grant(user, *permission_names, role_name='operator', **user_role_fields):
        role = _role(role_name)
        for name in permission_names:
            permission = _permission(name)
            exists = RolePermission.query.filter_by(role_id=role.id, permission_id=permission.id).first()
            if exists is None:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
        user_role = UserRole.query.filter_by(user_id=user.id, role_id=role.id).first()
        if user_role is None:
            user_role = UserRole(user_id=user.id, role_id=role.id, **user_role_fields)
            db.session.add(user_role)
        db.session.commit()
        return user_role

    return _grant


@pytest.fixture
def auth_header(app):
    def _header(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}

    return _header
