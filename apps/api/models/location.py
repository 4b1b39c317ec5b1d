"""Administrative hierarchy models: Province -> Regency -> District -> Village."""
from apps.api import db
from apps.api.utils.time import utc_now


LEVELS = ('province', 'regency', 'district', 'village')


class Province(db.Model):
    __tablename__ = 'provinces'

    kind = 'province'

    id = db.Column(db.String(20), primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    regencies = db.relationship('Regency', backref='province', lazy='dynamic',
                                cascade='all, delete-orphan', passive_deletes=True)

    @property
    def parent_id(self):
        return None

    def __repr__(self):
        return f'<Province {self.name}>'

    def to_dict(self, include_regencies=False):
        data = {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'kind': self.kind,
        }
        if include_regencies:
            data['regencies'] = [r.to_dict() for r in self.regencies.order_by(Regency.name)]
        return data


class Regency(db.Model):
    __tablename__ = 'regencies'

    kind = 'regency'

    id = db.Column(db.String(20), primary_key=True)
    province_id = db.Column(db.String(20), db.ForeignKey('provinces.id', ondelete='CASCADE'),
                            nullable=False, index=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    # kabupaten | kota
    type = db.Column(db.String(20), nullable=False, default='kabupaten')

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    districts = db.relationship('District', backref='regency', lazy='dynamic',
                                cascade='all, delete-orphan', passive_deletes=True)

    __table_args__ = (
        db.UniqueConstraint('province_id', 'name', name='uq_regency_province_name'),
    )

    @property
    def parent_id(self):
        return self.province_id

    def __repr__(self):
        return f'<Regency {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'type': self.type,
            'kind': self.kind,
            'province_id': self.province_id,
        }


class District(db.Model):
    __tablename__ = 'districts'

    kind = 'district'

    id = db.Column(db.String(20), primary_key=True)
    regency_id = db.Column(db.String(20), db.ForeignKey('regencies.id', ondelete='CASCADE'),
                           nullable=False, index=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    villages = db.relationship('Village', backref='district', lazy='dynamic',
                               cascade='all, delete-orphan', passive_deletes=True)

    __table_args__ = (
        db.UniqueConstraint('regency_id', 'name', name='uq_district_regency_name'),
    )

    @property
    def parent_id(self):
        return self.regency_id

    def __repr__(self):
        return f'<District {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'kind': self.kind,
            'regency_id': self.regency_id,
        }


class Village(db.Model):
    __tablename__ = 'villages'

    kind = 'village'

    id = db.Column(db.String(20), primary_key=True)
    district_id = db.Column(db.String(20), db.ForeignKey('districts.id', ondelete='CASCADE'),
                            nullable=False, index=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    # Village names repeat across districts; only (district, name) is unique.
    name = db.Column(db.String(120), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        db.UniqueConstraint('district_id', 'name', name='uq_village_district_name'),
    )

    @property
    def parent_id(self):
        return self.district_id

    def __repr__(self):
        return f'<Village {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'kind': self.kind,
            'district_id': self.district_id,
        }


MODEL_BY_LEVEL = {
    'province': Province,
    'regency': Regency,
    'district': District,
    'village': Village,
}
