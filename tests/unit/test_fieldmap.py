import pytest
import sqlalchemy as sa
from dbmap import FieldMap, TypeConversionError, ValidationError


@pytest.fixture
def fieldmap():
    fm = FieldMap()
    fm.field('id', 'integer')
    fm.field('email', 'string', length=255, nullable=False)
    fm.field('city', 'string', accessor='address.city')
    return fm


def test_declaration_order_and_defaults(fieldmap):
    assert fieldmap.names == ['id', 'email', 'city']
    assert len(fieldmap) == 3
    assert 'email' in fieldmap
    assert fieldmap['id'].accessor == 'id'
    assert fieldmap['city'].accessor == 'address.city'
    assert fieldmap['email'].column_options == {'length': 255, 'nullable': False}


def test_column_type(fieldmap):
    email = fieldmap['email'].column_type()
    assert isinstance(email, sa.String)
    assert email.length == 255

    overrides = fieldmap.type_overrides()
    assert list(overrides) == ['id', 'email', 'city']
    assert isinstance(overrides['id'], sa.Integer)


def test_sqlalchemy_type_accepted():
    fm = FieldMap()
    fm.field('payload', sa.JSON())
    assert isinstance(fm['payload'].column_type(), sa.JSON)


def test_unknown_type():
    with pytest.raises(TypeConversionError):
        FieldMap().field('id', 'integr')


def test_duplicate_field(fieldmap):
    with pytest.raises(ValidationError):
        fieldmap.field('id', 'bigint')


def test_unknown_option():
    with pytest.raises(ValidationError):
        FieldMap().field('id', 'integer', colour='red')


def test_mapper_must_be_callable():
    with pytest.raises(ValidationError):
        FieldMap().field('tags', 'text', normalize_mapper='join')


def test_primary(fieldmap):
    fieldmap.primary('id')
    fieldmap.primary('email')
    assert fieldmap.primaries == ('id', 'email')
    assert fieldmap.require_primary() == ('id', 'email')


def test_primary_must_be_declared(fieldmap):
    with pytest.raises(ValidationError):
        fieldmap.primary('uuid')


def test_primary_declared_once(fieldmap):
    fieldmap.primary('id')
    with pytest.raises(ValidationError):
        fieldmap.primary('id')


def test_require_primary_without_key(fieldmap):
    with pytest.raises(ValidationError):
        fieldmap.require_primary()


def test_sealed_map_rejects_changes(fieldmap):
    fieldmap.seal()
    assert fieldmap.sealed
    with pytest.raises(RuntimeError):
        fieldmap.field('name', 'string')
    with pytest.raises(RuntimeError):
        fieldmap.primary('id')


if __name__ == '__main__':
    __import__('pytest').main([__file__])
