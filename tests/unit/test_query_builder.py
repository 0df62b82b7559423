import pytest
import sqlalchemy as sa
from dbmap import NULL, TypedValue, ValidationError
from dbmap.query import QueryBuilder, normalize_order_by


def test_select_defaults():
    """Test a bare select renders all fields"""
    qb = QueryBuilder('select', 'users', 'sqlite')
    assert qb.get_sql() == 'SELECT * FROM "users"'
    assert qb.parameters == {}


def test_select_fields_quoting():
    """Plain identifiers are quoted, expressions are kept raw"""
    qb = QueryBuilder('select', 'users', 'sqlite').select(['id', 'count(*) AS n'])
    assert qb.get_sql() == 'SELECT "id", count(*) AS n FROM "users"'


def test_select_distinct():
    qb = QueryBuilder('select', 'users', 'sqlite').select(['email']).distinct()
    assert qb.get_sql() == 'SELECT DISTINCT "email" FROM "users"'


def test_schema_qualified_table():
    qb = QueryBuilder('select', 'public.users', 'postgresql')
    assert qb.get_sql() == 'SELECT * FROM "public"."users"'


def test_where_equality_and_null():
    """Column keys become equality predicates, None becomes IS NULL"""
    qb = QueryBuilder('select', 'users', 'sqlite').where({'email': 'a@x.org', 'deleted': None})
    assert qb.get_sql() == 'SELECT * FROM "users" WHERE "email" = :p1 AND "deleted" IS NULL'
    assert qb.parameters == {'p1': 'a@x.org'}


def test_where_null_marker_is_null():
    qb = QueryBuilder('select', 'users', 'sqlite').where({'deleted': NULL})
    assert qb.get_sql() == 'SELECT * FROM "users" WHERE "deleted" IS NULL'


def test_where_raw_fragments():
    """Integer keys carry raw predicates, with or without their own parameters"""
    qb = QueryBuilder('select', 'users', 'sqlite').where({
        0: ('age > :min_age', {'min_age': 18}),
        'name': 'x',
        1: 'email IS NOT NULL',
    })
    sql = qb.get_sql()
    assert sql == 'SELECT * FROM "users" WHERE (age > :min_age) AND "name" = :p1 AND (email IS NOT NULL)'
    assert qb.parameters == {'min_age': 18, 'p1': 'x'}


def test_where_generated_names_skip_fragment_names():
    qb = QueryBuilder('select', 'users', 'sqlite').where({0: ('a = :p1', {'p1': 1}), 'b': 2})
    assert qb.get_sql() == 'SELECT * FROM "users" WHERE (a = :p1) AND "b" = :p2'
    assert qb.parameters == {'p1': 1, 'p2': 2}


def test_where_fragment_name_collision():
    qb = QueryBuilder('select', 'users', 'sqlite')
    with pytest.raises(ValidationError):
        qb.where({0: ('a = :x', {'x': 1}), 1: ('b = :x', {'x': 2})})


def test_where_rejects_non_identifier_column():
    qb = QueryBuilder('select', 'users', 'sqlite')
    with pytest.raises(ValidationError):
        qb.where({'email; drop table users': 1})


def test_where_rejects_bad_fragment():
    qb = QueryBuilder('select', 'users', 'sqlite')
    with pytest.raises(ValidationError):
        qb.where({0: 42})


def test_order_by_dict():
    """Int keys sort by the value column, str keys map column to direction"""
    qb = QueryBuilder('select', 'users', 'sqlite').order_by({0: 'name', 'id': 'DESC'})
    assert qb.get_sql() == 'SELECT * FROM "users" ORDER BY "name", "id" DESC'


def test_order_by_sequence():
    qb = QueryBuilder('select', 'users', 'sqlite').order_by(['name', ('id', 'asc')])
    assert qb.get_sql() == 'SELECT * FROM "users" ORDER BY "name", "id" asc'


def test_order_by_invalid_direction():
    with pytest.raises(ValidationError):
        normalize_order_by({'id': 'sideways'})
    with pytest.raises(ValidationError):
        normalize_order_by([('id', 'up')])


def test_normalize_order_by_shapes():
    assert normalize_order_by(None) == []
    assert normalize_order_by('name') == [('name', None)]
    assert normalize_order_by({0: 'a', 'b': 'Desc'}) == [('a', None), ('b', 'Desc')]


def test_limit_offset_sqlite():
    qb = QueryBuilder('select', 'users', 'sqlite').limit(10).offset(5)
    assert qb.get_sql() == 'SELECT * FROM "users" LIMIT 10 OFFSET 5'

    qb = QueryBuilder('select', 'users', 'sqlite').offset(5)
    assert qb.get_sql() == 'SELECT * FROM "users" LIMIT -1 OFFSET 5'


def test_limit_offset_postgres():
    qb = QueryBuilder('select', 'users', 'postgresql').offset(5)
    assert qb.get_sql() == 'SELECT * FROM "users" OFFSET 5'

    qb = QueryBuilder('select', 'users', 'postgresql').limit(1)
    assert qb.get_sql() == 'SELECT * FROM "users" LIMIT 1'


@pytest.mark.parametrize('value', [-1, 1.5, '3', True])
def test_limit_rejects_invalid(value):
    qb = QueryBuilder('select', 'users', 'sqlite')
    with pytest.raises(ValidationError):
        qb.limit(value)


def test_full_select_order():
    """WHERE, ORDER BY and paging come in that order"""
    qb = QueryBuilder('select', 'users', 'sqlite').apply_options({
        'fields': ['id'],
        'order_by': {'id': 'desc'},
        'limit': 1,
        'offset': 2,
    }).where({'email': 'a'})
    assert qb.get_sql() == 'SELECT "id" FROM "users" WHERE "email" = :p1 ORDER BY "id" desc LIMIT 1 OFFSET 2'


def test_apply_options_unknown_key():
    qb = QueryBuilder('select', 'users', 'sqlite')
    with pytest.raises(ValidationError):
        qb.apply_options({'limit': 1, 'group_by': 'x'})


def test_insert_skips_none_and_binds_null_marker():
    qb = QueryBuilder('insert', 'users', 'sqlite').values({'id': 1, 'email': None, 'name': NULL})
    assert qb.get_sql() == 'INSERT INTO "users" ("id", "name") VALUES (:p1, :p2)'
    assert qb.parameters == {'p1': 1, 'p2': None}


def test_insert_default_values():
    qb = QueryBuilder('insert', 'users', 'sqlite').values({'email': None})
    assert qb.get_sql() == 'INSERT INTO "users" DEFAULT VALUES'


def test_typed_values_record_types():
    integer = sa.Integer()
    qb = QueryBuilder('insert', 'users', 'sqlite').values({'id': TypedValue(integer, 1)})
    assert qb.parameters == {'p1': 1}
    assert qb.types['p1'] is integer


def test_update():
    qb = QueryBuilder('update', 'users', 'sqlite').values({'email': 'b'}).where({'id': 1})
    assert qb.get_sql() == 'UPDATE "users" SET "email" = :p1 WHERE "id" = :p2'
    assert qb.parameters == {'p1': 'b', 'p2': 1}


def test_update_without_filter_fails():
    qb = QueryBuilder('update', 'users', 'sqlite').values({'email': 'b'})
    with pytest.raises(ValidationError):
        qb.get_sql()


def test_update_without_values_fails():
    qb = QueryBuilder('update', 'users', 'sqlite').values({'email': None}).where({'id': 1})
    with pytest.raises(ValidationError):
        qb.get_sql()


def test_delete():
    qb = QueryBuilder('delete', 'users', 'sqlite').where({'id': 1})
    assert qb.get_sql() == 'DELETE FROM "users" WHERE "id" = :p1'


def test_delete_without_filter_fails():
    qb = QueryBuilder('delete', 'users', 'sqlite').where({})
    with pytest.raises(ValidationError):
        qb.get_sql()


def test_methods_bound_to_kind():
    with pytest.raises(ValidationError):
        QueryBuilder('insert', 'users', 'sqlite').limit(1)
    with pytest.raises(ValidationError):
        QueryBuilder('select', 'users', 'sqlite').values({'id': 1})
    with pytest.raises(ValidationError):
        QueryBuilder('insert', 'users', 'sqlite').where({'id': 1})


def test_unknown_kind():
    with pytest.raises(ValidationError):
        QueryBuilder('merge', 'users', 'sqlite')


def test_execute_dispatch(mocker):
    """Select goes through cn.select, other kinds through cn.execute"""
    cn = mocker.Mock()
    cn.select.return_value = [{'id': 1}]
    cn.execute.return_value = 1

    rows = QueryBuilder('select', 'users', 'sqlite').where({'id': 1}).execute(cn)
    assert rows == [{'id': 1}]
    cn.select.assert_called_once_with('SELECT * FROM "users" WHERE "id" = :p1', {'p1': 1})

    count = QueryBuilder('delete', 'users', 'sqlite').where({'id': 1}).execute(cn)
    assert count == 1
    cn.execute.assert_called_once_with('DELETE FROM "users" WHERE "id" = :p1', {'p1': 1})


def test_execute_validates_before_backend(mocker):
    cn = mocker.Mock()
    with pytest.raises(ValidationError):
        QueryBuilder('delete', 'users', 'sqlite').execute(cn)
    cn.execute.assert_not_called()


if __name__ == '__main__':
    __import__('pytest').main([__file__])
