"""
Tests for scalar coercion, comparison and casting
"""

import math

from sqlsim import values
from sqlsim.types import ColumnDefinition, DataType, TableSchema


def test_to_number():
    assert values.to_number('12') == 12
    assert values.to_number(' 3.5 ') == 3.5
    assert values.to_number('') == 0
    assert values.to_number(None) == 0
    assert values.to_number(True) == 1
    assert math.isnan(values.to_number('abc'))


def test_to_text():
    assert values.to_text(2.0) == '2'
    assert values.to_text(2.5) == '2.5'
    assert values.to_text(True) == 'true'
    assert values.to_text(None) == 'null'


def test_strict_equality_never_coerces():
    assert values.strict_equals(1, 1.0)
    assert not values.strict_equals(1, '1')
    assert not values.strict_equals(True, 1)
    assert values.strict_equals(None, None)


def test_relational_comparison():
    assert values.less_than('apple', 'banana')
    # text against a number compares numerically
    assert not values.less_than('10', 9)
    assert values.greater_than('10', 9)
    # NaN is never ordered
    assert not values.less_than('abc', 1)
    assert not values.greater_than('abc', 1)


def test_to_float_saturates_huge_integers():
    assert values.to_float(3) == 3.0
    assert values.to_float(10 ** 400) == math.inf
    assert values.to_float(-10 ** 400) == -math.inf


def test_tuple_key_normalizes_integral_floats():
    assert values.tuple_key([1, 'a']) == values.tuple_key([1.0, 'a'])
    assert values.tuple_key([1]) != values.tuple_key(['1'])


def test_cast_value_per_type():
    def col(data_type, **kwargs):
        return ColumnDefinition(name='c', data_type=data_type, **kwargs)

    assert values.cast_value('42abc', col(DataType.INT)) == 42
    assert values.cast_value(-3.9, col(DataType.INT)) == -3
    assert values.cast_value('2.5', col(DataType.REAL)) == 2.5
    assert values.cast_value('3.14159', col(DataType.DECIMAL, precision=5, scale=2)) == 3.14
    assert values.cast_value('ab', col(DataType.CHAR, length=4)) == 'ab  '
    assert values.cast_value('abcdef', col(DataType.CHAR, length=4)) == 'abcd'
    assert values.cast_value('abcdef', col(DataType.VARCHAR, length=3)) == 'abc'
    assert values.cast_value(0, col(DataType.BOOLEAN)) is False
    assert values.cast_value('x', col(DataType.BOOLEAN)) is True
    assert values.cast_value(5, col(DataType.TEXT)) == '5'


def test_null_survives_casting():
    for data_type in DataType:
        column = ColumnDefinition(name='c', data_type=data_type, length=3, scale=2)
        assert values.cast_value(None, column) is None


def test_cast_row_types_leaves_missing_columns_absent():
    schema = TableSchema(name='t', columns=[
        ColumnDefinition(name='a', data_type=DataType.INT),
        ColumnDefinition(name='b', data_type=DataType.TEXT),
    ])
    assert values.cast_row_types({'a': '7', 'zzz': 1}, schema) == {'a': 7}


def test_infer_type_from_values():
    assert values.infer_type_from_values([1, 2.0]) == DataType.INT
    assert values.infer_type_from_values([1, 2.5]) == DataType.REAL
    assert values.infer_type_from_values([True, False]) == DataType.BOOLEAN
    assert values.infer_type_from_values(['a', 1]) == DataType.TEXT
    assert values.infer_type_from_values([]) == DataType.TEXT
