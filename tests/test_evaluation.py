"""Tests for condition, group and tree evaluation."""

from __future__ import annotations

import logging
import math
from datetime import datetime

import pytest

from trigger_engine.models.conditions import (
    Condition,
    ConditionGroup,
    ConditionOperator,
    GroupedConditions,
    LegacyConditions,
    LogicalOperator,
)
from trigger_engine.services.evaluation import (
    MISSING,
    evaluate_condition,
    evaluate_group,
    evaluate_tree,
    loose_equals,
    resolve_path,
    stringify,
    to_number,
)


def cond(field, operator, value=None):
    return Condition(field=field, operator=operator, value=value)


class TestResolvePath:
    def test_nested_mapping(self):
        assert resolve_path({'user': {'role': 'admin'}}, 'user.role') == 'admin'

    def test_missing_intermediate_key(self):
        assert resolve_path({'user': {}}, 'user.role.name') is MISSING
        assert resolve_path({}, 'user.role') is MISSING

    def test_none_intermediate(self):
        assert resolve_path({'user': None}, 'user.role') is MISSING

    def test_explicit_none_is_not_missing(self):
        assert resolve_path({'unit': None}, 'unit') is None

    def test_list_index(self):
        data = {'items': [{'name': 'sand'}, {'name': 'gravel'}]}
        assert resolve_path(data, 'items.1.name') == 'gravel'
        assert resolve_path(data, 'items.5.name') is MISSING
        assert resolve_path(data, 'items.first') is MISSING

    def test_scalar_is_not_walked(self):
        assert resolve_path({'name': 'Cement'}, 'name.upper') is MISSING


class TestCoercion:
    @pytest.mark.parametrize('value,expected', [
        (True, 1.0),
        (False, 0.0),
        (None, 0.0),
        ('', 0.0),
        ('  42 ', 42.0),
        ('3.5', 3.5),
        (7, 7.0),
    ])
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    @pytest.mark.parametrize('value', ['abc', MISSING, {'a': 1}, [1]])
    def test_to_number_nan(self, value):
        assert math.isnan(to_number(value))

    def test_to_number_datetime_is_epoch_millis(self):
        moment = datetime(2024, 1, 1, 12, 0, 0)
        assert to_number(moment) == moment.timestamp() * 1000

    def test_stringify(self):
        assert stringify(None) == ''
        assert stringify(True) == 'true'
        assert stringify(30.0) == '30'
        assert stringify(2.5) == '2.5'
        assert stringify({'b': 1, 'a': 2}) == '{"a":2,"b":1}'
        assert stringify(datetime(2024, 5, 1, 9, 30)) == '2024-05-01T09:30:00'

    def test_loose_equals(self):
        assert loose_equals('5', 5)
        assert loose_equals(5, '5.0')
        assert loose_equals(True, 1)
        assert loose_equals(None, MISSING)
        assert not loose_equals(None, 0)
        assert not loose_equals('abc', 0)
        assert not loose_equals('Admin', 'admin')


class TestEvaluateCondition:
    def test_equals_string_number_coercion(self):
        assert evaluate_condition(cond('qty', 'equals', 5), {'qty': '5'})
        assert evaluate_condition(cond('qty', 'equals', '5'), {'qty': 5})

    def test_not_equals(self):
        assert evaluate_condition(cond('status', 'not_equals', 'completed'), {'status': 'pending'})
        assert not evaluate_condition(cond('qty', 'not_equals', 5), {'qty': '5'})

    def test_nested_path(self):
        data = {'user': {'role': 'admin'}}
        assert evaluate_condition(cond('user.role', 'equals', 'admin'), data)

    def test_missing_intermediate_never_raises(self):
        assert not evaluate_condition(cond('user.role.name', 'equals', 'admin'), {'user': 3})
        assert evaluate_condition(cond('user.role', 'not_equals', 'admin'), {})

    @pytest.mark.parametrize('operator,value,expected', [
        ('greater_than', 10, True),
        ('greater_than', 30, False),
        ('less_than', 50, True),
        ('less_than', 30, False),
        ('greater_than_or_equal', 30, True),
        ('less_than_or_equal', 30, True),
        ('less_than_or_equal', 29, False),
    ])
    def test_numeric_operators(self, operator, value, expected):
        assert evaluate_condition(cond('stock', operator, value), {'stock': 30}) is expected

    def test_numeric_coercion_from_strings(self):
        assert evaluate_condition(cond('stock', 'less_than', '50'), {'stock': '30'})

    @pytest.mark.parametrize('operator', [
        'greater_than', 'less_than', 'greater_than_or_equal', 'less_than_or_equal',
    ])
    def test_nan_comparisons_are_false(self, operator):
        assert not evaluate_condition(cond('stock', operator, 10), {'stock': 'lots'})
        assert not evaluate_condition(cond('stock', operator, 'many'), {'stock': 10})
        assert not evaluate_condition(cond('stock', operator, 10), {})

    def test_text_operators_case_insensitive(self):
        data = {'name': 'Portland Cement'}
        assert evaluate_condition(cond('name', 'contains', 'CEMENT'), data)
        assert evaluate_condition(cond('name', 'starts_with', 'portland'), data)
        assert evaluate_condition(cond('name', 'ends_with', 'ENT'), data)
        assert evaluate_condition(cond('name', 'not_contains', 'sand'), data)
        assert not evaluate_condition(cond('name', 'not_contains', 'land'), data)

    def test_text_operators_on_numbers(self):
        assert evaluate_condition(cond('code', 'starts_with', 12), {'code': 12345})

    def test_text_operators_on_missing_field(self):
        assert not evaluate_condition(cond('name', 'contains', ''), {})
        assert evaluate_condition(cond('name', 'not_contains', 'x'), {})

    def test_unknown_operator_is_false_and_logged(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert not evaluate_condition(cond('qty', 'matches', '.*'), {'qty': 1})
        assert "Unknown condition operator 'matches'" in caplog.text


class TestEvaluateGroup:
    def test_empty_and_is_true(self):
        assert evaluate_group(ConditionGroup('AND', ()), {})

    def test_empty_or_is_false(self):
        assert not evaluate_group(ConditionGroup('OR', ()), {})

    def test_and_requires_all(self):
        group = ConditionGroup('AND', (cond('a', 'equals', 1), cond('b', 'equals', 2)))
        assert evaluate_group(group, {'a': 1, 'b': 2})
        assert not evaluate_group(group, {'a': 1, 'b': 3})

    def test_or_requires_one(self):
        group = ConditionGroup('OR', (cond('a', 'equals', 1), cond('b', 'equals', 2)))
        assert evaluate_group(group, {'a': 0, 'b': 2})
        assert not evaluate_group(group, {'a': 0, 'b': 0})

    def test_lowercase_operator_accepted(self):
        assert evaluate_group(ConditionGroup('or', (cond('a', 'equals', 1),)), {'a': 1})

    def test_unknown_operator_is_false(self):
        assert not evaluate_group(ConditionGroup('XOR', (cond('a', 'equals', 1),)), {'a': 1})


class TestEvaluateTree:
    def test_empty_legacy_list_never_fires(self):
        assert not evaluate_tree(LegacyConditions(), {})
        assert not evaluate_tree([], {})

    def test_grouped_with_no_groups_never_fires(self):
        assert not evaluate_tree(GroupedConditions('AND', ()), {})
        assert not evaluate_tree({'operator': 'OR', 'groups': []}, {})

    @pytest.mark.parametrize('raw', [None, 'AND', 42, {'operator': 'AND'}, {'groups': 'x'}, [1, 2]])
    def test_malformed_tree_is_false(self, raw):
        assert not evaluate_tree(raw, {'a': 1})

    def test_legacy_list_matches_grouped_single_and(self):
        conditions = [
            {'field': 'currentStock', 'operator': 'less_than', 'value': 50},
            {'field': 'minStock', 'operator': 'greater_than', 'value': 0},
        ]
        grouped = {'operator': 'AND', 'groups': [{'operator': 'AND', 'conditions': conditions}]}
        payloads = [
            {'currentStock': 30, 'minStock': 50},
            {'currentStock': 60, 'minStock': 50},
            {'currentStock': 30, 'minStock': 0},
            {},
        ]
        for data in payloads:
            assert evaluate_tree(conditions, data) == evaluate_tree(grouped, data)

    def test_top_level_operator_defaults_to_and(self):
        tree = {'groups': [
            {'operator': 'AND', 'conditions': [{'field': 'a', 'operator': 'equals', 'value': 1}]},
            {'operator': 'AND', 'conditions': [{'field': 'b', 'operator': 'equals', 'value': 1}]},
        ]}
        assert evaluate_tree(tree, {'a': 1, 'b': 1})
        assert not evaluate_tree(tree, {'a': 1, 'b': 0})

    def test_overdue_or_urgent(self):
        tree = {
            'operator': 'OR',
            'groups': [
                {'operator': 'AND', 'conditions': [
                    {'field': 'priority', 'operator': 'equals', 'value': 'urgent'},
                    {'field': 'daysOverdue', 'operator': 'greater_than', 'value': 0},
                ]},
                {'operator': 'AND', 'conditions': [
                    {'field': 'daysOverdue', 'operator': 'greater_than', 'value': 7},
                ]},
            ],
        }
        assert evaluate_tree(tree, {'priority': 'low', 'daysOverdue': 10})
        assert not evaluate_tree(tree, {'priority': 'low', 'daysOverdue': 2})
        assert evaluate_tree(tree, {'priority': 'urgent', 'daysOverdue': 2})

    def test_unknown_top_level_operator_is_false(self):
        tree = GroupedConditions('NAND', (ConditionGroup('AND', (cond('a', 'equals', 1),)),))
        assert not evaluate_tree(tree, {'a': 1})

    def test_group_with_empty_conditions_under_or(self):
        tree = GroupedConditions('OR', (
            ConditionGroup('AND', ()),
            ConditionGroup('AND', (cond('a', 'equals', 2),)),
        ))
        assert evaluate_tree(tree, {'a': 1})


class TestEnumOperators:
    def test_group_built_from_enums(self):
        group = ConditionGroup(
            operator=LogicalOperator.AND,
            conditions=(Condition('x', ConditionOperator.EQUALS, 1),),
        )
        assert evaluate_group(group, {'x': 1})
        assert not evaluate_group(group, {'x': 2})

    def test_tree_built_from_enums(self):
        tree = GroupedConditions(operator=LogicalOperator.OR, groups=(
            ConditionGroup(LogicalOperator.AND, (cond('a', ConditionOperator.EQUALS, 1),)),
            ConditionGroup(LogicalOperator.AND, (cond('b', ConditionOperator.GREATER_THAN, 5),)),
        ))
        assert evaluate_tree(tree, {'a': 0, 'b': 6})
        assert not evaluate_tree(tree, {'a': 0, 'b': 5})

    def test_raw_tree_with_enum_members(self):
        raw = {
            'operator': LogicalOperator.OR,
            'groups': [{
                'operator': LogicalOperator.AND,
                'conditions': [{'field': 'a', 'operator': ConditionOperator.LESS_THAN, 'value': 3}],
            }],
        }
        assert evaluate_tree(raw, {'a': 2})
        assert not evaluate_tree(raw, {'a': 4})
