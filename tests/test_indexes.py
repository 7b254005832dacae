#!/usr/bin/env python3
"""
Tests for index descriptors, index set recipes and the IndexController.

Usage:
    python -m pytest tests/test_indexes.py -v
"""

import pytest
import yaml
from unittest.mock import Mock
from mysql.connector import errors

from base import IdentifierError
from indexes import (
    ColumnSpec, IndexDescriptor, IndexController, DEFAULT_INDEX_SET, load_index_set,
)


class TestColumnSpec:

    @pytest.mark.parametrize('text, expected', [
        ('user_id', ('user_id', None, None)),
        ('issued_at DESC', ('issued_at', 'DESC', None)),
        ('issued_at desc', ('issued_at', 'DESC', None)),
        ('access_token(8)', ('access_token', None, 8)),
        ('access_token(8) ASC', ('access_token', 'ASC', 8)),
    ])
    def test_parse_shorthand(self, text, expected):
        spec = ColumnSpec.parse(text)
        assert (spec.name, spec.direction, spec.prefix_length) == expected

    def test_parse_mapping(self):
        spec = ColumnSpec.parse({'name': 'access_token', 'prefix_length': 8})
        assert spec.to_sql() == "`access_token`(8)"

    def test_to_sql(self):
        assert ColumnSpec('issued_at', 'DESC').to_sql() == "`issued_at` DESC"

    @pytest.mark.parametrize('bad', [
        'no_such_column',
        'user_id; DROP TABLE oauth_tokens',
        'user_id SIDEWAYS',
        'access_token(0)',
        '`user_id`',
    ])
    def test_rejects_unsafe_or_unknown(self, bad):
        with pytest.raises(IdentifierError):
            ColumnSpec.parse(bad)


class TestIndexDescriptor:

    def test_from_dict(self):
        descriptor = IndexDescriptor.from_dict({'name': 'idx_user_issued', 'columns': ['user_id', 'issued_at DESC']})
        assert descriptor.column_sql() == "`user_id`, `issued_at` DESC"
        assert str(descriptor) == "idx_user_issued (user_id, issued_at DESC)"

    def test_single_column_shorthand(self):
        descriptor = IndexDescriptor.from_dict({'name': 'idx_user_id', 'column': 'user_id'})
        assert [c.name for c in descriptor.columns] == ['user_id']

    @pytest.mark.parametrize('data', [
        {'name': 'idx-bad', 'columns': ['user_id']},
        {'name': 'PRIMARY', 'columns': ['user_id']},
        {'name': 'idx_empty', 'columns': []},
    ])
    def test_invalid_descriptors(self, data):
        with pytest.raises(IdentifierError):
            IndexDescriptor.from_dict(data)

    def test_default_index_set(self):
        names = [d.name for d in DEFAULT_INDEX_SET]
        assert names == [
            'idx_user_id', 'idx_client_id', 'idx_token_type', 'idx_access_token',
            'idx_refresh_token', 'idx_expires_at', 'idx_user_token_type',
            'idx_user_covering', 'idx_user_issued',
        ]
        by_name = {d.name: d for d in DEFAULT_INDEX_SET}
        assert by_name['idx_access_token'].columns[0].prefix_length == 8
        assert by_name['idx_user_issued'].columns[1].direction == 'DESC'
        assert len(by_name['idx_user_covering'].columns) == 4


class TestLoadIndexSet:

    def test_load_recipe(self, tmp_path):
        path = tmp_path / 'set.yaml'
        path.write_text(yaml.safe_dump({'indexes': [
            {'name': 'idx_user_id', 'columns': ['user_id']},
            {'name': 'idx_user_issued', 'columns': ['user_id', 'issued_at DESC']},
        ]}))
        descriptors = load_index_set(str(path))
        assert [d.name for d in descriptors] == ['idx_user_id', 'idx_user_issued']

    def test_duplicate_names_rejected(self, tmp_path):
        path = tmp_path / 'dup.yaml'
        path.write_text(yaml.safe_dump({'indexes': [
            {'name': 'idx_user_id', 'columns': ['user_id']},
            {'name': 'idx_user_id', 'columns': ['client_id']},
        ]}))
        with pytest.raises(ValueError):
            load_index_set(str(path))

    def test_missing_indexes_list(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text("name: nothing\n")
        with pytest.raises(ValueError):
            load_index_set(str(path))


class TestIndexController:

    @pytest.fixture(autouse=True)
    def _setup(self, fake_connection, test_config):
        self.connection = fake_connection
        self.controller = IndexController(test_config, fake_connection)
        self.descriptor = IndexDescriptor.from_dict({'name': 'idx_user_id', 'columns': ['user_id']})

    def test_apply_twice_is_idempotent(self):
        first = self.controller.apply(self.descriptor)
        second = self.controller.apply(self.descriptor)

        assert first.created is True
        assert second.created is False
        assert self.controller.list_active() == ['idx_user_id']

    def test_apply_propagates_other_errors(self):
        connection = Mock()
        cursor = connection.cursor.return_value
        cursor.execute.side_effect = errors.ProgrammingError(msg="Table doesn't exist", errno=1146)
        controller = IndexController({'database': {'table': 'oauth_tokens'}}, connection)

        with pytest.raises(errors.ProgrammingError):
            controller.apply(self.descriptor)
        cursor.close.assert_called_once()

    def test_drop_all_then_list_is_empty(self):
        self.controller.apply_all(DEFAULT_INDEX_SET)
        dropped = self.controller.drop_all()

        assert dropped == [d.name for d in DEFAULT_INDEX_SET]
        assert self.controller.list_active() == []

    def test_default_set_round_trip(self):
        self.controller.drop_all()
        results = self.controller.apply_all(DEFAULT_INDEX_SET)

        assert all(r.created for r in results)
        assert self.controller.list_active() == [d.name for d in DEFAULT_INDEX_SET]

    def test_list_active_is_not_cached(self):
        self.controller.apply(self.descriptor)
        # Index removed behind the controller's back
        del self.connection.indexes['idx_user_id']
        assert self.controller.list_active() == []

    def test_drop_all_skips_failures(self):
        self.controller.apply_all(DEFAULT_INDEX_SET[:3])
        original_drop = self.controller.drop

        def flaky_drop(name, table=None):
            if name == 'idx_client_id':
                raise errors.DatabaseError(msg="Lock wait timeout exceeded", errno=1205)
            return original_drop(name, table)

        self.controller.drop = flaky_drop
        dropped = self.controller.drop_all()

        assert dropped == ['idx_user_id', 'idx_token_type']
        assert self.controller.list_active() == ['idx_client_id']

    def test_describe_active(self):
        self.controller.apply_all(DEFAULT_INDEX_SET)
        described = {d.name: str(d) for d in self.controller.describe_active()}

        assert described['idx_access_token'] == 'idx_access_token (access_token(8))'
        assert described['idx_user_issued'] == 'idx_user_issued (user_id, issued_at DESC)'
        assert described['idx_user_covering'] == 'idx_user_covering (user_id, token_type, client_id, issued_at)'

    def test_unsafe_table_never_reaches_store(self):
        with pytest.raises(IdentifierError):
            self.controller.apply(self.descriptor, table='oauth_tokens`; DROP TABLE x; --')
        assert self.connection.executed == []
