"""Row decoding tests."""

from datetime import datetime

import pytest

from pyesquery._decode import RowDecoder, collect_unmapped, decode_value
from pyesquery.schema import (
    BIGINT,
    BOOLEAN,
    DOUBLE,
    INTEGER,
    JSON,
    TIMESTAMP,
    VARCHAR,
    ColumnSchema,
    RelType,
    Schema,
)


class TestPrimitives:
    @pytest.mark.parametrize(
        "value, expected",
        [(5, 5), (-1, -1), (1.5, None), ("5", None), (True, None)],
    )
    def test_integers_accept_only_ints(self, value, expected):
        assert decode_value(value, BIGINT) == expected

    @pytest.mark.parametrize("value, expected", [(1.5, 1.5), (2, 2.0), ("1.5", None), (False, None)])
    def test_floats(self, value, expected):
        result = decode_value(value, DOUBLE)
        assert result == expected
        if expected is not None:
            assert isinstance(result, float)

    def test_boolean(self):
        assert decode_value(True, BOOLEAN) is True
        assert decode_value("true", BOOLEAN) is None

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("abc", "abc"),
            (5, "5"),
            (True, "true"),
            ({"a": [1, 2]}, '{"a":[1,2]}'),
            ("héllo", "héllo"),
        ],
    )
    def test_varchar(self, value, expected):
        assert decode_value(value, VARCHAR) == expected

    def test_json(self):
        assert decode_value({"b": None}, JSON) == '{"b":null}'

    def test_none(self):
        assert decode_value(None, INTEGER) is None


class TestTimestamps:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (0, datetime(1970, 1, 1)),
            (1704164645000, datetime(2024, 1, 2, 3, 4, 5)),
            ("2024-01-02T03:04:05", datetime(2024, 1, 2, 3, 4, 5)),
            ("2024-01-02T03:04:05Z", datetime(2024, 1, 2, 3, 4, 5)),
            ("2024-01-02T05:04:05+02:00", datetime(2024, 1, 2, 3, 4, 5)),
            ("2024-01-02", datetime(2024, 1, 2)),
        ],
    )
    def test_naive_utc(self, value, expected):
        result = decode_value(value, TIMESTAMP)
        assert result == expected
        assert result.tzinfo is None

    @pytest.mark.parametrize("value", ["yesterday", True, [1]])
    def test_invalid(self, value):
        assert decode_value(value, TIMESTAMP) is None


class TestCompositeTypes:
    def test_list_wraps_scalar(self):
        assert decode_value("a", RelType.list_of(VARCHAR)) == ["a"]

    def test_list_elements(self):
        assert decode_value([1, "x", 3], RelType.list_of(BIGINT)) == [1, None, 3]

    def test_struct(self):
        typ = RelType.struct_of([("city", VARCHAR), ("zip", INTEGER)])
        assert decode_value({"city": "NYC", "other": 1}, typ) == {"city": "NYC", "zip": None}

    def test_struct_from_scalar(self):
        typ = RelType.struct_of([("city", VARCHAR)])
        assert decode_value("NYC", typ) is None

    def test_list_of_structs(self):
        typ = RelType.list_of(RelType.struct_of([("sku", VARCHAR)]))
        assert decode_value({"sku": "a"}, typ) == [{"sku": "a"}]


class TestGeoValues:
    def test_geo_point(self):
        result = decode_value({"lat": 1, "lon": 2}, VARCHAR, "loc", {"loc": "geo_point"})
        assert result == '{"type":"Point","coordinates":[2.0,1.0]}'

    def test_geo_point_pair_is_not_a_list(self):
        result = decode_value([2, 1], VARCHAR, "loc", {"loc": "geo_point"})
        assert result == '{"type":"Point","coordinates":[2.0,1.0]}'

    def test_geo_shape_wkt(self):
        result = decode_value("POINT (1 2)", VARCHAR, "shape", {"shape": "geo_shape"})
        assert result == '{"type":"Point","coordinates":[1.0,2.0]}'

    def test_nested_geo(self):
        typ = RelType.struct_of([("loc", VARCHAR), ("name", VARCHAR)])
        result = decode_value(
            {"loc": "1,2", "name": "x"}, typ, "place", {"place.loc": "geo_point", "place.name": "keyword"}
        )
        assert result == {"loc": '{"type":"Point","coordinates":[2.0,1.0]}', "name": "x"}

    def test_undecodable_geo(self):
        assert decode_value("???", VARCHAR, "loc", {"loc": "geo_point"}) is None


class TestCollectUnmapped:
    def test_extra_top_level_keys(self):
        assert collect_unmapped({"a": 1, "x": 2}, frozenset({"a"})) == {"x": 2}

    def test_partially_declared_object(self):
        doc = {"a": 1, "b": {"c": 1, "d": 2}, "e": 3}
        assert collect_unmapped(doc, frozenset({"a", "b", "b.c"})) == {"b": {"d": 2}, "e": 3}

    def test_terminal_mapped_object_skipped(self):
        assert collect_unmapped({"meta": {"x": 1}}, frozenset({"meta"})) == {}

    def test_everything_mapped(self):
        assert collect_unmapped({"a": 1, "b": {"c": 2}}, frozenset({"a", "b", "b.c"})) == {}

    def test_not_a_document(self):
        assert collect_unmapped([1, 2], frozenset()) == {}


class TestRowDecoder:
    def test_decode(self, schema):
        decoder = RowDecoder(["_id", "age", "tags", "address", "_unmapped_"], schema)
        hit = {
            "_id": "7",
            "_source": {
                "age": 30,
                "tags": "solo",
                "address": {"city": "NYC", "zip": 10001, "floor": 3},
                "nickname": "AJ",
            },
        }
        assert decoder.decode(hit) == {
            "_id": "7",
            "age": 30,
            "tags": "solo",
            "address": {"city": "NYC", "street": None, "zip": 10001},
            "_unmapped_": '{"address":{"floor":3},"nickname":"AJ"}',
        }

    def test_nothing_unmapped_is_null(self, schema):
        decoder = RowDecoder(["_unmapped_"], schema)
        assert decoder.decode({"_id": "1", "_source": {"age": 1}}) == {"_unmapped_": None}

    def test_missing_source(self, schema):
        decoder = RowDecoder(["_id", "age"], schema)
        assert decoder.decode({"_id": "1"}) == {"_id": "1", "age": None}

    def test_raw_source_column(self):
        schema = Schema([ColumnSchema("_source", "_source", VARCHAR, es_type="object")])
        decoder = RowDecoder(["_id", "_source"], schema)
        hit = {"_id": "1", "_source": {"b": 2, "a": [1]}}
        assert decoder.decode(hit) == {"_id": "1", "_source": '{"b":2,"a":[1]}'}

    def test_geo_column(self, schema):
        decoder = RowDecoder(["location"], schema)
        assert decoder.decode({"_source": {"location": "POINT (1 2)"}}) == {
            "location": '{"type":"Point","coordinates":[1.0,2.0]}'
        }

    def test_unknown_column(self, schema):
        with pytest.raises(KeyError):
            RowDecoder(["nope"], schema)

    def test_columns(self, schema):
        assert RowDecoder(["_id", "age"], schema).columns == ["_id", "age"]
