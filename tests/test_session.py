"""Session tests: bind, cache and scan end to end over a mock cluster."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import SAMPLE_PROPERTIES, FakeCluster, make_documents
from pyesquery import BindCache, ConnectionConfig, ScanSettings, Session
from pyesquery._errors import (
    ERR_MSG_MISSING_INDEX,
    ConfigurationError,
    FilterSyntaxError,
    UnsafePushdownError,
)
from pyesquery.predicate import CompareOp, Comparison


def _session(cluster, settings=None, cache=None, **config):
    return Session(
        ConnectionConfig(**config),
        settings,
        cache=cache,
        transport=cluster.transport,
        sleep=MagicMock(),
    )


class TestBind:
    def test_columns(self):
        with _session(FakeCluster()) as session:
            bound = session.bind("people")
        assert bound.index == "people"
        assert bound.columns == ["_id", *SAMPLE_PROPERTIES, "_unmapped_"]
        assert bound.base_query is None

    def test_cached(self):
        cluster = FakeCluster()
        with _session(cluster) as session:
            first = session.bind("people")
            second = session.bind("people")
        assert first.schema is second.schema
        assert len(cluster.calls("GET")) == 1

    def test_cache_shared_between_sessions(self):
        cluster = FakeCluster()
        cache = BindCache()
        with _session(cluster, cache=cache) as one, _session(cluster, cache=cache) as two:
            one.bind("people")
            two.bind("people")
        assert len(cluster.calls("GET")) == 1
        assert len(cache) == 1

    def test_query_is_part_of_cache_key(self):
        cluster = FakeCluster()
        with _session(cluster) as session:
            session.bind("people")
            session.bind("people", query={"term": {"status": "a"}})
        assert len(cluster.calls("GET")) == 2

    def test_query_json_text(self):
        cluster = FakeCluster(documents=make_documents(1))
        with _session(cluster) as session:
            bound = session.bind("people", query='{"term": {"status": "a"}}')
        assert bound.base_query == {"term": {"status": "a"}}
        assert cluster.searches()[0][3] == {"query": {"term": {"status": "a"}}}

    @pytest.mark.parametrize("query", ["{", "[1, 2]", '"text"'])
    def test_invalid_query(self, query):
        with _session(FakeCluster()) as session:
            with pytest.raises(ConfigurationError, match="must be a JSON object"):
                session.bind("people", query=query)

    @pytest.mark.parametrize("index", ["", "  "])
    def test_missing_index(self, index):
        with _session(FakeCluster()) as session:
            with pytest.raises(ConfigurationError) as exc_info:
                session.bind(index)
        assert exc_info.value.user_message == ERR_MSG_MISSING_INDEX

    def test_missing_host(self):
        with pytest.raises(ConfigurationError, match="requires 'host' parameter"):
            _session(FakeCluster(), host="")


class TestSettings:
    def test_defaults(self):
        with _session(FakeCluster()) as session:
            assert session.settings == ScanSettings()

    def test_sample_size_change_clears_cache(self):
        cluster = FakeCluster()
        with _session(cluster) as session:
            session.bind("people")
            session.update_settings(sample_size=10)
            assert len(session.cache) == 0
            session.bind("people")
        assert len(cluster.calls("GET")) == 2

    def test_other_changes_keep_cache(self):
        with _session(FakeCluster()) as session:
            session.bind("people")
            updated = session.update_settings(batch_size=10)
            assert updated.batch_size == 10
            assert session.settings is updated
            assert len(session.cache) == 1

    def test_invalid_change_rejected(self):
        with _session(FakeCluster()) as session:
            with pytest.raises(ValueError):
                session.update_settings(batch_size=0)
            assert session.settings.batch_size == 1000

    def test_clear_cache(self):
        with _session(FakeCluster()) as session:
            session.bind("people")
            assert session.clear_cache() == 1
            assert session.clear_cache() == 0


class TestScan:
    def test_all_columns(self):
        cluster = FakeCluster(documents=make_documents(2))
        with _session(cluster) as session:
            bound = session.bind("people")
            with session.scan(bound, limit=1) as scan:
                rows = list(scan)
        (row,) = rows
        assert list(row) == bound.columns
        assert row["_id"] == "1"
        assert row["name"] == "user1"
        assert row["_unmapped_"] is None

    def test_where(self):
        cluster = FakeCluster(documents=make_documents(3))
        with _session(cluster) as session:
            bound = session.bind("people")
            scan = session.scan(bound, columns=["_id"], where="age > 1")
            list(scan)
        body = cluster.searches()[-1][3]
        assert body == {"query": {"range": {"age": {"gt": 1}}}, "_source": False}

    def test_where_and_filters(self):
        cluster = FakeCluster(documents=make_documents(1))
        with _session(cluster) as session:
            bound = session.bind("people")
            list(
                session.scan(
                    bound,
                    columns=["age"],
                    filters={"status": Comparison(CompareOp.EQ, "", "active")},
                    filter_only_columns=["status"],
                    where='name.startsWith("user")',
                )
            )
        assert cluster.searches()[-1][3]["query"] == {
            "bool": {
                "must": [
                    {"term": {"status": "active"}},
                    {"prefix": {"name.keyword": {"value": "user"}}},
                ]
            }
        }

    def test_where_and_predicate_tree(self):
        cluster = FakeCluster(documents=make_documents(1))
        with _session(cluster) as session:
            bound = session.bind("people")
            list(session.scan(bound, columns=["age"], filters=Comparison(CompareOp.LT, "age", 9), where="age > 1"))
        assert cluster.searches()[-1][3]["query"] == {
            "bool": {"must": [{"range": {"age": {"lt": 9}}}, {"range": {"age": {"gt": 1}}}]}
        }

    def test_base_query_applied(self):
        cluster = FakeCluster(documents=make_documents(1))
        with _session(cluster) as session:
            bound = session.bind("people", query={"match": {"body": "hi"}})
            list(session.scan(bound, columns=["age"], where="age > 1"))
        assert cluster.searches()[-1][3]["query"] == {
            "bool": {"must": [{"match": {"body": "hi"}}, {"range": {"age": {"gt": 1}}}]}
        }

    def test_unsafe_where_fails_before_search(self):
        cluster = FakeCluster(documents=make_documents(1))
        with _session(cluster) as session:
            bound = session.bind("people")
            searches = len(cluster.searches())
            with pytest.raises(UnsafePushdownError):
                session.scan(bound, where='body == "x"')
        assert len(cluster.searches()) == searches

    def test_bad_where(self):
        with _session(FakeCluster()) as session:
            bound = session.bind("people")
            with pytest.raises(FilterSyntaxError):
                session.scan(bound, where="age >")

    def test_negated_where_filters_rows_locally(self):
        cluster = FakeCluster(documents=make_documents(10))
        with _session(cluster) as session:
            rows = session.query("people", where="!(age > 5)", columns=["_id", "age"])
        assert [r["age"] for r in rows] == [1, 2, 3, 4, 5]
        search = cluster.searches()[-1]
        assert search[3] == {"query": {"match_all": {}}}
        assert search[2]["size"] == "1000"

    def test_local_filter_applies_before_offset_and_limit(self):
        cluster = FakeCluster(documents=make_documents(10))
        with _session(cluster) as session:
            rows = session.query("people", where="!(age > 5)", columns=["age"], offset=1, limit=2)
        assert rows == [{"age": 2}, {"age": 3}]

    def test_local_filter_spans_pages(self):
        cluster = FakeCluster(documents=make_documents(10))
        with _session(cluster, ScanSettings(batch_size=3)) as session:
            rows = session.query("people", where='!like(name, "user1%")', columns=["_id"])
        assert [r["_id"] for r in rows] == [str(i) for i in range(2, 10)]

    def test_or_with_untranslatable_branch_filters_locally(self):
        cluster = FakeCluster(documents=make_documents(6))
        with _session(cluster) as session:
            bound = session.bind("people")
            scan = session.scan(bound, columns=["age"], where="age < 3 || size(name) > 100")
            assert not scan.request.fully_pushed
            assert scan.request.row_filter is not None
            rows = list(scan)
        assert rows == [{"age": 1}, {"age": 2}]

    def test_partially_pushed_where_keeps_pushed_part(self):
        cluster = FakeCluster(documents=make_documents(10))
        with _session(cluster) as session:
            rows = session.query("people", where="age > 2 && !(age > 4)", columns=["age"])
        assert rows == [{"age": 3}, {"age": 4}]
        assert cluster.searches()[-1][3] == {"query": {"range": {"age": {"gt": 2}}}}

    def test_fully_pushed_where_has_no_row_filter(self):
        with _session(FakeCluster(documents=make_documents(1))) as session:
            scan = session.scan(session.bind("people"), columns=["age"], where="age > 1")
            assert scan.request.row_filter is None
            scan.close()

    def test_local_geo_filter_fails_before_search(self):
        cluster = FakeCluster(documents=make_documents(1))
        with _session(cluster) as session:
            bound = session.bind("people")
            searches = len(cluster.searches())
            with pytest.raises(UnsafePushdownError, match="geospatial"):
                session.scan(bound, where='!geo_within(location, "POLYGON ((0 0, 1 0, 1 1, 0 1, 0 0))")')
        assert len(cluster.searches()) == searches

    def test_query_helper(self):
        cluster = FakeCluster(documents=make_documents(10))
        with _session(cluster) as session:
            rows = session.query("people", columns=["_id", "age"], limit=2, offset=1)
        assert rows == [{"_id": "2", "age": 2}, {"_id": "3", "age": 3}]
        assert len(cluster.calls("DELETE")) >= 1


def test_close_closes_http_client():
    session = _session(FakeCluster())
    session.close()
    assert session.client._http.is_closed
