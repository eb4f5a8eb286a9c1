import asyncio
import json

import pytest

from src.session_store import PGSessionStore
from src.session_store.errors import ConfigurationError


@pytest.mark.asyncio
async def test_set_get_and_destroy_session(make_store, database, clock):
    store = make_store()
    sess = {"cookie": {"maxAge": 2000}, "user": "alice"}

    await store.set("abc", sess)
    assert await store.get("abc") == sess

    await store.destroy("abc")
    assert await store.get("abc") is None


@pytest.mark.asyncio
async def test_missing_session_is_absent(make_store):
    store = make_store()
    assert await store.get("nope") is None


@pytest.mark.asyncio
async def test_destroy_is_idempotent(make_store, database):
    store = make_store()
    await store.destroy("never-existed")
    await store.set("abc", {"cookie": {}})
    await store.destroy("abc")
    await store.destroy("abc")
    assert "abc" not in database.rows


@pytest.mark.asyncio
async def test_set_upserts_with_a_single_statement(make_store, database):
    store = make_store()
    await asyncio.gather(*(store.set("same", {"cookie": {}, "n": n}) for n in range(5)))

    assert list(database.rows) == ["same"]
    assert database.count("INSERT INTO") == 5
    assert all("ON CONFLICT (sid)" in sql for sql, _ in database.statements)


@pytest.mark.asyncio
async def test_expired_session_is_not_returned_before_pruning(make_store, clock):
    store = make_store(ttl=1)
    await store.set("abc", {"cookie": {}, "user": "alice"})
    assert await store.get("abc") == {"cookie": {}, "user": "alice"}

    clock.advance(2.5)
    assert await store.get("abc") is None


@pytest.mark.asyncio
async def test_malformed_payload_destroys_row(make_store, database):
    store = make_store()
    database.rows["broken"] = {"sess": "{not json", "expire": 2**40}

    assert await store.get("broken") is None
    assert "broken" not in database.rows
    assert await store.get("broken") is None


@pytest.mark.asyncio
async def test_destroy_failure_replaces_parse_error(make_store, database):
    store = make_store()
    database.rows["broken"] = {"sess": "{not json", "expire": 2**40}
    database.fail_next("DELETE", RuntimeError("delete failed"))

    with pytest.raises(RuntimeError, match="delete failed"):
        await store.get("broken")


@pytest.mark.asyncio
async def test_decoded_payload_is_returned_as_is(make_store, database):
    store = make_store()
    database.rows["abc"] = {"sess": {"cookie": {}, "n": 1}, "expire": 2**40}
    assert await store.get("abc") == {"cookie": {}, "n": 1}


@pytest.mark.asyncio
async def test_touch_refreshes_expiry_only(make_store, database, clock):
    store = make_store(ttl=10)
    await store.set("abc", {"cookie": {}, "user": "alice"})
    original = dict(database.rows["abc"])

    clock.advance(5)
    await store.touch("abc", {"cookie": {}, "user": "mallory"})

    assert database.rows["abc"]["sess"] == original["sess"]
    assert database.rows["abc"]["expire"] == original["expire"] + 5


@pytest.mark.asyncio
async def test_disabled_touch_issues_no_queries(make_store, database):
    store = make_store(disable_touch=True)
    await store.touch("abc", {"cookie": {}})
    assert database.statements == []


@pytest.mark.asyncio
async def test_payload_is_serialised_as_json(make_store, database):
    store = make_store()
    await store.set("abc", {"cookie": {}, "tags": ["a", "b"]})
    _, params = database.statements[-1]
    assert json.loads(params[0]) == {"cookie": {}, "tags": ["a", "b"]}
    assert params[2] == "abc"


@pytest.mark.asyncio
async def test_statements_use_quoted_table(make_store, database):
    store = make_store(schema_name="app", table_name="web_sessions")
    await store.get("abc")
    sql, params = database.statements[-1]
    assert '"app"."web_sessions"' in sql
    assert params[0] == "abc"


@pytest.mark.asyncio
async def test_query_failures_propagate(make_store, database):
    store = make_store()
    error = RuntimeError("connection reset")
    database.fail_next("INSERT", error)
    with pytest.raises(RuntimeError) as excinfo:
        await store.set("abc", {"cookie": {}})
    assert excinfo.value is error


@pytest.mark.asyncio
async def test_legacy_upsert_updates_then_inserts(make_store, database):
    with pytest.warns(DeprecationWarning):
        store = make_store(use_legacy_upsert=True)

    await store.set("abc", {"cookie": {}, "n": 1})
    await store.set("abc", {"cookie": {}, "n": 2})

    assert json.loads(database.rows["abc"]["sess"]) == {"cookie": {}, "n": 2}
    assert database.count("UPDATE") == 2
    assert database.count("INSERT INTO") == 1


@pytest.mark.asyncio
async def test_close_is_idempotent_and_keeps_borrowed_client(make_store, database):
    store = make_store()
    await store.close()
    await store.close()
    assert store.closed
    assert not store.owns_resource
    await store.set("abc", {"cookie": {}})
    assert "abc" in database.rows


def test_config_object_and_keywords_are_exclusive(database):
    from src.session_store import SessionStoreConfig

    config = SessionStoreConfig(query_client=database)
    with pytest.raises(ConfigurationError):
        PGSessionStore(config, ttl=5)
    assert PGSessionStore(config).config is config


@pytest.mark.asyncio
async def test_percent_in_table_name_is_not_a_placeholder(make_store, database):
    store = make_store(schema_name="app%x", table_name="sess%ions", use_legacy_upsert=False)

    await store.set("abc", {"cookie": {}})
    await store.touch("abc", {"cookie": {}})
    await store.get("abc")
    await store.destroy("abc")
    await store.prune_sessions()

    for sql, params in database.statements:
        assert '"app%%x"."sess%%ions"' in sql
        rendered = sql % tuple("'p'" for _ in params)
        assert '"app%x"."sess%ions"' in rendered


@pytest.mark.asyncio
async def test_percent_in_table_name_with_legacy_upsert(make_store, database):
    with pytest.warns(DeprecationWarning):
        store = make_store(table_name="sess%ions", use_legacy_upsert=True)

    await store.set("abc", {"cookie": {}})

    assert database.count("UPDATE") == 1
    assert database.count("INSERT INTO") == 1
    for sql, params in database.statements:
        assert '"sess%ions"' in sql % tuple("'p'" for _ in params)


@pytest.mark.asyncio
async def test_legacy_max_age_expiry_applies_to_set_and_touch(make_store, database, clock):
    clock.now = 1000.0
    store = make_store(legacy_max_age_expiry=True)
    expires = "2030-01-01T00:00:00Z"

    await store.set("abc", {"cookie": {"maxAge": 1500, "expires": expires}})
    assert database.rows["abc"]["expire"] == 1002

    clock.advance(10)
    await store.touch("abc", {"cookie": {"max_age": 60000}})
    assert database.rows["abc"]["expire"] == 1070

    await store.touch("abc", {"cookie": {}})
    assert database.rows["abc"]["expire"] == 1010 + 86400


@pytest.mark.asyncio
async def test_legacy_max_age_expiry_defers_to_store_ttl(make_store, database, clock):
    clock.now = 1000.0
    store = make_store(legacy_max_age_expiry=True, ttl=30)

    await store.set("abc", {"cookie": {"maxAge": 1500}})

    assert database.rows["abc"]["expire"] == 1030
