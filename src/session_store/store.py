from __future__ import annotations

import json
import logging
import warnings
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from .backends import resolve_backend
from .base import BaseSessionStore
from .config import SessionStoreConfig, build_config
from .errors import ConfigurationError
from .executor import QueryExecutor, Row
from .expiry import current_timestamp, get_expire_time, legacy_expire_time
from .provisioner import TableProvisioner
from .pruner import PruneScheduler
from .quoting import escape_placeholders, quote_table, split_table_name

logger = logging.getLogger(__name__)


class PGSessionStore(BaseSessionStore):
    """PostgreSQL-backed session store.

    Sessions live in a single ``(sid, sess, expire)`` table. Expired rows are
    never returned and are removed by a jittered background prune that is
    armed on first use of the store.
    """

    def __init__(
        self,
        config: Union[SessionStoreConfig, Mapping[str, Any], None] = None,
        *,
        base_options: Optional[Mapping[str, Any]] = None,
        **options: Any,
    ) -> None:
        super().__init__(**dict(base_options or {}))
        if config is not None and options:
            raise ConfigurationError("Pass either a config object or keyword options, not both")
        self._config = build_config(dict(config) if isinstance(config, Mapping) else config or options)

        schema_name, table_name = split_table_name(self._config.table_name, self._config.schema_name)
        self._quoted_table = quote_table(table_name, schema_name)

        if self._config.use_legacy_upsert:
            warnings.warn(
                "use_legacy_upsert is deprecated; the two-step upsert can race on first insert",
                DeprecationWarning,
                stacklevel=2,
            )

        self._executor = QueryExecutor(resolve_backend(self._config))
        self._provisioner = TableProvisioner(
            self._executor.execute,
            self._quoted_table,
            table_name,
            enabled=self._config.create_table_if_missing,
            cache_failure=self._config.cache_provisioning_failure,
        )
        self._executor.before_query = self._provisioner.ensure_table
        self._error_log = self._config.error_log or logger.error
        self._pruner = PruneScheduler(
            self.prune_sessions,
            self._config.prune_session_interval,
            jitter=self._config.prune_session_randomized_interval,
            error_log=self._error_log,
        )
        self._closed = False

        t = escape_placeholders(self._quoted_table)
        self._get_sql = f"SELECT sess FROM {t} WHERE sid = %s AND expire >= to_timestamp(%s)"
        self._upsert_sql = (
            f"INSERT INTO {t} (sess, expire, sid) VALUES (%s::json, to_timestamp(%s), %s) "
            "ON CONFLICT (sid) DO UPDATE SET sess = EXCLUDED.sess, expire = EXCLUDED.expire RETURNING sid"
        )
        self._destroy_sql = f"DELETE FROM {t} WHERE sid = %s"
        self._prune_sql = f"DELETE FROM {t} WHERE expire < to_timestamp(%s)"
        self._touch_sql = f"UPDATE {t} SET expire = to_timestamp(%s) WHERE sid = %s RETURNING sid"

    @property
    def config(self) -> SessionStoreConfig:
        return self._config

    @property
    def quoted_table(self) -> str:
        return self._quoted_table

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def owns_resource(self) -> bool:
        return self._executor.owns_resource

    @property
    def error_log(self) -> Callable[..., Any]:
        return self._error_log

    @property
    def pruner(self) -> PruneScheduler:
        return self._pruner

    def get_expire_time(self, sess: Optional[Mapping[str, Any]]) -> int:
        if self._config.legacy_max_age_expiry:
            cookie = (sess or {}).get("cookie") or {}
            return legacy_expire_time(cookie.get("maxAge", cookie.get("max_age")), self._config.ttl)
        return get_expire_time(sess, self._config.ttl)

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Row]:
        """Run an ad-hoc statement; the first row, if any, is returned."""
        return await self._executor.execute(sql, params)

    async def get(self, sid: str) -> Optional[Any]:
        self._pruner.ensure_armed()
        row = await self._executor.execute(self._get_sql, (sid, current_timestamp()))
        if row is None:
            return None
        sess = row["sess"]
        if not isinstance(sess, str):
            return sess
        try:
            return json.loads(sess)
        except ValueError:
            logger.warning("Discarding unreadable session %s", sid)
            await self.destroy(sid)
            return None

    async def set(self, sid: str, sess: Mapping[str, Any]) -> None:
        self._pruner.ensure_armed()
        expire = self.get_expire_time(sess)
        payload = json.dumps(sess, default=str)
        if self._config.use_legacy_upsert:
            await self._legacy_upsert(sid, payload, expire)
            return
        await self._executor.execute(self._upsert_sql, (payload, expire, sid))

    async def destroy(self, sid: str) -> None:
        self._pruner.ensure_armed()
        await self._executor.execute(self._destroy_sql, (sid,))

    async def touch(self, sid: str, sess: Mapping[str, Any]) -> None:
        self._pruner.ensure_armed()
        if self._config.disable_touch:
            return
        await self._executor.execute(self._touch_sql, (self.get_expire_time(sess), sid))

    async def prune_sessions(self) -> None:
        """Delete every expired session once; failures propagate to the caller."""
        await self._executor.execute(self._prune_sql, (current_timestamp(),))
        logger.debug("Pruned expired sessions from %s", self._quoted_table)

    async def close(self) -> None:
        """Stop pruning and release the pool if the store created it."""
        if self._closed:
            return
        self._closed = True
        self._pruner.stop()
        await self._executor.close()
        logger.info("Closed session store for %s", self._quoted_table)

    async def _legacy_upsert(self, sid: str, payload: str, expire: int) -> None:
        t = escape_placeholders(self._quoted_table)
        updated = await self._executor.execute(
            f"UPDATE {t} SET sess = %s::json, expire = to_timestamp(%s) WHERE sid = %s RETURNING sid",
            (payload, expire, sid),
        )
        if updated is not None:
            return
        await self._executor.execute(
            f"INSERT INTO {t} (sess, expire, sid) SELECT %s::json, to_timestamp(%s), %s "
            f"WHERE NOT EXISTS (SELECT 1 FROM {t} WHERE sid = %s)",
            (payload, expire, sid, sid),
        )
