# marketbot/db.py
import copy
import json
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import psycopg2
from psycopg2.extras import Json

from .config import Settings
from .errors import StoreError

logger = logging.getLogger(__name__)

# (field, op, value); field may be dotted ("owner.userId")
Filter = Tuple[str, str, Any]

_OPS = ("==", "!=", "<", "<=", ">", ">=")


def get_path(doc: Dict[str, Any], path: str) -> Any:
    cur: Any = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


def set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    """
    'data.location.area' -> doc['data']['location']['area'] = value,
    creating intermediate dicts as needed.
    """
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value


def _matches(doc: Dict[str, Any], filters: Sequence[Filter]) -> bool:
    for field_name, op, value in filters:
        actual = get_path(doc, field_name)
        if op == "==":
            ok = actual == value
        elif op == "!=":
            ok = actual != value
        else:
            if actual is None:
                return False
            try:
                if op == "<":
                    ok = actual < value
                elif op == "<=":
                    ok = actual <= value
                elif op == ">":
                    ok = actual > value
                elif op == ">=":
                    ok = actual >= value
                else:
                    raise StoreError(f"Unsupported filter op: {op}")
            except TypeError:
                return False
        if not ok:
            return False
    return True


class InMemoryDocumentStore:
    """
    Process-local document store. Used in tests and when DB_DSN is not set.
    Documents are deep-copied on the way in and out.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _col(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._col(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._lock:
            col = self._col(collection)
            if merge and doc_id in col:
                col[doc_id].update(copy.deepcopy(data))
            else:
                col[doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, paths: Dict[str, Any]) -> bool:
        with self._lock:
            doc = self._col(collection).get(doc_id)
            if doc is None:
                return False
            for path, value in paths.items():
                set_path(doc, path, copy.deepcopy(value))
            return True

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._col(collection).pop(doc_id, None)

    def query(
            self,
            collection: str,
            filters: Sequence[Filter] = (),
            order_by: Optional[str] = None,
            descending: bool = False,
            limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            docs = [d for d in self._col(collection).values() if _matches(d, filters)]
            if order_by:
                present = [d for d in docs if get_path(d, order_by) is not None]
                missing = [d for d in docs if get_path(d, order_by) is None]
                present.sort(key=lambda d: get_path(d, order_by), reverse=descending)
                docs = present + missing
            if limit is not None:
                docs = docs[:limit]
            return copy.deepcopy(docs)

    def delete_where(self, collection: str, filters: Sequence[Filter]) -> int:
        with self._lock:
            col = self._col(collection)
            ids = [doc_id for doc_id, d in col.items() if _matches(d, filters)]
            for doc_id in ids:
                del col[doc_id]
            return len(ids)


class PostgresDocumentStore:
    """
    All collections share one JSONB table:
        documents(collection, id, data)
    One connection per store, autocommit on.
    """

    def __init__(self, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("DB_DSN is not set, cannot connect to Postgres.")
        self._dsn = dsn
        self._connection = None

    def _get_connection(self):
        if self._connection is None or self._connection.closed:
            try:
                self._connection = psycopg2.connect(self._dsn)
            except psycopg2.Error as e:
                raise StoreError(f"Postgres connect failed: {e}") from e
            self._connection.autocommit = True
        return self._connection

    def _execute(self, sql: str, params: Iterable[Any] = (), fetch: bool = False):
        conn = self._get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                if fetch:
                    return cur.fetchall()
                return cur.rowcount
        except psycopg2.Error as e:
            logger.error("Postgres error: %s | sql=%s", e, sql.strip().splitlines()[0])
            raise StoreError(str(e)) from e

    def init_schema(self) -> None:
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                collection  TEXT NOT NULL,
                id          TEXT NOT NULL,
                data        JSONB NOT NULL,
                PRIMARY KEY (collection, id)
            );
            """
        )
        self._execute(
            """
            CREATE INDEX IF NOT EXISTS documents_data_gin
            ON documents USING GIN (data);
            """
        )

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        rows = self._execute(
            "SELECT data FROM documents WHERE collection = %s AND id = %s;",
            (collection, doc_id),
            fetch=True,
        )
        if not rows:
            return None
        return _load_json(rows[0][0])

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        if merge:
            sql = """
                INSERT INTO documents (collection, id, data) VALUES (%s, %s, %s)
                ON CONFLICT (collection, id)
                DO UPDATE SET data = documents.data || EXCLUDED.data;
            """
        else:
            sql = """
                INSERT INTO documents (collection, id, data) VALUES (%s, %s, %s)
                ON CONFLICT (collection, id)
                DO UPDATE SET data = EXCLUDED.data;
            """
        self._execute(sql, (collection, doc_id, Json(data)))

    def update(self, collection: str, doc_id: str, paths: Dict[str, Any]) -> bool:
        """
        One jsonb_set per dotted path; other fields are left untouched.
        """
        if not paths:
            return self.get(collection, doc_id) is not None

        expr = "data"
        params: List[Any] = []
        for path, value in paths.items():
            expr = f"jsonb_set({expr}, %s::text[], %s::jsonb, true)"
            params.extend([path.split("."), json.dumps(value, ensure_ascii=False)])

        params.extend([collection, doc_id])
        rowcount = self._execute(
            f"UPDATE documents SET data = {expr} WHERE collection = %s AND id = %s;",
            params,
        )
        return bool(rowcount)

    def delete(self, collection: str, doc_id: str) -> None:
        self._execute(
            "DELETE FROM documents WHERE collection = %s AND id = %s;",
            (collection, doc_id),
        )

    def _where(self, collection: str, filters: Sequence[Filter]) -> Tuple[str, List[Any]]:
        clauses = ["collection = %s"]
        params: List[Any] = [collection]
        for field_name, op, value in filters:
            if op not in _OPS:
                raise StoreError(f"Unsupported filter op: {op}")
            sql_op = "=" if op == "==" else op
            path = field_name.split(".")
            if isinstance(value, bool):
                clauses.append(f"(data #> %s::text[]) {sql_op} %s::jsonb")
                params.extend([path, json.dumps(value)])
            elif isinstance(value, (int, float)):
                clauses.append(f"(data #>> %s::text[])::numeric {sql_op} %s")
                params.extend([path, value])
            elif value is None:
                clauses.append(
                    "(data #>> %s::text[]) IS NULL" if op == "==" else "(data #>> %s::text[]) IS NOT NULL"
                )
                params.append(path)
            else:
                clauses.append(f"(data #>> %s::text[]) {sql_op} %s")
                params.extend([path, str(value)])
        return " AND ".join(clauses), params

    def query(
            self,
            collection: str,
            filters: Sequence[Filter] = (),
            order_by: Optional[str] = None,
            descending: bool = False,
            limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        where, params = self._where(collection, filters)
        sql = f"SELECT data FROM documents WHERE {where}"
        if order_by:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY (data #>> %s::text[]) {direction} NULLS LAST"
            params.append(order_by.split("."))
        if limit is not None:
            sql += " LIMIT %s"
            params.append(int(limit))
        rows = self._execute(sql + ";", params, fetch=True)
        return [_load_json(r[0]) for r in rows]

    def delete_where(self, collection: str, filters: Sequence[Filter]) -> int:
        where, params = self._where(collection, filters)
        return int(self._execute(f"DELETE FROM documents WHERE {where};", params) or 0)


def _load_json(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return json.loads(value)


def create_store(settings: Settings):
    if settings.db_dsn:
        store = PostgresDocumentStore(settings.db_dsn)
        store.init_schema()
        logger.info("Using Postgres document store")
        return store
    logger.warning("DB_DSN not set, using in-memory document store (data is lost on restart)")
    return InMemoryDocumentStore()
