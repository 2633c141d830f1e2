"""
Pytest fixtures for recordstore tests.

FakeServer stands in for a MySQL server behind pymysql.connect(). It
understands exactly the statements the translator and the schema
script produce (INSERT ... SET, UPDATE, DELETE, SELECT with `=` / `<>`
predicates on 'single-quoted' literals, LOCK / UNLOCK, CREATE / DROP
TABLE) and can be told to fail the next N matching statements with a
given driver error.
"""

import re

import pymysql
import pymysql.cursors
import pytest
from pymysql.converters import escape_string

from backends import RecordStore
from backends.schema import create_tables
from connectors import Settings

_TABLE = re.compile(r"`([^`]+)`")
_PRED = re.compile(r"`(\w+)`\s*(=|<>)\s*(?:'((?:[^'\\]|\\.|'')*)'|(\d+))", re.DOTALL)
_UNESCAPE = {"0": "\0", "n": "\n", "r": "\r", "Z": "\x1a"}


def _unescape(s):
    def one(m):
        if m.group(0) == "''":
            return "'"
        return _UNESCAPE.get(m.group(1), m.group(1))
    return re.sub(r"\\(.)|''", one, s, flags=re.DOTALL)


def _preds(text):
    out = []
    for col, op, quoted, number in _PRED.findall(text):
        out.append((col, op, _unescape(quoted) if not number else number))
    return out


def _match(row, conds):
    for col, op, value in conds:
        have = str(row.get(col, ""))
        if (op == "=" and have != value) or (op == "<>" and have == value):
            return False
    return True


def gone_away():
    return pymysql.err.OperationalError(2006, "MySQL server has gone away")


def syntax_error():
    return pymysql.err.ProgrammingError(1064, "You have an error in your SQL syntax")


class FakeServer:
    def __init__(self, database="sync"):
        self.database = database
        self.tables = {}          # name → list of row dicts, insertion ordered
        self.statements = []      # every statement attempted
        self.connects = []        # kwargs of every pymysql.connect()
        self.pings = 0
        self.refuse = None        # exception raised by connect()
        self._failures = []       # [exc, remaining, match]

    # ── pymysql.connect replacement ───────────────────────────

    def connect(self, **kwargs):
        self.connects.append(kwargs)
        if self.refuse is not None:
            raise self.refuse
        return FakeConnection(self)

    # ── Test controls ─────────────────────────────────────────

    def fail(self, exc, times=1, match=""):
        """Make the next `times` statements containing `match` raise `exc`."""
        self._failures.append([exc, times, match])

    def rows(self, table):
        return self.tables[table]

    def ran(self, prefix):
        return [s for s in self.statements if s.startswith(prefix)]

    # ── Execution ─────────────────────────────────────────────

    def run(self, sql):
        self.statements.append(sql)
        for f in self._failures:
            exc, remaining, match = f
            if remaining and match in sql:
                f[1] -= 1
                raise exc

        verb = sql.split(None, 1)[0].upper()
        if verb in ("LOCK", "UNLOCK"):
            if verb == "LOCK":
                self._table(sql)
            return 0, None, None
        if verb == "CREATE":
            self.tables.setdefault(_TABLE.search(sql).group(1), [])
            return 0, None, None
        if verb == "DROP":
            self.tables.pop(_TABLE.search(sql).group(1), None)
            return 0, None, None
        if verb == "INSERT":
            return self._insert(sql)
        if verb == "UPDATE":
            return self._update(sql)
        if verb == "DELETE":
            return self._delete(sql)
        if verb == "SELECT":
            return self._select(sql)
        raise syntax_error()

    def _table(self, sql, after=""):
        text = sql.split(after, 1)[1] if after else sql
        name = _TABLE.search(text).group(1)
        if name not in self.tables:
            raise pymysql.err.ProgrammingError(
                1146, f"Table '{self.database}.{name}' doesn't exist"
            )
        return self.tables[name]

    def _insert(self, sql):
        rows = self._table(sql, "INSERT")
        new = {col: value for col, _, value in _preds(sql.split(" SET ", 1)[1])}
        for row in rows:
            if row["Uid"] == new["Uid"] and row["GUID"] == new["GUID"]:
                raise pymysql.err.IntegrityError(
                    1062, f"Duplicate entry '{new['Uid']}-{new['GUID']}' for key 'PRIMARY'"
                )
        rows.append(new)
        return 1, None, None

    def _update(self, sql):
        rows = self._table(sql, "UPDATE")
        sets, where = sql.split(" SET ", 1)[1].rsplit(" WHERE ", 1)
        conds = _preds(where)
        changes = {col: value for col, _, value in _preds(sets)}
        hit = [row for row in rows if _match(row, conds)]
        for row in hit:
            row.update(changes)
        return len(hit), None, None

    def _delete(self, sql):
        rows = self._table(sql, "FROM")
        conds = _preds(sql.split(" WHERE ", 1)[1])
        keep = [row for row in rows if not _match(row, conds)]
        gone = len(rows) - len(keep)
        rows[:] = keep
        return gone, None, None

    def _select(self, sql):
        head, rest = sql.split(" FROM ", 1)
        cols = _TABLE.findall(head) or None
        rows = self._table(rest)
        conds = _preds(rest.split(" WHERE ", 1)[1]) if " WHERE " in rest else []
        hit = [row for row in rows if _match(row, conds)]
        cols = cols or (list(rows[0]) if rows else [])
        return len(hit), cols, [{c: row.get(c) for c in cols} for row in hit]


class FakeConnection:
    """The slice of pymysql.connections.Connection the connector uses."""

    def __init__(self, server):
        self.server = server
        self.server_status = 0
        self.open = True

    def cursor(self, cursor=None):
        return FakeCursor(self.server, as_dict=cursor is pymysql.cursors.DictCursor)

    def escape(self, obj, mapping=None):
        return "'" + escape_string(obj) + "'"

    def ping(self, reconnect=True):
        self.server.pings += 1
        if not self.open:
            raise pymysql.err.Error("Already closed")

    def close(self):
        if not self.open:
            raise pymysql.err.Error("Already closed")
        self.open = False


class FakeCursor:
    def __init__(self, server, as_dict):
        self.server = server
        self.as_dict = as_dict
        self.description = None
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql):
        count, cols, rows = self.server.run(sql)
        if cols is None:
            self.description = None
            self._rows = []
        else:
            self.description = tuple((c, None, None, None, None, None, None) for c in cols)
            self._rows = rows if self.as_dict else [tuple(r[c] for c in cols) for r in rows]
        return count

    def fetchall(self):
        return tuple(self._rows)


# ── Fixtures ──────────────────────────────────────────────────


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def settings():
    return Settings(
        host="db", port=3306, user="sync", password="secret",
        database="sync", prefix="sgw", retry=3, backoff=0,
    )


@pytest.fixture
def sleeps(monkeypatch):
    calls = []
    monkeypatch.setattr("connectors.mysql.time.sleep", calls.append)
    return calls


@pytest.fixture
def store(server, settings, sleeps, monkeypatch):
    """Opened RecordStore on a FakeServer with every record table created."""
    monkeypatch.setattr(pymysql, "connect", server.connect)
    monkeypatch.setattr("backends.records.atexit.register", lambda fn: fn)
    s = RecordStore.open(settings)
    assert s is not None
    assert create_tables(s)
    server.statements.clear()
    yield s
    s.close()
