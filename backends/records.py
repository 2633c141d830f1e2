"""
RecordStore — the record-operation facade.

Usage:

    from backends import RecordStore, Store, Op, Identity

    store = RecordStore.open(url="mysql://sync:secret@db/sync?prefix=sgw")
    if store is None:
        ...                                  # unreachable / misconfigured

    me = Identity(uid=11, name="alice")
    store.add(Store.CONTACT, me, {"GUID": "abc", "XML": "<syncgw/>"})   # → "abc"
    store.read_guid(Store.CONTACT, me, "abc")                          # → "<syncgw/>"
    store.children(Store.CONTACT, me, "")                              # → {"abc": "R"}

    # or the generic entry point:
    store.execute(Store.CONTACT, Op.DELETE, me, "abc")                 # → True

Every call returns a value of the operation's shape, never raises for a
database problem:

    ADD                        new GUID, or False
    UPDATE / DELETE            True / False
    READ_GUID / READ_LUID      XML string, or False
    GROUPS / CHILDREN / UNSYNCED   {GUID: Type} in row order, or {}
"""

import atexit
import logging

import pymysql

from connectors import MySQLConnector, Settings, load_settings

from .model import Identity, Op, Store, TableMap
from .translator import Translator

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Translator + connector, one instance per backend connection.

    Build one with open() in application code; tests build one directly
    around a connector of their choosing.
    """

    def __init__(self, connector, tables: TableMap, debug_uid=None):
        self.connector = connector
        self.tables = tables
        self.translator = Translator(connector.quote, tables, debug_uid)

    @classmethod
    def open(cls, settings: Settings = None, *, url: str = None) -> "RecordStore | None":
        """
        Connect and return a ready store, or None if that isn't possible.

        A store that can't connect is never handed out half-working. The
        store closes itself at interpreter exit.
        """
        if settings is None:
            try:
                settings = load_settings(url)
            except (ValueError, FileNotFoundError) as e:
                logger.error(f"Record store not configured: {e}")
                return None

        connector = MySQLConnector.from_settings(settings)
        try:
            connector.open()
        except pymysql.MySQLError as e:
            logger.error(f"SQL Error: {e}")
            return None

        store = cls(connector, TableMap(settings.prefix), settings.debug_uid)
        atexit.register(store.close)
        return store

    def close(self):
        """Drop the connection. A closed store answers every call with failure."""
        self.connector.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── Generic entry point ───────────────────────────────────

    def execute(self, store: Store, op: Op, identity: Identity | None, payload=None):
        """Run one record operation. See the module docstring for return shapes."""
        if not self.connector.connected:
            return op.failure

        plan = self.translator.build(store, op, identity, payload)
        if plan is None:
            return op.failure

        return self.translator.finish(plan, self.connector.run(plan.command))

    def run_raw(self, sql: str):
        """Untranslated SQL: list of row dicts, True for no result set, None on error."""
        return self.connector.raw(sql)

    # ── Convenience ───────────────────────────────────────────

    def add(self, store, identity, record):
        return self.execute(store, Op.ADD, identity, record)

    def update(self, store, identity, record):
        return self.execute(store, Op.UPDATE, identity, record)

    def delete(self, store, identity, guid):
        return self.execute(store, Op.DELETE, identity, guid)

    def read_guid(self, store, identity, guid):
        return self.execute(store, Op.READ_GUID, identity, guid)

    def read_luid(self, store, identity, luid):
        return self.execute(store, Op.READ_LUID, identity, luid)

    def groups(self, store, identity):
        return self.execute(store, Op.GROUPS, identity)

    def children(self, store, identity, group=""):
        return self.execute(store, Op.CHILDREN, identity, group)

    def unsynced(self, store, identity, group=""):
        return self.execute(store, Op.UNSYNCED, identity, group)

    def __repr__(self):
        return f"<RecordStore {self.connector!r} {self.tables!r}>"
