"""
Record operation → SQL translation.
====================================

The translator is stateless apart from the table map it was built with.
For every (store, operation, identity, payload) it produces a Plan: the
SQL text, the Shape the result must come back in, and enough context to
turn the connector's raw answer into what the caller expects.

    ADD        INSERT tab SET Uid, GUID, LUID, Group, Type, SyncStat, XML
    UPDATE     UPDATE tab SET LUID, Type, SyncStat, Group, XML
                   WHERE Uid AND GUID
    DELETE     DELETE FROM tab WHERE Uid AND GUID
    READ_GUID  SELECT XML WHERE Uid AND GUID
    READ_LUID  SELECT XML WHERE Uid AND LUID
    GROUPS     SELECT GUID, Type WHERE Uid AND Type = TYP_GROUP
    CHILDREN   SELECT GUID, Type WHERE Uid AND Group
    UNSYNCED   SELECT GUID, Type WHERE Uid AND SyncStat <> STAT_OK AND Group

IDENTITY:
  System stores and the SYSTEM identity always use uid "0". Any other
  identity must carry a positive numeric uid ("0" is not a user); if it
  doesn't, the debug fallback uid is used when configured, otherwise no
  SQL is built at all.

ESCAPING:
  Every value, constants included, goes through the connector's quote
  function, which returns a complete single-quoted literal. Nothing is
  interpolated raw except the numeric uid in INSERT.

BAD FIELDS:
  A payload field that isn't a string is replaced by "" and logged. One
  broken field never costs the whole record. A record without a GUID
  is never inserted.
"""

import logging
from dataclasses import dataclass

from connectors.base import Command, Shape

from . import document
from .model import (
    STAT_OK, SYSTEM, SYSTEM_UID, TYP_GROUP,
    Identity, Op, Record, Store, TableMap, is_uid, validate,
)

logger = logging.getLogger(__name__)

_SHAPES = {
    Op.ADD: Shape.NEW_ID,
    Op.UPDATE: Shape.STATUS,
    Op.DELETE: Shape.STATUS,
    Op.READ_GUID: Shape.DOCUMENT,
    Op.READ_LUID: Shape.DOCUMENT,
    Op.GROUPS: Shape.ID_MAP,
    Op.CHILDREN: Shape.ID_MAP,
    Op.UNSYNCED: Shape.ID_MAP,
}


@dataclass(frozen=True)
class Plan:
    """A built command plus what finish() needs to interpret its result."""

    op: Op
    store: Store
    uid: str
    command: Command
    key: str = ""


class Translator:
    def __init__(self, quote, tables: TableMap, debug_uid=None):
        """
        Args:
            quote:     str → complete quoted SQL literal, from the connector.
            tables:    Store → physical table name.
            debug_uid: uid to fall back to when the caller has none
                       (debug / test scripts only).

        Raises ValueError if debug_uid is set but is not a user id.
        """
        self.quote = quote
        self.tables = tables
        self.debug_uid = str(debug_uid) if debug_uid not in (None, "") else None
        if self.debug_uid is not None and not is_uid(self.debug_uid):
            raise ValueError(f"debug_uid must be a positive number, got {debug_uid!r}")

    # ── Identity ──────────────────────────────────────────────

    def uid_for(self, store: Store, identity: Identity | None) -> str | None:
        """Numeric uid to scope the query with, or None if there is none."""
        if store.system or identity is SYSTEM:
            return SYSTEM_UID
        uid = "" if identity is None or identity.uid is None else str(identity.uid)
        if is_uid(uid):
            return uid
        if self.debug_uid:
            return self.debug_uid
        name = identity.name if identity is not None else ""
        logger.error(f"User ID for user ({name}) not set")
        return None

    # ── Build ─────────────────────────────────────────────────

    def build(self, store: Store, op: Op, identity: Identity | None, payload=None) -> Plan | None:
        """SQL for one operation, or None if it must not run."""
        if store.external:
            logger.debug(f"{op.value}: {store.value} is served elsewhere")
            return None

        uid = self.uid_for(store, identity)
        if uid is None:
            return None

        tab = self.tables[store]
        q = self.quote
        key = ""

        if op in (Op.ADD, Op.UPDATE):
            rec = self._record(op, tab, payload)
            if rec is None:
                return None
            if op is Op.ADD and not rec.guid:
                logger.error(f"{op.value}: record without GUID for {tab}")
                return None
            key = rec.guid
            if op is Op.ADD:
                sql = (
                    f"INSERT {tab} SET"
                    f" `Uid` = {uid},"
                    f" `GUID` = {q(rec.guid)},"
                    f" `LUID` = {q(rec.luid)},"
                    f" `Group` = {q(rec.group)},"
                    f" `Type` = {q(rec.type)},"
                    f" `SyncStat` = {q(rec.sync_stat)},"
                    f" `XML` = {q(rec.xml)}"
                )
            else:
                sql = (
                    f"UPDATE {tab} SET"
                    f" `LUID` = {q(rec.luid)},"
                    f" `Type` = {q(rec.type)},"
                    f" `SyncStat` = {q(rec.sync_stat)},"
                    f" `Group` = {q(rec.group)},"
                    f" `XML` = {q(rec.xml)}"
                    f" WHERE `Uid` = {q(uid)}"
                    f" AND `GUID` = {q(rec.guid)}"
                )

        elif op is Op.DELETE:
            key = self._scalar(op, tab, "GUID", payload)
            sql = (
                f"DELETE FROM {tab}"
                f" WHERE `Uid` = {q(uid)}"
                f" AND `GUID` = {q(key)}"
            )

        elif op in (Op.READ_GUID, Op.READ_LUID):
            col = "GUID" if op is Op.READ_GUID else "LUID"
            key = self._scalar(op, tab, col, payload)
            sql = (
                f"SELECT `XML` FROM {tab}"
                f" WHERE `Uid` = {q(uid)}"
                f" AND `{col}` = {q(key)}"
            )

        elif op is Op.GROUPS:
            sql = (
                f"SELECT `GUID`, `Type` FROM {tab}"
                f" WHERE `Uid` = {q(uid)}"
                f" AND `Type` = {q(TYP_GROUP)}"
            )

        elif op is Op.CHILDREN:
            key = self._scalar(op, tab, "Group", payload)
            sql = (
                f"SELECT `GUID`, `Type` FROM {tab}"
                f" WHERE `Uid` = {q(uid)}"
                f" AND `Group` = {q(key)}"
            )

        elif op is Op.UNSYNCED:
            key = self._scalar(op, tab, "Group", payload)
            sql = (
                f"SELECT `GUID`, `Type` FROM {tab}"
                f" WHERE `Uid` = {q(uid)}"
                f" AND `SyncStat` <> {q(STAT_OK)}"
                f" AND `Group` = {q(key)}"
            )

        else:  # pragma: no cover - Op is closed
            raise ValueError(f"Unknown operation {op!r}")

        command = Command(sql, _SHAPES[op], tab, op.mutating, op.value)
        return Plan(op, store, uid, command, key)

    # ── Interpret ─────────────────────────────────────────────

    def finish(self, plan: Plan, result):
        """Connector result → caller-facing value for plan.op."""
        op = plan.op

        if op is Op.ADD:
            return plan.key if result else False

        if op in (Op.UPDATE, Op.DELETE):
            return bool(result)

        if op.listing:
            return _pairs(result)

        # READ_GUID / READ_LUID: None is an error, False is "not found"
        if not result or not isinstance(result, str):
            return False
        try:
            document.parse(result)
        except document.DocumentError as e:
            logger.error(
                f"Invalid XML data in record '{document.guid_of(result) or plan.key}' "
                f"in {plan.store.value} data store for user ({plan.uid}): {e}"
            )
            return False
        return result

    # ── Payload checks ────────────────────────────────────────

    def _record(self, op, tab, payload) -> Record | None:
        try:
            v = validate(payload)
        except TypeError as e:
            logger.error(f"{op.value}: {e} for {tab}")
            return None
        for issue in v.issues:
            logger.error(
                f"{op.value}: Variable \"{issue.column}\" in {tab} has value {issue.value!r}"
            )
        return v.record

    def _scalar(self, op, tab, column, value) -> str:
        if isinstance(value, str):
            return value
        logger.error(f"{op.value}: Variable \"{column}\" in {tab} has value {value!r}")
        return ""


def _pairs(flat) -> dict:
    """[guid1, type1, guid2, type2, ...] → {guid1: type1, guid2: type2} in row order."""
    if not isinstance(flat, list):
        return {}
    return dict(zip(flat[0::2], flat[1::2]))
