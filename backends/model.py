"""
Record model shared by the translator and the store facade.

A record is one row in one of several parallel tables, one table per
data-store kind:

    Uid | GUID | LUID | Group | Type | SyncStat | XML

(Uid, GUID) is the primary key. XML is the canonical document; the other
columns are projections of fields inside it, rewritten on every write.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from . import document

# Record types
TYP_DATA = "R"
TYP_GROUP = "G"

# Synchronization status
STAT_OK = "0"
STAT_ADD = "1"
STAT_REP = "2"
STAT_DEL = "3"

SYSTEM_UID = "0"


class Store(Enum):
    """Logical table identifier. The value is the physical table suffix."""

    SYSTEM = "system"
    USER = "user"
    DEVICE = "device"
    ATTACHMENT = "attachment"
    SESSION = "session"
    TRACE = "trace"
    CONTACT = "contact"
    CALENDAR = "calendar"
    TASK = "task"
    NOTE = "note"
    SMS = "sms"
    DOCLIB = "doclib"
    MAIL = "mail"

    @property
    def system(self) -> bool:
        """Records here belong to no user; queried with SYSTEM_UID."""
        return self in _SYSTEM_STORES

    @property
    def external(self) -> bool:
        """Served by another handler; this store has no table for it."""
        return self in _EXTERNAL_STORES


_SYSTEM_STORES = frozenset({
    Store.SYSTEM, Store.USER, Store.DEVICE,
    Store.ATTACHMENT, Store.SESSION, Store.TRACE,
})
_EXTERNAL_STORES = frozenset({Store.MAIL})


class Op(Enum):
    ADD = "ADD"
    UPDATE = "UPD"
    DELETE = "DEL"
    READ_GUID = "RGID"
    READ_LUID = "RLID"
    GROUPS = "GRPS"
    CHILDREN = "RIDS"
    UNSYNCED = "RNOK"

    @property
    def mutating(self) -> bool:
        return self in (Op.ADD, Op.UPDATE, Op.DELETE)

    @property
    def listing(self) -> bool:
        return self in (Op.GROUPS, Op.CHILDREN, Op.UNSYNCED)

    @property
    def failure(self):
        """What the caller gets back when the operation can't be done."""
        return {} if self.listing else False


@dataclass(frozen=True)
class Identity:
    """Who is asking. uid is the user's numeric id; name is for log lines only."""

    uid: str | int | None = None
    name: str = ""


SYSTEM = Identity(uid=SYSTEM_UID, name="system")


def is_uid(value: str) -> bool:
    """True for a user's uid: ASCII digits, not zero."""
    return value.isascii() and value.isdigit() and int(value) > 0


class TableMap(Mapping):
    """
    Store → quoted physical table name, `{prefix}_{suffix}`.

    Built once from the configured prefix and read-only afterwards.
    External stores have no entry.
    """

    def __init__(self, prefix: str):
        self.prefix = prefix
        self._names = MappingProxyType({
            store: f"`{prefix}_{store.value}`"
            for store in Store if not store.external
        })

    def __getitem__(self, store):
        return self._names[store]

    def __iter__(self):
        return iter(self._names)

    def __len__(self):
        return len(self._names)

    def __repr__(self):
        return f"<TableMap prefix={self.prefix} tables={len(self)}>"


@dataclass
class Record:
    """
    One stored record, minus the owner (that comes from the Identity).

    Column names in the table: GUID, LUID, Group, Type, SyncStat, XML.
    """

    guid: str = ""
    luid: str = ""
    group: str = ""
    type: str = TYP_DATA
    sync_stat: str = STAT_OK
    xml: str = ""


# column name ↔ Record attribute
COLUMNS = {
    "GUID": "guid",
    "LUID": "luid",
    "Group": "group",
    "Type": "type",
    "SyncStat": "sync_stat",
    "XML": "xml",
}


@dataclass(frozen=True)
class FieldIssue:
    column: str
    value: object


@dataclass(frozen=True)
class Validation:
    """A usable record plus every field that had to be blanked to get it."""

    record: Record
    issues: tuple = ()

    @property
    def ok(self) -> bool:
        return not self.issues


def validate(payload) -> Validation:
    """
    Turn a payload into a Record whose every column is a string.

    Accepts a Record, a mapping keyed by column name, or an XML document
    string (columns projected out of it). Columns that are present but
    not strings become "" and are reported in Validation.issues; absent
    columns keep their defaults.
    """
    if isinstance(payload, Record):
        values = {col: getattr(payload, attr) for col, attr in COLUMNS.items()}
    elif isinstance(payload, Mapping):
        values = {col: payload[col] for col in COLUMNS if col in payload}
    elif isinstance(payload, str):
        values = document.project(payload, [c for c in COLUMNS if c != "XML"])
        values["XML"] = payload
    else:
        raise TypeError(f"Unsupported record payload: {type(payload).__name__}")

    issues = []
    attrs = {}
    for col, value in values.items():
        if not isinstance(value, str):
            issues.append(FieldIssue(col, value))
            value = ""
        attrs[COLUMNS[col]] = value
    return Validation(Record(**attrs), tuple(issues))

