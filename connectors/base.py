"""
Abstract database connector interface.

Every connector implements the same surface:

    run(command)     → shaped result   one translated query
    raw(sql)         → rows | None     untranslated passthrough
    quote(value)     → str             driver-native quoted literal
    ping()           → bool            connectivity check
    close()                            release the connection

plus the write-lock bracket:

    with_write_lock(table, fn)         lock → fn() → unlock, one retry budget

Connectors handle connection, execution, locking, retry and row
normalization. They know nothing about records, identities or stores —
that stays in backends/.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class Shape(Enum):
    """
    What a query is expected to hand back.

    Chosen by the translator before execution and carried with the
    command, so the connector never has to guess from the SQL text.
    """

    RAW = "raw"            # list[dict] per row, True for no result set
    LOCK = "lock"          # LOCK / UNLOCK, nothing captured
    DOCUMENT = "document"  # single XML string
    ID_MAP = "id_map"      # flat [guid, type, guid, type, ...]
    STATUS = "status"      # affected rows > 0
    NEW_ID = "new_id"      # insert; duplicate key counts as success

    @property
    def failure(self):
        """Value returned when the query failed for good."""
        return [] if self is Shape.ID_MAP else None


@dataclass(frozen=True)
class Command:
    """One ready-to-execute statement and the shape its result must take."""

    sql: str
    shape: Shape
    table: str = ""
    mutating: bool = False
    label: str = "SQL"


class Attempts:
    """Retry budget shared by every statement of one operation."""

    def __init__(self, retries: int = 0):
        self.left = retries
        self.exhausted = False

    def __repr__(self):
        return f"<Attempts left={self.left} exhausted={self.exhausted}>"


class Connector(ABC):
    """
    Single-connection database connector.

    Subclasses must implement:
      execute — run one statement, retry/classify, return a shaped value
      lock    — statement text to write-lock a table
      unlock  — statement text to release table locks
      quote   — quoted, escaped SQL literal from the driver
      ping    — connectivity test
      close   — drop the connection

    run() and raw() are built on top and should not need overriding.
    """

    # ── Required ──────────────────────────────────────────────

    @abstractmethod
    def execute(self, command: Command, attempts: Attempts = None):
        """
        Execute one command and return its result in command.shape.

        Must not raise for query failures; returns shape.failure. Retries
        draw on `attempts` so that the statements of one operation share
        a single budget.
        """
        ...

    @abstractmethod
    def lock(self, table: str) -> str:
        """Statement that write-locks `table`."""
        ...

    @abstractmethod
    def unlock(self) -> str:
        """Statement that releases all table locks held by this session."""
        ...

    @abstractmethod
    def quote(self, value: str) -> str:
        """Complete quoted literal for a string value, safe to interpolate."""
        ...

    @abstractmethod
    def ping(self) -> bool:
        """
        Test connectivity. Returns True if the database is reachable.

        Must not raise — returns False on any failure.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    # ── Built on the above ────────────────────────────────────

    def attempts(self) -> Attempts:
        """Fresh retry budget for one operation."""
        return Attempts()

    def with_write_lock(self, table: str, fn, attempts: Attempts = None):
        """
        Run fn() while `table` is write-locked.

        Best-effort bracket, not a transaction: the unlock always runs and
        nothing is rolled back. All three statements draw on one retry
        budget, so a lasting connection loss costs at most `retry` sleeps
        and one error log per operation.
        """
        if attempts is None:
            attempts = self.attempts()
        self.execute(Command(self.lock(table), Shape.LOCK, table, label="LOCK"), attempts)
        try:
            return fn()
        finally:
            self.execute(Command(self.unlock(), Shape.LOCK, table, label="UNLOCK"), attempts)

    def run(self, command: Command):
        """Execute a translated command, write-locking its table if it mutates."""
        attempts = self.attempts()
        if command.mutating:
            return self.with_write_lock(
                command.table, lambda: self.execute(command, attempts), attempts
            )
        return self.execute(command, attempts)

    def raw(self, sql: str):
        """Untranslated passthrough: list of row dicts, True, or None on error."""
        return self.execute(Command(sql, Shape.RAW))

    # ── Repr ──────────────────────────────────────────────────

    def __repr__(self):
        return f"<{self.__class__.__name__}>"
