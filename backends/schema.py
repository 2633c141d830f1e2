"""
Schema provisioning — create and drop the record tables.

The schema script is plain SQL:
  - statements end with ';'
  - lines starting with '--' are comments and are dropped
  - {prefix} is replaced with the configured table name prefix

create_tables() runs every statement (the script drops before it
creates, so it doubles as a reset). drop_tables() runs only the
statements containing DROP.

Both go through RecordStore.run_raw(), so a missing table is a quiet
None rather than an error.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

TABLES_SQL = Path(__file__).with_name("tables.sql")


def load_sql(path=TABLES_SQL) -> list[str]:
    """Read a schema script into a list of statements (without the ';')."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Error loading tables from '{path}': {e}")
        return []

    lines = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("--"):
            continue
        lines.append(line)

    return [s.strip() for s in " ".join(lines).split(";") if s.strip()]


def create_tables(store, cmds=None) -> bool:
    """Run the whole schema script against `store`. Stops at the first failure."""
    cmds = cmds if cmds is not None else load_sql()
    if not cmds:
        return False
    if not _run(store, cmds):
        return False
    logger.info(f"Record tables created (prefix {store.tables.prefix})")
    return True


def drop_tables(store, cmds=None) -> bool:
    """Run only the DROP statements of the schema script."""
    cmds = cmds if cmds is not None else load_sql()
    if not cmds:
        return False
    drops = [c for c in cmds if "DROP" in c.upper()]
    if not _run(store, drops):
        return False
    logger.info(f"Record tables deleted (prefix {store.tables.prefix})")
    return True


def _run(store, cmds) -> bool:
    prefix = store.tables.prefix
    for cmd in cmds:
        cmd = cmd.replace("{prefix}", prefix)
        if not cmd.strip():
            continue
        if not store.run_raw(cmd):
            logger.error(f"Error executing SQL command: \"{cmd}\"")
            return False
    return True
