"""XML document helpers: recognise, parse, and project record columns out of a body."""

import logging
import re
from xml.etree import ElementTree

logger = logging.getLogger(__name__)

ROOT_MARK = "<"

_GUID = re.compile(r"<GUID>(.*?)</GUID>", re.DOTALL)


class DocumentError(ValueError):
    """Stored body is not a well-formed document."""


def is_document(value) -> bool:
    return isinstance(value, str) and value.startswith(ROOT_MARK)


def parse(text: str) -> ElementTree.Element:
    if not is_document(text):
        raise DocumentError(f"Not a document: {text[:40]!r}")
    try:
        return ElementTree.fromstring(text)
    except ElementTree.ParseError as e:
        raise DocumentError(str(e)) from e


def project(text: str, names) -> dict:
    """
    First occurrence of each named element anywhere in the document.

    Missing elements are left out; empty elements give "". An unparsable
    document projects to {} (the caller's columns keep their defaults).
    """
    try:
        root = parse(text)
    except DocumentError as e:
        logger.debug(f"Can't project columns: {e}")
        return {}
    out = {}
    for name in names:
        node = next(root.iter(name), None)
        if node is not None:
            out[name] = (node.text or "").strip()
    return out


def guid_of(text: str) -> str:
    """<GUID> of a body, found textually so it works on broken documents too."""
    m = _GUID.search(text or "")
    return m.group(1) if m else ""
