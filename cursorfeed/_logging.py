import hashlib
import logging

# Create the library logger
logger = logging.getLogger("cursorfeed")

# Add NullHandler to prevent "No handlers could be found" warnings
# if the application doesn't configure logging.
logger.addHandler(logging.NullHandler())


def redact_cursor(cursor: str | None) -> str | None:
    """
    Redacts a pagination cursor for logging.
    Cursors often embed backend keys (user ids, document ids), so only a short
    hash is logged. Equal cursors produce equal hashes, which keeps repeated
    cursors easy to spot in the logs.
    """
    if cursor is None:
        return None
    try:
        return hashlib.sha256(cursor.encode("utf-8")).hexdigest()[:8]
    except Exception:
        return "<redaction_failed>"
