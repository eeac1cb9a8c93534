"""Logging filter that stamps records with the current request id.

Configure it on handlers (see ``LOGGING`` in ``config.settings``) so the
JSON formatter can always reference ``%(request_id)s``.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Set ``record.request_id`` from ``REQUEST_ID_CTX`` ("-" outside requests)."""

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
