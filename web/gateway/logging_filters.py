"""Logging filter that stamps records with the current request context.

Formatters can then reference ``%(request_id)s`` and ``%(principal_id)s``
on every record, including those emitted by library code far from the
request object. Outside a request both fall back to ``-``.
"""

from logging import Filter, LogRecord

from .middleware import PRINCIPAL_CTX, REQUEST_ID_CTX


class RequestIdFilter(Filter):
    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        record.principal_id = PRINCIPAL_CTX.get()
        return True
