"""Query filters, SQL clauses, entity storage, idempotency keys and a transactional outbox."""

__version__ = "0.1.0"