"""
Database-backed queue number source.

Each (department, day) pair owns one ``QueueCounter`` row.  Handing out
a number locks that row, bumps it with an ``F()`` expression and reads
it back inside a single transaction, so concurrent joins in the same
department are serialised by the database and never see the same value.
"""
import datetime as dt

import structlog
from django.db import DatabaseError, transaction
from django.db.models import F

from clinic.errors import CounterFailure
from clinic.models import QueueCounter
from clinic.queueing import QueueNumberSource

logger = structlog.get_logger(__name__)


class DatabaseQueueCounter(QueueNumberSource):

    def next_number(self, department_id: str, day: dt.date) -> int:
        try:
            with transaction.atomic():
                counter, _ = QueueCounter.objects.select_for_update().get_or_create(
                    department_id=department_id, day=day
                )
                QueueCounter.objects.filter(pk=counter.pk).update(last_number=F('last_number') + 1)
                counter.refresh_from_db(fields=['last_number'])
        except DatabaseError as exc:
            logger.error("queue_counter_failed", department_id=department_id, day=day.isoformat(), error=str(exc))
            raise CounterFailure('could not allocate a queue number, please retry') from exc
        return counter.last_number
