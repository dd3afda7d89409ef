"""
Repositories for the task tracker example.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from latchorm import Q, Repository

from .models import PROTECTED_ID_PREFIX, Member, Task


class TaskRepository(Repository[Task]):
    model = Task

    def finish_all(
        self,
        finished_at: datetime,
        *,
        clear: bool = False,
        title_prefix: Optional[str] = None,
    ) -> int:
        """
        Mark every unfinished task as finished in one statement.

        Protected system tasks are skipped. Tasks already loaded in the
        current transaction keep their old state unless ``clear`` is set.
        """
        where = Q(finished=False) & ~Q(id__startswith=PROTECTED_ID_PREFIX)
        if title_prefix:
            where = where & Q(title__startswith=title_prefix)
        with self._scope() as session:
            count = session.bulk_update(
                Task, where, {"finished": True, "finished_at": finished_at}, clear=clear
            )
        self.logger.info("Finished %s task(s)", count)
        return count

    def delete_finished_before(self, cutoff: datetime, *, clear: bool = False) -> int:
        """Remove finished tasks completed before ``cutoff``."""
        where = Q(finished=True, finished_at__lt=cutoff) & ~Q(id__startswith=PROTECTED_ID_PREFIX)
        with self._scope() as session:
            return session.bulk_delete(Task, where, clear=clear)

    def find_unfinished(self) -> list[Task]:
        with self._scope() as session:
            return session.query(Task).filter(finished=False).order_by("created_at").all()


class MemberRepository(Repository[Member]):
    model = Member

    def find_by_login_id(self, login_id: str) -> Optional[Member]:
        with self._scope() as session:
            return session.query(Member).filter(login_id=login_id).first()
