"""
Task tracker example: optimistic conflicts and pessimistic locking on SQLite.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List

from latchorm import LockMode, OptimisticLockError, SchemaBuilder, Session
from latchorm.adapters import ConnectionConfig, SQLiteAdapter
from latchorm.utils import get_logger

from .models import Member, Task
from .repositories import MemberRepository, TaskRepository

logger = get_logger("examples.task_app")


def bootstrap_session(dsn: str = "sqlite:///:memory:") -> Session:
    adapter = SQLiteAdapter()
    session = Session(adapter, connection_config=ConnectionConfig.from_dsn(dsn))
    SchemaBuilder(session.dialect).create_all(adapter, (Member, Task))
    return session


def seed_sample_data(session: Session) -> Dict[str, List[Dict[str, Any]]]:
    members = MemberRepository(session)
    tasks = TaskRepository(session)
    with session.transaction():
        saved_members = members.save_all(
            [Member(login_id="ada", name="Ada"), Member(login_id="grace", name="Grace")]
        )
        saved_tasks = tasks.save_all(
            [
                Task(title="Write release notes", deadline_date=date(2026, 11, 1)),
                Task(title="Review locking patch"),
                Task(title="Rotate credentials", description="quarterly"),
            ]
        )
    return {
        "members": [m.to_dict() for m in saved_members],
        "tasks": [t.to_dict() for t in saved_tasks],
    }


def demonstrate_conflict(session: Session, task_id: str) -> bool:
    """
    Edit a detached copy after someone else changed the row. Returns True when
    the stale write was rejected.
    """
    tasks = TaskRepository(session)
    stale = tasks.get_by_id(task_id)
    with session.transaction():
        fresh = session.get(Task, task_id, lock=LockMode.PESSIMISTIC_WRITE)
        fresh.description = "edited concurrently"
    stale.description = "stale edit"
    try:
        tasks.save(stale)
    except OptimisticLockError:
        logger.info("Stale edit of task %s rejected", task_id)
        return True
    return False


def run_demo(dsn: str = "sqlite:///:memory:") -> Dict[str, Any]:
    session = bootstrap_session(dsn)
    try:
        seeded = seed_sample_data(session)
        first_id = seeded["tasks"][0]["id"]
        rejected = demonstrate_conflict(session, first_id)
        finished = TaskRepository(session).finish_all(datetime.now(timezone.utc))
        return {"conflict_rejected": rejected, "finished": finished}
    finally:
        session.close()


if __name__ == "__main__":
    summary = run_demo("sqlite:///task_demo.db")
    print(f"conflict rejected: {summary['conflict_rejected']}, finished: {summary['finished']}")
