import pytest

from latchorm.adapters import ConnectionConfig, SQLiteAdapter
from latchorm.core import IntegerField, Model, StringField, VersionField
from latchorm.exceptions import (
    ConstraintViolationError,
    InvalidStateError,
    NotFoundError,
    OptimisticLockError,
)
from latchorm.persistence import Session, TransactionError
from latchorm.schema import SchemaBuilder


class Account(Model):
    owner = StringField(nullable=False, max_length=80)
    balance = IntegerField(default=0)
    version = VersionField()


class Note(Model):
    body = StringField(nullable=False)


def make_session(path) -> Session:
    adapter = SQLiteAdapter()
    config = ConnectionConfig(url=f"sqlite:///{path}")
    session = Session(adapter, connection_config=config)
    SchemaBuilder(session.dialect).create_all(adapter, (Account, Note))
    return session


def stored(session: Session, account_id):
    return session.adapter.execute(
        'SELECT owner, balance, version FROM "account" WHERE id = ?', (account_id,)
    ).fetchone()


def seed_account(session: Session, **values) -> str:
    values.setdefault("owner", "ada")
    with session.transaction():
        account = session.save(Account(**values))
    return account.id


def test_save_assigns_id_and_defers_insert_until_commit(tmp_path):
    session = make_session(tmp_path / "save.db")
    session.begin()
    account = session.save(Account(owner="ada", balance=10))
    assert account.id is not None
    assert account.version == 0
    assert stored(session, account.id) is None

    session.commit()
    row = stored(session, account.id)
    assert row["owner"] == "ada"
    assert row["balance"] == 10
    assert row["version"] == 0
    session.close()


def test_operations_outside_transaction_begin_one_implicitly(tmp_path):
    session = make_session(tmp_path / "implicit.db")
    assert not session.is_active
    session.save(Account(owner="ada"))
    assert session.is_active
    session.rollback()
    assert session.count(Account) == 0
    session.close()


def test_identity_map_returns_same_instance_within_transaction(tmp_path):
    session = make_session(tmp_path / "identity.db")
    account_id = seed_account(session)

    with session.transaction():
        first = session.get(Account, account_id)
        assert session.get(Account, account_id) is first
        assert session.query(Account).filter(owner="ada").first() is first
        assert session.find_all(Account) == [first]

    with session.transaction():
        assert session.get(Account, account_id) is not first
    session.close()


def test_query_does_not_refresh_managed_instance(tmp_path):
    session = make_session(tmp_path / "stale_read.db")
    account_id = seed_account(session, balance=5)

    with session.transaction():
        account = session.get(Account, account_id)
        account.balance = 50
        # The query flushes first, so the filter sees the pending change.
        assert session.query(Account).filter(balance=50).first() is account
    session.close()


def test_dirty_instance_is_updated_and_version_bumped(tmp_path):
    session = make_session(tmp_path / "update.db")
    account_id = seed_account(session, balance=1)

    with session.transaction():
        account = session.get(Account, account_id)
        account.balance = 2

    row = stored(session, account_id)
    assert row["balance"] == 2
    assert row["version"] == 1
    assert account.version == 1
    session.close()


def test_unchanged_instance_is_not_written(tmp_path):
    session = make_session(tmp_path / "clean.db")
    account_id = seed_account(session)

    with session.transaction():
        account = session.get(Account, account_id)
        account.balance = account.balance
        result = session.flush()

    assert result.updated == 0
    assert stored(session, account_id)["version"] == 0
    session.close()


def test_flush_reports_statement_counts(tmp_path):
    session = make_session(tmp_path / "flush.db")
    with session.transaction():
        session.save_all([Account(owner="a"), Account(owner="b")])
        result = session.flush()
        assert result.inserted == 2
        assert session.flush().statements == 0
    session.close()


def test_get_missing_returns_none_and_delete_by_id_raises(tmp_path):
    session = make_session(tmp_path / "missing.db")
    with session.transaction():
        assert session.get(Account, "no-such-id") is None
        with pytest.raises(NotFoundError) as excinfo:
            session.delete_by_id(Account, "no-such-id")
    assert str(excinfo.value) == "No class Account entity with id no-such-id exists!"
    session.close()


def test_removed_instance_is_invisible_and_rejected(tmp_path):
    session = make_session(tmp_path / "removed.db")
    account_id = seed_account(session)

    session.begin()
    account = session.get(Account, account_id)
    session.delete(account)
    assert session.get(Account, account_id) is None
    assert not session.exists(Account, account_id)
    assert not session.contains(account)

    with pytest.raises(InvalidStateError) as excinfo:
        session.delete(account)
    assert str(excinfo.value) == "deleted instance passed to delete: [Account#<null>]"
    assert excinfo.value.entity is account

    with pytest.raises(InvalidStateError) as merge_error:
        session.save(account)
    assert "deleted instance passed to merge" in str(merge_error.value)

    session.commit()
    assert stored(session, account_id) is None
    session.close()


def test_deleting_pending_insert_cancels_it(tmp_path):
    session = make_session(tmp_path / "cancel.db")
    with session.transaction():
        account = session.save(Account(owner="temp"))
        session.delete(account)
        result = session.flush()
        assert result.inserted == 0
        assert result.deleted == 0
    assert session.count(Account) == 0
    session.rollback()
    session.close()


def test_delete_ignores_transient_and_missing_rows(tmp_path):
    session = make_session(tmp_path / "ignore.db")
    account_id = seed_account(session)

    with session.transaction():
        detached = session.get(Account, account_id)
    session.adapter.execute('DELETE FROM "account"')
    session.adapter.commit()

    with session.transaction():
        session.delete(Account(owner="never saved"))
        session.delete(detached)
    session.close()


def test_merge_copies_detached_state_onto_managed_instance(tmp_path):
    session = make_session(tmp_path / "merge.db")
    account_id = seed_account(session, balance=3)

    with session.transaction():
        detached = session.get(Account, account_id)
    detached.balance = 30

    with session.transaction():
        merged = session.save(detached)
        assert merged is not detached
        assert merged.balance == 30
        assert session.contains(merged)
        assert not session.contains(detached)

    row = stored(session, account_id)
    assert row["balance"] == 30
    assert row["version"] == 1
    session.close()


def test_merge_of_stale_detached_instance_fails(tmp_path):
    session = make_session(tmp_path / "stale_merge.db")
    account_id = seed_account(session)

    with session.transaction():
        stale = session.get(Account, account_id)
    with session.transaction():
        session.get(Account, account_id).balance = 99

    stale.balance = 5
    with pytest.raises(OptimisticLockError) as excinfo:
        with session.transaction():
            session.save(stale)
    assert excinfo.value.identifier == account_id
    assert excinfo.value.model is Account
    assert not session.is_active
    assert stored(session, account_id)["balance"] == 99
    session.close()


def test_merge_of_detached_instance_whose_row_is_gone_fails(tmp_path):
    session = make_session(tmp_path / "gone.db")
    account_id = seed_account(session)
    with session.transaction():
        detached = session.get(Account, account_id)
    session.adapter.execute('DELETE FROM "account"')
    session.adapter.commit()

    with pytest.raises(OptimisticLockError):
        with session.transaction():
            session.save(detached)
    session.close()


def test_duplicate_explicit_id_is_a_constraint_violation(tmp_path):
    session = make_session(tmp_path / "duplicate.db")
    account_id = seed_account(session)

    session.begin()
    session.save(Account(id=account_id, owner="impostor"))
    with pytest.raises(ConstraintViolationError):
        session.commit()
    assert not session.is_active
    assert stored(session, account_id)["owner"] == "ada"
    session.close()


def test_primary_key_cannot_change(tmp_path):
    account = Account(id="fixed", owner="ada")
    with pytest.raises(ValueError):
        account.id = "other"


def test_unversioned_models_are_written_unconditionally(tmp_path):
    session = make_session(tmp_path / "unversioned.db")
    with session.transaction():
        note = session.save(Note(body="draft"))
    with session.transaction():
        loaded = session.get(Note, note.id)
        session.execute('UPDATE "note" SET body = ? WHERE id = ?', ("theirs", note.id))
        loaded.body = "mine"
    row = session.adapter.execute('SELECT body FROM "note"').fetchone()
    assert row["body"] == "mine"
    session.close()


def test_rollback_discards_pending_changes(tmp_path):
    session = make_session(tmp_path / "rollback.db")
    account_id = seed_account(session, balance=1)

    session.begin()
    account = session.get(Account, account_id)
    account.balance = 1000
    session.save(Account(owner="temp"))
    session.rollback()

    assert not session.is_active
    assert len(session.identity_map) == 0
    assert stored(session, account_id)["balance"] == 1
    assert session.count(Account) == 1
    session.close()


def test_nested_transaction_rolls_back_to_savepoint(tmp_path):
    session = make_session(tmp_path / "savepoint.db")

    with session.transaction():
        session.save(Account(owner="outer"))
        with pytest.raises(RuntimeError):
            with session.transaction():
                session.save(Account(owner="inner"))
                raise RuntimeError("boom")
        assert session.transaction_manager.depth == 1

    owners = [row["owner"] for row in session.adapter.execute('SELECT owner FROM "account"')]
    assert owners == ["outer"]
    session.close()


def test_savepoint_rollback_keeps_outer_instances_managed(tmp_path):
    session = make_session(tmp_path / "savepoint_identity.db")
    account_id = seed_account(session, balance=10)

    with session.transaction():
        account = session.get(Account, account_id)
        loaded_version = account.version
        with pytest.raises(RuntimeError):
            with session.transaction():
                account.balance = 50
                session.flush()
                inner = session.save(Account(owner="inner"))
                session.flush()
                raise RuntimeError("boom")

        assert session.get(Account, account_id) is account
        assert account.balance == 10
        assert account.version == loaded_version
        assert session.identity_map.get(Account, inner.id) is None
        account.balance = 75

    row = stored(session, account_id)
    assert row["balance"] == 75
    assert row["version"] == loaded_version + 1
    assert session.count(Account) == 1
    session.close()


def test_nested_transaction_commit_keeps_work(tmp_path):
    session = make_session(tmp_path / "nested_commit.db")
    with session.transaction():
        session.save(Account(owner="outer"))
        with session.transaction():
            session.save(Account(owner="inner"))
    assert session.count(Account) == 2
    session.rollback()
    session.close()


def test_transaction_join_reuses_active_transaction(tmp_path):
    session = make_session(tmp_path / "join.db")
    session.begin()
    with session.transaction(join=True):
        assert session.transaction_manager.depth == 1
    assert session.is_active
    session.rollback()
    session.close()


def test_commit_without_transaction_raises(tmp_path):
    session = make_session(tmp_path / "no_txn.db")
    with pytest.raises(TransactionError):
        session.commit()
    session.close()


def test_context_manager_commits_on_success(tmp_path):
    path = tmp_path / "context.db"
    with make_session(path) as session:
        session.save(Account(owner="ctx"))

    check = make_session(path)
    assert check.count(Account) == 1
    check.close()


def test_evict_detaches_and_forgets_changes(tmp_path):
    session = make_session(tmp_path / "evict.db")
    account_id = seed_account(session, balance=7)

    with session.transaction():
        account = session.get(Account, account_id)
        account.balance = 70
        session.evict(account)
        assert not session.contains(account)
        assert session.get(Account, account_id) is not account

    assert stored(session, account_id)["balance"] == 7
    session.close()
