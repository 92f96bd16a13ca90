"""Tests for the Transaction scope (commit, rollback and compensations)."""

import pytest
from sqlalchemy.exc import OperationalError

from stingray.core.transaction import Transaction


class FakeSession:
    """Records commit/rollback calls in a shared journal."""

    def __init__(self, journal: list[str], fail_commit: bool = False):
        self.journal = journal
        self.fail_commit = fail_commit

    async def commit(self) -> None:
        if self.fail_commit:
            self.journal.append("commit_failed")
            raise OperationalError("COMMIT", {}, Exception("connection lost"))
        self.journal.append("commit")

    async def rollback(self) -> None:
        self.journal.append("rollback")


def _recorder(journal: list[str], entry: str):
    async def action() -> None:
        journal.append(entry)

    return action


def _failing(journal: list[str], entry: str):
    async def action() -> None:
        journal.append(entry)
        raise OperationalError(entry, {}, Exception("gone"))

    return action


@pytest.mark.unit
class TestTransaction:
    async def test_clean_exit_commits_and_skips_compensations(self) -> None:
        journal: list[str] = []

        async with Transaction(FakeSession(journal)) as tx:  # type: ignore[arg-type]
            tx.on_rollback("undo ddl", _recorder(journal, "undo"))

        assert journal == ["commit"]

    async def test_error_rolls_back_and_compensates_newest_first(self) -> None:
        journal: list[str] = []

        with pytest.raises(RuntimeError, match="boom"):
            async with Transaction(FakeSession(journal)) as tx:  # type: ignore[arg-type]
                tx.on_rollback("first", _recorder(journal, "undo first"))
                tx.on_rollback("second", _recorder(journal, "undo second"))
                raise RuntimeError("boom")

        assert journal == ["rollback", "undo second", "undo first"]

    async def test_failing_compensation_does_not_hide_original_error(self) -> None:
        journal: list[str] = []

        with pytest.raises(RuntimeError, match="boom"):
            async with Transaction(FakeSession(journal)) as tx:  # type: ignore[arg-type]
                tx.on_rollback("first", _recorder(journal, "undo first"))
                tx.on_rollback("second", _failing(journal, "undo second"))
                raise RuntimeError("boom")

        assert journal == ["rollback", "undo second", "undo first"]

    async def test_commit_failure_compensates_and_reraises(self) -> None:
        journal: list[str] = []

        session = FakeSession(journal, fail_commit=True)

        with pytest.raises(OperationalError):
            async with Transaction(session) as tx:  # type: ignore[arg-type]
                tx.on_rollback("ddl", _recorder(journal, "undo"))

        assert journal == ["commit_failed", "rollback", "undo"]

    async def test_after_commit_runs_only_on_success(self) -> None:
        journal: list[str] = []

        async with Transaction(FakeSession(journal)) as tx:  # type: ignore[arg-type]
            tx.after_commit("cleanup", _recorder(journal, "cleanup"))

        assert journal == ["commit", "cleanup"]

    async def test_after_commit_discarded_on_error(self) -> None:
        journal: list[str] = []

        with pytest.raises(ValueError):
            async with Transaction(FakeSession(journal)) as tx:  # type: ignore[arg-type]
                tx.after_commit("cleanup", _recorder(journal, "cleanup"))
                raise ValueError("bad input")

        assert journal == ["rollback"]

    async def test_failing_after_commit_action_is_logged_not_raised(self) -> None:
        journal: list[str] = []

        async with Transaction(FakeSession(journal)) as tx:  # type: ignore[arg-type]
            tx.after_commit("cleanup", _failing(journal, "cleanup"))

        assert journal == ["commit", "cleanup"]

    async def test_not_reentrant(self) -> None:
        journal: list[str] = []
        tx = Transaction(FakeSession(journal))  # type: ignore[arg-type]

        with pytest.raises(RuntimeError, match="reentrant"):
            async with tx:
                assert tx.active
                async with tx:
                    pass

        assert not tx.active
        assert journal == ["rollback"]
