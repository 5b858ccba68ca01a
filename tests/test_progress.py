"""Tests for weighted progress rollup."""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query

from cortex.engine.progress import recompute_parent_progress, rollup_progress, weighted_progress
from cortex.errors import StoreError
from cortex.models.task import TaskScope


def _child(make_task, parent, title, progress, contribution=None, task_repository=None):
    task = make_task(title=title, parent_task_id=parent.id, contribution_percent=contribution)
    return task_repository.set_progress(task.user_id, task.id, progress)


class TestWeightedProgress:
    """Pure weighting math."""

    def test_no_children(self):
        assert weighted_progress([]) is None


class TestRecomputeParentProgress:
    """Recomputing a parent from its stored children."""

    def test_contributions_weight_children(self, db_session, task_repository, make_task, test_user_id):
        parent = make_task(title="Launch", scope=TaskScope.WEEK, scope_key="2025-W11")
        _child(make_task, parent, "A", 50, contribution=30, task_repository=task_repository)
        _child(make_task, parent, "B", 100, contribution=70, task_repository=task_repository)

        assert recompute_parent_progress(db_session, test_user_id, parent.id) == 85
        assert task_repository.get(test_user_id, parent.id).progress == 85

    def test_equal_split_without_contributions(self, db_session, task_repository, make_task, test_user_id):
        parent = make_task(title="Launch")
        for title, progress in (("A", 0), ("B", 50), ("C", 100)):
            _child(make_task, parent, title, progress, task_repository=task_repository)

        assert recompute_parent_progress(db_session, test_user_id, parent.id) == 50

    def test_rounds_half_up(self, db_session, task_repository, make_task, test_user_id):
        parent = make_task(title="Launch")
        _child(make_task, parent, "A", 1, task_repository=task_repository)
        _child(make_task, parent, "B", 0, task_repository=task_repository)

        assert recompute_parent_progress(db_session, test_user_id, parent.id) == 1

    def test_zero_contribution_counts_as_equal_share(self, db_session, task_repository, make_task, test_user_id):
        parent = make_task(title="Launch")
        _child(make_task, parent, "A", 100, contribution=0, task_repository=task_repository)
        _child(make_task, parent, "B", 0, task_repository=task_repository)

        assert recompute_parent_progress(db_session, test_user_id, parent.id) == 50

    def test_no_children_writes_nothing(self, db_session, task_repository, make_task, test_user_id):
        parent = make_task(title="Leaf")
        task_repository.set_progress(test_user_id, parent.id, 40)
        before = task_repository.get(test_user_id, parent.id)

        assert recompute_parent_progress(db_session, test_user_id, parent.id) is None

        after = task_repository.get(test_user_id, parent.id)
        assert after.progress == 40
        assert after.updated_at == before.updated_at

    def test_only_progress_changes(self, db_session, task_repository, make_task, test_user_id):
        parent = make_task(title="Launch", description="Q1 launch")
        _child(make_task, parent, "A", 60, task_repository=task_repository)

        recompute_parent_progress(db_session, test_user_id, parent.id)

        updated = task_repository.get(test_user_id, parent.id)
        assert updated.progress == 60
        assert updated.title == "Launch"
        assert updated.description == "Q1 launch"
        assert updated.scope_key == parent.scope_key


class TestRollupProgress:
    """Cascading recomputation up the parent chain."""

    def test_rolls_up_to_every_ancestor(self, db_session, task_repository, make_task, test_user_id):
        year = make_task(title="Year goal", scope=TaskScope.YEAR, scope_key="2025")
        month = make_task(title="March", scope=TaskScope.MONTH, scope_key="2025-03", parent_task_id=year.id)
        day = make_task(title="Day work", parent_task_id=month.id)
        task_repository.set_progress(test_user_id, day.id, 80)

        updated = rollup_progress(db_session, test_user_id, day.id)

        assert updated == [month.id, year.id]
        assert task_repository.get(test_user_id, month.id).progress == 80
        assert task_repository.get(test_user_id, year.id).progress == 80

    def test_root_task_has_no_ancestors(self, db_session, make_task, test_user_id):
        root = make_task(title="Root")
        assert rollup_progress(db_session, test_user_id, root.id) == []


class TestProgressStoreFailures:
    """Database failures while rolling up surface as StoreError."""

    def test_children_read_failure(self, db_session, make_task, test_user_id, monkeypatch):
        parent = make_task(title="Launch")
        make_task(title="A", parent_task_id=parent.id)

        def failing_all(self):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(Query, "all", failing_all)
        with pytest.raises(StoreError):
            recompute_parent_progress(db_session, test_user_id, parent.id)

    def test_task_read_failure(self, db_session, make_task, test_user_id, monkeypatch):
        parent = make_task(title="Launch")
        child = make_task(title="A", parent_task_id=parent.id)

        def failing_first(self):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(Query, "first", failing_first)
        with pytest.raises(StoreError):
            rollup_progress(db_session, test_user_id, child.id)
