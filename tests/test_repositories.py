"""Offline repository behaviour: SQLite cache round-trips and the sync queue."""

from __future__ import annotations

import json
import sqlite3
from datetime import date
from decimal import Decimal

import pytest

from tests.factories import make_rule, make_sale
from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger
from tracker.models.account import Account
from tracker.models.enums import EvaluationReason
from tracker.models.evaluation import EvaluationResult
from tracker.repositories import (
    AccountRepository,
    EvaluationResultRepository,
    IncentiveRuleRepository,
    SalesDataRepository,
)
from tracker.repositories.sales_data_repository import sales_record_id


@pytest.fixture
def account(db: DatabaseManager, logger: StructuredLogger) -> Account:
    return AccountRepository(db, logger).save(
        Account(id="acc-1", username="shop_one", account_code="AC001")
    )


def test_rule_round_trips_through_the_local_cache(
    db: DatabaseManager, logger: StructuredLogger,
) -> None:
    repo = IncentiveRuleRepository(db, logger)
    rule = make_rule("r1", "5", "7.99", tiers=((80_000_000, "0.4"), (90_000_000, "0.6")))

    repo.save(rule)
    loaded = repo.get_by_id("r1")

    assert loaded is not None
    assert loaded.commission_rate_max == Decimal("7.99")
    assert loaded.tiers == rule.tiers
    assert loaded.is_active is True
    assert [r.id for r in repo.get_all()] == ["r1"]


def test_offline_writes_are_queued_for_sync(
    db: DatabaseManager, logger: StructuredLogger,
) -> None:
    repo = IncentiveRuleRepository(db, logger)

    repo.save(make_rule("r1"))
    repo.delete("r1")

    rows = db.sqlite.execute(
        "SELECT table_name, operation, entity_id, payload FROM sync_queue ORDER BY id"
    ).fetchall()
    assert [(r["operation"], r["entity_id"]) for r in rows] == [("upsert", "r1"), ("delete", "r1")]
    assert json.loads(rows[0]["payload"])["commission_rate_min"] == "5"
    assert db.get_pending_sync_count() == 2
    assert repo.get_by_id("r1") is None


def test_rule_without_id_cannot_be_saved(db: DatabaseManager, logger: StructuredLogger) -> None:
    with pytest.raises(ValueError):
        IncentiveRuleRepository(db, logger).save(make_rule())


def test_sales_reupload_replaces_the_day(
    db: DatabaseManager, logger: StructuredLogger, account: Account,
) -> None:
    repo = SalesDataRepository(db, logger)
    day = date(2024, 3, 1)

    def _sale(revenue: int):
        return make_sale("acc-1", day, revenue=revenue).model_copy(
            update={"id": sales_record_id("acc-1", day)}
        )

    repo.save_many([_sale(100)])
    repo.save_many([_sale(250)])

    records = repo.get_records("acc-1")
    assert len(records) == 1
    assert records[0].total_purchases == 250


def test_sales_window_filter_and_range_delete(
    db: DatabaseManager, logger: StructuredLogger, account: Account,
) -> None:
    repo = SalesDataRepository(db, logger)
    days = [date(2024, 3, d) for d in (1, 2, 3, 4)]
    repo.save_many(
        [
            make_sale("acc-1", d).model_copy(update={"id": sales_record_id("acc-1", d)})
            for d in days
        ]
    )

    in_window = repo.get_records("acc-1", date(2024, 3, 2), date(2024, 3, 3))
    assert [r.date for r in in_window] == [date(2024, 3, 3), date(2024, 3, 2)]

    assert repo.delete_records("acc-1", start_date=date(2024, 3, 3)) == 2
    assert [r.date for r in repo.get_records("acc-1")] == [date(2024, 3, 2), date(2024, 3, 1)]


def test_deleting_an_account_cascades_to_its_sales(
    db: DatabaseManager, logger: StructuredLogger, account: Account,
) -> None:
    sales = SalesDataRepository(db, logger)
    day = date(2024, 3, 1)
    sales.save_many([make_sale("acc-1", day).model_copy(update={"id": sales_record_id("acc-1", day)})])

    AccountRepository(db, logger).delete("acc-1")

    assert sales.get_records("acc-1") == []


def test_evaluation_results_are_append_only(db: DatabaseManager, logger: StructuredLogger) -> None:
    repo = EvaluationResultRepository(db, logger)
    result = EvaluationResult(
        account_id="acc-1",
        matched_rule_id="gone",
        reason=EvaluationReason.BELOW_BASE_REVENUE,
        period_commission=1,
        period_revenue=2,
        commission_rate=Decimal("6"),
    )

    repo.create(result)
    repo.create(result)

    history = repo.get_history("acc-1")
    assert len(history) == 2
    assert history[0].matched_rule_id == "gone"
    assert history[0].commission_rate == Decimal("6")


def test_failed_queue_write_rolls_back_the_cached_row(
    db: DatabaseManager, logger: StructuredLogger, monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A half-applied write must not be committed by the next unrelated write."""
    repo = IncentiveRuleRepository(db, logger)

    def broken_queue(*_args: object) -> None:
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(repo, "_queue_pending_sync", broken_queue)
    with pytest.raises(sqlite3.OperationalError):
        repo.save(make_rule("r1"))
    monkeypatch.undo()

    repo.save(make_rule("r2", "8", "9"))

    assert [r.id for r in repo.get_all()] == ["r2"]
    assert db.get_pending_sync_count() == 1
