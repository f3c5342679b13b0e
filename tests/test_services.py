"""Service layer: permissions, persistence, audit and the evaluation flow."""

from __future__ import annotations

import sqlite3
from datetime import date
from decimal import Decimal

import pytest

from tests.factories import make_rule
from tracker.config import AppConfig
from tracker.database import DatabaseManager
from tracker.models.enums import EvaluationReason
from tracker.models.evaluation import EvaluationInput
from tracker.models.incentive_rule import IncentiveRule
from tracker.models.user import User
from tracker.services import ServiceContainer, create_services
from tracker.services.account_service import next_account_code

MARCH_1 = date(2024, 3, 1)
MARCH_31 = date(2024, 3, 31)


def _audit_actions(db: DatabaseManager) -> list[str]:
    return [row["action"] for row in db.sqlite.execute("SELECT action FROM audit_log ORDER BY id")]


def _add_account(services: ServiceContainer, user: User, **fields: object) -> str:
    result = services["account_service"].add_account({"username": "shop", **fields}, user)
    assert result.success, result.error
    return str(result.data.id)


# ---------------------------------------------------------------------------
# Rule administration
# ---------------------------------------------------------------------------

def test_empty_storage_is_seeded_with_default_rules(services: ServiceContainer) -> None:
    rules = services["incentive_rule_service"].list_rules().data

    assert [r["name"] for r in rules] == [
        "Standard Commission (5% - 7.99%)",
        "High Commission (8%+)",
    ]
    assert rules[1]["tiers"][-1]["incentive_rate"] == Decimal("1.5")


def test_stored_rules_are_loaded_instead_of_reseeding(
    services: ServiceContainer, db: DatabaseManager, config: AppConfig,
) -> None:
    first_ids = [r.id for r in services["rule_registry"]]

    reloaded = create_services(db=db, config=config)
    reloaded["incentive_rule_service"].load_rules()

    assert [r.id for r in reloaded["rule_registry"]] == first_ids


def test_rule_writes_require_a_superadmin(
    services: ServiceContainer, regular_user: User,
) -> None:
    svc = services["incentive_rule_service"]
    rule_id = str(services["rule_registry"].snapshot()[0].id)

    results = [
        svc.add_rule(make_rule(low="1", high="2"), regular_user),
        svc.update_rule(rule_id, {"name": "x"}, regular_user),
        svc.set_rule_active(rule_id, False, regular_user),
        svc.remove_rule(rule_id, regular_user),
    ]

    assert [r.status_code for r in results] == [403, 403, 403, 403]
    assert len(services["rule_registry"]) == 2


def test_add_rule_persists_and_audits(
    services: ServiceContainer, superadmin: User, db: DatabaseManager,
) -> None:
    result = services["incentive_rule_service"].add_rule(
        make_rule(low="1", high="4.99", name="Low"), superadmin,
    )

    assert result.success and result.status_code == 201
    stored = db.sqlite.execute("SELECT name FROM incentive_rules WHERE id = ?", (result.data["id"],))
    assert stored.fetchone()["name"] == "Low"
    assert _audit_actions(db)[-1] == "CREATE_RULE"


def test_overlapping_rule_is_refused_with_400(
    services: ServiceContainer, superadmin: User,
) -> None:
    result = services["incentive_rule_service"].add_rule(make_rule(low="7", high="9"), superadmin)

    assert result.success is False
    assert result.status_code == 400
    assert "overlaps" in result.error


def test_unknown_rule_update_is_404(services: ServiceContainer, superadmin: User) -> None:
    result = services["incentive_rule_service"].update_rule("nope", {"name": "x"}, superadmin)
    assert result.status_code == 404


def test_remove_rule_deletes_it_from_storage(
    services: ServiceContainer, superadmin: User, db: DatabaseManager,
) -> None:
    rule_id = str(services["rule_registry"].snapshot()[0].id)

    result = services["incentive_rule_service"].remove_rule(rule_id, superadmin)

    assert result.success
    assert db.sqlite.execute("SELECT COUNT(*) FROM incentive_rules").fetchone()[0] == 1
    assert "DELETE_RULE" in _audit_actions(db)


def _fail_storage(*_args: object, **_kwargs: object) -> None:
    raise sqlite3.OperationalError("disk I/O error")


def test_failed_seed_leaves_registry_and_storage_empty(
    db: DatabaseManager, config: AppConfig, monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A save failing midway undoes the seed, so the next startup seeds everything."""
    container = create_services(db=db, config=config)
    svc = container["incentive_rule_service"]
    save = svc._repo.save
    calls: list[str] = []

    def save_first_only(rule: IncentiveRule) -> IncentiveRule:
        calls.append(str(rule.id))
        if len(calls) == 2:
            _fail_storage()
        return save(rule)

    monkeypatch.setattr(svc._repo, "save", save_first_only)
    result = svc.load_rules()

    assert result.success is False
    assert result.status_code == 500
    assert len(container["rule_registry"]) == 0
    assert db.sqlite.execute("SELECT COUNT(*) FROM incentive_rules").fetchone()[0] == 0

    monkeypatch.undo()
    retry = svc.load_rules()

    assert retry.status_code == 201
    assert len(container["rule_registry"]) == 2


def test_add_rule_save_failure_restores_registry(
    services: ServiceContainer, superadmin: User, monkeypatch: pytest.MonkeyPatch,
) -> None:
    svc = services["incentive_rule_service"]
    before = services["rule_registry"].snapshot()
    monkeypatch.setattr(svc._repo, "save", _fail_storage)

    result = svc.add_rule(make_rule(low="1", high="4.99"), superadmin)

    assert result.status_code == 500
    assert services["rule_registry"].snapshot() == before


def test_update_rule_save_failure_restores_registry(
    services: ServiceContainer, superadmin: User, monkeypatch: pytest.MonkeyPatch,
) -> None:
    svc = services["incentive_rule_service"]
    rule = services["rule_registry"].snapshot()[0]
    monkeypatch.setattr(svc._repo, "save", _fail_storage)

    result = svc.update_rule(str(rule.id), {"name": "Renamed"}, superadmin)

    assert result.status_code == 500
    assert services["rule_registry"].get(str(rule.id)).name == rule.name


def test_remove_rule_delete_failure_restores_registry(
    services: ServiceContainer,
    superadmin: User,
    db: DatabaseManager,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    svc = services["incentive_rule_service"]
    rule_id = str(services["rule_registry"].snapshot()[0].id)
    monkeypatch.setattr(svc._repo, "delete", _fail_storage)

    result = svc.remove_rule(rule_id, superadmin)

    assert result.status_code == 500
    assert services["rule_registry"].get(rule_id).id == rule_id
    assert "DELETE_RULE" not in _audit_actions(db)


# ---------------------------------------------------------------------------
# Accounts and categories
# ---------------------------------------------------------------------------

def test_account_codes_are_sequential(services: ServiceContainer, superadmin: User) -> None:
    svc = services["account_service"]
    first = _add_account(services, superadmin, username="one")
    _add_account(services, superadmin, username="two")

    codes = sorted(a.account_code for a in svc.list_accounts().data)

    assert codes == ["AC001", "AC002"]
    assert svc.get_account(first).data.account_code == "AC001"


def test_next_account_code_skips_foreign_codes() -> None:
    assert next_account_code([]) == "AC001"
    assert next_account_code(["JA001", "AC007", "AC002"]) == "AC008"


def test_account_code_cannot_be_edited(services: ServiceContainer, superadmin: User) -> None:
    account_id = _add_account(services, superadmin)

    result = services["account_service"].update_account(
        account_id, {"account_code": "HACK", "phone": "0812"}, superadmin,
    )

    assert result.data.account_code == "AC001"
    assert result.data.phone == "0812"


def test_invalid_account_data_is_400(services: ServiceContainer, superadmin: User) -> None:
    result = services["account_service"].add_account({"username": ""}, superadmin)
    assert result.status_code == 400


def test_unknown_category_is_404(services: ServiceContainer, superadmin: User) -> None:
    result = services["account_service"].add_account(
        {"username": "shop", "category_id": "missing"}, superadmin,
    )
    assert result.status_code == 404


def test_deleting_a_category_uncategorises_its_accounts(
    services: ServiceContainer, superadmin: User,
) -> None:
    svc = services["account_service"]
    category = svc.add_category("Electronics", superadmin).data
    account_id = _add_account(services, superadmin, category_id=category.id)

    assert svc.add_category("electronics", superadmin).status_code == 400
    assert svc.delete_category(str(category.id), superadmin).success

    assert svc.get_account(account_id).data.category_id is None
    assert svc.list_categories().data == []


def test_deleting_an_account_removes_its_sales(
    services: ServiceContainer, superadmin: User, db: DatabaseManager,
) -> None:
    account_id = _add_account(services, superadmin)
    services["sales_data_service"].upload(
        account_id, [{"date": "2024-03-01", "totalPurchases": 10}], superadmin,
    )

    result = services["account_service"].delete_account(account_id, superadmin)

    assert result.success
    assert services["sales_data_service"].list_sales(account_id).data == []
    assert services["account_service"].get_account(account_id).status_code == 404
    assert "DELETE_ACCOUNT" in _audit_actions(db)


def test_failed_account_delete_keeps_its_sales(
    services: ServiceContainer, superadmin: User, monkeypatch: pytest.MonkeyPatch,
) -> None:
    account_id = _add_account(services, superadmin)
    services["sales_data_service"].upload(
        account_id, [{"date": "2024-03-01", "totalPurchases": 10}], superadmin,
    )
    svc = services["account_service"]
    monkeypatch.setattr(svc._account_repo, "delete", _fail_storage)

    result = svc.delete_account(account_id, superadmin)

    assert result.status_code == 500
    assert len(services["sales_data_service"].list_sales(account_id).data) == 1
    assert svc.get_account(account_id).success


# ---------------------------------------------------------------------------
# Sales data
# ---------------------------------------------------------------------------

def test_upload_accepts_camel_case_and_spaced_headers(
    services: ServiceContainer, superadmin: User,
) -> None:
    account_id = _add_account(services, superadmin)
    rows = [
        {"date": "2024-03-01", "grossCommission": 600_000, "Total Purchases": 10_000_000},
        {"Date": "2024-03-02", "gross_commission": 100, "newBuyers": 3},
    ]

    result = services["sales_data_service"].upload(account_id, rows, superadmin)

    assert result.success and result.status_code == 201
    listed = services["sales_data_service"].list_sales(account_id).data
    assert [(r.date, r.gross_commission) for r in listed] == [
        (date(2024, 3, 2), 100),
        (date(2024, 3, 1), 600_000),
    ]


def test_one_bad_row_rejects_the_whole_upload(
    services: ServiceContainer, superadmin: User,
) -> None:
    account_id = _add_account(services, superadmin)
    rows = [{"date": "2024-03-01"}, {"date": "2024-03-02", "clicks": -5}]

    result = services["sales_data_service"].upload(account_id, rows, superadmin)

    assert result.status_code == 400
    assert "Row 2" in result.error
    assert services["sales_data_service"].list_sales(account_id).data == []


def test_upload_for_unknown_account_is_404(services: ServiceContainer, superadmin: User) -> None:
    result = services["sales_data_service"].upload("ghost", [{"date": "2024-03-01"}], superadmin)
    assert result.status_code == 404


def test_delete_sales_in_a_window(services: ServiceContainer, superadmin: User) -> None:
    account_id = _add_account(services, superadmin)
    svc = services["sales_data_service"]
    svc.upload(account_id, [{"date": f"2024-03-0{d}"} for d in (1, 2, 3)], superadmin)

    result = svc.delete_sales(account_id, superadmin, start_date=date(2024, 3, 2))

    assert result.data == {"deleted": 2}
    assert [r.date for r in svc.list_sales(account_id).data] == [date(2024, 3, 1)]


# ---------------------------------------------------------------------------
# Evaluation and reporting
# ---------------------------------------------------------------------------

def test_evaluate_reports_invalid_input_as_422(services: ServiceContainer) -> None:
    result = services["evaluation_service"].evaluate(
        EvaluationInput(account_id="a", period_commission=-1, period_revenue=0),
    )
    assert result.status_code == 422


def test_evaluate_account_from_stored_sales(
    services: ServiceContainer, superadmin: User, db: DatabaseManager,
) -> None:
    """6% nominal rate, 95M revenue over two days: 90M tier of the standard band."""
    account_id = _add_account(services, superadmin, commission_rate="6")
    services["sales_data_service"].upload(
        account_id,
        [
            {"date": "2024-03-01", "grossCommission": 3_000_000, "totalPurchases": 50_000_000},
            {"date": "2024-03-20", "grossCommission": 2_700_000, "totalPurchases": 45_000_000},
            {"date": "2024-04-01", "grossCommission": 9_000_000, "totalPurchases": 90_000_000},
        ],
        superadmin,
    )

    result = services["evaluation_service"].evaluate_account(
        account_id, MARCH_1, MARCH_31, persist=True, current_user=superadmin,
    )

    assert result.success
    assert result.data.reason == EvaluationReason.ELIGIBLE
    assert result.data.period_revenue == 95_000_000
    assert result.data.matched_tier_index == 1
    assert result.data.incentive_amount == 570_000
    history = services["evaluation_service"].get_history(account_id).data
    assert len(history) == 1 and history[0].incentive_amount == 570_000
    assert "STORE_EVALUATION" in _audit_actions(db)


def test_deactivated_rule_no_longer_matches(
    services: ServiceContainer, superadmin: User,
) -> None:
    account_id = _add_account(services, superadmin, commission_rate="6")
    services["sales_data_service"].upload(
        account_id, [{"date": "2024-03-01", "grossCommission": 6_000_000, "totalPurchases": 100_000_000}],
        superadmin,
    )
    standard = services["rule_registry"].find_by_commission_rate(Decimal("6"))
    services["incentive_rule_service"].set_rule_active(str(standard.id), False, superadmin)

    result = services["evaluation_service"].evaluate_account(account_id, MARCH_1, MARCH_31)

    assert result.data.reason == EvaluationReason.NO_MATCHING_RATE_BAND


def test_evaluate_account_unknown_is_404(services: ServiceContainer) -> None:
    result = services["evaluation_service"].evaluate_account("ghost", MARCH_1, MARCH_31)
    assert result.status_code == 404


def test_evaluate_all_covers_every_account(services: ServiceContainer, superadmin: User) -> None:
    rich = _add_account(services, superadmin, username="rich", commission_rate="8")
    _add_account(services, superadmin, username="idle")
    services["sales_data_service"].upload(
        rich, [{"date": "2024-03-05", "grossCommission": 8_000_000, "totalPurchases": 100_000_000}],
        superadmin,
    )

    result = services["evaluation_service"].evaluate_all(MARCH_1, MARCH_31)

    by_account = {r.account_id: r for r in result.data}
    assert len(by_account) == 2
    assert by_account[rich].incentive_amount == 1_500_000
    assert sum(r.is_eligible for r in result.data) == 1


def test_dashboard_summary_totals(services: ServiceContainer, superadmin: User) -> None:
    a = _add_account(services, superadmin, username="a")
    b = _add_account(services, superadmin, username="b", status="inactive")
    upload = services["sales_data_service"].upload
    upload(a, [{"date": "2024-03-10", "clicks": 100, "orders": 5, "totalPurchases": 1_000}], superadmin)
    upload(b, [{"date": "2024-03-11", "clicks": 100, "orders": 15, "grossCommission": 70}], superadmin)
    upload(b, [{"date": "2024-02-01", "clicks": 999}], superadmin)

    result = services["report_service"].get_dashboard_summary(MARCH_1, MARCH_31)

    summary = result.data
    assert summary.account_count == 2
    assert summary.active_account_count == 1
    assert summary.total_clicks == 200
    assert summary.total_orders == 20
    assert summary.total_commission == 70
    assert summary.total_revenue == 1_000
    assert summary.conversion_rate == Decimal("10")


def test_dashboard_preset_window(services: ServiceContainer) -> None:
    result = services["report_service"].get_dashboard_summary(preset_days=7, today=MARCH_31)

    assert (result.data.start_date, result.data.end_date) == (date(2024, 3, 25), MARCH_31)


def test_dashboard_reversed_window_is_422(services: ServiceContainer) -> None:
    result = services["report_service"].get_dashboard_summary(MARCH_31, MARCH_1)
    assert result.status_code == 422
