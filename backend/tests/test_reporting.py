"""
Read-side figures: sales analytics, sold products, invoices per client and
catalog counters.
"""

from datetime import date

import pytest

from telecom_ops.services import catalog_service, invoice_service, reporting_service, sales_service
from telecom_ops.services.reporting_service import ReportError
from telecom_ops.validation import ValidationError

from conftest import actor_of, auth_headers


AMINE = {"client_name": "Amine Saidi", "client_phone": "0550123456", "client_type": "Residential"}
ATLAS = {"client_name": "Atlas Logistics SARL", "client_phone": "0661987654", "client_type": "Professional"}


@pytest.fixture
def sell(db_session, agent):
    """Factory: sale taken to the given status on a fixed business date."""
    def _sell(seller, article, quantity=1, *, client, sale_date, status="Completed"):
        sale = sales_service.create_sale(
            actor_of(seller),
            sale_date=sale_date,
            items=[{"article_id": article.id, "quantity": quantity}],
            **client,
        )
        if status == "Cancelled":
            return sales_service.cancel_sale(sale.id, actor_of(agent))
        if status in ("Validated", "Completed"):
            sale = sales_service.validate_sale(sale.id, actor_of(agent))
        if status == "Completed":
            sale = sales_service.complete_sale(sale.id, actor_of(agent))
        return sale

    return _sell


@pytest.fixture
def ledger(db_session, advisor, make_user, make_article, sell):
    """
    2025 activity, article at 1000.00 untracked:
    - Jan 10  advisor   Amine  2 units  Completed
    - Mar 05  advisor   Atlas  1 unit   Completed
    - Mar 20  advisor2  Amine  1 unit   Validated
    - Mar 21  advisor   Atlas  1 unit   Cancelled
    plus Dec 31 2024, advisor, Amine, 1 unit, Completed.
    """
    second = make_user("Advisor", username="advisor2")
    modem = make_article(price_cents=100_000, stock=None)
    sales = {
        "jan": sell(advisor, modem, 2, client=AMINE, sale_date=date(2025, 1, 10)),
        "mar_atlas": sell(advisor, modem, client=ATLAS, sale_date=date(2025, 3, 5)),
        "mar_validated": sell(second, modem, client=AMINE, sale_date=date(2025, 3, 20), status="Validated"),
        "mar_cancelled": sell(advisor, modem, client=ATLAS, sale_date=date(2025, 3, 21), status="Cancelled"),
        "last_year": sell(advisor, modem, client=AMINE, sale_date=date(2024, 12, 31)),
    }
    sales["second"] = second
    return sales


# ---------------------------------------------------------------------------
# Sales analytics
# ---------------------------------------------------------------------------

def test_sales_summary_for_year(ledger):
    summary = reporting_service.sales_summary(year=2025)

    assert summary["total_sales"] == 3
    assert summary["completed_sales"] == 2
    assert summary["total_revenue_cents"] == 300_000
    assert summary["average_sale_cents"] == 150_000
    assert summary["unique_clients"] == 2
    assert summary["status_counts"] == {"Draft": 0, "Validated": 1, "Completed": 2, "Cancelled": 1}

    assert reporting_service.sales_summary()["total_revenue_cents"] == 400_000


def test_monthly_revenue_has_every_month(ledger):
    months = reporting_service.monthly_revenue(2025)

    assert len(months) == 12
    assert months[0] == {"month": 1, "month_name": "Jan", "sales_count": 1, "revenue_cents": 200_000}
    assert months[1]["revenue_cents"] == 0
    # The Validated March sale is not revenue yet
    assert months[2]["sales_count"] == 1
    assert months[2]["revenue_cents"] == 100_000


def test_top_clients(ledger):
    rows = reporting_service.top_clients()
    assert [row["client_name"] for row in rows] == ["Amine Saidi", "Atlas Logistics SARL"]
    assert rows[0]["total_sales"] == 2
    assert rows[0]["total_revenue_cents"] == 300_000

    assert len(reporting_service.top_clients(limit=1)) == 1
    with pytest.raises(ReportError):
        reporting_service.top_clients(limit=0)


def test_advisor_performance(ledger, advisor):
    rows = reporting_service.advisor_performance(year=2025)
    assert [row["advisor_id"] for row in rows] == [advisor.id, ledger["second"].id]
    assert rows[0]["total_sales"] == 2
    assert rows[0]["completed_sales"] == 2
    assert rows[0]["average_sale_cents"] == 150_000
    assert rows[1]["total_revenue_cents"] == 0

    march = reporting_service.advisor_performance(year=2025, month=3)
    assert {row["advisor_id"]: row["total_sales"] for row in march} == {advisor.id: 1, ledger["second"].id: 1}

    with pytest.raises(ReportError):
        reporting_service.advisor_performance(month=3)
    with pytest.raises(ReportError):
        reporting_service.advisor_performance(year=2025, month=13)


def test_dashboard_compares_with_previous_month(ledger):
    march = reporting_service.dashboard_summary(today=date(2025, 3, 15))
    assert march["current_month"] == {"sales": 2, "revenue_cents": 100_000, "unique_clients": 2}
    assert march["previous_month"] == {"revenue_cents": 0, "sales": 0}
    assert march["change_percent"] == 0.0

    february = reporting_service.dashboard_summary(today=date(2025, 2, 1))
    assert february["previous_month"] == {"revenue_cents": 200_000, "sales": 1}
    assert february["change_percent"] == -100.0

    # January looks back across the year boundary
    january = reporting_service.dashboard_summary(today=date(2025, 1, 20))
    assert january["previous_month"]["revenue_cents"] == 100_000
    assert january["change_percent"] == 100.0


# ---------------------------------------------------------------------------
# Sold products
# ---------------------------------------------------------------------------

def test_sold_products_grouped_by_day(ledger, director):
    result = reporting_service.sold_products(
        actor_of(director), date_from=date(2025, 3, 1), date_to=date(2025, 3, 31),
    )

    assert [day["date"] for day in result["days"]] == ["2025-03-20", "2025-03-05"]
    assert result["days"][0]["sales"][0]["status"] == "Validated"
    assert result["days"][1]["sales"][0]["items"][0]["tag"] == "Hardware"
    assert result["stats"]["total_sales"] == 2
    assert result["stats"]["total_revenue_cents"] == 200_000
    assert result["stats"]["unique_clients"] == 2
    assert result["stats"]["revenue_change_direction"] == "up"

    completed = reporting_service.sold_products(
        actor_of(director), date_from=date(2025, 3, 1), date_to=date(2025, 3, 31), status="Completed",
    )
    assert completed["stats"]["total_sales"] == 1


def test_sold_products_scoped_to_own_sales(ledger, advisor):
    result = reporting_service.sold_products(
        actor_of(advisor),
        date_from=date(2025, 3, 1),
        date_to=date(2025, 3, 31),
        created_by=ledger["second"].id,
    )
    assert result["stats"]["total_sales"] == 1
    assert result["days"][0]["sales"][0]["reference"] == ledger["mar_atlas"].reference


def test_sold_products_default_window(db_session, advisor, make_article, sell):
    modem = make_article(price_cents=100_000, stock=None)
    sell(advisor, modem, client=AMINE, sale_date=date(2025, 6, 1))
    sell(advisor, modem, client=AMINE, sale_date=date(2025, 4, 1))

    result = reporting_service.sold_products(actor_of(advisor), today=date(2025, 6, 10))
    assert result["date_from"] == "2025-05-11"
    assert result["date_to"] == "2025-06-10"
    assert result["stats"]["total_sales"] == 1


@pytest.mark.parametrize("kwargs", [
    {"date_from": date(2025, 3, 1)},
    {"date_from": date(2025, 3, 31), "date_to": date(2025, 3, 1)},
    {"status": "Draft"},
])
def test_sold_products_arguments(db_session, director, kwargs):
    with pytest.raises(ValidationError):
        reporting_service.sold_products(actor_of(director), **kwargs)


def test_sold_products_stats(ledger, director):
    stats = reporting_service.sold_products_stats(actor_of(director), days=30, today=date(2025, 3, 25))

    assert stats["total_sales"] == 2
    assert stats["total_revenue_cents"] == 200_000
    assert stats["professional_sales"] == 1
    assert stats["residential_sales"] == 1
    assert stats["units_sold"] == 2
    assert stats["by_category"] == {"Hardware": {"units": 2, "revenue_cents": 200_000}}

    with pytest.raises(ValidationError):
        reporting_service.sold_products_stats(actor_of(director), days=0)


# ---------------------------------------------------------------------------
# Invoices per client and catalog counters
# ---------------------------------------------------------------------------

def test_invoices_by_client(ledger, agent):
    invoices = {
        key: invoice_service.issue_invoice(ledger[key].id, actor_of(agent))
        for key in ("jan", "mar_atlas", "last_year")
    }
    invoice_service.record_payment(invoices["mar_atlas"].id, 100_000, actor_of(agent))

    result = invoice_service.invoices_by_client()
    assert result["count"] == 2
    amine, atlas = result["items"]
    assert amine["client_name"] == "Amine Saidi"
    assert amine["total_invoices"] == 2
    assert amine["total_due_cents"] == 300_000
    assert atlas["total_paid_cents"] == 100_000
    assert atlas["total_due_cents"] == 0
    assert "stats" in result

    paid = invoice_service.invoices_by_client(status="Paid")
    assert [row["client_name"] for row in paid["items"]] == ["Atlas Logistics SARL"]
    assert invoice_service.invoices_by_client(search="0550")["count"] == 1
    assert invoice_service.invoices_by_client(client_type="Professional")["count"] == 1

    with pytest.raises(ValidationError):
        invoice_service.invoices_by_client(status="Lost")


def test_article_stats(db_session, make_article):
    make_article(price_cents=1_000, stock=3)
    make_article(price_cents=1_000, stock=15)
    make_article(price_cents=1_000, stock=50)
    make_article(price_cents=500_000, stock=None, category="Subscription")
    make_article(price_cents=1_000, stock=1, is_active=False)

    assert catalog_service.article_stats() == {
        "total_articles": 4,
        "subscriptions": 1,
        "hardware": 3,
        "tracked_articles": 3,
        "critical_stock": 1,
        "low_stock": 1,
        "stock_value_cents": 68_000,
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def test_analytics_routes(client, ledger, agent, advisor):
    headers = auth_headers(client, agent)

    response = client.get('/api/sales/stats/summary?year=2025', headers=headers)
    assert response.status_code == 200
    assert response.get_json()["total_revenue_cents"] == 300_000

    response = client.get('/api/sales/revenue/monthly?year=2025', headers=headers)
    assert len(response.get_json()["months"]) == 12

    response = client.get('/api/sales/top-clients?limit=1', headers=headers)
    assert response.get_json()["count"] == 1

    assert client.get('/api/sales/top-clients?limit=0', headers=headers).status_code == 400
    assert client.get('/api/sales/performance/advisors?month=3', headers=headers).status_code == 400
    assert client.get('/api/sales/performance/advisors?year=2025', headers=headers).status_code == 200
    assert client.get('/api/sales/dashboard/summary', headers=headers).status_code == 200

    advisor_headers = auth_headers(client, advisor)
    assert client.get('/api/sales/stats/summary', headers=advisor_headers).status_code == 403


def test_sold_products_routes(client, ledger, advisor):
    headers = auth_headers(client, advisor)

    response = client.get('/api/sales/sold-products?date_from=2025-03-01&date_to=2025-03-31', headers=headers)
    assert response.status_code == 200
    assert response.get_json()["stats"]["total_sales"] == 1

    assert client.get('/api/sales/sold-products?date_from=2025-03-01', headers=headers).status_code == 400
    assert client.get('/api/sales/sold-products?status=Draft', headers=headers).status_code == 400
    assert client.get('/api/sales/sold-products/stats?days=0', headers=headers).status_code == 400
    assert client.get('/api/sales/sold-products/stats', headers=headers).status_code == 200


def test_invoice_and_catalog_summary_routes(client, ledger, agent, advisor):
    invoice_service.issue_invoice(ledger["jan"].id, actor_of(agent))
    headers = auth_headers(client, agent)

    response = client.get('/api/invoices/by-client', headers=headers)
    assert response.status_code == 200
    assert response.get_json()["count"] == 1
    assert client.get('/api/invoices/by-client?status=Lost', headers=headers).status_code == 400
    assert client.get('/api/invoices/by-client', headers=auth_headers(client, advisor)).status_code == 403

    response = client.get('/api/articles/stats/summary', headers=auth_headers(client, advisor))
    assert response.status_code == 200
    assert response.get_json()["total_articles"] == 1
