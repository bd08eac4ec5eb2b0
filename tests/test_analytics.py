from datetime import datetime

import pytest
from conftest import create_rfp, invite, supplier_client

from app.fyndr.errors import BadRequest
from app.fyndr.modules.analytics import service as analytics

URL = "/api/admin/analytics/dashboard"


def test_dashboard_kpis_after_award(buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    buyer.post(f"/api/rfps/{rfp['id']}/award/commit", json={"status": "awarded", "selectedSupplierId": contact["id"]})

    r = buyer.get(URL)
    assert r.status_code == 200
    data = r.json["data"]
    kpis = data["kpis"]
    assert kpis["activeRfps"] == 1
    assert kpis["closedRfps"] == 1
    assert kpis["winRatePercent"] == 100
    assert kpis["avgSuppliersPerRfp"] == 1
    assert kpis["participationRate"] == 0

    charts = data["charts"]
    assert charts["stageDistribution"] == [{"stage": "INTAKE", "count": 1}]
    assert charts["supplierPerformance"][0]["supplierName"] == "Vendor Inc"
    assert charts["supplierPerformance"][0]["awardsWon"] == 1
    assert charts["workloadByBuyer"] == [{"buyerId": charts["workloadByBuyer"][0]["buyerId"], "buyerName": "Buyer", "activeRfps": 1, "closedRfps": 1}]
    assert data["filters"]["bucketSize"] == "week"
    assert data["filters"]["status"] == "all"


def test_dashboard_counts_exports(buyer):
    create_rfp(buyer)
    buyer.post("/api/exports/execute", json={"exportId": "rfp_list_export"})
    usage = buyer.get(URL).json["data"]["charts"]["exportUsage"]
    assert usage == [{"exportId": "rfp_list_export", "exportTitle": "RFP List Export", "count": 1}]


def test_dashboard_filters(buyer):
    create_rfp(buyer)
    assert buyer.get(URL + "?status=closed").json["data"]["kpis"]["activeRfps"] == 0
    assert buyer.get(URL + "?stage=drafting").json["data"]["kpis"]["activeRfps"] == 0
    # stage distribution ignores the stage filter
    charts = buyer.get(URL + "?stage=DRAFTING").json["data"]["charts"]
    assert charts["stageDistribution"] == [{"stage": "INTAKE", "count": 1}]

    r = buyer.get(URL + "?dateRange=forever")
    assert r.status_code == 400
    assert r.json["error"] == "Invalid dateRange"
    assert buyer.get(URL + "?dateRange=custom").status_code == 400
    assert buyer.get(URL + "?stage=NOWHERE").status_code == 400
    assert buyer.get(URL + "?buyerId=abc").status_code == 400


def test_dashboard_is_company_scoped(buyer, other_buyer):
    create_rfp(buyer)
    assert other_buyer.get(URL).json["data"]["kpis"]["activeRfps"] == 0


def test_suppliers_cannot_view_dashboard(app, buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    supplier = supplier_client(app, contact)
    assert supplier.get(URL).status_code == 403


# ---------- pure helpers ----------
def test_bucket_keys():
    assert analytics.bucket_key(datetime(2026, 3, 18), "month") == "2026-03"
    # Jan 1 2026 is a Thursday; its week starts on Monday Dec 29 2025, ISO week 1 of 2026
    assert analytics.bucket_key(datetime(2026, 1, 1), "week") == "2026-W01"


def test_parse_filters():
    now = datetime(2026, 6, 1)
    f = analytics.parse_filters({"dateRange": "last_180_days"}, now)
    assert f.bucket_size == "month"
    assert (f.end - f.start).days == 180

    f = analytics.parse_filters({"dateRange": "custom", "startDate": "2026-01-01", "endDate": "2026-02-01"}, now)
    assert f.bucket_size == "week"

    with pytest.raises(BadRequest, match="startDate must be before endDate"):
        analytics.parse_filters({"dateRange": "custom", "startDate": "2026-03-01", "endDate": "2026-02-01"}, now)
    with pytest.raises(BadRequest):
        analytics.parse_filters({"status": "pending"}, now)
