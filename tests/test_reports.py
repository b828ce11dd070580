"""Report catalog tests against a seeded in-memory store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest

from datastore.document_store import MockDocumentStore
from services.dashboards import DashboardService
from services.errors import InvalidParameter, NotFound
from services.fetcher import RecordFetcher
from services.ledger import Ledger

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


@pytest.fixture
def store() -> MockDocumentStore:
    return MockDocumentStore(name="test")


@pytest.fixture
def reports(store: MockDocumentStore) -> Iterator[DashboardService]:
    fetcher = RecordFetcher(store, workers=2)
    yield DashboardService(fetcher, clock=lambda: NOW)
    fetcher.shutdown()


def test_params_validate_days_and_limit(reports: DashboardService) -> None:
    params = reports.params(days="7", limit="3", ulb_id="ulb-1")

    assert params.window.days == 7
    assert params.limit == 3
    assert params.ulb_id == "ulb-1"
    with pytest.raises(InvalidParameter):
        reports.params(days="0")
    with pytest.raises(InvalidParameter):
        reports.params(limit="many")


def test_waste_generation_daily_series(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "pickup_records",
        [
            {"wasteType": "wet", "quantity": 2, "collectedAt": _ago(0.1)},
            {"wasteType": "dry", "quantity": 1, "collectedAt": _ago(0.2)},
            {"wasteType": "wet", "quantity": 3, "collectedAt": _ago(0.3)},
            {"wasteType": "wet", "quantity": 50, "collectedAt": _ago(9)},
        ],
    )

    data = reports.waste_generation_daily(reports.params(days=7))

    daily = data["dailyData"]
    assert len(daily) == 7
    assert [entry["date"] for entry in daily][-1] == "2024-03-10"
    today = daily[-1]
    assert today["wetWaste"] == 5.0
    assert today["dryWaste"] == 1.0
    assert today["totalWaste"] == 6.0
    assert today["totalPickups"] == 3
    assert all(entry["totalWaste"] == 0.0 and entry["totalPickups"] == 0 for entry in daily[:-1])
    assert data["summary"]["totalWaste"] == 6.0
    assert data["summary"]["averageDailyWaste"] == 0.86
    assert data["summary"]["peakWasteDay"]["date"] == "2024-03-10"
    assert data["summary"]["totalDays"] == 7
    assert data["wasteDistribution"] == {"wet": 5.0, "dry": 1.0, "hazardous": 0.0, "mixed": 0.0}


def test_imported_string_timestamps_stay_in_window(
    store: MockDocumentStore, reports: DashboardService
) -> None:
    Ledger(store, clock=lambda: NOW).import_records(
        "pickup_records",
        [
            {"wasteType": "wet", "quantity": 2, "collectedAt": "2024-03-10T08:00:00Z"},
            {"wasteType": "dry", "quantity": 1, "collectedAt": "2024-02-01T08:00:00Z"},
        ],
    )

    data = reports.waste_generation_daily(reports.params(days=7))

    assert data["summary"]["totalPickups"] == 1
    assert data["summary"]["totalWaste"] == 2.0
    assert data["dailyData"][-1]["wetWaste"] == 2.0


def test_penalty_revenue_with_no_penalties(reports: DashboardService) -> None:
    data = reports.penalty_revenue(reports.params())

    summary = data["summary"]
    assert summary["totalPenalties"] == 0
    assert summary["totalAmount"] == 0
    assert summary["paidAmount"] == 0
    assert summary["collectionRate"] == 0
    assert data["revenueByType"] == []


def test_penalty_revenue_groups_by_violation(store: MockDocumentStore, reports: DashboardService) -> None:
    penalties = [
        {"violationType": "non_segregation", "amount": 100, "status": "paid", "imposedAt": _ago(1)}
        for _ in range(5)
    ] + [
        {"violationType": "illegal_dumping", "amount": 200, "status": "pending", "imposedAt": _ago(2)}
        for _ in range(5)
    ]
    penalties.append(
        {"violationType": "other", "amount": 999, "status": "paid", "imposedAt": _ago(40)}
    )
    store.create_many("penalties", penalties)

    data = reports.penalty_revenue(reports.params(limit=2))

    summary = data["summary"]
    assert summary["totalPenalties"] == 10
    assert summary["paidPenalties"] == 5
    assert summary["totalAmount"] == 1500.0
    assert summary["paidAmount"] == 500.0
    assert summary["pendingAmount"] == 1000.0
    assert summary["collectionRate"] == 33.33
    assert data["penaltiesByType"] == {"illegal_dumping": 5, "non_segregation": 5}
    assert [entry["violationType"] for entry in data["topViolations"]] == [
        "illegal_dumping",
        "non_segregation",
    ]


def test_facility_utilization_is_not_clamped(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "waste_facilities",
        [
            {"id": "fa", "name": "A", "type": "composting", "capacity": 100, "currentLoad": 150, "status": "active"},
            {"id": "fb", "name": "B", "type": "wte", "capacity": 0, "currentLoad": 10, "status": "inactive"},
        ],
    )
    store.create_many(
        "waste_intake",
        [
            {"facilityId": "fa", "quantity": 20, "receivedAt": _ago(1)},
            {"facilityId": "fa", "quantity": 5, "receivedAt": _ago(3)},
        ],
    )

    data = reports.facility_utilization(reports.params())

    by_id = {entry["facilityId"]: entry for entry in data["facilities"]}
    assert by_id["fa"]["utilizationRate"] == 150.0
    assert by_id["fa"]["totalIntake"] == 25.0
    assert by_id["fa"]["intakeRate"] == 25.0
    assert by_id["fa"]["lastIntake"] == _ago(1)
    assert by_id["fb"]["utilizationRate"] == 0.0
    assert data["summary"]["activeFacilities"] == 1
    assert data["overall"]["overallUtilization"] == 160.0

    scoped = reports.facility_utilization(reports.params(type="wte"))
    assert [entry["facilityId"] for entry in scoped["facilities"]] == ["fb"]


def test_collection_efficiency(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create("collection_vehicles", {"id": "v1", "vehicleNumber": "KA-01", "ulbId": "u1"})
    store.create_many(
        "pickup_records",
        [
            {"vehicleId": "v1", "ulbId": "u1", "quantity": 10, "quality": "good", "collectedAt": _ago(1)},
            {"vehicleId": "v1", "ulbId": "u1", "quantity": 6, "collectedAt": _ago(1)},
            {"vehicleId": "v1", "ulbId": "u1", "quantity": 4, "quality": "excellent", "collectedAt": _ago(2)},
        ],
    )
    store.create("pickup_rejections", {"vehicleId": "v1", "ulbId": "u1", "rejectedAt": _ago(1)})
    store.create_many(
        "collection_complaints",
        [
            {"ulbId": "u1", "status": "resolved", "reportedAt": _ago(1)},
            {"ulbId": "u1", "status": "open", "reportedAt": _ago(1)},
        ],
    )

    data = reports.collection_efficiency(reports.params(ulb_id="u1", days=7))

    summary = data["summary"]
    assert summary["totalPickups"] == 3
    assert summary["averageQuality"] == 2.33
    assert summary["rejectionRate"] == 25.0
    assert summary["complaintResolutionRate"] == 50.0
    assert summary["totalWasteCollected"] == 20.0
    vehicle = data["vehiclePerformance"][0]
    assert vehicle["pickups"] == 3
    assert vehicle["rejections"] == 1
    assert vehicle["efficiency"] == 75.0
    assert data["trends"]["qualityTrend"] == {"excellent": 1, "good": 1, "fair": 0, "poor": 0}
    assert len(data["trends"]["dailyPickups"]) == 7


def test_segregation_compliance(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "households",
        [
            {"address": {"ward": "W1"}, "segregationStatus": {"isCompliant": True}},
            {"address": {"ward": "W1"}, "segregationStatus": {"isCompliant": False}},
            {"address": {"city": "Pune"}, "segregationStatus": {"isCompliant": True}},
        ],
    )
    store.create("bulk_generators", {"complianceStatus": {"isCompliant": True}})
    store.create_many(
        "segregation_violations",
        [
            {"violationType": "mixed_waste", "reportedAt": _ago(1)},
            {"violationType": "mixed_waste", "reportedAt": _ago(2)},
            {"violationType": "no_bins", "reportedAt": _ago(3)},
        ],
    )

    data = reports.segregation_compliance(reports.params())

    summary = data["summary"]
    assert summary["householdComplianceRate"] == 66.67
    assert summary["bulkGeneratorComplianceRate"] == 100.0
    assert summary["overallComplianceRate"] == 83.33
    assert data["complianceByArea"] == [
        {"area": "Pune", "total": 1, "compliant": 1.0, "complianceRate": 100.0},
        {"area": "W1", "total": 2, "compliant": 1.0, "complianceRate": 50.0},
    ]
    assert data["violationsByType"] == {"mixed_waste": 2, "no_bins": 1}


def test_training_completion(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "citizens",
        [
            {"trainingStatus": {"completed": True, "completedModules": ["basic", "advanced"]}},
            {"trainingStatus": {"completed": False, "completedModules": ["basic"]}},
            {},
            {"trainingStatus": {"completed": True, "completedModules": ["basic", "certification"]}},
        ],
    )
    store.create_many(
        "training_enrollments",
        [{"id": f"e{i}", "enrolledAt": _ago(i)} for i in range(1, 5)],
    )

    data = reports.training_completion(reports.params(limit=2))

    assert data["summary"]["completionRate"] == 50.0
    assert data["summary"]["pendingTraining"] == 2
    assert data["moduleStats"] == {"basic": 3, "advanced": 1, "certification": 1}
    assert [entry["id"] for entry in data["recentEnrollments"]] == ["e1", "e2"]
    assert data["trends"]["completionTrend"]["completed"] == 2


def test_treatment_efficiency(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create("waste_facilities", {"id": "f1", "name": "Plant", "capacity": 200, "currentLoad": 50, "status": "active"})
    store.create_many(
        "facility_process_logs",
        [
            {"facilityId": "f1", "inputQuantity": 100, "outputQuantity": 60, "efficiency": 60, "processedAt": _ago(1)},
            {"facilityId": "f1", "inputQuantity": 50, "outputQuantity": 40, "efficiency": 80, "processedAt": _ago(2)},
            {"facilityId": "ghost", "inputQuantity": 10, "outputQuantity": 1, "efficiency": 10, "processedAt": _ago(2)},
        ],
    )

    data = reports.waste_treatment_efficiency(reports.params())

    facility = data["facilities"][0]
    assert facility["processCount"] == 2
    assert facility["averageEfficiency"] == 70.0
    assert facility["overallEfficiency"] == 66.67
    assert facility["utilizationRate"] == 25.0
    assert data["summary"]["totalInput"] == 150.0


def test_incentive_distribution(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "incentive_rewards",
        [
            {"rewardType": "citizen_reward", "points": 50, "awardedAt": _ago(1)},
            {"rewardType": "citizen_reward", "points": 30, "awardedAt": _ago(1)},
            {"rewardType": "segregation_compliance", "points": 20, "awardedAt": _ago(1)},
        ],
    )
    store.create("point_redemptions", {"pointsUsed": 25, "redeemedAt": _ago(1)})

    data = reports.incentive_distribution(reports.params())

    assert data["summary"]["totalPointsAwarded"] == 100.0
    assert data["summary"]["redemptionRate"] == 25.0
    assert data["pointsByType"][0] == {
        "rewardType": "citizen_reward",
        "count": 2,
        "totalPoints": 80.0,
        "averagePoints": 40.0,
    }


def test_participation_top_participants(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "cleaning_events",
        [
            {"id": "ev1", "area": "W1", "totalParticipants": 12, "date": _ago(2)},
            {"id": "ev2", "area": "W2", "totalParticipants": 8, "date": _ago(1)},
        ],
    )
    attendance = [
        {"participantId": "p1", "attendanceType": "present", "markedAt": _ago(1)},
        {"participantId": "p1", "attendanceType": "present", "markedAt": _ago(2)},
        {"participantId": "p2", "attendanceType": "present", "markedAt": _ago(1)},
        {"participantId": "p3", "attendanceType": "absent", "markedAt": _ago(1)},
    ]
    store.create_many("event_attendance", attendance)

    data = reports.participation_stats(reports.params(limit=1))

    assert data["summary"]["totalParticipants"] == 20.0
    assert data["summary"]["attendanceRate"] == 75.0
    assert data["topParticipants"] == [{"participantId": "p1", "eventCount": 2}]
    assert data["eventsByArea"] == {"W1": 1, "W2": 1}
    assert [event["id"] for event in data["recentEvents"]] == ["ev2"]


def test_monitoring_dashboard(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "monitoring_reports",
        [
            {"status": "resolved", "issueType": "dumping", "priority": "high", "reportedAt": _ago(1)},
            {"status": "reported", "issueType": "dumping", "priority": "low", "reportedAt": _ago(2)},
            {"status": "in_progress", "issueType": "overflow", "priority": "high", "reportedAt": _ago(3)},
            {"status": "resolved", "issueType": "overflow", "priority": "low", "reportedAt": _ago(4)},
        ],
    )
    store.create_many(
        "cleanliness_assessments",
        [{"score": 7, "assessedAt": _ago(1)}, {"score": 8, "assessedAt": _ago(2)}],
    )

    data = reports.monitoring_dashboard(reports.params())

    assert data["summary"]["resolutionRate"] == 50.0
    assert data["summary"]["pendingReports"] == 1
    assert data["reportsByPriority"] == {"high": 2, "low": 2}
    assert data["cleanliness"] == {"averageScore": 7.5, "totalAssessments": 2}
    assert len(data["recentActivity"]["reports"]) == 4


def test_facility_efficiency_requires_known_facility(
    store: MockDocumentStore, reports: DashboardService
) -> None:
    with pytest.raises(NotFound):
        reports.facility_efficiency("missing", reports.params())

    store.create("waste_facilities", {"id": "f1", "name": "Plant", "efficiency": 72.5})
    store.create(
        "facility_process_logs",
        {"facilityId": "f1", "inputQuantity": 10, "outputQuantity": 7, "efficiency": 70, "processedAt": _ago(1)},
    )

    data = reports.facility_efficiency("f1", reports.params(days=7))

    assert data["summary"]["currentEfficiency"] == 72.5
    assert data["summary"]["overallEfficiency"] == 70.0
    assert data["summary"]["period"] == "7 days"
    assert len(data["recentProcesses"]) == 1


def test_ulb_dashboard(store: MockDocumentStore, reports: DashboardService) -> None:
    with pytest.raises(NotFound):
        reports.ulb_dashboard("ulb-1", reports.params())

    store.create("ulbs", {"id": "ulb-1", "name": "Pune", "code": "PMC"})
    store.create_many(
        "households",
        [
            {
                "ulbId": "ulb-1",
                "segregationStatus": {"isCompliant": True},
                "wasteGeneration": {"dailyWetWaste": 2, "dailyDryWaste": 1, "dailyHazardousWaste": 0.5},
            },
            {"ulbId": "ulb-2", "wasteGeneration": {"dailyWetWaste": 100}},
        ],
    )
    store.create("waste_facilities", {"ulbId": "ulb-1", "type": "wte", "capacity": 100, "currentLoad": 40})

    data = reports.ulb_dashboard("ulb-1", reports.params())

    assert data["ulb"]["name"] == "Pune"
    assert data["summary"]["totalHouseholds"] == 1
    assert data["summary"]["totalWasteGenerated"] == 3.5
    assert data["compliance"]["householdComplianceRate"] == 100.0
    assert data["facilities"]["utilizationRate"] == 40.0
    assert data["facilities"]["facilityTypes"] == {"wte": 1}


def test_generation_stats(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "households",
        [
            {
                "ulbId": "u1",
                "segregationStatus": {"isCompliant": True},
                "wasteGeneration": {"dailyWetWaste": 2, "dailyDryWaste": 1, "dailyHazardousWaste": 1},
            },
            {"ulbId": "u1", "wasteGeneration": {"dailyWetWaste": 4}},
            {"ulbId": "u2", "wasteGeneration": {"dailyWetWaste": 100}},
        ],
    )
    store.create(
        "bulk_generators",
        {
            "ulbId": "u1",
            "complianceStatus": {"isCompliant": True},
            "wasteGeneration": {"dailyWetWaste": 3, "dailyDryWaste": 4},
        },
    )

    data = reports.generation_stats(reports.params(ulb_id="u1"))

    assert data["summary"] == {
        "totalHouseholds": 2,
        "totalBulkGenerators": 1,
        "totalWetWaste": 9.0,
        "totalDryWaste": 5.0,
        "totalHazardousWaste": 1.0,
        "totalWaste": 15.0,
    }
    assert data["compliance"] == {"householdComplianceRate": 50.0, "bulkGeneratorComplianceRate": 100.0}
    assert data["wasteDistribution"] == {
        "wetWastePercentage": 60.0,
        "dryWastePercentage": 33.33,
        "hazardousWastePercentage": 6.67,
    }


def test_generation_stats_with_no_generators(reports: DashboardService) -> None:
    data = reports.generation_stats(reports.params())

    assert data["summary"]["totalWaste"] == 0.0
    assert data["wasteDistribution"]["wetWastePercentage"] == 0.0
    assert data["compliance"]["householdComplianceRate"] == 0.0


def test_area_cleanliness_rankings(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "area_cleanliness",
        [
            {"ulbId": "u1", "area": "W1", "averageScore": 8},
            {"ulbId": "u1", "area": "W2", "averageScore": 6},
            {"ulbId": "u1", "area": "W2", "averageScore": 9},
            {"ulbId": "u2", "area": "W3", "averageScore": 9},
        ],
    )

    everything = reports.area_cleanliness_rankings(reports.params())
    scoped = reports.area_cleanliness_rankings(reports.params(ulb_id="u1", limit=1))

    assert [entry["area"] for entry in everything["rankings"]] == ["W3", "W1", "W2"]
    assert everything["rankings"][2] == {"area": "W2", "averageScore": 7.5, "assessments": 2}
    assert scoped["summary"] == {"total": 1, "totalAreas": 2}
    assert scoped["rankings"] == [{"area": "W1", "averageScore": 8.0, "assessments": 1}]


def test_compliance_report(store: MockDocumentStore, reports: DashboardService) -> None:
    with pytest.raises(NotFound):
        reports.compliance_report("u1", reports.params())

    store.create("ulbs", {"id": "u1", "name": "Pune", "state": "MH"})
    store.create_many(
        "households",
        [{"ulbId": "u1", "segregationStatus": {"isCompliant": True}}, {"ulbId": "u1"}],
    )
    store.create_many(
        "segregation_violations",
        [
            {"ulbId": "u1", "violationType": "non_segregation", "reportedAt": _ago(1)},
            {"ulbId": "u1", "violationType": "non_segregation", "reportedAt": _ago(60)},
            {"ulbId": "u2", "violationType": "burning", "reportedAt": _ago(1)},
        ],
    )
    store.create_many(
        "penalties",
        [
            {"ulbId": "u1", "status": "paid", "imposedAt": _ago(1)},
            {"ulbId": "u1", "status": "pending", "imposedAt": _ago(2)},
        ],
    )

    data = reports.compliance_report("u1", reports.params())

    assert data["ulb"]["state"] == "MH"
    assert data["period"] == {"startDate": _ago(30), "endDate": NOW, "days": 30}
    assert data["compliance"] == {
        "householdComplianceRate": 50.0,
        "bulkGeneratorComplianceRate": 0.0,
        "overallComplianceRate": 25.0,
    }
    assert data["summary"]["totalViolations"] == 1
    assert data["violations"] == {
        "violationsByType": {"non_segregation": 1},
        "paidPenalties": 1,
        "penaltyCollectionRate": 50.0,
    }


def test_champion_monitoring_scopes_by_area(store: MockDocumentStore, reports: DashboardService) -> None:
    store.create_many(
        "monitoring_reports",
        [
            {"id": "r1", "area": "A", "status": "resolved", "issueType": "dumping", "reportedAt": _ago(3)},
            {"id": "r2", "area": "A", "status": "reported", "priority": "high", "reportedAt": _ago(1)},
            {"id": "r3", "area": "B", "status": "resolved", "reportedAt": _ago(1)},
        ],
    )

    data = reports.champion_monitoring(reports.params(area="A"))

    assert data["summary"]["totalReports"] == 2
    assert data["summary"]["resolutionRate"] == 50.0
    assert data["reportsByType"] == {"dumping": 1, "unknown": 1}
    assert [report["id"] for report in data["recentReports"]] == ["r2", "r1"]


def test_worker_performance(store: MockDocumentStore, reports: DashboardService) -> None:
    with pytest.raises(NotFound):
        reports.worker_performance("w1")

    attendance = [
        {"date": "2024-03-07", "status": "present"},
        {"date": "2024-03-08", "status": "absent"},
        {"date": "2024-03-09", "status": "present"},
        {"date": "2024-03-10", "status": "present"},
    ]
    store.create(
        "waste_workers",
        {
            "id": "w1",
            "personalInfo": {"name": "Asha"},
            "role": "collector",
            "performanceRating": 4.5,
            "attendance": attendance,
            "trainingPhases": {"phase1": {"completed": True}, "phase2": None},
            "safetyGear": {"gloves": True},
        },
    )

    data = reports.worker_performance("w1")

    assert data["summary"]["name"] == "Asha"
    assert data["summary"]["attendanceRate"] == 75.0
    assert data["summary"]["totalDaysWorked"] == 3
    assert data["trainingProgress"] == {"phase1": True, "phase2": False, "phase3": False}
    assert data["safetyGearStatus"] == {"gloves": True}
    assert data["lastAttendance"] == attendance[-1]
