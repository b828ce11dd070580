"""Operational dashboards layered on the analytics pipeline."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional

from models.records import Predicate, Query, Record, lookup_field
from services.aggregator import (
    GroupingReducer,
    Measure,
    average,
    count,
    count_by,
    equals_field,
    field_key,
    flag_field,
    number_field,
    rate,
    safe_rate,
    top_n,
    total,
)
from services.errors import FetchFailure, NotFound
from services.fetcher import build_default_fetcher
from services.reports import AnalyticsService, ReportParams, one
from services.summary import Summary, recent_records
from settings import get_settings


def report_statuses(reports: Iterable[Record]) -> Dict[str, float]:
    """Status counts and resolution rate over monitoring reports."""
    return GroupingReducer(
        measures=(
            Measure("reports", one),
            Measure("resolved", equals_field("status", "resolved")),
            Measure("pending", equals_field("status", "reported")),
            Measure("inProgress", equals_field("status", "in_progress")),
        ),
        finalizers=(
            ("totalReports", count()),
            ("resolvedReports", total("resolved")),
            ("pendingReports", total("pending")),
            ("inProgressReports", total("inProgress")),
            ("resolutionRate", rate("resolved", "reports")),
        ),
    ).reduce_one(reports)


def compliance_rate(records: Iterable[Record], flag_path: str) -> Dict[str, float]:
    return GroupingReducer(
        measures=(Measure("records", one), Measure("compliant", flag_field(flag_path))),
        finalizers=(
            ("total", count()),
            ("compliant", total("compliant")),
            ("complianceRate", rate("compliant", "records")),
        ),
    ).reduce_one(records)


def daily_generation(record: Record, kind: str) -> float:
    return number_field(f"wasteGeneration.daily{kind}Waste")(record)


class DashboardService(AnalyticsService):
    """Adds the incentive, community, monitoring, facility, ULB and workforce views."""

    def _require(self, entity_set: str, record_id: str) -> Record:
        try:
            record = self.fetcher.store.get_by_id(entity_set, record_id)
        except Exception as exc:
            raise FetchFailure(entity_set, exc) from exc
        if record is None:
            raise NotFound(entity_set, record_id)
        return record

    def incentive_stats(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "incentive_stats",
            params,
            {
                "rewards": Query("incentive_rewards", params.windowed("awardedAt", ulb_id="ulbId")),
                "penalties": Query("penalties", params.windowed("imposedAt", ulb_id="ulbId")),
                "redemptions": Query("point_redemptions", params.windowed("redeemedAt", ulb_id="ulbId")),
            },
        )
        rewards = fetched["rewards"]
        penalties = fetched["penalties"]
        redemptions = fetched["redemptions"]
        penalty_totals = GroupingReducer(
            measures=(
                Measure("amount", number_field("amount")),
                Measure("paidAmount", equals_field("status", "paid", number_field("amount"))),
                Measure("pendingAmount", equals_field("status", "pending", number_field("amount"))),
            ),
            finalizers=(
                ("totalPenaltyAmount", total("amount")),
                ("paidPenaltyAmount", total("paidAmount")),
                ("pendingPenaltyAmount", total("pendingAmount")),
            ),
        ).reduce_one(penalties)

        return (
            Summary()
            .totals(
                totalRewards=len(rewards),
                totalPenalties=len(penalties),
                totalRedemptions=len(redemptions),
                totalPointsAwarded=sum(number_field("points")(reward) for reward in rewards),
                totalPointsRedeemed=sum(
                    number_field("pointsUsed")(redemption) for redemption in redemptions
                ),
                **penalty_totals,
            )
            .section("rewardsByType", count_by(rewards, "rewardType"))
            .section("penaltiesByType", count_by(penalties, "violationType"))
            .section(
                "recentActivity",
                {
                    "rewards": recent_records(rewards, "awardedAt", params.limit),
                    "penalties": recent_records(penalties, "imposedAt", params.limit),
                    "redemptions": recent_records(redemptions, "redeemedAt", params.limit),
                },
                raw=True,
            )
            .as_dict()
        )

    def participation_stats(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "participation_stats",
            params,
            {
                "events": Query("cleaning_events", params.windowed("date", ulb_id="ulbId", area="area")),
                "attendance": Query("event_attendance", (params.window.since("markedAt"),)),
                "government": Query(
                    "government_participation", params.windowed("loggedAt", ulb_id="ulbId")
                ),
            },
        )
        events = fetched["events"]
        attendance = fetched["attendance"]
        government = fetched["government"]

        present = [record for record in attendance if record.get("attendanceType") == "present"]
        by_participant = GroupingReducer(
            group_key=field_key("participantId"),
            finalizers=(("eventCount", count()),),
        ).reduce(present)
        hours = GroupingReducer(
            measures=(Measure("hours", number_field("participationHours")),),
            finalizers=(("totalHours", total("hours")), ("averageHours", average("hours"))),
        ).reduce_one(government)

        return (
            Summary()
            .totals(
                totalEvents=len(events),
                totalParticipants=sum(number_field("totalParticipants")(event) for event in events),
                totalAttendance=len(attendance),
                presentAttendance=len(present),
                attendanceRate=safe_rate(len(present), len(attendance)),
                governmentParticipations=len(government),
                totalGovernmentHours=hours["totalHours"],
                averageGovernmentHours=hours["averageHours"],
            )
            .section("eventsByArea", count_by(events, "area"))
            .groups("topParticipants", top_n(by_participant, "eventCount", params.limit), "participantId")
            .recent("recentEvents", events, "date", params.limit)
            .as_dict()
        )

    def monitoring_dashboard(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "monitoring_dashboard",
            params,
            {
                "reports": Query(
                    "monitoring_reports", params.windowed("reportedAt", ulb_id="ulbId", area="area")
                ),
                "movements": Query(
                    "waste_movement_reports", params.windowed("reportedAt", ulb_id="ulbId", area="area")
                ),
                "assessments": Query(
                    "cleanliness_assessments", params.windowed("assessedAt", ulb_id="ulbId", area="area")
                ),
            },
        )
        reports = fetched["reports"]
        movements = fetched["movements"]
        assessments = fetched["assessments"]
        statuses = report_statuses(reports)
        cleanliness = GroupingReducer(
            measures=(Measure("score", number_field("score")),),
            finalizers=(("averageScore", average("score")), ("totalAssessments", count())),
        ).reduce_one(assessments)

        return (
            Summary()
            .totals(
                totalReports=int(statuses["totalReports"]),
                resolvedReports=int(statuses["resolvedReports"]),
                pendingReports=int(statuses["pendingReports"]),
                inProgressReports=int(statuses["inProgressReports"]),
                resolutionRate=statuses["resolutionRate"],
                wasteMovementReports=len(movements),
                cleanlinessAssessments=len(assessments),
            )
            .section("reportsByType", count_by(reports, "issueType"))
            .section("reportsByPriority", count_by(reports, "priority"))
            .section("cleanliness", cleanliness)
            .section(
                "recentActivity",
                {
                    "reports": recent_records(reports, "reportedAt", params.limit),
                    "wasteMovement": recent_records(movements, "reportedAt", params.limit),
                    "cleanliness": recent_records(assessments, "assessedAt", params.limit),
                },
                raw=True,
            )
            .as_dict()
        )

    def facility_efficiency(self, facility_id: str, params: ReportParams) -> Dict[str, Any]:
        facility = self._require("waste_facilities", facility_id)
        fetched = self._fetch(
            "facility_efficiency",
            params,
            {
                "logs": Query(
                    "facility_process_logs",
                    (Predicate("facilityId", "==", facility_id), params.window.since("processedAt")),
                ),
            },
        )
        logs = fetched["logs"]
        metrics = GroupingReducer(
            measures=(
                Measure("input", number_field("inputQuantity")),
                Measure("output", number_field("outputQuantity")),
                Measure("efficiency", number_field("efficiency")),
            ),
            finalizers=(
                ("totalInput", total("input")),
                ("totalOutput", total("output")),
                ("averageEfficiency", average("efficiency")),
                ("processCount", count()),
            ),
        ).reduce_one(logs)

        return (
            Summary()
            .totals(
                facilityId=facility_id,
                facilityName=facility.get("name"),
                facilityType=facility.get("type"),
                currentEfficiency=number_field("efficiency")(facility),
                averageEfficiency=metrics["averageEfficiency"],
                totalInput=metrics["totalInput"],
                totalOutput=metrics["totalOutput"],
                overallEfficiency=safe_rate(metrics["totalOutput"], metrics["totalInput"]),
                processCount=int(metrics["processCount"]),
                period=f"{params.window.days} days",
            )
            .recent("recentProcesses", logs, "processedAt", params.limit)
            .as_dict()
        )

    def ulb_dashboard(self, ulb_id: str, params: ReportParams) -> Dict[str, Any]:
        ulb = self._require("ulbs", ulb_id)
        in_ulb = (Predicate("ulbId", "==", ulb_id),)
        fetched = self._fetch(
            "ulb_dashboard",
            params,
            {
                "citizens": Query("citizens", in_ulb),
                "households": Query("households", in_ulb),
                "bulk": Query("bulk_generators", in_ulb),
                "facilities": Query("waste_facilities", in_ulb),
                "vehicles": Query("collection_vehicles", in_ulb),
                "reports": Query("monitoring_reports", (*in_ulb, params.window.since("reportedAt"))),
            },
        )
        citizens = fetched["citizens"]
        households = fetched["households"]
        bulk = fetched["bulk"]
        facilities = fetched["facilities"]

        def generation(record: Record) -> float:
            return sum(daily_generation(record, kind) for kind in ("Wet", "Dry", "Hazardous"))

        compliance = compliance_rate(households, "segregationStatus.isCompliant")
        bulk_compliance = compliance_rate(bulk, "complianceStatus.isCompliant")
        load = GroupingReducer(
            measures=(
                Measure("capacity", number_field("capacity")),
                Measure("currentLoad", number_field("currentLoad")),
            ),
            finalizers=(
                ("totalCapacity", total("capacity")),
                ("totalCurrentLoad", total("currentLoad")),
                ("utilizationRate", rate("currentLoad", "capacity")),
            ),
        ).reduce_one(facilities)
        trained = sum(1 for citizen in citizens if lookup_field(citizen, "trainingStatus.completed"))

        overview = {
            "totalCitizens": len(citizens),
            "totalHouseholds": len(households),
            "totalBulkGenerators": len(bulk),
            "totalFacilities": len(facilities),
            "totalVehicles": len(fetched["vehicles"]),
            "totalWasteGenerated": sum(generation(household) for household in households)
            + sum(generation(generator) for generator in bulk),
        }
        return (
            Summary(overview)
            .section(
                "ulb",
                {key: ulb.get(key) for key in ("id", "name", "code", "state", "district")},
            )
            .section(
                "compliance",
                {
                    "householdComplianceRate": compliance["complianceRate"],
                    "bulkGeneratorComplianceRate": bulk_compliance["complianceRate"],
                },
            )
            .section("facilities", {**load, "facilityTypes": count_by(facilities, "type")})
            .section(
                "monitoring",
                {
                    "totalReports": len(fetched["reports"]),
                    "reportsByType": count_by(fetched["reports"], "issueType"),
                },
            )
            .section(
                "training",
                {
                    "trainedCitizens": trained,
                    "completionRate": safe_rate(trained, len(citizens)),
                },
            )
            .as_dict()
        )

    def generation_stats(self, params: ReportParams) -> Dict[str, Any]:
        """Declared daily generation and compliance across households and bulk generators."""
        scope = tuple(params.scope(ulb_id="ulbId", area="address.ward"))
        fetched = self._fetch(
            "generation_stats",
            params,
            {"households": Query("households", scope), "bulk": Query("bulk_generators", scope)},
        )
        generators = fetched["households"] + fetched["bulk"]
        totals = {
            kind: sum(daily_generation(record, kind) for record in generators)
            for kind in ("Wet", "Dry", "Hazardous")
        }
        overall = sum(totals.values())
        households = compliance_rate(fetched["households"], "segregationStatus.isCompliant")
        bulk = compliance_rate(fetched["bulk"], "complianceStatus.isCompliant")

        return (
            Summary()
            .totals(
                totalHouseholds=len(fetched["households"]),
                totalBulkGenerators=len(fetched["bulk"]),
                totalWetWaste=totals["Wet"],
                totalDryWaste=totals["Dry"],
                totalHazardousWaste=totals["Hazardous"],
                totalWaste=overall,
            )
            .section(
                "compliance",
                {
                    "householdComplianceRate": households["complianceRate"],
                    "bulkGeneratorComplianceRate": bulk["complianceRate"],
                },
            )
            .section(
                "wasteDistribution",
                {
                    "wetWastePercentage": safe_rate(totals["Wet"], overall),
                    "dryWastePercentage": safe_rate(totals["Dry"], overall),
                    "hazardousWastePercentage": safe_rate(totals["Hazardous"], overall),
                },
            )
            .as_dict()
        )

    def area_cleanliness_rankings(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "area_cleanliness_rankings",
            params,
            {"areas": Query("area_cleanliness", tuple(params.scope(ulb_id="ulbId")))},
        )
        by_area = GroupingReducer(
            group_key=field_key("area"),
            measures=(Measure("score", number_field("averageScore")),),
            finalizers=(("averageScore", average("score")), ("assessments", count())),
        ).reduce(fetched["areas"])
        rankings = top_n(by_area, "averageScore", params.limit)

        return (
            Summary()
            .totals(total=len(rankings), totalAreas=len(by_area))
            .groups("rankings", rankings, key_name="area")
            .as_dict()
        )

    def compliance_report(self, ulb_id: str, params: ReportParams) -> Dict[str, Any]:
        ulb = self._require("ulbs", ulb_id)
        in_ulb = (Predicate("ulbId", "==", ulb_id),)
        fetched = self._fetch(
            "compliance_report",
            params,
            {
                "households": Query("households", in_ulb),
                "bulk": Query("bulk_generators", in_ulb),
                "violations": Query(
                    "segregation_violations", (*in_ulb, params.window.since("reportedAt"))
                ),
                "penalties": Query("penalties", (*in_ulb, params.window.since("imposedAt"))),
            },
        )
        households = compliance_rate(fetched["households"], "segregationStatus.isCompliant")
        bulk = compliance_rate(fetched["bulk"], "complianceStatus.isCompliant")
        penalties = fetched["penalties"]
        paid = sum(1 for penalty in penalties if penalty.get("status") == "paid")

        return (
            Summary()
            .totals(
                totalHouseholds=int(households["total"]),
                totalBulkGenerators=int(bulk["total"]),
                totalViolations=len(fetched["violations"]),
                totalPenalties=len(penalties),
            )
            .section(
                "ulb",
                {key: ulb.get(key) for key in ("id", "name", "code", "state", "district")},
            )
            .section(
                "period",
                {
                    "startDate": params.window.start,
                    "endDate": params.window.end,
                    "days": params.window.days,
                },
            )
            .section(
                "compliance",
                {
                    "householdComplianceRate": households["complianceRate"],
                    "bulkGeneratorComplianceRate": bulk["complianceRate"],
                    "overallComplianceRate": (
                        households["complianceRate"] + bulk["complianceRate"]
                    )
                    / 2,
                },
            )
            .section(
                "violations",
                {
                    "violationsByType": count_by(fetched["violations"], "violationType"),
                    "paidPenalties": paid,
                    "penaltyCollectionRate": safe_rate(paid, len(penalties)),
                },
            )
            .as_dict()
        )

    def champion_monitoring(self, params: ReportParams) -> Dict[str, Any]:
        """Monitoring reports filed in an area, as seen by its green champions."""
        fetched = self._fetch(
            "champion_monitoring",
            params,
            {
                "reports": Query(
                    "monitoring_reports", params.windowed("reportedAt", ulb_id="ulbId", area="area")
                ),
            },
        )
        reports = fetched["reports"]
        statuses = report_statuses(reports)

        return (
            Summary()
            .totals(
                totalReports=int(statuses["totalReports"]),
                resolvedReports=int(statuses["resolvedReports"]),
                pendingReports=int(statuses["pendingReports"]),
                inProgressReports=int(statuses["inProgressReports"]),
                resolutionRate=statuses["resolutionRate"],
            )
            .section("reportsByType", count_by(reports, "issueType"))
            .section("reportsByPriority", count_by(reports, "priority"))
            .recent("recentReports", reports, "reportedAt", params.limit)
            .as_dict()
        )

    def worker_performance(self, worker_id: str) -> Dict[str, Any]:
        worker = self._require("waste_workers", worker_id)
        attendance: List[Record] = [
            entry for entry in worker.get("attendance") or [] if isinstance(entry, dict)
        ]
        days = GroupingReducer(
            measures=(Measure("days", one), Measure("present", equals_field("status", "present"))),
            finalizers=(
                ("totalDays", count()),
                ("presentDays", total("present")),
                ("attendanceRate", rate("present", "days")),
            ),
        ).reduce_one(attendance)

        return (
            Summary()
            .totals(
                workerId=worker_id,
                name=lookup_field(worker, "personalInfo.name"),
                area=worker.get("area"),
                role=worker.get("role"),
                attendanceRate=days["attendanceRate"],
                performanceRating=worker.get("performanceRating"),
                totalDaysWorked=int(days["presentDays"]),
            )
            .section(
                "trainingProgress",
                {
                    phase: bool(lookup_field(worker, f"trainingPhases.{phase}"))
                    for phase in ("phase1", "phase2", "phase3")
                },
            )
            .section("safetyGearStatus", worker.get("safetyGear"), raw=True)
            .section("lastAttendance", attendance[-1] if attendance else None, raw=True)
            .as_dict()
        )


@lru_cache
def build_default_reports(workers: Optional[int] = None) -> DashboardService:
    """Factory that wires the report catalog with the default fetcher."""
    settings = get_settings()
    return DashboardService(
        fetcher=build_default_fetcher(workers),
        default_days=settings.default_days,
        default_limit=settings.default_limit,
    )
