"""Analytics reports built from the fetch, reduce and summarize pipeline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional

from models.records import Predicate, Query, Record, TimeWindow, lookup_field
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
    quality_score,
    rate,
    safe_rate,
    sorted_groups,
    top_n,
    total,
)
from services.fetcher import RecordFetcher
from services.filters import build_scope_predicates
from services.summary import Summary, group_entries
from services.window import (
    DEFAULT_DAYS,
    DEFAULT_LIMIT,
    Clock,
    day_key,
    parse_positive_int,
    record_timestamp,
    resolve_window,
    utcnow,
)

logger = logging.getLogger(__name__)

WASTE_TYPES = ("wet", "dry", "hazardous", "mixed")
QUALITIES = ("excellent", "good", "fair", "poor")
TRAINING_MODULES = ("basic", "advanced", "certification")


def one(record: Record) -> float:
    return 1.0


@dataclass(frozen=True, slots=True)
class ReportParams:
    """Validated caller parameters shared by every report."""

    window: TimeWindow
    limit: int
    ulb_id: Optional[str] = None
    area: Optional[str] = None
    type: Optional[str] = None

    def scope(self, **fields: Optional[str]) -> List[Predicate]:
        """Equality predicates for the named parameters, keyed by store field.

        ``params.scope(ulb_id="ulbId", area="address.ward")`` only considers
        ``ulb_id`` and ``area``; absent values contribute nothing.
        """
        values = {"ulb_id": self.ulb_id, "area": self.area, "type": self.type}
        return build_scope_predicates({name: values[name] for name in fields}, fields)

    def windowed(self, timestamp_field: str, **fields: Optional[str]) -> tuple[Predicate, ...]:
        return (*self.scope(**fields), self.window.since(timestamp_field))


def latest_timestamps(
    records: Iterable[Record], key_field: str, timestamp_field: str
) -> Dict[Hashable, datetime]:
    """Newest timestamp per key value."""
    latest: Dict[Hashable, datetime] = {}
    for record in records:
        key = lookup_field(record, key_field)
        moment = record_timestamp(record, timestamp_field)
        if key is None or moment is None:
            continue
        if key not in latest or moment > latest[key]:
            latest[key] = moment
    return latest


class AnalyticsService:
    """Time-windowed analytics over the waste management collections."""

    def __init__(
        self,
        fetcher: RecordFetcher,
        clock: Clock = utcnow,
        default_days: int = DEFAULT_DAYS,
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.fetcher = fetcher
        self.clock = clock
        self.default_days = default_days
        self.default_limit = default_limit

    def params(
        self,
        days: Any = None,
        limit: Any = None,
        ulb_id: Optional[str] = None,
        area: Optional[str] = None,
        type: Optional[str] = None,
    ) -> ReportParams:
        """Validate raw query parameters into a :class:`ReportParams`."""
        window = resolve_window(days, now=self.clock(), default=self.default_days)
        return ReportParams(
            window=window,
            limit=parse_positive_int("limit", limit, self.default_limit),
            ulb_id=ulb_id,
            area=area,
            type=type,
        )

    def _fetch(
        self, report: str, params: ReportParams, queries: Mapping[str, Query]
    ) -> Dict[str, List[Record]]:
        start_time = time.perf_counter()
        fetched = self.fetcher.fetch_all(queries)
        logger.info(
            "Fetched report inputs",
            extra={
                "report": report,
                "days": params.window.days,
                "ulb_id": params.ulb_id,
                "record_count": sum(len(records) for records in fetched.values()),
                "elapsed_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        return fetched

    def _daily_counts(
        self, records: Iterable[Record], timestamp_field: str, window: TimeWindow
    ) -> List[Dict[str, Any]]:
        days = window.day_keys()
        reducer = GroupingReducer(
            group_key=lambda record: day_key(record, timestamp_field),
            finalizers=(("count", count()),),
            seed_keys=days,
            closed=True,
        )
        groups = reducer.reduce(records)
        return [groups[day].as_entry("date") for day in days]

    def waste_generation_daily(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "waste_generation_daily",
            params,
            {
                "pickups": Query(
                    "pickup_records",
                    params.windowed("collectedAt", ulb_id="ulbId", area="area"),
                ),
            },
        )
        measures = [
            Measure(f"{waste_type}Waste", equals_field("wasteType", waste_type, number_field("quantity")))
            for waste_type in WASTE_TYPES
        ]
        measures.append(Measure("totalWaste", number_field("quantity")))
        day_keys = params.window.day_keys()
        reducer = GroupingReducer(
            group_key=lambda record: day_key(record, "collectedAt"),
            measures=measures,
            finalizers=[(measure.name, total(measure.name)) for measure in measures]
            + [("totalPickups", count())],
            seed_keys=day_keys,
            closed=True,
        )
        groups = reducer.reduce(fetched["pickups"])
        daily = [groups[day] for day in day_keys]

        total_waste = sum(group.metrics["totalWaste"] for group in daily)
        peak = top_n(daily, "totalWaste", 1)[0]
        distribution = {
            waste_type: sum(group.metrics[f"{waste_type}Waste"] for group in daily)
            for waste_type in WASTE_TYPES
        }
        return (
            Summary()
            .totals(
                totalWaste=total_waste,
                averageDailyWaste=total_waste / len(daily),
                peakWasteDay=peak.as_entry("date"),
                totalDays=len(daily),
                totalPickups=sum(group.metrics["totalPickups"] for group in daily),
            )
            .groups("dailyData", daily, key_name="date")
            .section("wasteDistribution", distribution)
            .as_dict()
        )

    def waste_treatment_efficiency(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "waste_treatment_efficiency",
            params,
            {
                "facilities": Query("waste_facilities", tuple(params.scope(ulb_id="ulbId", type="type"))),
                "logs": Query("facility_process_logs", (params.window.since("processedAt"),)),
            },
        )
        facilities = fetched["facilities"]
        logs = fetched["logs"]
        reducer = GroupingReducer(
            group_key=field_key("facilityId"),
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
            seed_keys=[facility["id"] for facility in facilities],
            closed=True,
        )
        groups = reducer.reduce(logs)
        last_processed = latest_timestamps(logs, "facilityId", "processedAt")

        entries = []
        for facility in facilities:
            metrics = groups[facility["id"]].metrics
            entries.append(
                {
                    "facilityId": facility["id"],
                    "facilityName": facility.get("name"),
                    "facilityType": facility.get("type"),
                    "capacity": facility.get("capacity"),
                    "currentLoad": facility.get("currentLoad"),
                    "utilizationRate": safe_rate(
                        number_field("currentLoad")(facility), number_field("capacity")(facility)
                    ),
                    **metrics,
                    "overallEfficiency": safe_rate(metrics["totalOutput"], metrics["totalInput"]),
                    "lastProcessed": last_processed.get(facility["id"]),
                }
            )

        total_input = sum(entry["totalInput"] for entry in entries)
        total_output = sum(entry["totalOutput"] for entry in entries)
        averages = [entry["averageEfficiency"] for entry in entries]
        return (
            Summary()
            .totals(
                totalFacilities=len(facilities),
                activeFacilities=sum(1 for facility in facilities if facility.get("status") == "active"),
                averageEfficiency=sum(averages) / len(averages) if averages else 0.0,
                overallEfficiency=safe_rate(total_output, total_input),
                totalInput=total_input,
                totalOutput=total_output,
            )
            .section("facilities", entries)
            .as_dict()
        )

    def training_completion(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "training_completion",
            params,
            {
                "citizens": Query("citizens", tuple(params.scope(ulb_id="ulbId", area="address.ward"))),
                "enrollments": Query("training_enrollments", (params.window.since("enrolledAt"),)),
            },
        )
        citizens = fetched["citizens"]
        enrollments = fetched["enrollments"]
        overall = GroupingReducer(
            measures=(
                Measure("citizens", one),
                Measure("trained", flag_field("trainingStatus.completed")),
            ),
            finalizers=(
                ("totalCitizens", count()),
                ("trainedCitizens", total("trained")),
                ("completionRate", rate("trained", "citizens")),
            ),
        ).reduce_one(citizens)

        completed_modules = [
            {"module": module}
            for citizen in citizens
            for module in lookup_field(citizen, "trainingStatus.completedModules") or []
            if module in TRAINING_MODULES
        ]
        module_counts = count_by(completed_modules, "module")
        module_stats = {module: module_counts.get(module, 0) for module in TRAINING_MODULES}

        trained = int(overall["trainedCitizens"])
        return (
            Summary()
            .totals(
                totalCitizens=int(overall["totalCitizens"]),
                trainedCitizens=trained,
                pendingTraining=int(overall["totalCitizens"]) - trained,
                completionRate=overall["completionRate"],
                enrollmentsInPeriod=len(enrollments),
            )
            .section("moduleStats", module_stats)
            .section(
                "trends",
                {
                    "dailyEnrollments": self._daily_counts(enrollments, "enrolledAt", params.window),
                    "completionTrend": {
                        "total": int(overall["totalCitizens"]),
                        "completed": trained,
                        "completionRate": overall["completionRate"],
                    },
                },
            )
            .recent("recentEnrollments", enrollments, "enrolledAt", params.limit)
            .as_dict()
        )

    def segregation_compliance(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "segregation_compliance",
            params,
            {
                "households": Query("households", tuple(params.scope(ulb_id="ulbId", area="address.ward"))),
                "bulk": Query("bulk_generators", tuple(params.scope(ulb_id="ulbId", area="address.ward"))),
                "violations": Query(
                    "segregation_violations", params.windowed("reportedAt", ulb_id="ulbId")
                ),
            },
        )
        households = GroupingReducer(
            measures=(
                Measure("households", one),
                Measure("compliant", flag_field("segregationStatus.isCompliant")),
            ),
            finalizers=(
                ("total", count()),
                ("compliant", total("compliant")),
                ("complianceRate", rate("compliant", "households")),
            ),
        ).reduce_one(fetched["households"])
        bulk = GroupingReducer(
            measures=(
                Measure("generators", one),
                Measure("compliant", flag_field("complianceStatus.isCompliant")),
            ),
            finalizers=(
                ("total", count()),
                ("compliant", total("compliant")),
                ("complianceRate", rate("compliant", "generators")),
            ),
        ).reduce_one(fetched["bulk"])

        def area_key(record: Record) -> Hashable:
            return (
                lookup_field(record, "address.ward")
                or lookup_field(record, "address.city")
                or "unknown"
            )

        by_area = GroupingReducer(
            group_key=area_key,
            measures=(
                Measure("households", one),
                Measure("compliant", flag_field("segregationStatus.isCompliant")),
            ),
            finalizers=(
                ("total", count()),
                ("compliant", total("compliant")),
                ("complianceRate", rate("compliant", "households")),
            ),
        ).reduce(fetched["households"])

        violations = fetched["violations"]
        by_type = GroupingReducer(
            group_key=field_key("violationType"), finalizers=(("count", count()),)
        ).reduce(violations)

        return (
            Summary()
            .totals(
                totalHouseholds=int(households["total"]),
                compliantHouseholds=int(households["compliant"]),
                householdComplianceRate=households["complianceRate"],
                totalBulkGenerators=int(bulk["total"]),
                compliantBulkGenerators=int(bulk["compliant"]),
                bulkGeneratorComplianceRate=bulk["complianceRate"],
                overallComplianceRate=(households["complianceRate"] + bulk["complianceRate"]) / 2,
                totalViolations=len(violations),
            )
            .groups("complianceByArea", sorted_groups(by_area), key_name="area")
            .section("violationsByType", count_by(violations, "violationType"))
            .groups("topViolations", top_n(by_type, "count", params.limit), key_name="violationType")
            .as_dict()
        )

    def collection_efficiency(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "collection_efficiency",
            params,
            {
                "vehicles": Query("collection_vehicles", tuple(params.scope(ulb_id="ulbId"))),
                "pickups": Query(
                    "pickup_records", params.windowed("collectedAt", ulb_id="ulbId", area="area")
                ),
                "rejections": Query(
                    "pickup_rejections", params.windowed("rejectedAt", ulb_id="ulbId", area="area")
                ),
                "complaints": Query(
                    "collection_complaints", params.windowed("reportedAt", ulb_id="ulbId", area="area")
                ),
            },
        )
        vehicles = fetched["vehicles"]
        pickups = fetched["pickups"]
        rejections = fetched["rejections"]
        complaints = fetched["complaints"]

        overall = GroupingReducer(
            measures=(
                Measure("quantity", number_field("quantity")),
                Measure("quality", quality_score),
            ),
            finalizers=(
                ("totalPickups", count()),
                ("totalWasteCollected", total("quantity")),
                ("averageQuality", average("quality")),
            ),
        ).reduce_one(pickups)
        resolved = sum(1 for complaint in complaints if complaint.get("status") == "resolved")
        total_pickups = int(overall["totalPickups"])

        vehicle_ids = [vehicle["id"] for vehicle in vehicles]
        pickups_by_vehicle = GroupingReducer(
            group_key=field_key("vehicleId"),
            measures=(Measure("quantity", number_field("quantity")),),
            finalizers=(("pickups", count()), ("wasteCollected", total("quantity"))),
            seed_keys=vehicle_ids,
            closed=True,
        ).reduce(pickups)
        rejections_by_vehicle = GroupingReducer(
            group_key=field_key("vehicleId"),
            finalizers=(("rejections", count()),),
            seed_keys=vehicle_ids,
            closed=True,
        ).reduce(rejections)

        performance = []
        for vehicle in vehicles:
            collected = pickups_by_vehicle[vehicle["id"]].metrics
            rejected = rejections_by_vehicle[vehicle["id"]].metrics["rejections"]
            performance.append(
                {
                    "vehicleId": vehicle["id"],
                    "vehicleNumber": vehicle.get("vehicleNumber"),
                    "pickups": collected["pickups"],
                    "rejections": rejected,
                    "wasteCollected": collected["wasteCollected"],
                    "efficiency": safe_rate(collected["pickups"], collected["pickups"] + rejected)
                    if collected["pickups"] > 0
                    else 0.0,
                }
            )

        return (
            Summary()
            .totals(
                totalPickups=total_pickups,
                totalRejections=len(rejections),
                totalComplaints=len(complaints),
                resolvedComplaints=resolved,
                totalWasteCollected=overall["totalWasteCollected"],
                averageQuality=overall["averageQuality"],
                rejectionRate=safe_rate(len(rejections), total_pickups + len(rejections))
                if total_pickups > 0
                else 0.0,
                complaintResolutionRate=safe_rate(resolved, len(complaints)),
            )
            .section("vehiclePerformance", performance)
            .section(
                "trends",
                {
                    "dailyPickups": self._daily_counts(pickups, "collectedAt", params.window),
                    "qualityTrend": {
                        quality: sum(1 for pickup in pickups if pickup.get("quality") == quality)
                        for quality in QUALITIES
                    },
                },
            )
            .as_dict()
        )

    def facility_utilization(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "facility_utilization",
            params,
            {
                "facilities": Query("waste_facilities", tuple(params.scope(ulb_id="ulbId", type="type"))),
                "intakes": Query("waste_intake", (params.window.since("receivedAt"),)),
            },
        )
        facilities = fetched["facilities"]
        intakes = fetched["intakes"]
        by_facility = GroupingReducer(
            group_key=field_key("facilityId"),
            measures=(Measure("quantity", number_field("quantity")),),
            finalizers=(("totalIntake", total("quantity")), ("intakeCount", count())),
            seed_keys=[facility["id"] for facility in facilities],
            closed=True,
        ).reduce(intakes)
        last_intake = latest_timestamps(intakes, "facilityId", "receivedAt")

        entries = []
        for facility in facilities:
            capacity = number_field("capacity")(facility)
            current_load = number_field("currentLoad")(facility)
            metrics = by_facility[facility["id"]].metrics
            entries.append(
                {
                    "facilityId": facility["id"],
                    "facilityName": facility.get("name"),
                    "facilityType": facility.get("type"),
                    "capacity": capacity,
                    "currentLoad": current_load,
                    "status": facility.get("status"),
                    # Not clamped: an overloaded facility reports more than 100.
                    "utilizationRate": safe_rate(current_load, capacity),
                    "totalIntake": metrics["totalIntake"],
                    "intakeCount": metrics["intakeCount"],
                    "intakeRate": safe_rate(metrics["totalIntake"], capacity),
                    "lastIntake": last_intake.get(facility["id"]),
                }
            )

        total_capacity = sum(entry["capacity"] for entry in entries)
        total_load = sum(entry["currentLoad"] for entry in entries)
        total_intake = sum(number_field("quantity")(intake) for intake in intakes)
        utilizations = [entry["utilizationRate"] for entry in entries]
        return (
            Summary()
            .totals(
                totalFacilities=len(facilities),
                activeFacilities=sum(1 for facility in facilities if facility.get("status") == "active"),
                averageUtilization=sum(utilizations) / len(utilizations) if utilizations else 0.0,
            )
            .section("facilities", entries)
            .section(
                "overall",
                {
                    "totalCapacity": total_capacity,
                    "totalCurrentLoad": total_load,
                    "totalIntake": total_intake,
                    "overallUtilization": safe_rate(total_load, total_capacity),
                },
            )
            .as_dict()
        )

    def penalty_revenue(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "penalty_revenue",
            params,
            {"penalties": Query("penalties", params.windowed("imposedAt", ulb_id="ulbId"))},
        )
        penalties = fetched["penalties"]
        measures = (
            Measure("amount", number_field("amount")),
            Measure("paid", equals_field("status", "paid")),
            Measure("pending", equals_field("status", "pending")),
            Measure("paidAmount", equals_field("status", "paid", number_field("amount"))),
            Measure("pendingAmount", equals_field("status", "pending", number_field("amount"))),
        )
        overall = GroupingReducer(
            measures=measures,
            finalizers=(
                ("totalPenalties", count()),
                ("paidPenalties", total("paid")),
                ("pendingPenalties", total("pending")),
                ("totalAmount", total("amount")),
                ("paidAmount", total("paidAmount")),
                ("pendingAmount", total("pendingAmount")),
                ("collectionRate", rate("paidAmount", "amount")),
            ),
        ).reduce_one(penalties)
        by_type = GroupingReducer(
            group_key=field_key("violationType"),
            measures=measures,
            finalizers=(
                ("count", count()),
                ("totalAmount", total("amount")),
                ("paidAmount", total("paidAmount")),
                ("collectionRate", rate("paidAmount", "amount")),
            ),
        ).reduce(penalties)

        return (
            Summary()
            .totals(
                totalPenalties=int(overall["totalPenalties"]),
                paidPenalties=int(overall["paidPenalties"]),
                pendingPenalties=int(overall["pendingPenalties"]),
                totalAmount=overall["totalAmount"],
                paidAmount=overall["paidAmount"],
                pendingAmount=overall["pendingAmount"],
                collectionRate=overall["collectionRate"],
            )
            .section("penaltiesByType", count_by(penalties, "violationType"))
            .groups("revenueByType", sorted_groups(by_type), key_name="violationType")
            .groups("topViolations", top_n(by_type, "count", params.limit), key_name="violationType")
            .as_dict()
        )

    def incentive_distribution(self, params: ReportParams) -> Dict[str, Any]:
        fetched = self._fetch(
            "incentive_distribution",
            params,
            {
                "rewards": Query("incentive_rewards", params.windowed("awardedAt", ulb_id="ulbId")),
                "redemptions": Query("point_redemptions", params.windowed("redeemedAt", ulb_id="ulbId")),
            },
        )
        rewards = fetched["rewards"]
        redemptions = fetched["redemptions"]
        awarded = sum(number_field("points")(reward) for reward in rewards)
        redeemed = sum(number_field("pointsUsed")(redemption) for redemption in redemptions)
        by_type = GroupingReducer(
            group_key=field_key("rewardType"),
            measures=(Measure("points", number_field("points")),),
            finalizers=(
                ("count", count()),
                ("totalPoints", total("points")),
                ("averagePoints", average("points")),
            ),
        ).reduce(rewards)

        return (
            Summary()
            .totals(
                totalIncentives=len(rewards),
                totalPointsAwarded=awarded,
                totalRedemptions=len(redemptions),
                totalPointsRedeemed=redeemed,
                redemptionRate=safe_rate(redeemed, awarded),
            )
            .section("incentivesByType", count_by(rewards, "rewardType"))
            .section("pointsByType", group_entries(sorted_groups(by_type), "rewardType"))
            .as_dict()
        )
