"""Write operations that create records and maintain derived counters."""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Sequence

from datastore.document_store import MockDocumentStore, build_default_store
from models.records import Record
from services.errors import InvalidParameter, LedgerConflict, NotFound
from services.window import Clock, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

REJECTION_SCORE_PENALTY = 20


class Ledger:
    """Record writes whose parent counters must stay consistent.

    Each operation reads its parents, creates the child record and updates
    the parents inside one store transaction, so concurrent writers never
    lose an increment.
    """

    def __init__(self, store: MockDocumentStore, clock: Clock = utcnow) -> None:
        self.store = store
        self.clock = clock

    def _require(self, entity_set: str, record_id: str) -> Record:
        record = self.store.get_by_id(entity_set, record_id)
        if record is None:
            raise NotFound(entity_set, record_id)
        return record

    def record_pickup(
        self,
        vehicle_id: str,
        household_id: str,
        waste_type: str,
        quantity: float,
        quality: str,
        photos: Optional[Sequence[str]] = None,
        notes: Optional[str] = None,
        collected_by: Optional[str] = None,
    ) -> Record:
        now = self.clock()
        with self.store.transaction():
            vehicle = self._require("collection_vehicles", vehicle_id)
            self._require("households", household_id)
            pickup = self.store.create(
                "pickup_records",
                {
                    "vehicleId": vehicle_id,
                    "householdId": household_id,
                    "ulbId": vehicle.get("ulbId"),
                    "area": vehicle.get("area"),
                    "wasteType": waste_type,
                    "quantity": quantity,
                    "quality": quality,
                    "photos": list(photos or []),
                    "notes": notes,
                    "collectedBy": collected_by,
                    "collectedAt": now,
                    "status": "completed",
                },
            )
            self.store.increment("collection_vehicles", vehicle_id, "totalCollections", 1)
            self.store.update("collection_vehicles", vehicle_id, {"lastCollection": now})
            self.store.update(
                "households",
                household_id,
                {
                    "lastCollection": {
                        "date": now,
                        "wasteType": waste_type,
                        "quantity": quantity,
                        "quality": quality,
                    }
                },
            )
        logger.info(
            "Pickup recorded",
            extra={"entity_set": "pickup_records", "record_id": pickup["id"]},
        )
        return pickup

    def record_rejection(
        self,
        vehicle_id: str,
        household_id: str,
        reason: str,
        photos: Optional[Sequence[str]] = None,
        notes: Optional[str] = None,
        rejected_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        now = self.clock()
        with self.store.transaction():
            vehicle = self._require("collection_vehicles", vehicle_id)
            household = self._require("households", household_id)
            rejection = self.store.create(
                "pickup_rejections",
                {
                    "vehicleId": vehicle_id,
                    "householdId": household_id,
                    "ulbId": vehicle.get("ulbId"),
                    "area": vehicle.get("area"),
                    "reason": reason,
                    "photos": list(photos or []),
                    "notes": notes,
                    "rejectedBy": rejected_by,
                    "rejectedAt": now,
                    "status": "rejected",
                },
            )
            status = dict(household.get("segregationStatus") or {})
            new_score = max(0, (status.get("complianceScore") or 0) - REJECTION_SCORE_PENALTY)
            status["complianceScore"] = new_score
            status["violations"] = [
                *(status.get("violations") or []),
                {
                    "type": "collection_rejection",
                    "reason": reason,
                    "date": now,
                    "rejectedBy": rejected_by,
                },
            ]
            self.store.update("households", household_id, {"segregationStatus": status})
        logger.info(
            "Pickup rejected",
            extra={"entity_set": "pickup_rejections", "record_id": rejection["id"]},
        )
        return {**rejection, "newComplianceScore": new_score}

    def record_intake(
        self,
        facility_id: str,
        waste_type: str,
        quantity: float,
        source: str,
        quality: str,
        photos: Optional[Sequence[str]] = None,
        notes: Optional[str] = None,
        received_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        now = self.clock()
        with self.store.transaction():
            facility = self._require("waste_facilities", facility_id)
            current_load = facility.get("currentLoad") or 0
            capacity = facility.get("capacity") or 0
            if current_load + quantity > capacity:
                raise LedgerConflict("Facility capacity exceeded")

            intake = self.store.create(
                "waste_intake",
                {
                    "facilityId": facility_id,
                    "wasteType": waste_type,
                    "quantity": quantity,
                    "source": source,
                    "quality": quality,
                    "photos": list(photos or []),
                    "notes": notes,
                    "receivedBy": received_by,
                    "receivedAt": now,
                    "status": "received",
                },
            )
            new_load = current_load + quantity
            utilization = round(new_load / capacity * 100) if capacity > 0 else 0
            self.store.update(
                "waste_facilities",
                facility_id,
                {
                    "currentLoad": new_load,
                    "totalIntake": (facility.get("totalIntake") or 0) + quantity,
                    "utilizationRate": utilization,
                    "lastIntake": now,
                },
            )
        logger.info(
            "Intake recorded",
            extra={"entity_set": "waste_intake", "record_id": intake["id"]},
        )
        return {**intake, "newLoad": new_load, "utilizationRate": utilization}

    def record_process_log(
        self,
        facility_id: str,
        process_type: str,
        input_quantity: float,
        output_quantity: float,
        efficiency: float,
        parameters: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None,
        processed_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        now = self.clock()
        with self.store.transaction():
            facility = self._require("waste_facilities", facility_id)
            log = self.store.create(
                "facility_process_logs",
                {
                    "facilityId": facility_id,
                    "processType": process_type,
                    "inputQuantity": input_quantity,
                    "outputQuantity": output_quantity,
                    "efficiency": efficiency,
                    "parameters": dict(parameters or {}),
                    "notes": notes,
                    "processedBy": processed_by,
                    "processedAt": now,
                    "status": "completed",
                },
            )
            total_output = facility.get("totalOutput") or 0
            new_efficiency = weighted_efficiency(
                facility.get("efficiency") or 0, efficiency, total_output
            )
            self.store.update(
                "waste_facilities",
                facility_id,
                {
                    "efficiency": new_efficiency,
                    "totalOutput": total_output + output_quantity,
                    "currentLoad": max(0, (facility.get("currentLoad") or 0) - input_quantity),
                    "lastProcessed": now,
                },
            )
        logger.info(
            "Process run logged",
            extra={"entity_set": "facility_process_logs", "record_id": log["id"]},
        )
        return {**log, "newFacilityEfficiency": new_efficiency}

    def award_points(
        self,
        citizen_id: str,
        points: int,
        reason: str,
        category: str,
        awarded_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        now = self.clock()
        with self.store.transaction():
            citizen = self._require("citizens", citizen_id)
            reward = self.store.create(
                "incentive_rewards",
                {
                    "citizenId": citizen_id,
                    "ulbId": citizen.get("ulbId"),
                    "rewardType": "citizen_reward",
                    "points": points,
                    "description": reason,
                    "category": category,
                    "awardedBy": awarded_by,
                    "awardedAt": now,
                    "status": "awarded",
                },
            )
            updated = self.store.increment("citizens", citizen_id, "rewardPoints", points)
            self.store.update("citizens", citizen_id, {"lastReward": now})
        logger.info(
            "Points awarded",
            extra={"entity_set": "incentive_rewards", "record_id": reward["id"]},
        )
        return {**reward, "totalPoints": updated["rewardPoints"]}

    def redeem_points(self, citizen_id: str, reward_id: str, quantity: int) -> Dict[str, Any]:
        now = self.clock()
        with self.store.transaction():
            citizen = self._require("citizens", citizen_id)
            reward = self._require("available_rewards", reward_id)
            required = (reward.get("pointsRequired") or 0) * quantity
            available = citizen.get("rewardPoints") or 0
            if available < required:
                raise LedgerConflict("Insufficient points for redemption")
            if (reward.get("stock") or 0) < quantity:
                raise LedgerConflict("Insufficient stock for this reward")

            redemption = self.store.create(
                "point_redemptions",
                {
                    "citizenId": citizen_id,
                    "ulbId": citizen.get("ulbId"),
                    "rewardId": reward_id,
                    "rewardName": reward.get("name"),
                    "quantity": quantity,
                    "pointsUsed": required,
                    "redeemedAt": now,
                    "status": "pending",
                },
            )
            self.store.increment("citizens", citizen_id, "rewardPoints", -required)
            self.store.increment("available_rewards", reward_id, "stock", -quantity)
        logger.info(
            "Points redeemed",
            extra={"entity_set": "point_redemptions", "record_id": redemption["id"]},
        )
        return {**redemption, "remainingPoints": available - required}

    def impose_penalty(
        self,
        citizen_id: str,
        violation_type: str,
        amount: float,
        description: str,
        evidence: Optional[Sequence[str]] = None,
        imposed_by: Optional[str] = None,
    ) -> Record:
        now = self.clock()
        with self.store.transaction():
            citizen = self._require("citizens", citizen_id)
            penalty = self.store.create(
                "penalties",
                {
                    "citizenId": citizen_id,
                    "ulbId": citizen.get("ulbId"),
                    "violationType": violation_type,
                    "amount": amount,
                    "description": description,
                    "evidence": list(evidence or []),
                    "imposedBy": imposed_by,
                    "imposedAt": now,
                    "status": "pending",
                    "paidAt": None,
                },
            )
            history = [*(citizen.get("penaltyHistory") or []), penalty["id"]]
            self.store.update("citizens", citizen_id, {"penaltyHistory": history})
        logger.info(
            "Penalty imposed",
            extra={"entity_set": "penalties", "record_id": penalty["id"]},
        )
        return penalty

    def settle_penalty(
        self,
        penalty_id: str,
        payment_method: str,
        amount: float,
        transaction_id: Optional[str] = None,
        paid_by: Optional[str] = None,
    ) -> Record:
        with self.store.transaction():
            penalty = self._require("penalties", penalty_id)
            if penalty.get("status") == "paid":
                raise LedgerConflict("Penalty already paid")
            if amount != penalty.get("amount"):
                raise LedgerConflict("Payment amount does not match penalty amount")
            updated = self.store.update(
                "penalties",
                penalty_id,
                {
                    "status": "paid",
                    "paidAt": self.clock(),
                    "paymentMethod": payment_method,
                    "transactionId": transaction_id,
                    "paidBy": paid_by,
                },
            )
        logger.info("Penalty settled", extra={"entity_set": "penalties", "record_id": penalty_id})
        return updated

    def import_records(
        self,
        entity_set: str,
        records: Iterable[Record],
        timestamp_fields: Sequence[str] = (),
    ) -> List[Record]:
        """Bulk insert records, parsing the named fields into UTC datetimes."""
        prepared: List[Record] = []
        for position, record in enumerate(records):
            if not isinstance(record, dict):
                raise InvalidParameter(f"records[{position}]", record, "expected an object")
            item = dict(record)
            for field_name in timestamp_fields:
                value = item.get(field_name)
                if value is None:
                    continue
                try:
                    item[field_name] = parse_timestamp(value)
                except ValueError as exc:
                    raise InvalidParameter(
                        f"records[{position}].{field_name}", value, "expected an ISO-8601 timestamp"
                    ) from exc
            prepared.append(item)

        try:
            created = self.store.create_many(entity_set, prepared)
        except ValueError as exc:
            raise LedgerConflict(str(exc)) from exc
        logger.info(
            "Records imported",
            extra={"entity_set": entity_set, "record_count": len(created)},
        )
        return created


def weighted_efficiency(current: float, latest: float, total_output: float) -> float:
    """Running facility efficiency, assuming 100 output units per process run."""
    runs = math.ceil(total_output / 100) if total_output > 0 else 1
    return round((current * (runs - 1) + latest) / runs, 2)


@lru_cache
def build_default_ledger() -> Ledger:
    return Ledger(store=build_default_store())
