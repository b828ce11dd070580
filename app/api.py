"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.schemas import (
    AwardRequest,
    Envelope,
    ErrorResponse,
    ImportRequest,
    ImportResponse,
    IntakeRequest,
    PaymentRequest,
    PenaltyRequest,
    PickupRequest,
    ProcessLogRequest,
    RedemptionRequest,
    RejectionRequest,
)
from services.dashboards import DashboardService, build_default_reports
from services.errors import LedgerConflict, NotFound
from services.ledger import Ledger, build_default_ledger
from services.reports import ReportParams
from settings import Settings, get_settings

bearer_scheme = HTTPBearer(auto_error=False)


def get_reports() -> DashboardService:
    return build_default_reports()


def get_ledger() -> Ledger:
    return build_default_ledger()


def require_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject requests without the configured bearer token; no-op when unset."""
    if settings.api_token is None:
        return
    if credentials is None or credentials.credentials != settings.api_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_report_params(
    days: Optional[str] = Query(default=None, description="Lookback window in days."),
    limit: Optional[str] = Query(default=None, description="Maximum entries in ranked lists."),
    ulb_filter: Optional[str] = Query(default=None, alias="ulbId"),
    area: Optional[str] = Query(default=None),
    type: Optional[str] = Query(default=None),
    facility_type: Optional[str] = Query(default=None, alias="facilityType"),
    reports: DashboardService = Depends(get_reports),
) -> ReportParams:
    return reports.params(
        days=days,
        limit=limit,
        ulb_id=ulb_filter,
        area=area,
        type=type or facility_type,
    )


router = APIRouter()
protected = APIRouter(
    dependencies=[Depends(require_token)],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)


def _not_found(exc: NotFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _conflict(exc: LedgerConflict) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}


@protected.get(
    "/analytics/waste-generation/daily",
    response_model=Envelope,
    summary="Daily waste generation series.",
)
def waste_generation_daily(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.waste_generation_daily(params))


@protected.get(
    "/analytics/waste-treatment/efficiency",
    response_model=Envelope,
    summary="Process efficiency per treatment facility.",
)
def waste_treatment_efficiency(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.waste_treatment_efficiency(params))


@protected.get(
    "/analytics/citizen-training/completion",
    response_model=Envelope,
    summary="Citizen training completion.",
)
def training_completion(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.training_completion(params))


@protected.get(
    "/analytics/segregation/compliance",
    response_model=Envelope,
    summary="Household and bulk generator segregation compliance.",
)
def segregation_compliance(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.segregation_compliance(params))


@protected.get(
    "/analytics/collection/efficiency",
    response_model=Envelope,
    summary="Pickup, rejection and complaint efficiency.",
)
def collection_efficiency(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.collection_efficiency(params))


@protected.get(
    "/analytics/facilities/utilization",
    response_model=Envelope,
    summary="Facility load and intake utilization.",
)
def facility_utilization(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.facility_utilization(params))


@protected.get(
    "/analytics/penalties/revenue",
    response_model=Envelope,
    summary="Penalty revenue and collection rate.",
)
def penalty_revenue(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.penalty_revenue(params))


@protected.get(
    "/analytics/incentives/distribution",
    response_model=Envelope,
    summary="Incentive points awarded and redeemed.",
)
def incentive_distribution(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.incentive_distribution(params))


@protected.get("/incentives/stats", response_model=Envelope, summary="Incentive activity.")
def incentive_stats(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.incentive_stats(params))


@protected.get(
    "/community/participation/stats",
    response_model=Envelope,
    summary="Cleaning event participation.",
)
def participation_stats(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.participation_stats(params))


@protected.get("/monitoring/dashboard", response_model=Envelope, summary="Monitoring reports.")
def monitoring_dashboard(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.monitoring_dashboard(params))


@protected.get(
    "/facilities/{facility_id}/efficiency",
    response_model=Envelope,
    summary="Process efficiency for one facility.",
)
def facility_efficiency(
    facility_id: str,
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    try:
        data = reports.facility_efficiency(facility_id, params)
    except NotFound as exc:
        raise _not_found(exc) from exc
    return Envelope(data=data)


@protected.get("/ulb/{ulb_id}/dashboard", response_model=Envelope, summary="ULB performance.")
def ulb_dashboard(
    ulb_id: str,
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    try:
        data = reports.ulb_dashboard(ulb_id, params)
    except NotFound as exc:
        raise _not_found(exc) from exc
    return Envelope(data=data)


@protected.get(
    "/ulb/compliance/report/{ulb_id}",
    response_model=Envelope,
    summary="Compliance, violations and penalty collection for one ULB.",
)
def compliance_report(
    ulb_id: str,
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    try:
        data = reports.compliance_report(ulb_id, params)
    except NotFound as exc:
        raise _not_found(exc) from exc
    return Envelope(data=data)


@protected.get(
    "/waste/generation/stats",
    response_model=Envelope,
    summary="Declared waste generation and compliance.",
)
def generation_stats(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.generation_stats(params))


@protected.get(
    "/monitoring/area-cleanliness/rankings",
    response_model=Envelope,
    summary="Areas ranked by average cleanliness score.",
)
def area_cleanliness_rankings(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.area_cleanliness_rankings(params))


@protected.get(
    "/green-champions/monitoring/dashboard",
    response_model=Envelope,
    summary="Monitoring reports for green champions.",
)
def champion_monitoring(
    params: ReportParams = Depends(get_report_params),
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    return Envelope(data=reports.champion_monitoring(params))


@protected.get(
    "/workers/performance/{worker_id}",
    response_model=Envelope,
    summary="Attendance and training for one waste worker.",
)
def worker_performance(
    worker_id: str,
    reports: DashboardService = Depends(get_reports),
) -> Envelope:
    try:
        data = reports.worker_performance(worker_id)
    except NotFound as exc:
        raise _not_found(exc) from exc
    return Envelope(data=data)


@protected.post(
    "/records/{entity_set}",
    status_code=status.HTTP_201_CREATED,
    response_model=ImportResponse,
    summary="Bulk import documents into an entity set.",
)
def import_records(
    entity_set: str,
    payload: ImportRequest,
    ledger: Ledger = Depends(get_ledger),
) -> ImportResponse:
    try:
        created = ledger.import_records(entity_set, payload.records, payload.timestamp_fields)
    except LedgerConflict as exc:
        raise _conflict(exc) from exc
    return ImportResponse(
        entity_set=entity_set,
        imported=len(created),
        ids=[record["id"] for record in created],
    )


def _write(message: str, action: Any) -> Envelope:
    try:
        data: Dict[str, Any] = action()
    except NotFound as exc:
        raise _not_found(exc) from exc
    except LedgerConflict as exc:
        raise _conflict(exc) from exc
    return Envelope(message=message, data=data)


@protected.post(
    "/collection/pickups",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope,
    summary="Log a completed pickup.",
)
def record_pickup(payload: PickupRequest, ledger: Ledger = Depends(get_ledger)) -> Envelope:
    return _write(
        "Pickup completed successfully",
        lambda: ledger.record_pickup(
            vehicle_id=payload.vehicle_id,
            household_id=payload.household_id,
            waste_type=payload.waste_type.value,
            quantity=payload.quantity,
            quality=payload.quality.value,
            photos=payload.photos,
            notes=payload.notes,
        ),
    )


@protected.post(
    "/collection/rejections",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope,
    summary="Reject non-segregated waste.",
)
def record_rejection(payload: RejectionRequest, ledger: Ledger = Depends(get_ledger)) -> Envelope:
    return _write(
        "Waste collection rejected",
        lambda: ledger.record_rejection(
            vehicle_id=payload.vehicle_id,
            household_id=payload.household_id,
            reason=payload.reason,
            photos=payload.photos,
            notes=payload.notes,
        ),
    )


@protected.post(
    "/facilities/intake",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope,
    summary="Log waste received at a facility.",
)
def record_intake(payload: IntakeRequest, ledger: Ledger = Depends(get_ledger)) -> Envelope:
    return _write(
        "Waste intake logged successfully",
        lambda: ledger.record_intake(
            facility_id=payload.facility_id,
            waste_type=payload.waste_type.value,
            quantity=payload.quantity,
            source=payload.source,
            quality=payload.quality.value,
            photos=payload.photos,
            notes=payload.notes,
        ),
    )


@protected.post(
    "/facilities/process-logs",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope,
    summary="Log a facility process run.",
)
def record_process_log(payload: ProcessLogRequest, ledger: Ledger = Depends(get_ledger)) -> Envelope:
    return _write(
        "Process logged successfully",
        lambda: ledger.record_process_log(
            facility_id=payload.facility_id,
            process_type=payload.process_type.value,
            input_quantity=payload.input_quantity,
            output_quantity=payload.output_quantity,
            efficiency=payload.efficiency,
            parameters=payload.parameters,
            notes=payload.notes,
        ),
    )


@protected.post(
    "/incentives/awards",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope,
    summary="Award points to a citizen.",
)
def award_points(payload: AwardRequest, ledger: Ledger = Depends(get_ledger)) -> Envelope:
    return _write(
        "Points awarded successfully",
        lambda: ledger.award_points(
            citizen_id=payload.citizen_id,
            points=payload.points,
            reason=payload.reason,
            category=payload.category.value,
        ),
    )


@protected.post(
    "/incentives/redemptions",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope,
    summary="Redeem citizen points for a reward.",
)
def redeem_points(payload: RedemptionRequest, ledger: Ledger = Depends(get_ledger)) -> Envelope:
    return _write(
        "Redemption successful",
        lambda: ledger.redeem_points(
            citizen_id=payload.citizen_id,
            reward_id=payload.reward_id,
            quantity=payload.quantity,
        ),
    )


@protected.post(
    "/incentives/penalties",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope,
    summary="Impose a penalty on a citizen.",
)
def impose_penalty(payload: PenaltyRequest, ledger: Ledger = Depends(get_ledger)) -> Envelope:
    return _write(
        "Penalty imposed successfully",
        lambda: ledger.impose_penalty(
            citizen_id=payload.citizen_id,
            violation_type=payload.violation_type.value,
            amount=payload.amount,
            description=payload.description,
            evidence=payload.evidence,
        ),
    )


@protected.put(
    "/incentives/penalties/{penalty_id}/payment",
    response_model=Envelope,
    summary="Settle a pending penalty.",
)
def settle_penalty(
    penalty_id: str,
    payload: PaymentRequest,
    ledger: Ledger = Depends(get_ledger),
) -> Envelope:
    return _write(
        "Penalty payment processed successfully",
        lambda: ledger.settle_penalty(
            penalty_id=penalty_id,
            payment_method=payload.payment_method.value,
            amount=payload.amount,
            transaction_id=payload.transaction_id,
        ),
    )
