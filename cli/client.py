from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import httpx
import typer

from cli.config import CLIConfig

REPORT_PATHS: Dict[str, str] = {
    "waste-generation": "/analytics/waste-generation/daily",
    "treatment-efficiency": "/analytics/waste-treatment/efficiency",
    "training-completion": "/analytics/citizen-training/completion",
    "segregation-compliance": "/analytics/segregation/compliance",
    "collection-efficiency": "/analytics/collection/efficiency",
    "facility-utilization": "/analytics/facilities/utilization",
    "penalty-revenue": "/analytics/penalties/revenue",
    "incentive-distribution": "/analytics/incentives/distribution",
    "incentive-stats": "/incentives/stats",
    "participation": "/community/participation/stats",
    "monitoring": "/monitoring/dashboard",
    "facility-efficiency": "/facilities/{id}/efficiency",
    "ulb-dashboard": "/ulb/{id}/dashboard",
    "compliance-report": "/ulb/compliance/report/{id}",
    "generation-stats": "/waste/generation/stats",
    "cleanliness-rankings": "/monitoring/area-cleanliness/rankings",
    "champion-monitoring": "/green-champions/monitoring/dashboard",
    "worker-performance": "/workers/performance/{id}",
}


def report_path(name: str, record_id: Optional[str] = None) -> str:
    template = REPORT_PATHS.get(name)
    if template is None:
        choices = ", ".join(sorted(REPORT_PATHS))
        raise typer.BadParameter(f"Unknown report {name!r}. Choose one of: {choices}.")
    if "{id}" in template:
        if not record_id:
            raise typer.BadParameter(f"Report {name!r} requires --id.")
        return template.format(id=record_id)
    return template


class ApiClient:
    """Minimal HTTP client for the waste metrics service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        headers = {"Authorization": f"Bearer {config.token}"} if config.token else None
        self._client = httpx.Client(
            base_url=config.base_url, timeout=config.timeout, headers=headers
        )

    def close(self) -> None:
        self._client.close()

    def get_report(
        self,
        name: str,
        params: Dict[str, Any],
        record_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        path = report_path(name, record_id)
        query = {key: value for key, value in params.items() if value is not None}
        try:
            response = self._client.get(path, params=query)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        payload = response.json()
        data = payload.get("data")
        if not isinstance(data, dict):
            raise typer.BadParameter("Unexpected response payload when fetching report.")
        return data

    def import_records(
        self,
        path: Path,
        entity_set: str,
        timestamp_fields: Sequence[str] = (),
    ) -> Dict[str, Any]:
        if not path.exists():
            raise typer.BadParameter(f"File {path} does not exist.")
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")

        try:
            records: List[Any] = json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"File {path} is not valid JSON: {exc.msg}.") from exc
        if not isinstance(records, list):
            raise typer.BadParameter(f"File {path} must contain a JSON array of records.")

        try:
            response = self._client.post(
                f"/records/{entity_set}",
                json={"records": records, "timestampFields": list(timestamp_fields)},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
