"""
app/connectors/job_runner_connector.py

Client for the hosted scraping job runner (Apify v2 REST API).
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from app.config import ExternalHTTPSettings, JobRunnerSettings
from app.connectors.base import BaseConnector, ConnectorRequestError
from app.domain.scrape import RunHandle, RunState, RunStatus
from db.models.scrape_job import Platform

logger = logging.getLogger(__name__)

_RUN_STATE_MAP = {
    "READY": RunState.RUNNING,
    "RUNNING": RunState.RUNNING,
    "TIMING-OUT": RunState.RUNNING,
    "ABORTING": RunState.RUNNING,
    "SUCCEEDED": RunState.SUCCEEDED,
    "FAILED": RunState.FAILED,
    "TIMED-OUT": RunState.TIMED_OUT,
    "ABORTED": RunState.ABORTED,
}


def map_run_status(raw_status: str) -> RunStatus:
    """
    Translate a runner status string. Unknown values are treated as still
    running so that a new upstream state never fails a job by accident.
    """

    normalized = (raw_status or "").strip().upper()
    return RunStatus(state=_RUN_STATE_MAP.get(normalized, RunState.RUNNING), raw_status=normalized)


def build_run_input(platform: str, url: str) -> dict[str, Any]:
    if platform == Platform.YOUTUBE:
        return {"queries": [url]}
    if platform == Platform.INSTAGRAM:
        return {"username": [url], "resultsLimit": 30}
    if platform == Platform.TIKTOK:
        return {"postURLs": [url], "resultsPerPage": 100}
    raise ValueError(f"No job runner input defined for platform: {platform}")


class JobRunnerConnector(BaseConnector):
    """
    Submits actor runs, polls their status and reads the first dataset item.
    """

    def __init__(
        self,
        *,
        settings: JobRunnerSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="job_runner", http_settings=http_settings, session=session)
        self._settings = settings
        self._base_url = settings.base_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self._settings.api_token)

    def start_run(self, *, platform: str, url: str) -> RunHandle:
        actor_id = self._settings.actors.get(platform)
        if not actor_id:
            raise ConnectorRequestError(f"{self.source}: no actor configured for platform {platform}.")

        body = self._request_json(
            method="POST",
            url=f"{self._base_url}/acts/{actor_id.replace('/', '~')}/runs",
            headers=self._headers(),
            json_body=build_run_input(platform, url),
        )
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data.get("id"):
            raise ConnectorRequestError(f"{self.source}: run start response did not include a run id.")

        logger.info("Job runner run started platform=%s actor=%s run_id=%s", platform, actor_id, data["id"])
        return RunHandle(run_id=str(data["id"]), dataset_id=data.get("defaultDatasetId"))

    def get_run_status(self, run_id: str) -> RunStatus:
        body = self._request_json(
            method="GET",
            url=f"{self._base_url}/actor-runs/{run_id}",
            headers=self._headers(),
        )
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ConnectorRequestError(f"{self.source}: run status response was malformed.")
        return map_run_status(str(data.get("status") or ""))

    def get_run_items(self, run_id: str, *, limit: int = 1) -> list[dict[str, Any]]:
        body = self._request_json(
            method="GET",
            url=f"{self._base_url}/actor-runs/{run_id}/dataset/items",
            params={"limit": limit, "clean": "true", "format": "json"},
            headers=self._headers(),
        )
        if not isinstance(body, list):
            raise ConnectorRequestError(f"{self.source}: dataset items response was not a list.")
        return [item for item in body if isinstance(item, dict)]

    def _headers(self) -> dict[str, str]:
        if not self._settings.api_token:
            raise ConnectorRequestError(f"{self.source}: JOB_RUNNER_API_TOKEN is not configured.")
        return {"Authorization": f"Bearer {self._settings.api_token}"}
