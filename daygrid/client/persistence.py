"""HTTP client for the daygrid persistence service."""

import logging
import os
from datetime import date
from typing import Dict, Iterable, List, Optional

import requests
from dotenv import load_dotenv
from pydantic import ValidationError

from daygrid.errors import NotFound, ReconciliationFailed
from daygrid.models.task import TaskRecord

load_dotenv()

logger = logging.getLogger(__name__)

DAYGRID_API_URL = os.getenv("DAYGRID_API_URL", "http://localhost:8000")
DAYGRID_API_TIMEOUT_SEC = float(os.getenv("DAYGRID_API_TIMEOUT_SEC", "10"))


class TimetableClient:
    """Blocking client for the /timetable endpoints.

    Every call either returns parsed records or raises `ReconciliationFailed`
    (`NotFound` for 404). Nothing is retried.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        session=None,
        timeout: Optional[float] = None,
    ):
        """Initialize the client.

        Args:
            access_token: Bearer token identifying the owner
            base_url: Service root. If None, reads from DAYGRID_API_URL env var.
            session: requests.Session-compatible object (a fresh Session if None)
            timeout: Per-request timeout in seconds
        """
        self.base_url = (DAYGRID_API_URL if base_url is None else base_url).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = DAYGRID_API_TIMEOUT_SEC if timeout is None else timeout
        self.headers = {"Content-Type": "application/json"}
        if access_token:
            self.headers["Authorization"] = f"Bearer {access_token}"

    def list_tasks(self, start: Optional[date] = None, end: Optional[date] = None) -> List[TaskRecord]:
        params = {}
        if start is not None:
            params["start"] = start.isoformat()
        if end is not None:
            params["end"] = end.isoformat()
        data = self._request("GET", "/timetable", params=params)
        if not isinstance(data, list):
            raise ReconciliationFailed(f"GET /timetable returned {type(data).__name__}, expected a list")
        return [_record(item) for item in data]

    def create_task(self, day: date, slot: str, description: str) -> TaskRecord:
        data = self._request(
            "POST",
            "/timetable",
            json={"day": day.isoformat(), "slot": slot, "description": description},
        )
        return _record(data)

    def update_task(self, task_id: str, changes: Dict) -> TaskRecord:
        data = self._request("PATCH", f"/timetable/{task_id}", json=changes)
        return _record(data)

    def delete_task(self, task_id: str) -> int:
        data = self._request("DELETE", f"/timetable/{task_id}")
        try:
            return int(data.get("count", 0))
        except (AttributeError, TypeError, ValueError) as e:
            raise ReconciliationFailed(f"DELETE /timetable/{task_id}: bad count: {e}") from e

    def bulk_upsert(
        self,
        entries: Iterable[Dict],
        start: Optional[date] = None,
        end: Optional[date] = None,
        exclude_ids: Iterable[str] = (),
    ) -> bool:
        payload = {
            "entries": [
                {**entry, "day": entry["day"].isoformat() if isinstance(entry["day"], date) else entry["day"]}
                for entry in entries
            ],
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
            "exclude_ids": list(exclude_ids),
        }
        data = self._request("PUT", "/timetable", json=payload)
        return isinstance(data, dict) and bool(data.get("success"))

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=self.headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ReconciliationFailed(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise NotFound(f"{method} {path}: not found")
        if response.status_code >= 400:
            detail = _detail(response)
            logger.warning(f"{method} {path} returned {response.status_code}: {detail}")
            raise ReconciliationFailed(f"{method} {path} returned {response.status_code}: {detail}")
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"{method} {path} returned a non-JSON body: {response.text[:200]!r}")
            raise ReconciliationFailed(f"{method} {path} returned a non-JSON body") from e


def _record(data) -> TaskRecord:
    """Validate one server record; a malformed one is a failed call."""
    try:
        return TaskRecord.model_validate(data)
    except ValidationError as e:
        raise ReconciliationFailed(f"Malformed task record: {e.error_count()} validation error(s)") from e


def _detail(response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    return str(data.get("detail", "")) if isinstance(data, dict) else str(data)
