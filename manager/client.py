"""
JobManager client.

The job manager owns scheduling, provisioning and job state; this bot only
talks to it over HTTP.  JobManager is the protocol the command layer depends
on, HTTPJobManager the production implementation.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from config import settings
from models.job import Job, JobRequest, JobState, JobType

logger = logging.getLogger(__name__)


class JobManagerError(Exception):
    """The job manager rejected a request or could not be reached."""


class JobManager(Protocol):
    async def launch_job_for_user(self, request: JobRequest) -> str: ...

    async def lookup_inputs(self, inputs: list[str]) -> str: ...

    async def list_jobs(self, user: str) -> str: ...

    async def sync_job_for_user(self, user: str) -> str: ...

    async def terminate_job_for_user(self, user: str) -> str: ...

    async def get_launch_job(self, user: str) -> Job: ...


class JobPayload(BaseModel):
    """Wire shape of a job snapshot, as sent by the manager."""

    name: str
    mode: JobType
    state: JobState = JobState.PENDING
    requested_at: datetime
    requested_by: str = ""
    requested_channel: str = ""
    original_message: str = ""
    url: str = ""
    credentials: str = ""
    failure: str = ""
    password_snippet: str = ""
    expires_at: Optional[datetime] = None
    legacy_config: bool = False

    @field_validator("requested_at", "expires_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # naive timestamps from the manager are UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_job(self) -> Job:
        return Job(**self.model_dump())


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    return str(detail) if detail else f"HTTP {response.status_code}"


class HTTPJobManager:
    def __init__(
        self,
        base_url: str = settings.JOB_MANAGER_URL,
        timeout: float = settings.JOB_MANAGER_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Job manager unreachable", extra={"path": path, "error": str(exc)})
            raise JobManagerError(f"unable to reach the job manager: {exc}") from exc

        if response.is_error:
            detail = _error_detail(response)
            logger.warning("Job manager error",
                           extra={"path": path, "status": response.status_code, "detail": detail})
            raise JobManagerError(detail)

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Job manager sent an unreadable response", extra={"path": path, "error": str(exc)})
            raise JobManagerError("the job manager sent an unreadable response") from exc
        if not isinstance(data, dict):
            logger.error("Job manager sent an unexpected response", extra={"path": path})
            raise JobManagerError("the job manager sent an unexpected response")
        return data

    async def _message(self, method: str, path: str, **kwargs) -> str:
        return str((await self._request(method, path, **kwargs)).get("message", ""))

    async def launch_job_for_user(self, request: JobRequest) -> str:
        return await self._message("POST", "/jobs", json=request.to_dict())

    async def lookup_inputs(self, inputs: list[str]) -> str:
        return await self._message("POST", "/lookup", json={"inputs": inputs})

    async def list_jobs(self, user: str) -> str:
        return await self._message("GET", "/jobs", params={"user": user})

    async def sync_job_for_user(self, user: str) -> str:
        return await self._message("POST", f"/users/{quote(user, safe='')}/sync")

    async def terminate_job_for_user(self, user: str) -> str:
        return await self._message("DELETE", f"/users/{quote(user, safe='')}/job")

    async def get_launch_job(self, user: str) -> Job:
        data = await self._request("GET", f"/users/{quote(user, safe='')}/launch-job")
        try:
            return JobPayload.model_validate(data).to_job()
        except ValidationError as exc:
            logger.error("Job manager sent an invalid job", extra={"user": user, "error": str(exc)})
            raise JobManagerError("the job manager sent an invalid job") from exc
