"""Pydantic models for Redash API payloads."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator


def _stringify(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


class _RedashModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class DataSource(_RedashModel):
    """A data source configured on the Redash server."""

    id: str
    name: str = ""
    type: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value: Any) -> Any:
        """Accept numeric ids."""
        return _stringify(value)


class QuerySummary(_RedashModel):
    """A saved (named) query as listed by ``GET /queries``."""

    id: str
    name: str = ""
    description: Optional[str] = None
    data_source_id: Optional[str] = None

    @field_validator("id", "data_source_id", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> Any:
        """Accept numeric ids."""
        return _stringify(value)


class QueryDefinition(_RedashModel):
    """A saved query with the text and data source needed to run it."""

    id: str
    name: str = ""
    query: str = ""
    data_source_id: str

    @field_validator("id", "data_source_id", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> Any:
        """Accept numeric ids."""
        return _stringify(value)


class JobStatus(str, Enum):
    """Normalized Redash job lifecycle states."""

    QUEUED = "queued"
    STARTED = "started"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Return True once polling can stop."""
        return self in (JobStatus.FINISHED, JobStatus.FAILED)


# Redash reports numeric states: 1 pending, 2 started, 3 success, 4 failure, 5 cancelled.
_STATUS_CODES = {
    1: JobStatus.QUEUED,
    2: JobStatus.STARTED,
    3: JobStatus.FINISHED,
    4: JobStatus.FAILED,
    5: JobStatus.FAILED,
}
_STATUS_NAMES = {
    "queued": JobStatus.QUEUED,
    "pending": JobStatus.QUEUED,
    "started": JobStatus.STARTED,
    "finished": JobStatus.FINISHED,
    "success": JobStatus.FINISHED,
    "failed": JobStatus.FAILED,
    "failure": JobStatus.FAILED,
    "cancelled": JobStatus.FAILED,
}


def map_job_status(raw: Any) -> JobStatus:
    """Map a raw job status to a normalized state (unknown means still pending)."""
    if isinstance(raw, bool):
        return JobStatus.QUEUED
    if isinstance(raw, int):
        return _STATUS_CODES.get(raw, JobStatus.QUEUED)
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text.isdigit():
            return _STATUS_CODES.get(int(text), JobStatus.QUEUED)
        return _STATUS_NAMES.get(text, JobStatus.QUEUED)
    return JobStatus.QUEUED


class Job(_RedashModel):
    """A Redash job handle for an asynchronously executing query."""

    id: str
    status: JobStatus = JobStatus.QUEUED
    query_result_id: Optional[str] = None
    error: Optional[str] = None

    @field_validator("id", "query_result_id", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> Any:
        """Accept numeric ids."""
        return _stringify(value)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> JobStatus:
        """Fold numeric and textual Redash states into JobStatus."""
        return map_job_status(value)

    @field_validator("error", mode="before")
    @classmethod
    def normalize_error(cls, value: Any) -> Optional[str]:
        """Treat an empty error as absent."""
        if value is None or value == "":
            return None
        return _stringify(value)
