import logging
from enum import StrEnum
from typing import Any

from gidgethub.sansio import Event as GitHubEvent
from pydantic import BaseModel, ConfigDict, Field
from sanic.log import logger

from gh_promotion.github.models import (
    Event,
    PullRequest,
    PullRequestCommit,
    Repository,
)
from gh_promotion.promotion import Promoter
from gh_promotion.utils import normalise_full_ref


class EventStatus(StrEnum):
    pending = "pending"
    success = "success"
    failure = "failure"
    error = "error"
    skipped = "skipped"


class RequestLogger(logging.LoggerAdapter):
    """Prefixes every record with what is known about the current webhook."""

    def process(self, msg, kwargs):
        prefix = " ".join(f"{k}={v}" for k, v in self.extra.items() if v is not None)
        if prefix:
            msg = f"[{prefix}] {msg}"
        return msg, kwargs

    def bind(self, **fields: Any) -> None:
        self.extra = {**self.extra, **fields}


class Response(BaseModel):
    status_code: int = 200
    body: str = ""


class Context(BaseModel):
    """Promotion state for a single webhook.

    Fields are filled in by the pipeline stages in order and later stages
    treat them as authoritative. Only ``head_ref`` and ``base_ref`` may be
    refined once the matching pull request is found.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    owner: str | None = None
    repository: str | None = None
    head_ref: str | None = None
    base_ref: str | None = None
    head_sha: str | None = None
    pull_request: PullRequest | None = None
    commits: list[PullRequestCommit] = []
    promoter: Promoter | None = None
    # gidgethub.abc.GitHubAPI, serves both REST and GraphQL
    gh: Any = None
    logger: logging.Logger | logging.LoggerAdapter = logger

    @property
    def repo_url(self) -> str:
        return f"/repos/{self.owner}/{self.repository}"

    @property
    def full_head_ref(self) -> str | None:
        return normalise_full_ref(self.head_ref) if self.head_ref else None

    @property
    def full_base_ref(self) -> str | None:
        return normalise_full_ref(self.base_ref) if self.base_ref else None


class Bus(BaseModel):
    """Envelope carrying one webhook through the pipeline."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    body: bytes = b""
    headers: dict[str, str] = {}
    event_type: str | None = None
    delivery_id: str | None = None
    event: GitHubEvent | None = None
    payload: Event | None = None
    repository: Repository | None = None
    context: Context = Field(default_factory=Context)
    event_status: EventStatus = EventStatus.pending
    response: Response = Field(default_factory=Response)
    error: str | None = None
    promote: bool = False

    def fail(self, error: Exception | str, status_code: int = 500) -> None:
        self.event_status = EventStatus.error
        self.error = str(error)
        self.response = Response(status_code=status_code, body="promotion failed")

    def skip(self, reason: str) -> None:
        self.context.logger.info("Skipping: %s", reason)
        self.event_status = EventStatus.skipped
        self.response = Response(status_code=200, body=f"skipped: {reason}")
