from typing import Any, ClassVar
from enum import StrEnum

from pydantic import BaseModel, model_validator


class EventType(StrEnum):
    push = "push"
    pull_request = "pull_request"
    pull_request_review = "pull_request_review"
    check_suite = "check_suite"
    workflow_run = "workflow_run"
    deployment_status = "deployment_status"
    status = "status"


class Owner(BaseModel):
    login: str


class Repository(BaseModel):
    name: str = ""
    full_name: str
    owner: Owner
    custom_properties: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _name_from_full_name(self) -> "Repository":
        if not self.name:
            self.name = self.full_name.rpartition("/")[2]
        return self


class Installation(BaseModel):
    id: int


class RepositoryPayload(BaseModel):
    """The part of every webhook body the authenticator needs."""

    repository: Repository


class InstallationPayload(BaseModel):
    installation: Installation


class PullRequestBranch(BaseModel):
    ref: str
    sha: str


class PullRequest(BaseModel):
    number: int
    url: str = ""
    html_url: str = ""
    title: str = ""
    state: str = "open"
    draft: bool = False
    merged: bool = False
    head: PullRequestBranch
    base: PullRequestBranch


class Event(BaseModel):
    event_type: ClassVar[EventType]

    repository: Repository
    installation: Installation


class PushEvent(Event):
    event_type = EventType.push

    ref: str
    after: str
    before: str = ""
    deleted: bool = False


class PullRequestEvent(Event):
    event_type = EventType.pull_request

    action: str
    pull_request: PullRequest


class Review(BaseModel):
    state: str


class PullRequestReviewEvent(Event):
    event_type = EventType.pull_request_review

    action: str
    review: Review
    pull_request: PullRequest


class CheckSuite(BaseModel):
    head_sha: str
    head_branch: str | None = None
    status: str | None = None
    conclusion: str | None = None
    pull_requests: list[PullRequest] = []


class CheckSuiteEvent(Event):
    event_type = EventType.check_suite

    action: str
    check_suite: CheckSuite


class WorkflowRun(BaseModel):
    name: str | None = None
    head_sha: str
    head_branch: str | None = None
    status: str | None = None
    conclusion: str | None = None
    pull_requests: list[PullRequest] = []


class WorkflowRunEvent(Event):
    event_type = EventType.workflow_run

    action: str
    workflow_run: WorkflowRun


class Deployment(BaseModel):
    ref: str
    sha: str
    environment: str | None = None


class DeploymentStatus(BaseModel):
    state: str


class DeploymentStatusEvent(Event):
    event_type = EventType.deployment_status

    deployment: Deployment
    deployment_status: DeploymentStatus


class StatusEvent(Event):
    event_type = EventType.status

    sha: str
    state: str
    context: str | None = None


EVENT_MODELS: dict[EventType, type[Event]] = {
    model.event_type: model
    for model in (
        PushEvent,
        PullRequestEvent,
        PullRequestReviewEvent,
        CheckSuiteEvent,
        WorkflowRunEvent,
        DeploymentStatusEvent,
        StatusEvent,
    )
}


def parse_event(event_type: str, data: dict[str, Any]) -> Event:
    """Decode a webhook body into the model registered for ``event_type``.

    Raises ``KeyError`` for unknown event types and
    ``pydantic.ValidationError`` for bodies that do not match.
    """
    model = EVENT_MODELS[EventType(event_type)]
    return model.model_validate(data)


class PullRequestCreateRequest(BaseModel):
    title: str
    head: str
    base: str
    body: str = ""
    draft: bool = False
    maintainer_can_modify: bool = False


class RefCreateRequest(BaseModel):
    ref: str
    sha: str


class RefUpdateRequest(BaseModel):
    sha: str
    force: bool = False


class CommitState(StrEnum):
    pending = "pending"
    success = "success"
    failure = "failure"
    error = "error"


class CommitStatusPayload(BaseModel):
    state: CommitState
    description: str
    context: str
    target_url: str | None = None


class CheckRunConclusion(StrEnum):
    success = "success"
    failure = "failure"
    neutral = "neutral"


class CheckRunOutput(BaseModel):
    title: str
    summary: str
    text: str | None = None


class CheckRunPayload(BaseModel):
    name: str
    head_sha: str
    status: str = "completed"
    conclusion: CheckRunConclusion
    completed_at: str | None = None
    output: CheckRunOutput


class GitActor(BaseModel):
    name: str = ""
    date: str = ""


class Commit(BaseModel):
    message: str
    committer: GitActor | None = None


class PullRequestCommit(BaseModel):
    sha: str
    html_url: str = ""
    commit: Commit

    @property
    def date(self) -> str:
        return self.commit.committer.date if self.commit.committer else ""

    @property
    def summary(self) -> str:
        return self.commit.message.splitlines()[0] if self.commit.message else ""
