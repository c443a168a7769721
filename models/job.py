from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional


class JobType(str, Enum):
    LAUNCH = "launch"
    WORKFLOW_LAUNCH = "workflow-launch"
    TEST = "test"
    UPGRADE = "upgrade"
    BUILD = "build"

    @property
    def is_launch(self) -> bool:
        return self in (JobType.LAUNCH, JobType.WORKFLOW_LAUNCH)


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"
    ABORTED = "aborted"

    @property
    def failed(self) -> bool:
        return self in (JobState.FAILURE, JobState.ERROR, JobState.ABORTED)


class ParsedOptions(NamedTuple):
    platform: str
    architecture: str
    params: dict[str, str]


@dataclass(frozen=True)
class JobRequest:
    original_message: str
    user: str
    channel: str
    inputs: list[list[str]]
    type: JobType
    platform: str
    architecture: str
    job_params: dict[str, str] = field(default_factory=dict)
    workflow_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "original_message": self.original_message,
            "user":             self.user,
            "channel":          self.channel,
            "inputs":           [list(group) for group in self.inputs],
            "type":             self.type.value,
            "platform":         self.platform,
            "architecture":     self.architecture,
            "job_params":       dict(self.job_params),
            "workflow_name":    self.workflow_name,
        }


@dataclass(frozen=True)
class Job:
    name: str
    mode: JobType
    state: JobState
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
