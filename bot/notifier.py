"""
Job status → chat message.

render() picks exactly one message for a job snapshot.  The branches are kept
as ordered (predicate, renderer) tables; the first predicate that matches wins.

Links are written in chat markup, <url|text>.  The transport decides how to
display them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from models.job import Job, JobState

logger = logging.getLogger(__name__)

LEGACY_WARNING = (
    "WARNING: using legacy template based job for this cluster. This is unsupported "
    "and the cluster may not install as expected."
)

_MINUTE = timedelta(minutes=1)


@dataclass(frozen=True)
class Attachment:
    content: str
    filename: str
    comment: str


@dataclass(frozen=True)
class Notification:
    text: str
    attachment: Optional[Attachment] = None


def link(url: str, text: str) -> str:
    return f"<{url}|{text}>"


def _minutes(delta: timedelta) -> int:
    # truncates toward zero, so clock skew or an expired cluster reads 0
    return int(delta / _MINUTE)


def _kubeconfig(job: Job, comment: str) -> Notification:
    filename = f"cluster-bot-{job.requested_at.strftime('%Y-%m-%d-%H%M%S')}.kubeconfig"
    return Notification(comment, Attachment(job.credentials, filename, comment))


# ── Cluster launches ──────────────────────────────────────────────────────────

def _launch_ready(job: Job, now: datetime) -> Notification:
    text = (
        "Your cluster is ready, it will be shut down automatically in "
        f"~{_minutes(job.expires_at - now) if job.expires_at else 0} minutes."
    )
    if job.password_snippet:
        text += "\n" + job.password_snippet
    return _kubeconfig(job, text)


_LAUNCH: list[tuple[Callable[[Job], bool], Callable[[Job, datetime], Notification | str]]] = [
    (lambda j: bool(j.failure and j.url),
     lambda j, now: f"your cluster failed to launch: {j.failure} ({link(j.url, 'logs')})"),
    (lambda j: bool(j.failure),
     lambda j, now: f"your cluster failed to launch: {j.failure}"),
    (lambda j: not j.credentials and bool(j.url),
     lambda j, now: (
         f"cluster is still starting (launched {_minutes(now - j.requested_at)} minutes ago, "
         f"{link(j.url, 'logs')})"
     )),
    (lambda j: not j.credentials,
     lambda j, now: f"cluster is still starting (launched {_minutes(now - j.requested_at)} minutes ago)"),
    (lambda j: True, _launch_ready),
]


# ── Tests, upgrades and builds ────────────────────────────────────────────────

def _job_label(job: Job) -> str:
    return link(job.url, job.original_message) if job.url else job.original_message


def _finished(job: Job, _now: datetime) -> str:
    verb = "failed" if job.state.failed else "succeeded"
    if job.url:
        return f"job {_job_label(job)} {verb}"
    return f"job {job.original_message} {verb}, but no details could be retrieved"


def _running_with_url(job: Job, _now: datetime) -> str:
    if job.original_message:
        return f"job {_job_label(job)} is running"
    return f"job is running, see {job.url} for details"


def _test_cluster_ready(job: Job, _now: datetime) -> Notification:
    text = "Your job has started a cluster, it will be shut down when the test ends."
    if job.url:
        text += f" See {job.url} for details."
    if job.password_snippet:
        text += "\n" + job.password_snippet
    return _kubeconfig(job, text)


_TERMINAL = (JobState.SUCCESS, JobState.FAILURE, JobState.ERROR, JobState.ABORTED)

_JOB: list[tuple[Callable[[Job], bool], Callable[[Job, datetime], Notification | str]]] = [
    (lambda j: j.state in _TERMINAL, _finished),
    (lambda j: not j.credentials and bool(j.url), _running_with_url),
    (lambda j: not j.credentials,
     lambda j, now: f"job is running (launched {_minutes(now - j.requested_at)} minutes ago)"),
    (lambda j: True, _test_cluster_ready),
]


def render(job: Job, now: datetime | None = None) -> Notification:
    """
    Render the one message that describes *job* right now.

    When the job carries credentials the returned Notification has an
    attachment whose comment is the message text; deliver it as an upload
    instead of a plain message.
    """
    now = now or datetime.now(timezone.utc)
    table = _LAUNCH if job.mode.is_launch else _JOB
    result = next(fn(job, now) for matches, fn in table if matches(job))
    if isinstance(result, str):
        result = Notification(result)

    if job.mode.is_launch and job.legacy_config:
        text = f"{LEGACY_WARNING}\n{result.text}"
        attachment = result.attachment
        if attachment is not None:
            attachment = Attachment(attachment.content, attachment.filename, text)
        result = Notification(text, attachment)
    return result


def should_notify(job: Job) -> bool:
    """False for jobs nobody can be told about yet.  The manager re-sends on the next change."""
    if not job.requested_channel or not job.requested_by:
        logger.info("Job has no requested channel or user, can't notify", extra={"job": job.name})
        return False
    if job.mode.is_launch:
        if not job.credentials and not job.failure:
            logger.info("No credentials or failure, still pending", extra={"job": job.name})
            return False
    elif not job.url and not job.failure:
        logger.info("No URL or failure, still pending", extra={"job": job.name})
        return False
    return True
