"""Tests for bot.commands — chat command handlers against a fake job manager."""

from datetime import datetime, timedelta, timezone

import pytest

from bot import commands
from bot.commands import CommandContext
from config.workflows import Workflow, WorkflowConfig
from manager.client import JobManagerError
from models.job import Job, JobRequest, JobState, JobType


class FakeManager:
    """In-memory JobManager that records what it was asked to do."""

    def __init__(self, error: str | None = None, job: Job | None = None):
        self.error = error
        self.job = job
        self.requests: list[JobRequest] = []
        self.lookups: list[list[str]] = []
        self.calls: list[tuple[str, str]] = []

    def _check(self):
        if self.error:
            raise JobManagerError(self.error)

    async def launch_job_for_user(self, request: JobRequest) -> str:
        self._check()
        self.requests.append(request)
        return f"launching {request.type.value}"

    async def lookup_inputs(self, inputs: list[str]) -> str:
        self._check()
        self.lookups.append(inputs)
        return "found " + ",".join(inputs)

    async def list_jobs(self, user: str) -> str:
        self._check()
        return "no jobs"

    async def sync_job_for_user(self, user: str) -> str:
        self._check()
        self.calls.append(("sync", user))
        return "synced"

    async def terminate_job_for_user(self, user: str) -> str:
        self._check()
        self.calls.append(("terminate", user))
        return "terminated"

    async def get_launch_job(self, user: str) -> Job:
        self._check()
        return self.job


@pytest.fixture
def ctx() -> CommandContext:
    return CommandContext(user="U1", channel="D1", text="/launch 4.15 aws", direct=True)


@pytest.fixture
def group_ctx() -> CommandContext:
    return CommandContext(user="U1", channel="C1", text="/launch", direct=False)


@pytest.fixture
def manager() -> FakeManager:
    return FakeManager()


@pytest.fixture
def workflows() -> WorkflowConfig:
    return WorkflowConfig({
        "ipi-aws": Workflow(platform="aws"),
        "ipi-aws-arm": Workflow(platform="aws", architecture="arm64"),
        "ipi-z": Workflow(platform="ibmcloud", architecture="s390x"),
    })


# ---------------------------------------------------------------------------
# launch
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_launch_builds_request(ctx, manager):
    reply = await commands.launch(ctx, manager, "4.15", "aws,fips")
    assert reply == "launching launch"
    request = manager.requests[0]
    assert request.type == JobType.LAUNCH
    assert request.inputs == [["4.15"]]
    assert request.platform == "aws"
    assert request.architecture == "amd64"
    assert request.job_params == {"fips": ""}
    assert request.original_message == "/launch 4.15 aws"
    assert request.user == "U1"
    assert request.channel == "D1"


@pytest.mark.asyncio
async def test_launch_without_image_has_no_inputs(ctx, manager):
    await commands.launch(ctx, manager)
    assert manager.requests[0].inputs == []
    assert manager.requests[0].platform == "gcp"


@pytest.mark.asyncio
async def test_launch_strips_links_from_message(manager):
    ctx = CommandContext(
        user="U1",
        channel="D1",
        text="/launch <https://github.com/o/r/pull/1|o/r#1> aws",
        direct=True,
    )
    await commands.launch(ctx, manager, "<https://github.com/o/r/pull/1|o/r#1>", "aws")
    assert manager.requests[0].original_message == "/launch o/r#1 aws"
    assert manager.requests[0].inputs == [["o/r#1"]]


@pytest.mark.asyncio
async def test_launch_rejects_test_param(ctx, manager):
    reply = await commands.launch(ctx, manager, "4.15", "test=e2e")
    assert reply == "Test arguments may not be passed from the launch command"
    assert manager.requests == []


@pytest.mark.asyncio
async def test_launch_requires_direct_message(group_ctx, manager):
    assert await commands.launch(group_ctx, manager, "4.15") == commands.DIRECT_ONLY


@pytest.mark.asyncio
async def test_launch_parse_error_is_reply(ctx, manager):
    assert await commands.launch(ctx, manager, "4.15", "gcp,aws") == (
        "you may only specify one platform in options"
    )
    assert await commands.launch(ctx, manager, "a,,b") == "image inputs must not contain empty items"


@pytest.mark.asyncio
async def test_launch_manager_error_is_reply(ctx):
    reply = await commands.launch(ctx, FakeManager(error="you already have a cluster"), "4.15")
    assert reply == "you already have a cluster"


# ---------------------------------------------------------------------------
# lookup / list / refresh / done / auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_lookup(group_ctx, manager):
    assert await commands.lookup(group_ctx, manager, "4.15,4.16") == "found 4.15,4.16"
    assert manager.lookups == [["4.15", "4.16"]]


@pytest.mark.asyncio
async def test_list_jobs(group_ctx, manager):
    assert await commands.list_jobs(group_ctx, manager) == "no jobs"


@pytest.mark.asyncio
async def test_refresh_and_done(ctx, manager):
    assert await commands.refresh(ctx, manager) == "synced"
    assert await commands.done(ctx, manager) == "terminated"
    assert manager.calls == [("sync", "U1"), ("terminate", "U1")]


@pytest.mark.asyncio
async def test_refresh_and_done_require_direct(group_ctx, manager):
    assert await commands.refresh(group_ctx, manager) == commands.DIRECT_ONLY_REQUEST
    assert await commands.done(group_ctx, manager) == commands.DIRECT_ONLY_REQUEST
    assert manager.calls == []


@pytest.mark.asyncio
async def test_auth_renders_credentials(ctx):
    now = datetime.now(timezone.utc)
    job = Job(
        name="launch-1",
        mode=JobType.LAUNCH,
        state=JobState.RUNNING,
        requested_at=now,
        requested_by="U1",
        requested_channel="D-old",
        credentials="apiVersion: v1",
        expires_at=now + timedelta(hours=2),
    )
    notification = await commands.auth(ctx, FakeManager(job=job))
    assert notification.text.startswith("Your cluster is ready")
    assert notification.attachment.content == "apiVersion: v1"


@pytest.mark.asyncio
async def test_auth_error(ctx):
    notification = await commands.auth(ctx, FakeManager(error="no cluster"))
    assert notification.text == "no cluster"
    assert notification.attachment is None


# ---------------------------------------------------------------------------
# test / test upgrade
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_test(ctx, manager):
    reply = await commands.run_test(ctx, manager, "e2e", "4.15", "aws")
    assert reply == "launching test"
    request = manager.requests[0]
    assert request.type == JobType.TEST
    assert request.job_params == {"test": "e2e"}
    assert request.inputs == [["4.15"]]


@pytest.mark.asyncio
async def test_run_test_requires_input(ctx, manager):
    assert await commands.run_test(ctx, manager, "e2e", "") == "you must specify what will be tested"


@pytest.mark.asyncio
async def test_run_test_requires_name(ctx, manager):
    reply = await commands.run_test(ctx, manager, "", "4.15")
    assert reply.startswith("you must specify the name of a test: `e2e`")


@pytest.mark.asyncio
async def test_run_test_custom_name_warns(ctx, manager):
    reply = await commands.run_test(ctx, manager, "e2e-custom", "4.15")
    assert reply.startswith("warning: You are using a custom test name")
    assert reply.endswith("\nlaunching test")


@pytest.mark.asyncio
async def test_run_test_rejects_upgrade_suite(ctx, manager):
    reply = await commands.run_test(ctx, manager, "e2e-upgrade", "4.15")
    assert reply == "Upgrade type tests require the 'test upgrade' command"
    assert manager.requests == []


@pytest.mark.asyncio
async def test_upgrade_defaults(ctx, manager):
    reply = await commands.run_test_upgrade(ctx, manager, "4.14")
    assert reply == "launching upgrade"
    request = manager.requests[0]
    assert request.type == JobType.UPGRADE
    assert request.inputs == [["4.14"], ["4.14"]]
    assert request.inputs[0] is request.inputs[1]
    assert request.job_params == {"test": "e2e-upgrade"}


@pytest.mark.asyncio
async def test_upgrade_from_to(ctx, manager):
    await commands.run_test_upgrade(ctx, manager, "4.14", "4.15", "aws,test=e2e-upgrade-all")
    request = manager.requests[0]
    assert request.inputs == [["4.14"], ["4.15"]]
    assert request.platform == "aws"
    assert request.job_params == {"test": "e2e-upgrade-all"}


@pytest.mark.asyncio
async def test_upgrade_requires_from(ctx, manager):
    reply = await commands.run_test_upgrade(ctx, manager, "", "4.15")
    assert reply == "you must specify an image to upgrade from and to"


@pytest.mark.asyncio
async def test_upgrade_rejects_non_upgrade_suite(ctx, manager):
    reply = await commands.run_test_upgrade(ctx, manager, "4.14", "4.15", "test=e2e")
    assert reply == "Only upgrade type tests may be run from this command"


# ---------------------------------------------------------------------------
# build
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_build(ctx, manager):
    reply = await commands.build(ctx, manager, "openshift/api#1,openshift/installer#2")
    assert reply == "launching build"
    assert manager.requests[0].inputs == [["openshift/api#1", "openshift/installer#2"]]
    assert manager.requests[0].type == JobType.BUILD


@pytest.mark.asyncio
async def test_build_requires_pr(ctx, manager):
    reply = await commands.build(ctx, manager, " ")
    assert reply == "you must specify at least one pull request to build a release image"


# ---------------------------------------------------------------------------
# workflow-launch
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_workflow_launch(ctx, manager, workflows):
    reply = await commands.workflow_launch(ctx, manager, workflows, "ipi-aws-arm", "4.15", '"A=1","B=2"')
    assert reply == "launching workflow-launch"
    request = manager.requests[0]
    assert request.type == JobType.WORKFLOW_LAUNCH
    assert request.workflow_name == "ipi-aws-arm"
    assert request.platform == "aws"
    assert request.architecture == "arm64"
    assert request.job_params == {"A": "1", "B": "2"}


@pytest.mark.asyncio
async def test_workflow_launch_default_architecture(ctx, manager, workflows):
    await commands.workflow_launch(ctx, manager, workflows, "ipi-aws", "4.15")
    assert manager.requests[0].architecture == "amd64"
    assert manager.requests[0].job_params == {}


@pytest.mark.asyncio
async def test_workflow_launch_unknown(ctx, manager, workflows):
    reply = await commands.workflow_launch(ctx, manager, workflows, "nope", "4.15")
    assert reply == (
        "Workflow nope not in workflow list. Please add nope to the workflows list "
        "before retrying this command"
    )


@pytest.mark.asyncio
async def test_workflow_launch_unsupported_architecture(ctx, manager, workflows):
    reply = await commands.workflow_launch(ctx, manager, workflows, "ipi-z", "4.15")
    assert reply == "Architecture s390x not supported by cluster-bot"


@pytest.mark.asyncio
async def test_workflow_launch_bad_param(ctx, manager, workflows):
    reply = await commands.workflow_launch(ctx, manager, workflows, "ipi-aws", "4.15", '"A"')
    assert reply.startswith("Unable to interpret `A` as a parameter")
    assert manager.requests == []


@pytest.mark.asyncio
async def test_workflow_launch_requires_name(ctx, manager, workflows):
    reply = await commands.workflow_launch(ctx, manager, workflows, "", "4.15")
    assert reply.startswith("you must specify the name of a workflow")


# ---------------------------------------------------------------------------
# version / help
# ---------------------------------------------------------------------------


def test_version():
    assert commands.version().startswith("Running `")


def test_help_lists_allow_lists():
    text = commands.help_text()
    assert "`gcp`" in text
    assert "`e2e-upgrade`" in text
    assert "workflow-launch" in text
