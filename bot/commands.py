"""
Chat commands — transport-independent.

Each handler takes the caller (CommandContext), the job manager and its
parameter slots, and returns the text to reply with.  Parse errors and job
manager errors come back as the reply; nothing here raises for bad input.

Commands:
    launch <image_or_version_or_pr> <options>
    lookup <image_or_version_or_pr>
    list
    refresh
    done
    auth
    test <name> <image_or_version_or_pr> <options>
    test upgrade <from> <to> <options>
    build <pullrequest> <options>
    workflow-launch <name> <image_or_version_or_pr> <parameters>
    version
"""

import logging
from dataclasses import dataclass, replace
from importlib.metadata import PackageNotFoundError, version as dist_version

from bot.notifier import Notification, render
from config import settings
from config.workflows import WorkflowConfig
from manager.client import JobManager, JobManagerError
from models.job import JobRequest, JobType
from parsing.parser import (
    ParseError,
    code_slice,
    parse_image_input,
    parse_options,
    parse_workflow_params,
    strip_links,
)

logger = logging.getLogger(__name__)

DIRECT_ONLY = "this command is only accepted via direct message"
DIRECT_ONLY_REQUEST = "you must direct message me this request"
UNRECOGNIZED = "unrecognized command, msg me `help` for a list of all commands"


@dataclass(frozen=True)
class CommandContext:
    user: str
    channel: str
    text: str
    direct: bool


def _joined(items) -> str:
    return ", ".join(code_slice(items))


async def _launch(manager: JobManager, request: JobRequest) -> str:
    logger.info("Launching job", extra={"user": request.user, "type": request.type.value,
                                         "platform": request.platform})
    try:
        return await manager.launch_job_for_user(request)
    except JobManagerError as exc:
        return str(exc)


def _request(ctx: CommandContext, inputs, job_type, platform, architecture, params,
             workflow_name=None) -> JobRequest:
    return JobRequest(
        original_message=strip_links(ctx.text),
        user=ctx.user,
        channel=ctx.channel,
        inputs=inputs,
        type=job_type,
        platform=platform,
        architecture=architecture,
        job_params=params,
        workflow_name=workflow_name,
    )


# ── launch ────────────────────────────────────────────────────────────────────

async def launch(ctx: CommandContext, manager: JobManager, image: str = "", options: str = "") -> str:
    if not ctx.direct:
        return DIRECT_ONLY
    try:
        from_ = parse_image_input(image)
        platform, architecture, params = parse_options(options)
    except ParseError as exc:
        return str(exc)
    if params.get("test"):
        return "Test arguments may not be passed from the launch command"

    inputs = [from_] if from_ else []
    return await _launch(manager, _request(ctx, inputs, JobType.LAUNCH, platform, architecture, params))


# ── lookup / list / refresh / done ────────────────────────────────────────────

async def lookup(ctx: CommandContext, manager: JobManager, image: str = "") -> str:
    try:
        return await manager.lookup_inputs(parse_image_input(image))
    except (ParseError, JobManagerError) as exc:
        return str(exc)


async def list_jobs(ctx: CommandContext, manager: JobManager) -> str:
    try:
        return await manager.list_jobs(ctx.user)
    except JobManagerError as exc:
        return str(exc)


async def refresh(ctx: CommandContext, manager: JobManager) -> str:
    if not ctx.direct:
        return DIRECT_ONLY_REQUEST
    try:
        return await manager.sync_job_for_user(ctx.user)
    except JobManagerError as exc:
        return str(exc)


async def done(ctx: CommandContext, manager: JobManager) -> str:
    if not ctx.direct:
        return DIRECT_ONLY_REQUEST
    try:
        return await manager.terminate_job_for_user(ctx.user)
    except JobManagerError as exc:
        return str(exc)


async def auth(ctx: CommandContext, manager: JobManager) -> Notification:
    """Re-send the credentials of the caller's launched cluster to this chat."""
    if not ctx.direct:
        return Notification(DIRECT_ONLY_REQUEST)
    try:
        job = await manager.get_launch_job(ctx.user)
    except JobManagerError as exc:
        return Notification(str(exc))
    return render(replace(job, requested_channel=ctx.channel))


# ── test / test upgrade ───────────────────────────────────────────────────────

async def run_test(
    ctx: CommandContext,
    manager: JobManager,
    name: str = "",
    image: str = "",
    options: str = "",
) -> str:
    if not ctx.direct:
        return DIRECT_ONLY
    try:
        from_ = parse_image_input(image)
    except ParseError as exc:
        return str(exc)
    if not from_:
        return "you must specify what will be tested"
    if not name:
        return f"you must specify the name of a test: {_joined(settings.SUPPORTED_TESTS)}"

    warning = ""
    if name not in settings.SUPPORTED_TESTS:
        warning = (
            "warning: You are using a custom test name, may not be supported for all "
            f"platforms: {_joined(settings.SUPPORTED_TESTS)}\n"
        )

    try:
        platform, architecture, params = parse_options(options)
    except ParseError as exc:
        return str(exc)
    params["test"] = name
    if "-upgrade" in params["test"]:
        return "Upgrade type tests require the 'test upgrade' command"

    request = _request(ctx, [from_], JobType.TEST, platform, architecture, params)
    return warning + await _launch(manager, request)


async def run_test_upgrade(
    ctx: CommandContext,
    manager: JobManager,
    from_image: str = "",
    to_image: str = "",
    options: str = "",
) -> str:
    if not ctx.direct:
        return DIRECT_ONLY
    try:
        from_ = parse_image_input(from_image)
        if not from_:
            return "you must specify an image to upgrade from and to"
        to = parse_image_input(to_image) or from_
        platform, architecture, params = parse_options(options)
    except ParseError as exc:
        return str(exc)

    if not params.get("test"):
        params["test"] = settings.DEFAULT_UPGRADE_TEST
    if "-upgrade" not in params["test"]:
        return "Only upgrade type tests may be run from this command"

    request = _request(ctx, [from_, to], JobType.UPGRADE, platform, architecture, params)
    return await _launch(manager, request)


# ── build ─────────────────────────────────────────────────────────────────────

async def build(ctx: CommandContext, manager: JobManager, pullrequest: str = "", options: str = "") -> str:
    if not ctx.direct:
        return DIRECT_ONLY
    try:
        from_ = parse_image_input(pullrequest)
        if not from_:
            return "you must specify at least one pull request to build a release image"
        platform, architecture, params = parse_options(options)
    except ParseError as exc:
        return str(exc)

    return await _launch(manager, _request(ctx, [from_], JobType.BUILD, platform, architecture, params))


# ── workflow-launch ───────────────────────────────────────────────────────────

async def workflow_launch(
    ctx: CommandContext,
    manager: JobManager,
    workflows: WorkflowConfig,
    name: str = "",
    image: str = "",
    parameters: str = "",
) -> str:
    if not ctx.direct:
        return DIRECT_ONLY
    try:
        from_ = parse_image_input(image)
    except ParseError as exc:
        return str(exc)
    if not from_:
        return "you must specify what will be tested"
    if not name:
        return f"you must specify the name of a workflow: {_joined(sorted(workflows.snapshot()))}"

    workflow = workflows.get(name)
    if workflow is None:
        return (
            f"Workflow {name} not in workflow list. Please add {name} to the workflows "
            "list before retrying this command"
        )
    architecture = settings.DEFAULT_ARCHITECTURE
    if workflow.architecture:
        if workflow.architecture not in settings.SUPPORTED_ARCHITECTURES:
            return f"Architecture {workflow.architecture} not supported by cluster-bot"
        architecture = workflow.architecture

    try:
        params = parse_workflow_params(parameters)
    except ParseError as exc:
        return str(exc)

    request = _request(ctx, [from_], JobType.WORKFLOW_LAUNCH, workflow.platform, architecture,
                       params, workflow_name=name)
    return await _launch(manager, request)


# ── version / help ────────────────────────────────────────────────────────────

def version() -> str:
    try:
        current = dist_version("cluster-chat-bot")
    except PackageNotFoundError:
        current = "unknown"
    return f"Running `{current}`"


def help_text() -> str:
    return "\n".join([
        "*Commands*",
        "launch <image_or_version_or_pr> <options> — launch a cluster from an image, version "
        "or PR. Options is a comma-delimited list including platform "
        f"({_joined(settings.SUPPORTED_PLATFORMS)}), architecture "
        f"({_joined(settings.SUPPORTED_ARCHITECTURES)}) and variant "
        f"({_joined(settings.SUPPORTED_PARAMETERS)})",
        "lookup <image_or_version_or_pr> — get info about a version",
        "list — see who is hogging all the clusters",
        "refresh — retry fetching credentials for a cluster marked as failed",
        "done — terminate the running cluster",
        "auth — send the credentials for the cluster you most recently requested",
        "test <name> <image_or_version_or_pr> <options> — run a test suite, one of "
        f"{_joined(settings.SUPPORTED_TESTS)}",
        "test upgrade <from> <to> <options> — run upgrade tests between two release images; "
        f"pick the suite with test=NAME, one of {_joined(settings.SUPPORTED_UPGRADE_TESTS)}",
        "build <pullrequest> — build a release image from one or more pull requests",
        "workflow-launch <name> <image_or_version_or_pr> <parameters> — launch a cluster "
        'with a configured workflow; parameters look like "KEY=VALUE","KEY2=VALUE2"',
        "version — report the version of the bot",
    ])
