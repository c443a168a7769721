"""
Command argument parsers — turn loose chat text into typed job inputs.

Supported input examples:
    strip_links("<https://x.io/pr/1|pr 1> now")   → "pr 1 now"
    parse_image_input("4.15,openshift/api#42")    → ["4.15", "openshift/api#42"]
    parse_options("aws,arm64,fips,test=e2e")      → ("aws", "arm64", {"fips": "", "test": "e2e"})
    parse_workflow_params('"A=1","B=2"')          → {"A": "1", "B": "2"}

Every failure raises ParseError; its message is meant to be shown to the user
as-is.
"""

from collections.abc import Iterable, Iterator

from config import settings
from models.job import ParsedOptions


class ParseError(ValueError):
    """User input could not be interpreted."""


# ── Link markup ───────────────────────────────────────────────────────────────

def split_links(text: str) -> Iterator[tuple[str, str | None, str | None]]:
    """
    Walk *text* and yield (prefix, target, display) for each <target|display>
    span.  The final chunk is yielded with target and display set to None.

    An unterminated "<" ends the walk: everything from there on comes back as
    the final plain chunk.
    """
    while True:
        start = text.find("<")
        if start == -1:
            break
        end = text.find(">", start)
        if end == -1:
            break
        target, pipe, display = text[start + 1 : end].partition("|")
        yield text[:start], target, display if pipe else target
        text = text[end + 1 :]
    yield text, None, None


def strip_links(text: str) -> str:
    """Replace every chat link span with its display text (or its target)."""
    return "".join(prefix + (display or "") for prefix, _, display in split_links(text))


def code_slice(items: Iterable[str]) -> list[str]:
    return [f"`{item}`" for item in items]


# ── Inputs ────────────────────────────────────────────────────────────────────

def parse_image_input(text: str) -> list[str]:
    """
    Split a comma-separated list of images, versions or PR references.

    Blank input is not an error — whether the list is required is up to the
    calling command.
    """
    text = text.strip()
    if not text:
        return []
    parts = strip_links(text).split(",")
    if any(not part for part in parts):
        raise ParseError("image inputs must not contain empty items")
    return parts


# ── Options ───────────────────────────────────────────────────────────────────

def params_from_annotation(value: str) -> dict[str, str]:
    """
    "gcp,test=e2e,fips" → {"gcp": "", "test": "e2e", "fips": ""}

    Later duplicates overwrite earlier ones.  Empty keys are kept so that the
    caller decides what to do with them.
    """
    params: dict[str, str] = {}
    if not value:
        return params
    for item in value.split(","):
        key, _, val = item.partition("=")
        params[key.strip()] = val
    return params


def parse_options(
    options: str,
    platforms: Iterable[str] = settings.SUPPORTED_PLATFORMS,
    architectures: Iterable[str] = settings.SUPPORTED_ARCHITECTURES,
    parameters: Iterable[str] = settings.SUPPORTED_PARAMETERS,
) -> ParsedOptions:
    """
    Pull the platform and architecture out of an option string.

    Whatever is left must be a known generic parameter; it is returned as the
    parameter mapping.  Missing platform/architecture fall back to the
    configured defaults.
    """
    platforms, architectures, parameters = set(platforms), set(architectures), set(parameters)
    raw = params_from_annotation(options)

    platform = architecture = ""
    leftover: list[str] = []
    for key in list(raw):
        if key in platforms:
            if platform:
                raise ParseError("you may only specify one platform in options")
            platform = key
        elif key in architectures:
            if architecture:
                raise ParseError("you may only specify one architecture in options")
            architecture = key
        elif key == "":
            continue
        elif key in parameters:
            leftover.append(key)
        else:
            raise ParseError(f"unrecognized option: {key}")

    return ParsedOptions(
        platform=platform or settings.DEFAULT_PLATFORM,
        architecture=architecture or settings.DEFAULT_ARCHITECTURE,
        params={key: raw[key] for key in leftover},
    )


# ── Workflow parameters ───────────────────────────────────────────────────────

def parse_workflow_params(text: str) -> dict[str, str]:
    """
    Parse '"KEY=VALUE","KEY2=VALUE2"' into a dict.

    The list is split on the literal "," separator and only the outermost
    quotes are trimmed, so a value that itself contains "," is split apart.
    """
    if not text:
        return {}
    pieces = text.split('","')
    pieces[0] = pieces[0].removeprefix('"')
    pieces[-1] = pieces[-1].removesuffix('"')

    params: dict[str, str] = {}
    for piece in pieces:
        split = piece.split("=")
        if len(split) != 2:
            raise ParseError(
                f"Unable to interpret `{piece}` as a parameter. "
                "Please ensure that all parameters are in the form of KEY=VALUE"
            )
        params[split[0]] = split[1]
    return params
