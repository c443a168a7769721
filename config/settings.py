"""
Runtime settings, read from the environment.

main.py calls load_dotenv() before importing anything, so values in a local
.env file are visible here.

The allow-lists below decide what the option parser accepts.  Each one can be
replaced with a comma-separated env var of the same name, e.g.

    SUPPORTED_PLATFORMS=aws,gcp,azure
"""

import os


def _csv_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

JOB_MANAGER_URL: str = os.getenv("JOB_MANAGER_URL", "http://localhost:8080").rstrip("/")
JOB_MANAGER_TIMEOUT: float = float(os.getenv("JOB_MANAGER_TIMEOUT", "30"))

WORKFLOW_CONFIG_PATH: str = os.getenv("WORKFLOW_CONFIG_PATH", "workflows.yaml")
WORKFLOW_RELOAD_INTERVAL: float = float(os.getenv("WORKFLOW_RELOAD_INTERVAL", "30"))

DEFAULT_PLATFORM = "gcp"
DEFAULT_ARCHITECTURE = "amd64"
DEFAULT_UPGRADE_TEST = "e2e-upgrade"

SUPPORTED_PLATFORMS = _csv_env(
    "SUPPORTED_PLATFORMS",
    ("aws", "gcp", "azure", "vsphere", "metal", "ovirt", "openstack"),
)
SUPPORTED_ARCHITECTURES = _csv_env("SUPPORTED_ARCHITECTURES", ("amd64", "arm64"))
SUPPORTED_PARAMETERS = _csv_env(
    "SUPPORTED_PARAMETERS",
    (
        "ovn", "proxy", "compact", "fips", "mirror", "shared-vpc", "large",
        "xlarge", "ipv6", "preserve-bootstrap", "test", "rt", "single-node",
        "cgroupsv2", "techpreview", "upi",
    ),
)
SUPPORTED_TESTS = _csv_env(
    "SUPPORTED_TESTS",
    (
        "e2e", "e2e-serial", "e2e-all", "e2e-disruptive", "e2e-builds",
        "e2e-image-ecosystem", "e2e-image-registry", "e2e-network-stress",
    ),
)
SUPPORTED_UPGRADE_TESTS = _csv_env(
    "SUPPORTED_UPGRADE_TESTS",
    ("e2e-upgrade", "e2e-upgrade-all", "e2e-upgrade-partial", "e2e-upgrade-rollback"),
)
