import os
from importlib import metadata

DISTRIBUTION = "strata"


def get_version() -> str:
    """
    Version reported by the executor.

    STRATA_VERSION wins when set (release images stamp it); otherwise the
    installed distribution's version, or "dev" when running from a checkout.
    """
    stamped = os.getenv("STRATA_VERSION", "").strip()
    if stamped:
        return stamped
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "dev"
