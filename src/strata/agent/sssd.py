import logging
import os
from typing import Optional

from strata.agent.runner import run_quiet
from strata.config.settings import config

logger = logging.getLogger(__name__)


def apply_sssd_config(conf: str, ca_bundle: Optional[str] = None, sssd_dir: Optional[str] = None) -> str:
    """Install an identity-cache config (and optional CA bundle) and restart sssd."""
    sssd_dir = sssd_dir or config.sssd_dir
    os.makedirs(sssd_dir, exist_ok=True)

    conf_path = os.path.join(sssd_dir, "sssd.conf")
    with open(conf_path, "w") as f:
        f.write(conf)
    os.chmod(conf_path, 0o600)

    if ca_bundle:
        certs = os.path.join(sssd_dir, "certs")
        os.makedirs(certs, exist_ok=True)
        with open(os.path.join(certs, "ca.crt"), "w") as f:
            f.write(ca_bundle)

    logger.info(f"sssd config written to {conf_path}")
    return run_quiet(["systemctl", "restart", "sssd"], timeout=30)
