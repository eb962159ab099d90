import os

class Config:
    # Storage executor
    agent_host = os.getenv("STRATA_AGENT_HOST", "0.0.0.0")
    agent_port = int(os.getenv("STRATA_AGENT_PORT", "9808"))
    nfs_exports_path = os.getenv("STRATA_NFS_EXPORTS_PATH", "/etc/exports.d/strata.exports")
    sssd_dir = os.getenv("STRATA_SSSD_DIR", "/etc/sssd")
    zpool_cache_file = os.getenv("STRATA_ZPOOL_CACHE_FILE", "/etc/zfs/zpool.cache")
    partition_label = os.getenv("STRATA_PARTITION_LABEL", "strata-zfs")

    # Operator -> executor client
    agent_base_url = os.getenv(
        "STRATA_AGENT_BASE_URL",
        "http://strata-agent.strata-system.svc.cluster.local:9808",
    )
    agent_auth_header = os.getenv("STRATA_AGENT_AUTH_HEADER", "")
    agent_auth_value = os.getenv("STRATA_AGENT_AUTH_VALUE", "")
    agent_timeout = float(os.getenv("STRATA_AGENT_TIMEOUT", "30"))

    # Operator
    namespace = os.getenv("STRATA_NAMESPACE", "strata-system")
    workers = int(os.getenv("STRATA_WORKERS", "4"))
    resync_interval = float(os.getenv("STRATA_RESYNC_INTERVAL", "300"))
    smb_image = os.getenv("STRATA_SMB_IMAGE", "dperson/samba:latest")

    log_level = os.getenv("STRATA_LOG_LEVEL", "INFO")

config = Config()
