import logging
from typing import Callable, List, Tuple

from strata.errors import AgentError, DependencyNotFound, SpecError
from strata.operator.models import Descriptor, DescriptorSpec, Directory, ObjectMeta, Phase
from strata.operator.reconciler import REQUEUE_ERROR, REQUEUE_STEADY, Reconciler, Result
from strata.renderers.directory import LOCAL, check_connectivity, render_directory, validate_directory

logger = logging.getLogger(__name__)

HASH_ANNOTATION = "strata.io/applied-hash"

Probe = Callable[[str, List[str]], Tuple[bool, str]]


class DirectoryReconciler(Reconciler):
    """
    Validates a directory, renders its join/identity artifacts, pushes the
    identity-cache config to the executor and records reachability.
    """

    kind = Directory

    def __init__(self, *args, probe: Probe = check_connectivity, **kwargs):
        super().__init__(*args, **kwargs)
        self.probe = probe

    def set_error(self, directory: Directory, message: str) -> Result:
        logger.warning(f"directory {directory.namespace}/{directory.name}: {message}")
        status = directory.status
        status.set_phase(Phase.ERROR, message)
        status.applied_hash = ""
        status.set_condition("Applied", "False", "Error", message)
        status.set_condition("Connectivity", "Unknown", "Unknown", "connectivity not checked")
        return Result(REQUEUE_ERROR)

    def reconcile_record(self, directory: Directory) -> Result:
        spec = directory.spec
        ns = directory.namespace
        try:
            dir_type, _ = validate_directory(spec)
            bind_password = None
            ca_bundle = None
            versions = []
            if dir_type != LOCAL:
                if self.secrets is None:
                    raise DependencyNotFound("no secret store configured")
                bind = self.secrets.get(ns, spec.bind_secret_name())
                if bind is None:
                    raise DependencyNotFound(f"bind secret {spec.bind_secret_name()} not found")
                bind_password = bind.value("password")
                versions.append(str(bind.version))
                if spec.ca_secret_name():
                    ca = self.secrets.get(ns, spec.ca_secret_name())
                    if ca is None:
                        raise DependencyNotFound(f"ca bundle secret {spec.ca_secret_name()} not found")
                    ca_bundle = ca.data.get("ca.crt") or next((v for v in ca.data.values() if v), None)
                    versions.append(str(ca.version))
            artifacts = render_directory(spec, bind_password, ca_bundle, tuple(versions))
        except (SpecError, DependencyNotFound) as e:
            return self.set_error(directory, str(e))

        smb_data = {"directory.json": artifacts.directory_json, "smb.conf": artifacts.smb_conf}
        if artifacts.krb5_conf:
            smb_data["krb5.conf"] = artifacts.krb5_conf
        outputs = [
            (f"directory-{directory.name}-smb", "ConfigArtifact", smb_data),
            (f"directory-{directory.name}-nfs", "ConfigArtifact", {"directory.json": artifacts.directory_json}),
        ]
        if artifacts.sssd_conf:
            sssd_data = {"sssd.conf": artifacts.sssd_conf}
            if artifacts.ca_bundle:
                sssd_data["ca.crt"] = artifacts.ca_bundle.decode(errors="replace")
            outputs.append((f"directory-{directory.name}-nfs-sssd", "SecretArtifact", sssd_data))
        for name, desc_type, data in outputs:
            desc = Descriptor(
                metadata=ObjectMeta(name=name, annotations={HASH_ANNOTATION: artifacts.hash}),
                spec=DescriptorSpec(type=desc_type, data=data),
            )
            desc.owned_by(directory)
            self.store.upsert(desc)

        if artifacts.sssd_conf and directory.status.applied_hash != artifacts.hash:
            try:
                self.agent_for("").apply_sssd(
                    artifacts.sssd_conf,
                    artifacts.ca_bundle.decode(errors="replace") if artifacts.ca_bundle else None,
                )
            except AgentError as e:
                return self.set_error(directory, f"identity cache push failed: {e}")

        reachable, detail = self.probe(dir_type, spec.servers)
        status = directory.status
        status.set_phase(Phase.READY, "OK")
        status.applied_hash = artifacts.hash
        status.set_condition("Applied", "True", "Ready", "configuration applied")
        status.set_condition(
            "Connectivity",
            "True" if reachable else "False",
            "Reachable" if reachable else "Unreachable",
            detail or "connectivity check completed",
        )
        return Result(REQUEUE_STEADY)
