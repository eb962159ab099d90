import base64
import logging
import re
from typing import Optional

from strata.config.settings import config
from strata.errors import DependencyNotFound, SpecError
from strata.operator.models import Descriptor, DescriptorSpec, Directory, ObjectMeta, Phase, SMBShare
from strata.operator.reconciler import REQUEUE_STEADY, Reconciler, Result
from strata.renderers.directory import ACTIVE_DIRECTORY, normalize_directory_type, render_smb_directory_conf
from strata.renderers.smbconf import render_smb_conf

logger = logging.getLogger(__name__)

SMB_PORT = 445
CONF_DIR = "/etc/smb"
_USERNAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")


def validate_username(name: str) -> str:
    if not _USERNAME.match(name):
        raise SpecError(f"invalid username: {name!r}")
    return name


class SMBShareReconciler(Reconciler):
    """Turns an SMBShare into a config artifact, a workload and a service descriptor."""

    kind = SMBShare

    def directory_conf(self, smb: SMBShare) -> Optional[str]:
        ref = smb.spec.directory_ref.strip()
        if not ref or ref == "local":
            return None
        directory = self.store.get(Directory, smb.namespace, ref)
        if directory is None:
            raise DependencyNotFound(f"directory {ref} not found")
        dir_type = normalize_directory_type(directory.spec.type)
        if dir_type != ACTIVE_DIRECTORY:
            return None
        return render_smb_directory_conf(directory.spec, dir_type)[0]

    def user_script(self, smb: SMBShare) -> str:
        lines = ["#!/bin/sh", "set -e"]
        for user in smb.spec.users:
            validate_username(user.username)
            if self.secrets is None:
                raise DependencyNotFound("no secret store configured")
            password = self.secrets.require(smb.namespace, user.password_secret).value("password")
            if not password:
                raise SpecError(f"secret {user.password_secret} has no password")
            encoded = base64.b64encode(password.encode()).decode()
            lines += [
                f"id -u {user.username} >/dev/null 2>&1 || adduser -D {user.username}",
                f"pw=$(echo {encoded} | base64 -d)",
                f"printf '%s\\n%s\\n' \"$pw\" \"$pw\" | smbpasswd -a -s {user.username}",
            ]
        return "\n".join(lines) + "\n"

    def reconcile_record(self, smb: SMBShare) -> Result:
        spec = smb.spec
        conf = render_smb_conf(spec.share_name, spec.mount_path, spec.read_only, spec.options, self.directory_conf(smb))
        script = self.user_script(smb)

        name = f"smbshare-{smb.name}"
        conf_name = f"{name}-conf"
        if spec.pvc_name:
            data_volume = {"name": "data", "claimName": spec.pvc_name, "readOnly": spec.read_only}
        else:
            data_volume = {"name": "data", "hostPath": spec.mount_path}

        node_port = spec.service_type.strip().lower() == "nodeport"
        port = {"name": "smb", "port": SMB_PORT, "targetPort": SMB_PORT}
        if node_port and spec.node_port > 0:
            port["nodePort"] = spec.node_port

        descriptors = [
            (conf_name, "ConfigArtifact", {"smb.conf": conf, "users.sh": script}),
            (name, "Workload", {
                "replicas": 1,
                "selector": {"app": name},
                "image": config.smb_image,
                "privileged": True,
                "command": ["/bin/sh", "-c"],
                "args": [f"sh {CONF_DIR}/users.sh && exec /usr/sbin/smbd -F -s {CONF_DIR}/smb.conf"],
                "ports": [{"name": "smb", "containerPort": SMB_PORT}],
                "volumes": [{"name": "conf", "configArtifact": conf_name}, data_volume],
                "volumeMounts": [
                    {"name": "conf", "mountPath": CONF_DIR},
                    {"name": "data", "mountPath": spec.mount_path, "readOnly": spec.read_only},
                ],
            }),
            (f"{name}-svc", "Service", {
                "type": "NodePort" if node_port else "ClusterIP",
                "selector": {"app": name},
                "ports": [port],
            }),
        ]
        for desc_name, desc_type, data in descriptors:
            desc = Descriptor(
                metadata=ObjectMeta(name=desc_name, labels={"app": name}),
                spec=DescriptorSpec(type=desc_type, data=data),
            )
            desc.owned_by(smb)
            self.store.upsert(desc)

        if node_port:
            smb.status.endpoint = f"NodePort:{spec.node_port}" if spec.node_port > 0 else "NodePort"
        else:
            smb.status.endpoint = f"{name}.{smb.namespace}.svc:{SMB_PORT}"
        smb.status.set_phase(Phase.READY, "OK")
        return Result(REQUEUE_STEADY)
