import logging
from typing import List

from strata.errors import DependencyNotFound, SpecError
from strata.operator.controllers.smbshare import validate_username
from strata.operator.models import Group, ObjectMeta, Phase, Share, SMBShare, SMBShareSpec, SMBUser, User
from strata.operator.reconciler import REQUEUE_STEADY, Reconciler, Result
from strata.renderers.options import SMBShareOptions, parse_share_options

logger = logging.getLogger(__name__)

FINALIZER = "strata.io/share-finalizer"
EXPORT_ANNOTATION = "strata.io/nfs-export-path"
DEFAULT_NFS_OPTIONS = ["sync", "no_subtree_check"]


def nfs_options(raw: str, read_only: bool) -> str:
    """
    Merge the share's read-only flag into a user option string. Any ro/rw
    already present is replaced; other options keep their order.
    """
    flag = "ro" if read_only else "rw"
    parts = [p.strip() for p in (raw or "").split(",") if p.strip()]
    if not parts:
        parts = list(DEFAULT_NFS_OPTIONS)
    merged = [flag]
    for part in parts:
        if part not in ("ro", "rw") and part not in merged:
            merged.append(part)
    return ",".join(merged)


def directory_matches(expected: str, actual: str) -> bool:
    return (expected.strip() or "local") == (actual.strip() or "local")


def _unique(items: List[str]) -> List[str]:
    out = []
    for item in items:
        item = item.strip()
        if item and item not in out:
            out.append(item)
    return out


class ShareReconciler(Reconciler):
    """
    Dispatches a Share on protocol. NFS shares are exported by the executor
    and guarded by a finalizer until the export is removed; SMB shares are
    handed to an owned SMBShare record.
    """

    kind = Share
    finalizer = FINALIZER

    def finalize(self, share: Share):
        path = share.metadata.annotations.get(EXPORT_ANNOTATION) or share.spec.mount_path.strip()
        if path:
            self.agent_for(share.spec.node_name).delete_export(path)
            logger.info(f"share {share.namespace}/{share.name}: export {path} removed")

    def reconcile_record(self, share: Share) -> Result:
        protocol = share.spec.protocol.strip().lower()
        if not protocol:
            raise SpecError("protocol is required")
        options = parse_share_options(share.spec.options)
        if protocol == "nfs":
            return self.reconcile_nfs(share, options)
        if protocol == "smb":
            return self.reconcile_smb(share, options)
        raise SpecError(f"unsupported protocol: {share.spec.protocol}")

    def mount(self, share: Share, options: SMBShareOptions):
        spec = share.spec
        if not spec.dataset_name.strip() or spec.pvc_name.strip():
            return
        perms = options.permissions()
        self.agent_for(spec.node_name).mount_dataset(
            spec.dataset_name.strip(),
            spec.mount_path.strip() or None,
            perms.mode if perms else None,
            perms.recursive if perms else False,
        )

    def reconcile_nfs(self, share: Share, options: SMBShareOptions) -> Result:
        spec = share.spec
        path = spec.mount_path.strip()
        if not path:
            raise SpecError("mountPath is required for nfs shares")

        self.ensure_finalizer(share)
        self.mount(share, options)

        agent = self.agent_for(spec.node_name)
        previous = share.metadata.annotations.get(EXPORT_ANNOTATION)
        agent.ensure_export(path, _unique(spec.nfs.clients) or ["*"], nfs_options(spec.nfs.options, spec.read_only))
        if previous != path:
            if previous:
                agent.delete_export(previous)
            share.metadata.annotations[EXPORT_ANNOTATION] = path
            share.metadata = self.store.update(share).metadata

        share.status.endpoint = path
        share.status.set_phase(Phase.READY, "OK")
        return Result(REQUEUE_STEADY)

    def reconcile_smb(self, share: Share, options: SMBShareOptions) -> Result:
        spec = share.spec
        dataset = spec.dataset_name.strip()
        if not dataset and not spec.pvc_name.strip():
            raise SpecError("datasetName or pvcName is required for smb shares")

        if FINALIZER in share.metadata.finalizers:
            # switched from nfs: release the old export first
            self.finalize(share)
            share.metadata.annotations.pop(EXPORT_ANNOTATION, None)
            self.remove_finalizer(share)

        self.mount(share, options)
        users = self.resolve_users(share)

        child = SMBShare(
            metadata=ObjectMeta(name=share.name),
            spec=SMBShareSpec(
                share_name=spec.share_name.strip() or share.name,
                mount_path=spec.mount_path.strip() or f"/{dataset}",
                pvc_name=spec.pvc_name.strip(),
                read_only=spec.read_only,
                service_type=spec.service_type,
                node_port=spec.node_port,
                directory_ref=spec.directory_ref,
                users=users,
                options=options,
            ),
        )
        child.owned_by(share)
        stored = self.store.upsert(child)

        share.status.endpoint = stored.status.endpoint
        share.status.set_phase(Phase.READY, "OK")
        return Result(REQUEUE_STEADY)

    def resolve_users(self, share: Share) -> List[SMBUser]:
        """Expand the user and group selectors into users with password secrets."""
        ns = share.namespace
        directory = share.spec.directory_ref
        names = list(share.spec.users.users)
        for group_name in _unique(share.spec.users.groups):
            group = self.store.get(Group, ns, group_name)
            if group is None:
                raise DependencyNotFound(f"group {group_name} not found")
            if not directory_matches(directory, group.spec.directory_ref):
                raise SpecError(f"group {group_name} not in directory {directory or 'local'}")
            names.extend(group.spec.members)

        users = []
        for name in _unique(names):
            user = self.store.get(User, ns, name)
            if user is None:
                raise DependencyNotFound(f"user {name} not found")
            if not directory_matches(directory, user.spec.directory_ref):
                raise SpecError(f"user {name} not in directory {directory or 'local'}")
            username = user.spec.username.strip()
            if username:
                validate_username(username)
            secret = user.spec.password_secret_ref.name.strip()
            if username and secret:
                users.append(SMBUser(username=username, password_secret=secret))
        return users
