import re
from typing import Dict, List, Optional

from strata.errors import SpecError
from strata.renderers.options import SMBShareOptions

MASK_RE = re.compile(r"^[0-7]{3,4}$")

GLOBAL_DEFAULTS = [
    ("server role", "standalone server"),
    ("map to guest", "never"),
    ("disable netbios", "yes"),
    ("smb ports", "445"),
    ("log level", "1"),
    ("load printers", "no"),
    ("printing", "bsd"),
    ("printcap name", "/dev/null"),
    ("disable spoolss", "yes"),
]

ENCRYPTION = {"disabled": "off", "desired": "desired", "required": "required"}


def _yesno(value: bool) -> str:
    return "yes" if value else "no"


def _unique(items: List[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        item = item.strip()
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out


def vfs_objects(options: SMBShareOptions) -> List[str]:
    """VFS modules for the enabled features, first-seen order, no duplicates."""
    vfs = []
    if options.macos_compat:
        vfs += ["fruit", "catia", "streams_xattr"]
    if options.snapshot_exposure and options.snapshot_exposure.enabled:
        vfs.append("shadow_copy2")
    if options.time_machine and options.time_machine.enabled:
        vfs.append("fruit")
    return _unique(vfs)


def _global_lines(options: SMBShareOptions, directory_conf: Optional[str]) -> List[str]:
    settings: Dict[str, str] = dict(GLOBAL_DEFAULTS)
    if directory_conf:
        directory_settings = parse_smb_conf(directory_conf).get("global", {})
        if directory_settings:
            settings.pop("server role", None)
            settings.update(directory_settings)
    for key in sorted(options.global_options):
        settings[key.strip()] = options.global_options[key].strip()
    return ["[global]"] + [f"  {k} = {v}" for k, v in settings.items()]


def render_smb_conf(share_name: str, path: str, read_only: bool,
                    options: Optional[SMBShareOptions] = None,
                    directory_conf: Optional[str] = None) -> str:
    """
    Render a complete smb.conf for a single share.

    `directory_conf` is the directory-join block produced for an Active
    Directory identity source; its [global] settings replace the standalone
    server role.
    """
    options = options or SMBShareOptions()
    share_name = (share_name or "").strip()
    if not share_name or any(c in share_name for c in "[]\n"):
        raise SpecError(f"invalid share name: {share_name!r}")
    for field, value in (("createMask", options.create_mask), ("directoryMask", options.directory_mask)):
        if value is not None and not MASK_RE.match(value):
            raise SpecError(f"invalid {field}: {value!r}")

    lines = [
        f"[{share_name}]",
        f"  path = {path}",
        f"  browseable = {_yesno(options.browseable if options.browseable is not None else True)}",
        f"  guest ok = {_yesno(bool(options.guest_ok))}",
        f"  read only = {_yesno(read_only)}",
        f"  create mask = {options.create_mask or '0664'}",
        f"  directory mask = {options.directory_mask or '0775'}",
    ]
    if options.inherit_perms is not None:
        lines.append(f"  inherit permissions = {_yesno(options.inherit_perms)}")

    vfs = vfs_objects(options)
    if vfs:
        lines.append(f"  vfs objects = {' '.join(vfs)}")
    if "fruit" in vfs:
        lines += [
            "  fruit:metadata = stream",
            "  fruit:resource = xattr",
            "  fruit:posix_rename = yes",
        ]

    exposure = options.snapshot_exposure
    if exposure and exposure.enabled:
        lines.append("  shadow:snapdir = .zfs/snapshot")
        if exposure.format:
            lines.append(f"  shadow:format = {exposure.format}")
        lines.append(f"  shadow:localtime = {_yesno(exposure.local_time is not False)}")
        lines.append("  shadow:sort = desc")

    tm = options.time_machine
    if tm and tm.enabled:
        if tm.advertise_as_time_machine is not False:
            lines.append("  fruit:time machine = yes")
        if tm.volume_size_limit_bytes is not None:
            lines.append(f"  fruit:time machine max size = {tm.volume_size_limit_bytes}")
        lines += ["  ea support = yes", "  inherit acls = yes"]

    if options.encryption:
        lines.append(f"  smb encrypt = {ENCRYPTION[options.encryption]}")
    if options.valid_users:
        lines.append(f"  valid users = {' '.join(_unique(options.valid_users))}")
    if options.write_list:
        lines.append(f"  write list = {' '.join(_unique(options.write_list))}")

    return "\n".join(_global_lines(options, directory_conf) + [""] + lines) + "\n"


def parse_smb_conf(text: str) -> Dict[str, Dict[str, str]]:
    """Read smb.conf text back into {section: {key: value}}."""
    sections: Dict[str, Dict[str, str]] = {}
    current = None
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith(("#", ";")):
            continue
        if line.startswith("[") and line.endswith("]"):
            current = sections.setdefault(line[1:-1].strip(), {})
            continue
        if current is None or "=" not in line:
            continue
        key, _, value = line.partition("=")
        current[key.strip()] = value.strip()
    return sections
