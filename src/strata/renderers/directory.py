import hashlib
import json
import logging
import socket
from typing import List, NamedTuple, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from strata.errors import SpecError

logger = logging.getLogger(__name__)

LOCAL = "local"
LDAP = "ldap"
ACTIVE_DIRECTORY = "activeDirectory"

_TYPE_ALIASES = {
    "": LOCAL,
    "local": LOCAL,
    "ldap": LDAP,
    "activedirectory": ACTIVE_DIRECTORY,
    "active-directory": ACTIVE_DIRECTORY,
    "ad": ACTIVE_DIRECTORY,
}

SSSD_CA_PATH = "/etc/sssd/certs/ca.crt"
IDMAP_DEFAULT_START = 10000
IDMAP_WIDTH = 900000


class _Spec(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SecretRef(_Spec):
    name: str = ""


class BindSpec(_Spec):
    username: str = ""
    secret_ref: Optional[SecretRef] = None


class TLSSpec(_Spec):
    ca_bundle_secret_ref: Optional[SecretRef] = None
    verify: bool = False


class IDMapping(_Spec):
    strategy: str = ""
    uid_attribute: str = ""
    gid_attribute: str = ""
    uid_start: int = 0
    gid_start: int = 0


class GroupResolution(_Spec):
    nested_groups: bool = False


class LocalSettings(_Spec):
    uid_start: int = 0
    gid_start: int = 0
    strategy: str = ""


class DirectorySpec(_Spec):
    type: str = ""
    servers: List[str] = []
    base_dn: str = Field(default="", alias="baseDN")
    realm: str = ""
    workgroup: str = ""
    bind: Optional[BindSpec] = None
    tls: Optional[TLSSpec] = None
    id_mapping: Optional[IDMapping] = None
    group_resolution: Optional[GroupResolution] = None
    local: Optional[LocalSettings] = None

    def bind_secret_name(self) -> str:
        if self.bind is None or self.bind.secret_ref is None:
            return ""
        return self.bind.secret_ref.name.strip()

    def ca_secret_name(self) -> str:
        if self.tls is None or self.tls.ca_bundle_secret_ref is None:
            return ""
        return self.tls.ca_bundle_secret_ref.name.strip()

    def uses_secret(self, name: str) -> bool:
        return bool(name) and name in (self.bind_secret_name(), self.ca_secret_name())


class ADNames(NamedTuple):
    realm: str
    workgroup: str
    domain: str


class DirectoryArtifacts(NamedTuple):
    directory_json: str
    smb_conf: str
    krb5_conf: str
    sssd_conf: str
    ca_bundle: bytes
    hash: str


def normalize_directory_type(raw: Optional[str]) -> str:
    key = (raw or "").strip().lower()
    if key not in _TYPE_ALIASES:
        raise SpecError(f"unsupported type: {raw}")
    return _TYPE_ALIASES[key]


def clean_servers(servers: List[str]) -> List[str]:
    return [s.strip() for s in servers if s and s.strip()]


def validate_directory(spec: DirectorySpec) -> Tuple[str, bool]:
    """
    Returns (normalized type, uses ldaps). Every violation is collected and
    reported together as one SpecError.
    """
    dir_type = normalize_directory_type(spec.type)
    if dir_type == LOCAL:
        return dir_type, False

    errors = []
    uses_ldaps = False
    if not clean_servers(spec.servers):
        errors.append("servers required for non-local directory")
    if not spec.base_dn.strip():
        errors.append("baseDN required for non-local directory")
    if not spec.bind_secret_name():
        errors.append("bind.secretRef required for non-local directory")
    if spec.bind is None or not spec.bind.username.strip():
        errors.append("bind.username required for non-local directory")

    for raw in clean_servers(spec.servers):
        parsed = urlparse(raw)
        if not parsed.scheme or not parsed.netloc:
            errors.append(f"invalid server url: {raw}")
            continue
        scheme = parsed.scheme.lower()
        if scheme == "ldaps":
            uses_ldaps = True
        elif scheme != "ldap":
            errors.append(f"unsupported server scheme: {parsed.scheme}")

    if uses_ldaps and spec.tls is not None and spec.tls.verify and not spec.ca_secret_name():
        errors.append("tls.verify=true requires caBundleSecretRef for ldaps servers")

    if errors:
        raise SpecError("; ".join(errors))
    return dir_type, uses_ldaps


def realm_from_base_dn(base_dn: str) -> str:
    parts = []
    for part in base_dn.split(","):
        part = part.strip()
        if part.lower().startswith("dc="):
            parts.append(part[3:].strip())
    return ".".join(parts).upper()


def derive_ad_names(spec: DirectorySpec) -> ADNames:
    realm = spec.realm.strip() or realm_from_base_dn(spec.base_dn)
    if not realm:
        raise SpecError("realm required for activeDirectory")
    realm = realm.upper()
    workgroup = spec.workgroup.strip() or realm.split(".")[0]
    if not workgroup:
        raise SpecError("workgroup required for activeDirectory")
    domain = realm.lower().replace(" ", "")
    return ADNames(realm, workgroup.upper(), domain)


def idmap_range(id_mapping: Optional[IDMapping]) -> Tuple[int, int]:
    start = IDMAP_DEFAULT_START
    if id_mapping is not None:
        if id_mapping.uid_start > 0:
            start = id_mapping.uid_start
        if 0 < id_mapping.gid_start < start:
            start = id_mapping.gid_start
    return start, start + IDMAP_WIDTH - 1


def first_server_host(servers: List[str]) -> str:
    for raw in clean_servers(servers):
        host = urlparse(raw).hostname
        if host:
            return host
    return ""


def render_directory_json(spec: DirectorySpec, dir_type: str) -> str:
    out = {"type": dir_type}
    if spec.servers:
        out["servers"] = spec.servers
    for key, value in (("baseDN", spec.base_dn), ("realm", spec.realm), ("workgroup", spec.workgroup)):
        if value:
            out[key] = value
    if spec.bind is not None:
        out["bind"] = {k: v for k, v in (("username", spec.bind.username.strip()),
                                          ("secretName", spec.bind_secret_name())) if v}
    if spec.tls is not None:
        tls = {}
        if spec.ca_secret_name():
            tls["caBundleSecretName"] = spec.ca_secret_name()
        if spec.tls.verify:
            tls["verify"] = True
        out["tls"] = tls
    for key, value in (("idMapping", spec.id_mapping), ("groupResolution", spec.group_resolution),
                       ("local", spec.local)):
        if value is not None:
            out[key] = value.model_dump(by_alias=True)
    return json.dumps(out, indent=2) + "\n"


def render_smb_directory_conf(spec: DirectorySpec, dir_type: str) -> Tuple[str, str]:
    """Returns (smb.conf join block, krb5.conf). Only Active Directory produces settings."""
    if dir_type != ACTIVE_DIRECTORY:
        return "# directory: local/ldap (no SMB settings)\n", ""

    names = derive_ad_names(spec)
    kdc = first_server_host(spec.servers)
    if not kdc:
        raise SpecError("activeDirectory requires at least one server host")

    wg = names.workgroup
    lines = [
        "[global]",
        "  security = ads",
        f"  realm = {names.realm}",
        f"  workgroup = {wg}",
        "  kerberos method = secrets and keytab",
        "  winbind use default domain = yes",
        "  winbind refresh tickets = yes",
        "  winbind offline logon = yes",
        "  template shell = /bin/bash",
        "  template homedir = /home/%U",
        "  idmap config * : backend = tdb",
        "  idmap config * : range = 3000-7999",
    ]
    start, end = idmap_range(spec.id_mapping)
    strategy = spec.id_mapping.strategy.strip().lower() if spec.id_mapping else ""
    if strategy == "autorid":
        lines += [
            f"  idmap config {wg} : backend = autorid",
            f"  idmap config {wg} : range = {start}-{end}",
        ]
    else:
        lines += [
            f"  idmap config {wg} : backend = ad",
            f"  idmap config {wg} : schema_mode = rfc2307",
            f"  idmap config {wg} : range = {start}-{end}",
            "  winbind nss info = rfc2307",
        ]

    krb5 = "\n".join([
        "[libdefaults]",
        f"  default_realm = {names.realm}",
        "  dns_lookup_realm = false",
        "  dns_lookup_kdc = true",
        "",
        "[realms]",
        f"{names.realm} = {{",
        f"  kdc = {kdc}",
        f"  admin_server = {kdc}",
        "}",
        "",
        "[domain_realm]",
        f"  .{names.domain} = {names.realm}",
        f"  {names.domain} = {names.realm}",
        "",
    ])
    return "\n".join(lines) + "\n", krb5


def normalize_bind_dn(dir_type: str, username: str, base_dn: str) -> str:
    username = username.strip()
    if not username or "=" in username or "@" in username:
        return username
    if dir_type == ACTIVE_DIRECTORY and base_dn.strip():
        return f"CN={username},CN=Users,{base_dn}"
    return username


def render_sssd_conf(spec: DirectorySpec, dir_type: str, bind_password: Optional[str],
                     ca_bundle: Optional[bytes] = None) -> str:
    """Identity-cache config. Empty for local directories; a bind password is mandatory otherwise."""
    if dir_type == LOCAL:
        return ""
    if not bind_password:
        raise SpecError(f"bind secret with a password required for {dir_type} directory")
    username = spec.bind.username.strip() if spec.bind else ""
    if not username:
        raise SpecError(f"bind.username required for {dir_type} directory")
    bind_dn = normalize_bind_dn(dir_type, username, spec.base_dn)

    try:
        domain = derive_ad_names(spec).domain
    except SpecError:
        domain = realm_from_base_dn(spec.base_dn).lower()
    if not domain:
        raise SpecError("unable to determine domain for sssd.conf")

    uris = clean_servers(spec.servers)
    if not uris:
        raise SpecError("servers required for sssd.conf")
    has_ldaps = any(urlparse(u).scheme.lower() == "ldaps" for u in uris)
    start_tls = dir_type == ACTIVE_DIRECTORY and not has_ldaps

    lines = [
        "[sssd]",
        "services = nss, pam",
        f"domains = {domain}",
        "",
        f"[domain/{domain}]",
        "id_provider = ldap",
        "auth_provider = ldap",
        f"ldap_uri = {','.join(uris)}",
        f"ldap_search_base = {spec.base_dn}",
        f"ldap_default_bind_dn = {bind_dn}",
        f"ldap_default_authtok = {bind_password}",
        "ldap_default_authtok_type = password",
        "cache_credentials = True",
        "enumerate = True",
    ]
    if start_tls:
        lines.append("ldap_id_use_start_tls = True")

    strategy = spec.id_mapping.strategy.strip().lower() if spec.id_mapping else ""
    if strategy in ("", "rfc2307"):
        lines += ["ldap_schema = rfc2307", "ldap_id_mapping = False"]

    if dir_type == ACTIVE_DIRECTORY:
        uid_attr = (spec.id_mapping.uid_attribute if spec.id_mapping else "") or "uidNumber"
        gid_attr = (spec.id_mapping.gid_attribute if spec.id_mapping else "") or "gidNumber"
        lines += [
            "ldap_referrals = False",
            "ldap_user_object_class = user",
            "ldap_group_object_class = group",
            "ldap_user_name = sAMAccountName",
            "ldap_group_name = sAMAccountName",
            f"ldap_user_uid_number = {uid_attr}",
            f"ldap_group_gid_number = {gid_attr}",
        ]
    if spec.group_resolution is not None and spec.group_resolution.nested_groups:
        lines.append("ldap_group_nesting_level = 5")

    if ca_bundle:
        lines += ["ldap_tls_reqcert = demand", f"ldap_tls_cacert = {SSSD_CA_PATH}"]
    elif has_ldaps or start_tls:
        lines.append("ldap_tls_reqcert = allow")
    return "\n".join(lines) + "\n"


def directory_hash(*parts) -> str:
    h = hashlib.sha256()
    for part in parts:
        if not part:
            continue
        h.update(part if isinstance(part, bytes) else str(part).encode())
    return h.hexdigest()


def render_directory(spec: DirectorySpec, bind_password: Optional[str] = None,
                     ca_bundle: Optional[bytes] = None,
                     hash_extra: Tuple[str, ...] = ()) -> DirectoryArtifacts:
    """Validate and render every artifact for a directory. Nothing is returned on error."""
    dir_type, _ = validate_directory(spec)
    directory_json = render_directory_json(spec, dir_type)
    smb_conf, krb5_conf = render_smb_directory_conf(spec, dir_type)
    sssd_conf = render_sssd_conf(spec, dir_type, bind_password, ca_bundle)
    ca_bundle = ca_bundle or b""
    digest = directory_hash(directory_json, smb_conf, krb5_conf, sssd_conf, ca_bundle, *hash_extra)
    return DirectoryArtifacts(directory_json, smb_conf, krb5_conf, sssd_conf, ca_bundle, digest)


def check_connectivity(dir_type: str, servers: List[str], timeout: float = 2.0) -> Tuple[bool, str]:
    """TCP reachability of the first answering directory server."""
    if dir_type == LOCAL:
        return True, "local directory"
    if not clean_servers(servers):
        return False, "no directory servers configured"
    for raw in clean_servers(servers):
        parsed = urlparse(raw)
        if not parsed.hostname:
            continue
        try:
            port = parsed.port or (636 if parsed.scheme.lower() == "ldaps" else 389)
        except ValueError:
            continue
        try:
            with socket.create_connection((parsed.hostname, port), timeout=timeout):
                return True, f"reachable: {parsed.hostname}:{port}"
        except OSError as e:
            logger.debug(f"directory server {parsed.hostname}:{port} unreachable: {e}")
    return False, "no directory servers reachable"
