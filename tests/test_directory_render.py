import json
from unittest.mock import patch

import pytest

from strata.errors import SpecError
from strata.renderers.directory import (
    DirectorySpec,
    check_connectivity,
    derive_ad_names,
    idmap_range,
    normalize_bind_dn,
    normalize_directory_type,
    render_directory,
    validate_directory,
)
from strata.renderers.smbconf import parse_smb_conf

AD = {
    "type": "ad",
    "servers": ["ldap://dc1.corp.example.com"],
    "baseDN": "DC=corp,DC=example,DC=com",
    "bind": {"username": "svc-strata", "secretRef": {"name": "ad-bind"}},
}


def _spec(**overrides):
    data = dict(AD)
    data.update(overrides)
    return DirectorySpec.model_validate(data)


@pytest.mark.parametrize("raw, expected", [
    ("", "local"),
    ("LDAP", "ldap"),
    ("ad", "activeDirectory"),
    ("Active-Directory", "activeDirectory"),
    ("activeDirectory", "activeDirectory"),
])
def test_normalize_directory_type(raw, expected):
    assert normalize_directory_type(raw) == expected


def test_unknown_type_rejected():
    with pytest.raises(SpecError, match="unsupported type"):
        normalize_directory_type("nis")


def test_validation_reports_every_problem():
    spec = DirectorySpec.model_validate({"type": "ldap", "servers": ["dc1:389", " "]})
    with pytest.raises(SpecError) as ctx:
        validate_directory(spec)
    message = str(ctx.value)
    assert "baseDN required" in message
    assert "bind.secretRef required" in message
    assert "bind.username required" in message
    assert "; " in message


def test_ldaps_with_verify_needs_ca():
    spec = _spec(servers=["ldaps://dc1.corp.example.com"], tls={"verify": True})
    with pytest.raises(SpecError, match="caBundleSecretRef"):
        validate_directory(spec)

    spec = _spec(servers=["ldaps://dc1.corp.example.com"],
                 tls={"verify": True, "caBundleSecretRef": {"name": "ad-ca"}})
    assert validate_directory(spec) == ("activeDirectory", True)


def test_unsupported_scheme():
    with pytest.raises(SpecError, match="unsupported server scheme"):
        validate_directory(_spec(servers=["http://dc1"]))


def test_local_needs_nothing():
    assert validate_directory(DirectorySpec()) == ("local", False)


def test_ad_names_from_base_dn():
    names = derive_ad_names(_spec())
    assert names.realm == "CORP.EXAMPLE.COM"
    assert names.workgroup == "CORP"
    assert names.domain == "corp.example.com"


def test_ad_names_explicit():
    names = derive_ad_names(_spec(realm="ad.example.org", workgroup="example"))
    assert names == ("AD.EXAMPLE.ORG", "EXAMPLE", "ad.example.org")


def test_idmap_range():
    assert idmap_range(None) == (10000, 909999)
    spec = _spec(idMapping={"uidStart": 200000, "gidStart": 100000})
    assert idmap_range(spec.id_mapping) == (100000, 999999)


def test_bind_dn_normalization():
    assert normalize_bind_dn("activeDirectory", "svc", "DC=corp,DC=com") == "CN=svc,CN=Users,DC=corp,DC=com"
    assert normalize_bind_dn("activeDirectory", "svc@corp.com", "DC=corp,DC=com") == "svc@corp.com"
    assert normalize_bind_dn("ldap", "svc", "dc=corp") == "svc"


def test_render_active_directory():
    artifacts = render_directory(_spec(groupResolution={"nestedGroups": True}), bind_password="s3cret")

    smb = parse_smb_conf(artifacts.smb_conf)["global"]
    assert smb["security"] == "ads"
    assert smb["realm"] == "CORP.EXAMPLE.COM"
    assert smb["idmap config CORP : backend"] == "ad"
    assert smb["idmap config CORP : range"] == "10000-909999"

    assert "default_realm = CORP.EXAMPLE.COM" in artifacts.krb5_conf
    assert "kdc = dc1.corp.example.com" in artifacts.krb5_conf

    assert "domains = corp.example.com" in artifacts.sssd_conf
    assert "ldap_default_bind_dn = CN=svc-strata,CN=Users,DC=corp,DC=example,DC=com" in artifacts.sssd_conf
    assert "ldap_default_authtok = s3cret" in artifacts.sssd_conf
    assert "ldap_id_use_start_tls = True" in artifacts.sssd_conf
    assert "ldap_group_nesting_level = 5" in artifacts.sssd_conf

    summary = json.loads(artifacts.directory_json)
    assert summary["type"] == "activeDirectory"
    assert summary["bind"] == {"username": "svc-strata", "secretName": "ad-bind"}


def test_render_autorid_mode():
    artifacts = render_directory(_spec(idMapping={"strategy": "autorid"}), bind_password="x")
    smb = parse_smb_conf(artifacts.smb_conf)["global"]
    assert smb["idmap config CORP : backend"] == "autorid"
    assert "idmap config CORP : schema_mode" not in smb


def test_render_ldap_with_ca_bundle():
    spec = DirectorySpec.model_validate({
        "type": "ldap",
        "servers": ["ldaps://ldap.example.com"],
        "baseDN": "dc=example,dc=com",
        "bind": {"username": "cn=reader,dc=example,dc=com", "secretRef": {"name": "ldap-bind"}},
    })
    artifacts = render_directory(spec, bind_password="pw", ca_bundle=b"CERT")

    assert artifacts.krb5_conf == ""
    assert "ldap_tls_reqcert = demand" in artifacts.sssd_conf
    assert "ldap_id_use_start_tls" not in artifacts.sssd_conf
    assert artifacts.ca_bundle == b"CERT"


def test_sssd_requires_bind_password():
    with pytest.raises(SpecError, match="password"):
        render_directory(_spec())


def test_hash_tracks_inputs():
    first = render_directory(_spec(), bind_password="a")
    assert render_directory(_spec(), bind_password="a").hash == first.hash
    assert render_directory(_spec(), bind_password="b").hash != first.hash
    assert render_directory(_spec(), bind_password="a", hash_extra=("7",)).hash != first.hash


def test_local_directory_renders_without_sssd():
    artifacts = render_directory(DirectorySpec(type="local"))
    assert artifacts.sssd_conf == ""
    assert artifacts.krb5_conf == ""


def test_check_connectivity():
    assert check_connectivity("local", [])[0] is True
    assert check_connectivity("ldap", [])[0] is False
    with patch("strata.renderers.directory.socket.create_connection") as mock_connect:
        ok, message = check_connectivity("ldap", ["ldaps://ldap.example.com"])
    assert ok is True
    mock_connect.assert_called_once_with(("ldap.example.com", 636), timeout=2.0)
    with patch("strata.renderers.directory.socket.create_connection", side_effect=OSError("refused")):
        ok, _ = check_connectivity("ldap", ["ldap://ldap.example.com"])
    assert ok is False
