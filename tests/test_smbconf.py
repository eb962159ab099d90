import pytest

from strata.errors import SpecError
from strata.renderers.options import AutoPermissions, parse_share_options
from strata.renderers.smbconf import parse_smb_conf, render_smb_conf, vfs_objects


def _share(text, name="media"):
    return parse_smb_conf(text)[name]


def test_render_defaults_round_trip():
    text = render_smb_conf("media", "/tank/media", False)
    share = _share(text)

    assert share["path"] == "/tank/media"
    assert share["browseable"] == "yes"
    assert share["guest ok"] == "no"
    assert share["read only"] == "no"
    assert share["create mask"] == "0664"
    assert share["directory mask"] == "0775"
    assert "vfs objects" not in share
    assert "smb encrypt" not in share
    assert parse_smb_conf(text)["global"]["server role"] == "standalone server"


def test_render_options_round_trip():
    options = parse_share_options({
        "browseable": False,
        "guestOk": True,
        "createMask": "0600",
        "directoryMask": "0700",
        "validUsers": ["alice", "@staff", "alice"],
        "writeList": ["alice"],
    })
    share = _share(render_smb_conf("media", "/tank/media", True, options))

    assert share["browseable"] == "no"
    assert share["guest ok"] == "yes"
    assert share["read only"] == "yes"
    assert share["create mask"] == "0600"
    assert share["directory mask"] == "0700"
    assert share["valid users"] == "alice @staff"
    assert share["write list"] == "alice"


@pytest.mark.parametrize("mask", ["999", "12", "07777", "rwx"])
def test_invalid_masks_rejected(mask):
    options = parse_share_options({"createMask": mask})
    with pytest.raises(SpecError, match="invalid createMask"):
        render_smb_conf("media", "/tank/media", False, options)


def test_numeric_mask_is_accepted_as_text():
    options = parse_share_options({"directoryMask": 755})
    assert _share(render_smb_conf("media", "/p", False, options))["directory mask"] == "755"


def test_vfs_objects_deduplicated_in_first_seen_order():
    options = parse_share_options({
        "macosCompat": True,
        "snapshotExposure": {"enabled": True},
        "timeMachine": {"enabled": True},
    })
    assert vfs_objects(options) == ["fruit", "catia", "streams_xattr", "shadow_copy2"]


def test_time_machine_alone_adds_fruit():
    options = parse_share_options({"timeMachine": {"enabled": True, "volumeSizeLimitBytes": 500000000000}})
    share = _share(render_smb_conf("tm", "/tank/tm", False, options), "tm")

    assert share["vfs objects"] == "fruit"
    assert share["fruit:time machine"] == "yes"
    assert share["fruit:time machine max size"] == "500000000000"
    assert share["fruit:metadata"] == "stream"


def test_time_machine_without_advertisement():
    options = parse_share_options({"timeMachine": {"enabled": True, "advertiseAsTimeMachine": False}})
    share = _share(render_smb_conf("tm", "/tank/tm", False, options), "tm")
    assert "fruit:time machine" not in share


def test_snapshot_exposure_directives():
    options = parse_share_options({
        "snapshotExposure": {"enabled": True, "format": "GMT-%Y.%m.%d-%H.%M.%S", "localTime": False},
    })
    share = _share(render_smb_conf("media", "/tank/media", False, options))

    assert share["shadow:snapdir"] == ".zfs/snapshot"
    assert share["shadow:format"] == "GMT-%Y.%m.%d-%H.%M.%S"
    assert share["shadow:localtime"] == "no"
    assert share["shadow:sort"] == "desc"


@pytest.mark.parametrize("value, directive", [
    ("disabled", "off"),
    ("Desired", "desired"),
    ("REQUIRED", "required"),
])
def test_encryption_mapping(value, directive):
    options = parse_share_options({"encryption": value})
    assert _share(render_smb_conf("media", "/p", False, options))["smb encrypt"] == directive


def test_unknown_encryption_rejected():
    with pytest.raises(SpecError):
        parse_share_options({"encryption": "mandatory"})


def test_unsupported_options_version():
    with pytest.raises(SpecError, match="version"):
        parse_share_options({"version": 2})


def test_global_options_and_directory_block():
    directory_conf = "[global]\n  security = ads\n  realm = CORP.EXAMPLE.COM\n"
    options = parse_share_options({"globalOptions": {"server min protocol": "SMB3", "blank": " "}})
    glob = parse_smb_conf(render_smb_conf("media", "/p", False, options, directory_conf))["global"]

    assert glob["security"] == "ads"
    assert glob["realm"] == "CORP.EXAMPLE.COM"
    assert "server role" not in glob
    assert glob["server min protocol"] == "SMB3"
    assert "blank" not in glob


@pytest.mark.parametrize("name", ["", "bad]name", "a[b"])
def test_invalid_share_names(name):
    with pytest.raises(SpecError):
        render_smb_conf(name, "/p", False)


def test_auto_permissions_forms():
    assert parse_share_options({}).permissions() is None
    assert parse_share_options({"autoPermissions": False}).permissions() is None
    assert parse_share_options({"autoPermissions": True}).permissions() == AutoPermissions()
    resolved = parse_share_options({"autoPermissions": {"mode": "0770", "recursive": True}}).permissions()
    assert (resolved.mode, resolved.recursive) == ("0770", True)
    assert parse_share_options({"autoPermissions": {"enabled": False}}).permissions() is None
