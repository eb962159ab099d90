import json
from unittest.mock import patch

from strata.agent import disks
from strata.agent.disks import is_whole_disk, list_disks, partition_path, resolve_disk_path
from strata.errors import CommandError

LSBLK = json.dumps({
    "blockdevices": [
        {"name": "sda", "type": "disk", "size": 4000787030016, "rota": True, "model": "WDC WD40EFRX "},
        {"name": "nvme0n1", "type": "disk", "size": 500107862016, "rota": False, "model": "Samsung SSD"},
        {"name": "sr0", "type": "rom", "size": 1073741312, "rota": True, "model": "DVD"},
    ]
})

REALPATHS = {
    "/dev/disk/by-id/ata-WDC_WD40EFRX_1": "/dev/sda",
    "/dev/disk/by-id/ata-WDC_WD40EFRX_1-part1": "/dev/sda1",
    "/dev/disk/by-id/wwn-0x5000c500a1": "/dev/sda",
    "/dev/disk/by-id/nvme-Samsung_SSD_1": "/dev/nvme0n1",
    "/dev/disk/by-path/pci-0000:00:17.0-ata-1": "/dev/sda",
}


def _glob(pattern):
    directory = pattern.rsplit("/", 1)[0]
    return [p for p in REALPATHS if p.startswith(directory + "/")]


@patch("strata.agent.disks.os.path.realpath", side_effect=lambda p: REALPATHS.get(p, p))
@patch("strata.agent.disks.glob.glob", side_effect=_glob)
@patch("strata.agent.disks.run", return_value=LSBLK)
def test_list_disks_prefers_persistent_ids(mock_run, mock_glob, mock_realpath):
    result = list_disks()

    assert [d.id for d in result] == ["ata-WDC_WD40EFRX_1", "nvme-Samsung_SSD_1"]
    sda = result[0]
    assert sda.path == "/dev/disk/by-id/ata-WDC_WD40EFRX_1"
    assert sda.size == 4000787030016
    assert sda.model == "WDC WD40EFRX"
    assert sda.rotational is True
    assert result[1].rotational is False


@patch("strata.agent.disks.glob.glob", return_value=[])
@patch("strata.agent.disks.run", return_value=LSBLK)
def test_list_disks_falls_back_to_lsblk(mock_run, mock_glob):
    result = list_disks()
    assert [(d.id, d.path) for d in result] == [("nvme0n1", "/dev/nvme0n1"), ("sda", "/dev/sda")]


@patch("strata.agent.disks.run", side_effect=CommandError(["lsblk"], output="lsblk: command not found", returncode=127))
def test_block_device_index_tolerates_missing_lsblk(mock_run):
    assert disks.block_device_index() == {}


def test_partition_path_follows_kernel_naming():
    assert partition_path("/dev/sdb") == "/dev/sdb1"
    assert partition_path("/dev/nvme0n1") == "/dev/nvme0n1p1"
    assert partition_path("/dev/mmcblk0", 2) == "/dev/mmcblk0p2"


@patch("strata.agent.disks.os.path.realpath", side_effect=lambda p: p)
def test_is_whole_disk_by_name(mock_realpath):
    assert is_whole_disk("/dev/sdb")
    assert is_whole_disk("/dev/nvme1n1")
    assert is_whole_disk("/dev/xvdf")
    assert not is_whole_disk("/dev/sdb1")
    assert not is_whole_disk("/dev/nvme1n1p2")


@patch("strata.agent.disks.os.path.realpath", side_effect=lambda p: REALPATHS.get(p, p))
def test_is_whole_disk_uses_lsblk_index(mock_realpath):
    index = {"sda": {"name": "sda", "type": "disk"}}
    assert is_whole_disk("/dev/disk/by-id/ata-WDC_WD40EFRX_1", index)
    assert not is_whole_disk("/dev/disk/by-id/ata-WDC_WD40EFRX_1-part1", index)


@patch("strata.agent.disks.os.path.exists", side_effect=lambda p: p == "/dev/disk/by-path/pci-0000:00:17.0-ata-1")
def test_resolve_disk_path(mock_exists):
    assert resolve_disk_path("/dev/sdc") == "/dev/sdc"
    assert resolve_disk_path("pci-0000:00:17.0-ata-1") == "/dev/disk/by-path/pci-0000:00:17.0-ata-1"
    assert resolve_disk_path("sdq") == "/dev/sdq"
