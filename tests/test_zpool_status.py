from strata.agent.status import parse_zpool_status

DEGRADED = """  pool: tank
 state: DEGRADED
status: One or more devices could not be opened.  Sufficient replicas exist for
\tthe pool to continue functioning in a degraded state.
action: Attach the missing device and online it using 'zpool online'.
   see: https://openzfs.github.io/openzfs-docs/msg/ZFS-8000-2Q
  scan: scrub repaired 0B in 00:00:01 with 0 errors on Sun Jan  4 00:24:01 2026
config:

\tNAME                        STATE     READ WRITE CKSUM
\ttank                        DEGRADED     0     0     0
\t  mirror-0                  DEGRADED     0     0     0
\t    ata-DISK_A-part1        ONLINE       0     0     0
\t    ata-DISK_B-part1        UNAVAIL      3     1  1.2K  cannot open

errors: No known data errors
"""


def test_parse_header_fields():
    status = parse_zpool_status(DEGRADED)
    assert status.name == "tank"
    assert status.state == "DEGRADED"
    assert status.action.startswith("Attach the missing device")
    assert status.scan.startswith("scrub repaired 0B")
    assert status.errors == "No known data errors"


def test_parse_joins_continuation_lines():
    status = parse_zpool_status(DEGRADED)
    assert status.status == (
        "One or more devices could not be opened.  Sufficient replicas exist for "
        "the pool to continue functioning in a degraded state."
    )


def test_parse_vdev_rows():
    status = parse_zpool_status(DEGRADED)
    names = [v.name for v in status.vdevs]
    assert names == ["tank", "mirror-0", "ata-DISK_A-part1", "ata-DISK_B-part1"]
    broken = status.vdevs[-1]
    assert broken.state == "UNAVAIL"
    assert (broken.read, broken.write) == (3, 1)
    # Abbreviated counters are not plain integers
    assert broken.cksum == 0


def test_parse_lowercase_state_is_normalized():
    status = parse_zpool_status("  pool: data\n state: online\nconfig:\n\n\tNAME STATE\n\tdata ONLINE\n")
    assert status.state == "ONLINE"
    assert len(status.vdevs) == 1
    assert status.vdevs[0].read == 0


def test_parse_empty_output_uses_requested_name():
    status = parse_zpool_status("", name="ghost")
    assert status.name == "ghost"
    assert status.state == "UNKNOWN"
    assert status.vdevs == []
