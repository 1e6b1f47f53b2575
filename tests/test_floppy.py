import pytest

from images import blank_store

from perqdisk.floppy import DESKEW, SECTOR_ORDER, SKEW_TABLE, POSFloppy, RT11Floppy
from perqdisk.geometry import Address, Block, DeviceGeometry
from perqdisk.sector import SectorStore


def test_skew_table():
    assert SKEW_TABLE == [1, 7, 13, 19, 25, 5, 11, 17, 23, 3, 9, 15, 21]


def test_rt11_floppy_blocks():
    assert RT11Floppy(blank_store("SSSD")).number_of_blocks == 494
    assert RT11Floppy(blank_store("SSDD")).number_of_blocks == 988
    assert RT11Floppy(blank_store("DSSD")).number_of_blocks == 994
    assert RT11Floppy(blank_store("DSDD")).number_of_blocks == 1989
    with pytest.raises(ValueError):
        RT11Floppy(SectorStore(DeviceGeometry(77, 1, 26, 512)))
    with pytest.raises(ValueError):
        RT11Floppy(SectorStore(DeviceGeometry(77, 1, 15, 128)))


def test_rt11_floppy_sectors():
    disk = RT11Floppy(blank_store("SSSD"))
    assert disk.physical_sectors(0) == [(0, 1), (0, 3), (0, 5), (0, 7)]
    assert disk.physical_sectors(1) == [(0, 9), (0, 11), (0, 13), (0, 15)]
    # Odd sectors first, then even ones, then the next track with its skew
    assert disk.physical_sectors(6) == [(0, 24), (0, 26), (1, 7), (1, 9)]
    dd = RT11Floppy(blank_store("SSDD"))
    assert dd.physical_sectors(0) == [(0, 1), (0, 3)]
    assert dd.physical_sectors(13) == [(1, 7), (1, 9)]
    with pytest.raises(ValueError):
        disk.physical_sectors(494)
    with pytest.raises(ValueError):
        disk.physical_sectors(-1)


@pytest.mark.parametrize("name", ["SSSD", "SSDD", "DSSD", "DSDD"])
def test_rt11_floppy_sectors_distinct(name):
    disk = RT11Floppy(blank_store(name))
    seen = set()
    for lbn in range(disk.number_of_blocks):
        sectors = disk.physical_sectors(lbn)
        assert len(sectors) == disk.sectors_per_block
        for track, sector in sectors:
            assert 0 <= track < disk.tracks
            assert 1 <= sector <= 26
            assert (track, sector) not in seen
            seen.add((track, sector))


def test_rt11_floppy_track_to_cylinder():
    ss = RT11Floppy(blank_store("SSSD"))
    assert ss.track_to_cylinder_head(0) == (1, 0)
    assert ss.track_to_cylinder_head(75) == (76, 0)
    with pytest.raises(ValueError):
        ss.track_to_cylinder_head(76)
    ds = RT11Floppy(blank_store("DSSD"))
    assert ds.track_to_cylinder_head(76) == (0, 1)
    assert ds.track_to_cylinder_head(152) == (76, 1)


def test_rt11_floppy_read_write(caplog):
    store = blank_store("SSSD")
    disk = RT11Floppy(store)
    for lbn in range(disk.number_of_blocks):
        disk.write_block(bytes([(lbn + 1) & 0xFF]) * 512, lbn)
    for lbn in range(disk.number_of_blocks):
        assert disk.read_block(lbn) == bytes([(lbn + 1) & 0xFF]) * 512
    # Track 0 (cylinder 0) is not used
    for sector in range(26):
        assert store.read_sector(0, 0, sector) == bytes(128)
    assert store.read_sector(1, 0, 0) == b"\x01" * 128
    assert store.read_sector(1, 0, 2) == b"\x01" * 128
    disk.write_physical(0, 1, b"short")
    assert "expected 128" in caplog.text
    assert store.read_sector(1, 0, 0) == b"\x01" * 128


def test_pos_floppy_geometry():
    sd = POSFloppy(blank_store("SSSD"))
    assert sd.number_of_blocks == 77 * 6 - 5 * 6
    assert sd.logical_to_physical(Block(0, 0, 0, True)) == Block(5, 0, 3, False)
    dd = POSFloppy(blank_store("DSDD"))
    assert dd.number_of_blocks == 2 * 77 * 12 - 3 * 12
    assert dd.logical_to_physical(Block(0, 0, 0, True)) == Block(3, 0, 3, False)
    assert dd.logical_to_physical(dd.lbn_to_block(74 * 12)) == Block(0, 1, 3, False)
    assert dd.lbn_to_lda(5) == Address(0xE0000500, True)


@pytest.mark.parametrize("name", ["SSSD", "SSDD", "DSSD", "DSDD"])
def test_pos_floppy_round_trip(name):
    disk = POSFloppy(blank_store(name))
    for lbn in range(disk.number_of_blocks):
        block = disk.lbn_to_block(lbn)
        physical = disk.logical_to_physical(block)
        assert physical.sector == disk.sector_order[block.sector][0]
        assert disk.physical_to_logical(physical) == block
        assert disk.pda_to_block(disk.block_to_pda(physical)) == physical
        assert disk.address_to_block(disk.block_to_address(block)) == block


def test_pos_floppy_second_side_pda():
    disk = POSFloppy(blank_store("DSSD"))
    physical = Block(0, 1, 3, False)
    address = disk.block_to_pda(physical)
    assert address.high == 77
    assert address.low == 3
    assert disk.pda_to_block(address) == physical


def test_pos_floppy_physical_to_logical_errors():
    disk = POSFloppy(blank_store("SSSD"))
    with pytest.raises(ValueError):
        disk.physical_to_logical(Block(2, 0, 3, False))
    # Second sector of logical sector 0
    with pytest.raises(ValueError):
        disk.physical_to_logical(Block(5, 0, 8, False))
    # Header sector
    with pytest.raises(ValueError):
        disk.physical_to_logical(Block(5, 0, 1, False))
    with pytest.raises(ValueError):
        disk.physical_to_logical(Block(5, 0, 3, True))


def test_deskew_tables():
    for sector_size, order in SECTOR_ORDER.items():
        sectors_per_block = 512 // sector_size
        for i, sectors in enumerate(order):
            assert DESKEW[sector_size].index(sectors[0] // sectors_per_block) == i
        all_sectors = sorted(x for sectors in order for x in sectors)
        assert all_sectors == list(range(3, 27))


def test_pos_floppy_write_through():
    store = blank_store("SSDD")
    disk = POSFloppy(store)
    data = bytes(range(256)) * 2
    disk.write_block(data, 7)
    block = disk.lbn_to_block(7)
    physical = disk.logical_to_physical(block)
    first, second = disk.sector_order[block.sector]
    assert store.read_sector(physical.cylinder, physical.head, first - 1) == data[:256]
    assert store.read_sector(physical.cylinder, physical.head, second - 1) == data[256:]
    assert POSFloppy(store).read_block(7) == data
    with pytest.raises(ValueError):
        disk.read_block(disk.number_of_blocks)


def test_pos_floppy_headers():
    store = blank_store("SSSD")
    header = b"".join(bytes([i]) * 16 for i in range(6))
    # Cylinder 6 is logical cylinder 1, physical sector 1 is the header sector
    store.write_sector(6, 0, 0, header[:128])
    disk = POSFloppy(store)
    assert disk.read_logical_header(6) == bytes([0]) * 16
    assert disk.read_logical_header(8) == bytes([2]) * 16
    assert disk.read_logical_header(0) == bytes(16)
