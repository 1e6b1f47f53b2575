import errno
import logging
from datetime import date

import pytest

from images import blank_store, pattern, rt11_floppy

from perqdisk.commons import word_to_bytes
from perqdisk.floppy import RT11Floppy
from perqdisk.rt11.rt11fs import (
    E_MPTY,
    E_NONE,
    E_PERM,
    E_TENT,
    Outcome,
    RT11Filesystem,
    date_to_rt11,
    rt11_date_to_str,
    rt11_to_date,
)


def entries(fs):
    return [(x.status, x.filename, x.length, x.file_position) for x in fs.files]


def patch_header(disk, block_number, position, value):
    buffer = bytearray(disk.read_block(block_number))
    buffer[position : position + 2] = word_to_bytes(value)
    disk.write_block(bytes(buffer), block_number)


def test_rt11_date():
    val = date_to_rt11(date(1985, 3, 14))
    assert val == 3 << 10 | 14 << 5 | 13
    assert rt11_date_to_str(val) == "14-MAR-85"
    assert rt11_to_date(val) == date(1985, 3, 14)
    # Years after 1999 are moved back by decades
    assert rt11_date_to_str(date_to_rt11(date(2026, 10, 19))) == "19-OCT-96"
    assert rt11_date_to_str(13 << 10 | 1 << 5) == "1-BAD-72"
    assert rt11_to_date(13 << 10 | 1 << 5) is None
    assert rt11_to_date(0) is None
    assert date_to_rt11(None) == 0


def test_rt11_initialize():
    _, disk, fs = rt11_floppy()
    assert RT11Filesystem.probe(disk)
    assert entries(fs) == [(E_MPTY, "", 480, 14)]
    assert fs.blocks_free == 480
    assert fs.high_segment == 1
    assert fs.extra_bytes == 2
    assert fs.start_segment == 14
    assert list(fs.filter_entries_list("*")) == []


def test_rt11_not_a_volume():
    disk = RT11Floppy(blank_store("SSSD"))
    assert not RT11Filesystem.probe(disk)
    with pytest.raises(OSError) as ex:
        RT11Filesystem.mount(disk)
    assert ex.value.errno == errno.EINVAL


def test_rt11_enter_file():
    _, disk, fs = rt11_floppy()
    data = pattern(600)
    assert fs.enter_file("A.TXT", data, date(1985, 3, 14)) == Outcome.SUCCESS
    assert entries(fs) == [(E_PERM, "A.TXT", 2, 14), (E_MPTY, "", 478, 16)]
    assert fs.blocks_free == 478
    entry = fs.get_file_entry("a.txt")
    assert entry.bits_in_last_block == (600 - 512) * 8
    assert entry.get_size() == 600
    assert entry.creation_date == date(1985, 3, 14)
    assert fs.find_hole(479) == Outcome.TOO_LARGE
    assert fs.find_hole(478) == 1
    assert fs.read_bytes("A.TXT") == data
    # Reload from the floppy
    fs2 = RT11Filesystem.mount(disk)
    assert entries(fs2) == entries(fs)
    assert fs2.blocks_free == 478
    assert fs2.read_bytes("A.TXT") == data


def test_rt11_enter_errors():
    _, _, fs = rt11_floppy()
    assert fs.enter_file("", b"x") == Outcome.BAD_NAME
    assert fs.enter_file("...", b"x") == Outcome.BAD_NAME
    assert fs.enter_file("A.TXT", b"x") == Outcome.SUCCESS
    assert fs.enter_file("a.txt", b"y") == Outcome.FILE_EXISTS
    assert fs.enter_file("BIG.DAT", bytes(481 * 512)) == Outcome.TOO_LARGE
    assert fs.read_bytes("A.TXT") == b"x"


def test_rt11_no_hole():
    _, _, fs = rt11_floppy()
    assert fs.enter_file("A.DAT", pattern(10 * 512)) == Outcome.SUCCESS
    assert fs.enter_file("B.DAT", pattern(10 * 512, 1)) == Outcome.SUCCESS
    assert fs.get_file_entry("A.DAT").delete()
    assert fs.blocks_free == 470
    assert fs.find_hole(465) == Outcome.NO_HOLE
    assert fs.enter_file("C.DAT", bytes(465 * 512)) == Outcome.NO_HOLE
    # First fit
    assert fs.find_hole(5) == 0
    assert fs.enter_file("D.DAT", pattern(5 * 512, 2)) == Outcome.SUCCESS
    assert entries(fs) == [
        (E_PERM, "D.DAT", 5, 14),
        (E_MPTY, "", 5, 19),
        (E_PERM, "B.DAT", 10, 24),
        (E_MPTY, "", 460, 34),
    ]
    assert fs.read_bytes("B.DAT") == pattern(10 * 512, 1)


def test_rt11_delete():
    _, disk, fs = rt11_floppy()
    before = fs.blocks_free
    assert fs.enter_file("A.TXT", pattern(600)) == Outcome.SUCCESS
    assert fs.delete_file(fs.get_file_entry("A.TXT")) == Outcome.SUCCESS
    assert fs.blocks_free == before
    assert entries(fs) == [(E_MPTY, "", 480, 14)]
    assert entries(RT11Filesystem.mount(disk)) == [(E_MPTY, "", 480, 14)]
    with pytest.raises(FileNotFoundError):
        fs.read_bytes("A.TXT")


def test_rt11_delete_without_merge():
    _, disk, fs = rt11_floppy()
    for name in ["A.TXT", "B.TXT", "C.TXT"]:
        assert fs.enter_file(name, pattern(512)) == Outcome.SUCCESS
    assert fs.delete_file(fs.get_file_entry("B.TXT")) == Outcome.SUCCESS
    expected = [
        (E_PERM, "A.TXT", 1, 14),
        (E_MPTY, "", 1, 15),
        (E_PERM, "C.TXT", 1, 16),
        (E_MPTY, "", 477, 17),
    ]
    assert entries(fs) == expected
    assert entries(RT11Filesystem.mount(disk)) == expected


def test_rt11_delete_not_permanent(caplog):
    _, _, fs = rt11_floppy()
    assert fs.delete_file(fs.files[0]) == Outcome.NOT_PERMANENT
    assert "not a permanent file" in caplog.text


def test_rt11_coalesce():
    _, _, fs = rt11_floppy()
    for name in ["A.TXT", "B.TXT", "C.TXT"]:
        assert fs.enter_file(name, pattern(512)) == Outcome.SUCCESS
    fs.files[0].status = E_MPTY
    fs.files[1].status = E_MPTY
    assert fs.coalesce()
    assert [(x.status, x.length) for x in fs.files] == [(E_MPTY, 2), (E_PERM, 1), (E_MPTY, 477)]
    assert not fs.coalesce()


def test_rt11_directory_full():
    _, disk, fs = rt11_floppy()
    for i in range(247):
        assert fs.enter_file(f"F{i}.DAT", b"%d" % i) == Outcome.SUCCESS
    assert len(fs.files) == 248
    assert fs.enter_file("X.DAT", b"x") == Outcome.DIRECTORY_FULL
    fs2 = RT11Filesystem.mount(disk)
    assert fs2.high_segment == 4
    assert entries(fs2) == entries(fs)
    assert fs2.read_bytes("F200.DAT") == b"200"
    # A file filling the last hole needs no new entry
    assert fs.enter_file("LAST.DAT", bytes(fs.blocks_free * 512)) == Outcome.SUCCESS
    assert fs.blocks_free == 0


def test_rt11_save_builds_before_writing(monkeypatch):
    _, disk, fs = rt11_floppy()
    for i in range(70):
        assert fs.enter_file(f"F{i}.DAT", b"x") == Outcome.SUCCESS
    before = disk.read_block(6, 8)
    fs.files[0].raw_creation_date = 0

    def broken_to_bytes():
        raise ValueError("broken entry")

    # The entry is in the second segment
    monkeypatch.setattr(fs.files[65], "to_bytes", broken_to_bytes)
    with pytest.raises(ValueError):
        fs.save()
    assert disk.read_block(6, 8) == before


def test_rt11_segment_mismatch(caplog):
    _, disk, fs = rt11_floppy()
    for i in range(70):
        assert fs.enter_file(f"F{i}.DAT", b"x") == Outcome.SUCCESS
    assert fs.high_segment == 2
    # First data block of the second segment
    patch_header(disk, 8, 8, 1000)
    fs2 = RT11Filesystem.mount(disk)
    assert "Segment 2 first data block 1000" in caplog.text
    assert entries(fs2) == entries(fs)


def test_rt11_status_log(caplog):
    caplog.set_level(logging.INFO)
    _, disk, fs = rt11_floppy()
    assert fs.enter_file("A.TXT", b"a") == Outcome.SUCCESS
    assert fs.enter_file("B.TXT", b"b") == Outcome.SUCCESS
    fs.files[0].status = E_TENT
    fs.files[1].status = E_NONE
    fs.save()
    fs2 = RT11Filesystem.mount(disk)
    assert "Tentative file A.TXT" in caplog.text
    assert "Unknown status 0000" in caplog.text
    assert [x.status for x in fs2.files] == [E_TENT, E_NONE, E_MPTY]
    assert fs2.files[0].is_tentative
    assert [x.fullname for x in fs2.filter_entries_list(None)] == []
    assert len(list(fs2.filter_entries_list(None, include_all=True))) == 3


def test_rt11_check_vol(caplog):
    _, disk, _ = rt11_floppy()
    patch_header(disk, 6, 6, 4)
    assert RT11Filesystem.probe(disk)
    assert "Extra bytes 4" in caplog.text
    for position, value in [(6, 0), (6, 9), (8, 15), (0, 0)]:
        _, disk, _ = rt11_floppy()
        patch_header(disk, 6, position, value)
        assert not RT11Filesystem.probe(disk)


def test_rt11_rename():
    _, disk, fs = rt11_floppy()
    assert fs.enter_file("A.TXT", b"a") == Outcome.SUCCESS
    assert fs.enter_file("B.TXT", b"b") == Outcome.SUCCESS
    entry = fs.get_file_entry("A.TXT")
    assert fs.rename_file(entry, "b.txt") == Outcome.FILE_EXISTS
    assert fs.rename_file(entry, "...") == Outcome.BAD_NAME
    assert fs.rename_file(fs.files[-1], "C.TXT") == Outcome.NOT_PERMANENT
    assert fs.rename_file(entry, "renamed.text") == Outcome.SUCCESS
    assert entry.filename == "RENAME.TEX"
    fs2 = RT11Filesystem.mount(disk)
    assert fs2.read_bytes("RENAME.TEX") == b"a"
    assert not fs2.exists("A.TXT")


def test_rt11_compress():
    _, disk, fs = rt11_floppy()
    assert fs.enter_file("A.DAT", pattern(1024)) == Outcome.SUCCESS
    assert fs.enter_file("B.DAT", pattern(1536, 1)) == Outcome.SUCCESS
    assert fs.enter_file("C.DAT", pattern(100, 2)) == Outcome.SUCCESS
    assert fs.get_file_entry("B.DAT").delete()
    fs.compress()
    expected = [
        (E_PERM, "A.DAT", 2, 14),
        (E_PERM, "C.DAT", 1, 16),
        (E_MPTY, "", 477, 17),
    ]
    assert entries(fs) == expected
    assert fs.blocks_free == 477
    fs2 = RT11Filesystem.mount(disk)
    assert entries(fs2) == expected
    assert fs2.read_bytes("A.DAT") == pattern(1024)
    assert fs2.read_bytes("C.DAT") == pattern(100, 2)


def test_rt11_write_bytes():
    _, _, fs = rt11_floppy()
    fs.write_bytes("DK:HELLO.TXT", b"Hello")
    fs.write_bytes("hello.txt", b"Hello, World!")
    assert fs.read_text("HELLO.TXT") == "Hello, World!"
    assert len(list(fs.filter_entries_list("*.TXT"))) == 1
    with pytest.raises(OSError) as ex:
        fs.write_bytes("...", b"x")
    assert ex.value.errno == errno.EINVAL
    with pytest.raises(OSError) as ex:
        fs.write_bytes("BIG.DAT", bytes(481 * 512))
    assert ex.value.errno == errno.ENOSPC


def test_rt11_file():
    _, _, fs = rt11_floppy()
    data = pattern(600)
    assert fs.enter_file("A.TXT", data) == Outcome.SUCCESS
    f = fs.open_file("A.TXT")
    assert f.get_size() == 600
    assert f.read(10) == data[:10]
    f.seek(590)
    assert f.read() == data[590:]
    assert f.tell() == 600
    assert f.read_block(2) == b""
    f.seek(0)
    f.write(b"ABCD")
    assert fs.read_bytes("A.TXT")[:4] == b"ABCD"
    f.close()
    with pytest.raises(OSError):
        f.read_block(0)


def test_rt11_dir(capsys):
    _, _, fs = rt11_floppy()
    assert fs.enter_file("A.TXT", pattern(600), date(1985, 3, 14)) == Outcome.SUCCESS
    fs.dir()
    out = capsys.readouterr().out
    assert "A.TXT" in out
    assert "14-MAR-85" in out
    assert "< UNUSED >" in out
    assert " 1 Files, 2 Blocks" in out
    assert " 478 Free blocks" in out
    fs.dir("*.TXT", options={"brief": True})
    assert capsys.readouterr().out == "A.TXT\n"
    fs.examine()
    out = capsys.readouterr().out
    assert "Free blocks:           478" in out
    fs.examine("A.TXT")
    out = capsys.readouterr().out
    assert "BLOCK NUMBER   00000001" in out
