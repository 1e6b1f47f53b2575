import math
import typing as t
from datetime import datetime

from perqdisk.commons import BLOCK_SIZE
from perqdisk.disk import AddressableDisk, ShugartDisk
from perqdisk.floppy import RT11Floppy
from perqdisk.geometry import GEOMETRIES, Address, DeviceGeometry
from perqdisk.pos.posfs import (
    DIRECTORY_RECORD_SIZE,
    PARTITION_TABLE_SIZE,
    TABLE_SIZE,
    DeviceCode,
    DeviceInformationBlock,
    FileInformationBlock,
    FileType,
    PartitionInformationBlock,
    PartitionType,
    POSDirectoryRecord,
    SegmentKind,
    TimeStamp,
)
from perqdisk.rt11.rt11fs import RT11Filesystem
from perqdisk.sector import SectorStore

# Small Shugart-like geometry, 30 sectors per track as the boot area requires
SMALL_SHUGART = DeviceGeometry(20, 4, 30, 512, 16)
# Small MFM-like geometry, 16 sectors per track
SMALL_MFM = DeviceGeometry(30, 4, 16, 512, 16)

TIMESTAMP = datetime(1984, 6, 1, 12, 30, 15)
NULL = Address(0, True)


def blank_store(name: str) -> SectorStore:
    return SectorStore(GEOMETRIES[name][0])


def rt11_floppy(name: str = "SSSD") -> t.Tuple[SectorStore, RT11Floppy, RT11Filesystem]:
    """
    Blank floppy with an empty RT-11 directory
    """
    store = blank_store(name)
    disk = RT11Floppy(store)
    RT11Filesystem(disk).initialize()
    return store, disk, RT11Filesystem.mount(disk)


def pattern(length: int, seed: int = 0) -> bytes:
    return bytes((seed + i * 7 + i // BLOCK_SIZE) & 0xFF for i in range(length))


class POSImageBuilder:
    """
    Write a POS volume block by block on an addressable disk
    """

    def __init__(self, disk: AddressableDisk, name: str = "TESTDISK"):
        self.disk = disk
        self.name = name
        self.next_lbn = 1
        self.partitions: t.List[Address] = []
        self.boot_table = [Address(0, False)] * TABLE_SIZE
        self.interpreter_table = [Address(0, False)] * TABLE_SIZE

    def allocate(self, count: int = 1) -> t.List[int]:
        result = list(range(self.next_lbn, self.next_lbn + count))
        self.next_lbn += count
        return result

    def lda(self, lbn: int) -> Address:
        return self.disk.lbn_to_lda(lbn)

    def pda(self, lbn: int) -> Address:
        return self.disk.block_to_pda(self.disk.logical_to_physical(self.disk.lbn_to_block(lbn)))

    def write(self, lbn: int, data: bytes) -> None:
        self.disk.write_block(data.ljust(BLOCK_SIZE, b"\0"), lbn)

    def new_fib(
        self,
        name: str,
        file_type: int,
        file_size: int,
        bits_in_last_block: int = BLOCK_SIZE * 8,
        direct: t.Sequence[Address] = (),
        indirect: t.Sequence[Address] = (),
        double_indirect: t.Sequence[Address] = (),
        last_block: int = 0,
    ) -> FileInformationBlock:
        fib = FileInformationBlock()
        fib.file_size = file_size
        fib.bits_in_last_block = bits_in_last_block
        fib.sparse = False
        fib.open_flags = 0
        fib.creation_date = TimeStamp.from_datetime(TIMESTAMP)
        fib.last_write_date = TimeStamp.from_datetime(TIMESTAMP)
        fib.last_access_date = TimeStamp.from_datetime(TIMESTAMP)
        fib.file_type = file_type
        fib.name = name
        fib.direct = (list(direct) + [NULL] * 64)[:64]
        fib.indirect = (list(indirect) + [NULL] * 32)[:32]
        fib.double_indirect = (list(double_indirect) + [NULL] * 2)[:2]
        fib.segment_kind = SegmentKind.PERMANENT
        fib.blocks_in_use = file_size
        fib.last_block = last_block & 0xFFFF
        fib.last_address = NULL
        fib.last_negative_block = 0
        fib.last_negative_address = NULL
        return fib

    def write_fib(self, fib: FileInformationBlock) -> Address:
        (lbn,) = self.allocate()
        self.write(lbn, fib.to_bytes())
        return self.lda(lbn)

    def add_file(self, name: str, data: bytes, file_type: int = FileType.TEXT) -> Address:
        """
        Write a file with direct blocks only, return the address of its FIB
        """
        blocks = int(math.ceil(len(data) / BLOCK_SIZE))
        lbns = self.allocate(blocks)
        for i, lbn in enumerate(lbns):
            self.write(lbn, data[i * BLOCK_SIZE : (i + 1) * BLOCK_SIZE])
        bits = (len(data) % BLOCK_SIZE) * 8 or BLOCK_SIZE * 8
        fib = self.new_fib(name, file_type, blocks, bits, [self.lda(x) for x in lbns])
        return self.write_fib(fib)

    def write_index(self, addresses: t.Sequence[Address]) -> Address:
        (lbn,) = self.allocate()
        self.write(lbn, b"".join(x.to_bytes() for x in addresses))
        return self.lda(lbn)

    def directory_records(self, children: t.Sequence[t.Tuple[str, Address]], flags: int = 1) -> bytes:
        out = bytearray()
        for name, address in children:
            record = POSDirectoryRecord()
            record.flags = flags
            record.fib_address = address
            record.name = name
            out.extend(record.to_bytes())
        return bytes(out)

    def add_directory(
        self,
        name: str,
        children: t.Sequence[t.Tuple[str, Address]],
        blocks: t.Optional[int] = None,
        fib_lbn: t.Optional[int] = None,
    ) -> Address:
        """
        Write a directory file listing the children, return the address of its FIB
        """
        records = self.directory_records(children)
        if blocks is None:
            blocks = max(1, int(math.ceil(len(records) / BLOCK_SIZE)))
        lbns = self.allocate(blocks)
        for i, lbn in enumerate(lbns):
            self.write(lbn, records[i * BLOCK_SIZE : (i + 1) * BLOCK_SIZE])
        fib = self.new_fib(
            name,
            FileType.DIR,
            blocks,
            direct=[self.lda(x) for x in lbns],
            last_block=blocks - 2,
        )
        if fib_lbn is None:
            return self.write_fib(fib)
        self.write(fib_lbn, fib.to_bytes())
        return self.lda(fib_lbn)

    def add_partition(self, name: str, root: Address) -> Address:
        pib = PartitionInformationBlock()
        pib.free_head = NULL
        pib.free_tail = NULL
        pib.free_count = 0
        pib.root_directory = root
        pib.bad_segment = NULL
        pib.name = name
        pib.partition_start = self.lda(1)
        pib.partition_end = self.lda(self.disk.max_lbn)
        pib.partition_root = self.lda(0)
        pib.partition_type = PartitionType.LEAF
        (lbn,) = self.allocate()
        self.write(lbn, pib.to_bytes())
        address = self.lda(lbn)
        self.partitions.append(address)
        return address

    def dib(self) -> DeviceInformationBlock:
        dib = DeviceInformationBlock()
        dib.geometry = [0] * 5
        dib.boot_table = list(self.boot_table)
        dib.interpreter_table = list(self.interpreter_table)
        dib.name = self.name
        dib.device_start = self.lda(0)
        dib.device_end = self.lda(self.disk.max_lbn)
        dib.partitions = (self.partitions + [NULL] * PARTITION_TABLE_SIZE)[:PARTITION_TABLE_SIZE]
        dib.device_root = self.lda(0)
        dib.device_code = DeviceCode.WINCH24
        dib.partition_type = PartitionType.ROOT
        return dib

    def finish(self) -> DeviceInformationBlock:
        dib = self.dib()
        self.write(0, dib.to_bytes())
        return dib


LINES = b"".join(f"{i:5d} ABCDEFGHIJKLMNOPQRSTUVWXYZ01234567890\n".encode("ascii") for i in range(50))


def pos_volume(disk: AddressableDisk) -> POSImageBuilder:
    """
    POS volume with two partitions:

    TESTDISK:
      USER>  HELLO.TXT  LINES.TXT  EMPTY.DAT  SUB>  NOTES.TXT
      BOOT>  SYSTEM.BOOT  SYSTEM.MBOOT  (boot letter b)
    """
    builder = POSImageBuilder(disk)
    hello = builder.add_file("USER>HELLO.TXT", b"Hello, PERQ!\n")
    lines = builder.add_file("USER>LINES.TXT", LINES)
    empty = builder.add_file("USER>EMPTY.DAT", b"", FileType.DAT)
    notes = builder.add_file("USER>SUB>NOTES.TXT", pattern(1536))
    sub = builder.add_directory("USER>SUB.DR", [("NOTES.TXT", notes)])
    user = builder.add_directory(
        "USER>ROOT.DR",
        [("HELLO.TXT", hello), ("LINES.TXT", lines), ("EMPTY.DAT", empty), ("SUB.DR", sub)],
    )
    builder.add_partition("USER", user)
    boot = builder.add_file("BOOT>SYSTEM.BOOT", pattern(600, 1), FileType.SBOOT)
    micro = builder.add_file("BOOT>SYSTEM.MBOOT", pattern(700, 2), FileType.MBOOT)
    root = builder.add_directory("BOOT>ROOT.DR", [("SYSTEM.BOOT", boot), ("SYSTEM.MBOOT", micro)])
    builder.add_partition("BOOT", root)
    builder.boot_table[1] = builder.pda(disk.lda_to_lbn(boot))
    builder.interpreter_table[1] = builder.pda(disk.lda_to_lbn(micro))
    builder.finish()
    return builder


def shugart_pos_volume() -> t.Tuple[SectorStore, ShugartDisk, POSImageBuilder]:
    store = SectorStore(SMALL_SHUGART)
    disk = ShugartDisk(store)
    return store, disk, pos_volume(disk)
