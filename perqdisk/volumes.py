# Copyright (C) 2014 Andrea Bonomi <andrea.bonomi@gmail.com>

# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to
# deal in the Software without restriction, including without limitation the
# rights to use, copy, modify, merge, publish, distribute, sublicense, and/or
# sell copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
# THE SOFTWARE.

import errno
import logging
import os
import typing as t

from .abstract import AbstractFilesystem
from .disk import LogicalDisk, MFMDisk, MicropolisDisk, ShugartDisk
from .floppy import POSFloppy, RT11Floppy
from .geometry import GEOMETRIES, DeviceFamily, DeviceGeometry, guess_geometry
from .pos.posfs import POSFilesystem
from .rt11.rt11fs import RT11Filesystem
from .sector import SectorStore

__all__ = [
    "DISKS",
    "FILESYSTEMS",
    "Volumes",
    "detect",
    "mount",
    "open_disk",
]

logger = logging.getLogger(__name__)

FILESYSTEMS: t.Dict[str, t.Type[AbstractFilesystem]] = {
    "pos": POSFilesystem,
    "rt11": RT11Filesystem,
}

DISKS: t.Dict[DeviceFamily, t.Type[LogicalDisk]] = {
    DeviceFamily.SHUGART: ShugartDisk,
    DeviceFamily.MICROPOLIS: MicropolisDisk,
    DeviceFamily.MFM: MFMDisk,
    DeviceFamily.POS_FLOPPY: POSFloppy,
    DeviceFamily.RT11_FLOPPY: RT11Floppy,
}


def open_disk(store: SectorStore, family: DeviceFamily, logger: logging.Logger = logger) -> LogicalDisk:
    """
    Logical disk of the given hardware family
    """
    return DISKS[family](store, logger=logger)


def candidate_families(geometry: DeviceGeometry) -> t.List[DeviceFamily]:
    """
    Families of the known geometries matching the given one, all families otherwise
    """
    result: t.List[DeviceFamily] = []
    for known, families in GEOMETRIES.values():
        if known == geometry:
            result.extend(x for x in families if x not in result)
    return result or list(DeviceFamily)


def detect(
    store: SectorStore,
    families: t.Optional[t.Iterable[DeviceFamily]] = None,
    logger: logging.Logger = logger,
) -> t.Optional[t.Tuple[DeviceFamily, str]]:
    """
    Find the hardware family and the filesystem of a sector store
    """
    for family in families or candidate_families(store.geometry):
        try:
            disk = open_disk(store, family, logger)
        except ValueError as ex:
            logger.debug("%s: not %s (%s)", store, family.value, ex)
            continue
        for fstype, filesystem in FILESYSTEMS.items():
            if filesystem.probe(disk):
                logger.info("%s: %s filesystem on %s", store, fstype, family.value)
                return family, fstype
    return None


def mount(
    store: SectorStore,
    family: t.Optional[DeviceFamily] = None,
    fstype: t.Optional[str] = None,
    logger: logging.Logger = logger,
) -> AbstractFilesystem:
    """
    Mount the filesystem of a sector store, detecting
    the family and the filesystem type when not given
    """
    if family is None or fstype is None:
        detected = detect(store, [family] if family is not None else None, logger)
        if detected is None:
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL), str(store))
        family, fstype = family or detected[0], fstype or detected[1]
    try:
        filesystem = FILESYSTEMS[fstype]
    except KeyError:
        raise OSError(errno.EINVAL, f"Unknown filesystem type {fstype}")
    return filesystem.mount(open_disk(store, family, logger), logger)


class Volumes(object):
    """
    Mounted volumes by logical device name
    """

    volumes: t.Dict[str, AbstractFilesystem]  # volume id -> fs

    def __init__(self, logger: logging.Logger = logger) -> None:
        self.volumes = {}
        self.logger = logger

    def canonical_volume(self, volume_id: str) -> str:
        """
        Convert a volume id into canonical form
        """
        volume_id = volume_id.upper()
        if volume_id.endswith(":"):
            volume_id = volume_id[:-1]
        return volume_id

    def get(self, volume_id: str) -> AbstractFilesystem:
        """
        Get a filesystem by volume id
        """
        volume_id = self.canonical_volume(volume_id)
        try:
            return self.volumes[volume_id]
        except KeyError:
            raise OSError(errno.ENODEV, f"Illegal volume {volume_id}:")

    def mount(
        self,
        path: str,
        logical: str,
        family: t.Optional[DeviceFamily] = None,
        fstype: t.Optional[str] = None,
        geometry: t.Optional[DeviceGeometry] = None,
    ) -> AbstractFilesystem:
        """
        Mount an image file to a logical device name
        """
        logical = self.canonical_volume(logical)
        if not logical:
            raise OSError(errno.EINVAL, f"Illegal volume {logical}:")
        if geometry is not None:
            stores = [SectorStore.load(path, geometry, logger=self.logger)]
        else:
            # Some image sizes match more than one geometry
            size = os.path.getsize(path)
            stores = [SectorStore.load(path, x[1], logger=self.logger) for x in guess_geometry(size)]
        for store in stores:
            if family is None or fstype is None:
                if detect(store, [family] if family is not None else None, self.logger) is None:
                    continue
            fs = mount(store, family, fstype, self.logger)
            self.volumes[logical] = fs
            self.logger.info("Disk %s mounted to %s:", path, logical)
            return fs
        raise OSError(errno.EINVAL, f"Error mounting {path} to {logical}:")

    def dismount(self, volume_id: str) -> None:
        """
        Disassociates a logical disk assignment from a file
        """
        fs = self.get(volume_id)
        fs.close()
        self.volumes = {k: v for k, v in self.volumes.items() if v is not fs}
