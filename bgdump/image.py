"""
Image access — open a raw block device or disk image through pytsk3.

pytsk3.Img_Info handles regular image files (and, depending on how libtsk
was built, split/EWF images).  Raw devices that libtsk refuses to open are
wrapped by RawImageInfo, which reads the device ourselves and hands pytsk3
the read/get_size interface it expects.

Both expose:
    read(offset, length) -> bytes
    get_size() -> int
which is all the volume accessor needs.
"""

import logging
from typing import Optional

import pytsk3

logger = logging.getLogger(__name__)


class RawImageInfo(pytsk3.Img_Info):
    """pytsk3 Img_Info backed by a plain file handle."""

    def __init__(self, path: str):
        self._path = path
        self._fh = open(path, "rb")
        self._fh.seek(0, 2)
        self._size = self._fh.tell()
        self._fh.seek(0)
        super().__init__(url="", type=pytsk3.TSK_IMG_TYPE_EXTERNAL)

    def close(self):
        if self._fh:
            self._fh.close()
            self._fh = None

    def read(self, offset: int, length: int) -> bytes:
        self._fh.seek(offset)
        return self._fh.read(length)

    def get_size(self) -> int:
        return self._size


class OffsetImage:
    """View of an image starting at a byte offset (a partition inside a disk)."""

    def __init__(self, img, offset: int):
        self._img = img
        self._offset = offset

    def read(self, offset: int, length: int) -> bytes:
        return self._img.read(self._offset + offset, length)

    def get_size(self) -> int:
        return max(0, self._img.get_size() - self._offset)

    def close(self):
        self._img.close()


def open_image(path: str, offset: int = 0):
    """
    Open `path` for reading.

    Tries pytsk3.Img_Info first, then the raw file wrapper.  Raises OSError
    when neither can open the path.
    """
    img: Optional[object] = None
    try:
        img = pytsk3.Img_Info(path)
        logger.info("Opened %s via libtsk (%d bytes)", path, img.get_size())
    except (IOError, OSError, RuntimeError) as e:
        logger.info("libtsk could not open %s (%s), using raw reads", path, e)
        img = RawImageInfo(path)

    if offset:
        logger.info("Filesystem offset: %d bytes", offset)
        return OffsetImage(img, offset)
    return img
