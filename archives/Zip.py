#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# PhotoBundle - Bundle generated photos into downloadable archives
# Copyright (C) 2025 PhotoBundle contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import struct
import zipfile
import datetime

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Iterable, Iterator, Union

from archives.Kernel import getLogger
from archives.Checksum import crc32

logger = getLogger(__name__)

Timestamp = Union[datetime.datetime, int, float, None]

DOS_MIN_DATETIME = datetime.datetime(1980, 1, 1, 0, 0, 0)
DOS_MAX_DATETIME = datetime.datetime(2107, 12, 31, 23, 59, 58)


class ZipError(ValueError):
    """Base exception for archives that cannot be represented without ZIP64"""


class EncodingOverflowError(ZipError):
    """Raised when an entry name does not fit the 16-bit filename length field"""

    def __init__(self, message: str, name: str = None, length: int = None):
        super().__init__(message)
        self.name = name
        self.length = length


class OversizeEntryError(ZipError):
    """Raised when entry data does not fit the 32-bit size fields"""

    def __init__(self, message: str, name: str = None, size: int = None):
        super().__init__(message)
        self.name = name
        self.size = size


class OversizeArchiveError(ZipError):
    """Raised when entry count, offsets or central directory overflow the EOCD record"""


@dataclass(frozen=True)
class ZipEntry:
    """One file to store: archive name, raw content and optional modification time"""
    name: str
    data: bytes
    modifiedTime: Timestamp = None

    def __post_init__(self):
        if not isinstance(self.name, str):
            raise TypeError(f"Entry name must be str, got {type(self.name).__name__}")

        if not isinstance(self.data, bytes):
            # Freeze bytearray/memoryview so the archive cannot change under the caller
            object.__setattr__(self, 'data', bytes(self.data))

    @classmethod
    def coerce(cls, item) -> "ZipEntry":
        """Accept a ZipEntry, a {'name', 'data', 'modifiedTime'} mapping or a (name, data[, modifiedTime]) tuple"""
        if isinstance(item, cls):
            return item
        if isinstance(item, Mapping):
            return cls(item['name'], item['data'], item.get('modifiedTime'))
        if isinstance(item, (tuple, list)):
            return cls(*item)
        raise TypeError(f"Cannot build ZipEntry from {type(item).__name__}")


def toDosDateTime(modifiedTime: Timestamp = None) -> tuple:
    """
    Convert a timestamp to DOS time and date format

    Args:
        modifiedTime: datetime (wall-clock fields are used as-is), Unix timestamp
                      (converted to local time) or None for now

    Returns:
        tuple: (dosTime, dosDate) - both as 16-bit integers

    DOS time format (16 bits):
        bits 0-4: seconds / 2 (0-29)
        bits 5-10: minutes (0-59)
        bits 11-15: hours (0-23)

    DOS date format (16 bits):
        bits 0-4: day (1-31)
        bits 5-8: month (1-12)
        bits 9-15: year - 1980 (0-127, representing 1980-2107)

    Times outside 1980-2107 are clamped to the nearest representable value.
    """
    if modifiedTime is None:
        dt = datetime.datetime.now()
    elif isinstance(modifiedTime, datetime.datetime):
        dt = modifiedTime
    elif isinstance(modifiedTime, (int, float)):
        try:
            dt = datetime.datetime.fromtimestamp(modifiedTime)
        except (ValueError, OSError, OverflowError):
            dt = DOS_MIN_DATETIME if modifiedTime < 0 else DOS_MAX_DATETIME
    else:
        raise TypeError(f"Unsupported modification time: {modifiedTime!r}")

    if dt.year < DOS_MIN_DATETIME.year:
        dt = DOS_MIN_DATETIME
    elif dt.year > DOS_MAX_DATETIME.year:
        dt = DOS_MAX_DATETIME

    dosTime = (dt.hour << 11) | (dt.minute << 5) | (dt.second // 2)
    dosDate = ((dt.year - 1980) << 9) | (dt.month << 5) | dt.day

    return dosTime, dosDate


class ZipArchiveWriter:
    """
    Build STORED (uncompressed) PKZIP 2.0 archives entirely in memory.

    Layout: [local header + data] * N, [central directory header] * N, end of central directory.

    Notes:
    - No compression, no data descriptors, no ZIP64, no encryption
    - Every entry is validated before any byte is emitted, so callers never get a partial archive
    - Names are UTF-8; bit 11 is only set for non-ASCII names, like zipfile does
    """

    # ZIP format constants (from PKZIP APPNOTE.TXT specification)
    LOCAL_FILE_HEADER_SIGNATURE = struct.unpack('<I', zipfile.stringFileHeader)[0]  # 0x04034b50
    CENTRAL_DIR_SIGNATURE = struct.unpack('<I', zipfile.stringCentralDir)[0]  # 0x02014b50
    END_OF_CENTRAL_DIR_SIGNATURE = struct.unpack('<I', zipfile.stringEndArchive)[0]  # 0x06054b50

    STORE = zipfile.ZIP_STORED  # 0
    VERSION = 20  # 2.0: made by / needed to extract

    UTF8_FLAG = 0x0800  # Bit 11: filename UTF-8 encoded

    LOCAL_FILE_HEADER_LENGTH = 30
    CENTRAL_DIR_HEADER_LENGTH = 46
    END_OF_CENTRAL_DIR_LENGTH = 22

    # Field limits of the non-ZIP64 format; all-ones values are ZIP64 markers for 32-bit fields
    MAX_NAME_LENGTH = 0xFFFF
    MAX_ENTRY_COUNT = 0xFFFF
    ZIP64_LIMIT = 0xFFFFFFFF

    def write(self, entries: Iterable) -> bytes:
        """
        Build the complete archive

        Args:
            entries: Iterable of ZipEntry (or anything ZipEntry.coerce accepts), in archive order

        Returns:
            bytes: ZIP archive

        Raises:
            EncodingOverflowError: If a name is longer than 65535 bytes in UTF-8
            OversizeEntryError: If an entry is 4 GiB or larger
            OversizeArchiveError: If the archive would need ZIP64
        """
        records, centralDirStart, centralDirSize = self._prepareRecords(entries)

        archive = b''.join(self._iterRecords(records, centralDirStart, centralDirSize))

        logger.debug(f"ZIP build END: entries={len(records)}, size={len(archive)}")
        return archive

    def iterChunks(self, entries: Iterable, chunkSize: int) -> Iterator[bytes]:
        """
        Yield the same bytes as write() in chunks of chunkSize (the last one may be shorter)

        Validation happens before the first chunk is produced.
        """
        if chunkSize <= 0:
            raise ValueError(f"Invalid chunk size: {chunkSize}")

        records, centralDirStart, centralDirSize = self._prepareRecords(entries)

        buffer = bytearray()
        for piece in self._iterRecords(records, centralDirStart, centralDirSize):
            buffer.extend(piece)
            yield from self._yieldChunks(buffer, chunkSize)

        if buffer:
            yield bytes(buffer)

    def _yieldChunks(self, buffer, chunkSize):
        while len(buffer) >= chunkSize:
            yield bytes(buffer[:chunkSize])
            del buffer[:chunkSize]

    def _encodeName(self, name: str) -> bytes:
        nameBytes = name.encode('utf-8')
        if len(nameBytes) > self.MAX_NAME_LENGTH:
            raise EncodingOverflowError(
                f"Entry name is {len(nameBytes)} bytes in UTF-8, the limit is {self.MAX_NAME_LENGTH}: "
                f"{name[:32]}...",
                name=name,
                length=len(nameBytes)
            )
        return nameBytes

    def _prepareRecords(self, entries: Iterable) -> tuple:
        """
        Validate entries and calculate every offset before emitting anything

        Returns:
            tuple: (records, centralDirStart, centralDirSize)
        """
        entries = [ZipEntry.coerce(entry) for entry in entries]

        if len(entries) > self.MAX_ENTRY_COUNT:
            raise OversizeArchiveError(
                f"{len(entries)} entries exceed the limit of {self.MAX_ENTRY_COUNT} without ZIP64"
            )

        records = []
        offset = 0

        for entry in entries:
            nameBytes = self._encodeName(entry.name)
            size = len(entry.data)

            if size >= self.ZIP64_LIMIT:
                raise OversizeEntryError(
                    f"Entry {entry.name} is {size} bytes, entries must be smaller than {self.ZIP64_LIMIT} bytes",
                    name=entry.name,
                    size=size
                )

            if offset >= self.ZIP64_LIMIT:
                raise OversizeArchiveError(f"Local header offset of {entry.name} exceeds 32 bits")

            dosTime, dosDate = toDosDateTime(entry.modifiedTime)

            records.append({
                'nameBytes': nameBytes,
                'flags': 0 if entry.name.isascii() else self.UTF8_FLAG,
                'data': entry.data,
                'size': size,
                'crc': crc32(entry.data),
                'dosTime': dosTime,
                'dosDate': dosDate,
                'offset': offset,
            })

            offset += self.LOCAL_FILE_HEADER_LENGTH + len(nameBytes) + size

        centralDirStart = offset
        centralDirSize = sum(self.CENTRAL_DIR_HEADER_LENGTH + len(r['nameBytes']) for r in records)

        if centralDirStart >= self.ZIP64_LIMIT or centralDirSize >= self.ZIP64_LIMIT:
            raise OversizeArchiveError(
                f"Central directory (offset {centralDirStart}, size {centralDirSize}) exceeds 32 bits"
            )

        return records, centralDirStart, centralDirSize

    def _iterRecords(self, records: list, centralDirStart: int, centralDirSize: int) -> Iterator[bytes]:
        for record in records:
            yield self._makeLocalFileHeader(record)
            yield record['data']

        for record in records:
            yield self._makeCentralDirHeader(record)

        yield self._makeEndOfCentralDir(len(records), centralDirSize, centralDirStart)

    def _makeLocalFileHeader(self, record: dict) -> bytes:
        """Create ZIP local file header"""
        header = struct.pack('<I', self.LOCAL_FILE_HEADER_SIGNATURE)
        header += struct.pack('<H', self.VERSION)  # Version needed to extract
        header += struct.pack('<H', record['flags'])  # General purpose bit flag
        header += struct.pack('<H', self.STORE)  # Compression method
        header += struct.pack('<H', record['dosTime'])  # File last modification time
        header += struct.pack('<H', record['dosDate'])  # File last modification date
        header += struct.pack('<I', record['crc'])  # CRC-32
        header += struct.pack('<I', record['size'])  # Compressed size
        header += struct.pack('<I', record['size'])  # Uncompressed size
        header += struct.pack('<H', len(record['nameBytes']))  # Filename length
        header += struct.pack('<H', 0)  # Extra field length
        header += record['nameBytes']

        return header

    def _makeCentralDirHeader(self, record: dict) -> bytes:
        """Create ZIP central directory header"""
        header = struct.pack('<I', self.CENTRAL_DIR_SIGNATURE)
        header += struct.pack('<H', self.VERSION)  # Version made by
        header += struct.pack('<H', self.VERSION)  # Version needed to extract
        header += struct.pack('<H', record['flags'])  # General purpose bit flag
        header += struct.pack('<H', self.STORE)  # Compression method
        header += struct.pack('<H', record['dosTime'])  # Last mod file time
        header += struct.pack('<H', record['dosDate'])  # Last mod file date
        header += struct.pack('<I', record['crc'])  # CRC-32
        header += struct.pack('<I', record['size'])  # Compressed size
        header += struct.pack('<I', record['size'])  # Uncompressed size
        header += struct.pack('<H', len(record['nameBytes']))  # Filename length
        header += struct.pack('<H', 0)  # Extra field length
        header += struct.pack('<H', 0)  # File comment length
        header += struct.pack('<H', 0)  # Disk number start
        header += struct.pack('<H', 0)  # Internal file attributes
        header += struct.pack('<I', 0)  # External file attributes
        header += struct.pack('<I', record['offset'])  # Relative offset of local header
        header += record['nameBytes']

        return header

    def _makeEndOfCentralDir(self, entryCount: int, centralDirSize: int, centralDirStart: int) -> bytes:
        """Create end of central directory record"""
        eocd = struct.pack('<I', self.END_OF_CENTRAL_DIR_SIGNATURE)
        eocd += struct.pack('<H', 0)  # Number of this disk
        eocd += struct.pack('<H', 0)  # Disk where central directory starts
        eocd += struct.pack('<H', entryCount)  # Number of entries on this disk
        eocd += struct.pack('<H', entryCount)  # Total number of entries
        eocd += struct.pack('<I', centralDirSize)  # Size of central directory
        eocd += struct.pack('<I', centralDirStart)  # Offset of start of central directory
        eocd += struct.pack('<H', 0)  # Comment length

        return eocd


def createZip(entries: Iterable) -> bytes:
    """Build a STORED ZIP archive from entries, see ZipArchiveWriter.write()"""
    return ZipArchiveWriter().write(entries)
