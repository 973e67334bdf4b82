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

import os

from typing import Iterable, Iterator

from archives.Kernel import getLogger
from archives.Settings import ARCHIVE_CONTENT_TYPE, DEFAULT_ARCHIVE_NAME, TRANSFER_CHUNK_SIZE
from archives.Sources import bundleSources

logger = getLogger(__name__)


class ArchiveReader:
    """Download-facing view of a finished archive (name, MIME type, size, chunked reads)"""
    contentName: str  # Download filename (e.g., bulk-edits.zip)
    contentType: str  # MIME type
    size: int  # Total content length
    supportsRange: bool  # Whether offset/Range resume is supported

    def __init__(self, data: bytes, contentName: str = DEFAULT_ARCHIVE_NAME):
        self._data = bytes(data)
        self.contentName = contentName
        self.contentType = ARCHIVE_CONTENT_TYPE
        self.size = len(self._data)
        self.supportsRange = True

    @classmethod
    def build(cls, items: Iterable, contentName: str = DEFAULT_ARCHIVE_NAME, **kwargs) -> 'ArchiveReader':
        """
        Bundle (name, source) pairs and wrap the result

        Args:
            items: (name, source) tuples, see Sources.gatherEntries()
            contentName: Download filename
            **kwargs: maxWorkers, modifiedTime, session - forwarded to Sources.bundleSources()
        """
        return cls(bundleSources(items, **kwargs), contentName=contentName)

    @property
    def data(self) -> bytes:
        return self._data

    def iterChunks(self, chunkSize: int, start: int = 0) -> Iterator[bytes]:
        """
        Iterate over the archive in chunks

        Args:
            chunkSize: Size of each chunk in bytes
            start: Starting byte offset (0 for new transfer)

        Yields:
            bytes: Content chunks
        """
        if chunkSize <= 0:
            raise ValueError(f"Invalid chunk size: {chunkSize}")
        if start < 0 or start > self.size:
            raise ValueError(f"Offset {start} out of range [0, {self.size}]")

        view = memoryview(self._data)
        for offset in range(start, self.size, chunkSize):
            yield bytes(view[offset:offset + chunkSize])

    def saveTo(self, path: str, chunkSize: int = TRANSFER_CHUNK_SIZE) -> str:
        """
        Write the archive to path (a directory gets contentName appended)

        Returns:
            str: Path written
        """
        if os.path.isdir(path):
            path = os.path.join(path, self.contentName)

        with open(path, 'wb') as f:
            for chunk in self.iterChunks(chunkSize):
                f.write(chunk)

        logger.debug(f"Saved {self.contentName} ({self.size} bytes) to {path}")
        return path
