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

from archives.Kernel import Singleton
from archives.Utils import getEnv

# Download name used by the bulk-edit page
DEFAULT_ARCHIVE_NAME = os.getenv('DEFAULT_ARCHIVE_NAME', 'bulk-edits.zip')

ARCHIVE_CONTENT_TYPE = 'application/zip'

# Chunk size (256 KiB) used when streaming or saving an archive
TRANSFER_CHUNK_SIZE = int(os.getenv('TRANSFER_CHUNK_SIZE', 256 * 1024))

# Remote image fetching
FETCH_TIMEOUT_SECONDS = float(os.getenv('FETCH_TIMEOUT_SECONDS', 30))
FETCH_MAX_WORKERS = int(os.getenv('FETCH_MAX_WORKERS', 4))
FETCH_RETRIES = int(os.getenv('FETCH_RETRIES', 2))

# Extension given to edited results, generated images are exported as PNG
EDITED_EXTENSION = os.getenv('EDITED_EXTENSION', 'png')


# Singleton, getters re-read the environment so values from .env loaded at startup apply
class SettingsGetter(Singleton):

    @classmethod
    def getInstance(cls):
        if cls not in cls._instances:
            raise RuntimeError('Get SettingsGetter before initialized it.')
        return cls._instances[cls]

    def getArchiveName(self):
        return getEnv('DEFAULT_ARCHIVE_NAME', DEFAULT_ARCHIVE_NAME)

    def getChunkSize(self):
        return getEnv('TRANSFER_CHUNK_SIZE', TRANSFER_CHUNK_SIZE)

    def getFetchTimeout(self):
        return getEnv('FETCH_TIMEOUT_SECONDS', FETCH_TIMEOUT_SECONDS)

    def getFetchMaxWorkers(self):
        return getEnv('FETCH_MAX_WORKERS', FETCH_MAX_WORKERS)

    def getFetchRetries(self):
        return getEnv('FETCH_RETRIES', FETCH_RETRIES)

    def getEditedExtension(self):
        return getEnv('EDITED_EXTENSION', EDITED_EXTENSION)
