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
import re
import base64
import binascii
import mimetypes
import concurrent.futures

from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import unquote_to_bytes, urlparse

from archives.Kernel import getLogger
from archives.Settings import FETCH_MAX_WORKERS, FETCH_RETRIES, FETCH_TIMEOUT_SECONDS, EDITED_EXTENSION
from archives.Utils import createSession
from archives.Zip import ZipEntry, createZip

logger = getLogger(__name__)

DATA_URL_PREFIX = 'data:'
DEFAULT_DATA_URL_MIME_TYPE = 'text/plain;charset=US-ASCII'  # RFC 2397

_WHITESPACE = re.compile(r'\s+')


class DataURLError(ValueError):
    """Raised when a data: URL cannot be decoded"""


def isDataURL(source: str) -> bool:
    return source[:len(DATA_URL_PREFIX)].lower() == DATA_URL_PREFIX


def isRemoteURL(source: str) -> bool:
    return urlparse(source).scheme.lower() in ('http', 'https')


def _splitDataURL(dataUrl: str) -> tuple:
    if not isDataURL(dataUrl):
        raise DataURLError(f"Not a data URL: {dataUrl[:32]}")

    header, sep, payload = dataUrl[len(DATA_URL_PREFIX):].partition(',')
    if not sep:
        raise DataURLError("Data URL has no ',' separating header and payload")

    params = header.split(';')
    isBase64 = params[-1].strip().lower() == 'base64'
    if isBase64:
        params = params[:-1]

    return ';'.join(params).strip(), isBase64, payload


def dataURLMimeType(dataUrl: str) -> str:
    mediaType, _, _ = _splitDataURL(dataUrl)
    if not mediaType:
        return DEFAULT_DATA_URL_MIME_TYPE
    if mediaType.startswith(';'):
        # "data:;charset=utf-8,..." keeps its parameters but defaults the type
        return f"text/plain{mediaType}"
    return mediaType


def dataURLToBytes(dataUrl: str) -> bytes:
    """
    Decode a data: URL to the exact bytes it carries

    Args:
        dataUrl: data:[<mediatype>][;base64],<data>

    Returns:
        bytes: Decoded payload

    Raises:
        DataURLError: If the URL is malformed or the base64 payload is invalid
    """
    _, isBase64, payload = _splitDataURL(dataUrl)

    if not isBase64:
        return unquote_to_bytes(payload)

    # Canvas exports may be percent-encoded or wrapped, and padding is sometimes dropped
    try:
        encoded = _WHITESPACE.sub('', unquote_to_bytes(payload).decode('ascii'))
        encoded += '=' * (-len(encoded) % 4)
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DataURLError(f"Invalid base64 payload in data URL: {e}") from e


def dataURLToBase64(dataUrl: str) -> str:
    """Strip the header of a data URL, inputs without a comma are returned unchanged"""
    index = dataUrl.find(',')
    return dataUrl[index + 1:] if index >= 0 else dataUrl


def bytesToDataURL(data: bytes, mimeType: str = 'application/octet-stream') -> str:
    return f"data:{mimeType};base64,{base64.b64encode(bytes(data)).decode('ascii')}"


def loadBytes(source: str, session=None, timeout: float = None) -> bytes:
    """
    Resolve one entry source to raw bytes

    Args:
        source: data: URL, http(s) URL or local file path
        session: requests.Session to reuse for remote URLs
        timeout: Request timeout in seconds (default FETCH_TIMEOUT_SECONDS)

    Returns:
        bytes: Content, byte-for-byte

    Raises:
        DataURLError: Malformed data URL
        requests.RequestException: Remote fetch failed or returned a non-2xx status
        OSError: Local file cannot be read
    """
    if isDataURL(source):
        return dataURLToBytes(source)

    if isRemoteURL(source):
        if session is None:
            session = createSession(retries=FETCH_RETRIES)
        if timeout is None:
            timeout = FETCH_TIMEOUT_SECONDS

        logger.debug(f"Fetching {source}")
        response = session.get(source, timeout=timeout)
        response.raise_for_status()
        return response.content

    return Path(source).read_bytes()


def makeEditedName(originalName: str, index: int, extension: str = EDITED_EXTENSION) -> str:
    """photo.jpg, 1 -> photo-edited-1.png"""
    stem = re.sub(r'\.[^.]+$', '', originalName)
    return f"{stem}-edited-{index}.{extension}"


def defaultEntryName(source: str, index: int, mimeType: Optional[str] = None) -> str:
    """
    Pick an archive name for a source that was given without one

    Args:
        source: data: URL, http(s) URL or local file path
        index: 1-based position in the bundle
        mimeType: Overrides the type taken from a data URL
    """
    if isDataURL(source):
        mimeType = mimeType or dataURLMimeType(source)
        extension = mimetypes.guess_extension(mimeType.split(';')[0].strip()) or '.bin'
        return f"image-{index}{extension}"

    if isRemoteURL(source):
        name = os.path.basename(urlparse(source).path)
        return name or f"image-{index}.bin"

    return os.path.basename(source) or f"image-{index}.bin"


def gatherEntries(
    items: Iterable, maxWorkers: int = None, modifiedTime=None, session=None, timeout: float = None
) -> List[ZipEntry]:
    """
    Load every (name, source) pair concurrently and keep the input order

    Args:
        items: Iterable of (name, source) tuples
        maxWorkers: Thread pool size (default FETCH_MAX_WORKERS)
        modifiedTime: Timestamp stamped on every entry (None for now)
        session: requests.Session shared by remote fetches
        timeout: Per-request timeout in seconds (default FETCH_TIMEOUT_SECONDS)

    Returns:
        list: ZipEntry objects in input order

    Raises:
        The first exception raised by loadBytes()
    """
    items = list(items)
    if not items:
        return []

    if maxWorkers is None:
        maxWorkers = FETCH_MAX_WORKERS

    ownSession = session is None and any(isRemoteURL(source) for _, source in items)
    if ownSession:
        session = createSession(retries=FETCH_RETRIES)

    logger.debug(f"Gather entries START: count={len(items)}, workers={maxWorkers}")

    try:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, maxWorkers)) as executor:
            contents = list(executor.map(lambda item: loadBytes(item[1], session=session, timeout=timeout), items))
    finally:
        if ownSession:
            session.close()

    logger.debug(f"Gather entries END: count={len(items)}")

    return [ZipEntry(name, data, modifiedTime) for (name, _), data in zip(items, contents)]


def bundleSources(items: Iterable, **kwargs) -> bytes:
    """Gather (name, source) pairs and build the ZIP archive from them, kwargs go to gatherEntries()"""
    return createZip(gatherEntries(items, **kwargs))
