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

import argparse
import datetime
import json
import os
import logging
import logging.config
import platform

import requests

from archives.Kernel import PUBLIC_VERSION, getLogger, configureGlobalLogLevel, StorageLocator, LOG_LEVEL_MAPPING
from archives.Settings import SettingsGetter
from archives.Utils import createSession, flushPrint, formatSize, getEnv, sendException
from archives.Checksum import crc32
from archives.Reader import ArchiveReader
from archives.Sources import DataURLError, defaultEntryName, makeEditedName
from archives.Zip import ZipError

logger = getLogger(__name__)


def loadEnvFile():
    """
    Load environment variables from .env file using StorageLocator.
    Only sets variables that are not already defined in os.environ.

    Returns:
        int: Number of variables loaded
    """
    envFilePath = StorageLocator.getInstance().findConfig('.env')

    if not os.path.exists(envFilePath):
        return 0

    loadedCount = 0

    with open(envFilePath, 'r', encoding='utf-8') as f:
        for lineNum, line in enumerate(f, 1):
            line = line.strip()

            if not line or line.startswith('#'):
                continue

            if '=' not in line:
                logger.warning(f'.env line {lineNum}: Invalid format (missing =): {line}')
                continue

            key, _, value = line.partition('=')
            key = key.strip()
            value = value.strip()

            if not key:
                logger.warning(f'.env line {lineNum}: Empty key')
                continue

            if (value.startswith('"') and value.endswith('"')) or \
               (value.startswith("'") and value.endswith("'")):
                value = value[1:-1]

            # Environment takes precedence
            if key not in os.environ:
                os.environ[key] = value
                loadedCount += 1
            else:
                logger.debug(f'.env: Skipped {key} (already set in environment)')

    logger.debug(f'Loaded {loadedCount} environment variables from {envFilePath}')
    return loadedCount


def configureLogging(logLevel):
    """Configure logging from --log-level or PHOTOBUNDLE_LOGGING_LEVEL

    Both can be a level name (DEBUG, INFO, WARNING, ERROR) or a path to a
    logging.config JSON file.

    Returns:
        str or None: The applied setting
    """

    def suppressNoisyLogger():
        logging.getLogger('urllib3').setLevel(logging.INFO)
        logging.getLogger('urllib3.connectionpool').setLevel(logging.INFO)
        logging.getLogger('sentry_sdk').setLevel(logging.INFO)

    if logLevel is None:
        logLevel = getEnv('PHOTOBUNDLE_LOGGING_LEVEL', None)

    if logLevel is None:
        suppressNoisyLogger()
        return None

    if os.path.isfile(logLevel):
        try:
            with open(logLevel, 'r') as configFile:
                configDict = json.load(configFile)

            logging.config.dictConfig(configDict)
            logger.info(f"Logging configured from file: {logLevel}")
            suppressNoisyLogger()
            return logLevel

        except (json.JSONDecodeError, ValueError, KeyError) as e:
            flushPrint(f"Failed to load logging config from {logLevel}: {e}")
            flushPrint("Falling back to default logging level configuration")

    if logLevel.upper() in LOG_LEVEL_MAPPING:
        configureGlobalLogLevel(LOG_LEVEL_MAPPING[logLevel.upper()])
        logger.info(f"Logging level set to {logLevel}")
    else:
        logger.warning(f"Invalid logging level '{logLevel}', using WARNING as default")
        configureGlobalLogLevel(logging.WARNING)

    suppressNoisyLogger()

    return logLevel


def showVersion():
    flushPrint(f"PhotoBundle v{PUBLIC_VERSION}")
    uname = platform.uname()
    flushPrint(f"Architecture: {uname.system} {uname.release} {uname.machine}")


def configureCLIParser():
    """Configure the argument parser with the bundle and checksum commands

    Returns:
        argparse.ArgumentParser
    """
    settingsGetter = SettingsGetter.getInstance()

    def validatePositive(valueStr):
        try:
            value = int(valueStr)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid number: {valueStr}")
        if value < 1:
            raise argparse.ArgumentTypeError(f"{value} must be at least 1")
        return value

    def validateTimestamp(valueStr):
        try:
            return datetime.datetime.fromisoformat(valueStr)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid ISO 8601 timestamp: {valueStr}")

    parser = argparse.ArgumentParser(
        prog='photobundle', description='Bundle generated photos into a single ZIP archive.'
    )
    parser.add_argument("--version", action="store_true", help="Show version information and exit")
    parser.add_argument(
        "--log-level",
        dest="logLevel",
        metavar="LEVEL_OR_FILE",
        help="DEBUG, INFO, WARNING, ERROR or a logging config JSON file (env: PHOTOBUNDLE_LOGGING_LEVEL)"
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    bundleParser = subparsers.add_parser("bundle", help="Bundle images into a ZIP archive")
    bundleParser.add_argument(
        "sources", metavar="SOURCE", nargs='+', help="Image file path, http(s) URL or data: URL"
    )
    bundleParser.add_argument(
        "-o", "--output", default=settingsGetter.getArchiveName(),
        help=f"Archive path or directory (default: {settingsGetter.getArchiveName()})"
    )
    bundleParser.add_argument(
        "--name", dest="names", action="append", default=[], metavar="NAME",
        help="Archive name for the n-th source, repeat in source order"
    )
    bundleParser.add_argument(
        "--edited", action="store_true",
        help=f"Rename entries to <stem>-edited-<n>.{settingsGetter.getEditedExtension()}"
    )
    bundleParser.add_argument(
        "--mtime", type=validateTimestamp, default=None, help="Modification time for every entry (ISO 8601)"
    )
    bundleParser.add_argument(
        "--workers", type=validatePositive, default=settingsGetter.getFetchMaxWorkers(),
        help="Concurrent source loads"
    )

    checksumParser = subparsers.add_parser("checksum", help="Print the ZIP CRC-32 of files")
    checksumParser.add_argument("files", metavar="FILE", nargs='+')

    return parser


def resolveEntryNames(sources, names, edited=False, extension=None):
    """
    Pair every source with its archive name

    Returns:
        list: (name, source) tuples in source order
    """
    if len(names) > len(sources):
        raise ValueError(f"Got {len(names)} --name values for {len(sources)} sources")

    if extension is None:
        extension = SettingsGetter.getInstance().getEditedExtension()

    items = []
    for index, source in enumerate(sources, 1):
        name = names[index - 1] if index <= len(names) else defaultEntryName(source, index)
        if edited:
            name = makeEditedName(name, index, extension)
        items.append((name, source))

    return items


def runBundle(args):
    settingsGetter = SettingsGetter.getInstance()
    items = resolveEntryNames(args.sources, args.names, edited=args.edited)

    if os.path.isdir(args.output):
        contentName = settingsGetter.getArchiveName()
    else:
        contentName = os.path.basename(args.output)

    session = createSession(retries=settingsGetter.getFetchRetries())
    try:
        reader = ArchiveReader.build(
            items,
            contentName=contentName,
            maxWorkers=args.workers,
            modifiedTime=args.mtime,
            session=session,
            timeout=settingsGetter.getFetchTimeout(),
        )
    finally:
        session.close()

    path = reader.saveTo(args.output, chunkSize=settingsGetter.getChunkSize())

    flushPrint(f"Bundled {len(items)} file(s) into {path} ({formatSize(reader.size)})")
    return 0


def runChecksum(args):
    for path in args.files:
        with open(path, 'rb') as f:
            flushPrint(f"{crc32(f.read()):08x}  {path}")
    return 0


def processArgumentsAndCommands(args):
    """
    Run the parsed command.

    Archive, decoding, fetch and file errors are reported to the user; no partial
    archive is written because the archive is complete in memory before saving.

    Returns:
        int: Exit code
    """
    commands = {'bundle': runBundle, 'checksum': runChecksum}

    try:
        return commands[args.command](args)
    except ZipError as e:
        sendException(logger, e, errorPrefix="Unable to build archive")
    except DataURLError as e:
        sendException(logger, e, errorPrefix="Unable to decode data URL")
    except requests.RequestException as e:
        sendException(logger, e, errorPrefix="Unable to fetch image")
    except (OSError, ValueError) as e:
        sendException(logger, e)

    return 1
