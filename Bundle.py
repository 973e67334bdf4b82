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

import sys

from archives.Kernel import getLogger
from archives.Settings import SettingsGetter
from archives.CLI import configureCLIParser, configureLogging, loadEnvFile, processArgumentsAndCommands, showVersion
from archives.Utils import flushPrint, sendException

logger = getLogger(__name__)


def setupSettings():
    # .env must be loaded before anything reads the environment-driven settings
    loadEnvFile()

    return SettingsGetter()


def runCLIMain(argv=None):
    setupSettings()

    parser = configureCLIParser()
    args = parser.parse_args(argv)

    configureLogging(args.logLevel)

    if args.version:
        showVersion()
        return 0

    if not args.command:
        parser.print_help()
        return 0

    return processArgumentsAndCommands(args)


def main(argv=None):
    try:
        return runCLIMain(argv)
    except KeyboardInterrupt:
        flushPrint('\nExiting on user request (Ctrl+C)...')
        return 0
    except Exception as e:
        sendException(logger, e)
        return 1


if __name__ == '__main__':
    sys.exit(main() or 0)
