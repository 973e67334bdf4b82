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
import json
import shutil
import logging
import tempfile
import unittest

from unittest.mock import patch

import Bundle

from archives.Kernel import PUBLIC_VERSION, Singleton, StorageLocator, SecretGetter, getLogger
from archives.Settings import SettingsGetter


class SingletonTest(unittest.TestCase):

    def testInitializeRunsOnce(self):
        class Counter(Singleton):

            def initialize(self, start=0):
                self.value = start

        first = Counter(5)
        second = Counter(9)

        self.assertIs(first, second)
        self.assertIs(Counter.getInstance(), first)
        self.assertEqual(second.value, 5)

    def testSettingsGetterIsInitialized(self):
        """The test package initializes SettingsGetter like the CLI entry point does"""
        settingsGetter = SettingsGetter.getInstance()

        self.assertEqual(settingsGetter.getArchiveName(), 'bulk-edits.zip')

        with patch.dict(os.environ, {'FETCH_MAX_WORKERS': '9', 'DEFAULT_ARCHIVE_NAME': 'edits.zip'}):
            self.assertEqual(settingsGetter.getFetchMaxWorkers(), 9)
            self.assertEqual(settingsGetter.getArchiveName(), 'edits.zip')

    def testSettingsGetterRequiresSetup(self):
        """getInstance() refuses to build settings implicitly, setupSettings() returns the shared instance"""
        settingsGetter = SettingsGetter.getInstance()

        with patch.dict(Singleton._instances):
            del Singleton._instances[SettingsGetter]
            with self.assertRaises(RuntimeError):
                SettingsGetter.getInstance()

        with patch('Bundle.loadEnvFile', return_value=0):
            self.assertIs(Bundle.setupSettings(), settingsGetter)


class StorageLocatorTest(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.locator = StorageLocator.getInstance()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def testEnvironmentLocationFirst(self):
        path = os.path.join(self.tmpdir, '.env')
        with open(path, 'w') as f:
            f.write('FETCH_RETRIES=5\n')

        with patch.dict(os.environ, {'PHOTOBUNDLE_STORAGE_LOCATION': self.tmpdir}):
            self.assertEqual(self.locator.findConfig('.env'), path)

    def testMissingFileFallsBackToEnvironmentLocation(self):
        with patch.dict(os.environ, {'PHOTOBUNDLE_STORAGE_LOCATION': self.tmpdir}):
            self.assertEqual(
                self.locator.findConfig('photobundle-missing.json'),
                os.path.join(self.tmpdir, 'photobundle-missing.json')
            )

    def testInvalidEnvironmentLocationIsIgnored(self):
        missingDir = os.path.join(self.tmpdir, 'nope')

        with patch.dict(os.environ, {'PHOTOBUNDLE_STORAGE_LOCATION': missingDir}):
            path = self.locator.findConfig('photobundle-missing.json')

        self.assertFalse(path.startswith(missingDir))
        self.assertTrue(path.endswith('photobundle-missing.json'))


class SecretGetterTest(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.getter = SecretGetter.getInstance()
        self._resetCache()

    def tearDown(self):
        self._resetCache()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _resetCache(self):
        self.getter._cache = {}
        self.getter._secretData = None

    def testEnvironmentFirst(self):
        with open(os.path.join(self.tmpdir, '.secret'), 'w') as f:
            json.dump({'PHOTOBUNDLE_TEST_SECRET': 'fromFile'}, f)

        env = {'PHOTOBUNDLE_TEST_SECRET': 'fromEnv', 'PHOTOBUNDLE_STORAGE_LOCATION': self.tmpdir}
        with patch.dict(os.environ, env):
            self.assertEqual(self.getter.get('PHOTOBUNDLE_TEST_SECRET'), 'fromEnv')

    def testSecretFile(self):
        with open(os.path.join(self.tmpdir, '.secret'), 'w') as f:
            json.dump({'PHOTOBUNDLE_TEST_FILE_SECRET': 'fromFile'}, f)

        with patch.dict(os.environ, {'PHOTOBUNDLE_STORAGE_LOCATION': self.tmpdir}):
            os.environ.pop('PHOTOBUNDLE_TEST_FILE_SECRET', None)
            self.assertEqual(self.getter.get('PHOTOBUNDLE_TEST_FILE_SECRET'), 'fromFile')
            self.assertIsNone(self.getter.get('PHOTOBUNDLE_TEST_UNKNOWN_SECRET'))

    def testBrokenSecretFile(self):
        with open(os.path.join(self.tmpdir, '.secret'), 'w') as f:
            f.write('{not json')

        with patch.dict(os.environ, {'PHOTOBUNDLE_STORAGE_LOCATION': self.tmpdir}):
            self.assertIsNone(self.getter.get('PHOTOBUNDLE_TEST_UNKNOWN_SECRET'))


class GetLoggerTest(unittest.TestCase):

    def testVersionContext(self):
        logger = getLogger('tests.archives.kernel')

        self.assertIsInstance(logger, logging.LoggerAdapter)
        self.assertEqual(logger.extra['version'], PUBLIC_VERSION)

        # Handlers are not duplicated on repeated calls
        getLogger('tests.archives.kernel')
        self.assertEqual(len(logging.getLogger('tests.archives.kernel').handlers), 1)


if __name__ == '__main__':
    unittest.main()
