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

import io
import os
import zlib
import shutil
import zipfile
import tempfile
import unittest

from unittest.mock import patch

import Bundle

from archives.CLI import loadEnvFile, resolveEntryNames
from archives.Sources import bytesToDataURL


class CLITest(unittest.TestCase):
    """Run the command line entry point in-process"""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.sources = []
        for name, content in (('cat.jpg', b'\xff\xd8cat'), ('dog.jpg', b'\xff\xd8dog')):
            path = os.path.join(self.tmpdir, name)
            with open(path, 'wb') as f:
                f.write(content)
            self.sources.append(path)
        self.output = os.path.join(self.tmpdir, 'out.zip')

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def runMain(self, *argv):
        with patch('sys.stdout', new_callable=io.StringIO) as stdout:
            exitCode = Bundle.main(list(argv))
        print(f"[Test] photobundle {' '.join(argv)} -> {exitCode}")
        return exitCode, stdout.getvalue()

    def testBundle(self):
        exitCode, output = self.runMain('bundle', *self.sources, '-o', self.output, '--mtime', '2024-05-17T13:45:58')

        self.assertEqual(exitCode, 0)
        self.assertIn('Bundled 2 file(s)', output)
        self.assertRegex(output, r'\(\d+ Bytes\)')

        with zipfile.ZipFile(self.output) as zf:
            self.assertEqual(zf.namelist(), ['cat.jpg', 'dog.jpg'])
            self.assertEqual(zf.read('dog.jpg'), b'\xff\xd8dog')
            self.assertEqual(zf.infolist()[0].date_time, (2024, 5, 17, 13, 45, 58))

    def testBundleEditedNames(self):
        dataUrl = bytesToDataURL(b'generated', 'image/png')
        exitCode, _ = self.runMain('bundle', self.sources[0], dataUrl, '-o', self.tmpdir, '--edited', '--workers', '2')

        self.assertEqual(exitCode, 0)

        with zipfile.ZipFile(os.path.join(self.tmpdir, 'bulk-edits.zip')) as zf:
            self.assertEqual(zf.namelist(), ['cat-edited-1.png', 'image-2-edited-2.png'])
            self.assertEqual(zf.read('image-2-edited-2.png'), b'generated')

    def testBundleExplicitNames(self):
        exitCode, _ = self.runMain('bundle', *self.sources, '-o', self.output, '--name', 'first.jpg')

        self.assertEqual(exitCode, 0)
        with zipfile.ZipFile(self.output) as zf:
            self.assertEqual(zf.namelist(), ['first.jpg', 'dog.jpg'])

    def testBundleFailureWritesNothing(self):
        """A missing source or bad data URL fails before the archive is written"""
        testCases = [
            [self.sources[0], os.path.join(self.tmpdir, 'missing.jpg')],
            [self.sources[0], 'data:image/png;base64,****'],
            self.sources + ['--name', 'a', '--name', 'b', '--name', 'c'],
        ]

        for sources in testCases:
            with self.subTest(sources=sources):
                with patch.dict(os.environ, {'RAISE_EXCEPTION': 'False'}):
                    exitCode, output = self.runMain('bundle', *sources, '-o', self.output)

                self.assertEqual(exitCode, 1)
                self.assertIn('No archive was written', output)
                self.assertFalse(os.path.exists(self.output))

    def testChecksum(self):
        exitCode, output = self.runMain('checksum', *self.sources)

        self.assertEqual(exitCode, 0)
        lines = output.strip().splitlines()
        self.assertEqual(len(lines), 2)
        expected = zlib.crc32(b'\xff\xd8cat')
        self.assertEqual(lines[0], f"{expected:08x}  {self.sources[0]}")

    def testVersion(self):
        exitCode, output = self.runMain('--version')

        self.assertEqual(exitCode, 0)
        self.assertIn('PhotoBundle v', output)

    def testNoCommandPrintsHelp(self):
        exitCode, output = self.runMain()

        self.assertEqual(exitCode, 0)
        self.assertIn('bundle', output)

    def testInvalidWorkers(self):
        with patch('sys.stderr', new_callable=io.StringIO):
            with self.assertRaises(SystemExit):
                Bundle.main(['bundle', self.sources[0], '--workers', '0'])


class ResolveEntryNamesTest(unittest.TestCase):

    def testNames(self):
        sources = ['a.jpg', 'https://cdn.example.com/b.webp', 'c.jpg']

        self.assertEqual(
            resolveEntryNames(sources, ['x.jpg']),
            [('x.jpg', 'a.jpg'), ('b.webp', sources[1]), ('c.jpg', 'c.jpg')]
        )
        self.assertEqual(
            [name for name, _ in resolveEntryNames(sources, [], edited=True, extension='webp')],
            ['a-edited-1.webp', 'b-edited-2.webp', 'c-edited-3.webp']
        )

        with self.assertRaises(ValueError):
            resolveEntryNames(['a.jpg'], ['x.jpg', 'y.jpg'])


class LoadEnvFileTest(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def testLoad(self):
        with open(os.path.join(self.tmpdir, '.env'), 'w') as f:
            f.write('# comment\n')
            f.write('PHOTOBUNDLE_TEST_ENV_A="quoted value"\n')
            f.write('PHOTOBUNDLE_TEST_ENV_B=from file\n')
            f.write('not a pair\n')

        env = {'PHOTOBUNDLE_STORAGE_LOCATION': self.tmpdir, 'PHOTOBUNDLE_TEST_ENV_B': 'from environment'}
        with patch.dict(os.environ, env):
            os.environ.pop('PHOTOBUNDLE_TEST_ENV_A', None)

            self.assertEqual(loadEnvFile(), 1)
            self.assertEqual(os.environ['PHOTOBUNDLE_TEST_ENV_A'], 'quoted value')
            self.assertEqual(os.environ['PHOTOBUNDLE_TEST_ENV_B'], 'from environment')


if __name__ == '__main__':
    unittest.main()
