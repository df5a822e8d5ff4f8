import os
import tempfile
import unittest
from pathlib import Path

import tftpd


class TestLocalFileSystem(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmp_dir.name).resolve()
        self.root = self.base / 'root'
        self.root.mkdir()
        (self.root / 'sub').mkdir()
        (self.root / 'report.txt').write_bytes(b'a' * 600)
        (self.base / 'secret').write_bytes(b'secret')
        self.fs = tftpd.LocalFileSystem(str(self.root))

    def tearDown(self):
        self.tmp_dir.cleanup()

    def test_resolve_simple(self):
        self.assertEqual(self.root / 'report.txt',
                         self.fs.resolve('report.txt'))

    def test_resolve_subdirectory(self):
        self.assertEqual(self.root / 'sub' / 'new.bin',
                         self.fs.resolve('sub/new.bin'))

    def test_resolve_absolute_path(self):
        self.assertEqual(self.root / 'etc' / 'fstab',
                         self.fs.resolve('/etc/fstab'))
        self.assertEqual(self.root / 'report.txt',
                         self.fs.resolve('//report.txt'))

    def test_resolve_inner_parent_directory(self):
        self.assertEqual(self.root / 'report.txt',
                         self.fs.resolve('sub/../report.txt'))

    def test_resolve_parent_directory(self):
        with self.assertRaises(tftpd.TFTPAccessViolationError) as cm:
            self.fs.resolve('../secret')
        self.assertEqual(tftpd.TFTPErrorCodes.ACCESS_VIOLATION,
                         cm.exception.error_id)

    def test_resolve_etc_passwd(self):
        with self.assertRaises(tftpd.TFTPAccessViolationError):
            self.fs.resolve('../../etc/passwd')

    def test_resolve_symlink_escape(self):
        os.symlink(str(self.base / 'secret'), str(self.root / 'link'))
        with self.assertRaises(tftpd.TFTPAccessViolationError):
            self.fs.resolve('link')

    def test_resolve_symlinked_directory_escape(self):
        os.symlink(str(self.base), str(self.root / 'up'))
        with self.assertRaises(tftpd.TFTPAccessViolationError):
            self.fs.resolve('up/secret')

    def test_resolve_symlink_inside_root(self):
        os.symlink(str(self.root / 'report.txt'), str(self.root / 'link'))
        self.assertEqual(self.root / 'report.txt', self.fs.resolve('link'))

    def test_relative_root(self):
        cwd = os.getcwd()
        os.chdir(str(self.base))
        try:
            fs = tftpd.LocalFileSystem('root')
            self.assertEqual(self.root / 'report.txt',
                             fs.resolve('report.txt'))
            with self.assertRaises(tftpd.TFTPAccessViolationError):
                fs.resolve('../secret')
        finally:
            os.chdir(cwd)

    def test_queries(self):
        path = self.fs.resolve('report.txt')
        self.assertTrue(self.fs.exists(path))
        self.assertTrue(self.fs.is_file(path))
        self.assertEqual(600, self.fs.size(path))

        directory = self.fs.resolve('sub')
        self.assertTrue(self.fs.exists(directory))
        self.assertFalse(self.fs.is_file(directory))

        missing = self.fs.resolve('missing')
        self.assertFalse(self.fs.exists(missing))
        self.assertFalse(self.fs.is_file(missing))

    def test_open_write_truncates(self):
        path = self.fs.resolve('report.txt')
        with self.fs.open_write(path) as f:
            f.write(b'new')
        with self.fs.open_read(path) as f:
            self.assertEqual(b'new', f.read())
