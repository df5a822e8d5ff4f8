import unittest

import tftpd


class TestTimeoutPolicy(unittest.TestCase):
    def test_initial(self):
        self.assertEqual(tftpd.INITIAL_TIMEOUT_MS, tftpd.timeout_ms(0))

    def test_doubles(self):
        self.assertEqual(2 * tftpd.INITIAL_TIMEOUT_MS, tftpd.timeout_ms(1))
        self.assertEqual(4 * tftpd.INITIAL_TIMEOUT_MS, tftpd.timeout_ms(2))
        self.assertEqual(8 * tftpd.INITIAL_TIMEOUT_MS, tftpd.timeout_ms(3))

    def test_clamped(self):
        self.assertEqual(tftpd.MAX_TIMEOUT_MS, tftpd.timeout_ms(4))
        self.assertEqual(tftpd.MAX_TIMEOUT_MS, tftpd.timeout_ms(100))

    def test_monotonic(self):
        values = [tftpd.timeout_ms(i) for i in range(20)]
        self.assertEqual(sorted(values), values)
