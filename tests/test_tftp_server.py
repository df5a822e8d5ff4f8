import errno
import threading
from unittest.mock import MagicMock, patch

import tftpd
from tests.tftpd_test_case import TFTPTestCase


class TestTFTPServer(TFTPTestCase):
    def setUp(self):
        super(TestTFTPServer, self).setUp()
        self.request_handler_patcher = patch('tftpd.TFTPRequestHandler')
        self.request_handler = self.request_handler_patcher.start()
        self.file_system = MagicMock()
        self.server: tftpd.TFTPServer = None

    def tearDown(self):
        if self.server is not None:
            self.server.__exit__(None, None, None)
        self.request_handler_patcher.stop()
        super(TestTFTPServer, self).tearDown()

    def __create_server(self, listener_factory=None) -> None:
        self.server = tftpd.TFTPServer(
            self.srv_host, self.srv_port, self.file_system, listener_factory)
        self.server.__enter__()

    def __serve(self, recv_values) -> None:
        self.socket_instance.recvfrom.side_effect = recv_values + [
            KeyboardInterrupt()]
        with self.assertRaises(KeyboardInterrupt):
            self.server.serve()
        for thread in threading.enumerate():
            if thread is not threading.current_thread():
                thread.join(5)

    def test_setup(self):
        self.__create_server()
        self.socket.socket.assert_called_with(
            self.socket.AF_INET, self.socket.SOCK_DGRAM)
        self.socket_instance.bind.assert_called_with(self.srv_addr)
        self.assertEqual(self.srv_host, self.server.context.host)
        self.assertIs(self.file_system, self.server.context.file_system)
        self.assertIs(tftpd.default_listener_factory,
                      self.server.context.listener_factory)

    def test_bind_error(self):
        self.socket_instance.bind.side_effect = OSError(
            errno.EADDRINUSE, 'Address already in use')
        with self.assertRaises(OSError):
            tftpd.TFTPServer(self.srv_host, self.srv_port, self.file_system)
        self.socket_instance.close.assert_called_once()

    def test_run_server(self):
        self.__create_server()
        self.socket_instance.recvfrom.side_effect = KeyboardInterrupt()
        with self.assertRaises(KeyboardInterrupt):
            self.server.serve()

    def test_incoming_connection(self):
        listener_factory = MagicMock()
        self.__create_server(listener_factory)
        self.__serve([(b'\x00\x01test !@#\x00octet\x00', self.addr)])

        self.request_handler.assert_called_once_with(
            self.server.context, self.addr,
            b'\x00\x01test !@#\x00octet\x00')
        self.request_handler().handle_request.assert_called_once()
        self.assertIs(listener_factory,
                      self.server.context.listener_factory)

    def test_multiple_connections(self):
        self.__create_server()
        addr = ('example.com', 32768)
        self.__serve([(b'\x00\x01a\x00octet\x00', self.addr),
                      (b'test', addr)])
        self.assertEqual(2, self.request_handler.call_count)
        self.request_handler.assert_any_call(
            self.server.context, addr, b'test')

    def test_failed_transfer_does_not_stop_server(self):
        self.__create_server()
        self.request_handler().handle_request.side_effect = [
            tftpd.TFTPTimeoutError('Timed out'),
            tftpd.TFTPNotFoundError('No such file'),
            OSError(errno.EIO, 'I/O error'),
        ]
        self.__serve([(b'\x00\x01a\x00octet\x00', self.addr)] * 3)
        self.assertEqual(
            3, self.request_handler().handle_request.call_count)
