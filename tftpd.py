import errno
import itertools
import logging
import socket
import time
from pathlib import Path, PurePosixPath
from threading import Lock, Thread
from typing import (BinaryIO, Callable, Dict, NamedTuple, NewType, Optional,
                    Tuple, Union)

logger = logging.getLogger('tftpd')

BLOCK_SIZE = 512
# DATA header + payload is 516 bytes; leave some room for oversized packets
BUF_SIZE = 1024
INITIAL_TIMEOUT_MS = 500
MAX_TIMEOUT_MS = 5000
MAX_RETRIES = 5
# Minimum number of seconds between two progress notifications
PROGRESS_INTERVAL = 0.1


class TFTPOpcodes:
    """Class containing all the opcodes used in TFTP."""
    RRQ = b'\x00\x01'
    WRQ = b'\x00\x02'
    DATA = b'\x00\x03'
    ACK = b'\x00\x04'
    ERROR = b'\x00\x05'


class TFTPErrorCodes:
    """Class containing all the error codes and their messages used in TFTP."""
    UNKNOWN = 0
    FILE_NOT_FOUND = 1
    ACCESS_VIOLATION = 2
    DISK_FULL = 3
    ILLEGAL_OPERATION = 4
    UNKNOWN_TRANSFER_ID = 5
    FILE_EXISTS = 6
    NO_SUCH_USER = 7

    __MESSAGES = {
        UNKNOWN: '',
        FILE_NOT_FOUND: 'File not found',
        ACCESS_VIOLATION: 'Access violation',
        DISK_FULL: 'Disk full or allocation exceeded',
        ILLEGAL_OPERATION: 'Illegal TFTP operation',
        UNKNOWN_TRANSFER_ID: 'Unknown transfer ID',
        FILE_EXISTS: 'File already exists',
        NO_SUCH_USER: 'No such user',
    }

    @classmethod
    def get_message(cls, error_code: int) -> str:
        """Return an error message for given error code.

        :param error_code: error code to get the message for
        :return: error message (empty for codes outside RFC 1350)
        """
        return cls.__MESSAGES.get(error_code, '')


Address = NewType('Address', tuple)
Packet = NewType('Packet', Tuple[bytes, Address])


class TransferRequest(NamedTuple):
    """Well-formed RRQ/WRQ received on the listening socket."""
    opcode: bytes
    file_name: str
    mode: str
    addr: Address

    @property
    def is_read(self) -> bool:
        return self.opcode == TFTPOpcodes.RRQ


class TransferResult(NamedTuple):
    """Outcome of a single transfer, passed to TransferListener.complete()."""
    transfer_id: int
    request: TransferRequest
    success: bool
    bytes_transferred: int
    error: Optional[BaseException] = None


class TFTPException(Exception):
    """Generic TFTP exception."""
    pass


class TFTPError(TFTPException):
    """Exception meaning that a TFTP ERROR packet received."""

    def __init__(self, error_id: int, message: str) -> None:
        super(TFTPError, self).__init__(
            'Error {}: {}'.format(error_id, message))
        self.error_id = error_id
        self.message = message


class TFTPTimeoutError(TFTPException):
    """Exception meaning that the peer stopped responding and all the retries
    were used up."""
    pass


class TFTPTerminatedError(TFTPException):
    """Exception meaning that the TFTP request was rejected for the reason
    passed in `error_id` and `error_message` arguments."""

    def __init__(self, error_id: int, error_message: str,
                 message: str) -> None:
        super(TFTPTerminatedError, self).__init__(
            'Terminated with error {}: {}; cause: {}'.format(
                error_id, error_message, message))
        self.error_id = error_id
        self.error_message = error_message
        self.message = message


class TFTPMalformedRequestError(TFTPTerminatedError):
    """RRQ/WRQ packet could not be parsed."""

    def __init__(self, message: str) -> None:
        super(TFTPMalformedRequestError, self).__init__(
            TFTPErrorCodes.ILLEGAL_OPERATION,
            TFTPErrorCodes.get_message(TFTPErrorCodes.ILLEGAL_OPERATION),
            message)


class TFTPIllegalOperationError(TFTPTerminatedError):
    """Packet other than RRQ/WRQ received on the listening socket."""

    def __init__(self, message: str) -> None:
        super(TFTPIllegalOperationError, self).__init__(
            TFTPErrorCodes.ILLEGAL_OPERATION,
            TFTPErrorCodes.get_message(TFTPErrorCodes.ILLEGAL_OPERATION),
            message)


class TFTPAccessViolationError(TFTPTerminatedError):
    """Requested path is outside of the server root or is not writable."""

    def __init__(self, message: str) -> None:
        super(TFTPAccessViolationError, self).__init__(
            TFTPErrorCodes.ACCESS_VIOLATION,
            TFTPErrorCodes.get_message(TFTPErrorCodes.ACCESS_VIOLATION),
            message)


class TFTPNotFoundError(TFTPTerminatedError):
    """Requested file does not exist or is not a regular file."""

    def __init__(self, message: str) -> None:
        super(TFTPNotFoundError, self).__init__(
            TFTPErrorCodes.FILE_NOT_FOUND,
            TFTPErrorCodes.get_message(TFTPErrorCodes.FILE_NOT_FOUND),
            message)


###########################################################################
# Timeout policy
###########################################################################
def timeout_ms(retry: int) -> int:
    """Return how long to wait for a packet, given the number of consecutive
    failures already observed for the current protocol step.

    :param retry: zero-based count of consecutive timeouts/rejected packets
    :return: timeout in milliseconds, doubling with each retry and clamped
        at MAX_TIMEOUT_MS
    """
    return min(INITIAL_TIMEOUT_MS * 2 ** retry, MAX_TIMEOUT_MS)


###########################################################################
# Packets
###########################################################################
def parse_request(data: bytes) -> Tuple[bytes, str, str]:
    """Parse an RRQ/WRQ packet.

    :param data: the whole datagram received
    :return: 3-tuple containing: opcode, file name and file transfer mode
    :raise: TFTPMalformedRequestError if the packet could not be parsed
    :raise: TFTPIllegalOperationError if the opcode is not RRQ nor WRQ
    """
    if len(data) < 2:
        raise TFTPMalformedRequestError(
            'Packet too short: {}'.format(data))
    opcode = data[0:2]
    if opcode not in (TFTPOpcodes.RRQ, TFTPOpcodes.WRQ):
        raise TFTPIllegalOperationError(
            'Invalid opcode: {}'.format(opcode))

    fields = []
    start = 2
    for _ in range(2):
        end = data.find(b'\x00', start)
        if end == -1:
            raise TFTPMalformedRequestError(
                'Unterminated field: {}'.format(data))
        fields.append(data[start:end])
        start = end + 1

    try:
        file_name, mode = (field.decode('ascii') for field in fields)
    except UnicodeDecodeError as e:
        raise TFTPMalformedRequestError(str(e))
    if not file_name or not mode:
        raise TFTPMalformedRequestError(
            'Empty field: {}'.format(data))
    return opcode, file_name, mode.lower()


def parse_error(data: bytes) -> Tuple[int, str]:
    """Parse an ERROR packet, tolerating truncated or unterminated ones.

    :param data: the whole datagram received
    :return: pair containing the error code and the error message
    """
    if len(data) < 4:
        return TFTPErrorCodes.UNKNOWN, ''
    error_code = int.from_bytes(data[2:4], byteorder='big')
    message = data[4:]
    end = message.find(b'\x00')
    if end != -1:
        message = message[:end]
    return error_code, message.decode('ascii', errors='replace')


def data_packet(block_id: int, data: bytes) -> bytes:
    return TFTPOpcodes.DATA + block_id.to_bytes(2, byteorder='big') + data


def ack_packet(block_id: int) -> bytes:
    return TFTPOpcodes.ACK + block_id.to_bytes(2, byteorder='big')


def error_packet(error_code: int, error_message: str) -> bytes:
    return (TFTPOpcodes.ERROR + error_code.to_bytes(2, byteorder='big') +
            error_message.encode('ascii', errors='replace') + b'\x00')


###########################################################################
# Error reporting
###########################################################################
def send_error(host: str, addr: Address, error_code: int,
               error_message: str = None) -> str:
    """Send an ERROR packet once, from a fresh ephemeral socket.

    Delivery is best-effort: failures are logged and not retried.

    :param host: host to bind the socket to
    :param addr: the address to send the packet to
    :param error_code: error code to send
    :param error_message: message to send with the ERROR packet. If None,
        a default message for the given error code is used.
    :return: the error message that was sent
    """
    if error_message is None:
        error_message = TFTPErrorCodes.get_message(error_code)
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind((host, 0))
        sock.sendto(error_packet(error_code, error_message), addr)
    except OSError as e:
        logger.warning('Could not send error %d to %s: %s',
                       error_code, addr, e)
    finally:
        sock.close()
    return error_message


def os_error_code(e: OSError) -> Tuple[int, Optional[str]]:
    """Map a local I/O error to a TFTP error code.

    :param e: error raised by a file operation
    :return: pair containing the error code and the message to send (None
        when the default message for the code should be used)
    """
    if e.errno == errno.ENOENT:
        return TFTPErrorCodes.FILE_NOT_FOUND, None
    elif e.errno == errno.EPERM or e.errno == errno.EACCES:
        return TFTPErrorCodes.ACCESS_VIOLATION, None
    elif e.errno == errno.EFBIG or e.errno == errno.ENOSPC:
        return TFTPErrorCodes.DISK_FULL, None
    return TFTPErrorCodes.UNKNOWN, e.strerror or str(e)


###########################################################################
# Filesystem
###########################################################################
class LocalFileSystem:
    """
    Files served from (and stored into) a single root directory. Every
    client-supplied file name goes through resolve() first.
    """

    def __init__(self, root_dir: Union[str, Path]) -> None:
        """
        :param root_dir: the directory where the files should be served from
        """
        self.root_dir = Path(root_dir)

    def resolve(self, file_name: str) -> Path:
        """Return file path inside server root directory, rejecting "evil"
        paths, like "../../secret_file" or symlinks pointing outside.

        :param file_name: file name sent by the client
        :return: canonical absolute path inside the server root directory
        :raise: TFTPAccessViolationError if the path escapes the root
        """
        while PurePosixPath(file_name).is_absolute():
            file_name = file_name[1:]
        root = self.root_dir.resolve()
        path = root.joinpath(file_name).resolve()

        try:
            path.relative_to(root)
        except ValueError:
            raise TFTPAccessViolationError(
                'Invalid path: {}'.format(file_name))
        return path

    def open_read(self, path: Path) -> BinaryIO:
        return path.open('rb')

    def open_write(self, path: Path) -> BinaryIO:
        return path.open('wb')

    def size(self, path: Path) -> int:
        return path.stat().st_size

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_file(self, path: Path) -> bool:
        return path.is_file()


###########################################################################
# Observers
###########################################################################
class TransferListener:
    """
    Receives notifications about a single transfer. The default
    implementation ignores them all; subclass to display progress.
    """

    def progress(self, bytes_transferred: int, total_bytes: Optional[int],
                 rate: float) -> None:
        """Called at most every PROGRESS_INTERVAL seconds, and always after
        the last block.

        :param bytes_transferred: bytes acknowledged so far
        :param total_bytes: size of the file, or None if not known yet
        :param rate: average transfer rate in bytes per second
        """
        pass

    def complete(self, result: TransferResult) -> None:
        """Called exactly once, when the transfer ends for whatever reason."""
        pass


ListenerFactory = Callable[[TransferRequest], TransferListener]


def default_listener_factory(request: TransferRequest) -> TransferListener:
    return TransferListener()


class TransferRegistry:
    """Thread-safe collection of the transfers currently in progress. Only
    used for observability; never consulted for protocol decisions."""

    def __init__(self) -> None:
        self.__lock = Lock()
        self.__ids = itertools.count(1)
        self.__transfers: Dict[int, TransferRequest] = {}

    def add(self, request: TransferRequest) -> int:
        """Register a new transfer.

        :param request: request that started the transfer
        :return: identifier of the transfer
        """
        with self.__lock:
            transfer_id = next(self.__ids)
            self.__transfers[transfer_id] = request
        return transfer_id

    def remove(self, transfer_id: int) -> None:
        with self.__lock:
            self.__transfers.pop(transfer_id, None)

    def active(self) -> Dict[int, TransferRequest]:
        """Return a snapshot of the transfers in progress."""
        with self.__lock:
            return dict(self.__transfers)

    def __len__(self) -> int:
        with self.__lock:
            return len(self.__transfers)


class ServerContext(NamedTuple):
    """Immutable state shared by all the request handlers of a server."""
    host: str
    file_system: LocalFileSystem
    registry: TransferRegistry
    listener_factory: ListenerFactory = default_listener_factory


###########################################################################
# Sessions
###########################################################################
class TFTPSession:
    """
    Base class for a single transfer with one client. Owns the ephemeral
    socket the transfer runs on and keeps the transfer state: current block
    ID and number of bytes transferred.
    """

    def __init__(self, sock: socket.socket, addr: Address,
                 listener: TransferListener = None) -> None:
        """
        :param sock: socket to use to communicate, bound for this transfer
            only
        :param addr: address (host + port) of the client
        :param listener: listener to report progress to
        """
        self._sock = sock
        self._addr = addr
        self._listener = listener or TransferListener()
        self.block_id = 0
        self.bytes_transferred = 0
        self.__last_packet: bytes = None
        self.__start_time = time.monotonic()
        self.__last_progress = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._sock.close()

    def _send(self, data: bytes) -> None:
        """Send a packet to the client and store it as the last packet sent.

        :param data: data to be sent
        """
        self.__last_packet = data
        self._sock.sendto(data, self._addr)

    def _resend_last_packet(self) -> None:
        self._sock.sendto(self.__last_packet, self._addr)

    def _recv(self, deadline: float) -> Packet:
        """Receive a single packet from anyone, waiting until `deadline`
        at most.

        :param deadline: time.monotonic() value to stop waiting at
        :return: packet received
        :raise: socket.timeout if nothing arrived in time
        """
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise socket.timeout('timed out')
        self._sock.settimeout(remaining)
        return self._sock.recvfrom(BUF_SIZE)

    @staticmethod
    def _deadline(retry: int) -> float:
        return time.monotonic() + timeout_ms(retry) / 1000

    def _report_progress(self, total_bytes: Optional[int],
                         force: bool = False) -> None:
        """Notify the listener, unless it was notified less than
        PROGRESS_INTERVAL seconds ago.

        :param total_bytes: total size of the file, if known
        :param force: notify even if the interval did not pass yet
        """
        now = time.monotonic()
        if (not force and self.__last_progress is not None and
                now - self.__last_progress < PROGRESS_INTERVAL):
            return
        self.__last_progress = now
        elapsed = now - self.__start_time
        rate = self.bytes_transferred / elapsed if elapsed > 0 else 0.0
        self._listener.progress(self.bytes_transferred, total_bytes, rate)


class TFTPUploadSession(TFTPSession):
    """Sends a file to the client (RRQ), one acknowledged block at a time."""

    def send_file(self, file: BinaryIO, total_bytes: int = None) -> int:
        """Send a file by sending DATA packets and waiting for ACKs.

        :param file: file opened for reading
        :param total_bytes: size of the file, used for progress reports
        :return: number of bytes sent
        :raise: TFTPTimeoutError if a block was not acknowledged in
            MAX_RETRIES attempts
        :raise: TFTPError if the client sent an ERROR packet
        """
        self.block_id = 1
        while True:
            data = file.read(BLOCK_SIZE)
            self.__send_block(data)
            self.bytes_transferred += len(data)
            last = len(data) < BLOCK_SIZE
            self._report_progress(total_bytes, force=last)
            if last:
                return self.bytes_transferred
            self.block_id = (self.block_id + 1) % 65536

    def __send_block(self, data: bytes) -> None:
        """Send a single DATA packet and wait until it is acknowledged.

        :param data: payload of the packet
        """
        packet = data_packet(self.block_id, data)
        previous_id = (self.block_id - 1) % 65536

        retries = 0
        while retries < MAX_RETRIES:
            self._send(packet)
            deadline = self._deadline(retries)
            while True:
                try:
                    data, addr = self._recv(deadline)
                except socket.timeout:
                    logger.debug('Timeout waiting for ACK %d from %s',
                                 self.block_id, self._addr)
                    break
                if addr != self._addr:
                    logger.warning('Invalid TID: %s (expected: %s)',
                                   addr, self._addr)
                    break

                opcode = data[0:2]
                if opcode == TFTPOpcodes.ERROR:
                    raise TFTPError(*parse_error(data))
                if opcode == TFTPOpcodes.ACK and len(data) >= 4:
                    ack_id = int.from_bytes(data[2:4], byteorder='big')
                    if ack_id == self.block_id:
                        return
                    if ack_id == previous_id:
                        # Duplicate ACK of the previous block
                        continue
                logger.debug('Unexpected packet from %s: %s', addr, data)
                break
            retries += 1

        raise TFTPTimeoutError(
            'Block {} not acknowledged after {} attempts'.format(
                self.block_id, MAX_RETRIES))


class TFTPDownloadSession(TFTPSession):
    """Receives a file from the client (WRQ), acknowledging each block."""

    def recv_file(self, open_file: Callable[[], BinaryIO]) -> int:
        """Receive a file by listening for DATA packets and responding
        with ACKs.

        :param open_file: function opening the destination file; called after
            the initial ACK was sent
        :return: number of bytes received
        :raise: TFTPTimeoutError if the client stopped sending data
        :raise: TFTPError if the client sent an ERROR packet
        """
        self._send(ack_packet(0))
        expected_id = 1

        with open_file() as file:
            retries = 0
            deadline = self._deadline(retries)
            while True:
                try:
                    data = self.__recv_from_client(deadline)
                except socket.timeout:
                    retries = self.__failed(retries)
                    logger.debug('Timeout waiting for block %d from %s',
                                 expected_id, self._addr)
                    self._resend_last_packet()
                    deadline = self._deadline(retries)
                    continue

                opcode = data[0:2]
                if opcode == TFTPOpcodes.ERROR:
                    raise TFTPError(*parse_error(data))
                if (opcode != TFTPOpcodes.DATA or len(data) < 4 or
                        len(data) > 4 + BLOCK_SIZE):
                    logger.debug('Unexpected packet from %s: %s',
                                 self._addr, data)
                    retries = self.__failed(retries)
                    continue

                block_id = int.from_bytes(data[2:4], byteorder='big')
                if block_id == expected_id:
                    payload = data[4:]
                    file.write(payload)
                    self.block_id = block_id
                    self.bytes_transferred += len(payload)
                    self._send(ack_packet(block_id))
                    expected_id = (expected_id + 1) % 65536
                    retries = 0
                    deadline = self._deadline(retries)

                    if len(payload) < BLOCK_SIZE:
                        self._report_progress(self.bytes_transferred,
                                              force=True)
                        return self.bytes_transferred
                    self._report_progress(None)
                elif block_id == (expected_id - 1) % 65536:
                    # Our ACK got lost; the data is already written
                    self._resend_last_packet()
                else:
                    logger.debug('Ignoring block %d from %s (expected: %d)',
                                 block_id, self._addr, expected_id)
                    retries = self.__failed(retries)

    @staticmethod
    def __failed(retries: int) -> int:
        """Count one more failure (timeout or rejected packet) of the current
        step.

        :param retries: failures counted so far
        :return: new number of failures
        :raise: TFTPTimeoutError if MAX_RETRIES was reached
        """
        retries += 1
        if retries >= MAX_RETRIES:
            raise TFTPTimeoutError(
                'No valid data received after {} attempts'.format(retries))
        return retries

    def __recv_from_client(self, deadline: float) -> bytes:
        """Receive a packet from the client, dropping packets from other
        addresses.

        :param deadline: time.monotonic() value to stop waiting at
        :return: data received
        """
        while True:
            data, addr = self._recv(deadline)
            if addr == self._addr:
                return data
            logger.warning('Invalid TID: %s (expected: %s)', addr, self._addr)


###########################################################################
# Server side
###########################################################################
class TFTPRequestHandler:
    """
    Class that handles a single request received on the server socket:
    validates it and runs the transfer on a dedicated socket.
    """

    def __init__(self, context: ServerContext, addr: Address,
                 data: bytes) -> None:
        """
        :param context: settings and shared state of the server
        :param addr: address of the client to connect with
        :param data: the first (RRQ/WRQ) packet received from the client
        """
        self.__context = context
        self.__addr = addr
        self.__data = data

    def handle_request(self) -> TransferResult:
        """Handle the request sent by the client.

        :return: result of the successful transfer
        :raise: TFTPTerminatedError if the request was rejected
        :raise: TFTPException if the transfer failed
        :raise: OSError on local I/O errors
        """
        request = self.__parse_request()
        path = self.__resolve(request)
        logger.info('%s request for %s (mode: %s) from %s',
                    'Read' if request.is_read else 'Write',
                    request.file_name, request.mode, request.addr)
        if request.is_read:
            return self.__handle_rrq(request, path)
        return self.__handle_wrq(request, path)

    def __reject(self, error: TFTPTerminatedError) -> None:
        """Send an ERROR packet for given rejection and raise it.

        :param error: exception describing the rejection
        :raise: the error passed
        """
        logger.warning('Rejecting request from %s: %s',
                       self.__addr, error.message)
        send_error(self.__context.host, self.__addr,
                   error.error_id, error.error_message)
        raise error

    def __parse_request(self) -> TransferRequest:
        try:
            opcode, file_name, mode = parse_request(self.__data)
        except TFTPTerminatedError as e:
            self.__reject(e)
        return TransferRequest(opcode, file_name, mode, self.__addr)

    def __resolve(self, request: TransferRequest) -> Path:
        try:
            return self.__context.file_system.resolve(request.file_name)
        except TFTPTerminatedError as e:
            self.__reject(e)

    def __handle_rrq(self, request: TransferRequest,
                     path: Path) -> TransferResult:
        """Handle RRQ request: read and send the requested file.

        :param request: request received
        :param path: path to the requested file
        """
        fs = self.__context.file_system
        if not fs.is_file(path):
            self.__reject(TFTPNotFoundError(
                'No such file: {}'.format(request.file_name)))
        def transfer(session: TFTPUploadSession) -> int:
            with fs.open_read(path) as file:
                return session.send_file(file, fs.size(path))

        return self.__run(request, TFTPUploadSession, transfer)

    def __handle_wrq(self, request: TransferRequest,
                     path: Path) -> TransferResult:
        """Handle WRQ request: receive and save the file from the client,
        overwriting the existing one, if any.

        :param request: request received
        :param path: path to save the file as
        """
        fs = self.__context.file_system
        if fs.exists(path):
            if not fs.is_file(path):
                self.__reject(TFTPAccessViolationError(
                    'Not a regular file: {}'.format(request.file_name)))
            logger.info('File exists, overwriting: %s', path)

        def transfer(session: TFTPDownloadSession) -> int:
            return session.recv_file(lambda: fs.open_write(path))

        return self.__run(request, TFTPDownloadSession, transfer)

    def __run(self, request: TransferRequest, session_cls,
              transfer: Callable[..., int]) -> TransferResult:
        """Run the transfer on a new ephemeral socket, keeping it registered
        in the server registry while it runs.

        :param request: request received
        :param session_cls: TFTPUploadSession or TFTPDownloadSession
        :param transfer: function taking the session and returning the number
            of bytes transferred
        :return: result of the transfer
        """
        registry = self.__context.registry
        transfer_id = registry.add(request)
        logger.debug('Active transfers: %s', list(registry.active()))
        listener = None
        session = None
        try:
            listener = self.__context.listener_factory(request)
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            with session_cls(sock, request.addr, listener) as session:
                sock.bind((self.__context.host, 0))
                logger.info('Incoming connection from %s, binding at: %s',
                            request.addr, sock.getsockname())
                transferred = transfer(session)
        except (TFTPException, OSError) as e:
            if isinstance(e, OSError):
                send_error(self.__context.host, request.addr,
                           *os_error_code(e))
            if listener is not None:
                listener.complete(TransferResult(
                    transfer_id, request, False,
                    session.bytes_transferred if session else 0, e))
            raise
        finally:
            registry.remove(transfer_id)
            logger.debug('Transfer %d finished, %d still active',
                         transfer_id, len(registry))

        result = TransferResult(transfer_id, request, True, transferred)
        logger.info('%s completed: %s (%d bytes) %s %s',
                    'Upload' if request.is_read else 'Download',
                    request.file_name, transferred,
                    'to' if request.is_read else 'from', request.addr[0])
        listener.complete(result)
        return result


class TFTPServer:
    """
    Class that handles communication with multiple TFTP clients. Uses
    TFTPRequestHandler for each request received, running it in a separate
    thread.
    """

    def __init__(self, host: str, port: int, file_system: LocalFileSystem,
                 listener_factory: ListenerFactory = None) -> None:
        """
        :param host: host of the server to bind to
        :param port: port to bind to
        :param file_system: the files to serve
        :param listener_factory: function creating a TransferListener for
            each transfer started
        """
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        addr = (host, port)
        logger.info('Starting TFTP server, listening on %s', addr)
        try:
            self.sock.bind(addr)
        except OSError:
            self.sock.close()
            raise

        self.context = ServerContext(
            host, file_system, TransferRegistry(),
            listener_factory or default_listener_factory)

    def __enter__(self):
        return self

    def serve(self) -> None:
        """Run the main server loop: wait for new requests and run
        TFTPRequestHandler for each.
        """
        while True:
            data, addr = self.sock.recvfrom(BUF_SIZE)
            Thread(target=self.__handle_request, args=(data, addr)).start()

    def __handle_request(self, data: bytes, addr: Address) -> None:
        try:
            TFTPRequestHandler(self.context, addr, data).handle_request()
        except TFTPTerminatedError:
            # Already logged and reported to the client
            pass
        except TFTPException as e:
            logger.warning('Transfer with %s failed: %s', addr, e)
        except OSError:
            logger.exception('I/O error while handling request from %s',
                             addr)

    def __exit__(self, exc_type, exc_val, exc_tb):
        logger.info('Stopping TFTP server')
        self.sock.close()
