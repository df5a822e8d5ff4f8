#!/usr/bin/env python3

import argparse
import errno
import logging
import os
import socket
import sys
from typing import List

import argparse_utils
from progress import ProgressBar
from tftpd import LocalFileSystem, TFTPServer

logger = logging.getLogger('tftpd')

DEFAULT_PORT = 6969
ALTERNATIVE_PORTS = [6969, 6900, 7069, 8069, 9069]

BANNER = r"""
 _    __ _             _
| |  / _| |           | |
| |_| |_| |_ _ __   __| |
| __|  _| __| '_ \ / _` |
| |_| | | |_| |_) | (_| |
 \__|_|  \__| .__/ \__,_|
            | |
            |_|
"""


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Trivial File Transfer Protocol (TFTP) server.')
    parser.add_argument('port', type=argparse_utils.port_type,
                        default=DEFAULT_PORT, nargs='?',
                        help='port to listen to (default: {})'.format(
                            DEFAULT_PORT))
    parser.add_argument('-d', '--directory', default='.',
                        type=argparse_utils.path_type(check_dir=True),
                        help='the root directory to serve the files from '
                             '(default: current directory)')
    parser.add_argument('-H', '--host', default='0.0.0.0',
                        help='host to listen to (default: 0.0.0.0)')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='don\'t print incoming connections info nor '
                             'progress bars')
    parser.add_argument('--no-progress', action='store_true',
                        help='don\'t draw progress bars')
    return parser


def check_port(port: int) -> int:
    """Return the port to listen on, falling back to the default one if
    the requested port needs privileges we don't have.
    """
    if port < 1024 and hasattr(os, 'geteuid') and os.geteuid() != 0:
        logger.info('Port %d requires root privileges. Using port %d '
                    'instead.', port, DEFAULT_PORT)
        logger.info('Run with sudo to use port %d, or specify a port > 1024',
                    port)
        return DEFAULT_PORT
    return port


def is_port_available(host: str, port: int) -> bool:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind((host, port))
    except OSError:
        return False
    finally:
        sock.close()
    return True


def suggest_alternative_ports(host: str, port: int) -> List[int]:
    """Log which of the alternative ports are free to use.

    :return: list of the available ports
    """
    logger.error('Try these alternatives:')
    available = []
    for alt_port in ALTERNATIVE_PORTS:
        if alt_port == port:
            continue
        if is_port_available(host, alt_port):
            logger.error('  Port %d: %s %d', alt_port, sys.argv[0], alt_port)
            available.append(alt_port)
        else:
            logger.error('  Port %d: (busy)', alt_port)
    return available


def local_ip() -> str:
    """Return the IP address of the interface used to reach the Internet."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packets are sent when connecting a UDP socket
        sock.connect(('8.8.8.8', 80))
        return sock.getsockname()[0]
    except OSError:
        return '127.0.0.1'
    finally:
        sock.close()


def print_banner(port: int, directory: str) -> None:
    print(BANNER)
    print('=' * 53)
    print('[-] TFTP Server started on port {}'.format(port))
    print('[-] Serving files from: {}'.format(os.path.abspath(directory)))
    print('[-] Server IP: {}'.format(local_ip()))
    print('[-] Waiting for requests... (Ctrl+C to stop)')
    print('-' * 53)


def main():
    args = create_parser().parse_args()
    logging_level = logging.INFO
    if args.quiet:
        logging_level = logging.WARNING
    logging.basicConfig(level=logging_level)

    listener_factory = None
    if not args.quiet and not args.no_progress:
        listener_factory = ProgressBar

    port = check_port(args.port)
    try:
        server = TFTPServer(args.host, port, LocalFileSystem(args.directory),
                            listener_factory)
    except OSError as e:
        if e.errno != errno.EADDRINUSE:
            raise
        logger.error('Port %d is already in use!', port)
        suggest_alternative_ports(args.host, port)
        sys.exit(1)

    with server:
        if not args.quiet:
            print_banner(port, args.directory)
        try:
            server.serve()
        except KeyboardInterrupt:
            logger.info('Server stopped.')


if __name__ == '__main__':
    main()
