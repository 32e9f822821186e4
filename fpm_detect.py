#!/usr/bin/env python3
"""
Detect the local PHP-FPM endpoint and print what was found as JSON.
"""

import argparse
import json
import sys

from fpmdetect import VERSION, detect_fpm_infos, detect_php_infos, prober
from fpmdetect.config import CONFIG_FILE, ConfigError, load_config
from fpmdetect.errors import FpmDetectError
from fpmdetect.fastcgi import parse_socket_uri
from fpmdetect.logger import setup_logger
from fpmdetect.models import DetectedConfig
from fpmdetect.scripts import staged_scripts


def positive(cast):
    """argparse type accepting only numbers above zero"""
    def convert(value):
        try:
            number = cast(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid number: {value!r}")
        if number <= 0:
            raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
        return number
    return convert


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Detect PHP-FPM endpoint and runtime')
    parser.add_argument('--config', help=f'Settings file (default: {CONFIG_FILE})')
    parser.add_argument('--listen', help='Explicit endpoint: unix:///path, tcp://host:port or a bare address')
    parser.add_argument('--scripts-dir', help='Folder where the PHP introspection scripts are staged')
    parser.add_argument('--no-php', action='store_true', help='Skip PHP version/extensions detection')
    parser.add_argument('--probe-timeout', type=positive(int), metavar='MS', help='Dial timeout per address in milliseconds')
    parser.add_argument('--dump-timeout', type=positive(float), metavar='S', help='Deadline for php-fpm -tt in seconds')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--quiet', action='store_true', help='Only log warnings and errors')
    parser.add_argument('--version', action='version', version=f'fpmdetect v{VERSION}')
    return parser


def run(args) -> int:
    try:
        settings = load_config(args.config)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    logger = setup_logger(debug=args.debug or settings['debug'], quiet=args.quiet)
    listen = args.listen or settings['listen']
    probe_timeout = (args.probe_timeout or settings['probe_timeout_ms']) / 1000.0
    dump_timeout = args.dump_timeout if args.dump_timeout is not None else settings['dump_timeout']

    try:
        if listen:
            try:
                network, address = parse_socket_uri(listen)
                config = DetectedConfig(address, network)
            except ValueError as e:
                logger.error(str(e))
                return 2
            prober.probe(config, probe_timeout, logger=logger.create_child("Probe"))
        else:
            config = detect_fpm_infos(
                probe_timeout=probe_timeout,
                dump_timeout=dump_timeout,
                marker=settings['fpm_marker'],
                logger=logger,
            )

        if not args.no_php:
            with staged_scripts(args.scripts_dir or settings['scripts_dir'] or None) as folder:
                detect_php_infos(config, folder, settings['request_timeout'],
                                 logger=logger.create_child("PHP"))
    except FpmDetectError as e:
        logger.failure(e)
        return 1

    print(json.dumps(config.to_dict(), indent=2))
    return 0


def main():
    parser = build_parser()
    args = parser.parse_args()
    sys.exit(run(args))


if __name__ == '__main__':
    main()
