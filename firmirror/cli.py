#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""Command line driver: firmirror refresh"""

import argparse
import logging
import signal
import sys
import threading

from termcolor import colored

from firmirror import __version__
from firmirror.common import (
    EXIT_CODES,
    MetadataError,
    PublishError,
    StorageError,
    check_tools,
)
from firmirror.config import HPE_GENS, ConfigError, settings_from_args
from firmirror.storage import create_storage
from firmirror.syncer import FirmirrorSyncer
from firmirror.vendors import create_vendors

LOGGER = logging.getLogger("firmirror")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="firmirror",
        description="Mirror vendor firmware into an LVFS-compatible repository",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("--config", help="INI configuration file")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debugging messages"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    refresh = subparsers.add_parser(
        "refresh",
        help="Refresh all the firmware from the repositories. Already published "
        "firmware is never replaced, even if the vendor pushed an updated "
        "version: delete it manually to fetch it again.",
    )
    refresh.add_argument(
        "--output-dir",
        help="Output directory for the firmware repository (ignored when using S3)",
    )
    refresh.add_argument(
        "--cache-dir", help="Local directory for temporary work (default .firmirror_cache)"
    )

    sign = refresh.add_argument_group("Signature", "Metadata signing configuration")
    sign.add_argument(
        "--sign-certificate",
        help="Path to certificate file for signing metadata (.pem or .crt)",
    )
    sign.add_argument(
        "--sign-private-key",
        help="Path to private key file for signing metadata (.pem or .key)",
    )

    s3 = refresh.add_argument_group("S3 Storage", "S3 storage backend configuration")
    s3.add_argument(
        "--s3-enable",
        action="store_true",
        help="Use S3 storage instead of the local filesystem, credentials are "
        "read from the AWS environment",
    )
    s3.add_argument("--s3-bucket", help="S3 bucket name for storing firmware files")
    s3.add_argument("--s3-prefix", help="Optional prefix for all S3 keys")
    s3.add_argument("--s3-region", help="AWS region (default us-east-1)")
    s3.add_argument(
        "--s3-endpoint",
        help="Custom S3 endpoint URL for S3-compatible services like MinIO",
    )

    dell = refresh.add_argument_group("Dell", "Dell firmware fetching")
    dell.add_argument(
        "--dell-enable", action="store_true", help="Enable Dell firmware fetching"
    )
    dell.add_argument(
        "--dell-machines-id",
        action="append",
        default=[],
        help="Machine IDs to fetch firmware for, e.g. 0C60 for the C6615 "
        "series. Repeat or separate with commas. All firmware when unset, "
        "which may take a very long time.",
    )

    hpe = refresh.add_argument_group("HPE", "HPE firmware fetching")
    hpe.add_argument(
        "--hpe-enable", action="store_true", help="Enable HPE firmware fetching"
    )
    hpe.add_argument(
        "--hpe-gens",
        action="append",
        default=[],
        help=f"Generations to fetch firmware for, among {', '.join(HPE_GENS)} "
        "(default all). Repeat or separate with commas.",
    )
    return parser.parse_args(argv)


def _info(msg):
    print(colored("[INFO]".ljust(10), "blue"), msg)


def _warn(msg):
    print(colored("[WARN]".ljust(10), "yellow"), msg)


def _failed(msg):
    print(colored("[FAILED]".ljust(10), "red"), msg)


def _success(msg):
    print(colored("[SUCCESS]".ljust(10), "green"), msg)


def print_summary(reports):
    for report in reports:
        if report.error:
            _failed(f"{report.vendor}: {report.error}")
            continue
        counts = (
            f"{report.vendor}: processed={report.processed} skipped={report.skipped} "
            f"failed={report.failed} total={report.total}"
        )
        if report.cancelled:
            _warn(f"{counts} (cancelled)")
        elif report.failed:
            _info(counts)
        else:
            _success(counts)


def _install_signal_handlers(cancel):
    def _handler(signum, frame):  # pylint: disable=unused-argument
        LOGGER.info("Received signal %d, finishing current firmware", signum)
        cancel.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def refresh(settings, cancel):
    try:
        storage = create_storage(settings)
    except StorageError as e:
        LOGGER.error("Failed to create storage backend: %s", e)
        return EXIT_CODES["ERROR"]

    syncer = FirmirrorSyncer(settings.firmirror, storage)
    for name, vendor in create_vendors(settings):
        syncer.register_vendor(name, vendor)

    try:
        syncer.load_metadata()
    except MetadataError as e:
        LOGGER.error("Failed to load existing metadata: %s", e)
        return EXIT_CODES["ERROR"]

    try:
        reports = syncer.run(cancel)
    except PublishError as e:
        LOGGER.error("Failed to save metadata: %s", e)
        return EXIT_CODES["ERROR"]

    print_summary(reports)
    return EXIT_CODES["SUCCESS"]


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        settings = settings_from_args(args)
    except ConfigError as e:
        LOGGER.error("%s", e)
        return EXIT_CODES["ERROR"]

    missing = check_tools()
    for tool in missing:
        LOGGER.error("%s is required but not found in PATH, aborting", tool)
    if missing:
        return EXIT_CODES["ERROR"]

    cancel = threading.Event()
    _install_signal_handlers(cancel)
    return refresh(settings, cancel)


if __name__ == "__main__":
    sys.exit(main())
