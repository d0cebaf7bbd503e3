#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#

import logging
import shutil
import subprocess

LOGGER = logging.getLogger(__name__)

EXIT_CODES = {"ERROR": 1, "SUCCESS": 0}

REQUIRED_TOOLS = ["fwupdtool", "jcat-tool"]


class FirmirrorError(Exception):
    pass


class ToolError(FirmirrorError):
    """An external tool exited with a non-zero status"""

    def __init__(self, args, returncode, output):
        self.args_list = list(args)
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"{self.args_list[0]} failed with exit code {returncode}\nOutput: {output}"
        )


class StorageError(FirmirrorError):
    pass


class CatalogError(FirmirrorError):
    pass


class EntryError(FirmirrorError):
    pass


class PackageError(EntryError):
    pass


class MetadataError(FirmirrorError):
    pass


class PublishError(FirmirrorError):
    pass


class SyncCancelled(FirmirrorError):
    """Raised between two entries once the run has been cancelled"""

    def __init__(self, report=None):
        self.report = report
        super().__init__("Synchronization cancelled")


def run_tool(args, cwd=None):
    """Runs an external tool and returns its combined output.

    Keyword arguments:
    args -- command line, the tool name first
    cwd -- working directory for the process
    """
    LOGGER.debug("Running %s", " ".join(args))
    p = subprocess.run(
        args,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        check=False,
    )
    output = p.stdout.decode("utf-8", errors="replace") if p.stdout else ""
    if p.returncode != 0:
        LOGGER.error("%s failed: %s", args[0], output)
        raise ToolError(args, p.returncode, output)
    return output


def check_tools(names=None):
    """Returns the tools missing from PATH"""
    if names is None:
        names = REQUIRED_TOOLS
    return [name for name in names if shutil.which(name) is None]
