#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#

import hashlib
import logging
import os

from firmirror.appstream import Checksum, render_component
from firmirror.common import PackageError, StorageError, ToolError, run_tool

LOGGER = logging.getLogger(__name__)

METAINFO_FILENAME = "firmware.metainfo.xml"
CHUNK_SIZE = 1024 * 1024


def calculate_checksums(file_path):
    """Returns the (sha1, sha256) hex digests, reading the file once"""
    sha1 = hashlib.sha1()
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            sha1.update(chunk)
            sha256.update(chunk)
    return sha1.hexdigest(), sha256.hexdigest()


def cabinet_name(fw_name):
    return f"{fw_name}.cab"


class PackageBuilder:
    """Turns a retrieved firmware and its component into a published cabinet"""

    def __init__(self, storage, fwupdtool="fwupdtool"):
        self.storage = storage
        self.fwupdtool = fwupdtool

    def _add_checksums(self, component, fw_name, fw_path):
        try:
            sha1_hash, sha256_hash = calculate_checksums(fw_path)
        except OSError as e:
            raise PackageError(f"cannot checksum {fw_name}: {e}") from e
        for release in component.releases:
            release.checksums = [
                Checksum(fw_name, "content", "sha1", sha1_hash),
                Checksum(fw_name, "content", "sha256", sha256_hash),
            ]

    def _write_metainfo(self, component, work_dir):
        path = os.path.join(work_dir, METAINFO_FILENAME)
        with open(path, "w", encoding="utf-8") as f:
            f.write(render_component(component))
        return path

    def build(self, component, fw_name, work_dir):
        """Checksums, packages and uploads one firmware.

        Keyword arguments:
        component -- appstream.Component, its releases get the checksums
        fw_name -- canonical firmware filename, present in work_dir
        work_dir -- scratch directory of this entry
        """
        fw_path = os.path.join(work_dir, fw_name)
        self._add_checksums(component, fw_name, fw_path)

        try:
            metainfo_path = self._write_metainfo(component, work_dir)
        except OSError as e:
            raise PackageError(f"cannot write metainfo for {fw_name}: {e}") from e

        cab_name = cabinet_name(fw_name)
        cab_path = os.path.join(work_dir, cab_name)
        try:
            run_tool([self.fwupdtool, "build-cabinet", cab_path, metainfo_path, fw_path])
        except ToolError as e:
            raise PackageError(f"cannot build {cab_name}: {e}") from e

        try:
            with open(cab_path, "rb") as f:
                self.storage.write(cab_name, f)
        except (OSError, StorageError) as e:
            raise PackageError(f"cannot upload {cab_name}: {e}") from e
        LOGGER.debug("Uploaded %s", cab_name)
        return cab_name
