#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""Fake vendors and external tools shared by the tests"""

import copy
import io
import os
import subprocess

import zstandard

from firmirror.appstream import Checksum, Component, Release, render_components
from firmirror.vendor import Catalog, FirmwareEntry, Vendor


def make_component(component_id, version="1.0.0", filenames=()):
    component = Component(
        id=component_id,
        name=f"Firmware {component_id}",
        summary="Test firmware summary",
        description="<p>Test firmware</p>",
        metadata_license="proprietary",
        project_license="proprietary",
    )
    if filenames:
        for filename in filenames:
            component.releases.append(
                Release(
                    version=version,
                    date="2024-01-15",
                    checksums=[Checksum(filename, "content", "sha256", "abc123")],
                )
            )
    else:
        component.releases.append(Release(version=version, date="2024-01-15"))
    return component


def compress_metadata(components):
    data = render_components(components).encode("utf-8")
    return zstandard.ZstdCompressor().compress(data)


def decompress_metadata(path):
    with open(path, "rb") as f:
        data = f.read()
    buf = io.BytesIO()
    zstandard.ZstdDecompressor().copy_stream(io.BytesIO(data), buf)
    return buf.getvalue()


def fake_tools(args, cwd=None, **kwargs):
    """Stands in for subprocess.run of fwupdtool and jcat-tool"""
    tool = os.path.basename(args[0])
    if tool == "fwupdtool" and args[1] == "build-cabinet":
        with open(args[4], "rb") as f:
            payload = f.read()
        with open(args[2], "wb") as f:
            f.write(b"MSCF" + payload)
    elif tool == "jcat-tool" and args[1] in ("self-sign", "sign"):
        with open(os.path.join(cwd or ".", args[2]), "a", encoding="utf-8") as f:
            f.write(f"{args[1]} {args[3]}\n")
    return subprocess.CompletedProcess(args, 0, stdout=b"")


def failing_tool(name, output=b"tool exploded"):
    def _run(args, cwd=None, **kwargs):
        if os.path.basename(args[0]) == name:
            return subprocess.CompletedProcess(args, 1, stdout=output)
        return fake_tools(args, cwd=cwd, **kwargs)

    return _run


class MockFirmwareEntry(FirmwareEntry):
    def __init__(self, filename, component=None, source_url="", appstream_error=None):
        self.filename = filename
        self.component = component
        self.source_url = source_url
        self.appstream_error = appstream_error

    def get_filename(self):
        return self.filename

    def get_source_url(self):
        return self.source_url

    def to_appstream(self):
        if self.appstream_error is not None:
            raise self.appstream_error
        return copy.deepcopy(self.component)


class MockCatalog(Catalog):
    def __init__(self, entries):
        self.entries = list(entries)

    def list_entries(self):
        return list(self.entries)


class MockVendor(Vendor):
    def __init__(
        self,
        entries=(),
        fetch_error=None,
        retrieve_error=None,
        fail_retrieve=(),
        content=b"mock firmware content",
    ):
        self.catalog = MockCatalog(entries)
        self.fetch_error = fetch_error
        self.retrieve_error = retrieve_error
        self.fail_retrieve = set(fail_retrieve)
        self.content = content
        self.retrieved = []

    def fetch_catalog(self):
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.catalog

    def retrieve_firmware(self, entry, work_dir):
        filename = entry.get_filename()
        if self.retrieve_error is not None or filename in self.fail_retrieve:
            raise self.retrieve_error or OSError(f"cannot download {filename}")
        with open(os.path.join(work_dir, filename), "wb") as f:
            f.write(self.content + filename.encode())
        self.retrieved.append(filename)
