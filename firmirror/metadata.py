#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""Published metadata: loading, release-level merging and publication.

The compressed ``metadata.xml.zst`` document is the only durable state of
the repository. The set of already-published firmware filenames is rebuilt
from it on every run.
"""

import contextlib
import copy
import io
import logging
import os
import tempfile
import xml.etree.ElementTree as ET

import zstandard

from firmirror.appstream import Components, parse_components, render_components
from firmirror.common import (
    MetadataError,
    PublishError,
    StorageError,
    ToolError,
    run_tool,
)
from firmirror.package import cabinet_name

LOGGER = logging.getLogger(__name__)

METADATA_KEY = "metadata.xml.zst"
SIGNATURE_EXT = "jcat"


def merge_components(published, pending):
    """Merges newly produced components into the published ones.

    Components sharing an id get their releases unioned; a release whose
    primary checksum filename is already known for that component is
    dropped. Returns the merged components sorted by id.

    Keyword arguments:
    published -- list of previously published appstream.Component
    pending -- list of appstream.Component produced by this run
    """
    by_id = {}
    for component in published:
        by_id[component.id] = copy.deepcopy(component)

    for component in pending:
        existing = by_id.get(component.id)
        if existing is None:
            by_id[component.id] = copy.deepcopy(component)
            continue
        LOGGER.info("Merging component id=%s", component.id)
        known = {r.primary_filename for r in existing.releases if r.primary_filename}
        for release in component.releases:
            filename = release.primary_filename
            if filename and filename in known:
                LOGGER.warning(
                    "Release %s of %s already published, ignoring",
                    filename,
                    component.id,
                )
                continue
            existing.releases.append(copy.deepcopy(release))
            if filename:
                known.add(filename)

    return [by_id[key] for key in sorted(by_id)]


def assign_locations(components):
    """Sets the location of every release that has none"""
    for component in components:
        for release in component.releases:
            if release.location:
                continue
            filename = release.primary_filename
            if filename:
                release.location = cabinet_name(filename)


class MetadataReconciler:
    def __init__(self, config, storage):
        self.config = config
        self.storage = storage
        self.published = Components()
        self.index = set()

    def is_published(self, filename):
        return filename in self.index

    def mark_published(self, filename):
        self.index.add(filename)

    def _read_document(self):
        dctx = zstandard.ZstdDecompressor()
        buf = io.BytesIO()
        with contextlib.closing(self.storage.read(METADATA_KEY)) as reader:
            dctx.copy_stream(reader, buf)
        return buf.getvalue()

    def load(self):
        """Loads the published metadata and rebuilds the filename index.

        A missing document is a first run; a document that cannot be
        decompressed or parsed raises MetadataError.
        """
        try:
            exists = self.storage.exists(METADATA_KEY)
        except StorageError as e:
            raise MetadataError(f"failed to check metadata existence: {e}") from e
        if not exists:
            LOGGER.info("No existing metadata found, starting fresh")
            return self.published

        try:
            data = self._read_document()
        except StorageError as e:
            raise MetadataError(f"failed to read metadata file: {e}") from e
        except zstandard.ZstdError as e:
            raise MetadataError(f"failed to decompress metadata file: {e}") from e

        try:
            components = parse_components(data)
        except (ET.ParseError, ValueError) as e:
            raise MetadataError(f"failed to parse metadata XML: {e}") from e

        self.published = components
        self.index = set()
        for component in components.components:
            for release in component.releases:
                for checksum in release.checksums:
                    if checksum.filename:
                        self.index.add(checksum.filename)

        LOGGER.info(
            "Loaded existing metadata components=%d firmware_files=%d",
            len(components.components),
            len(self.index),
        )
        return components

    def _compress(self, src_path, dst_path):
        cctx = zstandard.ZstdCompressor()
        with open(src_path, "rb") as src, open(dst_path, "wb") as dst:
            cctx.copy_stream(src, dst)

    def _sign(self, sig_path, file_path):
        """Creates the jcat file: a sha256 checksum, plus a signature when
        a certificate and private key are configured."""
        wd = os.path.dirname(file_path)
        sig = os.path.basename(sig_path)
        name = os.path.basename(file_path)
        run_tool(["jcat-tool", "self-sign", sig, name, "--kind", "sha256"], cwd=wd)
        if self.config.can_sign:
            run_tool(
                [
                    "jcat-tool",
                    "sign",
                    sig,
                    name,
                    os.path.abspath(self.config.certificate),
                    os.path.abspath(self.config.private_key),
                ],
                cwd=wd,
            )
        else:
            LOGGER.warning(
                "Skipping metadata signing: certificate or private key not provided"
            )

    def save(self, pending):
        """Merges pending components and publishes the new metadata.

        Does nothing when pending is empty. Raises PublishError when the
        document cannot be compressed, signed or uploaded.
        """
        if not pending:
            LOGGER.info("No new component, skipping metadata update")
            return None

        merged = merge_components(self.published.components, pending)
        assign_locations(merged)
        components = Components(merged, origin=self.published.origin)
        document = render_components(components)

        os.makedirs(self.config.cache_dir, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=self.config.cache_dir) as tmpdir:
            metadata_path = os.path.join(tmpdir, "metadata.xml")
            compressed_path = os.path.join(tmpdir, METADATA_KEY)
            signature_path = f"{compressed_path}.{SIGNATURE_EXT}"
            try:
                with open(metadata_path, "w", encoding="utf-8") as f:
                    f.write(document)
                self._compress(metadata_path, compressed_path)
                self._sign(signature_path, compressed_path)
            except (OSError, zstandard.ZstdError, ToolError) as e:
                raise PublishError(f"failed to prepare metadata: {e}") from e

            for path in (compressed_path, signature_path):
                key = os.path.basename(path)
                try:
                    with open(path, "rb") as f:
                        self.storage.write(key, f)
                except (OSError, StorageError) as e:
                    raise PublishError(f"failed to write {key} to storage: {e}") from e

        self.published = components
        LOGGER.info(
            "Metadata saved successfully total_components=%d new_components=%d",
            len(merged),
            len(pending),
        )
        return components
