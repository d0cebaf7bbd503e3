#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""Capabilities a firmware vendor provides to the synchronizer.

New vendors subclass these; the synchronizer never needs to know which
vendor it is driving.
"""


class FirmwareEntry:
    """A single firmware listed in a vendor catalog"""

    def get_filename(self) -> str:
        """Name used for staging and to decide whether it was already published"""
        raise NotImplementedError

    def get_source_url(self) -> str:
        """Original download URL, or an empty string"""
        return ""

    def to_appstream(self):
        """Converts the entry to an appstream.Component.

        Vendors that need the downloaded payload raise an error when called
        before Vendor.retrieve_firmware().
        """
        raise NotImplementedError


class Catalog:
    def list_entries(self):
        """Returns the FirmwareEntry objects, in a stable order"""
        raise NotImplementedError


class Vendor:
    def fetch_catalog(self) -> Catalog:
        raise NotImplementedError

    def retrieve_firmware(self, entry: FirmwareEntry, work_dir: str) -> None:
        """Downloads the entry firmware as work_dir/entry.get_filename()"""
        raise NotImplementedError
