#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""HPE firmware packages (.fwpkg) from the fwpp Software Delivery Repository"""

import json
import logging
import os
import zipfile
from datetime import datetime
from xml.sax.saxutils import escape

from firmirror.appstream import Component, Custom, Provide, Release
from firmirror.common import CatalogError
from firmirror.utils import download_file, download_file_to_dest
from firmirror.vendor import Catalog, FirmwareEntry, Vendor

LOGGER = logging.getLogger(__name__)

HPE_REPO_URL = "https://downloads.linux.hpe.com/SDR/repo/"

CATEGORIES = {
    "2900095": "X-NetworkInterface",  # Firmware - Network
    "2900213": "X-BaseboardManagementController",  # Firmware - iLO
}


def get_string(translations, language="en"):
    for item in translations or []:
        if item.get("lang") == language:
            return item.get("x_late", "")
    raise ValueError(f"language not found: {language}")


def read_file_from_zip(zip_path, filename):
    with zipfile.ZipFile(zip_path) as archive:
        try:
            return archive.read(filename)
        except KeyError as e:
            raise ValueError(f"file not found: {filename}") from e


class HPEFirmwareEntry(FirmwareEntry):
    def __init__(self, filename, entry, source_url=""):
        self.filename = filename
        self.entry = entry
        self.source_url = source_url
        self.download_path = None

    def get_filename(self):
        return self.filename

    def get_source_url(self):
        return self.source_url

    def to_appstream(self):
        """Reads payload.json from the downloaded package"""
        if not self.download_path:
            raise ValueError("firmware must be retrieved first using retrieve_firmware")
        payload = json.loads(read_file_from_zip(self.download_path, "payload.json"))
        return build_appstream(payload)


class HPECatalog(Catalog):
    def __init__(self, entries, base_url):
        self.entries = entries
        self.base_url = base_url

    def list_entries(self):
        return [
            HPEFirmwareEntry(
                filename,
                self.entries[filename],
                f"{self.base_url}/current/{filename}",
            )
            for filename in sorted(self.entries)
        ]


class HPEVendor(Vendor):
    def __init__(self, repo, base_url=None):
        self.repo = repo
        self.base_url = base_url or HPE_REPO_URL + repo

    def fetch_catalog(self):
        url = f"{self.base_url}/current/fwrepodata/fwrepo.json"
        try:
            entries = download_file(url).json()
        except Exception as e:
            raise CatalogError(f"failed to fetch HPE catalog {url}: {e}") from e
        if not isinstance(entries, dict):
            raise CatalogError(f"unexpected HPE catalog format in {url}")
        return self.filter_catalog(HPECatalog(entries, self.base_url))

    def filter_catalog(self, catalog):
        entries = {
            filename: entry
            for filename, entry in catalog.entries.items()
            if filename.endswith(".fwpkg")
        }
        LOGGER.info(
            "HPE %s catalog has %d firmware packages out of %d files",
            self.repo,
            len(entries),
            len(catalog.entries),
        )
        return HPECatalog(entries, catalog.base_url)

    def retrieve_firmware(self, entry, work_dir):
        if not isinstance(entry, HPEFirmwareEntry):
            raise TypeError("invalid entry type for HPE vendor")
        dest = os.path.join(work_dir, os.path.basename(entry.filename))
        if not os.path.exists(dest):
            download_file_to_dest(f"{self.base_url}/current/{entry.filename}", dest)
        entry.download_path = dest


def build_appstream(fw):
    """Converts an HPE payload to an appstream.Component.

    All the devices of a package are assumed to share the version and the
    install duration of the first one.
    """
    package = fw["package"]
    devices = fw["Devices"]["Device"]
    out = Component(
        id="",
        metadata_license="proprietary",
        project_license="proprietary",
    )

    for dev in devices:
        # TODO: derive a GUID from the device class instead of the raw target
        out.provides.append(Provide(dev["Target"], "flashed"))
    out.name = "/".join(sorted({dev["DeviceName"] for dev in devices}))

    manufacturer = get_string(package.get("manufacturer_name"))
    out.developer_name = manufacturer
    sw_key = package["sw_keys"][0]["name"].replace(" ", "")
    out.id = f"com.{manufacturer.replace(' ', '').lower()}.{sw_key}"

    installation = package.get("installation", {})
    if installation.get("reboot_required") == "yes":
        out.custom.append(Custom("LVFS::DeviceFlags", "skips-restart"))
        message = get_string(installation["reboot_details"][0]["language"])
        out.custom.append(Custom("LVFS::UpdateMessage", message))

    summary = get_string(package.get("name"))
    out.summary = summary.replace("\t", "").replace("  ", " ")
    out.description = f"<p>{escape(get_string(package.get('description')))}</p>"

    release_date = datetime.strptime(package["release_date"], "%Y-%m-%dT%H:%M:%S")
    out.releases.append(
        Release(
            version=devices[0]["Version"],
            date=release_date.strftime("%Y-%m-%d"),
            install_duration=int(
                devices[0]["FirmwareImages"][0].get("InstallDurationSec", 0)
            ),
            description=out.description,
        )
    )

    for category in package.get("category", []):
        value = CATEGORIES.get(category.get("key"))
        if value:
            out.categories.append(value)

    out.custom.append(Custom("LVFS::UpdateProtocol", "org.dmtf.redfish"))
    # fwpkg installed through Redfish are signed
    out.custom.append(Custom("LVFS::DeviceIntegrity", "signed"))
    return out
