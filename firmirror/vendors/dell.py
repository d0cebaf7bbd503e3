#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""Dell Update Packages listed in the Dell enterprise catalog"""

import gzip
import logging
import os
import posixpath
import re
import uuid
import xml.etree.ElementTree as ET
from datetime import datetime
from xml.sax.saxutils import escape

from firmirror.appstream import Component, Custom, Provide, Release
from firmirror.common import CatalogError
from firmirror.utils import download_file, download_file_to_dest
from firmirror.vendor import Catalog, FirmwareEntry, Vendor

LOGGER = logging.getLogger(__name__)

DELL_BASE_URL = "https://dl.dell.com"

URGENCIES = {1: "medium", 2: "critical", 3: "low"}

CATEGORIES = {
    "BIOS": "X-System",
    "Serial ATA": "X-Drive",
    "SAS Drive": "X-Drive",
    "Express Flash PCIe SSD": "X-SolidStateDrive",
    "Network": "X-NetworkInterface",
    "Chassis System Management": "X-Controller",
    "iDRAC with Lifecycle Controller": "X-BaseboardManagementController",
}

_XML_DECL = re.compile(r"^\s*<\?xml[^>]*\?>")


def get_string(elem, language="en"):
    """Returns the Display text of a translatable element"""
    if elem is not None:
        for display in elem.findall("Display"):
            if display.get("lang") == language:
                return (display.text or "").strip()
    raise ValueError(f"language not found: {language}")


def get_urgency(criticality):
    try:
        return URGENCIES.get(int(criticality), "medium")
    except (TypeError, ValueError):
        return "medium"


def _value(elem, tag):
    child = elem.find(tag)
    if child is None:
        return ""
    return child.get("value", "")


def parse_catalog(data):
    """Parses the gzip-decompressed catalog, UTF-16 encoded"""
    # the declared charset no longer applies once decoded
    text = _XML_DECL.sub("", data.decode("utf-16"), count=1)
    return ET.fromstring(text)


class DellFirmwareEntry(FirmwareEntry):
    def __init__(self, component, base_location=""):
        self.component = component
        self.path = component.get("path", "")
        self.filename = posixpath.basename(self.path)
        self.source_url = f"{base_location}/{self.path}" if base_location else ""

    def get_filename(self):
        return self.filename

    def get_source_url(self):
        return self.source_url

    def to_appstream(self):
        return process_firmware(self.component)


class DellCatalog(Catalog):
    def __init__(self, root, components=None):
        self.root = root
        self.base_location = root.get("baseLocation", "")
        if components is None:
            components = root.findall("SoftwareComponent")
        self.components = components

    def list_entries(self):
        return [DellFirmwareEntry(c, self.base_location) for c in self.components]


class DellVendor(Vendor):
    def __init__(self, system_ids=None, base_url=DELL_BASE_URL):
        self.base_url = base_url
        # empty means every system
        self.system_ids = list(system_ids or [])

    def fetch_catalog(self):
        url = f"{self.base_url}/catalog/catalog.xml.gz"
        try:
            r = download_file(url)
            root = parse_catalog(gzip.decompress(r.content))
        except Exception as e:
            raise CatalogError(f"failed to fetch Dell catalog {url}: {e}") from e
        return self.filter_catalog(DellCatalog(root))

    def _supports_system(self, component):
        for model in component.findall("SupportedSystems/Brand/Model"):
            if model.get("systemID") in self.system_ids:
                return True
        return False

    def filter_catalog(self, catalog):
        """Keeps firmware, not drivers, for the selected systems"""
        components = []
        for component in catalog.components:
            if _value(component, "ComponentType") != "FRMW":
                continue
            if self.system_ids and not self._supports_system(component):
                continue
            components.append(component)
        LOGGER.info(
            "Dell catalog has %d matching firmware out of %d components",
            len(components),
            len(catalog.components),
        )
        return DellCatalog(catalog.root, components)

    def retrieve_firmware(self, entry, work_dir):
        if not isinstance(entry, DellFirmwareEntry):
            raise TypeError("invalid entry type for Dell vendor")
        dest = os.path.join(work_dir, entry.get_filename())
        if not os.path.exists(dest):
            download_file_to_dest(f"{self.base_url}/{entry.path}", dest)


def _release_date(value):
    if not value:
        return ""
    return datetime.strptime(value[:10], "%Y-%m-%d").strftime("%Y-%m-%d")


def process_firmware(fw):
    """Converts a SoftwareComponent element to an appstream.Component"""
    out = Component(
        id="",
        metadata_license="proprietary",
        project_license="proprietary",
    )
    out.name = get_string(fw.find("Name"))
    out.id = f"com.dell.{uuid.uuid5(uuid.NAMESPACE_DNS, out.name)}"

    devices = fw.findall("SupportedDevices/Device")
    for model in fw.findall("SupportedSystems/Brand/Model"):
        for dev in devices:
            instance_id = (
                f"REDFISH\\VENDOR_Dell&SYSTEMID_{model.get('systemID', '')}"
                f"&SOFTWAREID_{dev.get('componentID', '')}"
            )
            out.provides.append(
                Provide(str(uuid.uuid5(uuid.NAMESPACE_DNS, instance_id)), "flashed")
            )

    if fw.get("rebootRequired", "false").lower() == "true":
        out.custom.append(Custom("LVFS::DeviceFlags", "skips-restart"))
        out.custom.append(
            Custom("LVFS::UpdateMessage", get_string(fw.find("ImportantInfo")))
        )

    summary = get_string(fw.find("Description"))
    out.summary = summary
    out.description = f"<p>{escape(summary)}</p>"

    criticality = fw.find("Criticality")
    out.releases.append(
        Release(
            version=fw.get("vendorVersion", ""),
            date=_release_date(fw.get("dateTime", "")),
            description=out.description,
            urgency=get_urgency(criticality.get("value") if criticality is not None else None),
        )
    )

    category = CATEGORIES.get(_value(fw, "LUCategory"))
    if category:
        out.categories.append(category)

    out.custom.append(Custom("LVFS::UpdateProtocol", "org.dmtf.redfish"))
    # firmware installed through Redfish is signed by Dell
    out.custom.append(Custom("LVFS::DeviceIntegrity", "signed"))
    return out
