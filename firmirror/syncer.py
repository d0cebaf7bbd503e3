#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""Drives every registered vendor through catalog retrieval and packaging.

Entries are processed one at a time. A failing entry is logged and
counted, it never stops the other entries of the same or another vendor.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Optional

from firmirror.appstream import Url
from firmirror.common import CatalogError, EntryError, SyncCancelled
from firmirror.metadata import MetadataReconciler
from firmirror.package import PackageBuilder

LOGGER = logging.getLogger(__name__)


@dataclass
class VendorReport:
    vendor: str
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0
    error: Optional[str] = None
    cancelled: bool = False


class FirmirrorSyncer:
    def __init__(self, config, storage, reconciler=None, builder=None):
        self.config = config
        self.storage = storage
        self.vendors = {}
        self.reconciler = reconciler or MetadataReconciler(config, storage)
        self.builder = builder or PackageBuilder(storage)
        self.pending = []
        try:
            os.makedirs(config.cache_dir, exist_ok=True)
        except OSError as e:
            LOGGER.error("Failed to create cache directory %s: %s", config.cache_dir, e)

    def register_vendor(self, name, vendor):
        self.vendors[name] = vendor

    def get_all_vendors(self):
        """Returns a copy of the registered vendors, in registration order"""
        return dict(self.vendors)

    def load_metadata(self):
        return self.reconciler.load()

    def save_metadata(self):
        """Publishes the components produced so far, then forgets them"""
        result = self.reconciler.save(self.pending)
        self.pending = []
        return result

    def _work_dir(self, fw_name):
        return os.path.join(self.config.cache_dir, f"{fw_name}.wrk")

    def _process_entry(self, vendor, entry, fw_name, work_dir):
        try:
            vendor.retrieve_firmware(entry, work_dir)
        except Exception as e:
            raise EntryError(f"Failed to retrieve firmware: {e}") from e

        try:
            component = entry.to_appstream()
            if component is None:
                raise ValueError("no component returned")
            source_url = entry.get_source_url()
            if source_url:
                component.url = Url(source_url, "homepage")
        except Exception as e:
            raise EntryError(f"Failed to convert firmware: {e}") from e

        try:
            self.builder.build(component, fw_name, work_dir)
        except EntryError:
            raise
        except Exception as e:
            raise EntryError(f"Failed to build package: {e}") from e
        return component

    def process_vendor(self, vendor, vendor_name, cancel=None):
        """Processes every catalog entry of one vendor.

        Keyword arguments:
        vendor -- a vendor.Vendor
        vendor_name -- name used in logs and in the report
        cancel -- optional threading.Event, checked before each entry

        Raises CatalogError when the catalog cannot be fetched and
        SyncCancelled, carrying the partial report, once cancel is set.
        """
        LOGGER.info("Fetching catalog vendor=%s", vendor_name)
        try:
            catalog = vendor.fetch_catalog()
            entries = list(catalog.list_entries())
        except Exception as e:
            LOGGER.error("Failed to fetch catalog vendor=%s: %s", vendor_name, e)
            raise CatalogError(f"{vendor_name}: {e}") from e

        report = VendorReport(vendor_name, total=len(entries))
        for entry in entries:
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                LOGGER.info("Shutdown requested, stopping vendor=%s", vendor_name)
                raise SyncCancelled(report)

            try:
                fw_name = entry.get_filename()
            except Exception as e:
                LOGGER.error("vendor=%s: cannot name catalog entry: %s", vendor_name, e)
                report.failed += 1
                continue
            if self.reconciler.is_published(fw_name):
                LOGGER.info(
                    "Firmware already in metadata index, skipping vendor=%s firmware=%s",
                    vendor_name,
                    fw_name,
                )
                report.skipped += 1
                continue

            LOGGER.info("Processing firmware vendor=%s firmware=%s", vendor_name, fw_name)
            work_dir = self._work_dir(fw_name)
            try:
                os.makedirs(work_dir, exist_ok=True)
                component = self._process_entry(vendor, entry, fw_name, work_dir)
            except (EntryError, OSError) as e:
                LOGGER.error("vendor=%s firmware=%s: %s", vendor_name, fw_name, e)
                report.failed += 1
                continue
            finally:
                shutil.rmtree(work_dir, ignore_errors=True)

            self.pending.append(component)
            self.reconciler.mark_published(fw_name)
            report.processed += 1
            LOGGER.info(
                "Successfully processed firmware vendor=%s firmware=%s",
                vendor_name,
                fw_name,
            )

        LOGGER.info(
            "Completed vendor processing vendor=%s processed=%d skipped=%d failed=%d total=%d",
            vendor_name,
            report.processed,
            report.skipped,
            report.failed,
            report.total,
        )
        return report

    def run(self, cancel=None):
        """Processes all vendors, then saves the metadata.

        The metadata is saved even when the run is cancelled, so that
        entries completed before the signal are published. Errors from
        the save step propagate.
        """
        reports = []
        LOGGER.info("Starting firmware processing vendors=%d", len(self.vendors))
        try:
            for name, vendor in self.get_all_vendors().items():
                if cancel is not None and cancel.is_set():
                    LOGGER.info("Shutdown requested, stopping processing")
                    break
                LOGGER.info("Processing vendor name=%s", name)
                try:
                    reports.append(self.process_vendor(vendor, name, cancel))
                except CatalogError as e:
                    reports.append(VendorReport(name, error=str(e)))
                except SyncCancelled as e:
                    reports.append(e.report)
                    break
        finally:
            LOGGER.info("Saving repository metadata")
            self.save_metadata()
        return reports
