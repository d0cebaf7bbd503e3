#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#

from firmirror.vendors.dell import DellVendor
from firmirror.vendors.hpe import HPEVendor


def create_vendors(settings):
    """Returns (name, vendor) pairs for the enabled vendors"""
    vendors = []
    if settings.hpe.enable:
        for gen in settings.hpe.gens:
            vendors.append((f"hpe-{gen}", HPEVendor(f"fwpp-{gen}")))
    if settings.dell.enable:
        vendors.append(("dell", DellVendor(settings.dell.machines_id)))
    return vendors
