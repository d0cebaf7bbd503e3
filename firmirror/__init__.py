#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""Build and maintain an LVFS-compatible firmware repository."""

__version__ = "0.3.0"
