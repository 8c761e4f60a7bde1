#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_types.py — shared data types and static tables for lhex
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Tuple


class UrlType(str, Enum):
    URL = "url"
    PRODUCT_ID = "ProductId"
    PACKAGE_FAMILY_NAME = "PackageFamilyName"
    CATEGORY_ID = "CategoryId"


class Ring(str, Enum):
    FAST = "Fast"
    SLOW = "Slow"
    RP = "RP"
    RETAIL = "Retail"


@dataclass(frozen=True)
class PackageMetadata:
    url: str
    filename: str
    checksum: str
    version: str

    def inner_package_name(self, channel: str = "Nightly", arch: str = "x64") -> str:
        """Name of the .msix inside the bundle, e.g. WsaPackage_2210.40000.7.0_x64_Release-Nightly.msix"""
        return f"WsaPackage_{self.version}_{arch}_Release-{channel}.msix"

    def as_dict(self) -> Dict[str, str]:
        return {
            "url": self.url,
            "filename": self.filename,
            "checksum": self.checksum,
            "version": self.version,
        }


@dataclass(frozen=True)
class Workspace:
    root_dir: Path
    mount_point: Path


# relative paths inside vendor.img; copied to <output>/system/<path>
PAYLOAD_MANIFEST: Tuple[str, ...] = (
    "bin/houdini",
    "bin/houdini64",
    "bin/arm",
    "bin/arm64",
    "lib/arm",
    "lib/libhoudini.so",
    "lib64/arm64",
    "lib64/libhoudini.so",
)

OUTPUT_SUBDIRS: Tuple[str, ...] = ("bin", "lib", "lib64")

__all__ = ["UrlType", "Ring", "PackageMetadata", "Workspace", "PAYLOAD_MANIFEST", "OUTPUT_SUBDIRS"]
