"""
Toolchain installation.

Detection of existing installations, the platform install strategies and the
language server locator.
"""

from rocqsetup.toolchain.detector import InstallationDetector, InstallationRecord
from rocqsetup.toolchain.locator import BinaryLocator
from rocqsetup.toolchain.names import ProductNames, product_names, switch_name
from rocqsetup.toolchain.strategy import InstallStrategy, StepLabels

__all__ = [
    "InstallationDetector",
    "InstallationRecord",
    "BinaryLocator",
    "ProductNames",
    "product_names",
    "switch_name",
    "InstallStrategy",
    "StepLabels",
]
