"""
Detect command implementation.

Lists the Rocq installations found by the detector, with the source that
found each one.
"""

import logging

from rocqsetup.cli.utils import current_context, print_error, safe_print
from rocqsetup.core.exceptions import RocqSetupError
from rocqsetup.toolchain.detector import InstallationDetector

logger = logging.getLogger(__name__)


def run(args) -> int:
    try:
        context = current_context()
    except RocqSetupError as e:
        print_error("Cannot detect installations", str(e))
        return 1

    record = InstallationDetector(context.roots).detect()

    if not record.found:
        safe_print("No Rocq installation found.")
        return 0

    for location, source in record.entries():
        safe_print(f"{location}  ({source})")
    return 0
