"""
Releases command implementation.

Lists the Rocq Platform release tags published on GitHub, newest first.
Any of them can be passed to ``install --release``.
"""

import logging

from rocqsetup.cli.utils import print_error, safe_print
from rocqsetup.config.releases import fetch_release_tags
from rocqsetup.core.exceptions import RocqSetupError

logger = logging.getLogger(__name__)


def run(args) -> int:
    try:
        tags = fetch_release_tags(limit=args.limit)
    except RocqSetupError as e:
        logger.error(f"Cannot list releases: {e}")
        print_error("Cannot list releases", str(e))
        return 1

    if not tags:
        safe_print("No Rocq Platform releases found.")
        return 0

    for tag in tags:
        safe_print(tag)
    return 0
