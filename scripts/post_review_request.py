"""Post the review card for a registration to the operations channel.

Usage:
    python scripts/post_review_request.py FR01011200 [--channel C0123]
"""

from __future__ import annotations

import argparse
import sys

from franchise_approval.components import build_components
from franchise_approval.config import get_settings
from franchise_approval.logging_config import configure_logging
from franchise_approval.registrations.publishing import publish_review_request


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Post a registration review card to Slack.")
    parser.add_argument("registration_id")
    parser.add_argument("--channel", default=None, help="Override NOTIFY_CHANNEL_ID.")
    args = parser.parse_args(argv)

    configure_logging()
    settings = get_settings()
    components = build_components(settings)

    record = components.store.find_by_id(args.registration_id)
    if record is None:
        print(f"Registration {args.registration_id} was not found.", file=sys.stderr)
        return 1

    reference = publish_review_request(
        slack=components.slack,
        channel=args.channel or settings.notify_channel_id,
        record=record,
    )
    if reference is None:
        print("Failed to post the review card.", file=sys.stderr)
        return 1

    print(f"channel={reference['channel']} ts={reference['ts']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
