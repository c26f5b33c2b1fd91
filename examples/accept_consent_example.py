#!/usr/bin/env python3
"""
Consent acceptance example for cmp-consent.

This example loads a few sites in Chromium, accepts whichever CMP banner a
built-in descriptor recognizes, and prints the consent cookies it recorded.
It also shows detection without acceptance and how to undo consent.
"""

import asyncio
import logging
from pathlib import Path
import sys

# Add the parent directory to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cmp_consent import CMPError, CMPManager, ParsePageOptions
from cmp_consent.browser import BrowserSession


SITES = [
    "https://www.cookiebot.com/en/",
    "https://www.onetrust.com/",
    "https://example.com/",
]


async def accept_all_example(manager: CMPManager, session: BrowserSession):
    """Accept the CMP on each site and print the recorded consent."""
    print("=== Accept All Example ===")

    for url in SITES:
        async with session.page() as page:
            await page.goto(url, wait_until="load")

            try:
                record = await manager.parse_page(page)
            except CMPError as e:
                print(f"{url}: failed to handle CMP: {e}")
                continue

            if record is None:
                print(f"{url}: no known CMP")
                continue

            print(f"{url}: accepted via {record.descriptor}")
            for cookie in record.cookies:
                if cookie.name in manager.require_descriptor(record.descriptor).consent_keys:
                    print(f"  - {cookie.name}={cookie.value[:40] if cookie.value else ''}")


async def detect_and_revoke_example(manager: CMPManager, session: BrowserSession):
    """Detect a CMP without clicking, then accept and revoke consent."""
    print("\n=== Detect and Revoke Example ===")

    async with session.page() as page:
        await page.goto(SITES[0], wait_until="load")

        descriptor = await manager.cmp_active(page)
        if not descriptor:
            print("No active CMP found")
            return

        print(f"Active CMP: {descriptor.name}")
        print(f"Reject all supported: {descriptor.has_capability('reject_all')}")

        await manager.parse_page(page, ParsePageOptions(descriptor=descriptor.name))
        print(f"Consent stored: {await descriptor.has_consent_data(page)}")

        await descriptor.delete_consent_data(page)
        print(f"Consent stored after delete: {await descriptor.has_consent_data(page)}")


async def main():
    """Run all examples."""
    # Setup logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    manager = await CMPManager.create_manager()

    try:
        async with BrowserSession() as session:
            await accept_all_example(manager, session)
            await detect_and_revoke_example(manager, session)

    except KeyboardInterrupt:
        print("\nExamples interrupted by user")
    except Exception as e:
        print(f"Example failed: {e}")
        import traceback
        traceback.print_exc()


if __name__ == "__main__":
    print("cmp-consent Examples")
    print("=" * 40)
    asyncio.run(main())
