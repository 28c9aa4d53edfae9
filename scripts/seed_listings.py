#!/usr/bin/env python3
"""Seed demo listings script.

Creates the marketplace tables and stores a few listings with royalty
splits, so a fresh database can take checkouts.

Usage:
    python scripts/seed_listings.py
    python scripts/seed_listings.py --database-url postgresql+asyncpg://...
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from filemarket.domain import Listing, ListingStage, RoyaltyShare, compute
from filemarket.infrastructure.container import build_database_container
from filemarket.infrastructure.database import create_all

DEMO_LISTINGS = [
    Listing(
        id="demo-vase",
        title="Parametric Vase",
        base_price_minor=500,
        stage=ListingStage.LISTED,
        storage_path="files/demo-vase/vase.stl",
        royalty_split=[RoyaltyShare("originator-ada", 10_000)],
    ),
    Listing(
        id="demo-vase-remix",
        title="Parametric Vase (Twisted Remix)",
        base_price_minor=999,
        stage=ListingStage.LISTED,
        storage_path="files/demo-vase-remix/vase-twisted.stl",
        royalty_split=[
            RoyaltyShare("remixer-grace", 6_000),
            RoyaltyShare("originator-ada", 4_000, position=1),
        ],
    ),
    Listing(
        id="demo-gear-draft",
        title="Herringbone Gear Set",
        base_price_minor=1_250,
        stage=ListingStage.DRAFT,
        storage_path="files/demo-gear/gears.step",
        royalty_split=[RoyaltyShare("originator-linus", 10_000)],
    ),
]


async def seed(database_url: str | None) -> int:
    """Store the demo listings.

    Args:
        database_url: Target database; defaults to settings.

    Returns:
        Number of listings written.
    """
    container = build_database_container(database_url)
    try:
        await create_all(container.engine)
        await container.startup()
        for listing in DEMO_LISTINGS:
            compute(listing.base_price_minor, listing.ordered_split())
            await container.listings.add(listing)
            print(f"  ✓ {listing.id}: {listing.title} ({listing.stage.value})")
    finally:
        await container.close()
    return len(DEMO_LISTINGS)


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed demo marketplace listings")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (default: DATABASE_URL from settings)",
    )
    args = parser.parse_args()

    print("=" * 60)
    print("FileMarket Listing Seeder")
    print("=" * 60)

    count = await seed(args.database_url)

    print("=" * 60)
    print(f"Seeded {count} listings")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
