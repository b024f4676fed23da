#!/usr/bin/env python3
"""
Watch Party Project Setup Script

Initializes the project for a fresh clone:
1. Creates media directories for the shows in catalog.yaml
2. Seeds the catalog into the database (replacing the current one)

Usage (from project root):
    python scripts/setup.py              # Full setup (dirs + catalog)
    python scripts/setup.py --dirs-only  # Only create media directories
    python scripts/setup.py --seed-only  # Only seed the catalog
    python scripts/setup.py --dry-run    # Preview what would be done
"""

import argparse
import sys
from pathlib import Path

# Paths - scripts/ is one level below project root
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from backend import catalog, config  # noqa: E402

MEDIA_DIR = PROJECT_ROOT / "media"


def create_media_directories(entries: list[dict], dry_run: bool = False) -> int:
    """Create media directories for every catalog entry"""
    created = 0

    for relative in catalog.media_directories(entries):
        media_dir = MEDIA_DIR / relative
        if not media_dir.exists():
            if dry_run:
                print(f"  Would create: media/{relative}/")
            else:
                media_dir.mkdir(parents=True, exist_ok=True)
                print(f"  Created: media/{relative}/")
            created += 1
        else:
            print(f"  Exists: media/{relative}/")

    return created


def count_videos(entries: list[dict]) -> int:
    total = 0
    for entry in entries:
        if entry.get("title_type", "movie") == "movie":
            total += 1
        else:
            total += sum(int(s.get("episodes", 0)) for s in entry.get("seasons", []))
    return total


def main():
    parser = argparse.ArgumentParser(
        description="Initialize Watch Party project",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python setup.py              # Full setup
    python setup.py --dirs-only  # Only create media directories
    python setup.py --dry-run    # Preview changes without making them
        """
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        '--dirs-only',
        action='store_true',
        help='Only create media directories, skip seeding'
    )
    group.add_argument(
        '--seed-only',
        action='store_true',
        help='Only seed the catalog, skip media directories'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Preview what would be done without making changes'
    )
    parser.add_argument(
        '--catalog',
        default=None,
        help='Path to catalog file (default: catalog.yaml in project root)'
    )
    args = parser.parse_args()

    print("=" * 50)
    print("Watch Party Project Setup")
    print("=" * 50)

    if args.dry_run:
        print("\n[DRY RUN - No changes will be made]\n")

    print("\nLoading catalog...")
    entries = catalog.load_catalog(Path(args.catalog) if args.catalog else None)
    if not entries:
        print("Error: no shows found in catalog")
        sys.exit(1)

    movies = sum(1 for e in entries if e.get("title_type", "movie") == "movie")
    print(f"Found {len(entries)} shows ({movies} movies, {len(entries) - movies} series)")

    if not args.seed_only:
        print(f"\n{'[Media Directories]':=^50}")
        dirs_created = create_media_directories(entries, args.dry_run)
        print(f"\n{dirs_created} directories {'would be ' if args.dry_run else ''}created")

    if not args.dirs_only:
        print(f"\n{'[Catalog]':=^50}")
        if args.dry_run:
            print(f"  Would seed {len(entries)} shows, {count_videos(entries)} videos")
        else:
            app_config = config.load_app_config()
            counts = catalog.seed_catalog(entries, base_url=app_config["media"]["base_url"])
            print(f"  Seeded {counts['shows']} shows, {counts['videos']} videos")

    print(f"\n{'[Summary]':=^50}")
    if args.dry_run:
        print("Dry run complete. Run without --dry-run to apply changes.")
    else:
        print("Setup complete!")
        print("\nNext steps:")
        print("  1. Copy video files into media/ (see catalog URLs)")
        print("  2. Run: uvicorn backend.server:app --reload --port 8000")


if __name__ == "__main__":
    main()
