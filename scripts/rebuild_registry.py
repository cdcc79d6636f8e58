#!/usr/bin/env python3
"""
Rebuild missing registry records from per-asset metadata.json copies.

Walks the artifact root, reads each asset folder's metadata.json and
adds a registry record for every id the registry does not know about.
Existing records are never touched.

Usage:
    python scripts/rebuild_registry.py --dry-run
    python scripts/rebuild_registry.py

Requires:
    - .env file with GITHUB_TOKEN, GITHUB_OWNER and GITHUB_REPO
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from excalibur.config.settings import get_settings
from excalibur.core.registry.errors import StorageError
from excalibur.core.registry.recovery import rebuild_registry
from excalibur.core.registry.store import RegistryStore
from excalibur.infrastructure.storage.client import GitHubConfig, create_file_client


async def run(dry_run: bool) -> bool:
    settings = get_settings()

    missing = [f for f in settings.validate_required_fields() if f.startswith("GITHUB")]
    if missing:
        print(f"ERROR: Missing {', '.join(missing)}")
        return False

    client = create_file_client(
        config=GitHubConfig(
            token=settings.github_token,
            owner=settings.github_owner,
            repo=settings.github_repo,
            branch=settings.github_branch,
            api_url=settings.github_api_url,
            raw_url=settings.github_raw_url,
            timeout_seconds=settings.github_timeout_seconds,
        )
    )
    registry = RegistryStore(
        client,
        settings.registry_path,
        max_attempts=settings.registry_max_attempts,
        backoff_seconds=settings.registry_retry_backoff_seconds,
    )

    print(f"Repository: {settings.github_owner}/{settings.github_repo}@{settings.github_branch}")
    print(f"Registry:   {settings.registry_path}")
    print(f"Artifacts:  {settings.artifact_root}")

    try:
        recovered = await rebuild_registry(
            client,
            registry,
            settings.artifact_root,
            dry_run=dry_run,
        )
    except StorageError as e:
        print(f"ERROR: {e}")
        return False
    finally:
        await client.aclose()

    if dry_run:
        print("\n=== DRY RUN - Registry not modified ===\n")

    for asset_id in recovered:
        print(f"{'Would recover' if dry_run else '[OK] Recovered'}: {asset_id}")

    print(f"\nTotal: {len(recovered)} record(s)")
    return True


def main():
    parser = argparse.ArgumentParser(description='Rebuild registry records from asset metadata')
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='List the records that would be recovered without writing the registry'
    )
    args = parser.parse_args()

    success = asyncio.run(run(args.dry_run))
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
