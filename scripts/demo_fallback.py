#!/usr/bin/env python3
"""
Fallback chain demo.

Scenario:
1. No remote provider configured, development mode
2. Upload a thumbnail: it lands on local disk
3. Same upload in production: the chain refuses the local fallback
4. The optional-asset policy turns the failure into "no thumbnail"

Run without STORACHA_TOKEN / WEB3STORAGE_TOKEN to see the fallbacks.
"""

import asyncio
import json
import sys
import tempfile
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from uploads import AllProvidersFailedError, StorageConfig, build_resolver, upload_asset


def print_separator(title: str):
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}\n")


async def main():
    thumbnail = b"\x89PNG\r\n\x1a\n" + bytes(2)

    with tempfile.TemporaryDirectory() as tmp:
        uploads_dir = str(Path(tmp) / "uploads")

        # =====================================================================
        # STEP 1: development, nothing remote
        # =====================================================================
        print_separator("STEP 1: development resolver")
        dev = build_resolver(StorageConfig(environment="development", uploads_dir=uploads_dir))
        print(json.dumps(dev.status(), indent=2))

        # =====================================================================
        # STEP 2: upload falls back to local disk
        # =====================================================================
        print_separator("STEP 2: upload thumbnail.png")
        async with dev:
            result = await dev.resolve_upload(thumbnail, "thumbnail.png", "image/png")
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        print(f"\nFiles on disk: {[p.name for p in Path(uploads_dir).iterdir()]}")

        # =====================================================================
        # STEP 3: production refuses local disk
        # =====================================================================
        print_separator("STEP 3: same upload in production")
        prod = build_resolver(StorageConfig(environment="production", uploads_dir=uploads_dir))
        print(json.dumps(prod.status(), indent=2))
        async with prod:
            try:
                await prod.resolve_upload(thumbnail, "thumbnail.png", "image/png")
            except AllProvidersFailedError as e:
                print(f"\nRefused: {e}")

            # =================================================================
            # STEP 4: optional asset policy
            # =================================================================
            print_separator("STEP 4: optional thumbnail in production")
            asset = await upload_asset(prod, thumbnail, "thumbnail.png", "image/png")
            print(f"Course saved with thumbnail = {asset}")


if __name__ == "__main__":
    asyncio.run(main())
