#!/usr/bin/env python3
"""Diagnostic script to check ProKnow connection configuration."""

import asyncio
import os

from dotenv import find_dotenv, load_dotenv

# Load environment variables from .env file
load_dotenv(find_dotenv())

print("=" * 60)
print("ProKnow Connection Diagnostic")
print("=" * 60)
print()

# Check 1: Environment variables
print("1. Environment Variables:")
print(f"   PROKNOW_BASE_URL: {os.getenv('PROKNOW_BASE_URL', 'NOT SET')}")
print(f"   PROKNOW_CREDENTIALS_ID: {'SET' if os.getenv('PROKNOW_CREDENTIALS_ID') else 'NOT SET'}")
print(f"   PROKNOW_CREDENTIALS_SECRET: {'SET' if os.getenv('PROKNOW_CREDENTIALS_SECRET') else 'NOT SET'}")
print(f"   PROKNOW_CREDENTIALS_FILE: {os.getenv('PROKNOW_CREDENTIALS_FILE', 'NOT SET')}")
print(f"   PROKNOW_LOCK_RENEWAL_BUFFER: {os.getenv('PROKNOW_LOCK_RENEWAL_BUFFER', 'NOT SET (defaults to 30)')}")
print(f"   PROKNOW_TIMEOUT_SECONDS: {os.getenv('PROKNOW_TIMEOUT_SECONDS', 'NOT SET (defaults to 30)')}")
print()

# Check 2: ProKnowConfig
print("2. ProKnowConfig from Environment:")
cfg = None
try:
    from proknow.config import ProKnowConfig, configure_logging

    configure_logging()
    cfg = ProKnowConfig.from_env()
    print(f"   Base URL: {cfg.base_url}")
    print(f"   Lock Renewal Buffer: {cfg.lock_renewal_buffer}s")
    print(f"   Timeout: {cfg.timeout}s")
except Exception as e:
    print(f"   ✗ Error loading ProKnowConfig: {e}")
    import traceback
    traceback.print_exc()
print()


async def check_connection(config) -> None:
    from proknow.client import ProKnow
    from proknow.rtv_requestor import ObjectType

    # Check 3: API connection
    print("3. API Connection:")
    async with ProKnow.from_config(config) as pk:
        status = await pk.get_connection_status()
        if status.is_valid:
            print("   ✓ Connected successfully")
        else:
            print(f"   ✗ Connection failed: {status.error_message}")
        print()

        # Check 4: RTV service
        print("4. RTV Service:")
        try:
            for object_type in ObjectType:
                version = await pk.rtv_requestor.get_api_version(object_type)
                print(f"   {object_type.value}: Accept-Version {version}")
            print("   ✓ RTV service reachable")
        except Exception as e:
            print(f"   ✗ RTV service check failed: {e}")
            import traceback
            traceback.print_exc()
    print()


if cfg is not None:
    asyncio.run(check_connection(cfg))
else:
    print("3. API Connection: skipped (no configuration)")
    print()

print("=" * 60)
print("Diagnostic Complete")
print("=" * 60)
print()
print("Next steps:")
print("1. Verify PROKNOW_BASE_URL is the organization URL, without /api")
print("2. Download a credentials file from ProKnow and set PROKNOW_CREDENTIALS_FILE")
print("3. Try setting LOG_LEVEL=DEBUG to see each request")
