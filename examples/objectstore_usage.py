#!/usr/bin/env python3
"""
Example of storing and listing objects with the ADM SDK.
"""
import os

from adm_sdk import BroadcastMode, ListingQuery, LocalSigner, ObjectStore, Provider, ProviderConfig
from adm_sdk.exceptions import AdmError


def main():
    """
    Demonstrate basic object store usage.

    This example shows how to:
    1. Configure a provider from ADM_* environment variables
    2. Attach to an existing object store (or create one)
    3. Add a small object and read it back
    4. List the store like an S3 bucket
    """
    PRIVATE_KEY = os.environ.get("PRIVATE_KEY")
    STORE_ADDRESS = os.environ.get("OBJECT_STORE_ADDRESS")

    if not PRIVATE_KEY:
        print("ERROR: PRIVATE_KEY environment variable is required")
        return

    provider = Provider(ProviderConfig.from_env())
    signer = LocalSigner(PRIVATE_KEY)
    print(f"Signer address: {signer.address()} ({signer.eth_address})")

    try:
        if STORE_ADDRESS:
            store = ObjectStore.attach(STORE_ADDRESS)
        else:
            store, deploy = ObjectStore.create(provider, signer)
            print(f"Created object store {store.address} at height {deploy.height}")

        receipt = store.add(provider, signer, "my/object", b"hello world", overwrite=True)
        print(f"Object added in transaction {receipt.tx_hash} at height {receipt.height}")

        # Fire-and-forget write; only the hash is known
        pending = store.add(
            provider, signer, "my/data", b"more bytes", overwrite=True, broadcast_mode=BroadcastMode.ASYNC
        )
        print(f"Submitted {pending.tx_hash} (state: {pending.state.value})")

        stored = store.get(provider, "my/object", range="0-4")
        print(f"Read back: {stored.data!r}")

        for prefix in ("", "my/"):
            listing = store.query(provider, ListingQuery(prefix=prefix, delimiter="/"))
            print(f"prefix={prefix!r}: objects={[o.key for o in listing.objects]} "
                  f"common_prefixes={listing.common_prefixes}")
    except AdmError as e:
        print(f"Error ({type(e).__name__}): {e}")
    finally:
        provider.close()


if __name__ == "__main__":
    main()
