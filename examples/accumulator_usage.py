#!/usr/bin/env python3
"""
Example of appending to and reading from an accumulator.
"""
import os
import sys

from adm_sdk import Accumulator, Height, LocalSigner, Provider, ProviderConfig, parse_height
from adm_sdk.exceptions import AdmError, NotFound


def main():
    PRIVATE_KEY = os.environ.get("PRIVATE_KEY")
    ACCUMULATOR_ADDRESS = os.environ.get("ACCUMULATOR_ADDRESS")

    if not PRIVATE_KEY or not ACCUMULATOR_ADDRESS:
        print("ERROR: PRIVATE_KEY and ACCUMULATOR_ADDRESS environment variables are required")
        return

    # Optional height: committed, pending or a block number
    height = parse_height(sys.argv[1]) if len(sys.argv) > 1 else Height.COMMITTED

    with Provider(ProviderConfig.from_env()) as provider:
        signer = LocalSigner(PRIVATE_KEY)
        accumulator = Accumulator.attach(ACCUMULATOR_ADDRESS)

        try:
            receipt = accumulator.push(provider, signer, b'{"event": "login"}')
            print(f"Pushed leaf {receipt.data.index}; new root {receipt.data.root}")

            count = accumulator.count(provider, height)
            print(f"Leaves at {height}: {count}")
            print(f"Peaks: {accumulator.peaks(provider, height)}")
            print(f"Root: {accumulator.root(provider, height)}")

            try:
                print(f"Leaf 0: {accumulator.leaf(provider, 0, height)!r}")
            except NotFound:
                print("Leaf 0 does not exist at this height")
        except AdmError as e:
            print(f"Error ({type(e).__name__}): {e}")


if __name__ == "__main__":
    main()
