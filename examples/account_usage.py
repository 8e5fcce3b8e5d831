#!/usr/bin/env python3
"""
Example of account queries, transfers and parent-network deposits.
"""
import logging
import os

from adm_sdk import Account, LocalSigner, Provider, ProviderConfig
from adm_sdk.exceptions import NetworkFailure, NotFound, PreCheckFailed


def main():
    logging.basicConfig(level=logging.INFO)

    PRIVATE_KEY = os.environ.get("PRIVATE_KEY")
    RECIPIENT = os.environ.get("RECIPIENT")
    DEPOSIT = os.environ.get("DEPOSIT_AMOUNT")

    if not PRIVATE_KEY:
        print("ERROR: PRIVATE_KEY environment variable is required")
        return

    provider = Provider(ProviderConfig.from_env())
    signer = LocalSigner(PRIVATE_KEY)

    try:
        info = Account.info(provider, signer.address())
        print(f"Account {info.address} ({info.eth_address})")
        print(f"  sequence: {info.sequence}")
        print(f"  balance:  {info.balance / 10**18} (atto: {info.balance})")
        if info.parent_balance is not None:
            print(f"  parent:   {info.parent_balance / 10**18}")

        for machine in Account.machines(provider, signer.address()):
            print(f"  owns {machine.kind} at {machine.address}")

        if RECIPIENT:
            receipt = Account.transfer(provider, signer, RECIPIENT, 10**15)
            print(f"Transferred 0.001 in {receipt.tx_hash}")

        # Needs ADM_EVM_RPC_URL, ADM_EVM_GATEWAY and ADM_SUBNET_ID
        if DEPOSIT and provider.evm is not None:
            deposit = Account.deposit(provider.evm, signer, signer.address(), int(DEPOSIT))
            print(f"Deposited {DEPOSIT} atto in parent block {deposit.block_number}")
    except NotFound:
        print(f"Account {signer.address()} does not exist yet; fund it first")
    except PreCheckFailed as e:
        print(f"Transaction rejected: {e}")
    except NetworkFailure as e:
        print(f"Network unreachable: {e}")
    finally:
        provider.close()


if __name__ == "__main__":
    main()
