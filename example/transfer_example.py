import asyncio
import logging
import os

import dotenv

from permit_paymaster import (
    LifecycleEvent,
    PaymasterSettings,
    RawKeySigner,
    SessionContext,
    SponsoredTransferPipeline,
)

dotenv.load_dotenv()
logging.basicConfig(level=logging.INFO)

# PAYMASTER_ACCOUNT_FACTORY, PAYMASTER_ACCOUNT_IMPLEMENTATION and
# PAYMASTER_PROXY_CREATION_CODE must be set for the smart account.
owner_key = os.getenv("OWNER_PRIVATE_KEY", "0xxxx")  # Replace with actual key
recipient = os.getenv("RECIPIENT", "0x000000000000000000000000000000000000dEaD")


async def on_stage(event: LifecycleEvent):
    print(f"-> {event.stage.value} {event.message}")


async def main():
    settings = PaymasterSettings.from_env()
    context = SessionContext.from_settings(settings, RawKeySigner.from_key(owner_key))
    context.bus.subscribe(LifecycleEvent, on_stage)

    try:
        pipeline = SponsoredTransferPipeline(context)
        return await pipeline.run_transfer(recipient, "0.01")
    finally:
        await context.aclose()


if __name__ == "__main__":
    outcome = asyncio.run(main())
    print("Stages:", " -> ".join(outcome.stages()))
    if outcome.success:
        print("✅ Included:", outcome.transaction_hash)
    else:
        print(f"❌ Failed in {outcome.failed_stage}: {outcome.reason}")
        if outcome.user_operation_hash:
            print("User operation hash:", outcome.user_operation_hash)
