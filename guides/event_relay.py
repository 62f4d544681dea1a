"""Forward engine events to Redis so other processes can watch a workflow."""

import asyncio

from orchestrant import create_orchestrator, get_transport
from orchestrant.config import load_config
from orchestrant.transports import EventRelay


async def main():
    config = load_config("guides/config.yaml")
    orchestrator = create_orchestrator(config=config)

    transport = get_transport(config=config)
    await transport.connect()
    relay = EventRelay(
        orchestrator.bus,
        transport,
        event_types=["workflowStarted", "workflowCompleted", "workflowFailed", "writeRequestCreated"],
    )

    await orchestrator.execute_workflow(
        "session-processing", {"recording": "session-13.mp3"}
    )
    sent = await relay.drain()
    print(f"✅ Forwarded {sent} events to {config.transport.redis.channel}")

    relay.close()
    await transport.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
