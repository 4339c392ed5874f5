"""Example: publisher and subscriber in one process over the in-process broker."""

import asyncio
import random

from ecomevents import Broker, EventPublisher, EventSubscriber, LocalTransport, WorkflowSimulator
from ecomevents.config import Settings


async def main() -> None:
    broker = Broker()
    subscriber = EventSubscriber("consumer-1", LocalTransport(broker, client_id="consumer-1"))
    publisher = EventPublisher("producer-1", LocalTransport(broker, client_id="producer-1"))
    simulator = WorkflowSimulator(
        publisher,
        settings=Settings(payment_delay_sec=0.5),
        rng=random.Random(7),
    )

    await subscriber.transport.connect()
    await publisher.transport.connect()
    # on_up registers the subscriptions, confirmations follow one loop turn later
    await asyncio.sleep(0.1)

    simulator.simulate_registration()
    simulator.simulate_inventory_change()
    simulator.simulate_order()
    await asyncio.sleep(1.0)

    subscriber.show_subscriptions()
    await subscriber.disconnect()
    await publisher.transport.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
