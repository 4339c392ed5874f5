"""Runnable roles: publisher, subscriber, sample publisher, and an in-process demo."""

import argparse
import asyncio
import signal
from typing import Awaitable, Callable, Dict, List, Optional

from ecomevents.broker import Broker, LocalTransport
from ecomevents.catalog import Catalog
from ecomevents.config import Settings, load_settings
from ecomevents.observability import get_logger
from ecomevents.publisher import EventPublisher
from ecomevents.simulator import WorkflowSimulator
from ecomevents.subscriber import DEFAULT_SUBSCRIPTIONS, EventSubscriber
from ecomevents.transport import Transport
from ecomevents.ws_transport import WebSocketTransport

EXIT_OK = 0
EXIT_CONNECT_FAILED = 1
EXIT_FATAL = 2

ROLES = ("publisher", "subscriber", "sample", "demo")

logger = get_logger("ecomevents.app")


def make_transport(settings: Settings, client_id: str, broker: Optional[Broker] = None) -> Transport:
    """WebSocket transport when a broker URL is configured, else an in-process one."""
    if settings.broker_url:
        return WebSocketTransport(settings.broker_url, api_key=settings.api_key, client_id=client_id)
    return LocalTransport(broker if broker is not None else Broker(), client_id=client_id)


class RoleContext:
    """Per-process state handed to role callbacks: settings, the stop signal, the exit code."""

    def __init__(self, settings: Settings, stop: Optional[asyncio.Event] = None) -> None:
        self.settings = settings
        self.stop = stop or asyncio.Event()
        self.exit_code = EXIT_OK

    def fatal(self, task: asyncio.Task) -> None:
        """Done-callback for long-running tasks: an exception ends the process."""
        if task.cancelled() or task.exception() is None:
            return
        logger.error("fatal_error", exc_info=task.exception())
        self.exit_code = EXIT_FATAL
        self.stop.set()


async def _every(interval: float, callback: Callable[[], None]) -> None:
    while True:
        await asyncio.sleep(interval)
        callback()


async def run_publisher(ctx: RoleContext, transport: Transport) -> int:
    publisher = EventPublisher("ecommerce-publisher", transport)
    simulator = WorkflowSimulator(publisher, Catalog(), ctx.settings)

    def start() -> None:
        logger.info("starting_simulation", extra={"interval_sec": ctx.settings.publish_interval_sec})
        simulator.start().add_done_callback(ctx.fatal)

    publisher.when_connected(start)
    publisher.when_disconnected(simulator.stop)
    if not await transport.connect():
        return EXIT_CONNECT_FAILED
    await ctx.stop.wait()
    simulator.stop()
    await transport.disconnect()
    return ctx.exit_code


def subscriber_for(ctx: RoleContext, transport: Transport) -> EventSubscriber:
    subscriptions = list(DEFAULT_SUBSCRIPTIONS)
    subscriptions.append((ctx.settings.sample_topic, "Sample Messages"))
    return EventSubscriber("ecommerce-subscriber", transport, subscriptions=subscriptions)


async def run_subscriber(ctx: RoleContext, transport: Transport) -> int:
    subscriber = subscriber_for(ctx, transport)
    if not await transport.connect():
        return EXIT_CONNECT_FAILED
    status = asyncio.create_task(_every(ctx.settings.status_interval_sec, subscriber.show_subscriptions))
    await ctx.stop.wait()
    status.cancel()
    await subscriber.disconnect()
    return ctx.exit_code


async def run_sample(ctx: RoleContext, transport: Transport) -> int:
    """Publish sample_count plain-text messages to sample_topic, then disconnect."""
    publisher = EventPublisher("sample-publisher", transport)
    if not await transport.connect():
        return EXIT_CONNECT_FAILED
    for i in range(ctx.settings.sample_count):
        publisher.send_raw(ctx.settings.sample_topic, f"Sample message {i}")
    await transport.disconnect()
    return ctx.exit_code


async def run_demo(ctx: RoleContext) -> int:
    """Subscriber and publisher in one process over an in-process broker."""
    broker = Broker()
    sub_transport = LocalTransport(broker, client_id="demo-subscriber")
    pub_transport = LocalTransport(broker, client_id="demo-publisher")
    subscriber = subscriber_for(ctx, sub_transport)
    results = await asyncio.gather(
        run_publisher(ctx, pub_transport),
        _demo_subscriber(ctx, subscriber, sub_transport),
    )
    return max(results)


async def _demo_subscriber(ctx: RoleContext, subscriber: EventSubscriber, transport: Transport) -> int:
    if not await transport.connect():
        return EXIT_CONNECT_FAILED
    await ctx.stop.wait()
    subscriber.show_subscriptions()
    await subscriber.disconnect()
    return EXIT_OK


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, stop)
        except (NotImplementedError, RuntimeError):
            pass


def _request_shutdown(stop: asyncio.Event) -> None:
    logger.info("shutting_down")
    stop.set()


async def run(role: str, settings: Settings, duration: Optional[float] = None) -> int:
    ctx = RoleContext(settings)
    _install_signal_handlers(ctx.stop)
    if duration is not None:
        asyncio.get_running_loop().call_later(duration, ctx.stop.set)
    logger.info("starting", extra={"role": role, "broker_url": settings.broker_url or "in-process"})
    if role == "demo":
        return await run_demo(ctx)
    runners: Dict[str, Callable[[RoleContext, Transport], Awaitable[int]]] = {
        "publisher": run_publisher,
        "subscriber": run_subscriber,
        "sample": run_sample,
    }
    runner: Callable[[RoleContext, Transport], Awaitable[int]] = runners[role]
    return await runner(ctx, make_transport(settings, client_id=role))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ecomevents",
        description="E-commerce event simulation over hierarchical topics.",
    )
    parser.add_argument("role", choices=ROLES)
    parser.add_argument("--broker-url", help="ws:// URL of the broker server (default: BROKER_URL or in-process)")
    parser.add_argument("--duration", type=float, help="stop after this many seconds")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.broker_url:
        settings.broker_url = args.broker_url
    return asyncio.run(run(args.role, settings, duration=args.duration))
