import asyncio

import pytest

from ecomevents.app import (
    EXIT_FATAL,
    EXIT_OK,
    RoleContext,
    build_parser,
    make_transport,
    run,
    run_demo,
    run_sample,
)
from ecomevents.broker import Broker, LocalTransport
from ecomevents.config import Settings
from ecomevents.ws_transport import WebSocketTransport


def fast_settings(**overrides):
    values = dict(publish_interval_sec=0.01, payment_delay_sec=0.01, status_interval_sec=0.05)
    values.update(overrides)
    return Settings(**values)


def test_make_transport_picks_by_broker_url():
    assert isinstance(make_transport(Settings(), "x"), LocalTransport)
    remote = make_transport(Settings(broker_url="ws://localhost:8000/api/v1/ws"), "x")
    assert isinstance(remote, WebSocketTransport)


def test_parser_accepts_roles_only():
    args = build_parser().parse_args(["demo", "--duration", "1.5"])
    assert args.role == "demo"
    assert args.duration == 1.5
    with pytest.raises(SystemExit):
        build_parser().parse_args(["nonsense"])


def test_demo_runs_until_stopped():
    async def scenario():
        ctx = RoleContext(fast_settings())
        asyncio.get_running_loop().call_later(0.2, ctx.stop.set)
        return await run_demo(ctx)

    assert asyncio.run(scenario()) == EXIT_OK


def test_sample_role_publishes_and_exits():
    async def scenario():
        broker = Broker()
        listener = LocalTransport(broker, "listener")
        received = []
        listener.on_message(received.append)
        await listener.connect()
        listener.subscribe("sample/topic")
        ctx = RoleContext(fast_settings(sample_count=3))
        code = await run_sample(ctx, LocalTransport(broker, "sample"))
        await asyncio.sleep(0.01)
        return code, received

    code, received = asyncio.run(scenario())

    assert code == EXIT_OK
    assert [m.body for m in received] == ["Sample message 0", "Sample message 1", "Sample message 2"]


def test_run_with_duration_stops_by_itself():
    assert asyncio.run(run("subscriber", fast_settings(), duration=0.1)) == EXIT_OK


def test_failing_task_is_fatal():
    async def scenario():
        ctx = RoleContext(Settings())

        async def boom():
            raise RuntimeError("boom")

        task = asyncio.get_running_loop().create_task(boom())
        task.add_done_callback(ctx.fatal)
        await asyncio.wait_for(ctx.stop.wait(), timeout=1)
        return ctx

    ctx = asyncio.run(scenario())
    assert ctx.exit_code == EXIT_FATAL
