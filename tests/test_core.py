import asyncio

from cloudburst.core import LoadDispatcher
from cloudburst.models import Duration, FixedCount

from conftest import hits, make_config


def make_dispatcher(config, **kwargs):
    return LoadDispatcher(config, use_progress_bar=False, **kwargs)


async def test_fixed_count_issues_requests_times_clients(http_server):
    config = make_config(
        str(http_server.make_url("/ok")), criterion=FixedCount(5), concurrency=4
    )
    dispatcher = make_dispatcher(config)

    stats = await dispatcher.run()

    assert stats.requests == 20
    assert stats.success == 20
    assert len(hits(http_server)) == 20
    assert stats.bytes_read > 0
    assert stats.elapsed >= 1


async def test_template_is_expanded_before_dispatch(http_server):
    pattern = str(http_server.make_url("/ok")) + "/{S3,1-10}"
    config = make_config(pattern, criterion=FixedCount(3))
    dispatcher = make_dispatcher(config)

    await dispatcher.run()

    assert [path for path, _, _ in hits(http_server)] == ["/ok/1", "/ok/2", "/ok/3"]


async def test_report_is_idempotent_after_run(http_server):
    config = make_config(str(http_server.make_url("/ok")), criterion=FixedCount(3))
    dispatcher = make_dispatcher(config)

    stats = await dispatcher.run()
    await asyncio.sleep(0.05)

    assert dispatcher.report() == stats
    assert dispatcher.report() == dispatcher.report()


async def test_deadline_excludes_in_flight_request(silent_server):
    config = make_config(silent_server, criterion=Duration(0.5), read_timeout=10.0)
    dispatcher = make_dispatcher(config)

    stats = await asyncio.wait_for(dispatcher.run(), timeout=5)

    assert stats.requests == 0
    assert stats.network_failures == 0
    assert stats.cancelled == 1
    assert dispatcher.controller.deadline_reached


async def test_duration_run_keeps_going_until_deadline(http_server):
    config = make_config(str(http_server.make_url("/ok")), criterion=Duration(0.5), concurrency=2)
    dispatcher = make_dispatcher(config)

    stats = await asyncio.wait_for(dispatcher.run(), timeout=5)

    assert stats.requests > 0
    assert stats.requests == stats.success + stats.bad_failures + stats.network_failures + stats.io_failures
    assert stats.elapsed == 1


async def test_timeouts_surface_as_failures_during_duration_run(silent_server):
    config = make_config(silent_server, criterion=Duration(1.0), read_timeout=0.2)
    dispatcher = make_dispatcher(config)

    stats = await asyncio.wait_for(dispatcher.run(), timeout=5)

    assert stats.network_failures >= 2
    assert stats.requests == stats.network_failures


async def test_interrupt_stops_run_early(http_server):
    config = make_config(str(http_server.make_url("/ok")), criterion=Duration(30), concurrency=2)
    dispatcher = make_dispatcher(config)

    loop = asyncio.get_running_loop()
    loop.call_later(0.3, dispatcher.controller.interrupt)
    stats = await asyncio.wait_for(dispatcher.run(), timeout=5)

    assert dispatcher.controller.stop_signal.reason == "interrupt"
    assert stats.requests > 0
    assert dispatcher.elapsed() < 5


async def test_empty_target_set_does_not_block(http_server):
    config = make_config(str(http_server.make_url("/ok")), criterion=Duration(30), concurrency=3)
    dispatcher = make_dispatcher(config, targets=[])

    stats = await asyncio.wait_for(dispatcher.run(), timeout=5)

    assert stats.requests == 0
    assert stats.elapsed == 1
    assert hits(http_server) == []


async def test_grace_period_lets_in_flight_requests_finish(http_server):
    config = make_config(
        str(http_server.make_url("/ok")),
        criterion=Duration(0.3),
        shutdown_grace=2.0,
    )
    dispatcher = make_dispatcher(config)

    stats = await asyncio.wait_for(dispatcher.run(), timeout=5)

    assert stats.cancelled == 0
    assert stats.requests > 0


async def test_legacy_correction_applies_to_deadline_runs(closed_port_url):
    config = make_config(
        closed_port_url,
        criterion=FixedCount(1),
        legacy_deadline_correction=True,
    )
    dispatcher = make_dispatcher(config)

    stats = await dispatcher.run()

    # Not a deadline run, so the single network failure stays
    assert stats.network_failures == 1
    assert stats.requests == 1


async def test_legacy_correction_keeps_dial_failure_when_deadline_cancels(
    closed_port_url, silent_server
):
    config = make_config(
        closed_port_url,
        silent_server,
        criterion=Duration(0.5),
        read_timeout=10.0,
        legacy_deadline_correction=True,
    )
    dispatcher = make_dispatcher(config)

    stats = await asyncio.wait_for(dispatcher.run(), timeout=5)

    assert dispatcher.controller.deadline_reached
    # The silent target is cut off as cancelled; the refused dial is real
    assert stats.cancelled == 1
    assert stats.network_failures == 1
    assert stats.requests == 1


async def test_metrics_callback_sees_final_report(http_server):
    received = []
    config = make_config(str(http_server.make_url("/ok")), criterion=FixedCount(2))
    dispatcher = make_dispatcher(config, metrics_callback=received.append)

    stats = await dispatcher.run()

    assert received[-1] == stats.to_dict()


async def test_report_during_run_does_not_stop_workers(http_server):
    config = make_config(str(http_server.make_url("/ok")), criterion=Duration(0.6))
    dispatcher = make_dispatcher(config)

    run = asyncio.create_task(dispatcher.run())
    await asyncio.sleep(0.3)
    early = dispatcher.report()
    stats = await asyncio.wait_for(run, timeout=5)

    assert not run.cancelled()
    assert stats.requests >= early.requests
