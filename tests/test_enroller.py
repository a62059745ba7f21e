import asyncio

from conftest import Recorder, press_all
from eventgate.app.pin.enroller import PinEnroller
from eventgate.app.state import PadPhase, VerificationOutcome


async def test_enroll_forwards_pin_once_and_resets(fast_timings):
    on_success = Recorder()
    pad = PinEnroller(on_success, timings=fast_timings)

    press_all(pad, "048213")
    assert pad.busy is True
    assert pad.phase is PadPhase.COMMITTING
    assert on_success.count == 0

    await pad.wait_settled()

    assert on_success.calls == [("048213",)]
    assert pad.current_length == 0
    assert pad.phase is PadPhase.IDLE
    assert pad.busy is False
    assert pad.outcome is VerificationOutcome.PENDING


async def test_all_zero_pin_is_accepted(fast_timings):
    on_success = Recorder()
    pad = PinEnroller(on_success, timings=fast_timings)
    press_all(pad, "000000")
    await pad.wait_settled()
    assert on_success.calls == [("000000",)]


async def test_enroller_can_be_reused_after_commit(fast_timings):
    on_success = Recorder()
    pad = PinEnroller(on_success, timings=fast_timings)
    press_all(pad, "111111")
    await pad.wait_settled()
    press_all(pad, "222222")
    await pad.wait_settled()
    assert on_success.calls == [("111111",), ("222222",)]


async def test_close_before_completion_commits_nothing(fast_timings):
    on_success = Recorder()
    on_close = Recorder()
    pad = PinEnroller(on_success, on_close=on_close, timings=fast_timings)
    press_all(pad, "12345")
    pad.close()
    await asyncio.sleep(fast_timings.enroll_delay * 3)

    assert on_success.count == 0
    assert on_close.count == 1
    assert pad.phase is PadPhase.CLOSED
    assert pad.current_length == 0


async def test_close_during_commit_delay_commits_nothing(fast_timings):
    on_success = Recorder()
    pad = PinEnroller(on_success, timings=fast_timings)
    press_all(pad, "123456")
    pad.close()
    await asyncio.sleep(fast_timings.enroll_delay * 3)
    assert on_success.count == 0


async def test_rejecting_host_leaves_pad_ready_for_retry(fast_timings):
    attempts = []

    async def on_success(pin):
        attempts.append(pin)
        if len(attempts) == 1:
            raise RuntimeError("store unavailable")

    pad = PinEnroller(on_success, timings=fast_timings)
    press_all(pad, "314159")
    await pad.wait_settled()
    assert pad.phase is PadPhase.IDLE
    assert pad.current_length == 0

    press_all(pad, "271828")
    await pad.wait_settled()
    assert attempts == ["314159", "271828"]


async def test_enroller_never_shows_an_error(fast_timings):
    pad = PinEnroller(Recorder(), timings=fast_timings)
    for pin in ("000000", "999999", "123456"):
        press_all(pad, pin)
        assert pad.error is False
        await pad.wait_settled()
        assert pad.error is False
