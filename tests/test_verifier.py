import asyncio

import pytest

from conftest import PRIVATE_PIN, Recorder, press_all
from eventgate.app.config import PinTimings
from eventgate.app.pin.verifier import PinVerifier
from eventgate.app.state import PadPhase, VerificationOutcome


@pytest.fixture
def callbacks():
    return {"success": Recorder(), "close": Recorder(), "haptic": Recorder(), "change": Recorder()}


def make_verifier(callbacks, timings, correct_pin=PRIVATE_PIN):
    return PinVerifier(
        correct_pin,
        callbacks["success"],
        on_close=callbacks["close"],
        on_change=callbacks["change"],
        haptic=callbacks["haptic"],
        timings=timings,
    )


async def test_fresh_pad_starts_clean(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    assert pad.current_length == 0
    assert pad.error is False
    assert pad.busy is False
    assert pad.phase is PadPhase.IDLE
    assert pad.outcome is VerificationOutcome.PENDING


async def test_correct_pin_unlocks_once(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, PRIVATE_PIN)

    assert pad.busy is True
    assert pad.phase is PadPhase.VERIFYING
    assert callbacks["success"].count == 0

    await pad.wait_settled()

    assert callbacks["success"].count == 1
    assert pad.phase is PadPhase.UNLOCKED
    assert pad.outcome is VerificationOutcome.MATCHED
    assert pad.busy is False
    assert pad.current_length == 6
    assert callbacks["haptic"].count == 0


async def test_unlocked_pad_ignores_further_input(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, PRIVATE_PIN)
    await pad.wait_settled()

    assert pad.press_delete() is False
    assert pad.press_digit("1") is False
    await asyncio.sleep(0.03)
    assert callbacks["success"].count == 1


async def test_wrong_pin_is_rejected_and_cleared(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, "135791")
    await pad.wait_settled()

    assert pad.phase is PadPhase.REJECTED
    assert pad.outcome is VerificationOutcome.MISMATCHED
    assert pad.current_length == 0
    assert pad.error is True
    assert pad.busy is False
    assert callbacks["haptic"].count == 1
    assert callbacks["success"].count == 0


async def test_comparison_is_exact(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings, correct_pin="13579 ")
    press_all(pad, "135790")
    await pad.wait_settled()
    assert pad.outcome is VerificationOutcome.MISMATCHED


async def test_error_clears_itself_after_display_window(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, "000000")
    await pad.wait_settled()

    await asyncio.sleep(fast_timings.error_display / 2)
    assert pad.error is True
    await asyncio.sleep(fast_timings.error_display)
    assert pad.error is False
    assert pad.current_length == 0


async def test_digit_press_clears_error_immediately(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, "000000")
    await pad.wait_settled()
    generation = pad.generation

    pad.press_digit("1")

    assert pad.error is False
    assert pad.phase is PadPhase.COLLECTING
    assert pad.outcome is VerificationOutcome.PENDING
    assert pad.current_length == 1
    assert pad.generation == generation + 1


async def test_invalid_key_leaves_rejected_pad_untouched(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, "000000")
    await pad.wait_settled()
    generation = pad.generation

    with pytest.raises(ValueError):
        pad.press_digit("x")

    assert pad.error is True
    assert pad.phase is PadPhase.REJECTED
    assert pad.outcome is VerificationOutcome.MISMATCHED
    assert pad.generation == generation


async def test_invalid_key_on_fresh_pad_stays_idle(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)

    with pytest.raises(ValueError):
        pad.press_digit("12")

    assert pad.phase is PadPhase.IDLE
    assert pad.current_length == 0
    assert callbacks["change"].count == 0


def test_digit_press_outside_event_loop_changes_nothing(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)

    with pytest.raises(RuntimeError):
        pad.press_digit("1")

    assert pad.phase is PadPhase.IDLE
    assert pad.current_length == 0
    assert pad.busy is False



async def test_stale_error_timer_does_not_clear_newer_error(callbacks):
    timings = PinTimings(verify_delay_ms=10, enroll_delay_ms=10, error_display_ms=300)
    pad = make_verifier(callbacks, timings)

    press_all(pad, "000000")
    await pad.wait_settled()
    await asyncio.sleep(0.2)
    press_all(pad, "111111")
    await pad.wait_settled()
    assert pad.error is True

    # first window would have ended around here
    await asyncio.sleep(0.15)
    assert pad.error is True

    await asyncio.sleep(0.3)
    assert pad.error is False
    assert callbacks["haptic"].count == 2


async def test_expiry_for_an_old_generation_is_ignored(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, "999999")
    await pad.wait_settled()

    pad._expire_error(pad.generation - 1)
    assert pad.error is True


async def test_wrong_then_right_scenario(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings, correct_pin="135790")

    press_all(pad, "135791")
    await pad.wait_settled()
    assert pad.phase is PadPhase.REJECTED
    assert pad.current_length == 0
    assert pad.error is True

    press_all(pad, "135790")
    await pad.wait_settled()
    assert pad.phase is PadPhase.UNLOCKED
    assert callbacks["success"].count == 1


async def test_unlimited_attempts(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    for _ in range(10):
        press_all(pad, "222222")
        await pad.wait_settled()
    assert callbacks["haptic"].count == 10

    press_all(pad, PRIVATE_PIN)
    await pad.wait_settled()
    assert callbacks["success"].count == 1


async def test_second_completion_during_verify_is_queued_in_order(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)

    press_all(pad, "111111")
    for _ in range(6):
        pad.press_delete()
    press_all(pad, PRIVATE_PIN)
    assert pad.busy is True

    await pad.wait_settled()

    assert callbacks["haptic"].count == 1
    assert callbacks["success"].count == 1
    assert pad.phase is PadPhase.UNLOCKED
    assert pad.error is False
    payload = pad.snapshot().to_payload()
    assert payload["outcome"] == "matched"
    assert "message_key" not in payload
    assert "error" not in payload["dots"]


async def test_close_cancels_pending_verification(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, PRIVATE_PIN)
    pad.close()

    await asyncio.sleep(fast_timings.verify_delay * 3)

    assert callbacks["success"].count == 0
    assert callbacks["close"].count == 1
    assert pad.phase is PadPhase.CLOSED
    assert pad.busy is False
    assert pad.press_digit("1") is False


async def test_close_cancels_error_timer(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, "000000")
    await pad.wait_settled()
    changes = callbacks["change"].count

    pad.close()
    await asyncio.sleep(fast_timings.error_display * 2)

    assert pad.error is False
    # only the close itself was observed
    assert callbacks["change"].count == changes + 1


async def test_close_twice_reports_once(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    pad.close()
    pad.close()
    assert callbacks["close"].count == 1


async def test_async_success_callback_is_awaited(fast_timings):
    seen = []

    async def on_success():
        await asyncio.sleep(0)
        seen.append("ok")

    pad = PinVerifier(PRIVATE_PIN, on_success, timings=fast_timings)
    press_all(pad, PRIVATE_PIN)
    await pad.wait_settled()
    assert seen == ["ok"]


async def test_failing_success_callback_does_not_break_pad(fast_timings):
    def on_success():
        raise RuntimeError("host exploded")

    pad = PinVerifier(PRIVATE_PIN, on_success, timings=fast_timings)
    press_all(pad, PRIVATE_PIN)
    await pad.wait_settled()
    assert pad.phase is PadPhase.UNLOCKED


async def test_change_listener_never_sees_digits(callbacks, fast_timings):
    pad = make_verifier(callbacks, fast_timings)
    press_all(pad, PRIVATE_PIN)
    await pad.wait_settled()

    for (snapshot,) in callbacks["change"].calls:
        assert PRIVATE_PIN not in str(snapshot.to_payload())
    entered = [snapshot.entered for (snapshot,) in callbacks["change"].calls]
    assert entered[:6] == [1, 2, 3, 4, 5, 6]
