from datetime import datetime

import pytest

from callplane.services.exceptions import ValidationError
from callplane.services.quota import evaluate
from callplane.services.quota.admission import add_month
from tests.helpers import PROJECT


@pytest.mark.asyncio
async def test_quota_created_lazily_from_project_plan(admission, features):
    features.plans["proj_basic"] = "basic"
    quota = await admission.get_quota("proj_basic")
    assert quota.plan == "basic"
    assert quota.enabled is True
    assert quota.max_concurrent_calls == 1
    assert quota.monthly_call_limit == 100
    assert quota.concurrent_calls_now == 0

    # Second access returns the same row
    again = await admission.get_quota("proj_basic")
    assert again.id == quota.id


@pytest.mark.asyncio
async def test_unknown_plan_creates_disabled_quota(admission, features):
    features.plans["proj_x"] = "PRO"
    decision = await admission.check_admission("proj_x", "audio")
    assert decision.allowed is False
    assert decision.reason == "calls disabled"


@pytest.mark.asyncio
async def test_check_admission_reason_priority(admission):
    await admission.get_quota(PROJECT)

    await admission.update_settings(PROJECT, {"video_calls": False})
    decision = await admission.check_admission(PROJECT, "video")
    assert decision.reason == "video calls disabled"

    await admission.update_settings(PROJECT, {"enabled": False})
    decision = await admission.check_admission(PROJECT, "video")
    assert decision.reason == "calls disabled"


@pytest.mark.asyncio
async def test_check_admission_does_not_mutate(admission):
    for _ in range(3):
        assert (await admission.check_admission(PROJECT, "audio")).allowed
    quota = await admission.get_quota(PROJECT)
    assert quota.concurrent_calls_now == 0
    assert quota.calls_this_month == 0


@pytest.mark.asyncio
async def test_reserve_counts_and_hits_concurrent_limit(admission):
    # pro: 2 concurrent
    assert (await admission.reserve(PROJECT, "audio")).allowed
    assert (await admission.reserve(PROJECT, "video")).allowed

    denied = await admission.reserve(PROJECT, "audio")
    assert denied.allowed is False
    assert denied.reason == "concurrent limit reached"

    quota = await admission.get_quota(PROJECT)
    assert quota.concurrent_calls_now == 2
    assert quota.calls_this_month == 2


@pytest.mark.asyncio
async def test_monthly_limit(admission):
    await admission.update_settings(PROJECT, {"monthly_call_limit": 1})
    assert (await admission.reserve(PROJECT, "audio")).allowed
    await admission.release(PROJECT)

    denied = await admission.reserve(PROJECT, "audio")
    assert denied.allowed is False
    assert denied.reason == "monthly limit reached"


@pytest.mark.asyncio
async def test_non_positive_monthly_limit_is_unlimited(admission):
    await admission.update_settings(PROJECT, {"monthly_call_limit": 0, "max_concurrent_calls": 100})
    for _ in range(5):
        assert (await admission.reserve(PROJECT, "audio")).allowed
    quota = await admission.get_quota(PROJECT)
    assert quota.calls_this_month == 5


@pytest.mark.asyncio
async def test_release_is_floored_at_zero(admission):
    await admission.reserve(PROJECT, "audio")
    await admission.release(PROJECT)
    await admission.release(PROJECT)
    quota = await admission.get_quota(PROJECT)
    assert quota.concurrent_calls_now == 0
    # Monthly count is not given back on release
    assert quota.calls_this_month == 1


@pytest.mark.asyncio
async def test_record_minutes_rounds_up(admission):
    await admission.get_quota(PROJECT)
    assert await admission.record_minutes(PROJECT, 61) == 2
    assert await admission.record_minutes(PROJECT, 60) == 1
    assert await admission.record_minutes(PROJECT, 0) == 0
    assert await admission.record_minutes(PROJECT, None) == 0
    quota = await admission.get_quota(PROJECT)
    assert quota.total_call_minutes == 3


@pytest.mark.asyncio
async def test_reset_monthly_usage_keeps_concurrency(admission):
    await admission.reserve(PROJECT, "audio")
    await admission.record_minutes(PROJECT, 300)
    before = (await admission.get_quota(PROJECT)).last_reset_date

    reset_at = await admission.reset_monthly_usage(PROJECT)

    quota = await admission.get_quota(PROJECT)
    assert quota.calls_this_month == 0
    assert quota.total_call_minutes == 0
    assert quota.concurrent_calls_now == 1
    assert quota.last_reset_date == reset_at
    assert reset_at >= before


@pytest.mark.asyncio
async def test_update_settings_rejects_unknown_keys(admission):
    with pytest.raises(ValidationError):
        await admission.update_settings(PROJECT, {"calls_this_month": 0})
    with pytest.raises(ValidationError):
        await admission.update_settings(PROJECT, {"bogus": True})
    with pytest.raises(ValidationError):
        await admission.update_settings(PROJECT, {"video_quality": "ultra"})
    with pytest.raises(ValidationError):
        await admission.update_settings(PROJECT, {"audio_quality": "hd"})
    with pytest.raises(ValidationError):
        await admission.update_settings(PROJECT, {"max_concurrent_calls": -1})


@pytest.mark.asyncio
async def test_update_settings_is_partial(admission):
    quota = await admission.update_settings(PROJECT, {"video_quality": "hd"})
    assert quota.video_quality == "hd"
    assert quota.audio_quality == "medium"
    assert quota.max_concurrent_calls == 2


@pytest.mark.asyncio
async def test_lowering_concurrency_only_blocks_new_calls(admission):
    await admission.reserve(PROJECT, "audio")
    await admission.reserve(PROJECT, "audio")
    await admission.update_settings(PROJECT, {"max_concurrent_calls": 1})

    quota = await admission.get_quota(PROJECT)
    assert quota.concurrent_calls_now == 2
    assert (await admission.reserve(PROJECT, "audio")).reason == "concurrent limit reached"

    await admission.release(PROJECT)
    await admission.release(PROJECT)
    assert (await admission.reserve(PROJECT, "audio")).allowed


@pytest.mark.asyncio
async def test_raising_concurrency_never_turns_allowed_into_denied(admission):
    quota = await admission.get_quota(PROJECT)
    quota.concurrent_calls_now = 1
    for limit in range(0, 5):
        quota.max_concurrent_calls = limit
        before = evaluate(quota, "audio")
        quota.max_concurrent_calls = limit + 1
        after = evaluate(quota, "audio")
        if before is None:
            assert after is None


@pytest.mark.asyncio
async def test_apply_plan_keeps_usage(admission):
    await admission.reserve(PROJECT, "audio")
    quota = await admission.apply_plan(PROJECT, "enterprise")
    assert quota.plan == "enterprise"
    assert quota.call_recording is True
    assert quota.monthly_call_limit == -1
    assert quota.concurrent_calls_now == 1
    assert quota.calls_this_month == 1


@pytest.mark.asyncio
async def test_get_usage_report(admission):
    await admission.reserve(PROJECT, "audio")
    usage = await admission.get_usage(PROJECT)
    assert usage["current_month"]["calls"] == 1
    assert usage["current_month"]["concurrent_now"] == 1
    assert usage["remaining"]["calls"] == 499
    assert usage["remaining"]["concurrent"] == 1
    assert usage["next_reset"] > usage["last_reset"]

    await admission.apply_plan(PROJECT, "enterprise")
    usage = await admission.get_usage(PROJECT)
    assert usage["remaining"]["calls"] == "unlimited"


def test_add_month_clamps_to_month_end():
    assert add_month(datetime(2026, 1, 31, 12)) == datetime(2026, 2, 28, 12)
    assert add_month(datetime(2026, 12, 15)) == datetime(2027, 1, 15)
    assert add_month(datetime(2024, 1, 30)) == datetime(2024, 2, 29)


@pytest.mark.asyncio
async def test_missing_project_id_is_validation_error(admission):
    with pytest.raises(ValidationError):
        await admission.check_admission("", "audio")
