from datetime import datetime, timedelta, timezone

import pytest

from factories import CUSTOMER_ADDRESS, create_customer, create_shop, utc
from repaircoin_api.models import Customer, DisputeStatusEnum, NoShowHistory, NoShowTierEnum
from repaircoin_api.services.no_show import (
    DisputeConflictError,
    DisputeNotAllowedError,
    DisputeService,
    DisputeValidationError,
    NoShowPolicyService,
    NoShowRecordNotFoundError,
    NoShowService,
)
from repaircoin_api.services.no_show.disputes import AUTO_RESOLVER, DISPUTE_REVERSED_MARKER

REASON = "I was at the shop but nobody was there"


async def _record_no_shows(session, count: int) -> list[NoShowHistory]:
    await create_shop(session)
    await create_customer(session)
    service = NoShowService(session)
    records = []
    for index in range(count):
        records.append(
            await service.record_no_show_history(
                customer_address=CUSTOMER_ADDRESS,
                order_id=f"order-{index}",
                shop_id="shop-1",
                scheduled_time=utc(2026, 10, 10 + index, 9),
                marked_by="0xshop",
            )
        )
    return records


async def _customer(session_factory) -> Customer:
    async with session_factory() as session:
        return await session.get(Customer, CUSTOMER_ADDRESS)


@pytest.mark.asyncio
async def test_first_offense_is_auto_approved(session_factory) -> None:
    async with session_factory() as session:
        await _record_no_shows(session, 1)
        submission = await DisputeService(session).submit_dispute("order-0", CUSTOMER_ADDRESS.upper(), REASON)

    assert submission.auto_approved is True
    record = submission.record
    assert record.disputed is True
    assert record.dispute_status == DisputeStatusEnum.APPROVED
    assert record.dispute_resolved_by == AUTO_RESOLVER
    assert DISPUTE_REVERSED_MARKER in record.notes

    customer = await _customer(session_factory)
    assert customer.no_show_count == 0
    assert customer.no_show_tier == NoShowTierEnum.NORMAL


@pytest.mark.asyncio
async def test_repeat_offense_waits_for_review(session_factory) -> None:
    async with session_factory() as session:
        await _record_no_shows(session, 2)
        submission = await DisputeService(session).submit_dispute("order-1", CUSTOMER_ADDRESS, REASON)

    assert submission.auto_approved is False
    assert submission.record.dispute_status == DisputeStatusEnum.PENDING
    customer = await _customer(session_factory)
    assert customer.no_show_count == 2


@pytest.mark.asyncio
async def test_submission_validation_and_conflicts(session) -> None:
    await _record_no_shows(session, 2)
    service = DisputeService(session)

    with pytest.raises(DisputeValidationError):
        await service.submit_dispute("order-0", CUSTOMER_ADDRESS, "too short")
    with pytest.raises(NoShowRecordNotFoundError):
        await service.submit_dispute("order-9", CUSTOMER_ADDRESS, REASON)

    await service.submit_dispute("order-0", CUSTOMER_ADDRESS, REASON)
    with pytest.raises(DisputeConflictError, match="status: pending"):
        await service.submit_dispute("order-0", CUSTOMER_ADDRESS, REASON)


@pytest.mark.asyncio
async def test_shop_policy_can_refuse_disputes(session) -> None:
    await _record_no_shows(session, 1)
    await NoShowPolicyService(session).update_shop_policy("shop-1", {"allowDisputes": False})

    with pytest.raises(DisputeNotAllowedError):
        await DisputeService(session).submit_dispute("order-0", CUSTOMER_ADDRESS, REASON)


@pytest.mark.asyncio
async def test_dispute_window_expires(session) -> None:
    (record,) = await _record_no_shows(session, 1)
    record.marked_no_show_at = datetime.now(timezone.utc) - timedelta(days=8)
    await session.commit()

    with pytest.raises(DisputeNotAllowedError, match="within 7 days"):
        await DisputeService(session).submit_dispute("order-0", CUSTOMER_ADDRESS, REASON)


@pytest.mark.asyncio
async def test_shop_approval_reverses_penalty(session_factory) -> None:
    async with session_factory() as session:
        records = await _record_no_shows(session, 2)
        service = DisputeService(session)
        await service.submit_dispute("order-1", CUSTOMER_ADDRESS, REASON)
        approved = await service.approve_dispute("shop-1", records[1].id, resolver="0xOWNER", notes="  ")

        with pytest.raises(DisputeConflictError, match="already approved"):
            await service.approve_dispute("shop-1", records[1].id, resolver="0xowner")

    assert approved.dispute_status == DisputeStatusEnum.APPROVED
    assert approved.dispute_resolved_by == "0xowner"
    assert approved.dispute_resolution_notes is None
    customer = await _customer(session_factory)
    assert customer.no_show_count == 1
    assert customer.no_show_tier == NoShowTierEnum.WARNING


@pytest.mark.asyncio
async def test_shop_rejection_requires_notes(session_factory) -> None:
    async with session_factory() as session:
        records = await _record_no_shows(session, 2)
        service = DisputeService(session)
        await service.submit_dispute("order-1", CUSTOMER_ADDRESS, REASON)

        with pytest.raises(DisputeValidationError):
            await service.reject_dispute("shop-1", records[1].id, resolver="0xowner", notes="no")
        with pytest.raises(NoShowRecordNotFoundError):
            await service.reject_dispute("shop-2", records[1].id, resolver="0xowner", notes="Camera shows no visit")

        rejected = await service.reject_dispute(
            "shop-1", records[1].id, resolver="0xowner", notes="Camera shows no visit"
        )

    assert rejected.dispute_status == DisputeStatusEnum.REJECTED
    customer = await _customer(session_factory)
    assert customer.no_show_count == 2
    assert customer.no_show_tier == NoShowTierEnum.CAUTION


@pytest.mark.asyncio
async def test_admin_can_overturn_rejection(session_factory) -> None:
    async with session_factory() as session:
        records = await _record_no_shows(session, 2)
        service = DisputeService(session)
        await service.submit_dispute("order-1", CUSTOMER_ADDRESS, REASON)
        await service.reject_dispute("shop-1", records[1].id, resolver="0xowner", notes="Camera shows no visit")

        with pytest.raises(DisputeValidationError):
            await service.admin_resolve_dispute(records[0].id, resolution="approved", resolver="ops", notes="x" * 12)
        with pytest.raises(DisputeValidationError):
            await service.admin_resolve_dispute(records[1].id, resolution="pending", resolver="ops", notes="x" * 12)

        resolved = await service.admin_resolve_dispute(
            records[1].id,
            resolution="approved",
            resolver="Ops",
            notes="Shop calendar was double booked",
        )

    assert resolved.dispute_status == DisputeStatusEnum.APPROVED
    assert resolved.dispute_resolved_by == "admin:ops"
    customer = await _customer(session_factory)
    assert customer.no_show_count == 1
    assert customer.no_show_tier == NoShowTierEnum.WARNING


@pytest.mark.asyncio
async def test_listing_reports_status_counts(session) -> None:
    records = await _record_no_shows(session, 3)
    service = DisputeService(session)
    await service.submit_dispute("order-1", CUSTOMER_ADDRESS, REASON)
    await service.submit_dispute("order-2", CUSTOMER_ADDRESS, REASON)
    await service.reject_dispute("shop-1", records[2].id, resolver="0xowner", notes="Camera shows no visit")

    listing = await service.list_shop_disputes("shop-1")
    pending = await service.list_disputes(status=DisputeStatusEnum.PENDING)

    assert listing.stats == {"total": 2, "pending": 1, "approved": 0, "rejected": 1}
    assert len(listing.disputes) == 2
    assert [record.order_id for record in pending.disputes] == ["order-1"]
    assert pending.stats["total"] == 2


@pytest.mark.asyncio
async def test_approval_out_of_suspension_lifts_the_booking_block(session_factory) -> None:
    async with session_factory() as session:
        records = await _record_no_shows(session, 5)
        service = DisputeService(session)
        await service.submit_dispute("order-4", CUSTOMER_ADDRESS, REASON)
        await service.approve_dispute("shop-1", records[4].id, resolver="0xowner")

    customer = await _customer(session_factory)
    assert customer.no_show_count == 4
    assert customer.no_show_tier == NoShowTierEnum.DEPOSIT_REQUIRED
    assert customer.deposit_required is True
    assert customer.booking_suspended_until is None

    async with session_factory() as session:
        status = await NoShowService(session).get_customer_status(CUSTOMER_ADDRESS, "shop-1")
    assert status.can_book is True
    assert status.requires_deposit is True


@pytest.mark.asyncio
async def test_approval_out_of_deposit_tier_clears_the_deposit(session_factory) -> None:
    async with session_factory() as session:
        records = await _record_no_shows(session, 3)
        customer = await session.get(Customer, CUSTOMER_ADDRESS)
        customer.successful_appointments_since_tier3 = 2
        await session.commit()

        service = DisputeService(session)
        await service.submit_dispute("order-2", CUSTOMER_ADDRESS, REASON)
        await service.approve_dispute("shop-1", records[2].id, resolver="0xowner")

    customer = await _customer(session_factory)
    assert customer.no_show_count == 2
    assert customer.no_show_tier == NoShowTierEnum.CAUTION
    assert customer.deposit_required is False
    assert customer.successful_appointments_since_tier3 == 0

    async with session_factory() as session:
        status = await NoShowService(session).get_customer_status(CUSTOMER_ADDRESS, "shop-1")
    assert status.requires_deposit is False
    assert status.can_book is True
