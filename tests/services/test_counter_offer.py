import pytest

from gnarhub import crud
from gnarhub.core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from gnarhub.schemas.notification import NotificationKind
from gnarhub.schemas.session import SessionStatus
from gnarhub.schemas.session_request import CounterOfferStatus, RequestStatus
from tests.utils.booking import FILMER_ID, RIDER_A, RIDER_B, create_open_session, create_pending_request

COUNTER = {"start_time": "11:00", "end_time": "13:00", "amount": 75, "message": "Park closes at 10"}


async def _countered(store, negotiation, **session_overrides):
    session = await create_open_session(store, **session_overrides)
    request = await create_pending_request(negotiation, session)
    countered = await negotiation.create_counter_offer(
        request_id=request.id, actor_id=FILMER_ID, obj_in=COUNTER
    )
    return session, countered


@pytest.mark.asyncio
class TestCreateCounterOffer:

    async def test_counter_offer_moves_request(self, store, negotiation, notifier, transport):
        session, countered = await _countered(store, negotiation)

        assert countered.status == RequestStatus.COUNTER_OFFERED
        offer = countered.counter_offer
        assert offer.id.startswith("cof_")
        assert (offer.start_time, offer.end_time, offer.amount) == ("11:00", "13:00", 75)
        assert offer.status == CounterOfferStatus.PENDING
        assert await crud.session_request.get(store, countered.id) == countered
        # The session itself is untouched until the rider answers
        assert (await crud.session.get(store, session.id)).start_time == "09:00"

        await notifier.drain()
        events = transport.of_kind(NotificationKind.COUNTER_OFFER)
        assert len(events) == 1
        assert events[0].payload["recipientId"] == RIDER_A
        assert events[0].payload["newTime"] == "11:00 - 13:00"
        assert events[0].payload["newRate"] == 75

    async def test_only_filmer_can_counter(self, store, negotiation):
        session = await create_open_session(store)
        request = await create_pending_request(negotiation, session)

        with pytest.raises(PermissionDeniedError):
            await negotiation.create_counter_offer(request_id=request.id, actor_id=RIDER_A, obj_in=COUNTER)

    async def test_one_round_only(self, store, negotiation):
        _, countered = await _countered(store, negotiation)

        with pytest.raises(ConflictError):
            await negotiation.create_counter_offer(
                request_id=countered.id, actor_id=FILMER_ID, obj_in=COUNTER
            )

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"end_time": "10:00"}, "end_time"),
            ({"amount": 600}, "amount"),
            ({"start_time": "noon"}, "start_time"),
        ],
    )
    async def test_invalid_terms(self, store, negotiation, overrides, field):
        session = await create_open_session(store)
        request = await create_pending_request(negotiation, session)

        with pytest.raises(ValidationError) as exc_info:
            await negotiation.create_counter_offer(
                request_id=request.id, actor_id=FILMER_ID, obj_in={**COUNTER, **overrides}
            )

        assert exc_info.value.field == field
        assert (await crud.session_request.get(store, request.id)).status == RequestStatus.PENDING

    async def test_counter_on_booked_session_conflicts(self, store, negotiation):
        session = await create_open_session(store)
        request_a = await create_pending_request(negotiation, session, RIDER_A)
        request_b = await create_pending_request(negotiation, session, RIDER_B)
        await negotiation.accept_request_atomic(request_id=request_a.id, session_id=session.id, rider_id=RIDER_A)

        with pytest.raises(ConflictError):
            await negotiation.create_counter_offer(request_id=request_b.id, actor_id=FILMER_ID, obj_in=COUNTER)


@pytest.mark.asyncio
class TestAnswerCounterOffer:

    async def test_accept_books_negotiated_terms(self, store, negotiation, notifier, transport):
        session, countered = await _countered(store, negotiation, rate=60)

        accepted = await negotiation.accept_counter_offer(request_id=countered.id, actor_id=RIDER_A)

        assert accepted.status == RequestStatus.ACCEPTED
        assert accepted.counter_offer.status == CounterOfferStatus.ACCEPTED
        assert accepted.amount == 75
        assert await crud.session_request.get(store, countered.id) == accepted

        booked = await crud.session.get(store, session.id)
        assert booked.status == SessionStatus.BOOKED
        assert booked.rider_id == RIDER_A
        assert booked.request_id == countered.id
        assert (booked.start_time, booked.end_time, booked.rate) == ("11:00", "13:00", 75)

        await notifier.drain()
        events = transport.of_kind(NotificationKind.COUNTER_OFFER_ACCEPTED)
        assert [e.payload["recipientId"] for e in events] == [FILMER_ID]

    async def test_accept_declines_competing_requests(self, store, negotiation):
        session, countered = await _countered(store, negotiation)
        other = await create_pending_request(negotiation, session, RIDER_B)

        await negotiation.accept_counter_offer(request_id=countered.id, actor_id=RIDER_A)

        assert (await crud.session_request.get(store, other.id)).status == RequestStatus.DECLINED

    async def test_accept_after_session_taken_conflicts(self, store, negotiation):
        session, countered = await _countered(store, negotiation)
        other = await create_pending_request(negotiation, session, RIDER_B)
        await negotiation.accept_request(request_id=other.id, actor_id=FILMER_ID)

        with pytest.raises(ConflictError):
            await negotiation.accept_counter_offer(request_id=countered.id, actor_id=RIDER_A)

        swept = await crud.session_request.get(store, countered.id)
        assert swept.status == RequestStatus.DECLINED
        assert swept.counter_offer.status == CounterOfferStatus.EXPIRED

    async def test_only_rider_can_answer(self, store, negotiation):
        _, countered = await _countered(store, negotiation)

        with pytest.raises(PermissionDeniedError):
            await negotiation.accept_counter_offer(request_id=countered.id, actor_id=FILMER_ID)
        with pytest.raises(PermissionDeniedError):
            await negotiation.decline_counter_offer(request_id=countered.id, actor_id=RIDER_B)

    async def test_decline_ends_request(self, store, negotiation, notifier, transport):
        session, countered = await _countered(store, negotiation)

        declined = await negotiation.decline_counter_offer(request_id=countered.id, actor_id=RIDER_A)

        assert declined.status == RequestStatus.DECLINED
        assert declined.counter_offer.status == CounterOfferStatus.DECLINED
        assert (await crud.session.get(store, session.id)).status == SessionStatus.OPEN
        with pytest.raises(ConflictError):
            await negotiation.accept_counter_offer(request_id=countered.id, actor_id=RIDER_A)

    async def test_accept_without_offer_conflicts(self, store, negotiation):
        session = await create_open_session(store)
        request = await create_pending_request(negotiation, session)

        with pytest.raises(ConflictError):
            await negotiation.accept_counter_offer(request_id=request.id, actor_id=RIDER_A)

    async def test_cancel_expires_pending_offer(self, store, negotiation):
        _, countered = await _countered(store, negotiation)

        cancelled = await negotiation.cancel_request(request_id=countered.id, actor_id=RIDER_A)

        assert cancelled.status == RequestStatus.CANCELLED
        assert cancelled.counter_offer.status == CounterOfferStatus.EXPIRED
