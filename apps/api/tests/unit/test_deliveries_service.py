import pytest
from fastapi import HTTPException
from sqlalchemy import select, update

from app.models.delivery import Delivery, DeliveryStatus
from app.models.delivery_event import DeliveryEvent
from app.models.service_request import ServiceRequest, ServiceRequestStatus
from app.services.deliveries_service import (
    ACTION_ACCEPT,
    ACTION_CANCEL,
    accept_delivery,
    advance_status,
    available_actions,
    cancel_delivery,
    get_delivery,
    list_deliveries,
    list_delivery_events,
)
from app.services.drivers_service import update_availability


@pytest.fixture
def open_delivery(db_session, people, make_service, make_request):
    service = make_service(people["merchant"])
    service_request = make_request(people["client"], service)
    return db_session.scalar(
        select(Delivery).where(Delivery.service_request_id == service_request.id)
    )


def _statuses(db_session, delivery_id):
    return [
        event.type
        for event in db_session.scalars(
            select(DeliveryEvent)
            .where(DeliveryEvent.delivery_id == delivery_id)
            .order_by(DeliveryEvent.created_at)
        )
    ]


def test_accepting_an_open_delivery_assigns_the_driver(db_session, people, open_delivery, go_online):
    driver = people["driver"]
    go_online(driver)

    delivery = accept_delivery(db_session, open_delivery.id, driver.id)

    assert delivery.status == DeliveryStatus.ASSIGNED
    assert delivery.driver_id == driver.id
    assert _statuses(db_session, delivery.id) == [DeliveryStatus.PENDING, DeliveryStatus.ASSIGNED]


def test_driver_must_be_available_to_accept(db_session, people, open_delivery):
    with pytest.raises(HTTPException) as exc:
        accept_delivery(db_session, open_delivery.id, people["driver"].id)

    assert exc.value.status_code == 409
    assert exc.value.detail == "Driver must be available to accept deliveries"


def test_second_driver_cannot_claim_an_assigned_delivery(
    db_session, people, open_delivery, go_online
):
    go_online(people["driver"])
    go_online(people["other_driver"])
    accept_delivery(db_session, open_delivery.id, people["driver"].id)

    with pytest.raises(HTTPException) as exc:
        accept_delivery(db_session, open_delivery.id, people["other_driver"].id)

    assert exc.value.status_code == 409
    db_session.refresh(open_delivery)
    assert open_delivery.driver_id == people["driver"].id


def test_losing_a_concurrent_claim_returns_conflict(db_session, people, open_delivery, go_online):
    go_online(people["other_driver"])
    # Another driver wins between our read and our write; the loaded row stays stale
    db_session.execute(
        update(Delivery)
        .where(Delivery.id == open_delivery.id)
        .values(driver_id=people["driver"].id, status=DeliveryStatus.ASSIGNED)
        .execution_options(synchronize_session=False)
    )
    db_session.commit()
    assert open_delivery.driver_id is None

    with pytest.raises(HTTPException) as exc:
        accept_delivery(db_session, open_delivery.id, people["other_driver"].id)

    assert exc.value.status_code == 409
    assert exc.value.detail == "Delivery was changed by another user, reload and retry"
    fresh = db_session.get(Delivery, open_delivery.id)
    assert fresh.driver_id == people["driver"].id


def test_advance_moves_exactly_one_step_and_rejects_skips(
    db_session, people, open_delivery, go_online
):
    driver = people["driver"]
    go_online(driver)
    accept_delivery(db_session, open_delivery.id, driver.id)

    picked_up = advance_status(db_session, open_delivery.id, DeliveryStatus.PICKED_UP, driver.id)
    assert picked_up.status == DeliveryStatus.PICKED_UP

    with pytest.raises(HTTPException) as exc:
        advance_status(db_session, open_delivery.id, DeliveryStatus.DELIVERED, driver.id)

    assert exc.value.status_code == 409
    assert exc.value.detail == "Invalid state transition: picked_up -> delivered"
    assert db_session.get(Delivery, open_delivery.id).status == DeliveryStatus.PICKED_UP


def test_delivered_stamps_completion_time(db_session, people, open_delivery, go_online):
    driver = people["driver"]
    go_online(driver)
    accept_delivery(db_session, open_delivery.id, driver.id)
    for step in (DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT):
        advance_status(db_session, open_delivery.id, step, driver.id)

    assert open_delivery.actual_delivery_time is None
    delivered = advance_status(
        db_session, open_delivery.id, DeliveryStatus.DELIVERED, driver.id, driver_notes="Left at door"
    )

    assert delivered.status == DeliveryStatus.DELIVERED
    assert delivered.actual_delivery_time is not None
    assert delivered.driver_notes == "Left at door"


def test_only_the_assigned_driver_can_advance(db_session, people, open_delivery, go_online):
    go_online(people["driver"])
    accept_delivery(db_session, open_delivery.id, people["driver"].id)

    with pytest.raises(HTTPException) as exc:
        advance_status(
            db_session, open_delivery.id, DeliveryStatus.PICKED_UP, people["other_driver"].id
        )
    assert exc.value.status_code == 403


def test_advancing_an_unassigned_delivery_is_forbidden(db_session, people, open_delivery):
    with pytest.raises(HTTPException) as exc:
        advance_status(db_session, open_delivery.id, DeliveryStatus.ASSIGNED, people["driver"].id)
    assert exc.value.status_code == 403


def test_available_actions_follow_the_caller(
    db_session, people, open_delivery, go_online, auth_for
):
    request_row = db_session.get(ServiceRequest, open_delivery.service_request_id)

    driver_auth = auth_for(people["driver"])
    assert available_actions(driver_auth, open_delivery, request_row, True) == [ACTION_ACCEPT]
    assert available_actions(driver_auth, open_delivery, request_row, False) == []
    assert available_actions(auth_for(people["client"]), open_delivery, request_row, False) == [
        ACTION_CANCEL
    ]

    go_online(people["driver"])
    accept_delivery(db_session, open_delivery.id, people["driver"].id)

    assert available_actions(driver_auth, open_delivery, request_row, True) == [
        "advance:picked_up",
        ACTION_CANCEL,
    ]
    other_driver_actions = available_actions(
        auth_for(people["other_driver"]), open_delivery, request_row, True
    )
    assert ACTION_ACCEPT not in other_driver_actions


def test_finished_deliveries_expose_no_actions(db_session, people, open_delivery, auth_for):
    cancel_delivery(db_session, auth_for(people["client"]), open_delivery.id, "changed my mind")

    view = get_delivery(db_session, auth_for(people["admin"]), open_delivery.id)
    assert view["status"] == DeliveryStatus.CANCELLED
    assert view["available_actions"] == []


def test_cancel_records_reason_and_blocks_further_progress(
    db_session, people, open_delivery, go_online, auth_for
):
    go_online(people["driver"])
    accept_delivery(db_session, open_delivery.id, people["driver"].id)

    cancel_delivery(db_session, auth_for(people["merchant"]), open_delivery.id, "Out of stock")

    events = list_delivery_events(db_session, auth_for(people["client"]), open_delivery.id)
    assert events[-1].type == DeliveryStatus.CANCELLED
    assert events[-1].payload["reason"] == "Out of stock"
    assert events[-1].payload["from_status"] == "assigned"

    with pytest.raises(HTTPException) as exc:
        advance_status(db_session, open_delivery.id, DeliveryStatus.PICKED_UP, people["driver"].id)
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        cancel_delivery(db_session, auth_for(people["admin"]), open_delivery.id)
    assert exc.value.status_code == 409


def test_unrelated_users_cannot_cancel(db_session, people, open_delivery, auth_for):
    with pytest.raises(HTTPException) as exc:
        cancel_delivery(db_session, auth_for(people["other_client"]), open_delivery.id)
    assert exc.value.status_code == 403


def test_driver_list_shows_own_and_open_deliveries_only(
    db_session, people, make_service, make_request, go_online, auth_for
):
    service = make_service(people["merchant"])
    first = make_request(people["client"], service)
    second = make_request(people["client"], service)
    third = make_request(people["other_client"], service)
    ids = {
        sr.id: db_session.scalar(select(Delivery.id).where(Delivery.service_request_id == sr.id))
        for sr in (first, second, third)
    }

    go_online(people["driver"])
    go_online(people["other_driver"])
    accept_delivery(db_session, ids[first.id], people["driver"].id)
    accept_delivery(db_session, ids[second.id], people["other_driver"].id)

    visible = {item["id"] for item in list_deliveries(db_session, auth_for(people["driver"]))}
    assert visible == {ids[first.id], ids[third.id]}

    client_visible = {
        item["id"] for item in list_deliveries(db_session, auth_for(people["other_client"]))
    }
    assert client_visible == {ids[third.id]}

    assigned_only = list_deliveries(
        db_session, auth_for(people["merchant"]), DeliveryStatus.ASSIGNED
    )
    assert {item["id"] for item in assigned_only} == {ids[first.id], ids[second.id]}


def test_drivers_cannot_view_deliveries_claimed_by_someone_else(
    db_session, people, open_delivery, go_online, auth_for
):
    go_online(people["driver"])
    accept_delivery(db_session, open_delivery.id, people["driver"].id)

    with pytest.raises(HTTPException) as exc:
        get_delivery(db_session, auth_for(people["other_driver"]), open_delivery.id)
    assert exc.value.status_code == 403


def test_going_offline_does_not_release_accepted_delivery(
    db_session, people, open_delivery, go_online
):
    driver = people["driver"]
    go_online(driver)
    accept_delivery(db_session, open_delivery.id, driver.id)
    update_availability(db_session, driver.id, False)

    advanced = advance_status(db_session, open_delivery.id, DeliveryStatus.PICKED_UP, driver.id)
    assert advanced.status == DeliveryStatus.PICKED_UP
    assert advanced.driver_id == driver.id


def test_request_status_is_independent_of_delivery(db_session, people, open_delivery, auth_for):
    from app.services.requests_service import get_service_request

    request_row = get_service_request(
        db_session, auth_for(people["client"]), open_delivery.service_request_id
    )
    assert request_row.status == ServiceRequestStatus.PENDING
