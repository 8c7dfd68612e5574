from decimal import Decimal

from ledger.auth import create_access_token

GUEST = 7
OTHER_GUEST = 8


def auth_header(user_id: int) -> dict[str, str]:
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


def book(client, room_id: int, user_id: int = GUEST, **overrides):
    payload = {"room_id": room_id, "check_in": "2024-06-01", "check_out": "2024-06-04", "units": 1}
    payload.update(overrides)
    return client.post("/bookings", json=payload, headers=auth_header(user_id))


def test_health(bookings_client):
    response = bookings_client.get("/health")
    assert response.status_code == 200
    assert response.json()["service"] == "bookings"


def test_booking_flow(bookings_client, room_factory):
    room = room_factory(total_units=2)

    created = book(bookings_client, room.id, units=2)
    assert created.status_code == 201
    body = created.json()
    assert Decimal(str(body["total_price"])) == Decimal("600.00")
    assert body["nights"] == 3
    assert body["status"] == "requested"
    assert body["hotel_name"] == "Harbour View"
    booking_id = body["id"]

    confirmed = bookings_client.post(f"/bookings/{booking_id}/confirm", headers=auth_header(GUEST))
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"

    moved = bookings_client.patch(
        f"/bookings/{booking_id}",
        json={"check_in": "2024-06-02", "check_out": "2024-06-05"},
        headers=auth_header(GUEST),
    )
    assert moved.status_code == 200
    assert moved.json()["check_in"] == "2024-06-02"

    mine = bookings_client.get("/bookings/my", headers=auth_header(GUEST))
    assert mine.status_code == 200
    assert [entry["id"] for entry in mine.json()] == [booking_id]

    fetched = bookings_client.get(f"/bookings/{booking_id}", headers=auth_header(GUEST))
    assert fetched.status_code == 200

    cancelled = bookings_client.post(f"/bookings/{booking_id}/cancel", headers=auth_header(GUEST))
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    cancelled_again = bookings_client.post(f"/bookings/{booking_id}/cancel", headers=auth_header(GUEST))
    assert cancelled_again.status_code == 200


def test_requires_bearer_token(bookings_client, single_room):
    response = bookings_client.post(
        "/bookings",
        json={"room_id": single_room.id, "check_in": "2024-06-01", "check_out": "2024-06-04"},
    )
    assert response.status_code in (401, 403)

    invalid = bookings_client.get("/bookings/my", headers={"Authorization": "Bearer not-a-token"})
    assert invalid.status_code == 401


def test_conflict_maps_to_409(bookings_client, single_room):
    assert book(bookings_client, single_room.id).status_code == 201

    response = book(bookings_client, single_room.id, user_id=OTHER_GUEST, check_in="2024-06-03", check_out="2024-06-05")

    assert response.status_code == 409
    assert response.json()["error"] == "conflict"
    assert response.json()["available"] == 0
    assert response.json()["detail"] == "no rooms available for the selected dates"


def test_failures_map_to_status_codes(bookings_client, single_room):
    assert book(bookings_client, 999).status_code == 404

    past = book(bookings_client, single_room.id, check_in="2023-12-30", check_out="2024-01-02")
    assert past.status_code == 400
    assert past.json()["error"] == "invalid_date_range"

    too_many = book(bookings_client, single_room.id, units=0)
    assert too_many.status_code == 400
    assert too_many.json()["error"] == "invalid_request"

    created = book(bookings_client, single_room.id).json()
    foreign = bookings_client.post(f"/bookings/{created['id']}/cancel", headers=auth_header(OTHER_GUEST))
    assert foreign.status_code == 403
    assert foreign.json()["error"] == "forbidden"


def test_lock_timeout_maps_to_503(bookings_client, manager, single_room):
    manager.locks.timeout = 0.05
    with manager.locks.hold(single_room.id):
        response = book(bookings_client, single_room.id)

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["error"] == "transient_store_failure"


def test_availability_routes(bookings_client, hotel, single_room, family_room):
    book(bookings_client, single_room.id)

    room_view = bookings_client.get(
        f"/rooms/{single_room.id}/availability", params={"check_in": "2024-06-02", "check_out": "2024-06-03"}
    )
    assert room_view.status_code == 200
    assert room_view.json()["available_units"] == 0

    hotel_view = bookings_client.get(
        f"/hotels/{hotel.id}/availability", params={"check_in": "2024-06-02", "check_out": "2024-06-03"}
    )
    assert hotel_view.status_code == 200
    assert {entry["room_type"]: entry["available_units"] for entry in hotel_view.json()} == {"Single": 0, "Family": 3}

    missing = bookings_client.get("/hotels/999/availability", params={"check_in": "2024-06-02", "check_out": "2024-06-03"})
    assert missing.status_code == 404


def test_booking_stats_route(bookings_client, single_room, family_room):
    book(bookings_client, single_room.id)
    family = book(bookings_client, family_room.id).json()
    bookings_client.post(f"/bookings/{family['id']}/cancel", headers=auth_header(GUEST))

    response = bookings_client.get("/bookings/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["total_bookings"] == 2
    assert body["active_bookings"] == 1
    assert Decimal(str(body["total_revenue"])) == Decimal("300.00")
    assert body["total_rooms_booked"] == 1
    assert {entry["status"]: entry["count"] for entry in body["bookings_by_status"]} == {
        "requested": 1,
        "cancelled": 1,
    }
