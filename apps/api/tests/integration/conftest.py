import pytest

PICKUP = {"address": "1 Market St", "latitude": 45.5017, "longitude": -73.5673}
DROPOFF = {"address": "99 Rue Ste-Catherine", "latitude": 45.5088, "longitude": -73.5540}


@pytest.fixture
def auth_headers(people, headers_for):
    return {name: headers_for(profile) for name, profile in people.items()}


@pytest.fixture
def delivery_service(client, auth_headers):
    response = client.post(
        "/api/v1/services",
        json={"title": "Grocery run", "price": 40, "requires_delivery": True},
        headers=auth_headers["merchant"],
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def book(client, auth_headers):
    def _book(service: dict, who: str = "client", headers: dict | None = None) -> dict:
        payload = {"service_id": service["id"]}
        if service["requires_delivery"]:
            payload["delivery"] = {"pickup_location": PICKUP, "delivery_location": DROPOFF}
        response = client.post(
            "/api/v1/service-requests",
            json=payload,
            headers={**auth_headers[who], **(headers or {})},
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _book


@pytest.fixture
def delivery_for(client, auth_headers):
    def _find(service_request: dict) -> dict:
        response = client.get("/api/v1/deliveries", headers=auth_headers["admin"])
        assert response.status_code == 200
        [delivery] = [
            item
            for item in response.json()["items"]
            if item["service_request_id"] == service_request["id"]
        ]
        return delivery

    return _find


@pytest.fixture
def online(client, auth_headers):
    def _online(who: str = "driver") -> None:
        response = client.put(
            "/api/v1/drivers/me/availability",
            json={"available": True, "latitude": 45.5, "longitude": -73.57},
            headers=auth_headers[who],
        )
        assert response.status_code == 200

    return _online
