"""Tests for the HTTP surface over the booking core."""


class TestHealthAndCatalog:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["ok"] is True

    def test_list_courts_hides_inactive(self, client, catalog):
        resp = client.get("/api/courts")
        assert resp.status_code == 200
        assert [c["name"] for c in resp.json()] == ["Court 1", "Court 2"]

    def test_list_courts_by_type(self, client, catalog):
        resp = client.get("/api/courts", params={"court_type": "indoor"})
        assert [c["name"] for c in resp.json()] == ["Court 1"]

    def test_list_equipment(self, client, catalog):
        data = client.get("/api/equipment").json()
        assert {e["name"]: e["total_quantity"] for e in data} == {"Pro Racket": 4, "Court Shoes": 1}


class TestPricingEndpoint:
    def test_simulate_peak_weekday(self, client, catalog):
        resp = client.post(
            "/api/pricing/simulate",
            json={
                "court_id": catalog.indoor.id,
                "start_time": "2026-10-19T18:30:00Z",
                "end_time": "2026-10-19T19:30:00Z",
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["court_price"] == 27.0
        assert data["total_price"] == 27.0
        assert data["duration_hours"] == 1.0

    def test_simulate_invalid_interval(self, client, catalog):
        resp = client.post(
            "/api/pricing/simulate",
            json={
                "court_id": catalog.indoor.id,
                "start_time": "2026-10-19T18:30:00Z",
                "end_time": "2026-10-19T18:30:00Z",
            },
        )
        assert resp.status_code == 400

    def test_malformed_timestamp(self, client, catalog):
        resp = client.post(
            "/api/pricing/simulate",
            json={"court_id": catalog.indoor.id, "start_time": "tomorrow", "end_time": "later"},
        )
        assert resp.status_code == 400
        assert "start_time" in resp.json()["detail"]


class TestBookingEndpoints:
    def test_create_and_list(self, client, booking_payload, catalog):
        resp = client.post(
            "/api/bookings",
            json=booking_payload(equipment_items=[{"equipment_id": catalog.racket.id, "quantity": 2}]),
        )
        assert resp.status_code == 201
        booking = resp.json()["booking"]
        assert booking["booking_reference"] == f"BK{booking['id']:06d}"
        assert booking["total_price"] == 37.0

        listed = client.get("/api/bookings/user/u-1").json()
        assert len(listed) == 1
        assert listed[0]["status"] == "confirmed"
        assert listed[0]["payment_status"] == "pending"
        assert listed[0]["court"]["name"] == "Court 1"
        assert listed[0]["equipment_items"][0]["quantity"] == 2

    def test_missing_fields(self, client, booking_payload):
        resp = client.post("/api/bookings", json=booking_payload(user_email=None))
        assert resp.status_code == 400
        assert "user_email" in resp.json()["detail"]

    def test_conflict(self, client, booking_payload):
        assert client.post("/api/bookings", json=booking_payload()).status_code == 201
        resp = client.post("/api/bookings", json=booking_payload(user_id="u-2"))
        assert resp.status_code == 409
        assert "Court 1" in resp.json()["detail"]

    def test_unknown_equipment(self, client, booking_payload):
        resp = client.post(
            "/api/bookings",
            json=booking_payload(equipment_items=[{"equipment_id": 9999, "quantity": 1}]),
        )
        assert resp.status_code == 404

    def test_cancel(self, client, booking_payload):
        booking_id = client.post("/api/bookings", json=booking_payload()).json()["booking"]["id"]
        resp = client.post(f"/api/bookings/{booking_id}/cancel")
        assert resp.status_code == 200
        assert resp.json()["booking"]["status"] == "cancelled"
        assert resp.json()["booking"]["payment_status"] == "refunded"

        again = client.post(f"/api/bookings/{booking_id}/cancel")
        assert again.status_code == 409

    def test_cancel_unknown(self, client, catalog):
        assert client.post("/api/bookings/9999/cancel").status_code == 404

    def test_complete(self, client, booking_payload):
        booking_id = client.post("/api/bookings", json=booking_payload()).json()["booking"]["id"]
        resp = client.post(f"/api/bookings/{booking_id}/complete")
        assert resp.status_code == 200
        assert resp.json()["booking"]["status"] == "completed"


class TestAvailabilityEndpoints:
    def test_check(self, client, booking_payload, catalog):
        slot = {
            "court_id": catalog.indoor.id,
            "start_time": "2026-10-19T18:30:00Z",
            "end_time": "2026-10-19T19:30:00Z",
        }
        assert client.post("/api/availability/check", json=slot).json() == {
            "available": True,
            "reason": None,
        }
        client.post("/api/bookings", json=booking_payload())
        data = client.post("/api/availability/check", json=slot).json()
        assert data["available"] is False
        assert data["reason"]

    def test_slots(self, client, catalog):
        resp = client.get("/api/availability/slots/2026-10-19")
        assert resp.status_code == 200
        data = resp.json()
        assert data["date"] == "2026-10-19"
        assert len(data["court_availability"]) == 2
        assert data["court_availability"][0]["slots"][0]["formatted_time"] == "09:00 - 10:00"

    def test_slots_bad_date(self, client, catalog):
        assert client.get("/api/availability/slots/19-10-2026").status_code == 400

    def test_equipment(self, client, booking_payload, catalog):
        client.post(
            "/api/bookings",
            json=booking_payload(equipment_items=[{"equipment_id": catalog.shoes.id}]),
        )
        resp = client.get(
            "/api/availability/equipment",
            params={"start": "2026-10-19T19:00:00Z", "end": "2026-10-19T20:00:00Z"},
        )
        assert resp.status_code == 200
        shoes = next(e for e in resp.json()["equipment"] if e["id"] == catalog.shoes.id)
        assert shoes["booked_quantity"] == 1
        assert shoes["available_quantity"] == 0


class TestWaitlistEndpoints:
    def _waitlist_payload(self, catalog, user_id):
        return {
            "user_id": user_id,
            "user_name": user_id,
            "user_email": f"{user_id}@example.com",
            "court_id": catalog.indoor.id,
            "start_time": "2026-10-19T18:30:00Z",
            "end_time": "2026-10-19T19:30:00Z",
        }

    def test_join_free_slot_rejected(self, client, catalog):
        resp = client.post("/api/waitlist", json=self._waitlist_payload(catalog, "ana"))
        assert resp.status_code == 400

    def test_join_and_leave(self, client, booking_payload, catalog):
        client.post("/api/bookings", json=booking_payload())
        resp = client.post("/api/waitlist", json=self._waitlist_payload(catalog, "ana"))
        assert resp.status_code == 201
        ticket = resp.json()["waitlist"]
        assert ticket["position"] == 1

        duplicate = client.post("/api/waitlist", json=self._waitlist_payload(catalog, "ana"))
        assert duplicate.status_code == 409

        left = client.post(f"/api/waitlist/{ticket['id']}/leave")
        assert left.status_code == 200
        assert left.json()["waitlist"]["status"] == "cancelled"


class TestAdminEndpoints:
    def test_create_and_update_court(self, client):
        resp = client.post(
            "/api/admin/courts", json={"name": "Center", "type": "indoor", "base_price": 22.5}
        )
        assert resp.status_code == 201
        court_id = resp.json()["id"]

        resp = client.put(f"/api/admin/courts/{court_id}", json={"is_active": False})
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        assert resp.json()["base_price"] == 22.5

    def test_update_unknown_court(self, client):
        assert client.put("/api/admin/courts/9999", json={"name": "x"}).status_code == 404

    def test_equipment_total_shifts_counter(self, client, booking_payload, catalog):
        client.post(
            "/api/bookings",
            json=booking_payload(equipment_items=[{"equipment_id": catalog.racket.id, "quantity": 3}]),
        )
        resp = client.put(f"/api/admin/equipment/{catalog.racket.id}", json={"total_quantity": 6})
        assert resp.status_code == 200
        assert resp.json()["total_quantity"] == 6
        assert resp.json()["available_quantity"] == 3

    def test_coach_window(self, client):
        coach = client.post("/api/admin/coaches", json={"name": "Sam", "hourly_rate": 25}).json()
        resp = client.post(
            f"/api/admin/coaches/{coach['id']}/availability",
            json={"weekday": 0, "start_hm": "09:00", "end_hm": "12:30"},
        )
        assert resp.status_code == 201
        assert resp.json()["end_time"] == "12:30"

        day = client.get("/api/availability/coaches/2026-10-19").json()
        sam = next(c for c in day["coaches"] if c["name"] == "Sam")
        assert sam["is_available_today"] is True
        assert sam["availability"] == [{"start_time": "09:00", "end_time": "12:30"}]

    def test_coach_window_bad_time(self, client):
        coach = client.post("/api/admin/coaches", json={"name": "Sam"}).json()
        resp = client.post(
            f"/api/admin/coaches/{coach['id']}/availability",
            json={"weekday": 0, "start_hm": "nine", "end_hm": "12:30"},
        )
        assert resp.status_code == 400

    def test_admin_listings_include_inactive(self, client, catalog):
        courts = client.get("/api/admin/courts")
        assert courts.status_code == 200
        assert [c["name"] for c in courts.json()] == ["Court 1", "Court 2", "Court 3"]
        assert courts.json()[2]["is_active"] is False

        equipment = client.get("/api/admin/equipment").json()
        assert {e["name"] for e in equipment} == {"Pro Racket", "Court Shoes"}

    def test_admin_coaches_carry_windows(self, client, catalog):
        client.post(
            f"/api/admin/coaches/{catalog.coach.id}/availability",
            json={"weekday": 2, "start_hm": "17:00", "end_hm": "20:00"},
        )
        client.post(
            f"/api/admin/coaches/{catalog.coach.id}/availability",
            json={"weekday": 0, "start_hm": "09:00", "end_hm": "11:00"},
        )
        coaches = client.get("/api/admin/coaches").json()
        alex = next(c for c in coaches if c["id"] == catalog.coach.id)
        assert [(w["weekday"], w["start_time"]) for w in alex["availability"]] == [
            (0, "09:00"),
            (2, "17:00"),
        ]
