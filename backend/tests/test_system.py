"""
System endpoint and CLI tests.

Verifies:
- /health reports database status and integration configuration
- Request ids are echoed and CORS is limited to known origins
- The orders CLI lists recent orders and hashes staff passwords
"""

import bcrypt


class TestHealth:
    def test_health_reports_checks(self, client, db_session, make_order):
        make_order()

        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["orders"] == 1
        # Test gateway has a webhook secret but no API key
        assert body["checks"]["payments"]["configured"] is False
        assert body["checks"]["email"]["configured"] is True


class TestResponseHeaders:
    def test_request_id_is_echoed(self, client, db_session):
        resp = client.get("/health", headers={"X-Request-Id": "req-123"})
        assert resp.headers["X-Request-Id"] == "req-123"

    def test_request_id_is_generated(self, client, db_session):
        resp = client.get("/health")
        assert len(resp.headers["X-Request-Id"]) == 32

    def test_cors_only_for_known_origins(self, client, db_session):
        allowed = client.get("/health", headers={"Origin": "http://localhost:5173"})
        other = client.get("/health", headers={"Origin": "https://evil.example"})

        assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert "Access-Control-Allow-Origin" not in other.headers


class TestOrdersCli:
    def test_list_shows_recent_orders(self, app, db_session, make_order):
        order = make_order(customer_name="Robin")
        make_order(customer_name="Sam")

        result = app.test_cli_runner().invoke(args=["orders", "list", "--limit", "5"])

        assert result.exit_code == 0
        assert order.id in result.output
        assert "2 order(s)" in result.output

    def test_list_filters_by_status(self, app, db_session, make_order):
        make_order()

        result = app.test_cli_runner().invoke(args=["orders", "list", "--status", "completed"])

        assert result.exit_code == 0
        assert "No orders found." in result.output

    def test_hash_password_output_verifies(self, app):
        result = app.test_cli_runner().invoke(args=["orders", "hash-password", "--password", "kitchen-pass"])

        assert result.exit_code == 0
        hashed = result.output.strip()
        assert bcrypt.checkpw(b"kitchen-pass", hashed.encode("utf-8"))
