"""Tests for security headers and request body limits."""


class TestSecurityHeaders:
    def test_headers_on_every_response(self, client):
        for path in ("/health", "/api/contact/health", "/api/does-not-exist"):
            resp = client.get(path)
            assert resp.headers["X-Content-Type-Options"] == "nosniff"
            assert resp.headers["X-Frame-Options"] == "DENY"
            assert resp.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
            assert "default-src 'none'" in resp.headers["Content-Security-Policy"]
            assert resp.headers["Cross-Origin-Resource-Policy"] == "cross-origin"

    def test_no_hsts_over_plain_http(self, client):
        resp = client.get("/health")
        assert "Strict-Transport-Security" not in resp.headers

    def test_hsts_behind_https_proxy(self, client):
        resp = client.get("/health", headers={"X-Forwarded-Proto": "https"})
        hsts = resp.headers["Strict-Transport-Security"]
        assert "max-age=31536000" in hsts
        assert "preload" in hsts

    def test_request_id_is_propagated(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"

        generated = client.get("/health").headers["X-Request-ID"]
        assert generated and generated != "abc-123"


class TestBodySizeLimit:
    def test_oversized_body_rejected(self, client):
        body = '{"message": "' + "x" * 11 * 1024 + '"}'
        resp = client.post(
            "/api/contact/submit",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert resp.status_code == 413
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
