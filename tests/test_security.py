# tests/test_security.py
"""Tests for lcs/transport/security.py: bearer auth, headers, error sanitization."""
from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

ADMIN_TOKEN = "aB3cD5eF7gH9iJ1kL3mN5oP7qR9sT1uX"


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# ============================================================================
# Admin token
# ============================================================================

class TestRequireAdminToken:
    @patch("lcs.transport.security.settings")
    def test_valid_token(self, mock_settings):
        mock_settings.admin_token = ADMIN_TOKEN
        from lcs.transport.security import require_admin_token
        assert require_admin_token(_bearer(ADMIN_TOKEN)) is None

    @patch("lcs.transport.security.settings")
    def test_missing_header(self, mock_settings):
        mock_settings.admin_token = ADMIN_TOKEN
        from lcs.transport.security import require_admin_token
        with pytest.raises(HTTPException) as exc_info:
            require_admin_token(None)
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    @patch("lcs.transport.security.settings")
    def test_wrong_token(self, mock_settings):
        mock_settings.admin_token = ADMIN_TOKEN
        from lcs.transport.security import require_admin_token
        with pytest.raises(HTTPException) as exc_info:
            require_admin_token(_bearer("not-the-token"))
        assert exc_info.value.detail == "Invalid credentials"

    @patch("lcs.transport.security.settings")
    def test_unconfigured_token_is_503(self, mock_settings):
        mock_settings.admin_token = None
        from lcs.transport.security import require_admin_token
        with pytest.raises(HTTPException) as exc_info:
            require_admin_token(_bearer(ADMIN_TOKEN))
        assert exc_info.value.status_code == 503


class TestRequireMetricsAuth:
    @patch("lcs.transport.security.settings")
    def test_open_without_metrics_token(self, mock_settings):
        mock_settings.metrics_token = None
        from lcs.transport.security import require_metrics_auth
        assert require_metrics_auth(None) is None

    @patch("lcs.transport.security.settings")
    def test_token_enforced_when_set(self, mock_settings):
        mock_settings.metrics_token = "metrics-secret"
        from lcs.transport.security import require_metrics_auth
        with pytest.raises(HTTPException):
            require_metrics_auth(None)
        assert require_metrics_auth(_bearer("metrics-secret")) is None


# ============================================================================
# Security headers
# ============================================================================

class TestSecurityHeaders:
    @patch("lcs.transport.security.settings")
    def test_owasp_headers_present(self, mock_settings):
        mock_settings.is_production = False
        from lcs.transport.security import SecurityHeaders
        response = MagicMock()
        response.headers = {}
        SecurityHeaders.add_security_headers(response)
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["Cache-Control"] == "no-store"
        assert "Content-Security-Policy" in response.headers

    @patch("lcs.transport.security.settings")
    def test_existing_cache_control_kept(self, mock_settings):
        mock_settings.is_production = False
        from lcs.transport.security import SecurityHeaders
        response = MagicMock()
        response.headers = {"Cache-Control": "max-age=60"}
        SecurityHeaders.add_security_headers(response)
        assert response.headers["Cache-Control"] == "max-age=60"

    @patch("lcs.transport.security.settings")
    def test_hsts_in_production(self, mock_settings):
        mock_settings.is_production = True
        from lcs.transport.security import SecurityHeaders
        response = MagicMock()
        response.headers = {}
        SecurityHeaders.add_security_headers(response)
        assert "Strict-Transport-Security" in response.headers

    @patch("lcs.transport.security.settings")
    def test_no_hsts_in_dev(self, mock_settings):
        mock_settings.is_production = False
        from lcs.transport.security import SecurityHeaders
        response = MagicMock()
        response.headers = {}
        SecurityHeaders.add_security_headers(response)
        assert "Strict-Transport-Security" not in response.headers


# ============================================================================
# Error message sanitization
# ============================================================================

class TestSanitizeErrorMessage:
    def test_dev_shows_detail(self):
        from lcs.transport.security import sanitize_error_message
        err = ValueError("detailed info")
        assert "detailed info" in sanitize_error_message(err, is_production=False)

    def test_production_generic_message(self):
        from lcs.transport.security import sanitize_error_message
        result = sanitize_error_message(ValueError("detailed info"), is_production=True)
        assert result == "Invalid input"

    def test_production_unknown_error_type(self):
        from lcs.transport.security import sanitize_error_message
        assert sanitize_error_message(RuntimeError("internal"), is_production=True) == "An error occurred"
