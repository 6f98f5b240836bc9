# lcs/transport/security.py
"""
Auth dependencies for the HTTP surface.

- POST /signals: admin Bearer token
- /metrics: metrics Bearer token when configured, open otherwise
- Mailgun webhooks are authenticated by signature, see mailgun_webhook

All token comparisons are constant-time.
"""
import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lcs.config import settings
from lcs.infra.logging_config import get_logger

logger = get_logger(__name__)

# Security scheme for OpenAPI docs - shows "Authorize" button
bearer_scheme = HTTPBearer(
    scheme_name="Admin Token",
    description="Enter your admin token (without 'Bearer ' prefix)",
    auto_error=False,  # We handle errors ourselves for better messages
)

metrics_bearer_scheme = HTTPBearer(
    scheme_name="Metrics Token",
    description="Enter your metrics token (without 'Bearer ' prefix)",
    auto_error=False,
)


def _token_prefix(token: str) -> str:
    return token[:4] if len(token) >= 4 else "***"


def _check_bearer(credentials: HTTPAuthorizationCredentials | None, expected: str, what: str) -> None:
    if not credentials:
        logger.warning(f"{what} endpoint accessed without authorization header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        logger.warning(
            f"Invalid {what.lower()} token attempt",
            extra={"token_prefix": _token_prefix(credentials.credentials)},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_admin_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
):
    """
    Usage:
        @app.post("/signals", dependencies=[Depends(require_admin_token)])

    Client example:
        curl -H "Authorization: Bearer $ADMIN_TOKEN" -d @signal.json http://localhost:8099/signals
    """
    if not settings.admin_token:
        logger.critical("ADMIN_TOKEN not configured but admin endpoint accessed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unavailable",
        )
    _check_bearer(credentials, settings.admin_token, "Admin")


def require_metrics_auth(
    credentials: HTTPAuthorizationCredentials | None = Depends(metrics_bearer_scheme),
):
    """Require METRICS_TOKEN when it is set; /metrics is open otherwise."""
    if settings.metrics_token:
        _check_bearer(credentials, settings.metrics_token, "Metrics")


class SecurityHeaders:
    @staticmethod
    def add_security_headers(response):
        """OWASP recommended headers for a JSON API."""
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def sanitize_error_message(error: Exception, is_production: bool) -> str:
    """Detailed messages in dev, generic ones in prod."""
    if not is_production:
        return str(error)

    generic_messages = {
        "ValueError": "Invalid input",
        "KeyError": "Invalid request",
        "ConnectionError": "Service temporarily unavailable",
        "TimeoutError": "Request timeout",
    }
    return generic_messages.get(type(error).__name__, "An error occurred")
