"""Security configuration constants for PipelinePilot API.

Centralizes the keys that must be redacted from logs and the error
response fields each environment is allowed to expose.
"""

# Keys redacted from structured logs. Matching is substring based, so
# "access_token" also covers "fabric_access_token".
SENSITIVE_KEYS: set[str] = {
    # Credentials forwarded to the data platform or the LLM provider
    "password",
    "secret",
    "token",
    "authorization",
    "api_key",
    "apikey",
    "bearer",
    "credential",
    "connection_string",
    "client_secret",
    "session_id",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
    # Personal data that may ride along with user prompts
    "email",
    "phone",
}

# Production error responses only carry these fields
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
    "code",
}

# Development adds diagnostics on top of the production set
DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment."""
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
