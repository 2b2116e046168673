"""
Prometheus metrics for cms_auth.

Provides observability metrics for monitoring:
- HTTP requests and performance
- Authentication outcomes
- Two-factor verification and backup-code usage
- Token issuance, refresh and revocation
"""

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# HTTP Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0)
)

http_requests_in_progress = Gauge(
    'http_requests_in_progress',
    'Number of HTTP requests currently being processed',
    ['method', 'endpoint']
)

# ============================================================================
# Authentication Metrics
# ============================================================================

auth_login_attempts_total = Counter(
    'auth_login_attempts_total',
    'Total login attempts',
    ['status']  # success, invalid_credentials, mfa_required
)

auth_mfa_verifications_total = Counter(
    'auth_mfa_verifications_total',
    'Total 2FA verification attempts',
    ['method', 'status']  # method: totp, backup_code; status: success, invalid_code, not_enabled, unreadable
)

auth_backup_codes_consumed_total = Counter(
    'auth_backup_codes_consumed_total',
    'Total backup codes spent'
)

auth_token_operations_total = Counter(
    'auth_token_operations_total',
    'Total token operations',
    ['operation', 'status']  # operation: issue, refresh, revoke
)

user_registrations_total = Counter(
    'user_registrations_total',
    'Total user registrations',
    ['status']  # success, email_exists, validation_error
)
