"""
Prometheus metrics definitions for the upload gateway.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Upload metrics
upload_fields_total = Counter(
    'upload_fields_total',
    'Uploaded fields by outcome bucket',
    ['bucket']
)

local_write_failures_total = Counter(
    'local_write_failures_total',
    'Fields that could not be written to the data folder'
)

remote_upload_attempts_total = Counter(
    'remote_upload_attempts_total',
    'Calls made to the remote upload capability',
    ['result']
)

# Credential metrics
credential_refreshes_total = Counter(
    'credential_refreshes_total',
    'Authentication round-trips against the remote store',
    ['status']
)
