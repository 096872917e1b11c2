"""
Core package — cross-cutting concerns.

Modules:
    config      — environment variables & settings
    logging     — structured JSON logging
    errors      — exception hierarchy & handlers
    middleware  — request logging, correlation IDs
    health      — health check aggregation
    cache       — cache gateway (memory / Redis)
    rate_limit  — per-client request limiter
    clock       — injectable wall clock
"""
