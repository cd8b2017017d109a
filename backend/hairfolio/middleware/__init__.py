"""
Hairfolio Backend: Middleware Package
======================================

Middleware Chain (order matters):
    Request → [Rate Limit] → [Request ID] → [Logging] → [Session] → Route Handler

    1. Rate Limit first: reject excess try-on starts before any work
    2. Request ID: correlation ID for logs and error bodies
    3. Logging: reads the session ID from the response headers
    4. Session: resolve or issue X-Session-ID
"""
