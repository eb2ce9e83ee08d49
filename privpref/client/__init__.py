"""HTTP client utilities for talking to the privpref API.

Security notes:
- Treat server responses as untrusted input.
- Never log preference payloads.
"""
