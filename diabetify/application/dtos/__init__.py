"""Data transfer objects for HTTP payloads and broker envelopes."""
