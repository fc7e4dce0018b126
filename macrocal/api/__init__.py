"""HTTP surface: admin import triggers, uploads, and rate limiting."""
