"""Helpers for keeping secrets out of log output."""

REDACTED = "<token>"


def redact_secret(text: str, secret: str | None) -> str:
    """Replace every occurrence of secret in text."""
    if not secret or not text:
        return text
    return text.replace(secret, REDACTED)
