from __future__ import annotations

import re

SECRET_PATTERN = re.compile(r"(sk-[A-Za-z0-9]{6,})")
BASIC_AUTH_PATTERN = re.compile(r"(Basic\s+)[A-Za-z0-9+/=]{8,}")


def redact_secrets(text: str) -> str:
    """Redact API keys or Basic credentials from a string."""

    text = SECRET_PATTERN.sub("sk-***", text)
    return BASIC_AUTH_PATTERN.sub(r"\1***", text)


def sanitize_text(text: str, max_length: int) -> str:
    """Trim and clamp user-provided text to a safe length."""

    cleaned = text.strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned


def frame_security_headers(allowed_origins: list[str]) -> dict[str, str]:
    """Headers that let the host embed the pod while keeping other framers out."""

    ancestors = " ".join(allowed_origins) if allowed_origins else "'none'"
    return {
        "Content-Security-Policy": f"frame-ancestors {ancestors}",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    }
