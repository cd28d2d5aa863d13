from __future__ import annotations

import traceback
from typing import Any

_CREDENTIAL_TIP = " Tip: Check that OPENROUTER_API_KEY is set to a valid key with access to the requested model."


def _looks_like_auth_issue(text: str) -> bool:
    """Best-effort detection for auth/credential issues from provider errors."""
    if not text:
        return False
    lower = text.lower()

    keywords = [
        "api key",
        "apikey",
        "invalid key",
        "no auth",
        "unauthorized",
        "forbidden",
        "credentials",
        "error 401",
        "error 403",
        # billing/quota
        "insufficient credits",
        "quota",
    ]

    return any(k in lower for k in keywords)


def augment_with_credential_tip(message: str) -> str:
    """Append a credential tip to the message when appropriate.

    Ensures we don't duplicate the tip on repeated calls.
    """
    if not message:
        return message
    if _CREDENTIAL_TIP.strip() in message:
        return message
    if _looks_like_auth_issue(message):
        return message.rstrip() + _CREDENTIAL_TIP
    return message


def build_error_data(exc: BaseException, *, include_trace: bool = True) -> dict[str, Any] | None:
    """Diagnostic payload attached to execution failures, or None when disabled."""
    if not include_trace:
        return None
    return {"stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))}


__all__ = ["augment_with_credential_tip", "build_error_data"]
