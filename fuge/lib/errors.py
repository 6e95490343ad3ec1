"""
User-facing error notices for Fuge.

Turns FugeException instances into dismissible notice dicts the UI can
show inline or as a toast. Messages are keyed by error code and language
and fall back to English.
"""

from __future__ import annotations

from typing import Any

from fuge.lib.exceptions import FugeException

# =============================================================================
# Error Code Constants
# =============================================================================

INVALID_INPUT = "INVALID_INPUT"
INVALID_CHAIN = "INVALID_CHAIN"
NOT_FOUND = "NOT_FOUND"
SYNC_FAILED = "SYNC_FAILED"
AI_UNAVAILABLE = "AI_UNAVAILABLE"
CONFIG_ERROR = "CONFIG_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

# Codes whose notice should offer a retry action
RETRYABLE_CODES: frozenset[str] = frozenset({SYNC_FAILED, AI_UNAVAILABLE})

# =============================================================================
# Message Registry
#
# Maps (error_code, language) -> message string. Falls back to "en".
# =============================================================================

_ERROR_MESSAGES: dict[str, dict[str, str]] = {
    INVALID_INPUT: {
        "en": "Please fill in both the anchor and the tiny behavior.",
        "zh": "请填写锚点和微行为。",
    },
    INVALID_CHAIN: {
        "en": "These habits cannot be chained that way.",
        "zh": "无法这样设置习惯链。",
    },
    NOT_FOUND: {
        "en": "That habit no longer exists.",
        "zh": "该习惯已不存在。",
    },
    SYNC_FAILED: {
        "en": "Could not save to the cloud. Check your connection and try again.",
        "zh": "同步到云端失败，请检查网络",
    },
    AI_UNAVAILABLE: {
        "en": "The coaching service is unavailable right now. Please try again later.",
        "zh": "AI 服务暂时不可用，请稍后重试",
    },
    CONFIG_ERROR: {
        "en": "The app is not configured correctly.",
        "zh": "应用配置有误。",
    },
    INTERNAL_ERROR: {
        "en": "Something went wrong.",
        "zh": "出错了。",
    },
}

_DEFAULT_LANG = "en"


def get_error_message(code: str, lang: str = _DEFAULT_LANG) -> str:
    """Return the message for ``code`` in ``lang``, falling back to English."""
    messages = _ERROR_MESSAGES.get(code, _ERROR_MESSAGES[INTERNAL_ERROR])
    return messages.get(lang, messages[_DEFAULT_LANG])


def build_error_notice(exc: Exception, lang: str = _DEFAULT_LANG) -> dict[str, Any]:
    """
    Build a dismissible notice for an exception.

    Non-Fuge exceptions are reported as INTERNAL_ERROR.

    Returns:
        {"code": str, "message": str, "retryable": bool}
    """
    code = exc.code if isinstance(exc, FugeException) else INTERNAL_ERROR
    return {
        "code": code,
        "message": get_error_message(code, lang),
        "retryable": code in RETRYABLE_CODES,
    }


__all__ = [
    "INVALID_INPUT",
    "INVALID_CHAIN",
    "NOT_FOUND",
    "SYNC_FAILED",
    "AI_UNAVAILABLE",
    "CONFIG_ERROR",
    "INTERNAL_ERROR",
    "RETRYABLE_CODES",
    "get_error_message",
    "build_error_notice",
]
