"""
adcraft.api.messages - Localized Error Messages
=================================================

Every error response carries a machine-readable code, a fixed technical
message and a user-facing message in the caller's locale. Exception text is
never used for either: it may contain raw provider output.
"""

from __future__ import annotations

from typing import Optional

from adcraft.core.enums import Locale

INTERNAL_ERROR = "INTERNAL_ERROR"

# code -> (technical message, {locale: user message})
ERROR_MESSAGES: dict[str, tuple[str, dict[str, str]]] = {
    "VALIDATION_ERROR": (
        "Request validation failed",
        {
            "en": "Some of the information you sent is missing or invalid.",
            "ja": "送信された情報に不足または誤りがあります。",
        },
    ),
    "SESSION_NOT_FOUND": (
        "Session not found",
        {
            "en": "We couldn't find your session. Please start again.",
            "ja": "セッションが見つかりません。最初からやり直してください。",
        },
    ),
    "SESSION_INVALID_STATE": (
        "Request not allowed in the current session state",
        {
            "en": "This step isn't available right now. Please finish the current step first.",
            "ja": "この操作は現在利用できません。先に現在のステップを完了してください。",
        },
    ),
    "HANDOFF_VALIDATION_FAILED": (
        "Handoff preconditions not met",
        {
            "en": "A few details are still missing before we can move to the next step.",
            "ja": "次のステップに進む前に、いくつかの情報が不足しています。",
        },
    ),
    "BUDGET_EXCEEDED": (
        "Budget limit reached",
        {
            "en": "This request would exceed your project budget.",
            "ja": "このリクエストはプロジェクトの予算を超えてしまいます。",
        },
    ),
    "RATE_LIMITED": (
        "Too many concurrent requests",
        {
            "en": "Too many generations are running. Please wait a moment and try again.",
            "ja": "生成処理が混み合っています。しばらくしてから再度お試しください。",
        },
    ),
    "GENERATION_CANCELLED": (
        "Generation cancelled",
        {
            "en": "The generation was cancelled.",
            "ja": "生成はキャンセルされました。",
        },
    ),
    "GENERATION_FAILED": (
        "Generation failed",
        {
            "en": "We couldn't create this right now. Please try again shortly.",
            "ja": "現在生成できませんでした。しばらくしてから再度お試しください。",
        },
    ),
    INTERNAL_ERROR: (
        "Internal server error",
        {
            "en": "Something went wrong on our side. Please try again later.",
            "ja": "システムエラーが発生しました。後ほど再度お試しください。",
        },
    ),
}


def resolve_locale(value: Optional[str]) -> Locale:
    """Pick a supported locale from a header or query value.

    Accepts ``ja``, ``ja-JP`` and Accept-Language lists such as
    ``ja,en;q=0.8``. Anything else resolves to English.
    """
    if value:
        primary = value.split(",")[0].split(";")[0].strip().lower()
        if primary.startswith("ja"):
            return Locale.JA
    return Locale.EN


def error_messages(code: str, locale: Locale = Locale.EN) -> tuple[str, str]:
    """(technical message, localized user message) for an error code."""
    technical, localized = ERROR_MESSAGES.get(code, ERROR_MESSAGES[INTERNAL_ERROR])
    return technical, localized.get(locale.value, localized["en"])
