"""User-facing message keys and their localized strings."""

from __future__ import annotations

from .models import Language

SPEAK_FIRST = "SPEAK_FIRST"
SELECT_LOCATION = "SELECT_LOCATION"
FALLBACK_USED = "FALLBACK_USED"
GENERATION_FAILED = "GENERATION_FAILED"
NO_SUGGESTION = "NO_SUGGESTION"

MESSAGES = {
    Language.EN: {
        SPEAK_FIRST: "Please speak first",
        SELECT_LOCATION: "Select a location",
        FALLBACK_USED: "AI generation used fallback due to provider error.",
        GENERATION_FAILED: "Generation failed",
        NO_SUGGESTION: "No suggestion",
    },
    Language.JA: {
        SPEAK_FIRST: "まず話してください",
        SELECT_LOCATION: "場所を選択してください",
        FALLBACK_USED: "プロバイダーのエラーのため、代替の提案を表示しています。",
        GENERATION_FAILED: "提案の生成に失敗しました",
        NO_SUGGESTION: "提案はありません",
    },
    Language.HI: {
        SPEAK_FIRST: "कृपया बोलें",
        SELECT_LOCATION: "कृपया स्थान चुनें",
        FALLBACK_USED: "प्रदाता त्रुटि के कारण वैकल्पिक सुझाव दिखाए जा रहे हैं।",
        GENERATION_FAILED: "सुझाव बनाना विफल रहा",
        NO_SUGGESTION: "कोई सुझाव नहीं",
    },
}


def message(key: str, language: Language) -> str:
    return MESSAGES.get(language, MESSAGES[Language.EN])[key]
