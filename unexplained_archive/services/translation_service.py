"""
Gemini-backed translation for case text and comments.

Translation is best effort: without an API key, or when the model call fails,
the original text is returned unchanged.
"""
import logging
from typing import Dict, List, Optional

import google.generativeai as genai

from unexplained_archive.config.settings import settings
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.session import Session

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "en": "English", "es": "Spanish", "fr": "French", "de": "German",
    "it": "Italian", "pt": "Portuguese", "ru": "Russian", "ja": "Japanese",
    "zh": "Chinese", "ko": "Korean", "ar": "Arabic", "hi": "Hindi",
    "et": "Estonian", "fi": "Finnish", "sv": "Swedish", "no": "Norwegian",
    "da": "Danish", "nl": "Dutch", "pl": "Polish", "cs": "Czech",
    "hu": "Hungarian", "ro": "Romanian", "tr": "Turkish", "el": "Greek",
    "he": "Hebrew", "th": "Thai", "vi": "Vietnamese", "id": "Indonesian",
    "ms": "Malay", "tl": "Tagalog",
}

# Cache key uses this many leading characters of the source text
CACHE_PREFIX_CHARS = 50


class TranslationService:
    """Translator with an in-process cache keyed by (text prefix, target)."""

    def __init__(self, model=None, api_key: Optional[str] = None):
        self._api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self._model = model
        self._cache: Dict[str, str] = {}

    @property
    def enabled(self) -> bool:
        return self._model is not None or bool(self._api_key)

    def _get_model(self):
        if self._model is None:
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(settings.GEMINI_MODEL)
            logger.info(f"Gemini translation model {settings.GEMINI_MODEL} configured")
        return self._model

    @staticmethod
    def cache_key(text: str, target: str) -> str:
        return f"{text[:CACHE_PREFIX_CHARS]}_{target}"

    async def detect_language(self, text: str) -> str:
        """Two-letter ISO 639-1 code of `text`; "en" when unknown."""
        if not self.enabled or not text.strip():
            return "en"

        prompt = (
            "Detect the language of this text and respond with ONLY the two-letter "
            "ISO 639-1 code (e.g., en, es, fr, de, ja, zh, ru, et). "
            f'Text: "{text[:200]}"'
        )
        try:
            response = await self._get_model().generate_content_async(
                prompt,
                generation_config={"temperature": 0.1, "max_output_tokens": 10},
            )
            code = (response.text or "").strip().lower()[:2]
        except Exception as e:
            logger.error(f"Language detection error: {type(e).__name__}: {str(e)}")
            return "en"
        return code if code.isalpha() and len(code) == 2 else "en"

    async def translate(self, text: str, target: str = "en", source: Optional[str] = None) -> str:
        if not text or not text.strip():
            return text
        if not self.enabled:
            logger.warning("Translation API not configured")
            return text

        key = self.cache_key(text, target)
        if key in self._cache:
            return self._cache[key]

        target_name = LANGUAGE_NAMES.get(target, "English")
        source_hint = f"from {LANGUAGE_NAMES[source]} " if source in LANGUAGE_NAMES else ""
        prompt = (
            f"Translate the following text {source_hint}to {target_name}. "
            "Preserve formatting, tone, and specific details. "
            f"Only provide the translation without explanations:\n\n{text}"
        )

        try:
            response = await self._get_model().generate_content_async(
                prompt,
                generation_config={"temperature": 0.3, "max_output_tokens": 2048},
            )
            translated = (response.text or "").strip()
        except Exception as e:
            logger.error(f"Translation error: {type(e).__name__}: {str(e)}")
            return text

        if not translated:
            return text
        self._cache[key] = translated
        return translated

    async def batch_translate(self, texts: List[str], target: str = "en") -> List[str]:
        return [await self.translate(text, target) for text in texts]

    @staticmethod
    async def can_use_translation(backend: BackendClient, session: Session) -> bool:
        """Admins always; investigators with an active subscription."""
        if session.is_admin:
            return True
        if not session.is_investigator:
            return False
        active = await backend.count("subscriptions", {"user_id": session.user_id, "status": "active"})
        return active > 0

    @staticmethod
    async def track_translation(
        backend: BackendClient,
        session: Session,
        source: str,
        target: str,
        char_count: int,
    ) -> None:
        """Usage analytics row. Failures are logged only."""
        try:
            await backend.insert("ai_usage", {
                "user_id": session.user_id,
                "feature": "translation",
                "cost": 0,
                "metadata": {
                    "from_language": source,
                    "to_language": target,
                    "character_count": char_count,
                },
            })
        except Exception as e:
            logger.warning(f"Error tracking translation: {str(e)}")


# Shared instance for the HTTP routes
translation_service = TranslationService()
