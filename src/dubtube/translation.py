"""
Translation of transcript text with DeepL or OpenAI GPT.
"""

import dataclasses
import logging
from collections.abc import Callable, Sequence

import httpx
from openai import OpenAI, OpenAIError

from .config import Settings
from .errors import TranslationFailed
from .models import TranscriptSegment

logger = logging.getLogger("dubtube")

DEEPL_FREE_URL = "https://api-free.deepl.com/v2/translate"

# (texts, target language) -> translations, same length and order
TranslateFunc = Callable[[list[str], str], list[str]]


def deepl_translate(
    api_key: str | None,
    texts: list[str],
    target_lang: str,
    client: httpx.Client | None = None,
    url: str = DEEPL_FREE_URL,
) -> list[str]:
    """Translate a batch of strings with DeepL."""
    if not api_key:
        raise TranslationFailed("DEEPL_API_KEY is not set.")
    if not texts:
        return []
    headers = {"Authorization": f"DeepL-Auth-Key {api_key}", "Content-Type": "application/json"}
    payload = {"text": texts, "target_lang": target_lang.upper()}

    owns_client = client is None
    if client is None:
        client = httpx.Client(timeout=60.0)
    try:
        r = client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise TranslationFailed(f"Translation request failed: {e}") from e
    finally:
        if owns_client:
            client.close()

    if r.status_code != 200:
        message = r.reason_phrase or "Translation failed"
        try:
            message = r.json().get("message") or message
        except ValueError:
            pass
        raise TranslationFailed(message)

    try:
        translations = [t.get("text", "") for t in r.json().get("translations", [])]
    except (ValueError, AttributeError) as e:
        raise TranslationFailed("Invalid response from DeepL") from e
    if len(translations) != len(texts):
        raise TranslationFailed(
            f"DeepL returned {len(translations)} translations for {len(texts)} texts"
        )
    return translations


def openai_translate(
    client: OpenAI, texts: list[str], target_lang: str, model: str = "gpt-4o-mini"
) -> list[str]:
    """
    Translate numbered texts in one chat completion.

    Lines the model drops or garbles fall back to the source text.
    """
    if client is None:
        raise TranslationFailed("OpenAI client is not initialized (missing OPENAI_API_KEY)")
    if not texts:
        return []

    combined = "\n".join(f"[{j}]: {t}" for j, t in enumerate(texts))
    prompt = f"""Translate the following numbered texts to {get_language_name(target_lang)}.
Each text is numbered with [number]: format. Translate each one separately.
Maintain the original tone, style, and meaning. The result will be spoken aloud.
Return the translations in the same numbered format.

Texts to translate:
{combined}"""
    try:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {
                    "role": "system",
                    "content": "You are a professional translator for video dubbing. Always provide accurate, natural translations.",
                },
                {"role": "user", "content": prompt},
            ],
            temperature=0.1,
            max_tokens=4000,
        )
    except OpenAIError as e:
        raise TranslationFailed(f"Translation failed: {e}") from e

    translation_map: dict[int, str] = {}
    for line in (response.choices[0].message.content or "").strip().split("\n"):
        if line.strip() and ": " in line:
            try:
                idx_str, translated = line.split(": ", 1)
                translation_map[int(idx_str.strip().strip("[]"))] = translated.strip()
            except (ValueError, IndexError):
                continue
    missing = [j for j in range(len(texts)) if j not in translation_map]
    if missing:
        logger.warning("Model skipped %d lines; keeping source text for %s", len(missing), missing)
    return [translation_map.get(j, t) for j, t in enumerate(texts)]


def make_translator_deepl(api_key: str | None) -> TranslateFunc:
    def _translate(texts: list[str], target_lang: str) -> list[str]:
        return deepl_translate(api_key, texts, target_lang)

    return _translate


def make_translator_openai(client: OpenAI, model: str = "gpt-4o-mini") -> TranslateFunc:
    def _translate(texts: list[str], target_lang: str) -> list[str]:
        return openai_translate(client, texts, target_lang, model=model)

    return _translate


def make_translator(settings: Settings) -> TranslateFunc:
    """DeepL when a key is configured, otherwise OpenAI GPT."""
    if settings.deepl_api_key:
        return make_translator_deepl(settings.deepl_api_key)
    if settings.openai_api_key:
        return make_translator_openai(OpenAI(api_key=settings.openai_api_key))
    raise TranslationFailed("Set DEEPL_API_KEY or OPENAI_API_KEY to enable translation.")


def translate_transcript(
    transcript: Sequence[TranscriptSegment],
    target_lang: str,
    translate_func: TranslateFunc,
    batch_size: int = 50,
) -> list[TranscriptSegment]:
    """Return copies of the segments annotated with ``translation``, order preserved."""
    out: list[TranscriptSegment] = []
    for i in range(0, len(transcript), batch_size):
        batch = transcript[i : i + batch_size]
        logger.info("Translating batch %d (%d segments)...", i // batch_size + 1, len(batch))
        translations = translate_func([s.text for s in batch], target_lang)
        if len(translations) != len(batch):
            raise TranslationFailed(
                f"expected {len(batch)} translations, got {len(translations)}"
            )
        out.extend(dataclasses.replace(s, translation=t) for s, t in zip(batch, translations))
    return out


def get_language_name(language_code: str) -> str:
    """Get human-readable language name from language code."""
    language_names = {
        "ar": "Arabic",
        "de": "German",
        "en": "English",
        "es": "Spanish",
        "fr": "French",
        "hi": "Hindi",
        "it": "Italian",
        "ja": "Japanese",
        "ko": "Korean",
        "nl": "Dutch",
        "pl": "Polish",
        "pt": "Portuguese",
        "ru": "Russian",
        "tr": "Turkish",
        "uk": "Ukrainian",
        "zh": "Chinese",
    }
    return language_names.get(language_code.lower(), language_code.upper())
