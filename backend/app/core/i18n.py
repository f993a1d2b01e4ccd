"""Message catalogs for chart labels and error titles (English, Portuguese)."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

_LOCALES_DIR = Path(__file__).resolve().parent.parent / "locales"
FALLBACK_LANG = "en"
SUPPORTED_LANGUAGES = frozenset({"en", "pt"})


@lru_cache(maxsize=4)
def _load_messages(lang: str) -> dict[str, str]:
    path = _LOCALES_DIR / lang / "messages.json"
    if not path.exists():
        logger.warning("Locale file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def translate(lang: str, key: str, **kwargs: object) -> str:
    """Return the message for *key* in *lang*.

    Unsupported languages and missing keys fall back to English, then to the
    raw key.  ``{placeholder}`` fields are filled from *kwargs*.
    """
    if lang not in SUPPORTED_LANGUAGES:
        lang = FALLBACK_LANG
    text = _load_messages(lang).get(key)
    if text is None and lang != FALLBACK_LANG:
        text = _load_messages(FALLBACK_LANG).get(key)
    if text is None:
        return key
    if kwargs:
        try:
            text = text.format(**kwargs)
        except KeyError:
            logger.warning("Missing placeholder for message %s", key)
    return text
