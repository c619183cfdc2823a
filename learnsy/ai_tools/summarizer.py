"""
Resumen extractivo de texto.

Heurística simple: las primeras frases forman el resumen y las palabras
más frecuentes (de cinco o más letras) las palabras clave.
"""

import re
from collections import Counter
from typing import Dict, List

SUMMARY_SENTENCES = 6
MAX_HIGHLIGHTS = 8
KEYWORD_LIMIT = 6
FALLBACK_KEYWORDS = 4
IGNORED_KEYWORDS = {"slides", "chapter", "section", "content"}

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.?!])\s+(?=[A-Z0-9])")
_KEYWORD = re.compile(r"\b[a-z]{5,}\b")
_NON_ALNUM = re.compile(r"[^a-z0-9]", re.IGNORECASE)


class SummarizerError(ValueError):
    """El texto no contiene nada que resumir."""


def clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()

def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]

def extract_keywords(text: str, limit: int = KEYWORD_LIMIT) -> List[str]:
    """Palabras más frecuentes; los empates conservan el orden de aparición."""
    words = [w for w in _KEYWORD.findall((text or "").lower()) if w not in IGNORED_KEYWORDS]
    return [word for word, _ in Counter(words).most_common(limit)]

def summarize_text(text: str, max_sentences: int = SUMMARY_SENTENCES) -> Dict:
    """
    Genera resumen, frases destacadas, palabras clave y estadísticas.

    Raises:
        SummarizerError: si el texto queda vacío tras normalizar espacios
    """
    cleaned = clean_text(text)
    if not cleaned:
        raise SummarizerError("Unable to extract readable text from this file.")

    sentences = split_sentences(cleaned)
    summary = " ".join(sentences[:max_sentences])
    keywords = extract_keywords(cleaned)
    if not keywords:
        keywords = [
            word for word in (_NON_ALNUM.sub("", w).lower() for w in summary.split(" ")[:FALLBACK_KEYWORDS])
            if word
        ]

    return {
        "summary": summary,
        "highlights": sentences[:MAX_HIGHLIGHTS],
        "keywords": keywords,
        "word_count": len(cleaned.split(" "))
    }
