"""
Text utilities for PostTopics.

Provides comment cleaning, valid-comment selection and the frequency-based
keyword extraction shared by the providers.
"""

import re
import unicodedata
from collections import Counter
from typing import Iterable, List, Optional

# Comments must be longer than this (after trimming) to be analyzed
MIN_COMMENT_LENGTH = 10

# Common Spanish and English stopwords
STOPWORDS = {
    # Spanish
    'el', 'la', 'de', 'que', 'y', 'a', 'en', 'un', 'es', 'se', 'no', 'te', 'lo',
    'le', 'da', 'su', 'por', 'son', 'con', 'para', 'al', 'del', 'los', 'las',
    'una', 'como', 'muy', 'más', 'pero', 'ya', 'me', 'mi', 'tu', 'si', 'este',
    'esta', 'está', 'ser', 'tiene', 'todo', 'bien', 'bueno', 'malo', 'sus', 'les',
    'nos', 'ni', 'yo', 'esto', 'ese', 'esa', 'eso', 'aquel', 'aquella', 'aquello',
    'porque', 'cuando', 'donde', 'también', 'sobre', 'hay', 'fue',
    # English
    'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'with', 'by',
    'this', 'that', 'these', 'those', 'have', 'has', 'was', 'were', 'are', 'from',
    'they', 'them', 'their', 'what', 'when', 'where', 'which', 'would', 'could',
    'should', 'there', 'about', 'just', 'like', 'your', 'very', 'really', 'will',
    'been', 'into', 'than', 'then', 'also', 'some',
}

_NON_LETTERS = re.compile(r'[^a-záéíóúñü\s]')
_WORD = re.compile(r'[a-záéíóúñü]+')


def clean_text(text: Optional[str]) -> str:
    """
    Clean text content by removing extra whitespace and normalizing.

    Args:
        text: Text to clean

    Returns:
        Cleaned text
    """
    if not text:
        return ""

    text = unicodedata.normalize('NFKC', text)
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def select_valid_comments(
    comments: Iterable[Optional[str]],
    limit: int = 30,
    min_length: int = MIN_COMMENT_LENGTH
) -> List[str]:
    """
    Keep the first ``limit`` comments whose trimmed length exceeds ``min_length``.

    Args:
        comments: Raw comment strings (None and blanks allowed)
        limit: Maximum number of comments to keep
        min_length: Exclusive minimum trimmed length

    Returns:
        Trimmed valid comments in original order
    """
    valid = []
    for comment in comments:
        if not comment:
            continue
        trimmed = comment.strip()
        if len(trimmed) > min_length:
            valid.append(trimmed)
            if len(valid) >= limit:
                break
    return valid


def tokenize(text: str, min_length: int = 4) -> List[str]:
    """Lower-case words of at least ``min_length`` letters that are not stopwords."""
    stripped = _NON_LETTERS.sub('', text.lower())
    return [
        word for word in stripped.split()
        if len(word) >= min_length and word not in STOPWORDS
    ]


def frequent_keywords(comments: Iterable[str], top_n: int = 3, min_count: int = 2) -> List[str]:
    """
    Most frequent non-stopword tokens across comments.

    Args:
        comments: Comment texts
        top_n: Number of keywords to return
        min_count: Minimum occurrences for a token to qualify

    Returns:
        Keywords by descending count, ties in order of first appearance
    """
    counts = Counter()
    for comment in comments:
        counts.update(tokenize(comment))

    return [
        word for word, count in counts.most_common()
        if count >= min_count
    ][:top_n]


def extract_keywords(text: str, max_keywords: int = 8, min_length: int = 3) -> List[str]:
    """
    Extract distinct meaningful keywords from a single text.

    Args:
        text: Text to analyze
        max_keywords: Maximum number of keywords to return
        min_length: Minimum keyword length

    Returns:
        Keywords sorted by frequency, then first appearance
    """
    if not text:
        return []

    words = _WORD.findall(clean_text(text.lower()))
    meaningful = [
        word for word in words
        if len(word) >= min_length and word not in STOPWORDS
    ]
    return [word for word, _ in Counter(meaningful).most_common(max_keywords)]


def dedupe(values: Iterable[str]) -> List[str]:
    """Remove duplicates and blanks while preserving order."""
    seen = set()
    result = []
    for value in values:
        value = (value or "").strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result
