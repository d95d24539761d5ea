"""Content validation activity run when an item is submitted for review."""

import re
from dataclasses import dataclass, field

from contentflow.logging import get_logger
from contentflow.models import ValidationCompleted

logger = get_logger(__name__)

MIN_TITLE_LENGTH = 5
MAX_TITLE_LENGTH = 255
MIN_CONTENT_LENGTH = 50
MAX_CONTENT_LENGTH = 50_000

PROHIBITED_WORDS = ("spam", "scam", "illegal", "harmful")

SENTENCE_PATTERN = re.compile(r"[.!?]+")
WORD_PATTERN = re.compile(r"\b\w+\b")


@dataclass
class ContentValidator:
    """Length and prohibited-word checks plus a 0-100 quality score."""

    prohibited_words: tuple[str, ...] = PROHIBITED_WORDS
    min_title_length: int = MIN_TITLE_LENGTH
    max_title_length: int = MAX_TITLE_LENGTH
    min_content_length: int = MIN_CONTENT_LENGTH
    max_content_length: int = MAX_CONTENT_LENGTH
    _patterns: list = field(init=False, repr=False)

    def __post_init__(self):
        self._patterns = [
            (word, re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE))
            for word in self.prohibited_words
        ]

    def validate(self, title: str, body: str) -> ValidationCompleted:
        errors = self.title_errors(title) + self.body_errors(body)
        result = ValidationCompleted(
            passed=not errors,
            errors=errors,
            quality_score=self.quality_score(title, body),
        )
        logger.info(
            "content_validated",
            passed=result.passed,
            error_count=len(errors),
            quality_score=result.quality_score,
        )
        return result

    def title_errors(self, title: str) -> list[str]:
        stripped = (title or "").strip()
        if not stripped:
            return ["title is empty"]
        errors = []
        if len(stripped) < self.min_title_length:
            errors.append(f"title shorter than {self.min_title_length} characters")
        if len(stripped) > self.max_title_length:
            errors.append(f"title longer than {self.max_title_length} characters")
        errors.extend(f"title contains prohibited word '{w}'" for w in self._prohibited_in(stripped))
        return errors

    def body_errors(self, body: str) -> list[str]:
        stripped = (body or "").strip()
        if not stripped:
            return ["content is empty"]
        errors = []
        if len(stripped) < self.min_content_length:
            errors.append(f"content shorter than {self.min_content_length} characters")
        if len(stripped) > self.max_content_length:
            errors.append(f"content longer than {self.max_content_length} characters")
        errors.extend(
            f"content contains prohibited word '{w}'" for w in self._prohibited_in(stripped)
        )
        return errors

    def quality_score(self, title: str, body: str) -> int:
        """Heuristic score: title shape (20) + body length, sentences, vocabulary (80)."""
        score = 0
        title = (title or "").strip()
        body = (body or "").strip()

        if title:
            score += 10
            if 10 <= len(title) <= 100:
                score += 10

        if body:
            score += 20
            if len(body) >= self.min_content_length:
                score += min(20, len(body) // 100)

            sentences = [s for s in SENTENCE_PATTERN.split(body) if s.strip()]
            if len(sentences) >= 3:
                score += min(20, len(sentences) * 2)

            unique_words = set(WORD_PATTERN.findall(body.lower()))
            if len(unique_words) > 10:
                score += min(20, len(unique_words) // 5)

        return min(100, score)

    def _prohibited_in(self, text: str) -> list[str]:
        return [word for word, pattern in self._patterns if pattern.search(text)]
