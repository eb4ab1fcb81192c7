from collections.abc import Iterable
from dataclasses import dataclass

from app.config import settings
from app.core.exceptions import ValidationError


@dataclass(frozen=True)
class SentenceBatch:
    """Normalized sentences in submission order.

    The position of each sentence is what ties it to its translation and
    flashcard further down the pipeline.
    """

    sentences: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.sentences)


def normalize_sentences(
    raw_sentences: Iterable[str],
    deduplicate: bool | None = None,
    min_count: int | None = None,
    max_count: int | None = None,
    max_length: int | None = None,
) -> SentenceBatch:
    if deduplicate is None:
        deduplicate = settings.GENERATION_DEDUPLICATE_SENTENCES
    min_count = settings.GENERATION_MIN_SENTENCES if min_count is None else min_count
    max_count = settings.GENERATION_MAX_SENTENCES if max_count is None else max_count
    max_length = settings.SENTENCE_MAX_LENGTH if max_length is None else max_length

    sentences: list[str] = []
    seen: set[str] = set()
    for raw in raw_sentences:
        sentence = raw.strip()
        if not sentence:
            continue
        if deduplicate:
            if sentence in seen:
                continue
            seen.add(sentence)
        sentences.append(sentence)

    if not min_count <= len(sentences) <= max_count:
        raise ValidationError(
            f"Provide between {min_count} and {max_count} non-empty sentences "
            f"(got {len(sentences)})."
        )

    for position, sentence in enumerate(sentences, start=1):
        if len(sentence) > max_length:
            raise ValidationError(
                f"Sentence {position} is longer than {max_length} characters."
            )

    return SentenceBatch(sentences=tuple(sentences))
