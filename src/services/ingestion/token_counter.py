"""Token counting for chunk sizing.

Two counters share one interface:

- :class:`SubwordTokenCounter` -- exact counts from a HuggingFace
  ``tokenizers`` model (``bert-base-uncased`` by default).
- :class:`ApproximateTokenCounter` -- ``max(ceil(words * 1.3 +
  punctuation * 0.5), ceil(chars / 4))``; used when the tokenizer files
  cannot be fetched.

:func:`build_token_counter` picks one at construction time.  A chunker
keeps the counter it was given for its whole life, so boundaries computed
in one run never mix the two methods.
"""

from __future__ import annotations

import math
import re
from typing import Protocol

import structlog
from tokenizers import Tokenizer

logger = structlog.get_logger(logger_name=__name__)

_PUNCTUATION = re.compile(r"[.,;:!?()\[\]{}\"'`]")


class TokenCounter(Protocol):
    """Anything that can count tokens in a string."""

    name: str

    def count(self, text: str) -> int: ...


class ApproximateTokenCounter:
    """Word/punctuation/character heuristic, no model files needed."""

    name = "approximate"

    def count(self, text: str) -> int:
        if not text:
            return 0
        words = len(text.split())
        punctuation = len(_PUNCTUATION.findall(text))
        approximate = math.ceil(words * 1.3 + punctuation * 0.5)
        char_based = math.ceil(len(text) / 4)
        return max(approximate, char_based)


class SubwordTokenCounter:
    """Exact subword counts from a loaded :class:`tokenizers.Tokenizer`."""

    def __init__(self, tokenizer: Tokenizer, model_name: str = "bert-base-uncased") -> None:
        self._tokenizer = tokenizer
        self.name = f"subword:{model_name}"

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._tokenizer.encode(text, add_special_tokens=False).ids)


def build_token_counter(model_name: str = "bert-base-uncased") -> TokenCounter:
    """Return a subword counter for *model_name*, or the approximation.

    ``Tokenizer.from_pretrained`` downloads the tokenizer on first use;
    offline hosts get the approximate counter and a log line saying so.
    """
    try:
        tokenizer = Tokenizer.from_pretrained(model_name)
    except Exception as exc:  # noqa: BLE001 -- hub download / cache errors vary
        logger.info(
            "tokenizer_unavailable",
            model=model_name,
            error=str(exc),
            msg="Falling back to approximate token counting.",
        )
        return ApproximateTokenCounter()
    logger.debug("tokenizer_loaded", model=model_name)
    return SubwordTokenCounter(tokenizer, model_name)
