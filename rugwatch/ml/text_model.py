"""
Lexicon text model: tokenization and polarity for social text and chat.

AFINN-style word valences (-5..+5) with a crypto-community slant. The
sentiment of a token list is the valence sum divided by the token count, so
scores are comparable across short and long texts.
"""

from __future__ import annotations

import re

_TOKEN_RE = re.compile(r"[a-z0-9_]+")

LEXICON: dict[str, int] = {
    # Negative
    "rug": -4,
    "rugged": -4,
    "rugpull": -4,
    "scam": -4,
    "scammer": -4,
    "scammers": -4,
    "fraud": -4,
    "honeypot": -4,
    "stolen": -3,
    "steal": -3,
    "theft": -3,
    "exploit": -3,
    "hacked": -3,
    "hack": -3,
    "dump": -3,
    "dumped": -3,
    "dumping": -3,
    "fake": -3,
    "ponzi": -4,
    "crash": -2,
    "crashed": -2,
    "lost": -2,
    "loss": -2,
    "losses": -2,
    "suspicious": -2,
    "danger": -2,
    "dangerous": -2,
    "risk": -2,
    "risky": -2,
    "warning": -2,
    "alert": -1,
    "avoid": -2,
    "abandoned": -2,
    "dead": -3,
    "worthless": -3,
    "bad": -3,
    "terrible": -3,
    "awful": -3,
    "worst": -3,
    "angry": -3,
    "sad": -2,
    "fear": -2,
    "panic": -3,
    "sell": -1,
    "selling": -1,
    "down": -1,
    "drop": -1,
    "dropped": -1,
    "liar": -3,
    "lie": -2,
    "lies": -2,
    "broken": -1,
    "problem": -2,
    "fail": -2,
    "failed": -2,
    "no": -1,
    # Positive
    "good": 3,
    "great": 3,
    "amazing": 4,
    "awesome": 4,
    "excellent": 3,
    "love": 3,
    "like": 2,
    "safe": 1,
    "secure": 2,
    "trust": 1,
    "trusted": 2,
    "legit": 2,
    "audited": 2,
    "verified": 2,
    "transparent": 2,
    "bullish": 2,
    "moon": 2,
    "mooning": 2,
    "gain": 2,
    "gains": 2,
    "profit": 2,
    "profits": 2,
    "win": 4,
    "winning": 4,
    "strong": 2,
    "solid": 2,
    "happy": 3,
    "excited": 3,
    "up": 1,
    "pump": 1,
    "buy": 1,
    "hold": 1,
    "hodl": 1,
    "recommend": 2,
    "support": 2,
    "yes": 1,
}


class LexiconTextModel:
    """Tokenizer plus lexicon sentiment; stateless and safe to share."""

    def __init__(self, lexicon: dict[str, int] | None = None) -> None:
        self.lexicon = LEXICON if lexicon is None else lexicon

    def tokenize(self, text: str) -> list[str]:
        return _TOKEN_RE.findall((text or "").lower())

    def sentiment(self, tokens: list[str]) -> float:
        """Mean valence per token; 0.0 for an empty token list."""
        if not tokens:
            return 0.0
        return sum(self.lexicon.get(t, 0) for t in tokens) / len(tokens)
