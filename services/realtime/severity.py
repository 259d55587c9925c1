"""Severity parsing shared by slot extraction and session summaries."""

from __future__ import annotations

import math
import re
from typing import Any, Optional

SEVERITY_MIN = 1
SEVERITY_MAX = 10

# Checked in order; the first band word found wins.
BAND_WORDS = (
	(re.compile(r"\bmild\b"), 2),
	(re.compile(r"\bmoderate\b"), 5),
	(re.compile(r"\bsevere\b"), 8),
	(re.compile(r"\b(?:worst|worse)\b"), 10),
)
FRACTION_RE = re.compile(r"\b(10|[1-9])\s*/\s*10\b")
OUT_OF_RE = re.compile(r"\b(10|[1-9])\s*(?:out\s+of|over)\s*10\b")
DIGIT_RE = re.compile(r"\b(10|[1-9])\b")
NUMBER_WORDS = (
	("one", 1),
	("two", 2),
	("three", 3),
	("four", 4),
	("five", 5),
	("six", 6),
	("seven", 7),
	("eight", 8),
	("nine", 9),
	("ten", 10),
)
NUMBER_WORD_RES = tuple((re.compile(rf"\b{word}\b"), value) for word, value in NUMBER_WORDS)


def clamp_severity(value: float) -> int:
	return int(round(min(SEVERITY_MAX, max(SEVERITY_MIN, value))))


def band_word_severity(text: str) -> Optional[int]:
	lowered = str(text or "").lower()
	for pattern, value in BAND_WORDS:
		if pattern.search(lowered):
			return value
	return None


def parse_severity(value: Any) -> Optional[int]:
	"""Return a 1-10 severity parsed from free text, or None when nothing matches.

	Precedence, stopping at the first match: band words (mild, moderate, severe,
	worst/worse), "N/10", "N out of 10" / "N over 10", a bare 1-10 number, and
	finally a spelled-out number one..ten. Numeric inputs are clamped directly.
	"""
	if isinstance(value, bool):
		return None
	if isinstance(value, (int, float)):
		if math.isnan(value):
			return None
		return clamp_severity(value)

	text = str(value or "").lower().strip()
	if not text:
		return None

	band = band_word_severity(text)
	if band is not None:
		return band

	for pattern in (FRACTION_RE, OUT_OF_RE, DIGIT_RE):
		match = pattern.search(text)
		if match:
			return clamp_severity(int(match.group(1)))

	for pattern, number in NUMBER_WORD_RES:
		if pattern.search(text):
			return clamp_severity(number)
	return None
