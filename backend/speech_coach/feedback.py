"""
Feedback Synthesizer
====================

Scores a transcript and asks a hosted language model for coaching feedback.

The metrics are deterministic and computed locally:

- word count: whitespace-delimited tokens of the trimmed transcript
- speech rate: words per minute, rounded half-up
- fluency score: 100 - filler_ratio*50 - |wpm - 150|*0.2, clamped to [0, 100]

The model is asked for a JSON object ``{"delivery": [...], "content": [...]}``.
Its reply is parsed directly, then by extracting the first ``{...}`` block,
and finally replaced by a static fallback so a formatting slip never fails
the request.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .gateway_client import ChatGatewayClient

logger = logging.getLogger(__name__)

IDEAL_WPM = 150
FILLER_PENALTY_WEIGHT = 50
PACE_PENALTY_PER_WPM = 0.2

FALLBACK_DELIVERY: List[str] = [
	"Practice maintaining a steady pace throughout your speech",
	"Consider varying your tone to emphasize key points",
	"Work on reducing hesitation and building confidence",
]
FALLBACK_CONTENT: List[str] = [
	"Your main points could be more clearly structured",
	"Consider adding specific examples to support your ideas",
	"Try to maintain focus on your central message",
]


def _round_half_up(value: float) -> int:
	return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class SpeechMetrics:
	word_count: int
	speech_rate_wpm: int
	fluency_score: float
	filler_word_count: int

	def to_response(self) -> Dict[str, Any]:
		return {
			"fluencyScore": _round_half_up(self.fluency_score),
			"wordCount": self.word_count,
			"speechRate": self.speech_rate_wpm,
			"fillerWordCount": self.filler_word_count,
		}


def compute_metrics(transcript: str, duration_seconds: float, filler_word_count: int) -> SpeechMetrics:
	words = transcript.split()
	word_count = len(words)
	if word_count == 0:
		raise ValueError("Transcript cannot be empty")
	if duration_seconds <= 0:
		raise ValueError("Duration must be positive")
	speech_rate = _round_half_up(word_count / duration_seconds * 60)
	filler_ratio = filler_word_count / word_count
	raw = 100 - filler_ratio * FILLER_PENALTY_WEIGHT - abs(speech_rate - IDEAL_WPM) * PACE_PENALTY_PER_WPM
	fluency = max(0.0, min(100.0, raw))
	return SpeechMetrics(
		word_count=word_count,
		speech_rate_wpm=speech_rate,
		fluency_score=fluency,
		filler_word_count=int(filler_word_count),
	)


@dataclass(frozen=True)
class FeedbackReport:
	delivery: List[str] = field(default_factory=list)
	content: List[str] = field(default_factory=list)
	is_fallback: bool = False

	def to_response(self) -> Dict[str, List[str]]:
		return {"delivery": list(self.delivery), "content": list(self.content)}


def fallback_feedback() -> FeedbackReport:
	return FeedbackReport(delivery=list(FALLBACK_DELIVERY), content=list(FALLBACK_CONTENT), is_fallback=True)


def _extract_json_block(text: str) -> Dict[str, Any]:
	"""Extract a JSON object from LLM response text.

	Parses the whole text first, then the first brace-delimited block (models
	sometimes wrap JSON in prose or code fences).

	Raises:
		ValueError: If no JSON object can be extracted from the text
	"""
	try:
		data = json.loads(text)
		if isinstance(data, dict):
			return data
	except Exception:
		pass
	decoder = json.JSONDecoder()
	start = (text or "").find("{")
	while start != -1:
		try:
			data, _ = decoder.raw_decode(text, start)
			if isinstance(data, dict):
				return data
		except ValueError:
			pass
		start = text.find("{", start + 1)
	raise ValueError("Failed to parse JSON from model output")


def _string_list(value: Any) -> Optional[List[str]]:
	if not isinstance(value, list):
		return None
	items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
	return items or None


def parse_feedback(raw: str) -> FeedbackReport:
	try:
		data = _extract_json_block(raw)
	except ValueError:
		logger.warning("Failed to parse AI response as JSON, using default feedback")
		return fallback_feedback()
	delivery = _string_list(data.get("delivery"))
	content = _string_list(data.get("content"))
	if delivery is None or content is None:
		logger.warning("AI response JSON missing delivery/content lists, using default feedback")
		return fallback_feedback()
	return FeedbackReport(delivery=delivery, content=content)


SYSTEM_PROMPT = """
You are a professional speech coach providing constructive feedback.
Analyze the transcript and provide specific, actionable feedback in two categories:
1. Delivery Feedback: pace, tone, energy, pauses
2. Content Feedback: clarity, structure, engagement, key points

Format your response as JSON with this structure:
{
  "delivery": ["point 1", "point 2", "point 3"],
  "content": ["point 1", "point 2", "point 3"]
}

Keep each point concise (1-2 sentences) and constructive.
""".strip()

SCENARIO_INSTRUCTIONS = """
The speaker was responding to this conversation scenario:
"{prompt}"

Judge whether the response suited that specific situation: did it answer what
was asked, with a tone and level of detail that fit the setting? Refer to the
scenario in your content feedback rather than commenting on speech quality in
the abstract.
""".strip()


def build_messages(
	transcript: str,
	duration_seconds: float,
	metrics: SpeechMetrics,
	scenario_prompt: Optional[str] = None,
) -> List[Dict[str, str]]:
	system = SYSTEM_PROMPT
	if scenario_prompt:
		system = f"{system}\n\n{SCENARIO_INSTRUCTIONS.format(prompt=scenario_prompt)}"
	lines = [
		f'Speech transcript: "{transcript}"',
		f"Duration: {duration_seconds:g} seconds",
		f"Word count: {metrics.word_count}",
		f"Speech rate: {metrics.speech_rate_wpm} words/minute",
		f"Filler words: {metrics.filler_word_count}",
	]
	if scenario_prompt:
		lines.append(f'Scenario prompt: "{scenario_prompt}"')
	lines.append("")
	lines.append("Please analyze this speech and provide feedback.")
	return [
		{"role": "system", "content": system},
		{"role": "user", "content": "\n".join(lines)},
	]


@dataclass(frozen=True)
class AnalysisResult:
	metrics: SpeechMetrics
	feedback: FeedbackReport

	def to_response(self) -> Dict[str, Any]:
		return {"metrics": self.metrics.to_response(), "feedback": self.feedback.to_response()}


class FeedbackSynthesizer:
	def __init__(self, gateway: ChatGatewayClient) -> None:
		self._gateway = gateway

	async def analyze(
		self,
		transcript: str,
		duration_seconds: float,
		filler_word_count: int,
		scenario_prompt: Optional[str] = None,
	) -> AnalysisResult:
		metrics = compute_metrics(transcript.strip(), duration_seconds, filler_word_count)
		messages = build_messages(transcript, duration_seconds, metrics, scenario_prompt)
		raw = await self._gateway.complete(messages)
		logger.info("AI response received (%d chars)", len(raw))
		return AnalysisResult(metrics=metrics, feedback=parse_feedback(raw))
