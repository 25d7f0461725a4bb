# services/claims_service.py
import asyncio
import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import settings
from schemas.stance import (
    NO_INFORMATION,
    POLITICAL_ISSUES,
    PoliticalIssue,
    PoliticalStance,
    find_issue,
    no_information_stance,
)
from services.exceptions import AnalysisError, StanceParseError
from services.openai_service import OpenAIService

logger = logging.getLogger(__name__)

INVALID_MARKER = "INVALID"
MAX_NAME_LENGTH = 100


def get_current_date_string() -> str:
    """Get the current date formatted for prompt injection."""
    return datetime.now().strftime("%B %d, %Y")


NAME_CORRECTION_SYSTEM_PROMPT = """
You validate names of political candidates and elected officials.

You will receive free text that is meant to be the name of a politician. It may be
misspelled, partial (last name only), lowercased or use a nickname.

If it clearly refers to one real political candidate or officeholder, reply with that
person's full canonical name only (for example "Joseph R. Biden" -> "Joe Biden",
"aoc" -> "Alexandria Ocasio-Cortez").

If it does not refer to a real political figure, is ambiguous between several people,
or is not a name at all, reply with exactly: INVALID

Reply with the name or INVALID and nothing else.
"""

STANCE_ANALYSIS_SYSTEM_PROMPT_TEMPLATE = """
You are a non-partisan political analyst.

IMPORTANT: Today's date is {current_date}. Your training data may be outdated.
Describe the candidate's most recent publicly known positions. Sources will be
found separately by a web search, so DO NOT make up URLs.

For each issue in the "issues" list, summarize the candidate's stance in 1-3 neutral,
factual sentences that name concrete positions, votes or proposals.
If you do not know the candidate's position on an issue, use exactly "{no_information}"
as the stance.
For every stance also rate how confident you are that it reflects the candidate's
current position (0-100) and give one sentence of reasoning for that rating.

Return ONLY a JSON array with one object per issue, in the given order:

[
  {{
    "issue": string (copied exactly from the issues list),
    "stance": string,
    "confidence": integer 0-100,
    "reasoning": string
  }}
]
"""

SINGLE_ISSUE_SYSTEM_PROMPT_TEMPLATE = """
You are a non-partisan political analyst.

IMPORTANT: Today's date is {current_date}. Your training data may be outdated.
Describe the candidate's most recent publicly known position on the given issue in
1-3 neutral, factual sentences. DO NOT make up URLs.
If you do not know the candidate's position, use exactly "{no_information}" as the stance.
Also rate your confidence in the stance (0-100) and give one sentence of reasoning.

Return ONLY a single JSON object:

{{
  "issue": string (copied exactly from the request),
  "stance": string,
  "confidence": integer 0-100,
  "reasoning": string
}}
"""


# ----------------------------
# Tolerant JSON parsing
# ----------------------------

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_BARE_WORD = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def _outermost_json(text: str) -> str:
    starts = [i for i in (text.find("["), text.find("{")) if i != -1]
    if not starts:
        raise StanceParseError("No JSON found in model output")
    start = min(starts)
    closer = "]" if text[start] == "[" else "}"
    end = text.rfind(closer)
    if end <= start:
        raise StanceParseError("Model output has an unterminated JSON value")
    return text[start:end + 1]


def _next_significant(text: str, start: int) -> str:
    while start < len(text) and text[start].isspace():
        start += 1
    return text[start:start + 1]


def _repair(text: str) -> str:
    """
    Fix trailing commas, curly-quote delimiters and bare object keys.

    Only the JSON structure is rewritten. The contents of string literals are
    copied as-is, so prose like `namely: ...` or `“a scam”` inside a stance
    survives.
    """
    out: List[str] = []
    prev = ""
    i = 0
    while i < len(text):
        ch = text[i]

        if ch in '"“':
            closers = '"' if ch == '"' else '"”'
            j = i + 1
            while j < len(text) and text[j] not in closers:
                j += 2 if text[j] == "\\" else 1
            if j >= len(text):
                out.append(text[i:])
                break
            out.append('"' + text[i + 1:j] + '"')
            prev = '"'
            i = j + 1
            continue

        if ch == "," and _next_significant(text, i + 1) in ("]", "}"):
            i += 1
            continue

        word = _BARE_WORD.match(text, i)
        if word:
            key = prev in ("{", ",") and _next_significant(text, word.end()) == ":"
            out.append(f'"{word.group()}"' if key else word.group())
            prev = word.group()[-1]
            i = word.end()
            continue

        out.append(ch)
        if not ch.isspace():
            prev = ch
        i += 1
    return "".join(out)


def parse_model_json(raw: str) -> Any:
    """
    Parse JSON out of a model reply.

    Tries, in order: the reply as-is (minus markdown fences), a repaired copy
    (trailing commas, smart quotes, unquoted keys), and finally the repaired
    copy with all lines joined, which fixes raw newlines inside strings.
    """
    cleaned = _FENCE.sub("", raw or "").strip()
    if not cleaned:
        raise StanceParseError("Model returned an empty response")

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    candidate = _outermost_json(cleaned)
    try:
        return json.loads(_repair(candidate))
    except json.JSONDecodeError as e:
        logger.warning(f"Repaired model JSON still invalid ({e}), retrying with joined lines")

    joined = " ".join(line.strip() for line in candidate.splitlines())
    try:
        return json.loads(_repair(joined))
    except json.JSONDecodeError as e:
        raise StanceParseError(f"Model returned invalid JSON: {e}") from e


def _stance_items(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        if isinstance(data.get("stances"), list):
            data = data["stances"]
        elif "issue" in data:
            data = [data]
    if not isinstance(data, list):
        raise StanceParseError("Expected a JSON array of stances")
    return [item for item in data if isinstance(item, dict)]


def _confidence(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        score = round(float(str(value).strip().rstrip("%")))
    except (TypeError, ValueError, OverflowError):
        return None
    return min(max(score, 0), 100)


def parse_stances(raw: str) -> List[PoliticalStance]:
    """
    Turn a model reply into exactly one stance per fixed issue, in issue order.

    Unknown issues are dropped and missing ones become "No Information Found".
    Any sources the model invented are discarded; real ones come from search.
    """
    by_issue: Dict[str, PoliticalStance] = {}
    for item in _stance_items(parse_model_json(raw)):
        issue = find_issue(str(item.get("issue", "")))
        if issue is None:
            logger.warning(f"Dropping stance for unknown issue: {item.get('issue')!r}")
            continue
        if issue.name in by_issue:
            continue
        text = str(item.get("stance") or "").strip() or NO_INFORMATION
        if text.lower() == NO_INFORMATION.lower():
            by_issue[issue.name] = no_information_stance(issue.name)
            continue
        by_issue[issue.name] = PoliticalStance(
            issue=issue.name,
            stance=text,
            sources=[],
            confidence=_confidence(item.get("confidence")),
            reasoning=str(item.get("reasoning") or "").strip() or None,
        )

    if not by_issue:
        raise StanceParseError("Model output did not contain any known issue")

    return [by_issue.get(issue.name) or no_information_stance(issue.name) for issue in POLITICAL_ISSUES]


def parse_corrected_name(raw: str) -> Optional[str]:
    lines = (raw or "").strip().splitlines()
    name = lines[0].strip().strip("\"'`.").strip() if lines else ""
    if not name or name.upper() == INVALID_MARKER or len(name) > MAX_NAME_LENGTH:
        return None
    return name


class ClaimsService:
    """Ask the model who the candidate is and what they stand for."""

    def __init__(self, llm: OpenAIService, *, per_issue: bool = settings.PER_ISSUE_ANALYSIS):
        self._llm = llm
        self.per_issue = per_issue

    async def correct_candidate_name(self, name: str) -> Optional[str]:
        """Return the canonical full name, or None when the model says INVALID."""
        try:
            raw = await self._llm.run_text_analysis(
                system_prompt=NAME_CORRECTION_SYSTEM_PROMPT,
                user_payload={"name": name},
                temperature=0,
            )
        except Exception as e:
            logger.error(f"Name correction failed for {name!r}: {e}")
            raise AnalysisError("Failed to validate candidate name") from e

        corrected = parse_corrected_name(raw)
        if corrected is None:
            logger.info(f"Name correction rejected {name!r}")
        elif corrected != name:
            logger.info(f"Name correction: {name!r} -> {corrected!r}")
        return corrected

    async def generate_stances(self, candidate_name: str) -> List[PoliticalStance]:
        if self.per_issue:
            return await self._generate_per_issue(candidate_name)

        system_prompt = STANCE_ANALYSIS_SYSTEM_PROMPT_TEMPLATE.format(
            current_date=get_current_date_string(),
            no_information=NO_INFORMATION,
        )
        try:
            raw = await self._llm.run_text_analysis(
                system_prompt=system_prompt,
                user_payload={
                    "candidate": candidate_name,
                    "issues": [
                        {"issue": issue.name, "description": issue.description}
                        for issue in POLITICAL_ISSUES
                    ],
                },
            )
        except Exception as e:
            logger.error(f"Stance analysis failed for {candidate_name}: {e}")
            raise AnalysisError("Failed to analyze political stances") from e

        return parse_stances(raw)

    async def _generate_one(self, candidate_name: str, issue: PoliticalIssue) -> PoliticalStance:
        system_prompt = SINGLE_ISSUE_SYSTEM_PROMPT_TEMPLATE.format(
            current_date=get_current_date_string(),
            no_information=NO_INFORMATION,
        )
        raw = await self._llm.run_text_analysis(
            system_prompt=system_prompt,
            user_payload={
                "candidate": candidate_name,
                "issue": issue.name,
                "description": issue.description,
            },
        )
        stances = parse_stances(raw)
        return next(s for s in stances if s.issue == issue.name)

    async def _generate_per_issue(self, candidate_name: str) -> List[PoliticalStance]:
        # Only this stage fans out; source verification stays sequential
        results = await asyncio.gather(
            *(self._generate_one(candidate_name, issue) for issue in POLITICAL_ISSUES),
            return_exceptions=True,
        )

        stances = []
        failures = 0
        for issue, result in zip(POLITICAL_ISSUES, results):
            if isinstance(result, Exception):
                failures += 1
                logger.warning(f"Analysis for {issue.name} is not available: {result}")
                stances.append(no_information_stance(issue.name))
            else:
                stances.append(result)

        if failures == len(POLITICAL_ISSUES):
            raise AnalysisError("Failed to analyze political stances")
        return stances
