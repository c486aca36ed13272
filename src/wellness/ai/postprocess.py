"""
Cleaning and validation of generated insight text.

normalize_text → sanitize_text → validate_insight is applied after every
model call. Validation returns a list of violations rather than a bool so the
orchestrator can log why a draft was rejected.

Action counting is a heuristic: when the model ignores the line-per-action
instruction and writes one paragraph, the paragraph is split on sentence
punctuation. Abbreviations like "e.g." will miscount.
"""
import logging
import re
from typing import List, Optional

from wellness.ai.contract import InsightContract
from wellness.analysis.scoring import RISK_INSUFFICIENT_DATA
from wellness.prompts.insight import InsightPrompt

logger = logging.getLogger(__name__)

LENGTH_FINISH_REASONS = ("length", "max_tokens")
_UNTERMINATED_SUFFIXES = (":", "-", "–", "—")

_RE_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*$", re.MULTILINE)
_RE_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+", re.MULTILINE)
_RE_BOLD = re.compile(r"\*\*(.*?)\*\*")
_RE_INLINE_CODE = re.compile(r"`([^`]*)`")
_RE_LIST_NUM = re.compile(r"^\s*\d+[.)]\s+", re.MULTILINE)
_RE_LIST_DASH = re.compile(r"^\s*[-•*]\s+", re.MULTILINE)
_RE_MULTI_SPACE = re.compile(r"[ \t]{2,}")
_RE_SENTENCE = re.compile(r"[^.!?]+[.!?]+|[^.!?]+$")


def collapse_blank_lines(text: str) -> str:
    """Trim every line and keep at most one blank line in a row."""
    out: List[str] = []
    empty = 0
    for ln in text.replace("\r\n", "\n").split("\n"):
        ln = ln.strip()
        if not ln:
            empty += 1
            if empty > 1:
                continue
            out.append("")
            continue
        empty = 0
        out.append(ln)
    return "\n".join(out).strip()


def strip_reasoning(text: str, contract: InsightContract) -> str:
    """
    Drop reasoning blocks.

    When a closing marker is present, only the text after the last one is
    kept (if non-empty); otherwise stray markers are removed in place.
    """
    text = text.strip()
    if not text:
        return text

    low = text.lower()
    close = contract.reasoning_close.lower()
    idx = low.rfind(close)
    if idx != -1:
        after = text[idx + len(close):].strip()
        if after:
            return after

    for marker in (contract.reasoning_open, contract.reasoning_close):
        text = re.sub(re.escape(marker), "", text, flags=re.IGNORECASE)
    return text.strip()


def _cut_preamble(text: str, contract: InsightContract) -> str:
    """Start the text at the first section header line, if there is one."""
    first = contract.section_headers[0]
    if text.startswith(first + "\n") or text == first:
        return text
    m = re.search(rf"^{re.escape(first)}\s*$", text, flags=re.MULTILINE)
    if m:
        return text[m.start():]
    return text


def normalize_text(text: str, contract: InsightContract) -> str:
    """Reduce raw model output to plain text in the block layout."""
    s = strip_reasoning(text or "", contract)
    if not s:
        return ""

    s = _RE_CODE_FENCE.sub("", s)
    s = _RE_HEADING.sub("", s)
    s = _RE_BOLD.sub(r"\1", s)
    s = _RE_INLINE_CODE.sub(r"\1", s)
    s = s.replace("**", "").replace("__", "")
    s = _RE_LIST_NUM.sub("", s)
    s = _RE_LIST_DASH.sub("", s)
    s = s.replace("*", "").replace("_", "")
    s = _RE_MULTI_SPACE.sub(" ", s)

    s = collapse_blank_lines(s)
    return _cut_preamble(s, contract)


def counts_are_sufficient(p: InsightPrompt, contract: InsightContract) -> bool:
    return (
        p.num_points >= contract.claims_min_points
        and p.effective_observed_days >= contract.claims_min_observed_days
    )


def _mentions_insufficient(line: str, contract: InsightContract) -> bool:
    low = line.lower().replace(contract.disclaimer.lower(), "")
    return any(phrase in low for phrase in contract.insufficient_phrases)


def sanitize_text(text: str, p: InsightPrompt, contract: InsightContract) -> str:
    """
    Drop lines the model must not say.

    Removes lines with banned pseudo-medical terms or leaked reasoning
    tokens. Once the data is rich enough, lines claiming it is not are
    dropped as well.
    """
    banned = tuple(t.lower() for t in contract.banned_terms + contract.leak_tokens)
    drop_insufficient = counts_are_sufficient(p, contract)

    kept: List[str] = []
    for ln in (text or "").strip().split("\n"):
        low = ln.lower()
        if any(b in low for b in banned):
            logger.debug("Dropping banned line: %s", ln[:80])
            continue
        if drop_insufficient and _mentions_insufficient(ln, contract):
            logger.debug("Dropping insufficient-data line: %s", ln[:80])
            continue
        kept.append(ln)

    return collapse_blank_lines("\n".join(kept))


def is_truncated(finish_reason: Optional[str], text: str) -> bool:
    """True if the provider hit its length limit or the text ends mid-clause."""
    if (finish_reason or "").strip().lower() in LENGTH_FINISH_REASONS:
        return True
    last = (text or "").strip()
    if not last:
        return False
    return last.endswith(_UNTERMINATED_SUFFIXES)


def _header_positions(text: str, contract: InsightContract) -> List[int]:
    """Line index of each header (-1 when absent)."""
    lines = text.split("\n")
    positions = []
    for header in contract.section_headers:
        try:
            positions.append(lines.index(header))
        except ValueError:
            positions.append(-1)
    return positions


def extract_section(text: str, header: str, contract: InsightContract) -> str:
    """Body of one block: lines after its header up to the next known header."""
    lines = text.split("\n")
    try:
        start = lines.index(header) + 1
    except ValueError:
        return ""

    others = set(contract.section_headers) - {header}
    end = len(lines)
    for i in range(start, len(lines)):
        if lines[i] in others:
            end = i
            break
    return "\n".join(lines[start:end]).strip()


def split_actions(block: str) -> List[str]:
    """
    One action per non-empty line; a single-line block is split into sentences.
    """
    lines = [ln.strip() for ln in block.split("\n") if ln.strip()]
    if len(lines) == 1:
        return [m.strip() for m in _RE_SENTENCE.findall(lines[0]) if m.strip()]
    return lines


def _names_risk_level(text: str, contract: InsightContract) -> bool:
    words = "|".join(re.escape(w) for w in contract.risk_level_words)
    pattern = (
        rf"\b(?:{words})\b[\s-]+(?:burnout\s+)?risk\b"
        rf"|\brisk\s+(?:level\s+)?(?:is\s+)?(?:{words})\b"
    )
    return re.search(pattern, text, flags=re.IGNORECASE) is not None


def validate_insight(text: str, p: InsightPrompt, contract: InsightContract) -> List[str]:
    """
    Check a cleaned draft against the contract.

    Returns:
        List of human-readable violations; empty when the draft is acceptable.
    """
    t = (text or "").strip()
    if not t:
        return ["empty text"]

    violations: List[str] = []

    positions = _header_positions(t, contract)
    for header, pos in zip(contract.section_headers, positions):
        if pos < 0:
            violations.append(f"missing section header: {header}")
    found = [pos for pos in positions if pos >= 0]
    if found != sorted(found):
        violations.append("section headers out of order")

    if p.burnout_level == RISK_INSUFFICIENT_DATA:
        if contract.disclaimer not in t:
            violations.append("missing disclaimer sentence")
        # Quoted notes are the user's own words, not a risk claim
        burnout_block = "\n".join(
            ln for ln in extract_section(t, contract.burnout_section, contract).split("\n")
            if not ln.startswith(contract.notes_marker)
        ).replace(contract.disclaimer, "")
        level_words = "|".join(re.escape(w) for w in contract.risk_level_words)
        if _names_risk_level(t, contract) or re.search(
            rf"\b(?:{level_words})\b", burnout_block, flags=re.IGNORECASE
        ):
            violations.append("risk level named while data is insufficient")
    elif contract.disclaimer in t:
        violations.append("disclaimer present although risk level is known")

    if counts_are_sufficient(p, contract) and _mentions_insufficient(t, contract):
        violations.append("claims insufficient data despite sufficient counts")

    low = t.lower()
    leaked = [tok for tok in contract.leak_tokens + contract.banned_terms if tok.lower() in low]
    if leaked:
        violations.append(f"banned tokens present: {', '.join(leaked)}")

    actions_block = extract_section(t, contract.actions_section, contract)
    actions = split_actions(actions_block) if actions_block else []
    if len(actions) != contract.required_actions:
        violations.append(
            f"expected {contract.required_actions} actions, found {len(actions)}"
        )

    if p.user_notes.strip() and contract.notes_marker not in t:
        violations.append("notes not referenced")

    return violations


def is_valid_insight(text: str, p: InsightPrompt, contract: InsightContract) -> bool:
    return not validate_insight(text, p, contract)
