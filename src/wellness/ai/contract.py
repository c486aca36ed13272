"""
Output contract for generated insights.

The section headers, the disclaimer sentence and the banned terms the
validator and sanitizer look for live in one frozen InsightContract that
is passed to the orchestrator. A different language or format is a different
contract instance, not an edit to module globals.
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class InsightContract:
    # Ordered; each must appear on its own line
    section_headers: Tuple[str, ...]
    energy_section: str
    burnout_section: str
    actions_section: str
    required_actions: int

    # Required verbatim iff burnout level is insufficient-data
    disclaimer: str
    # Prefix of the sentence quoting the user's notes
    notes_marker: str

    # Pseudo-medical vocabulary; lines containing these are dropped
    banned_terms: Tuple[str, ...]
    reasoning_open: str
    reasoning_close: str
    # Tokens that indicate leaked reasoning
    leak_tokens: Tuple[str, ...]

    # Phrases that claim data is too thin; forbidden once counts are sufficient
    insufficient_phrases: Tuple[str, ...]
    risk_level_words: Tuple[str, ...]

    claims_min_points: int = 5
    claims_min_observed_days: int = 5


DEFAULT_CONTRACT = InsightContract(
    section_headers=("Energy", "Burnout", "Actions for tomorrow", "What to track next"),
    energy_section="Energy",
    burnout_section="Burnout",
    actions_section="Actions for tomorrow",
    required_actions=3,
    disclaimer="Burnout risk is not yet known because there is not enough data.",
    notes_marker="Notes:",
    banned_terms=(
        "glucose",
        "hormon",
        "cortisol",
        "dopamine",
        "serotonin",
        "biorhythm",
        "biolog",
        "physiolog",
        "in the blood",
    ),
    reasoning_open="<think>",
    reasoning_close="</think>",
    leak_tokens=("<think>", "</think>", "<thinking>", "</thinking>", "reasoning:", "thoughts:"),
    insufficient_phrases=(
        "insufficient data",
        "not enough data",
        "too little data",
        "data is limited",
        "preliminary conclusion",
    ),
    risk_level_words=("low", "medium", "moderate", "high", "elevated"),
)
