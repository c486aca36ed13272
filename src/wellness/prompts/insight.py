"""
Insight prompt builder.

Renders a WellnessReport into the plain key=value payload the text model
reads, plus the system, continuation and repair instructions. The rules in
the system prompt are rendered from the same InsightContract the validator
enforces, so the two cannot drift apart.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from wellness.ai.contract import InsightContract
from wellness.analysis.report import WellnessReport
from wellness.analysis.schedule import OptimalSchedule, observed_hours_list

LONG_PERIODS = ("month", "all")


@dataclass(frozen=True)
class InsightPrompt:
    """Everything the narrative request needs. Built once per analysis."""
    period: str
    user_tz: str
    period_start: Optional[datetime]
    period_end: Optional[datetime]

    num_points: int
    num_observed_weekdays: int
    num_observed_days: int
    observed_weekdays: Tuple[str, ...]
    energy_by_weekday: Dict[str, float]

    productivity_score: float
    burnout_score: float
    burnout_level: str
    burnout_reasons: Tuple[str, ...]

    averages: Dict[str, float] = field(default_factory=dict)
    min_energy: float = 0.0
    max_energy: float = 0.0
    min_stress: float = 0.0
    max_stress: float = 0.0
    min_sleep_hours: float = 0.0
    max_sleep_hours: float = 0.0
    avg_sleep_start: str = ""
    avg_sleep_end: str = ""

    user_notes: str = ""
    energy_by_hour: Dict[int, float] = field(default_factory=dict)
    schedule: Optional[OptimalSchedule] = None

    @property
    def observed_weekdays_list(self) -> str:
        return ", ".join(self.observed_weekdays)

    @property
    def effective_observed_days(self) -> int:
        """Distinct calendar days, falling back to distinct weekdays."""
        return self.num_observed_days or self.num_observed_weekdays


def build_insight_prompt(
    report: WellnessReport,
    *,
    period: str = "all",
    user_tz: str = "UTC",
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
) -> InsightPrompt:
    """Freeze a WellnessReport into an InsightPrompt."""
    return InsightPrompt(
        period=period,
        user_tz=user_tz,
        period_start=period_start,
        period_end=period_end,
        num_points=report.num_points,
        num_observed_weekdays=len(report.energy_by_weekday),
        num_observed_days=report.num_observed_days,
        observed_weekdays=tuple(report.observed_weekdays),
        energy_by_weekday=dict(report.energy_by_weekday),
        productivity_score=report.productivity.score,
        burnout_score=report.burnout.score,
        burnout_level=report.burnout.level,
        burnout_reasons=tuple(report.burnout.reasons),
        averages=dict(report.averages),
        min_energy=report.energy.min,
        max_energy=report.energy.max,
        min_stress=report.stress.min,
        max_stress=report.stress.max,
        min_sleep_hours=report.sleep_hours.min,
        max_sleep_hours=report.sleep_hours.max,
        avg_sleep_start=report.avg_sleep_start,
        avg_sleep_end=report.avg_sleep_end,
        user_notes=report.notes,
        energy_by_hour=dict(report.energy_by_hour),
        schedule=report.schedule,
    )


def _top_weekdays(energy: Dict[str, float], k: int, desc: bool) -> List[str]:
    ranked = sorted(energy.items(), key=lambda kv: kv[1], reverse=desc)[:k]
    return [f"{day} ({value:.1f})" for day, value in ranked]


def render_insight_prompt(p: InsightPrompt) -> str:
    """
    Build the user-turn payload for the insight request.

    Returns:
        Plain-text key=value block. Absence of a weekday means no data,
        which the payload states explicitly.
    """
    avg = p.averages
    lines = [
        "Aggregated metrics for the person. Missing data does NOT mean low energy.",
        "",
        f"period={p.period}",
        f"user_tz={p.user_tz}",
    ]
    if p.period_start and p.period_end:
        lines.append(
            f"period_range={p.period_start.strftime('%Y-%m-%d')}..{p.period_end.strftime('%Y-%m-%d')}"
        )

    lines += [
        "",
        f"num_points={p.num_points}",
        f"num_observed_days={p.num_observed_days}",
        f"num_observed_weekdays={p.num_observed_weekdays}",
        f"observed_weekdays={p.observed_weekdays_list}",
        f"energy_by_weekday_json={json.dumps(p.energy_by_weekday, ensure_ascii=False)}",
        f"top_weekdays={', '.join(_top_weekdays(p.energy_by_weekday, 2, True))}",
        f"bottom_weekdays={', '.join(_top_weekdays(p.energy_by_weekday, 2, False))}",
        "",
        f"avg_sleep_hours={avg.get('sleep_hours', 0):.2f} "
        f"(min {p.min_sleep_hours:.2f}, max {p.max_sleep_hours:.2f})",
        f"avg_sleep_quality={avg.get('sleep_quality', 0):.2f}",
        f"avg_mood={avg.get('mood', 0):.2f}",
        f"avg_activity={avg.get('activity', 0):.2f}",
        f"avg_productive={avg.get('productive', 0):.2f}",
        f"avg_stress={avg.get('stress', 0):.2f} (min {p.min_stress:.2f}, max {p.max_stress:.2f})",
        f"avg_energy={avg.get('energy', 0):.2f} (min {p.min_energy:.2f}, max {p.max_energy:.2f})",
        f"avg_concentration={avg.get('concentration', 0):.2f}",
    ]
    if p.avg_sleep_start:
        lines.append(f"avg_sleep_start={p.avg_sleep_start}")
    if p.avg_sleep_end:
        lines.append(f"avg_sleep_end={p.avg_sleep_end}")

    lines += [
        "",
        f"productivity_score={p.productivity_score:.2f}",
        f"burnout_score={p.burnout_score:.2f}",
        f"burnout_level={p.burnout_level}",
        f"burnout_reasons={'; '.join(p.burnout_reasons)}",
    ]

    if p.schedule is not None:
        s = p.schedule
        lines += [
            "",
            f"num_observed_hours={len(p.energy_by_hour)}",
            f"observed_hours={observed_hours_list(p.energy_by_hour)}",
            f"suggested_sleep_window={s.suggested_sleep_window}",
            f"best_focus_hours={', '.join(s.best_focus_hours)}",
            f"best_light_tasks_hours={', '.join(s.best_light_tasks_hours)}",
            f"recovery_tips={' | '.join(s.recovery_tips)}",
        ]

    if p.user_notes.strip():
        lines += ["", "user_notes=", p.user_notes]

    lines += ["", "Answer strictly by the system prompt rules and in the required block format."]
    return "\n".join(lines)


def build_insight_system_prompt(contract: InsightContract, period: str = "all") -> str:
    """System prompt: an analyst writing a short, fact-bound summary."""
    headers = "\n".join(contract.section_headers)
    n_blocks = len(contract.section_headers)
    text = (
        "You are a strict analyst of habit, energy, productivity and burnout-risk data. "
        "Write a short, practical summary in English using ONLY facts from the input. "
        "Address the person directly as \"you\".\n"
        "\n"
        "RULES\n"
        "1) Output plain text only. No Markdown: no **, __, *, _, backticks, #, "
        "no '-' or '•' bullets and no '1.' numbering.\n"
        f"2) No reasoning blocks or notes to yourself: never output '{contract.reasoning_open}' "
        f"or '{contract.reasoning_close}'.\n"
        "3) Use only the weekdays present in the input. Missing data does NOT mean a low value.\n"
        "4) You may use user_notes as context and draw careful causal links only when the notes "
        "state them. Do not invent new causes.\n"
        f"5) If user_notes is not empty you MUST mention the notes in one sentence starting with "
        f"\"{contract.notes_marker}\" in the {contract.energy_section} or "
        f"{contract.burnout_section} block. Do not distort the notes.\n"
        "6) No medical claims or diagnoses, and no talk of hormones, glucose or other biology. "
        "Use cautious wording: \"may lower\", \"may have affected\", \"probably related to\".\n"
        f"7) If num_points < {contract.claims_min_points} or num_observed_days < "
        f"{contract.claims_min_observed_days}, do not invent trends, stability, drops, growth or "
        "cycles; only list the observed values and say the data is limited.\n"
        f"8) If num_points >= {contract.claims_min_points} and num_observed_days >= "
        f"{contract.claims_min_observed_days}, you must NOT say the data is insufficient or that "
        "the conclusion is preliminary.\n"
        "9) Never draw conclusions about periods without observations.\n"
        "10) Never call a value 'low' if it is above 60/100.\n"
        "11) If burnout_level = insufficient-data you MUST include this sentence verbatim:\n"
        f"'{contract.disclaimer}'\n"
        "and you must NOT call the risk low, medium or high or give any risk score.\n"
        "12) Do not contradict the input numbers. Do not change weekdays or values.\n"
        "13) If only one weekday is observed, do not write 'best/worst day'; only say "
        "'There is data only for <day>.'\n"
        "\n"
        "RESPONSE FORMAT (STRICT)\n"
        f"Exactly {n_blocks} blocks in this order. Each block starts with its own header line, "
        "with no colon:\n"
        f"{headers}\n"
        "\n"
        "After each header write 2-5 short sentences. Leave one blank line between blocks.\n"
        f"In \"{contract.actions_section}\" write exactly {contract.required_actions} concrete "
        "actions, one per line.\n"
        f"In \"{contract.burnout_section}\" give the level and one or two reasons from "
        "burnout_reasons, or the required sentence when the level is insufficient-data."
    )
    if period in LONG_PERIODS:
        text += (
            "\n\nThis summary covers a long period: compare weeks and weekdays rather than "
            "single check-ins, and mention the overall direction only when the data supports it."
        )
    return text


def build_continuation_prompt(contract: InsightContract, draft: str) -> str:
    """Ask the model to continue a cut-off answer without repeating it."""
    return (
        "Continue the answer from exactly where it stopped. Do not repeat what is already written.\n"
        "Output only the continuation, as plain text in English.\n"
        f"Follow every system prompt rule, including the {len(contract.section_headers)}-block format.\n"
        "Text already written:\n"
        f"{draft}"
    )


def build_repair_prompt(contract: InsightContract, p: InsightPrompt, draft: str) -> str:
    """Ask for a full rewrite, restating the aggregates the draft must respect."""
    headers = " / ".join(contract.section_headers)
    return (
        "Rewrite the answer so it strictly follows the system prompt rules and the block format.\n"
        "Do not add new facts, weekdays or values.\n"
        "Requirements:\n"
        f"- {len(contract.section_headers)} blocks with exactly these headers: {headers}\n"
        "- 2-5 short sentences in each block\n"
        f"- exactly {contract.required_actions} actions in \"{contract.actions_section}\", one per line\n"
        f"- if num_points >= {contract.claims_min_points} and num_observed_days >= "
        f"{contract.claims_min_observed_days}, do not say the data is insufficient or preliminary\n"
        f"- if burnout_level = insufficient-data, include verbatim: \"{contract.disclaimer}\"\n"
        + (f"- quote the notes in one sentence starting with \"{contract.notes_marker}\"\n"
           if p.user_notes.strip() else "")
        + "Return the FULL corrected text, not a continuation.\n"
        "\n"
        "INPUT AGGREGATES:\n"
        f"num_points={p.num_points}\n"
        f"num_observed_days={p.effective_observed_days}\n"
        f"observed_weekdays={p.observed_weekdays_list}\n"
        f"burnout_level={p.burnout_level}\n"
        "\n"
        "TEXT TO FIX:\n"
        f"{draft}"
    )
