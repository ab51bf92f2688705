"""Assistant modes and keyword-based mode detection.

Detection lower-cases the message and scans MODE_KEYWORDS in table order;
the first mode with a substring hit wins. Keyword sets overlap (for example
"compensation" is in both claims and finance, "c&p exam" in both claims and
document review), so precedence is the table order, not a partition.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AssistantMode(str, Enum):
    GENERAL_SUPPORT = "general_support"
    CLAIMS = "claims_mode"
    TRANSITION = "transition_mode"
    DOCUMENT = "document_mode"
    MENTAL_HEALTH = "mental_health_mode"
    EDUCATION = "education_mode"
    CAREER = "career_mode"
    FINANCE = "finance_mode"
    HOUSING = "housing_mode"
    SURVIVOR = "survivor_mode"
    TRAINING = "training_mode"


@dataclass(frozen=True)
class ModeInfo:
    title: str
    description: str
    label: str  # used in disambiguation prompts


MODES: dict[AssistantMode, ModeInfo] = {
    AssistantMode.GENERAL_SUPPORT: ModeInfo(
        "General Support Assistant",
        "Provides general veteran support and guidance across all areas",
        "general support",
    ),
    AssistantMode.CLAIMS: ModeInfo(
        "Claims Assistant", "Step-by-step guidance through VA disability claims", "VA claims"
    ),
    AssistantMode.TRANSITION: ModeInfo(
        "Transition & TAP Guidance",
        "Supports veterans during the military-to-civilian transition",
        "transition support",
    ),
    AssistantMode.DOCUMENT: ModeInfo(
        "Document Review Assistant",
        "Summarizes and interprets uploaded VA documents",
        "general support",
    ),
    AssistantMode.MENTAL_HEALTH: ModeInfo(
        "Mental Health Support",
        "Offers trauma-informed peer support and mental health claims guidance",
        "mental health support",
    ),
    AssistantMode.EDUCATION: ModeInfo(
        "Education & GI Bill Support",
        "Explains how to access and use VA education benefits",
        "education benefits",
    ),
    AssistantMode.CAREER: ModeInfo(
        "Career & Job Readiness", "Helps veterans prepare for employment", "career guidance"
    ),
    AssistantMode.FINANCE: ModeInfo(
        "Financial Planning",
        "Helps veterans understand disability compensation and budgeting",
        "financial planning",
    ),
    AssistantMode.HOUSING: ModeInfo(
        "Housing & VA Home Loans",
        "Explains VA loan process and housing considerations",
        "housing benefits",
    ),
    AssistantMode.SURVIVOR: ModeInfo(
        "Survivor & Dependent Benefits",
        "Supports dependents and survivors with DIC and related benefits",
        "survivor benefits",
    ),
    AssistantMode.TRAINING: ModeInfo(
        "VA Claims Training Assistant",
        "Educates both veterans and staff on VA claims, benefits, and self-advocacy",
        "VSO training",
    ),
}

# Order matters: first match wins.
MODE_KEYWORDS: tuple[tuple[AssistantMode, tuple[str, ...]], ...] = (
    (
        AssistantMode.CLAIMS,
        (
            "claim", "claims", "file a claim", "filing claim", "disability claim", "va claim",
            "rating", "disability rating", "service connection", "c&p exam", "compensation",
            "appeal", "appeals", "evidence", "nexus", "medical evidence", "service records",
            "rating decision", "denied claim", "increase rating", "secondary condition",
            "presumptive", "direct service connection", "aggravation", "dbq",
        ),
    ),
    (
        AssistantMode.MENTAL_HEALTH,
        (
            "ptsd", "mental health", "depression", "anxiety", "trauma", "mst",
            "military sexual trauma", "counseling", "therapy", "psychiatric", "psychological",
            "suicide", "crisis", "mental health claim", "ptsd claim", "counselor", "psychiatrist",
        ),
    ),
    (
        AssistantMode.EDUCATION,
        (
            "gi bill", "education", "school", "college", "university", "degree", "vr&e",
            "chapter 31", "chapter 33", "vocational rehabilitation", "education benefits",
            "tuition", "bah", "housing allowance", "yellow ribbon", "stem scholarship",
        ),
    ),
    (
        AssistantMode.CAREER,
        (
            "job", "career", "employment", "work", "resume", "interview", "hiring",
            "linkedin", "skills", "translate military experience", "civilian job",
            "federal employment", "usajobs", "veteran preference",
        ),
    ),
    (
        AssistantMode.FINANCE,
        (
            "pay", "payment", "compensation", "money", "budget", "financial", "back pay",
            "effective date", "offset", "debt", "overpayment", "direct deposit",
            "disability pay", "va pay", "payment schedule",
        ),
    ),
    (
        AssistantMode.HOUSING,
        (
            "home loan", "va loan", "mortgage", "house", "housing", "coe",
            "certificate of eligibility", "real estate", "buying house", "refinance",
            "property", "home buying",
        ),
    ),
    (
        AssistantMode.SURVIVOR,
        (
            "survivor", "dependent", "spouse", "widow", "widower", "dic",
            "dependency compensation", "champva", "survivor benefits", "death benefits",
            "accrued benefits", "children benefits", "family benefits",
        ),
    ),
    (
        AssistantMode.TRANSITION,
        (
            "transition", "separation", "discharge", "leaving military", "civilian life",
            "tap", "transition assistance", "ets", "retirement", "getting out",
        ),
    ),
    (
        AssistantMode.DOCUMENT,
        (
            "document", "letter", "rating decision", "c&p exam", "dbq", "medical records",
            "analyze", "review", "explain", "what does this mean", "help me understand",
            "uploaded", "attachment",
        ),
    ),
    (
        AssistantMode.TRAINING,
        (
            "train", "training", "teach", "learn", "how does", "explain how",
            "vso training", "help other veterans", "understand the process",
        ),
    ),
)


def _matches(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def detect_mode(text: str) -> AssistantMode | None:
    """Return the first mode whose keywords occur in *text*, or None."""
    lowered = text.lower()
    for mode, keywords in MODE_KEYWORDS:
        if _matches(lowered, keywords):
            return mode
    return None


def possible_modes(text: str) -> list[AssistantMode]:
    """Return every mode with at least one keyword hit, in table order."""
    lowered = text.lower()
    return [mode for mode, keywords in MODE_KEYWORDS if _matches(lowered, keywords)]


def disambiguation_message(modes: list[AssistantMode]) -> str:
    """Ask the user which of several matching topics to focus on."""
    labels = [MODES[AssistantMode(m)].label for m in modes]
    if len(labels) == 2:
        return (
            f"I can help you with both {labels[0]} and {labels[1]}. "
            "Which would you like to focus on first?"
        )
    if len(labels) > 2:
        return (
            f"I can help you with several topics including {', '.join(labels)}. "
            "Which area would you like to focus on?"
        )
    return "How can I help you today?"
