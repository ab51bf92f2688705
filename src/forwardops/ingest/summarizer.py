"""Document summarizer — whole-document VSO analysis via LiteLLM.

Called once per ingestion after every chunk is stored. The analysis is
written to ``documents.summary`` when the document completes and is fed to
the chat context as a "Document analyses" entry.

The prompt is picked by document type (C&P exam, rating decision, DBQ or
generic). A failed or empty generation raises SummaryError so that a
document never reaches ``completed`` without its analysis.
"""

from __future__ import annotations

from pathlib import PurePath

import structlog

from forwardops.db.models import DocumentType
from forwardops.errors import SummaryError
from forwardops.rag.llm_client import PROVIDER_ERRORS, complete

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MODEL = "openai/gpt-4-turbo-preview"
_DEFAULT_MAX_TOKENS = 4_096
_DEFAULT_INPUT_CHARS = 24_000

_SYSTEM_PROMPT = (
    "You are ForwardOps AI, an experienced Veterans Service Officer (VSO) with deep "
    "knowledge of VA claims, regulations, and procedures. Follow the formatting "
    "structure given in the user prompt exactly. Always start with a brief, "
    "conversational summary before the detailed analysis. Write as a fellow veteran "
    "helping another veteran understand their documents, using a trauma-informed, "
    "respectful approach. For any section that does not apply to the document, omit "
    "it or write \"Does not apply\" under its heading. Provide a complete analysis; "
    "it is stored for future reference."
)

_RULES = """\
CRITICAL FORMATTING REQUIREMENTS:
1. Start with a brief, conversational summary (2-3 sentences) explaining what this \
document is and the key takeaways, as if talking to a fellow veteran.
2. For any numbered section that doesn't apply, omit it or write "Does not apply".
3. Only include sections relevant to the actual content of the document.
4. Use trauma-informed, veteran-to-veteran language throughout.
5. Be practical and tactical in your recommendations.
6. Provide a COMPLETE analysis - do not truncate.
"""

_LAY_STATEMENT = """\
## {n}. Suggested Language for Lay Statement (VA Form 21-4138)
[Include only if a lay statement is missing, weak, or could help clarify service \
connection, or write "Does not apply"]
"""

_SECTIONS: dict[DocumentType, tuple[str, str, list[str]]] = {
    DocumentType.CP_EXAM: (
        "a C&P examination report",
        "C&P Examination Analysis",
        [
            "Document Type and Date\n- **Date of Examination:** [date]\n"
            "- **Examining Provider:** [name/facility]\n- **Conditions Examined:** [list]",
            "Summary of Examination Findings",
            "Key Medical Opinions\n- **Diagnosis:**\n- **Severity Assessment:**\n"
            "- **Functional Impact:**\n- **Service Connection Opinion:**",
            "Strengths of the Examination",
            "Potential Concerns or Gaps",
            "Recommended Action Steps",
        ],
    ),
    DocumentType.RATING_DECISION: (
        "a VA Rating Decision",
        "VA Rating Decision Analysis",
        [
            "Document Type and Date\n- **Date of Decision:** [date]\n"
            "- **Effective Date:** [date]\n- **Claimed Conditions Reviewed:** [list]",
            "Summary of VA Findings",
            "Reasons for Denial (Condition-by-Condition)",
            "Missing or Weak Evidence",
            "Recommended Action Steps",
        ],
    ),
    DocumentType.DBQ: (
        "a Disability Benefits Questionnaire (DBQ)",
        "DBQ Analysis",
        [
            "Document Type and Date\n- **Date Completed:** [date]\n"
            "- **Condition(s) Addressed:** [list]\n- **Completing Provider:** [name]",
            "Summary of Medical Findings",
            "Service Connection Elements\n- **In-Service Event/Injury:**\n"
            "- **Current Symptoms:**\n- **Medical Nexus:**",
            "Missing or Weak Evidence",
            "Recommended Action Steps",
        ],
    ),
    DocumentType.OTHER: (
        "a veteran's document",
        "Document Analysis",
        [
            "Document Type and Date\n- **Document Type:** [type]\n- **Date:** [dates]\n"
            "- **Purpose:** [purpose]",
            "Summary of Key Information",
            "Relevance to VA Claims",
            "Missing or Weak Evidence",
            "Recommended Action Steps",
        ],
    ),
}


def document_title(file_name: str) -> str:
    """Return *file_name* without its extension, or 'Document' if empty."""
    stem = PurePath(file_name).stem if file_name else ""
    return stem or "Document"


def build_analysis_prompt(document_type: DocumentType, title: str) -> str:
    """Return the user prompt for analysing a document of *document_type*."""
    subject, heading, sections = _SECTIONS.get(
        DocumentType(document_type), _SECTIONS[DocumentType.OTHER]
    )
    lines = [
        f"You are ForwardOps AI, an experienced Veterans Service Officer (VSO) analyzing {subject}.",
        "",
        _RULES,
        "Format your response like this structure:",
        "",
        "**Summary:**",
        "[2-3 conversational sentences on what this document shows]",
        "",
        "---",
        "",
        f"# {title} - {heading}",
        "",
    ]
    n = 0
    for n, section in enumerate(sections, start=1):
        lines.append(f"## {n}. {section}")
        lines.append("")
    lines.append(_LAY_STATEMENT.format(n=n + 1))
    lines.append(f"## {n + 2}. Documents Reviewed\n- {title}\n")
    lines.append(f"## {n + 3}. Next Step Options\n[1-3 clear paths forward]\n")
    lines.append(f"Analyze the following {subject.split(' ', 1)[1]}:")
    return "\n".join(lines)


class DocumentSummarizer:
    """Generate the whole-document analysis for an ingested document.

    Args:
        model:       LiteLLM model string for analysis generation.
        max_tokens:  Maximum tokens in the generated analysis.
        input_chars: Document text beyond this many characters is not sent.
        num_retries: LiteLLM retries on transient errors.
    """

    def __init__(
        self,
        model: str = _DEFAULT_MODEL,
        max_tokens: int = _DEFAULT_MAX_TOKENS,
        input_chars: int = _DEFAULT_INPUT_CHARS,
        num_retries: int = 3,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._input_chars = input_chars
        self._num_retries = num_retries

    def summarize(
        self,
        text: str,
        document_type: DocumentType = DocumentType.OTHER,
        title: str = "Document",
    ) -> str:
        """Return the analysis of *text*.

        Raises:
            SummaryError: If the provider fails or returns an empty analysis.
        """
        prompt = build_analysis_prompt(document_type, title)
        try:
            content = complete(
                self._model,
                [
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": f"{prompt}\n\n{text[: self._input_chars]}"},
                ],
                max_tokens=self._max_tokens,
                temperature=0.2,
                num_retries=self._num_retries,
            )
        except PROVIDER_ERRORS as exc:
            raise SummaryError(f"Document analysis failed: {exc}") from exc

        analysis = content.strip()
        if not analysis:
            raise SummaryError("No analysis generated")
        logger.debug(
            "Analysis generated", chars=len(analysis), document_type=DocumentType(document_type).value
        )
        return analysis
