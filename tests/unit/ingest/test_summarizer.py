"""Tests for DocumentSummarizer."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import litellm
import pytest

from forwardops.db.models import DocumentType
from forwardops.errors import SummaryError, TransientServiceError
from forwardops.ingest.summarizer import (
    DocumentSummarizer,
    build_analysis_prompt,
    document_title,
)


def _mock_completion(text: str | None):
    mock = MagicMock()
    mock.choices = [MagicMock()]
    mock.choices[0].message.content = text
    return patch("forwardops.rag.llm_client.litellm.completion", return_value=mock)


def test_summarize_returns_analysis():
    with _mock_completion("**Summary:** Your knee exam supports a 10% rating."):
        result = DocumentSummarizer().summarize("exam text", DocumentType.CP_EXAM, "Knee Exam")
    assert result == "**Summary:** Your knee exam supports a 10% rating."


def test_summarize_passes_model_and_retries():
    with _mock_completion("Analysis.") as mock_call:
        DocumentSummarizer(model="anthropic/claude-3-haiku", max_tokens=100, num_retries=5).summarize("t")
    kwargs = mock_call.call_args.kwargs
    assert kwargs["model"] == "anthropic/claude-3-haiku"
    assert kwargs["max_tokens"] == 100
    assert kwargs["num_retries"] == 5


def test_summarize_truncates_input():
    with _mock_completion("Analysis.") as mock_call:
        DocumentSummarizer(input_chars=10).summarize("A" * 50)
    user_content = mock_call.call_args.kwargs["messages"][1]["content"]
    assert user_content.endswith("\n\n" + "A" * 10)


def test_summarize_uses_type_specific_prompt():
    with _mock_completion("Analysis.") as mock_call:
        DocumentSummarizer().summarize("text", DocumentType.RATING_DECISION, "Decision")
    user_content = mock_call.call_args.kwargs["messages"][1]["content"]
    assert "VA Rating Decision Analysis" in user_content
    assert "Reasons for Denial" in user_content


def test_summarize_empty_response_raises():
    with _mock_completion("   "):
        with pytest.raises(SummaryError, match="No analysis generated"):
            DocumentSummarizer().summarize("text")


def test_summarize_none_content_raises():
    with _mock_completion(None):
        with pytest.raises(SummaryError):
            DocumentSummarizer().summarize("text")


def test_summarize_provider_failure_raises():
    exc = litellm.APIConnectionError(message="API error", llm_provider="openai", model="gpt-4")
    with patch("forwardops.rag.llm_client.litellm.completion", side_effect=exc):
        with pytest.raises(SummaryError) as excinfo:
            DocumentSummarizer().summarize("text")
    assert isinstance(excinfo.value, TransientServiceError)
    assert excinfo.value.__cause__ is exc


def test_summarize_programming_error_propagates():
    with patch(
        "forwardops.rag.llm_client.litellm.completion", side_effect=TypeError("bad call")
    ):
        with pytest.raises(TypeError, match="bad call"):
            DocumentSummarizer().summarize("text")


# ------------------------------------------------------------------
# Prompt helpers
# ------------------------------------------------------------------

def test_document_title_strips_extension():
    assert document_title("Rating Decision.pdf") == "Rating Decision"


def test_document_title_fallback():
    assert document_title("") == "Document"


@pytest.mark.parametrize(
    "doc_type, heading",
    [
        (DocumentType.CP_EXAM, "C&P Examination Analysis"),
        (DocumentType.DBQ, "DBQ Analysis"),
        (DocumentType.OTHER, "Document Analysis"),
    ],
)
def test_build_analysis_prompt_heading(doc_type, heading):
    prompt = build_analysis_prompt(doc_type, "Title")
    assert f"# Title - {heading}" in prompt


def test_build_analysis_prompt_numbers_trailing_sections():
    prompt = build_analysis_prompt(DocumentType.DBQ, "Knee")
    # five DBQ sections, then lay statement, documents reviewed, next steps
    assert "## 6. Suggested Language for Lay Statement" in prompt
    assert "## 7. Documents Reviewed\n- Knee" in prompt
    assert "## 8. Next Step Options" in prompt
    assert prompt.endswith("Analyze the following Disability Benefits Questionnaire (DBQ):")
