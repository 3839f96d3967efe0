"""Prompt builders for routing, answering and summarising.

Pure string functions; the use cases decide which model call receives them.
"""

from __future__ import annotations

from study_qa.domain.models import AvailableContext, RetrievedContext

CLASSIFICATION_SYSTEM_PROMPT = (
    "You classify questions for a Q&A system. Respond with JSON only: "
    '{"use_documents": true/false, "reasoning": "why"}'
)

RAG_SYSTEM_PROMPT = (
    "You answer questions about the user's own notes and documents. "
    "Use only the material you are given."
)

EXTERNAL_KNOWLEDGE_SYSTEM_PROMPT = (
    "You are a helpful assistant. Provide brief, concise answers (2-4 sentences maximum)."
)

SUMMARY_SYSTEM_PROMPT = "Create a brief 1-2 sentence summary focusing on main topics."

NO_CONTEXT_NOTICE = "NO RELEVANT PASSAGES WERE FOUND IN THE USER'S DOCUMENTS."

_SUMMARY_PENDING = "Summary not yet generated"


def build_document_digest(context: AvailableContext) -> str:
    if not context.documents:
        return "No documents attached"
    lines = []
    for doc in context.documents:
        summary = doc.short_summary or _SUMMARY_PENDING
        lines.append(f"- {doc.name}\n  Summary: {summary}")
    return "\n".join(lines)


def build_classification_prompt(question: str, context: AvailableContext) -> str:
    return f"""Question: "{question}"

Available Documents:
{build_document_digest(context)}

Note has content: {"Yes" if context.has_inline_content else "No"}

Should this question be answered by searching the user's documents (use_documents: true),
or by using general AI knowledge (use_documents: false)?

Examples:
- "What does this document say about X?" -> use_documents: true (references documents)
- "Summarize my notes" -> use_documents: true (asks about user's content)
- "What is the capital of France?" -> use_documents: false (general knowledge)
- "Define photosynthesis" when docs are about biology -> use_documents: true (relevant to docs)
- "Define photosynthesis" when docs are about history -> use_documents: false (not relevant)

Respond with JSON: {{"use_documents": true/false, "reasoning": "brief explanation"}}"""


def build_rag_prompt(question: str, context: RetrievedContext) -> str:
    if context.is_empty:
        return f"""{NO_CONTEXT_NOTICE}

Answer the question from the question alone. Start by stating plainly that the user's
documents did not contain material about this question. Do NOT claim that anything
comes from the user's documents, and do NOT invent quotes, sources or citations.
Be brief (2-3 sentences max).

QUESTION: {question}

ANSWER:"""

    return f"""Answer this question using only the provided documents. Be brief and direct (2-3 sentences max). Do NOT include citation numbers in your answer - just write naturally.

DOCUMENTS:
{context.as_prompt_block()}

QUESTION: {question}

ANSWER:"""


def build_external_prompt(question: str) -> str:
    return question.strip()


def build_summary_prompt(sample_text: str) -> str:
    return f"Summarize:\n\n{sample_text}"
