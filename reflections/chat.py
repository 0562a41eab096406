"""
Question answering grounded in a user's reflections and professional data.
"""

import logging
from typing import Optional

from .errors import GenerationError
from .processors import external_profile_text
from .types import Reflection, UserProfile, local_date

logger = logging.getLogger(__name__)

RESUME_CHAT_CHARS = 3000
FAILED_MESSAGE = "Sorry, I had trouble connecting to your reflections. Please try again."

CHAT_INSTRUCTIONS = """You are an intelligent assistant called 'Reflections Match AI'.
You have access to the user's personal 'Second Brain' of reflections AND their professional background.
Your goal is to help them find patterns, answer questions about their past thoughts, and provide insights.

Instructions:
1. Answer strictly based on the provided context (Reflections + Professional Data).
2. If the answer isn't in the notes, say "I couldn't find that in your reflections." and suggest a related topic if possible.
3. Be concise, friendly, and helpful.
4. You can reference specific dates or tags if relevant."""


def build_context(records: list[Reflection], profile: Optional[UserProfile]) -> str:
    lines = ["These are the user's saved reflection notes:", ""]
    for rec in records:
        lines.append(f"[Record ID: {rec.id}] Date: {local_date(rec.created_at) or 'Unknown Date'}")
        if rec.user_note:
            lines.append(f'User Notes: "{rec.user_note}"')
        if rec.summary:
            lines.append(f'AI Summary: "{rec.summary}"')
        if rec.tags:
            lines.append(f"Tags: {', '.join(rec.tags)}")
        lines.append("---")

    resume = profile.resume_text if profile else None
    linkedin = external_profile_text(profile.external_profile) if profile else ""
    resume_line = resume[:RESUME_CHAT_CHARS] + "..." if resume else "No resume available."
    professional = (
        "PROFESSIONAL BACKGROUND:\n"
        f"Resume: {resume_line}\n"
        f"LinkedIn: {linkedin or 'No LinkedIn data available.'}"
    )
    return (
        f"Here is the user's PROFESSIONAL CONTEXT:\n{professional}\n\n"
        "Here is the complete DATA CONTEXT of their reflections:\n" + "\n".join(lines)
    )


def ask(store, generation_provider, uid: str, question: str) -> str:
    """
    Answer a question about the user's reflections.

    Raises:
        GenerationError: With a generic message if the model call fails
    """
    records = store.list_reflections(uid)
    profile = store.get_profile(uid)
    prompt = f"{build_context(records, profile)}\n\nQuestion: {question}"
    try:
        reply = generation_provider.generate(prompt, system=CHAT_INSTRUCTIONS)
    except Exception as e:
        logger.warning("Chat failed for %s: %s", uid, e)
        raise GenerationError(FAILED_MESSAGE) from e
    if not reply:
        raise GenerationError(FAILED_MESSAGE)
    return reply.strip()
