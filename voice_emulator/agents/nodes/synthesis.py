"""
Voice synthesis — optional analysis stage after consolidation.

Turns a sample of the consolidated content into a system prompt that lets a
model write in the subject's voice. Uses Gemini Flash; any LLM error falls
back to a generic prompt so the run still completes.
"""

from __future__ import annotations

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from voice_emulator.agents.state import ContentItem, VoiceProfile
from voice_emulator.core.config import get_settings
from voice_emulator.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

SYNTHESIS_SYSTEM_PROMPT = """You are a writing-style analyst.
From the writing samples provided, produce a system prompt that would let an AI
emulate this author accurately. Cover:
1. Voice and tone
2. Common phrases and expressions
3. Expertise and perspective
4. Structural patterns (openings, paragraphing, closings)
5. Rhetorical techniques and argumentation style
6. Recurring topics and cultural references

Write the prompt in the second person ("You are writing as ..."), with concrete
examples quoted from the samples. Output ONLY the system prompt."""

_FALLBACK_PROMPT = """You are writing in the style of {name}.

Key characteristics:
- Professional and thoughtful tone
- Clear and structured arguments
- Industry expertise
- Engaging storytelling
- Data-driven insights

Write in their voice, maintaining their unique perspective and communication style."""

_LABELS = {"newsletter": "Newsletter", "tweet": "Tweet", "linkedin": "LinkedIn post", "blog": "Blog post"}


def fallback_profile(target_name: str, error: str, samples_used: int = 0) -> VoiceProfile:
    return VoiceProfile(
        system_prompt=_FALLBACK_PROMPT.format(name=target_name),
        samples_used=samples_used,
        model=settings.model_synthesizer,
        synthesis_error=error,
    )


async def synthesize_voice(
    target_name: str,
    content: list[ContentItem],
    llm: BaseChatModel | None = None,
) -> VoiceProfile:
    sample = [item for item in content if item["content"].strip()][: settings.synthesis_sample_size]
    if not sample:
        return fallback_profile(target_name, "no content to analyse")

    try:
        if llm is None:
            llm = ChatGoogleGenerativeAI(
                model=settings.model_synthesizer,
                temperature=0.4,
                google_api_key=settings.google_api_key,
            )

        samples_text = "\n---\n".join(
            f"[{_LABELS.get(item['type'], item['type'])}]\n{item['content'][:1500]}"
            for item in sample
        )
        messages = [
            SystemMessage(content=SYNTHESIS_SYSTEM_PROMPT),
            HumanMessage(content=f"Author: {target_name}\n\nWriting samples:\n\n{samples_text}"),
        ]

        response = await llm.ainvoke(messages)
        system_prompt = str(response.content).strip()
        if not system_prompt:
            return fallback_profile(target_name, "model returned an empty prompt", len(sample))

        logger.info(
            "voice_synthesized",
            target=target_name,
            samples=len(sample),
            prompt_chars=len(system_prompt),
        )
        return VoiceProfile(
            system_prompt=system_prompt,
            samples_used=len(sample),
            model=settings.model_synthesizer,
        )

    except Exception as e:
        logger.error("synthesis_error", target=target_name, error=str(e))
        return fallback_profile(target_name, str(e), len(sample))
