"""Transcript post-processing with the generative backend.

This module handles the steps that run after ASR, on demand:
- Restructuring a raw transcript into readable markdown
- Producing a clinical response to a transcript in the entry's context
"""

import json
import logging
from typing import Any, Optional

from logbook.core.config import settings
from logbook.services.generation import GenerativeBackend

logger = logging.getLogger(__name__)

TRANSCRIPT_EDITOR_PROMPT = """You are a professional medical transcript editor. Your task is to restructure and format medical transcripts for clarity and professionalism.

INSTRUCTIONS:
- Add clear headlines and subheadings using markdown (## for sections, ### for subsections)
- Organize content into logical paragraphs
- Use bullet points (* or -) for lists
- Preserve all medical terminology and details exactly as stated
- Use **bold** for emphasis on key medical terms or findings
- Maintain professional medical documentation standards
- DO NOT add information that wasn't in the original transcript
- DO NOT remove any important medical details

Format output in clean markdown that will be rendered as HTML."""

CLINICAL_PARTNER_PROMPT = """You are an expert AI Clinical Partner assisting a {specialty}.
Your goal is to provide helpful, accurate, and safe clinical decision support based on audio recordings.

CONTEXT:
- Log Title: "{title}"
- Category: {category}
- Notes: "{notes}"
- Patient Data: {data}

USER INSTRUCTIONS:
{instructions}

IMPORTANT:
- Analyze the audio transcript and provide clinical insights.
- Maintain patient confidentiality.
- Do not provide definitive medical diagnoses; offer differential diagnoses and suggestions."""

DEFAULT_INSTRUCTIONS = "Provide concise, evidence-based insights."


def recording_prompt_message(index: int, transcript: str) -> str:
    """Chat-history line recorded for a transcript sent to the clinical partner."""
    return f"[Audio Recording {index + 1}]: {transcript}"


class TranscriptImprover:
    """Restructures raw transcripts into sectioned markdown."""

    def __init__(self, backend: GenerativeBackend, model: Optional[str] = None) -> None:
        self.backend = backend
        self.model = model or settings.GENAI_TRANSCRIPT_MODEL

    async def improve(self, transcript: str) -> str:
        prompt = (
            "Please restructure and improve the following medical transcript. "
            "Add appropriate headings, organize into sections, and improve readability "
            f"while preserving all clinical information:\n\n{transcript}"
        )
        improved = await self.backend.generate(TRANSCRIPT_EDITOR_PROMPT, prompt, model=self.model)
        logger.info(f"Transcript improved: {len(transcript)} -> {len(improved)} chars")
        return improved


class ClinicalResponder:
    """Clinical decision-support response to one transcript."""

    def __init__(self, backend: GenerativeBackend, model: Optional[str] = None) -> None:
        self.backend = backend
        self.model = model or settings.GENAI_CLINICAL_MODEL

    @staticmethod
    def build_system_prompt(
        title: str,
        category: Optional[str],
        notes: Optional[str],
        data: Optional[dict[str, Any]],
        specialty: Optional[str] = None,
        custom_instructions: Optional[str] = None,
    ) -> str:
        """
        Render the system prompt from the entry's context.

        Missing category renders as "General"; missing notes and instructions
        fall back to fixed defaults.
        """
        return CLINICAL_PARTNER_PROMPT.format(
            specialty=specialty or settings.GENAI_DEFAULT_SPECIALTY,
            title=title,
            category=category.capitalize() if category else "General",
            notes=notes or "No notes available.",
            data=json.dumps(data or {}, default=str),
            instructions=custom_instructions or DEFAULT_INSTRUCTIONS,
        )

    async def respond(self, system_prompt: str, transcript: str) -> str:
        prompt = f'Please analyze the following audio transcript and provide clinical insights:\n\n"{transcript}"'
        return await self.backend.generate(system_prompt, prompt, model=self.model)
