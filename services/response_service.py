"""
Response Service - assistant replies from the generative model with rule-based fallback
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from config.settings import settings
from services.fallback_responses import fallback_response

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10
PAID_MAX_OUTPUT_TOKENS = 2048
FREE_MAX_OUTPUT_TOKENS = 1024

SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"

AGRICULTURE_SYSTEM_PROMPT = """You are Yaung Chi, an expert agricultural AI assistant focused on helping farmers in Myanmar and Southeast Asia. Your expertise includes:

- Crop diseases identification and treatment
- Pest control and integrated pest management
- Fertilizer recommendations and soil nutrition
- Irrigation and water management
- Weather-based farming advice
- Market prices and selling strategies
- Soil health and pH management
- Regional crops: rice, vegetables, fruits, pulses, beans

Guidelines:
1. Provide practical, actionable advice suitable for small to medium-scale farmers
2. Consider the Myanmar/Southeast Asian climate and farming context
3. Suggest affordable, locally available solutions first
4. Include both traditional and modern farming techniques
5. Emphasize organic and sustainable practices when appropriate
6. Use simple language and explain technical terms
7. If unsure, recommend consulting local agricultural extension services
8. For serious chemical safety issues, always advise professional consultation
9. Respond in the same language as the user's question

Remember: You are a helpful assistant, not a replacement for professional agricultural services. Always prioritize farmer safety and crop health."""

FREE_TIER_NOTE = "(Note: Provide a helpful but concise response. For detailed analysis, suggest premium features.)"


class CompletionClient(Protocol):
    def complete(
        self,
        system_prompt: str,
        history: List[Dict[str, str]],
        message: str,
        image_data: Optional[str],
        max_output_tokens: int,
        temperature: float,
    ) -> Optional[str]:
        ...


def to_data_uri(image_data: str) -> str:
    """Accept a data URI or bare base64 payload; bare payloads are assumed JPEG."""
    if image_data.startswith("data:"):
        return image_data
    return f"data:image/jpeg;base64,{image_data}"


class OpenAICompletionClient:
    """Chat-completions backed client. Blocking; call it from a worker thread."""

    def __init__(self, api_key: str, model: Optional[str] = None):
        from openai import OpenAI
        self.client = OpenAI(api_key=api_key)
        self.model = model or settings.openai_model

    def complete(self, system_prompt, history, message, image_data, max_output_tokens, temperature):
        messages = [{"role": "system", "content": system_prompt}]
        for turn in history:
            role = "assistant" if turn.get("role") == "assistant" else "user"
            messages.append({"role": role, "content": turn.get("content") or ""})

        if image_data:
            messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": message},
                    {"type": "image_url", "image_url": {"url": to_data_uri(image_data)}},
                ],
            })
        else:
            messages.append({"role": "user", "content": message})

        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_output_tokens,
            temperature=temperature,
        )
        content = response.choices[0].message.content
        return content.strip() if content else None


def build_default_client() -> Optional[CompletionClient]:
    if not settings.openai_api_key:
        logger.warning("OpenAI API key not configured - using fallback responses")
        return None
    try:
        return OpenAICompletionClient(settings.openai_api_key)
    except Exception as e:
        logger.error(f"Failed to initialize OpenAI client: {e}")
        return None


@dataclass
class GeneratedReply:
    text: str
    source: str  # SOURCE_REMOTE or SOURCE_LOCAL


class ResponseGenerator:
    """
    Produces assistant text for a user message.

    The remote model is tried first when a client is available; failures,
    exceptions and empty replies fall through to the deterministic fallback,
    so generate() always returns non-empty text.
    """

    def __init__(self, client: Optional[CompletionClient] = None, use_default_client: bool = True):
        if client is None and use_default_client:
            client = build_default_client()
        self.client = client
        self.temperature = settings.llm_temperature

    def build_prompt(self, user_message: str, has_image: bool, is_paid_user: bool) -> str:
        if has_image:
            prompt = (
                f"The user has uploaded an image and asks: {user_message}\n\n"
                "Please analyze the image for any crop diseases, pests, nutrient deficiencies, "
                "or other agricultural issues. Provide specific diagnosis and treatment recommendations."
            )
        else:
            prompt = f"User Question: {user_message}"
        if not is_paid_user:
            prompt += f"\n\n{FREE_TIER_NOTE}"
        return prompt

    async def _remote_reply(
        self,
        user_message: str,
        history: List[Dict[str, str]],
        image_data: Optional[str],
        is_paid_user: bool,
        language: str,
    ) -> Optional[str]:
        system_prompt = AGRICULTURE_SYSTEM_PROMPT
        if language and language != "en":
            system_prompt += f"\n\nPreferred response language code: {language}"

        try:
            text = await asyncio.to_thread(
                self.client.complete,
                system_prompt,
                history,
                self.build_prompt(user_message, bool(image_data), is_paid_user),
                image_data,
                PAID_MAX_OUTPUT_TOKENS if is_paid_user else FREE_MAX_OUTPUT_TOKENS,
                self.temperature,
            )
        except Exception as e:
            logger.warning(f"Generative model call failed: {e} - using fallback")
            return None

        if not text or not text.strip():
            logger.warning("Generative model returned an empty response - using fallback")
            return None
        return text

    async def generate(
        self,
        user_message: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        image_data: Optional[str] = None,
        is_paid_user: bool = False,
        language: str = "en",
    ) -> GeneratedReply:
        """
        Produce the assistant reply.

        Args:
            user_message: The new user message
            conversation_history: Prior turns as {"role", "content"} dicts, oldest first
            image_data: Optional image as a data URI or base64 string
            is_paid_user: Tier flag; controls output length and fallback verbosity
            language: Conversation language code

        Returns:
            GeneratedReply carrying the text and which path produced it
        """
        history = list(conversation_history or [])[-HISTORY_WINDOW:]

        if self.client is not None:
            text = await self._remote_reply(user_message, history, image_data, is_paid_user, language)
            if text:
                return GeneratedReply(text=text, source=SOURCE_REMOTE)

        return GeneratedReply(
            text=fallback_response(user_message, is_paid_user=is_paid_user, has_image=bool(image_data)),
            source=SOURCE_LOCAL,
        )
