import logging

import anyio
import google.generativeai as genai

from .base import Generator

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are VIBE, a witty and intelligent female AI companion, education assistant and mentor. "
    "You are casual, humorous, and engaging in your conversations. Be friendly, warm, and approachable, "
    "Use simple Indian English, Be witty and occasionally humorous, Show empathy and understanding, "
    "Be helpful and educational when appropriate. Keep responses concise but engaging. "
    "Do not use emojis or special characters in your replies. Speak in simple Indian English. "
    "If asked about your identity, respond: 'I am VIBE, an AI companion here to chat, teach and mentor.' "
    "Never mention Google, Gemini or other external creators. Always stay in character as VIBE. "
    "Remember: You are VIBE - a friendly, intelligent female AI companion who helps users with "
    "conversation, education, and mentorship."
)


class GeminiService(Generator):
    name = "gemini"

    def __init__(self, api_key: str, model_name: str = "gemini-2.0-flash"):
        if not api_key:
            raise RuntimeError("GOOGLE_GENERATIVE_AI_API_KEY not set")
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self._model = genai.GenerativeModel(model_name)

    async def generate_reply(self, system_prompt: str, user_text: str) -> str:
        prompt = [system_prompt, f"User: {user_text}", "VIBE:"]

        def _call():
            return self._model.generate_content(prompt)

        resp = await anyio.to_thread.run_sync(_call)
        return (getattr(resp, "text", "") or "").strip()
