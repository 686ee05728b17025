"""Best-effort styling tips and product copy from a chat model."""

import logging
import os
from typing import Any

from .errors import AdvisoryServiceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = os.environ.get("ATELIER_ADVISOR_MODEL", "gpt-4o-mini")

STYLING_FALLBACK = "Our AI stylist is currently busy. Please try again later!"
DESCRIPTION_FALLBACK = "High quality fashion item carefully curated for your needs."


class StyleAdvisor:
    """
    Wraps a LangChain chat model. Failures never reach the caller: they are
    logged and replaced by a fixed placeholder.
    """

    def __init__(self, llm: Any = None, model: str = DEFAULT_MODEL, timeout: float = 15.0):
        self._llm = llm
        self.model = model
        self.timeout = timeout

    def _get_llm(self) -> Any:
        if self._llm is None:
            from langchain_openai import ChatOpenAI

            self._llm = ChatOpenAI(model=self.model, temperature=0.7, timeout=self.timeout)
        return self._llm

    def _generate(self, prompt: str) -> str:
        """
        Raises:
            AdvisoryServiceUnavailableError: On any client or model failure,
                or an empty answer.
        """
        try:
            response = self._get_llm().invoke(prompt)
        except Exception as e:
            raise AdvisoryServiceUnavailableError(str(e)) from e
        text = getattr(response, "content", response)
        if not isinstance(text, str) or not text.strip():
            raise AdvisoryServiceUnavailableError("empty response")
        return text.strip()

    def styling_tips(self, product_name: str, description: str) -> str:
        prompt = (
            f'As an expert fashion stylist, provide 3 styling tips for this product: '
            f'"{product_name}" - {description}. Focus on accessories, footwear, and '
            f'occasion. Keep it concise and trendy.'
        )
        try:
            return self._generate(prompt)
        except AdvisoryServiceUnavailableError as e:
            logger.warning("Styling tips unavailable for %r: %s", product_name, e.reason)
            return STYLING_FALLBACK

    def product_description(self, name: str, category: str) -> str:
        prompt = (
            f'Generate a luxury product description for a fashion item named "{name}" '
            f'in the "{category}" category. Focus on comfort, quality, and style. '
            f'Max 50 words.'
        )
        try:
            return self._generate(prompt)
        except AdvisoryServiceUnavailableError as e:
            logger.warning("Description unavailable for %r: %s", name, e.reason)
            return DESCRIPTION_FALLBACK
