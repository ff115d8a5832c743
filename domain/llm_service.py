import base64
import logging
from typing import Protocol

import httpx
import openai

from domain.aopenai import (
    Chat,
    ChatMsg,
    Content,
    ImgContent,
    TextContent,
    image_mime_type,
    local_client_factory,
)
from domain.errors import ModelError
from domain.models import Recipe, is_food
from domain.parsing import fenced_object, outermost_object, recipe_from_dict
from domain.prompts import CLASSIFY_PROMPT, RecipePrompt


logger = logging.getLogger(__name__)


GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
GEMINI_MODEL = "gemini-1.5-flash"
LOCAL_MODEL = "gemma-3-12b-it:2"


class VisionModelProvider(Protocol):
    async def classify(self, image_bytes: bytes) -> tuple[bool, str]:
        ...

    async def generate_recipe(
        self,
        image_bytes: bytes,
        dietary_preference: str,
        cuisine: str,
    ) -> Recipe:
        ...


def gemini_client_factory(
    api_key: str | None,
    base_url: str = GEMINI_BASE_URL,
    http_client: httpx.AsyncClient | None = None,
) -> openai.AsyncClient:
    # Retries are the caller's business.
    return openai.AsyncClient(
        api_key=api_key,
        base_url=base_url,
        max_retries=0,
        http_client=http_client,
    )


class GeminiVisionService:
    """Hosted Gemini, reached through its OpenAI-compatible endpoint."""

    def __init__(
        self,
        openai_client: openai.AsyncClient,
        *,
        model: str = GEMINI_MODEL,
        logger: logging.Logger = logger,
    ) -> None:
        self.openai_client = openai_client
        self.model = model
        self.logger = logger

    async def _complete(self, prompt: str, image_bytes: bytes) -> str:
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        try:
            resp = await self.openai_client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image_url",
                                "image_url": {
                                    "url": f"data:{image_mime_type(image_bytes)};base64,{b64}"
                                },
                            },
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
            )
        except openai.APIError as e:
            raise ModelError(f"Gemini request failed. {e}") from e

        if not resp.choices or resp.choices[0].message.content is None:
            raise ModelError("Empty response from Gemini.")
        return resp.choices[0].message.content

    async def classify(self, image_bytes: bytes) -> tuple[bool, str]:
        text = await self._complete(CLASSIFY_PROMPT, image_bytes)
        return is_food(text), text

    async def generate_recipe(
        self,
        image_bytes: bytes,
        dietary_preference: str,
        cuisine: str,
    ) -> Recipe:
        prompt = RecipePrompt(dietary_preference=dietary_preference, cuisine=cuisine)
        text = await self._complete(str(prompt), image_bytes)
        recipe = recipe_from_dict(outermost_object(text))

        # The request wins over whatever the model reported.
        if dietary_preference:
            recipe.dietary_preference = dietary_preference.lower()
        if cuisine:
            recipe.cuisine = cuisine.lower()
        return recipe


class LocalVisionService:
    """A locally served model behind an OpenAI-compatible chat endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        model: str = LOCAL_MODEL,
        logger: logging.Logger = logger,
    ) -> None:
        self.http_client = local_client_factory() if http_client is None else http_client
        self.model = model
        self.logger = logger

    async def _complete(self, prompt: str, image_bytes: bytes) -> str:
        content: list[Content] = [TextContent(prompt), ImgContent.from_bytes(image_bytes)]
        chat = Chat(model=self.model, client=self.http_client)
        text = await chat.chat(ChatMsg(role="user", content=content))
        self.logger.debug("Local model response: %s", text)
        return text

    async def classify(self, image_bytes: bytes) -> tuple[bool, str]:
        text = await self._complete(CLASSIFY_PROMPT, image_bytes)
        return is_food(text), text

    async def generate_recipe(
        self,
        image_bytes: bytes,
        dietary_preference: str,
        cuisine: str,
    ) -> Recipe:
        prompt = RecipePrompt(dietary_preference=dietary_preference, cuisine=cuisine)
        text = await self._complete(str(prompt), image_bytes)
        return recipe_from_dict(fenced_object(text))

    async def close(self) -> None:
        await self.http_client.aclose()
