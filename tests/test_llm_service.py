import json
from typing import Any, Callable

import httpx
import pytest

from domain.errors import MalformedModelOutput, ModelError
from domain.llm_service import GeminiVisionService, LocalVisionService, gemini_client_factory


RECIPE_JSON = json.dumps(
    {
        "title": "Margherita",
        "cuisine": "Italian",
        "dietary_preference": "Vegetarian",
        "cooking_time": "30 minutes",
        "servings": "2",
        "ingredients": {"Dough": "1 ball", "Mozzarella": "125 g"},
        "instructions": ["Stretch", "Top", "Bake"],
        "shopping_cart": {"Mozzarella": "1 pack"},
    }
)


def completion(content: str | None) -> dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "test",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


class Recorder:
    """Mock transport handler answering every request with one response."""

    def __init__(self, response: httpx.Response | Callable[[], httpx.Response]) -> None:
        self.response = response
        self.requests: list[dict[str, Any]] = []
        self.urls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        self.requests.append(json.loads(request.content))
        if callable(self.response):
            return self.response()
        return self.response


def local_service(recorder: Recorder) -> LocalVisionService:
    client = httpx.AsyncClient(
        base_url="http://local.test/v1/", transport=httpx.MockTransport(recorder)
    )
    return LocalVisionService(client)


def gemini_service(recorder: Recorder) -> GeminiVisionService:
    client = gemini_client_factory(
        "test-key",
        base_url="http://gemini.test/v1beta/openai/",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
    )
    return GeminiVisionService(client)


@pytest.mark.asyncio
async def test_local_classify(png: bytes) -> None:
    recorder = Recorder(httpx.Response(200, json=completion("No, a red square")))
    service = local_service(recorder)

    food, description = await service.classify(png)

    assert (food, description) == (False, "No, a red square")
    assert recorder.urls == ["http://local.test/v1/chat/completions"]
    payload = recorder.requests[0]
    assert payload["model"] == "gemma-3-12b-it:2"
    assert payload["temperature"] == 1
    assert payload["max_tokens"] == 1024
    text, image = payload["messages"][0]["content"]
    assert "'NO'" in text["text"]
    assert image["image_url"]["url"].startswith("data:image/png;base64,")
    await service.close()


@pytest.mark.asyncio
async def test_local_generate_recipe_strips_fences(png: bytes) -> None:
    recorder = Recorder(
        httpx.Response(200, json=completion(f"```json\n{RECIPE_JSON}\n```"))
    )
    service = local_service(recorder)

    recipe = await service.generate_recipe(png, "vegan", "Thai")

    assert recipe.title == "Margherita"
    assert recipe.ingredients["Mozzarella"] == "125 g"
    prompt = recorder.requests[0]["messages"][0]["content"][0]["text"]
    assert prompt.endswith(
        "The recipe should be vegan. The recipe should be Thai cuisine."
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    (
        httpx.Response(500, text="model not loaded"),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"error": "context length exceeded"}),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json=completion(None)),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json="just a string"),
        httpx.Response(200, json={"choices": [{"index": 0, "message": None}]}),
        httpx.Response(200, json={"choices": ["oops"]}),
    ),
)
async def test_local_model_errors(png: bytes, response: httpx.Response) -> None:
    service = local_service(Recorder(response))
    with pytest.raises(ModelError):
        await service.classify(png)


@pytest.mark.asyncio
async def test_local_transport_error(png: bytes) -> None:
    def refuse() -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    service = local_service(Recorder(refuse))
    with pytest.raises(ModelError):
        await service.classify(png)


@pytest.mark.asyncio
async def test_local_unparseable_recipe(png: bytes) -> None:
    recorder = Recorder(httpx.Response(200, json=completion("I see pizza!")))
    with pytest.raises(MalformedModelOutput):
        await local_service(recorder).generate_recipe(png, "", "")


@pytest.mark.asyncio
async def test_gemini_classify(png: bytes) -> None:
    recorder = Recorder(httpx.Response(200, json=completion("A delicious pasta dish")))

    food, description = await gemini_service(recorder).classify(png)

    assert food is True
    assert description == "A delicious pasta dish"
    assert recorder.urls == ["http://gemini.test/v1beta/openai/chat/completions"]
    payload = recorder.requests[0]
    assert payload["model"] == "gemini-1.5-flash"
    image, text = payload["messages"][0]["content"]
    assert image["image_url"]["url"].startswith("data:image/png;base64,")
    assert "'NO'" in text["text"]


@pytest.mark.asyncio
async def test_gemini_generate_recipe_prefers_request(png: bytes) -> None:
    recorder = Recorder(
        httpx.Response(200, json=completion(f"Here it is: {RECIPE_JSON} Buon appetito!"))
    )

    recipe = await gemini_service(recorder).generate_recipe(png, "Vegan", "")

    assert recipe.title == "Margherita"
    assert recipe.dietary_preference == "vegan"
    assert recipe.cuisine == "italian"
    assert recipe.instructions == ["Stretch", "Top", "Bake"]


@pytest.mark.asyncio
async def test_gemini_errors(png: bytes) -> None:
    service = gemini_service(
        Recorder(httpx.Response(503, json={"error": {"message": "overloaded"}}))
    )
    with pytest.raises(ModelError):
        await service.classify(png)

    service = gemini_service(Recorder(httpx.Response(200, json=completion(None))))
    with pytest.raises(ModelError):
        await service.classify(png)

    service = gemini_service(Recorder(httpx.Response(200, json=completion("pizza"))))
    with pytest.raises(MalformedModelOutput):
        await service.generate_recipe(png, "", "")
