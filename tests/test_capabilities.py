"""
Tests for capability backends and the OpenRouter adapter.
"""

import json

import httpx
import pytest

from taskgate.capabilities import CapabilitySet, FunctionCapability, OpenRouterCapability
from taskgate.errors import DispatchError, DispatchErrorKind

pytestmark = pytest.mark.anyio

MODEL = "minimax/minimax-m2.1"


def completion(content=None, images=None):
    message = {"role": "assistant", "content": content}
    if images is not None:
        message["images"] = images
    return {"choices": [{"message": message}]}


def backend_for(handler):
    return OpenRouterCapability(
        "sk-test", base_url="https://gateway.test/v1", transport=httpx.MockTransport(handler)
    )


async def expect_kind(handler, kind):
    async with backend_for(handler) as backend:
        with pytest.raises(DispatchError) as exc_info:
            await backend.invoke(MODEL, "prompt", 100)
    assert exc_info.value.kind == kind
    assert exc_info.value.capability_id == MODEL


class TestOpenRouter:
    async def test_returns_content(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion("print('hi')"))

        async with backend_for(handler) as backend:
            out = await backend.invoke(MODEL, "Write hello", 256)

        assert out == "print('hi')"
        assert seen["url"] == "https://gateway.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == MODEL
        assert seen["body"]["max_tokens"] == 256
        assert seen["body"]["messages"][-1] == {"role": "user", "content": "Write hello"}

    async def test_image_url_preferred(self):
        url = "data:image/png;base64,iVBORw0KGgo="

        def handler(request):
            return httpx.Response(
                200, json=completion("Here is your logo", [{"image_url": {"url": url}}])
            )

        async with backend_for(handler) as backend:
            assert await backend.invoke("google/nano-banana-pro", "logo", 100) == url

    async def test_auth_failure(self):
        await expect_kind(lambda r: httpx.Response(401), DispatchErrorKind.AUTH)

    async def test_server_error(self):
        await expect_kind(lambda r: httpx.Response(502), DispatchErrorKind.TRANSPORT)

    async def test_error_payload(self):
        await expect_kind(
            lambda r: httpx.Response(200, json={"error": {"message": "rate limited"}}),
            DispatchErrorKind.TRANSPORT,
        )

    async def test_no_choices(self):
        await expect_kind(
            lambda r: httpx.Response(200, json={"choices": []}), DispatchErrorKind.MALFORMED
        )

    async def test_empty_content(self):
        await expect_kind(
            lambda r: httpx.Response(200, json=completion("   ")), DispatchErrorKind.MALFORMED
        )

    async def test_not_json(self):
        await expect_kind(
            lambda r: httpx.Response(200, text="<html>busy</html>"), DispatchErrorKind.MALFORMED
        )

    @pytest.mark.parametrize(
        "body",
        [
            {"choices": ["oops"]},
            {"choices": [{"message": "hi"}]},
            {"choices": [{"message": {"content": "x", "images": ["data:image/png;base64,AA=="]}}]},
            {"choices": [{"message": {"content": "x", "images": "data:image/png;base64,AA=="}}]},
        ],
    )
    async def test_wrong_inner_shape(self, body):
        await expect_kind(lambda r: httpx.Response(200, json=body), DispatchErrorKind.MALFORMED)

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        await expect_kind(handler, DispatchErrorKind.TIMEOUT)

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        await expect_kind(handler, DispatchErrorKind.TRANSPORT)


class TestCapabilitySet:
    async def test_registered_handler(self):
        async def echo(capability_id, prompt, max_output_size):
            return f"{capability_id}:{prompt}"

        capabilities = CapabilitySet()
        capabilities.register_handler("local/echo", echo)
        assert await capabilities.invoke("local/echo", "hi", 10) == "local/echo:hi"

    async def test_unregistered_without_default(self):
        with pytest.raises(DispatchError) as exc_info:
            await CapabilitySet().invoke("text/model", "p", 10)
        assert exc_info.value.kind == DispatchErrorKind.TRANSPORT

    async def test_default_backend(self):
        async def fixed(capability_id, prompt, max_output_size):
            return "default"

        async def image(capability_id, prompt, max_output_size):
            return b"\x89PNG"

        capabilities = CapabilitySet(FunctionCapability(fixed))
        capabilities.register_handler("img", image)
        assert await capabilities.invoke("anything", "p", 10) == "default"
        assert await capabilities.invoke("img", "p", 10) == b"\x89PNG"
