"""Image service tests (httpx MockTransport, no network)"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from storyrelay.services.image_service import (
    GeminiImageService,
    ImagenImageService,
    PlaceholderImageService,
    get_image_service,
    split_data_url,
)

PLACEHOLDER = "https://images.test/placeholder.png"


def _service(handler, **kw) -> ImagenImageService:
    return ImagenImageService(
        api_key="test_key",
        placeholder_url=PLACEHOLDER,
        transport=httpx.MockTransport(handler),
        **kw,
    )


class TestImagenImageService:
    @pytest.mark.asyncio
    async def test_returns_data_url(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"predictions": [{"bytesBase64Encoded": "QUJD"}]})

        url = await _service(handler).generate("a foggy pier")

        assert url == "data:image/png;base64,QUJD"
        assert ":predict" in seen["url"]
        assert "key=test_key" in seen["url"]
        assert seen["body"]["instances"] == [{"prompt": "a foggy pier"}]
        assert seen["body"]["parameters"] == {"sampleCount": 1, "aspectRatio": "16:9"}

    @pytest.mark.asyncio
    async def test_aspect_ratio_override(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"predictions": [{"bytesBase64Encoded": "QUJD"}]})

        await _service(handler).generate("portrait", "1:1")
        assert seen["body"]["parameters"]["aspectRatio"] == "1:1"

    @pytest.mark.asyncio
    async def test_http_error_degrades(self) -> None:
        service = _service(lambda request: httpx.Response(500, json={"error": "boom"}))
        assert await service.generate("x") == PLACEHOLDER

    @pytest.mark.asyncio
    async def test_network_error_degrades(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert await _service(handler).generate("x") == PLACEHOLDER

    @pytest.mark.asyncio
    async def test_unexpected_body_degrades(self) -> None:
        service = _service(lambda request: httpx.Response(200, json={"predictions": []}))
        assert await service.generate("x") == PLACEHOLDER

    @pytest.mark.asyncio
    async def test_non_json_body_degrades(self) -> None:
        service = _service(lambda request: httpx.Response(200, text="<html>"))
        assert await service.generate("x") == PLACEHOLDER

    @pytest.mark.asyncio
    async def test_empty_prompt_skips_request(self) -> None:
        handler = MagicMock()
        assert await _service(handler).generate("  ") == PLACEHOLDER
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_reference_image_is_ignored(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"predictions": [{"bytesBase64Encoded": "QUJD"}]})

        await _service(handler).generate("pier", reference_image="data:image/png;base64,UFJFVg==")
        assert seen["body"]["instances"] == [{"prompt": "pier"}]


@pytest.mark.asyncio
async def test_placeholder_service() -> None:
    assert await PlaceholderImageService(PLACEHOLDER).generate("anything") == PLACEHOLDER


class TestImageServiceFactory:
    @patch("storyrelay.services.image_service.settings")
    def test_imagen_with_key(self, mock_settings: MagicMock) -> None:
        mock_settings.IMAGE_PROVIDER = "imagen"
        mock_settings.IMAGE_API_KEY = "k"
        mock_settings.IMAGEN_MODEL = "imagen-3.0-generate-002"
        mock_settings.IMAGEN_ASPECT_RATIO = "16:9"
        mock_settings.PLACEHOLDER_IMAGE_URL = PLACEHOLDER
        mock_settings.IMAGE_TIMEOUT_SECONDS = 10.0

        assert get_image_service().name == "imagen"

    @patch("storyrelay.services.image_service.settings")
    def test_imagen_without_key_falls_back(self, mock_settings: MagicMock) -> None:
        mock_settings.IMAGE_PROVIDER = "imagen"
        mock_settings.IMAGE_API_KEY = None
        mock_settings.PLACEHOLDER_IMAGE_URL = PLACEHOLDER

        service = get_image_service()
        assert service.name == "placeholder"
        assert service.placeholder_url == PLACEHOLDER

    def test_unknown_provider_falls_back(self) -> None:
        assert get_image_service("dall-e").name == "placeholder"


def _gemini(handler) -> GeminiImageService:
    return GeminiImageService(
        api_key="test_key",
        placeholder_url=PLACEHOLDER,
        model="gemini-image-test",
        transport=httpx.MockTransport(handler),
    )


def _image_reply(data: str = "TkVX", mime: str = "image/png") -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"text": "Here is the scene."},
                            {"inlineData": {"mimeType": mime, "data": data}},
                        ]
                    }
                }
            ]
        },
    )


class TestGeminiImageService:
    @pytest.mark.asyncio
    async def test_prompt_only(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return _image_reply()

        url = await _gemini(handler).generate("a lighthouse at dusk")

        assert url == "data:image/png;base64,TkVX"
        assert "gemini-image-test:generateContent" in seen["url"]
        assert "key=test_key" in seen["url"]
        assert seen["body"]["contents"] == [{"parts": [{"text": "a lighthouse at dusk"}]}]
        assert seen["body"]["generationConfig"] == {"responseModalities": ["TEXT", "IMAGE"]}

    @pytest.mark.asyncio
    async def test_reference_image_sent_inline(self) -> None:
        """같은 장소: 이전 장면을 inlineData로 함께 보낸다"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return _image_reply(mime="image/jpeg")

        url = await _gemini(handler).generate(
            "the same lighthouse, now in storm",
            reference_image="data:image/png;base64,UFJFVg==",
        )

        assert url == "data:image/jpeg;base64,TkVX"
        assert seen["body"]["contents"][0]["parts"] == [
            {"text": "the same lighthouse, now in storm"},
            {"inlineData": {"mimeType": "image/png", "data": "UFJFVg=="}},
        ]

    @pytest.mark.asyncio
    async def test_non_data_url_reference_is_dropped(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return _image_reply()

        await _gemini(handler).generate("x", reference_image=PLACEHOLDER)
        assert seen["body"]["contents"][0]["parts"] == [{"text": "x"}]

    @pytest.mark.asyncio
    async def test_text_only_answer_degrades(self) -> None:
        reply = {"candidates": [{"content": {"parts": [{"text": "I can't draw that."}]}}]}
        service = _gemini(lambda request: httpx.Response(200, json=reply))
        assert await service.generate("x") == PLACEHOLDER

    @pytest.mark.asyncio
    async def test_http_error_with_reference_degrades(self) -> None:
        service = _gemini(lambda request: httpx.Response(400, json={"error": "bad image"}))
        result = await service.generate("x", reference_image="data:image/png;base64,UFJFVg==")
        assert result == PLACEHOLDER


class TestSplitDataUrl:
    def test_png(self) -> None:
        assert split_data_url("data:image/png;base64,QUJD") == ("image/png", "QUJD")

    @pytest.mark.parametrize(
        "url",
        [None, "", PLACEHOLDER, "data:image/png,QUJD", "data:image/png;base64,"],
    )
    def test_rejects_non_base64(self, url) -> None:
        assert split_data_url(url) is None


@patch("storyrelay.services.image_service.settings")
def test_factory_builds_gemini_service(mock_settings: MagicMock) -> None:
    mock_settings.IMAGE_PROVIDER = "gemini"
    mock_settings.IMAGE_API_KEY = "k"
    mock_settings.GEMINI_IMAGE_MODEL = "gemini-image-test"
    mock_settings.PLACEHOLDER_IMAGE_URL = PLACEHOLDER
    mock_settings.IMAGE_TIMEOUT_SECONDS = 10.0

    assert isinstance(get_image_service(), GeminiImageService)
