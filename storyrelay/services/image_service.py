"""Scene / portrait image service

Best-effort: a failed or unconfigured image call degrades to the placeholder
reference and never fails the caller.

``reference_image`` is the previous scene as a ``data:`` URL. Services that
can edit an existing picture use it to keep a location visually consistent;
the others ignore it.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from storyrelay.config import settings
from storyrelay.core.logging import get_logger

logger = get_logger(__name__)

GOOGLE_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
IMAGEN_ENDPOINT = GOOGLE_API_BASE + "/{model}:predict"
GEMINI_IMAGE_ENDPOINT = GOOGLE_API_BASE + "/{model}:generateContent"


def split_data_url(url: Optional[str]) -> Optional[tuple[str, str]]:
    """``(mime_type, base64_data)`` of a base64 data URL, else None."""
    if not url or not url.startswith("data:"):
        return None
    header, sep, data = url[len("data:"):].partition(",")
    if not sep or not data or not header.endswith(";base64"):
        return None
    return header[: -len(";base64")] or "image/png", data


class ImageService(ABC):
    """Turns an image prompt into an image reference (URL or data URL)."""

    def __init__(self, placeholder_url: str) -> None:
        self.placeholder_url = placeholder_url

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        aspect_ratio: Optional[str] = None,
        reference_image: Optional[str] = None,
    ) -> str:
        """Image reference for ``prompt``. Never raises."""
        ...


class PlaceholderImageService(ImageService):
    """Always answers with the placeholder reference."""

    @property
    def name(self) -> str:
        return "placeholder"

    async def generate(
        self,
        prompt: str,
        aspect_ratio: Optional[str] = None,
        reference_image: Optional[str] = None,
    ) -> str:
        return self.placeholder_url


class _GoogleImageService(ImageService):
    """Shared REST plumbing for the Google image endpoints."""

    def __init__(
        self,
        api_key: str,
        placeholder_url: str,
        model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(placeholder_url)
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._transport = transport

    def _ready(self, prompt: str) -> bool:
        if not prompt or not prompt.strip():
            logger.warning("Empty image prompt, using placeholder")
            return False
        if not self._api_key:
            logger.warning("IMAGE_API_KEY not set, using placeholder")
            return False
        return True

    async def _post(self, endpoint: str, body: dict[str, Any]) -> Optional[Any]:
        """Decoded JSON response, or None after logging the failure."""
        url = endpoint.format(model=self._model)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, params={"key": self._api_key}, json=body)
                resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException:
            logger.warning("%s request timed out, using placeholder", self.name)
        except httpx.HTTPStatusError as e:
            logger.warning(
                "%s returned %s, using placeholder", self.name, e.response.status_code
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("%s request failed (%s), using placeholder", self.name, e)
        return None


class ImagenImageService(_GoogleImageService):
    """Google Imagen ``:predict`` REST endpoint, one PNG per prompt.

    Imagen cannot edit an existing picture, so ``reference_image`` is ignored.
    """

    def __init__(
        self,
        api_key: str,
        placeholder_url: str,
        model: str = "imagen-3.0-generate-002",
        aspect_ratio: str = "16:9",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(api_key, placeholder_url, model, timeout, transport)
        self._aspect_ratio = aspect_ratio

    @property
    def name(self) -> str:
        return "imagen"

    async def generate(
        self,
        prompt: str,
        aspect_ratio: Optional[str] = None,
        reference_image: Optional[str] = None,
    ) -> str:
        if not self._ready(prompt):
            return self.placeholder_url

        data = await self._post(
            IMAGEN_ENDPOINT,
            {
                "instances": [{"prompt": prompt}],
                "parameters": {
                    "sampleCount": 1,
                    "aspectRatio": aspect_ratio or self._aspect_ratio,
                },
            },
        )
        if data is None:
            return self.placeholder_url

        predictions = data.get("predictions") if isinstance(data, dict) else None
        if (
            not predictions
            or not isinstance(predictions[0], dict)
            or not predictions[0].get("bytesBase64Encoded")
        ):
            logger.warning("Unexpected Imagen response format, using placeholder")
            return self.placeholder_url

        return f"data:image/png;base64,{predictions[0]['bytesBase64Encoded']}"


class GeminiImageService(_GoogleImageService):
    """Gemini image generation via ``:generateContent``.

    With a reference image the previous scene is sent as inline data next to
    the prompt, so the model redraws the same place instead of a new one.
    """

    def __init__(
        self,
        api_key: str,
        placeholder_url: str,
        model: str = "gemini-2.0-flash-exp-image-generation",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(api_key, placeholder_url, model, timeout, transport)

    @property
    def name(self) -> str:
        return "gemini-image"

    async def generate(
        self,
        prompt: str,
        aspect_ratio: Optional[str] = None,
        reference_image: Optional[str] = None,
    ) -> str:
        if not self._ready(prompt):
            return self.placeholder_url

        parts: list[dict[str, Any]] = [{"text": prompt}]
        reference = split_data_url(reference_image)
        if reference is not None:
            mime_type, encoded = reference
            parts.append({"inlineData": {"mimeType": mime_type, "data": encoded}})
            logger.debug("Sending previous scene as reference image")
        elif reference_image:
            logger.warning("Reference image is not a base64 data URL, ignoring it")

        data = await self._post(
            GEMINI_IMAGE_ENDPOINT,
            {
                "contents": [{"parts": parts}],
                "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
            },
        )
        if data is None:
            return self.placeholder_url

        image = _first_inline_image(data)
        if image is None:
            logger.warning("Gemini response carried no image, using placeholder")
            return self.placeholder_url
        mime_type, encoded = image
        return f"data:{mime_type};base64,{encoded}"


def _first_inline_image(data: Any) -> Optional[tuple[str, str]]:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return None
    for part in parts if isinstance(parts, list) else []:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if isinstance(inline, dict) and inline.get("data"):
            return inline.get("mimeType") or "image/png", inline["data"]
    return None


def get_image_service(provider_name: Optional[str] = None) -> ImageService:
    """Image service for IMAGE_PROVIDER; unknown names fall back to placeholder."""
    name = provider_name or settings.IMAGE_PROVIDER

    if name in ("imagen", "gemini"):
        if settings.IMAGE_API_KEY:
            if name == "gemini":
                logger.debug(
                    "Using GeminiImageService with model: %s", settings.GEMINI_IMAGE_MODEL
                )
                return GeminiImageService(
                    api_key=settings.IMAGE_API_KEY,
                    placeholder_url=settings.PLACEHOLDER_IMAGE_URL,
                    model=settings.GEMINI_IMAGE_MODEL,
                    timeout=settings.IMAGE_TIMEOUT_SECONDS,
                )
            logger.debug("Using ImagenImageService with model: %s", settings.IMAGEN_MODEL)
            return ImagenImageService(
                api_key=settings.IMAGE_API_KEY,
                placeholder_url=settings.PLACEHOLDER_IMAGE_URL,
                model=settings.IMAGEN_MODEL,
                aspect_ratio=settings.IMAGEN_ASPECT_RATIO,
                timeout=settings.IMAGE_TIMEOUT_SECONDS,
            )
        logger.warning("IMAGE_API_KEY not set, falling back to placeholder images")
    elif name != "placeholder":
        logger.warning("Unknown image provider '%s', using placeholder", name)

    return PlaceholderImageService(settings.PLACEHOLDER_IMAGE_URL)
