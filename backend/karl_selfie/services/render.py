"""Render service: selfie + Karl reference + scene text -> generated composite."""
import base64
from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from karl_selfie.core.config import Settings
from karl_selfie.core.credentials import resolve_api_key
from karl_selfie.core.errors import (
    EmptyGenerationResult,
    MissingPhoto,
    MissingScene,
    UnknownScene,
    UpstreamError,
    UpstreamRejection,
    UpstreamTimeout,
)
from karl_selfie.core.logging import setup_logging
from karl_selfie.models.render import InlineImage, RenderRequest, RenderResult
from karl_selfie.services.prompt import build_final_prompt
from karl_selfie.services.reference import load_reference_asset
from karl_selfie.services.scenes import SceneCatalog, SceneNotFound

logger = setup_logging("render")

SELFIE_MIME_TYPE = "image/jpeg"

# Finish reasons that mean the model refused rather than failed.
BLOCKING_FINISH_REASONS = frozenset(
    {
        "SAFETY",
        "PROHIBITED_CONTENT",
        "BLOCKLIST",
        "SPII",
        "IMAGE_SAFETY",
        "IMAGE_PROHIBITED_CONTENT",
    }
)


def _enum_name(value: Any) -> str:
    return getattr(value, "name", None) or str(value)


class RenderService:
    """Validates render requests and calls the Gemini image model.

    The service holds no per-request state; the reference image and the
    API key are resolved on every call.
    """

    def __init__(self, settings: Settings, catalog: SceneCatalog) -> None:
        self.settings = settings
        self.catalog = catalog

    def build_request(
        self,
        photo: Optional[bytes],
        custom_prompt: Optional[str] = None,
        scene_index: Optional[str] = None,
    ) -> RenderRequest:
        """Validate the selfie and resolve the scene text.

        A non-blank custom prompt wins over the scene id.

        Raises:
            MissingPhoto: No selfie bytes.
            UnknownScene: scene_index is not a known scene id.
            MissingScene: Neither a prompt nor a scene was given.
        """
        if not photo:
            raise MissingPhoto()

        scene_text = (custom_prompt or "").strip()
        if not scene_text and scene_index is not None and scene_index.strip():
            try:
                scene = self.catalog.by_id(int(scene_index))
            except (ValueError, SceneNotFound):
                raise UnknownScene(scene_index) from None
            scene_text = scene.full_prompt.strip()

        if not scene_text:
            raise MissingScene()

        return RenderRequest(photo=photo, prompt_text=scene_text)

    def render(self, request: RenderRequest) -> RenderResult:
        """Generate the composite image for a validated request.

        Raises:
            MissingCredential: No API key available (before any network call).
            ReferenceAssetMissing: No Karl reference image on disk.
            UpstreamError: The generation call failed, timed out, was
                rejected or returned no image.
        """
        api_key = resolve_api_key(self.settings)
        reference = load_reference_asset(self.settings.reference_dir)
        full_prompt = build_final_prompt(request.prompt_text)

        logger.info(
            "Rendering scene with reference %s",
            reference.path.name,
            extra={"photo_bytes": len(request.photo)},
        )
        selfie = InlineImage(data=request.photo, mime_type=SELFIE_MIME_TYPE)
        image_bytes = self._call_image_api(api_key, [reference.as_inline(), selfie], full_prompt)

        return RenderResult(
            image_base64=base64.b64encode(image_bytes).decode("ascii"),
            prompt_used=request.prompt_text,
            full_prompt=full_prompt,
        )

    def _call_image_api(self, api_key: str, images: list[InlineImage], prompt: str) -> bytes:
        """Send the images (in order) and the prompt to the image model.

        Args:
            api_key: Gemini API key.
            images: Karl reference first, user selfie second.
            prompt: Expanded instruction from build_final_prompt().

        Returns:
            Raw bytes of the first image in the response.
        """
        timeout = self.settings.generation_timeout_seconds
        client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )
        contents = [
            types.Part(inline_data=types.Blob(data=image.data, mime_type=image.mime_type))
            for image in images
        ]
        contents.append(types.Part(text=prompt))

        try:
            response = client.models.generate_content(
                model=self.settings.image_model,
                contents=contents,
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE"],
                    image_config=types.ImageConfig(
                        aspect_ratio=self.settings.image_aspect_ratio,
                        image_size=self.settings.image_size,
                    ),
                ),
            )
        except (httpx.TimeoutException, TimeoutError) as exc:
            raise UpstreamTimeout(timeout) from exc
        except genai_errors.ClientError as exc:
            raise UpstreamRejection(exc.message or str(exc), details=exc.status) from exc
        except genai_errors.APIError as exc:
            raise UpstreamError(exc.message or str(exc), details=exc.status) from exc

        return self._extract_image(response)

    def _extract_image(self, response: types.GenerateContentResponse) -> bytes:
        feedback = response.prompt_feedback
        if feedback is not None and feedback.block_reason is not None:
            reason = _enum_name(feedback.block_reason)
            raise UpstreamRejection(
                f"Request rejected by safety system ({reason})",
                details=feedback.block_reason_message,
            )

        candidates = response.candidates
        if not candidates:
            raise EmptyGenerationResult(details="No candidates returned")

        candidate = candidates[0]
        parts = candidate.content.parts if candidate.content is not None else None
        for part in parts or []:
            if part.inline_data is not None and part.inline_data.data:
                return bytes(part.inline_data.data)

        reason = _enum_name(candidate.finish_reason) if candidate.finish_reason else None
        if reason in BLOCKING_FINISH_REASONS:
            raise UpstreamRejection(
                f"Image rejected by safety system ({reason})",
                details=candidate.finish_message,
            )
        raise EmptyGenerationResult(details=f"finish_reason={reason}")
