"""Text recognition for evidence screenshots and photos."""

import base64
import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

from openai import AsyncOpenAI, OpenAIError
from PIL import Image, UnidentifiedImageError

import config
from core.errors import ConfigurationError, EvidenceExtractionError

logger = logging.getLogger(__name__)

ImageSource = Union[Image.Image, str, Path]

# Marker the model returns when an image holds no readable text
NO_TEXT_MARKER = "NO_TEXT"


class TextRecognizer(Protocol):
    """Recognizes the text in a single image."""

    async def recognize_text(self, image: Image.Image) -> str:
        ...


def load_image(source: ImageSource) -> Image.Image:
    """
    Open an image from a path, or pass a PIL image through.

    Raises:
        EvidenceExtractionError: If the file is missing or not an image.
    """
    if isinstance(source, Image.Image):
        return source
    try:
        with Image.open(source) as img:
            img.load()
            return img.copy()
    except (FileNotFoundError, UnidentifiedImageError, OSError) as e:
        raise EvidenceExtractionError(f"Invalid image format: {e}") from e


class OpenAITextRecognizer:
    """Transcribes visible text using an OpenAI vision model."""

    # Longest edge sent to the API; text stays legible at this size
    MAX_EDGE = 1600

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Args:
            api_key: OpenAI API key (defaults to config.OPENAI_API_KEY)
            model: Vision model to use (defaults to config.OPENAI_VISION_MODEL)
            client: Pre-built AsyncOpenAI client (tests inject a mock)
        """
        self.api_key = api_key or config.OPENAI_API_KEY
        self.model = model or config.OPENAI_VISION_MODEL

        if client is not None:
            self.client = client
        elif self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key)
        else:
            logger.warning("OpenAI API key not found. Image text recognition is disabled.")
            self.client = None

    def _encode_image(self, image: Image.Image) -> str:
        """Downscale and encode an image as base64 JPEG."""
        img = image.convert("RGB")
        img.thumbnail((self.MAX_EDGE, self.MAX_EDGE), Image.Resampling.LANCZOS)

        buffer = BytesIO()
        img.save(buffer, format="JPEG", quality=85)
        return base64.b64encode(buffer.getvalue()).decode("utf-8")

    async def recognize_text(self, image: Image.Image) -> str:
        if self.client is None:
            raise ConfigurationError("OpenAI API key not found. Set OPENAI_API_KEY in your .env file.")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "system",
                        "content": (
                            "You are an OCR engine. Transcribe all legible text in the image, "
                            "preserving line breaks. Output only the text. If there is no "
                            f"readable text, output {NO_TEXT_MARKER}."
                        ),
                    },
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image_url",
                                "image_url": {
                                    "url": f"data:image/jpeg;base64,{self._encode_image(image)}",
                                    "detail": "high",
                                },
                            }
                        ],
                    },
                ],
                temperature=0,
                max_tokens=2000,
            )
        except OpenAIError as e:
            raise EvidenceExtractionError(f"Text recognition failed: {e}") from e

        if not response.choices:
            raise EvidenceExtractionError("No text found in image")
        text = (response.choices[0].message.content or "").strip()
        if not text or text == NO_TEXT_MARKER:
            raise EvidenceExtractionError("No text found in image")
        return text


async def extract_text(images: Sequence[ImageSource], recognizer: TextRecognizer) -> str:
    """
    Recognize text in each image, one at a time, and join the results.

    The first failing image aborts the whole extraction; its index is
    attached to the error so the UI can point at it.

    Args:
        images: PIL images or paths to image files.
        recognizer: Backend that reads a single image.

    Returns:
        Per-image text joined with config.IMAGE_TEXT_SEPARATOR.

    Raises:
        EvidenceExtractionError: If any image cannot be read.
        ConfigurationError: If the recognizer has no credentials.
    """
    texts = []
    for index, source in enumerate(images):
        try:
            image = load_image(source)
            texts.append(await recognizer.recognize_text(image))
        except EvidenceExtractionError as e:
            logger.warning(f"Text recognition failed for image {index + 1}/{len(images)}: {e}")
            raise EvidenceExtractionError(f"Image {index + 1}: {e.message}", image_index=index) from e

    logger.info(f"Recognized text in {len(texts)} image(s)")
    return config.IMAGE_TEXT_SEPARATOR.join(texts)
