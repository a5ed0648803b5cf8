"""Tests for evidence image text recognition."""

import sys
import base64
import tempfile
import unittest
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from openai import OpenAIError
from PIL import Image

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ai.text_extractor import NO_TEXT_MARKER, OpenAITextRecognizer, extract_text, load_image
from core.errors import ConfigurationError, EvidenceExtractionError


class ScriptedRecognizer:
    """Returns queued texts; raises queued exceptions."""

    def __init__(self, *results):
        self.results = list(results)
        self.images = []

    async def recognize_text(self, image):
        self.images.append(image)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def blank_image(size=(40, 20)):
    return Image.new("RGB", size, "white")


class TestExtractText(unittest.IsolatedAsyncioTestCase):

    async def test_results_joined_in_order(self):
        recognizer = ScriptedRecognizer("first page", "second page")
        text = await extract_text([blank_image(), blank_image()], recognizer)
        self.assertEqual(text, "first page\n\n---\n\nsecond page")
        self.assertEqual(len(recognizer.images), 2)

    async def test_no_images(self):
        self.assertEqual(await extract_text([], ScriptedRecognizer()), "")

    async def test_failing_image_is_identified(self):
        recognizer = ScriptedRecognizer(
            "first page", EvidenceExtractionError("No text found in image"), "never reached"
        )
        with self.assertRaises(EvidenceExtractionError) as ctx:
            await extract_text([blank_image(), blank_image(), blank_image()], recognizer)

        self.assertEqual(ctx.exception.image_index, 1)
        self.assertEqual(str(ctx.exception), "Image 2: No text found in image")
        self.assertEqual(len(recognizer.images), 2)

    async def test_unreadable_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            bogus = Path(tmpdir) / "notes.png"
            bogus.write_text("not an image")
            with self.assertRaises(EvidenceExtractionError) as ctx:
                await extract_text([bogus], ScriptedRecognizer("unused"))
        self.assertEqual(ctx.exception.image_index, 0)

    async def test_paths_are_loaded(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "shot.png"
            blank_image().save(path)
            recognizer = ScriptedRecognizer("from file")
            self.assertEqual(await extract_text([str(path)], recognizer), "from file")
        self.assertEqual(recognizer.images[0].size, (40, 20))

    def test_load_image_missing_file(self):
        with self.assertRaises(EvidenceExtractionError):
            load_image("/nonexistent/evidence.png")


def vision_client(content=None, side_effect=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
        ),
        side_effect=side_effect,
    )
    return client


class TestOpenAITextRecognizer(unittest.IsolatedAsyncioTestCase):

    async def test_returns_recognized_text(self):
        client = vision_client("  def main():\n    pass  ")
        recognizer = OpenAITextRecognizer(model="gpt-4o-mini", client=client)

        text = await recognizer.recognize_text(blank_image())

        self.assertEqual(text, "def main():\n    pass")
        kwargs = client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "gpt-4o-mini")
        url = kwargs["messages"][1]["content"][0]["image_url"]["url"]
        self.assertTrue(url.startswith("data:image/jpeg;base64,"))

    async def test_no_text_marker_is_failure(self):
        recognizer = OpenAITextRecognizer(client=vision_client(NO_TEXT_MARKER))
        with self.assertRaises(EvidenceExtractionError) as ctx:
            await recognizer.recognize_text(blank_image())
        self.assertEqual(str(ctx.exception), "No text found in image")

    async def test_empty_response_is_failure(self):
        recognizer = OpenAITextRecognizer(client=vision_client(None))
        with self.assertRaises(EvidenceExtractionError):
            await recognizer.recognize_text(blank_image())

    async def test_no_choices_is_failure(self):
        client = vision_client()
        client.chat.completions.create.return_value = SimpleNamespace(choices=[])
        recognizer = OpenAITextRecognizer(client=client)
        with self.assertRaises(EvidenceExtractionError):
            await recognizer.recognize_text(blank_image())

    async def test_api_error(self):
        recognizer = OpenAITextRecognizer(client=vision_client(side_effect=OpenAIError("boom")))
        with self.assertRaises(EvidenceExtractionError):
            await recognizer.recognize_text(blank_image())

    async def test_no_client_not_configured(self):
        recognizer = OpenAITextRecognizer(client=vision_client("text"))
        recognizer.client = None
        with self.assertRaises(ConfigurationError):
            await recognizer.recognize_text(blank_image())

    def test_large_images_downscaled(self):
        recognizer = OpenAITextRecognizer(client=vision_client("text"))
        encoded = recognizer._encode_image(Image.new("RGBA", (3200, 800)))
        decoded = Image.open(BytesIO(base64.b64decode(encoded)))
        self.assertEqual(decoded.format, "JPEG")
        self.assertEqual(decoded.size, (1600, 400))


if __name__ == "__main__":
    unittest.main()
