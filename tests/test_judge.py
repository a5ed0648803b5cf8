"""Tests for ai/judge.py with a mocked AsyncOpenAI client."""

import sys
import json
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from openai import OpenAIError

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ai.judge import SYSTEM_PROMPT, LocalProgressJudge
from core.errors import ConfigurationError, InvalidScoreError, ProtocolError, TransportError


def completion(content):
    """Shape of a chat.completions.create() result that the judge reads."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def mock_client(content=None, side_effect=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=completion(content), side_effect=side_effect
    )
    return client


async def judge_call(judge):
    return await judge.verify_progress(
        session_goal="Finish report",
        current_summary="Intro drafted.",
        user_note="Wrote the conclusion",
        scraped_delta="In conclusion, ...",
    )


class TestLocalProgressJudge(unittest.IsolatedAsyncioTestCase):

    async def test_valid_json_response(self):
        client = mock_client(json.dumps({
            "score": 0.9, "allowBreak": True, "reason": "Done.", "updatedSummary": "All written.",
        }))
        judge = LocalProgressJudge(model="gpt-4o-mini", client=client)

        result = await judge_call(judge)

        self.assertEqual(result.score, 0.9)
        self.assertTrue(result.allow_break)
        self.assertEqual(result.updated_summary, "All written.")

        kwargs = client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "gpt-4o-mini")
        self.assertEqual(kwargs["response_format"], {"type": "json_object"})
        self.assertEqual(kwargs["messages"][0], {"role": "system", "content": SYSTEM_PROMPT})
        self.assertEqual(json.loads(kwargs["messages"][1]["content"]), {
            "sessionGoal": "Finish report",
            "sessionStateSummary": "Intro drafted.",
            "userProgressNote": "Wrote the conclusion",
            "scrapedTextDelta": "In conclusion, ...",
        })

    async def test_markdown_fences_tolerated(self):
        content = '```json\n{"score": 0.4, "allowBreak": false, "reason": "r", "updatedSummary": "s"}\n```'
        result = await judge_call(LocalProgressJudge(client=mock_client(content)))
        self.assertFalse(result.allow_break)

    async def test_invalid_json(self):
        with self.assertRaises(ProtocolError):
            await judge_call(LocalProgressJudge(client=mock_client("I think yes")))

    async def test_out_of_range_score(self):
        content = json.dumps({"score": 7, "allowBreak": True, "reason": "r", "updatedSummary": "s"})
        with self.assertRaises(InvalidScoreError):
            await judge_call(LocalProgressJudge(client=mock_client(content)))

    async def test_no_choices_is_protocol_error(self):
        client = mock_client()
        client.chat.completions.create.return_value = SimpleNamespace(choices=[])
        with self.assertRaises(ProtocolError) as ctx:
            await judge_call(LocalProgressJudge(client=client))
        self.assertEqual(str(ctx.exception), "Empty response")

    async def test_api_error_is_transport_error(self):
        client = mock_client(side_effect=OpenAIError("rate limited"))
        with self.assertRaises(TransportError):
            await judge_call(LocalProgressJudge(client=client))

    async def test_no_client_not_configured(self):
        judge = LocalProgressJudge(client=mock_client("{}"))
        judge.client = None
        with self.assertRaises(ConfigurationError):
            await judge_call(judge)


if __name__ == "__main__":
    unittest.main()
