"""OpenAI-backed progress judge, used when no verification service is deployed."""

import json
import logging
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAIError

import config
from ai.verifier import VerificationRequest, VerificationResponse
from core.errors import ConfigurationError, ProtocolError, TransportError

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are a productivity verification assistant for a focus session app. Your role is to evaluate whether a user has made meaningful progress toward their stated session goal.

You will receive four pieces of information:
1. sessionGoal: The user's original goal/plan for this focus session
2. sessionStateSummary: A running summary of what has been accomplished so far
3. userProgressNote: The user's description of what they just accomplished (may say "(User provided images only)" if they only submitted screenshots)
4. scrapedTextDelta: New text extracted from the user's documents or screenshots since the last check (may be empty or irrelevant)

Your task:
1. Compare the new progress against the original session goal
2. Use the running summary to understand what was already completed
3. Weigh the scraped text delta: code, designs, writing or other work artifacts are strong evidence; UI chrome or unrelated text should be de-weighted
4. Assign a score from 0.0 to 1.0:
   - 0.0-0.3: Very little or no meaningful progress
   - 0.3-0.6: Some progress but minor/incomplete
   - 0.6-1.0: Strong, meaningful progress toward the goal
5. Set allowBreak to true only if the progress meaningfully advances the session plan (generally score >= 0.6)
6. Give a short, direct reason (1-2 sentences)
7. Write an updated state summary (1-3 sentences) covering what is done, what changed in this interval, and what remains

Respond ONLY with raw JSON in exactly this shape, no markdown:
{"score": 0.75, "allowBreak": true, "reason": "...", "updatedSummary": "..."}

Be generous but fair: screenshots of real work count even without a detailed note, screenshots of unrelated apps do not."""


class LocalProgressJudge:
    """
    Judges progress directly with an OpenAI chat model.

    Same contract and validation as ProgressVerifier, so the orchestrator
    cannot tell the two apart.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Args:
            api_key: OpenAI API key (defaults to config.OPENAI_API_KEY)
            model: Chat model name (defaults to config.OPENAI_MODEL)
            timeout: Request deadline in seconds (defaults to config.VERIFICATION_TIMEOUT)
            client: Pre-built AsyncOpenAI client (tests inject a mock)
        """
        self.api_key = api_key or config.OPENAI_API_KEY
        self.model = model or config.OPENAI_MODEL
        self.timeout = timeout or config.VERIFICATION_TIMEOUT

        if client is not None:
            self.client = client
        elif self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        else:
            logger.warning("OpenAI API key not found. Local judge is not configured.")
            self.client = None

    async def verify_progress(
        self,
        session_goal: str,
        current_summary: str,
        user_note: str,
        scraped_delta: str,
    ) -> VerificationResponse:
        if self.client is None:
            raise ConfigurationError("OpenAI API key not found. Set OPENAI_API_KEY in your .env file.")

        request = VerificationRequest(
            session_goal=session_goal,
            session_state_summary=current_summary,
            user_progress_note=user_note,
            scraped_text_delta=scraped_delta,
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": json.dumps(request.to_payload())},
                ],
                response_format={"type": "json_object"},
                temperature=0.2,
                max_tokens=400,
            )
        except OpenAIError as e:
            logger.warning(f"Local judge request failed: {e}")
            raise TransportError(f"OpenAI request failed: {e}") from e

        if not response.choices:
            logger.error("Local judge returned no choices")
            raise ProtocolError("Empty response")
        content = response.choices[0].message.content or ""
        result = VerificationResponse.from_payload(self._decode(content))
        logger.info(f"Local judge result: score={result.score:.2f}, allowBreak={result.allow_break}")
        return result

    @staticmethod
    def _decode(content: str) -> Dict[str, Any]:
        content = content.strip()
        # Tolerate ```json fences even though JSON mode is requested
        if content.startswith("```"):
            lines = content.split("\n")
            content = "\n".join(lines[1:-1])
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Local judge returned invalid JSON: {content[:500]!r}")
            raise ProtocolError(f"Failed to parse response: {e}") from e
