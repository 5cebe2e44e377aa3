"""Claude Code provider: drives the locally installed ``claude`` CLI.

Authentication is whatever the CLI is logged in with, so this backend needs
no API key.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import TYPE_CHECKING, Any

from rolecall.errors import APIError
from rolecall.providers._utils import parse_json_text, schema_to_json, validate_object
from rolecall.providers.models import (
    ObjectResult,
    StreamEvent,
    TextResult,
    TextStream,
    Usage,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from rolecall.providers.models import CallEnvelope


class ClaudeCodeProvider:
    """Run prompts through ``claude -p --output-format json``."""

    def __init__(self, name: str = "claude-code", *, executable: str = "claude") -> None:
        """Create an adapter that invokes *executable*."""
        self.name = name
        self.executable = executable

    def __repr__(self) -> str:
        """Return a short identity representation."""
        return f"{type(self).__name__}(name={self.name!r})"

    def _argv(self, envelope: CallEnvelope, prompt: str) -> list[str]:
        argv = [self.executable, "-p", prompt, "--output-format", "json"]
        if envelope.model:
            argv += ["--model", envelope.model]
        if envelope.system_prompt:
            argv += ["--system-prompt", envelope.system_prompt]
        return argv

    async def _run(self, envelope: CallEnvelope, prompt: str, phase: str) -> dict[str, Any]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._argv(envelope, prompt),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise APIError(
                f"{self.executable!r} executable not found",
                hint="Install Claude Code and log in, or choose another provider.",
                retryable=False,
                provider=self.name,
                phase=phase,
            ) from e
        try:
            stdout, stderr = await proc.communicate()
        except BaseException:
            # Cancelled or interrupted: the CLI must not outlive the call.
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
            raise

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
            raise APIError(
                f"{self.name} {phase} failed: {detail}",
                provider=self.name,
                phase=phase,
            )
        try:
            payload = json.loads(stdout.decode(errors="replace"))
        except json.JSONDecodeError as e:
            raise APIError(
                f"{self.name} {phase} returned malformed output",
                retryable=False,
                provider=self.name,
                phase=phase,
            ) from e
        if not isinstance(payload, dict) or payload.get("is_error"):
            result = payload.get("result") if isinstance(payload, dict) else payload
            raise APIError(
                f"{self.name} {phase} failed: {result}",
                provider=self.name,
                phase=phase,
            )
        return payload

    @staticmethod
    def _prompt(envelope: CallEnvelope) -> str:
        turns = [m["content"] for m in envelope.conversation()]
        if not turns and envelope.prompt:
            turns = [envelope.prompt]
        return "\n\n".join(turns)

    async def generate_text(self, envelope: CallEnvelope) -> TextResult:
        """Run one non-interactive CLI turn."""
        payload = await self._run(envelope, self._prompt(envelope), "generate_text")
        return TextResult(text=str(payload.get("result", "")), usage=_usage(payload))

    async def stream_text(self, envelope: CallEnvelope) -> TextStream:
        """Run the turn to completion and replay it as a single-chunk stream."""
        result = await self.generate_text(envelope)

        async def events() -> AsyncIterator[StreamEvent]:
            yield StreamEvent(text=result.text, usage=result.usage)

        return TextStream(events())

    async def generate_object(self, envelope: CallEnvelope) -> ObjectResult:
        """Ask for JSON only, then parse and validate it."""
        schema_text = json.dumps(schema_to_json(envelope.schema))
        prompt = (
            f"{self._prompt(envelope)}\n\n"
            f"Respond with only a JSON object named {envelope.object_name} "
            f"matching this JSON schema, without commentary:\n{schema_text}"
        )
        payload = await self._run(envelope, prompt, "generate_object")
        text = str(payload.get("result", ""))
        data = parse_json_text(text, provider=self.name)
        return ObjectResult(
            object=validate_object(envelope.schema, data, provider=self.name),
            usage=_usage(payload),
            text=text,
        )


def _usage(payload: dict[str, Any]) -> Usage:
    raw = payload.get("usage")
    if not isinstance(raw, dict):
        return Usage()
    return Usage(
        input_tokens=int(raw.get("input_tokens") or 0),
        output_tokens=int(raw.get("output_tokens") or 0),
    )
