"""Gemini CLI provider — runs ``gemini`` as a subprocess for chat and summaries."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import subprocess
import sys

from .provider import ChatRequest, ChatResponse, ChatRole, LLMProvider, TokenUsage

logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "gemini-2.5-flash"
_DEFAULT_TIMEOUT = 120
_RESPONSE_KEYS = ("response", "text", "content", "output")
_ROLE_TAGS: dict[ChatRole, str] = {
    ChatRole.SYSTEM: "[System] ",
    ChatRole.USER: "",
    ChatRole.ASSISTANT: "[Assistant] ",
}


class GeminiCliError(Exception):
    """Raised when the Gemini CLI is missing, fails, or times out."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        self.returncode = returncode
        super().__init__(message)


class GeminiCliProvider(LLMProvider):
    """LLM provider that delegates to the ``gemini`` CLI.

    A flash-class model is the default because summarization calls are
    frequent and short.

    Configuration via environment variables:
        - ``CMEM_GEMINI_MODEL``: model name (default ``gemini-2.5-flash``)
        - ``CMEM_LLM_TIMEOUT_SEC``: subprocess timeout in seconds (default 120)
    """

    def __init__(
        self,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._model = model or os.environ.get("CMEM_GEMINI_MODEL", _DEFAULT_MODEL)
        self._timeout = timeout or float(
            os.environ.get("CMEM_LLM_TIMEOUT_SEC", str(_DEFAULT_TIMEOUT))
        )

    def name(self) -> str:
        return "gemini"

    @property
    def model(self) -> str:
        return self._model

    @property
    def timeout(self) -> float:
        return self._timeout

    async def chat(self, request: ChatRequest) -> ChatResponse:
        gemini_bin = shutil.which("gemini")
        if gemini_bin is None:
            msg = (
                "gemini CLI not found on PATH. "
                "Install it or set CMEM_LLM_PROVIDER=stub to use the stub provider."
            )
            raise GeminiCliError(msg)

        prompt = self.flatten(request)
        model = request.model or self._model
        args = [gemini_bin, "--prompt", prompt, "--output-format", "json", "-m", model]
        logger.debug("Invoking gemini CLI (model=%s, %d messages)", model, len(request.messages))

        proc = await self._spawn(args)
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self._timeout
            )
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            msg = f"gemini CLI timed out after {self._timeout}s"
            raise GeminiCliError(msg) from exc

        stdout = stdout_bytes.decode("utf-8", errors="replace").strip()
        stderr = stderr_bytes.decode("utf-8", errors="replace").strip()

        if proc.returncode != 0:
            detail = stderr or stdout or "unknown error"
            lowered = detail.lower()
            if "auth" in lowered or "login" in lowered:
                msg = (
                    f"gemini CLI auth error (exit {proc.returncode}): {detail}. "
                    "Run 'gemini auth login' to authenticate."
                )
            else:
                msg = f"gemini CLI failed (exit {proc.returncode}): {detail}"
            raise GeminiCliError(msg, returncode=proc.returncode)

        content = self.extract_text(stdout)
        return ChatResponse(
            content=content,
            usage=TokenUsage(
                prompt_tokens=len(prompt.split()),
                completion_tokens=len(content.split()),
            ),
        )

    @staticmethod
    async def _spawn(args: list[str]) -> asyncio.subprocess.Process:
        """Spawn a subprocess, handling Windows .CMD/.BAT shims."""
        if sys.platform == "win32" and args[0].lower().endswith((".cmd", ".bat")):
            return await asyncio.create_subprocess_shell(
                subprocess.list2cmdline(args),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        return await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    @staticmethod
    def flatten(request: ChatRequest) -> str:
        """Join the request's messages into the single prompt the CLI accepts."""
        return "\n\n".join(f"{_ROLE_TAGS[m.role]}{m.content}" for m in request.messages)

    @staticmethod
    def extract_text(stdout: str) -> str:
        """Pull the reply out of ``--output-format json`` output.

        Non-JSON output is returned verbatim.
        """
        if not stdout:
            return ""
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError:
            return stdout
        if not isinstance(data, dict):
            return str(data)
        for key in _RESPONSE_KEYS:
            if key in data:
                value = data[key]
                return value if isinstance(value, str) else str(value)
        return json.dumps(data)
