"""
Analysis client for screenshots and audio.

Two backends share one async interface:
- Ollama (local vision models via ollama-python)
- Gemini (hosted, via the google-genai SDK)

Both SDKs are blocking, so every call runs in the loop's default executor.
Each call takes an optional CancellationToken which is checked before the
request starts and again after it settles; a cancelled call raises
OperationCancelledError instead of returning.
"""

import asyncio
import base64
import json
import logging
import mimetypes
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import ollama
from google import genai
from google.genai import types

from core.processing.cancellation import CancellationToken
from core.processing.classifier import strip_code_fences


logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

_AUDIO_MIME_TYPES = {
    ".mp3": "audio/mp3",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".webm": "audio/webm",
}


class LLMConfigurationError(RuntimeError):
    """The selected backend cannot be constructed from the given settings."""
    pass


class UnsupportedInputError(RuntimeError):
    """The backend cannot analyze this kind of input."""
    pass


@dataclass
class LLMConfig:
    """Configuration for the analysis client."""
    backend: str = "gemini"
    model_name: str = ""  # Ollama model; empty means auto-detect
    host: str = "http://localhost:11434"
    gemini_model: str = "gemini-2.0-flash"
    api_key: str = ""
    temperature: float = 0.2

    @classmethod
    def from_settings(cls, llm: Dict[str, Any], api_key: str = "") -> 'LLMConfig':
        """Build from the [llm] config section."""
        return cls(
            backend=str(llm.get("backend", cls.backend)).lower(),
            model_name=llm.get("model", "") or "",
            host=llm.get("ollama_url", cls.host),
            gemini_model=llm.get("gemini_model", cls.gemini_model),
            api_key=api_key,
            temperature=float(llm.get("temperature", cls.temperature)),
        )


class PromptTemplates:
    """Prompts for each analysis entry point."""

    IMAGE = """Extract the problem shown in this screenshot.
Reproduce the problem statement faithfully, including any constraints,
examples and input/output formats that are visible. Plain text only."""

    AUDIO = """Transcribe this recording and restate the question or task it
contains as a clear, self-contained problem statement. Plain text only."""

    MCQ = """This screenshot contains a multiple-choice question.
Answer with the letter and text of the correct option on the first line,
followed by a one or two sentence justification."""

    CODING = """This screenshot contains a programming task.
Write a complete, working solution. Respond with the code only, in a single
code block, with no explanation."""

    SOLUTION = """Solve the following problem.

Problem:
{problem}

Respond with JSON only, in exactly this shape:
{{"solution": {{"code": "<complete solution code>",
  "thoughts": ["<key insight>", "..."],
  "time_complexity": "<big-O>",
  "space_complexity": "<big-O>"}}}}"""

    DEBUG = """You are reviewing a solution to the problem below. The attached
screenshots show the solution's current output, errors or failing tests.

Problem:
{problem}

Current solution:
{code}

Fix the solution. Respond with JSON only, in exactly this shape:
{{"solution": {{"code": "<corrected code>",
  "thoughts": ["<what was wrong and how it was fixed>", "..."],
  "time_complexity": "<big-O>",
  "space_complexity": "<big-O>"}}}}"""

    @staticmethod
    def problem_text(problem_info: Dict[str, Any]) -> str:
        return json.dumps(problem_info, indent=2, ensure_ascii=False)


def parse_solution_response(text: str) -> Dict[str, Any]:
    """
    Parse a SOLUTION/DEBUG reply into {"solution": {...}}.

    Models often wrap the JSON in fences or prose; when no JSON object can be
    recovered the whole reply is treated as code.
    """
    cleaned = strip_code_fences(text)
    match = _JSON_OBJECT_RE.search(cleaned)
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            solution = data.get("solution", data)
            if isinstance(solution, dict) and "code" in solution:
                solution.setdefault("thoughts", [])
                solution.setdefault("time_complexity", "N/A")
                solution.setdefault("space_complexity", "N/A")
                return {"solution": solution}

    logger.debug("Solution reply was not JSON, using it as code")
    return {
        "solution": {
            "code": cleaned,
            "thoughts": [],
            "time_complexity": "N/A",
            "space_complexity": "N/A",
        }
    }


def audio_mime_type(path: str) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in _AUDIO_MIME_TYPES:
        return _AUDIO_MIME_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "application/octet-stream"


class BaseAnalysisClient:
    """
    Shared entry points; subclasses implement _generate_sync.

    _generate_sync(prompt, images, audio) receives image file paths and an
    optional (bytes, mime_type) audio part and returns the reply text.
    """

    backend_name = "base"

    def __init__(self, config: LLMConfig):
        self.config = config

    @property
    def model(self) -> str:
        raise NotImplementedError

    def _generate_sync(self, prompt: str, images: List[str],
                       audio: Optional[Tuple[bytes, str]]) -> str:
        raise NotImplementedError

    async def _generate(self, prompt: str,
                        images: Optional[List[str]] = None,
                        audio: Optional[Tuple[bytes, str]] = None,
                        token: Optional[CancellationToken] = None) -> str:
        if token is not None:
            token.raise_if_cancelled()

        start_time = time.time()
        text = await asyncio.get_running_loop().run_in_executor(
            None,
            self._generate_sync,
            prompt,
            list(images or []),
            audio,
        )
        latency_ms = (time.time() - start_time) * 1000

        if token is not None:
            token.raise_if_cancelled()

        text = (text or "").strip()
        if not text:
            raise ValueError(f"Empty response from {self.backend_name} model {self.model}")
        logger.info(f"Generated response in {latency_ms:.1f}ms: {text[:50]}...")
        return text

    def _text_result(self, text: str) -> Dict[str, Any]:
        return {"text": text, "timestamp": int(time.time() * 1000)}

    # Entry points

    async def analyze_audio_file(self, path: str,
                                 token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        data = await asyncio.get_running_loop().run_in_executor(None, Path(path).read_bytes)
        text = await self._generate(PromptTemplates.AUDIO, audio=(data, audio_mime_type(path)), token=token)
        return self._text_result(text)

    async def analyze_audio_from_base64(self, data: str, mime_type: str,
                                        token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        audio = (base64.b64decode(data), mime_type)
        text = await self._generate(PromptTemplates.AUDIO, audio=audio, token=token)
        return self._text_result(text)

    async def analyze_image_file(self, path: str,
                                 token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        text = await self._generate(PromptTemplates.IMAGE, images=[path], token=token)
        return self._text_result(text)

    async def analyze_image_mcq(self, path: str,
                                token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        text = await self._generate(PromptTemplates.MCQ, images=[path], token=token)
        return self._text_result(text)

    async def analyze_image_coding(self, path: str,
                                   token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        text = await self._generate(PromptTemplates.CODING, images=[path], token=token)
        return self._text_result(text)

    async def generate_solution(self, problem_info: Dict[str, Any],
                                token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        prompt = PromptTemplates.SOLUTION.format(problem=PromptTemplates.problem_text(problem_info))
        text = await self._generate(prompt, token=token)
        return parse_solution_response(text)

    async def debug_solution_with_images(self, problem_info: Dict[str, Any], current_code: str,
                                         debug_image_paths: List[str],
                                         token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        prompt = PromptTemplates.DEBUG.format(
            problem=PromptTemplates.problem_text(problem_info),
            code=current_code,
        )
        text = await self._generate(prompt, images=debug_image_paths, token=token)
        return parse_solution_response(text)

    async def health_check(self) -> Tuple[bool, str]:
        return True, f"{self.backend_name} model {self.model} configured"

    def get_stats(self) -> Dict:
        """Get current client statistics."""
        return {
            "backend": self.backend_name,
            "model": self.model,
            "temperature": self.config.temperature,
        }


class OllamaAnalysisClient(BaseAnalysisClient):
    """
    Local analysis via ollama-python.

    Images are sent base64-encoded on the user message. Ollama has no audio
    input, so the audio entry points raise UnsupportedInputError.
    """

    backend_name = "ollama"

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.client = ollama.Client(host=self.config.host)
        self._model = config.model_name
        logger.info(f"Initialized OllamaAnalysisClient at {self.config.host} "
                    f"with model: {self._model or '(auto-detect)'}")

    @property
    def model(self) -> str:
        if not self._model:
            self._model = self._detect_model()
        return self._model

    def _detect_model(self) -> str:
        """Pick an installed model, preferring vision-capable ones."""
        response = self.client.list()
        names = [model.model for model in response.models]
        if not names:
            raise LLMConfigurationError("No Ollama models installed; run `ollama pull llava` first")

        for name in names:
            if any(tag in name.lower() for tag in ("llava", "vision", "-vl", "gemma3", "moondream")):
                logger.info(f"Auto-detected Ollama vision model: {name}")
                return name

        logger.warning(f"No vision model found, falling back to {names[0]}")
        return names[0]

    def _generate_sync(self, prompt: str, images: List[str],
                       audio: Optional[Tuple[bytes, str]]) -> str:
        if audio is not None:
            raise UnsupportedInputError("Audio analysis is not supported by the Ollama backend")

        message = {"role": "user", "content": prompt}
        if images:
            message["images"] = [_encode_file(path) for path in images]

        response = self.client.chat(
            model=self.model,
            messages=[message],
            options={"temperature": self.config.temperature},
        )
        return response.get("message", {}).get("content", "")

    async def health_check(self) -> Tuple[bool, str]:
        """
        Check if the Ollama service and model are available.

        Returns:
            Tuple of (is_healthy, status_message)
        """
        try:
            response = await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.client.list()
            )
            model_names = [model.model for model in response.models]

            if not self._model:
                self._model = await asyncio.get_running_loop().run_in_executor(None, self._detect_model)

            if self._model in model_names:
                return True, f"Model {self._model} available"
            else:
                return False, f"Model {self._model} not found. Available: {model_names}"

        except Exception as e:
            return False, f"Ollama service unavailable: {e}"


class GeminiAnalysisClient(BaseAnalysisClient):
    """Hosted analysis via google-genai; handles images and audio."""

    backend_name = "gemini"

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        if not config.api_key:
            raise LLMConfigurationError("GEMINI_API_KEY is not set; set it or use USE_OLLAMA=true")
        self.client = genai.Client(api_key=config.api_key)
        logger.info(f"Initialized GeminiAnalysisClient with model: {self.model}")

    @property
    def model(self) -> str:
        return self.config.gemini_model

    def _generate_sync(self, prompt: str, images: List[str],
                       audio: Optional[Tuple[bytes, str]]) -> str:
        contents: List[Any] = [prompt]
        for path in images:
            contents.append(types.Part.from_bytes(data=Path(path).read_bytes(), mime_type="image/png"))
        if audio is not None:
            data, mime_type = audio
            contents.append(types.Part.from_bytes(data=data, mime_type=mime_type))

        response = self.client.models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(temperature=self.config.temperature),
        )
        return response.text if hasattr(response, "text") and response.text else ""


def _encode_file(path: str) -> str:
    with open(path, "rb") as f:
        return base64.b64encode(f.read()).decode("utf-8")


async def create_llm_client(config: Optional[LLMConfig] = None) -> BaseAnalysisClient:
    """
    Create and health-check the analysis client for the configured backend.

    Raises:
        LLMConfigurationError: unknown backend, or Gemini without an API key
    """
    config = config or LLMConfig()

    if config.backend == "ollama":
        client = OllamaAnalysisClient(config)
    elif config.backend == "gemini":
        client = GeminiAnalysisClient(config)
    else:
        raise LLMConfigurationError(f"Unknown LLM backend: {config.backend!r}")

    is_healthy, status = await client.health_check()
    if not is_healthy:
        logger.warning(f"LLM client health check failed: {status}")
    else:
        logger.info(f"LLM client ready: {status}")

    return client
