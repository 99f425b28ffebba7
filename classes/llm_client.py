import logging
from typing import Any, Callable, Dict, List, Optional

from openai import OpenAI
from langchain_google_vertexai import VertexAI, ChatVertexAI
from langchain_core.messages import HumanMessage, AIMessage, SystemMessage, BaseMessage

from classes.errors import GenerationError
from classes.model_props import parse_model_name, is_openai_model

logger = logging.getLogger("diffref_backend")


class BaseLlmClient:
    """
    Common usage accounting for both completion and chat clients.
    """

    last_usage: Optional[Dict[str, int]]

    def _add_usage(self, inc: Dict[str, int]) -> None:
        if self.last_usage is None:
            self.last_usage = inc
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)

    def _merge_usage(self, resp: Any) -> None:
        if resp is None:
            return
        usage = getattr(resp, "usage", None)
        if usage is None:
            return
        self._add_usage({
            "prompt_token_count": getattr(usage, "input_tokens", 0) or 0,
            "candidates_token_count": getattr(usage, "output_tokens", 0) or 0,
            "total_token_count": getattr(usage, "total_tokens", 0) or 0,
        })

    def _merge_vertex_usage(self, usage_metadata: Any) -> None:
        if not usage_metadata:
            return

        def get(*keys: str) -> int:
            for k in keys:
                if isinstance(usage_metadata, dict):
                    v = usage_metadata.get(k)
                else:
                    v = getattr(usage_metadata, k, None)
                if v:
                    return int(v)
            return 0

        self._add_usage({
            "prompt_token_count": get("prompt_token_count", "input_tokens"),
            "candidates_token_count": get("candidates_token_count", "output_tokens"),
            "total_token_count": get("total_token_count", "total_tokens"),
        })

    def get_accrued_usage(self) -> Dict[str, int]:
        return dict(self.last_usage or {})

    def _build_backends(self, model_name: str, vertex_cls, vertex_project: str, vertex_region: str, timeout):
        self.provider = "openai" if is_openai_model(model_name) else "vertex"
        self.model_name = model_name
        self._timeout = timeout
        self.last_usage = None
        self._openai_params: Dict[str, Any] = {}

        if self.provider == "vertex":
            self._vertex = vertex_cls(
                project=vertex_project,
                location=vertex_region,
                model_name=model_name,
                timeout=timeout,
            )
            self._client = None
        else:
            self._vertex = None
            self.model_name, self._openai_params = parse_model_name(self.model_name)
            # retries are left to the user: a failed call is reported, never replayed
            client_kwargs: Dict[str, Any] = {"max_retries": 0}
            if timeout is not None:
                client_kwargs["timeout"] = timeout

            self._client = OpenAI(**client_kwargs)


def _vertex_usage_from(resp: Any) -> Any:
    usage_md = getattr(resp, "usage_metadata", None)
    if usage_md is None:
        rm = getattr(resp, "response_metadata", None)
        if isinstance(rm, dict):
            usage_md = rm.get("usage_metadata")
        elif rm is not None:
            usage_md = getattr(rm, "usage_metadata", None)
    return usage_md


def _chunk_text(chunk: Any) -> str:
    if isinstance(chunk, str):
        return chunk
    content = getattr(chunk, "content", "")
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return content or ""


class LlmClient(BaseLlmClient):
    """
    Minimal wrapper for single-shot generation:

        text = llm.generate_text("some prompt", max_tokens=200)

    Under the hood:
    - Vertex: VertexAI.invoke(prompt)
    - OpenAI: Responses API (client.responses.create)
    """

    def __init__(
        self,
        model_name: str,
        *,
        vertex_project: str,
        vertex_region: str,
        timeout: float | None = None,
    ):
        self._build_backends(model_name, VertexAI, vertex_project, vertex_region, timeout)

    def _invoke_once(self, prompt: str, max_tokens: int) -> str:
        if self.provider == "vertex":
            resp = self._vertex.invoke(prompt, max_output_tokens=max_tokens)
            self._merge_vertex_usage(_vertex_usage_from(resp))
            return _chunk_text(resp).strip()

        resp = self._client.responses.create(
            model=self.model_name,
            input=prompt,
            max_output_tokens=max_tokens,
            **self._openai_params,
        )
        self._merge_usage(resp)

        text = getattr(resp, "output_text", "") or ""
        return text.strip()

    def generate_text(self, prompt: str, *, max_tokens: int) -> str:
        """
        Single HTTP call. Any failure, or an empty answer, is a GenerationError.
        """
        try:
            text = self._invoke_once(prompt, max_tokens)
        except Exception as e:
            logger.info(f"[LLM] {self.model_name} generate_text failed: {e}")
            raise GenerationError(f"Text generation failed: {e}") from e
        if not text:
            raise GenerationError("Text generation returned an empty answer")
        return text


class ChatLlmClient(BaseLlmClient):
    """
    Minimal wrapper for streamed chat:

        chat_llm.stream_text(
            [{"role": "system", "content": ...}, {"role": "user", "content": ...}],
            on_fragment=lambda text: ...,
            max_tokens=500,
        )

    Under the hood:
    - Vertex: ChatVertexAI.stream(messages)
    - OpenAI: Responses API with stream=True and input=[{role, content}, ...]
    """

    def __init__(
        self,
        model_name: str,
        *,
        vertex_project: str,
        vertex_region: str,
        timeout: float | None = None,
    ):
        self._build_backends(model_name, ChatVertexAI, vertex_project, vertex_region, timeout)

    def _to_langchain_messages(self, messages: List[Dict[str, str]]) -> List[BaseMessage]:
        out: List[BaseMessage] = []
        for m in messages:
            role = (m.get("role") or "").strip().lower()
            content = str(m.get("content", ""))
            if role == "system":
                out.append(SystemMessage(content=content))
            elif role == "assistant":
                out.append(AIMessage(content=content))
            else:
                out.append(HumanMessage(content=content))
        return out

    def _to_openai_messages(self, messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        out: List[Dict[str, str]] = []
        for m in messages:
            role = (m.get("role") or "").strip().lower()
            if role == "system":
                role = "developer"
            elif role not in ("user", "assistant"):
                role = "user"
            out.append({"role": role, "content": str(m.get("content", ""))})
        return out

    def _stream_once(self, messages: List[Dict[str, str]], on_fragment: Callable[[str], None], max_tokens: int) -> None:
        if self.provider == "vertex":
            for chunk in self._vertex.stream(
                self._to_langchain_messages(messages),
                max_output_tokens=max_tokens,
            ):
                self._merge_vertex_usage(_vertex_usage_from(chunk))
                text = _chunk_text(chunk)
                if text:
                    on_fragment(text)
            return

        stream = self._client.responses.create(
            model=self.model_name,
            input=self._to_openai_messages(messages),
            max_output_tokens=max_tokens,
            stream=True,
            **self._openai_params,
        )
        for event in stream:
            event_type = getattr(event, "type", "")
            if event_type == "response.output_text.delta":
                if event.delta:
                    on_fragment(event.delta)
            elif event_type == "response.completed":
                self._merge_usage(getattr(event, "response", None))
            elif event_type in ("response.failed", "error"):
                raise GenerationError(f"Stream reported {event_type}")

    def stream_text(
        self,
        messages: List[Dict[str, str]],
        on_fragment: Callable[[str], None],
        *,
        max_tokens: int = 500,
    ) -> None:
        """
        Calls on_fragment(text) zero or more times, in delivery order, then returns.
        """
        try:
            self._stream_once(messages, on_fragment, max_tokens)
        except GenerationError:
            raise
        except Exception as e:
            logger.info(f"[CHAT-LLM] {self.model_name} stream_text failed: {e}")
            raise GenerationError(f"Streaming failed: {e}") from e
