import logging
import re

from classes.google_helpers import PROJECT_ID, REGION, TEXT_MODEL, CHAT_MODEL, LLM_TIMEOUT
from classes.llm_client import ChatLlmClient, LlmClient

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"
)

logger = logging.getLogger("diffref_backend")


class Utils():
    SessionFactory: None
    llm_timeout: float = LLM_TIMEOUT

    # -----------------------
    # General Utils
    # -----------------------

    def unsafe_string_format(self, dest_string, print_unused_keys_report=True, **kwargs):
        """
        Replaces {KEY} placeholders with the values passed in kwargs.

        Unlike str.format it only looks at the keys actually passed, so literal braces
        elsewhere in a prompt are left alone. Unknown placeholders are kept as-is.
        """
        missing_keys = []

        def replacer(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            else:
                missing_keys.append(key)
                return match.group(0)

        pattern = re.compile(r'\{(\w+)\}')
        result = pattern.sub(replacer, dest_string)
        if missing_keys and print_unused_keys_report:
            logger.info(f"\033[93m\033[3mMissing keys within string-to-format in unsafe_string_format: {', '.join(missing_keys)}\033[0m")
        return result

    def _text_field(self, payload, key: str) -> str:
        value = (payload or {}).get(key)
        if value is None:
            return ""
        return str(value)

    # -----------------------
    # Model selection helpers
    # -----------------------

    def _detect_llm_model_in_payload(self, payload) -> str | None:
        """
        Look for a model hint in payload using different possible key names.
        Supported: llm_model, model, model_name
        """
        if not isinstance(payload, dict):
            return None

        for key in ("llm_model", "model", "model_name"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

        return None

    # -----------------------
    # LLM plumbing
    # -----------------------

    def _build_llms_for_model(self, model_name: str, timeout: float | None = None):
        """
        Build per-request LLM instances for the given model name.
        Falls back to None/None if creation fails.
        """
        if not timeout:
            timeout = self.llm_timeout
        try:
            llm = LlmClient(
                model_name=model_name,
                vertex_project=PROJECT_ID,
                vertex_region=REGION,
                timeout=timeout
            )
            chat_llm = ChatLlmClient(
                model_name=model_name,
                vertex_project=PROJECT_ID,
                vertex_region=REGION,
                timeout=timeout
            )
            return llm, chat_llm
        except Exception as e:
            logger.info(f"Warning: Could not initialize LLMs for '{model_name}': {e}. ")
            return None, None

    def _default_models(self) -> tuple[str, str]:
        return TEXT_MODEL, CHAT_MODEL
