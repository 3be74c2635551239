from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import requests

from .errors import ApiError, AuthenticationError, CancelledError
from .retry import RequestTracker, RetryPolicy, send_with_retry
from .util import eprint

REQUEST_TIMEOUT = 120
TEMPERATURE     = 0.7
MAX_TOKENS      = 1000

_CHAT_FAMILIES  = ("gpt-3.5", "gpt-4")
_EXCLUDED       = ("instruct", "vision")


def is_chat_model(model_id: str) -> bool:
    return any(f in model_id for f in _CHAT_FAMILIES) and not any(x in model_id for x in _EXCLUDED)


class LlmClient:
    """Chat-completion client for an OpenAI-compatible API."""

    def __init__(self, api_key: str, model: str, api_url: str="https://api.openai.com/v1",
                 verbose: bool=False, policy: Optional[RetryPolicy]=None,
                 session: Optional[requests.Session]=None):
        self.key = api_key
        self.model = model
        self.api_url = api_url.rstrip("/")
        self.verbose = verbose
        self.policy = policy or RetryPolicy(auth_statuses=(401, 403))
        self.session = session or requests.Session()
        self.tracker = RequestTracker()
        self.on_status: Optional[Callable[[str], None]] = None

    def _log(self, msg: str):
        eprint(f"[LLM] {msg}", self.verbose)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.key}", "Content-Type": "application/json"}

    def chat(self, system_prompt: str, content: str, label: str="document") -> str:
        if not self.key:
            raise AuthenticationError("OpenAI API key is not set")
        url = f"{self.api_url}/chat/completions"
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": content},
            ],
            "temperature": TEMPERATURE,
            "max_tokens": MAX_TOKENS,
        }

        def send() -> requests.Response:
            return self.session.post(url, headers=self._headers(), json=body, timeout=REQUEST_TIMEOUT)

        resp = send_with_retry(send, self.tracker, self.policy, label=f"Generating summary for {label}",
                               log=self._log, on_status=self.on_status)
        try:
            result = resp.json()
            return result["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ApiError(f"Unexpected chat completion response: {e}", resp.status_code)

    def list_models(self) -> List[str]:
        """Chat-capable model ids available to the key.

        Returns an empty list when the key is missing or rejected, or the
        listing keeps failing; only cancellation raises.
        """
        if not self.key:
            self._log("No OpenAI API key provided")
            return []
        url = f"{self.api_url}/models"

        def send() -> requests.Response:
            return self.session.get(url, headers=self._headers(), timeout=REQUEST_TIMEOUT)

        try:
            resp = send_with_retry(send, self.tracker, self.policy, label=f"GET {url}",
                                   log=self._log, on_status=self.on_status)
            models: List[Dict[str, Any]] = resp.json().get("data") or []
        except CancelledError:
            raise
        except AuthenticationError as e:
            self._log(f"Authentication error - invalid API key: {e}")
            return []
        except (ApiError, ValueError, AttributeError) as e:
            self._log(f"Error fetching models: {e}")
            return []
        self._log(f"Received {len(models)} models")
        chat_models = [m["id"] for m in models if isinstance(m, dict) and is_chat_model(str(m.get("id", "")))]
        self._log(f"Filtered to {len(chat_models)} usable chat models: {', '.join(chat_models)}")
        return chat_models

    def cancel_all(self) -> int:
        count = self.tracker.cancel_all()
        self._log(f"Cancelled {count} active requests")
        return count

    def reset(self):
        self.tracker.reset()
