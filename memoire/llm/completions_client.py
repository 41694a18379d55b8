#!/usr/bin/env python3
"""
completions_client.py

Client for the chat-completion service used by the semantic template pass and
the requirement extraction job, plus a thin OpenAI helper.

Environment variables required for the studio service:

    MEMOIRE_LLM_API_KEY      ← API key sent in the request headers
    MEMOIRE_LLM_BASE_URL     ← e.g. https://llm.internal.example
    MEMOIRE_LLM_USER         ← service account username
    MEMOIRE_LLM_PASSWORD     ← service account password

Environment variables required for OpenAI:

    OPENAI_API_KEY           ← your OpenAI API key

Usage:
    python3 -m memoire.llm.completions_client --framework openai --prompt "..."
"""

import argparse
import datetime
import json
import os
import time
import uuid
from typing import Optional, Tuple

import requests
from requests.auth import HTTPBasicAuth

from memoire import config
from memoire.errors import CompletionError
from memoire.utils.debug import dbg, warn


class CompletionsClient:
    """Client for the studio chat-completion service."""

    def __init__(self, model: str = config.MODEL, timeout: float = 60.0):
        self.model = model
        self.timeout = timeout
        self.service_costs = 0.0

        # 1) API key + base URL
        self.api_key = os.environ.get("MEMOIRE_LLM_API_KEY")
        self.base_url = os.environ.get("MEMOIRE_LLM_BASE_URL", "").rstrip("/")

        if not self.api_key or not self.base_url:
            raise CompletionError(
                "Missing MEMOIRE_LLM_API_KEY or MEMOIRE_LLM_BASE_URL in environment."
            )

        # 2) Headers with a fresh Request-ID + timestamp
        self.header = {
            "Content-Type": "application/json",
            "X-Request-ID": str(uuid.uuid1()),
            "X-Origin-Timestamp": datetime.datetime.now(datetime.timezone.utc)
            .replace(microsecond=0)
            .isoformat(),
            "X-API-Key": self.api_key,
        }

        # 3) Service-account creds for BasicAuth
        user = os.environ.get("MEMOIRE_LLM_USER")
        password = os.environ.get("MEMOIRE_LLM_PASSWORD")
        self.auth = HTTPBasicAuth(user, password) if user and password else None

        # 4) Pricing table: USD per million tokens
        self.pricing = {
            "gpt-4o-mini": {"input": 0.15, "output": 0.6},
            "gpt-4o": {"input": 5.0, "output": 15.0},
            "gpt-5-nano": {"input": 0.05, "output": 0.4},
        }

    def get_completion(self, prompt: str, json_output: bool = False) -> Tuple[str, dict]:
        """Send a single chat completion request and return (reply, usage)."""

        # Try the long-running endpoint first
        try:
            endpoint = f"{self.base_url}/api/chat-completion/v1/chatCompletions:compute"
            response = requests.post(
                endpoint,
                json=self._payload(prompt, json_output),
                headers=self.header,
                auth=self.auth,
                timeout=30,
            )
            data = response.json()

            operation_id = data.get("id")
            if data.get("done", False):
                return self._finalize_and_extract(data.get("response", {}))
            if operation_id is None:
                if "response" in data and "chatCompletion" in data["response"]:
                    return self._finalize_and_extract(data["response"])
                raise CompletionError(
                    f"No 'id' in POST response; cannot poll. Full response: {json.dumps(data)}"
                )

            poll_url = f"{self.base_url}/api/completion/v1/longRunningOperations/{operation_id}"
            completed = self._poll_until_done(poll_url)
            return self._finalize_and_extract(completed.get("response", {}))

        except (requests.RequestException, ValueError, CompletionError) as exc:
            warn(f"Async completion endpoint failed: {exc}; falling back to synchronous endpoint")
            return self._get_completion_sync(prompt, json_output)

    def _payload(self, prompt: str, json_output: bool) -> dict:
        payload = {
            "chatCompletionMessages": [{"prompt": prompt, "promptRole": "user"}],
            "modelId": self.model,
        }
        if json_output:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _get_completion_sync(self, prompt: str, json_output: bool = False) -> Tuple[str, dict]:
        """Send a single chat completion request using the sync endpoint."""
        endpoint = f"{self.base_url}/api/chat-completion/v1/chatCompletionsSync:compute"
        try:
            response = requests.post(
                endpoint,
                json=self._payload(prompt, json_output),
                headers=self.header,
                auth=self.auth,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise CompletionError(f"Sync API call failed: {exc}") from exc
        return self._finalize_and_extract(data)

    def _poll_until_done(self, url: str, initial_sleep: int = 5) -> dict:
        """Poll the given operation URL until 'done': True."""
        attempts = 0
        sleep_time = initial_sleep

        while attempts < 50:
            resp = requests.get(url, headers=self.header, auth=self.auth, timeout=30)
            data = resp.json()
            if data.get("done", False):
                return data
            attempts += 1
            if attempts == 20:
                sleep_time = 10
            time.sleep(sleep_time)

        raise CompletionError("Chat-completion operation timed out after 50 polls.")

    def _finalize_and_extract(self, data: dict) -> Tuple[str, dict]:
        """Compute cost and return (reply, usage)."""
        chat_completion = data.get("chatCompletion", {})
        if not chat_completion:
            raise CompletionError("No chat completion data in response")

        metadata = chat_completion.get("chatCompletionMetadata", {})
        prompt_tokens = metadata.get("promptTokenCount", 0)
        completion_tokens = metadata.get("completionTokenCount", 0)
        content = chat_completion.get("chatCompletionContent", "")

        model_props = self.pricing.get(self.model, {})
        prompt_cost = prompt_tokens * model_props.get("input", 0) / 1_000_000
        completion_cost = completion_tokens * model_props.get("output", 0) / 1_000_000
        self.service_costs += prompt_cost + completion_cost
        dbg(
            f"Cost for call [{self.model}]: input {prompt_tokens} tok, "
            f"output {completion_tokens} tok → ${prompt_cost + completion_cost:.6f}",
            tag="LLM",
        )

        usage = {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
        }
        return content, usage


class OpenAICompletions:
    """Adapter exposing ``get_completion`` on top of the OpenAI SDK."""

    def __init__(self, model: str = config.MODEL):
        self.model = model

    def get_completion(self, prompt: str, json_output: bool = False) -> Tuple[str, dict]:
        return get_openai_completion(prompt, self.model, json_output=json_output)


def get_openai_completion(prompt: str, model: str, json_output: bool = False) -> Tuple[str, dict]:
    """Fetch a completion from OpenAI's API and return (reply, usage)."""
    from openai import OpenAI

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise CompletionError("Missing OPENAI_API_KEY in environment.")
    client = OpenAI(api_key=api_key)
    params = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": 0.1,
    }
    if json_output:
        params["response_format"] = {"type": "json_object"}
    resp = client.chat.completions.create(**params)
    usage = {
        "prompt_tokens": resp.usage.prompt_tokens,
        "completion_tokens": resp.usage.completion_tokens,
    }
    return resp.choices[0].message.content, usage


def build_client(framework: Optional[str] = None, model: Optional[str] = None):
    """Return a completion client for the configured framework."""
    framework = framework or config.FRAMEWORK
    model = model or config.MODEL
    if framework == "openai":
        return OpenAICompletions(model=model)
    if framework == "studio":
        return CompletionsClient(model=model)
    raise ValueError(f"Unknown framework: {framework}")


def main(prompt: str, framework: str, model: str, json_output: bool = False) -> str:
    """Dispatch to the requested framework and return the completion."""
    content, _ = build_client(framework, model).get_completion(prompt, json_output=json_output)
    return content


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Call an LLM using different frameworks")
    parser.add_argument(
        "--framework",
        choices=["openai", "studio"],
        default=config.FRAMEWORK,
        help="Which completion framework to use",
    )
    parser.add_argument("--model", default=config.MODEL, help="Model name for the chosen framework")
    parser.add_argument("--prompt", required=True, help="Prompt to send to the model")
    parser.add_argument("--json", action="store_true", help="Request a JSON object reply")
    args = parser.parse_args()

    reply = main(args.prompt, args.framework, args.model, json_output=args.json)
    print("\n=== Assistant Reply ===\n")
    print(reply)
