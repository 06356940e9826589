"""
Shared Ollama utilities: base URL resolution and model auto-pull.
"""

import json
import logging
import os
import sys

import requests

from ..errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def ollama_base_url(base_url: str | None = None) -> str:
    """Explicit URL, else OLLAMA_HOST, else localhost:11434. No trailing slash."""
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL
    if "://" not in url:
        url = f"http://{url}"
    return url.rstrip("/")


def ollama_ensure_model(base_url: str, model: str) -> None:
    """Check if an Ollama model is available locally; pull it if not.

    Streams pull progress to stderr so the user sees download status.
    Raises TransportError if the pull fails or Ollama is unreachable.
    """
    # Ollama lists models as "name:tag"
    bare = model.split(":")[0]

    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=5)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise TransportError(
            f"Cannot reach Ollama at {base_url}. "
            "Is Ollama running? Start it with: ollama serve"
        ) from e

    installed = {m.get("name", "") for m in resp.json().get("models", [])}
    if {model, f"{model}:latest", bare, f"{bare}:latest"} & installed:
        return

    logger.info("Pulling Ollama model %s (first use)...", model)
    print(f"Pulling Ollama model '{model}' (first use)...", file=sys.stderr)

    try:
        resp = requests.post(
            f"{base_url}/api/pull",
            json={"name": model, "stream": True},
            stream=True,
            timeout=600,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        raise TransportError(f"Failed to pull Ollama model '{model}': {e}") from e

    for line in resp.iter_lines():
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if data.get("error"):
            raise TransportError(f"Ollama pull failed for '{model}': {data['error']}")
        status = data.get("status", "")
        if status:
            print(f"  {status}", file=sys.stderr, flush=True)

    logger.info("Ollama model %s ready", model)
