"""
Spoken answers.

Text to speak goes through a bounded FIFO queue to a single daemon worker
thread. Submitting never blocks: when the queue is full the new item is
dropped. The worker shares nothing with the caller except the queue.

The system renderer shells out to `say` (macOS) or `espeak` (Linux),
speaking CJK and Latin runs with matching voices.
"""

import logging
import queue
import re
import shutil
import subprocess
import sys
import threading
from collections.abc import Callable
from typing import Optional

logger = logging.getLogger(__name__)

MAX_SPEECH_CHARS = 1200
MIN_SEGMENT_CHARS = 8
MAX_SEGMENT_CHARS = 240

ZH = "zh"
EN = "en"

Renderer = Callable[[str], None]

# A reference appendix starts at one of these markers
_REF_MARKERS = re.compile(
    r"(?:\n\s*——\s*\n|\n\s*(?:refs|references|sources)\b|\n\s*参考：|\n\s*附录)",
    re.IGNORECASE,
)
_FENCE = re.compile(r"```.*?```", re.DOTALL)
_LINK = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_LIST_MARK = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+", re.MULTILINE)
_EMPHASIS = re.compile(r"[`*_#>]")


# -----------------------------------------------------------------------------
# Text preparation
# -----------------------------------------------------------------------------

def prepare_for_speech(text: str) -> str:
    """Drop reference appendices and markdown; cap the length."""
    text = (text or "").strip()
    if not text:
        return ""
    m = _REF_MARKERS.search(text)
    if m:
        text = text[:m.start()]
    text = _FENCE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _LIST_MARK.sub("", text)
    text = _EMPHASIS.sub("", text)
    text = text.strip()
    if len(text) > MAX_SPEECH_CHARS:
        text = text[:MAX_SPEECH_CHARS] + "…"
    return text


def _classify(ch: str) -> Optional[str]:
    cp = ord(ch)
    if 0x4E00 <= cp <= 0x9FFF or 0x3400 <= cp <= 0x4DBF or 0x3000 <= cp <= 0x303F:
        return ZH
    if ("A" <= ch <= "Z") or ("a" <= ch <= "z") or ("0" <= ch <= "9"):
        return EN
    return None


def segment_scripts(text: str) -> list[tuple[str, str]]:
    """
    Split text into (lang, run) pairs of CJK and Latin script.

    Punctuation and spaces stay with the current run. Short runs are merged
    into the previous one; long runs are cut at MAX_SEGMENT_CHARS.
    """
    runs: list[list] = []
    for ch in text:
        lang = _classify(ch)
        if not runs:
            runs.append([lang, ch])
        elif lang is None or lang == runs[-1][0] or runs[-1][0] is None:
            if runs[-1][0] is None:
                runs[-1][0] = lang
            runs[-1][1] += ch
        else:
            runs.append([lang, ch])

    merged: list[list] = []
    for lang, run in runs:
        lang = lang or (merged[-1][0] if merged else EN)
        if merged and len(run.strip()) < MIN_SEGMENT_CHARS:
            merged[-1][1] += run
        else:
            merged.append([lang, run])

    out = []
    for lang, run in merged:
        for i in range(0, len(run), MAX_SEGMENT_CHARS):
            piece = run[i:i + MAX_SEGMENT_CHARS].strip()
            if piece:
                out.append((lang, piece))
    return out


# -----------------------------------------------------------------------------
# Renderers
# -----------------------------------------------------------------------------

def _speak_mac(text: str) -> None:
    for lang, run in segment_scripts(text):
        args = ["say", "-r", "180"]
        if lang == ZH:
            args += ["-v", "Tingting"]
        subprocess.run(args + [run], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False)


def _speak_linux(text: str) -> None:
    for lang, run in segment_scripts(text):
        subprocess.run(["espeak", "-v", lang, run],
                       stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False)


def system_renderer() -> Optional[Renderer]:
    """The platform speech command, or None if there isn't one."""
    if sys.platform == "darwin" and shutil.which("say"):
        return _speak_mac
    if sys.platform.startswith("linux") and shutil.which("espeak"):
        return _speak_linux
    return None


# -----------------------------------------------------------------------------
# Queue
# -----------------------------------------------------------------------------

class SpeechQueue:
    """Bounded queue feeding one background renderer."""

    def __init__(self, renderer: Renderer, maxsize: int = 16):
        if maxsize <= 0:
            raise ValueError(f"queue size must be positive, got {maxsize}")
        self._renderer = renderer
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._worker = threading.Thread(target=self._run, name="daybook-speech", daemon=True)
        self._worker.start()

    def submit(self, text: str) -> bool:
        """
        Queue text for speaking without blocking.

        Returns:
            False if there was nothing to say or the queue was full
        """
        text = prepare_for_speech(text)
        if not text:
            return False
        try:
            self._queue.put_nowait(text)
        except queue.Full:
            logger.debug("Speech queue full; dropping item")
            return False
        return True

    def wait_idle(self) -> None:
        """Block until everything queued so far has been rendered."""
        self._queue.join()

    def _run(self) -> None:
        while True:
            text = self._queue.get()
            try:
                self._renderer(text)
            except Exception as e:
                logger.warning("Speech rendering failed: %s", e)
            finally:
                self._queue.task_done()
