"""Spoken phase cues.

Speech is best-effort: a missing or failing speech command is logged and
otherwise ignored so it can never hold up a tick.
"""

from __future__ import annotations

import logging
import platform
import shutil
import subprocess
from typing import Optional, Protocol

logger = logging.getLogger("breath_timer.notifier")

DEFAULT_WPM = 175


class Notifier(Protocol):
    def announce(self, text: str) -> None: ...


class NullNotifier:
    def announce(self, text: str) -> None:
        pass


def speech_command(text: str, wpm: int = DEFAULT_WPM) -> Optional[list[str]]:
    """Build the platform speech command for `text`, or None if none is installed."""
    system = platform.system()
    if system == "Darwin" and shutil.which("say"):
        return ["say", "-r", str(wpm), text]
    if system == "Windows" and shutil.which("powershell"):
        escaped = text.replace("'", "''")
        script = (
            "Add-Type -AssemblyName System.Speech; "
            "$synth = New-Object System.Speech.Synthesis.SpeechSynthesizer; "
            f"$synth.Speak('{escaped}')"
        )
        return ["powershell", "-NoProfile", "-Command", script]
    if shutil.which("espeak-ng"):
        return ["espeak-ng", "-s", str(wpm), text]
    if shutil.which("espeak"):
        return ["espeak", "-s", str(wpm), text]
    if shutil.which("spd-say"):
        return ["spd-say", text]
    return None


class SpeechNotifier:
    """Speaks phase names in a background process.

    Uses Popen so the tick handler never waits on speech; a new cue cuts off
    the previous one.
    """

    def __init__(self, wpm: int = DEFAULT_WPM):
        self.wpm = wpm
        self._process: Optional[subprocess.Popen] = None
        self._available = True

    def announce(self, text: str) -> None:
        if not self._available or not text:
            return
        command = speech_command(text, self.wpm)
        if command is None:
            logger.info("No speech command found, voice cues disabled")
            self._available = False
            return
        self.cancel()
        try:
            self._process = subprocess.Popen(
                command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"Speech failed: {e}")
            self._process = None

    def cancel(self) -> None:
        if self._process is not None and self._process.poll() is None:
            try:
                self._process.terminate()
            except OSError as e:
                logger.debug(f"Could not stop speech: {e}")
        self._process = None
