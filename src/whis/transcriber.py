"""
Cloud transcription client for whis.

One multipart POST per audio file against an OpenAI-compatible endpoint.
"""

from typing import Optional

import requests

from .errors import TranscriptionError

API_URL = "https://api.openai.com/v1/audio/transcriptions"
DEFAULT_MODEL = "whisper-1"
REQUEST_TIMEOUT = 300  # 5 minutes


class Transcriber:
    """Speech-to-text over HTTPS. Safe to call from several threads at once."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        url: str = API_URL,
        timeout: int = REQUEST_TIMEOUT,
        language: Optional[str] = None,
    ):
        self._api_key = api_key
        self.model = model
        self.url = url
        self.timeout = timeout
        self.language = language if language and language != "auto" else None

    def transcribe(self, audio: bytes) -> str:
        """
        Transcribe MP3 bytes.

        Returns the transcript text. Raises TranscriptionError on any failure;
        non-2xx responses carry their status and body verbatim.
        """
        data = {"model": self.model}
        if self.language:
            data["language"] = self.language
        try:
            r = requests.post(
                self.url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                files={"file": ("audio.mp3", audio, "audio/mpeg")},
                data=data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise TranscriptionError(f"Request timed out after {self.timeout}s") from None
        except requests.exceptions.RequestException as e:
            raise TranscriptionError(f"Failed to send request to transcription API: {e}") from e

        if not r.ok:
            raise TranscriptionError(f"OpenAI API error ({r.status_code}): {r.text}")

        try:
            return r.json()["text"]
        except (ValueError, KeyError, TypeError) as e:
            raise TranscriptionError(f"Failed to parse transcription response: {e}") from e

    def __call__(self, audio: bytes) -> str:
        return self.transcribe(audio)
