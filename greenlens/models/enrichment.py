"""
Deep-scan enrichment - sends a still frame to Gemini for a rich description.

The service is treated as an opaque collaborator: it either returns a
WasteAnalysis or raises EnrichmentError.
"""

import base64
import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

ANALYSIS_PROMPT = (
    "Analyze this image and identify the primary piece of trash/waste centered in the frame. "
    "Provide the specific name, material, recyclability status, and brief disposal advice."
)

RECYCLABILITY_VALUES = ["Recyclable", "Non-Recyclable", "Compostable", "Hazardous"]

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "itemName": {"type": "STRING"},
        "material": {"type": "STRING"},
        "recyclability": {"type": "STRING", "enum": RECYCLABILITY_VALUES},
        "disposalAdvice": {"type": "STRING"},
    },
    "required": ["itemName", "material", "recyclability", "disposalAdvice"],
}


class EnrichmentError(Exception):
    """Deep-scan analysis failed; recoverable and safe to show the user"""


@dataclass(frozen=True)
class WasteAnalysis:
    item_name: str
    material: str
    recyclability: str
    disposal_advice: str

    @property
    def advice(self) -> str:
        return f"{self.recyclability}: {self.disposal_advice}"

    @classmethod
    def from_response(cls, data: dict) -> "WasteAnalysis":
        try:
            return cls(
                item_name=str(data["itemName"]),
                material=str(data["material"]),
                recyclability=str(data["recyclability"]),
                disposal_advice=str(data["disposalAdvice"]),
            )
        except (KeyError, TypeError) as e:
            raise EnrichmentError(f"Incomplete analysis response: {e}") from e


class GeminiEnricher:
    """Calls the Gemini generateContent REST endpoint with an inline JPEG"""

    def __init__(self, model: str = "gemini-2.5-flash", api_key_env: str = "GEMINI_API_KEY",
                 timeout: Optional[float] = 60.0, session: Optional[requests.Session] = None):
        self.model = model
        self.api_key_env = api_key_env
        self.timeout = timeout
        self.session = session or requests.Session()

    def analyze(self, image_bytes: bytes) -> WasteAnalysis:
        """
        Analyze a JPEG-encoded still image

        Args:
            image_bytes: Encoded JPEG

        Returns:
            Parsed analysis

        Raises:
            EnrichmentError: on missing credentials, transport, HTTP or parse failure
        """
        api_key = os.getenv(self.api_key_env, "").strip()
        if not api_key:
            raise EnrichmentError(f"{self.api_key_env} is not set")

        payload = {
            "contents": [{
                "parts": [
                    {"inline_data": {
                        "mime_type": "image/jpeg",
                        "data": base64.b64encode(image_bytes).decode("utf-8"),
                    }},
                    {"text": ANALYSIS_PROMPT},
                ]
            }],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

        try:
            response = self.session.post(
                GEMINI_ENDPOINT.format(model=self.model),
                json=payload,
                headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise EnrichmentError(f"Analysis timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise EnrichmentError(f"Analysis request failed: {e}") from e

        if not response.ok:
            logger.warning(f"Gemini returned {response.status_code}: {response.text[:100]}")
            raise EnrichmentError(f"Analysis service returned HTTP {response.status_code}")

        try:
            body = response.json()
            text = body["candidates"][0]["content"]["parts"][0]["text"]
            data = json.loads(text)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EnrichmentError(f"Invalid analysis response: {e}") from e

        if not isinstance(data, dict):
            raise EnrichmentError("Analysis response is not an object")

        analysis = WasteAnalysis.from_response(data)
        logger.info(f"Deep scan identified {analysis.item_name} ({analysis.recyclability})")
        return analysis
