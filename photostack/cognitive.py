# cognitive.py
"""Azure Cognitive Services adapters.

Both adapters degrade to empty results instead of raising, so a tagging or
sentiment outage never fails the request that asked for it.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

SENTIMENTS = ("positive", "neutral", "negative")


@dataclass
class ImageAnalysis:
    tags: List[str] = field(default_factory=list)
    description: str = ""
    dominant_colors: List[str] = field(default_factory=list)
    is_adult_content: bool = False


@dataclass
class SentimentResult:
    sentiment: str = "unknown"
    score: float = 0.0


class ImageAnalyzer:
    """Tags, caption and colours from Computer Vision v3.2."""

    def __init__(self, endpoint: Optional[str], key: Optional[str], timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.endpoint = (endpoint or "").rstrip("/")
        self.key = key
        self.timeout = timeout
        self.transport = transport
        if not self.configured:
            logger.warning("Azure Cognitive Services not configured. Image analysis will be skipped.")

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.key)

    async def analyze(self, image_url: str) -> ImageAnalysis:
        if not self.configured:
            return ImageAnalysis()

        url = f"{self.endpoint}/vision/v3.2/analyze"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    url,
                    params={"visualFeatures": "Tags,Description,Color,Adult"},
                    headers={"Ocp-Apim-Subscription-Key": self.key},
                    json={"url": image_url},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Cognitive Services error: %s - %s", e.response.status_code, e.response.text)
            return ImageAnalysis()
        except Exception as e:
            logger.error("Error analyzing image: %s", e)
            return ImageAnalysis()

        captions = (data.get("description") or {}).get("captions") or []
        return ImageAnalysis(
            tags=[tag["name"] for tag in data.get("tags") or [] if tag.get("name")],
            description=captions[0].get("text", "") if captions else "",
            dominant_colors=(data.get("color") or {}).get("dominantColors") or [],
            is_adult_content=bool((data.get("adult") or {}).get("isAdultContent", False)),
        )


class SentimentAnalyzer:
    """Comment sentiment from Text Analytics v3.1."""

    def __init__(self, endpoint: Optional[str], key: Optional[str], timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.endpoint = (endpoint or "").rstrip("/")
        self.key = key
        self.timeout = timeout
        self.transport = transport
        if not self.configured:
            logger.warning("Azure Text Analytics not configured. Sentiment analysis will be skipped.")

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.key)

    async def analyze(self, text: str) -> SentimentResult:
        if not self.configured:
            return SentimentResult()

        url = f"{self.endpoint}/text/analytics/v3.1/sentiment"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    url,
                    headers={"Ocp-Apim-Subscription-Key": self.key},
                    json={"documents": [{"id": "1", "text": text, "language": "en"}]},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Text Analytics error: %s - %s", e.response.status_code, e.response.text)
            return SentimentResult()
        except Exception as e:
            logger.error("Error analyzing sentiment: %s", e)
            return SentimentResult()

        documents = data.get("documents") or []
        if not documents:
            return SentimentResult()

        label = documents[0].get("sentiment")
        scores = documents[0].get("confidenceScores") or {}
        score = float(scores.get(label, 0) or 0)
        if label == "mixed":
            # mixed has no confidence score of its own
            return SentimentResult(sentiment="neutral", score=float(scores.get("neutral", 0) or 0))
        if label not in SENTIMENTS:
            return SentimentResult()
        return SentimentResult(sentiment=label, score=score)
