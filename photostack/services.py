# services.py
from fastapi import Request

from photostack.blob_storage import BlobStorage
from photostack.cognitive import ImageAnalyzer, SentimentAnalyzer
from photostack.config import Settings


# Dependency functions for FastAPI; the instances are built in main.create_app
def get_blob_storage(request: Request) -> BlobStorage:
    return request.app.state.blob_storage


def get_image_analyzer(request: Request) -> ImageAnalyzer:
    return request.app.state.image_analyzer


def get_sentiment_analyzer(request: Request) -> SentimentAnalyzer:
    return request.app.state.sentiment_analyzer


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
