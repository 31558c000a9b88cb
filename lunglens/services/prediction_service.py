"""Client for the hosted chest X-ray classifier."""

import asyncio
import base64
import logging
from typing import Awaitable, Callable, Optional
import httpx
from pydantic import ValidationError
from lunglens.config.settings import Settings
from lunglens.schemas.predictions import ClassifierResponse, Prediction

logger = logging.getLogger(__name__)

SCORE_HEADERS = ("word", "healthy_score", "tb_score", "pneumonia_score")

# Statuses worth another attempt besides 5xx.
RETRYABLE_CLIENT_STATUSES = {408, 429}


class ClassifierError(Exception):
    """The classifier answered, but not with a usable prediction."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ClassifierUnreachableError(ClassifierError):
    """The classifier could not be reached after all retries."""


def is_transient_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in RETRYABLE_CLIENT_STATUSES


def parse_classifier_response(response: httpx.Response) -> Prediction:
    """
    Validate the classifier's reply and map it to a Prediction.

    The hosted classifier sends scores in response headers and the
    annotated image as the body. A JSON body carrying the same fields is
    accepted too.
    """
    content_type = response.headers.get("content-type", "")
    fields = {name: response.headers.get(name) for name in SCORE_HEADERS if response.headers.get(name) is not None}
    annotated_image = None

    if content_type.startswith("application/json"):
        try:
            body = response.json()
        except ValueError as e:
            raise ClassifierError("Classifier returned invalid JSON", response.status_code) from e
        if isinstance(body, dict):
            for name in SCORE_HEADERS:
                if name in body and name not in fields:
                    fields[name] = body[name]
    elif content_type.startswith("image/") and response.content:
        annotated_image = base64.b64encode(response.content).decode("utf-8")

    if not fields:
        raise ClassifierError("Classifier response did not include any scores", response.status_code)

    try:
        parsed = ClassifierResponse(**fields)
        return Prediction.from_classifier(parsed, annotated_image=annotated_image)
    except ValidationError as e:
        logger.error(f"Classifier response failed validation: {fields}")
        raise ClassifierError(f"Classifier returned malformed scores: {str(e)}", response.status_code) from e


class PredictionClient:
    """Upload an image to the classifier, retrying transient failures with linear backoff."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.url = f"{settings.CLASSIFIER_URL}/upload-image"
        self.timeout = settings.CLASSIFIER_TIMEOUT
        self.retry_limit = settings.CLASSIFIER_RETRY_LIMIT
        self.retry_delay = settings.CLASSIFIER_RETRY_DELAY
        self.transport = transport
        self.sleep = sleep

    async def _post_image(self, image_bytes: bytes, filename: str, content_type: str) -> httpx.Response:
        files = {"image": (filename, image_bytes, content_type)}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.post(self.url, files=files)

    async def predict(self, image_bytes: bytes, filename: str = "xray.jpg", content_type: str = "image/jpeg") -> Prediction:
        """Send one image and return its prediction."""
        attempt = 0
        while True:
            logger.info(f"Sending image to classifier (attempt {attempt + 1}/{self.retry_limit + 1}): {filename}")
            try:
                response = await self._post_image(image_bytes, filename, content_type)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                logger.warning(f"Classifier request failed: {type(e).__name__}: {str(e)}")
                if attempt >= self.retry_limit:
                    logger.error(f"Classifier unreachable after {attempt + 1} attempt(s)")
                    if isinstance(e, httpx.TimeoutException):
                        raise ClassifierUnreachableError("Request timed out. Please try again.") from e
                    raise ClassifierUnreachableError(f"Classifier is unreachable: {str(e)}") from e
            else:
                if response.is_success:
                    prediction = parse_classifier_response(response)
                    logger.info(
                        f"Classifier prediction: {prediction.prediction} "
                        f"(healthy={prediction.healthy}, tuberculosis={prediction.tuberculosis}, pneumonia={prediction.pneumonia})"
                    )
                    return prediction

                logger.warning(f"Classifier API error: {response.status_code}")
                if not is_transient_status(response.status_code) or attempt >= self.retry_limit:
                    raise ClassifierError(f"Classifier API error: {response.status_code}", response.status_code)

            attempt += 1
            delay = self.retry_delay * attempt
            logger.info(f"Retrying classifier request in {delay:.1f}s")
            await self.sleep(delay)
