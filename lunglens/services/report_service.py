"""Service for generating X-ray reports with a hosted chat-completion model."""

import logging
import json
import re
from typing import Any, Dict, List, Optional
import httpx
from lunglens.config.settings import Settings
from lunglens.schemas.predictions import Prediction
from lunglens.schemas.reports import Report

logger = logging.getLogger(__name__)

REPORT_KEYS = ("summary", "cause", "suggestedActions")

RAW_OUTPUT_START = "================ RAW MODEL OUTPUT START ================"
RAW_OUTPUT_END = "================ RAW MODEL OUTPUT END =================="

# Greedy: first "{" through the last "}" in the text.
JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = """You are an expert AI medical report generator specializing in chest X-ray analysis.
You will receive prediction data from a lung disease classification model and generate comprehensive medical reports.
The prediction data includes confidence scores for healthy, tuberculosis, and pneumonia classifications, along with the primary predicted diagnosis.

Your task is to generate detailed medical reports with three main sections:
1. SUMMARY: A professional medical summary of the X-ray findings based on the prediction probabilities
2. CAUSE: Detailed explanation of the potential causes and risk factors for the diagnosed condition
3. SUGGESTED_ACTIONS: Comprehensive treatment recommendations and next steps for patient care

Respond ONLY with a valid JSON object, with no markdown, no code block, and no extra text. The JSON object must have exactly these keys: "summary", "cause", and "suggestedActions". If you do not know a value, return an empty string for that key. Do not include any explanations or formatting outside the JSON object. Do not return a single string or any other format."""


class ReportGenerationError(Exception):
    """Raised when the chat-completion service cannot produce a response."""


def format_score(value: float) -> str:
    """Render a score without a trailing .0 for whole numbers."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def get_report_user_prompt(prediction: Prediction) -> str:
    """Generate the user message embedding the scores and primary label."""
    return (
        "Generate a comprehensive medical report for a chest X-ray analysis with the following AI prediction results:\n\n"
        "Prediction Confidence Scores:\n"
        f"- Healthy: {format_score(prediction.healthy)}%\n"
        f"- Tuberculosis: {format_score(prediction.tuberculosis)}%\n"
        f"- Pneumonia: {format_score(prediction.pneumonia)}%\n\n"
        f"Primary AI Diagnosis: {prediction.prediction}\n\n"
        "Please provide a detailed medical report including clinical correlation recommendations, "
        "potential differential diagnoses, and specific treatment protocols based on these findings."
    )


def build_messages(prediction: Prediction) -> List[Dict[str, str]]:
    """Build the system and user messages for one prediction."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": get_report_user_prompt(prediction)},
    ]


def strip_code_fence(text: str) -> str:
    """Remove a leading ``` or ```json fence and one trailing fence."""
    if text.startswith("```json"):
        text = re.sub(r"^```json", "", text)
        text = re.sub(r"```$", "", text)
        return text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```", "", text)
        text = re.sub(r"```$", "", text)
        return text.strip()
    return text


def reject_constant(name: str):
    """Reject NaN and Infinity, which strict JSON does not allow."""
    raise ValueError(f"Invalid JSON constant: {name}")


def coerce_report_value(value: Any) -> str:
    """
    Turn one parsed JSON value into report text.

    null, false, 0 and "" become "". Empty objects and arrays are not
    treated as missing: {} is kept as "{}" and [] joins to "".
    """
    if value is None or value is False or value == "":
        return ""
    if isinstance(value, (int, float)) and value == 0:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n".join(str(item) for item in value)
    return json.dumps(value)


def normalize_report_text(raw: str) -> Report:
    """
    Coerce free-text model output into a three-field report.

    Steps: trim, strip a code fence, take the first "{" through the last "}",
    parse as strict JSON. A JSON object yields its three keys with missing
    or falsy values replaced by "". Anything else falls back to the whole
    raw text as the summary. This function never raises.
    """
    cleaned = raw.strip()
    cleaned = strip_code_fence(cleaned)

    match = JSON_OBJECT_PATTERN.search(cleaned)
    if match:
        cleaned = match.group(0)

    try:
        parsed = json.loads(cleaned, parse_constant=reject_constant)
    except (json.JSONDecodeError, ValueError, RecursionError):
        logger.warning("Model output is not valid JSON; using raw text as summary")
        return Report(summary=raw, cause="", suggestedActions="")

    if not isinstance(parsed, dict):
        logger.warning(f"Model output parsed to {type(parsed).__name__}, not an object; using raw text as summary")
        return Report(summary=raw, cause="", suggestedActions="")

    return Report(**{key: coerce_report_value(parsed.get(key)) for key in REPORT_KEYS})


class ReportGenerator:
    """Send prediction scores to the chat-completion endpoint and normalize the reply."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def build_payload(self, prediction: Prediction) -> Dict[str, Any]:
        """Request body with the fixed model and sampling parameters."""
        return {
            "model": self.settings.LLM_MODEL,
            "max_tokens": self.settings.LLM_MAX_TOKENS,
            "temperature": self.settings.LLM_TEMPERATURE,
            "top_p": self.settings.LLM_TOP_P,
            "top_k": self.settings.LLM_TOP_K,
            "messages": build_messages(prediction),
        }

    async def complete(self, prediction: Prediction) -> str:
        """Call the chat-completion endpoint and return the raw message text."""
        api_key = self.settings.LLM_API_KEY
        if not api_key:
            logger.error("LLM_API_KEY environment variable is not set")
            raise ReportGenerationError("LLM_API_KEY environment variable is not set")

        headers = {
            "Authorization": f"Bearer {api_key.strip()}",
            "Content-Type": "application/json",
        }
        url = f"{self.settings.LLM_BASE_URL}/chat/completions"

        logger.info(f"Requesting report from model: {self.settings.LLM_MODEL}")
        try:
            async with httpx.AsyncClient(timeout=self.settings.LLM_TIMEOUT, transport=self.transport) as client:
                response = await client.post(url, headers=headers, json=self.build_payload(prediction))
                response.raise_for_status()
                response_data = response.json()
        except httpx.HTTPStatusError as e:
            error_detail = str(e)
            try:
                error_detail = e.response.json().get("error", {}).get("message", error_detail)
            except (ValueError, AttributeError):
                pass
            logger.error(f"Chat-completion API HTTP error: {error_detail}")
            raise ReportGenerationError(f"Chat-completion API error: {error_detail}") from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach chat-completion API: {str(e)}")
            raise ReportGenerationError(f"Failed to reach chat-completion API: {str(e)}") from e
        except ValueError as e:
            logger.error(f"Chat-completion API returned a non-JSON body: {str(e)}")
            raise ReportGenerationError("Chat-completion API returned a non-JSON body") from e

        try:
            content = response_data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Invalid response format from chat-completion API: {response_data}")
            raise ReportGenerationError("Invalid response format from chat-completion API") from e

        return content or ""

    async def generate(self, prediction: Prediction) -> Report:
        """Generate a normalized report for one prediction."""
        logger.info(
            f"Generating report for prediction '{prediction.prediction}' "
            f"(healthy={prediction.healthy}, tuberculosis={prediction.tuberculosis}, pneumonia={prediction.pneumonia})"
        )
        content = await self.complete(prediction)

        logger.info(RAW_OUTPUT_START)
        logger.info(content)
        logger.info(RAW_OUTPUT_END)

        report = normalize_report_text(content)
        logger.info(f"Report generated: {len(report.summary)} summary characters")
        return report
