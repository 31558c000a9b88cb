"""Prediction and report API routes."""

import logging
from fastapi import APIRouter, Depends, status, File, UploadFile, HTTPException
from lunglens.api.deps import get_prediction_client, get_report_generator
from lunglens.schemas.predictions import Prediction
from lunglens.schemas.reports import Report
from lunglens.services.prediction_service import (
    ClassifierError,
    ClassifierUnreachableError,
    PredictionClient,
)
from lunglens.services.report_service import ReportGenerationError, ReportGenerator

logger = logging.getLogger(__name__)
router = APIRouter(tags=["reports"])


@router.post("/predict", response_model=Prediction, response_model_exclude_none=True, status_code=status.HTTP_200_OK)
async def predict_endpoint(
    image: UploadFile = File(...),
    client: PredictionClient = Depends(get_prediction_client),
) -> Prediction:
    """Relay a chest X-ray to the classifier and return its scores."""
    if not image.content_type or not image.content_type.startswith("image/"):
        logger.warning(f"Invalid file type for prediction: {image.filename} ({image.content_type})")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only image files are allowed"
        )

    try:
        content = await image.read()
        return await client.predict(content, image.filename or "xray.jpg", image.content_type)
    except ClassifierUnreachableError as e:
        logger.error(f"Classifier unreachable: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Prediction service is unreachable. Please try again."
        )
    except ClassifierError as e:
        logger.error(f"Classifier error (status {e.status_code}): {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Prediction failed: {str(e)}"
        )
    except Exception as e:
        logger.error(f"Unexpected error in predict_endpoint: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Prediction failed"
        )


@router.post("/generate-report", response_model=Report, status_code=status.HTTP_200_OK)
async def generate_report_endpoint(
    prediction: Prediction,
    generator: ReportGenerator = Depends(get_report_generator),
) -> Report:
    """
    Generate a summary / cause / suggestedActions report from prediction scores.

    Unparseable model output still produces a report (raw text as summary);
    only a failed call to the model answers 500.
    """
    try:
        return await generator.generate(prediction)
    except ReportGenerationError as e:
        logger.error(f"Report generation failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate report"
        )
    except Exception as e:
        logger.error(f"Unexpected error in generate_report_endpoint: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate report"
        )
