"""
API dependencies.

Handles are built once in the application lifespan and stored on
app.state; these providers hand them to route functions. Tests swap them
out through app.dependency_overrides.
"""

from fastapi import Request

from lunglens.services.patient_service import PatientStore
from lunglens.services.prediction_service import PredictionClient
from lunglens.services.report_service import ReportGenerator
from lunglens.services.user_service import UserStore
from lunglens.utils.cloudinary_service import ImageStore


def get_patient_store(request: Request) -> PatientStore:
    return request.app.state.patient_store


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def get_image_store(request: Request) -> ImageStore:
    return request.app.state.image_store


def get_prediction_client(request: Request) -> PredictionClient:
    return request.app.state.prediction_client


def get_report_generator(request: Request) -> ReportGenerator:
    return request.app.state.report_generator
