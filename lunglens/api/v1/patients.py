"""Patient API routes."""

import logging
import json
from typing import Optional, List
from fastapi import APIRouter, Depends, status, Form, File, UploadFile, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from lunglens.api.deps import get_image_store, get_patient_store
from lunglens.schemas.patients import PatientCreate, PatientUpdate, PatientResponse
from lunglens.services.patient_service import PatientStore
from lunglens.utils.cloudinary_service import ImageStore

logger = logging.getLogger(__name__)
router = APIRouter(tags=["patients"])


def format_validation_errors(error: ValidationError) -> str:
    """Flatten pydantic errors into one readable line."""
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
    )


@router.get("/search-patients", response_model=List[PatientResponse], status_code=status.HTTP_200_OK)
async def search_patients_endpoint(
    q: Optional[str] = Query(None, description="Substring of name, patient ID or phone"),
    store: PatientStore = Depends(get_patient_store),
) -> List[PatientResponse]:
    """
    Search patients by name, identifier or phone number.

    A blank query returns an empty list without touching storage.
    """
    try:
        return await store.search_patients(q)
    except HTTPException:
        logger.error("HTTPException raised in search_patients_endpoint", exc_info=True)
        raise
    except Exception as e:
        logger.error(f"Unexpected error searching patients for '{q}': {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search patients"
        )


@router.get("/patient/{patient_id}", response_model=PatientResponse, status_code=status.HTTP_200_OK)
async def get_patient_endpoint(
    patient_id: str,
    store: PatientStore = Depends(get_patient_store),
) -> PatientResponse:
    """Get a single patient record."""
    try:
        patient = await store.get_patient(patient_id)
    except Exception as e:
        logger.error(f"Unexpected error fetching patient {patient_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch patient"
        )

    if patient is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient not found"
        )
    return patient


@router.post("/create-patient", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient_endpoint(
    patient: PatientCreate,
    store: PatientStore = Depends(get_patient_store),
) -> PatientResponse:
    """Create a new patient record from the registration form."""
    try:
        logger.info(f"Creating patient: {patient.name}")
        return await store.create_patient(patient)
    except HTTPException:
        logger.error("HTTPException raised in create_patient_endpoint", exc_info=True)
        raise
    except Exception as e:
        logger.error(f"Unexpected error in create_patient_endpoint: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create patient"
        )


@router.post("/create-patient-with-image", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient_with_image_endpoint(
    name: str = Form(..., min_length=1, max_length=200),
    age: int = Form(..., ge=0, le=150),
    sex: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    address: str = Form(""),
    symptoms: Optional[str] = Form(None),
    medicalHistory: str = Form(""),
    allergies: str = Form(""),
    medications: str = Form(""),
    emergencyContact: str = Form(""),
    image: Optional[UploadFile] = File(None),
    store: PatientStore = Depends(get_patient_store),
    images: ImageStore = Depends(get_image_store),
) -> PatientResponse:
    """
    Create a patient record and attach an X-ray in one request.

    symptoms should be a JSON array string of checklist labels.
    """
    try:
        logger.info(f"Creating patient with image: {name}")

        symptoms_list = []
        if symptoms:
            try:
                symptoms_list = json.loads(symptoms)
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid symptoms JSON: {str(e)}")
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"symptoms must be a valid JSON array: {str(e)}"
                )
            if not isinstance(symptoms_list, list):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="symptoms must be a JSON array"
                )

        try:
            patient_data = PatientCreate(
                name=name,
                age=age,
                sex=sex,
                email=email,
                phone=phone,
                address=address,
                symptoms=symptoms_list,
                medical_history=medicalHistory,
                allergies=allergies,
                medications=medications,
                emergency_contact=emergencyContact,
            )
        except ValidationError as e:
            logger.warning(f"Invalid patient form: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid patient data: {format_validation_errors(e)}"
            )

        if image is not None:
            content = await image.read()
            logger.debug(f"Image received: {image.filename}, {len(content)} bytes")
            uploaded = await run_in_threadpool(images.upload_image, content, image.filename, image.content_type)
            patient_data.images.append(uploaded.imageUrl)
            logger.info(f"Image attached to new patient: {uploaded.imageKey}")

        return await store.create_patient(patient_data)

    except HTTPException:
        logger.error("HTTPException raised in create_patient_with_image_endpoint", exc_info=True)
        raise
    except Exception as e:
        logger.error(f"Unexpected error in create_patient_with_image_endpoint: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create patient"
        )


@router.put("/update-patient", response_model=PatientResponse, status_code=status.HTTP_200_OK)
async def update_patient_endpoint(
    patient: PatientUpdate,
    store: PatientStore = Depends(get_patient_store),
) -> PatientResponse:
    """Overwrite a patient record with the full record from the edit form."""
    try:
        logger.info(f"Updating patient: {patient.patient_id}")
        return await store.update_patient(patient)
    except HTTPException:
        logger.error("HTTPException raised in update_patient_endpoint", exc_info=True)
        raise
    except Exception as e:
        logger.error(f"Unexpected error in update_patient_endpoint: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update patient"
        )
