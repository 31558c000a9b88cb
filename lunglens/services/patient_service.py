"""Patient service for document-store operations."""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorCollection
from lunglens.schemas.patients import PatientCreate, PatientUpdate, PatientResponse

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("name", "patientId", "phone")


def generate_patient_id() -> str:
    """Generate a fresh opaque patient identifier."""
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_search_filter(query: str) -> dict:
    """
    Build a case-insensitive "contains" filter across the searchable fields.

    The query is escaped so user input is matched literally. The filter is
    unanchored, so MongoDB answers it with a collection scan.
    """
    pattern = {"$regex": re.escape(query), "$options": "i"}
    return {"$or": [{field: pattern} for field in SEARCH_FIELDS]}


class PatientStore:
    """Get, put and scan patient records in a MongoDB collection."""

    def __init__(self, collection: AsyncIOMotorCollection, search_limit: int = 20):
        self.collection = collection
        self.search_limit = search_limit

    async def get_patient(self, patient_id: str) -> Optional[PatientResponse]:
        """Fetch a patient by identifier, or None when absent."""
        logger.debug(f"Fetching patient: {patient_id}")
        document = await self.collection.find_one({"patientId": patient_id}, {"_id": 0})
        if not document:
            logger.info(f"Patient not found: {patient_id}")
            return None
        return PatientResponse(**document)

    async def put_patient(self, patient: PatientResponse) -> PatientResponse:
        """Write the full record, replacing whatever is stored under its key."""
        document = patient.model_dump(by_alias=True, mode="json")
        logger.debug(f"Writing patient document keys: {list(document.keys())}")
        await self.collection.replace_one({"patientId": patient.patient_id}, document, upsert=True)
        logger.info(f"Patient stored: {patient.patient_id}")
        return patient

    async def create_patient(self, patient: PatientCreate) -> PatientResponse:
        """Create a new patient record with a freshly generated identifier."""
        logger.info(f"Starting patient creation for: {patient.name}")
        now = utc_now()
        record = PatientResponse(
            **patient.model_dump(),
            patient_id=generate_patient_id(),
            created_at=now,
            updated_at=now,
        )
        await self.put_patient(record)
        logger.info(f"Patient created successfully: {record.patient_id}")
        return record

    async def update_patient(self, patient: PatientUpdate) -> PatientResponse:
        """
        Overwrite an existing patient record.

        Last write wins; there is no version check. The caller's createdAt is
        kept when supplied, otherwise the stored one is carried over.
        """
        if not patient.patient_id or not patient.patient_id.strip():
            logger.warning("Update requested without patientId")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="patientId is required"
            )

        existing = await self.get_patient(patient.patient_id)
        if existing is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Patient not found"
            )

        fields = patient.model_dump(exclude={"patient_id", "created_at"})
        record = PatientResponse(
            **fields,
            patient_id=patient.patient_id,
            created_at=patient.created_at or existing.created_at,
            updated_at=utc_now(),
        )
        await self.put_patient(record)
        logger.info(f"Patient updated: {record.patient_id}")
        return record

    async def search_patients(self, query: Optional[str], limit: Optional[int] = None) -> List[PatientResponse]:
        """Substring search over name, identifier and phone, capped to a small limit."""
        if query is None or not query.strip():
            logger.debug("Blank search query; skipping storage")
            return []

        term = query.strip()
        limit = limit or self.search_limit
        logger.info(f"Searching patients for '{term}' (limit {limit})")

        cursor = self.collection.find(build_search_filter(term), {"_id": 0}).limit(limit)
        documents = await cursor.to_list(length=limit)

        results = []
        for document in documents:
            try:
                results.append(PatientResponse(**document))
            except ValueError as e:
                # Records written by older forms may not validate; leave them out of results.
                logger.warning(f"Skipping malformed patient document {document.get('patientId')}: {str(e)}")
        logger.info(f"Search returned {len(results)} patient(s)")
        return results
