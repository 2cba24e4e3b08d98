# Patient Management Feature - Service

import re
from typing import List, Optional, Tuple

from beanie import PydanticObjectId
from beanie.operators import Or, RegEx

from smartlab.core import audit
from smartlab.core.logging import logger
from smartlab.features.auth.models import Patient, Role, User
from smartlab.features.auth.service import AuthService
from smartlab.features.patients.schemas import CreatePatientRequest, UpdatePatientRequest
from smartlab.shared.exceptions import DuplicateException, NotFoundException
from smartlab.shared.schemas import Pagination
from smartlab.shared.store import conditional_update


class PatientService:
    """Service class for staff-managed patient records."""

    @staticmethod
    async def list_patients(
        pagination: Pagination,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[Patient], int]:
        """Page through patients, optionally matching ``search`` against names and e-mail."""
        query = Patient.find()

        if search:
            pattern = re.escape(search.strip())
            query = query.find(
                Or(
                    RegEx(Patient.first_name, pattern, "i"),
                    RegEx(Patient.last_name, pattern, "i"),
                    RegEx(Patient.email, pattern, "i"),
                )
            )

        if is_active is not None:
            query = query.find(Patient.is_active == is_active)

        total = await query.count()
        patients = await query.sort(-Patient.created_at).skip(pagination.skip).limit(pagination.limit).to_list()
        return patients, total

    @staticmethod
    async def get_patient(patient_id: PydanticObjectId) -> Patient:
        """Get a patient by id. Non-patient principals are reported as not found."""
        patient = await Patient.get(patient_id)
        if patient is None:
            raise NotFoundException("Patient not found")
        return patient

    @staticmethod
    async def create_patient(request: CreatePatientRequest, actor: User, ip: Optional[str] = None) -> Patient:
        """Create a patient account on the patient's behalf."""
        patient = await AuthService.create_user(request, Role.PATIENT, True, actor, ip)
        logger.info(f"Created patient {patient.id} by {actor.email}")
        return patient

    @staticmethod
    async def update_patient(
        patient_id: PydanticObjectId,
        request: UpdatePatientRequest,
        actor: User,
        ip: Optional[str] = None,
    ) -> Patient:
        """Update patient information."""
        patient = await PatientService.get_patient(patient_id)

        # Update fields that are provided
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return patient

        if "email" in changes:
            changes["email"] = changes["email"].lower()
            existing = await User.find_one(User.email == changes["email"], with_children=True)
            if existing is not None and existing.id != patient.id:
                raise DuplicateException("User with this email already exists")

        updated = await conditional_update(
            Patient,
            patient.id,
            update={"$set": changes},
            label="Patient",
        )

        audit.log_update(actor, "patient", patient.id, changes.keys(), ip)
        return updated

    @staticmethod
    async def delete_patient(patient_id: PydanticObjectId, actor: User, ip: Optional[str] = None) -> None:
        """
        Permanently delete a patient account.

        Appointments, reports, complaints and payments keep their reference to
        the removed patient id.
        """
        patient = await PatientService.get_patient(patient_id)
        await patient.delete()

        audit.log_delete(actor, "patient", patient_id, ip)
        logger.info(f"Deleted patient {patient_id}")
