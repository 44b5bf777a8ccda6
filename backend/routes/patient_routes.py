from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from backend.core.errors import InvalidRequestError, NotFoundError
from backend.database import ensure_database_ready, get_db
from backend.documents import DocumentCollection

router = APIRouter(tags=['patients'])


class PatientProfile(BaseModel):
    age: int | None = Field(default=None, ge=0)
    gender: str | None = None

    class Config:
        extra = 'forbid'


class ContactInfo(BaseModel):
    phone: str | None = None
    address: str | None = None
    place: str | None = None
    country: str | None = None

    class Config:
        extra = 'forbid'


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if '@' not in normalized:
        raise ValueError('A valid email address is required.')
    return normalized


class CreatePatientRequest(BaseModel):
    patientId: str
    firstName: str
    lastName: str
    email: str
    profile: PatientProfile | None = None
    contactInfo: ContactInfo | None = None

    class Config:
        extra = 'forbid'

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator('patientId', 'firstName', 'lastName')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Field is required.')
        return normalized


class UpdatePatientRequest(BaseModel):
    firstName: str | None = None
    lastName: str | None = None
    email: str | None = None
    profile: PatientProfile | None = None
    contactInfo: ContactInfo | None = None

    class Config:
        extra = 'forbid'

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return _normalize_email(value) if value is not None else None


def get_patients(db: Session = Depends(get_db)) -> DocumentCollection:
    return DocumentCollection(db, 'patients', 'patientId')


@router.post('', status_code=status.HTTP_201_CREATED)
def create_patient(data: CreatePatientRequest, patients: DocumentCollection = Depends(get_patients)):
    ensure_database_ready()

    if patients.find_one('email', data.email):
        raise InvalidRequestError(f'Patient with email {data.email} already exists')
    if patients.get(data.patientId):
        raise InvalidRequestError(f'Patient with username {data.patientId} already exists')

    patient = patients.create(data.model_dump(mode='json'))

    return {'message': 'Patient created successfully', 'patient': patient}


@router.get('')
def list_patients(patients: DocumentCollection = Depends(get_patients)):
    ensure_database_ready()

    return patients.find()


@router.get('/{patient_id}')
def get_patient(patient_id: str, patients: DocumentCollection = Depends(get_patients)):
    ensure_database_ready()

    patient = patients.get(patient_id) or patients.find_one('email', patient_id.strip().lower())
    if patient is None:
        raise NotFoundError(f'No patient found with ID or email {patient_id}')
    return patient


@router.patch('/{patient_id}')
def update_patient(
    patient_id: str,
    data: UpdatePatientRequest,
    patients: DocumentCollection = Depends(get_patients),
):
    ensure_database_ready()

    changes = data.model_dump(mode='json', exclude_unset=True)
    if changes.get('email'):
        existing = patients.find_one('email', changes['email'])
        if existing and existing['patientId'] != patient_id:
            raise InvalidRequestError(f"Patient with email {changes['email']} already exists")

    patient = patients.update(patient_id, changes)
    if patient is None:
        raise NotFoundError(f'No patient found with ID {patient_id}')

    return {'message': 'Patient updated successfully', 'patient': patient}


@router.delete('/{patient_id}')
def delete_patient(patient_id: str, patients: DocumentCollection = Depends(get_patients)):
    ensure_database_ready()

    if not patients.delete(patient_id):
        raise NotFoundError(f'No patient found with ID {patient_id}')

    return {'message': 'Patient deleted successfully', 'patientId': patient_id}
