from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from backend.core.errors import InvalidRequestError, NotFoundError
from backend.database import ensure_database_ready, get_db
from backend.documents import DocumentCollection
from backend.routes.patient_routes import ContactInfo

router = APIRouter(tags=['therapists'])


class TherapistProfile(BaseModel):
    age: int | None = Field(default=None, ge=0)
    gender: str | None = None
    specialization: str | None = None
    experience: int | None = Field(default=None, ge=0)

    class Config:
        extra = 'forbid'


class CreateTherapistRequest(BaseModel):
    therapistId: str
    firstName: str
    lastName: str
    email: str
    type: str = 'therapist'
    profile: TherapistProfile | None = None
    contactInfo: ContactInfo | None = None

    class Config:
        extra = 'forbid'

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if '@' not in normalized:
            raise ValueError('A valid email address is required.')
        return normalized

    @field_validator('therapistId', 'firstName', 'lastName')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Field is required.')
        return normalized


class UpdateTherapistRequest(BaseModel):
    firstName: str | None = None
    lastName: str | None = None
    email: str | None = None
    type: str | None = None
    profile: TherapistProfile | None = None
    contactInfo: ContactInfo | None = None

    class Config:
        extra = 'forbid'

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return value.strip().lower() if value is not None else None


def get_therapists(db: Session = Depends(get_db)) -> DocumentCollection:
    return DocumentCollection(db, 'therapists', 'therapistId')


@router.post('', status_code=status.HTTP_201_CREATED)
def create_therapist(data: CreateTherapistRequest, therapists: DocumentCollection = Depends(get_therapists)):
    ensure_database_ready()

    if therapists.find_one('email', data.email):
        raise InvalidRequestError(f'Therapist with email {data.email} already exists')
    if therapists.get(data.therapistId):
        raise InvalidRequestError(f'Therapist with username {data.therapistId} already exists')

    therapist = therapists.create(data.model_dump(mode='json'))

    return {'message': 'Therapist created successfully', 'therapist': therapist}


@router.get('')
def list_therapists(therapists: DocumentCollection = Depends(get_therapists)):
    ensure_database_ready()

    return therapists.find()


@router.get('/{therapist_id}')
def get_therapist(therapist_id: str, therapists: DocumentCollection = Depends(get_therapists)):
    ensure_database_ready()

    therapist = therapists.get(therapist_id) or therapists.find_one('email', therapist_id.strip().lower())
    if therapist is None:
        raise NotFoundError(f'No therapist found with ID or email {therapist_id}')
    return therapist


@router.patch('/{therapist_id}')
def update_therapist(
    therapist_id: str,
    data: UpdateTherapistRequest,
    therapists: DocumentCollection = Depends(get_therapists),
):
    ensure_database_ready()

    changes = data.model_dump(mode='json', exclude_unset=True)
    if changes.get('email'):
        existing = therapists.find_one('email', changes['email'])
        if existing and existing['therapistId'] != therapist_id:
            raise InvalidRequestError(f"Therapist with email {changes['email']} already exists")

    therapist = therapists.update(therapist_id, changes)
    if therapist is None:
        raise NotFoundError(f'No therapist found with ID {therapist_id}')

    return {'message': 'Therapist updated successfully', 'therapist': therapist}


@router.delete('/{therapist_id}')
def delete_therapist(therapist_id: str, therapists: DocumentCollection = Depends(get_therapists)):
    ensure_database_ready()

    if not therapists.delete(therapist_id):
        raise NotFoundError(f'No therapist found with ID {therapist_id}')

    return {'message': 'Therapist deleted successfully', 'therapistId': therapist_id}
