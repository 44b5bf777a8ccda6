from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.core.errors import NotFoundError
from backend.database import ensure_database_ready, get_db
from backend.documents import DocumentCollection

router = APIRouter(tags=['medical records'])

RecordType = Literal['diagnosis', 'medication', 'allergy', 'lab-result', 'history', 'other']


class Diagnosis(BaseModel):
    code: str | None = None
    name: str | None = None
    severity: Literal['mild', 'moderate', 'severe'] | None = None

    class Config:
        extra = 'forbid'


class Medication(BaseModel):
    name: str | None = None
    dosage: str | None = None
    frequency: str | None = None
    startDate: date | None = None
    endDate: date | None = None
    prescribedBy: str | None = None

    class Config:
        extra = 'forbid'


class Allergy(BaseModel):
    allergen: str | None = None
    reaction: str | None = None
    severity: Literal['mild', 'moderate', 'severe', 'life-threatening'] | None = None

    class Config:
        extra = 'forbid'


class Attachment(BaseModel):
    fileName: str | None = None
    fileUrl: str | None = None
    fileType: str | None = None
    uploadDate: datetime | None = None

    class Config:
        extra = 'forbid'


class CreateMedicalRecordRequest(BaseModel):
    patientId: str
    recordType: RecordType
    title: str
    description: str | None = None
    diagnosis: Diagnosis | None = None
    medications: list[Medication] = []
    allergies: list[Allergy] = []
    attachments: list[Attachment] = []
    addedBy: str
    isActive: bool = True
    confidential: bool = True

    class Config:
        extra = 'forbid'


class UpdateMedicalRecordRequest(BaseModel):
    recordType: RecordType | None = None
    title: str | None = None
    description: str | None = None
    diagnosis: Diagnosis | None = None
    medications: list[Medication] | None = None
    allergies: list[Allergy] | None = None
    attachments: list[Attachment] | None = None
    isActive: bool | None = None
    confidential: bool | None = None

    class Config:
        extra = 'forbid'


def get_medical_records(db: Session = Depends(get_db)) -> DocumentCollection:
    return DocumentCollection(db, 'medical_records', 'recordId')


def summarize_medical_records(records: list[dict], today: date | None = None) -> dict:
    today = today or date.today()
    records_by_type: dict[str, int] = {}
    for record in records:
        records_by_type[record['recordType']] = records_by_type.get(record['recordType'], 0) + 1

    current_medications = [
        medication
        for record in records
        if record['recordType'] == 'medication'
        for medication in record.get('medications') or []
        if not medication.get('endDate') or date.fromisoformat(medication['endDate']) > today
    ]

    return {
        'totalRecords': len(records),
        'recordsByType': records_by_type,
        'activeDiagnoses': [
            {
                'code': (record.get('diagnosis') or {}).get('code'),
                'name': (record.get('diagnosis') or {}).get('name'),
                'severity': (record.get('diagnosis') or {}).get('severity'),
                'addedDate': record.get('createdAt'),
            }
            for record in records
            if record['recordType'] == 'diagnosis'
        ],
        'currentMedications': current_medications,
        'allergies': [
            allergy
            for record in records
            if record['recordType'] == 'allergy'
            for allergy in record.get('allergies') or []
        ],
    }


@router.post('', status_code=status.HTTP_201_CREATED)
def create_medical_record(
    data: CreateMedicalRecordRequest,
    records: DocumentCollection = Depends(get_medical_records),
):
    ensure_database_ready()

    record = records.create(data.model_dump(mode='json'))
    return {'message': 'Medical record created successfully', 'record': record}


@router.get('/patient/{patient_id}')
def list_patient_medical_records(
    patient_id: str,
    record_type: str | None = Query(default=None, alias='recordType'),
    is_active: bool | None = Query(default=None, alias='isActive'),
    records: DocumentCollection = Depends(get_medical_records),
):
    ensure_database_ready()

    results = records.find(
        filters={'patientId': patient_id, 'recordType': record_type, 'isActive': is_active},
        sort_key='createdAt',
        descending=True,
    )
    if not results:
        raise NotFoundError('No medical records found for this patient')
    return results


@router.get('/patient/{patient_id}/summary')
def get_patient_medical_summary(patient_id: str, records: DocumentCollection = Depends(get_medical_records)):
    ensure_database_ready()

    active_records = records.find(filters={'patientId': patient_id, 'isActive': True})
    if not active_records:
        raise NotFoundError('No medical records found for this patient')
    return summarize_medical_records(active_records)


@router.get('/{record_id}')
def get_medical_record(record_id: str, records: DocumentCollection = Depends(get_medical_records)):
    ensure_database_ready()

    record = records.get(record_id)
    if record is None:
        raise NotFoundError(f'Medical record with ID {record_id} not found')
    return record


@router.patch('/{record_id}')
def update_medical_record(
    record_id: str,
    data: UpdateMedicalRecordRequest,
    records: DocumentCollection = Depends(get_medical_records),
):
    ensure_database_ready()

    record = records.update(record_id, data.model_dump(mode='json', exclude_unset=True))
    if record is None:
        raise NotFoundError(f'Medical record with ID {record_id} not found')
    return {'message': 'Medical record updated successfully', 'record': record}


@router.delete('/{record_id}')
def delete_medical_record(record_id: str, records: DocumentCollection = Depends(get_medical_records)):
    ensure_database_ready()

    if not records.delete(record_id):
        raise NotFoundError(f'Medical record with ID {record_id} not found')
    return {'message': 'Medical record deleted successfully', 'recordId': record_id}
