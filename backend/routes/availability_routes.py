from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.database import ensure_database_ready, get_db
from backend.scheduling.slots import SlotMaintenance
from backend.scheduling.timeslots import TimeSlot, validate_date_string

router = APIRouter(tags=['availability'])


class SlotBatchRequest(BaseModel):
    date: str
    time_slots: list[TimeSlot]

    class Config:
        extra = 'forbid'

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: str) -> str:
        return validate_date_string(value)

    @field_validator('time_slots')
    @classmethod
    def validate_time_slots(cls, value: list[TimeSlot]) -> list[TimeSlot]:
        if not value:
            raise ValueError('At least one time slot is required.')
        return value

    def slots(self) -> list[dict]:
        return [slot.model_dump() for slot in self.time_slots]


class SlotDeleteRequest(BaseModel):
    date: str
    time_slots: list[TimeSlot] | None = None

    class Config:
        extra = 'forbid'

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: str) -> str:
        return validate_date_string(value)

    def slots(self) -> list[dict] | None:
        if not self.time_slots:
            return None
        return [slot.model_dump() for slot in self.time_slots]


def get_slot_maintenance(db: Session = Depends(get_db)) -> SlotMaintenance:
    return SlotMaintenance(db)


@router.get('/{therapist_id}/availability')
def get_availability(therapist_id: str, slots: SlotMaintenance = Depends(get_slot_maintenance)):
    ensure_database_ready()
    return slots.get_availability(therapist_id)


@router.post('/{therapist_id}/availability')
def insert_therapist_work_time(
    therapist_id: str,
    data: SlotBatchRequest,
    response: Response,
    slots: SlotMaintenance = Depends(get_slot_maintenance),
):
    ensure_database_ready()

    availability, created = slots.insert_work_time(therapist_id, data.date, data.slots())
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK

    return {'message': 'Work time added successfully', 'availability': availability}


@router.delete('/{therapist_id}/availability')
def delete_therapist_work_time(
    therapist_id: str,
    data: SlotDeleteRequest,
    slots: SlotMaintenance = Depends(get_slot_maintenance),
):
    ensure_database_ready()

    availability = slots.delete_work_time(therapist_id, data.date, data.slots())

    return {'message': 'Work time deleted successfully', 'availability': availability}


@router.get('/{therapist_id}/unavailability')
def get_unavailability(therapist_id: str, slots: SlotMaintenance = Depends(get_slot_maintenance)):
    ensure_database_ready()
    return slots.get_unavailability(therapist_id)


@router.post('/{therapist_id}/unavailability')
def insert_unavailability(
    therapist_id: str,
    data: SlotBatchRequest,
    response: Response,
    slots: SlotMaintenance = Depends(get_slot_maintenance),
):
    ensure_database_ready()

    unavailability, created = slots.insert_unavailability(therapist_id, data.date, data.slots())
    if created:
        response.status_code = status.HTTP_201_CREATED
        return {'message': 'Time slots added successfully', 'unavailability': unavailability}

    response.status_code = status.HTTP_200_OK
    return {'message': 'Time slots updated successfully', 'unavailability': unavailability}


@router.delete('/{therapist_id}/unavailability')
def delete_time_slot(
    therapist_id: str,
    data: SlotDeleteRequest,
    slots: SlotMaintenance = Depends(get_slot_maintenance),
):
    ensure_database_ready()

    result = slots.delete_time_slot(therapist_id, data.date, data.slots())

    return {'message': 'Time slots deleted successfully', **result}
