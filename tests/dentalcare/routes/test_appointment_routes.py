from datetime import datetime, timedelta

import pytest
from fastapi import BackgroundTasks, HTTPException
from pydantic import ValidationError

from dentalcare.models.appointment import Appointment, STATUS_CANCELLED, STATUS_CONFIRMED
from dentalcare.models.blocked_slot import BlockedSlot
from dentalcare.models.user import ROLE_DOCTOR, ROLE_PATIENT, User
from dentalcare.routes import appointment_routes, availability_routes
from dentalcare.routes.appointment_routes import (
    ACTIVE_APPOINTMENT_DETAIL,
    NO_DENTIST_DETAIL,
    OFF_GRID_DETAIL,
    CreateAppointmentRequest,
    UpdateAppointmentRequest,
)
from dentalcare.services import scheduling
from tests.dentalcare.helpers import at, next_weekday

MONDAY = 0


def booking(when: datetime, email: str = 'jane@example.com', **overrides) -> CreateAppointmentRequest:
    values = {
        'service': 'Cleaning',
        'date': when,
        'name': 'Jane Doe',
        'email': email,
        'phone': '0400 000 000',
    }
    values.update(overrides)
    return CreateAppointmentRequest(**values)


def book(db, data: CreateAppointmentRequest):
    background_tasks = BackgroundTasks()
    response = appointment_routes.create_appointment(data=data, background_tasks=background_tasks, db=db)
    return response, background_tasks


def test_create_request_normalizes_fields() -> None:
    request = booking(datetime(2026, 1, 5, 9, 0, 42), email=' JANE@Example.com ', doctor_id=3, notes='  ')

    assert request.email == 'jane@example.com'
    assert request.date == datetime(2026, 1, 5, 9, 0)
    assert request.doctor_id == '3'
    assert request.notes is None


def test_create_request_rejects_long_notes() -> None:
    with pytest.raises(ValidationError):
        booking(datetime(2026, 1, 5, 9, 0), notes='x' * 1001)


def test_validate_booking_time_rejects_past() -> None:
    now = datetime(2026, 1, 5, 12, 0)

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.validate_booking_time(datetime(2026, 1, 5, 11, 30), now=now)
    assert exception_info.value.detail == 'Appointments must be scheduled in the future.'

    appointment_routes.validate_booking_time(datetime(2026, 1, 5, 13, 15), now=now)


def test_guest_booking_creates_patient_and_queues_email(db, clinic_hours, make_doctor) -> None:
    alice = make_doctor('Alice Smith')
    when = at(next_weekday(MONDAY), '10:00')

    response, background_tasks = book(db, booking(when))

    assert response.success is True
    assert response.appointment.doctor_id == alice.id
    assert response.appointment.status == STATUS_CONFIRMED
    assert response.appointment.payment_status == 'PENDING'
    assert response.appointment.created_by == 'USER'
    guest = db.query(User).filter(User.email == 'jane@example.com').one()
    assert guest.role == ROLE_PATIENT
    assert guest.hashed_password == ''
    assert response.appointment.patient_id == guest.id
    assert len(background_tasks.tasks) == 1


def test_booking_spreads_load_across_doctors(db, clinic_hours, make_doctor) -> None:
    alice = make_doctor('Alice Smith')
    bob = make_doctor('Bob Jones')
    monday = next_weekday(MONDAY)

    first, _ = book(db, booking(at(monday, '10:00'), email='one@example.com'))
    second, _ = book(db, booking(at(monday, '11:00'), email='two@example.com'))

    assert [first.appointment.doctor_id, second.appointment.doctor_id] == [alice.id, bob.id]


def test_booking_rejects_patient_with_active_appointment(db, clinic_hours, make_doctor, make_user, make_appointment) -> None:
    make_doctor('Alice Smith')
    patient = make_user('jane@example.com')
    monday = next_weekday(MONDAY)
    make_appointment(at(monday, '09:00'), patient=patient)

    with pytest.raises(HTTPException) as exception_info:
        book(db, booking(at(monday, '15:00')))

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == ACTIVE_APPOINTMENT_DETAIL


def test_booking_allowed_after_cancellation(db, clinic_hours, make_doctor, make_user, make_appointment) -> None:
    make_doctor('Alice Smith')
    patient = make_user('jane@example.com')
    monday = next_weekday(MONDAY)
    make_appointment(at(monday, '09:00'), patient=patient, status=STATUS_CANCELLED)

    response, _ = book(db, booking(at(monday, '15:00')))

    assert response.appointment.patient_id == patient.id


def test_booking_rejects_blocked_slot(db, clinic_hours, make_doctor) -> None:
    make_doctor('Alice Smith')
    when = at(next_weekday(MONDAY), '10:00')
    db.add(BlockedSlot(date=when))
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        book(db, booking(when))

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time slot is blocked.'


def test_booking_rejects_when_no_dentist_is_free(db, clinic_hours, make_doctor, make_appointment) -> None:
    alice = make_doctor('Alice Smith')
    when = at(next_weekday(MONDAY), '10:00')
    make_appointment(when, doctor=alice)

    with pytest.raises(HTTPException) as exception_info:
        book(db, booking(when, doctor_id=str(alice.id)))

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == NO_DENTIST_DETAIL
    assert db.query(User).filter(User.email == 'jane@example.com').first() is None


def test_booking_rejects_time_outside_hours(db, clinic_hours, make_doctor) -> None:
    make_doctor('Alice Smith')

    with pytest.raises(HTTPException) as exception_info:
        book(db, booking(at(next_weekday(MONDAY), '19:00')))

    assert exception_info.value.detail == NO_DENTIST_DETAIL


def test_booking_accepts_slots_offered_for_off_grid_hours(db, make_doctor, make_availability) -> None:
    make_doctor('Alice Smith')
    make_availability(1, '09:15', '11:00')
    monday = next_weekday(MONDAY)

    offered = availability_routes.get_availability(date=monday.isoformat(), doctor_id='ANY', db=db)
    assert offered.slots == ['09:15', '09:45', '10:15', '10:45']

    response, _ = book(db, booking(at(monday, '09:15')))

    assert response.appointment.date == at(monday, '09:15')


def test_booking_rejects_time_between_offered_slots(db, clinic_hours, make_doctor) -> None:
    make_doctor('Alice Smith')

    with pytest.raises(HTTPException) as exception_info:
        book(db, booking(at(next_weekday(MONDAY), '10:15')))

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == OFF_GRID_DETAIL
    assert db.query(Appointment).count() == 0


def test_list_appointments_scopes_patients_to_themselves(db, make_user, make_appointment) -> None:
    jane = make_user('jane@example.com')
    other = make_user('other@example.com')
    monday = next_weekday(MONDAY)
    mine = make_appointment(at(monday, '09:00'), patient=jane)
    make_appointment(at(monday, '10:00'), patient=other)

    appointments = appointment_routes.list_appointments(user_id=None, current_user=jane, db=db)

    assert [appointment.id for appointment in appointments] == [mine.id]

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.list_appointments(user_id=other.id, current_user=jane, db=db)
    assert exception_info.value.status_code == 403


def test_list_appointments_for_admin(db, admin, make_user, make_appointment) -> None:
    jane = make_user('jane@example.com')
    monday = next_weekday(MONDAY)
    make_appointment(at(monday, '09:00'), patient=jane)
    make_appointment(at(monday, '10:00'), patient_email='guest@example.com')

    assert len(appointment_routes.list_appointments(user_id=None, current_user=admin, db=db)) == 2
    assert len(appointment_routes.list_appointments(user_id=jane.id, current_user=admin, db=db)) == 1


def test_list_appointments_rejects_doctors(db, make_user) -> None:
    doctor = make_user('doc@example.com', role=ROLE_DOCTOR)

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.list_appointments(user_id=None, current_user=doctor, db=db)

    assert exception_info.value.status_code == 403


def test_check_active_appointment(db, make_user, make_appointment) -> None:
    jane = make_user('jane@example.com')

    assert appointment_routes.check_active_appointment(current_user=None, db=db) == {'has_appointment': False}
    assert appointment_routes.check_active_appointment(current_user=jane, db=db) == {'has_appointment': False}

    make_appointment(at(next_weekday(MONDAY), '09:00'), patient=jane)

    assert appointment_routes.check_active_appointment(current_user=jane, db=db) == {'has_appointment': True}


def test_patient_can_cancel_and_edit_notes(db, make_user, make_appointment) -> None:
    jane = make_user('jane@example.com')
    appointment = make_appointment(at(next_weekday(MONDAY), '09:00'), patient=jane, notes='old')

    response = appointment_routes.update_appointment(
        appointment_id=appointment.id,
        data=UpdateAppointmentRequest(status='cancelled', notes='Feeling better'),
        current_user=jane,
        db=db,
    )

    assert response.appointment.status == STATUS_CANCELLED
    assert response.appointment.notes == 'Feeling better'


def test_patient_cannot_reschedule_or_touch_others(db, make_user, make_appointment) -> None:
    jane = make_user('jane@example.com')
    other = make_user('other@example.com')
    monday = next_weekday(MONDAY)
    appointment = make_appointment(at(monday, '09:00'), patient=jane)

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.update_appointment(
            appointment_id=appointment.id,
            data=UpdateAppointmentRequest(date=at(monday, '10:00')),
            current_user=jane,
            db=db,
        )
    assert exception_info.value.detail == 'Patients can only cancel their appointments or update notes.'

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.update_appointment(
            appointment_id=appointment.id,
            data=UpdateAppointmentRequest(status='CANCELLED'),
            current_user=other,
            db=db,
        )
    assert exception_info.value.detail == 'Only the patient who booked this appointment can change it.'


def test_admin_reschedule_checks_double_booking(db, admin, make_doctor, make_appointment) -> None:
    alice = make_doctor('Alice Smith')
    monday = next_weekday(MONDAY)
    make_appointment(at(monday, '10:00'), doctor=alice)
    appointment = make_appointment(at(monday, '09:00'), doctor=alice)

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.update_appointment(
            appointment_id=appointment.id,
            data=UpdateAppointmentRequest(date=at(monday, '10:00')),
            current_user=admin,
            db=db,
        )
    assert exception_info.value.status_code == 409

    response = appointment_routes.update_appointment(
        appointment_id=appointment.id,
        data=UpdateAppointmentRequest(date=at(monday, '11:00') + timedelta(seconds=5)),
        current_user=admin,
        db=db,
    )
    assert response.appointment.date == at(monday, '11:00')


def test_admin_restoring_cancelled_appointment_rechecks_conflicts(
    db, admin, make_doctor, make_user, make_appointment
) -> None:
    alice = make_doctor('Alice Smith')
    jane = make_user('jane@example.com')
    monday = next_weekday(MONDAY)
    cancelled = make_appointment(at(monday, '10:00'), doctor=alice, patient=jane, status=STATUS_CANCELLED)
    make_appointment(at(monday, '10:00'), doctor=alice)

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.update_appointment(
            appointment_id=cancelled.id,
            data=UpdateAppointmentRequest(status='CONFIRMED'),
            current_user=admin,
            db=db,
        )
    assert exception_info.value.status_code == 409

    moved = make_appointment(at(monday, '16:00'), patient=jane)
    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.update_appointment(
            appointment_id=cancelled.id,
            data=UpdateAppointmentRequest(date=at(monday, '11:00'), status='CONFIRMED'),
            current_user=admin,
            db=db,
        )
    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == ACTIVE_APPOINTMENT_DETAIL

    db.rollback()
    assert scheduling.find_active_appointment(db, jane.id, None).id == moved.id


def test_update_missing_appointment_returns_404(db, admin) -> None:
    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.update_appointment(
            appointment_id=404,
            data=UpdateAppointmentRequest(status='CANCELLED'),
            current_user=admin,
            db=db,
        )

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found'


def test_delete_appointment_removes_row(db, admin, make_appointment) -> None:
    appointment = make_appointment(at(next_weekday(MONDAY), '09:00'))

    assert appointment_routes.delete_appointment(appointment_id=appointment.id, current_user=admin, db=db) == {
        'success': True,
    }
    assert db.query(Appointment).count() == 0
