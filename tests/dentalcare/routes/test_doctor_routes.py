from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException
from fastapi.responses import Response
from pydantic import ValidationError

from dentalcare.models.appointment import STATUS_CANCELLED
from dentalcare.models.blocked_slot import BlockedSlot
from dentalcare.routes import doctor_routes
from dentalcare.routes.doctor_routes import DoctorAppointmentRequest, PaymentUpdateRequest
from tests.dentalcare.helpers import at, next_weekday

MONDAY = 0
SUNDAY = 6


def walk_in(day: date, time: str = '10:00', email: str = 'walkin@example.com') -> DoctorAppointmentRequest:
    return DoctorAppointmentRequest(
        date=day,
        time=time,
        name='Walk In',
        email=email,
        phone='0400',
        service='Filling',
    )


def create(db, doctor, data: DoctorAppointmentRequest):
    return doctor_routes.create_doctor_appointment(data=data, current_user=doctor, db=db)


def test_payment_request_validates_amount_and_status() -> None:
    request = PaymentUpdateRequest(appointment_id=1, amount='75.50', treatment_status=' partial ')

    assert request.amount == Decimal('75.50')
    assert request.treatment_status == 'PARTIAL'

    with pytest.raises(ValidationError):
        PaymentUpdateRequest(appointment_id=1, amount='-1', treatment_status='PENDING')
    with pytest.raises(ValidationError):
        PaymentUpdateRequest(appointment_id=1, amount='10', treatment_status='DONE')


def test_list_doctor_appointments_filters_by_range(db, make_doctor, make_appointment) -> None:
    alice = make_doctor('Alice Smith')
    bob = make_doctor('Bob Jones')
    monday = next_weekday(MONDAY)
    later = next_weekday(MONDAY, after=monday)
    first = make_appointment(at(monday, '09:00'), doctor=alice)
    make_appointment(at(later, '09:00'), doctor=alice)
    make_appointment(at(monday, '10:00'), doctor=alice, status=STATUS_CANCELLED)
    make_appointment(at(monday, '11:00'), doctor=bob)

    appointments = doctor_routes.list_doctor_appointments(
        start_date=monday.isoformat(),
        end_date=monday.isoformat(),
        current_user=alice,
        db=db,
    )

    assert [appointment.id for appointment in appointments] == [first.id]
    assert len(doctor_routes.list_doctor_appointments(start_date=None, end_date=None, current_user=alice, db=db)) == 2


def test_create_doctor_appointment_stores_guest_details(db, clinic_hours, make_doctor) -> None:
    alice = make_doctor('Alice Smith')
    monday = next_weekday(MONDAY)

    response = create(db, alice, walk_in(monday))

    appointment = response.appointment
    assert appointment.doctor_id == alice.id
    assert appointment.created_by == 'DOCTOR'
    assert appointment.patient_id is None
    assert (appointment.patient_name, appointment.patient_email) == ('Walk In', 'walkin@example.com')
    assert appointment.date == at(monday, '10:00')


def test_create_doctor_appointment_links_existing_patient(db, clinic_hours, make_doctor, make_user) -> None:
    alice = make_doctor('Alice Smith')
    patient = make_user('walkin@example.com')

    response = create(db, alice, walk_in(next_weekday(MONDAY)))

    assert response.appointment.patient_id == patient.id
    assert response.appointment.patient_email is None


@pytest.mark.parametrize(
    ('own_row', 'global_row', 'slot_time', 'detail'),
    [
        (('09:00', '17:00', False), ('09:00', '19:00'), '10:00', 'This doctor is not available on the selected day.'),
        (('12:00', '17:00', True), ('09:00', '19:00'), '10:00', "This time is outside the doctor's working hours."),
        (None, None, '10:00', 'No schedule is configured for the selected day.'),
        (None, ('09:00', '19:00'), '19:00', 'This time is outside the working hours.'),
    ],
)
def test_create_doctor_appointment_checks_schedule(
    db, make_doctor, make_availability, own_row, global_row, slot_time, detail
) -> None:
    alice = make_doctor('Alice Smith')
    if own_row is not None:
        make_availability(1, own_row[0], own_row[1], doctor_id=alice.id, is_active=own_row[2])
    if global_row is not None:
        make_availability(1, *global_row)

    with pytest.raises(HTTPException) as exception_info:
        create(db, alice, walk_in(next_weekday(MONDAY), time=slot_time))

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == detail


def test_create_doctor_appointment_rejects_conflicts(db, clinic_hours, make_doctor, make_appointment) -> None:
    alice = make_doctor('Alice Smith')
    monday = next_weekday(MONDAY)
    make_appointment(at(monday, '10:00'), doctor=alice, patient_email='someone@example.com')
    db.add(BlockedSlot(date=at(monday, '11:00')))
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        create(db, alice, walk_in(monday, time='10:00'))
    assert exception_info.value.detail == 'This slot is already filled. Please select another time.'

    with pytest.raises(HTTPException) as exception_info:
        create(db, alice, walk_in(monday, time='11:00'))
    assert exception_info.value.status_code == 409

    with pytest.raises(HTTPException) as exception_info:
        create(db, alice, walk_in(monday, time='12:00', email='someone@example.com'))
    assert exception_info.value.detail == 'This patient already has an active upcoming appointment.'


def test_record_payment_updates_amount_and_treatment(db, make_doctor, make_appointment) -> None:
    alice = make_doctor('Alice Smith')
    appointment = make_appointment(at(next_weekday(MONDAY), '09:00'), payment_status='PENDING')

    response = doctor_routes.record_payment(
        data=PaymentUpdateRequest(appointment_id=appointment.id, amount='120', treatment_status='COMPLETED'),
        current_user=alice,
        db=db,
    )

    assert response.appointment.payment_amount == 120.0
    assert response.appointment.treatment_status == 'COMPLETED'
    assert response.appointment.payment_status == 'PENDING'
    assert response.appointment.doctor_id == alice.id


def test_record_payment_missing_appointment(db, make_doctor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        doctor_routes.record_payment(
            data=PaymentUpdateRequest(appointment_id=99, amount='10', treatment_status='PENDING'),
            current_user=make_doctor('Alice Smith'),
            db=db,
        )

    assert exception_info.value.status_code == 404


def report(db, doctor, **overrides):
    params = {
        'type': 'appointments',
        'start_date': '2026-01-01',
        'end_date': '2026-01-31',
        'format': 'excel',
        'download': False,
    }
    params.update(overrides)
    return doctor_routes.doctor_report(current_user=doctor, db=db, **params)


def test_doctor_report_requires_parameters(db, make_doctor) -> None:
    alice = make_doctor('Alice Smith')

    with pytest.raises(HTTPException) as exception_info:
        report(db, alice, format=None)
    assert exception_info.value.detail == 'start_date, end_date, and format are required'

    with pytest.raises(HTTPException) as exception_info:
        report(db, alice, format='docx')
    assert exception_info.value.detail == 'format must be pdf or excel'


def test_doctor_report_returns_json_rows(db, make_doctor, make_appointment) -> None:
    alice = make_doctor('Alice Smith')
    make_appointment(at(date(2026, 1, 5), '09:00'), doctor=alice, patient_name='Jane', payment_amount=Decimal('40'))
    make_appointment(at(date(2026, 2, 5), '09:00'), doctor=alice, patient_name='Later')

    result = report(db, alice)

    assert result['filename'] == 'appointments_report_2026-01-01_2026-01-31'
    assert [row['name'] for row in result['data']] == ['Jane']


def test_doctor_report_downloads_csv_and_pdf(db, make_doctor, make_appointment) -> None:
    alice = make_doctor('Alice Smith')
    make_appointment(at(date(2026, 1, 5), '09:00'), doctor=alice, patient_name='Jane')

    csv_response = report(db, alice, download=True)
    pdf_response = report(db, alice, format='PDF')

    assert isinstance(csv_response, Response)
    assert csv_response.media_type == 'text/csv'
    assert 'Doctor' not in csv_response.body.decode().splitlines()[0]
    assert csv_response.headers['content-disposition'] == (
        'attachment; filename="appointments_report_2026-01-01_2026-01-31.csv"'
    )
    assert pdf_response.media_type == 'application/pdf'
    assert pdf_response.body.startswith(b'%PDF')
