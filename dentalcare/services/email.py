"""Appointment confirmation emails over SMTP."""

import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from fastapi import BackgroundTasks

from dentalcare.core import config
from dentalcare.core.clinic import get_active_clinic
from dentalcare.models.appointment import Appointment

logger = logging.getLogger(__name__)


@dataclass
class AppointmentEmailDetails:
    to_email: str
    patient_name: str
    service: str
    appointment_date: datetime
    patient_phone: str | None = None
    doctor_name: str | None = None
    notes: str | None = None


def _required(value: str, name: str) -> str:
    if not value:
        raise RuntimeError(f"Missing environment variable: {name}")
    return value


def get_from_address() -> str:
    clinic = get_active_clinic()
    return config.EMAIL_FROM or f"{clinic.name} <no-reply@{clinic.key}.local>"


def open_smtp_connection() -> smtplib.SMTP:
    host = _required(config.SMTP_HOST, "SMTP_HOST")
    user = _required(config.SMTP_USER, "SMTP_USER")
    password = _required(config.SMTP_PASS, "SMTP_PASS")
    context = ssl.create_default_context()

    if config.smtp_use_implicit_tls():
        server = smtplib.SMTP_SSL(host, config.SMTP_PORT, context=context, timeout=30)
    else:
        server = smtplib.SMTP(host, config.SMTP_PORT, timeout=30)
        server.starttls(context=context)
    server.login(user, password)
    return server


def build_confirmation_message(details: AppointmentEmailDetails) -> MIMEMultipart:
    clinic_name = get_active_clinic().name
    date_str = details.appointment_date.strftime("%d %b %Y")
    time_str = details.appointment_date.strftime("%I:%M %p")
    doctor = details.doctor_name or "To be assigned"
    phone = details.patient_phone or "-"

    rows = [
        ("Patient", details.patient_name),
        ("Service", details.service),
        ("Date", date_str),
        ("Time", time_str),
        ("Doctor", doctor),
        ("Phone", phone),
    ]
    if details.notes:
        rows.append(("Notes", details.notes))

    greeting = f"Hi, Your appointment with {clinic_name} is confirmed as per details below"
    text_body = "\n".join(
        [greeting, ""]
        + [f"{label}: {value}" for label, value in rows]
        + ["", "Thank you,", clinic_name]
    )

    table_rows = "".join(
        f"<tr><td><strong>{label}</strong></td><td>{html.escape(str(value))}</td></tr>"
        for label, value in rows
    )
    html_body = (
        '<div style="font-family: Arial, Helvetica, sans-serif; line-height: 1.5">'
        f"<p><strong>{html.escape(greeting)}</strong></p>"
        '<table cellpadding="6" cellspacing="0" style="border-collapse: collapse; margin-top: 8px">'
        f"{table_rows}</table>"
        f'<p style="margin-top: 16px">Thank you,<br/>{html.escape(clinic_name)}</p>'
        "</div>"
    )

    message = MIMEMultipart("alternative")
    message["Subject"] = f"Appointment confirmed - {clinic_name}"
    message["From"] = get_from_address()
    message["To"] = details.to_email
    message.attach(MIMEText(text_body, "plain"))
    message.attach(MIMEText(html_body, "html"))
    return message


def send_appointment_confirmed_email(details: AppointmentEmailDetails) -> None:
    message = build_confirmation_message(details)
    with open_smtp_connection() as server:
        server.sendmail(message["From"], [details.to_email], message.as_string())
    logger.info("Sent appointment confirmation to %s", details.to_email)


def _send_quietly(details: AppointmentEmailDetails) -> None:
    try:
        send_appointment_confirmed_email(details)
    except (OSError, smtplib.SMTPException, RuntimeError):
        logger.exception("Failed to send appointment confirmation email")


def queue_confirmation_email(background_tasks: BackgroundTasks, appointment: Appointment) -> None:
    """Send the confirmation after the response goes out; failures are only logged."""
    to_email = appointment.display_email
    if not to_email or to_email == "N/A":
        return

    details = AppointmentEmailDetails(
        to_email=to_email,
        patient_name=appointment.display_name,
        patient_phone=appointment.patient.phone if appointment.patient else appointment.patient_phone,
        service=appointment.service,
        appointment_date=appointment.date,
        doctor_name=appointment.doctor.name if appointment.doctor else None,
        notes=appointment.notes,
    )
    background_tasks.add_task(_send_quietly, details)
