"""Appointment reports and payment receipts (CSV and PDF)."""

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from dentalcare.models.appointment import Appointment, PAYMENT_PAID, PAYMENT_PENDING

HEADER_BLUE = colors.Color(30 / 255, 64 / 255, 175 / 255)
ROW_GREY = colors.Color(245 / 255, 245 / 255, 247 / 255)


@dataclass
class ReportRow:
    date: datetime
    time: str
    name: str
    phone: str
    email: str
    service: str
    doctor: str | None
    payment_amount: Decimal | None
    payment_status: str | None


@dataclass
class ReportSummary:
    total_amount: Decimal
    paid_count: int
    pending_count: int


@dataclass
class ReceiptDetails:
    clinic_name: str
    patient_name: str
    service: str
    amount: Decimal
    appointment_date: datetime
    payment_date: datetime
    issued_by: str
    clinic_phone: str = ""
    clinic_email: str = ""


def build_report_rows(appointments: list[Appointment]) -> list[ReportRow]:
    return [
        ReportRow(
            date=appointment.date,
            time=appointment.date.strftime("%H:%M"),
            name=appointment.display_name,
            phone=appointment.display_phone,
            email=appointment.display_email,
            service=appointment.service,
            doctor=appointment.doctor.name if appointment.doctor else None,
            payment_amount=Decimal(appointment.payment_amount) if appointment.payment_amount is not None else None,
            payment_status=appointment.payment_status,
        )
        for appointment in appointments
    ]


def summarize(rows: list[ReportRow]) -> ReportSummary:
    total = sum((row.payment_amount or Decimal("0") for row in rows), Decimal("0"))
    paid = sum(1 for row in rows if row.payment_status == PAYMENT_PAID)
    pending = sum(1 for row in rows if row.payment_status in (PAYMENT_PENDING, None, ""))
    return ReportSummary(total_amount=total, paid_count=paid, pending_count=pending)


def format_money(amount: Decimal | None) -> str:
    return f"${(amount or Decimal('0')):.2f}"


def format_report_date(value: datetime | date) -> str:
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def report_filename(report_type: str, start: date, end: date) -> str:
    return f"{report_type}_report_{start.isoformat()}_{end.isoformat()}"


def _headers(include_doctor: bool) -> list[str]:
    headers = ["Date", "Time", "Name", "Phone", "Email", "Service", "Payment Amount", "Payment Status"]
    if include_doctor:
        headers.insert(3, "Doctor")
    return headers


def _cells(row: ReportRow, include_doctor: bool) -> list[str]:
    cells = [
        format_report_date(row.date),
        row.time,
        row.name,
        row.phone,
        row.email,
        row.service,
        format_money(row.payment_amount),
        row.payment_status or PAYMENT_PENDING,
    ]
    if include_doctor:
        cells.insert(3, row.doctor or "N/A")
    return cells


def generate_csv_report(rows: list[ReportRow], include_doctor: bool = True) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    headers = _headers(include_doctor)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(_cells(row, include_doctor))

    summary = summarize(rows)
    writer.writerow([])
    summary_row = [""] * len(headers)
    summary_row[0] = "SUMMARY"
    summary_row[-2] = format_money(summary.total_amount)
    summary_row[-1] = f"Paid: {summary.paid_count}, Pending: {summary.pending_count}"
    writer.writerow(summary_row)
    return output.getvalue()


def generate_pdf_report(rows: list[ReportRow], title: str = "Appointment Report", include_doctor: bool = True) -> bytes:
    buffer = io.BytesIO()
    document = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=14 * mm,
        rightMargin=14 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=title,
    )
    styles = getSampleStyleSheet()
    story = [Paragraph(title, styles["Title"])]

    if rows:
        period = f"Period: {format_report_date(rows[0].date)} - {format_report_date(rows[-1].date)}"
        story.append(Paragraph(period, styles["Normal"]))
    story.append(Spacer(1, 6 * mm))

    headers = _headers(include_doctor)
    headers[-2:] = ["Amount", "Status"]
    table = Table([headers] + [_cells(row, include_doctor) for row in rows], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BLUE),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, ROW_GREY]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    story.append(table)

    summary = summarize(rows)
    story.append(Spacer(1, 6 * mm))
    story.append(Paragraph(f"Total Amount: {format_money(summary.total_amount)}", styles["Normal"]))
    story.append(Paragraph(f"Paid: {summary.paid_count} | Pending: {summary.pending_count}", styles["Normal"]))

    document.build(story)
    return buffer.getvalue()


def build_receipt_pdf(details: ReceiptDetails) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    _, page_height = A4

    def y(offset_mm: float) -> float:
        return page_height - offset_mm * mm

    pdf.setTitle("Payment Receipt")
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(14 * mm, y(18), details.clinic_name)
    pdf.setFont("Helvetica", 10)
    if details.clinic_phone:
        pdf.drawString(14 * mm, y(24), f"Phone: {details.clinic_phone}")
    if details.clinic_email:
        pdf.drawString(14 * mm, y(30), f"Email: {details.clinic_email}")

    pdf.setFont("Helvetica-Bold", 14)
    pdf.drawRightString(196 * mm, y(18), "Payment Receipt")
    pdf.setFont("Helvetica", 10)
    pdf.drawRightString(196 * mm, y(24), f"Receipt Date: {format_report_date(details.payment_date)}")
    appointment_label = details.appointment_date.strftime("%I:%M %p").lstrip("0")
    pdf.drawRightString(
        196 * mm,
        y(30),
        f"Appointment: {format_report_date(details.appointment_date)} {appointment_label}",
    )

    pdf.setLineWidth(0.4)
    pdf.line(14 * mm, y(36), 196 * mm, y(36))

    body = 44
    for offset, label, value in ((0, "Patient", details.patient_name), (18, "Service", details.service)):
        pdf.setFont("Helvetica-Bold", 12)
        pdf.drawString(14 * mm, y(body + offset), label)
        pdf.setFont("Helvetica", 10)
        pdf.drawString(14 * mm, y(body + offset + 6), value)

    pdf.setFont("Helvetica-Bold", 12)
    pdf.drawString(14 * mm, y(body + 36), "Amount")
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(14 * mm, y(body + 46), format_money(details.amount))

    pdf.setFont("Helvetica", 10)
    pdf.drawString(14 * mm, y(body + 60), f"Issued By: {details.issued_by}")

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
