"""Clinic branding profiles used on emails, receipts and reports."""

from dataclasses import dataclass, field

from dentalcare.core import config


@dataclass(frozen=True)
class ClinicProfile:
    key: str
    name: str
    city: str
    timezone: str
    tagline: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    doctor_name: str = ""
    doctor_registration: str = ""
    hours: list[str] = field(default_factory=list)


CLINICS: dict[str, ClinicProfile] = {
    "centro": ClinicProfile(
        key="centro",
        name="Centro Dental",
        city="Geraldton",
        timezone="Australia/Perth",
        tagline="Geraldton's trusted family dentist",
        phone="(08) 9964 2861",
        email="info@centrodental.com.au",
        address="86 Sanford Street, Geraldton WA 6530",
        doctor_name="Dr Chandy Koruthu, BDSc, WA",
        hours=[
            "Mon - Fri: 9:00 AM - 6:00 PM",
            "Saturday: 9:00 AM - 2:00 PM",
            "Sunday: Closed",
        ],
    ),
    "tooth": ClinicProfile(
        key="tooth",
        name="Tooth Oral Care Centre",
        city="Bangalore",
        timezone="Asia/Kolkata",
        tagline="Compassionate dental care in Bangalore",
        phone="74114 67924",
        email="info@toothoralcare.com",
        address=(
            "No. 40, Hutchins Road, 6th Cross, (Behind Mini Bazaar) Cooke Town, "
            "St. Thomas Town Post, Bangalore - 560 084"
        ),
        doctor_name="Dr. Jawahar R.S.",
        doctor_registration="Registration No.: 8563-A",
        hours=["Everyday: 9:00 AM - 7:00 PM"],
    ),
}


def get_active_clinic() -> ClinicProfile:
    return CLINICS.get(config.CLINIC_KEY.strip().lower(), CLINICS["centro"])
