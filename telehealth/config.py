"""Configuration for the consultation scheduling service.

Business rules are centralized here - modify as needed without touching code.
Deployment values (URLs, mail API, database) come from the environment.
"""
import os

from dotenv import load_dotenv

load_dotenv()

# Consultation options offered by the scheduling form
ALLOWED_DURATIONS = (15, 30, 45, 60, 90)
DEFAULT_DURATION_MINUTES = 30

CONSULTATION_TYPES = {
    "general": "General Consultation",
    "follow-up": "Follow-up",
    "specialist": "Specialist Consultation",
    "emergency": "Emergency Consultation",
    "therapy": "Therapy Session",
}

# Meeting link lifecycle
LINK_VALIDITY_HOURS = 24
READY_WINDOW_MINUTES = 15
PENDING_WINDOW_HOURS = 24

# Patients may enter from an hour before the start until 15 minutes after it
JOIN_OPENS_MINUTES_BEFORE = 60
JOIN_CLOSES_MINUTES_AFTER = 15

OPERATING_HOURS = {
    "start_hour": 9,
    "end_hour": 18,
    "slot_granularity_minutes": 30,
    "timezone": os.getenv("TELEHEALTH_TIMEZONE", "UTC"),
}

# (hours before scheduled time, label)
REMINDER_OFFSETS = [
    (24, "24-hour reminder"),
    (2, "2-hour reminder"),
    (0.25, "15-minute reminder"),
]

# Join links
JOIN_BASE_URL = os.getenv("TELEHEALTH_BASE_URL", "http://localhost:3000")
JOIN_PATH = "/join"
SHORT_LINK_PATH = "/join"
CANCEL_PATH = "/cancel"
SHORT_CODE_LENGTH = 8

# Mail
MAIL_API_URL = os.getenv("TELEHEALTH_MAIL_API_URL", "http://localhost:5000/api/email")
FROM_EMAIL = os.getenv("TELEHEALTH_FROM_EMAIL", "noreply@ehreezy.com")
FROM_NAME = os.getenv("TELEHEALTH_FROM_NAME", "EHR-Eezy Telehealth")
SUPPORT_EMAIL = "support@ehreezy.com"
COMPANY_NAME = "EHR-Eezy"
DEFAULT_DOCTOR_NAME = "Dr. Smith"

# Invitation dispatch
DISPATCH_TIMEOUT_SECONDS = float(os.getenv("TELEHEALTH_DISPATCH_TIMEOUT", "15"))
DISPATCH_MAX_ATTEMPTS = 2  # initial attempt + one retry
DISPATCH_WORKERS = 4

# Persistence and logging
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///telehealth.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
