"""
Central constants for the MURRS application.
"""
from __future__ import annotations

ROLES = ("student", "member", "lecturer", "staff", "project_coordinator", "hod", "librarian")

STUDENT_ROLES = frozenset({"student", "member"})
STAFF_ROLES = frozenset({"lecturer", "staff", "project_coordinator", "hod"})
REVIEWER_ROLES = frozenset({"lecturer", "project_coordinator", "hod", "librarian"})

ROLE_LABELS = {
    "student": "Student",
    "member": "Student",
    "lecturer": "Lecturer",
    "staff": "Staff",
    "project_coordinator": "Project Coordinator",
    "hod": "HOD",
    "librarian": "Librarian",
    "guest": "Guest",
}

SCHOOLS = (
    "Business School",
    "School of Public Service and Governance",
    "Faculty of Law",
    "School of Technology and Social Sciences (SOTSS)",
)

DISCIPLINES_BY_SCHOOL = {
    "Business School": (
        "Business Administration",
        "Accounting and Finance",
    ),
    "School of Public Service and Governance": (
        "Public Service and Governance",
    ),
    "Faculty of Law": (
        "Law",
    ),
    "School of Technology and Social Sciences (SOTSS)": (
        "Computer Science and Information Systems",
        "Information Systems and Innovation",
        "Economics and Hospitality Studies",
        "Liberal Arts and Communication Studies",
    ),
}

ALL_DISCIPLINES = tuple(d for school in SCHOOLS for d in DISCIPLINES_BY_SCHOOL[school])

DEPARTMENTS_BY_SCHOOL = {
    "Business School": (
        "Accounting",
        "Finance",
        "Marketing",
        "Human Resource Management",
        "Operations and Supply Chain",
    ),
    "School of Public Service and Governance": (
        "Public Administration",
        "Governance and Leadership",
        "Policy and Strategy",
    ),
    "Faculty of Law": (
        "Public Law",
        "Private Law",
        "International Law",
    ),
    "School of Technology and Social Sciences (SOTSS)": (
        "Computer Science",
        "Information Technology",
        "Information Systems",
        "Economics",
        "Social Sciences",
    ),
}

# Non-academic units for staff without a school.
DEFAULT_DEPARTMENTS = ("Administration", "Registry", "ICT", "Library Services")

DOCUMENT_TYPES = ("thesis", "dissertation", "research-paper", "conference-paper")
LICENSES = ("cc-by", "cc-by-sa", "cc-by-nc", "all-rights-reserved")

ALLOWED_UPLOAD_EXTENSIONS = frozenset({".pdf", ".docx", ".tex"})

DEFAULT_UNIVERSITY = "GIMPA"
