"""
Central constants for the agency operations application.
"""
from __future__ import annotations

# User roles
ROLE_USER = "user"
ROLE_MANAGER = "manager"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"
VALID_ROLES = (ROLE_USER, ROLE_MANAGER, ROLE_ADMIN, ROLE_SUPER_ADMIN)

# Roles that see every work report rather than only their own
REPORT_ADMIN_ROLES = frozenset({ROLE_ADMIN, ROLE_SUPER_ADMIN})

PAGE_ACTIONS = ("view", "edit", "delete")

# (page_key, display_name, path, description)
DEFAULT_PAGES: tuple[tuple[str, str, str, str], ...] = (
    ("dashboard", "Dashboard", "/", "Main dashboard overview"),
    ("campaigns", "Campaign Management", "/campaigns", "Manage advertising campaigns"),
    ("campaign_details", "Campaign Details", "/campaigns/:id", "View and edit campaign details"),
    ("clients", "Client Management", "/clients", "Manage client accounts"),
    ("ad_accounts", "Ad Accounts", "/ad-accounts", "Manage advertising accounts"),
    ("salaries", "Salary Management", "/salaries", "Manage employee salaries"),
    ("work_reports", "Work Reports", "/work-reports", "Submit and review work reports"),
    ("finance", "Finance", "/finance", "Projects, payments, expenses and finance dashboard"),
    ("admin", "Admin Panel", "/admin", "System administration"),
)

# role -> page_key -> (can_view, can_edit, can_delete); unlisted pages are seeded all False.
DEFAULT_ROLE_PERMISSIONS: dict[str, dict[str, tuple[bool, bool, bool]]] = {
    ROLE_USER: {
        "dashboard": (True, False, False),
        "work_reports": (True, True, False),
    },
    ROLE_MANAGER: {
        "dashboard": (True, False, False),
        "campaigns": (True, False, False),
        "campaign_details": (True, False, False),
        "clients": (True, False, False),
        "ad_accounts": (True, False, False),
        "work_reports": (True, True, False),
        "finance": (True, False, False),
    },
    ROLE_ADMIN: {
        "dashboard": (True, True, False),
        "campaigns": (True, True, True),
        "campaign_details": (True, True, False),
        "clients": (True, True, True),
        "ad_accounts": (True, True, True),
        "salaries": (True, True, False),
        "work_reports": (True, True, True),
        "finance": (True, True, True),
        "admin": (False, False, False),
    },
    ROLE_SUPER_ADMIN: {key: (True, True, True) for key, _, _, _ in DEFAULT_PAGES},
}

# Finance settings
EXCHANGE_RATE_KEY = "usd_to_bdt_rate"
DEFAULT_EXCHANGE_RATE = 110.0

SESSION_TTL_HOURS = 24
