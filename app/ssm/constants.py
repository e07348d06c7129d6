"""
Central constants for the SSM platform.
"""
from __future__ import annotations

# (key, display name) for every permission the API checks. Seeded by scripts/init_db.py.
PERMISSIONS: tuple[tuple[str, str], ...] = (
    ("employees.view", "Angajați: vizualizare"),
    ("employees.create", "Angajați: adăugare"),
    ("employees.edit", "Angajați: editare"),
    ("employees.delete", "Angajați: ștergere"),
    ("medical.view", "Medicina muncii: vizualizare"),
    ("medical.create", "Medicina muncii: adăugare"),
    ("medical.delete", "Medicina muncii: ștergere"),
    ("equipment.view", "Echipamente PSI: vizualizare"),
    ("equipment.create", "Echipamente PSI: adăugare"),
    ("equipment.delete", "Echipamente PSI: ștergere"),
    ("trainings.view", "Instruiri: vizualizare"),
    ("trainings.create", "Instruiri: adăugare"),
    ("trainings.delete", "Instruiri: ștergere"),
    ("alerts.view", "Alerte: vizualizare"),
    ("alerts.resolve", "Alerte: rezolvare"),
    ("modules.view", "Module: vizualizare"),
    ("modules.manage", "Module: trial / anulare"),
    ("billing.view", "Abonament: vizualizare"),
)

# Role key -> permission keys. "admin" gets everything.
ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "admin": tuple(k for k, _ in PERMISSIONS),
    "consultant": tuple(
        k for k, _ in PERMISSIONS if not k.startswith(("modules.manage", "billing.")) and not k.endswith(".delete")
    ),
    "angajat": ("trainings.view", "medical.view", "alerts.view"),
}

ROLE_NAMES: dict[str, str] = {
    "admin": "Administrator organizație",
    "consultant": "Consultant SSM",
    "angajat": "Angajat",
}
