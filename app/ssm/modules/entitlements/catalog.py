"""
Static registry of purchasable product modules and the plans that bundle them.

The catalog is immutable at runtime: module state per organization lives in
`organization_modules`, never here.
"""
from __future__ import annotations

from dataclasses import dataclass, field

CATEGORY_CORE = "core"
CATEGORY_STANDALONE = "standalone"
CATEGORY_PREMIUM = "premium"

LOCALES = ("ro", "en", "bg", "hu", "de", "pl")


@dataclass(frozen=True)
class ModuleDefinition:
    key: str
    names: dict[str, str]
    category: str
    sort_order: int
    is_base: bool = False
    depends_on: tuple[str, ...] = ()
    description: str = ""
    icon: str = ""
    features: tuple[str, ...] = field(default_factory=tuple)


MODULE_CATALOG: dict[str, ModuleDefinition] = {
    m.key: m
    for m in (
        ModuleDefinition(
            key="ssm-core",
            names={
                "ro": "SSM de bază",
                "en": "OHS Core",
                "bg": "Основен ЗБУТ",
                "hu": "Munkavédelem alap",
                "de": "Arbeitsschutz Basis",
                "pl": "BHP podstawowe",
            },
            category=CATEGORY_CORE,
            sort_order=1,
            is_base=True,
            description="Angajați, organizație, evaluări de risc",
            icon="Shield",
        ),
        ModuleDefinition(
            key="legislatie",
            names={
                "ro": "Legislație",
                "en": "Legislation",
                "bg": "Законодателство",
                "hu": "Jogszabályok",
                "de": "Gesetzgebung",
                "pl": "Legislacja",
            },
            category=CATEGORY_CORE,
            sort_order=2,
            is_base=True,
            depends_on=("ssm-core",),
            description="Monitorizare legislație SSM/PSI",
            icon="Scale",
        ),
        ModuleDefinition(
            key="documente",
            names={
                "ro": "Documente",
                "en": "Documents",
                "bg": "Документи",
                "hu": "Dokumentumok",
                "de": "Dokumente",
                "pl": "Dokumenty",
            },
            category=CATEGORY_CORE,
            sort_order=3,
            is_base=True,
            description="Registre și documente obligatorii",
            icon="FileText",
        ),
        ModuleDefinition(
            key="alerte",
            names={
                "ro": "Alerte expirări",
                "en": "Expiry alerts",
                "bg": "Сигнали за изтичане",
                "hu": "Lejárati riasztások",
                "de": "Ablaufwarnungen",
                "pl": "Alerty wygaśnięć",
            },
            category=CATEGORY_CORE,
            sort_order=4,
            depends_on=("ssm-core",),
            description="Notificări email, SMS și push pentru termene",
            icon="Bell",
            features=("email", "sms", "push"),
        ),
        ModuleDefinition(
            key="near_miss",
            names={
                "ro": "Incidente și evenimente evitate",
                "en": "Incidents & near misses",
                "bg": "Инциденти",
                "hu": "Események és majdnem-balesetek",
                "de": "Vorfälle und Beinaheunfälle",
                "pl": "Zdarzenia potencjalnie wypadkowe",
            },
            category=CATEGORY_CORE,
            sort_order=5,
            depends_on=("ssm-core",),
            icon="AlertTriangle",
        ),
        ModuleDefinition(
            key="psi",
            names={
                "ro": "PSI - Prevenirea incendiilor",
                "en": "Fire prevention",
                "bg": "Пожарна безопасност",
                "hu": "Tűzvédelem",
                "de": "Brandschutz",
                "pl": "Ochrona przeciwpożarowa",
            },
            category=CATEGORY_STANDALONE,
            sort_order=10,
            depends_on=("ssm-core",),
            description="Stingătoare, hidranți, verificări periodice",
            icon="Flame",
        ),
        ModuleDefinition(
            key="echipamente",
            names={
                "ro": "Echipamente de lucru",
                "en": "Work equipment",
                "bg": "Работно оборудване",
                "hu": "Munkaeszközök",
                "de": "Arbeitsmittel",
                "pl": "Sprzęt roboczy",
            },
            category=CATEGORY_STANDALONE,
            sort_order=11,
            depends_on=("ssm-core",),
            icon="Wrench",
        ),
        ModuleDefinition(
            key="medicina-muncii",
            names={
                "ro": "Medicina muncii",
                "en": "Occupational health",
                "bg": "Трудова медицина",
                "hu": "Foglalkozás-egészségügy",
                "de": "Arbeitsmedizin",
                "pl": "Medycyna pracy",
            },
            category=CATEGORY_STANDALONE,
            sort_order=12,
            depends_on=("ssm-core",),
            description="Fișe de aptitudine și examene periodice",
            icon="Stethoscope",
        ),
        ModuleDefinition(
            key="instruire",
            names={
                "ro": "Instruire SSM",
                "en": "Safety training",
                "bg": "Обучения",
                "hu": "Oktatások",
                "de": "Unterweisungen",
                "pl": "Szkolenia BHP",
            },
            category=CATEGORY_STANDALONE,
            sort_order=13,
            depends_on=("ssm-core",),
            icon="GraduationCap",
        ),
        ModuleDefinition(
            key="reports",
            names={
                "ro": "Rapoarte avansate",
                "en": "Advanced reports",
                "bg": "Разширени отчети",
                "hu": "Haladó jelentések",
                "de": "Erweiterte Berichte",
                "pl": "Raporty zaawansowane",
            },
            category=CATEGORY_PREMIUM,
            sort_order=20,
            depends_on=("ssm-core", "documente"),
            icon="BarChart",
        ),
        ModuleDefinition(
            key="gdpr",
            names={
                "ro": "GDPR",
                "en": "GDPR",
                "bg": "GDPR",
                "hu": "GDPR",
                "de": "DSGVO",
                "pl": "RODO",
            },
            category=CATEGORY_PREMIUM,
            sort_order=21,
            depends_on=("ssm-core", "documente"),
            description="Registru de prelucrări, DPIA, cereri ale persoanelor vizate",
            icon="Lock",
        ),
        ModuleDefinition(
            key="nis2",
            names={
                "ro": "NIS2 Securitate cibernetică",
                "en": "NIS2 Cybersecurity",
                "bg": "NIS2 Киберсигурност",
                "hu": "NIS2 Kiberbiztonság",
                "de": "NIS2 Cybersicherheit",
                "pl": "NIS2 Cyberbezpieczeństwo",
            },
            category=CATEGORY_PREMIUM,
            sort_order=22,
            depends_on=("ssm-core", "gdpr"),
            icon="ShieldCheck",
        ),
    )
}

BASE_MODULE_KEYS: frozenset[str] = frozenset(k for k, m in MODULE_CATALOG.items() if m.is_base)
PAID_MODULE_KEYS: frozenset[str] = frozenset(k for k, m in MODULE_CATALOG.items() if not m.is_base)

PLAN_STARTER = "starter"
PLAN_PROFESSIONAL = "professional"
PLAN_ENTERPRISE = "enterprise"

_STARTER = frozenset({"alerte", "psi", "medicina-muncii", "instruire"})
_PROFESSIONAL = _STARTER | {"echipamente", "near_miss", "reports"}

PLAN_MODULES: dict[str, frozenset[str]] = {
    PLAN_STARTER: _STARTER,
    PLAN_PROFESSIONAL: _PROFESSIONAL,
    PLAN_ENTERPRISE: PAID_MODULE_KEYS,
}


def get_module(key: str) -> ModuleDefinition | None:
    return MODULE_CATALOG.get(key)


def modules_for_plan(plan_id: str | None) -> frozenset[str]:
    """Paid module keys bundled by a plan; unknown or empty plan -> empty set."""
    if not plan_id:
        return frozenset()
    return PLAN_MODULES.get(plan_id, frozenset())


def missing_dependencies(key: str, available: set[str] | frozenset[str]) -> list[str]:
    """Dependencies of `key` that are neither base modules nor in `available`."""
    m = get_module(key)
    if m is None:
        return []
    return [d for d in m.depends_on if d not in BASE_MODULE_KEYS and d not in available]


def display_name(key: str, locale: str = "ro") -> str:
    m = get_module(key)
    if m is None:
        return key
    return m.names.get(locale) or m.names.get("ro") or key


def sorted_modules() -> list[ModuleDefinition]:
    return sorted(MODULE_CATALOG.values(), key=lambda m: (m.sort_order, m.key))
