import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ssm.constants import PERMISSIONS, ROLE_NAMES, ROLE_PERMISSIONS
from app.ssm.models import Organization, Permission, Role, User
from scripts._db_utils import script_session


def seed_roles(s) -> dict[str, Role]:
    """
    Upsert every permission and role, then make each role's grants match ROLE_PERMISSIONS.
    Extra grants added by hand are left alone.
    """
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    roles: dict[str, Role] = {}
    for role_key, perm_keys in ROLE_PERMISSIONS.items():
        role = s.query(Role).filter(Role.key == role_key).one_or_none()
        if not role:
            role = Role(key=role_key, name=ROLE_NAMES.get(role_key, role_key))
            s.add(role)
        for pk in perm_keys:
            if perms[pk] not in role.permissions:
                role.permissions.append(perms[pk])
        roles[role_key] = role
    return roles


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles, a default organization and its admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@s-s-m.ro").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    org_name = (os.environ.get("DEFAULT_ORG_NAME") or "Organizație implicită").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///ssm.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        roles = seed_roles(s)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            org = s.query(Organization).filter(Organization.name == org_name).one_or_none()
            if not org:
                org = Organization(name=org_name, contact_email=admin_email)
                s.add(org)
                s.flush()
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                organization_id=org.id,
                is_active=True,
            )
            s.add(user)
        if roles["admin"] not in user.roles:
            user.roles.append(roles["admin"])

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
