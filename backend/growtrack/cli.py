"""Management CLI.

Usage:
    python -m growtrack.cli create-facility "<name>" <admin-email> "<admin name>"
    python -m growtrack.cli issue-token <email>      # Print an access token
    python -m growtrack.cli list-facilities
"""

import sys

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from growtrack.auth.jwt import create_access_token
from growtrack.config import settings
from growtrack.models.facility import Facility
from growtrack.models.user import User, UserRole


def get_engine():
    return create_engine(settings.database_url_sync)


def create_facility(name: str, email: str, full_name: str):
    with Session(get_engine()) as session:
        facility = Facility(name=name)
        session.add(facility)
        session.flush()
        session.add(User(
            email=email,
            full_name=full_name,
            role=UserRole.ADMIN,
            facility_id=facility.id,
        ))
        session.commit()
        print(f"  Facility {facility.name} ({facility.id}) with admin {email}")


def issue_token(email: str):
    with Session(get_engine()) as session:
        user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if user is None:
            print(f"  No user with email {email}")
            sys.exit(1)
        print(create_access_token(user.id, user.role.value, user.facility_id))


def list_facilities():
    with Session(get_engine()) as session:
        facilities = session.execute(select(Facility).order_by(Facility.name)).scalars().all()
        for f in facilities:
            print(f"  {f.name}  {f.id}  {f.license_number or ''}")
        print(f"\n{len(facilities)} facility(ies)")


def main():
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "create-facility" and len(sys.argv) == 5:
        create_facility(sys.argv[2], sys.argv[3], sys.argv[4])
    elif cmd == "issue-token" and len(sys.argv) == 3:
        issue_token(sys.argv[2])
    elif cmd == "list-facilities":
        list_facilities()
    else:
        print("Usage: python -m growtrack.cli [create-facility|issue-token|list-facilities]")


if __name__ == "__main__":
    main()
