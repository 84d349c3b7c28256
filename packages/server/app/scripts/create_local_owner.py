"""
Script to create a local user who owns an organization, for local testing.
"""

import asyncio
import argparse
import os
import sys

from sqlmodel import select

# Add the project root to sys.path to allow importing from 'app'
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from app.core.auth import hash_password
from app.core.database import get_session_context
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.profile import Profile
from app.models.user import User


async def create_owner(email: str, password: str, org_name: str, org_slug: str):
    email = email.lower()
    async with get_session_context() as session:
        # 1. Ensure the organization exists
        result = await session.execute(select(Organization).where(Organization.slug == org_slug))
        org = result.scalar_one_or_none()

        if not org:
            org = Organization(name=org_name, slug=org_slug, settings={})
            session.add(org)
            print(f"Created organization '{org_slug}'.")

        # 2. Check if user already exists
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if not user:
            user = User(email=email, password_hash=hash_password(password))
            session.add(user)
            print(f"Created user: {email}")
        else:
            print(f"User {email} already exists.")

        await session.flush()  # Get IDs

        profile = await session.get(Profile, user.id)
        if not profile:
            session.add(
                Profile(
                    id=user.id,
                    full_name=email.split("@")[0],
                    current_organization_id=org.id,
                )
            )

        # 3. Ensure owner membership exists
        result = await session.execute(
            select(Membership).where(
                Membership.user_id == user.id, Membership.organization_id == org.id
            )
        )
        membership = result.scalar_one_or_none()

        if not membership:
            session.add(Membership(user_id=user.id, organization_id=org.id, role="owner"))
            print(f"Added {email} as owner of '{org_slug}'.")
        elif membership.role != "owner":
            membership.role = "owner"
            session.add(membership)
            print(f"Promoted {email} to owner of '{org_slug}'.")

    print("Done.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local organization owner.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--org-name", default="Demo Company", help="Organization display name")
    parser.add_argument("--org-slug", default="demo", help="Organization slug")

    args = parser.parse_args()

    asyncio.run(create_owner(args.email, args.password, args.org_name, args.org_slug))
