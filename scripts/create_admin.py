"""
Bootstrap an admin account for the counter endpoints.

Usage:
    python scripts/create_admin.py <username> [password]

The password is prompted for when not given on the command line.
"""
import asyncio
import getpass
import os
import sys

sys.path.append(os.path.join(os.getcwd(), 'backend'))

from counter_queue.core.security import get_password_hash
from counter_queue.db.database import AsyncSessionLocal
from counter_queue.models import Admin
from counter_queue.repositories.admin import AdminRepository

async def create_admin(username: str, password: str):
    async with AsyncSessionLocal() as session:
        repo = AdminRepository(session)
        if await repo.get_by_username(username):
            print(f"Admin '{username}' already exists.")
            return False
        await repo.create(Admin(username=username, hashed_password=get_password_hash(password)))
        await session.commit()
        print(f"Admin '{username}' created.")
        return True

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    username = sys.argv[1]
    password = sys.argv[2] if len(sys.argv) > 2 else getpass.getpass("Password: ")
    if not password:
        print("Password must not be empty.")
        sys.exit(1)
    created = asyncio.run(create_admin(username, password))
    sys.exit(0 if created else 1)
