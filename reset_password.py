#!/usr/bin/env python3
"""
Platform user management: reset a password or create the first super admin.
Run from the project root:
    python reset_password.py
"""
from sqlalchemy.orm import Session

from cafm.database import SessionLocal, engine, Base
from cafm.enums import UserType, UserStatus
from cafm.models import User
from cafm.repositories.users import UserRepository
from cafm.services.users import ensure_strong_password
from cafm.utils.security import get_password_hash


def list_super_admins(db: Session):
    """List all platform administrators"""
    users = db.query(User).filter(User.user_type == UserType.SUPER_ADMIN, User.deleted_at.is_(None)).all()
    if not users:
        print("\nNo super admins found in database.")
        return []

    print("\n=== Super Admins ===")
    for user in users:
        print(f"  ID: {user.id}, Email: {user.email}, Status: {user.status.value}, Active: {user.is_active}")
    return users


def reset_password(db: Session, email: str, new_password: str) -> bool:
    """Reset password for an existing user and unlock the account"""
    user = UserRepository(db).find_by_email(email)
    if not user:
        print(f"\nError: User with email '{email}' not found.")
        return False

    ensure_strong_password(new_password, user.email, user.first_name, user.last_name)
    user.password_hash = get_password_hash(new_password)
    user.is_active = True
    user.is_locked = False
    user.failed_login_attempts = 0
    if user.status == UserStatus.LOCKED:
        user.status = UserStatus.ACTIVE
    db.commit()
    print(f"\nSuccess! Password reset for user: {email}")
    return True


def create_super_admin(db: Session, email: str, password: str, first_name: str = "Platform",
                       last_name: str = "Admin") -> bool:
    """Create a super admin outside any company"""
    if UserRepository(db).exists_by_email(email):
        print(f"\nUser with email '{email}' already exists. Use reset option instead.")
        return False

    ensure_strong_password(password, email, first_name, last_name)
    user = User(
        email=email.strip().lower(),
        first_name=first_name,
        last_name=last_name,
        password_hash=get_password_hash(password),
        user_type=UserType.SUPER_ADMIN,
        status=UserStatus.ACTIVE,
        is_active=True,
        is_locked=False,
        email_verified=True,
    )
    db.add(user)
    db.commit()
    print(f"\nSuccess! Created super admin: {email}")
    return True


def main():
    print("\n=== CAFM User Management ===")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        list_super_admins(db)

        print("\nOptions:")
        print("  1. Reset password for existing user")
        print("  2. Create new super admin")
        print("  3. Exit")

        choice = input("\nEnter choice (1/2/3): ").strip()

        if choice == "1":
            email = input("Enter user email: ").strip()
            new_password = input("Enter new password: ").strip()
            if email and new_password:
                reset_password(db, email, new_password)
            else:
                print("Email and password are required.")

        if choice == "2":
            email = input("Enter super admin email: ").strip()
            password = input("Enter password: ").strip()
            if email and password:
                create_super_admin(db, email, password)
            else:
                print("Email and password are required.")

        if choice == "3":
            print("Goodbye!")
    finally:
        db.close()


if __name__ == "__main__":
    main()
