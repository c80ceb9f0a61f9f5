# roomreport/services/seed.py

import argparse
import logging

from sqlalchemy.orm import Session

from roomreport.core.config import settings
from roomreport.models.auth import Role, User
from roomreport.models.room import Room
from roomreport.shared.db.database import Session_Local, create_db_and_tables

logger = logging.getLogger(__name__)

DEFAULT_ADMIN = {
    "username": "admin",
    "email": "admin@example.com",
    "password": "password",
    "role": Role.SUPERVISOR.value,
}

TEST_USER = {
    "username": "testuser",
    "email": "test@example.com",
    "password": "123456",
    "role": Role.USER.value,
}

SAMPLE_ROOMS = ["101", "102", "201", "202", "301"]


def create_user(db: Session, username: str, email: str, password: str, role: str) -> User:
    user = User(username=username, email=email, role=role, is_active=True)
    user.set_password(password)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_default_admin(db: Session) -> User | None:
    if db.query(User).count() > 0:
        return None

    admin = create_user(db, **DEFAULT_ADMIN)
    logger.info("Default admin user created successfully")
    logger.info(f"Username: {DEFAULT_ADMIN['username']}")
    logger.info(f"Password: {DEFAULT_ADMIN['password']}")
    return admin


def create_sample_rooms(db: Session) -> list[Room]:
    if db.query(Room).count() > 0:
        return []

    rooms = [Room(room_number=number) for number in SAMPLE_ROOMS]
    db.add_all(rooms)
    db.commit()
    logger.info("Sample rooms created")
    return rooms


def create_test_user(db: Session) -> User | None:
    existing = db.query(User).filter(User.username == TEST_USER["username"]).first()
    if existing:
        logger.info(f"User '{TEST_USER['username']}' already exists")
        return None

    user = create_user(db, **TEST_USER)
    logger.info("Test user created successfully!")
    logger.info(f"Username: {TEST_USER['username']}")
    logger.info(f"Password: {TEST_USER['password']}")
    return user


def seed_defaults(db: Session):
    create_default_admin(db)
    create_sample_rooms(db)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create the Room Report tables and seed default data.")
    parser.add_argument("--test-user", action="store_true",
                        help=f"also create '{TEST_USER['username']}' with role '{TEST_USER['role']}'")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL)
    create_db_and_tables()

    db = Session_Local()
    try:
        seed_defaults(db)
        if args.test_user:
            create_test_user(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
