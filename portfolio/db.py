"""
Database abstraction for Postgres and an in-memory test implementation.

The store holds four collections: users, sessions, projects and messages.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker


class DbClient(Protocol):
    """Interface for database access."""

    # Users
    def create_user(
        self, username: str, password_hash: str, role: str = "admin"
    ) -> "UserRecord":
        ...

    def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...

    def get_user_by_username(self, username: str) -> Optional["UserRecord"]:
        ...

    def record_login(
        self, user_id: str, *, session_id: str, ip_address: str, when: float
    ) -> None:
        ...

    def set_active_session(self, user_id: str, session_id: Optional[str]) -> None:
        ...

    def set_password(self, user_id: str, password_hash: str) -> None:
        ...

    def bump_token_version(self, user_id: str) -> int:
        ...

    def bump_all_token_versions(self) -> int:
        ...

    # Sessions
    def create_session(self, record: "SessionRecord") -> "SessionRecord":
        ...

    def get_session(self, session_id: str) -> Optional["SessionRecord"]:
        ...

    def touch_session(self, session_id: str, when: float) -> None:
        ...

    def deactivate_session(self, session_id: str) -> None:
        ...

    def deactivate_user_sessions(
        self, user_id: str, *, except_session_id: Optional[str] = None
    ) -> int:
        ...

    def deactivate_all_sessions(self) -> int:
        ...

    def list_active_sessions(
        self, user_id: str, now: float
    ) -> list["SessionRecord"]:
        ...

    def delete_expired_sessions(self, now: float) -> int:
        ...

    def session_stats(self, now: float) -> dict:
        ...

    # Projects
    def create_project(self, record: "ProjectRecord") -> "ProjectRecord":
        ...

    def get_project(self, project_id: str) -> Optional["ProjectRecord"]:
        ...

    def list_projects(
        self, category: Optional[str] = None
    ) -> list["ProjectRecord"]:
        ...

    def save_project(self, record: "ProjectRecord") -> "ProjectRecord":
        ...

    def delete_project(self, project_id: str) -> bool:
        ...

    def set_project_order(self, project_id: str, order: int) -> bool:
        ...

    # Messages
    def create_message(self, record: "MessageRecord") -> "MessageRecord":
        ...

    def get_message(self, message_id: str) -> Optional["MessageRecord"]:
        ...

    def list_messages(self) -> list["MessageRecord"]:
        ...

    def mark_message_read(self, message_id: str) -> Optional["MessageRecord"]:
        ...

    def delete_message(self, message_id: str) -> bool:
        ...


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class UserRecord:
    user_id: str
    username: str
    password_hash: str
    role: str = "admin"
    token_version: int = 0
    active_session: Optional[str] = None
    last_login: Optional[float] = None
    last_login_ip: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())

    def public_dict(self) -> dict:
        return {"id": self.user_id, "username": self.username, "role": self.role}


@dataclass
class SessionRecord:
    session_id: str
    user_id: str
    ip_address: str
    user_agent: str
    expires_at: float
    device: str = "unknown"
    browser: str = "unknown"
    os: str = "unknown"
    is_active: bool = True
    created_at: float = field(default_factory=lambda: time.time())
    last_active: float = field(default_factory=lambda: time.time())

    def is_live(self, now: float) -> bool:
        return self.is_active and self.expires_at > now

    def as_dict(self) -> dict:
        return {
            "id": self.session_id,
            "user_id": self.user_id,
            "device": self.device,
            "browser": self.browser,
            "os": self.os,
            "ip_address": self.ip_address,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "last_active": self.last_active,
            "expires_at": self.expires_at,
        }


@dataclass
class ProjectRecord:
    project_id: str
    title: str
    category: str
    description: str
    image: str
    image_public_id: str
    order: int = 0
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.project_id,
            "title": self.title,
            "category": self.category,
            "description": self.description,
            "image": self.image,
            "image_public_id": self.image_public_id,
            "order": self.order,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class MessageRecord:
    message_id: str
    name: str
    email: str
    message: str
    read: bool = False
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.message_id,
            "name": self.name,
            "email": self.email,
            "message": self.message,
            "read": self.read,
            "created_at": self.created_at,
        }


def _project_sort_key(record: ProjectRecord) -> tuple:
    return (record.order, -record.created_at)


def _count_by(values: list[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return counts


class InMemoryDbClient:
    """Simple in-memory database for development and tests.

    Records are copied on the way in and out so callers cannot mutate
    stored state behind the client's back.
    """

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.sessions: Dict[str, SessionRecord] = {}
        self.projects: Dict[str, ProjectRecord] = {}
        self.messages: Dict[str, MessageRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.sessions.clear()
        self.projects.clear()
        self.messages.clear()

    # Users

    def create_user(
        self, username: str, password_hash: str, role: str = "admin"
    ) -> UserRecord:
        if self.get_user_by_username(username):
            raise ValueError(f"User {username!r} already exists")
        record = UserRecord(
            user_id=new_id(),
            username=username,
            password_hash=password_hash,
            role=role,
        )
        self.users[record.user_id] = record
        return replace(record)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        return replace(user) if user else None

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.username == username:
                return replace(user)
        return None

    def record_login(
        self, user_id: str, *, session_id: str, ip_address: str, when: float
    ) -> None:
        user = self.users.get(user_id)
        if not user:
            return
        user.active_session = session_id
        user.last_login = when
        user.last_login_ip = ip_address

    def set_active_session(self, user_id: str, session_id: Optional[str]) -> None:
        user = self.users.get(user_id)
        if user:
            user.active_session = session_id

    def set_password(self, user_id: str, password_hash: str) -> None:
        user = self.users.get(user_id)
        if user:
            user.password_hash = password_hash

    def bump_token_version(self, user_id: str) -> int:
        user = self.users.get(user_id)
        if not user:
            return 0
        user.token_version += 1
        return user.token_version

    def bump_all_token_versions(self) -> int:
        for user in self.users.values():
            user.token_version += 1
        return len(self.users)

    # Sessions

    def create_session(self, record: SessionRecord) -> SessionRecord:
        self.sessions[record.session_id] = replace(record)
        return replace(record)

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        session = self.sessions.get(session_id)
        return replace(session) if session else None

    def touch_session(self, session_id: str, when: float) -> None:
        session = self.sessions.get(session_id)
        if session:
            session.last_active = when

    def deactivate_session(self, session_id: str) -> None:
        session = self.sessions.get(session_id)
        if session:
            session.is_active = False

    def deactivate_user_sessions(
        self, user_id: str, *, except_session_id: Optional[str] = None
    ) -> int:
        count = 0
        for session in self.sessions.values():
            if (
                session.user_id == user_id
                and session.is_active
                and session.session_id != except_session_id
            ):
                session.is_active = False
                count += 1
        return count

    def deactivate_all_sessions(self) -> int:
        count = 0
        for session in self.sessions.values():
            if session.is_active:
                session.is_active = False
                count += 1
        return count

    def list_active_sessions(self, user_id: str, now: float) -> list[SessionRecord]:
        items = [
            replace(session)
            for session in self.sessions.values()
            if session.user_id == user_id and session.is_live(now)
        ]
        items.sort(key=lambda s: s.last_active, reverse=True)
        return items

    def delete_expired_sessions(self, now: float) -> int:
        expired = [
            session_id
            for session_id, session in self.sessions.items()
            if session.expires_at < now
        ]
        for session_id in expired:
            del self.sessions[session_id]
        return len(expired)

    def session_stats(self, now: float) -> dict:
        sessions = list(self.sessions.values())
        return {
            "total": len(sessions),
            "active": sum(1 for s in sessions if s.is_active),
            "expired": sum(1 for s in sessions if s.expires_at < now),
            "by_device": _count_by([s.device for s in sessions]),
            "by_browser": _count_by([s.browser for s in sessions]),
        }

    # Projects

    def create_project(self, record: ProjectRecord) -> ProjectRecord:
        self.projects[record.project_id] = replace(record)
        return replace(record)

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        project = self.projects.get(project_id)
        return replace(project) if project else None

    def list_projects(self, category: Optional[str] = None) -> list[ProjectRecord]:
        items = [
            replace(project)
            for project in self.projects.values()
            if category is None or project.category == category
        ]
        items.sort(key=_project_sort_key)
        return items

    def save_project(self, record: ProjectRecord) -> ProjectRecord:
        record.updated_at = time.time()
        self.projects[record.project_id] = replace(record)
        return replace(record)

    def delete_project(self, project_id: str) -> bool:
        return self.projects.pop(project_id, None) is not None

    def set_project_order(self, project_id: str, order: int) -> bool:
        project = self.projects.get(project_id)
        if not project:
            return False
        project.order = order
        project.updated_at = time.time()
        return True

    # Messages

    def create_message(self, record: MessageRecord) -> MessageRecord:
        self.messages[record.message_id] = replace(record)
        return replace(record)

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        message = self.messages.get(message_id)
        return replace(message) if message else None

    def list_messages(self) -> list[MessageRecord]:
        items = [replace(message) for message in self.messages.values()]
        items.sort(key=lambda m: m.created_at, reverse=True)
        return items

    def mark_message_read(self, message_id: str) -> Optional[MessageRecord]:
        message = self.messages.get(message_id)
        if not message:
            return None
        message.read = True
        return replace(message)

    def delete_message(self, message_id: str) -> bool:
        return self.messages.pop(message_id, None) is not None


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    # Row conversion

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.user_id,
            username=row.username,
            password_hash=row.password_hash,
            role=row.role,
            token_version=row.token_version,
            active_session=row.active_session,
            last_login=row.last_login,
            last_login_ip=row.last_login_ip,
            created_at=row.created_at,
        )

    def _to_session_record(self, row: "SessionRow") -> SessionRecord:
        return SessionRecord(
            session_id=row.session_id,
            user_id=row.user_id,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            expires_at=row.expires_at,
            device=row.device,
            browser=row.browser,
            os=row.os,
            is_active=row.is_active,
            created_at=row.created_at,
            last_active=row.last_active,
        )

    def _to_project_record(self, row: "ProjectRow") -> ProjectRecord:
        return ProjectRecord(
            project_id=row.project_id,
            title=row.title,
            category=row.category,
            description=row.description,
            image=row.image,
            image_public_id=row.image_public_id,
            order=row.order,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_message_record(self, row: "MessageRow") -> MessageRecord:
        return MessageRecord(
            message_id=row.message_id,
            name=row.name,
            email=row.email,
            message=row.message,
            read=row.read,
            created_at=row.created_at,
        )

    # Users

    def create_user(
        self, username: str, password_hash: str, role: str = "admin"
    ) -> UserRecord:
        if self.get_user_by_username(username):
            raise ValueError(f"User {username!r} already exists")
        with self.Session() as session:
            row = UserRow(
                user_id=new_id(),
                username=username,
                password_hash=password_hash,
                role=role,
                token_version=0,
                created_at=time.time(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # Lost a race against a concurrent insert of the same username.
                session.rollback()
                raise ValueError(f"User {username!r} already exists")
            session.refresh(row)
            return self._to_user_record(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.username == username)
            ).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def record_login(
        self, user_id: str, *, session_id: str, ip_address: str, when: float
    ) -> None:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return
            row.active_session = session_id
            row.last_login = when
            row.last_login_ip = ip_address
            session.commit()

    def set_active_session(self, user_id: str, session_id: Optional[str]) -> None:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return
            row.active_session = session_id
            session.commit()

    def set_password(self, user_id: str, password_hash: str) -> None:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return
            row.password_hash = password_hash
            session.commit()

    def bump_token_version(self, user_id: str) -> int:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return 0
            row.token_version = row.token_version + 1
            session.commit()
            return row.token_version

    def bump_all_token_versions(self) -> int:
        with self.Session() as session:
            result = session.execute(
                update(UserRow).values(token_version=UserRow.token_version + 1)
            )
            session.commit()
            return result.rowcount or 0

    # Sessions

    def create_session(self, record: SessionRecord) -> SessionRecord:
        with self.Session() as session:
            row = SessionRow(
                session_id=record.session_id,
                user_id=record.user_id,
                ip_address=record.ip_address,
                user_agent=record.user_agent,
                device=record.device,
                browser=record.browser,
                os=record.os,
                is_active=record.is_active,
                created_at=record.created_at,
                last_active=record.last_active,
                expires_at=record.expires_at,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_session_record(row)

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self.Session() as session:
            row = session.get(SessionRow, session_id)
            return self._to_session_record(row) if row else None

    def touch_session(self, session_id: str, when: float) -> None:
        with self.Session() as session:
            row = session.get(SessionRow, session_id)
            if not row:
                return
            row.last_active = when
            session.commit()

    def deactivate_session(self, session_id: str) -> None:
        with self.Session() as session:
            row = session.get(SessionRow, session_id)
            if not row:
                return
            row.is_active = False
            session.commit()

    def deactivate_user_sessions(
        self, user_id: str, *, except_session_id: Optional[str] = None
    ) -> int:
        stmt = update(SessionRow).where(
            SessionRow.user_id == user_id, SessionRow.is_active.is_(True)
        )
        if except_session_id:
            stmt = stmt.where(SessionRow.session_id != except_session_id)
        with self.Session() as session:
            result = session.execute(stmt.values(is_active=False))
            session.commit()
            return result.rowcount or 0

    def deactivate_all_sessions(self) -> int:
        with self.Session() as session:
            result = session.execute(
                update(SessionRow)
                .where(SessionRow.is_active.is_(True))
                .values(is_active=False)
            )
            session.commit()
            return result.rowcount or 0

    def list_active_sessions(self, user_id: str, now: float) -> list[SessionRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(SessionRow)
                .where(
                    SessionRow.user_id == user_id,
                    SessionRow.is_active.is_(True),
                    SessionRow.expires_at > now,
                )
                .order_by(SessionRow.last_active.desc())
            ).scalars()
            return [self._to_session_record(row) for row in rows]

    def delete_expired_sessions(self, now: float) -> int:
        with self.Session() as session:
            result = session.execute(
                delete(SessionRow).where(SessionRow.expires_at < now)
            )
            session.commit()
            return result.rowcount or 0

    def session_stats(self, now: float) -> dict:
        with self.Session() as session:
            total = session.scalar(select(func.count()).select_from(SessionRow))
            active = session.scalar(
                select(func.count())
                .select_from(SessionRow)
                .where(SessionRow.is_active.is_(True))
            )
            expired = session.scalar(
                select(func.count())
                .select_from(SessionRow)
                .where(SessionRow.expires_at < now)
            )
            by_device = session.execute(
                select(SessionRow.device, func.count()).group_by(SessionRow.device)
            ).all()
            by_browser = session.execute(
                select(SessionRow.browser, func.count()).group_by(SessionRow.browser)
            ).all()
            return {
                "total": total or 0,
                "active": active or 0,
                "expired": expired or 0,
                "by_device": {device: count for device, count in by_device},
                "by_browser": {browser: count for browser, count in by_browser},
            }

    # Projects

    def create_project(self, record: ProjectRecord) -> ProjectRecord:
        with self.Session() as session:
            row = ProjectRow(
                project_id=record.project_id,
                title=record.title,
                category=record.category,
                description=record.description,
                image=record.image,
                image_public_id=record.image_public_id,
                order=record.order,
                created_at=record.created_at,
                updated_at=record.updated_at,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_project_record(row)

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        with self.Session() as session:
            row = session.get(ProjectRow, project_id)
            return self._to_project_record(row) if row else None

    def list_projects(self, category: Optional[str] = None) -> list[ProjectRecord]:
        stmt = select(ProjectRow)
        if category is not None:
            stmt = stmt.where(ProjectRow.category == category)
        stmt = stmt.order_by(ProjectRow.order.asc(), ProjectRow.created_at.desc())
        with self.Session() as session:
            return [
                self._to_project_record(row) for row in session.execute(stmt).scalars()
            ]

    def save_project(self, record: ProjectRecord) -> ProjectRecord:
        with self.Session() as session:
            row = session.get(ProjectRow, record.project_id)
            if not row:
                raise KeyError(record.project_id)
            row.title = record.title
            row.category = record.category
            row.description = record.description
            row.image = record.image
            row.image_public_id = record.image_public_id
            row.order = record.order
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_project_record(row)

    def delete_project(self, project_id: str) -> bool:
        with self.Session() as session:
            row = session.get(ProjectRow, project_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def set_project_order(self, project_id: str, order: int) -> bool:
        with self.Session() as session:
            row = session.get(ProjectRow, project_id)
            if not row:
                return False
            row.order = order
            row.updated_at = time.time()
            session.commit()
            return True

    # Messages

    def create_message(self, record: MessageRecord) -> MessageRecord:
        with self.Session() as session:
            row = MessageRow(
                message_id=record.message_id,
                name=record.name,
                email=record.email,
                message=record.message,
                read=record.read,
                created_at=record.created_at,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_message_record(row)

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        with self.Session() as session:
            row = session.get(MessageRow, message_id)
            return self._to_message_record(row) if row else None

    def list_messages(self) -> list[MessageRecord]:
        with self.Session() as session:
            rows = (
                session.query(MessageRow)
                .order_by(MessageRow.created_at.desc())
                .all()
            )
            return [self._to_message_record(row) for row in rows]

    def mark_message_read(self, message_id: str) -> Optional[MessageRecord]:
        with self.Session() as session:
            row = session.get(MessageRow, message_id)
            if not row:
                return None
            row.read = True
            session.commit()
            session.refresh(row)
            return self._to_message_record(row)

    def delete_message(self, message_id: str) -> bool:
        with self.Session() as session:
            row = session.get(MessageRow, message_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    username = Column(String(64), nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    role = Column(String(32), nullable=False, default="admin")
    token_version = Column(Integer, nullable=False, default=0)
    active_session = Column(String, nullable=True)
    last_login = Column(Float, nullable=True)
    last_login_ip = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)


class SessionRow(Base):
    __tablename__ = "sessions"
    __table_args__ = (Index("ix_sessions_user_last_active", "user_id", "last_active"),)

    session_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    ip_address = Column(String, nullable=False)
    user_agent = Column(String, nullable=False)
    device = Column(String, nullable=False, default="unknown")
    browser = Column(String, nullable=False, default="unknown")
    os = Column(String, nullable=False, default="unknown")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(Float, nullable=False)
    last_active = Column(Float, nullable=False)
    expires_at = Column(Float, nullable=False, index=True)


class ProjectRow(Base):
    __tablename__ = "projects"
    __table_args__ = (Index("ix_projects_category_order", "category", "order"),)

    project_id = Column(String, primary_key=True)
    title = Column(String(100), nullable=False)
    category = Column(String(32), nullable=False)
    description = Column(String(500), nullable=False)
    image = Column(String, nullable=False)
    image_public_id = Column(String, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)


class MessageRow(Base):
    __tablename__ = "messages"

    message_id = Column(String, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(254), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False, index=True)
