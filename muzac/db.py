"""
Document store abstraction for DynamoDB, SQL and an in-memory test implementation.

Two record kinds live here: per-user preferences (one row per user, last
write wins) and family-tree members (flat person records pointing at their
parents through ``mom``/``dad`` ids). Referential integrity, symmetric
marriages and acyclic parent chains are expected but never enforced.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional, Protocol

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import JSON, Column, String, create_engine, or_, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from muzac.errors import UpstreamFailure

logger = logging.getLogger(__name__)

LANGUAGES = ("tr", "en")
DEFAULT_LANGUAGE = "tr"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class UserPreferences:
    user_id: str
    language: str = DEFAULT_LANGUAGE
    updated_at: str = field(default_factory=_now_iso)

    def as_item(self) -> dict:
        return {
            "userId": self.user_id,
            "language": self.language,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_item(cls, item: dict) -> "UserPreferences":
        return cls(
            user_id=item["userId"],
            language=item.get("language") or DEFAULT_LANGUAGE,
            updated_at=item.get("updatedAt") or "",
        )


@dataclass
class Person:
    id: str
    name: str
    surname: str
    birthday: str
    gender: str
    nickname: Optional[str] = None
    mom: str = ""
    dad: str = ""
    married_to: Optional[str] = None
    photo: list[str] = field(default_factory=list)
    created_at: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return not self.mom and not self.dad

    @property
    def birth_date(self) -> Optional[date]:
        try:
            return date.fromisoformat(self.birthday[:10])
        except (TypeError, ValueError):
            return None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "surname": self.surname,
            "nickname": self.nickname,
            "birthday": self.birthday,
            "gender": self.gender,
            "mom": self.mom,
            "dad": self.dad,
            "marriedTo": self.married_to,
            "photo": list(self.photo),
            "createdAt": self.created_at,
        }

    def as_item(self) -> dict:
        # DynamoDB rejects empty strings on index keys, so unknown parents
        # are left out of the item instead of stored as "".
        return {key: value for key, value in self.as_dict().items() if value not in ("", None)}

    @classmethod
    def from_item(cls, item: dict) -> "Person":
        return cls(
            id=str(item["id"]),
            name=item.get("name", ""),
            surname=item.get("surname", ""),
            nickname=item.get("nickname"),
            birthday=item.get("birthday", ""),
            gender=item.get("gender", ""),
            mom=item.get("mom") or "",
            dad=item.get("dad") or "",
            married_to=item.get("marriedTo"),
            photo=list(item.get("photo") or []),
            created_at=item.get("createdAt"),
        )


def new_member(record: dict) -> Person:
    """Build a Person from an incoming record, assigning id and creation time."""
    item = dict(record)
    if not item.get("id"):
        item["id"] = uuid.uuid4().hex
    item["createdAt"] = _now_iso()
    return Person.from_item(item)


def dedupe_by_id(people: Iterable[Person]) -> list[Person]:
    seen: set[str] = set()
    unique: list[Person] = []
    for person in people:
        if person.id in seen:
            continue
        seen.add(person.id)
        unique.append(person)
    return unique


def resolve_parents(
    child_id: str, get_member: Callable[[str], Optional[Person]]
) -> list[Person]:
    """Look up the child, then each of its set parent ids; dangling ids are skipped."""
    child = get_member(child_id)
    if child is None:
        return []
    parents: list[Person] = []
    for parent_id in (child.mom, child.dad):
        if not parent_id:
            continue
        parent = get_member(parent_id)
        if parent is not None:
            parents.append(parent)
    return parents


class DbClient(Protocol):
    """Interface for preference and family-tree storage."""

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        ...

    def save_preferences(self, user_id: str, language: str) -> UserPreferences:
        ...

    def create_member(self, record: dict) -> Person:
        ...

    def get_member(self, member_id: str) -> Optional[Person]:
        ...

    def get_all_members(self) -> list[Person]:
        ...

    def get_children(self, parent_id: str) -> list[Person]:
        ...

    def get_parents(self, child_id: str) -> list[Person]:
        ...


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.preferences: dict[str, UserPreferences] = {}
        self.members: dict[str, Person] = {}

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        return self.preferences.get(user_id)

    def save_preferences(self, user_id: str, language: str) -> UserPreferences:
        prefs = UserPreferences(user_id=user_id, language=language)
        self.preferences[user_id] = prefs
        return prefs

    def create_member(self, record: dict) -> Person:
        person = new_member(record)
        self.members[person.id] = person
        return person

    def get_member(self, member_id: str) -> Optional[Person]:
        return self.members.get(member_id)

    def get_all_members(self) -> list[Person]:
        return list(self.members.values())

    def get_children(self, parent_id: str) -> list[Person]:
        by_mom = [p for p in self.members.values() if p.mom == parent_id]
        by_dad = [p for p in self.members.values() if p.dad == parent_id]
        return dedupe_by_id(by_mom + by_dad)

    def get_parents(self, child_id: str) -> list[Person]:
        return resolve_parents(child_id, self.get_member)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.preferences.clear()
        self.members.clear()


class DynamoDbClient:
    """
    DynamoDB-backed implementation.

    The family table is keyed on ``id`` with global secondary indexes on
    ``mom`` and ``dad``; the preferences table is keyed on ``userId``.
    """

    def __init__(
        self,
        *,
        preferences_table: Optional[str],
        family_table: Optional[str],
        mom_index: str = "mom-index",
        dad_index: str = "dad-index",
        region: Optional[str] = None,
        resource=None,
    ):
        self._resource = resource or boto3.resource("dynamodb", region_name=region)
        self._preferences = (
            self._resource.Table(preferences_table) if preferences_table else None
        )
        self._family = self._resource.Table(family_table) if family_table else None
        self.mom_index = mom_index
        self.dad_index = dad_index

    def _preferences_table(self):
        if self._preferences is None:
            raise UpstreamFailure("USER_PREFERENCES_TABLE is not configured")
        return self._preferences

    def _family_table(self):
        if self._family is None:
            raise UpstreamFailure("FAMILY_TREE_TABLE is not configured")
        return self._family

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        try:
            result = self._preferences_table().get_item(Key={"userId": user_id})
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Error getting user preferences")
            raise UpstreamFailure("Internal server error") from exc
        item = result.get("Item")
        return UserPreferences.from_item(item) if item else None

    def save_preferences(self, user_id: str, language: str) -> UserPreferences:
        prefs = UserPreferences(user_id=user_id, language=language)
        try:
            self._preferences_table().put_item(Item=prefs.as_item())
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Error updating user preferences")
            raise UpstreamFailure("Internal server error") from exc
        return prefs

    def create_member(self, record: dict) -> Person:
        person = new_member(record)
        try:
            self._family_table().put_item(Item=person.as_item())
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Error creating family member")
            raise UpstreamFailure("Failed to create member") from exc
        return person

    def get_member(self, member_id: str) -> Optional[Person]:
        try:
            result = self._family_table().get_item(Key={"id": member_id})
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Error getting family member %s", member_id)
            raise UpstreamFailure("Failed to get member") from exc
        item = result.get("Item")
        return Person.from_item(item) if item else None

    def get_all_members(self) -> list[Person]:
        items: list[dict] = []
        kwargs: dict = {}
        try:
            while True:
                page = self._family_table().scan(**kwargs)
                items.extend(page.get("Items", []))
                last_key = page.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Error scanning family members")
            raise UpstreamFailure("Failed to get members") from exc
        return [Person.from_item(item) for item in items]

    def _query_index(self, index_name: str, attribute: str, value: str) -> list[Person]:
        items: list[dict] = []
        kwargs: dict = {
            "IndexName": index_name,
            "KeyConditionExpression": Key(attribute).eq(value),
        }
        while True:
            page = self._family_table().query(**kwargs)
            items.extend(page.get("Items", []))
            last_key = page.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return [Person.from_item(item) for item in items]

    def get_children(self, parent_id: str) -> list[Person]:
        try:
            by_mom = self._query_index(self.mom_index, "mom", parent_id)
            by_dad = self._query_index(self.dad_index, "dad", parent_id)
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Error querying children of %s", parent_id)
            raise UpstreamFailure("Failed to get children") from exc
        return dedupe_by_id(by_mom + by_dad)

    def get_parents(self, child_id: str) -> list[Person]:
        return resolve_parents(child_id, self.get_member)


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
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

    def _to_person(self, row: "PersonRow") -> Person:
        return Person(
            id=row.id,
            name=row.name,
            surname=row.surname,
            nickname=row.nickname,
            birthday=row.birthday,
            gender=row.gender,
            mom=row.mom or "",
            dad=row.dad or "",
            married_to=row.married_to,
            photo=list(row.photo or []),
            created_at=row.created_at,
        )

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        with self.Session() as session:
            row = session.get(PreferenceRow, user_id)
            if not row:
                return None
            return UserPreferences(
                user_id=row.user_id, language=row.language, updated_at=row.updated_at
            )

    def save_preferences(self, user_id: str, language: str) -> UserPreferences:
        prefs = UserPreferences(user_id=user_id, language=language)
        with self.Session() as session:
            row = session.get(PreferenceRow, user_id)
            if row:
                row.language = prefs.language
                row.updated_at = prefs.updated_at
            else:
                session.add(
                    PreferenceRow(
                        user_id=user_id,
                        language=prefs.language,
                        updated_at=prefs.updated_at,
                    )
                )
            session.commit()
        return prefs

    def create_member(self, record: dict) -> Person:
        person = new_member(record)
        with self.Session() as session:
            # merge: same id overwrites, like a DynamoDB put.
            session.merge(
                PersonRow(
                    id=person.id,
                    name=person.name,
                    surname=person.surname,
                    nickname=person.nickname,
                    birthday=person.birthday,
                    gender=person.gender,
                    mom=person.mom or None,
                    dad=person.dad or None,
                    married_to=person.married_to,
                    photo=list(person.photo),
                    created_at=person.created_at,
                )
            )
            session.commit()
        return person

    def get_member(self, member_id: str) -> Optional[Person]:
        with self.Session() as session:
            row = session.get(PersonRow, member_id)
            return self._to_person(row) if row else None

    def get_all_members(self) -> list[Person]:
        with self.Session() as session:
            rows = session.execute(select(PersonRow)).scalars().all()
            return [self._to_person(row) for row in rows]

    def get_children(self, parent_id: str) -> list[Person]:
        with self.Session() as session:
            stmt = select(PersonRow).where(
                or_(PersonRow.mom == parent_id, PersonRow.dad == parent_id)
            )
            rows = session.execute(stmt).scalars().all()
            return dedupe_by_id(self._to_person(row) for row in rows)

    def get_parents(self, child_id: str) -> list[Person]:
        return resolve_parents(child_id, self.get_member)


Base = declarative_base()


class PreferenceRow(Base):
    __tablename__ = "user_preferences"

    user_id = Column(String, primary_key=True)
    language = Column(String, nullable=False, default=DEFAULT_LANGUAGE)
    updated_at = Column(String, nullable=False)


class PersonRow(Base):
    __tablename__ = "family_members"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    surname = Column(String, nullable=False)
    nickname = Column(String, nullable=True)
    birthday = Column(String, nullable=False)
    gender = Column(String, nullable=False)
    mom = Column(String, nullable=True, index=True)
    dad = Column(String, nullable=True, index=True)
    married_to = Column(String, nullable=True)
    photo = Column(JSON, nullable=False, default=list)
    created_at = Column(String, nullable=True)
