import logging
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from backend.core.errors import ConflictError, NotFoundError, ValidationError
from backend.core.models import (
    AuditEvent,
    Candidate,
    CandidateStatus,
    Correction,
    Course,
    Mentor,
    Notification,
    User,
    UserRole,
    subject_to_track_id,
)
from backend.core.repositories import DocumentStore
from backend.core.stamps import iso, new_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CollectionRepository(Generic[T]):
    """
    Record-level access to one stored collection.

    Every call reads the whole collection and every change writes it back;
    ``save_all`` folds several changed records into a single write.
    """

    collection = ""
    model: Type[T]
    label = "Record"

    def __init__(self, store: DocumentStore):
        self.store = store

    # ---------- keys ----------
    def key_of(self, item: T) -> str:
        return str(getattr(item, "id"))

    def matches(self, item: T, key: str) -> bool:
        return self.key_of(item) == str(key)

    # ---------- reads ----------
    def _load(self) -> List[T]:
        return [self.model.from_dict(d) for d in self.store.read(self.collection)]

    def _dump(self, items: Sequence[T]) -> None:
        self.store.write(self.collection, [i.to_dict() for i in items])

    def list_all(self) -> List[T]:
        return self._load()

    def find(self, key: str) -> Optional[T]:
        for item in self._load():
            if self.matches(item, key):
                return item
        return None

    def get(self, key: str) -> T:
        item = self.find(key)
        if item is None:
            raise NotFoundError(f"{self.label} {key} not found")
        return item

    # ---------- writes ----------
    def add(self, item: T) -> T:
        items = self._load()
        items.append(item)
        self._dump(items)
        return item

    def add_many(self, new_items: Sequence[T]) -> List[T]:
        items = self._load()
        items.extend(new_items)
        self._dump(items)
        return list(new_items)

    def update(self, key: str, changes: Dict[str, Any], keep: Sequence[str] = ()) -> T:
        """Shallow-merge ``changes`` into the stored record; ``keep`` names keys that cannot change."""
        items = self._load()
        for i, item in enumerate(items):
            if self.matches(item, key):
                current = item.to_dict()
                merged = {**current, **changes, "updatedAt": iso()}
                for k in keep:
                    if k in current:
                        merged[k] = current[k]
                items[i] = self.model.from_dict(merged)
                self._dump(items)
                return items[i]
        raise NotFoundError(f"{self.label} {key} not found")

    def replace(self, record: T) -> T:
        self.save_all([record])
        return record

    def save_all(self, records: Sequence[T]) -> int:
        """Replace stored records by key in one write. Unknown keys are an error."""
        if not records:
            return 0
        by_key = {self.key_of(r): r for r in records}
        items = self._load()
        found = 0
        for i, item in enumerate(items):
            k = self.key_of(item)
            if k in by_key:
                items[i] = by_key[k]
                found += 1
        if found != len(by_key):
            missing = sorted(set(by_key) - {self.key_of(i) for i in items})
            raise NotFoundError(f"{self.label} {', '.join(missing)} not found")
        self._dump(items)
        logger.debug("Saved %d %s in one write", found, self.collection)
        return found

    def delete(self, key: str) -> None:
        items = self._load()
        kept = [i for i in items if not self.matches(i, key)]
        if len(kept) == len(items):
            raise NotFoundError(f"{self.label} {key} not found")
        self._dump(kept)


# ---------- candidates ----------

class CandidateRepo(CollectionRepository[Candidate]):
    collection = "candidates"
    model = Candidate
    label = "Candidate"

    def list(self) -> List[Candidate]:
        return self._load()

    def by_status(self, status: CandidateStatus) -> List[Candidate]:
        return [c for c in self._load() if c.status == status]

    def _prepare(self, candidate: Candidate, existing: Sequence[Candidate], stamp: str) -> Candidate:
        email = candidate.email.strip().lower()
        if email and any(c.email.strip().lower() == email for c in existing):
            raise ConflictError(f"Candidate with email {candidate.email} already exists")
        if candidate.id and any(c.id == candidate.id for c in existing):
            raise ConflictError(f"Candidate {candidate.id} already exists")
        if not candidate.id:
            candidate.id = new_id("C")
        if not candidate.track_id:
            candidate.track_id = subject_to_track_id(candidate.subject)
        candidate.created_at = candidate.created_at or stamp
        candidate.updated_at = stamp
        return candidate

    def create(self, candidate: Candidate) -> Candidate:
        items = self._load()
        self._prepare(candidate, items, iso())
        items.append(candidate)
        self._dump(items)
        return candidate

    def bulk_create(self, candidates: Sequence[Candidate]) -> Dict[str, List[Any]]:
        """Create many candidates in one write; rejected ones are reported, not raised."""
        items = self._load()
        stamp = iso()
        created: List[Candidate] = []
        errors: List[Dict[str, Any]] = []
        for cand in candidates:
            try:
                self._prepare(cand, items, stamp)
            except ConflictError as e:
                errors.append({"candidate": cand.to_dict(), "error": e.message})
                continue
            items.append(cand)
            created.append(cand)
        if created:
            self._dump(items)
        return {"success": created, "errors": errors}

    def update_fields(self, candidate_id: str, changes: Dict[str, Any]) -> Candidate:
        changes = dict(changes)
        if "email" in changes:
            email = str(changes["email"] or "").strip().lower()
            clash = [c for c in self._load() if c.id != candidate_id and c.email.strip().lower() == email]
            if email and clash:
                raise ConflictError(f"Candidate with email {changes['email']} already exists")
        if "subject" in changes and "trackId" not in changes:
            changes["trackId"] = subject_to_track_id(changes["subject"])
        return self.update(candidate_id, changes, keep=("id", "createdAt"))


# ---------- catalog ----------

class CourseRepo(CollectionRepository[Course]):
    collection = "courses"
    model = Course
    label = "Course"

    def key_of(self, item: Course) -> str:
        return str(item.id or item.code)

    def matches(self, item: Course, key: str) -> bool:
        # courses are addressed by id, or by code when no id matches
        return self.key_of(item) == str(key) or item.code.upper() == str(key).upper()

    def find(self, key: str) -> Optional[Course]:
        items = self._load()
        for item in items:
            if self.key_of(item) == str(key):
                return item
        for item in items:
            if item.code.upper() == str(key).upper():
                return item
        return None

    def list(self, include_inactive: bool = False) -> List[Course]:
        courses = [c for c in self._load() if include_inactive or c.active]
        return sorted(courses, key=lambda c: c.code)

    def by_track(self, track_id: str) -> List[Course]:
        return [c for c in self.list() if track_id in c.tracks]

    def create(self, course: Course) -> Course:
        items = self._load()
        if any(c.code.upper() == course.code.upper() for c in items):
            raise ConflictError(f"Course {course.code} already exists")
        stamp = iso()
        course.id = course.id or f"C-{course.code}"
        course.extra.setdefault("createdAt", stamp)
        course.extra["updatedAt"] = stamp
        items.append(course)
        self._dump(items)
        return course

    def update_fields(self, key: str, changes: Dict[str, Any]) -> Course:
        """A code may only change while no candidate enrollment or result uses it."""
        course = self.get(key)
        if "code" in changes:
            code = str(changes["code"] or "").strip().upper()
            if not code:
                raise ValidationError("Course code is required")
            if code != course.code.upper():
                if self._in_use(course.code):
                    raise ValidationError(f"Course {course.code} is referenced by candidates; its code cannot change")
                if any(c.code.upper() == code for c in self._load()):
                    raise ConflictError(f"Course {code} already exists")
            changes = {**changes, "code": code}
        return self.update(self.key_of(course), changes, keep=("id",))

    def _in_use(self, code: str) -> bool:
        wanted = code.upper()
        for raw in self.store.read(CandidateRepo.collection):
            cand = Candidate.from_dict(raw)
            if cand.find_result(wanted) is not None or cand.find_enrollment(wanted) is not None:
                return True
        return False

    def deactivate(self, key: str) -> Course:
        course = self.get(key)
        return self.update(self.key_of(course), {"active": False}, keep=("id",))


class MentorRepo(CollectionRepository[Mentor]):
    collection = "mentors"
    model = Mentor
    label = "Mentor"

    def list(self, subject: Optional[str] = None) -> List[Mentor]:
        mentors = [m for m in self._load() if subject is None or m.subject == subject]
        return sorted(mentors, key=lambda m: m.name)

    def create(self, mentor: Mentor) -> Mentor:
        stamp = iso()
        mentor.id = mentor.id or new_id("M")
        mentor.created_at = stamp
        mentor.updated_at = stamp
        return self.add(mentor)

    def update_fields(self, mentor_id: str, changes: Dict[str, Any]) -> Mentor:
        return self.update(mentor_id, changes, keep=("id", "createdAt"))


# ---------- people ----------

class UserRepo(CollectionRepository[User]):
    collection = "users"
    model = User
    label = "User"

    def key_of(self, item: User) -> str:
        return item.email

    def matches(self, item: User, key: str) -> bool:
        return item.email == str(key).strip().lower()

    def list(self) -> List[User]:
        return self._load()

    def by_role(self, role: UserRole) -> List[User]:
        return [u for u in self._load() if u.role == role]

    def create(self, user: User) -> User:
        items = self._load()
        user.email = user.email.strip().lower()
        if any(u.email == user.email for u in items):
            raise ConflictError("User with this email already exists")
        stamp = iso()
        user.created_at = stamp
        user.updated_at = stamp
        items.append(user)
        self._dump(items)
        return user

    def update_fields(self, email: str, changes: Dict[str, Any]) -> User:
        changes = {k: v for k, v in changes.items() if k != "password"}
        return self.update(email, changes, keep=("email", "createdAt"))


class CorrectionRepo(CollectionRepository[Correction]):
    collection = "corrections"
    model = Correction
    label = "Correction"

    def list(self) -> List[Correction]:
        return self._load()


class AuditRepo(CollectionRepository[AuditEvent]):
    collection = "audit"
    model = AuditEvent
    label = "Audit event"

    def list(self) -> List[AuditEvent]:
        return self._load()

    def record(self, event_type: str, payload: Dict[str, Any]) -> AuditEvent:
        """Newest event first."""
        event = AuditEvent(id=new_id("AUD"), type=event_type, ts=iso(), payload=dict(payload))
        items = self._load()
        items.insert(0, event)
        self._dump(items)
        logger.info("Audit %s %s", event_type, payload)
        return event


class NotificationRepo(CollectionRepository[Notification]):
    collection = "notifications"
    model = Notification
    label = "Notification"

    def push(self, to: Dict[str, Any], type: str, title: str, body: str = "",
             target: Optional[Dict[str, Any]] = None) -> Notification:
        """Newest notification first."""
        note = Notification(
            id=new_id("NTF"), ts=iso(), to=dict(to), type=type, title=title, body=body, target=dict(target or {}),
        )
        items = self._load()
        items.insert(0, note)
        self._dump(items)
        return note

    def for_user(self, email: str = "", role: str = "") -> List[Notification]:
        return [n for n in self._load() if n.is_for(email, role)]

    def mark_read(self, notification_id: str) -> Notification:
        note = self.get(notification_id)
        note.read = True
        self.replace(note)
        return note

    def mark_all_read(self, email: str = "", role: str = "") -> int:
        items = self._load()
        count = 0
        for n in items:
            if n.is_for(email, role) and not n.read:
                n.read = True
                count += 1
        if count:
            self._dump(items)
        return count


class Repositories:
    """All repositories over one store."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.candidates = CandidateRepo(store)
        self.courses = CourseRepo(store)
        self.mentors = MentorRepo(store)
        self.users = UserRepo(store)
        self.corrections = CorrectionRepo(store)
        self.audit = AuditRepo(store)
        self.notifications = NotificationRepo(store)
