"""Role-scoped access rules for teachers, students and parents.

Every request resolves the caller's :class:`Scope` once: the school a
manager owns, the class a teacher is assigned to, the parent or student row
linked to the account. The per-entity policies below then answer three
questions against that scope: which rows a list may return, whether a single
row may be read or written, and whether a new row may be created.

A scope whose own record could not be found is *unanchored*. It sees no rows
and is denied every single-row operation; it never falls back to "show
everything".
"""
import enum
from dataclasses import dataclass

from sqlalchemy import ColumnElement, and_, false, select, true
from sqlalchemy.orm import Session

from .errors import Forbidden
from .middleware import Identity
from .models import Parent, School, Student, Teacher, UserRole


NOT_ALLOWED = "Bu işlem için yetkiniz yok"


class Action(str, enum.Enum):
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Scope:
    user_id: int
    role: UserRole
    anchored: bool = True
    school_id: int | None = None
    class_name: str | None = None
    record_id: int | None = None

    @property
    def unrestricted(self) -> bool:
        return self.role is UserRole.ADMIN

    @property
    def has_class(self) -> bool:
        return self.anchored and self.school_id is not None and self.class_name is not None

    def in_school(self, school_id: int | None) -> bool:
        return self.anchored and self.school_id is not None and school_id == self.school_id

    def in_class(self, school_id: int | None, grade: str | None) -> bool:
        return self.has_class and school_id == self.school_id and grade == self.class_name

    def is_record(self, record_id: int | None) -> bool:
        return self.anchored and self.record_id is not None and record_id == self.record_id


def resolve_scope(db: Session, identity: Identity) -> Scope:
    role = identity.role
    if role is UserRole.ADMIN:
        return Scope(user_id=identity.id, role=role)

    if role is UserRole.MANAGER:
        school = db.scalars(select(School).where(School.manager_id == identity.id)).first()
        if school is None:
            return Scope(user_id=identity.id, role=role, anchored=False)
        return Scope(user_id=identity.id, role=role, school_id=school.id)

    if role is UserRole.TEACHER:
        teacher = db.scalars(select(Teacher).where(Teacher.user_id == identity.id)).first()
        if teacher is None:
            return Scope(user_id=identity.id, role=role, anchored=False)
        return Scope(
            user_id=identity.id,
            role=role,
            school_id=teacher.school_id,
            class_name=teacher.class_name,
            record_id=teacher.id,
        )

    if role is UserRole.PARENT:
        parent = db.scalars(select(Parent).where(Parent.user_id == identity.id)).first()
        if parent is None:
            return Scope(user_id=identity.id, role=role, anchored=False)
        return Scope(user_id=identity.id, role=role, record_id=parent.id)

    student = db.scalars(select(Student).where(Student.user_id == identity.id)).first()
    if student is None:
        return Scope(user_id=identity.id, role=role, anchored=False)
    return Scope(user_id=identity.id, role=role, school_id=student.school_id, record_id=student.id)


class RecordPolicy:
    """Access rules for one entity type."""

    allowed_roles: dict[Action, frozenset[UserRole]] = {}
    # message used when a single record is outside the caller's scope
    denied_messages: dict[UserRole, str] = {}
    create_denied_messages: dict[UserRole, str] = {}

    def check_role(self, identity: Identity | Scope, action: Action) -> None:
        if identity.role not in self.allowed_roles.get(action, frozenset()):
            raise Forbidden(NOT_ALLOWED)

    def visible(self, scope: Scope) -> ColumnElement[bool]:
        raise NotImplementedError

    def permits(self, scope: Scope, record) -> bool:
        raise NotImplementedError

    def ensure_permitted(self, scope: Scope, record) -> None:
        if not self.permits(scope, record):
            raise Forbidden(self.denied_messages.get(scope.role, NOT_ALLOWED))

    def _deny_create(self, scope: Scope) -> Forbidden:
        return Forbidden(self.create_denied_messages.get(scope.role, NOT_ALLOWED))


_EVERYONE = frozenset(UserRole)
_STAFF = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.TEACHER})
_MANAGEMENT = frozenset({UserRole.ADMIN, UserRole.MANAGER})


class StudentPolicy(RecordPolicy):
    allowed_roles = {
        Action.LIST: _EVERYONE,
        Action.READ: _EVERYONE,
        Action.CREATE: _STAFF,
        Action.UPDATE: _STAFF,
        Action.DELETE: _STAFF,
    }
    denied_messages = {
        UserRole.MANAGER: "Bu öğrenci sizin okulunuza ait değil",
        UserRole.TEACHER: "Bu öğrenci sizin sınıfınıza ait değil",
        UserRole.PARENT: "Bu öğrenci sizin çocuğunuz değil",
        UserRole.STUDENT: "Kendi dışınızdaki öğrenciye erişemezsiniz",
    }
    create_denied_messages = {
        UserRole.MANAGER: "Sadece kendi okulunuza öğrenci ekleyebilirsiniz",
        UserRole.TEACHER: "Sadece kendi sınıfınıza öğrenci ekleyebilirsiniz",
    }

    def visible(self, scope: Scope) -> ColumnElement[bool]:
        if scope.unrestricted:
            return true()
        if not scope.anchored:
            return false()
        if scope.role is UserRole.MANAGER:
            return Student.school_id == scope.school_id
        if scope.role is UserRole.TEACHER:
            if not scope.has_class:
                return false()
            return and_(Student.school_id == scope.school_id, Student.grade == scope.class_name)
        if scope.role is UserRole.PARENT:
            return Student.parent_id == scope.record_id
        return Student.id == scope.record_id

    def permits(self, scope: Scope, student: Student) -> bool:
        if scope.unrestricted:
            return True
        if scope.role is UserRole.MANAGER:
            return scope.in_school(student.school_id)
        if scope.role is UserRole.TEACHER:
            return scope.in_class(student.school_id, student.grade)
        if scope.role is UserRole.PARENT:
            return scope.is_record(student.parent_id)
        return scope.is_record(student.id)

    def ensure_can_create(self, scope: Scope, school_id: int, grade: str) -> None:
        self.check_role(scope, Action.CREATE)
        if scope.unrestricted:
            return
        if scope.role is UserRole.MANAGER and scope.in_school(school_id):
            return
        if scope.role is UserRole.TEACHER and scope.in_class(school_id, grade):
            return
        raise self._deny_create(scope)

    def ensure_can_assign_parent(self, scope: Scope, parent: Parent) -> None:
        """A parent with children in another school is out of reach for school staff."""
        if scope.unrestricted:
            return
        if all(scope.in_school(s.school_id) for s in parent.students):
            return
        raise Forbidden("Bu veli sizin okulunuza ait değil")


class TeacherPolicy(RecordPolicy):
    allowed_roles = {
        Action.LIST: _STAFF,
        Action.READ: _STAFF,
        Action.CREATE: _MANAGEMENT,
        Action.UPDATE: _MANAGEMENT,
        Action.DELETE: _MANAGEMENT,
    }
    denied_messages = {
        UserRole.MANAGER: "Bu öğretmen sizin okulunuza ait değil",
        UserRole.TEACHER: "Kendi dışınızdaki öğretmen bilgilerine erişemezsiniz",
    }
    create_denied_messages = {
        UserRole.MANAGER: "Sadece kendi okulunuza öğretmen ekleyebilirsiniz",
    }

    def visible(self, scope: Scope) -> ColumnElement[bool]:
        if scope.unrestricted:
            return true()
        if not scope.anchored:
            return false()
        if scope.role is UserRole.MANAGER:
            return Teacher.school_id == scope.school_id
        if scope.role is UserRole.TEACHER:
            return Teacher.id == scope.record_id
        return false()

    def permits(self, scope: Scope, teacher: Teacher) -> bool:
        if scope.unrestricted:
            return True
        if scope.role is UserRole.MANAGER:
            return scope.in_school(teacher.school_id)
        if scope.role is UserRole.TEACHER:
            return scope.is_record(teacher.id)
        return False

    def ensure_can_create(self, scope: Scope, school_id: int) -> None:
        self.check_role(scope, Action.CREATE)
        if scope.unrestricted or scope.in_school(school_id):
            return
        raise self._deny_create(scope)


class ParentPolicy(RecordPolicy):
    allowed_roles = {
        Action.LIST: frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.TEACHER, UserRole.PARENT}),
        Action.READ: frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.TEACHER, UserRole.PARENT}),
        Action.CREATE: _MANAGEMENT,
        Action.UPDATE: _MANAGEMENT,
        Action.DELETE: _MANAGEMENT,
    }
    denied_messages = {
        UserRole.MANAGER: "Bu veli sizin okulunuza ait değil",
        UserRole.TEACHER: "Bu veli sizin sınıfınıza ait değil",
        UserRole.PARENT: "Kendi dışınızdaki velilere erişemezsiniz",
    }
    create_denied_messages = {
        UserRole.MANAGER: "Bu öğrenciler sizin okulunuza ait değil",
    }

    def visible(self, scope: Scope) -> ColumnElement[bool]:
        if scope.unrestricted:
            return true()
        if not scope.anchored:
            return false()
        if scope.role is UserRole.MANAGER:
            return Parent.students.any(Student.school_id == scope.school_id)
        if scope.role is UserRole.TEACHER:
            if not scope.has_class:
                return false()
            return Parent.students.any(
                and_(Student.school_id == scope.school_id, Student.grade == scope.class_name)
            )
        if scope.role is UserRole.PARENT:
            return Parent.id == scope.record_id
        return false()

    def permits(self, scope: Scope, parent: Parent) -> bool:
        if scope.unrestricted:
            return True
        if scope.role is UserRole.MANAGER:
            return any(scope.in_school(s.school_id) for s in parent.students)
        if scope.role is UserRole.TEACHER:
            return any(scope.in_class(s.school_id, s.grade) for s in parent.students)
        if scope.role is UserRole.PARENT:
            return scope.is_record(parent.id)
        return False

    def ensure_can_link(self, scope: Scope, students: list[Student]) -> None:
        """Managers may only attach students of their own school to a parent."""
        if scope.unrestricted or not students:
            return
        if scope.role is UserRole.MANAGER and all(scope.in_school(s.school_id) for s in students):
            return
        raise self._deny_create(scope)

    def replace_links(self, scope: Scope, current: list[Student], requested: list[Student]) -> list[Student]:
        """New linked set for a parent; students outside the caller's school keep their link."""
        if scope.unrestricted:
            return requested
        kept = [s for s in current if not scope.in_school(s.school_id)]
        return kept + [s for s in requested if s not in kept]


STUDENTS = StudentPolicy()
TEACHERS = TeacherPolicy()
PARENTS = ParentPolicy()
