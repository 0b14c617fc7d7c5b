"""Teacher, student and parent operations run inside the caller's scope.

Every operation follows the same order: role check, fetch, scope check,
then the store write. Nothing is written before all checks have passed.
"""
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .errors import NotFound, ValidationFailed, store_errors
from .middleware import Identity
from .models import Parent, School, Student, Teacher, User, UserRole
from .policy import PARENTS, STUDENTS, TEACHERS, Action, resolve_scope
from .schemas import (
    ParentCreateRequest,
    ParentUpdateRequest,
    StudentCreateRequest,
    StudentUpdateRequest,
    TeacherCreateRequest,
    TeacherUpdateRequest,
)


logger = logging.getLogger(__name__)

# columns that may not be cleared by a PATCH
REQUIRED_COLUMNS = {"name", "subject", "grade"}


def _patch_values(payload) -> dict:
    values = payload.model_dump(exclude_unset=True)
    return {k: v for k, v in values.items() if v is not None or k not in REQUIRED_COLUMNS}


def _require(db: Session, model, record_id: int | None, message: str):
    if record_id is None:
        return None
    record = db.get(model, record_id)
    if record is None:
        raise NotFound(message)
    return record


def _require_account(db: Session, user_id: int | None, role: UserRole) -> None:
    user = _require(db, User, user_id, "Kullanıcı bulunamadı")
    if user is not None and user.role is not role:
        raise ValidationFailed(f"Bağlanacak kullanıcı '{role.value}' rolünde olmalıdır")


def _load_students(db: Session, student_ids: list[int]) -> list[Student]:
    ids = list(dict.fromkeys(student_ids))
    if not ids:
        return []
    students = list(db.scalars(select(Student).where(Student.id.in_(ids))))
    if len(students) != len(ids):
        raise NotFound("Öğrenci bulunamadı")
    return students


# --- teachers ---------------------------------------------------------------


def list_teachers(db: Session, identity: Identity) -> list[Teacher]:
    TEACHERS.check_role(identity, Action.LIST)
    with store_errors(db, "Öğretmenler listelenirken hata oluştu"):
        scope = resolve_scope(db, identity)
        query = (
            select(Teacher)
            .where(TEACHERS.visible(scope))
            .options(selectinload(Teacher.school), selectinload(Teacher.user))
            .order_by(Teacher.id)
        )
        return list(db.scalars(query))


def _fetch_teacher(db: Session, identity: Identity, teacher_id: int, action: Action) -> Teacher:
    TEACHERS.check_role(identity, action)
    teacher = db.get(Teacher, teacher_id)
    if teacher is None:
        raise NotFound("Öğretmen bulunamadı")
    TEACHERS.ensure_permitted(resolve_scope(db, identity), teacher)
    return teacher


def get_teacher(db: Session, identity: Identity, teacher_id: int) -> Teacher:
    with store_errors(db, "Öğretmen bilgileri alınamadı"):
        return _fetch_teacher(db, identity, teacher_id, Action.READ)


def create_teacher(db: Session, identity: Identity, payload: TeacherCreateRequest) -> Teacher:
    TEACHERS.check_role(identity, Action.CREATE)
    with store_errors(db, "Öğretmen eklenirken hata oluştu", conflict_message="Bu kullanıcı zaten bir öğretmene bağlı"):
        TEACHERS.ensure_can_create(resolve_scope(db, identity), payload.school_id)
        _require(db, School, payload.school_id, "Okul bulunamadı")
        _require_account(db, payload.user_id, UserRole.TEACHER)

        teacher = Teacher(**payload.model_dump())
        db.add(teacher)
        db.commit()
        db.refresh(teacher)
    logger.info("Teacher %s created by user %s", teacher.id, identity.id)
    return teacher


def update_teacher(db: Session, identity: Identity, teacher_id: int, payload: TeacherUpdateRequest) -> Teacher:
    with store_errors(db, "Öğretmen güncellenirken hata oluştu", conflict_message="Bu kullanıcı zaten bir öğretmene bağlı"):
        teacher = _fetch_teacher(db, identity, teacher_id, Action.UPDATE)
        values = _patch_values(payload)
        _require_account(db, values.get("user_id"), UserRole.TEACHER)
        for field, value in values.items():
            setattr(teacher, field, value)
        db.commit()
        db.refresh(teacher)
    return teacher


def delete_teacher(db: Session, identity: Identity, teacher_id: int) -> None:
    with store_errors(db, "Öğretmen silinirken hata oluştu"):
        teacher = _fetch_teacher(db, identity, teacher_id, Action.DELETE)
        db.delete(teacher)
        db.commit()
    logger.info("Teacher %s deleted by user %s", teacher_id, identity.id)


# --- students ---------------------------------------------------------------


def list_students(db: Session, identity: Identity) -> list[Student]:
    STUDENTS.check_role(identity, Action.LIST)
    with store_errors(db, "Öğrenciler listelenirken hata oluştu"):
        scope = resolve_scope(db, identity)
        query = (
            select(Student)
            .where(STUDENTS.visible(scope))
            .options(selectinload(Student.school), selectinload(Student.parent))
            .order_by(Student.id)
        )
        return list(db.scalars(query))


def _fetch_student(db: Session, identity: Identity, student_id: int, action: Action) -> Student:
    STUDENTS.check_role(identity, action)
    student = db.get(Student, student_id)
    if student is None:
        raise NotFound("Öğrenci bulunamadı")
    STUDENTS.ensure_permitted(resolve_scope(db, identity), student)
    return student


def get_student(db: Session, identity: Identity, student_id: int) -> Student:
    with store_errors(db, "Öğrenci bilgileri alınamadı"):
        return _fetch_student(db, identity, student_id, Action.READ)


def create_student(db: Session, identity: Identity, payload: StudentCreateRequest) -> Student:
    STUDENTS.check_role(identity, Action.CREATE)
    with store_errors(db, "Öğrenci eklenirken hata oluştu", conflict_message="Bu kullanıcı zaten bir öğrenciye bağlı"):
        scope = resolve_scope(db, identity)
        STUDENTS.ensure_can_create(scope, payload.school_id, payload.grade)
        _require(db, School, payload.school_id, "Okul bulunamadı")
        parent = _require(db, Parent, payload.parent_id, "Veli bulunamadı")
        if parent is not None:
            STUDENTS.ensure_can_assign_parent(scope, parent)
        _require_account(db, payload.user_id, UserRole.STUDENT)

        student = Student(**payload.model_dump())
        db.add(student)
        db.commit()
        db.refresh(student)
    logger.info("Student %s created by user %s", student.id, identity.id)
    return student


def update_student(db: Session, identity: Identity, student_id: int, payload: StudentUpdateRequest) -> Student:
    with store_errors(db, "Öğrenci güncellenirken hata oluştu", conflict_message="Bu kullanıcı zaten bir öğrenciye bağlı"):
        student = _fetch_student(db, identity, student_id, Action.UPDATE)
        values = _patch_values(payload)
        parent = _require(db, Parent, values.get("parent_id"), "Veli bulunamadı")
        if parent is not None:
            STUDENTS.ensure_can_assign_parent(resolve_scope(db, identity), parent)
        _require_account(db, values.get("user_id"), UserRole.STUDENT)
        for field, value in values.items():
            setattr(student, field, value)
        db.commit()
        db.refresh(student)
    return student


def delete_student(db: Session, identity: Identity, student_id: int) -> None:
    with store_errors(db, "Öğrenci silinirken hata oluştu"):
        student = _fetch_student(db, identity, student_id, Action.DELETE)
        db.delete(student)
        db.commit()
    logger.info("Student %s deleted by user %s", student_id, identity.id)


# --- parents ----------------------------------------------------------------


def list_parents(db: Session, identity: Identity) -> list[Parent]:
    PARENTS.check_role(identity, Action.LIST)
    with store_errors(db, "Veliler listelenirken hata oluştu"):
        scope = resolve_scope(db, identity)
        query = (
            select(Parent)
            .where(PARENTS.visible(scope))
            .options(selectinload(Parent.students), selectinload(Parent.user))
            .order_by(Parent.id)
        )
        return list(db.scalars(query))


def _fetch_parent(db: Session, identity: Identity, parent_id: int, action: Action) -> Parent:
    PARENTS.check_role(identity, action)
    parent = db.get(Parent, parent_id, options=[selectinload(Parent.students)])
    if parent is None:
        raise NotFound("Veli bulunamadı")
    PARENTS.ensure_permitted(resolve_scope(db, identity), parent)
    return parent


def get_parent(db: Session, identity: Identity, parent_id: int) -> Parent:
    with store_errors(db, "Veli bilgileri alınamadı"):
        return _fetch_parent(db, identity, parent_id, Action.READ)


def create_parent(db: Session, identity: Identity, payload: ParentCreateRequest) -> Parent:
    PARENTS.check_role(identity, Action.CREATE)
    with store_errors(db, "Veli eklenirken hata oluştu", conflict_message="Bu kullanıcı zaten bir veliye bağlı"):
        students = _load_students(db, payload.student_ids)
        PARENTS.ensure_can_link(resolve_scope(db, identity), students)
        _require_account(db, payload.user_id, UserRole.PARENT)

        parent = Parent(**payload.model_dump(exclude={"student_ids"}))
        parent.students = students
        db.add(parent)
        db.commit()
        db.refresh(parent)
    logger.info("Parent %s created by user %s", parent.id, identity.id)
    return parent


def update_parent(db: Session, identity: Identity, parent_id: int, payload: ParentUpdateRequest) -> Parent:
    with store_errors(db, "Veli güncellenirken hata oluştu", conflict_message="Bu kullanıcı zaten bir veliye bağlı"):
        parent = _fetch_parent(db, identity, parent_id, Action.UPDATE)
        values = _patch_values(payload)
        student_ids = values.pop("student_ids", None)
        _require_account(db, values.get("user_id"), UserRole.PARENT)
        if student_ids is not None:
            scope = resolve_scope(db, identity)
            students = _load_students(db, student_ids)
            PARENTS.ensure_can_link(scope, students)
            # dropped students lose their parent
            parent.students = PARENTS.replace_links(scope, parent.students, students)
        for field, value in values.items():
            setattr(parent, field, value)
        db.commit()
        db.refresh(parent)
    return parent


def delete_parent(db: Session, identity: Identity, parent_id: int) -> None:
    with store_errors(db, "Veli silinirken hata oluştu"):
        parent = _fetch_parent(db, identity, parent_id, Action.DELETE)
        # linked students stay, with parent_id cleared on flush
        db.delete(parent)
        db.commit()
    logger.info("Parent %s deleted by user %s", parent_id, identity.id)
