from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.orm import Session

from . import records, services
from .config import Settings
from .database import get_db_session
from .errors import envelope
from .middleware import Identity, get_current_identity, get_token_service, require_admin
from .schemas import (
    MAX_ID,
    ChangePasswordRequest,
    Envelope,
    LoginRequest,
    LoginResult,
    ParentCreateRequest,
    ParentOut,
    ParentUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    SchoolCreateRequest,
    SchoolOut,
    StudentCreateRequest,
    StudentOut,
    StudentUpdateRequest,
    TeacherCreateRequest,
    TeacherOut,
    TeacherUpdateRequest,
    TokenPair,
    UserOut,
)
from .security import TokenService


RecordPath = Annotated[int, Path(ge=1, le=MAX_ID)]


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _many(schema, rows) -> list:
    return [schema.model_validate(row) for row in rows]


# --- auth -------------------------------------------------------------------

auth_router = APIRouter(tags=["Auth"])


@auth_router.post("/register", response_model=Envelope[UserOut], status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
):
    user = services.register_user(db, settings, payload)
    return envelope(True, "Kullanıcı başarıyla oluşturuldu", UserOut.model_validate(user))


@auth_router.post("/login", response_model=Envelope[LoginResult])
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db_session),
    tokens: TokenService = Depends(get_token_service),
):
    user, access_token, refresh_token = services.login_user(db, tokens, email=payload.email, password=payload.password)
    result = LoginResult(access_token=access_token, refresh_token=refresh_token, user=UserOut.model_validate(user))
    return envelope(True, "Giriş başarılı", result)


@auth_router.get("/me", response_model=Envelope[UserOut])
def me(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db_session)):
    user = services.get_profile(db, identity.id)
    return envelope(True, "Kullanıcı bilgisi getirildi", UserOut.model_validate(user))


@auth_router.post("/refresh", response_model=Envelope[TokenPair])
def refresh(
    payload: RefreshRequest,
    db: Session = Depends(get_db_session),
    tokens: TokenService = Depends(get_token_service),
):
    access_token, refresh_token = services.refresh_session(db, tokens, payload.refresh_token)
    return envelope(True, "Token başarıyla yenilendi", TokenPair(access_token=access_token, refresh_token=refresh_token))


@auth_router.post("/change-password", response_model=Envelope)
def change_password(
    payload: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
):
    services.change_password(db, settings, identity.id, payload)
    return envelope(True, "Şifre başarıyla değiştirildi")


@auth_router.post("/logout", response_model=Envelope)
def logout(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db_session)):
    services.logout_user(db, identity.id)
    return envelope(True, "Çıkış başarılı")


# --- admin ------------------------------------------------------------------

admin_router = APIRouter(tags=["Admin"], dependencies=[Depends(require_admin)])


@admin_router.get("/users", response_model=Envelope[list[UserOut]])
def list_users(db: Session = Depends(get_db_session)):
    return envelope(True, "Kullanıcılar başarıyla listelendi", _many(UserOut, services.list_users(db)))


@admin_router.get("/schools", response_model=Envelope[list[SchoolOut]])
def list_schools(db: Session = Depends(get_db_session)):
    return envelope(True, "Okullar başarıyla listelendi", _many(SchoolOut, services.list_schools(db)))


@admin_router.post("/schools", response_model=Envelope[SchoolOut], status_code=status.HTTP_201_CREATED)
def create_school(payload: SchoolCreateRequest, db: Session = Depends(get_db_session)):
    school = services.create_school(db, payload)
    return envelope(True, "Okul başarıyla eklendi", SchoolOut.model_validate(school))


# --- teachers ---------------------------------------------------------------

teachers_router = APIRouter(prefix="/teachers", tags=["Teachers"])


@teachers_router.get("", response_model=Envelope[list[TeacherOut]])
def list_teachers(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db_session)):
    teachers = records.list_teachers(db, identity)
    return envelope(True, "Öğretmenler başarıyla listelendi", _many(TeacherOut, teachers))


@teachers_router.get("/{teacher_id}", response_model=Envelope[TeacherOut])
def get_teacher(
    teacher_id: RecordPath,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    teacher = records.get_teacher(db, identity, teacher_id)
    return envelope(True, "Öğretmen bilgileri getirildi", TeacherOut.model_validate(teacher))


@teachers_router.post("", response_model=Envelope[TeacherOut], status_code=status.HTTP_201_CREATED)
def create_teacher(
    payload: TeacherCreateRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    teacher = records.create_teacher(db, identity, payload)
    return envelope(True, "Öğretmen başarıyla eklendi", TeacherOut.model_validate(teacher))


@teachers_router.patch("/{teacher_id}", response_model=Envelope[TeacherOut])
def update_teacher(
    teacher_id: RecordPath,
    payload: TeacherUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    teacher = records.update_teacher(db, identity, teacher_id, payload)
    return envelope(True, "Öğretmen bilgileri güncellendi", TeacherOut.model_validate(teacher))


@teachers_router.delete("/{teacher_id}", response_model=Envelope)
def delete_teacher(
    teacher_id: RecordPath,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    records.delete_teacher(db, identity, teacher_id)
    return envelope(True, "Öğretmen başarıyla silindi")


# --- students ---------------------------------------------------------------

students_router = APIRouter(prefix="/students", tags=["Students"])


@students_router.get("", response_model=Envelope[list[StudentOut]])
def list_students(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db_session)):
    students = records.list_students(db, identity)
    return envelope(True, "Öğrenciler başarıyla listelendi", _many(StudentOut, students))


@students_router.get("/{student_id}", response_model=Envelope[StudentOut])
def get_student(
    student_id: RecordPath,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    student = records.get_student(db, identity, student_id)
    return envelope(True, "Öğrenci bilgileri getirildi", StudentOut.model_validate(student))


@students_router.post("", response_model=Envelope[StudentOut], status_code=status.HTTP_201_CREATED)
def create_student(
    payload: StudentCreateRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    student = records.create_student(db, identity, payload)
    return envelope(True, "Yeni öğrenci başarıyla eklendi", StudentOut.model_validate(student))


@students_router.patch("/{student_id}", response_model=Envelope[StudentOut])
def update_student(
    student_id: RecordPath,
    payload: StudentUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    student = records.update_student(db, identity, student_id, payload)
    return envelope(True, "Öğrenci bilgileri güncellendi", StudentOut.model_validate(student))


@students_router.delete("/{student_id}", response_model=Envelope)
def delete_student(
    student_id: RecordPath,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    records.delete_student(db, identity, student_id)
    return envelope(True, "Öğrenci başarıyla silindi")


# --- parents ----------------------------------------------------------------

parents_router = APIRouter(prefix="/parents", tags=["Parents"])


@parents_router.get("", response_model=Envelope[list[ParentOut]])
def list_parents(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db_session)):
    parents = records.list_parents(db, identity)
    return envelope(True, "Veliler başarıyla listelendi", _many(ParentOut, parents))


@parents_router.get("/{parent_id}", response_model=Envelope[ParentOut])
def get_parent(
    parent_id: RecordPath,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    parent = records.get_parent(db, identity, parent_id)
    return envelope(True, "Veli bilgileri getirildi", ParentOut.model_validate(parent))


@parents_router.post("", response_model=Envelope[ParentOut], status_code=status.HTTP_201_CREATED)
def create_parent(
    payload: ParentCreateRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    parent = records.create_parent(db, identity, payload)
    return envelope(True, "Yeni veli başarıyla eklendi", ParentOut.model_validate(parent))


@parents_router.patch("/{parent_id}", response_model=Envelope[ParentOut])
def update_parent(
    parent_id: RecordPath,
    payload: ParentUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    parent = records.update_parent(db, identity, parent_id, payload)
    return envelope(True, "Veli bilgileri güncellendi", ParentOut.model_validate(parent))


@parents_router.delete("/{parent_id}", response_model=Envelope)
def delete_parent(
    parent_id: RecordPath,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db_session),
):
    records.delete_parent(db, identity, parent_id)
    return envelope(True, "Veli başarıyla silindi")


ROUTERS = (auth_router, admin_router, teachers_router, students_router, parents_router)
