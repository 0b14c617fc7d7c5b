import pytest
from fastapi.testclient import TestClient

from school_rbac import Settings, create_app
from school_rbac.models import Parent, School, Student, Teacher, User, UserRole
from school_rbac.security import hash_password


PASSWORD = "Secret123!"


@pytest.fixture
def settings():
    return Settings(
        jwt_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        database_url="sqlite://",
        bcrypt_rounds=4,
        log_level="WARNING",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db(client, app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def tokens(app):
    return app.state.token_service


class World:
    """A small school graph covering every role."""

    def __init__(self, db):
        self.db = db

    def user(self, role: UserRole, email: str, name: str = "Test User") -> User:
        user = User(name=name, email=email, password_hash=hash_password(PASSWORD, rounds=4), role=role)
        self.db.add(user)
        self.db.commit()
        return user

    def add(self, record):
        self.db.add(record)
        self.db.commit()
        return record


@pytest.fixture
def world(db):
    w = World(db)
    w.admin = w.user(UserRole.ADMIN, "admin@school.test", "Admin")
    w.manager = w.user(UserRole.MANAGER, "manager@school.test", "Manager One")
    w.other_manager = w.user(UserRole.MANAGER, "manager2@school.test", "Manager Two")
    w.homeless_manager = w.user(UserRole.MANAGER, "nomanager@school.test", "No School")
    w.teacher_user = w.user(UserRole.TEACHER, "teacher@school.test", "Teacher 5A")
    w.orphan_teacher_user = w.user(UserRole.TEACHER, "orphan@school.test", "Unassigned Teacher")
    w.parent_user = w.user(UserRole.PARENT, "parent@school.test", "Parent")
    w.lonely_parent_user = w.user(UserRole.PARENT, "lonely@school.test", "Lonely Parent")
    w.student_user = w.user(UserRole.STUDENT, "student@school.test", "Student")

    w.school = w.add(School(name="Ankara Koleji", manager_id=w.manager.id))
    w.other_school = w.add(School(name="İzmir Koleji", manager_id=w.other_manager.id))

    w.teacher = w.add(
        Teacher(name="Ayşe", subject="Matematik", class_name="5A", school_id=w.school.id, user_id=w.teacher_user.id)
    )
    w.colleague = w.add(Teacher(name="Mehmet", subject="Fizik", class_name="5B", school_id=w.school.id))
    w.foreign_teacher = w.add(Teacher(name="Zeynep", subject="Kimya", class_name="5A", school_id=w.other_school.id))

    w.parent = w.add(Parent(name="Veli Bir", phone="555", user_id=w.parent_user.id))
    w.lonely_parent = w.add(Parent(name="Veli İki", user_id=w.lonely_parent_user.id))
    w.foreign_parent = w.add(Parent(name="Veli Üç"))

    w.child_5a = w.add(
        Student(name="Ali", grade="5A", school_id=w.school.id, parent_id=w.parent.id, user_id=w.student_user.id)
    )
    w.child_5b = w.add(Student(name="Can", grade="5B", school_id=w.school.id, parent_id=w.parent.id))
    w.lowercase_5a = w.add(Student(name="Deniz", grade="5a", school_id=w.school.id))
    w.foreign_student = w.add(
        Student(name="Ece", grade="5A", school_id=w.other_school.id, parent_id=w.foreign_parent.id)
    )
    return w


@pytest.fixture
def auth(tokens):
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {tokens.issue_access_token(user.id, user.role)}"}

    return _headers
