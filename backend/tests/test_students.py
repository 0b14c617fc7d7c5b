from sqlalchemy import func, select

from school_rbac.models import Student


def ids(response) -> set[int]:
    assert response.status_code == 200, response.text
    return {item["id"] for item in response.json()["data"]}


def test_admin_lists_every_student(client, world, auth, db):
    total = db.scalar(select(func.count()).select_from(Student))
    assert len(ids(client.get("/students", headers=auth(world.admin)))) == total


def test_manager_lists_own_school(client, world, auth):
    expected = {world.child_5a.id, world.child_5b.id, world.lowercase_5a.id}
    assert ids(client.get("/students", headers=auth(world.manager))) == expected


def test_manager_without_school_gets_empty_list(client, world, auth):
    response = client.get("/students", headers=auth(world.homeless_manager))
    assert response.status_code == 200
    assert response.json()["data"] == []


def test_teacher_lists_own_class_case_sensitively(client, world, auth):
    assert ids(client.get("/students", headers=auth(world.teacher_user))) == {world.child_5a.id}


def test_unassigned_teacher_gets_empty_list(client, world, auth):
    assert ids(client.get("/students", headers=auth(world.orphan_teacher_user))) == set()


def test_parent_lists_own_children(client, world, auth):
    assert ids(client.get("/students", headers=auth(world.parent_user))) == {world.child_5a.id, world.child_5b.id}
    assert ids(client.get("/students", headers=auth(world.lonely_parent_user))) == set()


def test_student_lists_self(client, world, auth):
    assert ids(client.get("/students", headers=auth(world.student_user))) == {world.child_5a.id}


def test_student_payload_includes_school_and_parent(client, world, auth):
    response = client.get(f"/students/{world.child_5a.id}", headers=auth(world.admin))
    data = response.json()["data"]
    assert data["schoolId"] == world.school.id
    assert data["school"]["name"] == "Ankara Koleji"
    assert data["parent"]["id"] == world.parent.id


def test_teacher_cannot_read_other_class(client, world, auth):
    response = client.get(f"/students/{world.child_5b.id}", headers=auth(world.teacher_user))
    assert response.status_code == 403
    assert response.json()["message"] == "Bu öğrenci sizin sınıfınıza ait değil"


def test_teacher_cannot_read_lowercase_grade(client, world, auth):
    assert client.get(f"/students/{world.lowercase_5a.id}", headers=auth(world.teacher_user)).status_code == 403


def test_single_read_scopes(client, world, auth):
    assert client.get(f"/students/{world.child_5a.id}", headers=auth(world.teacher_user)).status_code == 200
    assert client.get(f"/students/{world.foreign_student.id}", headers=auth(world.manager)).status_code == 403
    assert client.get(f"/students/{world.child_5b.id}", headers=auth(world.parent_user)).status_code == 200
    assert client.get(f"/students/{world.foreign_student.id}", headers=auth(world.parent_user)).status_code == 403
    assert client.get(f"/students/{world.child_5a.id}", headers=auth(world.student_user)).status_code == 200
    assert client.get(f"/students/{world.child_5b.id}", headers=auth(world.student_user)).status_code == 403


def test_missing_student_is_404(client, world, auth):
    assert client.get("/students/9999", headers=auth(world.admin)).status_code == 404


def test_non_numeric_id_is_400(client, world, auth):
    assert client.get("/students/abc", headers=auth(world.admin)).status_code == 400


def test_manager_cannot_create_in_other_school(client, world, auth, db):
    before = db.scalar(select(func.count()).select_from(Student))
    response = client.post(
        "/students",
        headers=auth(world.manager),
        json={"name": "Yeni", "grade": "6A", "schoolId": world.other_school.id},
    )
    assert response.status_code == 403
    assert response.json()["message"] == "Sadece kendi okulunuza öğrenci ekleyebilirsiniz"
    assert db.scalar(select(func.count()).select_from(Student)) == before


def test_manager_creates_in_own_school(client, world, auth):
    response = client.post(
        "/students",
        headers=auth(world.manager),
        json={"name": "  Yeni  ", "grade": "6A", "schoolId": str(world.school.id), "parentId": world.parent.id},
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["name"] == "Yeni"
    assert data["schoolId"] == world.school.id
    assert data["parentId"] == world.parent.id


def test_teacher_creates_only_in_own_class(client, world, auth):
    own = {"name": "Sınıf İçi", "grade": "5A", "schoolId": world.school.id}
    assert client.post("/students", headers=auth(world.teacher_user), json=own).status_code == 201

    other = {"name": "Sınıf Dışı", "grade": "5B", "schoolId": world.school.id}
    response = client.post("/students", headers=auth(world.teacher_user), json=other)
    assert response.status_code == 403


def test_parent_and_student_cannot_create(client, world, auth):
    body = {"name": "X", "grade": "5A", "schoolId": world.school.id}
    assert client.post("/students", headers=auth(world.parent_user), json=body).status_code == 403
    assert client.post("/students", headers=auth(world.student_user), json=body).status_code == 403


def test_create_requires_fields(client, world, auth):
    response = client.post("/students", headers=auth(world.admin), json={"name": "  ", "schoolId": world.school.id})
    assert response.status_code == 400


def test_create_rejects_non_numeric_school(client, world, auth):
    body = {"name": "X", "grade": "5A", "schoolId": "bir"}
    assert client.post("/students", headers=auth(world.admin), json=body).status_code == 400


def test_create_in_unknown_school(client, world, auth):
    body = {"name": "X", "grade": "5A", "schoolId": 9999}
    response = client.post("/students", headers=auth(world.admin), json=body)
    assert response.status_code == 404
    assert response.json()["message"] == "Okul bulunamadı"


def test_patch_changes_only_supplied_fields(client, world, auth):
    response = client.patch(f"/students/{world.child_5b.id}", headers=auth(world.manager), json={"name": "Can Yeni"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Can Yeni"
    assert data["grade"] == "5B"
    assert data["parentId"] == world.parent.id


def test_patch_can_unlink_parent(client, world, auth):
    response = client.patch(f"/students/{world.child_5b.id}", headers=auth(world.admin), json={"parentId": None})
    assert response.status_code == 200
    assert response.json()["data"]["parentId"] is None


def test_teacher_cannot_patch_other_class(client, world, auth):
    response = client.patch(f"/students/{world.child_5b.id}", headers=auth(world.teacher_user), json={"name": "X"})
    assert response.status_code == 403


def test_delete_scopes(client, world, auth, db):
    assert client.delete(f"/students/{world.foreign_student.id}", headers=auth(world.manager)).status_code == 403
    assert client.delete(f"/students/{world.child_5a.id}", headers=auth(world.parent_user)).status_code == 403

    student_id = world.child_5a.id
    response = client.delete(f"/students/{student_id}", headers=auth(world.teacher_user))
    assert response.status_code == 200
    assert response.json()["data"] is None
    db.expire_all()
    assert db.get(Student, student_id) is None


def test_oversized_ids_are_400(client, world, auth):
    huge = 10**25
    assert client.get(f"/students/{huge}", headers=auth(world.admin)).status_code == 400
    assert client.delete(f"/students/{huge}", headers=auth(world.admin)).status_code == 400
    body = {"name": "X", "grade": "5A", "schoolId": huge}
    response = client.post("/students", headers=auth(world.admin), json=body)
    assert response.status_code == 400
    assert response.json()["kind"] == "validation"


def test_teacher_cannot_link_parent_from_other_school(client, world, auth, db):
    response = client.patch(
        f"/students/{world.child_5a.id}", headers=auth(world.teacher_user), json={"parentId": world.foreign_parent.id}
    )
    assert response.status_code == 403
    db.expire_all()
    assert db.get(Student, world.child_5a.id).parent_id == world.parent.id


def test_manager_cannot_create_student_under_foreign_parent(client, world, auth):
    body = {"name": "Yeni", "grade": "6A", "schoolId": world.school.id, "parentId": world.foreign_parent.id}
    response = client.post("/students", headers=auth(world.manager), json=body)
    assert response.status_code == 403
    assert response.json()["message"] == "Bu veli sizin okulunuza ait değil"


def test_teacher_may_link_childless_parent(client, world, auth):
    response = client.patch(
        f"/students/{world.child_5a.id}", headers=auth(world.teacher_user), json={"parentId": world.lonely_parent.id}
    )
    assert response.status_code == 200
    assert response.json()["data"]["parentId"] == world.lonely_parent.id


def test_student_account_link_requires_student_role(client, world, auth):
    body = {"name": "Yeni", "grade": "5A", "schoolId": world.school.id, "userId": world.parent_user.id}
    response = client.post("/students", headers=auth(world.admin), json=body)
    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
