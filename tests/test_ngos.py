import pytest
from unittest.mock import patch
from models import Ngo
from extensions import db

# ==========================================
#  FIXTURES
# ==========================================

@pytest.fixture
def admin_headers(make_user, login):
    make_user("admin@test.com", "admin")
    return login("admin@test.com")


@pytest.fixture
def ngo_headers(make_user, login):
    make_user("ngo@test.com", "ngo", name="Priya")
    return login("ngo@test.com")


@pytest.fixture
def profile_payload():
    return {
        "organizationName": "Bright Future Foundation",
        "description": "Providing education and nutrition",
        "mission": "Breaking the cycle of poverty",
        "location": "Mumbai, Maharashtra",
        "focusAreas": ["Education", "Nutrition"],
        "registrationNumber": "NGO/2015/BFF",
        "phone": "+91-9876543210"
    }

# ==========================================
#  1. PROFILE CREATION
# ==========================================

def test_create_profile_success(client, ngo_headers, profile_payload):
    response = client.post('/api/ngos', json=profile_payload, headers=ngo_headers)

    assert response.status_code == 201
    data = response.get_json()
    assert data['organizationName'] == "Bright Future Foundation"
    assert data['focusAreas'] == ["Education", "Nutrition"]
    assert data['verified'] is False
    assert Ngo.query.count() == 1


def test_create_profile_ignores_client_verification(client, ngo_headers, profile_payload):
    """Security: an NGO cannot verify itself at creation time."""
    profile_payload.update({"verified": True, "impactScore": "99.9"})
    response = client.post('/api/ngos', json=profile_payload, headers=ngo_headers)

    assert response.status_code == 201
    assert response.get_json()['verified'] is False
    assert response.get_json()['impactScore'] == "0.0"


def test_create_profile_only_once(client, ngo_headers, profile_payload):
    client.post('/api/ngos', json=profile_payload, headers=ngo_headers)
    response = client.post('/api/ngos', json=profile_payload, headers=ngo_headers)

    assert response.status_code == 400
    assert response.get_json()['message'] == 'NGO profile already exists'


def test_create_profile_requires_ngo_role(client, make_user, login, profile_payload):
    make_user("donor@test.com", "donor")
    response = client.post('/api/ngos', json=profile_payload, headers=login("donor@test.com"))
    assert response.status_code == 403


def test_create_profile_missing_location(client, ngo_headers, profile_payload):
    del profile_payload['location']
    response = client.post('/api/ngos', json=profile_payload, headers=ngo_headers)
    assert response.status_code == 400


def test_get_own_profile(client, ngo_headers, profile_payload):
    assert client.get('/api/ngos/profile', headers=ngo_headers).status_code == 404

    client.post('/api/ngos', json=profile_payload, headers=ngo_headers)
    response = client.get('/api/ngos/profile', headers=ngo_headers)

    assert response.status_code == 200
    assert response.get_json()['organizationName'] == "Bright Future Foundation"

# ==========================================
#  2. ADMIN VERIFICATION
# ==========================================

def test_ngo_listed_only_after_verification(client, admin_headers, make_ngo):
    ngo = make_ngo("hope@test.com", "Hope Trust", verified=False)

    # 1. Not public yet, waiting in the admin queue
    assert client.get('/api/ngos').get_json() == []
    pending = client.get('/api/ngos/pending', headers=admin_headers).get_json()
    assert [n['id'] for n in pending] == [ngo.id]

    # 2. Admin verifies
    with patch('extensions.mail.send') as mock_mail:
        response = client.patch(f'/api/ngos/{ngo.id}/verify', json={"verified": True},
                                headers=admin_headers)
        assert mock_mail.called

    assert response.status_code == 200
    assert response.get_json()['verified'] is True

    # 3. Now public and gone from the queue
    listed = client.get('/api/ngos').get_json()
    assert [n['organizationName'] for n in listed] == ["Hope Trust"]
    assert client.get('/api/ngos/pending', headers=admin_headers).get_json() == []


def test_admin_can_revoke_verification(client, admin_headers, make_ngo):
    ngo = make_ngo("hope@test.com", "Hope Trust", verified=True)

    response = client.patch(f'/api/ngos/{ngo.id}/verify', json={"verified": False},
                            headers=admin_headers)

    assert response.status_code == 200
    assert client.get('/api/ngos').get_json() == []


def test_ngo_cannot_verify_itself(client, make_ngo, login):
    ngo = make_ngo("self@test.com", "Self Help", verified=False)
    headers = login("self@test.com")

    response = client.patch(f'/api/ngos/{ngo.id}/verify', json={"verified": True}, headers=headers)
    assert response.status_code == 403

    # The profile edit path refuses it too
    response = client.patch(f'/api/ngos/{ngo.id}', json={"verified": True}, headers=headers)
    assert response.status_code == 400

    db.session.expire_all()
    assert db.session.get(Ngo, ngo.id).verified is False


def test_verify_requires_boolean(client, admin_headers, make_ngo):
    ngo = make_ngo("hope@test.com", "Hope Trust", verified=False)
    response = client.patch(f'/api/ngos/{ngo.id}/verify', json={"verified": "yes"},
                            headers=admin_headers)
    assert response.status_code == 400


def test_verify_unknown_ngo(client, admin_headers):
    response = client.patch('/api/ngos/999/verify', json={"verified": True}, headers=admin_headers)
    assert response.status_code == 404


def test_pending_list_is_admin_only(client, ngo_headers):
    response = client.get('/api/ngos/pending', headers=ngo_headers)
    assert response.status_code == 403
    assert response.get_json() == {'message': 'Admin access required'}

# ==========================================
#  3. PROFILE READ / EDIT
# ==========================================

def test_unverified_profile_hidden_from_public(client, make_ngo, login):
    ngo = make_ngo("hidden@test.com", "Hidden Org", verified=False)

    assert client.get(f'/api/ngos/{ngo.id}').status_code == 404
    owner_view = client.get(f'/api/ngos/{ngo.id}', headers=login("hidden@test.com"))
    assert owner_view.status_code == 200


def test_owner_updates_profile(client, make_ngo, login):
    ngo = make_ngo("edit@test.com", "Edit Org")
    headers = login("edit@test.com")

    response = client.patch(f'/api/ngos/{ngo.id}', json={
        "mission": "Feed every child in the district",
        "focusAreas": ["Nutrition"]
    }, headers=headers)

    assert response.status_code == 200
    assert response.get_json()['mission'] == "Feed every child in the district"
    assert response.get_json()['focusAreas'] == ["Nutrition"]


def test_other_ngo_cannot_edit_profile(client, make_ngo, login):
    ngo = make_ngo("a@test.com", "Org A")
    make_ngo("b@test.com", "Org B")

    response = client.patch(f'/api/ngos/{ngo.id}', json={"mission": "Hijacked mission"},
                            headers=login("b@test.com"))
    assert response.status_code == 403


@pytest.mark.parametrize("body", [["organizationName"], "Bright Future", 7])
def test_profile_body_must_be_an_object(client, ngo_headers, make_ngo, login, body):
    assert client.post('/api/ngos', json=body, headers=ngo_headers).status_code == 400

    ngo = make_ngo("edit@test.com", "Edit Org")
    response = client.patch(f'/api/ngos/{ngo.id}', json=body, headers=login("edit@test.com"))
    assert response.status_code == 400


def test_verify_body_must_be_an_object(client, admin_headers, make_ngo):
    ngo = make_ngo("v@test.com", "Verify Org", verified=False)

    response = client.patch(f'/api/ngos/{ngo.id}/verify', json=[True], headers=admin_headers)

    assert response.status_code == 400
    assert db.session.get(Ngo, ngo.id).verified is False
