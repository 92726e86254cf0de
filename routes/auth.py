import re
from flask import Blueprint, jsonify, current_app
from flask_jwt_extended import create_access_token, jwt_required
from models import db, User
from security import current_identity
from utils import json_body

auth_bp = Blueprint('auth', __name__)

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def issue_token(user):
    # Role & email travel in the token so the gate needs no DB lookup
    additional_claims = {"email": user.email, "role": user.role}
    return create_access_token(identity=str(user.id), additional_claims=additional_claims)


def _signup_errors(data):
    allowed_roles = ['donor', 'ngo']
    if current_app.config.get('ALLOW_ADMIN_SIGNUP'):
        allowed_roles.append('admin')

    name = data.get('name')
    email = data.get('email')
    password = data.get('password')

    if not isinstance(name, str) or len(name.strip()) < 2:
        return 'name must be at least 2 characters'
    if not isinstance(email, str) or not EMAIL_RE.match(email):
        return 'invalid email'
    if not isinstance(password, str) or len(password) < 6:
        return 'password must be at least 6 characters'
    if data.get('role') not in allowed_roles:
        return f"role must be one of {', '.join(allowed_roles)}"
    return None


@auth_bp.route('/api/auth/signup', methods=['POST'])
def signup():
    data = json_body()
    if data is None:
        return jsonify({'message': 'Invalid user data'}), 400

    # 1. Validation
    error = _signup_errors(data)
    if error:
        current_app.logger.info("Rejected signup: %s", error)
        return jsonify({'message': 'Invalid user data'}), 400

    email = data['email'].strip().lower()
    if User.query.filter_by(email=email).first():
        return jsonify({'message': 'User already exists'}), 400

    # 2. Create User (password is only ever stored hashed)
    new_user = User(name=data['name'].strip(), email=email, role=data['role'])
    new_user.set_password(data['password'])

    try:
        db.session.add(new_user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Signup failed for %s", email)
        return jsonify({'message': 'Server error'}), 500

    current_app.logger.info("New %s account: user %s", new_user.role, new_user.id)
    return jsonify({'user': new_user.to_dict(), 'token': issue_token(new_user)}), 201


@auth_bp.route('/api/auth/login', methods=['POST'])
def login():
    data = json_body()
    if data is None:
        return jsonify({'message': 'Invalid login data'}), 400
    email = data.get('email')
    password = data.get('password')

    if not isinstance(email, str) or not isinstance(password, str):
        return jsonify({'message': 'Invalid credentials'}), 401

    user = User.query.filter_by(email=email.strip().lower()).first()

    # Same answer for unknown email and wrong password
    if user and user.check_password(password):
        return jsonify({'user': user.to_dict(), 'token': issue_token(user)}), 200

    return jsonify({'message': 'Invalid credentials'}), 401


@auth_bp.route('/api/auth/me', methods=['GET'])
@jwt_required()
def me():
    """ Refreshes user data on page reload. """
    user = db.session.get(User, current_identity().id)
    if not user:
        return jsonify({'message': 'User not found'}), 404

    profile = user.to_dict()
    profile['createdAt'] = user.created_at.isoformat()
    return jsonify(profile), 200
