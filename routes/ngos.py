from flask import Blueprint, jsonify, current_app
from flask_jwt_extended import jwt_required
from models import db, Ngo
from security import current_identity, current_policy, role_required
from utils import json_body, notify_ngo_verified

ngos_bp = Blueprint('ngos', __name__)

# JSON key -> (column, minimum length or None for optional)
PROFILE_FIELDS = {
    'organizationName': ('organization_name', 3),
    'location': ('location', 5),
    'description': ('description', None),
    'mission': ('mission', None),
    'registrationNumber': ('registration_number', None),
    'website': ('website', None),
    'phone': ('phone', None),
}
LOCKED_FIELDS = ('verified', 'impactScore', 'userId', 'id', 'createdAt')


def _profile_values(data, partial=False):
    """Returns (values, error)."""
    values = {}
    for key, (column, min_length) in PROFILE_FIELDS.items():
        if key not in data:
            if min_length and not partial:
                return None, f'{key} is required'
            continue
        value = data[key]
        if value is None and not min_length:
            values[column] = None
            continue
        if not isinstance(value, str) or len(value.strip()) < (min_length or 0):
            return None, f'{key} is invalid'
        values[column] = value.strip()

    if 'focusAreas' in data:
        areas = data['focusAreas']
        if not isinstance(areas, list) or not all(isinstance(a, str) for a in areas):
            return None, 'focusAreas must be a list of strings'
        values['focus_areas'] = [a.strip() for a in areas if a.strip()]
    return values, None


# ==========================================
#  1. PUBLIC DIRECTORY
# ==========================================
@ngos_bp.route('/api/ngos', methods=['GET'])
def get_verified_ngos():
    ngos = Ngo.query.filter_by(verified=True).order_by(Ngo.created_at.desc(), Ngo.id.desc()).all()
    return jsonify([n.to_dict() for n in ngos]), 200


@ngos_bp.route('/api/ngos/pending', methods=['GET'])
@jwt_required()
@role_required('admin')
def get_pending_ngos():
    """ Admin review queue: NGOs still waiting for verification, oldest first. """
    ngos = Ngo.query.filter_by(verified=False).order_by(Ngo.created_at.asc(), Ngo.id.asc()).all()
    return jsonify([n.to_dict() for n in ngos]), 200


# ==========================================
#  2. OWN PROFILE
# ==========================================
@ngos_bp.route('/api/ngos/profile', methods=['GET'])
@jwt_required()
@role_required('ngo')
def get_my_ngo():
    ngo = current_policy().ngo
    if not ngo:
        return jsonify({'message': 'NGO profile not found'}), 404
    return jsonify(ngo.to_dict()), 200


@ngos_bp.route('/api/ngos', methods=['POST'])
@jwt_required()
@role_required('ngo')
def create_ngo():
    identity = current_identity()
    data = json_body()
    if data is None:
        return jsonify({'message': 'Invalid NGO data'}), 400

    if current_policy().ngo is not None:
        return jsonify({'message': 'NGO profile already exists'}), 400

    values, error = _profile_values(data)
    if error:
        current_app.logger.info("Rejected NGO profile from user %s: %s", identity.id, error)
        return jsonify({'message': 'Invalid NGO data'}), 400

    # verified / impactScore are never taken from the client
    new_ngo = Ngo(user_id=identity.id, verified=False, impact_score=0, **values)

    try:
        db.session.add(new_ngo)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Creating NGO profile failed for user %s", identity.id)
        return jsonify({'message': 'Server error'}), 500

    current_app.logger.info("NGO %s registered, awaiting verification", new_ngo.id)
    return jsonify(new_ngo.to_dict()), 201


@ngos_bp.route('/api/ngos/<int:ngo_id>', methods=['GET'])
@jwt_required(optional=True)
def get_ngo(ngo_id):
    ngo = db.session.get(Ngo, ngo_id)
    # Unverified profiles stay hidden from everyone but their owner and admins
    if not ngo or not current_policy().can_view_ngo(ngo):
        return jsonify({'message': 'NGO not found'}), 404
    return jsonify(ngo.to_dict()), 200


@ngos_bp.route('/api/ngos/<int:ngo_id>', methods=['PATCH'])
@jwt_required()
def update_ngo(ngo_id):
    ngo = db.session.get(Ngo, ngo_id)
    if not ngo:
        return jsonify({'message': 'NGO not found'}), 404

    if not current_policy().can_edit_ngo(ngo):
        return jsonify({'message': 'You can only edit your own organization'}), 403

    data = json_body()
    if data is None:
        return jsonify({'message': 'Invalid NGO data'}), 400
    locked = [k for k in LOCKED_FIELDS if k in data]
    if locked:
        return jsonify({'message': f'Field cannot be modified: {locked[0]}'}), 400

    values, error = _profile_values(data, partial=True)
    if error or not values:
        return jsonify({'message': 'Invalid NGO data'}), 400

    for column, value in values.items():
        setattr(ngo, column, value)

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Updating NGO %s failed", ngo_id)
        return jsonify({'message': 'Server error'}), 500

    return jsonify(ngo.to_dict()), 200


# ==========================================
#  3. ADMIN VERIFICATION
# ==========================================
@ngos_bp.route('/api/ngos/<int:ngo_id>/verify', methods=['PATCH'])
@jwt_required()
@role_required('admin')
def verify_ngo(ngo_id):
    """
    Flips the verification gate. Only admins get here, so an NGO can
    never verify (or un-verify) itself.
    """
    data = json_body() or {}
    verified = data.get('verified')
    if not isinstance(verified, bool):
        return jsonify({'message': 'verified must be true or false'}), 400

    ngo = db.session.get(Ngo, ngo_id)
    if not ngo:
        return jsonify({'message': 'NGO not found'}), 404

    if not current_policy().can_verify(ngo):
        return jsonify({'message': 'Admin access required'}), 403

    newly_verified = verified and not ngo.verified
    ngo.verified = verified

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Verifying NGO %s failed", ngo_id)
        return jsonify({'message': 'Server error'}), 500

    current_app.logger.info("Admin %s set NGO %s verified=%s",
                            current_identity().id, ngo_id, verified)
    if newly_verified:
        notify_ngo_verified(ngo)

    return jsonify(ngo.to_dict()), 200
