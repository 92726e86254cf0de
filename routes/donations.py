from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from models import db, Donation
from security import current_identity, current_policy, role_required
from utils import json_body, notify_donation_accepted, parse_filters
from lifecycle import (DETAIL_FIELDS, LifecycleError, InvalidDonationData,
                       accept_donation, create_donation, donation_history,
                       nearby_donations, record_actual_impact, transition_donation,
                       update_details, visible_donations)

donations_bp = Blueprint('donations', __name__)

FEED_FILTERS = ('status', 'type', 'urgency')
STATUS_KEYS = ('status', 'message', 'actualImpact')


def _error(e):
    return jsonify({'message': e.message}), e.status_code


def _load(donation_id):
    """Returns (donation, error_response)."""
    donation = db.session.get(Donation, donation_id)
    if not donation:
        return None, (jsonify({'message': 'Donation not found'}), 404)
    if not current_policy().can_view(donation):
        return None, (jsonify({'message': 'You cannot access this donation'}), 403)
    return donation, None


# ==========================================
#  1. CREATE DONATION
# ==========================================
@donations_bp.route('/api/donations', methods=['POST'])
@jwt_required()
@role_required('donor')
def post_donation():
    identity = current_identity()
    data = json_body()
    if data is None:
        return jsonify({'message': 'Invalid donation data'}), 400

    try:
        donation = create_donation(identity.id, data)
    except InvalidDonationData as e:
        # Field-level detail stays in the log
        current_app.logger.info("Rejected donation from user %s: %s", identity.id, e.message)
        return jsonify({'message': 'Invalid donation data'}), 400
    except LifecycleError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Creating donation failed for user %s", identity.id)
        return jsonify({'message': 'Server error'}), 500

    return jsonify(donation.to_dict()), 201


# ==========================================
#  2. FEEDS
# ==========================================
@donations_bp.route('/api/donations', methods=['GET'])
@jwt_required()
def get_donations():
    """
    Role-scoped list: donors see their own, NGOs see what they accepted,
    everyone else sees the pending pool.
    """
    policy = current_policy()
    filters = parse_filters(request.args, FEED_FILTERS)
    donations = visible_donations(policy.identity, policy.ngo, filters)
    return jsonify([d.to_dict() for d in donations]), 200


@donations_bp.route('/api/donations/nearby', methods=['GET'])
@jwt_required()
def get_nearby_donations():
    filters = parse_filters(request.args, ('type', 'urgency'))
    donations = nearby_donations(request.args.get('location'), filters)
    return jsonify([d.to_dict() for d in donations]), 200


@donations_bp.route('/api/donations/<int:donation_id>', methods=['GET'])
@jwt_required()
def get_donation(donation_id):
    donation, error = _load(donation_id)
    if error:
        return error
    return jsonify(donation.to_dict()), 200


@donations_bp.route('/api/donations/<int:donation_id>/updates', methods=['GET'])
@jwt_required()
def get_donation_updates(donation_id):
    """ Timeline for the tracking page. """
    donation, error = _load(donation_id)
    if error:
        return error
    return jsonify([u.to_dict() for u in donation_history(donation.id)]), 200


# ==========================================
#  3. ACCEPT DONATION
# ==========================================
def _accept(donation, note=None):
    policy = current_policy()
    if not policy.can_accept(donation):
        return jsonify({'message': 'Only NGOs with a profile can accept donations'}), 403

    try:
        accepted = accept_donation(donation.id, policy.ngo, policy.identity.id, note)
    except LifecycleError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Accepting donation %s failed", donation.id)
        return jsonify({'message': 'Server error'}), 500

    notify_donation_accepted(accepted, policy.ngo)
    return jsonify(accepted.to_dict()), 200


@donations_bp.route('/api/donations/<int:donation_id>/accept', methods=['POST'])
@jwt_required()
@role_required('ngo')
def post_accept(donation_id):
    donation = db.session.get(Donation, donation_id)
    if not donation:
        return jsonify({'message': 'Donation not found'}), 404
    data = json_body()
    if data is None:
        return jsonify({'message': 'Invalid donation data'}), 400
    return _accept(donation, data.get('message'))


# ==========================================
#  4. UPDATE DONATION
# ==========================================
@donations_bp.route('/api/donations/<int:donation_id>', methods=['PATCH'])
@jwt_required()
def patch_donation(donation_id):
    """
    Either a status change {status, message?, actualImpact?}
    or a details edit by the donor while the donation is still pending.
    """
    policy = current_policy()
    donation = db.session.get(Donation, donation_id)
    if not donation:
        return jsonify({'message': 'Donation not found'}), 404

    data = json_body()
    if data is None:
        return jsonify({'message': 'Invalid donation data'}), 400
    for locked in ('donorId', 'ngoId', 'id', 'createdAt', 'updatedAt'):
        if locked in data:
            return jsonify({'message': f'Field cannot be modified: {locked}'}), 400

    unknown = [k for k in data if k not in DETAIL_FIELDS and k not in STATUS_KEYS]
    if unknown or not data:
        return jsonify({'message': 'Invalid donation data'}), 400

    is_status_change = any(k in data for k in STATUS_KEYS)
    if is_status_change and any(k in data for k in DETAIL_FIELDS):
        return jsonify({'message': 'Change the status and the details in separate requests'}), 400

    try:
        if not is_status_change:
            if not policy.can_edit_details(donation):
                return jsonify({'message': 'Only the donor can edit a pending donation'}), 403
            donation = update_details(donation, data, policy.identity.id)
            return jsonify(donation.to_dict()), 200

        target = data.get('status')
        note = data.get('message')
        if note is not None and not isinstance(note, str):
            return jsonify({'message': 'Invalid donation data'}), 400

        if target == 'accepted':
            if policy.identity.role != 'ngo':
                return jsonify({'message': 'NGO access required'}), 403
            return _accept(donation, note)

        if target is None:
            # Late impact report on an already delivered donation
            if 'actualImpact' not in data or not policy.can_transition(donation, 'delivered'):
                return jsonify({'message': 'Invalid donation data'}), 400
            donation = record_actual_impact(donation, data['actualImpact'], policy.identity.id, note)
            return jsonify(donation.to_dict()), 200

        if target not in ('in_transit', 'delivered', 'cancelled'):
            return jsonify({'message': 'Invalid status transition'}), 400

        if not policy.can_transition(donation, target):
            return jsonify({'message': 'You are not allowed to change this donation'}), 403

        donation = transition_donation(donation, target, policy.identity.id, note,
                                       data.get('actualImpact'))
        return jsonify(donation.to_dict()), 200

    except LifecycleError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Updating donation %s failed", donation_id)
        return jsonify({'message': 'Server error'}), 500
