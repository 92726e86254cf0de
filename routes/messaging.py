from flask import Blueprint, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy import or_, and_
from models import db, Message, User, Donation, MESSAGE_TYPES
from realtime import push_new_message
from security import current_identity
from utils import json_body

messaging_bp = Blueprint('messaging', __name__)


# ==========================================
#  1. SEND MESSAGE
# ==========================================
@messaging_bp.route('/api/messages', methods=['POST'])
@jwt_required()
def send_message():
    current_user_id = current_identity().id
    data = json_body()
    if data is None:
        return jsonify({'message': 'Invalid message data'}), 400

    receiver_id = data.get('receiverId')
    content = data.get('content')
    message_type = data.get('messageType', 'text')
    donation_id = data.get('donationId')

    if not isinstance(receiver_id, int) or isinstance(receiver_id, bool):
        return jsonify({'message': 'Invalid message data'}), 400
    if not isinstance(content, str) or not content.strip():
        return jsonify({'message': 'Invalid message data'}), 400
    if message_type not in MESSAGE_TYPES:
        return jsonify({'message': 'Invalid message data'}), 400
    if donation_id is not None and (not isinstance(donation_id, int) or isinstance(donation_id, bool)):
        return jsonify({'message': 'Invalid message data'}), 400

    if receiver_id == current_user_id:
        return jsonify({'message': 'You cannot message yourself.'}), 400

    if not db.session.get(User, receiver_id):
        return jsonify({'message': 'Receiver not found'}), 404

    # Optional: link the chat to a donation
    if donation_id is not None and not db.session.get(Donation, donation_id):
        return jsonify({'message': 'Donation not found'}), 404

    new_msg = Message(
        sender_id=current_user_id,
        receiver_id=receiver_id,
        donation_id=donation_id,
        content=content,
        message_type=message_type,
        read=False
    )

    try:
        db.session.add(new_msg)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Saving message from user %s failed", current_user_id)
        return jsonify({'message': 'Server error'}), 500

    # Real-time notification, dropped if the receiver is offline
    push_new_message(new_msg)

    return jsonify(new_msg.to_dict()), 201


# ==========================================
#  2. INBOX (latest message per partner)
# ==========================================
@messaging_bp.route('/api/messages/conversations', methods=['GET'])
@jwt_required()
def get_conversations():
    """
    One entry per correspondent, carrying the latest message.
    Sorted by that message's time, newest conversation first.
    """
    current_user_id = current_identity().id

    # 1. Fetch all messages involving me (newest first)
    all_msgs = Message.query.filter(
        or_(Message.sender_id == current_user_id, Message.receiver_id == current_user_id)
    ).order_by(Message.created_at.desc(), Message.id.desc()).all()

    # 2. Keep only the first (= latest) message seen for each partner
    conversations = {}
    for m in all_msgs:
        partner_id = m.partner_id(current_user_id)
        if partner_id not in conversations:
            conversations[partner_id] = m

    # 3. Build result (dicts keep insertion order, so newest stays on top)
    results = []
    for partner_id, last_msg in conversations.items():
        partner = db.session.get(User, partner_id)
        summary = last_msg.to_dict()
        summary['partner'] = {
            'id': partner_id,
            'name': partner.name if partner else None,
            'role': partner.role if partner else None,
        }
        results.append(summary)

    return jsonify(results), 200


# ==========================================
#  3. GET CONVERSATION
# ==========================================
@messaging_bp.route('/api/messages/<int:partner_id>', methods=['GET'])
@jwt_required()
def get_conversation(partner_id):
    """ Full thread between me and one user, oldest first. """
    current_user_id = current_identity().id

    msgs = Message.query.filter(
        or_(
            and_(Message.sender_id == current_user_id, Message.receiver_id == partner_id),
            and_(Message.sender_id == partner_id, Message.receiver_id == current_user_id)
        )
    ).order_by(Message.created_at.asc(), Message.id.asc()).all()

    return jsonify([m.to_dict() for m in msgs]), 200


# ==========================================
#  4. MARK AS READ
# ==========================================
@messaging_bp.route('/api/messages/<int:message_id>/read', methods=['PATCH'])
@jwt_required()
def mark_read(message_id):
    """ Only the read flag of a message ever changes. """
    current_user_id = current_identity().id
    msg = db.session.get(Message, message_id)

    if not msg:
        return jsonify({'message': 'Message not found'}), 404
    if msg.receiver_id != current_user_id:
        return jsonify({'message': 'Only the receiver can mark a message as read'}), 403

    if not msg.read:
        msg.read = True
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Marking message %s read failed", message_id)
            return jsonify({'message': 'Server error'}), 500

    return jsonify(msg.to_dict()), 200
