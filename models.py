from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, timezone
from extensions import db

ROLES = ('donor', 'ngo', 'admin')
DONATION_TYPES = ('food', 'clothes', 'money')
DONATION_STATUSES = ('pending', 'accepted', 'in_transit', 'delivered', 'cancelled')
URGENCY_LEVELS = ('low', 'medium', 'high', 'critical')
MESSAGE_TYPES = ('text', 'image', 'file')


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _decimal(value):
    return str(value) if value is not None else None


# ==========================================
#  1. USER MODEL
# ==========================================
class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False)  # donor, ngo, admin

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    ngo = db.relationship('Ngo', backref='owner', uselist=False, lazy=True)
    donations = db.relationship('Donation', backref='donor', lazy=True)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        """Public view of a user. The password hash never leaves the server."""
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
        }


# ==========================================
#  2. NGO MODEL
# ==========================================
class Ngo(db.Model):
    __tablename__ = 'ngos'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    organization_name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    mission = db.Column(db.Text)
    location = db.Column(db.String(255), nullable=False)

    # --- ADMIN GATE ---
    verified = db.Column(db.Boolean, default=False, nullable=False, index=True)
    impact_score = db.Column(db.Numeric(3, 1), default=0)

    focus_areas = db.Column(db.JSON, default=list)
    registration_number = db.Column(db.String(50))
    website = db.Column(db.String(255))
    phone = db.Column(db.String(30))

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    donations = db.relationship('Donation', backref='ngo', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'organizationName': self.organization_name,
            'description': self.description,
            'mission': self.mission,
            'location': self.location,
            'verified': bool(self.verified),
            'impactScore': _decimal(self.impact_score),
            'focusAreas': list(self.focus_areas or []),
            'registrationNumber': self.registration_number,
            'website': self.website,
            'phone': self.phone,
            'createdAt': _iso(self.created_at),
        }


# ==========================================
#  3. DONATION MODEL
# ==========================================
class Donation(db.Model):
    __tablename__ = 'donations'

    id = db.Column(db.Integer, primary_key=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    ngo_id = db.Column(db.Integer, db.ForeignKey('ngos.id'), nullable=True, index=True)

    title = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(db.String(20), nullable=False)  # food, clothes, money
    quantity = db.Column(db.String(100), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=True)

    status = db.Column(db.String(20), default='pending', nullable=False, index=True)
    urgency = db.Column(db.String(20), default='medium', nullable=False)

    pickup_address = db.Column(db.String(255), nullable=False)
    pickup_time = db.Column(db.String(100))

    estimated_impact = db.Column(db.Integer)
    actual_impact = db.Column(db.Integer)

    # --- TIMESTAMPS ---
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    updates = db.relationship('DonationUpdate', backref='donation', lazy=True,
                              order_by='DonationUpdate.id')

    def to_dict(self):
        return {
            'id': self.id,
            'donorId': self.donor_id,
            'ngoId': self.ngo_id,
            'title': self.title,
            'description': self.description,
            'type': self.type,
            'quantity': self.quantity,
            'amount': _decimal(self.amount),
            'status': self.status,
            'urgency': self.urgency,
            'pickupAddress': self.pickup_address,
            'pickupTime': self.pickup_time,
            'estimatedImpact': self.estimated_impact,
            'actualImpact': self.actual_impact,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


# ==========================================
#  4. MESSAGE MODEL
# ==========================================
class Message(db.Model):
    __tablename__ = 'messages'

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    donation_id = db.Column(db.Integer, db.ForeignKey('donations.id'), nullable=True)
    content = db.Column(db.Text, nullable=False)
    message_type = db.Column(db.String(10), default='text', nullable=False)
    read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    sender = db.relationship('User', foreign_keys=[sender_id])
    receiver = db.relationship('User', foreign_keys=[receiver_id])

    def partner_id(self, user_id):
        return self.receiver_id if self.sender_id == user_id else self.sender_id

    def to_dict(self):
        return {
            'id': self.id,
            'senderId': self.sender_id,
            'receiverId': self.receiver_id,
            'donationId': self.donation_id,
            'content': self.content,
            'messageType': self.message_type,
            'read': bool(self.read),
            'createdAt': _iso(self.created_at),
        }


# ==========================================
#  5. DONATION UPDATE (AUDIT TRAIL)
# ==========================================
class DonationUpdate(db.Model):
    """
    Append-only history of a donation.
    One row per status change, written in the same transaction as the change.
    """
    __tablename__ = 'donation_updates'

    id = db.Column(db.Integer, primary_key=True)
    donation_id = db.Column(db.Integer, db.ForeignKey('donations.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    message = db.Column(db.String(500))
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'donationId': self.donation_id,
            'status': self.status,
            'message': self.message,
            'updatedBy': self.updated_by,
            'createdAt': _iso(self.created_at),
        }
