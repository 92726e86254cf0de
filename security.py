"""
Authentication gate and authorization policy.

Every protected route is wrapped in ``jwt_required()``; the JWT loaders below
answer missing and bad tokens before any handler code runs. Role checks are
declared with ``role_required`` and finer, per-object rules live on ``Policy``.
"""
from collections import namedtuple
from functools import wraps
from flask import g, jsonify
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from extensions import jwt
from models import Ngo

Identity = namedtuple('Identity', ['id', 'email', 'role'])


# ==========================================
#  1. TOKEN ERRORS
# ==========================================
@jwt.unauthorized_loader
def missing_token(reason):
    return jsonify({'message': 'Authentication required'}), 401


@jwt.invalid_token_loader
def invalid_token(reason):
    return jsonify({'message': 'Invalid credentials'}), 403


@jwt.expired_token_loader
def expired_token(jwt_header, jwt_payload):
    return jsonify({'message': 'Invalid credentials'}), 403


def identity_from_claims(claims):
    return Identity(int(claims['sub']), claims.get('email'), claims.get('role'))


def current_identity():
    """The caller of the current request, or None for anonymous calls."""
    if get_jwt_identity() is None:
        return None
    return identity_from_claims(get_jwt())


# ==========================================
#  2. DECLARATIVE ROLE CHECK
# ==========================================
def role_required(*roles):
    """Use below ``@jwt_required()``. Rejects callers whose role is not listed."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            identity = current_identity()
            if identity.role not in roles:
                label = ' or '.join(r.upper() if r == 'ngo' else r.capitalize() for r in roles)
                return jsonify({'message': f'{label} access required'}), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator


# ==========================================
#  3. POLICY
# ==========================================
class Policy:
    """
    Capability checks for one caller. Built once per request by
    ``current_policy()``; the caller's NGO profile is loaded lazily.
    """

    def __init__(self, identity):
        self.identity = identity
        self._ngo = None
        self._ngo_loaded = False

    @property
    def is_admin(self):
        return self.identity is not None and self.identity.role == 'admin'

    @property
    def ngo(self):
        if not self._ngo_loaded:
            self._ngo_loaded = True
            if self.identity is not None and self.identity.role == 'ngo':
                self._ngo = Ngo.query.filter_by(user_id=self.identity.id).first()
        return self._ngo

    def owns_donation(self, donation):
        return self.identity is not None and donation.donor_id == self.identity.id

    def assigned_to(self, donation):
        return self.ngo is not None and donation.ngo_id == self.ngo.id

    # --- DONATIONS ---
    def can_view(self, donation):
        if self.identity is None:
            return False
        return (donation.status == 'pending' or self.is_admin
                or self.owns_donation(donation) or self.assigned_to(donation))

    def can_accept(self, donation):
        # Whether the donation is still pending is settled by the atomic accept itself.
        return self.ngo is not None

    def can_transition(self, donation, target):
        if target == 'cancelled':
            return self.is_admin or self.owns_donation(donation) or self.assigned_to(donation)
        if target in ('in_transit', 'delivered'):
            return self.is_admin or self.assigned_to(donation)
        return False

    def can_edit_details(self, donation):
        return donation.status == 'pending' and (self.is_admin or self.owns_donation(donation))

    # --- NGOS ---
    def can_verify(self, ngo):
        return self.is_admin

    def can_edit_ngo(self, ngo):
        return self.is_admin or (self.identity is not None and ngo.user_id == self.identity.id)

    def can_view_ngo(self, ngo):
        return bool(ngo.verified) or self.can_edit_ngo(ngo)


def current_policy():
    if 'policy' not in g:
        g.policy = Policy(current_identity())
    return g.policy


def init_app(app):
    # A new Policy per request, even when requests share an app context
    @app.before_request
    def fresh_policy():
        g.pop('policy', None)
