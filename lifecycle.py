"""
Donation lifecycle.

    pending --accept--> accepted --> in_transit --> delivered
       |                   |              |
       +---------------> cancelled <------+

Every status change is a compare-and-set on the current status, so two
callers racing on the same donation cannot both win, and every change writes
a DonationUpdate row in the same transaction.
"""
from decimal import Decimal, InvalidOperation
from flask import current_app
from extensions import db
from models import (Donation, DonationUpdate, DONATION_TYPES, URGENCY_LEVELS,
                    utcnow)

TRANSITIONS = {
    'pending': ('accepted', 'cancelled'),
    'accepted': ('in_transit', 'cancelled'),
    'in_transit': ('delivered', 'cancelled'),
    'delivered': (),
    'cancelled': (),
}

# JSON key -> column
DETAIL_FIELDS = {
    'title': 'title',
    'description': 'description',
    'type': 'type',
    'quantity': 'quantity',
    'amount': 'amount',
    'urgency': 'urgency',
    'pickupAddress': 'pickup_address',
    'pickupTime': 'pickup_time',
    'estimatedImpact': 'estimated_impact',
}


class LifecycleError(Exception):
    status_code = 400
    message = 'Invalid donation data'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidDonationData(LifecycleError):
    pass


class DonationNotFound(LifecycleError):
    status_code = 404
    message = 'Donation not found'


class InvalidTransition(LifecycleError):
    message = 'Invalid status transition'


class StatusConflict(LifecycleError):
    status_code = 409
    message = 'Donation status changed, please reload'


# ==========================================
#  1. VALIDATION
# ==========================================
def _text(data, key, min_length=1, required=True):
    value = data.get(key)
    if value is None:
        if required:
            raise InvalidDonationData(f'{key} is required')
        return None
    if not isinstance(value, str) or len(value.strip()) < min_length:
        raise InvalidDonationData(f'{key} must be at least {min_length} characters')
    return value.strip()


def _amount(value):
    if value is None or value == '':
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidDonationData('amount must be a number')
    if not amount.is_finite() or amount <= 0:
        raise InvalidDonationData('amount must be positive')
    return amount.quantize(Decimal('0.01'))


def _impact(value):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidDonationData('impact must be a non-negative integer')
    return value


def validate_details(data, partial=False):
    """
    Turns a JSON body into column values.
    With ``partial`` only the keys present in ``data`` are checked and returned.
    """
    def present(key):
        return not partial or key in data

    values = {}
    if present('title'):
        values['title'] = _text(data, 'title', 3)
    if present('description'):
        values['description'] = _text(data, 'description', 10, required=False)
    if present('type'):
        if data.get('type') not in DONATION_TYPES:
            raise InvalidDonationData('type must be one of ' + ', '.join(DONATION_TYPES))
        values['type'] = data['type']
    if present('quantity'):
        values['quantity'] = _text(data, 'quantity')
    if present('pickupAddress'):
        values['pickup_address'] = _text(data, 'pickupAddress', 5)
    if present('pickupTime'):
        values['pickup_time'] = _text(data, 'pickupTime', required=False)
    if present('urgency') and 'urgency' in data:
        if data['urgency'] not in URGENCY_LEVELS:
            raise InvalidDonationData('urgency must be one of ' + ', '.join(URGENCY_LEVELS))
        values['urgency'] = data['urgency']
    if present('amount'):
        values['amount'] = _amount(data.get('amount'))
    if present('estimatedImpact'):
        values['estimated_impact'] = _impact(data.get('estimatedImpact'))
    return values


def _check_money(donation_type, amount):
    if donation_type == 'money' and amount is None:
        raise InvalidDonationData('amount is required for money donations')


# ==========================================
#  2. CREATE
# ==========================================
def create_donation(donor_id, data):
    """
    Creates a pending donation owned by ``donor_id``.
    Whatever donorId / ngoId / status the client sent is ignored.
    """
    values = validate_details(data)
    _check_money(values['type'], values.get('amount'))

    now = utcnow()
    donation = Donation(donor_id=donor_id, ngo_id=None, status='pending',
                        created_at=now, updated_at=now, **values)
    db.session.add(donation)
    db.session.flush()
    record_update(donation.id, 'pending', donor_id, 'Donation created', now)
    db.session.commit()
    current_app.logger.info("Donation %s created by user %s", donation.id, donor_id)
    return donation


def update_details(donation, data, actor_id):
    values = validate_details(data, partial=True)
    if not values:
        raise InvalidDonationData('Nothing to update')
    _check_money(values.get('type', donation.type),
                 values['amount'] if 'amount' in values else donation.amount)

    now = utcnow()
    values['updated_at'] = now
    _compare_and_set(donation.id, 'pending', values)
    record_update(donation.id, 'pending', actor_id, 'Details updated', now)
    db.session.commit()
    return db.session.get(Donation, donation.id)


# ==========================================
#  3. LISTING
# ==========================================
def visible_donations(identity, ngo=None, filters=None):
    """
    Role-scoped feed. Filters narrow the scoped set, they never widen it.
      donor -> own donations
      ngo   -> donations assigned to the caller's NGO
      other -> pending donations
    """
    query = Donation.query
    if identity is not None and identity.role == 'donor':
        query = query.filter(Donation.donor_id == identity.id)
    elif identity is not None and identity.role == 'ngo':
        if ngo is None:
            return []
        query = query.filter(Donation.ngo_id == ngo.id)
    else:
        query = query.filter(Donation.status == 'pending')

    for key, value in (filters or {}).items():
        query = query.filter(getattr(Donation, key) == value)

    return query.order_by(Donation.created_at.desc(), Donation.id.desc()).all()


def nearby_donations(location=None, filters=None):
    # No geolocation yet: every pending donation counts as nearby.
    query = Donation.query.filter(Donation.status == 'pending')
    for key, value in (filters or {}).items():
        query = query.filter(getattr(Donation, key) == value)
    return query.order_by(Donation.created_at.desc(), Donation.id.desc()).all()


def donation_history(donation_id):
    return DonationUpdate.query.filter_by(donation_id=donation_id)\
        .order_by(DonationUpdate.created_at.asc(), DonationUpdate.id.asc()).all()


# ==========================================
#  4. STATUS CHANGES
# ==========================================
def _compare_and_set(donation_id, expected_status, values):
    """
    Single conditional UPDATE. Returns normally only if the row still had
    ``expected_status``; otherwise rolls back and raises.
    """
    updated = Donation.query.filter(
        Donation.id == donation_id,
        Donation.status == expected_status
    ).update(values, synchronize_session=False)

    if updated != 1:
        db.session.rollback()
        if db.session.get(Donation, donation_id) is None:
            raise DonationNotFound()
        raise StatusConflict()


def record_update(donation_id, status, actor_id, note=None, when=None):
    entry = DonationUpdate(donation_id=donation_id, status=status, message=note,
                           updated_by=actor_id, created_at=when or utcnow())
    db.session.add(entry)
    return entry


def accept_donation(donation_id, ngo, actor_id, note=None):
    """
    Hands a pending donation to ``ngo``. Of several NGOs accepting the same
    donation exactly one succeeds; the others get StatusConflict.
    """
    now = utcnow()
    try:
        _compare_and_set(donation_id, 'pending', {
            'status': 'accepted',
            'ngo_id': ngo.id,
            'updated_at': now,
        })
    except StatusConflict:
        raise StatusConflict('Donation is no longer pending')

    record_update(donation_id, 'accepted', actor_id,
                  note or f'Accepted by {ngo.organization_name}', now)
    db.session.commit()
    current_app.logger.info("Donation %s accepted by NGO %s", donation_id, ngo.id)
    return db.session.get(Donation, donation_id)


def transition_donation(donation, target, actor_id, note=None, actual_impact=None):
    """Moves an accepted or in-transit donation along the graph (or cancels it)."""
    current = donation.status
    if target == 'accepted' or target not in TRANSITIONS.get(current, ()):
        raise InvalidTransition(f'Cannot move donation from {current} to {target}')

    values = {'status': target, 'updated_at': utcnow()}
    if actual_impact is not None:
        if target != 'delivered':
            raise InvalidDonationData('actualImpact can only be recorded on delivery')
        values['actual_impact'] = _impact(actual_impact)

    _compare_and_set(donation.id, current, values)
    record_update(donation.id, target, actor_id, note, values['updated_at'])
    db.session.commit()
    current_app.logger.info("Donation %s moved %s -> %s by user %s",
                            donation.id, current, target, actor_id)
    return db.session.get(Donation, donation.id)


def record_actual_impact(donation, actual_impact, actor_id, note=None):
    """Delivered donations may have their measured impact filled in later."""
    if donation.status != 'delivered':
        raise InvalidDonationData('actualImpact can only be recorded on delivery')

    now = utcnow()
    _compare_and_set(donation.id, 'delivered', {
        'actual_impact': _impact(actual_impact),
        'updated_at': now,
    })
    record_update(donation.id, 'delivered', actor_id,
                  note or f'Impact recorded: {actual_impact}', now)
    db.session.commit()
    return db.session.get(Donation, donation.id)
