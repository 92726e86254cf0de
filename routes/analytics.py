from flask import Blueprint, jsonify
from sqlalchemy import func
from models import db, Donation, Ngo

analytics_bp = Blueprint('analytics', __name__)


def compute_stats():
    """ Live platform figures, recomputed on every call. Nothing is cached. """
    pending = db.session.query(
        func.count(Donation.id),
        func.sum(Donation.amount),
        func.sum(Donation.estimated_impact)
    ).filter(Donation.status == 'pending').one()

    total_donations, total_value, lives_impacted = pending
    verified_ngos = Ngo.query.filter_by(verified=True).count()

    return {
        'totalDonations': total_donations or 0,
        'verifiedNgos': verified_ngos,
        'totalValue': round(float(total_value or 0), 2),
        'livesImpacted': int(lives_impacted or 0),
    }


@analytics_bp.route('/api/analytics/stats', methods=['GET'])
def get_stats():
    return jsonify(compute_stats()), 200
