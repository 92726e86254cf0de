import os
from flask import current_app
from extensions import scheduler, mail
from models import Donation, Ngo
from flask_mail import Message

URGENT_LEVELS = ('high', 'critical')


def init_scheduler(app):
    """ Starts the background clock """
    # Note: We do NOT create a new APScheduler() here.
    # The factory already called scheduler.init_app(app) on the shared instance.
    scheduler.start()
    app.logger.info("Scheduler started: urgent donation digest armed")


def send_urgent_digest():
    """
    E-mails every verified NGO the pending donations marked high or critical.
    Runs inside an app context. Returns the number of e-mails sent.
    """
    urgent = Donation.query.filter(
        Donation.status == 'pending',
        Donation.urgency.in_(URGENT_LEVELS)
    ).order_by(Donation.created_at.asc()).all()

    if not urgent:
        return 0

    ngos = Ngo.query.filter_by(verified=True).all()
    if not ngos:
        return 0

    lines = [f"- [{d.urgency.upper()}] {d.title} ({d.quantity}) at {d.pickup_address}" for d in urgent]
    listing = "\n".join(lines)

    sent = 0
    with mail.connect() as conn:
        for ngo in ngos:
            try:
                msg = Message(
                    subject=f"{len(urgent)} urgent donation(s) waiting for pickup",
                    recipients=[ngo.owner.email],
                    body=f"Hello {ngo.organization_name},\n\nThese donations still need an NGO:\n\n{listing}\n\nLog in to accept one."
                )
                conn.send(msg)
                sent += 1
            except Exception:
                current_app.logger.exception("Failed to e-mail digest to NGO %s", ngo.id)

    current_app.logger.info("Urgent digest: %s donations, %s NGOs notified", len(urgent), sent)
    return sent


# ==========================================
#  DAILY URGENT DIGEST
# ==========================================
@scheduler.task('cron', id='urgent_digest', hour=int(os.getenv('URGENT_DIGEST_HOUR', 8)))
def urgent_digest_job():
    # We must use scheduler.app.app_context() because this runs in the background
    with scheduler.app.app_context():
        send_urgent_digest()
