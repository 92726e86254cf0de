from flask import current_app, request
from flask_mail import Message
from extensions import mail


def send_email(subject, recipients, body):
    """
    Best-effort e-mail. Failures are logged, never raised,
    so the request that triggered the notice still succeeds.
    """
    recipients = [r for r in recipients if r]
    if not recipients:
        return False

    msg = Message(subject, recipients=recipients)
    msg.body = body
    try:
        mail.send(msg)
        return True
    except Exception:
        current_app.logger.exception("Failed to send '%s' to %s", subject, recipients)
        return False


def notify_ngo_verified(ngo):
    send_email(
        'Your organization is verified - Sahyog',
        [ngo.owner.email],
        f'''Hello {ngo.owner.name},

{ngo.organization_name} has been verified by the Sahyog team.

Your organization is now listed publicly and can accept donations.
'''
    )


def notify_donation_accepted(donation, ngo):
    send_email(
        f'Your donation was accepted: {donation.title}',
        [donation.donor.email],
        f'''Hello {donation.donor.name},

Good news! {ngo.organization_name} accepted your donation "{donation.title}" ({donation.quantity}).

Pickup address: {donation.pickup_address}
Pickup time: {donation.pickup_time or "to be arranged"}

You can follow its progress and chat with the NGO from your dashboard.
'''
    )


def parse_filters(args, allowed):
    """Picks the whitelisted query-string filters that carry a value."""
    return {key: args[key] for key in allowed if args.get(key)}


def json_body():
    """
    The request's JSON object, ``{}`` when no JSON was sent, or None when
    the body is JSON but not an object (a list, a string, a number).
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None
