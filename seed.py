import os
from app import create_app
from extensions import db
from models import User, Ngo, Donation, utcnow
from lifecycle import record_update


def seed_admin():
    """Creates the platform admin unless one with that email exists."""
    email = os.getenv('ADMIN_EMAIL', 'admin@sahyog.org')
    if User.query.filter_by(email=email).first():
        print("✅ Admin user already exists. Skipping.")
        return False

    print("🚀 Creating Admin User...")
    admin = User(name='Sahyog Admin', email=email, role='admin')
    admin.set_password(os.getenv('ADMIN_PASSWORD', 'password123'))
    db.session.add(admin)
    db.session.commit()
    print("✅ Admin Created Successfully!")
    return True


def seed_samples():
    """One donor, one verified NGO and one donation in transit, for local demos."""
    if User.query.filter_by(email='john@example.com').first():
        print("✅ Sample data already present. Skipping.")
        return False

    donor = User(name='John Doe', email='john@example.com', role='donor')
    donor.set_password('password123')
    ngo_user = User(name='Priya Sharma', email='priya@brightfuture.org', role='ngo')
    ngo_user.set_password('password123')
    db.session.add_all([donor, ngo_user])
    db.session.flush()

    ngo = Ngo(
        user_id=ngo_user.id,
        organization_name='Bright Future Foundation',
        description='Providing education and nutrition to underprivileged children',
        mission='Breaking the cycle of poverty through education and healthcare',
        location='Mumbai, Maharashtra',
        verified=True,
        impact_score=97.5,
        focus_areas=['Education', 'Nutrition', 'Healthcare', 'Child Welfare'],
        registration_number='NGO/2015/BFF',
        website='https://brightfuture.org',
        phone='+91-9876543210'
    )
    db.session.add(ngo)
    db.session.flush()

    now = utcnow()
    donation = Donation(
        donor_id=donor.id, ngo_id=ngo.id,
        title='Fresh Vegetable Package',
        description='Organic vegetables from our farm',
        type='food', quantity='50 meal portions',
        status='in_transit', urgency='medium',
        pickup_address='123 Farm Road, Mumbai', pickup_time='morning',
        estimated_impact=50, created_at=now, updated_at=now
    )
    db.session.add(donation)
    db.session.flush()
    record_update(donation.id, 'pending', donor.id, 'Donation created', now)
    record_update(donation.id, 'accepted', ngo_user.id, 'Accepted by Bright Future Foundation', now)
    record_update(donation.id, 'in_transit', ngo_user.id, 'Picked up', now)
    db.session.commit()
    print("✅ Sample donor, NGO and donation created.")
    return True


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        db.create_all()
        seed_admin()
        seed_samples()
