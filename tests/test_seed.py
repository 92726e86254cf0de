from models import User, Ngo, Donation, DonationUpdate
from seed import seed_admin, seed_samples
from deploy import deploy


def test_seed_admin_once(app, monkeypatch):
    monkeypatch.setenv('ADMIN_EMAIL', 'root@sahyog.org')
    monkeypatch.setenv('ADMIN_PASSWORD', 'S3cret!')

    assert seed_admin() is True
    assert seed_admin() is False

    admins = User.query.filter_by(role='admin').all()
    assert len(admins) == 1
    assert admins[0].email == 'root@sahyog.org'
    assert admins[0].check_password('S3cret!')


def test_seed_samples(app):
    assert seed_samples() is True
    assert seed_samples() is False

    ngo = Ngo.query.one()
    assert ngo.verified is True
    donation = Donation.query.one()
    assert donation.status == 'in_transit'
    assert donation.ngo_id == ngo.id
    statuses = [u.status for u in DonationUpdate.query.order_by(DonationUpdate.id).all()]
    assert statuses == ['pending', 'accepted', 'in_transit']


def test_deploy_without_migrations_creates_schema_and_admin(app, monkeypatch, tmp_path):
    monkeypatch.setattr('deploy.MIGRATIONS_DIR', str(tmp_path / 'missing'))

    deploy(app)

    assert User.query.filter_by(role='admin').count() == 1
