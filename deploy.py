import os
from app import create_app
from extensions import db
from flask_migrate import upgrade
from seed import seed_admin

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations')


def deploy(app):
    """
    PRODUCTION DEPLOY SCRIPT
    1. Upgrades DB Schema (migrations when present, plain create_all otherwise)
    2. Seeds Admin (Only if missing)
    """
    with app.app_context():
        # --- PART 1: SCHEMA ---
        if os.path.isdir(MIGRATIONS_DIR):
            print("🔄 1. Applying Database Migrations...")
            # This is the Python equivalent of running 'flask db upgrade'
            upgrade(directory=MIGRATIONS_DIR)
        else:
            print("🔄 1. No migrations folder, creating tables...")
            db.create_all()
        print("✅ Database schema is up to date.")

        # --- PART 2: SEED ADMIN (Conditional) ---
        print("🌱 2. Checking Admin User...")
        seed_admin()


if __name__ == "__main__":
    deploy(create_app())
