"""
Script to provision a tenant and create or promote its administrator.

Usage:
    python create_admin.py <tenant> <username> [email]
"""

import sys
from authconsole import create_app, db
from authconsole.models import Tenant, User


def create_or_promote_admin(tenant_name, username, email=None):
    """Create the tenant if needed, then create or promote the admin user"""
    app = create_app()

    with app.app_context():
        db.create_all()
        store = app.extensions['auth_config'].store

        tenant = Tenant.query.filter_by(name=tenant_name).first()
        if not tenant:
            tenant = store.provision_tenant(tenant_name)
            print(f"✓ Tenant '{tenant_name}' created with internal authentication.")

        user = User.query.filter_by(username=username).first()

        if user and user.tenant_id != tenant.id:
            print(f"Error: User '{username}' belongs to another tenant.")
            return False

        if not user:
            user = User(username=username, email=email, tenant_id=tenant.id, is_admin=True)
            db.session.add(user)
            db.session.commit()
            print(f"✓ User '{username}' has been created as admin of '{tenant_name}'.")
        elif user.is_admin:
            print(f"User '{username}' is already an admin.")
            return True
        else:
            user.is_admin = True
            db.session.commit()
            print(f"✓ User '{username}' has been promoted to admin.")

        print("\nYou can now:")
        print("1. Fetch the active configuration: GET /admin/auth-config")
        print("2. Test a directory configuration: POST /admin/auth-config/preview-ldap")
        print("3. Save a configuration: PUT /admin/auth-config")
        return True


if __name__ == '__main__':
    if len(sys.argv) < 3:
        print("Usage: python create_admin.py <tenant> <username> [email]")
        print("\nExample: python create_admin.py planetexpress hermes")
        sys.exit(1)

    email = sys.argv[3] if len(sys.argv) > 3 else None
    success = create_or_promote_admin(sys.argv[1], sys.argv[2], email)
    sys.exit(0 if success else 1)
