"""Print a development bearer token.

Usage: python scripts/generate_token.py [creator|consumer]
"""
import json
import sys
from datetime import timedelta

from jose import jwt

from photostack.auth_utils import create_access_token
from photostack.config import USER_ROLES, settings

DEV_USERS = {
    "creator": {"oid": "creator-001", "email": "creator1@example.com", "name": "John Creator"},
    "consumer": {"oid": "consumer-001", "email": "consumer1@example.com", "name": "Bob Viewer"},
}


def main(argv):
    role = argv[1] if len(argv) > 1 else "consumer"
    if role not in USER_ROLES:
        print('Invalid role. Use "creator" or "consumer"', file=sys.stderr)
        return 1

    user = DEV_USERS[role]
    claims = {"sub": user["oid"], **user, "role": role, "extension_Role": role}
    token = create_access_token(claims, settings.secret_key, expires_delta=timedelta(hours=24))

    print(f"Development token ({role}):")
    print(token)
    print("\nPayload:")
    print(json.dumps(jwt.get_unverified_claims(token), indent=2))
    print(f'\ncurl -H "Authorization: Bearer {token}" http://localhost:{settings.port}/api/users/me')
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
