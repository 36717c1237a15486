"""
Mint a bearer token for local testing against a shared-secret (HS256) setup.

Usage (after `pip install -e .`): python scripts/issue_dev_token.py <user_id> [--hours 24]
Reads AUTH_JWT_SECRET / AUTH_AUDIENCE / AUTH_ISSUER from the environment or .env.
"""

import argparse
import time

from jose import jwt

from app.core.config import get_settings


def issue_token(user_id: str, hours: float = 24) -> str:
    settings = get_settings()
    if not settings.auth_jwt_secret:
        raise SystemExit("AUTH_JWT_SECRET is not set")

    now = int(time.time())
    claims = {
        "sub": user_id,
        "role": "authenticated",
        "iat": now,
        "exp": now + int(hours * 3600),
    }
    if settings.auth_audience:
        claims["aud"] = settings.auth_audience
    if settings.auth_issuer:
        claims["iss"] = settings.auth_issuer

    algorithm = settings.auth_algorithm
    if not algorithm.startswith("HS"):
        raise SystemExit(f"AUTH_ALGORITHM={algorithm} is not a shared-secret algorithm; set it to HS256")
    return jwt.encode(claims, settings.auth_jwt_secret, algorithm=algorithm)


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("user_id")
    parser.add_argument("--hours", type=float, default=24)
    args = parser.parse_args()

    print(issue_token(args.user_id, args.hours))


if __name__ == "__main__":
    main()
