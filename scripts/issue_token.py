"""Mint a dashboard operator token for local testing of the link API."""

from __future__ import annotations

import argparse
from datetime import timedelta

from src.adcast.auth.identity import TokenVerifier
from src.adcast.config import Settings


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("uid", help="operator account id stamped as ownerId")
    parser.add_argument("--email", default=None)
    parser.add_argument("--hours", type=int, default=12, help="token lifetime in hours")
    args = parser.parse_args()

    settings = Settings()
    verifier = TokenVerifier(
        signing_key=settings.jwt_signing_key, token_ttl=timedelta(hours=args.hours)
    )
    print(verifier.issue(args.uid, email=args.email))


if __name__ == "__main__":
    main()
