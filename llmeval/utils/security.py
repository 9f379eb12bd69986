# llmeval/utils/security.py
"""Salted, iterated password hashing for the teacher secret.

Hashes are stored as ``pbkdf2_sha256$<iterations>$<salt>$<digest>`` with base64 salt and
digest, so the iteration count can be raised later without invalidating old hashes.
"""
import argparse
import base64
import getpass
import hashlib
import hmac
import os
import sys

ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 600_000
SALT_BYTES = 16


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


def hash_password(password: str, iterations: int = DEFAULT_ITERATIONS, salt: bytes | None = None) -> str:
    """Returns an encoded PBKDF2-HMAC-SHA256 hash of ``password``."""
    if iterations < 1:
        raise ValueError("iterations must be positive")
    salt = salt if salt is not None else os.urandom(SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{ALGORITHM}${iterations}${_b64encode(salt)}${_b64encode(digest)}"


def verify_password(password: str, encoded: str | None) -> bool:
    """Checks ``password`` against an encoded hash.

    Malformed or missing hashes never match.
    """
    if not encoded:
        return False
    try:
        algorithm, iterations_text, salt_text, digest_text = encoded.split("$")
        if algorithm != ALGORITHM:
            return False
        iterations = int(iterations_text)
        salt = _b64decode(salt_text)
        expected = _b64decode(digest_text)
    except ValueError:
        return False
    if iterations < 1:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(candidate, expected)


def is_valid_hash(encoded: str | None) -> bool:
    if not encoded:
        return False
    parts = encoded.split("$")
    if len(parts) != 4 or parts[0] != ALGORITHM:
        return False
    try:
        int(parts[1])
        _b64decode(parts[2])
        _b64decode(parts[3])
    except ValueError:
        return False
    return True


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Teacher password utilities")
    sub = parser.add_subparsers(dest="command", required=True)
    hash_cmd = sub.add_parser("hash-password", help="Print a hash for TEACHER_PASSWORD_HASH")
    hash_cmd.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.command == "hash-password":
        password = getpass.getpass("Teacher password: ")
        confirm = getpass.getpass("Repeat password: ")
        if password != confirm:
            print("Passwords do not match.", file=sys.stderr)
            return 1
        if not password:
            print("Password must not be empty.", file=sys.stderr)
            return 1
        print(hash_password(password, iterations=args.iterations))
    return 0


if __name__ == "__main__":
    sys.exit(main())
