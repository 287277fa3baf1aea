import secrets
import string
from passlib.context import CryptContext

CODE_ALPHABET = string.ascii_letters + string.digits

code_context = CryptContext(schemes=["argon2"], deprecated="auto")


def generate_code(length: int = 32) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_verification_code(length: int = 6) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))


def hash_code(code: str) -> str:
    return code_context.hash(code)


def verify_code(code: str, hashed_code: str) -> bool:
    return code_context.verify(code, hashed_code)
