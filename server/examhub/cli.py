import argparse
import json
import secrets
import string

from examhub.config import settings
from examhub.models import UserRole
from examhub.services import accounts
from examhub.storage import build_storage_provider


def rand_password(n=10):
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(n))


def seed_users(storage, items):
    """
    JSON: [{"username":"x","full_name":"Prof X","role":"teacher|student","class_name":"10A",
            "student_code":"S1","email":"x@school.edu","password":"..."}]
    If password omitted, one is generated.
    """
    out = []
    with storage.transaction():
        for it in items:
            username = it["username"].strip().lower()
            role = UserRole((it.get("role") or "student").strip().lower())
            pw = it.get("password") or rand_password()
            data = {
                "full_name": it["full_name"].strip(),
                "role": role,
                "email": it.get("email"),
                "class_name": it.get("class_name"),
                "student_code": it.get("student_code"),
                "password_hash": accounts.hash_password(pw),
            }
            u = storage.get_user_by_username(username)
            if u is None:
                storage.create_user({"username": username, **data})
                action = "created"
            else:
                storage.update_user(u.id, data)
                action = "updated"
            out.append({"username": username, "password": pw, "role": role.value, "action": action})
    return out


def main(argv=None):
    parser = argparse.ArgumentParser(prog="examhub")
    sub = parser.add_subparsers(dest="cmd", required=True)
    serve = sub.add_parser("serve", help="run the API server")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)
    serve.add_argument("--reload", action="store_true")
    seed = sub.add_parser("seed-users", help="create or update users from a JSON file")
    seed.add_argument("json_path")
    args = parser.parse_args(argv)

    if args.cmd == "serve":
        import uvicorn

        uvicorn.run("examhub.main:app", host=args.host, port=args.port, reload=args.reload)
        return

    with open(args.json_path, "r") as f:
        items = json.load(f)
    provider = build_storage_provider(settings)
    provider.init()
    try:
        with provider() as storage:
            out = seed_users(storage, items)
    finally:
        provider.dispose()
    print("Seeded/updated:", len(out))
    for r in out:
        print(f"{r['username']} ({r['role']}): {r['password']} ({r['action']})")
