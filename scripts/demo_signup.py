#!/usr/bin/env python3
"""
Live demo: sign up, check availability, verify the email, sign in with Google.

Run:
  1. Start the API:  uvicorn app.main:app --port 2022   (EMAIL_BACKEND=log)
  2. Run this demo:  python scripts/demo_signup.py [base_url]
  3. When prompted, paste the 6-digit code printed in the API log.
"""

import json
import sys
import uuid

import httpx

BASE_URL = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:2022"

# ─── Colors ───

BOLD = "\033[1m"
DIM = "\033[2m"
GREEN = "\033[92m"
RED = "\033[91m"
CYAN = "\033[96m"
RESET = "\033[0m"


def banner(text: str) -> None:
    print(f"\n{'═' * 64}")
    print(f"  {BOLD}{text}{RESET}")
    print(f"{'═' * 64}")


def step(num: int, text: str) -> None:
    print(f"\n{BOLD}{CYAN}Step {num:2d}{RESET} │ {text}")


def show_json(data: dict, indent: int = 9) -> None:
    prefix = " " * indent
    for line in json.dumps(data, indent=2, default=str).split("\n"):
        print(f"{prefix}{DIM}{line}{RESET}")


def fail(msg: str) -> None:
    print(f"\n{RED}{BOLD}✖ FAILED: {msg}{RESET}")
    sys.exit(1)


def expect(resp: httpx.Response, status: int, context: str) -> dict:
    if resp.status_code != status:
        fail(f"{context}: expected {status}, got {resp.status_code} — {resp.text}")
    return resp.json()


def main() -> None:
    banner("Account Signup Service — Live Demo")
    print(f"\n{DIM}Checking API at {BASE_URL}...{RESET}")

    try:
        r = httpx.get(f"{BASE_URL}/health", timeout=3)
        if r.status_code != 200:
            fail(f"API returned {r.status_code}")
    except httpx.ConnectError:
        fail(f"Cannot connect to {BASE_URL}. Start the API first:\n  uvicorn app.main:app --port 2022")

    print(f"{GREEN}✓ API is running{RESET}")
    http = httpx.Client(base_url=BASE_URL, timeout=10.0)
    email = f"demo-{uuid.uuid4().hex[:8]}@example.com"

    step(1, f"Check that {email} is available")
    show_json(expect(http.get("/rpc/checkEmailAvailability", params={"email": email}), 200, "availability"))

    step(2, "Register with a password")
    data = expect(http.post("/rpc/registerUser", json={
        "email": email,
        "first_name": "Demo",
        "last_name": "User",
        "password": "Demo1234pass",
        "marketing_emails": False,
    }), 201, "registration")
    show_json(data["user"])

    step(3, "The address is now taken")
    show_json(expect(http.get("/rpc/checkEmailAvailability", params={"email": email}), 200, "availability"))

    step(4, "Asking for another code is refused while the first is live")
    show_json(expect(http.post("/rpc/sendVerificationCode", json={"email": email}), 200, "resend"))

    step(5, "Verify the email")
    code = input(f"         Code from the API log for {email}: ").strip()
    result = expect(http.post("/rpc/verifyEmail", json={
        "email": email,
        "verification_code": code,
    }), 200, "verification")
    show_json(result)
    if not result["success"]:
        fail(result["message"])

    step(6, "Sign in with Google using the same address")
    data = expect(http.post("/rpc/googleSignIn", json={
        "google_id": f"google-{uuid.uuid4().hex[:12]}",
        "email": email,
        "first_name": "Demo",
        "last_name": "User",
    }), 200, "google sign-in")
    show_json({"is_new_user": data["is_new_user"], "google_id": data["user"]["google_id"]})

    print(f"\n{GREEN}{BOLD}✓ Demo complete{RESET}")


if __name__ == "__main__":
    main()
